"""Feed posts, likes and comments: the social sources of notifications."""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from frontline.errors import NotFound, ValidationFailed, require_user, translate_db_errors
from frontline.models.post import Comment, Post, PostLike
from frontline.models.user import User
from frontline.services import notifications
from frontline.services.blob_store import BlobStore, remove_blob_quietly
from frontline.services.conversations import profile_summary
from frontline.services.events import PostCommented, PostLiked

logger = logging.getLogger(__name__)

MAX_POST_LENGTH = 5000
MAX_COMMENT_LENGTH = 2000


def _clean(content: str | None, what: str, max_length: int) -> str:
    content = (content or "").strip()
    if not content:
        raise ValidationFailed(f"{what} content must not be empty")
    if len(content) > max_length:
        raise ValidationFailed(f"{what} content must be at most {max_length} characters")
    return content


def _get_post(db: Session, post_id: str) -> Post:
    post = db.get(Post, post_id)
    if post is None:
        raise NotFound("Post not found")
    return post


@translate_db_errors()
def create_post(db: Session, user_id: str, content: str, image_path: str | None = None) -> Post:
    require_user(user_id)
    post = Post(user_id=user_id, content=_clean(content, "Post", MAX_POST_LENGTH), image_path=image_path)
    db.add(post)
    db.commit()
    db.refresh(post)
    return post


@translate_db_errors()
def toggle_post_like(db: Session, user_id: str, post_id: str) -> dict:
    """Like the post, or unlike it if user_id already likes it.

    The unique (post, user) constraint decides which: a failed insert means the
    like exists. The counter moves with an in-database increment.
    """
    require_user(user_id)
    _get_post(db, post_id)

    liked = True
    try:
        with db.begin_nested():
            db.add(PostLike(post_id=post_id, user_id=user_id))
    except IntegrityError:
        liked = False

    if liked:
        delta = 1
        notifications.emit(db, PostLiked(actor_id=user_id, post_id=post_id))
    else:
        removed = (
            db.query(PostLike)
            .filter(PostLike.post_id == post_id, PostLike.user_id == user_id)
            .delete(synchronize_session=False)
        )
        delta = -removed

    if delta:
        db.query(Post).filter(Post.id == post_id).update(
            {Post.likes_count: Post.likes_count + delta}, synchronize_session=False
        )
    db.commit()

    likes_count = db.query(Post.likes_count).filter(Post.id == post_id).scalar()
    return {"post_id": post_id, "liked": liked, "likes_count": max(likes_count or 0, 0)}


@translate_db_errors()
def has_liked(db: Session, user_id: str, post_id: str) -> bool:
    return (
        db.query(PostLike.id).filter(PostLike.post_id == post_id, PostLike.user_id == user_id).first()
        is not None
    )


@translate_db_errors()
def add_comment(
    db: Session,
    user_id: str,
    post_id: str,
    content: str,
    parent_id: str | None = None,
) -> Comment:
    """Comment on a post, or reply to a comment.

    Threads are two levels deep: replying to a reply attaches to its top-level
    comment.
    """
    require_user(user_id)
    content = _clean(content, "Comment", MAX_COMMENT_LENGTH)
    _get_post(db, post_id)

    if parent_id:
        parent = db.get(Comment, parent_id)
        if parent is None or parent.post_id != post_id:
            raise NotFound("Parent comment not found")
        if parent.parent_id:
            parent_id = parent.parent_id

    comment = Comment(post_id=post_id, user_id=user_id, parent_id=parent_id, content=content)
    db.add(comment)
    db.query(Post).filter(Post.id == post_id).update(
        {Post.comments_count: Post.comments_count + 1}, synchronize_session=False
    )
    db.flush()

    notifications.emit(
        db,
        PostCommented(actor_id=user_id, post_id=post_id, comment_id=comment.id, parent_id=parent_id),
    )
    db.commit()
    db.refresh(comment)
    return comment


def serialize_comment(comment: Comment, author: User | None) -> dict:
    return {
        "id": comment.id,
        "post_id": comment.post_id,
        "user_id": comment.user_id,
        "parent_id": comment.parent_id,
        "content": comment.content,
        "created_at": comment.created_at,
        "author": profile_summary(author) if author else None,
        "replies": [],
    }


@translate_db_errors()
def list_post_comments(db: Session, post_id: str) -> list[dict]:
    """Top-level comments, oldest first, each with its replies."""
    rows = db.query(Comment).filter(Comment.post_id == post_id).order_by(Comment.created_at, Comment.id).all()
    if not rows:
        return []

    authors = {u.id: u for u in db.query(User).filter(User.id.in_({c.user_id for c in rows})).all()}
    top_level: list[dict] = []
    by_id: dict[str, dict] = {}
    replies: list[dict] = []
    for row in rows:
        item = serialize_comment(row, authors.get(row.user_id))
        if row.parent_id:
            replies.append(item)
        else:
            top_level.append(item)
            by_id[row.id] = item

    for reply in replies:
        parent = by_id.get(reply["parent_id"])
        if parent is not None:
            parent["replies"].append(reply)
    return top_level


@translate_db_errors()
def delete_comment(db: Session, user_id: str, comment_id: str) -> None:
    """Delete the caller's comment and, for a top-level comment, its replies."""
    require_user(user_id)
    comment = db.query(Comment).filter(Comment.id == comment_id, Comment.user_id == user_id).first()
    if comment is None:
        raise NotFound("Comment not found")

    removed = 1 + db.query(Comment).filter(Comment.parent_id == comment.id).count()
    post_id = comment.post_id
    db.query(Comment).filter(Comment.parent_id == comment.id).delete(synchronize_session=False)
    db.query(Comment).filter(Comment.id == comment.id).delete(synchronize_session=False)
    db.query(Post).filter(Post.id == post_id).update(
        {Post.comments_count: Post.comments_count - removed}, synchronize_session=False
    )
    db.commit()


@translate_db_errors()
def delete_post(
    db: Session,
    user_id: str,
    post_id: str,
    blob_store: BlobStore | None = None,
    as_admin: bool = False,
) -> None:
    """Delete a post. The row always goes; its image is removed best-effort."""
    require_user(user_id)
    query = db.query(Post).filter(Post.id == post_id)
    if not as_admin:
        query = query.filter(Post.user_id == user_id)
    post = query.first()
    if post is None:
        raise NotFound("Post not found")

    image_path = remove_post(db, post)
    db.commit()
    remove_blob_quietly(blob_store, image_path)
    logger.info("Post %s deleted by %s", post_id, user_id)


def remove_post(db: Session, post: Post) -> str | None:
    """Delete the row in the caller's transaction. Returns the image key to clean up after commit."""
    image_path = post.image_path
    db.delete(post)
    return image_path
