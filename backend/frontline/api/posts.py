"""Post, like and comment API endpoints."""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from frontline.api.deps import get_blob_store, get_current_user, get_db
from frontline.models.user import User
from frontline.schemas.social import CommentCreate, CommentResponse, LikeResponse, PostCreate, PostResponse
from frontline.services import posts
from frontline.services.blob_store import BlobStore

router = APIRouter(prefix="/posts", tags=["posts"])


@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
def create_post(
    request: PostCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return posts.create_post(db, current_user.id, request.content)


@router.post("/{post_id}/like", response_model=LikeResponse)
def toggle_like(
    post_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Like the post, or unlike it if already liked."""
    return posts.toggle_post_like(db, current_user.id, post_id)


@router.get("/{post_id}/comments", response_model=list[CommentResponse])
def list_comments(
    post_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return posts.list_post_comments(db, post_id)


@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
def add_comment(
    post_id: str,
    request: CommentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    comment = posts.add_comment(db, current_user.id, post_id, request.content, parent_id=request.parent_id)
    return posts.serialize_comment(comment, current_user)


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    comment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    posts.delete_comment(db, current_user.id, comment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_post(
    post_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    blob_store: BlobStore = Depends(get_blob_store),
):
    posts.delete_post(db, current_user.id, post_id, blob_store=blob_store)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
