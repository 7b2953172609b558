"""Post, comment, connection and report schemas."""
from pydantic import BaseModel, Field

from frontline.schemas.profile import ProfileSummary


class PostCreate(BaseModel):
    content: str = Field(..., max_length=5000)


class PostResponse(BaseModel):
    id: str
    user_id: str
    content: str
    image_path: str | None = None
    likes_count: int
    comments_count: int
    created_at: str
    
    class Config:
        from_attributes = True


class LikeResponse(BaseModel):
    post_id: str
    liked: bool
    likes_count: int


class CommentCreate(BaseModel):
    content: str = Field(..., max_length=2000)
    parent_id: str | None = None


class CommentResponse(BaseModel):
    """A comment; top-level comments carry their replies."""
    
    id: str
    post_id: str
    user_id: str
    parent_id: str | None = None
    content: str
    created_at: str
    author: ProfileSummary | None = None
    replies: list["CommentResponse"] = []


class ConnectionRequest(BaseModel):
    target_id: str


class ConnectionResponse(BaseModel):
    id: str
    user_id: str
    connected_user_id: str
    status: str  # pending, accepted
    created_at: str
    
    class Config:
        from_attributes = True


class PendingRequestResponse(BaseModel):
    id: str
    user_id: str
    created_at: str
    user: ProfileSummary


class ConnectionStatusResponse(BaseModel):
    status: str  # connected, pending, none


class ReportCreate(BaseModel):
    post_id: str
    reason: str
    description: str | None = Field(None, max_length=2000)


class ReportStatusUpdate(BaseModel):
    status: str  # reviewed, dismissed, action_taken
    admin_notes: str | None = None


class ReportResponse(BaseModel):
    id: str
    post_id: str
    reporter_id: str
    reason: str
    description: str | None = None
    status: str
    admin_notes: str | None = None
    reviewed_by: str | None = None
    reviewed_at: str | None = None
    created_at: str
    
    class Config:
        from_attributes = True


class ReportedPost(BaseModel):
    id: str
    content: str
    user_id: str
    created_at: str
    author: ProfileSummary | None = None


class ReportDetailResponse(ReportResponse):
    """Admin view of a report with the post and people involved."""
    
    post: ReportedPost | None = None
    reporter: ProfileSummary | None = None
    reviewer: ProfileSummary | None = None
