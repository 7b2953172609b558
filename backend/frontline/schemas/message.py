"""Direct message schemas."""
from pydantic import BaseModel, Field

from frontline.schemas.profile import ProfileSummary


class MessageCreate(BaseModel):
    """Send-message request."""
    
    recipient_id: str
    content: str = Field(..., max_length=5000)


class MessageResponse(BaseModel):
    """A single message."""
    
    id: int
    sender_id: str
    recipient_id: str
    content: str
    read: bool
    created_at: str


class ConversationResponse(BaseModel):
    """One conversation row in the inbox."""
    
    user: ProfileSummary
    last_message: MessageResponse
    unread_count: int


class ConversationListResponse(BaseModel):
    conversations: list[ConversationResponse]
    degraded: bool = False  # True when the store was unreachable


class ThreadResponse(BaseModel):
    messages: list[MessageResponse]
    degraded: bool = False


class MarkReadResponse(BaseModel):
    updated: int
