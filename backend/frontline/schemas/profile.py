"""Profile schemas shared by other responses."""
from pydantic import BaseModel


class ProfileSummary(BaseModel):
    """The slice of a user shown next to messages, notifications and comments."""
    
    id: str
    full_name: str
    avatar_url: str | None = None
    role: str | None = None
