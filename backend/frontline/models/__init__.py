"""SQLAlchemy models package."""
from frontline.models.user import User
from frontline.models.message import Message
from frontline.models.notification import Notification
from frontline.models.credential import Credential
from frontline.models.connection import Connection
from frontline.models.post import Comment, Post, PostLike
from frontline.models.report import Report

__all__ = [
    "User",
    "Message",
    "Notification",
    "Credential",
    "Connection",
    "Post",
    "PostLike",
    "Comment",
    "Report",
]
