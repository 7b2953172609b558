"""User model."""
import uuid

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from frontline.clock import utcnow_iso
from frontline.database import Base


class User(Base):
    """User account with the profile fields shown next to messages and notifications."""
    
    __tablename__ = "users"
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(120))
    avatar_url = Column(String(500))
    role = Column(String(50))  # e.g. Paramedic, Firefighter
    is_admin = Column(Integer, default=0)  # SQLite boolean
    created_at = Column(String(26), default=utcnow_iso)
    updated_at = Column(String(26), default=utcnow_iso, onupdate=utcnow_iso)
    
    # Relationships
    notifications = relationship(
        "Notification",
        back_populates="user",
        foreign_keys="Notification.user_id",
        cascade="all, delete-orphan",
    )
    credentials = relationship("Credential", back_populates="user", cascade="all, delete-orphan")
    posts = relationship("Post", back_populates="author", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        return self.full_name or self.username
