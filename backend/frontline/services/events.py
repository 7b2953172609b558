"""Domain events handed to the notification fan-out."""
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class PostLiked(BaseModel):
    kind: Literal["post_liked"] = "post_liked"
    actor_id: str
    post_id: str


class PostCommented(BaseModel):
    kind: Literal["post_commented"] = "post_commented"
    actor_id: str
    post_id: str
    comment_id: str
    parent_id: str | None = None


class ConnectionRequested(BaseModel):
    kind: Literal["connection_requested"] = "connection_requested"
    actor_id: str  # requester
    target_id: str


class ConnectionAccepted(BaseModel):
    kind: Literal["connection_accepted"] = "connection_accepted"
    actor_id: str  # the user who accepted
    requester_id: str


class MessageSent(BaseModel):
    kind: Literal["message_sent"] = "message_sent"
    actor_id: str  # sender
    recipient_id: str
    message_id: int
    preview: str


class CredentialTransitioned(BaseModel):
    """A credential entered expiring_soon or expired. System-originated: no actor."""

    kind: Literal["credential_transitioned"] = "credential_transitioned"
    owner_id: str
    credential_id: str
    credential_name: str
    status: Literal["expiring_soon", "expired"]
    expiration_date: str  # YYYY-MM-DD
    generation: int = 0


ActivityEvent = Annotated[
    Union[
        PostLiked,
        PostCommented,
        ConnectionRequested,
        ConnectionAccepted,
        MessageSent,
        CredentialTransitioned,
    ],
    Field(discriminator="kind"),
]
