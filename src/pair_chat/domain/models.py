"""Domain models for the chat application."""

import re
from datetime import datetime, timezone
from typing import Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

NEW_CONVERSATION = "new"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


def is_valid_id(value: object) -> bool:
    """Check that a value is a well-formed entity id."""
    return isinstance(value, str) and ID_PATTERN.match(value) is not None


def canonical_pair(id_a: str, id_b: str) -> Tuple[str, str]:
    """Order two member ids so that {A, B} and {B, A} map to the same key."""
    return (id_a, id_b) if str(id_a) <= str(id_b) else (id_b, id_a)


class WireModel(BaseModel):
    """Base for models serialized with camelCase names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserProfile(WireModel):
    """Public part of a user record."""

    id: str = Field(alias="_id")
    email: str
    full_name: str


class User(WireModel):
    """Identity record."""

    id: str = Field(default_factory=new_id, alias="_id")
    email: str
    full_name: str
    credential: Optional[str] = Field(default=None, exclude=True, repr=False)
    created_at: datetime = Field(default_factory=utcnow)

    def profile(self) -> UserProfile:
        return UserProfile(id=self.id, email=self.email, full_name=self.full_name)


class Conversation(WireModel):
    """A two-party conversation; members are kept in canonical order."""

    id: str = Field(default_factory=new_id, alias="_id")
    members: Tuple[str, str]
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def other_member(self, user_id: str) -> Optional[str]:
        if user_id not in self.members:
            return None
        first, second = self.members
        return second if first == user_id else first


class Message(WireModel):
    """Message model."""

    id: str = Field(default_factory=new_id, alias="_id")
    conversation_id: str
    sender_id: str
    text: str = Field(alias="message")
    created_at: datetime = Field(default_factory=utcnow)
    sequence: int = Field(default=0, exclude=True)


class MessageView(WireModel):
    """Message enriched with the sender's public profile."""

    id: str = Field(alias="_id")
    conversation_id: str
    sender: UserProfile = Field(alias="senderId")
    text: str = Field(alias="message")
    created_at: datetime


class ConversationSummary(WireModel):
    """A conversation as seen by one member: the other party plus timestamps."""

    user: UserProfile
    conversation_id: str
    created_at: datetime
    updated_at: datetime


class ConversationCreated(WireModel):
    conversation: Conversation
    is_new: bool


class DirectoryEntry(WireModel):
    user: UserProfile
    user_id: str
