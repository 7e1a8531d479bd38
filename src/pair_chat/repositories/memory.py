"""In-memory repository implementations."""

import asyncio
import itertools
from typing import Dict, List, Optional, Tuple

import structlog

from ..domain.errors import Conflict, InvalidArgument, NotFound
from ..domain.models import (
    Conversation,
    Message,
    User,
    canonical_pair,
    is_valid_id,
    new_id,
    utcnow,
)
from .base import ConversationRepository, MessageRepository, UserRepository

logger = structlog.get_logger()


class InMemoryUserRepository(UserRepository):
    """Identity directory held in process memory."""

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}
        self._by_email: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        email: str,
        full_name: str,
        credential: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> User:
        """Register a new user; email and id must both be unused."""
        if not email or not email.strip():
            raise InvalidArgument("Email is required")
        if not full_name or not full_name.strip():
            raise InvalidArgument("Full name is required")
        if user_id is not None and not is_valid_id(user_id):
            raise InvalidArgument("Invalid user ID format")

        async with self._lock:
            if email in self._by_email:
                raise Conflict("User already exists")
            if user_id is not None and user_id in self._users:
                raise Conflict(f"User {user_id} already exists")

            user = User(
                id=user_id or new_id(),
                email=email,
                full_name=full_name,
                credential=credential,
            )
            self._users[user.id] = user
            self._by_email[email] = user.id
            logger.info("user_created", user_id=user.id)
            return user

    async def get(self, user_id: str) -> Optional[User]:
        async with self._lock:
            return self._users.get(user_id)

    async def find_by_email(self, email: str) -> Optional[User]:
        async with self._lock:
            user_id = self._by_email.get(email)
            return self._users.get(user_id) if user_id else None

    async def list_all(self) -> List[User]:
        async with self._lock:
            return list(self._users.values())


class InMemoryConversationRepository(ConversationRepository):
    """Conversation store with a unique index on the canonical member pair."""

    def __init__(self, users: UserRepository) -> None:
        self._users = users
        self._conversations: Dict[str, Conversation] = {}
        self._by_members: Dict[Tuple[str, str], str] = {}
        self._lock = asyncio.Lock()

    async def find_by_members(self, id_a: str, id_b: str) -> Optional[Conversation]:
        if id_a == id_b:
            raise InvalidArgument("A conversation needs two distinct members")
        key = canonical_pair(id_a, id_b)
        async with self._lock:
            conversation_id = self._by_members.get(key)
            return self._conversations.get(conversation_id) if conversation_id else None

    async def create(self, id_a: str, id_b: str) -> Conversation:
        """Insert a conversation.

        Raises Conflict when the pair already has one, so concurrent
        find-then-create callers can never produce a duplicate.
        """
        if id_a == id_b:
            raise InvalidArgument("Cannot create conversation with yourself")
        for user_id in (id_a, id_b):
            if await self._users.get(user_id) is None:
                raise InvalidArgument(f"User {user_id} does not exist")

        key = canonical_pair(id_a, id_b)
        async with self._lock:
            if key in self._by_members:
                logger.warning(
                    "conversation_duplicate_rejected",
                    existing_id=self._by_members[key],
                )
                raise Conflict("Conversation already exists for these users")

            conversation = Conversation(members=key)
            self._conversations[conversation.id] = conversation
            self._by_members[key] = conversation.id
            logger.info("conversation_created", conversation_id=conversation.id)
            return conversation

    async def touch(self, conversation_id: str) -> None:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                logger.warning("conversation_not_found", conversation_id=conversation_id)
                raise NotFound(f"Conversation {conversation_id} not found")
            conversation.updated_at = utcnow()

    async def get(self, conversation_id: str) -> Optional[Conversation]:
        async with self._lock:
            return self._conversations.get(conversation_id)

    async def list_for_member(self, user_id: str) -> List[Conversation]:
        async with self._lock:
            return [c for c in self._conversations.values() if user_id in c.members]


class InMemoryMessageRepository(MessageRepository):
    """Append-only message store; never updates or deletes."""

    def __init__(self) -> None:
        self._messages: Dict[str, List[Message]] = {}
        self._sequence = itertools.count(1)
        self._lock = asyncio.Lock()

    async def append(self, conversation_id: str, sender_id: str, text: str) -> Message:
        if text is None or not text.strip():
            raise InvalidArgument("Message text is required")

        async with self._lock:
            message = Message(
                conversation_id=conversation_id,
                sender_id=sender_id,
                text=text,
                sequence=next(self._sequence),
            )
            self._messages.setdefault(conversation_id, []).append(message)
            logger.info(
                "message_appended",
                conversation_id=conversation_id,
                message_id=message.id,
            )
            return message

    async def list_by_conversation(self, conversation_id: str) -> List[Message]:
        async with self._lock:
            messages = self._messages.get(conversation_id, [])
            return sorted(messages, key=lambda m: (m.created_at, m.sequence))
