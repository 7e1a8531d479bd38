"""Conversation and message orchestration.

Ties the identity directory, the conversation and message stores and the
membership guard together. Validation and authorization failures surface as
specific ChatError kinds; anything else raised below this layer is reported
once as Internal.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Tuple

import structlog

from ..domain.errors import ChatError, Conflict, Forbidden, Internal, InvalidArgument, NotFound
from ..domain.models import (
    NEW_CONVERSATION,
    Conversation,
    ConversationSummary,
    DirectoryEntry,
    Message,
    MessageView,
    User,
    is_valid_id,
)
from ..metrics import CONVERSATIONS_CREATED, MESSAGES_SENT
from ..repositories.base import ConversationRepository, MessageRepository, UserRepository
from . import membership

logger = structlog.get_logger()


def require_id(value: Optional[str], name: str) -> str:
    if not value:
        raise InvalidArgument(f"{name} is required")
    if not is_valid_id(value):
        raise InvalidArgument(f"Invalid {name}")
    return value


@asynccontextmanager
async def storage_boundary(operation: str) -> AsyncIterator[None]:
    """Report failures that are not part of the error taxonomy as Internal."""
    try:
        yield
    except ChatError:
        raise
    except Exception as e:
        logger.error("storage_failure", operation=operation, error=str(e))
        raise Internal(f"Failed to {operation}") from e


class ChatService:
    """API-facing operations over conversations and messages."""

    def __init__(
        self,
        users: UserRepository,
        conversations: ConversationRepository,
        messages: MessageRepository,
    ) -> None:
        self.users = users
        self.conversations = conversations
        self.messages = messages

    async def create_conversation(
        self, sender_id: str, receiver_id: str, caller_id: Optional[str] = None
    ) -> Tuple[Conversation, bool]:
        """Find or create the conversation for a pair; returns (conversation, is_new).

        When caller_id is given, sender_id must be the caller. The check runs
        after both ids resolve, so unknown ids still report NotFound.
        """
        async with storage_boundary("create conversation"):
            require_id(sender_id, "senderId")
            require_id(receiver_id, "receiverId")
            if sender_id == receiver_id:
                raise InvalidArgument("Cannot create conversation with yourself")
            for user_id in (sender_id, receiver_id):
                await self._resolve_user(user_id, "One or both users not found")
            if caller_id is not None and sender_id != caller_id:
                raise Forbidden("senderId must be the caller")
            return await self._find_or_create(sender_id, receiver_id)

    async def list_conversations_for_user(
        self, user_id: str, caller_id: Optional[str] = None
    ) -> List[ConversationSummary]:
        """Conversations of a user, each showing the other member, most recent first."""
        async with storage_boundary("fetch conversations"):
            require_id(user_id, "user ID")
            await self._resolve_user(user_id, "User not found")
            if caller_id is not None and user_id != caller_id:
                raise Forbidden("You can only list your own conversations")

            summaries = []
            for conversation in await self.conversations.list_for_member(user_id):
                other_id = conversation.other_member(user_id)
                other = await self.users.get(other_id) if other_id else None
                if other is None:
                    logger.warning(
                        "conversation_member_unresolved",
                        conversation_id=conversation.id,
                        member_id=other_id,
                    )
                    continue
                summaries.append(
                    ConversationSummary(
                        user=other.profile(),
                        conversation_id=conversation.id,
                        created_at=conversation.created_at,
                        updated_at=conversation.updated_at,
                    )
                )
            summaries.sort(key=lambda s: s.updated_at, reverse=True)
            return summaries

    async def send_message(
        self,
        sender_id: str,
        conversation_id: Optional[str],
        text: Optional[str],
        receiver_id: Optional[str] = None,
    ) -> MessageView:
        """Persist a message, creating the conversation when conversation_id is "new"."""
        async with storage_boundary("send message"):
            if not text or not text.strip():
                raise InvalidArgument("Message text is required")
            sender = await self._resolve_user(sender_id, "Sender not found")

            if conversation_id == NEW_CONVERSATION:
                require_id(receiver_id, "receiverId")
                if receiver_id == sender_id:
                    raise InvalidArgument("Cannot create conversation with yourself")
                await self._resolve_user(receiver_id, "Receiver not found")
                conversation, _ = await self._find_or_create(sender_id, receiver_id)
            else:
                conversation = await self._resolve_conversation(conversation_id)
                membership.authorize(conversation, sender_id)

            message = await self.messages.append(conversation.id, sender_id, text)
            MESSAGES_SENT.inc()

            try:
                await self.conversations.touch(conversation.id)
            except Exception as e:
                # updated_at is only a recency hint; the message stays persisted
                logger.warning(
                    "conversation_touch_failed",
                    conversation_id=conversation.id,
                    error=str(e),
                )

            return self._view(message, sender)

    async def list_messages(self, conversation_id: str, requesting_user_id: str) -> List[MessageView]:
        async with storage_boundary("fetch messages"):
            conversation = await self._resolve_conversation(conversation_id)
            membership.authorize(conversation, requesting_user_id)

            views = []
            senders = {}
            for message in await self.messages.list_by_conversation(conversation.id):
                if message.sender_id not in senders:
                    senders[message.sender_id] = await self._resolve_user(
                        message.sender_id, "Sender not found"
                    )
                views.append(self._view(message, senders[message.sender_id]))
            return views

    async def list_other_users(self, requesting_user_id: str) -> List[DirectoryEntry]:
        async with storage_boundary("fetch users"):
            return [
                DirectoryEntry(user=user.profile(), user_id=user.id)
                for user in await self.users.list_all()
                if user.id != requesting_user_id
            ]

    async def _find_or_create(self, id_a: str, id_b: str) -> Tuple[Conversation, bool]:
        existing = await self.conversations.find_by_members(id_a, id_b)
        if existing is not None:
            return existing, False
        try:
            conversation = await self.conversations.create(id_a, id_b)
        except Conflict:
            # Lost the insert race; the winner is now visible
            winner = await self.conversations.find_by_members(id_a, id_b)
            if winner is None:
                raise
            logger.info("conversation_race_resolved", conversation_id=winner.id)
            return winner, False
        CONVERSATIONS_CREATED.inc()
        return conversation, True

    async def _resolve_user(self, user_id: Optional[str], missing: str) -> User:
        user = await self.users.get(user_id) if user_id else None
        if user is None:
            raise NotFound(missing)
        return user

    async def _resolve_conversation(self, conversation_id: Optional[str]) -> Conversation:
        require_id(conversation_id, "conversationId")
        conversation = await self.conversations.get(conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found")
        return conversation

    @staticmethod
    def _view(message: Message, sender: User) -> MessageView:
        return MessageView(
            id=message.id,
            conversation_id=message.conversation_id,
            sender=sender.profile(),
            text=message.text,
            created_at=message.created_at,
        )
