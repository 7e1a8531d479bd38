"""Membership guard: read/write access to a conversation is limited to its two members."""

import structlog

from ..domain.errors import Forbidden
from ..domain.models import Conversation

logger = structlog.get_logger()


def is_member(conversation: Conversation, user_id: str) -> bool:
    return user_id in conversation.members


def authorize(conversation: Conversation, user_id: str) -> None:
    """Raise Forbidden unless user_id is one of the conversation's members."""
    if not is_member(conversation, user_id):
        logger.warning(
            "membership_denied",
            conversation_id=conversation.id,
            user_id=user_id,
        )
        raise Forbidden("You are not a member of this conversation")
