"""Base repository interfaces."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..domain.models import Conversation, Message, User


class UserRepository(ABC):
    """Identity directory: authoritative store of user records."""

    @abstractmethod
    async def create(
        self,
        email: str,
        full_name: str,
        credential: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> User:
        """Register a new user."""
        pass

    @abstractmethod
    async def get(self, user_id: str) -> Optional[User]:
        """Retrieve a user by ID."""
        pass

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[User]:
        """Retrieve a user by exact email."""
        pass

    @abstractmethod
    async def list_all(self) -> List[User]:
        """List every registered user."""
        pass


class ConversationRepository(ABC):
    """Conversation store owning the two-party uniqueness invariant."""

    @abstractmethod
    async def find_by_members(self, id_a: str, id_b: str) -> Optional[Conversation]:
        """Find the conversation whose member set is exactly {id_a, id_b}."""
        pass

    @abstractmethod
    async def create(self, id_a: str, id_b: str) -> Conversation:
        """Insert a conversation for a pair; does not look for an existing one."""
        pass

    @abstractmethod
    async def touch(self, conversation_id: str) -> None:
        """Bump updated_at to now."""
        pass

    @abstractmethod
    async def get(self, conversation_id: str) -> Optional[Conversation]:
        """Retrieve a conversation by ID."""
        pass

    @abstractmethod
    async def list_for_member(self, user_id: str) -> List[Conversation]:
        """List conversations containing a user, in no particular order."""
        pass


class MessageRepository(ABC):
    """Append-only message store."""

    @abstractmethod
    async def append(self, conversation_id: str, sender_id: str, text: str) -> Message:
        """Persist a message."""
        pass

    @abstractmethod
    async def list_by_conversation(self, conversation_id: str) -> List[Message]:
        """Get messages for a conversation in creation order."""
        pass
