"""Conversation storage contract and in-memory backend."""

import bisect
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from errors import ConversationNotFoundError
from .models import Conversation, ConversationTurn, ConversationSummary, InterfaceType

logger = logging.getLogger(__name__)


def new_id(prefix: str) -> str:
    """Generate a prefixed identifier such as ``conv-1a2b...``."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class ConversationStorage(ABC):
    """Storage backend consumed by the conversation memory store.

    Backends perform no locking and no retries; the memory store serializes
    mutations per conversation id.
    """

    @abstractmethod
    async def create_conversation(
        self,
        interface_type: InterfaceType,
        room_id: str
    ) -> Conversation:
        """Create and persist an empty conversation."""
        pass

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Return the conversation or None."""
        pass

    @abstractmethod
    async def get_conversation_by_room_id(
        self,
        room_id: str,
        interface_type: Optional[InterfaceType] = None
    ) -> Optional[Conversation]:
        """Return the conversation bound to a room, or None."""
        pass

    @abstractmethod
    async def add_turn(self, conversation_id: str, turn: ConversationTurn) -> Conversation:
        """Insert a turn into the active tier, keeping it ordered by timestamp."""
        pass

    @abstractmethod
    async def add_summary(
        self,
        conversation_id: str,
        summary: ConversationSummary
    ) -> Conversation:
        """Append a summary."""
        pass

    @abstractmethod
    async def replace_summaries(
        self,
        conversation_id: str,
        summaries: List[ConversationSummary]
    ) -> Conversation:
        """Replace the whole summary tier (used when compacting summaries)."""
        pass

    @abstractmethod
    async def move_turns_to_archive(
        self,
        conversation_id: str,
        turn_indices: List[int]
    ) -> Conversation:
        """Move active turns at the given indices to the end of the archive."""
        pass

    @abstractmethod
    async def get_recent_conversations(
        self,
        limit: Optional[int] = None,
        interface_type: Optional[InterfaceType] = None
    ) -> List[Conversation]:
        """Return conversations sorted by updated_at, newest first."""
        pass

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation; returns whether it existed."""
        pass

    @abstractmethod
    async def update_metadata(
        self,
        conversation_id: str,
        metadata: Dict[str, Any]
    ) -> Conversation:
        """Shallow-merge metadata into the conversation."""
        pass


class InMemoryConversationStorage(ConversationStorage):
    """Dictionary-backed storage, suitable for tests and the CLI."""

    def __init__(self):
        self._conversations: Dict[str, Conversation] = {}
        self._room_index: Dict[Tuple[str, InterfaceType], str] = {}

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def create_conversation(
        self,
        interface_type: InterfaceType,
        room_id: str
    ) -> Conversation:
        now = datetime.now()
        conversation = Conversation(
            id=new_id("conv"),
            interface_type=interface_type,
            room_id=room_id,
            created_at=now,
            updated_at=now,
        )
        self._conversations[conversation.id] = conversation
        self._room_index[(room_id, interface_type)] = conversation.id
        logger.debug(f"Created conversation {conversation.id} for room {room_id}")
        return conversation.model_copy(deep=True)

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def get_conversation_by_room_id(
        self,
        room_id: str,
        interface_type: Optional[InterfaceType] = None
    ) -> Optional[Conversation]:
        if interface_type is not None:
            conversation_id = self._room_index.get((room_id, interface_type))
        else:
            conversation_id = next(
                (cid for (rid, _), cid in self._room_index.items() if rid == room_id),
                None,
            )
        if conversation_id is None:
            return None
        return await self.get_conversation(conversation_id)

    async def add_turn(self, conversation_id: str, turn: ConversationTurn) -> Conversation:
        conversation = self._require(conversation_id)
        stored = turn.model_copy(deep=True)
        if not stored.id:
            stored.id = new_id("turn")
        # Active turns stay ordered by timestamp even when one arrives late
        bisect.insort_right(conversation.active_turns, stored, key=lambda t: t.timestamp)
        conversation.updated_at = datetime.now()
        return conversation.model_copy(deep=True)

    async def add_summary(
        self,
        conversation_id: str,
        summary: ConversationSummary
    ) -> Conversation:
        conversation = self._require(conversation_id)
        stored = summary.model_copy(deep=True)
        if not stored.id:
            stored.id = new_id("summ")
        conversation.summaries.append(stored)
        conversation.updated_at = datetime.now()
        return conversation.model_copy(deep=True)

    async def replace_summaries(
        self,
        conversation_id: str,
        summaries: List[ConversationSummary]
    ) -> Conversation:
        conversation = self._require(conversation_id)
        stored = []
        for summary in summaries:
            copy = summary.model_copy(deep=True)
            if not copy.id:
                copy.id = new_id("summ")
            stored.append(copy)
        conversation.summaries = stored
        conversation.updated_at = datetime.now()
        return conversation.model_copy(deep=True)

    async def move_turns_to_archive(
        self,
        conversation_id: str,
        turn_indices: List[int]
    ) -> Conversation:
        conversation = self._require(conversation_id)
        valid = {i for i in turn_indices if 0 <= i < len(conversation.active_turns)}
        moved = [conversation.active_turns[i] for i in sorted(valid)]
        conversation.active_turns = [
            turn for i, turn in enumerate(conversation.active_turns) if i not in valid
        ]
        # Archive keeps chronological order of arrival
        conversation.archived_turns.extend(moved)
        conversation.updated_at = datetime.now()
        return conversation.model_copy(deep=True)

    async def get_recent_conversations(
        self,
        limit: Optional[int] = None,
        interface_type: Optional[InterfaceType] = None
    ) -> List[Conversation]:
        conversations = list(self._conversations.values())
        if interface_type is not None:
            conversations = [c for c in conversations if c.interface_type == interface_type]
        conversations.sort(key=lambda c: c.updated_at, reverse=True)
        if limit:
            conversations = conversations[:limit]
        return [c.model_copy(deep=True) for c in conversations]

    async def delete_conversation(self, conversation_id: str) -> bool:
        conversation = self._conversations.pop(conversation_id, None)
        if conversation is None:
            return False
        self._room_index.pop((conversation.room_id, conversation.interface_type), None)
        return True

    async def update_metadata(
        self,
        conversation_id: str,
        metadata: Dict[str, Any]
    ) -> Conversation:
        conversation = self._require(conversation_id)
        conversation.metadata = {**conversation.metadata, **metadata}
        conversation.updated_at = datetime.now()
        return conversation.model_copy(deep=True)
