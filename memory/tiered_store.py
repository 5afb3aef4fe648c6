"""Tiered conversation memory: active, summary and archive tiers."""

import asyncio
import logging
import weakref
from typing import Any, Dict, List, Optional, Tuple

from .models import (
    Conversation,
    ConversationTurn,
    ConversationSummary,
    InterfaceType,
    TieredHistory,
)
from .storage import ConversationStorage
from .summarizer import ConversationSummarizer

logger = logging.getLogger(__name__)


ASSISTANT_USER_ID = "assistant"


class ConversationMemoryStore:
    """Per-room conversation memory with bounded active history.

    When the active tier overflows, the oldest turns move verbatim to the
    archive and a summary of that block is recorded. Every mutation of a
    conversation runs under that conversation's lock, so the overflow
    read-modify-write never interleaves with another append.
    """

    SUMMARY_HEADER = "CONVERSATION SUMMARIES:"
    RECENT_HEADER = "RECENT CONVERSATION:"
    RETAIN_RATIO = 0.8  # active tier is trimmed to this fraction of capacity

    def __init__(
        self,
        storage: ConversationStorage,
        summarizer: Optional[ConversationSummarizer] = None,
        active_capacity: int = 10,
        summary_turn_count: int = 5,
        max_summaries: int = 3,
        history_max_length: int = 8000,
        anchor_id: Optional[str] = None,
        anchor_name: str = "Host"
    ):
        """
        Initialize memory store.

        Args:
            storage: Storage backend
            summarizer: Summarizer for evicted blocks (fallback-only if omitted)
            active_capacity: Maximum number of turns kept in the active tier
            summary_turn_count: Turns folded by an explicit force_summarize
            max_summaries: Summaries kept before the oldest are merged
            history_max_length: Default character budget for prompt history
            anchor_id: User id rendered with the anchor label
            anchor_name: Label shown for the anchor user
        """
        if active_capacity < 1:
            raise ValueError("active_capacity must be at least 1")

        self.storage = storage
        self.summarizer = summarizer or ConversationSummarizer()
        self.active_capacity = active_capacity
        self.summary_turn_count = summary_turn_count
        self.max_summaries = max_summaries
        self.history_max_length = history_max_length
        self.anchor_id = anchor_id
        self.anchor_name = anchor_name

        # A lock lives only while some caller holds or awaits it
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._room_locks: "weakref.WeakValueDictionary[Tuple[str, InterfaceType], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        return self._locks.setdefault(conversation_id, asyncio.Lock())

    def _room_lock_for(self, room_id: str, interface_type: InterfaceType) -> asyncio.Lock:
        return self._room_locks.setdefault((room_id, interface_type), asyncio.Lock())

    # Lookup

    async def get_or_create_conversation_for_room(
        self,
        room_id: str,
        interface_type: InterfaceType = InterfaceType.CLI
    ) -> str:
        """
        Get the conversation bound to a room, creating it on first use.

        Concurrent callers for the same room share one creation.

        Returns:
            Conversation ID
        """
        async with self._room_lock_for(room_id, interface_type):
            existing = await self.storage.get_conversation_by_room_id(room_id, interface_type)
            if existing:
                return existing.id

            conversation = await self.storage.create_conversation(interface_type, room_id)
            logger.info(f"Created conversation {conversation.id} for room {room_id} ({interface_type.value})")
            return conversation.id

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """Return the conversation or None."""
        return await self.storage.get_conversation(conversation_id)

    async def get_conversation_by_room_id(
        self,
        room_id: str,
        interface_type: Optional[InterfaceType] = None
    ) -> Optional[Conversation]:
        """Return the conversation for a room or None."""
        return await self.storage.get_conversation_by_room_id(room_id, interface_type)

    async def get_recent_conversations(
        self,
        limit: Optional[int] = None,
        interface_type: Optional[InterfaceType] = None
    ) -> List[Conversation]:
        """Return conversations, most recently updated first."""
        return await self.storage.get_recent_conversations(limit=limit, interface_type=interface_type)

    async def get_tiered_history(self, conversation_id: str) -> TieredHistory:
        """Return the three tiers of a conversation (empty when unknown)."""
        conversation = await self.storage.get_conversation(conversation_id)
        if conversation is None:
            return TieredHistory()
        return TieredHistory(
            active_turns=conversation.active_turns,
            summaries=self._ordered_summaries(conversation),
            archived_turns=conversation.archived_turns,
        )

    async def get_summarized_turns(
        self,
        conversation_id: str,
        summary_id: str
    ) -> List[ConversationTurn]:
        """Recover the archived turns a summary was built from."""
        conversation = await self.storage.get_conversation(conversation_id)
        if conversation is None:
            return []
        summary = next((s for s in conversation.summaries if s.id == summary_id), None)
        if summary is None:
            return []
        wanted = set(summary.turn_ids)
        return [turn for turn in conversation.archived_turns if turn.id in wanted]

    # Mutations

    async def add_turn(self, conversation_id: str, turn: ConversationTurn) -> Conversation:
        """
        Append a turn and rebalance tiers if the active tier overflows.

        Raises:
            ConversationNotFoundError: If the conversation does not exist
        """
        async with self._lock_for(conversation_id):
            conversation = await self.storage.add_turn(conversation_id, turn)

            if len(conversation.active_turns) > self.active_capacity:
                retain = int(self.active_capacity * self.RETAIN_RATIO)
                evict_count = len(conversation.active_turns) - retain
                conversation = await self._archive_oldest(conversation, evict_count)

            return conversation

    async def force_summarize(self, conversation_id: str) -> bool:
        """
        Fold the oldest active turns into the archive regardless of capacity.

        Returns:
            True if turns were archived and summarized
        """
        async with self._lock_for(conversation_id):
            conversation = await self.storage.get_conversation(conversation_id)
            if conversation is None or len(conversation.active_turns) < 2:
                logger.warning(f"Not enough active turns to summarize for conversation {conversation_id}")
                return False

            count = min(self.summary_turn_count, len(conversation.active_turns))
            await self._archive_oldest(conversation, count)
            return True

    async def update_metadata(self, conversation_id: str, patch: Dict[str, Any]) -> Conversation:
        """Shallow-merge a patch into conversation metadata."""
        async with self._lock_for(conversation_id):
            return await self.storage.update_metadata(conversation_id, patch)

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and all of its tiers."""
        async with self._lock_for(conversation_id):
            deleted = await self.storage.delete_conversation(conversation_id)
        if deleted:
            logger.info(f"Deleted conversation {conversation_id}")
        return deleted

    async def _archive_oldest(self, conversation: Conversation, count: int) -> Conversation:
        """Move the `count` earliest active turns to the archive and summarize them.

        Caller must hold the conversation lock.
        """
        active = conversation.active_turns
        indices = sorted(range(len(active)), key=lambda i: active[i].timestamp)[:count]
        evicted = [active[i] for i in indices]

        conversation = await self.storage.move_turns_to_archive(conversation.id, indices)
        logger.debug(
            f"Archived {len(evicted)} turns for conversation {conversation.id} "
            f"({len(conversation.active_turns)} active, {len(conversation.archived_turns)} archived)"
        )

        try:
            summary = await self.summarizer.summarize_turns(evicted)
            conversation = await self.storage.add_summary(conversation.id, summary)
            if len(conversation.summaries) > self.max_summaries:
                conversation = await self._compact_summaries(conversation)
        except Exception as e:
            # Archive already holds the raw turns; only the summary tier is missing
            logger.error(f"Failed to summarize archived turns for conversation {conversation.id}: {e}")

        return conversation

    async def _compact_summaries(self, conversation: Conversation) -> Conversation:
        """Merge summaries from the oldest end until within max_summaries."""
        summaries = self._ordered_summaries(conversation)
        while len(summaries) > max(self.max_summaries, 1):
            merged = self.summarizer.merge_summaries(summaries[0], summaries[1])
            summaries = [merged] + summaries[2:]
        return await self.storage.replace_summaries(conversation.id, summaries)

    # Prompt rendering

    async def format_history_for_prompt(
        self,
        conversation_id: str,
        max_length: Optional[int] = None,
        include_archived: bool = False
    ) -> str:
        """
        Render conversation history for a prompt.

        Summaries come first (oldest first), then the most recent turns. The
        result never exceeds `max_length` characters and never contains a
        partial turn or summary: whole turns are dropped from the oldest end
        first, then whole summaries from the oldest end.

        Args:
            conversation_id: Conversation ID
            max_length: Character budget (defaults to history_max_length)
            include_archived: Extend the turn window into the archive tier

        Returns:
            Formatted history, or an empty string for unknown conversations
        """
        budget = self.history_max_length if max_length is None else max_length
        conversation = await self.storage.get_conversation(conversation_id)
        if conversation is None or budget <= 0:
            return ""

        turns = conversation.active_turns
        if include_archived:
            turns = conversation.archived_turns + turns
        turn_blocks = [self.format_turn(turn) for turn in turns]
        summary_blocks = [
            f"Summary: {summary.text}" for summary in self._ordered_summaries(conversation)
        ]

        included_turns: List[str] = []
        for block in reversed(turn_blocks):
            candidate = [block] + included_turns
            if len(self._render([], candidate)) > budget:
                break
            included_turns = candidate

        included_summaries: List[str] = []
        for block in reversed(summary_blocks):
            candidate = [block] + included_summaries
            if len(self._render(candidate, included_turns)) > budget:
                break
            included_summaries = candidate

        return self._render(included_summaries, included_turns)

    def format_turn(self, turn: ConversationTurn) -> str:
        """Render one turn; assistant records show only the response."""
        if turn.user_id == ASSISTANT_USER_ID:
            return f"Assistant: {turn.response}"
        speaker = turn.user_name or "User"
        if self.anchor_id and turn.user_id == self.anchor_id:
            speaker = f"{self.anchor_name} ({speaker})"
        text = f"{speaker}: {turn.query}"
        if turn.response:
            text += f"\nAssistant: {turn.response}"
        return text

    def _render(self, summaries: List[str], turns: List[str]) -> str:
        sections = []
        if summaries:
            sections.append(self.SUMMARY_HEADER + "\n" + "\n\n".join(summaries))
            if turns:
                sections.append(self.RECENT_HEADER + "\n" + "\n\n".join(turns))
        elif turns:
            sections.append("\n\n".join(turns))
        return "\n\n".join(sections)

    @staticmethod
    def _ordered_summaries(conversation: Conversation) -> List[ConversationSummary]:
        return sorted(conversation.summaries, key=lambda s: s.time_range.start)
