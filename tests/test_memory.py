"""Tests for tiered conversation memory."""

import asyncio
import gc
from datetime import datetime, timedelta

import pytest

from errors import ConversationNotFoundError
from memory import (
    ASSISTANT_USER_ID,
    ConversationMemoryStore,
    ConversationTurn,
    InMemoryConversationStorage,
    InterfaceType,
)

BASE_TIME = datetime(2024, 5, 1, 9, 0, 0)


def make_turn(index, response="", user_id="u1", user_name="Sam"):
    return ConversationTurn(
        timestamp=BASE_TIME + timedelta(minutes=index),
        query=f"question number {index}",
        response=response,
        user_id=user_id,
        user_name=user_name,
    )


class TestConversationMemoryStore:
    """Test tier management and history rendering."""

    def setup_method(self):
        """Set up test fixtures."""
        self.storage = InMemoryConversationStorage()
        self.memory = ConversationMemoryStore(self.storage, active_capacity=10)

    @pytest.mark.asyncio
    async def test_room_lookup_is_idempotent(self):
        first = await self.memory.get_or_create_conversation_for_room("room-1")
        second = await self.memory.get_or_create_conversation_for_room("room-1")
        other = await self.memory.get_or_create_conversation_for_room("room-1", InterfaceType.CHAT_ROOM)

        assert first == second
        assert other != first

    @pytest.mark.asyncio
    async def test_concurrent_room_creation_shares_conversation(self):
        ids = await asyncio.gather(*(
            self.memory.get_or_create_conversation_for_room("busy-room") for _ in range(10)
        ))

        assert len(set(ids)) == 1
        assert len(await self.memory.get_recent_conversations()) == 1

    @pytest.mark.asyncio
    async def test_add_turn_to_unknown_conversation(self):
        with pytest.raises(ConversationNotFoundError):
            await self.memory.add_turn("conv_missing", make_turn(0))

    @pytest.mark.asyncio
    async def test_overflow_archives_earliest_turns(self):
        conversation_id = await self.memory.get_or_create_conversation_for_room("room-1")

        for i in range(11):
            conversation = await self.memory.add_turn(conversation_id, make_turn(i))

        assert len(conversation.active_turns) <= 10
        assert conversation.total_turns == 11
        assert conversation.archived_turns[0].query == "question number 0"
        assert len(conversation.summaries) == 1
        assert conversation.summaries[0].turn_count == len(conversation.archived_turns)
        # No turn lost or duplicated across tiers
        ids = [t.id for t in conversation.active_turns + conversation.archived_turns]
        assert len(ids) == len(set(ids)) == 11

    @pytest.mark.asyncio
    async def test_overflow_trims_to_retain_ratio(self):
        conversation_id = await self.memory.get_or_create_conversation_for_room("room-1")

        for i in range(11):
            conversation = await self.memory.add_turn(conversation_id, make_turn(i))

        assert len(conversation.active_turns) == 8
        assert len(conversation.archived_turns) == 3

    @pytest.mark.asyncio
    async def test_concurrent_appends_conserve_turns(self):
        memory = ConversationMemoryStore(self.storage, active_capacity=5)
        conversation_id = await memory.get_or_create_conversation_for_room("room-2")

        await asyncio.gather(*(memory.add_turn(conversation_id, make_turn(i)) for i in range(20)))

        conversation = await memory.get_conversation(conversation_id)
        assert conversation.total_turns == 20
        assert len(conversation.active_turns) <= 5

    @pytest.mark.asyncio
    async def test_locks_released_after_use(self):
        for i in range(50):
            conversation_id = await self.memory.get_or_create_conversation_for_room(f"room-{i}")
            await self.memory.add_turn(conversation_id, make_turn(i))
        await self.memory.delete_conversation(conversation_id)
        gc.collect()

        assert len(self.memory._room_locks) == 0
        assert len(self.memory._locks) == 0

    @pytest.mark.asyncio
    async def test_lock_shared_while_held(self):
        conversation_id = await self.memory.get_or_create_conversation_for_room("room-1")

        async with self.memory._lock_for(conversation_id):
            assert self.memory._lock_for(conversation_id).locked()
            pending = asyncio.ensure_future(self.memory.add_turn(conversation_id, make_turn(0)))
            await asyncio.sleep(0.01)
            assert not pending.done()

        conversation = await pending
        assert conversation.total_turns == 1

    @pytest.mark.asyncio
    async def test_summaries_merge_beyond_maximum(self):
        memory = ConversationMemoryStore(self.storage, active_capacity=2, max_summaries=1)
        conversation_id = await memory.get_or_create_conversation_for_room("room-3")

        for i in range(5):
            await memory.add_turn(conversation_id, make_turn(i))

        history = await memory.get_tiered_history(conversation_id)
        assert len(history.summaries) == 1
        assert history.summaries[0].turn_count == 4
        assert len(history.archived_turns) == 4
        assert len(history.active_turns) == 1

        recovered = await memory.get_summarized_turns(conversation_id, history.summaries[0].id)
        assert [t.query for t in recovered] == [f"question number {i}" for i in range(4)]

    @pytest.mark.asyncio
    async def test_summarizer_failure_keeps_archive(self):
        class BrokenSummarizer:
            async def summarize_turns(self, turns):
                raise RuntimeError("summary backend down")

        memory = ConversationMemoryStore(self.storage, summarizer=BrokenSummarizer(), active_capacity=2)
        conversation_id = await memory.get_or_create_conversation_for_room("room-4")

        for i in range(3):
            conversation = await memory.add_turn(conversation_id, make_turn(i))

        assert conversation.total_turns == 3
        assert len(conversation.archived_turns) == 2
        assert conversation.summaries == []

    @pytest.mark.asyncio
    async def test_force_summarize(self):
        memory = ConversationMemoryStore(self.storage, summary_turn_count=2)
        conversation_id = await memory.get_or_create_conversation_for_room("room-5")

        await memory.add_turn(conversation_id, make_turn(0))
        assert await memory.force_summarize(conversation_id) is False

        await memory.add_turn(conversation_id, make_turn(1))
        await memory.add_turn(conversation_id, make_turn(2))
        assert await memory.force_summarize(conversation_id) is True

        conversation = await memory.get_conversation(conversation_id)
        assert [t.query for t in conversation.archived_turns] == ["question number 0", "question number 1"]
        assert len(conversation.active_turns) == 1
        assert len(conversation.summaries) == 1

    @pytest.mark.asyncio
    async def test_force_summarize_unknown_conversation(self):
        assert await self.memory.force_summarize("conv_missing") is False

    @pytest.mark.asyncio
    async def test_update_metadata_merges(self):
        conversation_id = await self.memory.get_or_create_conversation_for_room("room-6")

        await self.memory.update_metadata(conversation_id, {"topic": "mcp", "pinned": False})
        conversation = await self.memory.update_metadata(conversation_id, {"pinned": True})

        assert conversation.metadata == {"topic": "mcp", "pinned": True}

    @pytest.mark.asyncio
    async def test_delete_conversation(self):
        conversation_id = await self.memory.get_or_create_conversation_for_room("room-7")

        assert await self.memory.delete_conversation(conversation_id) is True
        assert await self.memory.get_conversation(conversation_id) is None
        assert await self.memory.delete_conversation(conversation_id) is False

        # The room gets a fresh conversation afterwards
        new_id = await self.memory.get_or_create_conversation_for_room("room-7")
        assert new_id != conversation_id

    @pytest.mark.asyncio
    async def test_tiered_history_for_unknown_conversation(self):
        history = await self.memory.get_tiered_history("conv_missing")

        assert history.active_turns == []
        assert history.summaries == []
        assert history.archived_turns == []


class TestHistoryFormatting:
    """Test prompt rendering of conversation history."""

    def setup_method(self):
        self.storage = InMemoryConversationStorage()
        self.memory = ConversationMemoryStore(self.storage, anchor_id="u-host", anchor_name="Host")

    @pytest.mark.asyncio
    async def test_unknown_conversation_renders_empty(self):
        assert await self.memory.format_history_for_prompt("conv_missing") == ""

    @pytest.mark.asyncio
    async def test_turns_render_oldest_first(self):
        conversation_id = await self.memory.get_or_create_conversation_for_room("room-1")
        await self.memory.add_turn(conversation_id, make_turn(1, response="answer 1"))
        await self.memory.add_turn(conversation_id, make_turn(2, response="answer 2"))

        history = await self.memory.format_history_for_prompt(conversation_id)

        assert history == (
            "Sam: question number 1\nAssistant: answer 1\n\n"
            "Sam: question number 2\nAssistant: answer 2"
        )

    @pytest.mark.asyncio
    async def test_budget_drops_whole_turns(self):
        conversation_id = await self.memory.get_or_create_conversation_for_room("room-1")
        for i in range(1, 4):
            await self.memory.add_turn(conversation_id, make_turn(i, response=f"answer {i}", user_name=None))

        history = await self.memory.format_history_for_prompt(conversation_id, max_length=50)

        assert len(history) <= 50
        assert history == "User: question number 3\nAssistant: answer 3"

    @pytest.mark.asyncio
    async def test_zero_budget(self):
        conversation_id = await self.memory.get_or_create_conversation_for_room("room-1")
        await self.memory.add_turn(conversation_id, make_turn(1))

        assert await self.memory.format_history_for_prompt(conversation_id, max_length=0) == ""

    @pytest.mark.asyncio
    async def test_summaries_get_headers(self):
        memory = ConversationMemoryStore(self.storage, active_capacity=2)
        conversation_id = await memory.get_or_create_conversation_for_room("room-2")
        for i in range(3):
            await memory.add_turn(conversation_id, make_turn(i))

        history = await memory.format_history_for_prompt(conversation_id)

        assert history.startswith(ConversationMemoryStore.SUMMARY_HEADER)
        assert ConversationMemoryStore.RECENT_HEADER in history
        assert "Summary: This conversation contains 2 turns" in history
        assert history.endswith("Sam: question number 2")

    @pytest.mark.asyncio
    async def test_include_archived_turns(self):
        memory = ConversationMemoryStore(self.storage, active_capacity=2)
        conversation_id = await memory.get_or_create_conversation_for_room("room-3")
        for i in range(3):
            await memory.add_turn(conversation_id, make_turn(i))

        without = await memory.format_history_for_prompt(conversation_id)
        with_archive = await memory.format_history_for_prompt(conversation_id, include_archived=True)

        assert "question number 0" not in without.split(ConversationMemoryStore.RECENT_HEADER)[1]
        assert "Sam: question number 0" in with_archive

    def test_format_assistant_turn(self):
        turn = ConversationTurn(query="what is mcp?", response="A protocol.", user_id=ASSISTANT_USER_ID)

        assert self.memory.format_turn(turn) == "Assistant: A protocol."

    def test_format_anchor_turn(self):
        turn = ConversationTurn(query="hello", user_id="u-host", user_name="Sam")

        assert self.memory.format_turn(turn) == "Host (Sam): hello"

    def test_format_unnamed_user(self):
        turn = ConversationTurn(query="hello", user_id="u2")

        assert self.memory.format_turn(turn) == "User: hello"
