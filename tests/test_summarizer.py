"""Tests for ConversationSummarizer."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from llm.base_client import LLMResponse
from memory import ConversationSummarizer, ConversationTurn

BASE_TIME = datetime(2024, 5, 1, 9, 0, 0)


def make_turns(queries):
    return [
        ConversationTurn(
            id=f"t{i}",
            timestamp=BASE_TIME + timedelta(minutes=i),
            query=query,
            response=f"answer {i}",
            user_name="Sam",
        )
        for i, query in enumerate(queries)
    ]


class TestConversationSummarizer:
    """Test summary generation and fallback."""

    def setup_method(self):
        """Set up test fixtures."""
        self.summarizer = ConversationSummarizer()

    @pytest.mark.asyncio
    async def test_fallback_without_llm(self):
        turns = make_turns(["Explain the mediator pattern", "Where are notes stored?"])

        summary = await self.summarizer.summarize_turns(turns)

        assert summary.text == (
            'This conversation contains 2 turns, starting with "Explain the mediator pattern" '
            'and ending with "Where are notes stored?". Topics include: Explain, Where.'
        )
        assert summary.turn_count == 2
        assert summary.turn_ids == ["t0", "t1"]
        assert summary.time_range.start == BASE_TIME
        assert summary.time_range.end == BASE_TIME + timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_turns_sorted_by_timestamp(self):
        turns = make_turns(["first question", "second question"])

        summary = await self.summarizer.summarize_turns(list(reversed(turns)))

        assert summary.turn_ids == ["t0", "t1"]

    @pytest.mark.asyncio
    async def test_empty_block_rejected(self):
        with pytest.raises(ValueError):
            await self.summarizer.summarize_turns([])

    def test_fallback_truncates_long_queries(self):
        long_query = "a" * 80
        text = self.summarizer.create_fallback_text(make_turns([long_query]))

        assert f'"{"a" * 50}..."' in text

    def test_fallback_without_topics(self):
        text = self.summarizer.create_fallback_text(make_turns(["hi", "ok"]))

        assert text.endswith("Topics include: various subjects.")

    @pytest.mark.asyncio
    async def test_llm_summary_line_is_parsed(self):
        llm = Mock()
        llm.chat = AsyncMock(return_value=LLMResponse(
            content="Here you go.\nSUMMARY: Sam asked about the mediator and note storage."
        ))
        summarizer = ConversationSummarizer(llm)

        summary = await summarizer.summarize_turns(make_turns(["one", "two"]))

        assert summary.text == "Sam asked about the mediator and note storage."
        llm.chat.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_multiline_summary_kept_whole(self):
        llm = Mock()
        llm.chat = AsyncMock(return_value=LLMResponse(
            content="SUMMARY: Sam asked about the mediator.\n\nDecided: notes stay in memory.\n- Follow up on storage."
        ))
        summarizer = ConversationSummarizer(llm)

        summary = await summarizer.summarize_turns(make_turns(["one", "two"]))

        assert summary.text == (
            "Sam asked about the mediator.\n\nDecided: notes stay in memory.\n- Follow up on storage."
        )

    @pytest.mark.asyncio
    async def test_empty_summary_marker_falls_back(self):
        llm = Mock()
        llm.chat = AsyncMock(return_value=LLMResponse(content="SUMMARY:"))
        summarizer = ConversationSummarizer(llm)

        summary = await summarizer.summarize_turns(make_turns(["Explain things"]))

        assert summary.text.startswith("This conversation contains 1 turns")

    @pytest.mark.asyncio
    async def test_llm_failure_falls_back(self):
        llm = Mock()
        llm.chat = AsyncMock(side_effect=RuntimeError("rate limited"))
        summarizer = ConversationSummarizer(llm)

        summary = await summarizer.summarize_turns(make_turns(["Explain things"]))

        assert summary.text.startswith("This conversation contains 1 turns")

    @pytest.mark.asyncio
    async def test_merge_keeps_range_and_ids(self):
        turns = make_turns(["first topic", "second topic", "third topic"])
        older = await self.summarizer.summarize_turns(turns[:2])
        newer = await self.summarizer.summarize_turns(turns[2:])

        merged = self.summarizer.merge_summaries(older, newer)

        assert merged.turn_count == 3
        assert merged.turn_ids == ["t0", "t1", "t2"]
        assert merged.time_range.start == older.time_range.start
        assert merged.time_range.end == newer.time_range.end
        assert merged.text == f"{older.text} {newer.text}"
