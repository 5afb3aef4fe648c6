"""Conversation summarizer for the summary memory tier."""

import logging
from typing import List, Optional

from llm.base_client import BaseLLMClient, Message
from .models import ConversationTurn, ConversationSummary, TimeRange

logger = logging.getLogger(__name__)


SUMMARIZER_SYSTEM_PROMPT = """You are a conversation summarizer. Create a concise, objective summary of the conversation below.

Your summary should:
- Be under 250 words
- Highlight the main topics discussed
- Note any important decisions, information or action items
- Stay in the third person without adding commentary

Output format:
SUMMARY: [summary of what was discussed and decided]"""


class ConversationSummarizer:
    """Folds a block of turns into a single summary."""

    QUERY_PREVIEW_CHARS = 50
    MAX_FALLBACK_TOPICS = 5

    def __init__(self, llm_client: Optional[BaseLLMClient] = None):
        """
        Initialize summarizer.

        Args:
            llm_client: Optional LLM client; without one every summary uses the fallback
        """
        self.llm_client = llm_client

    async def summarize_turns(self, turns: List[ConversationTurn]) -> ConversationSummary:
        """
        Summarize a contiguous block of turns.

        Args:
            turns: Turns to summarize (any order)

        Returns:
            ConversationSummary covering the turns. Never raises for model
            failures; the fallback summary is used instead.
        """
        if not turns:
            raise ValueError("Cannot summarize an empty block of turns")

        sorted_turns = sorted(turns, key=lambda t: t.timestamp)

        text = None
        if self.llm_client:
            text = await self._generate_summary_text(sorted_turns)

        if not text:
            text = self.create_fallback_text(sorted_turns)

        return ConversationSummary(
            time_range=TimeRange(
                start=sorted_turns[0].timestamp,
                end=sorted_turns[-1].timestamp,
            ),
            text=text,
            turn_count=len(sorted_turns),
            turn_ids=[turn.id for turn in sorted_turns],
        )

    def merge_summaries(
        self,
        older: ConversationSummary,
        newer: ConversationSummary
    ) -> ConversationSummary:
        """Combine two adjacent summaries into one."""
        return ConversationSummary(
            time_range=TimeRange(start=older.time_range.start, end=newer.time_range.end),
            text=f"{older.text} {newer.text}",
            turn_count=older.turn_count + newer.turn_count,
            turn_ids=older.turn_ids + newer.turn_ids,
        )

    async def _generate_summary_text(self, turns: List[ConversationTurn]) -> Optional[str]:
        """Use the LLM to summarize; returns None on failure."""
        try:
            turns_text = "\n".join(
                f"{turn.user_name or 'User'}: {turn.query}"
                + (f"\nAssistant: {turn.response}" if turn.response else "")
                for turn in turns
            )

            messages = [
                Message(role="system", content=SUMMARIZER_SYSTEM_PROMPT),
                Message(role="user", content=f"Summarize this conversation:\n\n{turns_text}"),
            ]

            response = await self.llm_client.chat(
                messages=messages,
                temperature=0.3,
                max_tokens=500
            )

            content = response.content.strip()
            # Everything after the marker, which may span several lines
            _, marker, summary = content.partition("SUMMARY:")
            if marker:
                return summary.strip() or None
            return content or None

        except Exception as e:
            logger.error(f"Failed to generate summary: {e}")
            return None

    def create_fallback_text(self, turns: List[ConversationTurn]) -> str:
        """Deterministic summary built from the queries themselves."""
        topics: List[str] = []
        for turn in turns:
            words = turn.query.split()
            if words and len(words[0]) > 3 and words[0] not in topics:
                topics.append(words[0])

        topics_list = ", ".join(topics[:self.MAX_FALLBACK_TOPICS])
        first_query = self._preview(turns[0].query)
        last_query = self._preview(turns[-1].query)

        return (
            f'This conversation contains {len(turns)} turns, starting with "{first_query}" '
            f'and ending with "{last_query}". Topics include: {topics_list or "various subjects"}.'
        )

    def _preview(self, query: str) -> str:
        if len(query) > self.QUERY_PREVIEW_CHARS:
            return query[:self.QUERY_PREVIEW_CHARS] + "..."
        return query
