"""Tiered conversation memory."""

from .models import (
    Conversation,
    ConversationTurn,
    ConversationSummary,
    InterfaceType,
    TieredHistory,
    TimeRange,
)
from .storage import ConversationStorage, InMemoryConversationStorage
from .sqlite_store import SQLiteConversationStorage
from .summarizer import ConversationSummarizer
from .tiered_store import ConversationMemoryStore, ASSISTANT_USER_ID

__all__ = [
    "Conversation",
    "ConversationTurn",
    "ConversationSummary",
    "InterfaceType",
    "TieredHistory",
    "TimeRange",
    "ConversationStorage",
    "InMemoryConversationStorage",
    "SQLiteConversationStorage",
    "ConversationSummarizer",
    "ConversationMemoryStore",
    "ASSISTANT_USER_ID",
]
