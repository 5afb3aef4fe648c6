"""Memory data models."""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class InterfaceType(str, Enum):
    """Interface a conversation was started from."""
    CLI = "cli"
    CHAT_ROOM = "chat-room"


class ConversationTurn(BaseModel):
    """A single attributable exchange in a conversation."""
    id: str = ""  # assigned by storage when empty
    timestamp: datetime = Field(default_factory=datetime.now)
    query: str
    response: str = ""  # empty for user turns
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TimeRange(BaseModel):
    """Span of time covered by a summary."""
    start: datetime
    end: datetime


class ConversationSummary(BaseModel):
    """Compaction of a contiguous block of archived turns."""
    id: str = ""  # assigned by storage when empty
    time_range: TimeRange
    text: str
    turn_count: int = 0
    turn_ids: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)


class Conversation(BaseModel):
    """A complete conversation with its memory tiers."""
    id: str
    interface_type: InterfaceType = InterfaceType.CLI
    room_id: str
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    active_turns: List[ConversationTurn] = Field(default_factory=list)
    archived_turns: List[ConversationTurn] = Field(default_factory=list)
    summaries: List[ConversationSummary] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def total_turns(self) -> int:
        """Number of raw turns held across the active and archive tiers."""
        return len(self.active_turns) + len(self.archived_turns)


class TieredHistory(BaseModel):
    """Snapshot of a conversation split by memory tier."""
    active_turns: List[ConversationTurn] = Field(default_factory=list)
    summaries: List[ConversationSummary] = Field(default_factory=list)
    archived_turns: List[ConversationTurn] = Field(default_factory=list)
