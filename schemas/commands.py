"""Interactive command schemas."""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field

from .knowledge import Note, Profile
from .query import QueryResult


class CommandResultType(str, Enum):
    """Kinds of command output."""
    ERROR = "error"
    HELP = "help"
    NOTES = "notes"
    NOTE = "note"
    TAGS = "tags"
    PROFILE = "profile"
    ANSWER = "answer"
    EXTERNAL = "external"
    STATUS = "status"


class CommandInfo(BaseModel):
    """Description of one command for the help listing."""
    command: str
    description: str
    usage: str
    examples: list[str] = Field(default_factory=list)


class TagCount(BaseModel):
    """A tag and how many notes carry it."""
    tag: str
    count: int


class CommandResult(BaseModel):
    """Structured output of a command; rendering is up to the interface."""
    type: CommandResultType
    message: Optional[str] = None
    title: Optional[str] = None
    notes: list[Note] = Field(default_factory=list)
    note: Optional[Note] = None
    tags: list[TagCount] = Field(default_factory=list)
    profile: Optional[Profile] = None
    keywords: list[str] = Field(default_factory=list)
    answer: Optional[QueryResult] = None
    commands: list[CommandInfo] = Field(default_factory=list)
    status: Optional[dict[str, Any]] = None

    @classmethod
    def error(cls, message: str) -> "CommandResult":
        return cls(type=CommandResultType.ERROR, message=message)
