"""Query pipeline input and output schemas."""

from typing import Optional
from pydantic import BaseModel, Field

from memory.models import InterfaceType
from .knowledge import Note, Profile


class ProfileAnalysisResult(BaseModel):
    """Profile classification for a single query."""
    is_profile_query: bool
    relevance: float = Field(..., ge=0.0, le=1.0)


class QueryOptions(BaseModel):
    """Caller-supplied options for a query."""
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    room_id: Optional[str] = None
    interface_type: InterfaceType = InterfaceType.CLI


class Citation(BaseModel):
    """Reference to a note used in the answer."""
    note_id: str
    note_title: str
    excerpt: str


class ExternalCitation(BaseModel):
    """Reference to an external source used in the answer."""
    title: str
    source: str
    url: str
    excerpt: str


class QueryResult(BaseModel):
    """Answer produced by the query pipeline."""
    answer: str
    citations: list[Citation] = Field(default_factory=list)
    related_notes: list[Note] = Field(default_factory=list)
    profile: Optional[Profile] = None
    external_sources: Optional[list[ExternalCitation]] = None
    usage: Optional[dict[str, int]] = None
