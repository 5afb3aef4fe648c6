"""Note, profile and external source schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class Note(BaseModel):
    """A note in the personal knowledge base."""
    id: str
    title: str = "Untitled Note"
    content: str
    tags: list[str] = Field(default_factory=list)
    embedding: Optional[list[float]] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ProfileLocation(BaseModel):
    """Where the profile owner is based."""
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class ProfileExperience(BaseModel):
    """Work experience entry."""
    title: str
    organization: str
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None  # None means current role


class ProfileEducation(BaseModel):
    """Education entry."""
    institution: str
    degree: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ProfileProject(BaseModel):
    """Project entry."""
    title: str
    description: Optional[str] = None


class ProfileLanguage(BaseModel):
    """Spoken language."""
    name: str
    proficiency: str = "unspecified"


class Profile(BaseModel):
    """The user's profile."""
    display_name: str
    headline: Optional[str] = None
    summary: Optional[str] = None
    location: Optional[ProfileLocation] = None
    experiences: list[ProfileExperience] = Field(default_factory=list)
    education: list[ProfileEducation] = Field(default_factory=list)
    projects: list[ProfileProject] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    languages: list[ProfileLanguage] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    embedding: Optional[list[float]] = None

    def embedding_text(self) -> str:
        """Text representation used to compute the profile embedding."""
        parts = [self.display_name]
        if self.headline:
            parts.append(self.headline)
        if self.summary:
            parts.append(self.summary)
        for exp in self.experiences:
            parts.append(f"{exp.title} at {exp.organization}")
        if self.skills:
            parts.append(", ".join(self.skills))
        return "\n".join(parts)


class ExternalSourceType(str, Enum):
    """Kind of external source."""
    WIKIPEDIA = "wikipedia"
    NEWS = "news"


class ExternalSourceResult(BaseModel):
    """Result returned by an external knowledge source."""
    title: str = ""
    source: str = ""
    url: str = ""
    content: str = ""
    source_type: ExternalSourceType
    timestamp: datetime = Field(default_factory=datetime.now)
    embedding: Optional[list[float]] = None
