"""Pydantic schemas for the knowledge assistant."""

from .knowledge import (
    Note,
    Profile,
    ProfileLocation,
    ProfileExperience,
    ProfileEducation,
    ProfileProject,
    ProfileLanguage,
    ExternalSourceType,
    ExternalSourceResult,
)
from .query import ProfileAnalysisResult, QueryOptions, Citation, ExternalCitation, QueryResult
from .commands import CommandInfo, CommandResult, CommandResultType, TagCount

__all__ = [
    "Note",
    "Profile",
    "ProfileLocation",
    "ProfileExperience",
    "ProfileEducation",
    "ProfileProject",
    "ProfileLanguage",
    "ExternalSourceType",
    "ExternalSourceResult",
    "ProfileAnalysisResult",
    "QueryOptions",
    "Citation",
    "ExternalCitation",
    "QueryResult",
    "CommandInfo",
    "CommandResult",
    "CommandResultType",
    "TagCount",
]
