"""Query analysis agents for the knowledge assistant."""

from .profile_analyzer import ProfileAnalyzer
from .external_source_decision import ExternalSourceDecisionEngine

__all__ = [
    "ProfileAnalyzer",
    "ExternalSourceDecisionEngine",
]
