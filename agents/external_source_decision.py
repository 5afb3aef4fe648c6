"""Decides when internal notes need backing from external sources."""

import logging
import re
from typing import Optional

from retrieval.text_utils import calculate_coverage
from schemas.knowledge import Note
from .profile_analyzer import ProfileAnalyzer

logger = logging.getLogger(__name__)


class ExternalSourceDecisionEngine:
    """Heuristic gate for external search."""

    def __init__(self, profile_analyzer: ProfileAnalyzer, coverage_threshold: float = 0.6):
        """
        Initialize decision engine.

        Args:
            profile_analyzer: Used to recognise profile queries
            coverage_threshold: Best note coverage below which external sources are used
        """
        self.profile_analyzer = profile_analyzer
        self.coverage_threshold = coverage_threshold

        self.external_patterns = [
            r"\bsearch\b",
            r"\bexternal\b",
            r"\bonline\b",
            r"\bweb\b",
            r"\binternet\b",
            r"\blook up\b",
            r"\bwikipedia\b",
            r"\breference\b",
            r"\blatest\b",
            r"\brecent\b",
            r"\bcurrent\b",
            r"\bwhat is\b",
            r"\bwho is\b",
            r"\bwhere is\b",
            r"\bwhen did\b",
            r"\bhow to\b",
        ]

    def has_external_intent(self, query: str) -> bool:
        """Whether the query explicitly asks for outside information."""
        query_lower = query.lower()
        return any(re.search(pattern, query_lower) for pattern in self.external_patterns)

    def should_query_external_sources(
        self,
        query: str,
        relevant_notes: list[Note],
        is_profile_query: Optional[bool] = None
    ) -> bool:
        """
        Decide whether to search external sources.

        Checked in order: profile queries never go external; no relevant
        notes always does; explicit external intent does; otherwise only
        when no note covers enough of the query.

        Args:
            query: User query
            relevant_notes: Notes retrieved for the query
            is_profile_query: Classification already computed for the query
                (lexical check when omitted)
        """
        if is_profile_query is None:
            is_profile_query = self.profile_analyzer.is_profile_query(query)
        if is_profile_query:
            return False

        if not relevant_notes:
            return True

        if self.has_external_intent(query):
            return True

        best_coverage = max(calculate_coverage(query, note) for note in relevant_notes)
        logger.debug(f"Best note coverage {best_coverage:.2f} (threshold {self.coverage_threshold})")
        return best_coverage < self.coverage_threshold
