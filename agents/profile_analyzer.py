"""Profile relevance analysis for user queries."""

import logging
import re
from typing import Optional

from retrieval.embedding_service import EmbeddingService, cosine_similarity
from schemas.knowledge import Profile
from schemas.query import ProfileAnalysisResult

logger = logging.getLogger(__name__)


class ProfileAnalyzer:
    """Decides whether a query is about the user and how relevant the profile is."""

    def __init__(
        self,
        embedding_service: Optional[EmbeddingService] = None,
        profile_query_threshold: float = 0.7,
        fallback_relevance: float = 0.1
    ):
        """
        Initialize analyzer.

        Args:
            embedding_service: Service used to embed queries
            profile_query_threshold: Relevance above which a query is promoted
                to a profile query
            fallback_relevance: Relevance used when no embedding comparison is possible
        """
        self.embedding_service = embedding_service
        self.profile_query_threshold = profile_query_threshold
        self.fallback_relevance = fallback_relevance

        # First-person profile vocabulary. Broad phrases such as "my skills"
        # or "my work" are left to the semantic score.
        self.profile_patterns = [
            r"\bprofile\b",
            r"\babout me\b",
            r"\bwho am i\b",
            r"\bmy name\b",
            r"\bmy background\b",
            r"\bmy experiences?\b",
            r"\bmy education\b",
            r"\bmy job\b",
            r"\bmy (personal |professional )?information\b",
            r"\btell me about myself\b",
            r"\bmy professional\b",
            r"\bresume\b",
            r"\bcv\b",
            r"\bcurriculum vitae\b",
            r"\bcareer\b",
            r"\bexpertise\b",
            r"\bprofessional identity\b",
        ]

    def is_profile_query(self, query: str) -> bool:
        """
        Lexical check for questions about the user themself.

        Args:
            query: User query

        Returns:
            True when the query uses profile vocabulary
        """
        query_lower = query.lower()
        return any(re.search(pattern, query_lower) for pattern in self.profile_patterns)

    async def get_profile_relevance(self, query: str, profile: Optional[Profile]) -> float:
        """
        Semantic relevance of the profile to the query.

        Returns:
            Cosine similarity clamped to [0, 1]; the fallback relevance when
            the profile has no embedding or the query cannot be embedded;
            0.0 when there is no profile
        """
        if profile is None:
            return 0.0
        if not profile.embedding:
            return self.fallback_relevance
        if self.embedding_service is None or not self.embedding_service.is_available():
            return self.fallback_relevance

        try:
            query_embedding = await self.embedding_service.get_embedding(query)
        except Exception as e:
            logger.warning(f"Error calculating profile relevance: {e}")
            return self.fallback_relevance

        similarity = cosine_similarity(query_embedding, profile.embedding)
        return min(1.0, max(0.0, similarity))

    async def analyze(self, query: str, profile: Optional[Profile]) -> ProfileAnalysisResult:
        """
        Classify the query and score the profile.

        A lexical miss is promoted to a profile query when the semantic
        relevance exceeds the threshold; a lexical hit is never demoted.
        """
        lexical = self.is_profile_query(query)
        relevance = await self.get_profile_relevance(query, profile)

        is_profile_query = lexical or relevance > self.profile_query_threshold
        if is_profile_query and not lexical:
            logger.debug(f"Promoted query to profile query (relevance {relevance:.2f})")

        return ProfileAnalysisResult(is_profile_query=is_profile_query, relevance=relevance)
