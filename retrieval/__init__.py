"""Retrieval layer: embeddings, text helpers and external sources."""

from .embedding_service import EmbeddingService, cosine_similarity
from .external_sources import ExternalSource, NewsAPISource, WikipediaSource
from .text_utils import calculate_coverage, extract_query_tags, get_excerpt

__all__ = [
    "EmbeddingService",
    "cosine_similarity",
    "ExternalSource",
    "WikipediaSource",
    "NewsAPISource",
    "calculate_coverage",
    "extract_query_tags",
    "get_excerpt",
]
