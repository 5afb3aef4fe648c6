"""Embedding service and vector similarity helpers."""

import hashlib
import logging
import os
from typing import Optional, Sequence

import numpy as np
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    Returns 0.0 for empty, zero-length or mismatched vectors.
    """
    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)
    if vec_a.size == 0 or vec_a.shape != vec_b.shape:
        return 0.0
    norm = np.linalg.norm(vec_a) * np.linalg.norm(vec_b)
    if norm == 0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / norm)


class EmbeddingService:
    """Computes text embeddings with the OpenAI embeddings API."""

    DEFAULT_MODEL = "text-embedding-3-small"
    MAX_CACHE_ENTRIES = 1024

    def __init__(self, openai_api_key: Optional[str] = None, model: Optional[str] = None):
        """
        Initialize embedding service.

        Args:
            openai_api_key: OpenAI API key. If not provided, uses OPENAI_API_KEY env var.
            model: Embedding model name
        """
        self.api_key = openai_api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client: Optional[AsyncOpenAI] = None
        self._cache: dict[str, list[float]] = {}

        if self.api_key:
            self.client = AsyncOpenAI(api_key=self.api_key)
            logger.info(f"OpenAI client initialized for embeddings ({self.model})")
        else:
            logger.warning("No OpenAI API key provided. Embeddings will be disabled.")

    def is_available(self) -> bool:
        """Check if embeddings can be computed."""
        return self.client is not None

    def _cache_key(self, text: str) -> str:
        return hashlib.md5(f"{self.model}:{text}".encode("utf-8")).hexdigest()

    async def get_embedding(self, text: str) -> list[float]:
        """
        Embed a single text.

        Raises:
            RuntimeError: If no client is configured
        """
        embeddings = await self.get_embeddings([text])
        return embeddings[0]

    async def get_embeddings(self, texts: list[str], batch_size: int = 100) -> list[list[float]]:
        """Embed several texts, reusing cached vectors."""
        if not self.client:
            raise RuntimeError("Embedding client not initialized. Check OpenAI API key.")

        keys = [self._cache_key(text) for text in texts]
        missing = [i for i, key in enumerate(keys) if key not in self._cache]

        for start in range(0, len(missing), batch_size):
            batch = missing[start:start + batch_size]
            try:
                response = await self.client.embeddings.create(
                    model=self.model,
                    input=[texts[i] for i in batch]
                )
            except Exception as e:
                logger.error(f"Error embedding batch: {e}")
                raise
            for i, item in zip(batch, response.data):
                if len(self._cache) >= self.MAX_CACHE_ENTRIES:
                    self._cache.pop(next(iter(self._cache)))
                self._cache[keys[i]] = list(item.embedding)

        return [self._cache[key] for key in keys]
