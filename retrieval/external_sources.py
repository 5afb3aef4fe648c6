"""External knowledge sources (Wikipedia, NewsAPI)."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

import requests

from schemas.knowledge import ExternalSourceResult, ExternalSourceType

logger = logging.getLogger(__name__)


class ExternalSource(ABC):
    """
    Base class for HTTP-backed external sources.

    Requests are blocking and run in a worker thread. A failed call marks
    the source unavailable; while unavailable, searches return no results.
    After `retry_after` seconds the next search tries the service again, and
    `reset_availability()` or a successful `check_availability()` lifts the
    block at once.
    """

    name: str = "external"
    source_type: ExternalSourceType

    def __init__(self, timeout: int = 10, retry_after: float = 60.0):
        self.timeout = timeout
        self.retry_after = retry_after
        self._is_available = True
        self._last_error: Optional[str] = None
        self._failed_at: Optional[float] = None

    def _get_headers(self) -> dict:
        """Build request headers."""
        return {
            "Accept": "application/json",
            "User-Agent": "PersonalKnowledgeAssistant/1.0"
        }

    def _mark_success(self) -> None:
        self._is_available = True
        self._last_error = None
        self._failed_at = None

    def _handle_error(self, error: Exception, context: str) -> None:
        """Record a failure and mark the source unavailable."""
        self._is_available = False
        self._last_error = str(error)
        self._failed_at = time.monotonic()
        logger.warning(f"{self.name} error during {context}: {error}")

    def _get_json(self, url: str, params: dict, context: str) -> Optional[Any]:
        """GET a JSON document; returns None (and records the error) on failure."""
        try:
            response = requests.get(
                url,
                params=params,
                headers=self._get_headers(),
                timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            self._handle_error(Exception(f"Request timeout after {self.timeout}s"), context)
            return None
        except requests.exceptions.RequestException as e:
            self._handle_error(e, context)
            return None

        if response.status_code in (401, 403):
            self._handle_error(Exception(f"Authentication failed: {response.status_code}"), context)
            return None
        if response.status_code != 200:
            self._handle_error(
                Exception(f"API returned status {response.status_code}: {response.text[:200]}"),
                context
            )
            return None

        try:
            data = response.json()
        except ValueError as e:
            self._handle_error(e, context)
            return None
        self._mark_success()
        return data

    async def search(self, query: str, limit: int = 3) -> list[ExternalSourceResult]:
        """
        Search the source.

        Args:
            query: Search query
            limit: Maximum number of results

        Returns:
            Results, or an empty list when the source is unavailable or fails
        """
        if not self.is_available():
            logger.warning(f"{self.name} unavailable (last error: {self._last_error}), returning empty results")
            return []
        if not self._is_available:
            logger.info(f"Retrying {self.name} after {self.retry_after}s cooldown")
        return await asyncio.to_thread(self._search_sync, query, limit)

    async def check_availability(self) -> bool:
        """Ping the source and refresh the availability flag."""
        self.reset_availability()
        available = await asyncio.to_thread(self._ping_sync)
        if available:
            self.reset_availability()
        return self._is_available and available

    @abstractmethod
    def _search_sync(self, query: str, limit: int) -> list[ExternalSourceResult]:
        pass

    @abstractmethod
    def _ping_sync(self) -> bool:
        pass

    def is_available(self) -> bool:
        """Whether the source may be called: the last call succeeded or its cooldown has passed."""
        if self._is_available:
            return True
        # Configuration failures (no _failed_at) never expire
        return self._failed_at is not None and time.monotonic() - self._failed_at >= self.retry_after

    def get_last_error(self) -> Optional[str]:
        """Get the last error message."""
        return self._last_error

    def reset_availability(self) -> None:
        """Allow calls again after a failure."""
        self._mark_success()


class WikipediaSource(ExternalSource):
    """Wikipedia search with page intro extracts."""

    name = "Wikipedia"
    source_type = ExternalSourceType.WIKIPEDIA
    API_URL = "https://en.wikipedia.org/w/api.php"

    def __init__(self, timeout: int = 10, api_url: Optional[str] = None, retry_after: float = 60.0):
        super().__init__(timeout=timeout, retry_after=retry_after)
        self.api_url = api_url or self.API_URL

    def _search_sync(self, query: str, limit: int) -> list[ExternalSourceResult]:
        params = {
            "action": "query",
            "format": "json",
            "generator": "search",
            "gsrsearch": query,
            "gsrlimit": limit,
            "prop": "extracts|info",
            "exintro": 1,
            "explaintext": 1,
            "inprop": "url",
        }
        data = self._get_json(self.api_url, params, "search")
        if not isinstance(data, dict):
            return []

        pages = list(data.get("query", {}).get("pages", {}).values())
        pages.sort(key=lambda page: page.get("index", 0))

        results = []
        for page in pages[:limit]:
            title = page.get("title", "")
            results.append(ExternalSourceResult(
                title=title,
                source=self.name,
                url=page.get("fullurl") or f"https://en.wikipedia.org/wiki/{title.replace(' ', '_')}",
                content=page.get("extract", ""),
                source_type=self.source_type,
            ))
        return results

    def _ping_sync(self) -> bool:
        data = self._get_json(self.api_url, {"action": "query", "meta": "siteinfo", "format": "json"}, "availability check")
        return data is not None


class NewsAPISource(ExternalSource):
    """NewsAPI article search (requires an API key)."""

    name = "NewsAPI"
    source_type = ExternalSourceType.NEWS
    API_URL = "https://newsapi.org/v2"

    def __init__(
        self,
        api_key: Optional[str],
        timeout: int = 10,
        api_url: Optional[str] = None,
        retry_after: float = 60.0
    ):
        super().__init__(timeout=timeout, retry_after=retry_after)
        self.api_key = api_key
        self.api_url = (api_url or self.API_URL).rstrip("/")
        if not api_key:
            self._is_available = False
            self._last_error = "No NewsAPI key configured"

    def _get_headers(self) -> dict:
        headers = super()._get_headers()
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        return headers

    def reset_availability(self) -> None:
        if self.api_key:
            super().reset_availability()

    def _search_sync(self, query: str, limit: int) -> list[ExternalSourceResult]:
        params = {
            "q": query,
            "pageSize": limit,
            "language": "en",
            "sortBy": "relevancy",
        }
        data = self._get_json(f"{self.api_url}/everything", params, "search")
        if not isinstance(data, dict) or data.get("status") != "ok":
            return []

        results = []
        for article in data.get("articles", [])[:limit]:
            try:
                published = article.get("publishedAt")
                results.append(ExternalSourceResult(
                    title=article.get("title") or "",
                    source=(article.get("source") or {}).get("name") or self.name,
                    url=article.get("url") or "",
                    content=article.get("content") or article.get("description") or "",
                    source_type=self.source_type,
                    timestamp=datetime.fromisoformat(published.replace("Z", "+00:00")) if published else datetime.now(),
                ))
            except Exception as e:
                logger.warning(f"Failed to parse news article: {e}")
                continue
        return results

    def _ping_sync(self) -> bool:
        if not self.api_key:
            return False
        data = self._get_json(f"{self.api_url}/top-headlines", {"country": "us", "pageSize": 1}, "availability check")
        return data is not None
