"""External source context: Wikipedia, news and other online references."""

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from errors import ErrorCode, RetrievalDegradation
from messaging import (
    ContextId,
    DataRequestType,
    Message,
    MessageFactory,
    MessageHandler,
    NotificationType,
    RequestMessage,
)
from messaging.schema_registry import ExternalSourcesSearchParams
from retrieval.embedding_service import EmbeddingService, cosine_similarity
from retrieval.external_sources import ExternalSource
from schemas.knowledge import ExternalSourceResult
from .base import BaseContext

logger = logging.getLogger(__name__)


class ExternalSourceContext(BaseContext):
    """Fans searches out to every registered source and merges the results."""

    context_id = ContextId.EXTERNAL_SOURCES.value

    def __init__(
        self,
        sources: Optional[list[ExternalSource]] = None,
        embedding_service: Optional[EmbeddingService] = None,
        mediator=None,
        max_results: int = 3
    ):
        super().__init__(mediator)
        self.sources: list[ExternalSource] = list(sources or [])
        self.embedding_service = embedding_service
        self.max_results = max_results
        self._availability: dict[str, bool] = {s.name: s.is_available() for s in self.sources}

    def register_source(self, source: ExternalSource):
        """Add a source; a source with the same name is replaced."""
        self.sources = [s for s in self.sources if s.name != source.name]
        self.sources.append(source)
        self._availability[source.name] = source.is_available()
        logger.info(f"Registered external source {source.name}")

    def get_sources(self) -> list[ExternalSource]:
        return list(self.sources)

    def get_enabled_sources(self) -> list[ExternalSource]:
        return [source for source in self.sources if source.is_available()]

    async def search(self, query: str, limit: Optional[int] = None) -> list[ExternalSourceResult]:
        """
        Query all available sources concurrently.

        Results are interleaved so each source contributes before any
        source contributes twice. A failing source contributes nothing;
        when every queried source fails, RetrievalDegradation is raised.
        """
        limit = limit or self.max_results
        sources = self.get_enabled_sources()
        if not sources:
            logger.warning("No external sources available")
            return []

        outcomes = await asyncio.gather(
            *(source.search(query, limit) for source in sources),
            return_exceptions=True,
        )

        per_source: list[list[ExternalSourceResult]] = []
        failures: dict[str, str] = {}
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"External source {source.name} failed: {outcome}")
                failures[source.name] = str(outcome)
                continue
            if source.get_last_error() is not None:
                failures[source.name] = source.get_last_error()
            per_source.append(outcome)

        await self._refresh_status()

        if len(failures) == len(sources):
            raise RetrievalDegradation(
                f"All {len(sources)} external sources failed",
                {"failures": failures},
            )

        merged: list[ExternalSourceResult] = []
        for rank in range(max((len(results) for results in per_source), default=0)):
            for results in per_source:
                if rank < len(results):
                    merged.append(results[rank])
        return merged[:limit]

    async def semantic_search(self, query: str, limit: Optional[int] = None) -> list[ExternalSourceResult]:
        """Search, then rerank results by embedding similarity to the query."""
        limit = limit or self.max_results
        results = await self.search(query, limit * 2)
        if not results or self.embedding_service is None or not self.embedding_service.is_available():
            return results[:limit]

        try:
            query_embedding = await self.embedding_service.get_embedding(query)
            embeddings = await self.embedding_service.get_embeddings(
                [f"{result.title}\n{result.content}" for result in results]
            )
        except Exception as e:
            logger.warning(f"External result reranking failed, using source order: {e}")
            return results[:limit]

        for result, embedding in zip(results, embeddings):
            result.embedding = embedding
        results.sort(key=lambda r: cosine_similarity(query_embedding, r.embedding), reverse=True)
        return results[:limit]

    async def check_sources_availability(self) -> dict[str, bool]:
        """Check every source and publish any availability change."""
        checks = await asyncio.gather(
            *(source.check_availability() for source in self.sources),
            return_exceptions=True,
        )
        status = {}
        for source, available in zip(self.sources, checks):
            if isinstance(available, Exception):
                logger.warning(f"Availability check failed for {source.name}: {available}")
                available = False
            status[source.name] = bool(available)

        await self._publish_if_changed(status)
        return status

    async def _refresh_status(self):
        await self._publish_if_changed({source.name: source.is_available() for source in self.sources})

    async def _publish_if_changed(self, status: dict[str, bool]):
        if status == self._availability:
            return
        changed = {name: up for name, up in status.items() if self._availability.get(name) != up}
        self._availability = dict(status)
        logger.info(f"External source availability changed: {changed}")
        await self.publish(NotificationType.EXTERNAL_SOURCES_STATUS, {"sources": status, "changed": changed})

    def create_handler(self) -> MessageHandler:
        return ExternalSourceMessageHandler(self)


class ExternalSourceMessageHandler(MessageHandler):
    """Serves externalSources.search requests."""

    def __init__(self, context: ExternalSourceContext):
        super().__init__(context.context_id)
        self.context = context

    async def handle_request(self, request: RequestMessage) -> Message:
        if request.data_type != DataRequestType.EXTERNAL_SOURCES_SEARCH.value:
            return self.unsupported(request)

        try:
            params = ExternalSourcesSearchParams.model_validate(request.payload)
        except ValidationError as e:
            return MessageFactory.create_error_reply(
                request,
                ErrorCode.VALIDATION_ERROR,
                f"Invalid parameters for {request.data_type}",
                {"errors": e.errors(include_url=False)},
            )

        try:
            if params.semantic:
                results = await self.context.semantic_search(params.query, params.limit)
            else:
                results = await self.context.search(params.query, params.limit)
        except RetrievalDegradation as e:
            return MessageFactory.create_error_reply(request, e.code, e.message, e.details)
        return MessageFactory.create_success_response(
            request,
            {"results": [r.model_dump(mode="json", exclude={"embedding"}) for r in results]},
        )
