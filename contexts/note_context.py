"""Note context: search and lifecycle of the user's notes."""

import logging
import uuid
from typing import Optional

from pydantic import ValidationError

from errors import ErrorCode, RetrievalDegradation
from messaging import (
    AcknowledgmentMessage,
    ContextId,
    DataRequestType,
    Message,
    MessageFactory,
    MessageHandler,
    NotificationMessage,
    NotificationType,
    RequestMessage,
)
from messaging.schema_registry import NoteByIdParams, NotesSearchParams
from retrieval.embedding_service import EmbeddingService
from retrieval.text_utils import extract_keywords
from schemas.knowledge import Note
from .base import BaseContext
from .note_repository import NoteRepository

logger = logging.getLogger(__name__)


def note_to_payload(note: Note) -> dict:
    """Wire form of a note (embeddings stay local)."""
    return note.model_dump(mode="json", exclude={"embedding"})


class NoteContext(BaseContext):
    """
    Search and manage notes.

    Semantic search needs an embedding service; without one, or when
    embedding fails, searches fall back to keyword matching.
    """

    context_id = ContextId.NOTES.value

    def __init__(
        self,
        repository: NoteRepository,
        embedding_service: Optional[EmbeddingService] = None,
        mediator=None
    ):
        super().__init__(mediator)
        self.repository = repository
        self.embedding_service = embedding_service

    def _can_embed(self) -> bool:
        return self.embedding_service is not None and self.embedding_service.is_available()

    # Reads

    async def get_note_by_id(self, note_id: str) -> Optional[Note]:
        """Return a note or None."""
        return await self.repository.get_note_by_id(note_id)

    async def get_recent_notes(self, limit: int = 5) -> list[Note]:
        """Most recently updated notes."""
        return await self.repository.get_recent_notes(limit)

    async def get_note_count(self) -> int:
        return await self.repository.count()

    async def search_notes(
        self,
        query: Optional[str] = None,
        tags: Optional[list[str]] = None,
        limit: int = 5,
        semantic: bool = True
    ) -> list[Note]:
        """
        Search notes by query text and/or tags.

        Args:
            query: Free-text query
            tags: Tags a result must carry (any of)
            limit: Maximum number of results
            semantic: Rank by embedding similarity when possible

        Returns:
            Matching notes, best first
        """
        if semantic and query and self._can_embed():
            try:
                return await self._semantic_search(query, tags, limit)
            except RetrievalDegradation as e:
                logger.warning(f"Semantic note search failed, falling back to keywords: {e.message}")

        return await self.repository.search_notes_by_keywords(query, tags, limit)

    async def _semantic_search(
        self,
        query: str,
        tags: Optional[list[str]],
        limit: int
    ) -> list[Note]:
        try:
            embedding = await self.embedding_service.get_embedding(query)
            # Over-fetch so tag filtering still leaves enough results
            candidates = await self.repository.search_notes_by_embedding(
                embedding, limit * 2 if tags else limit
            )
        except Exception as e:
            raise RetrievalDegradation(
                f"Semantic note search unavailable: {e}",
                {"query": query, "error": type(e).__name__},
            ) from e

        if tags:
            wanted = {tag.lower() for tag in tags}
            candidates = [
                (note, score) for note, score in candidates
                if wanted & {tag.lower() for tag in note.tags}
            ]

        logger.debug(f"Semantic search for '{query}' matched {len(candidates)} notes")
        return [note for note, _ in candidates[:limit]]

    async def search_notes_with_embedding(self, embedding: list[float], limit: int = 5) -> list[Note]:
        """Notes closest to an existing embedding."""
        scored = await self.repository.search_notes_by_embedding(embedding, limit)
        return [note for note, _ in scored]

    async def get_related_notes(self, note_id: str, limit: int = 5) -> list[Note]:
        """
        Notes related to a given note.

        Uses the note's embedding when it has one, otherwise its keywords,
        and finally the most recent notes.
        """
        source = await self.repository.get_note_by_id(note_id)
        if source is None:
            logger.warning(f"Source note not found for related notes: {note_id}")
            return []

        if source.embedding:
            scored = await self.repository.search_notes_by_embedding(source.embedding, limit + 1)
            related = [note for note, _ in scored if note.id != note_id]
            if related:
                return related[:limit]

        keywords = extract_keywords(source.content)
        if not keywords:
            logger.debug(f"No keywords extracted from note {note_id}, using recent notes")
            recent = await self.repository.get_recent_notes(limit + 1)
            return [note for note in recent if note.id != note_id][:limit]

        related: list[Note] = []
        seen = {note_id}
        for keyword in keywords:
            for note in await self.repository.search_notes_by_keywords(keyword, None, max(1, limit // 2 + 1)):
                if note.id not in seen:
                    seen.add(note.id)
                    related.append(note)
            if len(related) >= limit:
                break
        return related[:limit]

    # Writes

    async def add_note(
        self,
        title: str,
        content: str,
        tags: Optional[list[str]] = None,
        note_id: Optional[str] = None
    ) -> Note:
        """Create a note (embedding it when possible) and announce it."""
        note = Note(
            id=note_id or str(uuid.uuid4()),
            title=title or "Untitled Note",
            content=content,
            tags=tags or [],
        )
        note.embedding = await self._embed(note)
        await self.repository.insert_note(note)
        logger.info(f"Created note {note.id}: {note.title}")

        await self.publish(NotificationType.NOTE_CREATED, {"note_id": note.id, "title": note.title})
        return note

    async def update_note(
        self,
        note_id: str,
        title: Optional[str] = None,
        content: Optional[str] = None,
        tags: Optional[list[str]] = None
    ) -> Optional[Note]:
        """Apply changes to a note; returns None for unknown ids."""
        note = await self.repository.get_note_by_id(note_id)
        if note is None:
            logger.warning(f"Cannot update unknown note {note_id}")
            return None

        if title is not None:
            note.title = title
        if tags is not None:
            note.tags = tags
        if content is not None and content != note.content:
            note.content = content
            note.embedding = await self._embed(note)

        await self.repository.update_note(note)
        await self.publish(NotificationType.NOTE_UPDATED, {"note_id": note.id, "title": note.title})
        return note

    async def delete_note(self, note_id: str) -> bool:
        """Delete a note and announce it."""
        deleted = await self.repository.delete_note(note_id)
        if deleted:
            await self.publish(NotificationType.NOTE_DELETED, {"note_id": note_id})
        return deleted

    async def _embed(self, note: Note) -> Optional[list[float]]:
        if not self._can_embed():
            return None
        try:
            return await self.embedding_service.get_embedding(f"{note.title}\n\n{note.content}")
        except Exception as e:
            logger.warning(f"Could not embed note {note.id}: {e}")
            return None

    def create_handler(self) -> MessageHandler:
        return NoteMessageHandler(self)


class NoteMessageHandler(MessageHandler):
    """Serves notes.search and notes.byId requests."""

    def __init__(self, context: NoteContext):
        super().__init__(context.context_id)
        self.context = context

    async def handle_request(self, request: RequestMessage) -> Message:
        try:
            if request.data_type == DataRequestType.NOTES_SEARCH.value:
                params = NotesSearchParams.model_validate(request.payload)
                notes = await self.context.search_notes(
                    query=params.query,
                    tags=params.tags,
                    limit=params.limit,
                    semantic=params.semantic,
                )
                return MessageFactory.create_success_response(
                    request, {"notes": [note_to_payload(note) for note in notes]}
                )

            if request.data_type == DataRequestType.NOTE_BY_ID.value:
                params = NoteByIdParams.model_validate(request.payload)
                note = await self.context.get_note_by_id(params.id)
                return MessageFactory.create_success_response(
                    request, {"note": note_to_payload(note) if note else None}
                )
        except ValidationError as e:
            return MessageFactory.create_error_reply(
                request,
                ErrorCode.VALIDATION_ERROR,
                f"Invalid parameters for {request.data_type}",
                {"errors": e.errors(include_url=False)},
            )

        return self.unsupported(request)

    async def handle_notification(self, notification: NotificationMessage) -> Optional[AcknowledgmentMessage]:
        if notification.notification_type == NotificationType.PROFILE_UPDATED.value:
            logger.debug(f"Notes context saw profile update from {notification.source_context}")
        return MessageFactory.create_acknowledgment(notification, self.context_id)
