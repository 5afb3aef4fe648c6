"""Note storage backends."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from rapidfuzz import fuzz

from retrieval.embedding_service import cosine_similarity
from retrieval.text_utils import query_terms
from schemas.knowledge import Note

logger = logging.getLogger(__name__)


class NoteRepository(ABC):
    """Storage contract for notes."""

    @abstractmethod
    async def get_note_by_id(self, note_id: str) -> Optional[Note]:
        pass

    @abstractmethod
    async def get_recent_notes(self, limit: int = 5) -> list[Note]:
        pass

    @abstractmethod
    async def insert_note(self, note: Note) -> Note:
        pass

    @abstractmethod
    async def update_note(self, note: Note) -> bool:
        pass

    @abstractmethod
    async def delete_note(self, note_id: str) -> bool:
        pass

    @abstractmethod
    async def search_notes_by_keywords(
        self,
        query: Optional[str] = None,
        tags: Optional[list[str]] = None,
        limit: int = 10
    ) -> list[Note]:
        pass

    @abstractmethod
    async def search_notes_by_embedding(
        self,
        embedding: list[float],
        limit: int = 10
    ) -> list[tuple[Note, float]]:
        pass

    @abstractmethod
    async def count(self) -> int:
        pass


class InMemoryNoteRepository(NoteRepository):
    """
    Dictionary-backed note repository.

    Keyword search scores title hits above content hits and matches tags
    fuzzily, so "#ai-architecture" still finds notes tagged "ai architecture".
    """

    TITLE_WEIGHT = 3.0
    CONTENT_WEIGHT = 1.0
    TAG_WEIGHT = 2.0
    TAG_MATCH_CUTOFF = 85  # rapidfuzz score, 0-100

    def __init__(self, notes: Optional[list[Note]] = None):
        self._notes: dict[str, Note] = {}
        for note in notes or []:
            self._notes[note.id] = note.model_copy(deep=True)

    async def get_note_by_id(self, note_id: str) -> Optional[Note]:
        note = self._notes.get(note_id)
        return note.model_copy(deep=True) if note else None

    async def get_recent_notes(self, limit: int = 5) -> list[Note]:
        notes = sorted(self._notes.values(), key=lambda n: n.updated_at, reverse=True)
        return [note.model_copy(deep=True) for note in notes[:limit]]

    async def insert_note(self, note: Note) -> Note:
        if note.id in self._notes:
            raise ValueError(f"Note {note.id} already exists")
        self._notes[note.id] = note.model_copy(deep=True)
        return note

    async def update_note(self, note: Note) -> bool:
        if note.id not in self._notes:
            return False
        note.updated_at = datetime.now()
        self._notes[note.id] = note.model_copy(deep=True)
        return True

    async def delete_note(self, note_id: str) -> bool:
        return self._notes.pop(note_id, None) is not None

    async def count(self) -> int:
        return len(self._notes)

    def _tag_score(self, note: Note, tags: list[str]) -> float:
        """Best fuzzy match between requested tags and the note's tags (0-1)."""
        best = 0.0
        for wanted in tags:
            for tag in note.tags:
                score = fuzz.ratio(wanted.lower(), tag.lower())
                if score >= self.TAG_MATCH_CUTOFF:
                    best = max(best, score / 100.0)
        return best

    def _keyword_score(self, note: Note, terms: set[str]) -> float:
        title = note.title.lower()
        content = note.content.lower()
        score = 0.0
        for term in terms:
            if term in title:
                score += self.TITLE_WEIGHT
            if term in content:
                score += self.CONTENT_WEIGHT
        return score

    async def search_notes_by_keywords(
        self,
        query: Optional[str] = None,
        tags: Optional[list[str]] = None,
        limit: int = 10
    ) -> list[Note]:
        """
        Rank notes by keyword and tag matches.

        With tags, only notes matching at least one tag qualify. With a query,
        only notes matching at least one query term qualify. With neither,
        the most recent notes are returned.
        """
        if not query and not tags:
            return await self.get_recent_notes(limit)

        terms = query_terms(query) if query else set()
        if query and not terms:
            # Short words only; match the query as a whole
            terms = {query.lower().strip()}

        scored = []
        for note in self._notes.values():
            score = 0.0
            if tags:
                tag_score = self._tag_score(note, tags)
                if tag_score == 0.0:
                    continue
                score += self.TAG_WEIGHT * tag_score
            if terms:
                keyword_score = self._keyword_score(note, terms)
                if keyword_score == 0.0:
                    continue
                score += keyword_score
            scored.append((note, score))

        scored.sort(key=lambda item: (item[1], item[0].updated_at), reverse=True)
        return [note.model_copy(deep=True) for note, _ in scored[:limit]]

    async def search_notes_by_embedding(
        self,
        embedding: list[float],
        limit: int = 10
    ) -> list[tuple[Note, float]]:
        """Notes with embeddings ranked by cosine similarity."""
        scored = [
            (note, cosine_similarity(embedding, note.embedding))
            for note in self._notes.values()
            if note.embedding
        ]
        scored.sort(key=lambda item: item[1], reverse=True)
        return [(note.model_copy(deep=True), score) for note, score in scored[:limit]]
