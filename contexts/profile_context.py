"""Profile context: the user's own profile."""

import logging
from typing import TYPE_CHECKING, Optional

from errors import MessageRoutingError
from messaging import (
    ContextId,
    DataRequestType,
    Message,
    MessageFactory,
    MessageHandler,
    NotificationType,
    RequestMessage,
)
from retrieval.embedding_service import EmbeddingService
from retrieval.text_utils import extract_keywords
from schemas.knowledge import Note, Profile
from .base import BaseContext

if TYPE_CHECKING:
    from .note_context import NoteContext

logger = logging.getLogger(__name__)


class ProfileContext(BaseContext):
    """Holds the single user profile and its embedding."""

    context_id = ContextId.PROFILE.value

    def __init__(
        self,
        profile: Optional[Profile] = None,
        embedding_service: Optional[EmbeddingService] = None,
        mediator=None
    ):
        super().__init__(mediator)
        self._profile = profile
        self.embedding_service = embedding_service
        self._note_context: Optional["NoteContext"] = None

    async def get_profile(self) -> Optional[Profile]:
        """Return the profile, or None when none has been loaded."""
        return self._profile.model_copy(deep=True) if self._profile else None

    async def update_profile(self, profile: Profile) -> Profile:
        """
        Replace the profile, refresh its embedding and announce the change.

        Embedding failures are logged; the profile is stored without one and
        relevance scoring falls back to its low default.
        """
        profile = profile.model_copy(deep=True)
        if self.embedding_service is not None and self.embedding_service.is_available():
            try:
                profile.embedding = await self.embedding_service.get_embedding(profile.embedding_text())
            except Exception as e:
                logger.warning(f"Could not embed profile for {profile.display_name}: {e}")

        self._profile = profile
        logger.info(f"Profile updated for {profile.display_name}")

        await self.publish(
            NotificationType.PROFILE_UPDATED,
            {"display_name": profile.display_name, "has_embedding": profile.embedding is not None},
        )
        return profile

    def set_note_context(self, note_context: "NoteContext"):
        """Delegate used by find_related_notes."""
        self._note_context = note_context

    def has_note_context(self) -> bool:
        return self._note_context is not None

    async def find_related_notes(self, limit: int = 5) -> list[Note]:
        """
        Notes related to the profile: by its tags, then its embedding, then
        keywords drawn from the profile text.

        Without a linked note context the search goes through the mediator
        as notes.search requests (tags, then keywords).
        """
        if self._profile is None:
            return []
        if self._note_context is None:
            return await self._request_related_notes(limit)

        profile = self._profile
        if profile.tags:
            try:
                tagged = await self._note_context.search_notes(tags=profile.tags, limit=limit, semantic=False)
                if tagged:
                    return tagged
            except Exception as e:
                logger.error(f"Error finding notes with profile tags: {e}")

        try:
            if profile.embedding:
                return await self._note_context.search_notes_with_embedding(profile.embedding, limit)

            keywords = extract_keywords(profile.embedding_text())
            return await self._note_context.search_notes(query=" ".join(keywords), limit=limit, semantic=False)
        except Exception as e:
            logger.error(f"Error finding notes related to profile: {e}")
            return []

    async def _request_related_notes(self, limit: int) -> list[Note]:
        if self.mediator is None:
            return []

        profile = self._profile
        searches = []
        if profile.tags:
            searches.append({"tags": profile.tags, "limit": limit, "semantic": False})
        keywords = extract_keywords(profile.embedding_text())
        if keywords:
            searches.append({"query": " ".join(keywords), "limit": limit, "semantic": False})

        for params in searches:
            try:
                payload = await self.request(ContextId.NOTES.value, DataRequestType.NOTES_SEARCH.value, params)
            except MessageRoutingError as e:
                logger.error(f"Notes search for profile failed ({e.code.value}): {e.message}")
                return []
            notes = [Note.model_validate(data) for data in payload.get("notes", [])]
            if notes:
                return notes
        return []

    def create_handler(self) -> MessageHandler:
        return ProfileMessageHandler(self)


class ProfileMessageHandler(MessageHandler):
    """Serves profile.data requests."""

    def __init__(self, context: ProfileContext):
        super().__init__(context.context_id)
        self.context = context

    async def handle_request(self, request: RequestMessage) -> Message:
        if request.data_type == DataRequestType.PROFILE_DATA.value:
            profile = await self.context.get_profile()
            payload = profile.model_dump(mode="json", exclude={"embedding"}) if profile else None
            return MessageFactory.create_success_response(request, {"profile": payload})
        return self.unsupported(request)
