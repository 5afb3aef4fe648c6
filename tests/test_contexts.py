"""Tests for the profile, external-source and conversation contexts."""

from unittest.mock import AsyncMock, Mock

import pytest

from contexts import (
    ConversationContext,
    ExternalSourceContext,
    InMemoryNoteRepository,
    NoteContext,
    ProfileContext,
)
from errors import ErrorCode, MessageRoutingError, RetrievalDegradation
from memory import ConversationMemoryStore, InMemoryConversationStorage, InterfaceType
from messaging import AcknowledgmentMessage, CallbackHandler, ContextMediator, ErrorMessage, MessageFactory
from retrieval.external_sources import ExternalSource
from schemas.knowledge import ExternalSourceResult, ExternalSourceType, Profile


class NotificationRecorder:
    """Mediator listener that remembers every notification it sees."""

    def __init__(self, mediator, context_id="listener"):
        self.received = []
        self.context_id = context_id
        mediator.register_handler(context_id, CallbackHandler(context_id, on_notification=self._record))

    async def _record(self, notification):
        self.received.append((notification.notification_type, notification.payload))
        return MessageFactory.create_acknowledgment(notification, self.context_id)

    def types(self):
        return [notification_type for notification_type, _ in self.received]


class StaticSource(ExternalSource):
    """External source returning canned titles."""

    source_type = ExternalSourceType.WIKIPEDIA

    def __init__(self, name, titles, fail=False, retry_after=60.0):
        super().__init__(timeout=1, retry_after=retry_after)
        self.name = name
        self.titles = titles
        self.fail = fail

    def _search_sync(self, query, limit):
        if self.fail:
            self._handle_error(Exception("service down"), "search")
            return []
        self._mark_success()
        return [
            ExternalSourceResult(title=title, source=self.name, content=f"{title} about {query}", source_type=self.source_type)
            for title in self.titles[:limit]
        ]

    def _ping_sync(self):
        return not self.fail


class ExplodingSource(StaticSource):
    async def search(self, query, limit=3):
        raise RuntimeError("unexpected crash")


def make_profile(**overrides):
    data = {
        "display_name": "Alex Morgan",
        "headline": "Platform architect",
        "skills": ["Python", "MCP"],
        "tags": ["mcp"],
    }
    data.update(overrides)
    return Profile(**data)


class TestProfileContext:
    """Test profile storage and related notes."""

    def setup_method(self):
        """Set up test fixtures."""
        self.mediator = ContextMediator(timeout=1.0)
        self.recorder = NotificationRecorder(self.mediator)
        self.embedding_service = Mock()
        self.embedding_service.is_available.return_value = True
        self.embedding_service.get_embedding = AsyncMock(return_value=[0.5, 0.5])
        self.context = ProfileContext(None, self.embedding_service, self.mediator)

    @pytest.mark.asyncio
    async def test_no_profile(self):
        assert await self.context.get_profile() is None
        assert await self.context.find_related_notes() == []

    @pytest.mark.asyncio
    async def test_update_profile_embeds_and_publishes(self):
        profile = await self.context.update_profile(make_profile())

        assert profile.embedding == [0.5, 0.5]
        assert (await self.context.get_profile()).display_name == "Alex Morgan"
        assert self.recorder.received == [
            ("profile.updated", {"display_name": "Alex Morgan", "has_embedding": True})
        ]

    @pytest.mark.asyncio
    async def test_embedding_failure_still_stores_profile(self):
        self.embedding_service.get_embedding = AsyncMock(side_effect=RuntimeError("quota"))

        profile = await self.context.update_profile(make_profile())

        assert profile.embedding is None
        assert self.recorder.received[0][1]["has_embedding"] is False

    @pytest.mark.asyncio
    async def test_get_profile_returns_copy(self):
        await self.context.update_profile(make_profile())
        copy = await self.context.get_profile()
        copy.skills.append("Cobol")

        assert "Cobol" not in (await self.context.get_profile()).skills

    @pytest.mark.asyncio
    async def test_related_notes_by_profile_tags(self):
        notes = NoteContext(InMemoryNoteRepository())
        await notes.add_note("MCP overview", "Protocol notes.", ["mcp"], "note-mcp")
        await notes.add_note("Gardening", "Tomatoes.", ["garden"], "note-garden")
        self.context.set_note_context(notes)
        await self.context.update_profile(make_profile())

        related = await self.context.find_related_notes()

        assert self.context.has_note_context() is True
        assert [note.id for note in related] == ["note-mcp"]

    @pytest.mark.asyncio
    async def test_related_notes_requested_through_mediator(self):
        notes = NoteContext(InMemoryNoteRepository(), None, self.mediator)
        self.mediator.register_handler(notes.context_id, notes.create_handler())
        await notes.add_note("MCP overview", "Protocol notes.", ["mcp"], "note-mcp")
        await notes.add_note("Gardening", "Tomatoes.", ["garden"], "note-garden")
        await self.context.update_profile(make_profile())

        related = await self.context.find_related_notes()

        assert self.context.has_note_context() is False
        assert [note.id for note in related] == ["note-mcp"]
        assert related[0].tags == ["mcp"]

    @pytest.mark.asyncio
    async def test_related_notes_empty_when_notes_unreachable(self):
        await self.context.update_profile(make_profile())

        assert await self.context.find_related_notes() == []

    @pytest.mark.asyncio
    async def test_request_error_reply_raises(self):
        with pytest.raises(MessageRoutingError) as exc_info:
            await self.context.request("notes", "notes.search", {"query": "mcp"})

        assert exc_info.value.code == ErrorCode.NO_HANDLER
        assert exc_info.value.details["target_context"] == "notes"

    @pytest.mark.asyncio
    async def test_request_without_mediator_raises(self):
        with pytest.raises(MessageRoutingError) as exc_info:
            await ProfileContext().request("notes", "notes.search")

        assert exc_info.value.code == ErrorCode.NO_HANDLER

    @pytest.mark.asyncio
    async def test_profile_data_request(self):
        self.mediator.register_handler(self.context.context_id, self.context.create_handler())
        await self.context.update_profile(make_profile())

        response = await self.mediator.send_request(
            MessageFactory.create_data_request("notes", "profile", "profile.data")
        )

        assert isinstance(response, AcknowledgmentMessage)
        assert response.payload["profile"]["display_name"] == "Alex Morgan"
        assert "embedding" not in response.payload["profile"]


class TestExternalSourceContext:
    """Test fan-out search and availability tracking."""

    def setup_method(self):
        """Set up test fixtures."""
        self.mediator = ContextMediator(timeout=1.0)
        self.recorder = NotificationRecorder(self.mediator)
        self.wiki = StaticSource("Wikipedia", ["w1", "w2"])
        self.news = StaticSource("News", ["n1", "n2"])
        self.context = ExternalSourceContext([self.wiki, self.news], None, self.mediator, max_results=3)

    @pytest.mark.asyncio
    async def test_results_interleave_sources(self):
        results = await self.context.search("mcp", limit=4)

        assert [r.title for r in results] == ["w1", "n1", "w2", "n2"]
        assert self.recorder.received == []

    @pytest.mark.asyncio
    async def test_default_limit(self):
        assert len(await self.context.search("mcp")) == 3

    @pytest.mark.asyncio
    async def test_failing_source_is_skipped_and_reported(self):
        self.context.register_source(StaticSource("News", [], fail=True))

        results = await self.context.search("mcp", limit=4)

        assert [r.title for r in results] == ["w1", "w2"]
        assert [s.name for s in self.context.get_enabled_sources()] == ["Wikipedia"]
        assert self.recorder.types() == ["externalSources.statusChanged"]
        assert self.recorder.received[0][1]["changed"] == {"News": False}

    @pytest.mark.asyncio
    async def test_exception_from_source_is_contained(self):
        self.context.register_source(ExplodingSource("News", []))

        results = await self.context.search("mcp", limit=4)

        assert [r.title for r in results] == ["w1", "w2"]

    @pytest.mark.asyncio
    async def test_all_sources_failing_raises_degradation(self):
        self.wiki.fail = True
        self.news.fail = True

        with pytest.raises(RetrievalDegradation) as exc_info:
            await self.context.search("mcp")

        assert exc_info.value.code == ErrorCode.RETRIEVAL_DEGRADED
        assert exc_info.value.details["failures"] == {"Wikipedia": "service down", "News": "service down"}
        assert self.context.get_enabled_sources() == []

    @pytest.mark.asyncio
    async def test_degraded_search_replies_with_error(self):
        self.mediator.register_handler(self.context.context_id, self.context.create_handler())
        self.wiki.fail = True
        self.news.fail = True

        response = await self.mediator.send_request(
            MessageFactory.create_data_request("notes", "externalSources", "externalSources.search", {"query": "mcp"})
        )

        assert isinstance(response, ErrorMessage)
        assert response.code == ErrorCode.RETRIEVAL_DEGRADED

    @pytest.mark.asyncio
    async def test_failed_source_rejoins_after_cooldown(self):
        news = StaticSource("News", ["n1"], fail=True, retry_after=0)
        self.context.register_source(news)
        await self.context.search("mcp", limit=4)

        news.fail = False
        results = await self.context.search("mcp", limit=4)

        assert [r.title for r in results] == ["w1", "n1", "w2"]
        assert [s.name for s in self.context.get_enabled_sources()] == ["Wikipedia", "News"]

    @pytest.mark.asyncio
    async def test_no_sources(self):
        context = ExternalSourceContext([])

        assert await context.search("mcp") == []

    @pytest.mark.asyncio
    async def test_semantic_search_reranks(self):
        embedding_service = Mock()
        embedding_service.is_available.return_value = True
        embedding_service.get_embedding = AsyncMock(return_value=[0.0, 1.0])
        embedding_service.get_embeddings = AsyncMock(return_value=[[1.0, 0.0], [0.0, 1.0], [1.0, 0.0], [0.6, 0.8]])
        self.context.embedding_service = embedding_service

        results = await self.context.semantic_search("mcp", limit=2)

        assert [r.title for r in results] == ["n1", "n2"]

    @pytest.mark.asyncio
    async def test_semantic_search_falls_back_to_source_order(self):
        embedding_service = Mock()
        embedding_service.is_available.return_value = True
        embedding_service.get_embedding = AsyncMock(side_effect=RuntimeError("down"))
        self.context.embedding_service = embedding_service

        results = await self.context.semantic_search("mcp", limit=2)

        assert [r.title for r in results] == ["w1", "n1"]

    @pytest.mark.asyncio
    async def test_check_availability(self):
        self.news.fail = True

        status = await self.context.check_sources_availability()

        assert status == {"Wikipedia": True, "News": False}
        assert self.recorder.received[0][1]["changed"] == {"News": False}

    @pytest.mark.asyncio
    async def test_search_request_through_mediator(self):
        self.mediator.register_handler(self.context.context_id, self.context.create_handler())

        response = await self.mediator.send_request(
            MessageFactory.create_data_request("notes", "externalSources", "externalSources.search", {"query": "mcp", "limit": 2})
        )
        invalid = await self.mediator.send_request(
            MessageFactory.create_data_request("notes", "externalSources", "externalSources.search", {"query": ""})
        )

        assert [r["title"] for r in response.payload["results"]] == ["w1", "n1"]
        assert isinstance(invalid, ErrorMessage)
        assert invalid.code == ErrorCode.VALIDATION_ERROR


class TestConversationContext:
    """Test current-room tracking and turn persistence."""

    def setup_method(self):
        """Set up test fixtures."""
        self.mediator = ContextMediator(timeout=1.0)
        self.recorder = NotificationRecorder(self.mediator)
        self.memory = ConversationMemoryStore(InMemoryConversationStorage(), anchor_id="u-host")
        self.context = ConversationContext(self.memory, self.mediator)
        self.mediator.register_handler(self.context.context_id, self.context.create_handler())

    @pytest.mark.asyncio
    async def test_set_current_room_announces_new_conversations_once(self):
        first = await self.context.set_current_room("room-1")
        second = await self.context.set_current_room("room-1")

        assert first == second
        assert self.context.current_room_id == "room-1"
        assert self.recorder.types() == ["conversation.started"]
        assert self.recorder.received[0][1]["interface_type"] == "cli"

    @pytest.mark.asyncio
    async def test_rooms_are_separate_per_interface(self):
        cli = await self.context.set_current_room("room-1")
        chat = await self.context.set_current_room("room-1", InterfaceType.CHAT_ROOM)

        assert cli != chat

    @pytest.mark.asyncio
    async def test_save_turn_starts_default_conversation(self):
        assert self.context.has_active_conversation() is False

        conversation = await self.context.save_turn("hello", user_id="u1", user_name="Sam")

        assert self.context.current_room_id == ConversationContext.DEFAULT_ROOM_ID
        assert conversation.total_turns == 1
        assert self.recorder.types() == ["conversation.started", "conversation.turnAdded"]
        assert self.recorder.received[1][1]["turn_count"] == 1

    @pytest.mark.asyncio
    async def test_history_of_current_conversation(self):
        await self.context.set_current_room("room-1")
        await self.context.save_turn("what is mcp?", user_id="u-host", user_name="Sam")
        await self.context.save_turn("what is mcp?", "A protocol.", user_id="assistant", user_name="Assistant")

        history = await self.context.get_conversation_history()

        assert history == "Host (Sam): what is mcp?\n\nAssistant: A protocol."

    @pytest.mark.asyncio
    async def test_history_without_conversation(self):
        assert await self.context.get_conversation_history() == ""
        assert await self.context.get_conversation() is None

    @pytest.mark.asyncio
    async def test_switch_and_end_conversation(self):
        first = await self.context.set_current_room("room-1")
        await self.context.set_current_room("room-2")

        assert await self.context.switch_conversation(first) is True
        assert self.context.current_room_id == "room-1"
        assert await self.context.switch_conversation("conv_missing") is False

        await self.context.end_current_conversation()
        assert self.context.has_active_conversation() is False
        assert self.recorder.types()[-1] == "conversation.cleared"

    def test_anchor_helpers(self):
        assert self.context.is_anchor("u-host") is True
        assert self.context.is_anchor("u1") is False
        assert self.context.get_anchor_name() == "Host"

    @pytest.mark.asyncio
    async def test_recent_conversations_filtered_by_interface(self):
        await self.context.set_current_room("room-1")
        await self.context.set_current_room("room-2", InterfaceType.CHAT_ROOM)

        recent = await self.context.get_recent_conversations()

        assert [c.room_id for c in recent] == ["room-1"]

    @pytest.mark.asyncio
    async def test_history_request(self):
        await self.context.save_turn("hello", user_id="u1", user_name="Sam")

        response = await self.mediator.send_request(
            MessageFactory.create_data_request("notes", "conversations", "conversation.history")
        )

        assert isinstance(response, AcknowledgmentMessage)
        assert response.payload["history"] == "Sam: hello"
        assert response.payload["turn_count"] == 1

    @pytest.mark.asyncio
    async def test_history_request_without_conversation(self):
        response = await self.mediator.send_request(
            MessageFactory.create_data_request("notes", "conversations", "conversation.history")
        )
        unknown = await self.mediator.send_request(
            MessageFactory.create_data_request(
                "notes", "conversations", "conversation.history", {"conversation_id": "conv_missing"}
            )
        )

        assert response.code == ErrorCode.CONVERSATION_NOT_FOUND
        assert unknown.code == ErrorCode.CONVERSATION_NOT_FOUND
