"""Tests for KnowledgeAssistant wiring."""

from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import pytest
import requests

from config.settings import Settings
from errors import ConfigurationError
from llm.base_client import LLMResponse
from orchestrator import KnowledgeAssistant

KNOWLEDGE_BASE = Path(__file__).parent.parent / "data" / "knowledge_base.yaml"


@pytest.fixture(autouse=True)
def no_api_keys(monkeypatch):
    for name in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "NEWSAPI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def make_llm(answer="Grounded answer."):
    llm = Mock()
    llm.complete = AsyncMock(return_value=LLMResponse(content=answer))
    llm.chat = AsyncMock(return_value=LLMResponse(content=answer))
    return llm


class TestKnowledgeAssistant:
    """Test assistant construction, seeding and asking."""

    @pytest.mark.asyncio
    async def test_ask_without_model_raises(self):
        assistant = KnowledgeAssistant(Settings())

        assert assistant.llm_client is None
        with pytest.raises(ConfigurationError):
            await assistant.ask("hello")

    @pytest.mark.asyncio
    async def test_ask_with_injected_model(self):
        llm = make_llm()
        assistant = KnowledgeAssistant(Settings(), llm_client=llm)

        result = await assistant.ask("hello")

        assert result.answer == "Grounded answer."
        llm.complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_load_knowledge_base(self):
        assistant = KnowledgeAssistant(Settings(knowledge_base_path=str(KNOWLEDGE_BASE)), llm_client=make_llm())

        await assistant.initialize()

        note_context = assistant.context_manager.get_note_context()
        assert await note_context.get_note_count() > 0
        assert (await note_context.get_note_by_id("note-mcp")).title == "Model Context Protocol overview"
        profile = await assistant.context_manager.get_profile_context().get_profile()
        assert profile.display_name == "Alex Morgan"

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self):
        assistant = KnowledgeAssistant(Settings(knowledge_base_path=str(KNOWLEDGE_BASE)), llm_client=make_llm())

        await assistant.initialize()
        count = await assistant.context_manager.get_note_context().get_note_count()
        await assistant.initialize()

        assert await assistant.context_manager.get_note_context().get_note_count() == count

    @pytest.mark.asyncio
    async def test_missing_knowledge_base(self, tmp_path):
        assistant = KnowledgeAssistant(Settings(), llm_client=make_llm())

        with pytest.raises(ConfigurationError):
            await assistant.load_knowledge_base(str(tmp_path / "missing.yaml"))

    @pytest.mark.asyncio
    async def test_invalid_knowledge_base(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("notes: [unclosed\n")
        assistant = KnowledgeAssistant(Settings(), llm_client=make_llm())

        with pytest.raises(ConfigurationError):
            await assistant.load_knowledge_base(str(path))

    @pytest.mark.asyncio
    async def test_sqlite_memory(self, tmp_path):
        db_path = tmp_path / "memory.db"
        assistant = KnowledgeAssistant(Settings(db_path=str(db_path)), llm_client=make_llm())

        await assistant.ask("remember this")

        assert db_path.exists()
        conversation = await assistant.context_manager.get_conversation_context().get_conversation()
        assert conversation.total_turns == 2

    @pytest.mark.asyncio
    @patch('requests.get')
    async def test_enabling_external_sources_restores_failed_source(self, mock_get):
        assistant = KnowledgeAssistant(Settings(external_retry_after=3600), llm_client=make_llm())
        wikipedia = assistant.context_manager.get_external_source_context().get_sources()[0]
        mock_get.side_effect = requests.exceptions.ConnectionError("offline")
        await wikipedia.search("anything")
        assert wikipedia.is_available() is False

        mock_get.side_effect = None
        mock_get.return_value = Mock(status_code=200, json=Mock(return_value={"query": {"general": {}}}))

        status = await assistant.set_external_sources_enabled(True)

        assert status == {"Wikipedia": True, "NewsAPI": False}
        assert wikipedia.is_available() is True
        assert assistant.context_manager.get_external_sources_enabled() is True

    @pytest.mark.asyncio
    async def test_disabling_external_sources_skips_availability_check(self):
        assistant = KnowledgeAssistant(Settings(external_sources_enabled=True), llm_client=make_llm())
        external = assistant.context_manager.get_external_source_context()
        external.check_sources_availability = AsyncMock()

        assert await assistant.set_external_sources_enabled(False) is None
        external.check_sources_availability.assert_not_awaited()
