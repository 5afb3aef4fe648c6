"""Tests for ExternalSourceDecisionEngine."""

from agents.external_source_decision import ExternalSourceDecisionEngine
from agents.profile_analyzer import ProfileAnalyzer
from schemas.knowledge import Note


class TestExternalSourceDecisionEngine:
    """Test the external search gate."""

    def setup_method(self):
        """Set up test fixtures."""
        self.engine = ExternalSourceDecisionEngine(ProfileAnalyzer(), coverage_threshold=0.6)
        self.covering_note = Note(
            id="n1",
            title="Python decorators",
            content="Python decorators wrap functions; usage patterns include caching.",
        )
        self.thin_note = Note(id="n2", title="Python", content="Python is a language.")

    def test_no_notes_goes_external(self):
        assert self.engine.should_query_external_sources("python decorators usage", []) is True

    def test_profile_query_never_goes_external(self):
        assert self.engine.should_query_external_sources("Summarize my background", []) is False

    def test_explicit_profile_flag_overrides_lexical_check(self):
        assert self.engine.should_query_external_sources(
            "Tell me about my skills", [], is_profile_query=True
        ) is False

    def test_external_intent(self):
        assert self.engine.has_external_intent("Search the web for MCP servers") is True
        assert self.engine.has_external_intent("What is the latest release?") is True
        assert self.engine.has_external_intent("Summarize my notes on caching") is False

    def test_intent_goes_external_even_with_covering_notes(self):
        assert self.engine.should_query_external_sources(
            "Look up python decorators usage", [self.covering_note]
        ) is True

    def test_covering_notes_stay_internal(self):
        assert self.engine.should_query_external_sources(
            "python decorators usage", [self.covering_note]
        ) is False

    def test_thin_coverage_goes_external(self):
        assert self.engine.should_query_external_sources(
            "python decorators usage", [self.thin_note]
        ) is True

    def test_best_note_decides(self):
        assert self.engine.should_query_external_sources(
            "python decorators usage", [self.thin_note, self.covering_note]
        ) is False
