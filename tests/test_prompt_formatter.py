"""Tests for prompt assembly and system prompt selection."""

from datetime import datetime

from pipeline import PromptFormatter, SystemPromptGenerator
from schemas.knowledge import (
    ExternalSourceResult,
    ExternalSourceType,
    Note,
    Profile,
    ProfileEducation,
    ProfileExperience,
    ProfileLanguage,
    ProfileLocation,
    ProfileProject,
)


def make_profile():
    return Profile(
        display_name="Alex Morgan",
        headline="Platform architect | Speaker",
        summary="Builds developer platforms.",
        location=ProfileLocation(city="Lisbon", country="Portugal"),
        experiences=[
            ProfileExperience(title="Principal Engineer", organization="Acme", description="Leads platform.\nMore."),
            ProfileExperience(
                title="Engineer",
                organization="Initech",
                start_date=datetime(2015, 1, 1),
                end_date=datetime(2020, 6, 30),
            ),
        ],
        education=[ProfileEducation(institution="University of Porto", degree="MSc")],
        projects=[ProfileProject(title="Knowledge assistant", description="Personal notes with an LLM.")],
        skills=["Python", "MCP"],
        languages=[ProfileLanguage(name="English", proficiency="fluent")],
    )


class TestPromptFormatter:
    """Test user prompt assembly."""

    def setup_method(self):
        """Set up test fixtures."""
        self.formatter = PromptFormatter()
        self.notes = [
            Note(id="n1", title="MCP overview", content="MCP connects tools.\n\nSecond paragraph.", tags=["mcp"]),
            Note(id="n2", title="Untagged", content="Plain note."),
        ]
        self.external = [
            ExternalSourceResult(
                title="Model Context Protocol",
                source="Wikipedia",
                url="https://en.wikipedia.org/wiki/Model_Context_Protocol",
                content="An open protocol.",
                source_type=ExternalSourceType.WIKIPEDIA,
            )
        ]

    def test_notes_only(self):
        prompt, citations = self.formatter.format_prompt_with_context("What is MCP?", self.notes)

        assert prompt.startswith("I have the following information in my personal knowledge base:\n")
        assert "INTERNAL CONTEXT [1]:\nTitle: MCP overview\nTags: mcp\nMCP connects tools." in prompt
        assert "INTERNAL CONTEXT [2]:\nTitle: Untagged\nPlain note." in prompt
        assert prompt.endswith("Based on this information, please answer my question:\nWhat is MCP?")
        assert [c.note_id for c in citations] == ["n1", "n2"]
        assert citations[0].excerpt == "MCP connects tools."

    def test_no_context(self):
        prompt, citations = self.formatter.format_prompt_with_context("Anything?", [])

        assert prompt.startswith("I have limited information in my personal knowledge base:")
        assert citations == []

    def test_history_comes_first(self):
        prompt, _ = self.formatter.format_prompt_with_context(
            "And then?", self.notes, conversation_history="Sam: hi\nAssistant: hello"
        )

        assert prompt.index("Recent Conversation History:") < prompt.index("INTERNAL CONTEXT [1]")
        assert "Sam: hi\nAssistant: hello" in prompt

    def test_blank_history_omitted(self):
        prompt, _ = self.formatter.format_prompt_with_context("q", self.notes, conversation_history="   ")

        assert "Recent Conversation History" not in prompt

    def test_external_sources_section(self):
        prompt, citations = self.formatter.format_prompt_with_context("What is MCP?", self.notes, self.external)

        assert prompt.startswith(
            "I have the following information from my personal knowledge base and external sources:"
        )
        assert "--- EXTERNAL INFORMATION ---" in prompt
        assert "EXTERNAL SOURCE [1]:\nTitle: Model Context Protocol\nSource: Wikipedia\nAn open protocol." in prompt
        assert len(citations) == 2

    def test_profile_requires_profile_object(self):
        prompt, _ = self.formatter.format_prompt_with_context("Who am I?", [], include_profile=True, profile=None)

        assert "PROFILE INFORMATION" not in prompt

    def test_profile_with_everything(self):
        prompt, _ = self.formatter.format_prompt_with_context(
            "Who am I?", self.notes, self.external, include_profile=True, profile=make_profile()
        )

        assert prompt.startswith(
            "I have the following information from my personal knowledge base, my profile, and external sources:"
        )
        assert prompt.index("PROFILE INFORMATION:") < prompt.index("INTERNAL CONTEXT [1]")

    def test_profile_block_high_relevance(self):
        block = self.formatter.format_profile_context(make_profile(), relevance=0.9)

        assert "Display Name: Alex Morgan" in block
        assert "Location: Lisbon, Portugal" in block
        assert "- Principal Engineer at Acme: Leads platform." in block
        assert "Past Experience:\n- Engineer at Initech (2015 - 2020)" in block
        assert "- MSc at University of Porto" in block
        assert "- Knowledge assistant: Personal notes with an LLM." in block
        assert "Skills:\nPython, MCP" in block
        assert "- English (fluent)" in block
        assert "- Primary Expertise: Platform architect" in block
        assert "- Number of Past Roles: 2" in block

    def test_profile_block_low_relevance_hides_details(self):
        block = self.formatter.format_profile_context(make_profile(), relevance=0.3)

        assert "Current Work:" in block
        assert "Past Experience:" not in block
        assert "Education:" not in block
        assert "Projects:" not in block

    def test_minimal_profile(self):
        block = self.formatter.format_profile_context(Profile(display_name="Sam"))

        assert "- Primary Expertise: Not specified" in block
        assert "- Current Location: Not specified" in block


class TestSystemPromptGenerator:
    """Test system prompt precedence."""

    def setup_method(self):
        """Set up test fixtures."""
        self.generator = SystemPromptGenerator(profile_response_threshold=0.7)

    def test_profile_with_external(self):
        assert self.generator.get_system_prompt(True, 0.9, True) == SystemPromptGenerator.PROFILE_WITH_EXTERNAL_PROMPT

    def test_external_with_low_relevance(self):
        assert self.generator.get_system_prompt(False, 0.3, True) == SystemPromptGenerator.EXTERNAL_ONLY_PROMPT

    def test_profile_only(self):
        assert self.generator.get_system_prompt(True, 0.2, False) == SystemPromptGenerator.PROFILE_ONLY_PROMPT

    def test_high_relevance(self):
        assert self.generator.get_system_prompt(False, 0.65, False) == SystemPromptGenerator.HIGH_RELEVANCE_PROMPT

    def test_high_relevance_with_external_above_threshold(self):
        assert self.generator.get_system_prompt(False, 0.8, True) == SystemPromptGenerator.HIGH_RELEVANCE_PROMPT

    def test_medium_relevance(self):
        assert self.generator.get_system_prompt(False, 0.5, False) == SystemPromptGenerator.MEDIUM_RELEVANCE_PROMPT

    def test_notes_only(self):
        assert self.generator.get_system_prompt() == SystemPromptGenerator.NOTES_ONLY_PROMPT
