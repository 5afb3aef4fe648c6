"""User prompt assembly with numbered context blocks."""

from typing import Optional

from retrieval.text_utils import get_excerpt
from schemas.knowledge import ExternalSourceResult, Note, Profile
from schemas.query import Citation


class PromptFormatter:
    """Builds the user prompt and the note citations that go with it."""

    DETAIL_RELEVANCE = 0.5  # profile relevance above which past roles, education and projects are shown
    EXCERPT_LENGTH = 150

    def format_prompt_with_context(
        self,
        query: str,
        notes: list[Note],
        external_sources: Optional[list[ExternalSourceResult]] = None,
        include_profile: bool = False,
        profile_relevance: float = 1.0,
        profile: Optional[Profile] = None,
        conversation_history: Optional[str] = None
    ) -> tuple[str, list[Citation]]:
        """
        Format the prompt.

        Args:
            query: User query
            notes: Notes to include as numbered internal context
            external_sources: External results to include
            include_profile: Whether to add the profile block
            profile_relevance: Controls how much profile detail is shown
            profile: User profile
            conversation_history: Formatted history from conversation memory

        Returns:
            (prompt, citations)
        """
        external_sources = external_sources or []
        include_profile = include_profile and profile is not None
        citations: list[Citation] = []
        context_text = ""

        if conversation_history and conversation_history.strip():
            context_text += "\n\nRecent Conversation History:\n"
            context_text += conversation_history

        if include_profile:
            context_text += self.format_profile_context(profile, profile_relevance)

        for index, note in enumerate(notes, start=1):
            citations.append(Citation(
                note_id=note.id,
                note_title=note.title,
                excerpt=get_excerpt(note.content, self.EXCERPT_LENGTH),
            ))
            tag_info = f"Tags: {', '.join(note.tags)}\n" if note.tags else ""
            context_text += f"\n\nINTERNAL CONTEXT [{index}]:\nTitle: {note.title}\n{tag_info}{note.content}\n"

        if external_sources:
            context_text += "\n\n--- EXTERNAL INFORMATION ---\n"
            for index, source in enumerate(external_sources, start=1):
                context_text += (
                    f"\nEXTERNAL SOURCE [{index}]:\nTitle: {source.title}\n"
                    f"Source: {source.source}\n{source.content}\n"
                )

        prefix = self._prompt_prefix(include_profile, bool(notes), bool(external_sources))
        prompt = f"{prefix}\n{context_text}\n\nBased on this information, please answer my question:\n{query}"
        return prompt, citations

    @staticmethod
    def _prompt_prefix(has_profile: bool, has_notes: bool, has_external: bool) -> str:
        if has_profile and has_notes and has_external:
            return "I have the following information from my personal knowledge base, my profile, and external sources:"
        if has_profile and has_notes:
            return "I have the following information in my personal knowledge base, including my profile and relevant notes:"
        if has_profile and has_external:
            return "I have the following information from my profile and external sources:"
        if has_notes and has_external:
            return "I have the following information from my personal knowledge base and external sources:"
        if has_profile:
            return "I have the following information about my profile in my personal knowledge base:"
        if has_notes:
            return "I have the following information in my personal knowledge base:"
        if has_external:
            return "I have the following information from external sources:"
        return "I have limited information in my personal knowledge base:"

    def format_profile_context(self, profile: Profile, relevance: float = 1.0) -> str:
        """Profile block; past roles, education and projects only when relevance is high."""
        lines = ["", "", "PROFILE INFORMATION:", f"Display Name: {profile.display_name}"]
        if profile.headline:
            lines.append(f"Headline: {profile.headline}")
        if profile.location:
            place = ", ".join(
                part for part in (profile.location.city, profile.location.state, profile.location.country) if part
            )
            if place:
                lines.append(f"Location: {place}")
        if profile.summary:
            lines += ["", "Summary:", profile.summary]

        current = [exp for exp in profile.experiences if exp.end_date is None]
        if current:
            lines += ["", "Current Work:"]
            for exp in current:
                entry = f"- {exp.title} at {exp.organization}"
                if exp.description:
                    entry += f": {exp.description.splitlines()[0]}"
                lines.append(entry)

        if relevance > self.DETAIL_RELEVANCE:
            past = [exp for exp in profile.experiences if exp.end_date is not None][:5]
            if past:
                lines += ["", "Past Experience:"]
                for exp in past:
                    entry = f"- {exp.title} at {exp.organization}"
                    if exp.start_date and exp.end_date:
                        entry += f" ({exp.start_date.year} - {exp.end_date.year})"
                    if exp.description:
                        entry += f": {self._shorten(exp.description)}"
                    lines.append(entry)

            if profile.education:
                lines += ["", "Education:"]
                for edu in profile.education:
                    entry = f"- {edu.degree or 'Degree'} at {edu.institution}"
                    if edu.start_date and edu.end_date:
                        entry += f" ({edu.start_date.year} - {edu.end_date.year})"
                    lines.append(entry)

            if profile.projects:
                lines += ["", "Projects:"]
                for project in profile.projects[:3]:
                    entry = f"- {project.title}"
                    if project.description:
                        entry += f": {self._shorten(project.description)}"
                    lines.append(entry)

        if profile.skills:
            lines += ["", "Skills:", ", ".join(profile.skills)]

        if profile.languages:
            lines += ["", "Languages:"]
            lines += [f"- {lang.name} ({lang.proficiency})" for lang in profile.languages]

        headline = profile.headline.split("|")[0].strip() if profile.headline else "Not specified"
        lines += [
            "",
            "Profile Structure:",
            f"- Display Name: {profile.display_name}",
            f"- Primary Expertise: {headline}",
            f"- Current Location: {(profile.location.city if profile.location else None) or 'Not specified'}",
            f"- Number of Past Roles: {len(profile.experiences)}",
            f"- Number of Projects: {len(profile.projects)}",
            f"- Number of Skills: {len(profile.skills)}",
        ]
        return "\n".join(lines) + "\n"

    @staticmethod
    def _shorten(text: str, limit: int = 100) -> str:
        return text if len(text) <= limit else text[:limit] + "..."
