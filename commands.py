"""Interactive commands for the knowledge assistant."""

import logging
from collections import Counter
from typing import Optional

from errors import AssistantError
from memory import ASSISTANT_USER_ID
from orchestrator import KnowledgeAssistant
from retrieval.text_utils import extract_keywords
from schemas.commands import CommandInfo, CommandResult, CommandResultType, TagCount
from schemas.query import QueryOptions

logger = logging.getLogger(__name__)


class CommandHandler:
    """
    Parses one input line and runs the matching command.

    A line that does not start with a known command is asked as a question.
    Every command returns a CommandResult; failures become error results
    instead of exceptions so the interactive loop keeps running.
    """

    LIST_LIMIT = 10
    RELATED_LIMIT = 5
    PROFILE_KEYWORDS = 15
    TITLE_LENGTH = 50

    COMMANDS = [
        CommandInfo(command="help", description="Show available commands", usage="help"),
        CommandInfo(
            command="search",
            description="Search for notes",
            usage="search <query>",
            examples=["search mediator", "search tiered memory"],
        ),
        CommandInfo(
            command="list",
            description="List recent notes or notes with a tag",
            usage="list [tag]",
            examples=["list", "list architecture"],
        ),
        CommandInfo(command="tags", description="List all tags with their note counts", usage="tags"),
        CommandInfo(
            command="note",
            description="Show a note by id",
            usage="note <id>",
            examples=["note note-mcp"],
        ),
        CommandInfo(
            command="profile",
            description="Show your profile, optionally with related notes",
            usage="profile [related]",
            examples=["profile", "profile related"],
        ),
        CommandInfo(
            command="ask",
            description="Ask a question (plain text works too)",
            usage="ask <question>",
            examples=["ask How do contexts talk to each other?"],
        ),
        CommandInfo(
            command="save-note",
            description="Save the current conversation as a note",
            usage="save-note [title]",
            examples=["save-note", "save-note Mediator discussion"],
        ),
        CommandInfo(
            command="external",
            description="Enable or disable external sources",
            usage="external <on|off>",
            examples=["external on", "external off"],
        ),
        CommandInfo(command="status", description="Show readiness and external source availability", usage="status"),
    ]

    def __init__(self, assistant: KnowledgeAssistant, options: Optional[QueryOptions] = None):
        self.assistant = assistant
        self.options = options or QueryOptions()
        self._handlers = {
            "help": self.handle_help,
            "search": self.handle_search,
            "list": self.handle_list,
            "tags": self.handle_tags,
            "note": self.handle_note,
            "profile": self.handle_profile,
            "ask": self.handle_ask,
            "save-note": self.handle_save_note,
            "external": self.handle_external,
            "status": self.handle_status,
        }

    @staticmethod
    def parse(line: str) -> tuple[str, str]:
        """Split a line into a lower-cased command word and its argument text."""
        command, _, args = line.strip().partition(" ")
        return command.lower(), args.strip()

    async def execute(self, line: str) -> CommandResult:
        """Run one input line."""
        command, args = self.parse(line)
        if not command:
            return CommandResult.error("Please enter a command or a question")

        handler = self._handlers.get(command)
        if handler is None:
            command, args, handler = "ask", line.strip(), self.handle_ask

        logger.debug(f"Running command {command} with args '{args}'")
        try:
            return await handler(args)
        except AssistantError as e:
            logger.error(f"Command {command} failed: {e.message}")
            return CommandResult.error(e.message)

    async def handle_help(self, args: str = "") -> CommandResult:
        return CommandResult(type=CommandResultType.HELP, commands=list(self.COMMANDS))

    async def handle_search(self, query: str) -> CommandResult:
        if not query:
            return CommandResult.error("Please provide a search query")

        notes = await self._notes().search_notes(query=query, limit=self.LIST_LIMIT)
        return CommandResult(type=CommandResultType.NOTES, title=f"Search results for: {query}", notes=notes)

    async def handle_list(self, tag: str = "") -> CommandResult:
        if tag:
            notes = await self._notes().search_notes(tags=[tag], limit=self.LIST_LIMIT, semantic=False)
            if not notes:
                return CommandResult.error(f"No notes found with tag: {tag}")
            return CommandResult(type=CommandResultType.NOTES, title=f"Notes with tag: {tag}", notes=notes)

        notes = await self._notes().get_recent_notes(self.LIST_LIMIT)
        if not notes:
            return CommandResult.error("No notes found")
        return CommandResult(type=CommandResultType.NOTES, title="Recent notes", notes=notes)

    async def handle_tags(self, args: str = "") -> CommandResult:
        note_context = self._notes()
        notes = await note_context.get_recent_notes(await note_context.get_note_count())
        counts = Counter(tag for note in notes for tag in note.tags)
        if not counts:
            return CommandResult.error("No tags found")

        # Most used first, ties alphabetical
        ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return CommandResult(
            type=CommandResultType.TAGS,
            tags=[TagCount(tag=tag, count=count) for tag, count in ordered],
        )

    async def handle_note(self, note_id: str) -> CommandResult:
        if not note_id:
            return CommandResult.error("Please provide a note id")

        note = await self._notes().get_note_by_id(note_id)
        if note is None:
            return CommandResult.error(f"Note {note_id} not found")
        return CommandResult(type=CommandResultType.NOTE, note=note)

    async def handle_profile(self, args: str = "") -> CommandResult:
        profile_context = self.assistant.context_manager.get_profile_context()
        profile = await profile_context.get_profile()
        if profile is None:
            return CommandResult.error("No profile loaded. Load one with --knowledge-base.")

        result = CommandResult(
            type=CommandResultType.PROFILE,
            profile=profile,
            keywords=extract_keywords(profile.embedding_text(), max_keywords=self.PROFILE_KEYWORDS),
        )
        if args.lower() == "related":
            result.title = "Notes related to your profile"
            result.notes = await profile_context.find_related_notes(self.RELATED_LIMIT)
        return result

    async def handle_ask(self, question: str) -> CommandResult:
        if not question:
            return CommandResult.error("Please provide a question")

        answer = await self.assistant.ask(question, self.options)
        return CommandResult(type=CommandResultType.ANSWER, answer=answer)

    async def handle_save_note(self, title: str = "") -> CommandResult:
        conversation = await self.assistant.context_manager.get_conversation_context().get_conversation()
        if conversation is None:
            return CommandResult.error("No active conversation to save")

        exchanges = [turn for turn in conversation.active_turns if turn.user_id == ASSISTANT_USER_ID]
        if not exchanges:
            return CommandResult.error("The conversation has no answers to save yet")

        content = "\n\n".join(
            f"**Question**: {turn.query}\n\n**Answer**: {turn.response}" for turn in exchanges
        )
        if not title:
            first = exchanges[0].query
            title = first if len(first) <= self.TITLE_LENGTH else first[:self.TITLE_LENGTH] + "..."
        title = title.strip('"')

        note = await self._notes().add_note(title=title, content=content, tags=["conversation"])
        logger.info(f"Saved conversation {conversation.id} as note {note.id}")
        return CommandResult(type=CommandResultType.NOTE, message=f"Saved note {note.id}", note=note)

    async def handle_external(self, args: str) -> CommandResult:
        setting = args.lower()
        if setting in ("on", "enable"):
            status = await self.assistant.set_external_sources_enabled(True)
            return CommandResult(
                type=CommandResultType.EXTERNAL,
                message="External sources enabled.",
                status={"enabled": True, "sources": status},
            )
        if setting in ("off", "disable"):
            await self.assistant.set_external_sources_enabled(False)
            return CommandResult(
                type=CommandResultType.EXTERNAL,
                message="External sources disabled.",
                status={"enabled": False},
            )
        return CommandResult.error("Usage: external <on|off>")

    async def handle_status(self, args: str = "") -> CommandResult:
        manager = self.assistant.context_manager
        ready = manager.are_contexts_ready()
        status = {
            "contexts_ready": ready,
            "model_configured": self.assistant.llm_client is not None,
            "external_sources_enabled": manager.get_external_sources_enabled(),
            "note_count": 0,
            "external_sources": {},
        }
        if ready:
            status["note_count"] = await manager.get_note_context().get_note_count()
            status["external_sources"] = await manager.get_external_source_context().check_sources_availability()
        return CommandResult(type=CommandResultType.STATUS, status=status)

    def _notes(self):
        return self.assistant.context_manager.get_note_context()
