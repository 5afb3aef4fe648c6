#!/usr/bin/env python3
"""Personal Knowledge Assistant CLI."""

import argparse
import asyncio
import logging
import sys

from commands import CommandHandler
from config.settings import Settings
from errors import AssistantError
from memory import InterfaceType
from orchestrator import KnowledgeAssistant
from schemas.commands import CommandResult, CommandResultType
from schemas.knowledge import Note
from schemas.query import QueryOptions, QueryResult


def print_result(result: QueryResult):
    """Print an answer with its sources."""
    print("\n" + "=" * 60)
    print(result.answer)
    print("=" * 60)

    if result.citations:
        print("\nSources:")
        for index, citation in enumerate(result.citations, start=1):
            print(f"  [{index}] {citation.note_title} ({citation.note_id})")

    if result.external_sources:
        print("\nExternal sources:")
        for index, source in enumerate(result.external_sources, start=1):
            print(f"  [{index}] {source.title} - {source.source} <{source.url}>")

    if result.related_notes:
        print("\nRelated notes:")
        for note in result.related_notes:
            print(f"  - {note.title}")
    print()


def print_notes(notes: list[Note]):
    for note in notes:
        tags = f" [{', '.join(note.tags)}]" if note.tags else ""
        print(f"  {note.id}: {note.title}{tags}")


def print_command_result(result: CommandResult):
    """Render a command result for the terminal."""
    if result.type == CommandResultType.ERROR:
        print(f"Error: {result.message}", file=sys.stderr)
        return
    if result.type == CommandResultType.ANSWER:
        print_result(result.answer)
        return

    if result.message:
        print(result.message)

    if result.type == CommandResultType.HELP:
        print("Commands:")
        for info in result.commands:
            print(f"  {info.usage:<22} {info.description}")
    elif result.type == CommandResultType.NOTES:
        print(f"{result.title}:")
        print_notes(result.notes)
    elif result.type == CommandResultType.NOTE:
        note = result.note
        print(f"\n{note.title} ({note.id})")
        if note.tags:
            print(f"Tags: {', '.join(note.tags)}")
        print(f"\n{note.content}\n")
    elif result.type == CommandResultType.TAGS:
        for tag in result.tags:
            print(f"  {tag.tag} ({tag.count})")
    elif result.type == CommandResultType.PROFILE:
        profile = result.profile
        print(f"\n{profile.display_name}")
        if profile.headline:
            print(profile.headline)
        if result.keywords:
            print(f"Keywords: {', '.join(result.keywords)}")
        if result.title:
            print(f"\n{result.title}:")
            print_notes(result.notes)
    elif result.type in (CommandResultType.STATUS, CommandResultType.EXTERNAL):
        for key, value in (result.status or {}).items():
            print(f"  {key}: {value}")


async def interactive_loop(assistant: KnowledgeAssistant, options: QueryOptions):
    """Read commands and questions until 'exit'."""
    handler = CommandHandler(assistant, options)
    print("Ask a question or type 'help' for commands ('exit' to quit).")
    while True:
        try:
            line = await asyncio.to_thread(input, "> ")
        except EOFError:
            break

        line = line.strip()
        if line.lower() in ("exit", "quit"):
            break
        if not line:
            continue

        print_command_result(await handler.execute(line))


async def run(args: argparse.Namespace) -> int:
    settings = Settings(
        llm_provider=args.provider,
        external_sources_enabled=args.external,
        knowledge_base_path=args.knowledge_base,
        db_path=args.db_path,
        verbose=args.verbose,
    )
    assistant = KnowledgeAssistant(settings=settings)
    options = QueryOptions(
        user_id=args.user,
        user_name=args.user,
        room_id=args.room,
        interface_type=InterfaceType.CLI,
    )

    try:
        await assistant.initialize()
        if args.question:
            print_result(await assistant.ask(args.question, options))
        else:
            await interactive_loop(assistant, options)
    except AssistantError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Personal Knowledge Assistant - ask questions about your notes and profile"
    )
    parser.add_argument(
        "--question",
        "-q",
        type=str,
        help="Question to answer (omit for interactive mode)"
    )
    parser.add_argument(
        "--room",
        "-r",
        type=str,
        help="Conversation room id (default: shared CLI room)"
    )
    parser.add_argument(
        "--user",
        "-u",
        type=str,
        help="User name recorded with each turn"
    )
    parser.add_argument(
        "--external",
        action="store_true",
        help="Allow external sources (Wikipedia, NewsAPI)"
    )
    parser.add_argument(
        "--knowledge-base",
        "-k",
        type=str,
        help="YAML file with notes and profile to load at startup"
    )
    parser.add_argument(
        "--db-path",
        type=str,
        help="SQLite file for conversation memory (in-memory if omitted)"
    )
    parser.add_argument(
        "--provider",
        "-p",
        type=str,
        choices=["openai", "anthropic"],
        default="anthropic",
        help="LLM provider (default: anthropic)"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
