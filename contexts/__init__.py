"""Contexts: notes, profile, external sources and conversations."""

from .base import BaseContext
from .note_repository import NoteRepository, InMemoryNoteRepository
from .note_context import NoteContext, NoteMessageHandler
from .profile_context import ProfileContext, ProfileMessageHandler
from .external_source_context import ExternalSourceContext, ExternalSourceMessageHandler
from .conversation_context import ConversationContext, ConversationMessageHandler
from .context_manager import ContextManager

__all__ = [
    "BaseContext",
    "NoteRepository",
    "InMemoryNoteRepository",
    "NoteContext",
    "NoteMessageHandler",
    "ProfileContext",
    "ProfileMessageHandler",
    "ExternalSourceContext",
    "ExternalSourceMessageHandler",
    "ConversationContext",
    "ConversationMessageHandler",
    "ContextManager",
]
