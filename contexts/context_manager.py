"""Owns the four contexts and their readiness."""

import logging
from typing import Callable, Optional, TypeVar

from errors import ConfigurationError, NotReadyError
from messaging import ContextMediator
from .base import BaseContext
from .conversation_context import ConversationContext
from .external_source_context import ExternalSourceContext
from .note_context import NoteContext
from .profile_context import ProfileContext

logger = logging.getLogger(__name__)

C = TypeVar("C", bound=BaseContext)


class ContextManager:
    """
    Builds the note, profile, external-source and conversation contexts,
    registers their handlers with the mediator and hands them out.

    Construction failures do not raise here. The manager stays not-ready
    and every accessor raises NotReadyError carrying the original error;
    the application root calls `ensure_ready()` to fail fast at startup.
    """

    def __init__(
        self,
        mediator: ContextMediator,
        note_factory: Callable[[ContextMediator], NoteContext],
        profile_factory: Callable[[ContextMediator], ProfileContext],
        external_source_factory: Callable[[ContextMediator], ExternalSourceContext],
        conversation_factory: Callable[[ContextMediator], ConversationContext],
        external_sources_enabled: bool = False
    ):
        """
        Initialize context manager.

        Args:
            mediator: Mediator the contexts register with
            *_factory: Callables building each context around the mediator
            external_sources_enabled: Initial external search toggle
        """
        self.mediator = mediator
        self._external_sources_enabled = external_sources_enabled
        self._ready = False
        self._construction_error: Optional[Exception] = None
        self._links_initialized = False

        self._note_context: Optional[NoteContext] = None
        self._profile_context: Optional[ProfileContext] = None
        self._external_source_context: Optional[ExternalSourceContext] = None
        self._conversation_context: Optional[ConversationContext] = None

        try:
            self._note_context = note_factory(mediator)
            self._profile_context = profile_factory(mediator)
            self._external_source_context = external_source_factory(mediator)
            self._conversation_context = conversation_factory(mediator)

            for context in self._all_contexts():
                mediator.register_handler(context.context_id, context.create_handler())

            self._ready = True
            logger.info("All contexts initialized")
        except Exception as e:
            self._construction_error = e
            logger.error(f"Failed to initialize contexts: {e}")

    def _all_contexts(self) -> list[BaseContext]:
        return [
            self._note_context,
            self._profile_context,
            self._external_source_context,
            self._conversation_context,
        ]

    # Readiness

    def are_contexts_ready(self) -> bool:
        return self._ready

    def get_construction_error(self) -> Optional[Exception]:
        return self._construction_error

    def ensure_ready(self):
        """
        Raises:
            ConfigurationError: If any context failed to construct
        """
        if not self._ready:
            raise ConfigurationError(
                f"Contexts failed to initialize: {self._construction_error}",
                {"cause": type(self._construction_error).__name__ if self._construction_error else None},
            ) from self._construction_error

    def _require(self, context: Optional[C], name: str) -> C:
        if not self._ready or context is None:
            raise NotReadyError(
                f"{name} requested before contexts were ready",
                {"context": name},
            ) from self._construction_error
        return context

    # Accessors

    def get_note_context(self) -> NoteContext:
        return self._require(self._note_context, "NoteContext")

    def get_profile_context(self) -> ProfileContext:
        return self._require(self._profile_context, "ProfileContext")

    def get_external_source_context(self) -> ExternalSourceContext:
        return self._require(self._external_source_context, "ExternalSourceContext")

    def get_conversation_context(self) -> ConversationContext:
        return self._require(self._conversation_context, "ConversationContext")

    # Wiring

    def initialize_context_links(self):
        """Connect cross-context delegates. Safe to call repeatedly."""
        if self._links_initialized:
            logger.debug("Context links already initialized")
            return

        profile_context = self.get_profile_context()
        if not profile_context.has_note_context():
            profile_context.set_note_context(self.get_note_context())
        self._links_initialized = True
        logger.debug("Context links initialized")

    # External sources toggle

    def set_external_sources_enabled(self, enabled: bool):
        if enabled != self._external_sources_enabled:
            logger.info(f"External sources {'enabled' if enabled else 'disabled'}")
        self._external_sources_enabled = enabled

    def get_external_sources_enabled(self) -> bool:
        return self._external_sources_enabled
