"""Application root for the personal knowledge assistant."""

import logging
from pathlib import Path
from typing import Optional

import yaml

from config.settings import Settings
from errors import ConfigurationError

# Messaging
from messaging import ContextMediator, NotificationType, create_default_registry

# LLM and embeddings
from llm.factory import create_llm_client
from llm.base_client import BaseLLMClient
from retrieval.embedding_service import EmbeddingService
from retrieval.external_sources import NewsAPISource, WikipediaSource

# Memory
from memory import (
    ConversationMemoryStore,
    ConversationStorage,
    ConversationSummarizer,
    InMemoryConversationStorage,
    SQLiteConversationStorage,
)

# Contexts
from contexts import (
    ContextManager,
    ConversationContext,
    ExternalSourceContext,
    InMemoryNoteRepository,
    NoteContext,
    NoteRepository,
    ProfileContext,
)

# Analysis and pipeline
from agents.profile_analyzer import ProfileAnalyzer
from agents.external_source_decision import ExternalSourceDecisionEngine
from pipeline.query_processor import QueryProcessor
from schemas.knowledge import Profile
from schemas.query import QueryOptions, QueryResult

logger = logging.getLogger(__name__)


class KnowledgeAssistant:
    """Builds every component once and wires them together."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm_client: Optional[BaseLLMClient] = None,
        embedding_service: Optional[EmbeddingService] = None,
        conversation_storage: Optional[ConversationStorage] = None,
        note_repository: Optional[NoteRepository] = None
    ):
        """
        Initialize assistant.

        Args:
            settings: Application settings
            llm_client: Model client (built from settings when omitted)
            embedding_service: Embedding service (built from settings when omitted)
            conversation_storage: Conversation backend (SQLite when db_path is set,
                in-memory otherwise)
            note_repository: Note backend (in-memory when omitted)
        """
        self.settings = settings or Settings()
        self._initialized = False

        self.mediator = ContextMediator(
            timeout=self.settings.mediator_timeout,
            schema_registry=create_default_registry(),
        )

        self.llm_client = llm_client if llm_client is not None else create_llm_client(self.settings)

        self.embedding_service = embedding_service or EmbeddingService(
            openai_api_key=self.settings.openai_api_key,
            model=self.settings.embedding_model,
        )

        self._init_memory(conversation_storage)
        self.note_repository = note_repository or InMemoryNoteRepository()
        self._init_contexts()
        self._init_pipeline()

    def _init_memory(self, storage: Optional[ConversationStorage]):
        """Initialize tiered conversation memory."""
        if storage is None:
            if self.settings.db_path:
                storage = SQLiteConversationStorage(db_path=self.settings.db_path)
                logger.info(f"Conversation memory stored in {self.settings.db_path}")
            else:
                storage = InMemoryConversationStorage()

        self.memory = ConversationMemoryStore(
            storage=storage,
            summarizer=ConversationSummarizer(self.llm_client),
            active_capacity=self.settings.active_capacity,
            summary_turn_count=self.settings.summary_turn_count,
            max_summaries=self.settings.max_summaries,
            history_max_length=self.settings.history_max_length,
            anchor_id=self.settings.anchor_id,
            anchor_name=self.settings.anchor_name,
        )

    def _init_contexts(self):
        """Build the contexts through the context manager."""
        settings = self.settings

        def external_sources(mediator: ContextMediator) -> ExternalSourceContext:
            return ExternalSourceContext(
                sources=[
                    WikipediaSource(
                        timeout=settings.external_request_timeout,
                        retry_after=settings.external_retry_after,
                    ),
                    NewsAPISource(
                        settings.newsapi_api_key,
                        timeout=settings.external_request_timeout,
                        retry_after=settings.external_retry_after,
                    ),
                ],
                embedding_service=self.embedding_service,
                mediator=mediator,
                max_results=settings.external_result_limit,
            )

        self.context_manager = ContextManager(
            mediator=self.mediator,
            note_factory=lambda mediator: NoteContext(self.note_repository, self.embedding_service, mediator),
            profile_factory=lambda mediator: ProfileContext(None, self.embedding_service, mediator),
            external_source_factory=external_sources,
            conversation_factory=lambda mediator: ConversationContext(self.memory, mediator),
            external_sources_enabled=settings.external_sources_enabled,
        )
        # Notes only care about profile changes
        self.mediator.subscribe(NoteContext.context_id, NotificationType.PROFILE_UPDATED)

    def _init_pipeline(self):
        """Initialize analyzers and the query processor."""
        self.profile_analyzer = ProfileAnalyzer(
            embedding_service=self.embedding_service,
            profile_query_threshold=self.settings.profile_query_threshold,
            fallback_relevance=self.settings.profile_fallback_relevance,
        )
        self.decision_engine = ExternalSourceDecisionEngine(
            self.profile_analyzer,
            coverage_threshold=self.settings.external_sources_threshold,
        )

        self.query_processor: Optional[QueryProcessor] = None
        if self.llm_client:
            self.query_processor = QueryProcessor(
                context_manager=self.context_manager,
                llm_client=self.llm_client,
                profile_analyzer=self.profile_analyzer,
                decision_engine=self.decision_engine,
                settings=self.settings,
            )

    async def initialize(self):
        """
        Finish startup: verify contexts, link them and load seed data.

        Raises:
            ConfigurationError: If contexts failed to construct or the
                knowledge base cannot be loaded
        """
        if self._initialized:
            return

        self.context_manager.ensure_ready()
        self.context_manager.initialize_context_links()

        if self.settings.knowledge_base_path:
            await self.load_knowledge_base(self.settings.knowledge_base_path)

        if self.context_manager.get_external_sources_enabled():
            status = await self.context_manager.get_external_source_context().check_sources_availability()
            logger.info(f"External sources: {status}")

        self._initialized = True

    async def load_knowledge_base(self, path: str):
        """
        Load notes and a profile from a YAML file.

        The file holds an optional `profile` mapping and a `notes` list of
        mappings with `title`, `content` and optional `id` and `tags`.
        """
        kb_path = Path(path)
        if not kb_path.exists():
            raise ConfigurationError(f"Knowledge base not found: {path}", {"path": path})

        try:
            with open(kb_path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid knowledge base YAML: {e}", {"path": path}) from e

        note_context = self.context_manager.get_note_context()
        for entry in data.get("notes", []):
            await note_context.add_note(
                title=entry.get("title", "Untitled Note"),
                content=entry.get("content", ""),
                tags=entry.get("tags") or [],
                note_id=entry.get("id"),
            )

        if data.get("profile"):
            await self.context_manager.get_profile_context().update_profile(
                Profile.model_validate(data["profile"])
            )

        logger.info(
            f"Loaded knowledge base {path}: {len(data.get('notes', []))} notes, "
            f"profile {'present' if data.get('profile') else 'absent'}"
        )

    async def set_external_sources_enabled(self, enabled: bool) -> Optional[dict[str, bool]]:
        """
        Toggle external sources; turning them on checks every source again.

        Returns:
            Per-source availability when enabling, otherwise None
        """
        self.context_manager.set_external_sources_enabled(enabled)
        if not enabled:
            return None
        status = await self.context_manager.get_external_source_context().check_sources_availability()
        logger.info(f"External sources: {status}")
        return status

    async def ask(self, query: str, options: Optional[QueryOptions] = None) -> QueryResult:
        """
        Answer a question.

        Raises:
            ConfigurationError: If no model client is configured
            ModelInvocationError: If the model call fails
        """
        await self.initialize()
        if self.query_processor is None:
            raise ConfigurationError(
                f"No LLM client configured for provider {self.settings.llm_provider}",
                {"provider": self.settings.llm_provider},
            )
        return await self.query_processor.process_query(query, options)
