"""Query pipeline: from a user question to a grounded, cited answer."""

import asyncio
import logging
from typing import Optional

from agents.external_source_decision import ExternalSourceDecisionEngine
from agents.profile_analyzer import ProfileAnalyzer
from config.settings import Settings
from contexts.context_manager import ContextManager
from errors import ModelInvocationError, RetrievalDegradation
from llm.base_client import BaseLLMClient, LLMResponse
from memory import ASSISTANT_USER_ID
from retrieval.text_utils import extract_query_tags, get_excerpt
from schemas.knowledge import ExternalSourceResult, Note, Profile
from schemas.query import ExternalCitation, ProfileAnalysisResult, QueryOptions, QueryResult
from .prompt_formatter import PromptFormatter
from .system_prompt import SystemPromptGenerator

logger = logging.getLogger(__name__)


class QueryProcessor:
    """
    Runs one question through the pipeline stages in order:

    room resolved, profile analyzed, context retrieved, history loaded,
    external sources resolved, prompt assembled, model invoked, turns
    persisted.

    Every stage except the model call is best-effort: failures are logged
    and the stage contributes nothing. A failed or timed-out model call
    raises ModelInvocationError.
    """

    DEFAULT_QUERY = "What information do you have in this brain?"
    FALLBACK_ANSWER = "I apologize, but I wasn't able to generate a proper response."

    def __init__(
        self,
        context_manager: ContextManager,
        llm_client: BaseLLMClient,
        profile_analyzer: ProfileAnalyzer,
        decision_engine: ExternalSourceDecisionEngine,
        settings: Settings,
        prompt_formatter: Optional[PromptFormatter] = None,
        system_prompt_generator: Optional[SystemPromptGenerator] = None
    ):
        self.context_manager = context_manager
        self.llm_client = llm_client
        self.profile_analyzer = profile_analyzer
        self.decision_engine = decision_engine
        self.settings = settings
        self.prompt_formatter = prompt_formatter or PromptFormatter()
        self.system_prompt_generator = system_prompt_generator or SystemPromptGenerator(
            profile_response_threshold=settings.profile_response_threshold
        )

    async def process_query(self, query: str, options: Optional[QueryOptions] = None) -> QueryResult:
        """
        Answer a query.

        Args:
            query: User question (empty queries get a default question)
            options: Caller identity and room

        Returns:
            QueryResult with answer, citations and related material

        Raises:
            ModelInvocationError: If the model call fails or times out
        """
        options = options or QueryOptions()
        if not query or not query.strip():
            logger.warning("Empty query received, using default question")
            query = self.DEFAULT_QUERY

        logger.debug(f"Processing query: \"{query}\"")

        conversation_id = await self._resolve_room(options)

        profile = await self._load_profile()
        analysis = await self._analyze_profile(query, profile)

        relevant_notes = await self._retrieve_relevant_notes(query)

        history = await self._load_history(conversation_id)

        external_results = await self._fetch_external_sources(query, relevant_notes, analysis)

        include_profile = (
            analysis.is_profile_query
            or analysis.relevance > self.settings.profile_inclusion_threshold
        )
        user_prompt, citations = self.prompt_formatter.format_prompt_with_context(
            query,
            relevant_notes,
            external_results,
            include_profile=include_profile,
            profile_relevance=analysis.relevance,
            profile=profile,
            conversation_history=history,
        )
        system_prompt = self.system_prompt_generator.get_system_prompt(
            analysis.is_profile_query,
            analysis.relevance,
            bool(external_results),
        )

        response = await self._call_model(system_prompt, user_prompt)
        answer = response.content.strip() or self.FALLBACK_ANSWER

        await self._save_turns(query, answer, options, conversation_id)

        related_notes = await self._get_related_notes(relevant_notes)

        include_profile_in_response = (
            analysis.is_profile_query
            or analysis.relevance > self.settings.profile_response_threshold
        )
        external_citations = self._format_external_citations(external_results)

        return QueryResult(
            answer=answer,
            citations=citations,
            related_notes=related_notes,
            profile=profile if include_profile_in_response else None,
            external_sources=external_citations or None,
            usage=response.usage or None,
        )

    # Stages

    async def _resolve_room(self, options: QueryOptions) -> Optional[str]:
        """Conversation id for this run; later stages use it instead of the shared current room."""
        conversation_context = self.context_manager.get_conversation_context()
        try:
            if options.room_id:
                return await conversation_context.set_current_room(options.room_id, options.interface_type)
            if conversation_context.has_active_conversation():
                return conversation_context.current_conversation_id
            return await conversation_context.start_conversation()
        except Exception as e:
            logger.warning(f"Could not resolve conversation room: {e}")
            return None

    async def _load_profile(self) -> Optional[Profile]:
        try:
            return await self.context_manager.get_profile_context().get_profile()
        except Exception as e:
            logger.warning(f"Could not load profile: {e}")
            return None

    async def _analyze_profile(self, query: str, profile: Optional[Profile]) -> ProfileAnalysisResult:
        try:
            analysis = await self.profile_analyzer.analyze(query, profile)
        except Exception as e:
            logger.warning(f"Profile analysis failed, using lexical check only: {e}")
            analysis = ProfileAnalysisResult(
                is_profile_query=self.profile_analyzer.is_profile_query(query),
                relevance=0.0,
            )
        logger.debug(f"Profile analysis: profile query={analysis.is_profile_query}, relevance={analysis.relevance:.2f}")
        return analysis

    async def _retrieve_relevant_notes(self, query: str) -> list[Note]:
        """Semantic search with tags, then tags only, then keywords, then recent notes."""
        note_context = self.context_manager.get_note_context()
        clean_query, tags = extract_query_tags(query)
        search_text = clean_query or query
        limit = self.settings.note_search_limit

        if tags:
            logger.debug(f"Query tags: {tags}")

        steps = [("semantic search", lambda: note_context.search_notes(
            query=search_text, tags=tags or None, limit=limit, semantic=True
        ))]
        if tags:
            steps.append(("tag search", lambda: note_context.search_notes(
                tags=tags, limit=limit, semantic=False
            )))
        steps.append(("keyword search", lambda: note_context.search_notes(
            query=search_text, limit=limit, semantic=False
        )))
        steps.append(("recent notes", lambda: note_context.get_recent_notes(
            self.settings.recent_notes_fallback
        )))

        for name, step in steps:
            try:
                notes = await step()
            except Exception as e:
                logger.warning(f"Note retrieval step '{name}' failed: {e}")
                continue
            if notes:
                logger.info(f"Found {len(notes)} relevant notes via {name}")
                logger.debug(f"Top note: \"{notes[0].title}\"")
                return notes
            logger.debug(f"No notes from {name}")

        logger.info("No notes found for query")
        return []

    async def _load_history(self, conversation_id: Optional[str]) -> str:
        if conversation_id is None:
            return ""
        try:
            return await self.context_manager.get_conversation_context().get_conversation_history(
                self.settings.history_max_length, conversation_id
            )
        except Exception as e:
            logger.warning(f"Could not load conversation history: {e}")
            return ""

    async def _fetch_external_sources(
        self,
        query: str,
        relevant_notes: list[Note],
        analysis: ProfileAnalysisResult
    ) -> list[ExternalSourceResult]:
        if not self.context_manager.get_external_sources_enabled():
            return []

        if not self.decision_engine.should_query_external_sources(
            query, relevant_notes, analysis.is_profile_query
        ):
            logger.debug("Internal notes cover the query, skipping external sources")
            return []

        try:
            results = await self.context_manager.get_external_source_context().semantic_search(
                query, self.settings.external_result_limit
            )
        except RetrievalDegradation as e:
            logger.warning(f"External sources degraded, answering without them: {e.message}")
            return []
        except Exception as e:
            logger.warning(f"External source search failed: {e}")
            return []

        logger.info(f"Found {len(results)} external results")
        return results

    async def _call_model(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        try:
            return await asyncio.wait_for(
                self.llm_client.complete(system_prompt, user_prompt),
                timeout=self.settings.model_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Model call timed out after {self.settings.model_timeout}s")
            raise ModelInvocationError(
                f"Model call timed out after {self.settings.model_timeout}s",
                {"timeout": self.settings.model_timeout},
            ) from e
        except Exception as e:
            logger.error(f"Model call failed: {e}")
            raise ModelInvocationError(f"Model call failed: {e}", {"exception": type(e).__name__}) from e

    async def _save_turns(
        self,
        query: str,
        answer: str,
        options: QueryOptions,
        conversation_id: Optional[str]
    ):
        """Record the user turn, then the assistant turn with the same query."""
        conversation_context = self.context_manager.get_conversation_context()
        try:
            user_id = options.user_id or self.settings.default_user_id
            await conversation_context.save_turn(
                query,
                "",
                user_id=user_id,
                user_name=options.user_name or self.settings.default_user_name,
                metadata={"turnType": "user"},
                conversation_id=conversation_id,
            )
            logger.debug(f"Saved user turn with user_id: {user_id}")

            await conversation_context.save_turn(
                query,
                answer,
                user_id=ASSISTANT_USER_ID,
                user_name="Assistant",
                metadata={"turnType": "assistant"},
                conversation_id=conversation_id,
            )
            logger.debug("Saved assistant turn")
        except Exception as e:
            logger.warning(f"Failed to save conversation turn: {e}")

    async def _get_related_notes(self, relevant_notes: list[Note]) -> list[Note]:
        note_context = self.context_manager.get_note_context()
        limit = self.settings.related_notes_limit
        try:
            if relevant_notes:
                return await note_context.get_related_notes(relevant_notes[0].id, limit)
            return await note_context.get_recent_notes(limit)
        except Exception as e:
            logger.warning(f"Could not load related notes: {e}")
            return []

    @staticmethod
    def _format_external_citations(results: list[ExternalSourceResult]) -> list[ExternalCitation]:
        return [
            ExternalCitation(
                title=result.title or "Untitled Source",
                source=result.source or "Unknown Source",
                url=result.url or "#",
                excerpt=get_excerpt(result.content or "No content available", 150),
            )
            for result in results
        ]
