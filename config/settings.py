"""Application settings."""

import os
from typing import Optional
from pydantic import BaseModel


class Settings(BaseModel):
    """Application configuration settings."""

    # LLM Provider settings
    llm_provider: str = "anthropic"  # "openai" or "anthropic"
    llm_model: Optional[str] = None  # Override provider default model
    embedding_model: str = "text-embedding-3-small"

    # API Keys
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    newsapi_api_key: Optional[str] = None

    # Conversation memory tiers
    active_capacity: int = 10
    summary_turn_count: int = 5
    max_summaries: int = 3
    history_max_length: int = 8000  # characters

    # Relevance thresholds
    profile_query_threshold: float = 0.7
    profile_inclusion_threshold: float = 0.5
    profile_response_threshold: float = 0.7
    profile_fallback_relevance: float = 0.1
    external_sources_threshold: float = 0.6
    external_sources_enabled: bool = False

    # Retrieval settings
    note_search_limit: int = 5
    recent_notes_fallback: int = 3
    related_notes_limit: int = 3
    external_result_limit: int = 3

    # Timeouts (seconds)
    model_timeout: float = 60.0
    mediator_timeout: float = 30.0
    external_request_timeout: int = 10
    external_retry_after: float = 60.0  # cooldown before a failed source is tried again

    # Conversation identity
    default_user_id: str = "cli-user"
    default_user_name: str = "User"
    anchor_id: Optional[str] = None
    anchor_name: str = "Host"

    # Storage and seed data
    db_path: Optional[str] = None  # SQLite conversation storage; in-memory when unset
    knowledge_base_path: Optional[str] = None

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Auto-load API keys from environment if not provided
        if "openai_api_key" not in data or data["openai_api_key"] is None:
            data["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

        if "anthropic_api_key" not in data or data["anthropic_api_key"] is None:
            data["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")

        if "newsapi_api_key" not in data or data["newsapi_api_key"] is None:
            data["newsapi_api_key"] = os.environ.get("NEWSAPI_API_KEY")

        super().__init__(**data)

    def get_llm_api_key(self) -> Optional[str]:
        """Get the API key for the configured LLM provider."""
        if self.llm_provider == "openai":
            return self.openai_api_key
        elif self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return None
