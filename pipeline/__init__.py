"""Query pipeline."""

from .prompt_formatter import PromptFormatter
from .system_prompt import SystemPromptGenerator
from .query_processor import QueryProcessor

__all__ = ["PromptFormatter", "SystemPromptGenerator", "QueryProcessor"]
