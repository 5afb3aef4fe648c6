"""Request parameter schemas keyed by data type."""

import logging
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from .messages import DataRequestType, plain_value

logger = logging.getLogger(__name__)


class NotesSearchParams(BaseModel):
    """Parameters for notes.search."""
    query: Optional[str] = None
    tags: Optional[List[str]] = None
    limit: int = Field(5, ge=1, le=100)
    semantic: bool = True


class NoteByIdParams(BaseModel):
    """Parameters for notes.byId."""
    id: str = Field(..., min_length=1)


class ProfileDataParams(BaseModel):
    """Parameters for profile.data (none)."""
    model_config = ConfigDict(extra="forbid")


class ConversationHistoryParams(BaseModel):
    """Parameters for conversation.history."""
    conversation_id: Optional[str] = None
    max_length: Optional[int] = Field(None, ge=0)


class ExternalSourcesSearchParams(BaseModel):
    """Parameters for externalSources.search."""
    query: str = Field(..., min_length=1)
    limit: int = Field(3, ge=1, le=20)
    semantic: bool = False


class SchemaRegistry:
    """Maps request data types to pydantic parameter models."""

    def __init__(self):
        self._schemas: Dict[str, Type[BaseModel]] = {}

    def register(self, data_type: str, schema: Type[BaseModel]):
        """Register (or replace) the schema for a data type."""
        data_type = plain_value(data_type)
        if data_type in self._schemas:
            logger.debug(f"Replacing parameter schema for {data_type}")
        self._schemas[data_type] = schema

    def has_schema(self, data_type: str) -> bool:
        """Whether a schema exists for the data type."""
        return plain_value(data_type) in self._schemas

    def get_schema(self, data_type: str) -> Optional[Type[BaseModel]]:
        """Return the schema for a data type, if any."""
        return self._schemas.get(plain_value(data_type))

    def validate_request_parameters(self, data_type: str, params: Dict[str, Any]) -> Optional[BaseModel]:
        """
        Validate request parameters.

        Args:
            data_type: Request data type
            params: Raw parameters

        Returns:
            The parsed parameter model, or None when no schema is registered

        Raises:
            pydantic.ValidationError: If the parameters do not match the schema
        """
        schema = self._schemas.get(plain_value(data_type))
        if schema is None:
            return None
        return schema.model_validate(params)


def create_default_registry() -> SchemaRegistry:
    """Registry with the schemas for every built-in data type."""
    registry = SchemaRegistry()
    registry.register(DataRequestType.NOTES_SEARCH.value, NotesSearchParams)
    registry.register(DataRequestType.NOTE_BY_ID.value, NoteByIdParams)
    registry.register(DataRequestType.PROFILE_DATA.value, ProfileDataParams)
    registry.register(DataRequestType.CONVERSATION_HISTORY.value, ConversationHistoryParams)
    registry.register(DataRequestType.EXTERNAL_SOURCES_SEARCH.value, ExternalSourcesSearchParams)
    return registry
