"""Mediator message types.

Messages form a closed tagged union on ``category``. Every consumer
dispatches over all four variants and ends with ``assert_never`` so a new
variant cannot slip through unhandled.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from errors import ErrorCode, InvalidMessageError


BROADCAST = "*"


def plain_value(value: Any) -> Any:
    """Unwrap enum members so they hash and compare as their wire value."""
    return value.value if isinstance(value, Enum) else value


class MessageCategory(str, Enum):
    """Discriminant of the message union."""
    REQUEST = "request"
    NOTIFICATION = "notification"
    ACKNOWLEDGMENT = "acknowledgment"
    ERROR = "error"


class ContextId(str, Enum):
    """Names under which contexts register with the mediator."""
    NOTES = "notes"
    PROFILE = "profile"
    EXTERNAL_SOURCES = "externalSources"
    CONVERSATIONS = "conversations"


class DataRequestType(str, Enum):
    """Known request data types."""
    NOTES_SEARCH = "notes.search"
    NOTE_BY_ID = "notes.byId"
    PROFILE_DATA = "profile.data"
    CONVERSATION_HISTORY = "conversation.history"
    EXTERNAL_SOURCES_SEARCH = "externalSources.search"


class NotificationType(str, Enum):
    """Known notification types."""
    NOTE_CREATED = "notes.created"
    NOTE_UPDATED = "notes.updated"
    NOTE_DELETED = "notes.deleted"
    PROFILE_UPDATED = "profile.updated"
    CONVERSATION_STARTED = "conversation.started"
    CONVERSATION_CLEARED = "conversation.cleared"
    CONVERSATION_TURN_ADDED = "conversation.turnAdded"
    EXTERNAL_SOURCES_STATUS = "externalSources.statusChanged"


class BaseMessage(BaseModel):
    """Fields shared by every message; serializes to the camelCase wire shape."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    source_context: str
    target_context: str
    timestamp: datetime = Field(default_factory=datetime.now)

    @field_validator("source_context", "target_context", mode="before")
    @classmethod
    def unwrap_context(cls, value: Any) -> Any:
        return plain_value(value)


class RequestMessage(BaseMessage):
    """Request for data from another context."""
    category: Literal[MessageCategory.REQUEST] = MessageCategory.REQUEST
    data_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data_type", mode="before")
    @classmethod
    def unwrap_data_type(cls, value: Any) -> Any:
        return plain_value(value)


class NotificationMessage(BaseMessage):
    """Fan-out event from one context to its listeners."""
    category: Literal[MessageCategory.NOTIFICATION] = MessageCategory.NOTIFICATION
    notification_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("notification_type", mode="before")
    @classmethod
    def unwrap_notification_type(cls, value: Any) -> Any:
        return plain_value(value)


class AcknowledgmentMessage(BaseMessage):
    """Successful reply; carries the response data for requests."""
    category: Literal[MessageCategory.ACKNOWLEDGMENT] = MessageCategory.ACKNOWLEDGMENT
    request_id: str
    payload: Optional[Dict[str, Any]] = None


class ErrorMessage(BaseMessage):
    """Typed failure reply."""
    category: Literal[MessageCategory.ERROR] = MessageCategory.ERROR
    request_id: Optional[str] = None
    code: ErrorCode
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


Message = Annotated[
    Union[RequestMessage, NotificationMessage, AcknowledgmentMessage, ErrorMessage],
    Field(discriminator="category"),
]

_message_adapter = TypeAdapter(Message)


def parse_message(data: Dict[str, Any]) -> Message:
    """
    Parse a wire-shaped dictionary into a typed message.

    Raises:
        InvalidMessageError: If the correlation id is missing
        pydantic.ValidationError: If the category or fields are malformed
    """
    if not data.get("id"):
        raise InvalidMessageError("Message is missing its correlation id", {"message": data})
    return _message_adapter.validate_python(data)
