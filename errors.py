"""Error taxonomy for the knowledge assistant."""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Standard error codes."""
    # Startup
    CONFIGURATION = "CONFIGURATION_ERROR"
    NOT_READY = "NOT_READY"

    # Message routing (the mediator replies with these as ErrorMessage)
    NO_HANDLER = "NO_HANDLER"
    INVALID_MESSAGE_FORMAT = "INVALID_MESSAGE_FORMAT"
    UNSUPPORTED_DATA_TYPE = "UNSUPPORTED_DATA_TYPE"
    HANDLER_ERROR = "HANDLER_ERROR"
    TIMEOUT = "TIMEOUT"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Memory
    CONVERSATION_NOT_FOUND = "CONVERSATION_NOT_FOUND"

    # Pipeline
    RETRIEVAL_DEGRADED = "RETRIEVAL_DEGRADED"
    MODEL_INVOCATION = "MODEL_INVOCATION_ERROR"

    INTERNAL = "INTERNAL_ERROR"


class AssistantError(Exception):
    """Base exception for knowledge assistant errors."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert error to a plain dictionary."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(AssistantError):
    """Contexts failed to construct at startup."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION, details)


class NotReadyError(AssistantError):
    """A context was accessed before the context manager became ready."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, ErrorCode.NOT_READY, details)


class MessageRoutingError(AssistantError):
    """A request sent through the mediator came back as an ErrorMessage.

    The mediator itself never raises for routing failures; it replies with a
    typed error. `BaseContext.request` raises this for callers that want the
    reply payload directly.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.HANDLER_ERROR,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code, details)


class InvalidMessageError(AssistantError):
    """Structurally malformed message, e.g. missing correlation id."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, ErrorCode.INVALID_MESSAGE_FORMAT, details)


class ConversationNotFoundError(AssistantError):
    """Mutation attempted on a conversation that does not exist."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(
            f"Conversation with ID {conversation_id} not found",
            ErrorCode.CONVERSATION_NOT_FOUND,
            {"conversation_id": conversation_id},
        )
        self.conversation_id = conversation_id


class RetrievalDegradation(AssistantError):
    """Soft retrieval failure; the pipeline logs it and continues."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, ErrorCode.RETRIEVAL_DEGRADED, details)


class ModelInvocationError(AssistantError):
    """The model call failed or timed out; aborts the query."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, ErrorCode.MODEL_INVOCATION, details)
