"""Message mediation between contexts."""

from .messages import (
    BROADCAST,
    AcknowledgmentMessage,
    ContextId,
    DataRequestType,
    ErrorMessage,
    Message,
    MessageCategory,
    NotificationMessage,
    NotificationType,
    RequestMessage,
    parse_message,
)
from .factory import MessageFactory
from .handler import MessageHandler, CallbackHandler
from .schema_registry import SchemaRegistry, create_default_registry
from .mediator import ContextMediator

__all__ = [
    "BROADCAST",
    "AcknowledgmentMessage",
    "ContextId",
    "DataRequestType",
    "ErrorMessage",
    "Message",
    "MessageCategory",
    "NotificationMessage",
    "NotificationType",
    "RequestMessage",
    "parse_message",
    "MessageFactory",
    "MessageHandler",
    "CallbackHandler",
    "SchemaRegistry",
    "create_default_registry",
    "ContextMediator",
]
