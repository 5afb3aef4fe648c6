"""In-process mediator routing messages between contexts."""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from pydantic import ValidationError

from errors import ErrorCode, InvalidMessageError
from .factory import MessageFactory
from .handler import MessageHandler
from .messages import (
    BROADCAST,
    AcknowledgmentMessage,
    ErrorMessage,
    Message,
    MessageCategory,
    NotificationMessage,
    RequestMessage,
    parse_message,
    plain_value,
)
from .schema_registry import SchemaRegistry

logger = logging.getLogger(__name__)


class ContextMediator:
    """
    Routes requests and notifications between named contexts.

    Routing failures come back as ErrorMessage values rather than
    exceptions. The only thing that raises is a message without a
    correlation id, which is a caller bug.
    """

    MEDIATOR_ID = "mediator"

    def __init__(
        self,
        timeout: float = 30.0,
        schema_registry: Optional[SchemaRegistry] = None
    ):
        """
        Initialize mediator.

        Args:
            timeout: Seconds a handler may take before the call is abandoned
            schema_registry: Optional request parameter validation
        """
        self.timeout = timeout
        self.schema_registry = schema_registry
        self._handlers: Dict[str, MessageHandler] = {}
        self._subscriptions: Dict[str, Set[str]] = {}

    # Registration

    def register_handler(self, context_id: str, handler: MessageHandler):
        """Bind a handler to a context id, replacing any previous one."""
        context_id = plain_value(context_id)
        if context_id in self._handlers:
            logger.warning(f"Replacing existing handler for context {context_id}")
        self._handlers[context_id] = handler
        logger.debug(f"Registered handler for context {context_id}")

    def unregister_handler(self, context_id: str) -> bool:
        """Remove a context's handler and its subscriptions."""
        context_id = plain_value(context_id)
        removed = self._handlers.pop(context_id, None) is not None
        for subscribers in self._subscriptions.values():
            subscribers.discard(context_id)
        if removed:
            logger.debug(f"Unregistered handler for context {context_id}")
        return removed

    def subscribe(self, context_id: str, notification_type: str):
        """Restrict a context to (an additional) notification type."""
        self._subscriptions.setdefault(plain_value(notification_type), set()).add(plain_value(context_id))

    def unsubscribe(self, context_id: str, notification_type: str):
        """Drop a notification type subscription."""
        subscribers = self._subscriptions.get(plain_value(notification_type))
        if subscribers:
            subscribers.discard(plain_value(context_id))

    def get_registered_contexts(self) -> List[str]:
        """Ids of all contexts with a handler."""
        return list(self._handlers.keys())

    def get_subscribers(self, notification_type: str) -> List[str]:
        """Contexts explicitly subscribed to a notification type."""
        return sorted(self._subscriptions.get(plain_value(notification_type), set()))

    def _has_subscriptions(self, context_id: str) -> bool:
        return any(context_id in subscribers for subscribers in self._subscriptions.values())

    # Routing

    def _coerce(
        self,
        message: Union[Message, Dict[str, Any]]
    ) -> Tuple[Optional[Message], Optional[ErrorMessage]]:
        """Turn wire dictionaries into typed messages.

        Returns the typed message, or the rejection error when the
        dictionary matches no known category.
        """
        if isinstance(message, dict):
            try:
                return parse_message(message), None
            except ValidationError as e:
                logger.warning(f"Rejected malformed message {message.get('id')}: {e}")
                return None, MessageFactory.create_error_response(
                    source_context=self.MEDIATOR_ID,
                    target_context=str(message.get("sourceContext", "unknown")),
                    request_id=message.get("id"),
                    code=ErrorCode.INVALID_MESSAGE_FORMAT,
                    message="Message does not match any known category",
                    details={"errors": e.errors(include_url=False)},
                )
        if not message.id:
            raise InvalidMessageError("Message is missing its correlation id")
        return message, None

    async def send_request(self, message: Union[Message, Dict[str, Any]]) -> Message:
        """
        Route a request to its target context and await the reply.

        Args:
            message: Request message (typed or wire dictionary)

        Returns:
            The handler's reply, or an ErrorMessage describing why routing failed

        Raises:
            InvalidMessageError: If the message has no correlation id
        """
        coerced, rejection = self._coerce(message)
        if rejection is not None:
            return rejection

        if not isinstance(coerced, RequestMessage):
            return MessageFactory.create_error_response(
                source_context=self.MEDIATOR_ID,
                target_context=coerced.source_context,
                request_id=coerced.id,
                code=ErrorCode.INVALID_MESSAGE_FORMAT,
                message=f"send_request expects a request, got {coerced.category.value}",
            )
        request = coerced

        handler = self._handlers.get(request.target_context)
        if handler is None:
            logger.warning(f"No handler registered for context {request.target_context}")
            return MessageFactory.create_error_response(
                source_context=self.MEDIATOR_ID,
                target_context=request.source_context,
                request_id=request.id,
                code=ErrorCode.NO_HANDLER,
                message=f"No handler registered for context {request.target_context}",
                details={"target_context": request.target_context},
            )

        if not handler.accepts(MessageCategory.REQUEST):
            return MessageFactory.create_error_response(
                source_context=self.MEDIATOR_ID,
                target_context=request.source_context,
                request_id=request.id,
                code=ErrorCode.INVALID_MESSAGE_FORMAT,
                message=f"Context {request.target_context} does not accept requests",
            )

        if self.schema_registry is not None:
            try:
                self.schema_registry.validate_request_parameters(request.data_type, request.payload)
            except ValidationError as e:
                return MessageFactory.create_error_response(
                    source_context=self.MEDIATOR_ID,
                    target_context=request.source_context,
                    request_id=request.id,
                    code=ErrorCode.VALIDATION_ERROR,
                    message=f"Invalid parameters for {request.data_type}",
                    details={"errors": e.errors(include_url=False)},
                )

        try:
            response = await asyncio.wait_for(handler.handle(request), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Handler for {request.target_context} timed out after {self.timeout}s")
            return MessageFactory.create_error_response(
                source_context=self.MEDIATOR_ID,
                target_context=request.source_context,
                request_id=request.id,
                code=ErrorCode.TIMEOUT,
                message=f"Handler for {request.target_context} timed out after {self.timeout}s",
            )
        except Exception as e:
            logger.error(f"Handler for {request.target_context} failed on {request.data_type}: {e}")
            return MessageFactory.create_error_response(
                source_context=self.MEDIATOR_ID,
                target_context=request.source_context,
                request_id=request.id,
                code=ErrorCode.HANDLER_ERROR,
                message=str(e),
                details={"exception": type(e).__name__},
            )

        if response is None:
            return MessageFactory.create_error_response(
                source_context=self.MEDIATOR_ID,
                target_context=request.source_context,
                request_id=request.id,
                code=ErrorCode.HANDLER_ERROR,
                message=f"Handler for {request.target_context} returned no response",
            )
        return response

    def _notification_recipients(self, notification: NotificationMessage) -> List[str]:
        if notification.target_context != BROADCAST:
            candidates = [notification.target_context]
        else:
            candidates = [cid for cid in self._handlers if cid != notification.source_context]

        subscribers = self._subscriptions.get(notification.notification_type, set())
        recipients = []
        for context_id in candidates:
            handler = self._handlers.get(context_id)
            if handler is None or not handler.accepts(MessageCategory.NOTIFICATION):
                continue
            # Contexts that subscribed to anything only hear what they subscribed to
            if self._has_subscriptions(context_id) and context_id not in subscribers:
                continue
            recipients.append(context_id)
        return recipients

    async def _deliver(self, context_id: str, notification: NotificationMessage) -> Optional[str]:
        handler = self._handlers[context_id]
        try:
            reply = await asyncio.wait_for(handler.handle(notification), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Context {context_id} timed out handling {notification.notification_type}")
            return None
        except Exception as e:
            logger.error(f"Context {context_id} failed handling {notification.notification_type}: {e}")
            return None
        return context_id if isinstance(reply, AcknowledgmentMessage) else None

    async def send_notification(self, message: Union[Message, Dict[str, Any]]) -> List[str]:
        """
        Deliver a notification and wait for every recipient to finish.

        Args:
            message: Notification message (typed or wire dictionary)

        Returns:
            Ids of the contexts that acknowledged

        Raises:
            InvalidMessageError: If the message has no correlation id
        """
        coerced, rejection = self._coerce(message)
        if not isinstance(coerced, NotificationMessage):
            logger.warning(f"send_notification ignored message {coerced.id if coerced else rejection.request_id}")
            return []

        recipients = self._notification_recipients(coerced)
        if not recipients:
            logger.debug(f"No recipients for {coerced.notification_type}")
            return []

        results = await asyncio.gather(*(self._deliver(cid, coerced) for cid in recipients))
        acknowledged = [cid for cid in results if cid is not None]
        logger.debug(
            f"Notification {coerced.notification_type} acknowledged by {len(acknowledged)}/{len(recipients)} contexts"
        )
        return acknowledged
