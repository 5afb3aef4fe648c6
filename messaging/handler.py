"""Base class for context message handlers."""

import logging
from abc import ABC
from typing import Awaitable, Callable, FrozenSet, Optional, assert_never

from errors import ErrorCode
from .factory import MessageFactory
from .messages import (
    AcknowledgmentMessage,
    ErrorMessage,
    Message,
    MessageCategory,
    NotificationMessage,
    RequestMessage,
)

logger = logging.getLogger(__name__)


class MessageHandler(ABC):
    """Receives messages routed to one context.

    Subclasses override `handle_request` and/or `handle_notification`.
    Handlers may be invoked concurrently and must not assume exclusive
    access to their context.
    """

    accepted_categories: FrozenSet[MessageCategory] = frozenset({
        MessageCategory.REQUEST,
        MessageCategory.NOTIFICATION,
    })

    def __init__(self, context_id: str):
        self.context_id = context_id

    def accepts(self, category: MessageCategory) -> bool:
        """Whether this handler takes messages of the given category."""
        return category in self.accepted_categories

    async def handle(self, message: Message) -> Optional[Message]:
        """Dispatch a message to the matching category hook."""
        if isinstance(message, RequestMessage):
            return await self.handle_request(message)
        elif isinstance(message, NotificationMessage):
            return await self.handle_notification(message)
        elif isinstance(message, (AcknowledgmentMessage, ErrorMessage)):
            logger.warning(
                f"{self.context_id} received unexpected {message.category.value} message {message.id}"
            )
            return MessageFactory.create_error_response(
                source_context=self.context_id,
                target_context=message.source_context,
                request_id=message.id,
                code=ErrorCode.INVALID_MESSAGE_FORMAT,
                message=f"Context {self.context_id} does not accept {message.category.value} messages",
            )
        else:
            assert_never(message)

    async def handle_request(self, request: RequestMessage) -> Message:
        """Answer a request. Default: the data type is unsupported."""
        return self.unsupported(request)

    async def handle_notification(
        self,
        notification: NotificationMessage
    ) -> Optional[AcknowledgmentMessage]:
        """React to a notification. Default: acknowledge without action."""
        return MessageFactory.create_acknowledgment(notification, self.context_id)

    def unsupported(self, request: RequestMessage) -> ErrorMessage:
        """Error reply for a data type this handler does not serve."""
        return MessageFactory.create_error_reply(
            request,
            ErrorCode.UNSUPPORTED_DATA_TYPE,
            f"Context {self.context_id} does not support data type {request.data_type}",
            {"data_type": request.data_type},
        )


RequestCallback = Callable[[RequestMessage], Awaitable[Message]]
NotificationCallback = Callable[[NotificationMessage], Awaitable[Optional[AcknowledgmentMessage]]]


class CallbackHandler(MessageHandler):
    """Handler assembled from plain coroutine functions."""

    def __init__(
        self,
        context_id: str,
        on_request: Optional[RequestCallback] = None,
        on_notification: Optional[NotificationCallback] = None
    ):
        super().__init__(context_id)
        self._on_request = on_request
        self._on_notification = on_notification

        categories = set()
        if on_request is not None:
            categories.add(MessageCategory.REQUEST)
        if on_notification is not None:
            categories.add(MessageCategory.NOTIFICATION)
        self.accepted_categories = frozenset(categories)

    async def handle_request(self, request: RequestMessage) -> Message:
        if self._on_request is None:
            return self.unsupported(request)
        return await self._on_request(request)

    async def handle_notification(
        self,
        notification: NotificationMessage
    ) -> Optional[AcknowledgmentMessage]:
        if self._on_notification is None:
            return None
        return await self._on_notification(notification)
