"""Shared plumbing for mediator-connected contexts."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from errors import ErrorCode, MessageRoutingError
from messaging import ContextMediator, ErrorMessage, MessageFactory, MessageHandler

logger = logging.getLogger(__name__)


class BaseContext(ABC):
    """
    A context owns one slice of the assistant's state.

    Contexts never call each other directly for events; they publish
    notifications through the mediator they were constructed with.
    """

    context_id: str = ""

    def __init__(self, mediator: Optional[ContextMediator] = None):
        self.mediator = mediator

    @abstractmethod
    def create_handler(self) -> MessageHandler:
        """Build the handler the mediator routes this context's messages to."""
        pass

    async def publish(
        self,
        notification_type: str,
        payload: Optional[Dict[str, Any]] = None
    ) -> List[str]:
        """
        Broadcast a notification to the other contexts.

        Returns:
            Ids of the contexts that acknowledged (empty without a mediator)
        """
        if self.mediator is None:
            return []

        notification = MessageFactory.create_notification(
            source_context=self.context_id,
            notification_type=notification_type,
            payload=payload,
        )
        acknowledged = await self.mediator.send_notification(notification)
        logger.debug(f"{self.context_id} published {notification.notification_type} to {acknowledged}")
        return acknowledged

    async def request(
        self,
        target_context: str,
        data_type: str,
        payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Ask another context for data.

        Returns:
            The payload of the acknowledgment

        Raises:
            MessageRoutingError: Without a mediator, or when the reply is an error
        """
        if self.mediator is None:
            raise MessageRoutingError(
                f"{self.context_id} has no mediator to reach {target_context}",
                ErrorCode.NO_HANDLER,
                {"target_context": target_context, "data_type": data_type},
            )

        request = MessageFactory.create_data_request(self.context_id, target_context, data_type, payload)
        reply = await self.mediator.send_request(request)
        if isinstance(reply, ErrorMessage):
            raise MessageRoutingError(
                reply.message,
                reply.code,
                {**reply.details, "target_context": target_context, "data_type": data_type},
            )
        return reply.payload or {}
