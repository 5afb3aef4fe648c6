"""Factory helpers for building mediator messages."""

import uuid
from typing import Any, Dict, Optional

from errors import ErrorCode
from .messages import (
    BROADCAST,
    AcknowledgmentMessage,
    ErrorMessage,
    NotificationMessage,
    RequestMessage,
)


def new_message_id() -> str:
    """Generate a unique correlation id."""
    return str(uuid.uuid4())


class MessageFactory:
    """Builds messages with fresh ids and consistent addressing."""

    @staticmethod
    def create_data_request(
        source_context: str,
        target_context: str,
        data_type: str,
        payload: Optional[Dict[str, Any]] = None
    ) -> RequestMessage:
        """Create a data request."""
        return RequestMessage(
            id=new_message_id(),
            source_context=source_context,
            target_context=target_context,
            data_type=data_type,
            payload=payload or {},
        )

    @staticmethod
    def create_data_response(
        source_context: str,
        target_context: str,
        request_id: str,
        payload: Optional[Dict[str, Any]] = None
    ) -> AcknowledgmentMessage:
        """Create a successful data response for a request id."""
        return AcknowledgmentMessage(
            id=new_message_id(),
            source_context=source_context,
            target_context=target_context,
            request_id=request_id,
            payload=payload or {},
        )

    @staticmethod
    def create_success_response(
        request: RequestMessage,
        payload: Optional[Dict[str, Any]] = None
    ) -> AcknowledgmentMessage:
        """Reply to a request with data, swapping source and target."""
        return MessageFactory.create_data_response(
            source_context=request.target_context,
            target_context=request.source_context,
            request_id=request.id,
            payload=payload,
        )

    @staticmethod
    def create_error_response(
        source_context: str,
        target_context: str,
        request_id: Optional[str],
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ) -> ErrorMessage:
        """Create a typed error response."""
        return ErrorMessage(
            id=new_message_id(),
            source_context=source_context,
            target_context=target_context,
            request_id=request_id,
            code=code,
            message=message,
            details=details or {},
        )

    @staticmethod
    def create_error_reply(
        request: RequestMessage,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ) -> ErrorMessage:
        """Reply to a request with a typed error."""
        return MessageFactory.create_error_response(
            source_context=request.target_context,
            target_context=request.source_context,
            request_id=request.id,
            code=code,
            message=message,
            details=details,
        )

    @staticmethod
    def create_notification(
        source_context: str,
        notification_type: str,
        payload: Optional[Dict[str, Any]] = None,
        target_context: str = BROADCAST
    ) -> NotificationMessage:
        """Create a notification; broadcast unless a target is given."""
        return NotificationMessage(
            id=new_message_id(),
            source_context=source_context,
            target_context=target_context,
            notification_type=notification_type,
            payload=payload or {},
        )

    @staticmethod
    def create_acknowledgment(
        notification: NotificationMessage,
        source_context: str
    ) -> AcknowledgmentMessage:
        """Acknowledge receipt of a notification."""
        return AcknowledgmentMessage(
            id=new_message_id(),
            source_context=source_context,
            target_context=notification.source_context,
            request_id=notification.id,
        )
