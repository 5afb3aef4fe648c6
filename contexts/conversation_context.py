"""Conversation context: tracks the current room and persists its turns."""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from errors import ErrorCode
from memory import Conversation, ConversationMemoryStore, ConversationTurn, InterfaceType
from messaging import (
    ContextId,
    DataRequestType,
    Message,
    MessageFactory,
    MessageHandler,
    NotificationType,
    RequestMessage,
)
from messaging.schema_registry import ConversationHistoryParams
from .base import BaseContext

logger = logging.getLogger(__name__)


class ConversationContext(BaseContext):
    """
    Current-conversation state over the tiered memory store.

    One conversation is "current" at a time; it is bound to a room and
    receives every saved turn until the room changes or it is ended.
    """

    context_id = ContextId.CONVERSATIONS.value
    DEFAULT_ROOM_ID = "default"

    def __init__(
        self,
        memory: ConversationMemoryStore,
        mediator=None,
        interface_type: InterfaceType = InterfaceType.CLI,
        room_id: Optional[str] = None
    ):
        super().__init__(mediator)
        self.memory = memory
        self.interface_type = interface_type
        self._current_room_id = room_id
        self._current_conversation_id: Optional[str] = None

    # Current conversation

    @property
    def current_room_id(self) -> Optional[str]:
        return self._current_room_id

    @property
    def current_conversation_id(self) -> Optional[str]:
        return self._current_conversation_id

    def has_active_conversation(self) -> bool:
        return self._current_conversation_id is not None

    def get_anchor_name(self) -> str:
        return self.memory.anchor_name

    def is_anchor(self, user_id: Optional[str]) -> bool:
        return bool(self.memory.anchor_id) and user_id == self.memory.anchor_id

    async def set_current_room(
        self,
        room_id: str,
        interface_type: Optional[InterfaceType] = None
    ) -> str:
        """
        Make a room's conversation current, creating it on first use.

        Returns:
            Conversation ID
        """
        interface_type = interface_type or self.interface_type
        existed = await self.memory.get_conversation_by_room_id(room_id, interface_type) is not None
        conversation_id = await self.memory.get_or_create_conversation_for_room(room_id, interface_type)

        self._current_room_id = room_id
        self._current_conversation_id = conversation_id
        logger.debug(f"Switched to room {room_id} with conversation {conversation_id}")

        if not existed:
            await self.publish(
                NotificationType.CONVERSATION_STARTED,
                {"conversation_id": conversation_id, "room_id": room_id, "interface_type": interface_type.value},
            )
        return conversation_id

    async def start_conversation(self, room_id: Optional[str] = None) -> str:
        """Start (or resume) the conversation for a room, defaulting to the current room."""
        return await self.set_current_room(room_id or self._current_room_id or self.DEFAULT_ROOM_ID)

    async def switch_conversation(self, conversation_id: str) -> bool:
        """Make an existing conversation current; False if it does not exist."""
        conversation = await self.memory.get_conversation(conversation_id)
        if conversation is None:
            logger.warning(f"Cannot switch to unknown conversation {conversation_id}")
            return False

        self._current_conversation_id = conversation.id
        self._current_room_id = conversation.room_id
        logger.debug(f"Switched to conversation {conversation.id} in room {conversation.room_id}")
        return True

    async def end_current_conversation(self):
        """Forget the current conversation; its history stays in memory."""
        conversation_id = self._current_conversation_id
        self._current_conversation_id = None
        if conversation_id:
            logger.debug(f"Ended conversation {conversation_id}")
            await self.publish(NotificationType.CONVERSATION_CLEARED, {"conversation_id": conversation_id})

    # Turns and history

    async def save_turn(
        self,
        query: str,
        response: str = "",
        user_id: Optional[str] = None,
        user_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        conversation_id: Optional[str] = None
    ) -> Conversation:
        """
        Append a turn to a conversation.

        Callers that resolved their conversation earlier pass its id, so a
        room switch by a concurrent caller cannot redirect the turn. Without
        an id the current conversation is used, starting one if needed.

        Raises:
            ConversationNotFoundError: If the conversation was deleted
        """
        if conversation_id is None:
            if self._current_conversation_id is None:
                await self.start_conversation()
            conversation_id = self._current_conversation_id

        turn = ConversationTurn(
            query=query,
            response=response,
            user_id=user_id,
            user_name=user_name,
            metadata=metadata or {},
        )
        conversation = await self.memory.add_turn(conversation_id, turn)

        await self.publish(
            NotificationType.CONVERSATION_TURN_ADDED,
            {
                "conversation_id": conversation.id,
                "user_id": user_id,
                "turn_count": conversation.total_turns,
            },
        )
        return conversation

    async def get_conversation_history(
        self,
        max_length: Optional[int] = None,
        conversation_id: Optional[str] = None
    ) -> str:
        """Prompt-ready history of a conversation (the current one by default)."""
        conversation_id = conversation_id or self._current_conversation_id
        if conversation_id is None:
            return ""
        return await self.memory.format_history_for_prompt(conversation_id, max_length)

    async def get_conversation(self, conversation_id: Optional[str] = None) -> Optional[Conversation]:
        conversation_id = conversation_id or self._current_conversation_id
        if conversation_id is None:
            return None
        return await self.memory.get_conversation(conversation_id)

    async def get_recent_conversations(self, limit: int = 10) -> List[Conversation]:
        """Recent conversations for this context's interface."""
        return await self.memory.get_recent_conversations(limit=limit, interface_type=self.interface_type)

    def create_handler(self) -> MessageHandler:
        return ConversationMessageHandler(self)


class ConversationMessageHandler(MessageHandler):
    """Serves conversation.history requests."""

    def __init__(self, context: ConversationContext):
        super().__init__(context.context_id)
        self.context = context

    async def handle_request(self, request: RequestMessage) -> Message:
        if request.data_type != DataRequestType.CONVERSATION_HISTORY.value:
            return self.unsupported(request)

        try:
            params = ConversationHistoryParams.model_validate(request.payload)
        except ValidationError as e:
            return MessageFactory.create_error_reply(
                request,
                ErrorCode.VALIDATION_ERROR,
                f"Invalid parameters for {request.data_type}",
                {"errors": e.errors(include_url=False)},
            )

        conversation_id = params.conversation_id or self.context.current_conversation_id
        if conversation_id is None:
            return MessageFactory.create_error_reply(
                request,
                ErrorCode.CONVERSATION_NOT_FOUND,
                "No active conversation",
            )

        conversation = await self.context.get_conversation(conversation_id)
        if conversation is None:
            return MessageFactory.create_error_reply(
                request,
                ErrorCode.CONVERSATION_NOT_FOUND,
                f"Conversation {conversation_id} not found",
                {"conversation_id": conversation_id},
            )

        history = await self.context.get_conversation_history(params.max_length, conversation_id)
        return MessageFactory.create_success_response(
            request,
            {"conversation_id": conversation_id, "history": history, "turn_count": conversation.total_turns},
        )
