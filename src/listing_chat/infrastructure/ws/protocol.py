"""WebSocket message envelope models and event names."""
from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from listing_chat.domain.entities.message import MAX_CONTENT_LENGTH


class ClientSignal(StrEnum):
    JOIN_CONVERSATION = "join_conversation"
    LEAVE_CONVERSATION = "leave_conversation"
    TYPING = "typing"
    STOP_TYPING = "stop_typing"
    MARK_READ = "mark_read"
    CHECK_ONLINE_STATUS = "check_online_status"
    SEND_MESSAGE = "send_message"
    PING = "ping"


class ServerEvent(StrEnum):
    INITIAL_DATA = "initial_data"
    UNREAD_COUNT = "unread_count"
    NEW_MESSAGE = "new_message"
    MESSAGE_NOTIFICATION = "message_notification"
    NEW_CONVERSATION = "new_conversation"
    MESSAGES_READ = "messages_read"
    USER_TYPING = "user_typing"
    USER_STOP_TYPING = "user_stop_typing"
    USER_ONLINE = "user_online"
    USER_OFFLINE = "user_offline"
    JOINED_CONVERSATION = "joined_conversation"
    USER_JOINED_CONVERSATION = "user_joined_conversation"
    USER_LEFT_CONVERSATION = "user_left_conversation"
    CONVERSATION_DELETED = "conversation_deleted"
    ONLINE_STATUS_UPDATE = "online_status_update"
    ERROR = "error"
    PONG = "pong"


class WsInbound(BaseModel):
    """Client → Server."""

    type: str
    data: Any = None


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str
    data: Any = {}


class ConversationSignal(BaseModel):
    """Payload of every conversation-scoped signal.

    Clients may send either ``{"conversationId": "..."}`` or the bare id.
    """

    model_config = ConfigDict(populate_by_name=True)

    conversation_id: UUID = Field(alias="conversationId")

    @classmethod
    def parse(cls, data: Any) -> ConversationSignal:
        if isinstance(data, str):
            data = {"conversationId": data}
        return cls.model_validate(data)


class SendMessageSignal(ConversationSignal):
    content: Annotated[
        str,
        StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_CONTENT_LENGTH),
    ]


class OnlineStatusQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_ids: list[UUID] = Field(alias="userIds", max_length=200)

    @classmethod
    def parse(cls, data: Any) -> OnlineStatusQuery:
        if isinstance(data, list):
            data = {"userIds": data}
        return cls.model_validate(data)
