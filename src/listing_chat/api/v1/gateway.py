"""Realtime gateway: connection lifecycle, client signals and server events."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable
from uuid import UUID

from fastapi import WebSocket
from pydantic import ValidationError as PayloadError

from listing_chat.api.v1.schemas.conversation import ConversationResponse
from listing_chat.api.v1.schemas.message import MessageResponse
from listing_chat.api.v1.schemas.user import ListingSummaryResponse, UserSummaryResponse
from listing_chat.application.dto.conversation import StartedConversation
from listing_chat.application.dto.message import ReadReceipt, SentMessage
from listing_chat.application.dto.principal import Principal
from listing_chat.application.exceptions import AppError, ForbiddenError, NotFoundError
from listing_chat.application.policies.permissions import ConversationAccessPolicy
from listing_chat.application.policies.throttling import assert_can_send
from listing_chat.application.ports.auth import TokenVerifier
from listing_chat.application.ports.clock import Clock, system_clock
from listing_chat.application.ports.rate_limit import RateLimiter
from listing_chat.application.uow import UoWFactory
from listing_chat.domain.entities.conversation import Conversation
from listing_chat.domain.entities.user import UserSummary
from listing_chat.domain.value_objects.enums import ConnectionState
from listing_chat.infrastructure.ws.manager import Connection, ConnectionManager
from listing_chat.infrastructure.ws.presence import PresenceRegistry
from listing_chat.infrastructure.ws.protocol import (
    ClientSignal,
    ConversationSignal,
    OnlineStatusQuery,
    SendMessageSignal,
    ServerEvent,
    WsInbound,
)
from listing_chat.infrastructure.ws.rooms import RoomMembershipTracker
from listing_chat.infrastructure.ws.typing_indicator import TypingIndicatorTracker
from listing_chat.services import conversation_service, message_service, read_state_service

logger = logging.getLogger(__name__)

AUTH_FAILED_CLOSE_CODE = 4001
INTERNAL_ERROR_CLOSE_CODE = 1011

Handler = Callable[[Connection, Any], Awaitable[None]]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _user_payload(user: UserSummary | None) -> dict[str, Any] | None:
    return UserSummaryResponse.model_validate(user).to_wire() if user else None


class RealtimeGateway:
    """Owns every piece of realtime state for one process.

    Presence, room membership and typing state live here and nowhere else;
    REST handlers reach them only through the ``notify_*`` methods.
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        uow_factory: UoWFactory,
        *,
        typing_timeout: float = 3.0,
        rate_limiter: RateLimiter | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._verifier = verifier
        self._uow_factory = uow_factory
        self.rate_limiter = rate_limiter
        self._clock = clock
        self.presence = PresenceRegistry(clock)
        self.rooms = RoomMembershipTracker()
        self.manager = ConnectionManager(self.presence, self.rooms)
        self.typing = TypingIndicatorTracker(self.manager, timeout=typing_timeout)
        self.access = ConversationAccessPolicy(uow_factory)
        self._handlers: dict[str, Handler] = {
            ClientSignal.JOIN_CONVERSATION: self._on_join,
            ClientSignal.LEAVE_CONVERSATION: self._on_leave,
            ClientSignal.TYPING: self._on_typing,
            ClientSignal.STOP_TYPING: self._on_stop_typing,
            ClientSignal.MARK_READ: self._on_mark_read,
            ClientSignal.CHECK_ONLINE_STATUS: self._on_check_online_status,
            ClientSignal.SEND_MESSAGE: self._on_send_message,
            ClientSignal.PING: self._on_ping,
        }

    async def authenticate(self, token: str | None) -> Principal | None:
        if not token:
            return None
        try:
            return await self._verifier.verify(token)
        except Exception:
            logger.debug("WS auth failed", exc_info=True)
            return None

    async def connect(self, websocket: WebSocket, token: str | None) -> Connection | None:
        """Authenticate, accept and register a socket.

        Returns None when the socket was refused; nothing is registered in
        that case.
        """
        principal = await self.authenticate(token)
        if principal is None:
            await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason="Authentication failed")
            return None

        conn = Connection(
            id=uuid.uuid4().hex,
            websocket=websocket,
            principal=principal,
            state=ConnectionState.AUTHENTICATED,
            connected_at=self._clock.now(),
        )
        user_id = principal.user_id
        try:
            async with self._uow_factory() as uow:
                conversation_ids = await conversation_service.list_conversation_ids(user_id, uow)
                unread = await read_state_service.unread_count(user_id, uow)
                conn.user = await uow.users.get_summary(user_id)
        except Exception:
            logger.exception("WS snapshot load failed for %s", user_id)
            await websocket.close(code=INTERNAL_ERROR_CLOSE_CODE, reason="Internal error")
            return None

        await websocket.accept()
        self.manager.add(conn)
        conn.state = ConnectionState.ACTIVE
        first = self.presence.connect(user_id, conn.id)
        self.rooms.join_many(conn.id, conversation_ids)
        logger.info(
            "WS user %s connected as %s (%d conversations)",
            user_id, conn.id, len(conversation_ids),
        )

        if first:
            await self.manager.send_to_all(
                ServerEvent.USER_ONLINE, {"userId": str(user_id)}, exclude_user=user_id,
            )
        await self.manager.send_to_connection(
            conn.id,
            ServerEvent.INITIAL_DATA,
            {
                "conversations": [str(cid) for cid in conversation_ids],
                "onlineUsers": [str(uid) for uid in self.presence.list_online()],
            },
        )
        await self.manager.send_to_connection(conn.id, ServerEvent.UNREAD_COUNT, {"count": unread})
        return conn

    async def disconnect(self, conn: Connection) -> None:
        if conn.state == ConnectionState.CLOSED:
            return
        conn.state = ConnectionState.CLOSED
        user_id = conn.user_id

        for conversation_id in self.rooms.rooms_for(conn.id):
            await self.typing.stop(conversation_id, user_id)
        self.rooms.leave_all(conn.id)
        self.manager.remove(conn.id)
        logger.info(
            "WS %s closed for user %s after %.1fs",
            conn.id, user_id, (self._clock.now() - conn.connected_at).total_seconds(),
        )

        if self.presence.disconnect(user_id, conn.id):
            await self.typing.clear_user(user_id)
            await self.manager.send_to_all(
                ServerEvent.USER_OFFLINE, {"userId": str(user_id)}, exclude_user=user_id,
            )
            logger.info("WS user %s went offline", user_id)

    def shutdown(self) -> None:
        self.typing.shutdown()

    async def handle(self, conn: Connection, raw: str | None) -> None:
        """Dispatch one client frame. Failures go back to this connection only.

        ``raw`` is None for frames that carry no text, e.g. binary ones.
        """
        if raw is None:
            await self._error(conn, "Invalid payload")
            return
        try:
            signal = WsInbound.model_validate_json(raw)
        except PayloadError:
            await self._error(conn, "Invalid payload")
            return

        handler = self._handlers.get(signal.type)
        if handler is None:
            await self._error(conn, f"Unknown event type: {signal.type}")
            return

        try:
            await handler(conn, signal.data)
        except PayloadError:
            await self._error(conn, f"Invalid payload for {signal.type}")
        except (NotFoundError, ForbiddenError) as exc:
            logger.info("WS %s denied for %s: %s", signal.type, conn.user_id, exc.detail)
            await self._error(conn, "Conversation not found", code=NotFoundError.code)
        except AppError as exc:
            await self._error(conn, exc.detail, code=exc.code)
        except Exception:
            logger.exception("WS %s failed for %s", signal.type, conn.user_id)
            await self._error(conn, "Internal error")

    async def _on_join(self, conn: Connection, data: Any) -> None:
        conversation_id = ConversationSignal.parse(data).conversation_id
        if not await self.access.can_access(conversation_id, conn.user_id):
            return
        if not self.manager.is_active(conn.id):
            return
        joined = self.rooms.join(conn.id, conversation_id)
        await self.manager.send_to_connection(
            conn.id, ServerEvent.JOINED_CONVERSATION, {"conversationId": str(conversation_id)},
        )
        if joined:
            await self.manager.send_to_room(
                conversation_id,
                ServerEvent.USER_JOINED_CONVERSATION,
                {"conversationId": str(conversation_id), "userId": str(conn.user_id)},
                exclude_user=conn.user_id,
            )

    async def _on_leave(self, conn: Connection, data: Any) -> None:
        conversation_id = ConversationSignal.parse(data).conversation_id
        left = self.rooms.leave(conn.id, conversation_id)
        await self.typing.stop(conversation_id, conn.user_id)
        if left:
            await self.manager.send_to_room(
                conversation_id,
                ServerEvent.USER_LEFT_CONVERSATION,
                {"conversationId": str(conversation_id), "userId": str(conn.user_id)},
                exclude_user=conn.user_id,
            )

    async def _on_typing(self, conn: Connection, data: Any) -> None:
        conversation_id = ConversationSignal.parse(data).conversation_id
        if not await self.access.can_access(conversation_id, conn.user_id):
            return
        if not self.manager.is_active(conn.id):
            return
        await self.typing.start(conversation_id, conn.user_id, _user_payload(conn.user))

    async def _on_stop_typing(self, conn: Connection, data: Any) -> None:
        conversation_id = ConversationSignal.parse(data).conversation_id
        if not await self.access.can_access(conversation_id, conn.user_id):
            return
        await self.typing.stop(conversation_id, conn.user_id)

    async def _on_mark_read(self, conn: Connection, data: Any) -> None:
        conversation_id = ConversationSignal.parse(data).conversation_id
        if not await self.access.can_access(conversation_id, conn.user_id):
            return
        async with self._uow_factory() as uow:
            receipt = await read_state_service.mark_read(conversation_id, conn.user_id, uow)
        await self.notify_messages_read(receipt)

    async def _on_check_online_status(self, conn: Connection, data: Any) -> None:
        query = OnlineStatusQuery.parse(data)
        statuses = [
            {
                "userId": str(uid),
                "isOnline": self.presence.is_online(uid),
                "onlineSince": _iso(self.presence.online_since(uid)),
            }
            for uid in query.user_ids
        ]
        await self.manager.send_to_connection(conn.id, ServerEvent.ONLINE_STATUS_UPDATE, statuses)

    async def _on_send_message(self, conn: Connection, data: Any) -> None:
        signal = SendMessageSignal.model_validate(data)
        if self.rate_limiter is not None:
            await assert_can_send(self.rate_limiter, conn.user_id)
        async with self._uow_factory() as uow:
            sent = await message_service.send_message(
                signal.conversation_id, conn.user_id, signal.content, uow,
            )
        await self.typing.stop(signal.conversation_id, conn.user_id)
        await self.notify_new_message(sent)

    async def _on_ping(self, conn: Connection, data: Any) -> None:
        await self.manager.send_to_connection(conn.id, ServerEvent.PONG, {})

    async def _error(self, conn: Connection, message: str, *, code: str = "error") -> None:
        await self.manager.send_to_connection(
            conn.id, ServerEvent.ERROR, {"message": message, "code": code},
        )

    async def notify_new_conversation(self, started: StartedConversation, sender_id: UUID) -> None:
        conversation = started.detail.conversation
        recipient_id = conversation.other_participant(sender_id)
        message = MessageResponse.from_message(started.message).to_wire()
        await self.manager.send_to_user(
            recipient_id,
            ServerEvent.NEW_CONVERSATION,
            {
                "conversation": ConversationResponse.from_detail(started.detail).to_wire(),
                "message": message,
            },
        )
        if not started.created:
            await self.manager.send_to_room(
                conversation.id,
                ServerEvent.NEW_MESSAGE,
                {"conversationId": str(conversation.id), "message": message},
            )
        await self._push_unread_count(recipient_id)

    async def notify_new_message(self, sent: SentMessage) -> None:
        conversation_id = sent.conversation.id
        message = MessageResponse.from_view(sent.view).to_wire()
        await self.manager.send_to_room(
            conversation_id,
            ServerEvent.NEW_MESSAGE,
            {"conversationId": str(conversation_id), "message": message},
        )
        await self.manager.send_to_user(
            sent.recipient_id,
            ServerEvent.MESSAGE_NOTIFICATION,
            {
                "conversationId": str(conversation_id),
                "message": message,
                "listing": (
                    ListingSummaryResponse.model_validate(sent.listing).to_wire()
                    if sent.listing else None
                ),
            },
        )
        await self._push_unread_count(sent.recipient_id)

    async def notify_messages_read(self, receipt: ReadReceipt) -> None:
        await self.manager.send_to_user(
            receipt.other_id,
            ServerEvent.MESSAGES_READ,
            {
                "conversationId": str(receipt.conversation.id),
                "readBy": str(receipt.reader_id),
                "count": receipt.count,
            },
        )
        await self._push_unread_count(receipt.reader_id)

    async def notify_conversation_deleted(self, conversation: Conversation, deleted_by: UUID) -> None:
        participants = (conversation.buyer_id, conversation.seller_id)
        await self.manager.send_to_users(
            participants,
            ServerEvent.CONVERSATION_DELETED,
            {"conversationId": str(conversation.id), "deletedBy": str(deleted_by)},
        )
        await self.typing.clear_conversation(conversation.id)
        self.rooms.close_room(conversation.id)
        for user_id in participants:
            await self._push_unread_count(user_id)

    async def notify_typing(
        self,
        conversation_id: UUID,
        user_id: UUID,
        is_typing: bool,
        user: UserSummary | None = None,
    ) -> None:
        if is_typing:
            await self.typing.start(conversation_id, user_id, _user_payload(user))
        else:
            await self.typing.stop(conversation_id, user_id)

    async def _push_unread_count(self, user_id: UUID) -> None:
        if not self.presence.is_online(user_id):
            return
        try:
            async with self._uow_factory() as uow:
                count = await read_state_service.unread_count(user_id, uow)
        except Exception:
            logger.warning("Unread count refresh failed for %s", user_id, exc_info=True)
            return
        await self.manager.send_to_user(user_id, ServerEvent.UNREAD_COUNT, {"count": count})
