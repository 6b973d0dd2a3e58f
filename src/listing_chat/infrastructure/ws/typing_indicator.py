"""Ephemeral typing state with automatic expiry."""
from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import UUID

from listing_chat.application.ports.bus import EventBroadcaster
from listing_chat.infrastructure.ws.protocol import ServerEvent

logger = logging.getLogger(__name__)


class TypingIndicatorTracker:
    """Tracks who is typing in which conversation.

    ``user_typing`` is broadcast only when a user starts typing; repeated
    signals just re-arm the expiry timer. When the timer fires without a
    fresh signal the user is treated as having stopped.
    """

    def __init__(self, broadcaster: EventBroadcaster, *, timeout: float = 3.0) -> None:
        self._broadcaster = broadcaster
        self._timeout = timeout
        self._typing: dict[UUID, set[UUID]] = {}
        self._timers: dict[tuple[UUID, UUID], asyncio.Task[None]] = {}

    def is_typing(self, conversation_id: UUID, user_id: UUID) -> bool:
        return user_id in self._typing.get(conversation_id, ())

    def typing_users(self, conversation_id: UUID) -> set[UUID]:
        return set(self._typing.get(conversation_id, ()))

    async def start(
        self,
        conversation_id: UUID,
        user_id: UUID,
        user: dict[str, Any] | None = None,
    ) -> bool:
        users = self._typing.setdefault(conversation_id, set())
        started = user_id not in users
        users.add(user_id)
        self._arm(conversation_id, user_id)
        if started:
            await self._broadcaster.send_to_room(
                conversation_id,
                ServerEvent.USER_TYPING,
                {"conversationId": str(conversation_id), "userId": str(user_id), "user": user},
                exclude_user=user_id,
            )
        return started

    async def stop(self, conversation_id: UUID, user_id: UUID) -> bool:
        self._cancel_timer(conversation_id, user_id)
        return await self._finish(conversation_id, user_id)

    async def clear_user(self, user_id: UUID) -> int:
        """Stop the user's typing everywhere. Return how many conversations it touched."""
        conversation_ids = [cid for cid, users in self._typing.items() if user_id in users]
        stopped = 0
        for conversation_id in conversation_ids:
            if await self.stop(conversation_id, user_id):
                stopped += 1
        return stopped

    async def clear_conversation(self, conversation_id: UUID) -> None:
        for user_id in self.typing_users(conversation_id):
            self._cancel_timer(conversation_id, user_id)
        self._typing.pop(conversation_id, None)

    def shutdown(self) -> None:
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()
        self._typing.clear()

    async def _finish(self, conversation_id: UUID, user_id: UUID) -> bool:
        users = self._typing.get(conversation_id)
        if not users or user_id not in users:
            return False
        users.discard(user_id)
        if not users:
            del self._typing[conversation_id]
        await self._broadcaster.send_to_room(
            conversation_id,
            ServerEvent.USER_STOP_TYPING,
            {"conversationId": str(conversation_id), "userId": str(user_id)},
            exclude_user=user_id,
        )
        return True

    def _arm(self, conversation_id: UUID, user_id: UUID) -> None:
        self._cancel_timer(conversation_id, user_id)
        self._timers[(conversation_id, user_id)] = asyncio.create_task(
            self._expire(conversation_id, user_id),
            name=f"typing-expiry-{conversation_id}-{user_id}",
        )

    def _cancel_timer(self, conversation_id: UUID, user_id: UUID) -> None:
        task = self._timers.pop((conversation_id, user_id), None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _expire(self, conversation_id: UUID, user_id: UUID) -> None:
        await asyncio.sleep(self._timeout)
        key = (conversation_id, user_id)
        if self._timers.get(key) is asyncio.current_task():
            del self._timers[key]
        logger.debug("Typing expired: user=%s conversation=%s", user_id, conversation_id)
        await self._finish(conversation_id, user_id)
