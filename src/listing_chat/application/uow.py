from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from listing_chat.application.repositories.conversation import (
    ConversationReader,
    ConversationWriter,
)
from listing_chat.application.repositories.listing import ListingReader
from listing_chat.application.repositories.message import MessageReader, MessageWriter
from listing_chat.application.repositories.user import UserReader


class UnitOfWork(Protocol):
    conversations: ConversationReader
    conversations_w: ConversationWriter
    messages: MessageReader
    messages_w: MessageWriter
    listings: ListingReader
    users: UserReader

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...


UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
"""Opens a fresh unit of work; used outside the request/response cycle."""
