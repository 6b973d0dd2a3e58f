"""Shared test fixtures."""
from __future__ import annotations

import json
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, AsyncIterator
from uuid import UUID

import pytest

from listing_chat.application.dto.principal import Principal
from listing_chat.domain.entities.conversation import Conversation
from listing_chat.domain.entities.listing import ListingSummary
from listing_chat.domain.entities.message import Message
from listing_chat.domain.entities.user import UserSummary
from listing_chat.domain.value_objects.enums import ListingStatus

EPOCH = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class StepClock:
    """Deterministic clock: every call to now() moves forward by ``step``."""

    def __init__(self, start: datetime = EPOCH, step: timedelta = timedelta(seconds=1)) -> None:
        self.current = start
        self.step = step

    def now(self) -> datetime:
        self.current += self.step
        return self.current


def make_user(first_name: str = "Alex", *, user_id: UUID | None = None) -> UserSummary:
    return UserSummary(
        id=user_id or uuid.uuid4(),
        first_name=first_name,
        last_name="Tester",
        avatar_url=None,
    )


def make_listing(
    owner_id: UUID,
    *,
    listing_id: UUID | None = None,
    status: str = ListingStatus.ACTIVE,
) -> ListingSummary:
    return ListingSummary(
        id=listing_id or uuid.uuid4(),
        owner_id=owner_id,
        status=status,
        title="2018 Toyota Corolla",
        price=Decimal("12500.00"),
        make="Toyota",
        model="Corolla",
        year=2018,
        image_url="https://img.example.com/corolla.jpg",
    )


def make_conversation(
    *,
    buyer_id: UUID,
    seller_id: UUID,
    listing_id: UUID | None = None,
    conversation_id: UUID | None = None,
    last_message_at: datetime | None = EPOCH,
) -> Conversation:
    return Conversation(
        id=conversation_id or uuid.uuid4(),
        listing_id=listing_id or uuid.uuid4(),
        buyer_id=buyer_id,
        seller_id=seller_id,
        last_message_at=last_message_at,
        created_at=EPOCH,
        updated_at=EPOCH,
    )


def make_message(
    *,
    conversation_id: UUID,
    sender_id: UUID,
    content: str = "Is this still available?",
    is_read: bool = False,
    created_at: datetime = EPOCH,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        conversation_id=conversation_id,
        sender_id=sender_id,
        content=content,
        is_read=is_read,
        created_at=created_at,
    )


@dataclass
class FakeStore:
    """State shared by every FakeUoW opened against it."""

    conversations: dict[UUID, Conversation] = field(default_factory=dict)
    messages: list[Message] = field(default_factory=list)
    listings: dict[UUID, ListingSummary] = field(default_factory=dict)
    users: dict[UUID, UserSummary] = field(default_factory=dict)

    def add_conversation(self, conversation: Conversation) -> Conversation:
        self.conversations[conversation.id] = conversation
        return conversation

    def add_message(self, message: Message) -> Message:
        self.messages.append(message)
        return message


@dataclass
class FakeConversationReader:
    _store: FakeStore

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        return self._store.conversations.get(conversation_id)

    async def get_by_pair(self, listing_id: UUID, buyer_id: UUID) -> Conversation | None:
        for c in self._store.conversations.values():
            if c.listing_id == listing_id and c.buyer_id == buyer_id:
                return c
        return None

    def _for_user(self, user_id: UUID) -> list[Conversation]:
        convs = [c for c in self._store.conversations.values() if c.has_participant(user_id)]
        return sorted(convs, key=lambda c: c.last_message_at or c.created_at, reverse=True)

    async def list_for_user(self, user_id: UUID, *, offset: int = 0, limit: int = 20) -> list[Conversation]:
        return self._for_user(user_id)[offset:offset + limit]

    async def count_for_user(self, user_id: UUID) -> int:
        return len(self._for_user(user_id))

    async def list_ids_for_user(self, user_id: UUID) -> list[UUID]:
        return [c.id for c in self._for_user(user_id)]


@dataclass
class FakeConversationWriter:
    _store: FakeStore

    async def create_if_not_exists(self, conversation: Conversation) -> tuple[Conversation, bool]:
        for c in self._store.conversations.values():
            if c.listing_id == conversation.listing_id and c.buyer_id == conversation.buyer_id:
                return c, False
        self._store.conversations[conversation.id] = conversation
        return conversation, True

    async def touch_last_message_at(self, conversation_id: UUID, ts: datetime) -> None:
        conv = self._store.conversations[conversation_id]
        if conv.last_message_at is None or ts > conv.last_message_at:
            self._store.conversations[conversation_id] = replace(
                conv, last_message_at=ts, updated_at=ts,
            )

    async def delete(self, conversation_id: UUID) -> None:
        self._store.conversations.pop(conversation_id, None)


@dataclass
class FakeMessageReader:
    _store: FakeStore

    def _in(self, conversation_id: UUID, before: datetime | None = None) -> list[Message]:
        return [
            m for m in self._store.messages
            if m.conversation_id == conversation_id and (before is None or m.created_at < before)
        ]

    async def list_messages(
        self,
        conversation_id: UUID,
        *,
        offset: int = 0,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Message]:
        newest_first = sorted(self._in(conversation_id, before), key=lambda m: m.created_at, reverse=True)
        return newest_first[offset:offset + limit]

    async def count_messages(self, conversation_id: UUID, *, before: datetime | None = None) -> int:
        return len(self._in(conversation_id, before))

    async def latest(self, conversation_id: UUID) -> Message | None:
        msgs = self._in(conversation_id)
        return max(msgs, key=lambda m: m.created_at) if msgs else None

    async def count_unread(self, conversation_id: UUID, reader_id: UUID) -> int:
        return sum(
            1 for m in self._in(conversation_id) if not m.is_read and m.sender_id != reader_id
        )

    async def count_unread_for_user(self, user_id: UUID) -> int:
        total = 0
        for c in list(self._store.conversations.values()):
            if c.has_participant(user_id):
                total += await self.count_unread(c.id, user_id)
        return total


@dataclass
class FakeMessageWriter:
    _store: FakeStore

    async def create(self, message: Message) -> Message:
        self._store.messages.append(message)
        return message

    async def mark_read(self, conversation_id: UUID, reader_id: UUID) -> int:
        changed = 0
        for i, m in enumerate(self._store.messages):
            if m.conversation_id == conversation_id and m.sender_id != reader_id and not m.is_read:
                self._store.messages[i] = replace(m, is_read=True)
                changed += 1
        return changed

    async def delete_for_conversation(self, conversation_id: UUID) -> int:
        before = len(self._store.messages)
        self._store.messages[:] = [m for m in self._store.messages if m.conversation_id != conversation_id]
        return before - len(self._store.messages)


@dataclass
class FakeListingReader:
    _store: FakeStore

    async def get_summary(self, listing_id: UUID) -> ListingSummary | None:
        return self._store.listings.get(listing_id)


@dataclass
class FakeUserReader:
    _store: FakeStore

    async def get_summary(self, user_id: UUID) -> UserSummary | None:
        return self._store.users.get(user_id)

    async def get_summaries(self, user_ids: set[UUID]) -> dict[UUID, UserSummary]:
        return {uid: self._store.users[uid] for uid in user_ids if uid in self._store.users}


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    store: FakeStore = field(default_factory=FakeStore)
    commits: int = 0

    def __post_init__(self) -> None:
        self.conversations = FakeConversationReader(self.store)
        self.conversations_w = FakeConversationWriter(self.store)
        self.messages = FakeMessageReader(self.store)
        self.messages_w = FakeMessageWriter(self.store)
        self.listings = FakeListingReader(self.store)
        self.users = FakeUserReader(self.store)

    @property
    def _committed(self) -> bool:
        return self.commits > 0

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        pass


def fake_uow_factory(store: FakeStore):
    @asynccontextmanager
    async def _open() -> AsyncIterator[FakeUoW]:
        yield FakeUoW(store)

    return _open


class FakeWebSocket:
    def __init__(self, headers: dict[str, str] | None = None) -> None:
        self.headers = headers or {}
        self.accepted = False
        self.closed_with: int | None = None
        self.sent: list[dict[str, Any]] = []
        self.fail_sends = False

    async def accept(self) -> None:
        self.accepted = True

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed_with = code

    async def send_text(self, raw: str) -> None:
        if self.fail_sends:
            raise RuntimeError("socket is gone")
        self.sent.append(json.loads(raw))

    def events(self, event_type: str) -> list[Any]:
        return [m["data"] for m in self.sent if m["type"] == event_type]

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]


class FakeVerifier:
    """Accepts tokens of the form ``token-<uuid>``."""

    async def verify(self, token: str) -> Principal:
        prefix, _, raw = token.partition("-")
        if prefix != "token":
            raise ValueError("bad token")
        return Principal(user_id=UUID(raw))


def token_for(user_id: UUID) -> str:
    return f"token-{user_id}"


@dataclass
class RecordingBroadcaster:
    calls: list[tuple[str, Any, str, Any, UUID | None]] = field(default_factory=list)

    async def send_to_connection(self, connection_id: str, event_type: str, data: Any) -> None:
        self.calls.append(("connection", connection_id, event_type, data, None))

    async def send_to_user(self, user_id: UUID, event_type: str, data: Any) -> None:
        self.calls.append(("user", user_id, event_type, data, None))

    async def send_to_room(
        self, conversation_id: UUID, event_type: str, data: Any, *, exclude_user: UUID | None = None,
    ) -> None:
        self.calls.append(("room", conversation_id, event_type, data, exclude_user))

    async def send_to_all(self, event_type: str, data: Any, *, exclude_user: UUID | None = None) -> None:
        self.calls.append(("all", None, event_type, data, exclude_user))

    def of_type(self, event_type: str) -> list[tuple]:
        return [c for c in self.calls if c[2] == event_type]


@dataclass
class Marketplace:
    """A seller with one active listing, a buyer and an unrelated user."""

    store: FakeStore
    buyer: UserSummary
    seller: UserSummary
    stranger: UserSummary
    listing: ListingSummary


@pytest.fixture
def market() -> Marketplace:
    store = FakeStore()
    buyer = make_user("Bea")
    seller = make_user("Sam")
    stranger = make_user("Stan")
    for u in (buyer, seller, stranger):
        store.users[u.id] = u
    listing = make_listing(seller.id)
    store.listings[listing.id] = listing
    return Marketplace(store=store, buyer=buyer, seller=seller, stranger=stranger, listing=listing)


@pytest.fixture
def clock() -> StepClock:
    return StepClock()
