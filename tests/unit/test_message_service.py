from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from listing_chat.application.exceptions import ForbiddenError, NotFoundError, ValidationError
from listing_chat.domain.entities.message import MAX_CONTENT_LENGTH
from listing_chat.services import message_service
from tests.conftest import EPOCH, FakeUoW, StepClock, make_conversation, make_message


@pytest.fixture
def conv(market):
    return market.store.add_conversation(
        make_conversation(
            buyer_id=market.buyer.id,
            seller_id=market.seller.id,
            listing_id=market.listing.id,
        )
    )


@pytest.mark.asyncio
async def test_both_participants_can_send(market, conv, clock):
    uow = FakeUoW(market.store)

    a = await message_service.send_message(conv.id, market.buyer.id, "Hi", uow, clock=clock)
    b = await message_service.send_message(conv.id, market.seller.id, "Hello", uow, clock=clock)

    assert a.recipient_id == market.seller.id
    assert b.recipient_id == market.buyer.id
    assert b.view.sender == market.seller
    assert a.listing == market.listing
    assert b.conversation.last_message_at == b.view.message.created_at
    assert uow.commits == 2


@pytest.mark.asyncio
async def test_non_participant_cannot_send(market, conv, clock):
    with pytest.raises(ForbiddenError):
        await message_service.send_message(
            conv.id, market.stranger.id, "Hi", FakeUoW(market.store), clock=clock,
        )
    assert market.store.messages == []


@pytest.mark.asyncio
async def test_send_to_missing_conversation(market, clock):
    with pytest.raises(NotFoundError):
        await message_service.send_message(
            uuid.uuid4(), market.buyer.id, "Hi", FakeUoW(market.store), clock=clock,
        )


@pytest.mark.asyncio
async def test_content_length_bounds(market, conv, clock):
    uow = FakeUoW(market.store)

    sent = await message_service.send_message(
        conv.id, market.buyer.id, "x" * MAX_CONTENT_LENGTH, uow, clock=clock,
    )
    assert len(sent.view.message.content) == MAX_CONTENT_LENGTH

    with pytest.raises(ValidationError):
        await message_service.send_message(
            conv.id, market.buyer.id, "x" * (MAX_CONTENT_LENGTH + 1), uow, clock=clock,
        )
    with pytest.raises(ValidationError):
        await message_service.send_message(conv.id, market.buyer.id, " \n\t ", uow, clock=clock)


def test_normalize_content_trims():
    assert message_service.normalize_content("  hello  ") == "hello"
    with pytest.raises(ValidationError):
        message_service.normalize_content(None)


@pytest.mark.asyncio
async def test_last_message_at_never_moves_backwards(market, conv):
    uow = FakeUoW(market.store)
    late = StepClock(start=EPOCH + timedelta(hours=1))
    early = StepClock(start=EPOCH + timedelta(minutes=1))

    await message_service.send_message(conv.id, market.buyer.id, "later", uow, clock=late)
    high_water = market.store.conversations[conv.id].last_message_at
    await message_service.send_message(conv.id, market.seller.id, "earlier", uow, clock=early)

    assert market.store.conversations[conv.id].last_message_at == high_water


@pytest.mark.asyncio
async def test_history_is_chronological_and_paged_from_newest(market, conv, clock):
    uow = FakeUoW(market.store)
    for i in range(5):
        await message_service.send_message(conv.id, market.buyer.id, f"m{i}", uow, clock=clock)

    first = await message_service.list_messages(conv.id, market.seller.id, 1, 2, None, uow)
    second = await message_service.list_messages(conv.id, market.seller.id, 2, 2, None, uow)
    last = await message_service.list_messages(conv.id, market.seller.id, 3, 2, None, uow)

    assert [v.message.content for v in first.items] == ["m3", "m4"]
    assert [v.message.content for v in second.items] == ["m1", "m2"]
    assert [v.message.content for v in last.items] == ["m0"]
    assert first.has_more is True
    assert last.has_more is False
    assert first.total == 5
    assert first.total_pages == 3
    assert first.items[0].sender == market.buyer


@pytest.mark.asyncio
async def test_history_before_cursor(market, conv):
    for minute in range(4):
        market.store.add_message(
            make_message(
                conversation_id=conv.id,
                sender_id=market.buyer.id,
                content=f"m{minute}",
                created_at=EPOCH + timedelta(minutes=minute),
            )
        )

    page = await message_service.list_messages(
        conv.id, market.buyer.id, 1, 50, EPOCH + timedelta(minutes=2), FakeUoW(market.store),
    )

    assert [v.message.content for v in page.items] == ["m0", "m1"]
    assert page.total == 2
    assert page.has_more is False


@pytest.mark.asyncio
async def test_history_requires_participant(market, conv):
    with pytest.raises(ForbiddenError):
        await message_service.list_messages(
            conv.id, market.stranger.id, 1, 50, None, FakeUoW(market.store),
        )
