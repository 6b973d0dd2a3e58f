from __future__ import annotations

import json
import uuid

import pytest

from listing_chat.api.v1.gateway import (
    AUTH_FAILED_CLOSE_CODE,
    INTERNAL_ERROR_CLOSE_CODE,
    RealtimeGateway,
)
from listing_chat.domain.value_objects.enums import ConnectionState
from listing_chat.infrastructure.ws.protocol import ServerEvent
from listing_chat.services import conversation_service, read_state_service
from tests.conftest import (
    EPOCH,
    FakeVerifier,
    FakeWebSocket,
    StepClock,
    fake_uow_factory,
    make_conversation,
    make_message,
    token_for,
)


def _frame(event_type: str, data=None) -> str:
    return json.dumps({"type": event_type, "data": data})


@pytest.fixture
def conv(market):
    conv = market.store.add_conversation(
        make_conversation(
            buyer_id=market.buyer.id,
            seller_id=market.seller.id,
            listing_id=market.listing.id,
        )
    )
    market.store.add_message(make_message(conversation_id=conv.id, sender_id=market.buyer.id))
    return conv


@pytest.fixture
def gateway(market):
    return RealtimeGateway(FakeVerifier(), fake_uow_factory(market.store), typing_timeout=10)


async def _connect(gateway, user_id):
    ws = FakeWebSocket()
    conn = await gateway.connect(ws, token_for(user_id))
    assert conn is not None
    return conn, ws


@pytest.mark.asyncio
async def test_bad_token_is_refused_without_state(gateway):
    ws = FakeWebSocket()

    conn = await gateway.connect(ws, "garbage")

    assert conn is None
    assert ws.closed_with == AUTH_FAILED_CLOSE_CODE
    assert ws.accepted is False
    assert gateway.presence.list_online() == set()
    assert len(gateway.manager) == 0


@pytest.mark.asyncio
async def test_missing_token_is_refused(gateway):
    ws = FakeWebSocket()
    assert await gateway.connect(ws, None) is None
    assert ws.closed_with == AUTH_FAILED_CLOSE_CODE


@pytest.mark.asyncio
async def test_connect_sends_snapshot_and_joins_rooms(gateway, market, conv):
    conn, ws = await _connect(gateway, market.seller.id)

    assert ws.accepted is True
    assert conn.state == ConnectionState.ACTIVE
    assert conn.user == market.seller
    assert ws.types() == [ServerEvent.INITIAL_DATA, ServerEvent.UNREAD_COUNT]
    snapshot = ws.events(ServerEvent.INITIAL_DATA)[0]
    assert snapshot["conversations"] == [str(conv.id)]
    assert snapshot["onlineUsers"] == [str(market.seller.id)]
    assert ws.events(ServerEvent.UNREAD_COUNT) == [{"count": 1}]
    assert gateway.rooms.rooms_for(conn.id) == {conv.id}


@pytest.mark.asyncio
async def test_presence_events_only_on_first_and_last_connection(gateway, market):
    _, watcher = await _connect(gateway, market.stranger.id)

    first, _ = await _connect(gateway, market.buyer.id)
    second, _ = await _connect(gateway, market.buyer.id)
    assert watcher.events(ServerEvent.USER_ONLINE) == [{"userId": str(market.buyer.id)}]

    await gateway.disconnect(first)
    assert watcher.events(ServerEvent.USER_OFFLINE) == []
    assert gateway.presence.is_online(market.buyer.id)

    await gateway.disconnect(second)
    assert watcher.events(ServerEvent.USER_OFFLINE) == [{"userId": str(market.buyer.id)}]
    assert not gateway.presence.is_online(market.buyer.id)


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(gateway, market):
    conn, _ = await _connect(gateway, market.buyer.id)

    await gateway.disconnect(conn)
    await gateway.disconnect(conn)

    assert conn.state == ConnectionState.CLOSED
    assert gateway.manager.get(conn.id) is None


@pytest.mark.asyncio
async def test_join_is_gated_and_silent_on_denial(gateway, market, conv):
    conn, ws = await _connect(gateway, market.stranger.id)
    ws.sent.clear()

    await gateway.handle(conn, _frame("join_conversation", {"conversationId": str(conv.id)}))

    assert ws.sent == []
    assert gateway.rooms.rooms_for(conn.id) == set()


@pytest.mark.asyncio
async def test_join_and_leave_notify_room(gateway, market, conv):
    seller, seller_ws = await _connect(gateway, market.seller.id)
    buyer, buyer_ws = await _connect(gateway, market.buyer.id)
    gateway.rooms.leave(buyer.id, conv.id)
    seller_ws.sent.clear()

    await gateway.handle(buyer, _frame("join_conversation", str(conv.id)))

    assert buyer_ws.events(ServerEvent.JOINED_CONVERSATION) == [{"conversationId": str(conv.id)}]
    assert seller_ws.events(ServerEvent.USER_JOINED_CONVERSATION) == [
        {"conversationId": str(conv.id), "userId": str(market.buyer.id)}
    ]

    await gateway.handle(buyer, _frame("leave_conversation", {"conversationId": str(conv.id)}))
    assert len(seller_ws.events(ServerEvent.USER_LEFT_CONVERSATION)) == 1
    assert gateway.rooms.members(conv.id) == {seller.id}


@pytest.mark.asyncio
async def test_typing_reaches_other_side_once(gateway, market, conv):
    buyer, buyer_ws = await _connect(gateway, market.buyer.id)
    _, seller_ws = await _connect(gateway, market.seller.id)

    await gateway.handle(buyer, _frame("typing", {"conversationId": str(conv.id)}))
    await gateway.handle(buyer, _frame("typing", {"conversationId": str(conv.id)}))

    typing = seller_ws.events(ServerEvent.USER_TYPING)
    assert len(typing) == 1
    assert typing[0]["userId"] == str(market.buyer.id)
    assert typing[0]["user"]["firstName"] == market.buyer.first_name
    assert buyer_ws.events(ServerEvent.USER_TYPING) == []

    await gateway.handle(buyer, _frame("stop_typing", {"conversationId": str(conv.id)}))
    assert len(seller_ws.events(ServerEvent.USER_STOP_TYPING)) == 1


@pytest.mark.asyncio
async def test_disconnect_clears_typing(gateway, market, conv):
    buyer, _ = await _connect(gateway, market.buyer.id)
    _, seller_ws = await _connect(gateway, market.seller.id)
    await gateway.handle(buyer, _frame("typing", {"conversationId": str(conv.id)}))

    await gateway.disconnect(buyer)

    assert not gateway.typing.is_typing(conv.id, market.buyer.id)
    assert seller_ws.events(ServerEvent.USER_STOP_TYPING) == [
        {"conversationId": str(conv.id), "userId": str(market.buyer.id)}
    ]
    assert seller_ws.events(ServerEvent.USER_OFFLINE) == [{"userId": str(market.buyer.id)}]


@pytest.mark.asyncio
async def test_mark_read_notifies_other_participant(gateway, market, conv):
    seller, seller_ws = await _connect(gateway, market.seller.id)
    _, buyer_ws = await _connect(gateway, market.buyer.id)
    seller_ws.sent.clear()

    await gateway.handle(seller, _frame("mark_read", {"conversationId": str(conv.id)}))

    assert buyer_ws.events(ServerEvent.MESSAGES_READ) == [
        {"conversationId": str(conv.id), "readBy": str(market.seller.id), "count": 1}
    ]
    assert seller_ws.events(ServerEvent.UNREAD_COUNT) == [{"count": 0}]


@pytest.mark.asyncio
async def test_send_message_over_socket(gateway, market, conv):
    buyer, buyer_ws = await _connect(gateway, market.buyer.id)
    _, seller_ws = await _connect(gateway, market.seller.id)

    await gateway.handle(
        buyer, _frame("send_message", {"conversationId": str(conv.id), "content": " Deal? "}),
    )

    for ws in (buyer_ws, seller_ws):
        new = ws.events(ServerEvent.NEW_MESSAGE)
        assert len(new) == 1
        assert new[0]["message"]["content"] == "Deal?"
        assert new[0]["message"]["senderId"] == str(market.buyer.id)
    notice = seller_ws.events(ServerEvent.MESSAGE_NOTIFICATION)
    assert notice[0]["listing"]["title"] == market.listing.title
    assert buyer_ws.events(ServerEvent.MESSAGE_NOTIFICATION) == []
    assert seller_ws.events(ServerEvent.UNREAD_COUNT)[-1] == {"count": 2}


@pytest.mark.asyncio
async def test_send_message_by_outsider_is_reported_to_sender_only(gateway, market, conv):
    outsider, outsider_ws = await _connect(gateway, market.stranger.id)
    _, seller_ws = await _connect(gateway, market.seller.id)
    seller_ws.sent.clear()

    await gateway.handle(
        outsider, _frame("send_message", {"conversationId": str(conv.id), "content": "hi"}),
    )

    assert outsider_ws.events(ServerEvent.ERROR) == [
        {"message": "Conversation not found", "code": "not_found"}
    ]
    assert seller_ws.sent == []


@pytest.mark.asyncio
async def test_bad_frames_produce_errors(gateway, market):
    conn, ws = await _connect(gateway, market.buyer.id)
    ws.sent.clear()

    await gateway.handle(conn, "not json")
    await gateway.handle(conn, _frame("dance"))
    await gateway.handle(conn, _frame("join_conversation", {"conversationId": "nope"}))

    errors = ws.events(ServerEvent.ERROR)
    assert [e["message"] for e in errors] == [
        "Invalid payload",
        "Unknown event type: dance",
        "Invalid payload for join_conversation",
    ]


@pytest.mark.asyncio
async def test_check_online_status_and_ping(gateway, market):
    conn, ws = await _connect(gateway, market.buyer.id)
    await _connect(gateway, market.seller.id)
    ws.sent.clear()

    await gateway.handle(
        conn,
        _frame("check_online_status", [str(market.seller.id), str(market.stranger.id)]),
    )
    await gateway.handle(conn, _frame("ping"))

    [statuses] = ws.events(ServerEvent.ONLINE_STATUS_UPDATE)
    assert [(s["userId"], s["isOnline"]) for s in statuses] == [
        (str(market.seller.id), True),
        (str(market.stranger.id), False),
    ]
    assert statuses[0]["onlineSince"] is not None
    assert statuses[1]["onlineSince"] is None
    assert ws.events(ServerEvent.PONG) == [{}]


@pytest.mark.asyncio
async def test_dead_socket_does_not_break_broadcast(gateway, market, conv):
    buyer, _ = await _connect(gateway, market.buyer.id)
    _, dead_ws = await _connect(gateway, market.seller.id)
    _, live_ws = await _connect(gateway, market.seller.id)
    dead_ws.fail_sends = True

    await gateway.handle(buyer, _frame("typing", {"conversationId": str(conv.id)}))

    assert len(live_ws.events(ServerEvent.USER_TYPING)) == 1
    gateway.shutdown()


@pytest.mark.asyncio
async def test_deleted_conversation_tears_down_room(gateway, market, conv):
    seller, seller_ws = await _connect(gateway, market.seller.id)
    _, buyer_ws = await _connect(gateway, market.buyer.id)

    del market.store.conversations[conv.id]
    await gateway.notify_conversation_deleted(conv, market.buyer.id)

    expected = {"conversationId": str(conv.id), "deletedBy": str(market.buyer.id)}
    assert seller_ws.events(ServerEvent.CONVERSATION_DELETED) == [expected]
    assert buyer_ws.events(ServerEvent.CONVERSATION_DELETED) == [expected]
    assert gateway.rooms.members(conv.id) == set()
    assert conv.id not in gateway.rooms.rooms_for(seller.id)


@pytest.mark.asyncio
async def test_typing_without_any_connections(gateway, market, conv):
    await gateway.notify_typing(conv.id, market.buyer.id, True)
    await gateway.notify_typing(conv.id, market.buyer.id, False)
    assert not gateway.typing.is_typing(conv.id, market.buyer.id)


@pytest.mark.asyncio
async def test_snapshot_failure_closes_without_state(gateway, market, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("database is down")

    monkeypatch.setattr(conversation_service, "list_conversation_ids", broken)
    ws = FakeWebSocket()

    conn = await gateway.connect(ws, token_for(market.buyer.id))

    assert conn is None
    assert ws.closed_with == INTERNAL_ERROR_CLOSE_CODE
    assert ws.accepted is False
    assert not gateway.presence.is_online(market.buyer.id)
    assert len(gateway.manager) == 0


@pytest.mark.asyncio
async def test_store_error_is_reported_to_origin_and_connection_survives(
    gateway, market, conv, monkeypatch,
):
    seller, seller_ws = await _connect(gateway, market.seller.id)
    _, buyer_ws = await _connect(gateway, market.buyer.id)
    seller_ws.sent.clear()
    buyer_ws.sent.clear()

    async def broken(*args, **kwargs):
        raise RuntimeError("deadlock detected")

    monkeypatch.setattr(read_state_service, "mark_read", broken)

    await gateway.handle(seller, _frame("mark_read", {"conversationId": str(conv.id)}))

    assert seller_ws.events(ServerEvent.ERROR) == [{"message": "Internal error", "code": "error"}]
    assert buyer_ws.sent == []
    assert seller.state == ConnectionState.ACTIVE
    assert gateway.manager.is_active(seller.id)

    await gateway.handle(seller, _frame("ping"))
    assert seller_ws.events(ServerEvent.PONG) == [{}]


@pytest.mark.asyncio
async def test_frame_without_text_is_rejected(gateway, market):
    conn, ws = await _connect(gateway, market.buyer.id)
    ws.sent.clear()

    await gateway.handle(conn, None)

    assert ws.events(ServerEvent.ERROR) == [{"message": "Invalid payload", "code": "error"}]
    assert conn.state == ConnectionState.ACTIVE


@pytest.mark.asyncio
async def test_disconnect_records_connection_lifetime(market):
    clock = StepClock()
    gateway = RealtimeGateway(
        FakeVerifier(), fake_uow_factory(market.store), typing_timeout=10, clock=clock,
    )
    ws = FakeWebSocket()
    conn = await gateway.connect(ws, token_for(market.buyer.id))

    assert conn.connected_at == EPOCH + clock.step
    assert gateway.presence.online_since(market.buyer.id) > conn.connected_at

    await gateway.disconnect(conn)
    assert gateway.presence.online_since(market.buyer.id) is None
