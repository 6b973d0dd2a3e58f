from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from listing_chat.api.deps import CurrentPrincipal, GatewayDep, UoWDep
from listing_chat.api.v1.schemas.common import CountResponse
from listing_chat.api.v1.schemas.conversation import (
    ConversationPageResponse,
    ConversationResponse,
    StartConversationRequest,
    StartConversationResponse,
)
from listing_chat.api.v1.schemas.message import MessageResponse, TypingRequest
from listing_chat.application.policies.permissions import assert_conversation_access
from listing_chat.services import conversation_service, read_state_service

router = APIRouter(prefix="/api/v1/conversations", tags=["conversations"])


@router.get("", response_model=ConversationPageResponse)
async def list_conversations(
    principal: CurrentPrincipal,
    uow: UoWDep,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> ConversationPageResponse:
    result = await conversation_service.list_user_conversations(
        principal.user_id, page, limit, uow,
    )
    return ConversationPageResponse.from_page(result)


@router.post("", response_model=StartConversationResponse, status_code=201)
async def start_conversation(
    body: StartConversationRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    gateway: GatewayDep,
) -> StartConversationResponse:
    started = await conversation_service.start_conversation(
        principal.user_id, body.listing_id, body.message, uow,
    )
    await gateway.notify_new_conversation(started, principal.user_id)
    return StartConversationResponse(
        conversation=ConversationResponse.from_detail(started.detail),
        message=MessageResponse.from_message(started.message),
        created=started.created,
    )


@router.get("/unread-count", response_model=CountResponse)
async def unread_count(principal: CurrentPrincipal, uow: UoWDep) -> CountResponse:
    count = await read_state_service.unread_count(principal.user_id, uow)
    return CountResponse(count=count)


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    detail = await conversation_service.get_conversation(conversation_id, principal.user_id, uow)
    return ConversationResponse.from_detail(detail)


@router.delete("/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    gateway: GatewayDep,
) -> Response:
    conversation = await conversation_service.delete_conversation(
        conversation_id, principal.user_id, uow,
    )
    await gateway.notify_conversation_deleted(conversation, principal.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{conversation_id}/read", response_model=CountResponse)
async def mark_as_read(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    gateway: GatewayDep,
) -> CountResponse:
    receipt = await read_state_service.mark_read(conversation_id, principal.user_id, uow)
    await gateway.notify_messages_read(receipt)
    return CountResponse(count=receipt.count)


@router.post("/{conversation_id}/typing", status_code=204)
async def send_typing(
    conversation_id: UUID,
    body: TypingRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    gateway: GatewayDep,
) -> Response:
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal.user_id, conversation)
    user = await uow.users.get_summary(principal.user_id)
    await gateway.notify_typing(conversation_id, principal.user_id, body.is_typing, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
