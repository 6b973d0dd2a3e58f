from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from listing_chat.api.deps import CurrentPrincipal, GatewayDep, UoWDep, enforce_message_rate_limit
from listing_chat.api.v1.schemas.message import (
    MessagePageResponse,
    MessageResponse,
    SendMessageRequest,
)
from listing_chat.services import message_service

router = APIRouter(prefix="/api/v1/conversations", tags=["messages"])


@router.get("/{conversation_id}/messages", response_model=MessagePageResponse)
async def list_messages(
    conversation_id: UUID,
    principal: CurrentPrincipal,
    uow: UoWDep,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=50),
    before: datetime | None = Query(None),
) -> MessagePageResponse:
    if before is not None and before.tzinfo is None:
        before = before.replace(tzinfo=timezone.utc)
    result = await message_service.list_messages(
        conversation_id, principal.user_id, page, limit, before, uow,
    )
    return MessagePageResponse.from_page(result)


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=201,
    dependencies=[Depends(enforce_message_rate_limit)],
)
async def send_message(
    conversation_id: UUID,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    gateway: GatewayDep,
) -> MessageResponse:
    sent = await message_service.send_message(
        conversation_id, principal.user_id, body.content, uow,
    )
    await gateway.notify_new_message(sent)
    return MessageResponse.from_view(sent.view)
