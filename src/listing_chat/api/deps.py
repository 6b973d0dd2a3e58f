"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from listing_chat.api.v1.gateway import RealtimeGateway
from listing_chat.application.dto.principal import Principal
from listing_chat.application.policies.throttling import assert_can_send
from listing_chat.application.ports.auth import TokenVerifier
from listing_chat.application.ports.rate_limit import RateLimiter
from listing_chat.application.uow import UnitOfWork
from listing_chat.config import settings
from listing_chat.infrastructure.auth.hs256_verifier import HS256Verifier
from listing_chat.infrastructure.auth.jwks_verifier import JWKSVerifier
from listing_chat.infrastructure.db.uow import open_uow

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_uow() -> AsyncIterator[UnitOfWork]:
    async with open_uow() as uow:
        yield uow


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]


def _get_verifier() -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(settings.JWKS_URL)
    return HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = _get_verifier()
    return _verifier


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> Principal:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
        )
    verifier = get_verifier()
    try:
        return await verifier.verify(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def get_gateway(request: Request) -> RealtimeGateway:
    return request.app.state.gateway


GatewayDep = Annotated[RealtimeGateway, Depends(get_gateway)]


def get_message_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.message_rate_limiter


async def enforce_message_rate_limit(
    principal: CurrentPrincipal,
    limiter: Annotated[RateLimiter, Depends(get_message_rate_limiter)],
) -> None:
    await assert_can_send(limiter, principal.user_id)
