from __future__ import annotations

from typing import Any
from uuid import UUID

import jwt

from listing_chat.application.dto.principal import Principal


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    """Build a Principal from decoded claims.

    Access tokens issued by the accounts service carry the user id in
    ``userId``; standard ``sub`` is accepted as well.
    """
    raw = payload.get("sub") or payload.get("userId")
    if not raw:
        raise jwt.InvalidTokenError("Token has no subject")
    try:
        user_id = UUID(str(raw))
    except ValueError as exc:
        raise jwt.InvalidTokenError("Token subject is not a valid user id") from exc
    return Principal(user_id=user_id, email=payload.get("email"))
