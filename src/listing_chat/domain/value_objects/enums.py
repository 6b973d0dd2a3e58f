from __future__ import annotations

from enum import StrEnum


class ListingStatus(StrEnum):
    ACTIVE = "ACTIVE"
    SOLD = "SOLD"
    DRAFT = "DRAFT"
    EXPIRED = "EXPIRED"
    DELETED = "DELETED"


class ConnectionState(StrEnum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    CLOSED = "closed"
