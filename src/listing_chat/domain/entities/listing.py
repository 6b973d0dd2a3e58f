from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True, slots=True)
class ListingSummary:
    """Read-only projection of a listing owned by the listings service."""

    id: UUID
    owner_id: UUID
    status: str
    title: str
    price: Decimal | None
    make: str | None
    model: str | None
    year: int | None
    image_url: str | None = None
