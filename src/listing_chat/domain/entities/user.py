from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class UserSummary:
    id: UUID
    first_name: str | None
    last_name: str | None
    avatar_url: str | None
