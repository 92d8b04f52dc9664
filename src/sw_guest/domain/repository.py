"""Guest reconciliation Protocols: merge target (PostgreSQL) and log store (Redis)."""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.sw_guest.domain.models import GuestActivityLog, GuestPreferences


class GuestMergeRepositoryProtocol(Protocol):
    async def upsert_favorites(
        self, db: AsyncSession, account_id: str, listing_ids: Sequence[str]
    ) -> int:
        """Insert missing favorites; returns how many rows were new."""
        ...

    async def apply_preferences(
        self, db: AsyncSession, account_id: str, preferences: GuestPreferences
    ) -> None: ...

    async def merge_history(
        self,
        db: AsyncSession,
        account_id: str,
        searches: Sequence[str],
        viewed_listing_ids: Sequence[str],
    ) -> None: ...


class GuestLogStoreProtocol(Protocol):
    async def load(self, guest_id: str) -> GuestActivityLog | None: ...

    async def save(self, log: GuestActivityLog, now: datetime | None = None) -> bool: ...

    async def clear(self, guest_id: str) -> None: ...
