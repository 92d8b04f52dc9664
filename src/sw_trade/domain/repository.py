# src/sw_trade/domain/repository.py
"""Repository Protocols for the trade lifecycle: persistence, listing store, notifier.

Unit tests inject mocks or in-memory fakes that conform to these Protocols.
The infrastructure layer provides the SQL and Redis implementations.
All calls run inside the caller's transaction on `db`.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.sw_trade.domain.models import ListingSnapshot, Trade, TradeEvent


class TradeRepositoryProtocol(Protocol):
    async def insert(self, db: AsyncSession, trade: Trade) -> None: ...

    async def get_by_id(self, db: AsyncSession, trade_id: str) -> Trade | None: ...

    async def get_for_update(self, db: AsyncSession, trade_id: str) -> Trade | None: ...

    async def update(self, db: AsyncSession, trade: Trade) -> None: ...

    async def has_active_trade_for_target(
        self, db: AsyncSession, target_listing_id: str
    ) -> bool: ...

    async def list_stale_pending_ids(
        self, db: AsyncSession, created_before: datetime
    ) -> list[str]: ...

    async def list_by_user(
        self,
        db: AsyncSession,
        user_id: str,
        status: str | None,
        cursor_ts: datetime | None,
        cursor_id: str | None,
        limit: int,
    ) -> list[Trade]: ...

    async def record_event(self, db: AsyncSession, event: TradeEvent) -> None: ...


class ListingStoreProtocol(Protocol):
    async def lock_listings(
        self, db: AsyncSession, listing_ids: Sequence[str]
    ) -> dict[str, ListingSnapshot]: ...

    async def get_availability(self, db: AsyncSession, listing_id: str) -> bool: ...

    async def get_declared_value(self, db: AsyncSession, listing_id: str) -> int: ...

    async def mark_unavailable(self, db: AsyncSession, listing_ids: Sequence[str]) -> None: ...

    async def mark_available(self, db: AsyncSession, listing_ids: Sequence[str]) -> None: ...

    async def mark_traded(self, db: AsyncSession, listing_ids: Sequence[str]) -> None: ...


class NotifierProtocol(Protocol):
    async def notify(self, event: TradeEvent) -> None: ...
