"""In-memory collaborators for TradeLifecycleService tests.

FakeListingStore takes a real asyncio.Lock per listing in lock_listings and
yields to the loop while holding it; FakeSession releases the locks on
commit/rollback. Two concurrent proposals therefore interleave the way
two PostgreSQL transactions contending on FOR UPDATE would.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from src.sw_common.enums import ListingStatus, TradeStatus
from src.sw_common.errors import ListingUnavailableError
from src.sw_trade.application.service import TradeLifecycleService
from src.sw_trade.domain.models import ListingSnapshot, Trade, TradeEvent


class FakeSession:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0
        self.held: list[asyncio.Lock] = []

    async def commit(self) -> None:
        self.commits += 1
        self._release()

    async def rollback(self) -> None:
        self.rollbacks += 1
        self._release()

    def _release(self) -> None:
        while self.held:
            self.held.pop().release()


@dataclass
class FakeListing:
    id: str
    owner_id: str
    price: int
    is_available: bool = True
    status: ListingStatus = ListingStatus.ACTIVE
    trade_count: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class FakeListingStore:
    def __init__(self, *listings: FakeListing) -> None:
        self.listings = {listing.id: listing for listing in listings}

    async def lock_listings(
        self, db: FakeSession, listing_ids: Sequence[str]
    ) -> dict[str, ListingSnapshot]:
        snapshots = {}
        for listing_id in sorted(set(listing_ids)):
            listing = self.listings.get(listing_id)
            if listing is None:
                continue
            await listing.lock.acquire()
            db.held.append(listing.lock)
            await asyncio.sleep(0)
            snapshots[listing_id] = ListingSnapshot(
                id=listing.id,
                owner_id=listing.owner_id,
                price=listing.price,
                is_available=listing.is_available,
            )
        return snapshots

    async def get_availability(self, db: FakeSession, listing_id: str) -> bool:
        listing = self.listings.get(listing_id)
        return listing is not None and listing.is_available

    async def get_declared_value(self, db: FakeSession, listing_id: str) -> int:
        listing = self.listings.get(listing_id)
        if listing is None:
            raise ListingUnavailableError(listing_id)
        return listing.price

    async def mark_unavailable(self, db: FakeSession, listing_ids: Sequence[str]) -> None:
        for listing_id in listing_ids:
            self.listings[listing_id].is_available = False
            self.listings[listing_id].status = ListingStatus.IN_TRADE

    async def mark_available(self, db: FakeSession, listing_ids: Sequence[str]) -> None:
        for listing_id in listing_ids:
            listing = self.listings[listing_id]
            if listing.status is ListingStatus.IN_TRADE:
                listing.is_available = True
                listing.status = ListingStatus.ACTIVE

    async def mark_traded(self, db: FakeSession, listing_ids: Sequence[str]) -> None:
        for listing_id in listing_ids:
            listing = self.listings[listing_id]
            listing.is_available = False
            listing.status = ListingStatus.COMPLETED
            listing.trade_count += 1


class FakeTradeRepository:
    def __init__(self) -> None:
        self.trades: dict[str, Trade] = {}
        self.events: list[TradeEvent] = []
        self.inserts = 0

    def _active_for(self, target_listing_id: str) -> bool:
        return any(
            t.target_listing_id == target_listing_id
            and t.status in (TradeStatus.PENDING, TradeStatus.ACCEPTED)
            for t in self.trades.values()
        )

    async def insert(self, db: FakeSession, trade: Trade) -> None:
        if self._active_for(trade.target_listing_id):
            raise ListingUnavailableError(trade.target_listing_id)
        self.inserts += 1
        self.trades[trade.id] = trade

    async def get_by_id(self, db: FakeSession, trade_id: str) -> Trade | None:
        return self.trades.get(trade_id)

    async def get_for_update(self, db: FakeSession, trade_id: str) -> Trade | None:
        return self.trades.get(trade_id)

    async def update(self, db: FakeSession, trade: Trade) -> None:
        self.trades[trade.id] = trade

    async def has_active_trade_for_target(self, db: FakeSession, target_listing_id: str) -> bool:
        return self._active_for(target_listing_id)

    async def list_stale_pending_ids(self, db: FakeSession, created_before: datetime) -> list[str]:
        stale = [
            t for t in self.trades.values()
            if t.status is TradeStatus.PENDING and t.created_at <= created_before
        ]
        return [t.id for t in sorted(stale, key=lambda t: (t.created_at, t.id))]

    async def list_by_user(
        self,
        db: FakeSession,
        user_id: str,
        status: str | None,
        cursor_ts: datetime | None,
        cursor_id: str | None,
        limit: int,
    ) -> list[Trade]:
        mine = [
            t for t in self.trades.values()
            if user_id in t.participants and (status is None or t.status.value == status)
        ]
        mine.sort(key=lambda t: (t.created_at, t.id), reverse=True)
        if cursor_ts is not None:
            mine = [t for t in mine if (t.created_at, t.id) < (cursor_ts, cursor_id)]
        return mine[:limit]

    async def record_event(self, db: FakeSession, event: TradeEvent) -> None:
        self.events.append(event)


@pytest.fixture
def db() -> FakeSession:
    return FakeSession()


@pytest.fixture
def listings() -> FakeListingStore:
    return FakeListingStore(
        FakeListing(id="L-target", owner_id="bob", price=50_000),
        FakeListing(id="L-alice", owner_id="alice", price=45_000),
        FakeListing(id="L-alice-2", owner_id="alice", price=10_000),
        FakeListing(id="L-carol", owner_id="carol", price=20_000),
    )


@pytest.fixture
def trade_repo() -> FakeTradeRepository:
    return FakeTradeRepository()


@pytest.fixture
def notifier() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def service(
    trade_repo: FakeTradeRepository, listings: FakeListingStore, notifier: AsyncMock
) -> TradeLifecycleService:
    return TradeLifecycleService(repo=trade_repo, listings=listings, notifier=notifier)


@pytest.fixture
def make_session() -> type[FakeSession]:
    """One session per simulated request."""
    return FakeSession
