"""ListingStore: SQL adapter over the marketplace `listings` table.

The listings table belongs to the catalogue service; the trade core only
reads availability, owner and price, and flips availability/status as
trades move through their lifecycle. All writes run in the caller's
transaction.

Status flow driven from here:
  ACTIVE --propose--> IN_TRADE --reject/cancel/expire--> ACTIVE
                               --complete--------------> COMPLETED
"""

from collections.abc import Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.sw_common.errors import ListingUnavailableError
from src.sw_trade.domain.models import ListingSnapshot

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

# Sorted lock order keeps concurrent proposals over overlapping listings deadlock-free.
_LOCK_LISTINGS_SQL = text("""
    SELECT id, seller_id, price, is_available
    FROM listings
    WHERE id = ANY(CAST(:ids AS TEXT[]))
    ORDER BY id
    FOR UPDATE
""")

_GET_AVAILABILITY_SQL = text("SELECT is_available FROM listings WHERE id = :listing_id")

_GET_PRICE_SQL = text("SELECT price FROM listings WHERE id = :listing_id")

_MARK_UNAVAILABLE_SQL = text("""
    UPDATE listings
    SET is_available = FALSE, status = 'IN_TRADE', updated_at = NOW()
    WHERE id = ANY(CAST(:ids AS TEXT[]))
""")

_MARK_AVAILABLE_SQL = text("""
    UPDATE listings
    SET is_available = TRUE, status = 'ACTIVE', updated_at = NOW()
    WHERE id = ANY(CAST(:ids AS TEXT[]))
      AND status = 'IN_TRADE'
""")

_MARK_TRADED_SQL = text("""
    UPDATE listings
    SET is_available = FALSE, status = 'COMPLETED',
        trade_count = trade_count + 1, updated_at = NOW()
    WHERE id = ANY(CAST(:ids AS TEXT[]))
""")


def _sorted_ids(listing_ids: Sequence[str]) -> list[str]:
    return sorted(set(listing_ids))


class ListingStore:
    """Concrete ListingStoreProtocol over PostgreSQL."""

    async def lock_listings(
        self, db: AsyncSession, listing_ids: Sequence[str]
    ) -> dict[str, ListingSnapshot]:
        if not listing_ids:
            return {}
        result = await db.execute(_LOCK_LISTINGS_SQL, {"ids": _sorted_ids(listing_ids)})
        return {
            row.id: ListingSnapshot(
                id=row.id,
                owner_id=row.seller_id,
                price=row.price,
                is_available=row.is_available,
            )
            for row in result.fetchall()
        }

    async def get_availability(self, db: AsyncSession, listing_id: str) -> bool:
        result = await db.execute(_GET_AVAILABILITY_SQL, {"listing_id": listing_id})
        return bool(result.scalar_one_or_none())

    async def get_declared_value(self, db: AsyncSession, listing_id: str) -> int:
        result = await db.execute(_GET_PRICE_SQL, {"listing_id": listing_id})
        price = result.scalar_one_or_none()
        if price is None:
            raise ListingUnavailableError(listing_id)
        return int(price)

    async def mark_unavailable(self, db: AsyncSession, listing_ids: Sequence[str]) -> None:
        await db.execute(_MARK_UNAVAILABLE_SQL, {"ids": _sorted_ids(listing_ids)})

    async def mark_available(self, db: AsyncSession, listing_ids: Sequence[str]) -> None:
        await db.execute(_MARK_AVAILABLE_SQL, {"ids": _sorted_ids(listing_ids)})

    async def mark_traded(self, db: AsyncSession, listing_ids: Sequence[str]) -> None:
        await db.execute(_MARK_TRADED_SQL, {"ids": _sorted_ids(listing_ids)})
