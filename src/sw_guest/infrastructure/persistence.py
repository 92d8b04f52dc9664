# src/sw_guest/infrastructure/persistence.py
"""GuestMergeRepository: upserts that make guest reconciliation idempotent.

favorites            INSERT ... ON CONFLICT (account_id, listing_id) DO NOTHING
account_preferences  INSERT ... ON CONFLICT (account_id) DO UPDATE with COALESCE,
                     so absent guest fields never overwrite stored ones
account_activity     read FOR UPDATE, merge most-recent-first in Python, upsert
"""

from collections.abc import Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.sw_guest.domain.models import (
    MAX_SEARCHES,
    MAX_VIEWED_LISTINGS,
    GuestPreferences,
    merge_recent,
)

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

# Favorites for listings that no longer exist are skipped rather than failing the merge.
_UPSERT_FAVORITES_SQL = text("""
    INSERT INTO favorites (account_id, listing_id)
    SELECT :account_id, l.id
    FROM listings l
    WHERE l.id = ANY(CAST(:listing_ids AS TEXT[]))
    ON CONFLICT (account_id, listing_id) DO NOTHING
    RETURNING listing_id
""")

_UPSERT_PREFERENCES_SQL = text("""
    INSERT INTO account_preferences (account_id, categories, location, price_min, price_max)
    VALUES (:account_id, CAST(:categories AS TEXT[]), :location, :price_min, :price_max)
    ON CONFLICT (account_id) DO UPDATE SET
        categories = COALESCE(EXCLUDED.categories, account_preferences.categories),
        location   = COALESCE(EXCLUDED.location, account_preferences.location),
        price_min  = COALESCE(EXCLUDED.price_min, account_preferences.price_min),
        price_max  = COALESCE(EXCLUDED.price_max, account_preferences.price_max),
        updated_at = NOW()
""")

_GET_ACTIVITY_FOR_UPDATE_SQL = text("""
    SELECT recent_searches, viewed_listing_ids
    FROM account_activity
    WHERE account_id = :account_id
    FOR UPDATE
""")

_UPSERT_ACTIVITY_SQL = text("""
    INSERT INTO account_activity (account_id, recent_searches, viewed_listing_ids)
    VALUES (:account_id, CAST(:recent_searches AS TEXT[]), CAST(:viewed_listing_ids AS TEXT[]))
    ON CONFLICT (account_id) DO UPDATE SET
        recent_searches    = EXCLUDED.recent_searches,
        viewed_listing_ids = EXCLUDED.viewed_listing_ids,
        updated_at         = NOW()
""")


class GuestMergeRepository:
    """Concrete GuestMergeRepositoryProtocol. Runs in the caller's transaction."""

    async def upsert_favorites(
        self, db: AsyncSession, account_id: str, listing_ids: Sequence[str]
    ) -> int:
        if not listing_ids:
            return 0
        result = await db.execute(
            _UPSERT_FAVORITES_SQL,
            {"account_id": account_id, "listing_ids": list(listing_ids)},
        )
        return len(result.fetchall())

    async def apply_preferences(
        self, db: AsyncSession, account_id: str, preferences: GuestPreferences
    ) -> None:
        price_range = preferences.price_range
        await db.execute(
            _UPSERT_PREFERENCES_SQL,
            {
                "account_id": account_id,
                # empty list means "no opinion", not "clear my interests"
                "categories": list(preferences.categories) or None,
                "location": preferences.location,
                "price_min": price_range.min if price_range else None,
                "price_max": price_range.max if price_range else None,
            },
        )

    async def merge_history(
        self,
        db: AsyncSession,
        account_id: str,
        searches: Sequence[str],
        viewed_listing_ids: Sequence[str],
    ) -> None:
        result = await db.execute(_GET_ACTIVITY_FOR_UPDATE_SQL, {"account_id": account_id})
        row = result.fetchone()
        existing_searches = list(row.recent_searches or []) if row else []
        existing_viewed = list(row.viewed_listing_ids or []) if row else []
        await db.execute(
            _UPSERT_ACTIVITY_SQL,
            {
                "account_id": account_id,
                "recent_searches": merge_recent(searches, existing_searches, MAX_SEARCHES),
                "viewed_listing_ids": merge_recent(
                    viewed_listing_ids, existing_viewed, MAX_VIEWED_LISTINGS
                ),
            },
        )
