"""Guest activity log: bounded, client-carried record of anonymous browsing.

The log is a plain value: the browser (or RedisGuestLogStore on its behalf)
holds it, and GuestReconciliationService folds it into an account once the
guest signs in. Collections are bounded so a hostile client cannot make the
merge unbounded:

  favorites        unique, insertion order
  searches         most recent first, trimmed, de-duplicated, cap 10
  viewed_listings  most recent first, de-duplicated, cap 50

The whole log is discarded 30 days after created_at regardless of content.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from src.sw_common.datetime_utils import ensure_utc, utc_now

GUEST_LOG_RETENTION = timedelta(days=30)
MAX_SEARCHES = 10
MAX_VIEWED_LISTINGS = 50
MAX_FAVORITES = 500
MAX_CATEGORIES = 20


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def merge_recent(newer: Iterable[str], older: Iterable[str], cap: int) -> list[str]:
    """Most-recent-first merge: `newer` wins ties, duplicates dropped, truncated to `cap`."""
    merged: list[str] = []
    seen: set[str] = set()
    for item in (*newer, *older):
        if item in seen:
            continue
        seen.add(item)
        merged.append(item)
        if len(merged) == cap:
            break
    return merged


@dataclass(frozen=True)
class PriceRange:
    min: int  # minor units
    max: int

    def __post_init__(self) -> None:
        if self.min < 0 or self.max < self.min:
            raise ValueError(f"invalid price range {self.min}..{self.max}")


@dataclass
class GuestPreferences:
    categories: list[str] = field(default_factory=list)
    location: str | None = None
    price_range: PriceRange | None = None

    def has_any(self) -> bool:
        return bool(self.categories) or self.location is not None or self.price_range is not None


@dataclass(frozen=True)
class GuestLogSummary:
    total_favorites: int
    total_searches: int
    total_viewed_listings: int
    has_preferences: bool
    days_since_first_use: int


@dataclass
class GuestActivityLog:
    guest_id: str
    created_at: datetime = field(default_factory=utc_now)
    favorites: list[str] = field(default_factory=list)
    searches: list[str] = field(default_factory=list)
    viewed_listings: list[str] = field(default_factory=list)
    preferences: GuestPreferences = field(default_factory=GuestPreferences)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_favorite(self, listing_id: str) -> None:
        if listing_id not in self.favorites and len(self.favorites) < MAX_FAVORITES:
            self.favorites.append(listing_id)

    def remove_favorite(self, listing_id: str) -> None:
        self.favorites = [f for f in self.favorites if f != listing_id]

    def add_search(self, query: str) -> None:
        trimmed = query.strip()
        if not trimmed:
            return
        self.searches = merge_recent([trimmed], self.searches, MAX_SEARCHES)

    def add_viewed_listing(self, listing_id: str) -> None:
        self.viewed_listings = merge_recent([listing_id], self.viewed_listings, MAX_VIEWED_LISTINGS)

    def update_preferences(
        self,
        categories: list[str] | None = UNSET,
        location: str | None = UNSET,
        price_range: PriceRange | None = UNSET,
    ) -> None:
        """Last write wins per field; omitted fields keep their value."""
        if categories is not UNSET:
            self.preferences.categories = list(categories or [])
        if location is not UNSET:
            self.preferences.location = location
        if price_range is not UNSET:
            self.preferences.price_range = price_range

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def expires_at(self) -> datetime:
        return ensure_utc(self.created_at) + GUEST_LOG_RETENTION

    def is_expired(self, now: datetime | None = None) -> bool:
        now = ensure_utc(now) if now else utc_now()
        return now >= self.expires_at()

    def is_empty(self) -> bool:
        return not (
            self.favorites or self.searches or self.viewed_listings or self.preferences.has_any()
        )

    def summary(self, now: datetime | None = None) -> GuestLogSummary:
        now = ensure_utc(now) if now else utc_now()
        age = now - ensure_utc(self.created_at)
        return GuestLogSummary(
            total_favorites=len(self.favorites),
            total_searches=len(self.searches),
            total_viewed_listings=len(self.viewed_listings),
            has_preferences=self.preferences.has_any(),
            days_since_first_use=max(age.days, 0),
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        price_range = self.preferences.price_range
        return {
            "guest_id": self.guest_id,
            "created_at": ensure_utc(self.created_at).isoformat(),
            "favorites": list(self.favorites),
            "searches": list(self.searches),
            "viewed_listings": list(self.viewed_listings),
            "preferences": {
                "categories": list(self.preferences.categories),
                "location": self.preferences.location,
                "price_range": (
                    {"min": price_range.min, "max": price_range.max} if price_range else None
                ),
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], now: datetime | None = None) -> "GuestActivityLog":
        """Rebuild a log from untrusted input, re-applying every bound.

        A created_at later than `now` is clamped to `now`, so the retention
        window can never start in the future.

        Raises KeyError/ValueError/TypeError on malformed input.
        """
        now = ensure_utc(now) if now else utc_now()
        created_at = data["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        created_at = min(ensure_utc(created_at), now)
        prefs = data.get("preferences") or {}
        raw_range = prefs.get("price_range")
        location = prefs.get("location")
        return cls(
            guest_id=str(data["guest_id"]),
            created_at=created_at,
            favorites=merge_recent(
                [str(f) for f in data.get("favorites") or []], [], MAX_FAVORITES
            ),
            searches=merge_recent(
                [s.strip() for s in data.get("searches") or [] if s and s.strip()],
                [],
                MAX_SEARCHES,
            ),
            viewed_listings=merge_recent(
                [str(v) for v in data.get("viewed_listings") or []], [], MAX_VIEWED_LISTINGS
            ),
            preferences=GuestPreferences(
                categories=merge_recent(
                    [str(c) for c in prefs.get("categories") or []], [], MAX_CATEGORIES
                ),
                location=(location.strip() or None) if isinstance(location, str) else None,
                price_range=(
                    PriceRange(min=int(raw_range["min"]), max=int(raw_range["max"]))
                    if raw_range
                    else None
                ),
            ),
        )


@dataclass(frozen=True)
class ReconcileResult:
    favorites_merged: int = 0
    preferences_applied: bool = False
    history_merged: bool = False
    expired: bool = False
    log_cleared: bool = True
    log_found: bool = True
