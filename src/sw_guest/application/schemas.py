"""Pydantic schemas for the guest activity endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from src.sw_guest.domain.models import (
    MAX_CATEGORIES,
    MAX_FAVORITES,
    MAX_SEARCHES,
    MAX_VIEWED_LISTINGS,
    GuestActivityLog,
    GuestLogSummary,
    ReconcileResult,
)

GUEST_ID_PATTERN = r"^[A-Za-z0-9_-]{8,64}$"


class PriceRangeIn(BaseModel):
    min: int = Field(..., ge=0)
    max: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "PriceRangeIn":
        if self.max < self.min:
            raise ValueError("price_range.max must be >= price_range.min")
        return self


class PreferencesIn(BaseModel):
    categories: list[str] = Field(default_factory=list, max_length=MAX_CATEGORIES)
    location: str | None = Field(None, max_length=255)
    price_range: PriceRangeIn | None = None


class GuestActivityIn(BaseModel):
    """The client's log as held in browser storage.

    Lists longer than the domain caps are rejected outright; shorter lists
    are still de-duplicated and trimmed by GuestActivityLog.from_dict.
    """

    created_at: datetime
    favorites: list[str] = Field(default_factory=list, max_length=MAX_FAVORITES)
    searches: list[str] = Field(default_factory=list, max_length=MAX_SEARCHES)
    viewed_listings: list[str] = Field(default_factory=list, max_length=MAX_VIEWED_LISTINGS)
    preferences: PreferencesIn = Field(default_factory=PreferencesIn)

    def to_domain(self, guest_id: str) -> GuestActivityLog:
        return GuestActivityLog.from_dict({**self.model_dump(), "guest_id": guest_id})


class ReconcileGuestRequest(GuestActivityIn):
    guest_id: str = Field(..., pattern=GUEST_ID_PATTERN)


class GuestSummaryResponse(BaseModel):
    total_favorites: int
    total_searches: int
    total_viewed_listings: int
    has_preferences: bool
    days_since_first_use: int

    @classmethod
    def from_domain(cls, summary: GuestLogSummary) -> "GuestSummaryResponse":
        return cls(
            total_favorites=summary.total_favorites,
            total_searches=summary.total_searches,
            total_viewed_listings=summary.total_viewed_listings,
            has_preferences=summary.has_preferences,
            days_since_first_use=summary.days_since_first_use,
        )


class ReconcileResponse(BaseModel):
    favorites_merged: int
    preferences_applied: bool
    history_merged: bool
    expired: bool
    log_cleared: bool
    log_found: bool

    @classmethod
    def from_domain(cls, result: ReconcileResult) -> "ReconcileResponse":
        return cls(
            favorites_merged=result.favorites_merged,
            preferences_applied=result.preferences_applied,
            history_merged=result.history_merged,
            expired=result.expired,
            log_cleared=result.log_cleared,
            log_found=result.log_found,
        )
