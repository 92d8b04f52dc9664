"""Trade domain models: frozen dataclasses, no SQLAlchemy dependency.

Trades are never mutated in place: state_machine.apply_transition returns a
new value, and only the lifecycle service persists it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.sw_common.enums import Fairness, TradeEventType, TradeStatus
from src.sw_offer.domain.models import TradeOffer


@dataclass(frozen=True)
class Trade:
    id: str
    proposer_id: str
    receiver_id: str
    target_listing_id: str
    proposer_offer: TradeOffer
    status: TradeStatus
    estimated_value: int     # minor units, snapshot at proposal
    target_value: int        # minor units, target price snapshot at proposal
    fairness: Fairness
    created_at: datetime
    updated_at: datetime
    message: str | None = None
    meeting_location: str | None = None
    meeting_time: datetime | None = None
    completion_code: str | None = None
    completion_notes: str | None = None
    rejection_reason: str | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def participants(self) -> tuple[str, str]:
        return (self.proposer_id, self.receiver_id)

    @property
    def listing_ids(self) -> list[str]:
        """Target plus every listing offered against it."""
        return [self.target_listing_id, *self.proposer_offer.listing_ids]

    def counterpart_of(self, user_id: str) -> str:
        return self.receiver_id if user_id == self.proposer_id else self.proposer_id


@dataclass(frozen=True)
class ListingSnapshot:
    """Authoritative listing fields read under lock from the listing store."""

    id: str
    owner_id: str
    price: int  # minor units; 0 means no declared price
    is_available: bool


@dataclass(frozen=True)
class TradeEvent:
    event_type: TradeEventType
    trade_id: str
    recipient_id: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExpirySweepResult:
    expired: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
