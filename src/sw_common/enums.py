"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class TradeStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    COMPLETED = "COMPLETED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[TradeStatus] = frozenset({
    TradeStatus.REJECTED,
    TradeStatus.CANCELLED,
    TradeStatus.EXPIRED,
    TradeStatus.COMPLETED,
})


class TradeAction(str, Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"
    CANCEL = "CANCEL"
    COMPLETE = "COMPLETE"
    EXPIRE = "EXPIRE"


class TradeEventType(str, Enum):
    TRADE_PROPOSED = "TRADE_PROPOSED"
    TRADE_ACCEPTED = "TRADE_ACCEPTED"
    TRADE_REJECTED = "TRADE_REJECTED"
    TRADE_CANCELLED = "TRADE_CANCELLED"
    TRADE_COMPLETED = "TRADE_COMPLETED"
    TRADE_EXPIRED = "TRADE_EXPIRED"


class OfferLineType(str, Enum):
    """Discriminator stored in trade_offer_lines.line_type."""
    LISTING = "LISTING"
    CASH = "CASH"
    SERVICE = "SERVICE"


class Fairness(str, Enum):
    FAIR = "FAIR"
    UNFAIR = "UNFAIR"


class ListingStatus(str, Enum):
    ACTIVE = "ACTIVE"
    IN_TRADE = "IN_TRADE"
    COMPLETED = "COMPLETED"
