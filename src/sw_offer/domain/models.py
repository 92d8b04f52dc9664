"""Offer domain models: pure dataclasses, no SQLAlchemy dependency.

OfferLine is a closed union of three line kinds. Consumers dispatch with
isinstance and finish with assert_never, so a new kind fails type checking
everywhere it is not handled.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from config.settings import settings


@dataclass(frozen=True)
class ListingLine:
    listing_id: str
    owner_id: str
    declared_value: int  # minor units


@dataclass(frozen=True)
class CashLine:
    amount: int  # minor units


@dataclass(frozen=True)
class ServiceLine:
    description: str
    hours: Decimal


OfferLine = ListingLine | CashLine | ServiceLine


@dataclass(frozen=True)
class TradeOffer:
    """Finalized, immutable offer owned by one party."""

    owner_id: str
    lines: tuple[OfferLine, ...]

    @property
    def listing_ids(self) -> list[str]:
        return [line.listing_id for line in self.lines if isinstance(line, ListingLine)]


@dataclass
class OfferDraft:
    """Mutable staging area for an offer; see src.sw_offer.domain.composer."""

    owner_id: str
    max_cash_amount: int = settings.MAX_CASH_AMOUNT_MINOR
    lines: list[OfferLine] = field(default_factory=list)

    def has_listing(self, listing_id: str) -> bool:
        return any(
            isinstance(line, ListingLine) and line.listing_id == listing_id
            for line in self.lines
        )
