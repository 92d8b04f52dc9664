"""Offer composer: validates lines into an OfferDraft and finalizes a TradeOffer.

Pure functions over the draft; no I/O. Every failure is an
OfferValidationError subclass, raised before anything reaches storage.
"""

from decimal import Decimal

from src.sw_common.errors import (
    DuplicateLineError,
    EmptyOfferError,
    IndexOutOfRangeError,
    InvalidAmountError,
    InvalidServiceError,
    OwnershipError,
)
from src.sw_common.money import to_decimal, to_minor_units
from src.sw_offer.domain.models import (
    CashLine,
    ListingLine,
    OfferDraft,
    OfferLine,
    ServiceLine,
    TradeOffer,
)

MAX_SERVICE_DESCRIPTION_LENGTH = 500
MAX_SERVICE_HOURS = Decimal("1000")
_HOURS_QUANTUM_EXPONENT = -2  # hours carry at most two decimal places


def add_listing_line(
    offer: OfferDraft, listing_id: str, owner_id: str, declared_value: object
) -> ListingLine:
    if offer.has_listing(listing_id):
        raise DuplicateLineError(listing_id)
    if owner_id != offer.owner_id:
        raise OwnershipError(listing_id, owner_id)
    value = to_minor_units(declared_value)
    if value is None or value < 0:
        raise InvalidAmountError(f"declared value {declared_value!r} for listing {listing_id}")
    line = ListingLine(listing_id=listing_id, owner_id=owner_id, declared_value=value)
    offer.lines.append(line)
    return line


def add_cash_line(offer: OfferDraft, amount: object) -> CashLine:
    value = to_minor_units(amount)
    if value is None:
        raise InvalidAmountError(f"{amount!r} is not a finite whole number of minor units")
    if value < 0:
        raise InvalidAmountError(f"{value} is negative")
    if value > offer.max_cash_amount:
        raise InvalidAmountError(f"{value} exceeds ceiling {offer.max_cash_amount}")
    line = CashLine(amount=value)
    offer.lines.append(line)
    return line


def add_service_line(offer: OfferDraft, description: str, hours: object) -> ServiceLine:
    text = (description or "").strip()
    if not text:
        raise InvalidServiceError("description is empty")
    if len(text) > MAX_SERVICE_DESCRIPTION_LENGTH:
        raise InvalidServiceError(
            f"description longer than {MAX_SERVICE_DESCRIPTION_LENGTH} characters"
        )
    dec = to_decimal(hours)
    if dec is None or not dec.is_finite():
        raise InvalidServiceError(f"hours {hours!r} is not a finite number")
    if dec <= 0:
        raise InvalidServiceError(f"hours must be positive, got {dec}")
    if dec > MAX_SERVICE_HOURS:
        raise InvalidServiceError(f"hours must not exceed {MAX_SERVICE_HOURS}")
    normalized = dec.normalize()
    if normalized.as_tuple().exponent < _HOURS_QUANTUM_EXPONENT:  # type: ignore[operator]
        raise InvalidServiceError(f"hours {dec} has more than two decimal places")
    line = ServiceLine(description=text, hours=dec)
    offer.lines.append(line)
    return line


def remove_line(offer: OfferDraft, index: int) -> OfferLine:
    if not (0 <= index < len(offer.lines)):
        raise IndexOutOfRangeError(index, len(offer.lines))
    return offer.lines.pop(index)


def finalize(offer: OfferDraft) -> TradeOffer:
    if not offer.lines:
        raise EmptyOfferError()
    return TradeOffer(owner_id=offer.owner_id, lines=tuple(offer.lines))
