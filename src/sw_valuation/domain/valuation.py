"""Valuation engine: exact offer totals and the ±20% fairness verdict.

Pure functions; integer minor units throughout. Service hours are Decimal
with at most two places, so hours × rate is always a whole number of
minor units.
"""

from dataclasses import dataclass
from typing import assert_never

from src.sw_common.enums import Fairness
from src.sw_offer.domain.models import CashLine, ListingLine, OfferLine, ServiceLine, TradeOffer

# ₦2,000 per pledged hour, in kobo. Global and not user-configurable.
SERVICE_HOURLY_RATE = 200_000

# Fair band is |offer - target| <= target * 20%; compared as |diff| * 5 <= target.
_FAIRNESS_DIVISOR = 5


@dataclass(frozen=True)
class Valuation:
    offer_value: int
    target_value: int
    difference: int  # offer - target
    fairness: Fairness


def value_of_line(line: OfferLine) -> int:
    if isinstance(line, ListingLine):
        return line.declared_value
    if isinstance(line, CashLine):
        return line.amount
    if isinstance(line, ServiceLine):
        value = line.hours * SERVICE_HOURLY_RATE
        if value != value.to_integral_value():
            raise ValueError(f"Service value {value} is not whole minor units")
        return int(value)
    assert_never(line)


def total_value(offer: TradeOffer) -> int:
    return sum((value_of_line(line) for line in offer.lines), 0)


def fairness(offer_value: int, target_value: int) -> Fairness:
    """target_value == 0 means no declared price; such targets opt out and are always FAIR."""
    if target_value == 0:
        return Fairness.FAIR
    if abs(offer_value - target_value) * _FAIRNESS_DIVISOR <= target_value:
        return Fairness.FAIR
    return Fairness.UNFAIR


def assess(offer: TradeOffer, target_value: int) -> Valuation:
    offer_value = total_value(offer)
    return Valuation(
        offer_value=offer_value,
        target_value=target_value,
        difference=offer_value - target_value,
        fairness=fairness(offer_value, target_value),
    )
