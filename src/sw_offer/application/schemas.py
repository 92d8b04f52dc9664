"""Pydantic request/response schemas for offer lines, plus the request → TradeOffer bridge."""

from decimal import Decimal
from typing import Annotated, Literal, assert_never

from pydantic import BaseModel, Field

from src.sw_common.money import minor_to_display
from src.sw_offer.domain import composer
from src.sw_offer.domain.models import (
    CashLine,
    ListingLine,
    OfferDraft,
    OfferLine,
    ServiceLine,
    TradeOffer,
)


class ListingLineIn(BaseModel):
    type: Literal["listing"] = "listing"
    listing_id: str
    declared_value: int


class CashLineIn(BaseModel):
    type: Literal["cash"] = "cash"
    amount: int


class ServiceLineIn(BaseModel):
    type: Literal["service"] = "service"
    description: str
    hours: Decimal


MAX_OFFER_LINES = 20

OfferLineIn = Annotated[
    ListingLineIn | CashLineIn | ServiceLineIn,
    Field(discriminator="type"),
]


class OfferLineOut(BaseModel):
    type: Literal["listing", "cash", "service"]
    value_display: str
    listing_id: str | None = None
    declared_value: int | None = None
    amount: int | None = None
    description: str | None = None
    hours: Decimal | None = None

    @classmethod
    def from_domain(cls, line: OfferLine, value: int) -> "OfferLineOut":
        display = minor_to_display(value)
        if isinstance(line, ListingLine):
            return cls(
                type="listing",
                listing_id=line.listing_id,
                declared_value=line.declared_value,
                value_display=display,
            )
        if isinstance(line, CashLine):
            return cls(type="cash", amount=line.amount, value_display=display)
        if isinstance(line, ServiceLine):
            return cls(
                type="service",
                description=line.description,
                hours=line.hours,
                value_display=display,
            )
        assert_never(line)


def build_offer(owner_id: str, lines: list[ListingLineIn | CashLineIn | ServiceLineIn]) -> TradeOffer:
    """Run request lines through the composer. Listing lines are owned by the caller."""
    draft = OfferDraft(owner_id=owner_id)
    for line in lines:
        if isinstance(line, ListingLineIn):
            composer.add_listing_line(draft, line.listing_id, owner_id, line.declared_value)
        elif isinstance(line, CashLineIn):
            composer.add_cash_line(draft, line.amount)
        elif isinstance(line, ServiceLineIn):
            composer.add_service_line(draft, line.description, line.hours)
        else:
            assert_never(line)
    return composer.finalize(draft)
