"""Pydantic schemas for sw_trade API requests and responses.

Cursor format for trade lists (uuid PK, not sequential):
  {"ts": "<created_at ISO>", "id": "<trade_id>"}
  Encoded as Base64 JSON string.

The completion code is only ever shown to the receiver, who generated it by
accepting; the proposer learns it in person at the hand-over.
"""

import base64
import json
from datetime import datetime

from pydantic import BaseModel, Field

from src.sw_common.money import minor_to_display
from src.sw_offer.application.schemas import MAX_OFFER_LINES, OfferLineIn, OfferLineOut
from src.sw_trade.domain.models import ExpirySweepResult, Trade
from src.sw_valuation.domain.valuation import Valuation, value_of_line

# ---------------------------------------------------------------------------
# Cursor utilities
# ---------------------------------------------------------------------------


def cursor_encode(last_trade: Trade) -> str:
    """Encode composite cursor from last trade in page."""
    payload = {
        "ts": last_trade.created_at.isoformat(),
        "id": last_trade.id,
    }
    return base64.b64encode(json.dumps(payload).encode()).decode()


def cursor_decode(cursor: str | None) -> tuple[datetime | None, str | None]:
    """Decode composite cursor -> (created_at, trade_id), or (None, None) on error."""
    if cursor is None:
        return None, None
    try:
        data = json.loads(base64.b64decode(cursor.encode()).decode())
        return datetime.fromisoformat(data["ts"]), str(data["id"])
    except (ValueError, KeyError, TypeError):
        return None, None


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class OfferRequest(BaseModel):
    target_listing_id: str
    lines: list[OfferLineIn] = Field(default_factory=list, max_length=MAX_OFFER_LINES)


class ProposeTradeRequest(OfferRequest):
    receiver_id: str
    message: str | None = Field(None, max_length=2000)


class AcceptTradeRequest(BaseModel):
    meeting_location: str | None = Field(None, max_length=255)
    meeting_time: datetime | None = None


class RejectTradeRequest(BaseModel):
    reason: str = Field(..., max_length=1000)


class CompleteTradeRequest(BaseModel):
    completion_code: str = Field(..., max_length=32)
    notes: str | None = Field(None, max_length=2000)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ValuationResponse(BaseModel):
    offer_value: int
    offer_value_display: str
    target_value: int
    target_value_display: str
    difference: int
    fairness: str

    @classmethod
    def from_domain(cls, valuation: Valuation) -> "ValuationResponse":
        return cls(
            offer_value=valuation.offer_value,
            offer_value_display=minor_to_display(valuation.offer_value),
            target_value=valuation.target_value,
            target_value_display=minor_to_display(valuation.target_value),
            difference=valuation.difference,
            fairness=valuation.fairness.value,
        )


class TradeResponse(BaseModel):
    id: str
    proposer_id: str
    receiver_id: str
    target_listing_id: str
    status: str
    lines: list[OfferLineOut]
    estimated_value: int
    estimated_value_display: str
    target_value: int
    fairness: str
    message: str | None = None
    meeting_location: str | None = None
    meeting_time: datetime | None = None
    completion_code: str | None = None
    completion_notes: str | None = None
    rejection_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_domain(cls, trade: Trade, viewer_id: str) -> "TradeResponse":
        return cls(
            id=trade.id,
            proposer_id=trade.proposer_id,
            receiver_id=trade.receiver_id,
            target_listing_id=trade.target_listing_id,
            status=trade.status.value,
            lines=[
                OfferLineOut.from_domain(line, value_of_line(line))
                for line in trade.proposer_offer.lines
            ],
            estimated_value=trade.estimated_value,
            estimated_value_display=minor_to_display(trade.estimated_value),
            target_value=trade.target_value,
            fairness=trade.fairness.value,
            message=trade.message,
            meeting_location=trade.meeting_location,
            meeting_time=trade.meeting_time,
            completion_code=trade.completion_code if viewer_id == trade.receiver_id else None,
            completion_notes=trade.completion_notes,
            rejection_reason=trade.rejection_reason,
            created_at=trade.created_at,
            updated_at=trade.updated_at,
            completed_at=trade.completed_at,
        )


class TradeListResponse(BaseModel):
    items: list[TradeResponse]
    next_cursor: str | None
    has_more: bool


class ExpirySweepResponse(BaseModel):
    expired: list[str]
    failed: list[str]

    @classmethod
    def from_domain(cls, result: ExpirySweepResult) -> "ExpirySweepResponse":
        return cls(expired=result.expired, failed=result.failed)
