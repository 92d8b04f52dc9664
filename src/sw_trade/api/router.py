"""sw_trade REST endpoints.

POST /trades/preview               - valuation of a draft offer, no writes
POST /trades                       - propose
GET  /trades                       - caller's trades, cursor pagination
GET  /trades/{trade_id}            - detail (participants only)
POST /trades/{trade_id}/accept     - receiver
POST /trades/{trade_id}/reject     - receiver, reason required
POST /trades/{trade_id}/cancel     - proposer while PENDING, either once ACCEPTED
POST /trades/{trade_id}/complete   - either participant, with the completion code
POST /trades/expire                - scheduler hook (system token)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.sw_common.database import get_db_session
from src.sw_common.enums import TradeStatus
from src.sw_common.response import ApiResponse, success_response
from src.sw_gateway.auth.dependencies import get_current_user_id, require_system_caller
from src.sw_offer.application.schemas import build_offer
from src.sw_trade.application.schemas import (
    AcceptTradeRequest,
    CompleteTradeRequest,
    ExpirySweepResponse,
    OfferRequest,
    ProposeTradeRequest,
    RejectTradeRequest,
    TradeResponse,
    ValuationResponse,
)
from src.sw_trade.application.service import TradeLifecycleService

router = APIRouter(prefix="/trades", tags=["trades"])

_service = TradeLifecycleService()

CurrentUserId = Annotated[str, Depends(get_current_user_id)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.post("/preview")
async def preview_trade(
    req: OfferRequest, request: Request, user_id: CurrentUserId, db: DbSession
) -> ApiResponse:
    offer = build_offer(user_id, req.lines)
    valuation = await _service.preview(db, user_id, req.target_listing_id, offer)
    return success_response(ValuationResponse.from_domain(valuation).model_dump(), request)


@router.post("", status_code=201)
async def propose_trade(
    req: ProposeTradeRequest, request: Request, user_id: CurrentUserId, db: DbSession
) -> ApiResponse:
    offer = build_offer(user_id, req.lines)
    trade = await _service.propose(
        db, user_id, req.receiver_id, req.target_listing_id, offer, req.message
    )
    return success_response(
        TradeResponse.from_domain(trade, viewer_id=user_id).model_dump(mode="json"), request
    )


@router.get("")
async def list_trades(
    request: Request,
    user_id: CurrentUserId,
    db: DbSession,
    status: TradeStatus | None = Query(None, description="Filter by trade status"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    cursor: str | None = Query(None, description="Pagination cursor"),
) -> ApiResponse:
    result = await _service.list_trades(
        db, user_id, status.value if status else None, cursor, limit
    )
    return success_response(result.model_dump(mode="json"), request)


@router.post("/expire")
async def expire_trades(
    request: Request,
    caller_id: Annotated[str, Depends(require_system_caller)],
    db: DbSession,
) -> ApiResponse:
    result = await _service.expire_stale(db)
    return success_response(ExpirySweepResponse.from_domain(result).model_dump(), request)


@router.get("/{trade_id}")
async def get_trade(
    trade_id: str, request: Request, user_id: CurrentUserId, db: DbSession
) -> ApiResponse:
    trade = await _service.get_trade(db, trade_id, user_id)
    return success_response(
        TradeResponse.from_domain(trade, viewer_id=user_id).model_dump(mode="json"), request
    )


@router.post("/{trade_id}/accept")
async def accept_trade(
    trade_id: str,
    request: Request,
    user_id: CurrentUserId,
    db: DbSession,
    req: AcceptTradeRequest | None = None,
) -> ApiResponse:
    req = req or AcceptTradeRequest()
    trade = await _service.accept(
        db, trade_id, user_id, req.meeting_location, req.meeting_time
    )
    return success_response(
        TradeResponse.from_domain(trade, viewer_id=user_id).model_dump(mode="json"), request
    )


@router.post("/{trade_id}/reject")
async def reject_trade(
    trade_id: str,
    req: RejectTradeRequest,
    request: Request,
    user_id: CurrentUserId,
    db: DbSession,
) -> ApiResponse:
    trade = await _service.reject(db, trade_id, user_id, req.reason)
    return success_response(
        TradeResponse.from_domain(trade, viewer_id=user_id).model_dump(mode="json"), request
    )


@router.post("/{trade_id}/cancel")
async def cancel_trade(
    trade_id: str, request: Request, user_id: CurrentUserId, db: DbSession
) -> ApiResponse:
    trade = await _service.cancel(db, trade_id, user_id)
    return success_response(
        TradeResponse.from_domain(trade, viewer_id=user_id).model_dump(mode="json"), request
    )


@router.post("/{trade_id}/complete")
async def complete_trade(
    trade_id: str,
    req: CompleteTradeRequest,
    request: Request,
    user_id: CurrentUserId,
    db: DbSession,
) -> ApiResponse:
    trade = await _service.complete(db, trade_id, user_id, req.completion_code, req.notes)
    return success_response(
        TradeResponse.from_domain(trade, viewer_id=user_id).model_dump(mode="json"), request
    )
