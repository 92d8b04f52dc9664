"""sw_guest REST endpoints.

PUT  /guest/{guest_id}/activity    - anonymous; store the browser's log server-side
POST /guest/{guest_id}/reconcile   - merge the stored log into the caller's account
POST /guest/reconcile              - merge a log sent in the body
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.sw_common.database import get_db_session
from src.sw_common.response import ApiResponse, success_response
from src.sw_gateway.auth.dependencies import get_current_user_id
from src.sw_guest.application.schemas import (
    GUEST_ID_PATTERN,
    GuestActivityIn,
    GuestSummaryResponse,
    ReconcileGuestRequest,
    ReconcileResponse,
)
from src.sw_guest.application.service import GuestReconciliationService

router = APIRouter(prefix="/guest", tags=["guest"])

_service = GuestReconciliationService()

GuestId = Annotated[str, Path(pattern=GUEST_ID_PATTERN)]


@router.put("/{guest_id}/activity")
async def record_activity(
    guest_id: GuestId, req: GuestActivityIn, request: Request
) -> ApiResponse:
    summary = await _service.record_activity(req.to_domain(guest_id))
    return success_response(GuestSummaryResponse.from_domain(summary).model_dump(), request)


@router.post("/{guest_id}/reconcile")
async def reconcile_stored(
    guest_id: GuestId,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.reconcile_stored(db, user_id, guest_id)
    return success_response(ReconcileResponse.from_domain(result).model_dump(), request)


@router.post("/reconcile")
async def reconcile(
    req: ReconcileGuestRequest,
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.reconcile(db, user_id, req.to_domain(req.guest_id))
    return success_response(ReconcileResponse.from_domain(result).model_dump(), request)
