"""TradeLifecycleService: the single writer of trade state.

Every mutating operation is one short transaction on the caller's session:
lock the rows it reads (trade and/or listings), check preconditions, write
trade + listing flags + an event row, commit. Precondition failures raise
before any write and the transaction is rolled back. Notification happens
after commit; delivery failures are logged and never undo the transition.
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.sw_common.database import transaction
from src.sw_common.datetime_utils import ensure_utc, utc_now
from src.sw_common.enums import TradeAction, TradeEventType, TradeStatus
from src.sw_common.errors import (
    AppError,
    EmptyOfferError,
    InvalidCodeError,
    ListingUnavailableError,
    ListingValueMismatchError,
    NotAuthorizedError,
    OwnershipError,
    RejectionReasonRequiredError,
    SelfTradeError,
    TradeNotFoundError,
)
from src.sw_offer.domain.models import ListingLine, TradeOffer
from src.sw_trade.application.schemas import (
    TradeListResponse,
    TradeResponse,
    cursor_decode,
    cursor_encode,
)
from src.sw_trade.domain.models import ExpirySweepResult, Trade, TradeEvent
from src.sw_trade.domain.repository import (
    ListingStoreProtocol,
    NotifierProtocol,
    TradeRepositoryProtocol,
)
from src.sw_trade.domain.state_machine import apply_transition, check_transition
from src.sw_trade.infrastructure.listing_store import ListingStore
from src.sw_trade.infrastructure.notifier import RedisNotifier
from src.sw_trade.infrastructure.persistence import TradeRepository
from src.sw_valuation.domain.valuation import Valuation, assess

logger = logging.getLogger(__name__)

COMPLETION_CODE_DIGITS = 6


def generate_completion_code() -> str:
    return f"{secrets.randbelow(10 ** COMPLETION_CODE_DIGITS):0{COMPLETION_CODE_DIGITS}d}"


def _event(event_type: TradeEventType, trade: Trade, recipient_id: str) -> TradeEvent:
    return TradeEvent(
        event_type=event_type,
        trade_id=trade.id,
        recipient_id=recipient_id,
        payload={
            "status": trade.status.value,
            "target_listing_id": trade.target_listing_id,
            "proposer_id": trade.proposer_id,
            "receiver_id": trade.receiver_id,
            "estimated_value": trade.estimated_value,
        },
    )


class TradeLifecycleService:
    def __init__(
        self,
        repo: TradeRepositoryProtocol | None = None,
        listings: ListingStoreProtocol | None = None,
        notifier: NotifierProtocol | None = None,
        pending_ttl: timedelta | None = None,
    ) -> None:
        self._repo: TradeRepositoryProtocol = repo or TradeRepository()
        self._listings: ListingStoreProtocol = listings or ListingStore()
        self._notifier: NotifierProtocol = notifier or RedisNotifier()
        self._pending_ttl = pending_ttl or timedelta(hours=settings.TRADE_PENDING_TTL_HOURS)

    # ------------------------------------------------------------------
    # Proposal
    # ------------------------------------------------------------------

    async def propose(
        self,
        db: AsyncSession,
        proposer_id: str,
        receiver_id: str,
        target_listing_id: str,
        offer: TradeOffer,
        message: str | None = None,
    ) -> Trade:
        if proposer_id == receiver_id:
            raise SelfTradeError()
        if not offer.lines:
            raise EmptyOfferError()
        if offer.owner_id != proposer_id:
            raise NotAuthorizedError(proposer_id, "propose with another user's offer")

        offered_ids = offer.listing_ids
        async with transaction(db):
            snapshots = await self._listings.lock_listings(db, [target_listing_id, *offered_ids])

            target = snapshots.get(target_listing_id)
            if target is None or not target.is_available:
                raise ListingUnavailableError(target_listing_id)
            if target.owner_id != receiver_id:
                raise OwnershipError(target_listing_id, receiver_id)
            if await self._repo.has_active_trade_for_target(db, target_listing_id):
                raise ListingUnavailableError(target_listing_id)

            for line in offer.lines:
                if not isinstance(line, ListingLine):
                    continue
                snap = snapshots.get(line.listing_id)
                if snap is None or not snap.is_available:
                    raise ListingUnavailableError(line.listing_id)
                if snap.owner_id != proposer_id:
                    raise OwnershipError(line.listing_id, proposer_id)
                if snap.price != line.declared_value:
                    raise ListingValueMismatchError(line.listing_id, line.declared_value, snap.price)

            valuation = assess(offer, target.price)
            now = utc_now()
            trade = Trade(
                id=str(uuid.uuid4()),
                proposer_id=proposer_id,
                receiver_id=receiver_id,
                target_listing_id=target_listing_id,
                proposer_offer=offer,
                status=TradeStatus.PENDING,
                estimated_value=valuation.offer_value,
                target_value=valuation.target_value,
                fairness=valuation.fairness,
                message=(message or "").strip() or None,
                created_at=now,
                updated_at=now,
            )
            await self._listings.mark_unavailable(db, trade.listing_ids)
            await self._repo.insert(db, trade)
            event = _event(TradeEventType.TRADE_PROPOSED, trade, receiver_id)
            await self._repo.record_event(db, event)

        logger.info(
            "Trade proposed: id=%s target=%s value=%d fairness=%s",
            trade.id, target_listing_id, trade.estimated_value, trade.fairness.value,
        )
        await self._dispatch(event)
        return trade

    async def preview(
        self,
        db: AsyncSession,
        proposer_id: str,
        target_listing_id: str,
        offer: TradeOffer,
    ) -> Valuation:
        """Read-only valuation of `offer` against the target's authoritative price."""
        if not offer.lines:
            raise EmptyOfferError()
        if offer.owner_id != proposer_id:
            raise NotAuthorizedError(proposer_id, "preview another user's offer")
        if not await self._listings.get_availability(db, target_listing_id):
            raise ListingUnavailableError(target_listing_id)
        target_value = await self._listings.get_declared_value(db, target_listing_id)
        for line in offer.lines:
            if isinstance(line, ListingLine):
                actual = await self._listings.get_declared_value(db, line.listing_id)
                if actual != line.declared_value:
                    raise ListingValueMismatchError(line.listing_id, line.declared_value, actual)
        return assess(offer, target_value)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def accept(
        self,
        db: AsyncSession,
        trade_id: str,
        actor_id: str,
        meeting_location: str | None = None,
        meeting_time: datetime | None = None,
    ) -> Trade:
        async with transaction(db):
            trade = await self._load_for_update(db, trade_id)
            updated = apply_transition(
                trade,
                TradeAction.ACCEPT,
                actor_id,
                utc_now(),
                completion_code=generate_completion_code(),
                meeting_location=meeting_location,
                meeting_time=ensure_utc(meeting_time) if meeting_time else None,
            )
            await self._repo.update(db, updated)
            event = _event(TradeEventType.TRADE_ACCEPTED, updated, updated.proposer_id)
            await self._repo.record_event(db, event)

        logger.info("Trade accepted: id=%s by=%s", trade_id, actor_id)
        await self._dispatch(event)
        return updated

    async def reject(
        self, db: AsyncSession, trade_id: str, actor_id: str, reason: str
    ) -> Trade:
        async with transaction(db):
            trade = await self._load_for_update(db, trade_id)
            check_transition(trade, TradeAction.REJECT, actor_id)
            cleaned = (reason or "").strip()
            if not cleaned:
                raise RejectionReasonRequiredError()
            updated = apply_transition(
                trade, TradeAction.REJECT, actor_id, utc_now(), rejection_reason=cleaned
            )
            await self._listings.mark_available(db, updated.listing_ids)
            await self._repo.update(db, updated)
            event = _event(TradeEventType.TRADE_REJECTED, updated, updated.proposer_id)
            await self._repo.record_event(db, event)

        logger.info("Trade rejected: id=%s by=%s", trade_id, actor_id)
        await self._dispatch(event)
        return updated

    async def cancel(self, db: AsyncSession, trade_id: str, actor_id: str) -> Trade:
        async with transaction(db):
            trade = await self._load_for_update(db, trade_id)
            updated = apply_transition(trade, TradeAction.CANCEL, actor_id, utc_now())
            await self._listings.mark_available(db, updated.listing_ids)
            await self._repo.update(db, updated)
            event = _event(TradeEventType.TRADE_CANCELLED, updated, updated.counterpart_of(actor_id))
            await self._repo.record_event(db, event)

        logger.info("Trade cancelled: id=%s by=%s", trade_id, actor_id)
        await self._dispatch(event)
        return updated

    async def complete(
        self,
        db: AsyncSession,
        trade_id: str,
        actor_id: str,
        supplied_code: str,
        notes: str | None = None,
    ) -> Trade:
        async with transaction(db):
            trade = await self._load_for_update(db, trade_id)
            check_transition(trade, TradeAction.COMPLETE, actor_id)
            expected = trade.completion_code or ""
            supplied = (supplied_code or "").strip()
            if not expected or not secrets.compare_digest(supplied.encode(), expected.encode()):
                raise InvalidCodeError()
            now = utc_now()
            updated = apply_transition(
                trade,
                TradeAction.COMPLETE,
                actor_id,
                now,
                completed_at=now,
                completion_notes=(notes or "").strip() or None,
            )
            await self._listings.mark_traded(db, updated.listing_ids)
            await self._repo.update(db, updated)
            event = _event(TradeEventType.TRADE_COMPLETED, updated, updated.counterpart_of(actor_id))
            await self._repo.record_event(db, event)

        logger.info("Trade completed: id=%s by=%s", trade_id, actor_id)
        await self._dispatch(event)
        return updated

    async def expire_stale(
        self, db: AsyncSession, now: datetime | None = None
    ) -> ExpirySweepResult:
        """Expire PENDING trades older than the TTL, one transaction per trade.

        Safe to re-run: trades already moved on are skipped, and a failure
        on one trade is recorded without stopping the sweep.
        """
        now = ensure_utc(now) if now else utc_now()
        cutoff = now - self._pending_ttl
        result = ExpirySweepResult()

        candidate_ids = await self._repo.list_stale_pending_ids(db, cutoff)
        for trade_id in candidate_ids:
            try:
                event = await self._expire_one(db, trade_id, now, cutoff)
            except AppError as exc:
                logger.warning("Expiry failed for trade %s: %s", trade_id, exc.message)
                result.failed.append(trade_id)
                continue
            if event is not None:
                result.expired.append(trade_id)
                await self._dispatch(event)

        if result.expired or result.failed:
            logger.info(
                "Expiry sweep: expired=%d failed=%d cutoff=%s",
                len(result.expired), len(result.failed), cutoff.isoformat(),
            )
        return result

    async def _expire_one(
        self, db: AsyncSession, trade_id: str, now: datetime, cutoff: datetime
    ) -> TradeEvent | None:
        async with transaction(db):
            trade = await self._repo.get_for_update(db, trade_id)
            if trade is None or trade.status != TradeStatus.PENDING:
                return None
            if ensure_utc(trade.created_at) > cutoff:
                return None
            updated = apply_transition(trade, TradeAction.EXPIRE, None, now)
            await self._listings.mark_available(db, updated.listing_ids)
            await self._repo.update(db, updated)
            event = _event(TradeEventType.TRADE_EXPIRED, updated, updated.proposer_id)
            await self._repo.record_event(db, event)
        return event

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_trade(self, db: AsyncSession, trade_id: str, actor_id: str) -> Trade:
        trade = await self._repo.get_by_id(db, trade_id)
        if trade is None:
            raise TradeNotFoundError(trade_id)
        if actor_id not in trade.participants:
            raise NotAuthorizedError(actor_id, "view")
        return trade

    async def list_trades(
        self,
        db: AsyncSession,
        user_id: str,
        status: str | None,
        cursor: str | None,
        limit: int,
    ) -> TradeListResponse:
        cursor_ts, cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without COUNT(*)
        trades = await self._repo.list_by_user(
            db, user_id, status, cursor_ts, cursor_id, limit + 1
        )
        has_more = len(trades) > limit
        page = trades[:limit]
        next_cursor = cursor_encode(page[-1]) if has_more and page else None
        return TradeListResponse(
            items=[TradeResponse.from_domain(t, viewer_id=user_id) for t in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_for_update(self, db: AsyncSession, trade_id: str) -> Trade:
        trade = await self._repo.get_for_update(db, trade_id)
        if trade is None:
            raise TradeNotFoundError(trade_id)
        return trade

    async def _dispatch(self, event: TradeEvent) -> None:
        try:
            await self._notifier.notify(event)
        except Exception:  # noqa: BLE001 -- delivery is fire-and-forget
            logger.warning(
                "Notification %s for trade %s to %s failed",
                event.event_type.value, event.trade_id, event.recipient_id,
                exc_info=True,
            )
