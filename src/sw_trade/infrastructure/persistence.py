# src/sw_trade/infrastructure/persistence.py
"""TradeRepository: raw SQL persistence for trades, offer lines and trade events.

Transaction ownership: the CALLER (TradeLifecycleService) opens and commits
the transaction. get_for_update takes a row lock that is held until then.
"""
import json
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any, assert_never

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.sw_common.enums import Fairness, OfferLineType, TradeStatus
from src.sw_common.errors import ListingUnavailableError
from src.sw_offer.domain.models import CashLine, ListingLine, OfferLine, ServiceLine, TradeOffer
from src.sw_trade.domain.models import Trade, TradeEvent

ACTIVE_TARGET_CONSTRAINT = "uq_trades_active_target"

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_INSERT_TRADE_SQL = text("""
    INSERT INTO trades (id, proposer_id, receiver_id, target_listing_id, status,
        estimated_value, target_value, fairness, message,
        created_at, updated_at)
    VALUES (:id, :proposer_id, :receiver_id, :target_listing_id, :status,
        :estimated_value, :target_value, :fairness, :message,
        :created_at, :updated_at)
""")

_INSERT_LINE_SQL = text("""
    INSERT INTO trade_offer_lines (trade_id, position, line_type,
        listing_id, owner_id, declared_value, amount, description, hours)
    VALUES (:trade_id, :position, :line_type,
        :listing_id, :owner_id, :declared_value, :amount, :description, :hours)
""")

_UPDATE_TRADE_SQL = text("""
    UPDATE trades
    SET status = :status,
        meeting_location = :meeting_location,
        meeting_time = :meeting_time,
        completion_code = :completion_code,
        completion_notes = :completion_notes,
        rejection_reason = :rejection_reason,
        completed_at = :completed_at,
        updated_at = :updated_at
    WHERE id = :id
""")

_SELECT_COLUMNS = """
    id, proposer_id, receiver_id, target_listing_id, status,
    estimated_value, target_value, fairness, message,
    meeting_location, meeting_time, completion_code, completion_notes,
    rejection_reason, created_at, updated_at, completed_at
"""

_GET_TRADE_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM trades WHERE id = :id
""")

_GET_TRADE_FOR_UPDATE_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM trades WHERE id = :id
    FOR UPDATE
""")

_GET_LINES_SQL = text("""
    SELECT trade_id, position, line_type, listing_id, owner_id,
           declared_value, amount, description, hours
    FROM trade_offer_lines
    WHERE trade_id = ANY(CAST(:trade_ids AS TEXT[]))
    ORDER BY trade_id, position
""")

_ACTIVE_TARGET_SQL = text("""
    SELECT 1 FROM trades
    WHERE target_listing_id = :target_listing_id
      AND status IN ('PENDING', 'ACCEPTED')
    LIMIT 1
""")

_STALE_PENDING_SQL = text("""
    SELECT id FROM trades
    WHERE status = 'PENDING' AND created_at <= :created_before
    ORDER BY created_at, id
""")

_LIST_BY_USER_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM trades
    WHERE (proposer_id = :user_id OR receiver_id = :user_id)
      AND (CAST(:status AS TEXT) IS NULL OR status = CAST(:status AS TEXT))
      AND (
          CAST(:cursor_ts AS TIMESTAMPTZ) IS NULL
          OR created_at < CAST(:cursor_ts AS TIMESTAMPTZ)
          OR (
              created_at = CAST(:cursor_ts AS TIMESTAMPTZ)
              AND id < CAST(:cursor_id AS TEXT)
          )
      )
    ORDER BY created_at DESC, id DESC
    LIMIT :limit
""")

_INSERT_EVENT_SQL = text("""
    INSERT INTO trade_events (trade_id, event_type, recipient_id, payload)
    VALUES (:trade_id, :event_type, :recipient_id, :payload)
""")


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _line_params(trade_id: str, position: int, line: OfferLine) -> dict[str, Any]:
    params: dict[str, Any] = {
        "trade_id": trade_id,
        "position": position,
        "listing_id": None,
        "owner_id": None,
        "declared_value": None,
        "amount": None,
        "description": None,
        "hours": None,
    }
    if isinstance(line, ListingLine):
        params.update(
            line_type=OfferLineType.LISTING.value,
            listing_id=line.listing_id,
            owner_id=line.owner_id,
            declared_value=line.declared_value,
        )
    elif isinstance(line, CashLine):
        params.update(line_type=OfferLineType.CASH.value, amount=line.amount)
    elif isinstance(line, ServiceLine):
        params.update(
            line_type=OfferLineType.SERVICE.value,
            description=line.description,
            hours=line.hours,
        )
    else:
        assert_never(line)
    return params


def _row_to_line(row: Any) -> OfferLine:
    line_type = OfferLineType(row.line_type)
    if line_type is OfferLineType.LISTING:
        return ListingLine(
            listing_id=row.listing_id,
            owner_id=row.owner_id,
            declared_value=row.declared_value,
        )
    if line_type is OfferLineType.CASH:
        return CashLine(amount=row.amount)
    if line_type is OfferLineType.SERVICE:
        return ServiceLine(description=row.description, hours=Decimal(row.hours))
    assert_never(line_type)


def _row_to_trade(row: Any, lines: Sequence[OfferLine]) -> Trade:
    return Trade(
        id=row.id,
        proposer_id=row.proposer_id,
        receiver_id=row.receiver_id,
        target_listing_id=row.target_listing_id,
        proposer_offer=TradeOffer(owner_id=row.proposer_id, lines=tuple(lines)),
        status=TradeStatus(row.status),
        estimated_value=row.estimated_value,
        target_value=row.target_value,
        fairness=Fairness(row.fairness),
        message=row.message,
        meeting_location=row.meeting_location,
        meeting_time=row.meeting_time,
        completion_code=row.completion_code,
        completion_notes=row.completion_notes,
        rejection_reason=row.rejection_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
        completed_at=row.completed_at,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TradeRepository:
    """Concrete implementation of TradeRepositoryProtocol using raw SQL."""

    async def insert(self, db: AsyncSession, trade: Trade) -> None:
        try:
            await db.execute(
                _INSERT_TRADE_SQL,
                {
                    "id": trade.id,
                    "proposer_id": trade.proposer_id,
                    "receiver_id": trade.receiver_id,
                    "target_listing_id": trade.target_listing_id,
                    "status": trade.status.value,
                    "estimated_value": trade.estimated_value,
                    "target_value": trade.target_value,
                    "fairness": trade.fairness.value,
                    "message": trade.message,
                    "created_at": trade.created_at,
                    "updated_at": trade.updated_at,
                },
            )
        except IntegrityError as exc:
            # Partial unique index: a concurrent proposal already holds the target.
            if ACTIVE_TARGET_CONSTRAINT in str(exc.orig):
                raise ListingUnavailableError(trade.target_listing_id) from exc
            raise
        await db.execute(
            _INSERT_LINE_SQL,
            [
                _line_params(trade.id, position, line)
                for position, line in enumerate(trade.proposer_offer.lines)
            ],
        )

    async def get_by_id(self, db: AsyncSession, trade_id: str) -> Trade | None:
        return await self._fetch_one(db, _GET_TRADE_SQL, trade_id)

    async def get_for_update(self, db: AsyncSession, trade_id: str) -> Trade | None:
        return await self._fetch_one(db, _GET_TRADE_FOR_UPDATE_SQL, trade_id)

    async def update(self, db: AsyncSession, trade: Trade) -> None:
        await db.execute(
            _UPDATE_TRADE_SQL,
            {
                "id": trade.id,
                "status": trade.status.value,
                "meeting_location": trade.meeting_location,
                "meeting_time": trade.meeting_time,
                "completion_code": trade.completion_code,
                "completion_notes": trade.completion_notes,
                "rejection_reason": trade.rejection_reason,
                "completed_at": trade.completed_at,
                "updated_at": trade.updated_at,
            },
        )

    async def has_active_trade_for_target(
        self, db: AsyncSession, target_listing_id: str
    ) -> bool:
        result = await db.execute(
            _ACTIVE_TARGET_SQL, {"target_listing_id": target_listing_id}
        )
        return result.fetchone() is not None

    async def list_stale_pending_ids(
        self, db: AsyncSession, created_before: datetime
    ) -> list[str]:
        result = await db.execute(_STALE_PENDING_SQL, {"created_before": created_before})
        return [row.id for row in result.fetchall()]

    async def list_by_user(
        self,
        db: AsyncSession,
        user_id: str,
        status: str | None,
        cursor_ts: datetime | None,
        cursor_id: str | None,
        limit: int,
    ) -> list[Trade]:
        result = await db.execute(
            _LIST_BY_USER_SQL,
            {
                "user_id": user_id,
                "status": status,
                "cursor_ts": cursor_ts,
                "cursor_id": cursor_id,
                "limit": limit,
            },
        )
        rows = result.fetchall()
        lines_by_trade = await self._load_lines(db, [row.id for row in rows])
        return [_row_to_trade(row, lines_by_trade.get(row.id, [])) for row in rows]

    async def record_event(self, db: AsyncSession, event: TradeEvent) -> None:
        """Append one row to trade_events within the caller's transaction."""
        await db.execute(
            _INSERT_EVENT_SQL,
            {
                "trade_id": event.trade_id,
                "event_type": event.event_type.value,
                "recipient_id": event.recipient_id,
                "payload": json.dumps(event.payload),
            },
        )

    async def _fetch_one(self, db: AsyncSession, sql: Any, trade_id: str) -> Trade | None:
        result = await db.execute(sql, {"id": trade_id})
        row = result.fetchone()
        if row is None:
            return None
        lines_by_trade = await self._load_lines(db, [trade_id])
        return _row_to_trade(row, lines_by_trade.get(trade_id, []))

    async def _load_lines(
        self, db: AsyncSession, trade_ids: list[str]
    ) -> dict[str, list[OfferLine]]:
        if not trade_ids:
            return {}
        result = await db.execute(_GET_LINES_SQL, {"trade_ids": trade_ids})
        lines: dict[str, list[OfferLine]] = {}
        for row in result.fetchall():
            lines.setdefault(row.trade_id, []).append(_row_to_line(row))
        return lines
