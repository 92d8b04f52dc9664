# tests/unit/test_trade_service.py
"""Unit tests for TradeLifecycleService against in-memory fakes (see conftest.py)."""
import asyncio
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from src.sw_common.datetime_utils import utc_now
from src.sw_common.enums import Fairness, ListingStatus, TradeEventType, TradeStatus
from src.sw_common.errors import (
    EmptyOfferError,
    InvalidCodeError,
    InvalidStateError,
    ListingUnavailableError,
    ListingValueMismatchError,
    NotAuthorizedError,
    OwnershipError,
    RejectionReasonRequiredError,
    SelfTradeError,
    StorageError,
    TradeNotFoundError,
)
from src.sw_offer.domain.models import CashLine, ListingLine, ServiceLine, TradeOffer
from src.sw_trade.application.service import TradeLifecycleService, generate_completion_code


def _offer(*lines, owner_id: str = "alice") -> TradeOffer:
    return TradeOffer(owner_id=owner_id, lines=tuple(lines))


def _standard_offer() -> TradeOffer:
    # scenario A: 45,000 listing + 5,000 cash against a 50,000 target
    return _offer(ListingLine("L-alice", "alice", 45_000), CashLine(5_000))


async def _propose(service: TradeLifecycleService, db, offer: TradeOffer | None = None):
    return await service.propose(db, "alice", "bob", "L-target", offer or _standard_offer())


class TestCompletionCode:
    def test_six_digits(self) -> None:
        for _ in range(50):
            code = generate_completion_code()
            assert len(code) == 6
            assert code.isdigit()


class TestPropose:
    @pytest.mark.asyncio
    async def test_scenario_a_creates_pending_fair_trade(
        self, service, db, trade_repo,
        listings, notifier: AsyncMock,
    ) -> None:
        trade = await _propose(service, db)

        assert trade.status is TradeStatus.PENDING
        assert trade.estimated_value == 50_000
        assert trade.target_value == 50_000
        assert trade.fairness is Fairness.FAIR
        assert trade_repo.trades[trade.id] == trade
        assert db.commits == 1
        # target and offered listing are both reserved
        assert listings.listings["L-target"].status is ListingStatus.IN_TRADE
        assert listings.listings["L-alice"].is_available is False
        event = trade_repo.events[-1]
        assert event.event_type is TradeEventType.TRADE_PROPOSED
        assert event.recipient_id == "bob"
        notifier.notify.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_unfair_offer_is_still_created(self, service, db) -> None:
        trade = await _propose(service, db, _offer(CashLine(10_000)))
        assert trade.fairness is Fairness.UNFAIR

    @pytest.mark.asyncio
    async def test_scenario_e_empty_offer_writes_nothing(
        self, service, db, trade_repo, listings
    ) -> None:
        with pytest.raises(EmptyOfferError):
            await _propose(service, db, _offer())
        assert trade_repo.inserts == 0
        assert db.commits == 0
        assert listings.listings["L-target"].is_available is True

    @pytest.mark.asyncio
    async def test_self_trade(self, service, db) -> None:
        with pytest.raises(SelfTradeError):
            await service.propose(db, "alice", "alice", "L-target", _standard_offer())

    @pytest.mark.asyncio
    async def test_offer_must_belong_to_proposer(self, service, db) -> None:
        offer = _offer(CashLine(5_000), owner_id="carol")
        with pytest.raises(NotAuthorizedError):
            await _propose(service, db, offer)

    @pytest.mark.asyncio
    async def test_unknown_target(self, service, db) -> None:
        with pytest.raises(ListingUnavailableError):
            await service.propose(db, "alice", "bob", "L-missing", _standard_offer())
        assert db.rollbacks == 1

    @pytest.mark.asyncio
    async def test_receiver_must_own_target(self, service, db) -> None:
        with pytest.raises(OwnershipError):
            await service.propose(db, "alice", "carol", "L-target", _standard_offer())

    @pytest.mark.asyncio
    async def test_offered_listing_owned_by_someone_else(self, service, db) -> None:
        offer = _offer(ListingLine("L-carol", "alice", 20_000))
        with pytest.raises(OwnershipError):
            await _propose(service, db, offer)

    @pytest.mark.asyncio
    async def test_declared_value_must_match_listing_price(
        self, service, db, trade_repo
    ) -> None:
        offer = _offer(ListingLine("L-alice", "alice", 50_000))  # real price 45,000
        with pytest.raises(ListingValueMismatchError):
            await _propose(service, db, offer)
        assert trade_repo.inserts == 0

    @pytest.mark.asyncio
    async def test_offered_listing_in_another_trade(
        self, service, db, listings
    ) -> None:
        listings.listings["L-alice"].is_available = False
        with pytest.raises(ListingUnavailableError):
            await _propose(service, db)

    @pytest.mark.asyncio
    async def test_second_proposal_on_reserved_target(self, service, make_session) -> None:
        await _propose(service, make_session())
        with pytest.raises(ListingUnavailableError):
            await _propose(service, make_session(), _offer(CashLine(50_000)))

    @pytest.mark.asyncio
    async def test_service_line_valued_at_hourly_rate(self, service, db) -> None:
        trade = await _propose(service, db, _offer(ServiceLine("painting", Decimal("0.25"))))
        assert trade.estimated_value == 50_000

    @pytest.mark.asyncio
    async def test_notifier_failure_does_not_undo_proposal(
        self, service, db, trade_repo, notifier: AsyncMock
    ) -> None:
        notifier.notify.side_effect = ConnectionError("redis down")
        trade = await _propose(service, db)
        assert trade_repo.trades[trade.id].status is TradeStatus.PENDING
        assert db.commits == 1

    @pytest.mark.asyncio
    async def test_commit_failure_surfaces_as_storage_error(
        self, service, notifier: AsyncMock, make_session
    ) -> None:
        db = make_session()
        db.commit = AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("db gone")))
        with pytest.raises(StorageError):
            await _propose(service, db)
        notifier.notify.assert_not_awaited()


class TestConcurrentPropose:
    @pytest.mark.asyncio
    async def test_exactly_one_of_two_concurrent_proposals_wins(
        self, service, trade_repo, make_session
    ) -> None:
        results = await asyncio.gather(
            _propose(service, make_session(), _offer(CashLine(50_000))),
            _propose(service, make_session(), _offer(ListingLine("L-alice", "alice", 45_000))),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], ListingUnavailableError)
        assert len(trade_repo.trades) == 1

    @pytest.mark.asyncio
    async def test_disjoint_targets_both_succeed(
        self, service, trade_repo, make_session
    ) -> None:
        await asyncio.gather(
            service.propose(make_session(), "alice", "bob", "L-target", _offer(CashLine(1))),
            service.propose(make_session(), "bob", "carol", "L-carol", _offer(CashLine(1), owner_id="bob")),
        )
        assert len(trade_repo.trades) == 2


class TestAcceptRejectCancel:
    @pytest.mark.asyncio
    async def test_scenario_b_accept_sets_code(
        self, service, db, trade_repo, notifier: AsyncMock
    ) -> None:
        trade = await _propose(service, db)
        accepted = await service.accept(db, trade.id, "bob", meeting_location="Yaba market")

        assert accepted.status is TradeStatus.ACCEPTED
        assert accepted.completion_code and len(accepted.completion_code) == 6
        assert accepted.meeting_location == "Yaba market"
        assert trade_repo.events[-1].event_type is TradeEventType.TRADE_ACCEPTED
        assert trade_repo.events[-1].recipient_id == "alice"
        assert notifier.notify.await_count == 2

    @pytest.mark.asyncio
    async def test_scenario_c_proposer_and_outsider_cannot_accept(
        self, service, db, trade_repo
    ) -> None:
        trade = await _propose(service, db)
        with pytest.raises(NotAuthorizedError):
            await service.accept(db, trade.id, "alice")
        await service.accept(db, trade.id, "bob")
        with pytest.raises(NotAuthorizedError):
            await service.accept(db, trade.id, "mallory")
        assert trade_repo.trades[trade.id].status is TradeStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_accept_unknown_trade(self, service, db) -> None:
        with pytest.raises(TradeNotFoundError):
            await service.accept(db, "nope", "bob")

    @pytest.mark.asyncio
    async def test_reject_requires_reason(
        self, service, db, trade_repo
    ) -> None:
        trade = await _propose(service, db)
        with pytest.raises(RejectionReasonRequiredError):
            await service.reject(db, trade.id, "bob", "   ")
        assert trade_repo.trades[trade.id].status is TradeStatus.PENDING

    @pytest.mark.asyncio
    async def test_reject_releases_listings(
        self, service, db, listings
    ) -> None:
        trade = await _propose(service, db)
        rejected = await service.reject(db, trade.id, "bob", " not interested ")
        assert rejected.status is TradeStatus.REJECTED
        assert rejected.rejection_reason == "not interested"
        assert listings.listings["L-target"].is_available is True
        assert listings.listings["L-alice"].status is ListingStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_outsider_reject_reports_authorization_first(self, service, db) -> None:
        trade = await _propose(service, db)
        with pytest.raises(NotAuthorizedError):
            await service.reject(db, trade.id, "mallory", "")

    @pytest.mark.asyncio
    async def test_receiver_cannot_cancel_pending(self, service, db) -> None:
        trade = await _propose(service, db)
        with pytest.raises(NotAuthorizedError):
            await service.cancel(db, trade.id, "bob")

    @pytest.mark.asyncio
    async def test_cancel_notifies_counterpart_and_frees_target(
        self, service, db, trade_repo, listings, make_session
    ) -> None:
        trade = await _propose(service, db)
        await service.accept(db, trade.id, "bob")
        cancelled = await service.cancel(db, trade.id, "bob")
        assert cancelled.status is TradeStatus.CANCELLED
        assert trade_repo.events[-1].recipient_id == "alice"
        assert listings.listings["L-target"].is_available is True
        # target can be traded again
        again = await _propose(service, make_session(), _offer(CashLine(50_000)))
        assert again.status is TradeStatus.PENDING

    @pytest.mark.asyncio
    async def test_terminal_trade_is_immutable(self, service, db) -> None:
        trade = await _propose(service, db)
        await service.cancel(db, trade.id, "alice")
        with pytest.raises(InvalidStateError):
            await service.cancel(db, trade.id, "alice")
        with pytest.raises(InvalidStateError):
            await service.accept(db, trade.id, "bob")


class TestComplete:
    @pytest.mark.asyncio
    async def test_scenario_d_wrong_code_then_right_code(
        self, service, db, trade_repo, listings
    ) -> None:
        trade = await _propose(service, db)
        accepted = await service.accept(db, trade.id, "bob")
        wrong = "000000" if accepted.completion_code != "000000" else "111111"

        with pytest.raises(InvalidCodeError):
            await service.complete(db, trade.id, "alice", wrong)
        assert trade_repo.trades[trade.id].status is TradeStatus.ACCEPTED

        done = await service.complete(db, trade.id, "alice", accepted.completion_code, notes="smooth")
        assert done.status is TradeStatus.COMPLETED
        assert done.completed_at is not None
        assert done.completion_notes == "smooth"
        assert listings.listings["L-target"].status is ListingStatus.COMPLETED
        assert listings.listings["L-alice"].trade_count == 1
        assert trade_repo.events[-1].recipient_id == "bob"

        with pytest.raises(InvalidStateError):
            await service.complete(db, trade.id, "bob", accepted.completion_code)
        assert trade_repo.trades[trade.id].completed_at == done.completed_at

    @pytest.mark.asyncio
    async def test_pending_trade_cannot_complete(self, service, db) -> None:
        trade = await _propose(service, db)
        with pytest.raises(InvalidStateError):
            await service.complete(db, trade.id, "alice", "123456")

    @pytest.mark.asyncio
    async def test_code_is_whitespace_tolerant(self, service, db) -> None:
        trade = await _propose(service, db)
        accepted = await service.accept(db, trade.id, "bob")
        done = await service.complete(db, trade.id, "bob", f" {accepted.completion_code} ")
        assert done.status is TradeStatus.COMPLETED


class TestExpireStale:
    @pytest.mark.asyncio
    async def test_expires_only_old_pending_trades(
        self, service, db, trade_repo, listings
    ) -> None:
        stale = await _propose(service, db)
        fresh = await service.propose(
            db, "bob", "carol", "L-carol", _offer(CashLine(20_000), owner_id="bob")
        )
        trade_repo.trades[stale.id] = replace(
            trade_repo.trades[stale.id], created_at=utc_now() - timedelta(days=8)
        )

        result = await service.expire_stale(db)

        assert result.expired == [stale.id]
        assert result.failed == []
        assert trade_repo.trades[stale.id].status is TradeStatus.EXPIRED
        assert trade_repo.trades[fresh.id].status is TradeStatus.PENDING
        assert listings.listings["L-target"].is_available is True
        assert trade_repo.events[-1].event_type is TradeEventType.TRADE_EXPIRED

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(
        self, service, db, trade_repo, notifier: AsyncMock
    ) -> None:
        trade = await _propose(service, db)
        later = utc_now() + timedelta(days=8)

        first = await service.expire_stale(db, now=later)
        events_after_first = len(trade_repo.events)
        second = await service.expire_stale(db, now=later)

        assert first.expired == [trade.id]
        assert second.expired == []
        assert len(trade_repo.events) == events_after_first

    @pytest.mark.asyncio
    async def test_accepted_trades_are_not_expired(
        self, service, db, trade_repo
    ) -> None:
        trade = await _propose(service, db)
        await service.accept(db, trade.id, "bob")
        result = await service.expire_stale(db, now=utc_now() + timedelta(days=30))
        assert result.expired == []
        assert trade_repo.trades[trade.id].status is TradeStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_sweep(
        self, service, trade_repo, make_session
    ) -> None:
        repo, svc = trade_repo, service
        first = await svc.propose(make_session(), "alice", "bob", "L-target", _offer(CashLine(1)))
        second = await svc.propose(
            make_session(), "bob", "carol", "L-carol", _offer(CashLine(1), owner_id="bob")
        )
        original_update = repo.update

        async def flaky_update(db, trade):
            if trade.id == first.id:
                raise OperationalError("UPDATE", {}, Exception("lock timeout"))
            await original_update(db, trade)

        repo.update = flaky_update
        result = await svc.expire_stale(make_session(), now=utc_now() + timedelta(days=8))

        assert result.failed == [first.id]
        assert result.expired == [second.id]


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_trade_participants_only(self, service, db) -> None:
        trade = await _propose(service, db)
        assert (await service.get_trade(db, trade.id, "bob")).id == trade.id
        with pytest.raises(NotAuthorizedError):
            await service.get_trade(db, trade.id, "mallory")
        with pytest.raises(TradeNotFoundError):
            await service.get_trade(db, "missing", "bob")

    @pytest.mark.asyncio
    async def test_list_trades_pages(self, service, db) -> None:
        await _propose(service, db)
        await service.propose(db, "bob", "carol", "L-carol", _offer(CashLine(1), owner_id="bob"))

        first = await service.list_trades(db, "bob", status=None, cursor=None, limit=1)
        assert len(first.items) == 1
        assert first.has_more is True
        second = await service.list_trades(db, "bob", status=None, cursor=first.next_cursor, limit=1)
        assert len(second.items) == 1
        assert second.has_more is False
        assert first.items[0].id != second.items[0].id

    @pytest.mark.asyncio
    async def test_completion_code_visible_to_receiver_only(self, service, db) -> None:
        trade = await _propose(service, db)
        await service.accept(db, trade.id, "bob")
        as_bob = await service.list_trades(db, "bob", status="ACCEPTED", cursor=None, limit=10)
        as_alice = await service.list_trades(db, "alice", status="ACCEPTED", cursor=None, limit=10)
        assert as_bob.items[0].completion_code is not None
        assert as_alice.items[0].completion_code is None


class TestPreview:
    @pytest.mark.asyncio
    async def test_preview_is_read_only(
        self, service, db, trade_repo, listings
    ) -> None:
        valuation = await service.preview(db, "alice", "L-target", _standard_offer())
        assert valuation.offer_value == 50_000
        assert valuation.fairness is Fairness.FAIR
        assert trade_repo.inserts == 0
        assert listings.listings["L-target"].is_available is True
        assert db.commits == 0

    @pytest.mark.asyncio
    async def test_preview_checks_declared_values(self, service, db) -> None:
        with pytest.raises(ListingValueMismatchError):
            await service.preview(db, "alice", "L-target", _offer(ListingLine("L-alice", "alice", 1)))

    @pytest.mark.asyncio
    async def test_preview_unavailable_target(self, service, db, listings) -> None:
        listings.listings["L-target"].is_available = False
        with pytest.raises(ListingUnavailableError):
            await service.preview(db, "alice", "L-target", _standard_offer())
