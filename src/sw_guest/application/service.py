"""GuestReconciliationService: folds a guest activity log into an account.

Runs once per login and must tolerate retries of the same login, so every
write is an upsert. Two transactions:

  1. favorites + preferences (must succeed, else the log is kept and
     StorageError propagates so the client can retry)
  2. search / viewed history (best-effort; failure is logged and dropped)

The log is cleared from the store only after step 1 commits.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.sw_common.database import transaction
from src.sw_common.datetime_utils import ensure_utc, utc_now
from src.sw_common.errors import StorageError
from src.sw_guest.domain.models import GuestActivityLog, GuestLogSummary, ReconcileResult
from src.sw_guest.domain.repository import GuestLogStoreProtocol, GuestMergeRepositoryProtocol
from src.sw_guest.infrastructure.log_store import RedisGuestLogStore
from src.sw_guest.infrastructure.persistence import GuestMergeRepository

logger = logging.getLogger(__name__)


class GuestReconciliationService:
    def __init__(
        self,
        repo: GuestMergeRepositoryProtocol | None = None,
        store: GuestLogStoreProtocol | None = None,
    ) -> None:
        self._repo: GuestMergeRepositoryProtocol = repo or GuestMergeRepository()
        self._store: GuestLogStoreProtocol = store or RedisGuestLogStore()

    async def record_activity(
        self, log: GuestActivityLog, now: datetime | None = None
    ) -> GuestLogSummary:
        """Persist the client's current log (anonymous). Expired logs are dropped."""
        now = ensure_utc(now) if now else utc_now()
        if log.is_expired(now):
            await self._store.clear(log.guest_id)
        else:
            await self._store.save(log, now)
        return log.summary(now)

    async def reconcile(
        self,
        db: AsyncSession,
        account_id: str,
        log: GuestActivityLog,
        now: datetime | None = None,
    ) -> ReconcileResult:
        now = ensure_utc(now) if now else utc_now()

        if log.is_expired(now):
            logger.info("Guest log %s expired; discarded without merge", log.guest_id)
            cleared = await self._clear(log.guest_id)
            return ReconcileResult(expired=True, log_cleared=cleared)
        if log.is_empty():
            cleared = await self._clear(log.guest_id)
            return ReconcileResult(log_cleared=cleared)

        preferences_applied = False
        async with transaction(db):
            favorites_merged = await self._repo.upsert_favorites(db, account_id, log.favorites)
            if log.preferences.has_any():
                await self._repo.apply_preferences(db, account_id, log.preferences)
                preferences_applied = True

        history_merged = False
        if log.searches or log.viewed_listings:
            try:
                async with transaction(db):
                    await self._repo.merge_history(
                        db, account_id, log.searches, log.viewed_listings
                    )
                history_merged = True
            except StorageError:
                logger.warning(
                    "History merge failed for account %s (guest %s); skipped",
                    account_id, log.guest_id, exc_info=True,
                )

        cleared = await self._clear(log.guest_id)
        logger.info(
            "Reconciled guest %s into account %s: favorites_new=%d preferences=%s history=%s",
            log.guest_id, account_id, favorites_merged, preferences_applied, history_merged,
        )
        return ReconcileResult(
            favorites_merged=favorites_merged,
            preferences_applied=preferences_applied,
            history_merged=history_merged,
            log_cleared=cleared,
        )

    async def reconcile_stored(
        self,
        db: AsyncSession,
        account_id: str,
        guest_id: str,
        now: datetime | None = None,
    ) -> ReconcileResult:
        log = await self._store.load(guest_id)
        if log is None:
            # Already merged and cleared by an earlier call, or never stored.
            logger.info("No stored guest log %s for account %s", guest_id, account_id)
            return ReconcileResult(log_found=False)
        return await self.reconcile(db, account_id, log, now)

    async def _clear(self, guest_id: str) -> bool:
        # A stale log left behind is harmless: re-merging it is a no-op.
        try:
            await self._store.clear(guest_id)
        except StorageError:
            logger.warning("Could not clear guest log %s", guest_id, exc_info=True)
            return False
        return True
