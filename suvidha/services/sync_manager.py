"""
sync_manager.py - Store-and-Forward Sync Reconciler

This module drains the offline queue to the server when connectivity is
restored. It runs as a small idle <-> syncing state machine and reports
progress so the kiosk can show how many items are still waiting.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

import aiohttp

from .local_db import LocalDatabase, QueueRecord
from .offline_mode import ConnectivityMonitor

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("SyncReconciler")

Deliver = Callable[[List[QueueRecord]], Awaitable[bool]]


class SyncState(Enum):
    IDLE = "idle"
    SYNCING = "syncing"


class SyncReconciler:
    """
    Synchronizes queued payments and complaints to the server.

    A failed batch is released back to pending and retried with
    exponential backoff. Losing connectivity mid-drain aborts the run;
    released records wait for the next reconnect.
    """

    def __init__(
        self,
        db: LocalDatabase,
        monitor: ConnectivityMonitor,
        server_url: str = "",
        api_token: str = "",
        kiosk_id: str = "",
        deliver: Optional[Deliver] = None,
        batch_size: int = 25,
        max_rounds: int = 5,
        base_delay: float = 2.0,
        max_delay: float = 300.0,
        compact_after: float = 86400.0,
        timeout: float = 30.0,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.db = db
        self.monitor = monitor
        self.api_token = api_token
        self.kiosk_id = kiosk_id
        self.sync_endpoint = f"{server_url.rstrip('/')}/kiosk/sync-offline"
        self.batch_size = batch_size
        self.max_rounds = max_rounds
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.compact_after = compact_after
        self.timeout = timeout
        self._deliver = deliver or self._post_batch
        self._sleep = sleep

        self.state = SyncState.IDLE
        self.progress: float = 0.0
        self.pending_snapshot: int = 0
        self.remaining: int = db.count()
        self.last_result: Optional[Dict] = None

        self._task: Optional[asyncio.Task] = None
        self._rerun = False
        self._on_progress_callbacks: List[Callable] = []

        monitor.on_reconnect(self._on_reconnect)

        logger.info(f"SyncReconciler initialized with endpoint: {self.sync_endpoint}")

    @property
    def is_syncing(self) -> bool:
        return self.state == SyncState.SYNCING

    def on_progress(self, callback: Callable):
        """
        Register a callback for progress updates.

        Callback signature: (status: dict)
        """
        self._on_progress_callbacks.append(callback)

    def _notify(self):
        status = self.get_sync_status()
        for callback in list(self._on_progress_callbacks):
            try:
                callback(status)
            except Exception as e:
                logger.error(f"Progress callback error: {e}")

    def _set_progress(self, synced: int):
        pending = self.pending_snapshot
        synced = min(synced, pending)
        self.progress = max(self.progress, synced / pending)
        self.remaining = max(0, pending - synced)
        self._notify()

    def _backoff(self, rounds: int) -> float:
        return min(self.max_delay, self.base_delay * (2 ** (rounds - 1)))

    # ==================== Triggers ====================

    def _on_reconnect(self):
        """Callback triggered when connection is restored."""
        logger.info("Reconnect detected - triggering sync")
        self.request_sync()

    def request_sync(self) -> Optional[asyncio.Task]:
        """
        Schedule a reconciliation on the running loop.

        While a run is in flight no second drain starts; a rerun is queued
        instead and picked up when the current one finishes.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop - sync deferred to next reconnect")
            return None

        if self._task is not None and not self._task.done():
            self._rerun = True
            logger.info("Sync already in progress, rerun queued")
            return self._task

        self._task = loop.create_task(self._run())
        return self._task

    def cancel(self):
        """Stop a running or backing-off sync; claimed records go back to pending."""
        self._rerun = False
        if self._task is not None and not self._task.done():
            logger.info("Cancelling sync task")
            self._task.cancel()

    async def _run(self) -> Dict:
        result = await self.reconcile()
        while self._rerun and self.monitor.is_online() and self.db.count() > 0:
            self._rerun = False
            result = await self.reconcile()
        self._rerun = False
        return result

    # ==================== Reconciliation ====================

    async def reconcile(self) -> Dict:
        """
        Deliver the records pending at call time.

        Returns:
            Dict with sync results
        """
        if self.is_syncing:
            logger.warning("Sync already in progress, skipping")
            return {"status": "skipped", "reason": "sync_in_progress"}

        pending = self.db.count()
        if pending == 0:
            logger.info("No pending records to sync")
            self.remaining = 0
            self.last_result = {"status": "success", "synced_count": 0}
            return self.last_result

        self.state = SyncState.SYNCING
        self.pending_snapshot = pending
        self.progress = 0.0
        self.remaining = pending
        self._notify()

        logger.info(f"Syncing {pending} pending records...")
        self.db.log_activity('sync_start', 'pending', f"Syncing {pending} records")

        synced = 0
        failed_rounds = 0
        status, reason = "success", None
        claim_id = None

        try:
            while synced < pending:
                if not self.monitor.is_online():
                    status, reason = "aborted", "offline"
                    break

                claim_id, batch = self.db.claim_pending(min(self.batch_size, pending - synced))
                if not batch:
                    break

                error = None
                try:
                    delivered = await self._deliver(batch)
                except Exception as e:
                    delivered, error = False, str(e)
                    logger.error(f"Sync delivery error: {e}")

                if delivered:
                    synced += self.db.confirm(claim_id, [r.local_id for r in batch])
                    claim_id = None
                    failed_rounds = 0
                    self._set_progress(synced)
                    continue

                self.db.release(claim_id, error=error or "delivery failed")
                claim_id = None
                failed_rounds += 1
                if failed_rounds >= self.max_rounds:
                    status, reason = "error", error or "delivery failed"
                    break

                delay = self._backoff(failed_rounds)
                logger.warning(
                    f"Sync batch failed ({failed_rounds}/{self.max_rounds}), retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
        finally:
            if claim_id is not None:
                self.db.release(claim_id)
            self.state = SyncState.IDLE

        if status == "success":
            self._set_progress(pending)
            self.db.compact(self.compact_after)
            self.db.log_activity('sync_complete', 'completed', f"Synced {synced} records")
            logger.info(f"Sync complete: {synced} records synced")
        else:
            self.remaining = self.db.count()
            self.db.log_activity(f'sync_{status}', 'pending', f"{reason} after {synced} synced")
            logger.error(f"Sync {status}: {reason} ({synced}/{pending} synced)")

        self.last_result = {"status": status, "synced_count": synced}
        if reason:
            self.last_result["reason"] = reason
        self._notify()
        return self.last_result

    async def _post_batch(self, batch: List[QueueRecord]) -> bool:
        """POST one batch to the server. True only on HTTP 200."""
        payload = {
            "kiosk_id": self.kiosk_id,
            "records": [record.to_sync_dict() for record in batch],
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_token}",
        }

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.sync_endpoint,
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status == 200:
                        return True
                    error_text = await response.text()
                    logger.error(f"Sync failed with status {response.status}: {error_text}")
                    return False

        except asyncio.TimeoutError:
            logger.error("Sync timed out")
            return False

        except aiohttp.ClientError as e:
            logger.error(f"Sync connection error: {e}")
            return False

    def get_sync_status(self) -> Dict:
        """Get current sync status."""
        return {
            "state": self.state.value,
            "is_syncing": self.is_syncing,
            "pending_count": self.db.count(),
            "progress": round(self.progress, 4),
            "remaining": self.remaining,
            "last_result": self.last_result,
        }
