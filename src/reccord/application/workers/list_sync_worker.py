# Hey future me - this worker is the in-process scheduler for list syncs.
#
# Every interval it sweeps the syncable list types one after another:
#   TOP_SONGS -> SPOTIFY (playlist mirrors) -> APPLE_MUSIC (playlist mirrors)
# ListSyncService.sync_all_due decides which lists are due (watermark staleness),
# this worker only decides WHEN to ask.
#
# Sweeps run one list at a time. A crashing sweep is logged and counted, the loop lives on.
# stop() flips _running first (sync_all_due polls it between lists via should_stop),
# then cancels the task.
#
# Deployments that prefer an external scheduler set SYNC__WORKER_ENABLED=false and hit
# POST /api/cron/sync/{source_type} or run scripts/sync_due_lists.py instead.
"""Background worker for scheduled list syncs."""

import asyncio
import contextlib
import logging
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from reccord.domain.entities import BatchSyncResult, ListSourceType
from reccord.infrastructure.observability import (
    LogMessages,
    log_worker_health,
    set_correlation_id,
)

if TYPE_CHECKING:
    from reccord.application.services.list_sync_service import ListSyncService

logger = logging.getLogger(__name__)

SWEEP_ORDER: tuple[ListSourceType, ...] = (
    ListSourceType.TOP_SONGS,
    ListSourceType.SPOTIFY,
    ListSourceType.APPLE_MUSIC,
)


class ListSyncWorker:
    """Periodically syncs every due list.

    On sweep failure:
    - Logs error and continues with the next source type
    - Retries on next cycle
    """

    def __init__(
        self,
        sync_service: "ListSyncService",
        interval_seconds: int = 900,
        source_types: tuple[ListSourceType, ...] = SWEEP_ORDER,
    ) -> None:
        self.sync_service = sync_service
        self.interval_seconds = interval_seconds
        self.source_types = source_types
        self._running = False
        self._task: asyncio.Task[None] | None = None

        self._last_results: dict[str, dict[str, Any]] = {}
        self._last_cycle_at: datetime | None = None

        # Worker lifecycle tracking for health logging
        self._cycles_completed: int = 0
        self._errors_total: int = 0
        self._start_time: float = time.time()

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sync loop. Safe to call multiple times."""
        if self._running:
            logger.warning("list_sync.already_running")
            return

        self._running = True
        self._start_time = time.time()
        self._task = asyncio.create_task(self._run_loop())
        logger.info(LogMessages.worker_started("List Sync Worker", self.interval_seconds))

    async def stop(self) -> None:
        """Stop the sync loop and wait for the task. Safe to call multiple times."""
        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info(
            "worker.stopped",
            extra={
                "worker": "list_sync",
                "cycles_completed": self._cycles_completed,
                "errors_total": self._errors_total,
                "uptime_seconds": int(time.time() - self._start_time),
            },
        )

    async def _run_loop(self) -> None:
        while self._running:
            await self.run_cycle()

            if self._cycles_completed % 10 == 0:
                log_worker_health(
                    logger,
                    "list_sync",
                    self._cycles_completed,
                    self._errors_total,
                    time.time() - self._start_time,
                )

            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break

    async def run_cycle(self) -> dict[ListSourceType, BatchSyncResult]:
        """Run one sweep over every source type.

        Never raises (except cancellation). Types whose sweep blew up are
        missing from the returned mapping.
        """
        results: dict[ListSourceType, BatchSyncResult] = {}
        for source_type in self.source_types:
            if not self._running and self._task is not None:
                break
            set_correlation_id()
            try:
                result = await self.sync_service.sync_all_due(
                    source_type, should_stop=self._should_stop
                )
            except Exception as e:
                # Do not crash the loop on errors - log and continue
                self._errors_total += 1
                logger.error(
                    LogMessages.worker_failed(
                        "List Sync Worker", f"{source_type.value}: {type(e).__name__}: {e}"
                    ),
                    exc_info=True,
                )
                self._last_results[source_type.value] = {"error": str(e)}
                continue

            results[source_type] = result
            self._errors_total += result.error_count
            self._last_results[source_type.value] = {
                "candidates": result.total_candidates,
                "synced": result.synced_count,
                "errors": result.error_count,
                "skipped": result.skipped_count,
            }

        self._cycles_completed += 1
        self._last_cycle_at = datetime.now(UTC)
        return results

    def _should_stop(self) -> bool:
        return self._task is not None and not self._running

    def get_status(self) -> dict[str, Any]:
        """Current worker state and last sweep tallies."""
        return {
            "running": self._running,
            "interval_seconds": self.interval_seconds,
            "cycles_completed": self._cycles_completed,
            "errors_total": self._errors_total,
            "last_cycle_at": self._last_cycle_at.isoformat() if self._last_cycle_at else None,
            "last_results": self._last_results,
        }
