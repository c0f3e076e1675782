"""Worker system - background list sync scheduling."""

from reccord.application.workers.list_sync_worker import SWEEP_ORDER, ListSyncWorker

__all__ = ["SWEEP_ORDER", "ListSyncWorker"]
