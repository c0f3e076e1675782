#!/usr/bin/env python3
"""Run one sync sweep from the command line.

Hey future me - this is the cron-friendly alternative to the in-process worker and
the /api/cron endpoint. Same wiring as the app (build_sync_components), one sweep,
then exit. Exit code 1 when any list failed, so cron mailers / CI notice.

Usage:
    python scripts/sync_due_lists.py                 # all source types
    python scripts/sync_due_lists.py --source TOP_SONGS

    # Or with custom database URL:
    DATABASE__URL=sqlite+aiosqlite:///./my.db python scripts/sync_due_lists.py
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

import httpx  # noqa: E402

from reccord.application.workers import SWEEP_ORDER  # noqa: E402
from reccord.config import get_settings  # noqa: E402
from reccord.domain.entities import BatchSyncResult, ListSourceType  # noqa: E402
from reccord.infrastructure.lifecycle import build_sync_components  # noqa: E402
from reccord.infrastructure.observability import configure_logging  # noqa: E402
from reccord.infrastructure.persistence import Database  # noqa: E402

logger = logging.getLogger("reccord.scripts.sync_due_lists")

SOURCE_CHOICES = [t.value for t in SWEEP_ORDER] + ["all"]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync every due list once and exit.")
    parser.add_argument(
        "--source",
        choices=SOURCE_CHOICES,
        default="all",
        help="List source type to sweep (default: all)",
    )
    return parser.parse_args(argv)


def selected_source_types(source: str) -> tuple[ListSourceType, ...]:
    if source == "all":
        return SWEEP_ORDER
    return (ListSourceType(source),)


async def run(source_types: tuple[ListSourceType, ...]) -> list[BatchSyncResult]:
    """One sweep per source type with the configured database and providers."""
    settings = get_settings()
    db = Database(settings)
    try:
        async with httpx.AsyncClient(timeout=settings.sync.http_timeout_seconds) as http_client:
            service = build_sync_components(settings, db, http_client).list_sync_service
            return [await service.sync_all_due(t) for t in source_types]
    finally:
        await db.close()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )

    results = asyncio.run(run(selected_source_types(args.source)))

    failed = 0
    for result in results:
        print(
            f"{result.source_type.value:<12} candidates={result.total_candidates} "
            f"synced={result.synced_count} errors={result.error_count} "
            f"skipped={result.skipped_count}"
        )
        failed += result.error_count

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
