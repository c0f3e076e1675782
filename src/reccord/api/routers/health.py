"""Probes for Docker/Kubernetes.

- /health/live  -> process is up, no dependency checks
- /health/ready -> database answers; worker and provider config are reported only
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from reccord.config import Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


class LivenessStatus(BaseModel):
    status: str = "alive"
    checked_at: str


class ReadinessStatus(BaseModel):
    status: str = Field(description="ready or not_ready")
    checked_at: str
    database: bool
    worker_running: bool = Field(description="False with SYNC__WORKER_ENABLED=false")
    providers_configured: dict[str, bool] = Field(
        description="Whether client credentials are set, per SourceService value"
    )


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@router.get("/live", response_model=LivenessStatus)
async def live() -> LivenessStatus:
    return LivenessStatus(checked_at=_now_iso())


# Hey future me - only the database decides readiness. A stopped worker (external cron)
# or an unconfigured provider (Spotify-only deployments) is a normal setup, reported
# for dashboards but never a 503.
@router.get("/ready", response_model=ReadinessStatus)
async def ready(request: Request, settings: Settings = Depends(get_settings)) -> JSONResponse:
    db = getattr(request.app.state, "db", None)
    database_ok = False
    if db is not None:
        try:
            async with db.session_scope() as session:
                await session.execute(text("SELECT 1"))
            database_ok = True
        except SQLAlchemyError as e:
            logger.warning(f"Readiness: database check failed: {e}")

    worker = getattr(request.app.state, "list_sync_worker", None)
    body = ReadinessStatus(
        status="ready" if database_ok else "not_ready",
        checked_at=_now_iso(),
        database=database_ok,
        worker_running=worker is not None and worker.is_running,
        providers_configured={
            "SPOTIFY": settings.spotify.is_configured,
            "APPLE_MUSIC": settings.apple_music.is_configured,
        },
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(),
    )
