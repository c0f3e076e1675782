"""API router initialization."""

# Hey future me, this is the MAIN API router aggregator! It gets mounted under /api in
# main.py, each include_router() adds its own prefix so endpoints become
# /api/lists/{id}/sync, /api/cron/sync/{type}, /api/auth/connections.
# The health router is NOT in here, it lives at /health (outside /api) for probes.

from fastapi import APIRouter

from reccord.api.routers import auth, cron, health, lists

api_router = APIRouter()

api_router.include_router(lists.router, prefix="/lists", tags=["Lists"])
api_router.include_router(cron.router, prefix="/cron", tags=["Cron"])
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])

__all__ = ["api_router", "auth", "cron", "health", "lists"]
