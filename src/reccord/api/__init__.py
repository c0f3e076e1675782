"""HTTP adapter for Reccord.

Structure:
- routers/: endpoints (lists, cron, auth, health)
- schemas/: Pydantic request/response models
- dependencies.py: dependency injection from app.state
- exception_handlers.py: domain exception -> HTTP status mapping
"""

from reccord.api.exception_handlers import register_exception_handlers
from reccord.api.routers import api_router

__all__ = ["api_router", "register_exception_handlers"]
