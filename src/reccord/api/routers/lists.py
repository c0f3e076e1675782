"""List sync endpoints."""

import logging

from fastapi import APIRouter, Depends

from reccord.api.dependencies import (
    get_current_user_id,
    get_database,
    get_list_sync_service,
)
from reccord.api.schemas import SyncListResponse
from reccord.application.services.list_sync_service import ListSyncService
from reccord.domain.exceptions import AuthorizationError, EntityNotFoundException
from reccord.infrastructure.persistence.database import Database
from reccord.infrastructure.persistence.repositories import ListSyncRepository

logger = logging.getLogger(__name__)

router = APIRouter()


# Hey future me - the ownership check runs in its OWN short session that is closed before
# the sync starts. sync_list opens its own transactions, we don't want a request-scoped
# session sitting on the connection while providers are being called.
@router.post("/{list_id}/sync", response_model=SyncListResponse)
async def sync_list(
    list_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Database = Depends(get_database),
    service: ListSyncService = Depends(get_list_sync_service),
) -> SyncListResponse:
    """Sync one list now.

    Partial provider failures still return 200, they are listed in ``errors``.
    """
    async with db.session_scope() as session:
        music_list = await ListSyncRepository(session).get_list(list_id)
    if music_list is None:
        raise EntityNotFoundException("List", list_id)
    if music_list.owner_id != user_id:
        raise AuthorizationError("You do not own this list")

    result = await service.sync_list(list_id)
    return SyncListResponse.from_result(result)
