# Hey future me - this is the external-scheduler entry point. Vercel cron, k8s CronJob,
# plain crontab with curl, whatever. It runs ONE sweep for one list type and returns the
# tally. Protected by a shared bearer secret (api.cron_secret / API__CRON_SECRET).
#
#   curl -X POST -H "Authorization: Bearer $SECRET" http://host/api/cron/sync/TOP_SONGS
"""Scheduled sweep endpoint."""

from fastapi import APIRouter, Depends

from reccord.api.dependencies import get_list_sync_service, verify_cron_secret
from reccord.api.schemas import BatchSyncResponse
from reccord.application.services.list_sync_service import ListSyncService
from reccord.domain.entities import ListSourceType

router = APIRouter()


@router.post(
    "/sync/{source_type}",
    response_model=BatchSyncResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def sync_due_lists(
    source_type: ListSourceType,
    service: ListSyncService = Depends(get_list_sync_service),
) -> BatchSyncResponse:
    """Sync every due list of one source type (MANUAL -> 422)."""
    result = await service.sync_all_due(source_type)
    return BatchSyncResponse.from_result(result)
