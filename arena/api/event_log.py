from collections.abc import Sequence
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from arena.core.enums import EventType
from arena.core.security import get_current_player_id
from arena.models.event_log import EventLog
from arena.schemas.common import PaginatedResponse
from arena.services.event_log import EventLogService

router = APIRouter(prefix="/event-logs", tags=["event-logs"])


@router.get("/me")
async def get_my_event_logs(
    player_id: Annotated[int, Depends(get_current_player_id)],
    service: Annotated[EventLogService, Depends()],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 10,
    event_type: Annotated[EventType | None, Query(description="Filter by event type")] = None,
) -> PaginatedResponse[Sequence[EventLog]]:
    event_logs, pagination = await service.get_player_event_logs(
        player_id, page=page, page_size=page_size, event_type=event_type
    )
    return PaginatedResponse(data=event_logs, pagination=pagination)
