from collections.abc import Sequence
from typing import Annotated, Any

from fastapi import Depends
from sqlmodel import col, desc, select
from sqlmodel.ext.asyncio.session import AsyncSession

from arena.core.db import get_db
from arena.core.enums import EventType
from arena.models.event_log import EventLog
from arena.schemas.common import PaginationData


class EventLogService:
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db

    async def get_player_event_logs(
        self,
        player_id: int,
        *,
        page: int,
        page_size: int,
        event_type: EventType | None = None,
    ) -> tuple[Sequence[EventLog], PaginationData]:
        offset = (page - 1) * page_size

        query = select(EventLog).where(EventLog.player_id == player_id)
        if event_type is not None:
            query = query.where(col(EventLog.event_type) == event_type)

        # Get total count
        total_items_result = await self.db.exec(query)
        total_items = len(total_items_result.all())

        total_pages = (total_items + page_size - 1) // page_size

        # Get paginated results
        result = await self.db.exec(
            query.order_by(desc(col(EventLog.created_at)), desc(col(EventLog.id)))
            .offset(offset)
            .limit(page_size)
        )
        event_logs = result.all()

        pagination = PaginationData(
            page=page, page_size=page_size, total_items=total_items, total_pages=total_pages
        )

        return event_logs, pagination

    def log_event(self, player_id: int, event_type: EventType, context: dict[str, Any]) -> EventLog:
        """Stage an event in the caller's transaction; it is written on their commit."""
        event_log = EventLog(player_id=player_id, event_type=event_type, context=context)
        self.db.add(event_log)
        return event_log
