from typing import Annotated

from fastapi import Depends
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from arena.core.db import get_db
from arena.models.player import Player


class PlayerService:
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db

    async def get_player(self, player_id: int) -> Player | None:
        result = await self.db.exec(select(Player).where(Player.id == player_id))
        return result.first()
