from collections.abc import Sequence
from typing import Annotated

from fastapi import Depends
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from arena.core.db import get_db
from arena.models.card import Card
from arena.schemas.card import CardListParams
from arena.schemas.common import PaginationData


class CardService:
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db

    async def get_player_cards(
        self, owner_id: int, *, page: int, page_size: int, params: CardListParams
    ) -> tuple[Sequence[Card], PaginationData]:
        offset = (page - 1) * page_size

        query = select(Card).where(Card.owner_id == owner_id)

        # Apply filters
        if params.card_type is not None:
            query = query.where(Card.card_type == params.card_type)
        if params.rarity is not None:
            query = query.where(Card.rarity == params.rarity)

        total_items_result = await self.db.exec(query)
        total_items = len(total_items_result.all())

        total_pages = (total_items + page_size - 1) // page_size

        query = query.order_by(col(Card.obtained_at).desc(), col(Card.id))
        query = query.offset(offset).limit(page_size)
        result = await self.db.exec(query)
        cards = result.all()

        pagination = PaginationData(
            page=page, page_size=page_size, total_items=total_items, total_pages=total_pages
        )

        return cards, pagination

    async def get_card(self, card_id: int) -> Card | None:
        result = await self.db.exec(select(Card).where(Card.id == card_id))
        return result.first()
