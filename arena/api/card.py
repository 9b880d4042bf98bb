from collections.abc import Sequence
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from arena.core.enums import CardRarity, CardType
from arena.core.security import get_current_player_id
from arena.models.card import Card
from arena.schemas.card import CardListParams
from arena.schemas.common import APIResponse, PaginatedResponse
from arena.services.card import CardService

router = APIRouter(prefix="/cards", tags=["cards"])


@router.get("/me")
async def get_my_cards(  # noqa: PLR0913, PLR0917
    player_id: Annotated[int, Depends(get_current_player_id)],
    service: Annotated[CardService, Depends()],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    card_type: Annotated[CardType | None, Query(description="Filter by card type")] = None,
    rarity: Annotated[CardRarity | None, Query(description="Filter by rarity")] = None,
) -> PaginatedResponse[Sequence[Card]]:
    params = CardListParams(card_type=card_type, rarity=rarity)
    cards, pagination = await service.get_player_cards(
        player_id, page=page, page_size=page_size, params=params
    )
    return PaginatedResponse(data=cards, pagination=pagination)


@router.get("/{card_id}")
async def get_card(card_id: int, service: Annotated[CardService, Depends()]) -> APIResponse[Card]:
    card = await service.get_card(card_id)
    if not card:
        raise HTTPException(status_code=404, detail="Card not found")
    return APIResponse(data=card)
