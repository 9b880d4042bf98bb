from typing import Annotated

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from loguru import logger

from arena.core.config import settings
from arena.core.db import get_session, store_errors
from arena.core.enums import BattleStatus, ResolutionTrigger
from arena.core.errors import BattleError
from arena.core.security import get_current_player_id, get_websocket_player_id
from arena.models.battle import BattleResult
from arena.schemas.battle import (
    BattleSummary,
    BattleView,
    ChallengeCreate,
    ChallengeResponse,
    ResolutionOutcome,
    SelectCardRequest,
    SelectionOutcome,
)
from arena.schemas.common import APIResponse, ErrorDetail, PaginatedResponse
from arena.services.battle import BattleService
from arena.services.battle_watcher import BattleWatcher
from arena.services.realtime import RealtimeNotifier, get_notifier
from arena.services.selection import SelectionService

router = APIRouter(prefix="/battles", tags=["battles"])

_FINISHED_STATUSES = {BattleStatus.COMPLETED, BattleStatus.DECLINED, BattleStatus.CANCELLED}


@router.post("/")
async def create_challenge(
    body: ChallengeCreate,
    player_id: Annotated[int, Depends(get_current_player_id)],
    service: Annotated[BattleService, Depends()],
) -> APIResponse[BattleSummary]:
    battle = await service.create_challenge(player_id, body.opponent_id)
    return APIResponse(data=BattleSummary.model_validate(battle), message="Challenge sent")


@router.get("/")
async def get_my_battles(
    player_id: Annotated[int, Depends(get_current_player_id)],
    service: Annotated[BattleService, Depends()],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 10,
    status: Annotated[BattleStatus | None, Query(description="Filter by battle status")] = None,
) -> PaginatedResponse[list[BattleSummary]]:
    battles, pagination = await service.list_player_battles(
        player_id, page=page, page_size=page_size, status=status
    )
    return PaginatedResponse(
        data=[BattleSummary.model_validate(battle) for battle in battles], pagination=pagination
    )


@router.get("/{battle_id}")
async def get_battle(
    battle_id: int,
    player_id: Annotated[int, Depends(get_current_player_id)],
    service: Annotated[BattleService, Depends()],
) -> APIResponse[BattleView]:
    return APIResponse(data=await service.get_battle_view(battle_id, player_id))


@router.post("/{battle_id}/respond")
async def respond_to_challenge(
    battle_id: int,
    body: ChallengeResponse,
    player_id: Annotated[int, Depends(get_current_player_id)],
    service: Annotated[BattleService, Depends()],
) -> APIResponse[BattleSummary]:
    battle = await service.respond_to_challenge(battle_id, player_id, accepted=body.accepted)
    message = "Challenge accepted" if body.accepted else "Challenge declined"
    return APIResponse(data=BattleSummary.model_validate(battle), message=message)


@router.post("/{battle_id}/cancel")
async def cancel_challenge(
    battle_id: int,
    player_id: Annotated[int, Depends(get_current_player_id)],
    service: Annotated[BattleService, Depends()],
) -> APIResponse[BattleSummary]:
    battle = await service.cancel_challenge(battle_id, player_id)
    return APIResponse(data=BattleSummary.model_validate(battle), message="Challenge cancelled")


@router.post("/{battle_id}/selection")
async def select_card(
    battle_id: int,
    body: SelectCardRequest,
    player_id: Annotated[int, Depends(get_current_player_id)],
    service: Annotated[SelectionService, Depends()],
) -> APIResponse[SelectionOutcome]:
    outcome = await service.select_card(battle_id, player_id, body.card_id)
    return APIResponse(data=outcome, message="Card selected")


@router.post("/{battle_id}/resolve")
async def resolve_battle(
    battle_id: int,
    player_id: Annotated[int, Depends(get_current_player_id)],
    service: Annotated[BattleService, Depends()],
) -> APIResponse[ResolutionOutcome]:
    outcome = await service.resolve_battle(
        battle_id, trigger=ResolutionTrigger.MANUAL, player_id=player_id
    )
    message = "Battle already resolved" if outcome.already_completed else "Battle resolved"
    return APIResponse(data=outcome, message=message)


@router.get("/{battle_id}/result")
async def get_battle_result(
    battle_id: int,
    player_id: Annotated[int, Depends(get_current_player_id)],
    service: Annotated[BattleService, Depends()],
) -> APIResponse[BattleResult]:
    return APIResponse(data=await service.get_battle_result(battle_id, player_id))


@router.websocket("/{battle_id}/ws")
async def watch_battle(
    websocket: WebSocket,
    battle_id: int,
    player_id: Annotated[int, Depends(get_websocket_player_id)],
    notifier: Annotated[RealtimeNotifier, Depends(get_notifier)],
) -> None:
    """Stream battle snapshots to a participant until the battle is over."""

    async def fetch() -> BattleView:
        with store_errors():
            async with get_session() as db:
                return await BattleService.from_session(db, notifier).get_battle_view(
                    battle_id, player_id
                )

    try:
        await fetch()
    except BattleError as e:
        await websocket.close(code=1008, reason=e.message)
        return

    await websocket.accept()

    async def send(view: BattleView) -> None:
        await websocket.send_json(APIResponse(data=view).model_dump(mode="json"))
        if view.status in _FINISHED_STATUSES:
            watcher.stop()

    watcher = BattleWatcher(
        notifier,
        battle_id,
        fetch=fetch,
        on_change=send,
        key=lambda view: (
            view.status,
            view.updated_at,
            tuple(s.has_selected for s in view.selections),
        ),
        poll_interval=settings.watcher_poll_interval_seconds,
    )

    try:
        await watcher.run()
    except WebSocketDisconnect:
        logger.debug(f"Player {player_id} stopped watching battle {battle_id}")
        return
    except BattleError as e:
        detail = ErrorDetail(code=e.code, kind=e.kind, retryable=e.retryable)
        await websocket.send_json(
            APIResponse(status="error", message=e.message, data=detail).model_dump(mode="json")
        )

    await websocket.close()
