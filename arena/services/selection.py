from typing import Annotated

from fastapi import Depends
from loguru import logger
from sqlmodel.ext.asyncio.session import AsyncSession

from arena.core.config import settings
from arena.core.db import get_db, transaction
from arena.core.enums import BattleStatus, EventType, RealtimeEvent
from arena.core.errors import (
    CardAlreadySelectedError,
    CardAlreadyStakedError,
    CardNotOwnedError,
    InvalidBattleStatusError,
    InvalidCardTypeError,
)
from arena.schemas.battle import SelectionOutcome
from arena.services.battle import BattleService
from arena.services.battle_store import BattleStore
from arena.services.event_log import EventLogService
from arena.services.realtime import RealtimeNotifier, battle_channel, get_notifier


class SelectionService:
    def __init__(  # noqa: PLR0913, PLR0917
        self,
        db: Annotated[AsyncSession, Depends(get_db)],
        store: Annotated[BattleStore, Depends()],
        notifier: Annotated[RealtimeNotifier, Depends(get_notifier)],
        event_log_service: Annotated[EventLogService, Depends()],
        battle_service: Annotated[BattleService, Depends()],
    ) -> None:
        self.db = db
        self.store = store
        self.notifier = notifier
        self.event_log_service = event_log_service
        self.battle_service = battle_service

    async def select_card(self, battle_id: int, player_id: int, card_id: int) -> SelectionOutcome:
        """Stake ``card_id`` for ``player_id`` in an active battle.

        Each player selects exactly once. The second selection moves the battle to
        cards_revealed and starts the reveal countdown. A repeated submission still
        finishes a reveal that failed after the pair was stored.
        """
        battle = await self.battle_service.get_battle(battle_id)
        self.battle_service.require_participant(battle, player_id)

        if await self.store.get_selection(battle_id, player_id) is not None:
            if battle.status == BattleStatus.ACTIVE:
                await self._reveal_if_paired(battle_id)
            msg = "You have already selected a card for this battle"
            raise CardAlreadySelectedError(msg)
        if battle.status != BattleStatus.ACTIVE:
            msg = f"Cards can only be selected while the battle is active (status: {battle.status})"
            raise InvalidBattleStatusError(msg)

        card = await self.store.get_card(card_id)
        if card is None or card.owner_id != player_id:
            msg = "You do not own this card"
            raise CardNotOwnedError(msg)
        if card.card_type not in settings.battle_card_types:
            allowed = ", ".join(t.value for t in settings.battle_card_types)
            msg = f"Only {allowed} cards can be used in battles"
            raise InvalidCardTypeError(msg)
        if await self.store.is_card_staked(card_id, exclude_battle_id=battle_id):
            msg = f"{card} is already staked in another battle"
            raise CardAlreadyStakedError(msg)

        async with transaction(self.db):
            await self.store.create_selection(battle_id, player_id, card_id)
            self.event_log_service.log_event(
                player_id, EventType.CARD_SELECTED, {"battle_id": battle_id, "card_id": card_id}
            )

        logger.info(f"Battle {battle_id}: player {player_id} selected card {card_id}")
        await self.notifier.publish(
            battle_channel(battle_id),
            RealtimeEvent.CARD_SELECTED,
            {"battle_id": battle_id, "player_id": player_id, "status": BattleStatus.ACTIVE},
        )

        both_submitted = await self._reveal_if_paired(battle_id)
        battle = await self.battle_service.get_battle(battle_id)
        return SelectionOutcome(
            battle_id=battle_id,
            player_id=player_id,
            card_id=card_id,
            battle_status=battle.status,
            both_submitted=both_submitted,
        )

    async def _reveal_if_paired(self, battle_id: int) -> bool:
        """Reveal the battle once both selections exist.

        True only for the call whose compare-and-swap moved the battle.
        """
        selections = await self.store.get_selections(battle_id)
        if len(selections) < 2:  # noqa: PLR2004
            return False
        return await self.battle_service.mark_cards_revealed(battle_id)
