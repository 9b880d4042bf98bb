"""Persistence access for battles, selections, results and card ownership.

The store never commits; callers own the transaction. Every write that can race
with another request is conditional on the state the caller last read, and reports
whether it won.
"""

import datetime
from collections.abc import Sequence
from typing import Annotated, Any

from fastapi import Depends
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from arena.core.db import get_db
from arena.core.enums import BattleStatus
from arena.core.errors import CardAlreadySelectedError, InvalidTransitionError
from arena.models.battle import BattleInstance, BattleResult, CardSelection
from arena.models.card import Card
from arena.utils.misc import get_utc_now

BATTLE_TRANSITIONS: dict[BattleStatus, frozenset[BattleStatus]] = {
    BattleStatus.PENDING: frozenset(
        {BattleStatus.ACTIVE, BattleStatus.DECLINED, BattleStatus.CANCELLED}
    ),
    BattleStatus.ACTIVE: frozenset({BattleStatus.CARDS_REVEALED}),
    BattleStatus.CARDS_REVEALED: frozenset({BattleStatus.IN_PROGRESS}),
    BattleStatus.IN_PROGRESS: frozenset({BattleStatus.COMPLETED}),
    BattleStatus.COMPLETED: frozenset(),
    BattleStatus.DECLINED: frozenset(),
    BattleStatus.CANCELLED: frozenset(),
}

# Statuses in which a staked card is still at risk
UNRESOLVED_STATUSES = (BattleStatus.ACTIVE, BattleStatus.CARDS_REVEALED, BattleStatus.IN_PROGRESS)


def can_transition(current: BattleStatus, new: BattleStatus) -> bool:
    return new in BATTLE_TRANSITIONS[current]


class BattleStore:
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db

    # Battles

    async def get_battle(self, battle_id: int) -> BattleInstance | None:
        """Read the battle straight from the store, replacing any cached copy."""
        result = await self.db.exec(
            select(BattleInstance)
            .where(BattleInstance.id == battle_id)
            .execution_options(populate_existing=True)
        )
        return result.first()

    async def create_battle(self, challenger_id: int, opponent_id: int) -> BattleInstance:
        battle = BattleInstance(
            challenger_id=challenger_id, opponent_id=opponent_id, status=BattleStatus.PENDING
        )
        self.db.add(battle)
        await self.db.flush()
        return battle

    async def update_battle_status(
        self,
        battle_id: int,
        expected_status: BattleStatus,
        new_status: BattleStatus,
        **fields: Any,
    ) -> bool:
        """Move a battle to ``new_status`` only if it is still in ``expected_status``.

        Returns False when another writer got there first. Raises
        InvalidTransitionError for edges outside the state machine.
        """
        if not can_transition(expected_status, new_status):
            msg = f"Battle {battle_id} cannot move from {expected_status} to {new_status}"
            raise InvalidTransitionError(msg)

        result = await self.db.exec(
            update(BattleInstance)  # pyright: ignore[reportCallIssue, reportArgumentType]
            .where(
                col(BattleInstance.id) == battle_id,
                col(BattleInstance.status) == expected_status,
            )
            .values(status=new_status, updated_at=get_utc_now(), **fields)
        )
        return result.rowcount == 1

    async def list_player_battles(
        self,
        player_id: int,
        *,
        status: BattleStatus | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> tuple[Sequence[BattleInstance], int]:
        query = select(BattleInstance).where(
            (BattleInstance.challenger_id == player_id) | (BattleInstance.opponent_id == player_id)
        )
        if status is not None:
            query = query.where(BattleInstance.status == status)

        total_items_result = await self.db.exec(query)
        total_items = len(total_items_result.all())

        query = query.order_by(col(BattleInstance.created_at).desc(), col(BattleInstance.id).desc())
        query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.exec(query)
        return result.all(), total_items

    async def list_due_reveals(self, now: datetime.datetime) -> Sequence[int]:
        """Battles whose reveal countdown has run out."""
        result = await self.db.exec(
            select(BattleInstance.id).where(
                BattleInstance.status == BattleStatus.CARDS_REVEALED,
                col(BattleInstance.reveal_deadline) <= now,
            )
        )
        return result.all()

    async def list_in_progress(self) -> Sequence[int]:
        result = await self.db.exec(
            select(BattleInstance.id).where(BattleInstance.status == BattleStatus.IN_PROGRESS)
        )
        return result.all()

    async def list_stale_challenges(self, cutoff: datetime.datetime) -> Sequence[int]:
        result = await self.db.exec(
            select(BattleInstance.id).where(
                BattleInstance.status == BattleStatus.PENDING,
                col(BattleInstance.created_at) <= cutoff,
            )
        )
        return result.all()

    async def list_unrevealed_pairs(self) -> Sequence[int]:
        """Active battles that already hold both selections but were never revealed."""
        result = await self.db.exec(
            select(CardSelection.battle_id)
            .join(BattleInstance, col(CardSelection.battle_id) == col(BattleInstance.id))
            .where(BattleInstance.status == BattleStatus.ACTIVE)
            .group_by(col(CardSelection.battle_id))
            .having(func.count(col(CardSelection.id)) == 2)  # noqa: PLR2004
        )
        return result.all()

    # Selections

    async def get_selection(self, battle_id: int, player_id: int) -> CardSelection | None:
        result = await self.db.exec(
            select(CardSelection).where(
                CardSelection.battle_id == battle_id, CardSelection.player_id == player_id
            )
        )
        return result.first()

    async def get_selections(self, battle_id: int) -> Sequence[CardSelection]:
        result = await self.db.exec(
            select(CardSelection)
            .where(CardSelection.battle_id == battle_id)
            .order_by(col(CardSelection.submitted_at))
        )
        return result.all()

    async def create_selection(self, battle_id: int, player_id: int, card_id: int) -> CardSelection:
        """Insert a selection; the (battle_id, player_id) unique constraint decides races.

        The session is rolled back before CardAlreadySelectedError is raised.
        """
        selection = CardSelection(battle_id=battle_id, player_id=player_id, card_id=card_id)
        self.db.add(selection)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            msg = "A card has already been selected for this battle"
            raise CardAlreadySelectedError(msg) from e
        return selection

    async def is_card_staked(self, card_id: int, *, exclude_battle_id: int) -> bool:
        """Whether the card is the stake of another battle that has not completed."""
        result = await self.db.exec(
            select(CardSelection.id)
            .join(BattleInstance, col(CardSelection.battle_id) == col(BattleInstance.id))
            .where(
                CardSelection.card_id == card_id,
                CardSelection.battle_id != exclude_battle_id,
                col(BattleInstance.status).in_(UNRESOLVED_STATUSES),
            )
        )
        return result.first() is not None

    # Cards

    async def get_card(self, card_id: int) -> Card | None:
        result = await self.db.exec(
            select(Card).where(Card.id == card_id).execution_options(populate_existing=True)
        )
        return result.first()

    async def transfer_card_ownership(
        self, card_id: int, new_owner_id: int, *, expected_owner_id: int
    ) -> bool:
        """Hand the card to ``new_owner_id`` only if ``expected_owner_id`` still owns it."""
        result = await self.db.exec(
            update(Card)  # pyright: ignore[reportCallIssue, reportArgumentType]
            .where(col(Card.id) == card_id, col(Card.owner_id) == expected_owner_id)
            .values(owner_id=new_owner_id, updated_at=get_utc_now())
        )
        return result.rowcount == 1

    # Results

    async def get_battle_result(self, battle_id: int) -> BattleResult | None:
        result = await self.db.exec(select(BattleResult).where(BattleResult.battle_id == battle_id))
        return result.first()

    async def create_battle_result(self, result: BattleResult) -> BattleResult:
        """Insert the result row. A second insert for the same battle raises IntegrityError."""
        self.db.add(result)
        await self.db.flush()
        return result
