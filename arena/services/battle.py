"""Battle orchestrator.

Drives a battle through ``pending -> active -> cards_revealed -> in_progress ->
completed`` (with ``declined`` and ``cancelled`` as the alternatives to accepting a
challenge). Every status write is a compare-and-swap through the store, so the manual
resolve button, the countdown scheduler and client retries can all call
``resolve_battle`` and only one of them advances each step.

Resolution happens in two committed steps. ``cards_revealed -> in_progress`` runs the
resolution policy and caches its output on the battle. ``in_progress -> completed``
writes the result, moves the losing card and sets the winner in one transaction, using
only the cached output, so retrying after a failure can never change the winner.
"""

import datetime
from collections.abc import Sequence
from typing import Annotated, Any

from fastapi import Depends
from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlmodel.ext.asyncio.session import AsyncSession

from arena.core.config import settings
from arena.core.db import get_db, transaction
from arena.core.enums import (
    BattleStatus,
    ErrorKind,
    EventType,
    RealtimeEvent,
    ResolutionTrigger,
    ResolutionWinner,
)
from arena.core.errors import (
    BattleError,
    BattleNotFoundError,
    BattleStateCorruptedError,
    InvalidBattleStatusError,
    InvalidChallengeError,
    PlayerNotFoundError,
    PlayerNotInBattleError,
    PrizeTransferError,
    ResolutionNotDueError,
    StaleBattleStateError,
)
from arena.models.battle import BattleInstance, BattleResult
from arena.schemas.battle import (
    BattleView,
    PendingResolution,
    Resolution,
    ResolutionOutcome,
    SelectionView,
    SweepReport,
)
from arena.schemas.card import BattleCard
from arena.schemas.common import PaginationData
from arena.services.battle_store import BattleStore
from arena.services.event_log import EventLogService
from arena.services.player import PlayerService
from arena.services.realtime import (
    RealtimeNotifier,
    battle_channel,
    get_notifier,
    player_channel,
)
from arena.services.resolution import ResolutionPolicy, get_resolution_policy
from arena.utils.misc import ensure_utc, get_utc_now

# cards_revealed -> in_progress -> completed, plus one re-read after a lost race
_MAX_RESOLUTION_STEPS = 4

_REVEALED_STATUSES = {BattleStatus.CARDS_REVEALED, BattleStatus.IN_PROGRESS, BattleStatus.COMPLETED}


class _CompletionRaceLostError(Exception):
    """Another request completed the battle while this one was writing."""


def get_configured_policy() -> ResolutionPolicy:
    return get_resolution_policy(settings.resolution_policy)


class BattleService:
    def __init__(  # noqa: PLR0913, PLR0917
        self,
        db: Annotated[AsyncSession, Depends(get_db)],
        store: Annotated[BattleStore, Depends()],
        notifier: Annotated[RealtimeNotifier, Depends(get_notifier)],
        event_log_service: Annotated[EventLogService, Depends()],
        player_service: Annotated[PlayerService, Depends()],
        policy: Annotated[ResolutionPolicy, Depends(get_configured_policy)],
    ) -> None:
        self.db = db
        self.store = store
        self.notifier = notifier
        self.event_log_service = event_log_service
        self.player_service = player_service
        self.policy = policy

    @classmethod
    def from_session(cls, db: AsyncSession, notifier: RealtimeNotifier) -> "BattleService":
        """Build the service outside a request, e.g. for the scheduler."""
        return cls(
            db=db,
            store=BattleStore(db),
            notifier=notifier,
            event_log_service=EventLogService(db),
            player_service=PlayerService(db),
            policy=get_configured_policy(),
        )

    async def get_battle(self, battle_id: int) -> BattleInstance:
        battle = await self.store.get_battle(battle_id)
        if battle is None:
            msg = f"Battle {battle_id} does not exist"
            raise BattleNotFoundError(msg)
        return battle

    @staticmethod
    def require_participant(battle: BattleInstance, player_id: int) -> None:
        if not battle.is_participant(player_id):
            msg = "You are not a participant in this battle"
            raise PlayerNotInBattleError(msg)

    async def _broadcast_status(
        self, battle: BattleInstance, *, notify: Sequence[int] = (), message: str | None = None
    ) -> None:
        payload: dict[str, Any] = {
            "battle_id": battle.id,
            "status": battle.status,
            "message": message,
        }
        await self.notifier.publish(
            battle_channel(battle.id), RealtimeEvent.BATTLE_STATUS_CHANGED, payload
        )
        for player_id in notify:
            await self.notifier.publish(
                player_channel(player_id), RealtimeEvent.BATTLE_STATUS_CHANGED, payload
            )

    # Challenges

    async def create_challenge(self, challenger_id: int, opponent_id: int) -> BattleInstance:
        if challenger_id == opponent_id:
            msg = "You cannot challenge yourself"
            raise InvalidChallengeError(msg)

        for player_id in (challenger_id, opponent_id):
            if await self.player_service.get_player(player_id) is None:
                msg = f"Player {player_id} does not exist"
                raise PlayerNotFoundError(msg)

        async with transaction(self.db):
            battle = await self.store.create_battle(challenger_id, opponent_id)
            self.event_log_service.log_event(
                challenger_id,
                EventType.CHALLENGE_SENT,
                {"battle_id": battle.id, "opponent_id": opponent_id},
            )

        logger.info(f"Player {challenger_id} challenged {opponent_id} (battle {battle.id})")
        await self._broadcast_status(battle, notify=[opponent_id])
        return battle

    async def respond_to_challenge(
        self, battle_id: int, player_id: int, *, accepted: bool
    ) -> BattleInstance:
        battle = await self.get_battle(battle_id)
        self.require_participant(battle, player_id)
        if player_id != battle.opponent_id:
            msg = "Only the challenged player can respond to a challenge"
            raise InvalidChallengeError(msg)
        if battle.status != BattleStatus.PENDING:
            msg = f"This challenge has already been answered (status: {battle.status})"
            raise InvalidBattleStatusError(msg)

        new_status = BattleStatus.ACTIVE if accepted else BattleStatus.DECLINED
        event_type = EventType.CHALLENGE_ACCEPTED if accepted else EventType.CHALLENGE_DECLINED
        async with transaction(self.db):
            moved = await self.store.update_battle_status(
                battle_id, BattleStatus.PENDING, new_status
            )
            if moved:
                self.event_log_service.log_event(
                    player_id,
                    event_type,
                    {"battle_id": battle_id, "challenger_id": battle.challenger_id},
                )

        if not moved:
            msg = "This challenge has already been answered"
            raise StaleBattleStateError(msg)

        logger.info(f"Battle {battle_id}: challenge {'accepted' if accepted else 'declined'}")
        battle = await self.get_battle(battle_id)
        await self._broadcast_status(battle, notify=[battle.other_player(player_id)])
        return battle

    async def cancel_challenge(self, battle_id: int, player_id: int) -> BattleInstance:
        battle = await self.get_battle(battle_id)
        self.require_participant(battle, player_id)
        if player_id != battle.challenger_id:
            msg = "Only the challenger can cancel a challenge"
            raise InvalidChallengeError(msg)
        if battle.status != BattleStatus.PENDING:
            msg = f"Only pending challenges can be cancelled (status: {battle.status})"
            raise InvalidBattleStatusError(msg)

        async with transaction(self.db):
            moved = await self.store.update_battle_status(
                battle_id, BattleStatus.PENDING, BattleStatus.CANCELLED
            )
            if moved:
                self.event_log_service.log_event(
                    player_id,
                    EventType.CHALLENGE_CANCELLED,
                    {"battle_id": battle_id, "opponent_id": battle.opponent_id},
                )

        if not moved:
            msg = "This challenge has already been answered"
            raise StaleBattleStateError(msg)

        logger.info(f"Battle {battle_id}: challenge cancelled")
        battle = await self.get_battle(battle_id)
        await self._broadcast_status(battle, notify=[battle.other_player(player_id)])
        return battle

    async def expire_challenges(self, now: datetime.datetime | None = None) -> int:
        """Decline challenges left unanswered past the timeout. Returns how many expired."""
        now = now or get_utc_now()
        cutoff = now - datetime.timedelta(seconds=settings.challenge_timeout_seconds)
        expired = 0

        for battle_id in await self.store.list_stale_challenges(cutoff):
            challenger_id = (await self.get_battle(battle_id)).challenger_id
            async with transaction(self.db):
                moved = await self.store.update_battle_status(
                    battle_id,
                    BattleStatus.PENDING,
                    BattleStatus.DECLINED,
                    explanation="Challenge timed out",
                )
                if moved:
                    self.event_log_service.log_event(
                        challenger_id, EventType.CHALLENGE_EXPIRED, {"battle_id": battle_id}
                    )
            if not moved:
                continue

            battle = await self.get_battle(battle_id)
            expired += 1
            logger.info(f"Battle {battle_id}: challenge expired")
            await self._broadcast_status(
                battle, notify=[battle.challenger_id], message="Challenge timed out"
            )

        return expired

    # Card reveal

    async def mark_cards_revealed(
        self, battle_id: int, now: datetime.datetime | None = None
    ) -> bool:
        """Move an active battle to cards_revealed and start the reveal countdown.

        Safe to call from both players' submissions; only one call advances the battle.
        """
        now = now or get_utc_now()
        deadline = now + datetime.timedelta(seconds=settings.reveal_countdown_seconds)
        async with transaction(self.db):
            moved = await self.store.update_battle_status(
                battle_id,
                BattleStatus.ACTIVE,
                BattleStatus.CARDS_REVEALED,
                reveal_deadline=deadline,
            )

        if moved:
            logger.info(f"Battle {battle_id}: both cards submitted, revealing")
            battle = await self.get_battle(battle_id)
            await self._broadcast_status(battle)
        else:
            logger.debug(f"Battle {battle_id}: reveal already recorded by another request")
        return moved

    # Resolution

    async def resolve_battle(
        self,
        battle_id: int,
        *,
        trigger: ResolutionTrigger,
        player_id: int | None = None,
        now: datetime.datetime | None = None,
    ) -> ResolutionOutcome:
        """Drive a revealed battle to completion, or report the existing result.

        Manual triggers come from a participant and may fire before the countdown
        ends. Countdown triggers are ignored until the reveal deadline has passed.
        """
        now = now or get_utc_now()
        battle = await self.get_battle(battle_id)
        if player_id is not None:
            self.require_participant(battle, player_id)

        for _ in range(_MAX_RESOLUTION_STEPS):
            if battle.status == BattleStatus.COMPLETED:
                return ResolutionOutcome(
                    battle_id=battle_id,
                    status=battle.status,
                    result=await self.store.get_battle_result(battle_id),
                    already_completed=True,
                )

            if battle.status == BattleStatus.CARDS_REVEALED:
                if trigger == ResolutionTrigger.COUNTDOWN and not self._countdown_elapsed(
                    battle, now
                ):
                    msg = "The reveal countdown has not finished yet"
                    raise ResolutionNotDueError(msg)
                await self._begin_resolution(battle)
            elif battle.status == BattleStatus.IN_PROGRESS:
                if await self._complete_resolution(battle, now):
                    battle = await self.get_battle(battle_id)
                    await self._broadcast_status(battle)
                    return ResolutionOutcome(
                        battle_id=battle_id,
                        status=battle.status,
                        result=await self.store.get_battle_result(battle_id),
                    )
            else:
                msg = f"Battle is {battle.status} and cannot be resolved"
                raise InvalidBattleStatusError(msg)

            battle = await self.get_battle(battle_id)

        msg = "The battle kept changing during resolution, please retry"
        raise StaleBattleStateError(msg)

    @staticmethod
    def _countdown_elapsed(battle: BattleInstance, now: datetime.datetime) -> bool:
        if battle.reveal_deadline is None:
            return True
        return ensure_utc(battle.reveal_deadline) <= ensure_utc(now)

    async def _load_staked_cards(self, battle: BattleInstance) -> tuple[BattleCard, BattleCard]:
        selections = {s.player_id: s for s in await self.store.get_selections(battle.id)}
        cards: list[BattleCard] = []
        for player_id in (battle.challenger_id, battle.opponent_id):
            selection = selections.get(player_id)
            if selection is None:
                msg = f"Battle {battle.id} has no card selected by player {player_id}"
                raise BattleStateCorruptedError(msg)

            card = await self.store.get_card(selection.card_id)
            if card is None or card.owner_id != player_id:
                msg = (
                    f"Card {selection.card_id} staked in battle {battle.id} is no longer "
                    f"owned by player {player_id}"
                )
                raise BattleStateCorruptedError(msg)
            cards.append(card.to_battle_card())

        return cards[0], cards[1]

    @staticmethod
    def _pending_resolution(
        battle: BattleInstance,
        resolution: Resolution,
        challenger_card: BattleCard,
        opponent_card: BattleCard,
    ) -> PendingResolution:
        winner_id = loser_id = transferred_card_id = None
        if resolution.winner == ResolutionWinner.A:
            winner_id, loser_id = battle.challenger_id, battle.opponent_id
            transferred_card_id = opponent_card.id
        elif resolution.winner == ResolutionWinner.B:
            winner_id, loser_id = battle.opponent_id, battle.challenger_id
            transferred_card_id = challenger_card.id

        return PendingResolution(
            winner_id=winner_id,
            loser_id=loser_id,
            transferred_card_id=transferred_card_id,
            challenger_score=resolution.score_a,
            opponent_score=resolution.score_b,
            explanation=resolution.explanation,
            rule=resolution.rule,
        )

    async def _begin_resolution(self, battle: BattleInstance) -> bool:
        """cards_revealed -> in_progress, caching the policy output on the battle."""
        battle_id = battle.id
        try:
            async with transaction(self.db):
                challenger_card, opponent_card = await self._load_staked_cards(battle)
                resolution = self.policy.resolve(challenger_card, opponent_card)
                pending = self._pending_resolution(
                    battle, resolution, challenger_card, opponent_card
                )
                moved = await self.store.update_battle_status(
                    battle_id,
                    BattleStatus.CARDS_REVEALED,
                    BattleStatus.IN_PROGRESS,
                    resolution=pending.model_dump(mode="json"),
                )
        except BattleError as e:
            await self._report_resolution_error(battle_id, e)
            raise

        if moved:
            logger.info(
                f"Battle {battle_id}: resolved with {resolution.rule} ({resolution.winner})"
            )
            battle = await self.get_battle(battle_id)
            await self._broadcast_status(battle)
        else:
            logger.debug(f"Battle {battle_id}: resolution already started by another request")
        return moved

    async def _complete_resolution(self, battle: BattleInstance, now: datetime.datetime) -> bool:
        """in_progress -> completed: persist the result and transfer the prize.

        Returns False when another request completed the battle first.
        """
        battle_id = battle.id
        challenger_id = battle.challenger_id
        opponent_id = battle.opponent_id
        if battle.resolution is None:
            msg = f"Battle {battle_id} is in progress without a cached resolution"
            error = BattleStateCorruptedError(msg)
            await self._report_resolution_error(battle_id, error)
            raise error
        pending = PendingResolution.model_validate(battle.resolution)

        try:
            async with transaction(self.db):
                await self.store.create_battle_result(
                    BattleResult(
                        battle_id=battle_id,
                        winner_id=pending.winner_id,
                        loser_id=pending.loser_id,
                        transferred_card_id=pending.transferred_card_id,
                        explanation=pending.explanation,
                        challenger_score=pending.challenger_score,
                        opponent_score=pending.opponent_score,
                        rule=pending.rule,
                    )
                )
                await self._transfer_prize(battle_id, pending)

                completed = await self.store.update_battle_status(
                    battle_id,
                    BattleStatus.IN_PROGRESS,
                    BattleStatus.COMPLETED,
                    winner_id=pending.winner_id,
                    explanation=pending.explanation,
                    completed_at=now,
                )
                if not completed:
                    raise _CompletionRaceLostError

                self._log_outcome(battle_id, challenger_id, opponent_id, pending)
        except (IntegrityError, _CompletionRaceLostError):
            logger.debug(f"Battle {battle_id}: completed by another request")
            return False
        except BattleError as e:
            await self._report_resolution_error(battle_id, e)
            raise

        logger.info(
            f"Battle {battle_id}: completed, winner {pending.winner_id or 'none (draw)'}"
        )
        return True

    async def _transfer_prize(self, battle_id: int, pending: PendingResolution) -> None:
        if pending.transferred_card_id is None or pending.winner_id is None:
            return
        assert pending.loser_id is not None  # noqa: S101

        transferred = await self.store.transfer_card_ownership(
            pending.transferred_card_id, pending.winner_id, expected_owner_id=pending.loser_id
        )
        if not transferred:
            msg = (
                f"Battle {battle_id}: card {pending.transferred_card_id} is no longer owned "
                f"by player {pending.loser_id}"
            )
            raise PrizeTransferError(msg)

    def _log_outcome(
        self, battle_id: int, challenger_id: int, opponent_id: int, pending: PendingResolution
    ) -> None:
        context = {"battle_id": battle_id, "card_id": pending.transferred_card_id}
        if pending.winner_id is None or pending.loser_id is None:
            for player_id in (challenger_id, opponent_id):
                self.event_log_service.log_event(player_id, EventType.BATTLE_DRAW, context)
            return

        self.event_log_service.log_event(pending.winner_id, EventType.BATTLE_WON, context)
        self.event_log_service.log_event(pending.loser_id, EventType.BATTLE_LOST, context)

    async def _report_resolution_error(self, battle_id: int, error: BattleError) -> None:
        if error.kind == ErrorKind.TRANSIENT:
            logger.warning(f"Battle {battle_id}: resolution failed, will retry: {error.message}")
        else:
            logger.error(f"Battle {battle_id}: resolution failed: {error.code} {error.message}")

        await self.notifier.publish(
            battle_channel(battle_id),
            RealtimeEvent.BATTLE_RESOLUTION_ERROR,
            {"battle_id": battle_id, "message": error.message},
        )

    # Reads

    async def get_battle_view(self, battle_id: int, viewer_id: int) -> BattleView:
        """The battle as ``viewer_id`` may see it; the opponent's card stays hidden until reveal."""
        battle = await self.get_battle(battle_id)
        self.require_participant(battle, viewer_id)

        revealed = battle.status in _REVEALED_STATUSES
        selections = {s.player_id: s for s in await self.store.get_selections(battle_id)}
        views = []
        for player_id in (battle.challenger_id, battle.opponent_id):
            selection = selections.get(player_id)
            card = None
            if selection is not None and (revealed or player_id == viewer_id):
                staked = await self.store.get_card(selection.card_id)
                card = staked.to_battle_card() if staked else None
            views.append(
                SelectionView(player_id=player_id, has_selected=selection is not None, card=card)
            )

        result = None
        if battle.status == BattleStatus.COMPLETED:
            result = await self.store.get_battle_result(battle_id)

        return BattleView(
            id=battle.id,
            challenger_id=battle.challenger_id,
            opponent_id=battle.opponent_id,
            status=battle.status,
            winner_id=battle.winner_id,
            explanation=battle.explanation,
            reveal_deadline=battle.reveal_deadline,
            completed_at=battle.completed_at,
            updated_at=battle.updated_at,
            selections=views,
            result=result,
        )

    async def get_battle_result(self, battle_id: int, viewer_id: int) -> BattleResult:
        battle = await self.get_battle(battle_id)
        self.require_participant(battle, viewer_id)
        if battle.status != BattleStatus.COMPLETED:
            msg = f"Battle has not completed yet (status: {battle.status})"
            raise InvalidBattleStatusError(msg)

        result = await self.store.get_battle_result(battle_id)
        if result is None:
            msg = f"Battle {battle_id} completed without a result"
            raise BattleStateCorruptedError(msg)
        return result

    async def list_player_battles(
        self, player_id: int, *, page: int, page_size: int, status: BattleStatus | None = None
    ) -> tuple[Sequence[BattleInstance], PaginationData]:
        offset = (page - 1) * page_size
        battles, total_items = await self.store.list_player_battles(
            player_id, status=status, offset=offset, limit=page_size
        )
        total_pages = (total_items + page_size - 1) // page_size

        pagination = PaginationData(
            page=page, page_size=page_size, total_items=total_items, total_pages=total_pages
        )
        return battles, pagination

    # Scheduler

    async def sweep(self, now: datetime.datetime | None = None) -> SweepReport:
        """One pass of the server-side timers.

        Expires unanswered challenges, reveals battles whose second selection was stored
        but whose reveal failed, resolves battles whose reveal countdown ran out, and
        retries battles left in progress by an earlier failure.
        """
        now = now or get_utc_now()
        report = SweepReport(expired_challenges=await self.expire_challenges(now))

        for battle_id in await self.store.list_unrevealed_pairs():
            try:
                if await self.mark_cards_revealed(battle_id, now):
                    report.revealed_battles += 1
            except BattleError as e:
                report.failed_battles += 1
                logger.warning(f"Battle {battle_id}: scheduled reveal failed: {e.code} {e.message}")

        for battle_id in await self.store.list_due_reveals(now):
            await self._sweep_resolve(battle_id, ResolutionTrigger.COUNTDOWN, now, report)
        for battle_id in await self.store.list_in_progress():
            await self._sweep_resolve(battle_id, ResolutionTrigger.RETRY, now, report)

        return report

    async def _sweep_resolve(
        self,
        battle_id: int,
        trigger: ResolutionTrigger,
        now: datetime.datetime,
        report: SweepReport,
    ) -> None:
        try:
            outcome = await self.resolve_battle(battle_id, trigger=trigger, now=now)
        except BattleError as e:
            report.failed_battles += 1
            logger.warning(f"Battle {battle_id}: scheduled resolution failed: {e.code} {e.message}")
            return

        if not outcome.already_completed:
            report.resolved_battles += 1
