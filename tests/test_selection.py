import datetime
from typing import Any

import pytest
from sqlalchemy.exc import OperationalError

from arena.core.config import settings
from arena.core.enums import BattleStatus, ErrorKind, EventType, RealtimeEvent
from arena.core.errors import (
    BattleNotFoundError,
    CardAlreadySelectedError,
    CardAlreadyStakedError,
    CardNotOwnedError,
    InvalidBattleStatusError,
    InvalidCardTypeError,
    PlayerNotInBattleError,
    StoreUnavailableError,
)
from arena.schemas.realtime import BattleEventEnvelope
from arena.services.battle import BattleService
from arena.services.battle_store import BattleStore
from arena.services.event_log import EventLogService
from arena.services.realtime import RealtimeNotifier, battle_channel
from arena.services.selection import SelectionService
from arena.utils.misc import ensure_utc, get_utc_now
from tests.helpers import ALICE, BOB, CAROL, start_battle


async def test_first_selection_keeps_battle_active(
    battle_service: BattleService, selection_service: SelectionService, cards: dict[str, int]
) -> None:
    battle_id = await start_battle(battle_service)

    outcome = await selection_service.select_card(battle_id, ALICE, cards["alice_marine"])

    assert outcome.battle_status == BattleStatus.ACTIVE
    assert not outcome.both_submitted


async def test_second_selection_reveals_cards_and_starts_countdown(
    battle_service: BattleService, selection_service: SelectionService, cards: dict[str, int]
) -> None:
    battle_id = await start_battle(battle_service)
    await selection_service.select_card(battle_id, ALICE, cards["alice_marine"])

    before = get_utc_now()
    outcome = await selection_service.select_card(battle_id, BOB, cards["bob_ranger"])

    assert outcome.both_submitted
    assert outcome.battle_status == BattleStatus.CARDS_REVEALED

    battle = await battle_service.get_battle(battle_id)
    assert battle.reveal_deadline is not None
    countdown = datetime.timedelta(seconds=settings.reveal_countdown_seconds)
    assert ensure_utc(battle.reveal_deadline) >= before + countdown


async def test_selection_is_broadcast_without_the_card(
    battle_service: BattleService,
    selection_service: SelectionService,
    notifier: RealtimeNotifier,
    cards: dict[str, int],
) -> None:
    battle_id = await start_battle(battle_service)
    received: list[BattleEventEnvelope] = []

    async def handler(envelope: BattleEventEnvelope) -> None:
        received.append(envelope)

    async with notifier.subscribe(battle_channel(battle_id), RealtimeEvent.CARD_SELECTED, handler):
        await selection_service.select_card(battle_id, ALICE, cards["alice_marine"])

    assert len(received) == 1
    assert received[0].player_id == ALICE
    assert received[0].card_id is None


async def test_second_selection_by_same_player_is_rejected(
    battle_service: BattleService, selection_service: SelectionService, cards: dict[str, int]
) -> None:
    battle_id = await start_battle(battle_service)
    await selection_service.select_card(battle_id, ALICE, cards["alice_marine"])

    with pytest.raises(CardAlreadySelectedError) as exc_info:
        await selection_service.select_card(battle_id, ALICE, cards["alice_sorcerer"])

    assert exc_info.value.kind == ErrorKind.CONFLICT
    assert exc_info.value.retryable
    selections = await battle_service.store.get_selections(battle_id)
    assert [s.card_id for s in selections] == [cards["alice_marine"]]


async def test_duplicate_is_reported_even_after_reveal(
    battle_service: BattleService, selection_service: SelectionService, cards: dict[str, int]
) -> None:
    battle_id = await start_battle(battle_service)
    await selection_service.select_card(battle_id, ALICE, cards["alice_marine"])
    await selection_service.select_card(battle_id, BOB, cards["bob_ranger"])

    with pytest.raises(CardAlreadySelectedError):
        await selection_service.select_card(battle_id, BOB, cards["bob_marine"])


async def test_unique_constraint_guards_concurrent_inserts(
    battle_service: BattleService, store: BattleStore, cards: dict[str, int]
) -> None:
    battle_id = await start_battle(battle_service)
    await store.create_selection(battle_id, ALICE, cards["alice_marine"])
    await store.db.commit()

    with pytest.raises(CardAlreadySelectedError):
        await store.create_selection(battle_id, ALICE, cards["alice_sorcerer"])

    assert len(await store.get_selections(battle_id)) == 1


async def test_selection_requires_active_battle(
    battle_service: BattleService, selection_service: SelectionService, cards: dict[str, int]
) -> None:
    battle = await battle_service.create_challenge(ALICE, BOB)

    with pytest.raises(InvalidBattleStatusError):
        await selection_service.select_card(battle.id, ALICE, cards["alice_marine"])


async def test_selection_requires_existing_battle(
    selection_service: SelectionService, cards: dict[str, int]
) -> None:
    with pytest.raises(BattleNotFoundError):
        await selection_service.select_card(999, ALICE, cards["alice_marine"])


async def test_outsider_cannot_select(
    battle_service: BattleService, selection_service: SelectionService, cards: dict[str, int]
) -> None:
    battle_id = await start_battle(battle_service)

    with pytest.raises(PlayerNotInBattleError):
        await selection_service.select_card(battle_id, CAROL, cards["carol_ranger"])


async def test_card_must_be_owned(
    battle_service: BattleService, selection_service: SelectionService, cards: dict[str, int]
) -> None:
    battle_id = await start_battle(battle_service)

    with pytest.raises(CardNotOwnedError):
        await selection_service.select_card(battle_id, ALICE, cards["bob_ranger"])

    with pytest.raises(CardNotOwnedError):
        await selection_service.select_card(battle_id, ALICE, 424242)


async def test_weapons_cannot_battle(
    battle_service: BattleService, selection_service: SelectionService, cards: dict[str, int]
) -> None:
    battle_id = await start_battle(battle_service)

    with pytest.raises(InvalidCardTypeError):
        await selection_service.select_card(battle_id, ALICE, cards["alice_blaster"])


async def test_card_cannot_be_staked_twice(
    battle_service: BattleService, selection_service: SelectionService, cards: dict[str, int]
) -> None:
    first = await start_battle(battle_service, ALICE, BOB)
    second = await start_battle(battle_service, ALICE, CAROL)
    await selection_service.select_card(first, ALICE, cards["alice_marine"])

    with pytest.raises(CardAlreadyStakedError):
        await selection_service.select_card(second, ALICE, cards["alice_marine"])

    outcome = await selection_service.select_card(second, ALICE, cards["alice_sorcerer"])
    assert outcome.card_id == cards["alice_sorcerer"]


async def test_selection_is_logged(
    db, battle_service: BattleService, selection_service: SelectionService, cards: dict[str, int]
) -> None:
    battle_id = await start_battle(battle_service)
    await selection_service.select_card(battle_id, ALICE, cards["alice_marine"])

    logs, _ = await EventLogService(db).get_player_event_logs(
        ALICE, page=1, page_size=10, event_type=EventType.CARD_SELECTED
    )

    assert len(logs) == 1
    assert logs[0].context == {"battle_id": battle_id, "card_id": cards["alice_marine"]}


def _fail_reveal(store: BattleStore, monkeypatch: pytest.MonkeyPatch) -> None:
    """Make the active -> cards_revealed update hit a dropped connection."""
    update_battle_status = store.update_battle_status

    async def update(
        battle_id: int, expected: BattleStatus, new: BattleStatus, **fields: Any
    ) -> bool:
        if new == BattleStatus.CARDS_REVEALED:
            raise OperationalError("UPDATE battle_instances", {}, Exception("connection reset"))
        return await update_battle_status(battle_id, expected, new, **fields)

    monkeypatch.setattr(store, "update_battle_status", update)


async def test_repeated_submission_finishes_a_failed_reveal(
    monkeypatch: pytest.MonkeyPatch,
    store: BattleStore,
    battle_service: BattleService,
    selection_service: SelectionService,
    cards: dict[str, int],
) -> None:
    battle_id = await start_battle(battle_service)
    await selection_service.select_card(battle_id, ALICE, cards["alice_marine"])

    _fail_reveal(store, monkeypatch)
    with pytest.raises(StoreUnavailableError) as exc_info:
        await selection_service.select_card(battle_id, BOB, cards["bob_ranger"])
    monkeypatch.undo()

    assert exc_info.value.retryable
    assert (await store.get_battle(battle_id)).status == BattleStatus.ACTIVE
    assert len(await store.get_selections(battle_id)) == 2

    with pytest.raises(CardAlreadySelectedError):
        await selection_service.select_card(battle_id, BOB, cards["bob_ranger"])

    battle = await store.get_battle(battle_id)
    assert battle.status == BattleStatus.CARDS_REVEALED
    assert battle.reveal_deadline is not None


async def test_only_the_revealing_submission_reports_both_submitted(
    monkeypatch: pytest.MonkeyPatch,
    battle_service: BattleService,
    selection_service: SelectionService,
    cards: dict[str, int],
) -> None:
    battle_id = await start_battle(battle_service)
    await selection_service.select_card(battle_id, ALICE, cards["alice_marine"])

    mark_cards_revealed = battle_service.mark_cards_revealed

    async def revealed_by_other_request(
        battle_id: int, now: datetime.datetime | None = None
    ) -> bool:
        await mark_cards_revealed(battle_id)
        return await mark_cards_revealed(battle_id, now)

    monkeypatch.setattr(battle_service, "mark_cards_revealed", revealed_by_other_request)
    outcome = await selection_service.select_card(battle_id, BOB, cards["bob_ranger"])

    assert outcome.battle_status == BattleStatus.CARDS_REVEALED
    assert not outcome.both_submitted
