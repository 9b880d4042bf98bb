import asyncio
import datetime

from sqlmodel.ext.asyncio.session import AsyncSession

from arena.core.config import settings
from arena.core.db import get_session
from arena.core.enums import BattleStatus
from arena.services.battle import BattleService
from arena.services.battle_store import BattleStore
from arena.services.realtime import RealtimeNotifier
from arena.services.scheduler import BattleScheduler
from arena.services.selection import SelectionService
from arena.utils.misc import ensure_utc, get_utc_now
from tests.helpers import reveal_battle


async def test_run_once_resolves_due_battles(
    store: BattleStore,
    notifier: RealtimeNotifier,
    battle_service: BattleService,
    selection_service: SelectionService,
    cards: dict[str, int],
) -> None:
    battle_id = await reveal_battle(
        battle_service, selection_service, cards["alice_marine"], cards["bob_ranger"]
    )
    deadline = ensure_utc((await store.get_battle(battle_id)).reveal_deadline)
    scheduler = BattleScheduler(get_session, notifier, interval=60)

    report = await scheduler.run_once(deadline + datetime.timedelta(seconds=1))

    assert report.resolved_battles == 1
    assert (await store.get_battle(battle_id)).status == BattleStatus.COMPLETED


async def test_run_once_expires_stale_challenges(
    store: BattleStore, notifier: RealtimeNotifier, battle_service: BattleService, players: None
) -> None:
    battle = await battle_service.create_challenge(1001, 1002)
    battle_id = battle.id
    scheduler = BattleScheduler(get_session, notifier, interval=60)
    later = get_utc_now() + datetime.timedelta(seconds=settings.challenge_timeout_seconds + 1)

    report = await scheduler.run_once(later)

    assert report.expired_challenges == 1
    assert (await store.get_battle(battle_id)).status == BattleStatus.DECLINED


async def test_start_and_stop(db: AsyncSession, notifier: RealtimeNotifier) -> None:
    scheduler = BattleScheduler(get_session, notifier, interval=0.01)

    scheduler.start()
    scheduler.start()
    assert scheduler.running
    await asyncio.sleep(0.05)

    await scheduler.stop()
    assert not scheduler.running
