import os
import tempfile

# Settings are read at import time, so the test database must be configured first
_TEST_DIR = tempfile.mkdtemp(prefix="arena-tests-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/arena.db"
os.environ["ENV"] = "dev"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["SCHEDULER_ENABLED"] = "false"

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402
from sqlmodel.ext.asyncio.session import AsyncSession  # noqa: E402

from arena.core.db import engine, get_session  # noqa: E402
from arena.core.enums import CardType  # noqa: E402
from arena.models import battle, card, event_log, player  # noqa: E402, F401
from arena.models.player import Player  # noqa: E402
from arena.services.battle import BattleService, get_configured_policy  # noqa: E402
from arena.services.battle_store import BattleStore  # noqa: E402
from arena.services.event_log import EventLogService  # noqa: E402
from arena.services.player import PlayerService  # noqa: E402
from arena.services.realtime import RealtimeNotifier  # noqa: E402
from arena.services.selection import SelectionService  # noqa: E402
from tests.helpers import ALICE, BOB, CAROL, make_card  # noqa: E402


@pytest.fixture
async def database() -> AsyncGenerator[None]:
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
async def db(database: None) -> AsyncGenerator[AsyncSession]:
    async with get_session() as session:
        yield session


@pytest.fixture
def notifier() -> RealtimeNotifier:
    return RealtimeNotifier()


@pytest.fixture
def store(db: AsyncSession) -> BattleStore:
    return BattleStore(db)


@pytest.fixture
def battle_service(
    db: AsyncSession, store: BattleStore, notifier: RealtimeNotifier
) -> BattleService:
    return BattleService(
        db=db,
        store=store,
        notifier=notifier,
        event_log_service=EventLogService(db),
        player_service=PlayerService(db),
        policy=get_configured_policy(),
    )


@pytest.fixture
def selection_service(
    db: AsyncSession, notifier: RealtimeNotifier, battle_service: BattleService
) -> SelectionService:
    return SelectionService(
        db=db,
        store=battle_service.store,
        notifier=notifier,
        event_log_service=EventLogService(db),
        battle_service=battle_service,
    )


@pytest.fixture
async def players(db: AsyncSession) -> None:
    db.add_all(
        [
            Player(id=ALICE, name="Alice"),
            Player(id=BOB, name="Bob"),
            Player(id=CAROL, name="Carol"),
        ]
    )
    await db.commit()


@pytest.fixture
async def cards(db: AsyncSession, players: None) -> dict[str, int]:
    """Card ids by nickname. Ids, not objects, since rollbacks expire loaded rows."""
    created = {
        "alice_marine": make_card(ALICE, "Space Marine", 9, 4, 2),
        "alice_sorcerer": make_card(ALICE, "Void Sorcerer", 2, 3, 8),
        "alice_blaster": make_card(ALICE, "Plasma Blaster", 7, 7, 7, card_type=CardType.WEAPON),
        "bob_ranger": make_card(BOB, "Galactic Ranger", 3, 8, 3),
        "bob_marine": make_card(BOB, "Space Marine", 8, 5, 2),
        "carol_ranger": make_card(CAROL, "Galactic Ranger", 4, 9, 1),
    }
    db.add_all(created.values())
    await db.commit()
    return {nickname: card.id for nickname, card in created.items()}
