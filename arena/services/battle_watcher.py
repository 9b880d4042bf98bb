"""Consumer side of the realtime notifier.

Events are treated only as a hint that something changed: the watcher re-reads the
store on every hint and on a fixed poll interval, and only reports snapshots that
differ from the last one it reported. Dropped or duplicated events therefore cost at
most one poll interval of latency.
"""

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

from loguru import logger

from arena.schemas.realtime import BattleEventEnvelope
from arena.services.realtime import RealtimeNotifier, battle_channel

T = TypeVar("T")


class BattleWatcher(Generic[T]):
    def __init__(  # noqa: PLR0913
        self,
        notifier: RealtimeNotifier,
        battle_id: int,
        *,
        fetch: Callable[[], Awaitable[T]],
        on_change: Callable[[T], Awaitable[None]],
        key: Callable[[T], Hashable],
        poll_interval: float,
    ) -> None:
        self.notifier = notifier
        self.battle_id = battle_id
        self.fetch = fetch
        self.on_change = on_change
        self.key = key
        self.poll_interval = poll_interval

        self._wakeup = asyncio.Event()
        self._stopped = False
        self._last_key: Hashable | None = None

    async def _on_event(self, envelope: BattleEventEnvelope) -> None:
        logger.debug(f"Watcher for battle {self.battle_id} woken by {envelope.event}")
        self._wakeup.set()

    def stop(self) -> None:
        self._stopped = True
        self._wakeup.set()

    async def refresh(self) -> bool:
        """Re-read the battle and report it if it changed. Returns whether it changed."""
        snapshot = await self.fetch()
        snapshot_key = self.key(snapshot)
        if snapshot_key == self._last_key:
            return False

        self._last_key = snapshot_key
        await self.on_change(snapshot)
        return True

    async def run(self) -> None:
        """Watch until ``stop()`` is called, typically from ``on_change``."""
        async with self.notifier.subscribe(battle_channel(self.battle_id), None, self._on_event):
            await self.refresh()
            while not self._stopped:
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
                except TimeoutError:
                    pass
                self._wakeup.clear()
                if self._stopped:
                    break
                await self.refresh()
