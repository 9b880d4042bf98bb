import asyncio
import contextlib
import datetime
from collections.abc import Callable

from loguru import logger
from sqlmodel.ext.asyncio.session import AsyncSession

from arena.schemas.battle import SweepReport
from arena.services.battle import BattleService
from arena.services.realtime import RealtimeNotifier


class BattleScheduler:
    """Background task that owns the server-side battle timers."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        notifier: RealtimeNotifier,
        *,
        interval: float,
    ) -> None:
        self.session_factory = session_factory
        self.notifier = notifier
        self.interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, now: datetime.datetime | None = None) -> SweepReport:
        async with self.session_factory() as db:
            service = BattleService.from_session(db, self.notifier)
            report = await service.sweep(now)

        if report.expired_challenges or report.resolved_battles or report.failed_battles:
            logger.info(
                f"Scheduler sweep: {report.expired_challenges} expired, "
                f"{report.resolved_battles} resolved, {report.failed_battles} failed"
            )
        return report

    async def _run(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("Scheduler sweep failed")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="battle-scheduler")
        logger.info(f"Battle scheduler started (every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Battle scheduler stopped")
