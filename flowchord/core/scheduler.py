"""Periodic approval sweep.

Features:
- AsyncIOScheduler interval job
- Rejects user-approval requests past their deadline and resumes their runs
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "approval-sweep"


class ApprovalSweepScheduler:
    """Runs an approval sweep callable on a fixed interval.

    Example:
        >>> scheduler = ApprovalSweepScheduler(service.sweep_approvals, interval_seconds=60)
        >>> await scheduler.start()
    """

    def __init__(
        self,
        sweep: Callable[[], Awaitable[list[str]]],
        interval_seconds: int = 60,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._sweep = sweep
        self._interval = interval_seconds
        self._scheduler = AsyncIOScheduler()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running and self._scheduler.running

    async def start(self) -> None:
        if self._running:
            return
        self._scheduler.add_job(
            self._run_sweep,
            trigger=IntervalTrigger(seconds=self._interval),
            id=SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        self._running = True
        logger.info("Approval sweep scheduled every %ds", self._interval)

    async def shutdown(self) -> None:
        if not self._running:
            return
        self._scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Approval sweep stopped")

    async def _run_sweep(self) -> None:
        swept = await self._sweep()
        if swept:
            logger.info("Approval sweep resolved %s", ", ".join(swept))
