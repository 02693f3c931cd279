"""Unit tests for the approval sweep scheduler."""

from __future__ import annotations

import pytest

from flowchord.core.scheduler import SWEEP_JOB_ID, ApprovalSweepScheduler


class TestApprovalSweepScheduler:
    """Tests for ApprovalSweepScheduler."""

    def test_interval_must_be_positive(self) -> None:
        """A zero interval is rejected."""

        async def sweep() -> list[str]:
            return []

        with pytest.raises(ValueError):
            ApprovalSweepScheduler(sweep, interval_seconds=0)

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self) -> None:
        """start registers one interval job; both calls are idempotent."""

        async def sweep() -> list[str]:
            return []

        scheduler = ApprovalSweepScheduler(sweep, interval_seconds=30)

        await scheduler.start()
        await scheduler.start()
        assert scheduler.is_running
        jobs = scheduler._scheduler.get_jobs()
        assert [job.id for job in jobs] == [SWEEP_JOB_ID]

        await scheduler.shutdown()
        await scheduler.shutdown()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_run_sweep_calls_callable(self) -> None:
        """The job body awaits the sweep callable."""
        calls: list[int] = []

        async def sweep() -> list[str]:
            calls.append(1)
            return ["approval-1"]

        scheduler = ApprovalSweepScheduler(sweep, interval_seconds=30)

        await scheduler._run_sweep()

        assert calls == [1]
