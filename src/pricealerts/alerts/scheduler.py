"""Periodic driver for the trigger engine.

Runs evaluate_all() on a fixed interval in a background task. Cycles run
back to back in one task, so the driver never overlaps itself; a slow
cycle delays the next one instead of being skipped. Alert-store failures
are logged at ERROR for operator visibility and the loop keeps going.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from pricealerts.logging import get_logger

if TYPE_CHECKING:
    from pricealerts.alerts.engine import TriggerEngine
    from pricealerts.alerts.models import EvaluationSummary

logger = get_logger(__name__)


class AlertScheduler:
    """Background loop invoking the trigger engine every ``interval`` seconds."""

    def __init__(self, engine: TriggerEngine, interval: float = 60.0) -> None:
        self._engine = engine
        self._interval = interval
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._cycles = 0
        self._failures = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def failures(self) -> int:
        return self._failures

    async def start(self) -> None:
        """Begin periodic evaluation in the background."""
        if self._running:
            logger.warning("alert_scheduler_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("alert_scheduler_started", interval=self._interval)

    async def stop(self) -> None:
        """Stop the loop, cancelling any sleep in progress."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("alert_scheduler_stopped", cycles=self._cycles)

    async def run_once(self) -> EvaluationSummary | None:
        """Run a single cycle, logging instead of raising on failure."""
        try:
            summary = await self._engine.evaluate_all()
        except asyncio.CancelledError:
            raise
        except Exception:
            self._failures += 1
            logger.error("evaluation_cycle_failed", exc_info=True)
            return None
        self._cycles += 1
        return summary

    async def _run_loop(self) -> None:
        while self._running:
            await self.run_once()
            if self._running:
                await asyncio.sleep(self._interval)
