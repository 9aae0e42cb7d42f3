"""Synthetic progress along the active route.

The simulation is time-driven and has no relation to real position: every
tick adds a fixed step to the progress fraction regardless of how long the
route actually takes.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from access_nav.core.models import ProgressState, ProgressStatus

log = logging.getLogger(__name__)


class CancellationToken:
    """Owned by whoever starts a run; once cancelled it stays cancelled."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ProgressSimulator:
    def __init__(
        self,
        tick_s: float = 1.0,
        step: float = 0.005,
        on_change: Optional[Callable[[ProgressState], None]] = None,
    ):
        if step <= 0:
            raise ValueError("step must be positive")
        self.tick_s = tick_s
        self.step = step
        self.on_change = on_change

        self._state = ProgressState()
        self._ticks = 0
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ProgressState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state.status == ProgressStatus.RUNNING

    def start(self, duration_s: Optional[float], distance_m: float, token: CancellationToken) -> None:
        """Reset to fraction 0 and begin ticking. Must be called from a running loop."""
        if duration_s is None or duration_s <= 0:
            raise ValueError(f"cannot simulate progress without a positive duration (got {duration_s})")

        self.cancel()
        self._token = token
        self._ticks = 0
        self._set(ProgressState.begin(duration_s, distance_m))
        self._task = asyncio.get_running_loop().create_task(self._run(token))

    def cancel(self) -> None:
        if self._token is not None:
            self._token.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def advance(self) -> ProgressState:
        """Apply one tick. No-op unless running."""
        if not self.running:
            return self._state

        self._ticks += 1
        # Multiply rather than accumulate so 200 ticks of 0.005 land exactly on 1
        fraction = min(1.0, self._ticks * self.step)
        self._set(self._state.at(fraction))

        if self._state.status == ProgressStatus.COMPLETED:
            log.info("Progress simulation completed after %d ticks", self._ticks)
        return self._state

    async def wait(self) -> None:
        """Wait for the current run to finish or be cancelled."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def _run(self, token: CancellationToken) -> None:
        while not token.cancelled:
            await asyncio.sleep(self.tick_s)
            # A cancel may have landed while we slept
            if token.cancelled:
                return
            if self.advance().status != ProgressStatus.RUNNING:
                return

    def _set(self, state: ProgressState) -> None:
        self._state = state
        if self.on_change is not None:
            self.on_change(state)
