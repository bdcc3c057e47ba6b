"""
Restartable timer for debounced field validation.

Each ``restart`` cancels the pending delay and starts a new one, so only
the last call within the delay window fires. Calls are never queued.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional


class RestartableTimer:
    """
    Cancel-and-restart delay primitive.

    Usage:
        timer = RestartableTimer(0.3)
        timer.restart(lambda: validate("email"))   # every keystroke
        timer.cancel()                              # on reset / close

    Outside a running event loop there is nothing to wait on, so the
    callback runs immediately.
    """

    def __init__(self, delay: float):
        """
        Initialise timer.

        Args:
            delay: Seconds to wait after the last restart before firing
        """
        self._delay = delay
        self._task: Optional[asyncio.Task] = None
        self.fired = 0

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def restart(self, callback: Callable[[], None]) -> None:
        """Cancel any pending delay and schedule callback after a fresh one."""
        self.cancel()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._fire(callback)
            return

        self._task = loop.create_task(self._wait_then_fire(callback))

    def cancel(self) -> bool:
        """
        Cancel the pending delay.

        Returns:
            True if a pending callback was cancelled
        """
        task, self._task = self._task, None
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def _wait_then_fire(self, callback: Callable[[], None]) -> None:
        await asyncio.sleep(self._delay)
        self._task = None
        self._fire(callback)

    def _fire(self, callback: Callable[[], None]) -> None:
        self.fired += 1
        callback()
