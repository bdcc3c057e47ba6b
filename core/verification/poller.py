"""
Verification Status Poller - Drives Out-of-Band Checks to a Terminal State

Per method:

    NOT_SUBMITTED -> PROCESSING -> {VERIFIED, MANUAL_REVIEW, REJECTED}

While PROCESSING, one supervised asyncio task per method sleeps for the
poll interval and asks the verification service for the status. On a
terminal status the task stops and the terminal callback runs exactly once.
On a failed status check the task stops, the failure is surfaced as a
PollingError and the last known status is kept.

Starting a poll for a method cancels any previous poll for it. A generation
counter per method makes sure a replaced or stopped loop can never apply a
transition, even if it was mid-request when it was replaced.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Final, Optional, Union

from core.errors import PollingError
from core.verification.schema import StatusResponse, VerificationMethod, VerificationStatus

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL: Final[float] = 3.0  # seconds

TerminalCallback = Callable[
    [VerificationMethod, VerificationStatus, StatusResponse],
    Union[None, Awaitable[None]],
]
ErrorCallback = Callable[[VerificationMethod, PollingError], Union[None, Awaitable[None]]]


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class VerificationStatusPoller:
    """
    Polls the verification service for each method with a pending check.

    Usage:
        poller = VerificationStatusPoller(service, interval=3.0, on_terminal=handle)
        poller.start(VerificationMethod.SCREENSHOT, casl_key_id)
        ...
        poller.stop_all()
    """

    def __init__(
        self,
        service: Any,
        interval: float = DEFAULT_POLL_INTERVAL,
        on_terminal: Optional[TerminalCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        """
        Initialise poller.

        Args:
            service: VerificationService providing ``get_status``
            interval: Seconds between status checks
            on_terminal: Called once when a method reaches a terminal status
            on_error: Called when a status check fails
        """
        self._service = service
        self._interval = interval
        self._on_terminal = on_terminal
        self._on_error = on_error

        self._tasks: dict[VerificationMethod, asyncio.Task] = {}
        self._generations: dict[VerificationMethod, int] = {}
        self._statuses: dict[VerificationMethod, VerificationStatus] = {}
        self._errors: dict[VerificationMethod, PollingError] = {}
        self._checks: dict[VerificationMethod, int] = {}

    @property
    def interval(self) -> float:
        return self._interval

    # =========================================================================
    # Control
    # =========================================================================

    def start(self, method: VerificationMethod, casl_key_id: str) -> asyncio.Task:
        """
        Start polling a method, replacing any poll already running for it.

        Must be called from a running event loop.

        Returns:
            The new poll task
        """
        self.stop(method)

        generation = self._generations.get(method, 0) + 1
        self._generations[method] = generation
        self._statuses[method] = VerificationStatus.PROCESSING
        self._errors.pop(method, None)
        self._checks[method] = 0

        task = asyncio.get_running_loop().create_task(
            self._run(method, casl_key_id, generation),
            name=f"verification-poll-{method.value}",
        )
        self._tasks[method] = task

        logger.info("Polling started for %s (%s)", method.value, casl_key_id)
        return task

    def stop(self, method: VerificationMethod) -> bool:
        """
        Stop polling a method. The last known status is kept.

        Returns:
            True if a poll was running
        """
        # Invalidate the running loop before cancelling it
        self._generations[method] = self._generations.get(method, 0) + 1

        task = self._tasks.pop(method, None)
        if task is None or task.done():
            return False

        task.cancel()
        logger.info("Polling stopped for %s", method.value)
        return True

    def stop_all(self) -> None:
        """Stop every active poll."""
        for method in list(self._tasks):
            self.stop(method)

    def reset(self) -> None:
        """Stop every poll and forget all statuses and errors."""
        self.stop_all()
        self._statuses.clear()
        self._errors.clear()
        self._checks.clear()

    async def wait(self, method: VerificationMethod) -> Optional[VerificationStatus]:
        """
        Wait for the current poll of a method to finish.

        Returns:
            The last known status for the method
        """
        task = self._tasks.get(method)
        if task is not None:
            await asyncio.wait({task})
        return self._statuses.get(method)

    async def aclose(self) -> None:
        """Stop all polls and wait for their tasks to unwind."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        self.stop_all()
        if tasks:
            await asyncio.wait(tasks)

    # =========================================================================
    # Queries
    # =========================================================================

    def status(self, method: VerificationMethod) -> VerificationStatus:
        """Last known status for a method."""
        return self._statuses.get(method, VerificationStatus.NOT_SUBMITTED)

    def is_active(self, method: VerificationMethod) -> bool:
        task = self._tasks.get(method)
        return task is not None and not task.done()

    def active_methods(self) -> list[VerificationMethod]:
        return [method for method in self._tasks if self.is_active(method)]

    def last_error(self, method: VerificationMethod) -> Optional[PollingError]:
        """Error that stopped the most recent poll for a method, if any."""
        return self._errors.get(method)

    def check_count(self, method: VerificationMethod) -> int:
        """Status checks made by the current (or last) poll of a method."""
        return self._checks.get(method, 0)

    # =========================================================================
    # Poll Loop
    # =========================================================================

    def _is_current(self, method: VerificationMethod, generation: int) -> bool:
        return self._generations.get(method) == generation

    def _release(self, method: VerificationMethod, generation: int) -> None:
        if self._is_current(method, generation):
            self._tasks.pop(method, None)

    async def _run(self, method: VerificationMethod, casl_key_id: str, generation: int) -> None:
        try:
            while True:
                await asyncio.sleep(self._interval)
                if not self._is_current(method, generation):
                    return

                self._checks[method] = self._checks.get(method, 0) + 1
                try:
                    response = await self._service.get_status(method, casl_key_id)
                except Exception as e:
                    if not self._is_current(method, generation):
                        return
                    await self._fail(method, generation, e)
                    return

                if not self._is_current(method, generation):
                    return

                self._statuses[method] = response.status
                if response.status.is_terminal:
                    self._release(method, generation)
                    logger.info(
                        "Verification %s finished as %s (%s)",
                        method.value,
                        response.status.value,
                        casl_key_id,
                    )
                    if self._on_terminal is not None:
                        await _maybe_await(self._on_terminal(method, response.status, response))
                    return
        finally:
            self._release(method, generation)

    async def _fail(self, method: VerificationMethod, generation: int, cause: Exception) -> None:
        last_status = self.status(method)
        error = PollingError(method.value, last_status.value, cause)
        self._errors[method] = error
        self._release(method, generation)

        logger.warning(
            "Status check for %s failed while %s: %s",
            method.value,
            last_status.value,
            type(cause).__name__,
        )
        if self._on_error is not None:
            await _maybe_await(self._on_error(method, error))
