"""
Tests for the restartable debounce timer.
"""

from __future__ import annotations

import asyncio

import pytest

from core.workflow.timers import RestartableTimer


class TestRestartableTimer:

    @pytest.mark.asyncio
    async def test_only_last_restart_fires(self):
        calls = []
        timer = RestartableTimer(0.01)

        for value in ("J", "Jo", "Jordan"):
            timer.restart(lambda value=value: calls.append(value))
        await asyncio.sleep(0.05)

        assert calls == ["Jordan"]
        assert timer.fired == 1
        assert not timer.pending

    @pytest.mark.asyncio
    async def test_cancel_prevents_callback(self):
        calls = []
        timer = RestartableTimer(0.01)

        timer.restart(lambda: calls.append(1))
        assert timer.pending
        assert timer.cancel() is True
        await asyncio.sleep(0.03)

        assert calls == []
        assert timer.cancel() is False

    def test_fires_immediately_without_event_loop(self):
        calls = []
        timer = RestartableTimer(5)

        timer.restart(lambda: calls.append(1))

        assert calls == [1]
        assert not timer.pending
