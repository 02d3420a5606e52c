"""Unit tests for the background event loop thread."""

from __future__ import annotations

import asyncio
import threading

import pytest

from gcpotel._internal.runner import EventLoopThread


@pytest.mark.unit
class TestEventLoopThread:
    """Tests for running coroutines from synchronous code."""

    def test_runs_coroutine_on_its_own_thread(self) -> None:
        """
        GIVEN an EventLoopThread
        WHEN a coroutine is run
        THEN its result is returned and it ran on the loop thread
        """
        runner = EventLoopThread("test-loop")

        async def where() -> str:
            return threading.current_thread().name

        try:
            assert runner.run(where(), timeout=5) == "test-loop"
            assert runner.is_running
        finally:
            runner.stop()

    def test_calls_share_one_loop(self) -> None:
        """
        GIVEN an EventLoopThread
        WHEN two coroutines are run one after the other
        THEN both ran on the same event loop
        """
        runner = EventLoopThread()

        async def loop_id() -> int:
            return id(asyncio.get_running_loop())

        try:
            assert runner.run(loop_id(), timeout=5) == runner.run(loop_id(), timeout=5)
        finally:
            runner.stop()

    def test_timeout_raises(self) -> None:
        """
        GIVEN a coroutine slower than the timeout
        WHEN it is run
        THEN TimeoutError is raised
        """
        runner = EventLoopThread()

        try:
            with pytest.raises(TimeoutError):
                runner.run(asyncio.sleep(5), timeout=0.05)
        finally:
            runner.stop()

    def test_stop_is_idempotent_and_final(self) -> None:
        """
        GIVEN a stopped EventLoopThread
        WHEN it is stopped again or asked to run something
        THEN stop does nothing and run raises RuntimeError
        """
        runner = EventLoopThread()
        runner.run(asyncio.sleep(0), timeout=5)

        runner.stop()
        runner.stop()

        assert not runner.is_running
        coro = asyncio.sleep(0)
        with pytest.raises(RuntimeError):
            runner.run(coro)
        coro.close()

    def test_stop_without_start(self) -> None:
        """
        GIVEN an EventLoopThread that never ran anything
        WHEN it is stopped
        THEN nothing happens
        """
        EventLoopThread().stop()
