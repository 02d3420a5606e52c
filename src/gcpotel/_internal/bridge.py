"""Synchronous SDK boundary around an async ExportCoordinator.

``SyncExportBridge`` is what the public exporters delegate to: it runs
coordinator exports on the exporter's ``EventLoopThread``, delivers
callback-style results exactly once and owns shutdown.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import logging
import threading
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from gcpotel._internal.coordinator import ExportCoordinator
from gcpotel._internal.logging import log_internal_error
from gcpotel._internal.runner import EventLoopThread
from gcpotel.api.types import ExportResult
from gcpotel.exceptions import ExportError

logger = logging.getLogger(__name__)

BatchT = TypeVar("BatchT")

# Extra time the caller waits beyond the coordinator's own deadline
JOIN_GRACE_SECONDS = 1.0


class _OnceCallback:
    """Invoke ``callback`` at most once; exceptions are logged."""

    def __init__(self, callback: Callable[[ExportResult], Any]) -> None:
        self._callback = callback
        self._lock = threading.Lock()
        self._called = False

    def __call__(self, result: ExportResult) -> None:
        with self._lock:
            if self._called:
                return
            self._called = True
        try:
            self._callback(result)
        except Exception:
            logger.exception("Export result callback raised")


class SyncExportBridge(Generic[BatchT]):
    """Run one coordinator's exports from synchronous SDK threads."""

    def __init__(self, coordinator: ExportCoordinator[BatchT, Any], thread_name: str) -> None:
        self._coordinator = coordinator
        self._runner = EventLoopThread(thread_name)
        self._lock = threading.Lock()
        self._shutdown = False

    @property
    def coordinator(self) -> ExportCoordinator[BatchT, Any]:
        return self._coordinator

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def export(self, batch: BatchT, timeout: float | None) -> ExportResult:
        """Run one export and block for its result. Never raises."""
        if self._shutdown:
            logger.warning("%s exporter already shut down, ignoring export", self._coordinator.signal)
            return ExportResult.failure(ExportError("exporter is shut down"))

        join_timeout = None if timeout is None else timeout + JOIN_GRACE_SECONDS
        coro = self._coordinator.export(batch, timeout)
        try:
            return self._runner.run(coro, join_timeout)
        except Exception as exc:
            if inspect.getcoroutinestate(coro) == inspect.CORO_CREATED:
                coro.close()
            log_internal_error(f"{self._coordinator.signal} export", exc)
            return ExportResult.failure(exc)

    def export_with_callback(
        self,
        batch: BatchT,
        callback: Callable[[ExportResult], Any],
        timeout: float | None,
    ) -> None:
        """Start one export and hand its result to ``callback`` exactly once.

        The callback runs on a worker thread of the exporter's loop (or a
        short-lived helper thread when the exporter is already shut down),
        never inside this call and never on the loop thread itself.
        """
        deliver = _OnceCallback(callback)

        if self._shutdown:
            self._deliver_later(deliver, ExportResult.failure(ExportError("exporter is shut down")))
            return

        async def _export_and_deliver() -> None:
            result = await self._coordinator.export(batch, timeout)
            # Off the loop thread, so the callback may call back into the exporter
            await asyncio.get_running_loop().run_in_executor(None, deliver, result)

        coro = _export_and_deliver()
        try:
            future = self._runner.submit(coro)
        except RuntimeError as exc:
            coro.close()
            self._deliver_later(deliver, ExportResult.failure(exc))
            return

        def _on_done(done: concurrent.futures.Future[None]) -> None:
            # Only delivers when the task was cancelled before handing over
            # its result
            if done.cancelled():
                deliver(ExportResult.failure(ExportError("export cancelled")))
            elif done.exception() is not None:
                deliver(ExportResult.failure(done.exception()))

        future.add_done_callback(_on_done)

    def shutdown(self, timeout: float | None) -> None:
        """Close the backend client and stop the loop. Idempotent, never raises."""
        with self._lock:
            if self._shutdown:
                logger.debug("%s exporter shutdown called twice", self._coordinator.signal)
                return
            self._shutdown = True

        try:
            if self._runner.is_running:
                self._runner.run(self._coordinator.aclose(), timeout)
        except Exception as exc:
            log_internal_error(f"{self._coordinator.signal} exporter shutdown", exc)

        try:
            self._runner.stop(timeout)
        except Exception as exc:
            log_internal_error(f"{self._coordinator.signal} exporter shutdown", exc)

    @staticmethod
    def _deliver_later(deliver: _OnceCallback, result: ExportResult) -> None:
        threading.Thread(target=deliver, args=(result,), daemon=True).start()
