"""Fire-and-forget execution of delivery coroutines.

Inside a running event loop the coroutine becomes a task on that loop.
Elsewhere (plain threads, synchronous callers) it runs on a single worker
thread with its own short-lived loop. Either way the caller never waits and
never sees the coroutine's exceptions; they are logged here.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Coroutine
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

import structlog

_log = structlog.get_logger(component="background")


class BackgroundRunner:
    def __init__(self, name: str = "errwatch-delivery") -> None:
        self._name = name
        self._executor: ThreadPoolExecutor | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._futures: set[Future[Any]] = set()
        self._lock = threading.Lock()
        self._closed = False

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str = "") -> None:
        if self._closed:
            coro.close()
            _log.debug("background_spawn_after_close", label=label)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(self._guard(coro, label))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return

        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=self._name)
            future = self._executor.submit(asyncio.run, self._guard(coro, label))
            self._futures.add(future)
        future.add_done_callback(self._futures.discard)

    @staticmethod
    async def _guard(coro: Coroutine[Any, Any, Any], label: str) -> None:
        try:
            await coro
        except Exception as exc:  # noqa: BLE001
            _log.error("background_task_failed", label=label, error=str(exc))

    @property
    def pending(self) -> int:
        return len(self._tasks) + len(self._futures)

    async def drain(self) -> None:
        """Wait for tasks scheduled on the current loop."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def wait_threads(self, timeout: float | None = None) -> None:
        """Block until work handed to the worker thread has finished."""
        for future in list(self._futures):
            try:
                future.result(timeout=timeout)
            except Exception as exc:  # noqa: BLE001
                _log.debug("background_wait_failed", error=str(exc))

    def close(self) -> None:
        self._closed = True
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
