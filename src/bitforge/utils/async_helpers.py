from __future__ import annotations

import asyncio
import concurrent.futures
import threading
from typing import Any, Coroutine, TypeVar

import structlog

T = TypeVar("T")

logger = structlog.get_logger(__name__)


class BackgroundRuntime:
    """An asyncio event loop running on its own daemon thread.

    Every background operation (dependency checks, pipelines, stream
    draining) runs as a task on this loop, so the observer thread never
    awaits anything itself.  :meth:`spawn` is safe to call from any thread.

    Example::

        runtime = BackgroundRuntime().start()
        future = runtime.spawn(job.run())
        ...
        runtime.shutdown()
    """

    def __init__(self, name: str = "bitforge-runtime") -> None:
        self._name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()

    def __repr__(self) -> str:
        return f"BackgroundRuntime(name={self._name!r}, running={self.running})"

    def __enter__(self) -> BackgroundRuntime:
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> BackgroundRuntime:
        """Start the loop thread and return self once the loop is running."""
        if self.running:
            return self
        self._ready.clear()
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        self._ready.wait()
        logger.debug("runtime_started", name=self._name)
        return self

    def _run(self) -> None:
        assert self._loop is not None
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(self._ready.set)
        try:
            self._loop.run_forever()
        finally:
            self._loop.run_until_complete(self._loop.shutdown_asyncgens())
            self._loop.close()

    def spawn(self, coro: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        """Schedule *coro* on the runtime loop.

        Cancelling the returned future cancels the task, which in turn kills
        any child process the task still owns.

        Raises:
            RuntimeError: If the runtime has not been started.
        """
        if self._loop is None or not self.running:
            coro.close()
            raise RuntimeError("BackgroundRuntime is not running. Call start() first.")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def shutdown(self, timeout: float = 10.0) -> None:
        """Cancel all outstanding tasks, wait for them, and stop the loop."""
        if self._loop is None or not self.running:
            return
        loop = self._loop
        try:
            asyncio.run_coroutine_threadsafe(_cancel_all(), loop).result(timeout)
        except concurrent.futures.TimeoutError:
            logger.warning("runtime_shutdown_timeout", name=self._name, timeout=timeout)
        loop.call_soon_threadsafe(loop.stop)
        assert self._thread is not None
        self._thread.join(timeout)
        self._thread = None
        self._loop = None
        logger.debug("runtime_stopped", name=self._name)


async def _cancel_all() -> None:
    current = asyncio.current_task()
    tasks = [task for task in asyncio.all_tasks() if task is not current]
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
