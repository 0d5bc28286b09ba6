"""Typed channels between background tasks and the single observer.

Producers (any number, on any thread or task) hold a :class:`BusSender`.
The observer holds the :class:`MessageBus` itself and only ever performs
non-blocking drains.
"""

from __future__ import annotations

import asyncio
import queue
from collections.abc import Sequence

import structlog

from bitforge.bus.messages import (
    AppMessage,
    BitcoinVersionsLoaded,
    ConfirmRequest,
    DialogMessage,
    ElectrsVersionsLoaded,
    LogMessage,
    ProgressMessage,
    ReplyDropped,
    TaskDone,
)
from bitforge.core.constants import Target

logger = structlog.get_logger(__name__)


class MessageBus:
    """Two multi-producer / single-consumer channels.

    * ``AppMessage`` channel: drained in full by :meth:`drain`.
    * ``ConfirmRequest`` channel: polled one request at a time by
      :meth:`poll_confirm`, only when the observer has no modal showing.
    """

    def __init__(self) -> None:
        self._messages: queue.SimpleQueue[AppMessage] = queue.SimpleQueue()
        self._confirms: queue.SimpleQueue[ConfirmRequest] = queue.SimpleQueue()
        self._closed = False

    def __repr__(self) -> str:
        return f"MessageBus(closed={self._closed}, queued={self._messages.qsize()})"

    @property
    def closed(self) -> bool:
        return self._closed

    def sender(self) -> BusSender:
        """Return a producer handle; create as many as needed."""
        return BusSender(self)

    # ------------------------------------------------------------------ #
    # Producer side (used through BusSender)
    # ------------------------------------------------------------------ #

    def _put(self, message: AppMessage) -> None:
        if self._closed:
            return
        self._messages.put(message)

    def _put_confirm(self, request: ConfirmRequest) -> None:
        if self._closed:
            request.discard()
            return
        self._confirms.put(request)

    # ------------------------------------------------------------------ #
    # Consumer side
    # ------------------------------------------------------------------ #

    def drain(self) -> list[AppMessage]:
        """Return every message queued right now, oldest first.  Never blocks."""
        drained: list[AppMessage] = []
        while True:
            try:
                drained.append(self._messages.get_nowait())
            except queue.Empty:
                return drained

    def poll_confirm(self) -> ConfirmRequest | None:
        """Return the next pending confirmation request, if any.  Never blocks."""
        try:
            return self._confirms.get_nowait()
        except queue.Empty:
            return None

    def close(self) -> None:
        """Stop accepting messages and answer every queued request with "No"."""
        self._closed = True
        discarded = 0
        while (request := self.poll_confirm()) is not None:
            request.discard()
            discarded += 1
        logger.debug("bus_closed", discarded_confirms=discarded)


class BusSender:
    """Producer handle for a :class:`MessageBus`.

    Sending after the bus is closed is a silent no-op; the observer may be
    shutting down while background tasks still report.
    """

    __slots__ = ("_bus",)

    def __init__(self, bus: MessageBus) -> None:
        self._bus = bus

    def send(self, message: AppMessage) -> None:
        self._bus._put(message)

    def log(self, text: str) -> None:
        self.send(LogMessage(text=text))

    def progress(self, value: float) -> None:
        self.send(ProgressMessage(value=value))

    def dialog(self, title: str, message: str, *, is_error: bool = False) -> None:
        self.send(DialogMessage(title=title, message=message, is_error=is_error))

    def versions_loaded(self, target: Target, versions: Sequence[str]) -> None:
        if target is Target.BITCOIN:
            self.send(BitcoinVersionsLoaded(versions=tuple(versions)))
        else:
            self.send(ElectrsVersionsLoaded(versions=tuple(versions)))

    def task_done(self) -> None:
        self.send(TaskDone())

    async def confirm(self, title: str, message: str) -> bool:
        """Ask the observer a yes/no question and suspend until it answers.

        Returns ``False`` when the request is discarded unanswered (observer
        torn down, bus closed).
        """
        request, reply = ConfirmRequest.open(title, message)
        self._bus._put_confirm(request)
        # Only the queue (and later the observer) may keep the request alive.
        del request
        try:
            return await asyncio.wrap_future(reply)
        except ReplyDropped:
            logger.info("confirm_dropped", title=title)
            return False
