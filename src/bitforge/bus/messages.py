"""Everything a background task can report to the observer.

:data:`AppMessage` is a closed, discriminated union of six variants.
:class:`ConfirmRequest` travels on its own channel and carries a single-use
reply slot that the observer answers exactly once.
"""

from __future__ import annotations

import concurrent.futures
import weakref
from typing import Annotated, Literal, Union

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)


class LogMessage(BaseModel):
    """Append text to the build log (usually one line ending in ``\\n``)."""

    model_config = {"frozen": True}

    kind: Literal["log"] = "log"
    text: str


class ProgressMessage(BaseModel):
    """Set the progress bar.  The observer clamps ``value`` into [0, 1]."""

    model_config = {"frozen": True}

    kind: Literal["progress"] = "progress"
    value: float


class BitcoinVersionsLoaded(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["bitcoin_versions"] = "bitcoin_versions"
    versions: tuple[str, ...]


class ElectrsVersionsLoaded(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["electrs_versions"] = "electrs_versions"
    versions: tuple[str, ...]


class DialogMessage(BaseModel):
    """Show an informational or error notification; no reply is expected."""

    model_config = {"frozen": True}

    kind: Literal["dialog"] = "dialog"
    title: str
    message: str
    is_error: bool = False


class TaskDone(BaseModel):
    """A background task finished; the observer becomes interactive again."""

    model_config = {"frozen": True}

    kind: Literal["task_done"] = "task_done"


AppMessage = Annotated[
    Union[
        LogMessage,
        ProgressMessage,
        BitcoinVersionsLoaded,
        ElectrsVersionsLoaded,
        DialogMessage,
        TaskDone,
    ],
    Field(discriminator="kind"),
]


class ReplyDropped(Exception):
    """The reply slot was discarded before anyone answered."""


def _drop_reply(reply: concurrent.futures.Future[bool]) -> None:
    if not reply.done():
        reply.set_exception(ReplyDropped())


class ConfirmRequest:
    """A yes/no question paired with a single-use reply slot.

    The issuing task keeps only the reply future; the request object itself
    is handed to the observer.  If the observer discards the request, or the
    last reference to it is garbage collected without an answer, the slot is
    closed and the waiting task reads that as "No".

    Use :meth:`open` to create the request together with its reply future.
    """

    __slots__ = ("title", "message", "_reply", "_finalizer", "__weakref__")

    def __init__(self, title: str, message: str) -> None:
        self.title = title
        self.message = message
        self._reply: concurrent.futures.Future[bool] = concurrent.futures.Future()
        self._finalizer = weakref.finalize(self, _drop_reply, self._reply)

    def __repr__(self) -> str:
        return f"ConfirmRequest(title={self.title!r}, answered={self.answered})"

    @classmethod
    def open(
        cls, title: str, message: str
    ) -> tuple[ConfirmRequest, concurrent.futures.Future[bool]]:
        request = cls(title, message)
        return request, request._reply

    @property
    def answered(self) -> bool:
        return self._reply.done()

    def reply(self, answer: bool) -> None:
        """Deliver the observer's answer.

        Raises:
            RuntimeError: If the request was already answered or discarded.
        """
        if self._reply.cancelled():
            # The asking task was abandoned; nobody is waiting any more.
            logger.debug("confirm_reply_ignored", title=self.title)
            self._finalizer.detach()
            return
        if self._reply.done():
            raise RuntimeError(f"ConfirmRequest {self.title!r} was already answered")
        self._reply.set_result(bool(answer))
        self._finalizer.detach()

    def discard(self) -> None:
        """Close the slot without answering; the asking task sees "No"."""
        self._finalizer()
