"""Child process execution with live output streaming.

:meth:`ProcessRunner.run` streams every stdout/stderr line to the message
bus as it is produced.  :meth:`ProcessRunner.probe` and
:meth:`ProcessRunner.succeeds` are quiet, capture-only checks used for
toolchain and package presence tests.
"""

from __future__ import annotations

import asyncio
import os
import shlex
import signal
from collections.abc import Mapping, Sequence
from pathlib import Path

import structlog

from bitforge.bus.channel import BusSender
from bitforge.core.exceptions import CommandError, SpawnError

logger = structlog.get_logger(__name__)

# Per-stream buffer; longer lines are delivered in chunks of this size.
_STREAM_LIMIT = 1024 * 1024

Command = str | Sequence[str]


def _display(command: Command) -> str:
    if isinstance(command, str):
        return command
    return shlex.join(command)


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Kill *proc* and its whole process group, then reap it."""
    if proc.returncode is not None:
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


class ProcessRunner:
    """Spawn commands and forward their output to a :class:`BusSender`.

    Args:
        sender: Where ``$ command`` announcements and output lines go.
    """

    def __init__(self, sender: BusSender) -> None:
        self._sender = sender

    def __repr__(self) -> str:
        return "ProcessRunner()"

    async def run(
        self,
        command: Command,
        cwd: Path | str | None = None,
        *,
        env: Mapping[str, str],
    ) -> None:
        """Run *command* to completion, streaming its output.

        A ``str`` command is interpreted by ``sh -c`` and must already have
        every interpolated value quoted.  A sequence is executed directly.
        *env* replaces the inherited environment entirely.

        Raises:
            SpawnError: If the process could not be started.
            CommandError: If it exited non-zero or was killed by a signal.
        """
        display = _display(command)
        self._sender.log(f"\n$ {display}\n")

        try:
            if isinstance(command, str):
                proc = await asyncio.create_subprocess_shell(
                    command,
                    cwd=cwd,
                    env=dict(env),
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    start_new_session=True,
                    limit=_STREAM_LIMIT,
                )
            else:
                if not command:
                    raise SpawnError("Cannot run an empty command")
                proc = await asyncio.create_subprocess_exec(
                    *command,
                    cwd=cwd,
                    env=dict(env),
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    start_new_session=True,
                    limit=_STREAM_LIMIT,
                )
        except OSError as exc:
            raise SpawnError(
                f"Failed to spawn: {display}: {exc}",
                details={"command": display},
            ) from exc

        logger.info("command_started", command=display, pid=proc.pid, cwd=str(cwd) if cwd else None)

        assert proc.stdout is not None and proc.stderr is not None
        # Both pipes are read concurrently; reading one after the other can
        # deadlock once the child fills the other pipe's OS buffer.
        drains = [
            asyncio.create_task(self._drain(proc.stdout)),
            asyncio.create_task(self._drain(proc.stderr)),
        ]

        finished = False
        try:
            returncode = await proc.wait()
            # Exit closes the pipes, but the readers may still hold lines.
            await asyncio.gather(*drains)
            finished = True
        finally:
            if not finished:
                for task in drains:
                    task.cancel()
                await _terminate(proc)
                await asyncio.gather(*drains, return_exceptions=True)
                logger.warning("command_killed", command=display, pid=proc.pid)

        logger.info("command_finished", command=display, returncode=returncode)
        if returncode != 0:
            raise CommandError(display, returncode if returncode > 0 else None)

    async def _drain(self, stream: asyncio.StreamReader) -> None:
        while True:
            try:
                chunk = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as exc:
                if exc.partial:
                    self._emit(exc.partial)
                return
            except asyncio.LimitOverrunError as exc:
                chunk = await stream.read(exc.consumed)
            self._emit(chunk)

    def _emit(self, raw: bytes) -> None:
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        self._sender.log(f"{line}\n")

    async def probe(self, argv: Sequence[str], env: Mapping[str, str]) -> str | None:
        """Run ``argv`` without a shell and return its trimmed stdout.

        Nothing is logged to the bus.  Returns ``None`` when *argv* is empty,
        the program cannot be started, exits non-zero, or prints nothing.
        """
        if not argv:
            return None
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                env=dict(env),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError:
            logger.debug("probe_spawn_failed", argv=list(argv))
            return None

        try:
            stdout, _ = await proc.communicate()
        finally:
            await _terminate(proc)

        if proc.returncode != 0:
            return None
        text = stdout.decode("utf-8", errors="replace").strip()
        return text or None

    async def succeeds(self, argv: Sequence[str], env: Mapping[str, str]) -> bool:
        """Return ``True`` when ``argv`` runs and exits with status 0."""
        if not argv:
            return False
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                env=dict(env),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError:
            logger.debug("probe_spawn_failed", argv=list(argv))
            return False

        try:
            returncode = await proc.wait()
        finally:
            await _terminate(proc)
        return returncode == 0

