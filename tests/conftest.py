"""Shared test fixtures."""
from __future__ import annotations

import shlex
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

import pytest

from bitforge.bus.channel import BusSender, MessageBus
from bitforge.bus.messages import AppMessage, LogMessage
from bitforge.core.exceptions import CommandError
from bitforge.pipeline.strategies import AUTOTOOLS_BINARIES, CMAKE_BINARIES
from bitforge.process.runner import Command, ProcessRunner

Hook = Callable[[str, Path | None], None]


class FakeRunner(ProcessRunner):
    """Records commands instead of spawning them.

    * ``failures`` maps a command fragment to the exit code it "fails" with.
    * ``hooks`` registered with :meth:`on` run for matching commands and may
      create files the way the real tool would.
    * ``probes`` maps a program name to its ``--version`` output.
    * ``succeeding`` holds space-joined argv lists that exit 0.
    """

    def __init__(self, sender: BusSender) -> None:
        super().__init__(sender)
        self.commands: list[tuple[str, Path | None]] = []
        self.failures: dict[str, int] = {}
        self.hooks: list[tuple[str, Hook]] = []
        self.probes: dict[str, str] = {}
        self.succeeding: set[str] = set()
        self.probe_calls: list[list[str]] = []

    def on(self, fragment: str, hook: Hook) -> None:
        self.hooks.append((fragment, hook))

    @property
    def command_lines(self) -> list[str]:
        return [cmd for cmd, _ in self.commands]

    async def run(
        self,
        command: Command,
        cwd: Path | str | None = None,
        *,
        env: Mapping[str, str],
    ) -> None:
        display = command if isinstance(command, str) else shlex.join(command)
        self._sender.log(f"\n$ {display}\n")
        self.commands.append((display, Path(cwd) if cwd is not None else None))
        for fragment, code in self.failures.items():
            if fragment in display:
                raise CommandError(display, code)
        for fragment, hook in self.hooks:
            if fragment in display:
                hook(display, Path(cwd) if cwd is not None else None)

    async def probe(self, argv: Sequence[str], env: Mapping[str, str]) -> str | None:
        self.probe_calls.append(list(argv))
        return self.probes.get(argv[0]) if argv else None

    async def succeeds(self, argv: Sequence[str], env: Mapping[str, str]) -> bool:
        return " ".join(argv) in self.succeeding


def _touch_all(directory: Path, names: Sequence[str]) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    for name in names:
        (directory / name).write_bytes(b"\x7fELF fake binary")


def _clone(command: str, cwd: Path | None) -> None:
    Path(shlex.split(command)[-1]).mkdir(parents=True)


def _make(command: str, cwd: Path | None) -> None:
    assert cwd is not None
    _touch_all(cwd / "bin", AUTOTOOLS_BINARIES)


def _cmake_build(command: str, cwd: Path | None) -> None:
    assert cwd is not None
    _touch_all(cwd / "build" / "bin", CMAKE_BINARIES)


def _cargo_build(command: str, cwd: Path | None) -> None:
    assert cwd is not None
    _touch_all(cwd / "target" / "release", ["electrs"])


def add_build_hooks(runner: FakeRunner) -> FakeRunner:
    """Make *runner*'s clone and build commands leave real files behind."""
    runner.on("git clone", _clone)
    runner.on("make -j", _make)
    runner.on("cmake --build", _cmake_build)
    runner.on("cargo build", _cargo_build)
    runner.probes = {"cargo": "cargo 1.78.0", "rustc": "rustc 1.78.0"}
    return runner


def drain_logs(bus: MessageBus) -> tuple[list[AppMessage], str]:
    """Drain *bus*; return every message plus the concatenated log text."""
    messages = bus.drain()
    text = "".join(m.text for m in messages if isinstance(m, LogMessage))
    return messages, text


@pytest.fixture
def bus() -> MessageBus:
    return MessageBus()


@pytest.fixture
def sender(bus: MessageBus) -> BusSender:
    return bus.sender()


@pytest.fixture
def fake_runner(sender: BusSender) -> FakeRunner:
    return FakeRunner(sender)


@pytest.fixture
def build_runner(sender: BusSender) -> FakeRunner:
    return add_build_hooks(FakeRunner(sender))


@pytest.fixture
def plain_env() -> dict[str, str]:
    return {"PATH": "/usr/bin:/bin", "HOME": "/nonexistent"}
