"""Per-run state tracking and the shared "run one step" helper."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import structlog

from bitforge.bus.channel import BusSender
from bitforge.core.constants import PipelineState, Target
from bitforge.core.exceptions import BuildError, ProcessError
from bitforge.process.runner import Command, ProcessRunner

logger = structlog.get_logger(__name__)

_ORDER: dict[PipelineState, int] = {
    PipelineState.IDLE: 0,
    PipelineState.RESOLVING_SOURCE: 1,
    PipelineState.CONFIGURING: 2,
    PipelineState.BUILDING: 3,
    PipelineState.COLLECTING_ARTIFACTS: 4,
    PipelineState.DONE: 5,
    PipelineState.FAILED: 5,
}


class PipelineTracker:
    """Forward-only state machine for one pipeline run.

    ``IDLE → RESOLVING_SOURCE → CONFIGURING → BUILDING →
    COLLECTING_ARTIFACTS → DONE | FAILED``.  Intermediate states may be
    skipped (Electrs has no configure step) but never re-entered.
    """

    def __init__(self, target: Target, version: str) -> None:
        self.target = target
        self.version = version
        self.state = PipelineState.IDLE
        self.failed_stage: PipelineState | None = None
        self._log = logger.bind(target=str(target), version=version)

    def __repr__(self) -> str:
        return f"PipelineTracker(target={self.target!r}, state={self.state!r})"

    @property
    def finished(self) -> bool:
        return self.state in (PipelineState.DONE, PipelineState.FAILED)

    def advance(self, new_state: PipelineState) -> None:
        if self.finished or _ORDER[new_state] <= _ORDER[self.state]:
            raise RuntimeError(f"Illegal pipeline transition {self.state} -> {new_state}")
        self._log.info("pipeline_state", previous=str(self.state), state=str(new_state))
        self.state = new_state

    def fail(self, reason: str) -> PipelineState:
        """Move to ``FAILED`` and return the stage the failure happened in."""
        stage = self.state
        if not self.finished:
            self.failed_stage = stage
            self.state = PipelineState.FAILED
            self._log.warning("pipeline_failed", stage=str(stage), reason=reason)
        return self.failed_stage or stage


@dataclass(frozen=True)
class BuildContext:
    """Everything a build step needs; one instance per pipeline run."""

    src_dir: Path
    cores: int
    env: Mapping[str, str]
    runner: ProcessRunner
    sender: BusSender
    tracker: PipelineTracker

    async def run(self, command: Command, failure: str, cwd: Path | None = None) -> None:
        """Run *command* (in ``src_dir`` by default).

        Raises:
            BuildError: ``"<failure>: <cause>"`` tagged with the current stage.
        """
        await run_step(
            self.runner,
            self.tracker,
            command,
            failure,
            cwd=cwd or self.src_dir,
            env=self.env,
        )


async def run_step(
    runner: ProcessRunner,
    tracker: PipelineTracker,
    command: Command,
    failure: str,
    *,
    cwd: Path | None,
    env: Mapping[str, str],
) -> None:
    try:
        await runner.run(command, cwd, env=env)
    except ProcessError as exc:
        raise BuildError(
            f"{failure}: {exc}",
            stage=tracker.state,
            details={"step": failure, **exc.details},
        ) from exc
