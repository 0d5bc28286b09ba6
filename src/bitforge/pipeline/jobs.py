"""Sequential composition of the per-target pipelines.

A :class:`CompileJob` is what the observer spawns on the background
runtime when the user asks for a build.  It always finishes by sending
``TaskDone`` so the observer returns to an interactive state.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from bitforge.bus.channel import BusSender
from bitforge.core.constants import LOADING_PLACEHOLDER, PipelineState, Target, TargetSelection
from bitforge.core.exceptions import BuildError, NotReadyError
from bitforge.pipeline.compiler import BitcoinPipeline, ElectrsPipeline, TargetPipeline
from bitforge.process.runner import ProcessRunner

logger = structlog.get_logger(__name__)

_READY_NAMES: dict[Target, str] = {Target.BITCOIN: "Bitcoin", Target.ELECTRS: "Electrs"}


class PipelineResult(BaseModel):
    target: Target
    version: str
    success: bool
    output_dir: Path | None = None
    binaries: list[Path] = Field(default_factory=list)
    error: str | None = None
    failed_stage: PipelineState | None = None


def is_loaded(version: str | None) -> bool:
    return bool(version) and version != LOADING_PLACEHOLDER


def check_ready(
    selection: TargetSelection,
    bitcoin_version: str | None,
    electrs_version: str | None,
) -> dict[Target, str]:
    """Refuse to build a target whose version list has not loaded yet.

    Returns:
        The selected targets mapped to their versions, in build order.

    Raises:
        NotReadyError: With the message shown to the user.
    """
    ready: dict[Target, str] = {}
    for target, version in ((Target.BITCOIN, bitcoin_version), (Target.ELECTRS, electrs_version)):
        if not selection.includes(target):
            continue
        if version is None or not is_loaded(version):
            raise NotReadyError(
                f"Please wait for {_READY_NAMES[target]} versions to load, or click Refresh.",
                details={"target": target.value},
            )
        ready[target] = version
    return ready


class CompileJob:
    """Build one or both targets, one after the other, in a single task.

    If the Bitcoin Core build fails, Electrs is not attempted.

    Args:
        sender: Bus handle shared by every stage of the job.
        bitcoin: Pipeline used for Bitcoin Core (injectable for tests).
        electrs: Pipeline used for Electrs (injectable for tests).
    """

    def __init__(
        self,
        sender: BusSender,
        bitcoin: TargetPipeline | None = None,
        electrs: TargetPipeline | None = None,
    ) -> None:
        self._sender = sender
        runner = ProcessRunner(sender)
        self._pipelines: dict[Target, TargetPipeline] = {
            Target.BITCOIN: bitcoin or BitcoinPipeline(sender, runner),
            Target.ELECTRS: electrs or ElectrsPipeline(sender, runner),
        }

    def __repr__(self) -> str:
        return f"CompileJob(targets={list(self._pipelines)})"

    async def run(
        self,
        selection: TargetSelection,
        *,
        bitcoin_version: str | None,
        electrs_version: str | None,
        build_dir: Path,
        cores: int,
        env: Mapping[str, str],
    ) -> list[PipelineResult]:
        results: list[PipelineResult] = []
        try:
            try:
                versions = check_ready(selection, bitcoin_version, electrs_version)
            except NotReadyError as exc:
                self._sender.dialog("Not Ready", exc.message, is_error=True)
                return results

            both = selection is TargetSelection.BOTH
            self._sender.progress(0.05)

            if Target.BITCOIN in versions:
                self._sender.progress(0.1)
                result = await self._build(Target.BITCOIN, versions[Target.BITCOIN], build_dir, cores, env)
                results.append(result)
                if not result.success:
                    return results
                self._sender.progress(0.5 if both else 0.95)

            if Target.ELECTRS in versions:
                self._sender.progress(0.55 if both else 0.1)
                result = await self._build(Target.ELECTRS, versions[Target.ELECTRS], build_dir, cores, env)
                results.append(result)
                if not result.success:
                    return results
                self._sender.progress(1.0)

            self._sender.progress(1.0)
            dirs_list = "\n".join(f"• {r.output_dir}" for r in results)
            self._sender.dialog(
                "Compilation Complete",
                f"✅ {selection.value.capitalize()} compiled successfully!\n\nBinaries saved to:\n{dirs_list}",
            )
            return results
        finally:
            self._sender.task_done()

    async def _build(
        self,
        target: Target,
        version: str,
        build_dir: Path,
        cores: int,
        env: Mapping[str, str],
    ) -> PipelineResult:
        pipeline = self._pipelines[target]
        try:
            output_dir = await pipeline.compile(version, build_dir, cores, env)
        except BuildError as exc:
            self._sender.log(f"\n❌ Compilation failed: {exc}\n")
            self._sender.dialog("Compilation Failed", str(exc), is_error=True)
            logger.warning("compile_failed", target=str(target), version=version, stage=str(exc.stage))
            return PipelineResult(
                target=target,
                version=version,
                success=False,
                error=str(exc),
                failed_stage=exc.stage,
            )

        binaries = sorted(p for p in output_dir.iterdir() if p.is_file()) if output_dir.is_dir() else []
        logger.info("compile_succeeded", target=str(target), version=version, binaries=len(binaries))
        return PipelineResult(
            target=target,
            version=version,
            success=True,
            output_dir=output_dir,
            binaries=binaries,
        )
