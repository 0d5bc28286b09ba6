"""Per-target build pipelines.

Each pipeline resolves the source tree, drives its build tool through the
:class:`~bitforge.process.runner.ProcessRunner`, and copies the results into
``<root>/binaries/<project>-<version>/``.  Every failure surfaces as a
:class:`~bitforge.core.exceptions.BuildError` carrying the stage it happened
in; the underlying error is chained as ``__cause__``.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path

from bitforge.bus.channel import BusSender
from bitforge.core.constants import (
    BITCOIN_REPO,
    ELECTRS_REPO,
    SEPARATOR,
    BuildStrategy,
    PipelineState,
    Target,
)
from bitforge.core.exceptions import (
    BitForgeError,
    BuildError,
    MissingArtifactError,
    ToolchainMissingError,
)
from bitforge.pipeline.artifacts import collect_binaries
from bitforge.pipeline.shell import truncate
from bitforge.pipeline.source import SourceResolver
from bitforge.pipeline.stages import BuildContext, PipelineTracker
from bitforge.pipeline.strategies import build_autotools, build_cmake
from bitforge.pipeline.versions import normalize_version, select_strategy, validate_version_tag
from bitforge.process.runner import ProcessRunner

_PATH_PREVIEW_CHARS = 150

CARGO_MISSING_MESSAGE = (
    "❌ Cargo not found in PATH!\n\n"
    "Electrs requires Rust/Cargo to compile.\n\n"
    "Please:\n"
    "1. Click 'Check & Install Dependencies' button\n"
    "2. Ensure Rust is installed\n"
    "3. Restart this application"
)


class TargetPipeline(ABC):
    """Shared plumbing for one target project.

    Args:
        sender: Bus handle for log lines, progress and dialogs.
        runner: Process runner; defaults to one bound to *sender*.
        resolver: Source resolver; defaults to one sharing *runner*.
    """

    target: Target
    repo_url: str

    def __init__(
        self,
        sender: BusSender,
        runner: ProcessRunner | None = None,
        resolver: SourceResolver | None = None,
    ) -> None:
        self._sender = sender
        self._runner = runner or ProcessRunner(sender)
        self._resolver = resolver or SourceResolver(self._runner, sender)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(target={self.target!r})"

    def source_dir(self, output_root: Path, version: str) -> Path:
        return output_root / f"{self.target}-{normalize_version(version)}"

    def output_dir(self, output_root: Path, version: str) -> Path:
        return output_root / "binaries" / f"{self.target}-{normalize_version(version)}"

    async def compile(
        self,
        version: str,
        output_root: Path,
        parallelism: int,
        env: Mapping[str, str],
    ) -> Path:
        """Build *version* under *output_root* and return the binaries directory.

        Raises:
            BuildError: On any failure; ``stage`` names where it happened.  A
                malformed tag fails in ``IDLE``, before any process runs.
        """
        tracker = PipelineTracker(self.target, version)
        try:
            validate_version_tag(version)
            result = await self._compile(tracker, version, Path(output_root), parallelism, env)
        except BuildError as exc:
            exc.stage = tracker.fail(str(exc))
            raise
        except (BitForgeError, OSError) as exc:
            stage = tracker.fail(str(exc))
            raise BuildError(str(exc), stage=stage, details={"cause": type(exc).__name__}) from exc
        tracker.advance(PipelineState.DONE)
        return result

    @abstractmethod
    async def _compile(
        self,
        tracker: PipelineTracker,
        version: str,
        output_root: Path,
        parallelism: int,
        env: Mapping[str, str],
    ) -> Path: ...

    async def _resolve_source(
        self,
        tracker: PipelineTracker,
        version: str,
        output_root: Path,
        env: Mapping[str, str],
    ) -> Path:
        tracker.advance(PipelineState.RESOLVING_SOURCE)
        src_dir = self.source_dir(output_root, version)
        output_root.mkdir(parents=True, exist_ok=True)
        await self._resolver.resolve(src_dir, output_root, version, self.repo_url, env, tracker)
        return src_dir

    def _log_path(self, env: Mapping[str, str], heading: str) -> None:
        path_val = env.get("PATH")
        if path_val is not None:
            self._sender.log(f"{heading}\n  PATH: {truncate(path_val, _PATH_PREVIEW_CHARS)}...\n")


class BitcoinPipeline(TargetPipeline):
    target = Target.BITCOIN
    repo_url = BITCOIN_REPO

    async def _compile(
        self,
        tracker: PipelineTracker,
        version: str,
        output_root: Path,
        parallelism: int,
        env: Mapping[str, str],
    ) -> Path:
        self._sender.log(f"\n{SEPARATOR}\nCOMPILING BITCOIN CORE {version}\n{SEPARATOR}\n")

        src_dir = await self._resolve_source(tracker, version, output_root, env)

        self._log_path(env, "\nEnvironment setup:")
        self._sender.log("  Building node-only (wallet support disabled)\n")
        self._sender.progress(0.3)

        ctx = BuildContext(
            src_dir=src_dir,
            cores=parallelism,
            env=env,
            runner=self._runner,
            sender=self._sender,
            tracker=tracker,
        )
        strategy = select_strategy(version)
        if strategy is BuildStrategy.CMAKE:
            binaries = await build_cmake(ctx)
        else:
            binaries = await build_autotools(ctx)

        self._sender.progress(0.9)
        tracker.advance(PipelineState.COLLECTING_ARTIFACTS)

        output_dir = self.output_dir(output_root, version)
        copied = await asyncio.to_thread(collect_binaries, output_dir, binaries, self._sender)

        self._sender.log(
            f"\n{SEPARATOR}\n✅ BITCOIN CORE {version} COMPILED SUCCESSFULLY!\n{SEPARATOR}\n\n"
            f"📍 Binaries location: {output_dir}\n   Found {len(copied)} binaries\n\n"
        )
        return output_dir


class ElectrsPipeline(TargetPipeline):
    target = Target.ELECTRS
    repo_url = ELECTRS_REPO

    async def _compile(
        self,
        tracker: PipelineTracker,
        version: str,
        output_root: Path,
        parallelism: int,
        env: Mapping[str, str],
    ) -> Path:
        self._sender.log(f"\n{SEPARATOR}\nCOMPILING ELECTRS {version}\n{SEPARATOR}\n")
        await self._require_rust(env)

        src_dir = await self._resolve_source(tracker, version, output_root, env)

        self._sender.log(f"\n🔧 Building with Cargo ({parallelism} jobs)...\n")
        self._log_path(env, "Environment details:")
        libclang = env.get("LIBCLANG_PATH")
        if libclang is not None:
            self._sender.log(f"  LIBCLANG_PATH: {libclang}\n")
        self._sender.progress(0.3)

        ctx = BuildContext(
            src_dir=src_dir,
            cores=parallelism,
            env=env,
            runner=self._runner,
            sender=self._sender,
            tracker=tracker,
        )
        tracker.advance(PipelineState.BUILDING)
        await ctx.run(
            f"cargo build --release --jobs {parallelism}",
            "cargo build --release failed",
        )
        self._sender.progress(0.85)

        tracker.advance(PipelineState.COLLECTING_ARTIFACTS)
        self._sender.log("\n📋 Collecting binaries...\n")
        binary = src_dir / "target" / "release" / "electrs"
        if not binary.exists():
            raise MissingArtifactError(
                f"Electrs binary not found at expected location: {binary}",
                details={"path": str(binary)},
            )

        output_dir = self.output_dir(output_root, version)
        await asyncio.to_thread(collect_binaries, output_dir, [binary], self._sender)

        self._sender.log(
            f"\n{SEPARATOR}\n✅ ELECTRS {version} COMPILED SUCCESSFULLY!\n{SEPARATOR}\n\n"
            f"📍 Binary location: {output_dir}/electrs\n\n"
        )
        return output_dir

    async def _require_rust(self, env: Mapping[str, str]) -> None:
        self._sender.log("\n🔍 Verifying Rust installation...\n")
        cargo = await self._runner.probe(["cargo", "--version"], env)
        if cargo is None:
            self._sender.log(CARGO_MISSING_MESSAGE)
            self._sender.dialog("Rust Not Found", CARGO_MISSING_MESSAGE, is_error=True)
            raise ToolchainMissingError("Cargo not found, cannot compile Electrs")
        self._sender.log(f"✓ Cargo found: {cargo}\n")

        rustc = await self._runner.probe(["rustc", "--version"], env)
        if rustc is not None:
            self._sender.log(f"✓ Rustc found: {rustc}\n")
        else:
            self._sender.log("⚠️  Warning: rustc check failed, but cargo found. Proceeding...\n")
