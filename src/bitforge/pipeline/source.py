from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from bitforge.bus.channel import BusSender
from bitforge.core.exceptions import BuildError, VersionTagError
from bitforge.pipeline.shell import shell_quote
from bitforge.pipeline.stages import PipelineTracker, run_step
from bitforge.pipeline.versions import validate_version_tag
from bitforge.process.runner import ProcessRunner


class SourceResolver:
    """Make ``src_dir`` hold the source tree at a given version tag.

    A missing directory gets a shallow clone pinned to the tag.  An existing
    one fetches only that tag and checks it out in place.  The tag is
    validated and every interpolated value single-quoted before any shell
    command is built.
    """

    def __init__(self, runner: ProcessRunner, sender: BusSender) -> None:
        self._runner = runner
        self._sender = sender

    async def resolve(
        self,
        src_dir: Path,
        build_dir: Path,
        version: str,
        repo_url: str,
        env: Mapping[str, str],
        tracker: PipelineTracker,
    ) -> None:
        try:
            validate_version_tag(version)
        except VersionTagError as exc:
            raise BuildError(str(exc), stage=tracker.state, details=exc.details) from exc

        if not src_dir.exists():
            self._sender.log(f"\n📥 Cloning repository from {repo_url}...\n")
            await run_step(
                self._runner,
                tracker,
                "git clone --depth 1 --branch "
                f"{shell_quote(version)} {shell_quote(repo_url)} {shell_quote(src_dir)}",
                "git clone failed",
                cwd=build_dir,
                env=env,
            )
            self._sender.log(f"✓ Source cloned to {src_dir}\n")
            return

        self._sender.log(f"✓ Source directory exists: {src_dir}\n")
        self._sender.log(f"📥 Updating to {version}...\n")
        await run_step(
            self._runner,
            tracker,
            f"git fetch --depth 1 origin tag {shell_quote(version)}",
            "git fetch failed",
            cwd=src_dir,
            env=env,
        )
        await run_step(
            self._runner,
            tracker,
            f"git checkout {shell_quote(version)}",
            "git checkout failed",
            cwd=src_dir,
            env=env,
        )
        self._sender.log(f"✓ Updated to {version}\n")
