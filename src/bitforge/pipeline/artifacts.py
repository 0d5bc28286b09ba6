from __future__ import annotations

import os
import shutil
from collections.abc import Sequence
from pathlib import Path

import structlog

from bitforge.bus.channel import BusSender

logger = structlog.get_logger(__name__)

EXECUTABLE_MODE = 0o755


def collect_binaries(
    dest_dir: Path,
    binaries: Sequence[Path],
    sender: BusSender,
) -> list[Path]:
    """Copy every existing path in *binaries* into *dest_dir* as executables.

    Missing paths are skipped with a warning.  Copy errors are logged and
    skipped too.  Returns the destination paths actually written.  Copying
    nothing is reported but is left for the caller to judge.

    Raises:
        OSError: If *dest_dir* cannot be created.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    sender.log(f"Copying binaries to: {dest_dir}\n")

    copied: list[Path] = []
    for binary in binaries:
        if not binary.exists():
            sender.log(f"⚠️  Binary not found (skipping): {binary}\n")
            continue
        if not binary.name:
            sender.log(f"⚠️  Skipping path with no file name: {binary}\n")
            continue

        dest = dest_dir / binary.name
        try:
            shutil.copyfile(binary, dest)
            os.chmod(dest, EXECUTABLE_MODE)
        except OSError as exc:
            logger.warning("binary_copy_failed", source=str(binary), error=str(exc))
            sender.log(f"⚠️  Failed to copy {binary.name}: {exc}\n")
            continue
        sender.log(f"✓ Copied: {binary.name} → {dest}\n")
        copied.append(dest)

    if not copied:
        sender.log("❌ WARNING: No binaries were copied!\n")
        sender.log("⚠️  Warning: No binaries were copied. Checking what exists...\n")
        for binary in binaries:
            mark = "✓" if binary.exists() else "❌"
            sender.log(f"  {mark} {binary}\n")

    logger.info("binaries_collected", dest=str(dest_dir), copied=len(copied), expected=len(binaries))
    return copied
