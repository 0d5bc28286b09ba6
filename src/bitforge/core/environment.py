"""Build environment construction and Homebrew discovery.

The engine never mutates a :class:`BuildEnvironment`; it is computed once
per run and handed to every child process as its complete environment.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Iterator, Mapping
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

BREW_CANDIDATES: tuple[str, ...] = ("/opt/homebrew/bin/brew", "/usr/local/bin/brew")
SYSTEM_PATHS: tuple[str, ...] = ("/usr/bin", "/bin", "/usr/sbin", "/sbin")


class BuildEnvironment(Mapping[str, str]):
    """Immutable name → value mapping used as a child's entire environment."""

    __slots__ = ("_vars",)

    def __init__(self, variables: Mapping[str, str] | None = None) -> None:
        self._vars: dict[str, str] = dict(variables or {})

    def __getitem__(self, key: str) -> str:
        return self._vars[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._vars)

    def __len__(self) -> int:
        return len(self._vars)

    def __repr__(self) -> str:
        return f"BuildEnvironment(vars={len(self._vars)}, PATH={self._vars.get('PATH', '')[:60]!r})"

    def to_dict(self) -> dict[str, str]:
        """Return a fresh copy suitable for ``env=`` arguments."""
        return dict(self._vars)


def find_brew(candidates: tuple[str, ...] = BREW_CANDIDATES) -> str | None:
    """Return the path to the ``brew`` binary, checking Apple Silicon first."""
    for candidate in candidates:
        if Path(candidate).is_file():
            return candidate
    return None


def brew_prefix(brew: str) -> str:
    """Derive the Homebrew prefix from the brew binary path."""
    if "/opt/homebrew" in brew:
        return "/opt/homebrew"
    return "/usr/local"


def _llvm_candidates(brew_pfx: str | None) -> list[str]:
    candidates: list[str] = []
    if brew_pfx:
        candidates.append(f"{brew_pfx}/opt/llvm")
    candidates.append("/opt/homebrew/opt/llvm")
    candidates.append("/usr/local/opt/llvm")
    return candidates


def setup_build_environment(
    brew_pfx: str | None,
    base: Mapping[str, str] | None = None,
) -> BuildEnvironment:
    """Build the complete environment for compilation children.

    Starts from *base* (the current process environment by default),
    prepends Homebrew, Cargo and LLVM locations to ``PATH``, appends the
    system directories, and drops duplicate entries keeping the first
    occurrence.  When an LLVM install is found, ``LIBCLANG_PATH`` and
    ``DYLD_LIBRARY_PATH`` point at its ``lib`` directory so bindgen-based
    crates (RocksDB) can locate libclang.
    """
    env: dict[str, str] = dict(os.environ if base is None else base)
    home = env.get("HOME", "/Users/user")

    parts: list[str] = []
    if brew_pfx:
        parts.append(f"{brew_pfx}/bin")
    parts.extend(["/opt/homebrew/bin", "/usr/local/bin"])

    cargo_bin = f"{home}/.cargo/bin"
    if Path(cargo_bin).is_dir():
        parts.append(cargo_bin)

    llvm_prefix: str | None = None
    for candidate in _llvm_candidates(brew_pfx):
        if Path(candidate, "bin").is_dir():
            parts.append(f"{candidate}/bin")
            llvm_prefix = candidate
            break

    existing = env.get("PATH")
    if existing:
        parts.extend(existing.split(":"))
    parts.extend(SYSTEM_PATHS)

    seen: set[str] = set()
    deduped: list[str] = []
    for part in parts:
        if part and part not in seen:
            seen.add(part)
            deduped.append(part)
    env["PATH"] = ":".join(deduped)

    if llvm_prefix is not None:
        lib = f"{llvm_prefix}/lib"
        env["LIBCLANG_PATH"] = lib
        env["DYLD_LIBRARY_PATH"] = lib

    logger.debug("build_environment_ready", path_entries=len(deduped), llvm=llvm_prefix)
    return BuildEnvironment(env)


def host_os_version() -> str:
    """Return the macOS product version (e.g. ``"14.4.1"``) or ``"unknown"``."""
    try:
        result = subprocess.run(
            ["sw_vers", "-productVersion"],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return "unknown"
    version = result.stdout.strip()
    if result.returncode != 0 or not version:
        return "unknown"
    return version
