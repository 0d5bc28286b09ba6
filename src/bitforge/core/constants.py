from __future__ import annotations

from enum import StrEnum


class Target(StrEnum):
    BITCOIN = "bitcoin"
    ELECTRS = "electrs"


class TargetSelection(StrEnum):
    BITCOIN = "bitcoin"
    ELECTRS = "electrs"
    BOTH = "both"

    def includes(self, target: Target) -> bool:
        return self is TargetSelection.BOTH or self.value == target.value


class BuildStrategy(StrEnum):
    """Toolchain used to build Bitcoin Core; chosen from the major version."""

    AUTOTOOLS = "autotools"
    CMAKE = "cmake"


class PipelineState(StrEnum):
    IDLE = "idle"
    RESOLVING_SOURCE = "resolving_source"
    CONFIGURING = "configuring"
    BUILDING = "building"
    COLLECTING_ARTIFACTS = "collecting_artifacts"
    DONE = "done"
    FAILED = "failed"


BITCOIN_REPO = "https://github.com/bitcoin/bitcoin.git"
ELECTRS_REPO = "https://github.com/romanz/electrs.git"

# First Bitcoin Core major release built with CMake instead of autotools.
CMAKE_MIN_MAJOR = 25

# Homebrew formulae needed by both autotools/CMake builds and the Rust build.
BREW_PACKAGES: tuple[str, ...] = (
    "automake",
    "libtool",
    "pkg-config",
    "boost",
    "miniupnpc",
    "zeromq",
    "sqlite",
    "python",
    "cmake",
    "llvm",
    "libevent",
    "rocksdb",
    "rust",
    "git",
)

# Version list contents before the release index has answered.
LOADING_PLACEHOLDER = "Loading..."

SEPARATOR = "=" * 60
