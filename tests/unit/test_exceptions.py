"""Tests for core/exceptions.py."""
from __future__ import annotations

import pytest

from bitforge.core.constants import PipelineState
from bitforge.core.exceptions import (
    BitForgeError,
    BuildError,
    CommandError,
    ConfigurationError,

    MissingArtifactError,
    NotReadyError,
    PipelineError,
    ProcessError,
    ReleaseFetchError,
    SpawnError,
    ToolchainMissingError,
    VersionTagError,
)

# ---------------------------------------------------------------------------
# BitForgeError — base class
# ---------------------------------------------------------------------------


def test_base_exception_message() -> None:
    exc = BitForgeError("something went wrong")
    assert str(exc) == "something went wrong"
    assert exc.message == "something went wrong"


def test_base_exception_defaults() -> None:
    exc = BitForgeError("msg")
    assert exc.code is None
    assert exc.details == {}


def test_base_exception_with_code_and_details() -> None:
    exc = BitForgeError("msg", code="ERR_001", details={"key": "value"})
    assert exc.code == "ERR_001"
    assert exc.details == {"key": "value"}


@pytest.mark.parametrize(
    "cls",
    [
        ConfigurationError,
        VersionTagError,
        ProcessError,
        SpawnError,
        PipelineError,
        NotReadyError,
        MissingArtifactError,
        ToolchainMissingError,
    
        ReleaseFetchError,
    ],
)
def test_subclasses_are_bitforge_errors(cls: type[BitForgeError]) -> None:
    exc = cls("boom")
    assert isinstance(exc, BitForgeError)
    assert str(exc) == "boom"


# ---------------------------------------------------------------------------
# CommandError
# ---------------------------------------------------------------------------


def test_command_error_message_has_exit_code_and_command() -> None:
    exc = CommandError("make -j4", 17)
    assert str(exc) == "Command failed (exit 17): make -j4"
    assert exc.exit_code == 17
    assert exc.command == "make -j4"
    assert exc.code == "ERR_EXIT"
    assert exc.details == {"command": "make -j4", "exit_code": 17}


def test_command_error_killed_by_signal() -> None:
    exc = CommandError("sleep 100", None)
    assert "exit signal" in str(exc)
    assert exc.exit_code is None


def test_command_error_is_process_error() -> None:
    assert isinstance(CommandError("x", 1), ProcessError)
    assert isinstance(SpawnError("x"), ProcessError)


# ---------------------------------------------------------------------------
# BuildError
# ---------------------------------------------------------------------------


def test_build_error_carries_stage() -> None:
    exc = BuildError("make failed: boom", stage=PipelineState.BUILDING)
    assert exc.stage is PipelineState.BUILDING
    assert exc.code == "ERR_BUILD"
    assert isinstance(exc, PipelineError)
