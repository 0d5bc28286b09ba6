from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bitforge.core.constants import PipelineState


class BitForgeError(Exception):
    """Base exception for all BitForge errors.

    Attributes:
        code: Optional machine-readable error code (e.g. ``"ERR_EXIT"``).
        details: Arbitrary key/value context about the error.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class ConfigurationError(BitForgeError): ...


class VersionTagError(BitForgeError):
    """A version tag contains characters that may not reach a shell command."""


class ProcessError(BitForgeError): ...


class SpawnError(ProcessError):
    """The OS refused to start the child (executable missing, permissions)."""


class CommandError(ProcessError):
    """A child process ran and exited unsuccessfully.

    Attributes:
        exit_code: The exit status, or ``None`` when a signal ended the child.
        command: The command line exactly as it was run.
    """

    def __init__(self, command: str, exit_code: int | None) -> None:
        code_text = str(exit_code) if exit_code is not None else "signal"
        super().__init__(
            f"Command failed (exit {code_text}): {command}",
            code="ERR_EXIT",
            details={"command": command, "exit_code": exit_code},
        )
        self.command = command
        self.exit_code = exit_code


class PipelineError(BitForgeError): ...


class BuildError(PipelineError):
    """A build pipeline stage failed.

    Attributes:
        stage: The :class:`~bitforge.core.constants.PipelineState` in which
            the failure happened.
    """

    def __init__(
        self,
        message: str,
        stage: PipelineState,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code="ERR_BUILD", details=details)
        self.stage = stage


class NotReadyError(PipelineError):
    """A build was requested before its version list finished loading."""


class MissingArtifactError(BitForgeError):
    """The build reported success but its single expected artifact is absent."""


class ToolchainMissingError(BitForgeError):
    """A required toolchain was not found before attempting the build."""


class ReleaseFetchError(BitForgeError): ...
