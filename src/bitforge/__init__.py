"""BitForge: compile Bitcoin Core and Electrs from source."""

from bitforge.__version__ import __version__

from bitforge.app.controller import AlertModal, BuildController, ConfirmModal
from bitforge.app.log_buffer import LogBuffer
from bitforge.bus.channel import BusSender, MessageBus
from bitforge.bus.messages import (
    AppMessage,
    BitcoinVersionsLoaded,
    ConfirmRequest,
    DialogMessage,
    ElectrsVersionsLoaded,
    LogMessage,
    ProgressMessage,
    TaskDone,
)
from bitforge.core.config import BuildConfig
from bitforge.core.constants import BuildStrategy, PipelineState, Target, TargetSelection
from bitforge.core.environment import BuildEnvironment, setup_build_environment
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
from bitforge.deps.checker import DependencyChecker
from bitforge.pipeline.compiler import BitcoinPipeline, ElectrsPipeline
from bitforge.pipeline.jobs import CompileJob, PipelineResult
from bitforge.pipeline.versions import select_strategy, validate_version_tag
from bitforge.process.runner import ProcessRunner
from bitforge.releases.github import ReleaseIndex
from bitforge.utils.async_helpers import BackgroundRuntime

__all__ = [
    "__version__",
    # Observer
    "BuildController",
    "AlertModal",
    "ConfirmModal",
    "LogBuffer",
    # Messaging
    "MessageBus",
    "BusSender",
    "AppMessage",
    "LogMessage",
    "ProgressMessage",
    "BitcoinVersionsLoaded",
    "ElectrsVersionsLoaded",
    "DialogMessage",
    "TaskDone",
    "ConfirmRequest",
    # Config & constants
    "BuildConfig",
    "BuildEnvironment",
    "setup_build_environment",
    "Target",
    "TargetSelection",
    "BuildStrategy",
    "PipelineState",
    # Engine
    "BackgroundRuntime",
    "ProcessRunner",
    "DependencyChecker",
    "BitcoinPipeline",
    "ElectrsPipeline",
    "CompileJob",
    "PipelineResult",
    "ReleaseIndex",
    "select_strategy",
    "validate_version_tag",
    # Exceptions
    "BitForgeError",
    "ConfigurationError",
    "VersionTagError",
    "ProcessError",
    "SpawnError",
    "CommandError",
    "PipelineError",
    "BuildError",
    "NotReadyError",
    "MissingArtifactError",
    "ToolchainMissingError",
    "ReleaseFetchError",
]
