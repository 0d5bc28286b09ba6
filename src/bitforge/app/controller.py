"""Headless observer state.

:class:`BuildController` owns everything the presentation layer would
render (log, progress, busy flag, the single modal slot, version lists)
and turns user actions into tasks on the :class:`BackgroundRuntime`.
It never blocks: :meth:`BuildController.drain_messages` is meant to be
called on the observer's own cadence, e.g. once per frame.
"""

from __future__ import annotations

import concurrent.futures
import math
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel

from bitforge.app.log_buffer import LogBuffer
from bitforge.bus.channel import BusSender, MessageBus
from bitforge.bus.messages import (
    BitcoinVersionsLoaded,
    ConfirmRequest,
    DialogMessage,
    ElectrsVersionsLoaded,
    LogMessage,
    ProgressMessage,
    TaskDone,
)
from bitforge.core.config import BuildConfig
from bitforge.core.constants import LOADING_PLACEHOLDER, SEPARATOR, Target, TargetSelection
from bitforge.core.environment import brew_prefix, find_brew, setup_build_environment
from bitforge.core.exceptions import BitForgeError, NotReadyError, ReleaseFetchError
from bitforge.deps.checker import DependencyChecker
from bitforge.pipeline.jobs import CompileJob, PipelineResult, check_ready
from bitforge.releases.github import ReleaseIndex, aclose_http_client
from bitforge.utils.async_helpers import BackgroundRuntime
from bitforge.utils.logging import get_logger

logger = get_logger(__name__)

_SHORT_NAMES: dict[Target, str] = {Target.BITCOIN: "Bitcoin", Target.ELECTRS: "Electrs"}
_CLIENT_CLOSE_TIMEOUT = 5.0


def _clamp_progress(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return min(max(value, 0.0), 1.0)


class AlertModal(BaseModel):
    title: str
    message: str
    is_error: bool = False


@dataclass
class ConfirmModal:
    request: ConfirmRequest

    @property
    def title(self) -> str:
        return self.request.title

    @property
    def message(self) -> str:
        return self.request.message


Modal = AlertModal | ConfirmModal


class BuildController:
    """The observer: single consumer of the message bus.

    Args:
        runtime: A started :class:`BackgroundRuntime` for background tasks.
        installer: Path to ``brew``; ``None`` when Homebrew is missing.
        config: Build settings (target, cores, output directory, log cap).
        bus: Message bus; a fresh one by default.
        env: Build environment; computed from *installer* at spawn time
            when omitted.
        release_index: Release discovery client.
        job_factory: Builds the :class:`CompileJob` for a spawn.
        checker_factory: Builds the :class:`DependencyChecker` for a spawn.
        on_log: Called with each log chunk as it is drained.
    """

    def __init__(
        self,
        runtime: BackgroundRuntime,
        installer: str | None,
        config: BuildConfig | None = None,
        *,
        bus: MessageBus | None = None,
        env: Mapping[str, str] | None = None,
        release_index: ReleaseIndex | None = None,
        job_factory: Callable[[BusSender], CompileJob] | None = None,
        checker_factory: Callable[[BusSender], DependencyChecker] | None = None,
        on_log: Callable[[str], None] | None = None,
    ) -> None:
        self._runtime = runtime
        self._config = config or BuildConfig()
        self._bus = bus or MessageBus()
        self._env = env
        self._releases = release_index or ReleaseIndex()
        self._job_factory = job_factory or CompileJob
        self._checker_factory = checker_factory or (
            lambda sender: DependencyChecker(sender, settle_seconds=self._config.settle_seconds)
        )
        self._on_log = on_log

        self.installer = installer
        self.target: TargetSelection = self._config.target
        self.cores: int = self._config.cores
        self.build_dir: Path = self._config.build_dir

        self.bitcoin_versions: list[str] = [LOADING_PLACEHOLDER]
        self.selected_bitcoin: str = LOADING_PLACEHOLDER
        self.electrs_versions: list[str] = [LOADING_PLACEHOLDER]
        self.selected_electrs: str = LOADING_PLACEHOLDER

        self.log = LogBuffer(self._config.max_log_lines)
        self.progress: float = 0.0
        self.is_busy: bool = False
        self.modal: Modal | None = None
        self._alerts: deque[AlertModal] = deque()

    @classmethod
    def discover(
        cls,
        runtime: BackgroundRuntime,
        config: BuildConfig | None = None,
        **kwargs: object,
    ) -> BuildController:
        """Create a controller for this machine's Homebrew installation."""
        return cls(runtime, find_brew(), config, **kwargs)  # type: ignore[arg-type]

    def __repr__(self) -> str:
        return (
            f"BuildController(target={self.target!r}, busy={self.is_busy}, "
            f"modal={type(self.modal).__name__ if self.modal else None})"
        )

    @property
    def bus(self) -> MessageBus:
        return self._bus

    @property
    def brew_prefix(self) -> str | None:
        return brew_prefix(self.installer) if self.installer else None

    def build_environment(self) -> Mapping[str, str]:
        if self._env is not None:
            return self._env
        return setup_build_environment(self.brew_prefix)

    def append_banner(self, os_version: str, cpus: int) -> None:
        self.log.append(f"{SEPARATOR}\nBitForge - Bitcoin Core & Electrs Compiler\n{SEPARATOR}\n")
        self.log.append(f"System: macOS {os_version}\n")
        self.log.append(f"Homebrew: {self.brew_prefix or 'Not Found'}\n")
        self.log.append(f"CPU Cores: {cpus}\n")
        self.log.append(f"{SEPARATOR}\n\n")

    # ------------------------------------------------------------------ #
    # Message drain
    # ------------------------------------------------------------------ #

    def drain_messages(self) -> int:
        """Apply every queued message, then fill the modal slot if it is empty.

        Alerts queue behind whatever modal is showing and are shown oldest
        first; a pending confirmation is admitted only when no alert waits.

        Returns:
            The number of :data:`AppMessage` values applied.
        """
        messages = self._bus.drain()
        for msg in messages:
            if isinstance(msg, LogMessage):
                self.log.append(msg.text)
                if self._on_log is not None:
                    self._on_log(msg.text)
            elif isinstance(msg, ProgressMessage):
                self.progress = _clamp_progress(msg.value)
            elif isinstance(msg, BitcoinVersionsLoaded):
                if msg.versions:
                    self.selected_bitcoin = msg.versions[0]
                self.bitcoin_versions = list(msg.versions)
            elif isinstance(msg, ElectrsVersionsLoaded):
                if msg.versions:
                    self.selected_electrs = msg.versions[0]
                self.electrs_versions = list(msg.versions)
            elif isinstance(msg, DialogMessage):
                self._alerts.append(AlertModal(title=msg.title, message=msg.message, is_error=msg.is_error))
            elif isinstance(msg, TaskDone):
                self.is_busy = False
                self.progress = 0.0

        if self.modal is None and self._alerts:
            self.modal = self._alerts.popleft()
        if self.modal is None:
            request = self._bus.poll_confirm()
            if request is not None:
                self.modal = ConfirmModal(request)
        return len(messages)

    def answer_confirm(self, answer: bool) -> None:
        """Reply to the confirmation on screen and close it.

        Raises:
            RuntimeError: If no confirmation is showing.
        """
        if not isinstance(self.modal, ConfirmModal):
            raise RuntimeError("No confirmation is pending")
        modal, self.modal = self.modal, None
        modal.request.reply(answer)

    def dismiss_alert(self) -> None:
        if isinstance(self.modal, AlertModal):
            self.modal = None

    def _show_alert(self, alert: AlertModal) -> None:
        if self.modal is None:
            self.modal = alert
        else:
            self._alerts.append(alert)

    # ------------------------------------------------------------------ #
    # Background task spawners
    # ------------------------------------------------------------------ #

    def spawn_check_deps(self) -> concurrent.futures.Future[None] | None:
        if self.is_busy:
            return None
        if self.installer is None:
            self._show_alert(
                AlertModal(
                    title="Homebrew Not Found",
                    message="Homebrew is required.\nInstall it from https://brew.sh then restart BitForge.",
                    is_error=True,
                )
            )
            return None

        env = self.build_environment()
        self.is_busy = True
        self.log.append("\n>>> Starting dependency check...\n")
        return self._runtime.spawn(self._check_deps_task(self.installer, env))

    async def _check_deps_task(self, installer: str, env: Mapping[str, str]) -> None:
        sender = self._bus.sender()
        try:
            await self._checker_factory(sender).check_and_resolve(installer, env)
        except BitForgeError as exc:
            logger.warning("dependency_check_error", error=str(exc))
            sender.dialog("Error", f"Dependency check failed:\n{exc}", is_error=True)
        finally:
            sender.task_done()

    def spawn_compile(self) -> concurrent.futures.Future[list[PipelineResult]] | None:
        if self.is_busy:
            return None
        try:
            check_ready(self.target, self.selected_bitcoin, self.selected_electrs)
        except NotReadyError as exc:
            self._show_alert(AlertModal(title="Not Ready", message=exc.message, is_error=True))
            return None

        env = self.build_environment()
        self.is_busy = True
        self.progress = 0.0
        job = self._job_factory(self._bus.sender())
        logger.info(
            "compile_spawned",
            target=str(self.target),
            bitcoin=self.selected_bitcoin,
            electrs=self.selected_electrs,
            cores=self.cores,
        )
        return self._runtime.spawn(
            job.run(
                self.target,
                bitcoin_version=self.selected_bitcoin,
                electrs_version=self.selected_electrs,
                build_dir=self.build_dir,
                cores=self.cores,
                env=env,
            )
        )

    def spawn_refresh_versions(
        self, target: Target | None = None
    ) -> list[concurrent.futures.Future[None]]:
        targets = [target] if target is not None else [Target.BITCOIN, Target.ELECTRS]
        return [self._runtime.spawn(self._refresh_task(t)) for t in targets]

    async def _refresh_task(self, target: Target) -> None:
        sender = self._bus.sender()
        name = _SHORT_NAMES[target]
        sender.log(f"\n📡 Fetching {name} versions from GitHub...\n")
        try:
            versions = await self._releases.fetch_versions(target)
        except ReleaseFetchError as exc:
            sender.log(f"⚠️  Could not fetch {name} versions: {exc}\n")
            sender.dialog(
                "Network Error",
                f"Could not fetch {name} versions.\nCheck your internet connection.",
            )
            return
        sender.log(f"✓ Loaded {len(versions)} {name} versions\n")
        sender.versions_loaded(target, versions)

    def close(self) -> None:
        """Tear down the observer side; pending confirmations resolve to "No".

        Also closes the shared HTTP client of the runtime loop.
        """
        if isinstance(self.modal, ConfirmModal):
            self.modal.request.discard()
        self._alerts.clear()
        self.modal = None
        self._bus.close()
        if self._runtime.running:
            self._runtime.spawn(aclose_http_client()).result(_CLIENT_CLOSE_TIMEOUT)
