from __future__ import annotations

import concurrent.futures
import time
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import httpx
import pytest

from bitforge.app.controller import AlertModal, BuildController, ConfirmModal
from bitforge.bus.channel import BusSender, MessageBus
from bitforge.core.config import BuildConfig
from bitforge.core.constants import LOADING_PLACEHOLDER, Target, TargetSelection
from bitforge.deps.checker import DependencyChecker
from bitforge.pipeline.compiler import BitcoinPipeline, ElectrsPipeline
from bitforge.pipeline.jobs import CompileJob
from bitforge.releases.github import ReleaseIndex, get_http_client
from bitforge.utils.async_helpers import BackgroundRuntime
from conftest import FakeRunner

BREW = "/opt/homebrew/bin/brew"


@pytest.fixture
def runtime() -> Iterator[BackgroundRuntime]:
    with BackgroundRuntime(name="bitforge-test") as rt:
        yield rt


@pytest.fixture
def config(tmp_path: Path) -> BuildConfig:
    return BuildConfig(build_dir=tmp_path, cores=2, max_log_lines=1000, settle_seconds=0)


def _release_index(handler: Any) -> ReleaseIndex:
    return ReleaseIndex(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _github(request: httpx.Request) -> httpx.Response:
    if "bitcoin" in request.url.path:
        return httpx.Response(200, json=[{"tag_name": "v27.0"}, {"tag_name": "v26.1"}])
    return httpx.Response(200, json=[{"tag_name": "v0.10.5"}])


def _offline(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("network unreachable")


def _make_controller(
    runtime: BackgroundRuntime,
    bus: MessageBus,
    config: BuildConfig,
    plain_env: dict[str, str],
    **kwargs: Any,
) -> BuildController:
    kwargs.setdefault("release_index", _release_index(_github))
    return BuildController(runtime, BREW, config, bus=bus, env=plain_env, **kwargs)


@pytest.fixture
def controller(
    runtime: BackgroundRuntime, bus: MessageBus, config: BuildConfig, plain_env: dict[str, str]
) -> BuildController:
    return _make_controller(runtime, bus, config, plain_env)


def _pump(
    controller: BuildController,
    futures: list[concurrent.futures.Future[Any]],
    timeout: float = 10.0,
) -> None:
    deadline = time.monotonic() + timeout
    while not all(f.done() for f in futures):
        assert time.monotonic() < deadline, "background work did not finish"
        controller.drain_messages()
        time.sleep(0.01)
    controller.drain_messages()


# ---------------------------------------------------------------------------
# Initial state
# ---------------------------------------------------------------------------


def test_initial_state(controller: BuildController, tmp_path: Path) -> None:
    assert controller.bitcoin_versions == [LOADING_PLACEHOLDER]
    assert controller.selected_electrs == LOADING_PLACEHOLDER
    assert controller.target is TargetSelection.BITCOIN
    assert controller.cores == 2
    assert controller.build_dir == tmp_path
    assert controller.brew_prefix == "/opt/homebrew"
    assert not controller.is_busy
    assert controller.modal is None


def test_banner(controller: BuildController) -> None:
    controller.append_banner("14.4.1", 8)
    assert "System: macOS 14.4.1\n" in controller.log.text
    assert "Homebrew: /opt/homebrew\n" in controller.log.text
    assert "CPU Cores: 8\n" in controller.log.text


# ---------------------------------------------------------------------------
# drain_messages
# ---------------------------------------------------------------------------


def test_drain_applies_messages(controller: BuildController, sender: BusSender) -> None:
    sender.log("hello\n")
    sender.progress(1.7)
    sender.versions_loaded(Target.BITCOIN, ["v27.0", "v26.1"])
    sender.versions_loaded(Target.ELECTRS, [])

    assert controller.drain_messages() == 4
    assert controller.log.text == "hello\n"
    assert controller.progress == 1.0
    assert controller.bitcoin_versions == ["v27.0", "v26.1"]
    assert controller.selected_bitcoin == "v27.0"
    assert controller.electrs_versions == []
    assert controller.selected_electrs == LOADING_PLACEHOLDER


def test_progress_clamped_low(controller: BuildController, sender: BusSender) -> None:
    sender.progress(-0.5)
    controller.drain_messages()
    assert controller.progress == 0.0


@pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_progress_resets_to_zero(
    controller: BuildController, sender: BusSender, value: float
) -> None:
    sender.progress(0.4)
    sender.progress(value)
    controller.drain_messages()
    assert controller.progress == 0.0


def test_task_done_resets_busy_and_progress(controller: BuildController, sender: BusSender) -> None:
    controller.is_busy = True
    sender.progress(0.6)
    sender.task_done()
    controller.drain_messages()
    assert not controller.is_busy
    assert controller.progress == 0.0


def test_dialog_becomes_alert(controller: BuildController, sender: BusSender) -> None:
    sender.dialog("Compilation Failed", "make failed", is_error=True)
    controller.drain_messages()
    assert controller.modal == AlertModal(title="Compilation Failed", message="make failed", is_error=True)
    controller.dismiss_alert()
    assert controller.modal is None


def test_log_listener_receives_text(
    runtime: BackgroundRuntime, bus: MessageBus, config: BuildConfig, plain_env: dict[str, str]
) -> None:
    seen: list[str] = []
    controller = _make_controller(runtime, bus, config, plain_env, on_log=seen.append)
    bus.sender().log("a\n")
    bus.sender().log("b\n")
    controller.drain_messages()
    assert seen == ["a\n", "b\n"]


def test_confirm_waits_while_alert_showing(
    controller: BuildController, bus: MessageBus, sender: BusSender, runtime: BackgroundRuntime
) -> None:
    sender.dialog("Note", "first")
    controller.drain_messages()
    assert isinstance(controller.modal, AlertModal)

    future = runtime.spawn(bus.sender().confirm("Install Missing Dependencies", "2 packages"))
    for _ in range(10):
        controller.drain_messages()
        assert isinstance(controller.modal, AlertModal)
        time.sleep(0.01)

    controller.dismiss_alert()
    deadline = time.monotonic() + 5
    while not isinstance(controller.modal, ConfirmModal):
        assert time.monotonic() < deadline
        controller.drain_messages()
        time.sleep(0.01)

    assert controller.modal.title == "Install Missing Dependencies"
    controller.answer_confirm(True)
    assert controller.modal is None
    assert future.result(timeout=5) is True


def test_dialog_during_confirm_is_queued(
    controller: BuildController, bus: MessageBus, sender: BusSender, runtime: BackgroundRuntime
) -> None:
    future = runtime.spawn(bus.sender().confirm("Q", "?"))
    deadline = time.monotonic() + 5
    while not isinstance(controller.modal, ConfirmModal):
        assert time.monotonic() < deadline
        controller.drain_messages()
        time.sleep(0.01)

    sender.dialog("First", "1")
    sender.dialog("Second", "2")
    controller.drain_messages()
    assert isinstance(controller.modal, ConfirmModal)

    controller.answer_confirm(False)
    assert future.result(timeout=5) is False
    controller.drain_messages()
    assert isinstance(controller.modal, AlertModal) and controller.modal.title == "First"
    controller.dismiss_alert()
    controller.drain_messages()
    assert isinstance(controller.modal, AlertModal) and controller.modal.title == "Second"


def test_answer_without_confirm_raises(controller: BuildController) -> None:
    with pytest.raises(RuntimeError):
        controller.answer_confirm(True)


# ---------------------------------------------------------------------------
# Dependency check
# ---------------------------------------------------------------------------


def test_check_deps_without_homebrew(
    runtime: BackgroundRuntime, bus: MessageBus, config: BuildConfig
) -> None:
    controller = BuildController(runtime, None, config, bus=bus)
    assert controller.spawn_check_deps() is None
    assert isinstance(controller.modal, AlertModal)
    assert controller.modal.title == "Homebrew Not Found"
    assert controller.modal.is_error
    assert not controller.is_busy


def test_check_deps_round_trip(
    runtime: BackgroundRuntime,
    bus: MessageBus,
    config: BuildConfig,
    plain_env: dict[str, str],
    fake_runner: FakeRunner,
) -> None:
    fake_runner.probes = {"rustc": "rustc 1.78.0", "cargo": "cargo 1.78.0"}
    controller = _make_controller(
        runtime,
        bus,
        config,
        plain_env,
        checker_factory=lambda s: DependencyChecker(s, fake_runner, packages=("boost",), settle_seconds=0),
    )

    future = controller.spawn_check_deps()
    assert future is not None
    assert controller.is_busy
    assert controller.spawn_check_deps() is None

    deadline = time.monotonic() + 10
    while not isinstance(controller.modal, ConfirmModal):
        assert time.monotonic() < deadline
        controller.drain_messages()
        time.sleep(0.01)
    controller.answer_confirm(False)

    _pump(controller, [future])
    assert not controller.is_busy
    assert isinstance(controller.modal, AlertModal)
    assert controller.modal.title == "Dependency Check"
    assert fake_runner.commands == []
    assert "Dependencies not installed" in controller.log.text


def test_close_answers_pending_confirm_no(
    runtime: BackgroundRuntime,
    bus: MessageBus,
    config: BuildConfig,
    plain_env: dict[str, str],
    fake_runner: FakeRunner,
) -> None:
    controller = _make_controller(
        runtime,
        bus,
        config,
        plain_env,
        checker_factory=lambda s: DependencyChecker(s, fake_runner, packages=("boost",), settle_seconds=0),
    )
    future = controller.spawn_check_deps()
    assert future is not None
    deadline = time.monotonic() + 10
    while not isinstance(controller.modal, ConfirmModal):
        assert time.monotonic() < deadline
        controller.drain_messages()
        time.sleep(0.01)

    controller.close()
    future.result(timeout=10)
    assert fake_runner.commands == []
    assert bus.closed


async def _shared_client() -> httpx.AsyncClient:
    return get_http_client()


def test_close_releases_shared_http_client(
    controller: BuildController, runtime: BackgroundRuntime
) -> None:
    client = runtime.spawn(_shared_client()).result(timeout=10)

    controller.close()

    assert client.is_closed


# ---------------------------------------------------------------------------
# Compile
# ---------------------------------------------------------------------------


def test_compile_not_ready(controller: BuildController) -> None:
    assert controller.spawn_compile() is None
    assert isinstance(controller.modal, AlertModal)
    assert controller.modal.title == "Not Ready"
    assert "Bitcoin" in controller.modal.message
    assert not controller.is_busy


def test_compile_round_trip(
    runtime: BackgroundRuntime,
    bus: MessageBus,
    config: BuildConfig,
    plain_env: dict[str, str],
    build_runner: FakeRunner,
    tmp_path: Path,
) -> None:
    def _job(s: BusSender) -> CompileJob:
        return CompileJob(s, BitcoinPipeline(s, build_runner), ElectrsPipeline(s, build_runner))

    controller = _make_controller(runtime, bus, config, plain_env, job_factory=_job)
    controller.selected_bitcoin = "v24.0"

    future = controller.spawn_compile()
    assert future is not None
    assert controller.is_busy
    assert controller.spawn_compile() is None

    _pump(controller, [future])
    results = future.result()
    assert results[0].success
    assert (tmp_path / "binaries" / "bitcoin-24.0" / "bitcoind").is_file()
    assert not controller.is_busy
    assert controller.progress == 0.0
    assert isinstance(controller.modal, AlertModal)
    assert controller.modal.title == "Compilation Complete"
    assert "$ make -j2" in controller.log.text


# ---------------------------------------------------------------------------
# Version refresh
# ---------------------------------------------------------------------------


def test_refresh_versions(controller: BuildController) -> None:
    futures = controller.spawn_refresh_versions()
    assert len(futures) == 2
    _pump(controller, futures)

    assert controller.bitcoin_versions == ["v27.0", "v26.1"]
    assert controller.selected_bitcoin == "v27.0"
    assert controller.selected_electrs == "v0.10.5"
    assert "✓ Loaded 2 Bitcoin versions" in controller.log.text
    assert controller.modal is None


def test_refresh_single_target(controller: BuildController) -> None:
    futures = controller.spawn_refresh_versions(Target.ELECTRS)
    _pump(controller, futures)
    assert controller.selected_electrs == "v0.10.5"
    assert controller.selected_bitcoin == LOADING_PLACEHOLDER


def test_refresh_offline_shows_network_note(
    runtime: BackgroundRuntime, bus: MessageBus, config: BuildConfig, plain_env: dict[str, str]
) -> None:
    controller = _make_controller(runtime, bus, config, plain_env, release_index=_release_index(_offline))
    _pump(controller, controller.spawn_refresh_versions(Target.BITCOIN))

    assert controller.bitcoin_versions == [LOADING_PLACEHOLDER]
    assert isinstance(controller.modal, AlertModal)
    assert controller.modal.title == "Network Error"
    assert controller.modal.is_error is False
    assert "Could not fetch Bitcoin versions" in controller.log.text
