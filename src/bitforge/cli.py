"""``bitforge`` command line: a terminal observer for the build engine."""

from __future__ import annotations

import concurrent.futures
import os
import sys
import time
from collections.abc import Sequence
from pathlib import Path

import click
from pydantic import ValidationError

from bitforge.__version__ import __version__
from bitforge.app.controller import AlertModal, BuildController, ConfirmModal
from bitforge.core.config import BuildConfig
from bitforge.core.constants import LOADING_PLACEHOLDER, Target, TargetSelection
from bitforge.core.environment import host_os_version
from bitforge.core.exceptions import ConfigurationError
from bitforge.utils.async_helpers import BackgroundRuntime
from bitforge.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

POLL_INTERVAL = 0.1


def _write_log(text: str) -> None:
    click.echo(text, nl=False)


def _settle_modals(controller: BuildController, assume_yes: bool) -> bool:
    """Show every pending modal.  Returns True if an error alert was shown."""
    failed = False
    while controller.modal is not None:
        modal = controller.modal
        if isinstance(modal, AlertModal):
            prefix = "ERROR" if modal.is_error else "NOTE"
            click.echo(f"\n[{prefix}] {modal.title}\n{modal.message}\n", err=modal.is_error)
            failed = failed or modal.is_error
            controller.dismiss_alert()
        elif isinstance(modal, ConfirmModal):
            click.echo(f"\n{modal.title}\n{modal.message}")
            answer = True if assume_yes else click.confirm("Proceed?", default=False)
            controller.answer_confirm(answer)
        controller.drain_messages()
    return failed


def watch(
    controller: BuildController,
    futures: Sequence[concurrent.futures.Future[object]],
    *,
    assume_yes: bool = False,
    interval: float = POLL_INTERVAL,
) -> bool:
    """Poll the controller until every future has finished.

    Returns:
        True if any error dialog was shown or any task raised.
    """
    failed = False
    while True:
        finished = all(f.done() for f in futures)
        controller.drain_messages()
        failed = _settle_modals(controller, assume_yes) or failed
        if finished:
            break
        time.sleep(interval)

    for future in futures:
        if future.cancelled():
            failed = True
            continue
        exc = future.exception()
        if exc is not None:
            logger.error("background_task_failed", error=str(exc), error_type=type(exc).__name__)
            click.echo(f"Error: {exc}", err=True)
            failed = True
    return failed


def _run_tasks(
    controller: BuildController,
    futures: Sequence[concurrent.futures.Future[object]],
    assume_yes: bool,
) -> bool:
    try:
        return watch(controller, futures, assume_yes=assume_yes)
    except KeyboardInterrupt:
        click.echo("\nInterrupted, stopping background work...", err=True)
        for future in futures:
            future.cancel()
        raise


@click.group()
@click.version_option(__version__, prog_name="bitforge")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Diagnostic log level (default: BITFORGE_LOG_LEVEL or INFO).",
)
@click.option("--json-logs", is_flag=True, help="Render diagnostics as JSON.")
@click.pass_context
def main(ctx: click.Context, log_level: str | None, json_logs: bool) -> None:
    """Compile Bitcoin Core and Electrs from source."""
    try:
        config = BuildConfig.from_env()
    except (ConfigurationError, ValidationError) as exc:
        raise click.ClickException(f"Invalid BITFORGE_* environment: {exc}") from exc
    update: dict[str, object] = {}
    if log_level:
        update["log_level"] = log_level.upper()
    if json_logs:
        update["json_logs"] = True
    if update:
        config = config.model_copy(update=update)
    configure_logging(config.log_level, json=config.json_logs)
    ctx.obj = config


@main.command()
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Install missing packages without asking.")
@click.pass_obj
def deps(config: BuildConfig, assume_yes: bool) -> None:
    """Check (and optionally install) Homebrew build dependencies."""
    with BackgroundRuntime() as runtime:
        controller = BuildController.discover(runtime, config, on_log=_write_log)
        try:
            future = controller.spawn_check_deps()
            failed = _run_tasks(controller, [future] if future else [], assume_yes)
        finally:
            controller.close()
    sys.exit(1 if failed else 0)


@main.command()
@click.pass_obj
def versions(config: BuildConfig) -> None:
    """List the newest stable releases of Bitcoin Core and Electrs."""
    with BackgroundRuntime() as runtime:
        controller = BuildController.discover(runtime, config, on_log=_write_log)
        try:
            failed = _run_tasks(controller, controller.spawn_refresh_versions(), False)
        finally:
            controller.close()

    for title, listing in (
        ("Bitcoin Core", controller.bitcoin_versions),
        ("Electrs", controller.electrs_versions),
    ):
        click.echo(f"\n{title}:")
        if not listing or listing == [LOADING_PLACEHOLDER]:
            click.echo("  (unavailable)")
            failed = True
            continue
        for tag in listing:
            click.echo(f"  {tag}")
    sys.exit(1 if failed else 0)


@main.command()
@click.option(
    "--target",
    type=click.Choice([t.value for t in TargetSelection]),
    default=None,
    help="What to build (default: BITFORGE_TARGET or bitcoin).",
)
@click.option("--bitcoin-version", default=None, help="Bitcoin Core tag, e.g. v27.0 (default: newest).")
@click.option("--electrs-version", default=None, help="Electrs tag, e.g. v0.10.5 (default: newest).")
@click.option("--cores", type=click.IntRange(min=1), default=None, help="Parallel build jobs.")
@click.option(
    "--build-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Where sources are checked out and binaries are collected.",
)
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Answer yes to every prompt.")
@click.pass_obj
def build(
    config: BuildConfig,
    target: str | None,
    bitcoin_version: str | None,
    electrs_version: str | None,
    cores: int | None,
    build_dir: Path | None,
    assume_yes: bool,
) -> None:
    """Build the selected target(s) and collect their binaries."""
    with BackgroundRuntime() as runtime:
        controller = BuildController.discover(runtime, config, on_log=_write_log)
        if target is not None:
            controller.target = TargetSelection(target)
        if cores is not None:
            controller.cores = cores
        if build_dir is not None:
            controller.build_dir = build_dir.expanduser()
        controller.append_banner(host_os_version(), os.cpu_count() or 1)
        _write_log(controller.log.text)

        try:
            pending: list[concurrent.futures.Future[object]] = []
            if bitcoin_version:
                controller.selected_bitcoin = bitcoin_version
            elif controller.target.includes(Target.BITCOIN):
                pending += controller.spawn_refresh_versions(Target.BITCOIN)
            if electrs_version:
                controller.selected_electrs = electrs_version
            elif controller.target.includes(Target.ELECTRS):
                pending += controller.spawn_refresh_versions(Target.ELECTRS)

            failed = _run_tasks(controller, pending, assume_yes)
            if not failed:
                future = controller.spawn_compile()
                failed = _run_tasks(controller, [future] if future else [], assume_yes)
                if future is None:
                    failed = True
                elif not future.cancelled() and future.exception() is None:
                    failed = failed or any(not r.success for r in future.result())
        finally:
            controller.close()
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
