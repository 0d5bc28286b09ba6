"""Interactive dependency resolution.

Probes the Homebrew catalogue, asks the observer before installing
anything, installs best-effort (one failure never stops the rest), then
makes sure the Rust toolchain is usable.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence

import structlog

from bitforge.bus.channel import BusSender
from bitforge.core.constants import BREW_PACKAGES
from bitforge.core.exceptions import ProcessError
from bitforge.pipeline.shell import shell_quote
from bitforge.process.runner import ProcessRunner

logger = structlog.get_logger(__name__)

_PREVIEW_COUNT = 5

RUST_MANUAL_INSTALL = (
    "Could not install Rust via Homebrew.\n\n"
    "Please install manually:\n"
    "1. Visit https://rustup.rs\n"
    "2. Run: curl --proto '=https' --tlsv1.2 -sSf https://sh.rustup.rs | sh\n"
    "3. Restart this app"
)

RUST_RESTART_HINT = (
    "Rust was installed but may not be in PATH.\n\n"
    "Please:\n"
    "1. Close and reopen this app\n"
    "2. OR manually add ~/.cargo/bin to your PATH"
)


def confirm_message(missing: Sequence[str]) -> str:
    """Summarise *missing* for the install prompt (first five names, then a count)."""
    count = len(missing)
    preview = ", ".join(missing[:_PREVIEW_COUNT])
    extra = f", and {count - _PREVIEW_COUNT} more" if count > _PREVIEW_COUNT else ""
    plural = "" if count == 1 else "s"
    return (
        f"Found {count} missing package{plural}:\n\n{preview}{extra}\n\n"
        "Install all missing packages now?"
    )


class DependencyChecker:
    """Check and optionally install build dependencies.

    Args:
        sender: Bus handle for log lines, dialogs and the install prompt.
        runner: Process runner; defaults to one bound to *sender*.
        packages: Homebrew formulae that must be present.
        settle_seconds: Pause between installing Rust and probing it again,
            giving Homebrew's symlinks time to appear.
    """

    def __init__(
        self,
        sender: BusSender,
        runner: ProcessRunner | None = None,
        packages: Sequence[str] = BREW_PACKAGES,
        settle_seconds: float = 2.0,
    ) -> None:
        self._sender = sender
        self._runner = runner or ProcessRunner(sender)
        self._packages = tuple(packages)
        self._settle_seconds = settle_seconds

    def __repr__(self) -> str:
        return f"DependencyChecker(packages={len(self._packages)})"

    async def check_and_resolve(self, installer: str, env: Mapping[str, str]) -> bool:
        """Run the full check.  Returns ``True`` once the Rust toolchain is ready.

        Declining the install prompt does not change the result; only the
        Rust toolchain decides it.
        """
        self._sender.log("\n=== Checking System Dependencies ===\n")
        self._sender.log(f"✓ Homebrew found at: {installer}\n")

        missing = await self.find_missing(installer, env)
        if missing:
            await self._offer_install(installer, missing, env)
        else:
            self._sender.log("\n✓ All Homebrew packages are installed!\n")

        ready = await self.ensure_rust(installer, env)
        self._sender.log("\n=== Dependency Check Complete ===\n")

        if ready:
            self._sender.log("\n✓ Rust toolchain is ready!\n")
            self._sender.dialog(
                "Dependency Check",
                "✅ All dependencies are installed and ready!\n\n"
                "You can now proceed with compilation.",
            )
        else:
            self._sender.log("\n⚠️  Rust toolchain needs attention (see messages above)\n")
            self._sender.dialog(
                "Dependency Check",
                "⚠️  Some dependencies need attention.\n\n"
                "Check the log for details.\n"
                "You may need to restart the app after installing Rust.",
            )
        logger.info("dependency_check_finished", ready=ready, missing=len(missing))
        return ready

    async def find_missing(self, installer: str, env: Mapping[str, str]) -> list[str]:
        self._sender.log("\nChecking Homebrew packages...\n")
        missing: list[str] = []
        for pkg in self._packages:
            if await self._runner.succeeds([installer, "list", pkg], env):
                self._sender.log(f"  ✓ {pkg}\n")
            else:
                self._sender.log(f"  ❌ {pkg} - not installed\n")
                missing.append(pkg)
        return missing

    async def _offer_install(
        self,
        installer: str,
        missing: list[str],
        env: Mapping[str, str],
    ) -> None:
        self._sender.log(f"\n⚠️  Missing Homebrew packages: {', '.join(missing)}\n")

        accepted = await self._sender.confirm(
            "Install Missing Dependencies", confirm_message(missing)
        )
        if not accepted:
            logger.info("install_declined", missing=missing)
            self._sender.log("\n⚠️  Dependencies not installed. Compilation may fail.\n")
            return

        failures = 0
        for pkg in missing:
            self._sender.log(f"\n📦 Installing {pkg}...\n")
            try:
                await self._runner.run(f"{shell_quote(installer)} install {shell_quote(pkg)}", env=env)
            except ProcessError as exc:
                failures += 1
                logger.warning("package_install_failed", package=pkg, error=str(exc))
                self._sender.log(f"❌ Failed to install {pkg}: {exc}\n")
                self._sender.dialog(
                    "Installation Failed",
                    f"Failed to install {pkg}:\n{exc}",
                    is_error=True,
                )
                continue
            self._sender.log(f"✓ {pkg} installed successfully\n")

        logger.info("packages_installed", attempted=len(missing), failed=failures)

    async def ensure_rust(self, installer: str, env: Mapping[str, str]) -> bool:
        """Make sure ``rustc`` and ``cargo`` run; install Rust through Homebrew if not.

        The install is followed by exactly one re-probe.  A fresh ``PATH``
        only reaches this process after a restart, so a failed re-probe
        asks the user to restart instead of polling.
        """
        self._sender.log("\n=== Checking Rust Toolchain ===\n")

        rustc = await self._runner.probe(["rustc", "--version"], env)
        if rustc is not None:
            self._sender.log(f"✓ rustc found: {rustc}\n")
        else:
            self._sender.log("❌ rustc not found in PATH\n")

        cargo = await self._runner.probe(["cargo", "--version"], env)
        if cargo is not None:
            self._sender.log(f"✓ cargo found: {cargo}\n")
        else:
            self._sender.log("❌ cargo not found in PATH\n")

        if rustc is not None and cargo is not None:
            return True

        self._sender.log("\n❌ Rust toolchain not found or incomplete!\n")
        self._sender.log("Installing Rust via Homebrew...\n")

        if not await self._runner.succeeds([installer, "info", "rust"], env):
            self._sender.log("❌ Rust formula not found in Homebrew\n")
            self._sender.dialog("Rust Installation Failed", RUST_MANUAL_INSTALL, is_error=True)
            return False

        self._sender.log("📦 Installing rust from Homebrew...\n")
        try:
            await self._runner.run(f"{shell_quote(installer)} install rust", env=env)
        except ProcessError as exc:
            self._sender.log(f"❌ Failed to install Rust: {exc}\n")
            self._sender.dialog(
                "Installation Error",
                f"Failed to install Rust: {exc}\n\nPlease install manually from https://rustup.rs",
                is_error=True,
            )
            return False

        self._sender.log("\nVerifying Rust installation...\n")
        await asyncio.sleep(self._settle_seconds)

        rustc = await self._runner.probe(["rustc", "--version"], env)
        cargo = await self._runner.probe(["cargo", "--version"], env)
        if rustc is not None and cargo is not None:
            self._sender.log(f"✓ rustc installed: {rustc}\n")
            self._sender.log(f"✓ cargo installed: {cargo}\n")
            return True

        self._sender.log("⚠️  Rust installed but binaries not yet in PATH. Restart the app.\n")
        self._sender.dialog("Rust Installation", RUST_RESTART_HINT)
        return False
