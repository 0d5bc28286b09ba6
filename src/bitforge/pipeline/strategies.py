"""Bitcoin Core build strategies.

One coroutine per :class:`~bitforge.core.constants.BuildStrategy` variant.
Which one runs is decided in exactly one place,
:meth:`bitforge.pipeline.compiler.BitcoinPipeline.compile`.
"""

from __future__ import annotations

from pathlib import Path

from bitforge.core.constants import PipelineState
from bitforge.pipeline.stages import BuildContext

AUTOTOOLS_BINARIES: tuple[str, ...] = (
    "bitcoind",
    "bitcoin-cli",
    "bitcoin-tx",
    "bitcoin-wallet",
)

CMAKE_BINARIES: tuple[str, ...] = (
    "bitcoind",
    "bitcoin-cli",
    "bitcoin-tx",
    "bitcoin-wallet",
    "bitcoin-util",
)


async def build_autotools(ctx: BuildContext) -> list[Path]:
    """``autogen.sh`` → ``configure`` → ``make``; binaries land in ``bin/``."""
    ctx.sender.log("\n🔨 Building with Autotools...\n")
    ctx.tracker.advance(PipelineState.CONFIGURING)

    ctx.sender.log("\n⚙️  Running autogen.sh...\n")
    await ctx.run("./autogen.sh", "autogen.sh failed")

    ctx.sender.log("\n⚙️  Configuring (wallet support disabled)...\n")
    await ctx.run("./configure --disable-wallet --disable-gui", "./configure failed")

    ctx.sender.progress(0.5)
    ctx.tracker.advance(PipelineState.BUILDING)
    ctx.sender.log(f"\n🔧 Compiling with {ctx.cores} cores...\n")
    await ctx.run(f"make -j{ctx.cores}", "make failed")

    bin_dir = ctx.src_dir / "bin"
    return [bin_dir / name for name in AUTOTOOLS_BINARIES]


async def build_cmake(ctx: BuildContext) -> list[Path]:
    """``cmake -B build`` → ``cmake --build``; binaries land in ``build/bin/``."""
    ctx.sender.log("\n🔨 Building with CMake...\n")
    ctx.tracker.advance(PipelineState.CONFIGURING)

    ctx.sender.log("\n⚙️  Configuring (wallet support disabled)...\n")
    await ctx.run(
        "cmake -B build -DENABLE_WALLET=OFF -DENABLE_IPC=OFF",
        "cmake configure failed",
    )

    ctx.sender.progress(0.5)
    ctx.tracker.advance(PipelineState.BUILDING)
    ctx.sender.log(f"\n🔧 Compiling with {ctx.cores} cores...\n")
    await ctx.run(f"cmake --build build -j{ctx.cores}", "cmake build failed")

    bin_dir = ctx.src_dir / "build" / "bin"
    return [bin_dir / name for name in CMAKE_BINARIES]
