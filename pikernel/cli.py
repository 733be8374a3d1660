"""
Command-line interface for pikernel.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
import requests

from pikernel import __version__
from pikernel.build import KernelCompiler
from pikernel.common import CommandRunner, console, logger, setup_logging
from pikernel.config import KernelConfig, PinMode, SUPPORTED_CHANNELS
from pikernel.local_pin import LocalPinReader
from pikernel.resolver import build_resolver
from pikernel.update_check import UpdateChecker


def _is_verbose(ctx: click.Context, verbose: bool) -> bool:
    return verbose or bool(ctx.obj and ctx.obj.get("verbose"))


def _configure_logging(config: KernelConfig, verbose: bool) -> None:
    setup_logging(
        "pikernel",
        level=logging.DEBUG if verbose else logging.INFO,
        log_file=config.log_file,
    )


def _fail(e: Exception, verbose: bool) -> None:
    logger.error(str(e))
    if verbose:
        console.print_exception()
    sys.exit(1)


def build_update_checker(config: KernelConfig) -> UpdateChecker:
    """Wire the update checker to real HTTP and git."""
    session = requests.Session()
    return UpdateChecker(
        config,
        session,
        build_resolver(config, session),
        LocalPinReader(CommandRunner(), config.repo_dir),
    )


def build_compiler(config: KernelConfig) -> KernelCompiler:
    """Wire the build driver to the real container runtime."""
    return KernelCompiler(config, CommandRunner())


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx, verbose: bool):
    """
    Raspberry Pi kernel maintenance tools.

    Detect upstream kernel updates and cross-compile the pinned kernel.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@click.command("check-update")
@click.option("--channel", type=click.Choice(SUPPORTED_CHANNELS),
              help="Distribution channel to check (default: PIKERNEL_CHANNEL or bookworm)")
@click.option("--pin-mode", type=click.Choice([m.value for m in PinMode]),
              help="Compare against the submodule commit or the tags at its HEAD")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def check_update(ctx, channel: Optional[str], pin_mode: Optional[str], verbose: bool):
    """
    Check whether upstream published a newer kernel.

    Prints the new commit on stdout when the pinned source must be updated;
    prints nothing when it is already up to date.
    """
    verbose = _is_verbose(ctx, verbose)
    try:
        config = KernelConfig.from_env()
        if channel:
            config.channel = channel
        if pin_mode:
            config.pin_mode = PinMode(pin_mode)
        _configure_logging(config, verbose)

        result = build_update_checker(config).check()
    except Exception as e:
        _fail(e, verbose)
        return

    if result.should_emit:
        click.echo(result.commit)


@click.command("compile")
@click.option("--kernel", "kernel_dir", default="./linux-sources", type=click.Path(),
              help="Folder containing the kernel to compile")
@click.option("--defconfig", default="bcmrpi_defconfig",
              help="Base configuration target")
@click.option("--dist", "dist_dir", default="./dist", type=click.Path(),
              help="Output folder for the boot artifacts")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def compile_kernel(ctx, kernel_dir: str, defconfig: str, dist_dir: str, verbose: bool):
    """
    Cross-compile the kernel in a container.

    Produces vmlinuz, device-tree blobs, the modules tree and the static
    boot files in the dist folder.
    """
    verbose = _is_verbose(ctx, verbose)
    try:
        config = KernelConfig.from_env()
        config.kernel_dir = Path(kernel_dir)
        config.defconfig = defconfig
        config.dist_dir = Path(dist_dir)
        _configure_logging(config, verbose)

        build_compiler(config).compile()
    except Exception as e:
        _fail(e, verbose)


main.add_command(check_update)
main.add_command(compile_kernel)


if __name__ == "__main__":
    main()
