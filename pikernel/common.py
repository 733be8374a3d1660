"""
Common utility functions for pikernel.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler

from pikernel.errors import CommandError
from pikernel.models import PackageVersion


# Rich console for diagnostics; stdout is reserved for machine-readable results
console = Console(stderr=True)


def setup_logging(
    name: str = "pikernel",
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Set up logging with Rich handler."""
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Clear existing handlers
    logger.handlers.clear()

    console_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


# Default logger
logger = setup_logging()


class CommandRunner:
    """
    Run external commands (git, docker).

    stderr is never captured: it goes straight to the operator's terminal,
    so a failing tool's own diagnostics are shown unmodified.
    """

    def output(self, cmd: Sequence[str], cwd: Optional[Path] = None) -> str:
        """
        Run a command and return its stdout.

        Args:
            cmd: Command and arguments as list
            cwd: Working directory

        Returns:
            Captured stdout as text

        Raises:
            CommandError: If the command is missing or exits non-zero
        """
        return self._run(cmd, cwd, capture=True)

    def run(self, cmd: Sequence[str], cwd: Optional[Path] = None) -> None:
        """Run a command with both output streams inherited."""
        self._run(cmd, cwd, capture=False)

    def _run(self, cmd: Sequence[str], cwd: Optional[Path], capture: bool) -> str:
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                list(cmd),
                cwd=cwd,
                stdout=subprocess.PIPE if capture else None,
                stderr=None,
                text=True,
            )
        except FileNotFoundError as e:
            raise CommandError(cmd, 127, str(e)) from e

        if result.returncode != 0:
            raise CommandError(cmd, result.returncode)
        return result.stdout or ""


def normalize_version(version: str) -> str:
    """
    Map a package Version field to the upstream tag it was built from.

    Args:
        version: Raw version, e.g. '1:6.12.62-1+rpt1~bpo12'

    Returns:
        Bare upstream version, e.g. '6.12.62'
    """
    return PackageVersion.parse(version).tag


def split_lines(text: str) -> List[str]:
    """Split command output into non-empty stripped lines."""
    return [line.strip() for line in text.splitlines() if line.strip()]
