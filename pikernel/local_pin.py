"""
Read the kernel commit currently pinned in the local checkout.
"""

from pathlib import Path
from typing import Optional, Set

from pikernel.common import CommandRunner, logger, split_lines


class LocalPinReader:
    """Query git for the pinned kernel source state."""

    def __init__(self, runner: CommandRunner, repo_dir: Optional[Path] = None):
        self.runner = runner
        self.repo_dir = repo_dir or Path(".")

    def commit(self, path: str) -> str:
        """
        Get the commit recorded for a submodule path in HEAD.

        Args:
            path: Submodule path relative to the repository root

        Returns:
            Commit identifier
        """
        out = self.runner.output(["git", "rev-parse", f"HEAD:{path}"], cwd=self.repo_dir)
        sha = out.strip()
        logger.info(f"submodule commit: {sha}")
        return sha

    def tags_at_head(self, path: str) -> Set[str]:
        """Get the tags pointing exactly at the checkout's current commit."""
        out = self.runner.output(
            ["git", "-C", path, "tag", "--points-at", "HEAD"],
            cwd=self.repo_dir,
        )
        tags = set(split_lines(out))
        logger.info(f"tags at HEAD of {path}: {', '.join(sorted(tags)) or '(none)'}")
        return tags
