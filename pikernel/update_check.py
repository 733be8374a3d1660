"""
Decide whether the pinned kernel source lags behind the published package.
"""

from pathlib import Path
from typing import Optional

import requests

from pikernel.common import logger, normalize_version
from pikernel.config import KernelConfig, PinMode
from pikernel.local_pin import LocalPinReader
from pikernel.models import UpdateResult, UpdateStatus
from pikernel.package_index import find_package_version
from pikernel.resolver import CommitResolver


def consume_force_marker(marker: Path) -> bool:
    """Delete the force marker if present; return whether it was there."""
    if not marker.exists():
        return False
    marker.unlink()
    logger.info(f"force marker {marker} found and removed")
    return True


def decide_update(latest: str, current: str, force_marker: Path) -> UpdateStatus:
    """
    Compare the upstream commit with the local pin.

    The force marker is only consumed when the commits are equal; with
    differing commits it is left on disk for the next run.
    """
    if latest != current:
        return UpdateStatus.UPDATE_AVAILABLE
    if consume_force_marker(force_marker):
        return UpdateStatus.FORCED
    logger.info("already up to date")
    return UpdateStatus.UP_TO_DATE


class UpdateChecker:
    """Run the full update check for one channel."""

    def __init__(
        self,
        config: KernelConfig,
        session: requests.Session,
        resolver: CommitResolver,
        pin_reader: LocalPinReader,
    ):
        self.config = config
        self.session = session
        self.resolver = resolver
        self.pin_reader = pin_reader

    def latest_tag(self) -> str:
        """Get the upstream tag of the published kernel package."""
        version = find_package_version(
            self.session,
            self.config.channel_mapping,
            timeout=self.config.network_timeout,
        )
        tag = normalize_version(version)
        logger.info(f"latest version: {tag}")
        return tag

    def resolve(self, tag: str) -> str:
        commit = self.resolver.resolve(tag)
        logger.info(f"latest commit: {commit}")
        return commit

    def check(self) -> UpdateResult:
        """
        Check for a kernel update.

        Returns:
            UpdateResult; its commit is set whenever it has to be emitted
        """
        tag = self.latest_tag()

        if self.config.pin_mode == PinMode.TAGS:
            return self._check_tags(tag)

        latest = self.resolve(tag)
        current = self.pin_reader.commit(self.config.pinned_source)
        status = decide_update(latest, current, self.config.force_marker)
        return UpdateResult(status=status, tag=tag, commit=latest, current=current)

    def _check_tags(self, tag: str) -> UpdateResult:
        tags = self.pin_reader.tags_at_head(self.config.pinned_source)
        status: Optional[UpdateStatus] = None
        if tag in tags:
            if not consume_force_marker(self.config.force_marker):
                logger.info("already up to date")
                return UpdateResult(status=UpdateStatus.UP_TO_DATE, tag=tag, current=tag)
            status = UpdateStatus.FORCED

        latest = self.resolve(tag)
        return UpdateResult(
            status=status or UpdateStatus.UPDATE_AVAILABLE,
            tag=tag,
            commit=latest,
        )
