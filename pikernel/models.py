"""
Data models for pikernel using Pydantic for validation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
import re

from pydantic import BaseModel, field_validator


COMMIT_PATTERN = re.compile(r"^[0-9a-f]{7,40}$")


class PackageVersion(BaseModel):
    """A Debian package version split into epoch, upstream, revision and backport parts."""
    raw: str
    epoch: Optional[str] = None
    upstream: str
    revision: Optional[str] = None
    backport: Optional[str] = None

    @classmethod
    def parse(cls, version_str: str) -> "PackageVersion":
        """
        Parse a version like '1:6.12.62-1+rpt1~bpo12'.

        Components are stripped in epoch, revision, backport order; each
        separator is cut at its first occurrence.
        """
        epoch, sep, rest = version_str.partition(":")
        if not sep:
            epoch, rest = None, version_str

        upstream, sep, revision = rest.partition("-")
        if not sep:
            revision = None

        upstream, sep, backport = upstream.partition("~")
        if not sep:
            backport = None
        if revision is not None and backport is None and "~" in revision:
            revision, _, backport = revision.partition("~")

        return cls(
            raw=version_str,
            epoch=epoch,
            upstream=upstream,
            revision=revision,
            backport=backport,
        )

    @property
    def tag(self) -> str:
        """Get the upstream tag name this package was built from."""
        return self.upstream

    def __str__(self) -> str:
        return self.raw


class UpdateStatus(str, Enum):
    """Outcome of an update check."""
    UP_TO_DATE = "up-to-date"
    UPDATE_AVAILABLE = "update-available"
    FORCED = "forced"


class UpdateResult(BaseModel):
    """Result of comparing the upstream commit with the local pin."""
    status: UpdateStatus
    tag: str
    commit: Optional[str] = None
    current: Optional[str] = None

    @property
    def should_emit(self) -> bool:
        """Whether the commit must be printed for the pin updater."""
        return self.status in (UpdateStatus.UPDATE_AVAILABLE, UpdateStatus.FORCED)


class Commit(BaseModel):
    """A validated commit identifier."""
    sha: str

    @field_validator("sha")
    @classmethod
    def validate_sha(cls, v: str) -> str:
        """Validate commit identifier format."""
        v = v.strip().lower()
        if not COMMIT_PATTERN.match(v):
            raise ValueError(f"Invalid commit identifier: {v!r}")
        return v


@dataclass
class ResolutionAttempt:
    """Outcome of one commit resolver strategy."""
    strategy: str
    commit: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.commit is not None
