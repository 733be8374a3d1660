"""
Resolve an upstream version tag to the kernel commit it was built from.

Strategies are tried in order; a later strategy only runs when every
earlier one failed, and their failure reasons are reported together.
"""

import lzma
import re
import tarfile
import zlib
from typing import List, Optional, Sequence

import requests
import urllib3
from pydantic import ValidationError

from pikernel.common import logger
from pikernel.config import ArchiveMarker, ChannelMapping, KernelConfig
from pikernel.errors import (
    CommitResolutionError,
    DecodeError,
    MarkerNotFoundError,
    PiKernelError,
    TagNotFoundError,
    TransportError,
)
from pikernel.models import Commit, ResolutionAttempt


CHANGELOG_COMMIT_PATTERN = re.compile(r"\blinux commit:\s*([0-9a-f]{7,40})\b", re.IGNORECASE)


class ResolverStrategy:
    """Base class for commit resolver strategies."""

    name = "strategy"

    def resolve(self, tag: str) -> str:
        """Return the commit for a tag or raise a PiKernelError."""
        raise NotImplementedError

    def attempt(self, tag: str) -> ResolutionAttempt:
        """Run resolve() and record the outcome instead of raising."""
        try:
            return ResolutionAttempt(strategy=self.name, commit=self.resolve(tag))
        except PiKernelError as e:
            return ResolutionAttempt(strategy=self.name, error=e)


class GitHubTagStrategy(ResolverStrategy):
    """Look up the commit a tag points to through the GitHub refs API."""

    name = "github-tag"

    def __init__(
        self,
        session: requests.Session,
        tag_api_url: str,
        token: Optional[str] = None,
        timeout: int = 30,
    ):
        self.session = session
        self.tag_api_url = tag_api_url
        self.token = token
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get_json(self, url: str):
        try:
            response = self.session.get(url, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(url, reason=str(e)) from e

        if response.status_code >= 500:
            raise TransportError(url, status=response.status_code, reason=response.reason or "")

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError("json", f"{url}: {e}") from e

    def resolve(self, tag: str) -> str:
        url = self.tag_api_url + tag
        logger.info(f"checking {url}")
        data = self._get_json(url)

        if not isinstance(data, dict):
            raise TagNotFoundError(f"could not get sha for tag {tag!r}: ambiguous ref")

        obj = data.get("object") or {}
        if not obj.get("sha"):
            raise TagNotFoundError(
                f"could not get sha for tag {tag!r}: {data.get('message', 'no object')}"
            )

        # annotated tags point to a tag object, which in turn points to the commit
        if obj.get("type") == "tag":
            logger.debug(f"tag {tag!r} is annotated, following {obj.get('url')}")
            tag_object = self._get_json(obj.get("url") or "")
            obj = (tag_object.get("object") if isinstance(tag_object, dict) else None) or {}
            if not obj.get("sha"):
                raise TagNotFoundError(f"annotated tag {tag!r} has no target object")

        if obj.get("type", "commit") != "commit":
            raise TagNotFoundError(f"tag {tag!r} points to a {obj['type']}, not a commit")

        try:
            return Commit(sha=obj["sha"]).sha
        except ValidationError as e:
            raise DecodeError("json", f"invalid commit for tag {tag!r}: {obj['sha']!r}") from e


class GitHashFileMarker:
    """Commit recorded as the whole content of an 'extra/git_hash' file."""

    def __init__(self, suffix: str = "/extra/git_hash"):
        self.suffix = suffix

    def matches(self, member_name: str) -> bool:
        return member_name.endswith(self.suffix)

    def extract(self, content: str) -> Optional[str]:
        try:
            return Commit(sha=content).sha
        except ValidationError as e:
            raise DecodeError("archive", f"invalid commit in {self.suffix}: {content.strip()!r}") from e

    def __str__(self) -> str:
        return self.suffix


class ChangelogCommitMarker:
    """Commit mentioned by a 'Linux commit: <sha>' line in debian/changelog."""

    def __init__(self, suffix: str = "debian/changelog"):
        self.suffix = suffix

    def matches(self, member_name: str) -> bool:
        return member_name == self.suffix or member_name.endswith("/" + self.suffix)

    def extract(self, content: str) -> Optional[str]:
        for line in content.splitlines():
            commit = extract_changelog_commit(line)
            if commit:
                return commit
        return None

    def __str__(self) -> str:
        return self.suffix


def extract_changelog_commit(line: str) -> Optional[str]:
    """Extract a commit from a changelog line like '* Linux commit: abc1234'."""
    match = CHANGELOG_COMMIT_PATTERN.search(line)
    return match.group(1).lower() if match else None


def make_marker(kind: ArchiveMarker):
    """Get the archive marker for a channel."""
    if kind == ArchiveMarker.GIT_HASH_FILE:
        return GitHashFileMarker()
    return ChangelogCommitMarker()


class SourceArchiveStrategy(ResolverStrategy):
    """Download the source archive for a tag and read the commit from a marker file."""

    name = "source-archive"

    def __init__(
        self,
        session: requests.Session,
        channel: ChannelMapping,
        marker=None,
        timeout: int = 30,
    ):
        self.session = session
        self.channel = channel
        self.marker = marker or make_marker(channel.archive_marker)
        self.timeout = timeout

    def resolve(self, tag: str) -> str:
        url = self.channel.archive_url(tag)
        logger.info(f"checking {url}")
        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(url, reason=str(e)) from e

        with response:
            if not response.ok:
                raise TransportError(url, status=response.status_code, reason=response.reason or "")
            return self._scan_archive(response, url)

    def _scan_archive(self, response: requests.Response, url: str) -> str:
        try:
            with tarfile.open(fileobj=response.raw, mode="r|*") as tar:
                for member in tar:
                    if not member.isfile() or not self.marker.matches(member.name):
                        continue
                    f = tar.extractfile(member)
                    content = f.read().decode("utf-8", errors="replace") if f else ""
                    commit = self.marker.extract(content)
                    if commit:
                        return commit
        except (tarfile.TarError, lzma.LZMAError, zlib.error, EOFError) as e:
            raise DecodeError("archive", f"{url}: {e}") from e
        except (requests.RequestException, urllib3.exceptions.HTTPError) as e:
            # response.raw is urllib3's stream, its read errors are not wrapped by requests
            raise TransportError(url, reason=str(e)) from e

        raise MarkerNotFoundError(f"{self.marker} with a commit not found in {url}")


class CommitResolver:
    """Try resolver strategies in order until one returns a commit."""

    def __init__(self, strategies: Sequence[ResolverStrategy]):
        self.strategies = list(strategies)

    def resolve(self, tag: str) -> str:
        """
        Resolve a tag to a commit.

        Raises:
            CommitResolutionError: If every strategy failed
        """
        attempts: List[ResolutionAttempt] = []
        for strategy in self.strategies:
            result = strategy.attempt(tag)
            if result.ok:
                return result.commit
            logger.warning(f"{strategy.name}: {result.error}")
            attempts.append(result)
        raise CommitResolutionError(tag, attempts)


def build_resolver(config: KernelConfig, session: requests.Session) -> CommitResolver:
    """Create the default resolver: GitHub tags first, then the source archive."""
    return CommitResolver([
        GitHubTagStrategy(
            session,
            config.tag_api_url,
            token=config.github_token,
            timeout=config.network_timeout,
        ),
        SourceArchiveStrategy(session, config.channel_mapping, timeout=config.network_timeout),
    ])
