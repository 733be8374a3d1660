"""
Streaming scanner for Debian package indexes (Packages / Packages.gz).

The index is read line by line straight off the HTTP response and scanning
stops as soon as the kernel package has been located, so only a prefix of
a potentially large index is ever downloaded and decompressed.
"""

import zlib
from typing import Callable, Iterator, Optional

import requests

from pikernel.common import logger
from pikernel.config import ChannelMapping, IndexMatch
from pikernel.errors import DecodeError, PackageNotFoundError, TransportError


VERSION_PREFIX = "Version: "
PACKAGE_PREFIX = "Package: "

CHUNK_SIZE = 64 * 1024


class IndexMatcher:
    """
    Line predicate for scan_lines().

    Calling the matcher with a line returns True once scanning can stop.
    """

    def __init__(self):
        self.version: str = ""
        self.matched: bool = False

    def __call__(self, line: str) -> bool:
        raise NotImplementedError


class FilenamePrefixMatcher(IndexMatcher):
    """Match the stanza whose Filename field starts with a pool path prefix.

    The Version field precedes Filename inside a stanza, so the last version
    seen before the prefix line is the package's own.
    """

    def __init__(self, prefix: str):
        super().__init__()
        self.prefix = prefix

    def __call__(self, line: str) -> bool:
        if line.startswith(VERSION_PREFIX):
            self.version = line[len(VERSION_PREFIX):]
        if line.startswith(self.prefix):
            self.matched = True
            return True
        return False


class PackageNameMatcher(IndexMatcher):
    """Match the stanza introduced by an exact 'Package: <name>' line."""

    def __init__(self, name: str):
        super().__init__()
        self.package_line = PACKAGE_PREFIX + name
        self._in_stanza = False

    def __call__(self, line: str) -> bool:
        if line.startswith(PACKAGE_PREFIX):
            self._in_stanza = line == self.package_line
            return False
        if self._in_stanza and line.startswith(VERSION_PREFIX):
            self.version = line[len(VERSION_PREFIX):]
            self.matched = True
            return True
        return False


def make_matcher(channel: ChannelMapping) -> IndexMatcher:
    """Get the matcher for a channel's index format."""
    if channel.index_match == IndexMatch.FILENAME_PREFIX:
        return FilenamePrefixMatcher(channel.package_key)
    return PackageNameMatcher(channel.package_key)


def _iter_chunks(response: requests.Response, url: str, gunzip: bool) -> Iterator[bytes]:
    decoder = zlib.decompressobj(16 + zlib.MAX_WBITS) if gunzip else None
    try:
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if decoder is None:
                yield chunk
                continue
            try:
                data = decoder.decompress(chunk)
            except zlib.error as e:
                raise DecodeError("gzip", str(e)) from e
            if data:
                yield data
            if decoder.eof:
                return
    except requests.RequestException as e:
        raise TransportError(url, reason=str(e)) from e

    if decoder is not None:
        tail = decoder.flush()
        if tail:
            yield tail
        if not decoder.eof:
            raise DecodeError("gzip", "unexpected end of compressed stream")


def _iter_lines(chunks: Iterator[bytes]) -> Iterator[str]:
    pending = b""
    for chunk in chunks:
        pending += chunk
        *lines, pending = pending.split(b"\n")
        for line in lines:
            yield line.rstrip(b"\r").decode("utf-8", errors="replace")
    if pending:
        yield pending.rstrip(b"\r").decode("utf-8", errors="replace")


def scan_lines(
    session: requests.Session,
    url: str,
    stop_scanning: Callable[[str], bool],
    compressed: Optional[bool] = None,
    timeout: int = 30,
) -> None:
    """
    Stream a text file from a URL and feed it line by line to a predicate.

    Args:
        session: HTTP session
        url: Index URL
        stop_scanning: Called for every line; returning True ends the scan
        compressed: Force gzip decoding on or off (default: by '.gz' suffix)
        timeout: Request timeout in seconds

    Raises:
        TransportError: Network failure or non-success status
        DecodeError: Malformed gzip stream
    """
    gunzip = url.endswith(".gz") if compressed is None else compressed

    try:
        response = session.get(url, stream=True, timeout=timeout)
    except requests.RequestException as e:
        raise TransportError(url, reason=str(e)) from e

    with response:
        if not response.ok:
            raise TransportError(url, status=response.status_code, reason=response.reason or "")

        for line in _iter_lines(_iter_chunks(response, url, gunzip)):
            if stop_scanning(line):
                break


def find_package_version(
    session: requests.Session,
    channel: ChannelMapping,
    timeout: int = 30,
) -> str:
    """
    Find the kernel package version published in a channel's index.

    Returns:
        Raw Version field value

    Raises:
        PackageNotFoundError: If the index has no matching package entry
    """
    logger.info(f"checking: {channel.index_url}")
    matcher = make_matcher(channel)
    scan_lines(session, channel.index_url, matcher, timeout=timeout)

    if not matcher.matched:
        raise PackageNotFoundError(
            f"could not find kernel version in package list {channel.index_url} "
            f"({channel.package_key})"
        )
    return matcher.version
