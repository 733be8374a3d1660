"""
Exception hierarchy shared by the update checker and the build driver.
"""

from typing import List, Optional, Sequence


class PiKernelError(Exception):
    """Base class for all pikernel failures."""
    pass


class ConfigError(PiKernelError):
    """Exception raised for invalid configuration values."""
    pass


class TransportError(PiKernelError):
    """A remote endpoint could not be reached or answered with a non-success status."""

    def __init__(self, url: str, status: Optional[int] = None, reason: str = ""):
        self.url = url
        self.status = status
        self.reason = reason
        message = f"request to {url} failed"
        if status is not None:
            message += f" with status {status}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class DecodeError(PiKernelError):
    """A response body could not be decoded (gzip, json, tar/xz)."""

    def __init__(self, stage: str, reason: str):
        self.stage = stage
        self.reason = reason
        super().__init__(f"could not decode {stage}: {reason}")


class NotFoundError(PiKernelError):
    """The remote system was reachable but the requested data was absent."""
    pass


class PackageNotFoundError(NotFoundError):
    pass


class TagNotFoundError(NotFoundError):
    pass


class MarkerNotFoundError(NotFoundError):
    pass


class CommandError(PiKernelError):
    """An external command exited with a non-zero status."""

    def __init__(self, cmd: Sequence[str], returncode: int, reason: str = ""):
        self.cmd = list(cmd)
        self.returncode = returncode
        message = f"command {' '.join(self.cmd)!r} exited with status {returncode}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class CommitResolutionError(PiKernelError):
    """Every commit resolver strategy failed."""

    def __init__(self, tag: str, attempts: List):
        self.tag = tag
        self.attempts = attempts
        reasons = "; ".join(f"{a.strategy}: {a.error}" for a in attempts)
        super().__init__(f"could not resolve commit for tag {tag!r} ({reasons})")
