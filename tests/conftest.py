"""Shared fakes for network and subprocess access."""

import gzip
import io
import tarfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from pikernel.errors import CommandError


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(
        self,
        body: bytes = b"",
        status_code: int = 200,
        json_data=None,
        reason: str = "OK",
        chunk_size: Optional[int] = None,
    ):
        self.status_code = status_code
        self.reason = reason
        self._body = body
        self._json = json_data
        self._chunk_size = chunk_size
        self.raw = io.BytesIO(body)
        self.chunks_served = 0
        self.closed = False

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def iter_content(self, chunk_size: int = 1):
        size = self._chunk_size or chunk_size
        for start in range(0, len(self._body), size):
            self.chunks_served += 1
            yield self._body[start:start + size]

    def json(self):
        if self._json is None:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._json

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class FakeSession:
    """Serves canned responses by URL and records every request."""

    def __init__(self, routes: Optional[Dict[str, object]] = None):
        self.routes: Dict[str, object] = dict(routes or {})
        self.requested: List[str] = []
        self.responses: List[FakeResponse] = []
        self.headers: List[dict] = []

    def get(self, url: str, **kwargs):
        self.requested.append(url)
        self.headers.append(kwargs.get("headers") or {})
        route = self.routes.get(url)
        if isinstance(route, Exception):
            raise route
        if route is None:
            response = FakeResponse(status_code=404, reason="Not Found", json_data={"message": "Not Found"})
        else:
            response = FakeResponse(**route)
        self.responses.append(response)
        return response


class FakeRunner:
    """Command runner returning canned stdout per command."""

    def __init__(self, outputs: Optional[Dict[Tuple[str, ...], object]] = None):
        self.outputs = dict(outputs or {})
        self.calls: List[Tuple[List[str], Optional[Path]]] = []

    def output(self, cmd, cwd=None) -> str:
        self.calls.append((list(cmd), cwd))
        out = self.outputs.get(tuple(cmd), "")
        if isinstance(out, Exception):
            raise out
        return out

    def run(self, cmd, cwd=None) -> None:
        self.calls.append((list(cmd), cwd))
        out = self.outputs.get(tuple(cmd))
        if isinstance(out, Exception):
            raise out

    @property
    def commands(self) -> List[List[str]]:
        return [cmd for cmd, _ in self.calls]


def make_gzip(text: str) -> bytes:
    return gzip.compress(text.encode())


def make_tar(files: Dict[str, str], mode: str = "w:xz") -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode=mode) as tar:
        for name, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def failing_command(*cmd: str, returncode: int = 128) -> CommandError:
    return CommandError(cmd, returncode)


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def fake_runner():
    return FakeRunner()
