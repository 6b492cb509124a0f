"""Shared pytest fixtures for dmlib tests.

Provides a scriptable fake server (an ``httpx.MockTransport`` handler that
records every request), a client config, a ``DatamodelsClient`` wired to the
fake server, sample CSV files, and a no-wait sleep for the build poller.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from dmlib.api.client import DatamodelsClient
from dmlib.config import ClientConfig

Handler = Callable[[httpx.Request], Any]


class FakeServer:
    """Routes ``(method, path)`` to canned responses and records requests.

    A response may be an ``httpx.Response``, a JSON-able object (sent with
    status 200), or a callable taking the request and returning either of
    those or an awaitable ``httpx.Response``.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Handler] = {}
        self.requests: list[httpx.Request] = []

    def route(self, method: str, path: str, response: Any) -> None:
        if callable(response):
            self.routes[(method.upper(), path)] = response
        else:
            self.routes[(method.upper(), path)] = lambda request: response

    def route_sequence(self, method: str, path: str, responses: list[Any]) -> None:
        """Answer successive calls with *responses*; the last one repeats."""
        pending = list(responses)

        def _next(request: httpx.Request) -> Any:
            return pending.pop(0) if len(pending) > 1 else pending[0]

        self.routes[(method.upper(), path)] = _next

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method.upper() and r.url.path == path
        ]

    def json_bodies(self, method: str, path: str) -> list[Any]:
        return [json.loads(r.content) for r in self.calls(method, path)]

    def handler(self, request: httpx.Request) -> Any:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"detail": f"no route for {key}"})

        response = self.routes[key](request)
        if isinstance(response, httpx.Response) or hasattr(response, "__await__"):
            return response
        return httpx.Response(200, json=response)

    @staticmethod
    def upload_response(path: str, filename: str = "demo", extension: str = ".csv") -> list[dict]:
        """Server-style upload response array with one stored file."""
        return [{"storageInfo": {"path": path}, "filename": filename, "extension": extension}]


@pytest.fixture
def fake_server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(base_url="https://bi.example.test/", token="abc123")


@pytest.fixture
async def client(fake_server: FakeServer, client_config: ClientConfig):
    """A DatamodelsClient whose transport is the fake server."""
    transport = httpx.MockTransport(fake_server.handler)
    async with DatamodelsClient(client_config, transport=transport) as c:
        yield c


@pytest.fixture
def no_sleep() -> Callable[[float], Any]:
    """Sleep replacement for BuildPoller that records pauses without waiting."""
    pauses: list[float] = []

    async def _sleep(seconds: float) -> None:
        pauses.append(seconds)

    _sleep.pauses = pauses  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def demo_csv(tmp_path: Path) -> Path:
    """A small customers CSV in the shape the demo workflow expects."""
    path = tmp_path / "demo.csv"
    path.write_text(
        "id,first name,last name,country\n"
        "1,Ada,Lovelace,UK\n"
        "2,Grace,Hopper,USA\n"
        "3,Bjork,Gudmundsdottir,Iceland\n"
    )
    return path


@pytest.fixture
def demo2_csv(tmp_path: Path) -> Path:
    path = tmp_path / "demo2.csv"
    path.write_text(
        "id,first name,last name,country\n"
        "4,Alan,Turing,UK\n"
        "5,Margaret,Atwood,Canada\n"
    )
    return path

