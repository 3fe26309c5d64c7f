"""Shared fixtures: an in‑memory platform API behind ``httpx.MockTransport``."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, Union

import httpx
import pytest

import bridgeapi

API_URL = "https://api.example.test"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeAPI:
    """Routes requests by ``(method, path)`` and records every request seen."""

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str], Handler] = {}
        self._lock = threading.Lock()
        self.requests: list[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        response: Union[Handler, int] = 200,
        json: Any = None,
    ) -> None:
        if callable(response):
            self._routes[(method, path)] = response
        else:
            status = response
            self._routes[(method, path)] = lambda request: httpx.Response(status, json=json)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        with self._lock:
            return [r for r in self.requests if r.method == method and r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
        handler = self._routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "not found", "request_id": "req-missing"})
        return handler(request)


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def login_ok(token: str = "t", token_id: str = "1", expires_in: int = 3600) -> Handler:
    return lambda request: httpx.Response(
        200, json={"token": token, "token_id": token_id, "expires_in": expires_in}
    )


@pytest.fixture
def fake_api() -> FakeAPI:
    return FakeAPI()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def http_client(fake_api: FakeAPI):
    client = httpx.Client(transport=httpx.MockTransport(fake_api))
    yield client
    client.close()


@pytest.fixture
def make_client(http_client: httpx.Client, clock: FakeClock):
    """Factory for clients wired to the fake API.  Defaults to a bearer secret."""

    def _make(key: str = "app-id", secret: str = "cbkey_test", **options: Any) -> bridgeapi.Client:
        return bridgeapi.client(
            key=key,
            secret=secret,
            api_url=API_URL,
            http_client=http_client,
            clock=clock,
            **options,
        )

    return _make
