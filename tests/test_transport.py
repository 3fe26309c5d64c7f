"""Tests for URL composition, headers and dispatch."""

from __future__ import annotations

import uuid

import httpx
import pytest
from conftest import API_URL, FakeAPI

from bridgeapi import SecretFormatError, TransportError, idempotency_key
from bridgeapi.transport import (
    IDEMPOTENCY_NAMESPACE,
    ROUTE_CLUSTER,
    ROUTE_CLUSTER_ROLE,
    Deadline,
    idempotency_header,
    request_timeout,
    resolve_url,
    route,
    start_deadline,
)


def test_resolve_url_keeps_base_prefix() -> None:
    url = resolve_url("https://api.example.test/v1", "/clusters")
    assert str(url) == "https://api.example.test/v1/clusters"


def test_resolve_url_merges_params_and_drops_none() -> None:
    url = resolve_url(API_URL, "/clusters", {"team_id": "A", "unused": None})
    assert url.path == "/clusters"
    assert url.params["team_id"] == "A"
    assert "unused" not in url.params


def test_route_encodes_path_parameters() -> None:
    assert route(ROUTE_CLUSTER_ROLE, "c/1", "application") == "/clusters/c%2F1/roles/application"


@pytest.mark.parametrize("segment", ["", ".", ".."])
def test_route_rejects_dot_segments(segment: str) -> None:
    with pytest.raises(ValueError):
        route(ROUTE_CLUSTER, segment)


def test_route_keeps_dots_inside_ids() -> None:
    assert route(ROUTE_CLUSTER, "a..b") == "/clusters/a..b"


class TestDeadline:
    def test_remaining_shrinks_with_the_clock(self) -> None:
        now = [100.0]
        deadline = Deadline(5, clock=lambda: now[0])

        now[0] += 2
        assert deadline.remaining() == 3.0
        assert request_timeout(deadline, "GET /teams") == 3.0

    def test_expired_deadline_refuses_requests(self) -> None:
        now = [100.0]
        deadline = Deadline(1, clock=lambda: now[0])
        now[0] += 1

        with pytest.raises(TransportError) as exc_info:
            request_timeout(deadline, "GET /teams")

        assert "GET /teams" in str(exc_info.value)

    def test_start_converts_seconds_only(self) -> None:
        assert isinstance(start_deadline(2.5), Deadline)
        assert start_deadline(None) is None
        per_phase = httpx.Timeout(3.0)
        assert start_deadline(per_phase) is per_phase
        existing = Deadline(1)
        assert start_deadline(existing) is existing


class TestIdempotencyKey:
    def test_same_payload_same_key(self) -> None:
        payload = b'{"name":"db","team_id":"A"}'
        assert idempotency_key(payload) == idempotency_key(payload)

    def test_changed_payload_changes_key(self) -> None:
        assert idempotency_key(b'{"name":"db"}') != idempotency_key(b'{"name":"db2"}')

    def test_is_namespaced_uuid5(self) -> None:
        key = uuid.UUID(idempotency_key(b"{}"))
        assert key.version == 5
        assert key == uuid.uuid5(IDEMPOTENCY_NAMESPACE, "{}")

    def test_header_setter(self) -> None:
        headers = httpx.Headers()
        idempotency_header(b"{}")(headers)
        assert headers["Idempotency-Key"] == idempotency_key(b"{}")


class TestExecutor:
    def test_common_headers(self, fake_api: FakeAPI, make_client) -> None:
        fake_api.add("GET", "/account", 200, json={"id": "acct"})
        api = make_client(secret="cbkey_abc", user_agent="bridge-tests/1.0")

        api.account()

        (request,) = fake_api.calls("GET", "/account")
        assert request.headers["Authorization"] == "Bearer cbkey_abc"
        assert request.headers["User-Agent"] == "bridge-tests/1.0"
        assert "Idempotency-Key" not in request.headers

    def test_auth_failure_short_circuits(self, fake_api: FakeAPI, make_client) -> None:
        api = make_client(secret="plainsecret")

        with pytest.raises(SecretFormatError):
            api.account()

        assert fake_api.requests == []

    def test_connect_error_becomes_transport_error(self, fake_api: FakeAPI, make_client) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fake_api.add("GET", "/clusters/abc", refuse)
        api = make_client()

        with pytest.raises(TransportError) as exc_info:
            api.cluster_detail("abc")

        assert "GET /clusters/abc" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_timeout_becomes_transport_error(self, fake_api: FakeAPI, make_client) -> None:
        def stall(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        fake_api.add("GET", "/providers", stall)
        api = make_client()

        with pytest.raises(TransportError):
            api.providers(timeout=0.5)
