"""Tests for status checking, error envelopes and response release."""

from __future__ import annotations

import httpx
import pytest

from bridgeapi import (
    APIError,
    BadRequestError,
    ConflictError,
    DecodeError,
    NotFoundError,
    ResourceCloseError,
)
from bridgeapi.decoding import CREATED, OK_OR_CREATED, check_status, decode_into, released
from bridgeapi.exceptions import FALLBACK_ERROR_MESSAGE

_REQUEST = httpx.Request("GET", "https://api.example.test/clusters")


def _response(status: int, **kwargs) -> httpx.Response:
    return httpx.Response(status, request=_REQUEST, **kwargs)


class _UnclosableStream(httpx.SyncByteStream):
    def __iter__(self):
        yield b""

    def close(self) -> None:
        raise OSError("socket already gone")


def test_conflict_envelope_renders_message_and_request_id() -> None:
    resp = _response(409, json={"message": "name in use", "request_id": "req-1"})

    with pytest.raises(ConflictError) as exc_info:
        decode_into(resp, dict)

    err = exc_info.value
    assert err.status_code == 409
    assert err.message == "name in use"
    assert err.request_id == "req-1"
    assert "name in use" in str(err)
    assert "req-1" in str(err)
    assert resp.is_closed


def test_unparseable_error_body_uses_fallback() -> None:
    resp = _response(500, content=b"<html>bad gateway</html>")

    with pytest.raises(APIError) as exc_info:
        decode_into(resp, dict)

    assert exc_info.value.message == FALLBACK_ERROR_MESSAGE
    assert exc_info.value.request_id is None
    assert "request id" not in str(exc_info.value)


@pytest.mark.parametrize(
    ("status", "error_type"),
    [(400, BadRequestError), (404, NotFoundError), (409, ConflictError), (503, APIError)],
)
def test_status_selects_error_type(status: int, error_type: type[APIError]) -> None:
    with pytest.raises(error_type):
        check_status(_response(status, json={"message": "x"}))


def test_decode_into_parses_body() -> None:
    resp = _response(201, json={"id": "new-cluster"})
    assert decode_into(resp, lambda data: data["id"], expected=CREATED) == "new-cluster"
    assert resp.is_closed


def test_wrong_success_code_is_an_error() -> None:
    with pytest.raises(APIError) as exc_info:
        decode_into(_response(200, json={"id": "x"}), dict, expected=CREATED)
    assert exc_info.value.status_code == 200


def test_malformed_success_body_is_decode_error() -> None:
    with pytest.raises(DecodeError):
        decode_into(_response(200, content=b"{not json"), dict)


def test_missing_field_is_decode_error() -> None:
    with pytest.raises(DecodeError):
        decode_into(_response(200, json={}), lambda data: data["id"])


def test_check_status_accepts_any_expected_code() -> None:
    check_status(_response(200), expected=OK_OR_CREATED)
    check_status(_response(201), expected=OK_OR_CREATED)


class TestReleased:
    def test_close_failure_alone_is_reported(self) -> None:
        resp = _response(200, stream=_UnclosableStream())

        with pytest.raises(ResourceCloseError) as exc_info:
            check_status(resp)

        assert isinstance(exc_info.value.__cause__, OSError)

    def test_close_failure_does_not_replace_primary_error(self) -> None:
        resp = _response(200, stream=_UnclosableStream())

        with pytest.raises(DecodeError) as exc_info:
            with released(resp):
                raise DecodeError("bad body")

        err = exc_info.value
        assert isinstance(err.close_error, OSError)
        assert any("failed to close" in note for note in err.__notes__)

    def test_close_failure_noted_on_foreign_errors(self) -> None:
        resp = _response(200, stream=_UnclosableStream())

        with pytest.raises(KeyError) as exc_info:
            with released(resp):
                raise KeyError("id")

        assert any("failed to close" in note for note in exc_info.value.__notes__)
