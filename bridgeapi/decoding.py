"""Response decoding and error mapping.

Every response handed out by :class:`~bridgeapi.transport.RequestExecutor`
ends up here.  Two consumption modes exist:

* :func:`decode_into`: check the status, then parse the JSON body.
* :func:`check_status`: check the status and discard the body.

Either way the response is always closed.  A failure to close never hides
the error that was already on its way out.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Collection, Iterator
from contextlib import contextmanager
from typing import Any, Optional, TypeVar

import httpx

from bridgeapi.exceptions import (
    FALLBACK_ERROR_MESSAGE,
    APIError,
    BridgeAPIError,
    DecodeError,
    ResourceCloseError,
    TransportError,
    api_error_for_status,
)
from bridgeapi.models import APIMessage

logger = logging.getLogger("bridgeapi.decoding")

T = TypeVar("T")

OK = (200,)
CREATED = (201,)
OK_OR_CREATED = (200, 201)


@contextmanager
def released(response: httpx.Response) -> Iterator[httpx.Response]:
    """Close *response* on exit, whatever happens inside the block.

    If closing fails while another error is propagating, the close failure is
    attached to that error as a note (and as ``close_error`` on client
    errors).  If nothing else failed, :class:`ResourceCloseError` is raised.
    """
    primary: Optional[BaseException] = None
    try:
        yield response
    except BaseException as exc:
        primary = exc
        raise
    finally:
        try:
            response.close()
        except Exception as close_exc:
            if primary is None:
                raise ResourceCloseError(f"failed to close response body: {close_exc}") from close_exc
            primary.add_note(f"additionally failed to close response body: {close_exc}")
            if isinstance(primary, BridgeAPIError):
                primary.close_error = close_exc


def _read(response: httpx.Response) -> bytes:
    try:
        return response.read()
    except httpx.HTTPError as exc:
        raise TransportError(f"failed to read response body: {exc}") from exc


def error_from_response(response: httpx.Response) -> APIError:
    """Map a non‑success *response* carrying the ``{message, request_id}`` envelope."""
    body = _read(response)
    try:
        data = json.loads(body)
        envelope = APIMessage.from_dict(data)
    except (ValueError, TypeError, AttributeError):
        envelope = APIMessage()

    message = envelope.message or FALLBACK_ERROR_MESSAGE
    logger.debug(
        "API error status=%d request_id=%s", response.status_code, envelope.request_id or "-"
    )
    return api_error_for_status(response.status_code, message, envelope.request_id or None)


def decode_into(
    response: httpx.Response,
    parse: Callable[[Any], T],
    *,
    expected: Collection[int] = OK,
) -> T:
    """Return ``parse(json_body)`` when the status is in *expected*.

    Raises
    ------
    APIError
        Status not in *expected*.
    DecodeError
        Status matched but the body could not be decoded into the target.
    """
    with released(response):
        if response.status_code not in expected:
            raise error_from_response(response)
        body = _read(response)
        try:
            return parse(json.loads(body))
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise DecodeError(f"failed to unmarshal response body: {exc}") from exc


def check_status(response: httpx.Response, *, expected: Collection[int] = OK) -> None:
    """Raise :class:`APIError` unless the status is in *expected*; body is discarded."""
    with released(response):
        if response.status_code not in expected:
            raise error_from_response(response)
