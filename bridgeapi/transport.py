"""Request composition and dispatch.

``RequestExecutor`` is the single path every API call takes:

    ensure session → resolve route → attach common headers
    → apply per‑operation header setters → send → return raw response

Status codes are not interpreted here; see :mod:`bridgeapi.decoding`.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any, Optional, Union
from urllib.parse import quote, urljoin

import httpx

from bridgeapi.exceptions import TransportError

if TYPE_CHECKING:
    from bridgeapi.session import SessionManager

logger = logging.getLogger("bridgeapi.transport")

# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

ROUTE_ACCOUNT = "/account"
ROUTE_TEAMS = "/teams"
ROUTE_PROVIDERS = "/providers"
ROUTE_CLUSTERS = "/clusters"
ROUTE_CLUSTER = "/clusters/{}"
ROUTE_CLUSTER_STATUS = "/clusters/{}/status"
ROUTE_CLUSTER_UPGRADE = "/clusters/{}/upgrade"
ROUTE_CLUSTER_ROLE = "/clusters/{}/roles/{}"
ROUTE_ACCESS_TOKENS = "/access-tokens"
ROUTE_ACCESS_TOKEN = "/access-tokens/{}"

# UUIDv5 namespace for Idempotency-Key values.
IDEMPOTENCY_NAMESPACE = uuid.UUID("cc67b0e5-7152-4d54-85ff-49a5c17fbbfe")

HeaderSetter = Callable[[httpx.Headers], None]

# Path segments that would be collapsed during URL resolution.
_DOT_SEGMENTS = frozenset({"", ".", ".."})


class Deadline:
    """Point on the monotonic clock by which a whole operation must finish.

    Every request sent on behalf of the operation gets only the time that
    is left, so a call that fans out into several requests still honours
    the single timeout its caller passed.
    """

    __slots__ = ("_expires_at", "_clock")

    def __init__(self, seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())


Timeout = Union[float, httpx.Timeout, Deadline, None]


def start_deadline(timeout: Timeout) -> Timeout:
    """Turn a timeout in seconds into a :class:`Deadline` starting now.

    ``None``, ``httpx.Timeout`` values and existing deadlines pass through.
    """
    if isinstance(timeout, (int, float)) and not isinstance(timeout, bool):
        return Deadline(float(timeout))
    return timeout


def request_timeout(timeout: Timeout, what: str) -> Union[float, httpx.Timeout, None]:
    """Per‑request timeout for *timeout*.

    Raises :class:`TransportError` naming *what* once a deadline has passed.
    """
    if isinstance(timeout, Deadline):
        remaining = timeout.remaining()
        if remaining <= 0:
            raise TransportError(f"deadline exceeded before {what}")
        return remaining
    return timeout


def route(template: str, *path_args: Any) -> str:
    """Fill *template* with percent‑encoded path parameters.

    Empty, ``.`` and ``..`` parameters are rejected with :class:`ValueError`:
    URL resolution would turn them into a different route.
    """
    segments = []
    for arg in path_args:
        value = str(arg)
        if value in _DOT_SEGMENTS:
            raise ValueError(f"invalid path parameter {value!r}")
        segments.append(quote(value, safe=""))
    return template.format(*segments)


def resolve_url(
    api_url: str,
    path: str,
    params: Optional[Mapping[str, Any]] = None,
) -> httpx.URL:
    """Resolve *path* against *api_url*, keeping any base path prefix."""
    base = api_url if api_url.endswith("/") else api_url + "/"
    url = httpx.URL(urljoin(base, path.lstrip("/")))
    if params:
        url = url.copy_merge_params({k: v for k, v in params.items() if v is not None})
    return url


def idempotency_key(payload: Union[bytes, str]) -> str:
    """Return the deterministic Idempotency-Key for a request *payload*.

    Identical payloads share a key; any change to the payload yields a new one.
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    return str(uuid.uuid5(IDEMPOTENCY_NAMESPACE, payload))


def idempotency_header(payload: Union[bytes, str]) -> HeaderSetter:
    """Header setter that stamps ``Idempotency-Key`` for *payload*."""
    key = idempotency_key(payload)

    def _set(headers: httpx.Headers) -> None:
        headers["Idempotency-Key"] = key

    return _set


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class RequestExecutor:
    """Builds, authenticates and sends requests for one API target.

    Thread‑safe as long as the underlying ``httpx.Client`` is, which it is.

    Parameters
    ----------
    api_url:
        Root URL all routes are resolved against.
    session:
        Owner of the bearer token.
    http_client:
        Transport used to send requests.
    user_agent:
        Optional ``User-Agent`` for every request.
    timeout:
        Default timeout when a call does not pass its own.
    """

    def __init__(
        self,
        api_url: str,
        session: SessionManager,
        http_client: httpx.Client,
        *,
        user_agent: Optional[str] = None,
        timeout: Timeout = None,
    ) -> None:
        self._api_url = api_url
        self._session = session
        self._http = http_client
        self._user_agent = user_agent
        self._timeout = timeout

    @property
    def api_url(self) -> str:
        return self._api_url

    # -- public ------------------------------------------------------------

    def resolve(self, path: str, params: Optional[Mapping[str, Any]] = None) -> httpx.URL:
        return resolve_url(self._api_url, path, params)

    def execute(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        content: Optional[bytes] = None,
        header_setters: Iterable[HeaderSetter] = (),
        timeout: Timeout = None,
    ) -> httpx.Response:
        """Send one request and return the **unread** response.

        The caller owns the response and must close it.  Authentication
        failures are raised before anything is sent to *path*.
        """
        deadline = start_deadline(timeout if timeout is not None else self._timeout)
        self._session.ensure_authenticated(timeout=deadline)

        headers = httpx.Headers()
        if content is not None:
            headers["Content-Type"] = "application/json"
        self._session.apply_auth(headers)
        if self._user_agent:
            headers["User-Agent"] = self._user_agent
        for setter in header_setters:
            setter(headers)

        url = self.resolve(path, params)
        per_request = request_timeout(deadline, f"{method} {path}")
        request = self._http.build_request(
            method,
            url,
            headers=headers,
            content=content,
            timeout=per_request if per_request is not None else httpx.USE_CLIENT_DEFAULT,
        )

        logger.debug("Sending %s %s", method, url.path)
        try:
            response = self._http.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise TransportError(f"failed to perform request {method} {path}: {exc}") from exc

        logger.debug("%s %s returned HTTP %d", method, url.path, response.status_code)
        return response
