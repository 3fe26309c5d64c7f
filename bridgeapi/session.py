"""Authentication session shared by every call made through one client.

``SessionManager`` owns the active token and is the only place it is read or
written.  Two protocols exist, picked once at construction:

* :class:`LegacyExchange`: basic‑auth POST to ``/access-tokens`` returns a
  short‑lived token that is revoked with ``DELETE /access-tokens/{id}``.
* :class:`DirectBearer`: the ``cbkey_`` secret *is* the bearer token; no
  network call is needed and the token never expires.

Refresh is lazy: an expired token is only replaced when the next caller
asks for it.  Concurrent callers racing on an expired token collapse into a
single login call.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from bridgeapi.credentials import Credential
from bridgeapi.exceptions import (
    AuthError,
    ClientClosedError,
    DecodeError,
    SecretFormatError,
    TransportError,
    UnexpectedStatusError,
)
from bridgeapi.transport import (
    ROUTE_ACCESS_TOKEN,
    ROUTE_ACCESS_TOKENS,
    Timeout,
    request_timeout,
    resolve_url,
    route,
)

logger = logging.getLogger("bridgeapi.session")

Clock = Callable[[], float]

# Expiry used for tokens that never expire.
NEVER = math.inf


# ---------------------------------------------------------------------------
# Lock
# ---------------------------------------------------------------------------


class ReadWriteLock:
    """Shared/exclusive lock.  Waiting writers block new readers.

    Not re‑entrant: do not take :meth:`shared` while holding
    :meth:`exclusive` or vice versa.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def shared(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# ---------------------------------------------------------------------------
# State and protocols
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SessionState:
    """Snapshot of the active session.  ``token`` never leaves this module."""

    token: str = ""
    token_id: str = ""
    expires_at: float = 0.0

    def is_valid(self, now: float) -> bool:
        return bool(self.token) and now < self.expires_at


_EMPTY = SessionState()


class AuthProtocol(ABC):
    """One generation of the platform auth protocol."""

    mode: str = "unknown"

    def __init__(self, credential: Credential) -> None:
        self._credential = credential

    @abstractmethod
    def login(
        self, http: httpx.Client, api_url: str, now: float, *, user_agent: Optional[str], timeout: Timeout
    ) -> SessionState:
        """Obtain a fresh session."""

    @abstractmethod
    def revoke(
        self,
        http: httpx.Client,
        api_url: str,
        state: SessionState,
        *,
        user_agent: Optional[str],
        timeout: Timeout,
    ) -> None:
        """Release *state* on the server, if the protocol has anything to release."""


class LegacyExchange(AuthProtocol):
    """Exchange the key/secret for a short‑lived token (gen 1 auth)."""

    mode = "legacy-exchange"

    def login(
        self, http: httpx.Client, api_url: str, now: float, *, user_agent: Optional[str], timeout: Timeout
    ) -> SessionState:
        key = self._credential.key
        url = resolve_url(api_url, ROUTE_ACCESS_TOKENS)
        headers = {"User-Agent": user_agent} if user_agent else None

        per_request = _timeout(timeout, "login")

        logger.debug("Requesting access token for key=%s", key)

        try:
            resp = http.post(
                url,
                auth=(key, self._credential.secret),
                headers=headers,
                timeout=per_request,
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"error submitting login request: {exc}") from exc

        if resp.status_code in (401, 403):
            raise AuthError(f"API returned status {resp.status_code} for login [{key}]", resp.status_code)
        if resp.status_code != 200:
            raise UnexpectedStatusError(
                f"API returned unexpected response {resp.status_code} for login [{key}]",
                resp.status_code,
            )

        try:
            data = resp.json()
            state = SessionState(
                token=data["token"],
                token_id=data["token_id"],
                expires_at=now + float(data["expires_in"]),
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise DecodeError(f"error unmarshaling token response body: {exc}") from exc

        return state

    def revoke(
        self,
        http: httpx.Client,
        api_url: str,
        state: SessionState,
        *,
        user_agent: Optional[str],
        timeout: Timeout,
    ) -> None:
        url = resolve_url(api_url, route(ROUTE_ACCESS_TOKEN, state.token_id))
        headers = {"Authorization": f"Bearer {state.token}"}
        if user_agent:
            headers["User-Agent"] = user_agent

        per_request = _timeout(timeout, "logout")

        logger.debug("Revoking access token id=%s", state.token_id)

        try:
            resp = http.delete(url, headers=headers, timeout=per_request)
        except httpx.HTTPError as exc:
            raise TransportError(f"error submitting delete request: {exc}") from exc

        if resp.status_code != 200:
            raise UnexpectedStatusError(
                f"API returned unexpected response {resp.status_code} for logout [{self._credential.key}]",
                resp.status_code,
            )


class DirectBearer(AuthProtocol):
    """Use a ``cbkey_`` secret as a long‑lived bearer token (gen 2 auth)."""

    mode = "direct-bearer"

    def login(
        self, http: httpx.Client, api_url: str, now: float, *, user_agent: Optional[str], timeout: Timeout
    ) -> SessionState:
        if not self._credential.is_bearer_secret:
            raise SecretFormatError()
        return SessionState(token=self._credential.secret, expires_at=NEVER)

    def revoke(
        self,
        http: httpx.Client,
        api_url: str,
        state: SessionState,
        *,
        user_agent: Optional[str],
        timeout: Timeout,
    ) -> None:
        # Bearer secrets are managed by the user; nothing to release.
        return None


def _timeout(timeout: Timeout, what: str) -> Any:
    per_request = request_timeout(timeout, what)
    return per_request if per_request is not None else httpx.USE_CLIENT_DEFAULT


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class SessionManager:
    """Keeps one authenticated session for every caller of a client.

    Thread‑safe.  :meth:`ensure_authenticated` is cheap when the token is
    current and may be called before every request.

    Parameters
    ----------
    protocol:
        Auth protocol chosen at construction.
    http_client:
        Client used for login and revoke calls.
    api_url:
        Root URL of the platform API.
    user_agent:
        Optional ``User-Agent`` for login and revoke calls.
    clock:
        Wall‑clock source in epoch seconds.  Tests inject a fake.
    """

    def __init__(
        self,
        protocol: AuthProtocol,
        http_client: httpx.Client,
        api_url: str,
        *,
        user_agent: Optional[str] = None,
        clock: Clock = time.time,
    ) -> None:
        self._protocol = protocol
        self._http = http_client
        self._api_url = api_url
        self._user_agent = user_agent
        self._clock = clock
        self._state = _EMPTY
        self._closed = False
        self._lock = ReadWriteLock()

    # -- properties --------------------------------------------------------

    @property
    def mode(self) -> str:
        return self._protocol.mode

    @property
    def authenticated(self) -> bool:
        """Return ``True`` if a current token is held."""
        with self._lock.shared():
            return self._state.is_valid(self._clock())

    @property
    def closed(self) -> bool:
        with self._lock.shared():
            return self._closed

    # -- public ------------------------------------------------------------

    def ensure_authenticated(self, *, timeout: Timeout = None) -> None:
        """Log in if there is no current token (idempotent).

        Raises :class:`ClientClosedError` once :meth:`invalidate` has run.
        """
        with self._lock.shared():
            self._check_open()
            if self._state.is_valid(self._clock()):
                return

        with self._lock.exclusive():
            # Teardown or another caller may have run while we waited.
            self._check_open()
            if self._state.is_valid(self._clock()):
                return
            self._state = self._protocol.login(
                self._http,
                self._api_url,
                self._clock(),
                user_agent=self._user_agent,
                timeout=timeout,
            )

        logger.info("Session established (mode=%s)", self.mode)

    def apply_auth(self, headers: httpx.Headers) -> None:
        """Set the ``Authorization`` header from the current token."""
        with self._lock.shared():
            self._check_open()
            if not self._state.token:
                raise AuthError("no session token; call ensure_authenticated first")
            headers["Authorization"] = f"Bearer {self._state.token}"

    def invalidate(self, *, timeout: Timeout = None) -> None:
        """Release the session for good.  A no‑op once it has run.

        A live legacy token is revoked on the server first.  Local state is
        cleared whether or not the revoke succeeds; a failed revoke is still
        raised to the caller.  Later calls to :meth:`ensure_authenticated` or
        :meth:`apply_auth` raise :class:`ClientClosedError`.
        """
        with self._lock.exclusive():
            self._closed = True
            state = self._state
            if not state.token:
                return
            self._state = _EMPTY
            if not state.is_valid(self._clock()):
                logger.debug("Session already expired; cleared locally")
                return
            try:
                self._protocol.revoke(
                    self._http,
                    self._api_url,
                    state,
                    user_agent=self._user_agent,
                    timeout=timeout,
                )
            except Exception:
                logger.warning("Failed to revoke session token (mode=%s)", self.mode, exc_info=True)
                raise

        logger.info("Session closed (mode=%s)", self.mode)

    # -- private -----------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise ClientClosedError("session has already been released")
