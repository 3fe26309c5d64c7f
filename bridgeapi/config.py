"""Client configuration.

Settings are fixed at construction time.  :meth:`ClientConfig.from_env` reads
the same environment variables the platform tooling uses so scripts can run
without hard‑coding a secret.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional, Union
from urllib.parse import urlsplit

import httpx

from bridgeapi.credentials import Credential
from bridgeapi.exceptions import ConfigurationError

DEFAULT_API_URL = "https://api.crunchybridge.com"
DEFAULT_TIMEOUT = 10.0

ENV_APPLICATION_ID = "APPLICATION_ID"
ENV_APPLICATION_SECRET = "APPLICATION_SECRET"
ENV_API_URL = "BRIDGE_API_URL"
ENV_TOKEN_EXCHANGE = "BRIDGE_TOKEN_EXCHANGE"

_TRUTHY = frozenset({"1", "true", "yes", "on"})

TimeoutTypes = Union[float, httpx.Timeout]


@dataclass(frozen=True)
class ClientConfig:
    """Settings for :class:`bridgeapi.Client`.

    Parameters
    ----------
    credential:
        Application key/secret pair.
    api_url:
        Root URL of the platform API.  Most users should not change this.
    token_exchange:
        When ``True`` the secret is exchanged for a short‑lived token
        (legacy auth) instead of being used as the bearer token.
    user_agent:
        Optional ``User-Agent`` sent with every request.
    idempotency_key:
        Send an ``Idempotency-Key`` derived from the payload on cluster
        create.  Replayed responses may be stale if the platform state
        changed between attempts.
    immediate_login:
        Authenticate while the client is constructed instead of lazily on
        the first call.
    timeout:
        Default per‑request timeout in seconds (or an ``httpx.Timeout``).
    """

    credential: Credential
    api_url: str = DEFAULT_API_URL
    token_exchange: bool = False
    user_agent: Optional[str] = None
    idempotency_key: bool = False
    immediate_login: bool = False
    timeout: TimeoutTypes = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if not isinstance(self.credential, Credential):
            raise ConfigurationError("a Credential is required to create a client")
        parts = urlsplit(self.api_url or "")
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ConfigurationError(f"invalid API URL {self.api_url!r}: expected an absolute http(s) URL")

    @classmethod
    def from_env(cls, **overrides: Any) -> ClientConfig:
        """Build a config from ``APPLICATION_ID`` / ``APPLICATION_SECRET`` and friends.

        Keyword arguments win over the environment.
        """
        if "credential" not in overrides:
            key = os.environ.get(ENV_APPLICATION_ID, "")
            secret = os.environ.get(ENV_APPLICATION_SECRET, "")
            if not key and not secret:
                raise ConfigurationError(
                    f"{ENV_APPLICATION_ID} and {ENV_APPLICATION_SECRET} environment variables not set"
                )
            overrides["credential"] = Credential(key=key, secret=secret)
        overrides.setdefault("api_url", os.environ.get(ENV_API_URL) or DEFAULT_API_URL)
        if "token_exchange" not in overrides:
            flag = os.environ.get(ENV_TOKEN_EXCHANGE, "")
            overrides["token_exchange"] = flag.strip().lower() in _TRUTHY
        return cls(**overrides)
