"""BridgeAPI: client for the managed Postgres platform API.

Quick start::

    from bridgeapi import client

    with client(key="app-id", secret="cbkey_...") as api:
        account = api.account()
        for cluster in api.get_all_clusters():
            print(cluster.name, cluster.state)

Legacy keys are exchanged for a short‑lived token instead::

    with client(key="app-id", secret="...", token_exchange=True) as api:
        ...
"""

from __future__ import annotations

import logging
from typing import Any

from bridgeapi.client import DEFAULT_ROLES, ROLE_APPLICATION, ROLE_SUPERUSER, Client
from bridgeapi.config import DEFAULT_API_URL, ClientConfig
from bridgeapi.credentials import Credential
from bridgeapi.exceptions import (
    APIError,
    AuthError,
    BadRequestError,
    BridgeAPIError,
    ClientClosedError,
    ConfigurationError,
    ConflictError,
    DecodeError,
    NotFoundError,
    ResourceCloseError,
    SecretFormatError,
    TransportError,
    UnexpectedStatusError,
)
from bridgeapi.models import (
    Account,
    ClusterDetail,
    ClusterRole,
    ClusterStatus,
    ClusterUpdateRequest,
    ClusterUpgradeRequest,
    CreateRequest,
    DiskUsage,
    Plan,
    Provider,
    Region,
    Team,
    UpgradeOperation,
)
from bridgeapi.transport import idempotency_key

logging.getLogger("bridgeapi").addHandler(logging.NullHandler())


def client(
    key: str,
    secret: str,
    *,
    api_url: str = DEFAULT_API_URL,
    **options: Any,
) -> Client:
    """Create a :class:`Client` for the given API key.

    Parameters
    ----------
    key : str
        Application ID of the API key.
    secret : str
        Application secret.  ``cbkey_`` secrets are used directly as
        bearer tokens unless ``token_exchange=True`` is passed.
    api_url : str, optional
        Override the default platform API URL.
    **options
        Remaining :class:`ClientConfig` fields (``token_exchange``,
        ``user_agent``, ``idempotency_key``, ``immediate_login``,
        ``timeout``) plus ``http_client`` and ``clock``.

    Examples
    --------
    >>> from bridgeapi import client
    >>> with client(key="app-id", secret="cbkey_...") as api:
    ...     api.account()
    """
    http_client = options.pop("http_client", None)
    clock = options.pop("clock", None)
    config = ClientConfig(credential=Credential(key=key, secret=secret), api_url=api_url, **options)
    if clock is None:
        return Client(config, http_client=http_client)
    return Client(config, http_client=http_client, clock=clock)


__all__ = [
    # Convenience function
    "client",
    # Client
    "Client",
    "ClientConfig",
    "Credential",
    "DEFAULT_API_URL",
    "DEFAULT_ROLES",
    "ROLE_APPLICATION",
    "ROLE_SUPERUSER",
    "idempotency_key",
    # Models
    "Account",
    "ClusterDetail",
    "ClusterRole",
    "ClusterStatus",
    "ClusterUpdateRequest",
    "ClusterUpgradeRequest",
    "CreateRequest",
    "DiskUsage",
    "Plan",
    "Provider",
    "Region",
    "Team",
    "UpgradeOperation",
    # Exceptions
    "BridgeAPIError",
    "ConfigurationError",
    "AuthError",
    "SecretFormatError",
    "TransportError",
    "UnexpectedStatusError",
    "APIError",
    "BadRequestError",
    "NotFoundError",
    "ConflictError",
    "DecodeError",
    "ResourceCloseError",
    "ClientClosedError",
]

__version__ = "0.1.0"
