"""Platform API client.

Usage::

    from bridgeapi import Client, ClientConfig, Credential

    config = ClientConfig(credential=Credential(key="app-id", secret="cbkey_..."))

    with Client(config) as api:
        for cluster in api.get_all_clusters():
            print(cluster.id, cluster.name, cluster.state)

Every operation authenticates lazily, sends exactly one request per API call
and never retries.  Leaving the ``with`` block (normally, by exception or by
``KeyboardInterrupt``) releases the session.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

import httpx

from bridgeapi.config import ClientConfig
from bridgeapi.decoding import CREATED, OK, OK_OR_CREATED, check_status, decode_into
from bridgeapi.exceptions import BridgeAPIError, ClientClosedError
from bridgeapi.models import (
    Account,
    ClusterDetail,
    ClusterRole,
    ClusterStatus,
    ClusterUpdateRequest,
    ClusterUpgradeRequest,
    CreateRequest,
    Provider,
    Team,
)
from bridgeapi.session import AuthProtocol, Clock, DirectBearer, LegacyExchange, SessionManager
from bridgeapi.transport import (
    ROUTE_ACCOUNT,
    ROUTE_CLUSTER,
    ROUTE_CLUSTER_ROLE,
    ROUTE_CLUSTER_STATUS,
    ROUTE_CLUSTER_UPGRADE,
    ROUTE_CLUSTERS,
    ROUTE_PROVIDERS,
    ROUTE_TEAMS,
    HeaderSetter,
    RequestExecutor,
    Timeout,
    idempotency_header,
    route,
    start_deadline,
)

logger = logging.getLogger("bridgeapi.client")

ROLE_SUPERUSER = "postgres"
ROLE_APPLICATION = "application"

# Roles that always exist on a cluster; others cannot be listed.
DEFAULT_ROLES = (ROLE_SUPERUSER, ROLE_APPLICATION)


class Client:
    """Thread‑safe client for the platform API.

    One instance may be shared by many threads; they share one session.

    Parameters
    ----------
    config:
        Connection and auth settings.
    http_client:
        Optional pre‑configured ``httpx.Client`` (proxies, TLS, transport).
        It is **not** closed by :meth:`close`.
    clock:
        Wall‑clock source used for token expiry.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        http_client: Optional[httpx.Client] = None,
        clock: Clock = time.time,
    ) -> None:
        self._config = config
        self._owns_http = http_client is None
        self._http = http_client if http_client is not None else httpx.Client(timeout=config.timeout)

        protocol: AuthProtocol
        if config.token_exchange:
            protocol = LegacyExchange(config.credential)
        else:
            protocol = DirectBearer(config.credential)

        self._session = SessionManager(
            protocol,
            self._http,
            config.api_url,
            user_agent=config.user_agent,
            clock=clock,
        )
        self._executor = RequestExecutor(
            config.api_url,
            self._session,
            self._http,
            user_agent=config.user_agent,
            timeout=config.timeout,
        )

        self._closed = False
        self._lock = threading.Lock()

        logger.debug("Client created for %s (mode=%s)", config.api_url, self._session.mode)

        if config.immediate_login:
            try:
                self._session.ensure_authenticated()
            except BaseException:
                self._close_http()
                raise

    @classmethod
    def from_env(cls, **overrides: Any) -> Client:
        """Create a client from ``APPLICATION_ID`` / ``APPLICATION_SECRET`` / ``BRIDGE_API_URL``."""
        http_client = overrides.pop("http_client", None)
        clock = overrides.pop("clock", time.time)
        return cls(ClientConfig.from_env(**overrides), http_client=http_client, clock=clock)

    # -- properties --------------------------------------------------------

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def authenticated(self) -> bool:
        """``True`` while a current token is held."""
        return self._session.authenticated

    @property
    def closed(self) -> bool:
        return self._closed

    # -- lifecycle ---------------------------------------------------------

    def close(self, *, timeout: Timeout = None) -> None:
        """Release the session and, if owned, the HTTP client.  Idempotent.

        A failed token revoke is raised after local cleanup has completed.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        try:
            self._session.invalidate(timeout=timeout)
        finally:
            self._close_http()
        logger.debug("Client for %s closed", self._config.api_url)

    def __enter__(self) -> Client:
        return self

    def __exit__(self, exc_type: Any, exc: Optional[BaseException], tb: Any) -> None:
        if exc is None:
            self.close()
            return
        # The body's error wins; a failed release rides along on it.
        try:
            self.close()
        except Exception as close_exc:
            exc.add_note(f"additionally failed to release the session: {close_exc}")
            if isinstance(exc, BridgeAPIError):
                exc.close_error = close_exc

    # -- account -----------------------------------------------------------

    def account(self, *, timeout: Timeout = None) -> Account:
        """Return the account that owns the credential."""
        resp = self._execute("GET", ROUTE_ACCOUNT, timeout=timeout)
        return decode_into(resp, Account.from_dict)

    def account_teams(self, *, timeout: Timeout = None) -> list[Team]:
        """Return the teams the account belongs to, in API order."""
        resp = self._execute("GET", ROUTE_TEAMS, timeout=timeout)
        return decode_into(resp, lambda data: [Team.from_dict(t) for t in data.get("teams") or ()])

    def providers(self, *, timeout: Timeout = None) -> list[Provider]:
        """Return the cloud providers with their plans and regions."""
        resp = self._execute("GET", ROUTE_PROVIDERS, timeout=timeout)
        return decode_into(
            resp, lambda data: [Provider.from_dict(p) for p in data.get("providers") or ()]
        )

    # -- clusters ----------------------------------------------------------

    def create_cluster(self, request: CreateRequest, *, timeout: Timeout = None) -> str:
        """Create a cluster and return its ID.

        With ``ClientConfig.idempotency_key`` set, repeating an identical
        request reuses the same ``Idempotency-Key``.
        """
        payload = request.to_json()
        setters: list[HeaderSetter] = []
        if self._config.idempotency_key:
            setters.append(idempotency_header(payload))

        resp = self._execute(
            "POST", ROUTE_CLUSTERS, content=payload, header_setters=setters, timeout=timeout
        )
        cluster_id = decode_into(resp, lambda data: str(data["id"]), expected=CREATED)
        logger.info("Cluster %s created (team=%s)", cluster_id, request.team_id)
        return cluster_id

    def delete_cluster(self, cluster_id: str, *, timeout: Timeout = None) -> None:
        resp = self._execute("DELETE", route(ROUTE_CLUSTER, cluster_id), timeout=timeout)
        check_status(resp, expected=OK)
        logger.info("Cluster %s deleted", cluster_id)

    def cluster_detail(self, cluster_id: str, *, timeout: Timeout = None) -> ClusterDetail:
        resp = self._execute("GET", route(ROUTE_CLUSTER, cluster_id), timeout=timeout)
        return decode_into(resp, ClusterDetail.from_dict)

    def cluster_status(self, cluster_id: str, *, timeout: Timeout = None) -> ClusterStatus:
        resp = self._execute("GET", route(ROUTE_CLUSTER_STATUS, cluster_id), timeout=timeout)
        return decode_into(resp, ClusterStatus.from_dict)

    def cluster_roles(self, cluster_id: str, *, timeout: Timeout = None) -> list[ClusterRole]:
        """Return the superuser and application roles, in that order.

        Either lookup failing fails the whole call; no partial list is returned.
        """
        deadline = start_deadline(timeout)
        roles: list[ClusterRole] = []
        for name in DEFAULT_ROLES:
            try:
                resp = self._execute(
                    "GET", route(ROUTE_CLUSTER_ROLE, cluster_id, name), timeout=deadline
                )
                roles.append(decode_into(resp, ClusterRole.from_dict))
            except BridgeAPIError as exc:
                raise exc.with_context(f"failed to get cluster role {name!r}") from exc
        return roles

    def clusters_for_team(self, team_id: str, *, timeout: Timeout = None) -> list[ClusterDetail]:
        resp = self._execute("GET", ROUTE_CLUSTERS, params={"team_id": team_id}, timeout=timeout)
        return decode_into(
            resp, lambda data: [ClusterDetail.from_dict(c) for c in data.get("clusters") or ()]
        )

    def get_all_clusters(self, *, timeout: Timeout = None) -> list[ClusterDetail]:
        """Return clusters of every team the account belongs to, team by team.

        *timeout* bounds the whole walk, not each request.
        """
        deadline = start_deadline(timeout)
        try:
            teams = self.account_teams(timeout=deadline)
        except BridgeAPIError as exc:
            raise exc.with_context("failed to get team memberships") from exc

        clusters: list[ClusterDetail] = []
        for team in teams:
            try:
                clusters.extend(self.clusters_for_team(team.id, timeout=deadline))
            except BridgeAPIError as exc:
                raise exc.with_context(f"failed to get clusters for team {team.id}") from exc
        return clusters

    def update_cluster(
        self, cluster_id: str, request: ClusterUpdateRequest, *, timeout: Timeout = None
    ) -> None:
        """Change cluster metadata (name, maintenance window)."""
        resp = self._execute(
            "PATCH", route(ROUTE_CLUSTER, cluster_id), content=request.to_json(), timeout=timeout
        )
        check_status(resp, expected=OK_OR_CREATED)

    def upgrade_cluster(
        self, cluster_id: str, request: ClusterUpgradeRequest, *, timeout: Timeout = None
    ) -> None:
        """Change plan, storage, HA or major version.  Accepted immediately (200) or queued (201)."""
        resp = self._execute(
            "POST",
            route(ROUTE_CLUSTER_UPGRADE, cluster_id),
            content=request.to_json(),
            timeout=timeout,
        )
        check_status(resp, expected=OK_OR_CREATED)
        logger.info("Upgrade requested for cluster %s", cluster_id)

    # -- private -----------------------------------------------------------

    def _execute(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self._closed:
            raise ClientClosedError("client has already been closed")
        return self._executor.execute(method, path, **kwargs)

    def _close_http(self) -> None:
        if self._owns_http:
            self._http.close()
