"""Wire models for platform API request and response bodies.

Field names follow the JSON contract of the API; Python attribute names are
chosen for readability and mapped in ``from_dict`` / ``to_dict``.  Update and
upgrade requests leave ``None`` fields out of the payload so only the fields
that are set change.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

# Go‑style zero time some endpoints send instead of omitting a timestamp.
_ZERO_TIME_PREFIX = "0001-01-01"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp.  Absent or zero values become ``None``."""
    if not value or value.startswith(_ZERO_TIME_PREFIX):
        return None
    return datetime.fromisoformat(value)


def format_timestamp(value: datetime) -> str:
    """Render *value* as RFC 3339 in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _without_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


# =============================================================================
# Account / Teams
# =============================================================================


@dataclass(frozen=True, slots=True)
class Account:
    """The account that owns the API key."""

    id: str
    default_team_id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Account:
        return cls(id=data["id"], default_team_id=data.get("default_team_id") or "")


@dataclass(frozen=True, slots=True)
class Team:
    """A team the account is a member of."""

    id: str
    name: str = ""
    is_default: bool = False
    role: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Team:
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            is_default=bool(data.get("is_default", False)),
            role=data.get("role") or "",
        )


# =============================================================================
# Providers
# =============================================================================


@dataclass(frozen=True, slots=True)
class Plan:
    """Instance plan offered by a provider."""

    id: str
    name: str = ""
    cpu: int = 0
    memory: int = 0
    rate: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Plan:
        return cls(
            id=data["id"],
            name=data.get("display_name") or "",
            cpu=int(data.get("cpu", 0)),
            memory=int(data.get("memory", 0)),
            rate=int(data.get("rate", 0)),
        )


@dataclass(frozen=True, slots=True)
class Region:
    """Region offered by a provider."""

    id: str
    name: str = ""
    location: str = ""
    multiplier: float = 1.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Region:
        return cls(
            id=data["id"],
            name=data.get("display_name") or "",
            location=data.get("location") or "",
            multiplier=float(data.get("multiplier", 1.0)),
        )


@dataclass(frozen=True, slots=True)
class Provider:
    """Cloud provider with its plans, regions and disk pricing."""

    id: str
    name: str = ""
    icon_name: str = ""
    disk_rate: int = 0
    plans: tuple[Plan, ...] = ()
    regions: tuple[Region, ...] = ()

    def plan(self, plan_id: str) -> Optional[Plan]:
        """Return the plan with *plan_id*, or ``None``."""
        return next((p for p in self.plans if p.id == plan_id), None)

    def region(self, region_id: str) -> Optional[Region]:
        """Return the region with *region_id*, or ``None``."""
        return next((r for r in self.regions if r.id == region_id), None)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Provider:
        disk = data.get("disk") or {}
        return cls(
            id=data["id"],
            name=data.get("display_name") or "",
            icon_name=data.get("icon_name") or "",
            disk_rate=int(disk.get("rate", 0)),
            plans=tuple(Plan.from_dict(p) for p in data.get("plans") or ()),
            regions=tuple(Region.from_dict(r) for r in data.get("regions") or ()),
        )


# =============================================================================
# Clusters
# =============================================================================


@dataclass(frozen=True, slots=True)
class ClusterDetail:
    """A database cluster as returned by ``GET /clusters/{id}``."""

    id: str
    name: str = ""
    team_id: str = ""
    cpu: int = 0
    memory_gb: int = 0
    storage_gb: int = 0
    is_ha: bool = False
    major_version: int = 0
    maintenance_window_start: Optional[int] = None
    plan_id: str = ""
    provider_id: str = ""
    region_id: str = ""
    state: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClusterDetail:
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            team_id=data.get("team_id") or "",
            cpu=int(data.get("cpu", 0)),
            memory_gb=int(data.get("memory", 0)),
            storage_gb=int(data.get("storage", 0)),
            is_ha=bool(data.get("is_ha", False)),
            major_version=int(data.get("major_version", 0)),
            maintenance_window_start=data.get("maintenance_window_start"),
            plan_id=data.get("plan_id") or "",
            provider_id=data.get("provider_id") or "",
            region_id=data.get("region_id") or "",
            state=data.get("state") or "",
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return _without_none(
            {
                "id": self.id,
                "name": self.name,
                "team_id": self.team_id,
                "cpu": self.cpu,
                "memory": self.memory_gb,
                "storage": self.storage_gb,
                "is_ha": self.is_ha,
                "major_version": self.major_version,
                "maintenance_window_start": self.maintenance_window_start,
                "plan_id": self.plan_id,
                "provider_id": self.provider_id,
                "region_id": self.region_id,
                "state": self.state,
                "created_at": format_timestamp(self.created_at) if self.created_at else None,
                "updated_at": format_timestamp(self.updated_at) if self.updated_at else None,
            }
        )


@dataclass(frozen=True, slots=True)
class DiskUsage:
    """Disk usage of a cluster, in megabytes."""

    used_mb: int = 0
    available_mb: int = 0
    total_mb: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiskUsage:
        return cls(
            used_mb=int(data.get("disk_used_mb", 0)),
            available_mb=int(data.get("disk_available_mb", 0)),
            total_mb=int(data.get("disk_total_size_mb", 0)),
        )


@dataclass(frozen=True, slots=True)
class UpgradeOperation:
    """One in‑flight upgrade operation."""

    flavor: str
    state: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UpgradeOperation:
        return cls(flavor=data.get("flavor") or "", state=data.get("state") or "")


@dataclass(frozen=True, slots=True)
class ClusterStatus:
    """Point‑in‑time status of a cluster.  Not cached by the client."""

    state: str = ""
    disk_usage: DiskUsage = field(default_factory=DiskUsage)
    oldest_backup_at: Optional[datetime] = None
    upgrade_operations: tuple[UpgradeOperation, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClusterStatus:
        upgrade = data.get("ongoing_upgrade") or {}
        return cls(
            state=data.get("state") or "",
            disk_usage=DiskUsage.from_dict(data.get("disk_usage") or {}),
            oldest_backup_at=parse_timestamp(data.get("oldest_backup_at")),
            upgrade_operations=tuple(
                UpgradeOperation.from_dict(op)
                for op in upgrade.get("operations") or upgrade.get("Operations") or ()
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "state": self.state,
            "disk_usage": {
                "disk_used_mb": self.disk_usage.used_mb,
                "disk_available_mb": self.disk_usage.available_mb,
                "disk_total_size_mb": self.disk_usage.total_mb,
            },
            "ongoing_upgrade": {
                "operations": [{"flavor": op.flavor, "state": op.state} for op in self.upgrade_operations]
            },
        }
        if self.oldest_backup_at is not None:
            out["oldest_backup_at"] = format_timestamp(self.oldest_backup_at)
        return out


@dataclass(frozen=True, slots=True)
class ClusterRole:
    """Credentials for one role of a cluster.  The password is kept out of ``repr``."""

    name: str
    cluster_id: str = ""
    team_id: str = ""
    password: str = field(default="", repr=False)
    uri: str = field(default="", repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClusterRole:
        return cls(
            name=data["name"],
            cluster_id=data.get("cluster_id") or "",
            team_id=data.get("team_id") or "",
            password=data.get("password") or "",
            uri=data.get("uri") or "",
        )


# =============================================================================
# Requests
# =============================================================================


class _Payload:
    """Mixin: serialise ``to_dict()`` to the exact bytes sent on the wire."""

    __slots__ = ()

    def to_dict(self) -> dict[str, Any]:
        raise NotImplementedError

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True, slots=True)
class CreateRequest(_Payload):
    """Body of ``POST /clusters``."""

    name: str
    team_id: str
    plan_id: str
    storage_gb: int
    provider_id: str
    region_id: str
    major_version: int
    is_ha: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "team_id": self.team_id,
            "plan_id": self.plan_id,
            "storage": self.storage_gb,
            "provider_id": self.provider_id,
            "region_id": self.region_id,
            "postgres_version_id": self.major_version,
            "is_ha": self.is_ha,
        }


@dataclass(frozen=True, slots=True)
class ClusterUpdateRequest(_Payload):
    """Body of ``PATCH /clusters/{id}``: metadata only."""

    name: Optional[str] = None
    maintenance_window_start: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return _without_none(
            {"name": self.name, "maintenance_window_start": self.maintenance_window_start}
        )


@dataclass(frozen=True, slots=True)
class ClusterUpgradeRequest(_Payload):
    """Body of ``POST /clusters/{id}/upgrade``: capacity, topology and version."""

    plan_id: Optional[str] = None
    storage_gb: Optional[int] = None
    is_ha: Optional[bool] = None
    major_version: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return _without_none(
            {
                "plan_id": self.plan_id,
                "storage": self.storage_gb,
                "is_ha": self.is_ha,
                "postgres_version_id": self.major_version,
            }
        )


@dataclass(frozen=True, slots=True)
class APIMessage:
    """Error envelope returned with non‑success statuses."""

    message: str = ""
    request_id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> APIMessage:
        return cls(message=data.get("message") or "", request_id=data.get("request_id") or "")
