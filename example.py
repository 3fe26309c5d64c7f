#!/usr/bin/env python3
"""Example usage of the BridgeAPI client.

Clients are lazy: nothing is sent until the first operation, which also
authenticates.  Leaving the ``with`` block releases the session.

Set ``APPLICATION_ID`` and ``APPLICATION_SECRET`` before running.
"""

import logging

from bridgeapi import Client, ClusterUpgradeRequest, ConflictError, CreateRequest

logging.basicConfig(level=logging.INFO)

with Client.from_env(user_agent="bridgeapi-example/0.1", idempotency_key=True) as api:
    # ── Reference data ────────────────────────────────────────────────────
    account = api.account()
    print("Account:", account.id, "default team:", account.default_team_id)

    aws = next(p for p in api.providers() if p.id == "aws")
    print("Plans:", [plan.id for plan in aws.plans])

    # ── Create (safe to re-run: same payload, same Idempotency-Key) ───────
    request = CreateRequest(
        name="example-orders",
        team_id=account.default_team_id,
        plan_id="hobby-2",
        storage_gb=10,
        provider_id="aws",
        region_id="us-east-1",
        major_version=16,
    )
    try:
        cluster_id = api.create_cluster(request)
    except ConflictError as exc:
        raise SystemExit(f"Cluster name already taken: {exc}")

    # ── Inspect ───────────────────────────────────────────────────────────
    detail = api.cluster_detail(cluster_id)
    print("Cluster:", detail.name, detail.state)

    status = api.cluster_status(cluster_id)
    print("Disk used (MB):", status.disk_usage.used_mb, "of", status.disk_usage.total_mb)

    for role in api.cluster_roles(cluster_id):
        print("Role:", role.name)

    # ── Upgrade, then tear down ───────────────────────────────────────────
    api.upgrade_cluster(cluster_id, ClusterUpgradeRequest(storage_gb=20))
    api.delete_cluster(cluster_id)

    print("All clusters:", [c.name for c in api.get_all_clusters()])
