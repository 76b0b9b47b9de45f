"""Prometheus metrics for the Foundry control plane."""

from prometheus_client import Counter, Gauge

builds_triggered_total = Counter(
    "foundry_builds_triggered_total",
    "Total build jobs submitted",
)

build_outcomes_total = Counter(
    "foundry_build_outcomes_total",
    "Build watcher terminal states",
    ["outcome"],
)

active_build_watchers = Gauge(
    "foundry_active_build_watchers",
    "Build watchers currently polling",
)

resource_reconciles_total = Counter(
    "foundry_resource_reconciles_total",
    "Cluster resources reconciled",
    ["kind", "action"],
)

deploys_total = Counter(
    "foundry_deploys_total",
    "Deploy reconciliations",
    ["result"],
)
