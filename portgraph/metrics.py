# -*- coding: utf-8 -*-
"""
Prometheus Metrics - portgraph resolution and planning engine

Prometheus metrics for resolution and planning runs.

Metrics:
    1. portgraph_operations_total (Counter)
    2. portgraph_operation_duration_seconds (Histogram)
    3. portgraph_resolutions_total (Counter)
    4. portgraph_graph_nodes (Histogram)
    5. portgraph_plan_actions_total (Counter)
    6. portgraph_removals_total (Counter)
    7. portgraph_constraint_failures_total (Counter)
    8. portgraph_status_writes_total (Counter)
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

# 1. Operations count
portgraph_operations_total = Counter(
    "portgraph_operations_total",
    "Total planner operations performed",
    labelnames=["operation", "result"],
)

# 2. Operation duration
portgraph_operation_duration_seconds = Histogram(
    "portgraph_operation_duration_seconds",
    "Planner operation duration in seconds",
    labelnames=["operation"],
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0, 5.0),
)

# 3. Graph resolutions count
portgraph_resolutions_total = Counter(
    "portgraph_resolutions_total",
    "Total dependency graph resolutions",
    labelnames=["result"],
)

# 4. Resolved graph size
portgraph_graph_nodes = Histogram(
    "portgraph_graph_nodes",
    "Number of (port, triplet) nodes in a resolved graph",
    buckets=(1, 5, 10, 25, 50, 100, 250, 500, 1000, 5000),
)

# 5. Plan actions by kind
portgraph_plan_actions_total = Counter(
    "portgraph_plan_actions_total",
    "Total plan actions emitted",
    labelnames=["kind"],
)

# 6. Removals by reason
portgraph_removals_total = Counter(
    "portgraph_removals_total",
    "Total packages removed from the status database",
    labelnames=["reason"],
)

# 7. Constraint failures by error type
portgraph_constraint_failures_total = Counter(
    "portgraph_constraint_failures_total",
    "Total constraint resolution failures",
    labelnames=["error_type"],
)

# 8. Status database writes
portgraph_status_writes_total = Counter(
    "portgraph_status_writes_total",
    "Total status database writes",
    labelnames=["operation"],
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def record_operation(operation: str, result: str, duration_seconds: float) -> None:
    """Record a planner operation.

    Args:
        operation: Operation name (plan_install, plan_remove, apply_remove).
        result: Operation result ("success" or "error").
        duration_seconds: Operation duration in seconds.
    """
    portgraph_operations_total.labels(operation=operation, result=result).inc()
    portgraph_operation_duration_seconds.labels(operation=operation).observe(
        duration_seconds,
    )


def record_resolution(result: str) -> None:
    """Record a dependency graph resolution.

    Args:
        result: Resolution result ("success" or "error").
    """
    portgraph_resolutions_total.labels(result=result).inc()


def record_graph_size(nodes: int) -> None:
    """Record the node count of a resolved graph.

    Args:
        nodes: Number of nodes.
    """
    portgraph_graph_nodes.observe(nodes)


def record_plan_action(kind: str) -> None:
    """Record one emitted plan action.

    Args:
        kind: Action kind (install, upgrade, remove, already_present).
    """
    portgraph_plan_actions_total.labels(kind=kind).inc()


def record_removal(reason: str) -> None:
    """Record a package removal.

    Args:
        reason: Remove reason (requested, recursive, purged).
    """
    portgraph_removals_total.labels(reason=reason).inc()


def record_constraint_failure(error_type: str) -> None:
    """Record a constraint resolution failure.

    Args:
        error_type: Exception class name.
    """
    portgraph_constraint_failures_total.labels(error_type=error_type).inc()


def record_status_write(operation: str) -> None:
    """Record a status database write.

    Args:
        operation: "install" or "remove".
    """
    portgraph_status_writes_total.labels(operation=operation).inc()


__all__ = [
    # Metric objects
    "portgraph_operations_total",
    "portgraph_operation_duration_seconds",
    "portgraph_resolutions_total",
    "portgraph_graph_nodes",
    "portgraph_plan_actions_total",
    "portgraph_removals_total",
    "portgraph_constraint_failures_total",
    "portgraph_status_writes_total",
    # Helper functions
    "record_operation",
    "record_resolution",
    "record_graph_size",
    "record_plan_action",
    "record_removal",
    "record_constraint_failure",
    "record_status_write",
]
