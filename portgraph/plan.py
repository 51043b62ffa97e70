# -*- coding: utf-8 -*-
"""
Plan Computer - portgraph resolution and planning engine

Linearizes a resolved graph and diffs it against the installed snapshot.

Ordering is Kahn's algorithm over dependency edges with a min-heap on
(port, triplet), so dependencies always come before their dependents and
identical inputs always produce the identical action sequence.

Classification per node:
    - not installed                          -> install
    - installed with another version, scheme
      or feature set                         -> upgrade (remove + install)
    - installed exactly as resolved          -> already_present

Example:
    >>> from portgraph.plan import PlanComputer
    >>> plan = PlanComputer().compute(graph, status_db.list_installed())
    >>> plan.describe()
    ['install b:x64-linux 1.2.0#1', 'install a:x64-linux 1.0.0']
"""

from __future__ import annotations

import heapq
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from portgraph.exceptions import IncomparableVersionsError, InternalConsistencyError
from portgraph.metrics import record_plan_action
from portgraph.models import (
    ActionKind,
    ActionPlan,
    InstalledSpec,
    PackageSpec,
    PlanAction,
    ResolvedGraph,
    ResolvedNode,
    VersionComparison,
)
from portgraph.versions import compare_versions

logger = logging.getLogger(__name__)


class PlanComputer:
    """Turns a ResolvedGraph plus installed state into an ActionPlan.

    Stateless; one instance can serve any number of runs.
    """

    def compute(
        self,
        graph: ResolvedGraph,
        installed: Iterable[InstalledSpec],
    ) -> ActionPlan:
        """Compute the ordered action plan for a resolved graph.

        Args:
            graph: Output of DependencyGraphBuilder.build().
            installed: Snapshot of the status database.

        Returns:
            ActionPlan with one action per node in dependency order.

        Raises:
            InternalConsistencyError: The graph contains two nodes for one
                spec with different versions, or its edges do not form a DAG.
        """
        self._check_consistency(graph)
        snapshot: Dict[PackageSpec, InstalledSpec] = {r.spec: r for r in installed}

        actions: List[PlanAction] = []
        for node in self.topological_order(graph):
            action = self._classify(graph, node, snapshot.get(node.spec))
            actions.append(action)
            record_plan_action(action.kind.value)

        plan = ActionPlan(actions=actions)
        logger.info(
            "Computed plan: %d install, %d upgrade, %d already present",
            len(plan.installs), len(plan.upgrades), len(plan.already_present),
        )
        return plan

    def topological_order(self, graph: ResolvedGraph) -> List[ResolvedNode]:
        """Dependencies first; ties broken by (port, triplet).

        Raises:
            InternalConsistencyError: If the graph has a cycle.
        """
        remaining: Dict[int, int] = {n.index: len(set(n.dependencies)) for n in graph.nodes}
        dependents: Dict[int, List[int]] = {n.index: [] for n in graph.nodes}
        for node in graph.nodes:
            for dep in set(node.dependencies):
                dependents[dep].append(node.index)

        heap: List[Tuple[Tuple[str, str], int]] = [
            (n.spec.sort_key, n.index) for n in graph.nodes if remaining[n.index] == 0
        ]
        heapq.heapify(heap)

        order: List[ResolvedNode] = []
        while heap:
            _, idx = heapq.heappop(heap)
            order.append(graph.nodes[idx])
            for dependent in dependents[idx]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(heap, (graph.nodes[dependent].spec.sort_key, dependent))

        if len(order) != len(graph.nodes):
            stuck = sorted(str(n.spec) for n in graph.nodes if remaining[n.index] > 0)
            raise InternalConsistencyError(
                message=f"resolved graph is not acyclic; unordered nodes: {stuck}",
                context={"nodes": stuck},
            )
        return order

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_consistency(graph: ResolvedGraph) -> None:
        seen: Dict[PackageSpec, ResolvedNode] = {}
        for position, node in enumerate(graph.nodes):
            if node.index != position:
                raise InternalConsistencyError(
                    message=f"node {node.spec} has index {node.index} at position {position}",
                    port_name=node.spec.port,
                )
            previous = seen.get(node.spec)
            if previous is not None and previous.version != node.version:
                raise InternalConsistencyError(
                    message=(
                        f"{node.spec} resolved to both {previous.version.describe()} "
                        f"and {node.version.describe()}"
                    ),
                    port_name=node.spec.port,
                    context={"versions": [str(previous.version), str(node.version)]},
                )
            seen.setdefault(node.spec, node)
            for dep in node.dependencies:
                if not 0 <= dep < len(graph.nodes):
                    raise InternalConsistencyError(
                        message=f"node {node.spec} references missing node index {dep}",
                        port_name=node.spec.port,
                    )

    @staticmethod
    def _classify(
        graph: ResolvedGraph,
        node: ResolvedNode,
        current: Optional[InstalledSpec],
    ) -> PlanAction:
        fields = dict(
            spec=node.spec,
            version=node.version,
            features=list(node.features),
            dependencies=[graph.nodes[i].spec for i in node.dependencies],
            node_index=node.index,
            request_type=node.request_type,
        )
        if current is None:
            return PlanAction(kind=ActionKind.INSTALL, **fields)

        try:
            same_version = (
                current.version.scheme == node.version.scheme
                and compare_versions(current.version, node.version) == VersionComparison.EQUAL
            )
        except IncomparableVersionsError:
            same_version = False
        if same_version and tuple(current.features) == tuple(sorted(node.features)):
            return PlanAction(kind=ActionKind.ALREADY_PRESENT, **fields)

        logger.debug(
            "%s: installed %s [%s], resolved %s [%s]",
            node.spec, current.version, ",".join(current.features),
            node.version, ",".join(node.features),
        )
        return PlanAction(kind=ActionKind.UPGRADE, old_version=current.version, **fields)


__all__ = [
    "PlanComputer",
]
