# -*- coding: utf-8 -*-
"""
Dependency Graph Builder - portgraph resolution and planning engine

Expands root requests of (port, triplet, features) into the full
transitive node graph, then resolves one version per node.

Expansion is a breadth-first worklist keyed by PackageSpec:
    - a node's active features are its defaults (unless every requester
      suppressed them), the features requested of it, and the features its
      own active features require of the same port
    - edges declared under inactive features are ignored
    - feature sets only grow; a node whose features grow is re-queued and
      re-expanded, which guarantees a fixed point
    - host dependencies are keyed under the host triplet

After the fixed point the graph is checked for cycles (DFS) and each node's
ConstraintSet is resolved. Nodes are stored in an arena sorted by
(port, triplet) and reference their dependencies by index.

Example:
    >>> from portgraph.graph_builder import DependencyGraphBuilder
    >>> builder = DependencyGraphBuilder(manifests, registry)
    >>> graph = builder.build([PackageRequest(port="curl", features=["ssl"])])
    >>> [str(n.spec) for n in graph.nodes]
    ['curl:x64-linux', 'openssl:x64-linux', 'zlib:x64-linux']
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from portgraph.config import PlannerConfig, get_config
from portgraph.constraints import BASELINE_SOURCE, ConstraintSet
from portgraph.exceptions import (
    CycleError,
    GraphLimitExceededError,
    PortGraphException,
    ResolutionCancelledError,
    UnknownFeatureError,
    UnknownPortError,
)
from portgraph.metrics import record_constraint_failure, record_graph_size, record_resolution
from portgraph.models import (
    Dependency,
    DependencyEdge,
    PackageRequest,
    PackageSpec,
    PortManifest,
    RequestType,
    ResolvedGraph,
    ResolvedNode,
    SchemedVersion,
)
from portgraph.sources import ManifestSource, VersionRegistry
from portgraph.versions import parse_schemed

logger = logging.getLogger(__name__)

CORE_FEATURE = "core"


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class CancellationToken:
    """Cooperative cancellation flag checked between node expansions.

    May be set from any thread; the run observes it at its next checkpoint
    and discards all partial state.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise ResolutionCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise ResolutionCancelledError(message="resolution cancelled")


# ---------------------------------------------------------------------------
# Worklist state
# ---------------------------------------------------------------------------


@dataclass
class _NodeState:
    """Mutable per-node expansion state; never escapes a build() call."""

    spec: PackageSpec
    manifest: PortManifest
    features: Set[str] = field(default_factory=set)
    include_defaults: bool = False
    requested: bool = False
    active: Set[str] = field(default_factory=set)
    expanded: Optional[Tuple[frozenset, bool]] = None
    edges: List[DependencyEdge] = field(default_factory=list)

    def pending(self) -> bool:
        return self.expanded != (frozenset(self.features), self.include_defaults)


def _split_features(features: Iterable[str], default_features: bool = True) -> Tuple[Set[str], bool]:
    """Separate the ``core`` marker from feature names."""
    names = set(features)
    include_defaults = default_features and CORE_FEATURE not in names
    names.discard(CORE_FEATURE)
    return names, include_defaults


# ---------------------------------------------------------------------------
# DependencyGraphBuilder
# ---------------------------------------------------------------------------


class DependencyGraphBuilder:
    """Expands requests into a resolved node graph.

    Each ``build()`` call is an independent run over the collaborators'
    data; no state is shared between runs, so concurrent builds on one
    builder are safe as long as the collaborators are.

    Attributes:
        manifests: Source of port manifests.
        registry: Source of baseline pins and latest versions.
        config: Planner configuration (triplets, node limit).
    """

    def __init__(
        self,
        manifests: ManifestSource,
        registry: VersionRegistry,
        config: Optional[PlannerConfig] = None,
    ) -> None:
        self.manifests = manifests
        self.registry = registry
        self.config = config or get_config()
        logger.info(
            "DependencyGraphBuilder initialized (host_triplet=%s, max_nodes=%d)",
            self.config.host_triplet, self.config.max_graph_nodes,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(
        self,
        requests: Sequence[PackageRequest],
        pins: Optional[Mapping[PackageSpec, SchemedVersion]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResolvedGraph:
        """Expand ``requests`` and resolve a version for every node.

        Args:
            requests: Root requests.
            pins: Exact versions to impose on specific nodes, in addition
                to the manifests' constraints.
            cancel_token: Checked before each node expansion.

        Returns:
            The resolved graph.

        Raises:
            UnknownPortError: A reachable port has no manifest or version.
            UnknownFeatureError: A requested feature is not declared.
            CycleError: Active edges or feature requirements form a cycle.
            GraphLimitExceededError: More than ``max_graph_nodes`` nodes.
            SchemeMismatchError: A node's constraints mix schemes.
            VersionParseError: An unschemed constraint is malformed under
                its target's declared scheme.
            UnsatisfiableConstraintError: A node's constraints conflict.
            ResolutionCancelledError: ``cancel_token`` was cancelled.
        """
        try:
            states = self._expand(requests, cancel_token)
            self._check_cycles(states)
            graph = self._resolve(states, pins or {}, cancel_token)
        except PortGraphException:
            record_resolution("error")
            raise

        record_resolution("success")
        record_graph_size(len(graph))
        logger.info(
            "Resolved %d nodes and %d edges from %d requests",
            len(graph.nodes), len(graph.edges), len(requests),
        )
        return graph

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------

    def _expand(
        self,
        requests: Sequence[PackageRequest],
        cancel_token: Optional[CancellationToken],
    ) -> Dict[PackageSpec, _NodeState]:
        states: Dict[PackageSpec, _NodeState] = {}
        queue: Deque[PackageSpec] = deque()
        queued: Set[PackageSpec] = set()

        def require(
            spec: PackageSpec,
            features: Set[str],
            include_defaults: bool,
            requester: Optional[PackageSpec],
        ) -> _NodeState:
            state = states.get(spec)
            if state is None:
                if len(states) >= self.config.max_graph_nodes:
                    raise GraphLimitExceededError(
                        message=(
                            f"graph exceeds {self.config.max_graph_nodes} nodes "
                            f"while adding {spec}"
                        ),
                        port_name=spec.port,
                    )
                state = _NodeState(spec=spec, manifest=self._load_manifest(spec, requester))
                states[spec] = state

            for feature in sorted(features):
                if feature not in state.manifest.features:
                    who = f"required by {requester}" if requester else "requested"
                    raise UnknownFeatureError(
                        message=f"feature '{feature}' of {spec} ({who}) is not declared",
                        feature=feature,
                        port_name=spec.port,
                    )
            state.features |= features
            state.include_defaults = state.include_defaults or include_defaults
            if state.pending() and spec not in queued:
                queued.add(spec)
                queue.append(spec)
            return state

        for request in requests:
            spec = PackageSpec(
                port=request.port,
                triplet=request.triplet or self.config.default_triplet,
            )
            features, include_defaults = _split_features(request.features)
            require(spec, features, include_defaults, None).requested = True

        while queue:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            spec = queue.popleft()
            queued.discard(spec)
            state = states[spec]
            if not state.pending():
                continue
            state.expanded = (frozenset(state.features), state.include_defaults)
            requirements = self._expand_node(state)
            logger.debug("Expanded %s features=%s", spec, sorted(state.active))

            for edge, dep in requirements:
                features, include_defaults = _split_features(dep.features, dep.default_features)
                require(edge.target, features, include_defaults, spec)

        return states

    def _load_manifest(self, spec: PackageSpec, requester: Optional[PackageSpec]) -> PortManifest:
        manifest = self.manifests.get_manifest(spec.port, spec.triplet)
        if manifest is None:
            who = f" required by {requester}" if requester else ""
            raise UnknownPortError(
                message=f"no manifest for port '{spec.port}'{who}",
                port_name=spec.port,
            )
        return manifest

    def _expand_node(self, state: _NodeState) -> List[Tuple[DependencyEdge, Dependency]]:
        """Recompute active features and outgoing edges of one node.

        Returns:
            Each new edge paired with the dependency declaration it came from.
        """
        manifest = state.manifest
        seeds = set(state.features)
        if state.include_defaults:
            seeds.update(manifest.default_features)
        state.active = self._feature_closure(state.spec, manifest, seeds)

        pairs: List[Tuple[DependencyEdge, Dependency]] = []
        for via, deps in self._active_dependencies(manifest, state.active):
            for dep in deps:
                target = self._target_spec(state.spec, dep)
                if target == state.spec:
                    continue
                names, _ = _split_features(dep.features)
                pairs.append((DependencyEdge(
                    source=state.spec,
                    target=target,
                    features=tuple(sorted(names)),
                    minimum_version=dep.minimum_version,
                    version_text=dep.version_text,
                    exact=dep.exact,
                    via_feature=via,
                ), dep))
        state.edges = [edge for edge, _ in pairs]
        return pairs

    @staticmethod
    def _active_dependencies(
        manifest: PortManifest, active: Set[str],
    ) -> List[Tuple[Optional[str], List[Dependency]]]:
        groups: List[Tuple[Optional[str], List[Dependency]]] = [(None, manifest.dependencies)]
        for name in sorted(active):
            groups.append((name, manifest.features[name].dependencies))
        return groups

    def _target_spec(self, source: PackageSpec, dep: Dependency) -> PackageSpec:
        triplet = self.config.host_triplet if dep.host else source.triplet
        return PackageSpec(port=dep.name, triplet=triplet)

    def _feature_closure(
        self, spec: PackageSpec, manifest: PortManifest, seeds: Set[str],
    ) -> Set[str]:
        """Close ``seeds`` under same-port feature requirements.

        Raises:
            UnknownFeatureError: A same-port requirement names an undeclared feature.
            CycleError: Features of the port require each other cyclically,
                or an active edge targets the port itself without naming
                a feature.
        """

        def requires(feature: str) -> List[str]:
            deps = (
                manifest.dependencies if feature == CORE_FEATURE
                else manifest.features[feature].dependencies
            )
            out: List[str] = []
            for dep in deps:
                if self._target_spec(spec, dep) != spec:
                    continue
                names = sorted(set(dep.features) - {CORE_FEATURE})
                if not names:
                    cycle = [str(spec), str(spec)]
                    raise CycleError(
                        message=f"dependency cycle: {' -> '.join(cycle)}",
                        cycle=cycle,
                        port_name=spec.port,
                    )
                for name in names:
                    if name not in manifest.features:
                        raise UnknownFeatureError(
                            message=f"feature '{name}' of {spec} (required by {feature}) is not declared",
                            feature=name,
                            port_name=spec.port,
                        )
                    out.append(name)
            return out

        # Iterative DFS with colours: 1 = on stack, 2 = done
        colour: Dict[str, int] = {}
        for root in [CORE_FEATURE] + sorted(seeds):
            if root in colour:
                continue
            colour[root] = 1
            stack: List[Tuple[str, List[str]]] = [(root, requires(root))]
            while stack:
                node, children = stack[-1]
                if not children:
                    colour[node] = 2
                    stack.pop()
                    continue
                child = children.pop(0)
                if colour.get(child) == 1:
                    path = [name for name, _ in stack]
                    cycle = path[path.index(child):] + [child]
                    raise CycleError(
                        message=(
                            f"feature cycle in {spec}: "
                            + " -> ".join(f"{spec.port}[{f}]" for f in cycle)
                        ),
                        cycle=[f"{spec.port}[{f}]" for f in cycle],
                        port_name=spec.port,
                    )
                if child not in colour:
                    colour[child] = 1
                    stack.append((child, requires(child)))

        return {name for name in colour if name != CORE_FEATURE}

    # ------------------------------------------------------------------
    # Cycle detection
    # ------------------------------------------------------------------

    def _check_cycles(self, states: Dict[PackageSpec, _NodeState]) -> None:
        """Raise CycleError for the first cycle found among active edges.

        Nodes and neighbours are visited in (port, triplet) order, so the
        reported cycle is deterministic.
        """
        graph: Dict[PackageSpec, List[PackageSpec]] = {
            spec: sorted({e.target for e in state.edges}, key=lambda s: s.sort_key)
            for spec, state in states.items()
        }
        visited: Set[PackageSpec] = set()

        for root in sorted(graph, key=lambda s: s.sort_key):
            if root in visited:
                continue
            visited.add(root)
            on_stack: Set[PackageSpec] = {root}
            path: List[PackageSpec] = [root]
            stack = [iter(graph[root])]
            while stack:
                neighbor = next(stack[-1], None)
                if neighbor is None:
                    stack.pop()
                    on_stack.discard(path.pop())
                    continue
                if neighbor in on_stack:
                    cycle = path[path.index(neighbor):] + [neighbor]
                    names = [str(s) for s in cycle]
                    raise CycleError(
                        message=f"dependency cycle: {' -> '.join(names)}",
                        cycle=names,
                        port_name=neighbor.port,
                    )
                if neighbor not in visited:
                    visited.add(neighbor)
                    on_stack.add(neighbor)
                    path.append(neighbor)
                    stack.append(iter(graph[neighbor]))

    # ------------------------------------------------------------------
    # Version resolution
    # ------------------------------------------------------------------

    def _resolve(
        self,
        states: Dict[PackageSpec, _NodeState],
        pins: Mapping[PackageSpec, SchemedVersion],
        cancel_token: Optional[CancellationToken],
    ) -> ResolvedGraph:
        constraint_sets: Dict[PackageSpec, ConstraintSet] = {
            spec: ConstraintSet(spec.port, declared_scheme=state.manifest.scheme)
            for spec, state in states.items()
        }

        all_edges = sorted(
            (edge for state in states.values() for edge in state.edges),
            key=lambda e: (e.source.sort_key, e.target.sort_key, e.via_feature or ""),
        )
        for edge in all_edges:
            version = edge.minimum_version
            if version is None and edge.version_text is not None:
                # unschemed constraints take the target's declared scheme
                version = parse_schemed(edge.version_text, states[edge.target].manifest.scheme)
            if version is None:
                continue
            source = f"{edge.source} -> {edge.target}"
            if edge.via_feature:
                source += f" (via feature '{edge.via_feature}')"
            if edge.exact:
                constraint_sets[edge.target].add_exact(version, source)
            else:
                constraint_sets[edge.target].add_minimum(version, source)

        ordered = sorted(states, key=lambda s: s.sort_key)
        index = {spec: i for i, spec in enumerate(ordered)}
        nodes: List[ResolvedNode] = []

        for spec in ordered:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            state = states[spec]
            constraints = constraint_sets[spec]
            baseline = self.registry.get_baseline(spec.port)
            if baseline is not None:
                constraints.set_baseline(baseline, BASELINE_SOURCE)
            if spec in pins:
                constraints.add_exact(pins[spec], f"pinned {spec}")
            latest = self.registry.get_latest(spec.port) or state.manifest.version

            try:
                version = constraints.resolve(latest)
            except PortGraphException as exc:
                record_constraint_failure(type(exc).__name__)
                raise

            nodes.append(ResolvedNode(
                index=index[spec],
                spec=spec,
                version=version,
                features=sorted(state.active),
                dependencies=sorted({index[e.target] for e in state.edges}),
                request_type=(
                    RequestType.USER_REQUESTED if state.requested else RequestType.AUTO_SELECTED
                ),
            ))
            logger.debug("%s -> %s (%s)", spec, version, constraints.winning_source)

        return ResolvedGraph(nodes=nodes, edges=all_edges)


__all__ = [
    "CORE_FEATURE",
    "CancellationToken",
    "DependencyGraphBuilder",
]
