# -*- coding: utf-8 -*-
"""
portgraph: Port Dependency Resolution & Action Planning Engine
==============================================================

This package computes what a package manager must build or remove, and in
which order, to bring an installation to a consistent state. It supports:

- Four mutually incomparable version schemes (semver, date, string, relaxed)
  with a port-version re-packaging tiebreaker
- Minimum-version constraint resolution with exact pins and baselines
- Breadth-first graph expansion over ports, features and triplets, with
  monotonic feature growth and host/target triplet separation
- Deterministic topological install plans diffed against installed state
- Removal planning with blocking-dependent checks, recursion and purge of
  orphaned automatic dependencies
- SHA-256 provenance tracking for status database writes and plans
- Prometheus metrics for observability
- Thread-safe configuration with PORTGRAPH_ env prefix

Key Components:
    - versions: parsing and scheme-aware comparison
    - constraints: ConstraintSet per (port, triplet)
    - graph_builder: DependencyGraphBuilder and CancellationToken
    - plan: PlanComputer
    - remove_plan: RemovePlanExecutor
    - sources: collaborator protocols and in-memory implementations
    - serialization: schemed version, manifest and status record JSON
    - provenance: ProvenanceTracker for SHA-256 audit trails
    - config: PlannerConfig with PORTGRAPH_ env prefix
    - metrics: Prometheus metrics
    - setup: PlanningService facade

Example:
    >>> from portgraph import PlanningService, PackageRequest
    >>> service = PlanningService(manifests=manifests, registry=registry)
    >>> service.startup()
    >>> plan = service.plan_install([PackageRequest(port="curl", features=["ssl"])])
    >>> plan.describe()
"""

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
from portgraph.config import (
    PlannerConfig,
    get_config,
    set_config,
    reset_config,
)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
from portgraph.models import (
    # Enumerations
    VersionScheme,
    VersionComparison,
    ConstraintKind,
    RequestType,
    ActionKind,
    RemoveReason,
    # Versions and specs
    Version,
    SchemedVersion,
    PackageSpec,
    PackageRequest,
    # Manifests
    Dependency,
    FeatureDefinition,
    PortManifest,
    # Graph
    DependencyEdge,
    VersionConstraint,
    ResolvedNode,
    ResolvedGraph,
    # State and plans
    InstalledSpec,
    PlanAction,
    ActionPlan,
)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------
from portgraph.exceptions import (
    PortGraphException,
    VersionException,
    VersionParseError,
    SchemeMismatchError,
    IncomparableVersionsError,
    ManifestException,
    ManifestFormatError,
    UnknownPortError,
    UnknownFeatureError,
    ResolutionException,
    UnsatisfiableConstraintError,
    CycleError,
    GraphLimitExceededError,
    ResolutionCancelledError,
    InternalConsistencyError,
    RemovalException,
    BlockingDependentsError,
)

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
from portgraph.versions import (
    parse_version,
    parse_schemed,
    format_version,
    compare_versions,
)
from portgraph.constraints import ConstraintSet
from portgraph.graph_builder import CancellationToken, DependencyGraphBuilder
from portgraph.plan import PlanComputer
from portgraph.remove_plan import RemovePlanExecutor

# ---------------------------------------------------------------------------
# Collaborators and serialization
# ---------------------------------------------------------------------------
from portgraph.sources import (
    ManifestSource,
    VersionRegistry,
    StatusDatabase,
    InMemoryManifestSource,
    DirectoryManifestSource,
    InMemoryVersionRegistry,
    InMemoryStatusDatabase,
)
from portgraph.serialization import (
    deserialize_schemed_version,
    serialize_schemed_version,
    manifest_from_dict,
    manifest_to_dict,
)

# ---------------------------------------------------------------------------
# Provenance and service facade
# ---------------------------------------------------------------------------
from portgraph.provenance import ProvenanceEntry, ProvenanceTracker
from portgraph.setup import (
    PlanningService,
    configure_planner,
    get_planner,
    reset_planner,
)

__all__ = [
    "__version__",
    # Configuration
    "PlannerConfig",
    "get_config",
    "set_config",
    "reset_config",
    # Enumerations
    "VersionScheme",
    "VersionComparison",
    "ConstraintKind",
    "RequestType",
    "ActionKind",
    "RemoveReason",
    # Models
    "Version",
    "SchemedVersion",
    "PackageSpec",
    "PackageRequest",
    "Dependency",
    "FeatureDefinition",
    "PortManifest",
    "DependencyEdge",
    "VersionConstraint",
    "ResolvedNode",
    "ResolvedGraph",
    "InstalledSpec",
    "PlanAction",
    "ActionPlan",
    # Exceptions
    "PortGraphException",
    "VersionException",
    "VersionParseError",
    "SchemeMismatchError",
    "IncomparableVersionsError",
    "ManifestException",
    "ManifestFormatError",
    "UnknownPortError",
    "UnknownFeatureError",
    "ResolutionException",
    "UnsatisfiableConstraintError",
    "CycleError",
    "GraphLimitExceededError",
    "ResolutionCancelledError",
    "InternalConsistencyError",
    "RemovalException",
    "BlockingDependentsError",
    # Engine
    "parse_version",
    "parse_schemed",
    "format_version",
    "compare_versions",
    "ConstraintSet",
    "CancellationToken",
    "DependencyGraphBuilder",
    "PlanComputer",
    "RemovePlanExecutor",
    # Collaborators
    "ManifestSource",
    "VersionRegistry",
    "StatusDatabase",
    "InMemoryManifestSource",
    "DirectoryManifestSource",
    "InMemoryVersionRegistry",
    "InMemoryStatusDatabase",
    # Serialization
    "deserialize_schemed_version",
    "serialize_schemed_version",
    "manifest_from_dict",
    "manifest_to_dict",
    # Provenance and service
    "ProvenanceEntry",
    "ProvenanceTracker",
    "PlanningService",
    "configure_planner",
    "get_planner",
    "reset_planner",
]
