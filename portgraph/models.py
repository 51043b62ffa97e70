# -*- coding: utf-8 -*-
"""
Planner Models - portgraph resolution and planning engine

Enums and Pydantic models shared by every stage of a resolution run:
versions and schemes, package specs, manifests, dependency edges, version
constraints, the resolved node graph, installed-package records, and the
emitted action plan.

Every model is a value object constructed fresh per run. Models that are
used as dictionary keys or set members (specs, versions, edges,
installed records) are frozen.

Example:
    >>> from portgraph.models import PackageSpec, SchemedVersion, Version, VersionScheme
    >>> spec = PackageSpec(port="zlib", triplet="x64-linux")
    >>> v = SchemedVersion(scheme=VersionScheme.SEMVER, version=Version(text="1.3.0"))
    >>> str(spec), str(v)
    ('zlib:x64-linux', '1.3.0')
"""

from __future__ import annotations

import hashlib
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

logger = logging.getLogger(__name__)


# ===================================================================
# Enumerations
# ===================================================================


class VersionScheme(str, Enum):
    """Ordering algorithm a port's version text is interpreted under."""

    SEMVER = "semver"
    DATE = "date"
    STRING = "string"
    RELAXED = "relaxed"

    @property
    def json_field(self) -> str:
        """Manifest field name that carries a version of this scheme."""
        fields = {
            VersionScheme.RELAXED: "version",
            VersionScheme.SEMVER: "version-semver",
            VersionScheme.DATE: "version-date",
            VersionScheme.STRING: "version-string",
        }
        return fields[self]


class VersionComparison(str, Enum):
    """Result of comparing two versions under one scheme."""

    LESS = "less"
    EQUAL = "equal"
    GREATER = "greater"


class ConstraintKind(str, Enum):
    """Origin of a version constraint collected for one port."""

    MINIMUM = "minimum"
    EXACT = "exact"
    BASELINE = "baseline"


class RequestType(str, Enum):
    """Whether a package was asked for by the user or pulled in as a dependency."""

    USER_REQUESTED = "user_requested"
    AUTO_SELECTED = "auto_selected"


class ActionKind(str, Enum):
    """Kinds of plan actions."""

    INSTALL = "install"
    UPGRADE = "upgrade"
    REMOVE = "remove"
    ALREADY_PRESENT = "already_present"


class RemoveReason(str, Enum):
    """Why a remove action is part of a plan."""

    REQUESTED = "requested"
    RECURSIVE = "recursive"
    PURGED = "purged"
    UPGRADE = "upgrade"


# ===================================================================
# Versions
# ===================================================================


class Version(BaseModel):
    """Version text plus the port-version re-packaging tiebreaker."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., min_length=1, description="Upstream version text")
    port_version: int = Field(
        default=0, ge=0, description="Re-packaging counter for the same upstream version",
    )

    def __str__(self) -> str:
        """Canonical text form: ``text`` or ``text#N`` for N > 0."""
        if self.port_version:
            return f"{self.text}#{self.port_version}"
        return self.text


class SchemedVersion(BaseModel):
    """A version together with the scheme it must be compared under."""

    model_config = ConfigDict(frozen=True)

    scheme: VersionScheme = Field(..., description="Ordering scheme")
    version: Version = Field(..., description="Version value")

    def __str__(self) -> str:
        return str(self.version)

    def describe(self) -> str:
        """Render with the scheme for diagnostics, e.g. ``1.2.0#1 (semver)``."""
        return f"{self.version} ({self.scheme.value})"


# ===================================================================
# Package specs and requests
# ===================================================================


class PackageSpec(BaseModel):
    """A port built for one triplet; the key of every graph node."""

    model_config = ConfigDict(frozen=True)

    port: str = Field(..., min_length=1, description="Port name")
    triplet: str = Field(..., min_length=1, description="Target triplet")

    @property
    def sort_key(self) -> Tuple[str, str]:
        """Stable secondary ordering key (port name, then triplet)."""
        return (self.port, self.triplet)

    def __str__(self) -> str:
        return f"{self.port}:{self.triplet}"


class PackageRequest(BaseModel):
    """A root request: port, optional triplet and requested features."""

    port: str = Field(..., min_length=1, description="Port name")
    triplet: Optional[str] = Field(
        None, description="Target triplet; the configured default when omitted",
    )
    features: List[str] = Field(
        default_factory=list,
        description="Requested features; 'core' suppresses default features",
    )


# ===================================================================
# Manifests
# ===================================================================


class Dependency(BaseModel):
    """One dependency declared in a manifest or a feature of a manifest."""

    name: str = Field(..., min_length=1, description="Port depended upon")
    features: List[str] = Field(default_factory=list, description="Features required of the dependency")
    default_features: bool = Field(
        default=True, description="Whether the dependency's default features are wanted",
    )
    host: bool = Field(
        default=False, description="Resolve against the host triplet (build tools)",
    )
    minimum_version: Optional[SchemedVersion] = Field(
        None, description="Minimum (or exact, see 'exact') version of the dependency",
    )
    version_text: Optional[str] = Field(
        None,
        description="Constraint text without a scheme; parsed under the dependency's declared scheme",
    )
    exact: bool = Field(
        default=False, description="Treat the version constraint as an exact pin",
    )
    platforms: List[str] = Field(
        default_factory=list, description="Triplet allow-list; empty applies everywhere",
    )

    @model_validator(mode="after")
    def _exact_needs_version(self) -> Dependency:
        if self.minimum_version is not None and self.version_text is not None:
            raise ValueError(
                f"dependency on '{self.name}' has both a schemed and an unschemed constraint"
            )
        if self.exact and not self.has_constraint:
            raise ValueError(f"dependency on '{self.name}' is exact but has no version")
        return self

    @property
    def has_constraint(self) -> bool:
        return self.minimum_version is not None or self.version_text is not None

    def applies_to(self, triplet: str) -> bool:
        """Check whether this dependency is active for a triplet."""
        return not self.platforms or triplet in self.platforms


class FeatureDefinition(BaseModel):
    """An optional named capability of a port."""

    name: str = Field(..., min_length=1, description="Feature name")
    description: str = Field(default="", description="Human-readable description")
    dependencies: List[Dependency] = Field(
        default_factory=list, description="Dependencies active only with this feature",
    )


class PortManifest(BaseModel):
    """Everything the engine needs to know about one port."""

    name: str = Field(..., min_length=1, description="Port name")
    scheme: VersionScheme = Field(..., description="Declared version scheme")
    version: Optional[SchemedVersion] = Field(
        None, description="Version described by this manifest",
    )
    default_features: List[str] = Field(default_factory=list, description="Features on by default")
    dependencies: List[Dependency] = Field(default_factory=list, description="Core dependencies")
    features: Dict[str, FeatureDefinition] = Field(
        default_factory=dict, description="Optional features by name",
    )

    @field_validator("features")
    @classmethod
    def _feature_keys_match(cls, v: Dict[str, FeatureDefinition]) -> Dict[str, FeatureDefinition]:
        for key, feature in v.items():
            if key != feature.name:
                raise ValueError(f"feature key '{key}' does not match name '{feature.name}'")
            if key == "core":
                raise ValueError("'core' is reserved and cannot be declared as a feature")
        return v

    @model_validator(mode="after")
    def _version_scheme_matches(self) -> PortManifest:
        if self.version is not None and self.version.scheme != self.scheme:
            raise ValueError(
                f"manifest for '{self.name}' declares scheme {self.scheme.value} "
                f"but its version uses {self.version.scheme.value}"
            )
        for feature in self.default_features:
            if feature not in self.features:
                raise ValueError(f"default feature '{feature}' of '{self.name}' is not declared")
        return self

    def for_triplet(self, triplet: str) -> PortManifest:
        """Return a copy with dependencies that do not apply to ``triplet`` dropped."""
        features = {
            name: feature.model_copy(update={
                "dependencies": [d for d in feature.dependencies if d.applies_to(triplet)],
            })
            for name, feature in self.features.items()
        }
        return self.model_copy(update={
            "dependencies": [d for d in self.dependencies if d.applies_to(triplet)],
            "features": features,
        })


# ===================================================================
# Edges and constraints
# ===================================================================


class DependencyEdge(BaseModel):
    """An active dependency between two graph nodes."""

    model_config = ConfigDict(frozen=True)

    source: PackageSpec = Field(..., description="Dependent node")
    target: PackageSpec = Field(..., description="Dependency node")
    features: Tuple[str, ...] = Field(default=(), description="Features required of the target")
    minimum_version: Optional[SchemedVersion] = Field(None, description="Version constraint")
    version_text: Optional[str] = Field(
        None, description="Unschemed constraint text, bound to the target's scheme",
    )
    exact: bool = Field(default=False, description="Whether the constraint is an exact pin")
    via_feature: Optional[str] = Field(
        None, description="Feature of the source that activates the edge; None for core",
    )

    def describe(self) -> str:
        """Render as ``a:x64-linux -> b:x64-linux >= 1.2.0``."""
        text = f"{self.source} -> {self.target}"
        constraint = self.minimum_version if self.minimum_version is not None else self.version_text
        if constraint is not None:
            op = "==" if self.exact else ">="
            text += f" {op} {constraint}"
        return text


class VersionConstraint(BaseModel):
    """One contribution to a port's ConstraintSet."""

    model_config = ConfigDict(frozen=True)

    kind: ConstraintKind = Field(..., description="Constraint origin")
    version: SchemedVersion = Field(..., description="Constraining version")
    source: str = Field(..., description="Edge or baseline that contributed it")

    def describe(self) -> str:
        ops = {
            ConstraintKind.MINIMUM: ">=",
            ConstraintKind.EXACT: "==",
            ConstraintKind.BASELINE: "pins",
        }
        return f"{self.source} {ops[self.kind]} {self.version.describe()}"


# ===================================================================
# Resolved graph
# ===================================================================


class ResolvedNode(BaseModel):
    """Arena record of one resolved (port, triplet) node."""

    index: int = Field(..., ge=0, description="Position in the graph arena")
    spec: PackageSpec = Field(..., description="Node key")
    version: SchemedVersion = Field(..., description="Chosen version")
    features: List[str] = Field(default_factory=list, description="Active features, sorted")
    dependencies: List[int] = Field(
        default_factory=list, description="Arena indices of direct dependencies",
    )
    request_type: RequestType = Field(
        default=RequestType.AUTO_SELECTED, description="User requested or auto-selected",
    )


class ResolvedGraph(BaseModel):
    """Output of the graph builder: nodes referenced by arena index."""

    nodes: List[ResolvedNode] = Field(default_factory=list, description="Node arena")
    edges: List[DependencyEdge] = Field(default_factory=list, description="Active edges")

    _by_spec: Dict[PackageSpec, int] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        for node in self.nodes:
            self._by_spec.setdefault(node.spec, node.index)

    def index_of(self, spec: PackageSpec) -> Optional[int]:
        """Arena index for a package spec, or None when it is not in the graph."""
        return self._by_spec.get(spec)

    def node_for(self, spec: PackageSpec) -> Optional[ResolvedNode]:
        """Node for a spec, or None."""
        idx = self.index_of(spec)
        return self.nodes[idx] if idx is not None else None

    def dependencies_of(self, node: ResolvedNode) -> List[ResolvedNode]:
        """Direct dependency nodes of a node."""
        return [self.nodes[i] for i in node.dependencies]

    def __len__(self) -> int:
        return len(self.nodes)


# ===================================================================
# Installed state
# ===================================================================


class InstalledSpec(BaseModel):
    """A package as reported by the status database."""

    model_config = ConfigDict(frozen=True)

    spec: PackageSpec = Field(..., description="Installed package")
    version: SchemedVersion = Field(..., description="Installed version")
    features: Tuple[str, ...] = Field(default=(), description="Installed features, sorted")
    dependencies: Tuple[PackageSpec, ...] = Field(
        default=(), description="Dependencies recorded at install time",
    )
    requested: bool = Field(
        default=True, description="False when installed automatically as a dependency",
    )

    @field_validator("features")
    @classmethod
    def _sort_features(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(sorted(set(v)))


# ===================================================================
# Plans
# ===================================================================


class PlanAction(BaseModel):
    """One unit of work in an ActionPlan."""

    kind: ActionKind = Field(..., description="Action kind")
    spec: PackageSpec = Field(..., description="Package the action applies to")
    version: Optional[SchemedVersion] = Field(None, description="Target or installed version")
    old_version: Optional[SchemedVersion] = Field(None, description="Version being replaced")
    features: List[str] = Field(default_factory=list, description="Features to install")
    dependencies: List[PackageSpec] = Field(
        default_factory=list, description="Direct dependencies of the node",
    )
    node_index: Optional[int] = Field(None, description="Arena index of the resolved node")
    request_type: Optional[RequestType] = Field(None, description="Install request type")
    remove_reason: Optional[RemoveReason] = Field(None, description="Why a remove is planned")

    def describe(self) -> str:
        """Human-readable one-line rendering."""
        if self.kind == ActionKind.UPGRADE:
            return f"upgrade {self.spec} {self.old_version} -> {self.version}"
        if self.kind == ActionKind.REMOVE:
            reason = f" ({self.remove_reason.value})" if self.remove_reason else ""
            return f"remove {self.spec}{reason}"
        suffix = f" {self.version}" if self.version is not None else ""
        return f"{self.kind.value.replace('_', ' ')} {self.spec}{suffix}"


class ActionPlan(BaseModel):
    """Ordered, dependency-respecting list of plan actions."""

    actions: List[PlanAction] = Field(default_factory=list, description="Ordered actions")
    not_installed: List[PackageSpec] = Field(
        default_factory=list, description="Removal targets that were not installed",
    )
    warnings: List[str] = Field(default_factory=list, description="Non-fatal diagnostics")

    def of_kind(self, kind: ActionKind) -> List[PlanAction]:
        return [a for a in self.actions if a.kind == kind]

    @property
    def installs(self) -> List[PlanAction]:
        return self.of_kind(ActionKind.INSTALL)

    @property
    def upgrades(self) -> List[PlanAction]:
        return self.of_kind(ActionKind.UPGRADE)

    @property
    def removals(self) -> List[PlanAction]:
        return self.of_kind(ActionKind.REMOVE)

    @property
    def already_present(self) -> List[PlanAction]:
        return self.of_kind(ActionKind.ALREADY_PRESENT)

    @property
    def requires_work(self) -> bool:
        """True when any action other than already-present exists."""
        return any(a.kind != ActionKind.ALREADY_PRESENT for a in self.actions)

    def execution_steps(self) -> List[PlanAction]:
        """Expand the plan into the steps an executor performs.

        Upgrades become a remove of the old artifact followed by an install
        into the same slot; already-present actions need no step.
        """
        steps: List[PlanAction] = []
        for action in self.actions:
            if action.kind == ActionKind.ALREADY_PRESENT:
                continue
            if action.kind == ActionKind.UPGRADE:
                steps.append(PlanAction(
                    kind=ActionKind.REMOVE,
                    spec=action.spec,
                    version=action.old_version,
                    remove_reason=RemoveReason.UPGRADE,
                ))
                steps.append(action.model_copy(update={
                    "kind": ActionKind.INSTALL, "old_version": None,
                }))
                continue
            steps.append(action)
        return steps

    def describe(self) -> List[str]:
        return [a.describe() for a in self.actions]

    @property
    def provenance_hash(self) -> str:
        """SHA-256 hash of the ordered actions."""
        payload: Any = [a.model_dump(mode="json") for a in self.actions]
        serialized = json.dumps(payload, sort_keys=True, default=str)
        return hashlib.sha256(serialized.encode()).hexdigest()


__all__ = [
    "VersionScheme",
    "VersionComparison",
    "ConstraintKind",
    "RequestType",
    "ActionKind",
    "RemoveReason",
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
]
