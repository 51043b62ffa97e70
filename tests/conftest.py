# -*- coding: utf-8 -*-
"""Pytest configuration and shared fixtures."""

from typing import Dict, Iterable, List, Optional

import pytest

from portgraph.config import PlannerConfig, reset_config, set_config
from portgraph.graph_builder import DependencyGraphBuilder
from portgraph.models import (
    Dependency,
    FeatureDefinition,
    InstalledSpec,
    PackageSpec,
    PortManifest,
    SchemedVersion,
    VersionScheme,
)
from portgraph.setup import reset_planner
from portgraph.sources import (
    InMemoryManifestSource,
    InMemoryStatusDatabase,
    InMemoryVersionRegistry,
)
from portgraph.versions import parse_schemed

TRIPLET = "x64-linux"


@pytest.fixture(autouse=True)
def planner_config():
    """Install a default PlannerConfig, independent of the environment."""
    config = PlannerConfig()
    set_config(config)
    yield config
    reset_planner()
    reset_config()


@pytest.fixture
def semver():
    """Factory: ``semver("1.2.0#1")`` -> SchemedVersion."""
    def _make(text: str) -> SchemedVersion:
        return parse_schemed(text, VersionScheme.SEMVER)
    return _make


@pytest.fixture
def spec():
    """Factory: ``spec("zlib")`` -> PackageSpec for the default triplet."""
    def _make(port: str, triplet: str = TRIPLET) -> PackageSpec:
        return PackageSpec(port=port, triplet=triplet)
    return _make


@pytest.fixture
def make_dep(semver):
    """Factory for Dependency declarations with semver constraints."""
    def _make(
        name: str,
        minimum: Optional[str] = None,
        exact: bool = False,
        features: Iterable[str] = (),
        default_features: bool = True,
        host: bool = False,
        platforms: Iterable[str] = (),
    ) -> Dependency:
        return Dependency(
            name=name,
            features=list(features),
            default_features=default_features,
            host=host,
            minimum_version=semver(minimum) if minimum else None,
            exact=exact,
            platforms=list(platforms),
        )
    return _make


@pytest.fixture
def make_manifest():
    """Factory for semver PortManifests."""
    def _make(
        name: str,
        version: Optional[str] = "1.0.0",
        dependencies: Iterable[Dependency] = (),
        features: Optional[Dict[str, List[Dependency]]] = None,
        default_features: Iterable[str] = (),
        scheme: VersionScheme = VersionScheme.SEMVER,
    ) -> PortManifest:
        return PortManifest(
            name=name,
            scheme=scheme,
            version=parse_schemed(version, scheme) if version else None,
            dependencies=list(dependencies),
            features={
                fname: FeatureDefinition(name=fname, dependencies=list(deps))
                for fname, deps in (features or {}).items()
            },
            default_features=list(default_features),
        )
    return _make


@pytest.fixture
def make_installed(semver):
    """Factory for InstalledSpec status records."""
    def _make(
        port: str,
        version: str = "1.0.0",
        dependencies: Iterable[str] = (),
        requested: bool = True,
        features: Iterable[str] = (),
        triplet: str = TRIPLET,
    ) -> InstalledSpec:
        return InstalledSpec(
            spec=PackageSpec(port=port, triplet=triplet),
            version=semver(version),
            features=tuple(features),
            dependencies=tuple(PackageSpec(port=d, triplet=triplet) for d in dependencies),
            requested=requested,
        )
    return _make


@pytest.fixture
def manifests():
    return InMemoryManifestSource()


@pytest.fixture
def registry():
    return InMemoryVersionRegistry()


@pytest.fixture
def status_db():
    return InMemoryStatusDatabase()


@pytest.fixture
def builder(manifests, registry, planner_config):
    return DependencyGraphBuilder(manifests, registry, config=planner_config)
