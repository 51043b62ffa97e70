# -*- coding: utf-8 -*-
"""
Collaborator Interfaces - portgraph resolution and planning engine

Protocols for the three collaborators the engine consumes, together with
in-memory implementations for embedding and tests and a directory-backed
JSON manifest source:

    - ManifestSource:   (port, triplet) -> PortManifest
    - VersionRegistry:  port -> baseline pin / latest known version
    - StatusDatabase:   installed-package snapshot plus install/remove writes

The engine reads manifests and the registry while building a graph, takes
one ``list_installed()`` snapshot before planning, and writes to the status
database only after a plan is complete.

Example:
    >>> from portgraph.sources import InMemoryManifestSource, InMemoryVersionRegistry
    >>> manifests = InMemoryManifestSource()
    >>> registry = InMemoryVersionRegistry()
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional, Protocol, runtime_checkable

from portgraph.exceptions import ManifestFormatError
from portgraph.models import InstalledSpec, PackageSpec, PortManifest, SchemedVersion
from portgraph.serialization import manifest_from_dict

logger = logging.getLogger(__name__)


# ===================================================================
# Protocols
# ===================================================================


@runtime_checkable
class ManifestSource(Protocol):
    """Supplies port manifests, filtered for the requested triplet."""

    def get_manifest(self, port: str, triplet: str) -> Optional[PortManifest]:
        """Return the manifest for ``port`` as seen from ``triplet``, or None."""
        ...


@runtime_checkable
class VersionRegistry(Protocol):
    """Supplies baseline pins and latest-known versions."""

    def get_baseline(self, port: str) -> Optional[SchemedVersion]:
        """Return the baseline pin for ``port``, or None."""
        ...

    def get_latest(self, port: str) -> Optional[SchemedVersion]:
        """Return the latest known version of ``port``, or None."""
        ...


@runtime_checkable
class StatusDatabase(Protocol):
    """The sole source of truth for what is currently installed."""

    def list_installed(self) -> FrozenSet[InstalledSpec]:
        """Return an immutable snapshot of installed packages."""
        ...

    def record_install(self, spec: InstalledSpec) -> None:
        """Record that ``spec`` is now installed."""
        ...

    def record_remove(self, spec: PackageSpec) -> None:
        """Record that ``spec`` is no longer installed."""
        ...


# ===================================================================
# In-memory implementations
# ===================================================================


class InMemoryManifestSource:
    """Manifest source backed by a dictionary of PortManifest objects."""

    def __init__(self, manifests: Iterable[PortManifest] = ()) -> None:
        self._manifests: Dict[str, PortManifest] = {}
        for manifest in manifests:
            self.add(manifest)

    def add(self, manifest: PortManifest) -> None:
        """Add or replace the manifest for ``manifest.name``."""
        self._manifests[manifest.name] = manifest

    def get_manifest(self, port: str, triplet: str) -> Optional[PortManifest]:
        manifest = self._manifests.get(port)
        if manifest is None:
            return None
        return manifest.for_triplet(triplet)

    def ports(self) -> List[str]:
        return sorted(self._manifests)


class DirectoryManifestSource:
    """Manifest source reading ``<root>/<port>/manifest.json`` files.

    Parsed manifests are cached per port; the cache is never invalidated,
    so one instance is one snapshot of the directory.
    """

    MANIFEST_FILENAME = "manifest.json"

    def __init__(self, root: Path, allow_hash_port_version: bool = False) -> None:
        self.root = Path(root)
        self.allow_hash_port_version = allow_hash_port_version
        self._cache: Dict[str, Optional[PortManifest]] = {}
        self._lock = threading.Lock()

    def get_manifest(self, port: str, triplet: str) -> Optional[PortManifest]:
        with self._lock:
            if port not in self._cache:
                self._cache[port] = self._load(port)
            manifest = self._cache[port]
        if manifest is None:
            return None
        return manifest.for_triplet(triplet)

    def _load(self, port: str) -> Optional[PortManifest]:
        path = self.root / port / self.MANIFEST_FILENAME
        if not path.is_file():
            logger.debug("No manifest for %s at %s", port, path)
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ManifestFormatError(
                message=f"{path}: invalid JSON: {exc}",
                parent_type="manifest",
                port_name=port,
            ) from exc
        if not isinstance(data, dict):
            raise ManifestFormatError(
                message=f"{path}: manifest must be a JSON object",
                parent_type="manifest",
                port_name=port,
            )
        manifest = manifest_from_dict(data, self.allow_hash_port_version)
        if manifest.name != port:
            raise ManifestFormatError(
                message=f"{path}: manifest names '{manifest.name}', expected '{port}'",
                parent_type="manifest",
                port_name=port,
            )
        logger.debug("Loaded manifest for %s from %s", port, path)
        return manifest


class InMemoryVersionRegistry:
    """Version registry backed by baseline and latest-version dictionaries."""

    def __init__(
        self,
        baseline: Optional[Dict[str, SchemedVersion]] = None,
        latest: Optional[Dict[str, SchemedVersion]] = None,
    ) -> None:
        self._baseline: Dict[str, SchemedVersion] = dict(baseline or {})
        self._latest: Dict[str, SchemedVersion] = dict(latest or {})

    def set_baseline(self, port: str, version: SchemedVersion) -> None:
        self._baseline[port] = version

    def set_latest(self, port: str, version: SchemedVersion) -> None:
        self._latest[port] = version

    def get_baseline(self, port: str) -> Optional[SchemedVersion]:
        return self._baseline.get(port)

    def get_latest(self, port: str) -> Optional[SchemedVersion]:
        return self._latest.get(port)


class InMemoryStatusDatabase:
    """Thread-safe in-memory status database.

    ``list_installed`` returns a frozen snapshot, so a plan computed from it
    is unaffected by later writes.
    """

    def __init__(self, installed: Iterable[InstalledSpec] = ()) -> None:
        self._installed: Dict[PackageSpec, InstalledSpec] = {}
        self._lock = threading.RLock()
        self._write_count = 0
        for record in installed:
            self._installed[record.spec] = record

    def list_installed(self) -> FrozenSet[InstalledSpec]:
        with self._lock:
            return frozenset(self._installed.values())

    def get(self, spec: PackageSpec) -> Optional[InstalledSpec]:
        with self._lock:
            return self._installed.get(spec)

    def record_install(self, spec: InstalledSpec) -> None:
        with self._lock:
            self._installed[spec.spec] = spec
            self._write_count += 1
        logger.debug("Status database: installed %s %s", spec.spec, spec.version)

    def record_remove(self, spec: PackageSpec) -> None:
        with self._lock:
            if self._installed.pop(spec, None) is None:
                logger.warning("Status database: %s was not installed", spec)
            self._write_count += 1
        logger.debug("Status database: removed %s", spec)

    @property
    def write_count(self) -> int:
        """Number of install/remove writes performed."""
        return self._write_count


__all__ = [
    "ManifestSource",
    "VersionRegistry",
    "StatusDatabase",
    "InMemoryManifestSource",
    "DirectoryManifestSource",
    "InMemoryVersionRegistry",
    "InMemoryStatusDatabase",
]
