# -*- coding: utf-8 -*-
"""
Schemed Version Serialization - portgraph resolution and planning engine

JSON (de)serialization for schemed versions, port manifests and
installed-package records.

A schemed version is carried in an object by exactly one scheme field plus
an optional ``port-version``:

    {"version": "1.2.11"}                           relaxed
    {"version-semver": "1.2.0", "port-version": 1}  semver
    {"version-date": "2024-03-01.2"}                date
    {"version-string": "vista"}                     string

Example:
    >>> from portgraph.serialization import deserialize_schemed_version
    >>> v = deserialize_schemed_version({"version-semver": "1.2.0", "port-version": 1}, "manifest")
    >>> str(v)
    '1.2.0#1'
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from portgraph.exceptions import ManifestFormatError
from portgraph.models import (
    Dependency,
    FeatureDefinition,
    InstalledSpec,
    PackageSpec,
    PortManifest,
    SchemedVersion,
    Version,
    VersionScheme,
)
from portgraph.versions import parse_version, split_port_version

logger = logging.getLogger(__name__)

PORT_VERSION_FIELD = "port-version"
SCHEME_FIELD = "version-scheme"
MINIMUM_FIELD = "version>="
EXACT_FIELD = "version=="

_FIELD_TO_SCHEME: Dict[str, VersionScheme] = {s.json_field: s for s in VersionScheme}


def schemed_version_fields() -> List[str]:
    """Field names that carry a version, plus ``port-version``."""
    return [s.json_field for s in VersionScheme] + [PORT_VERSION_FIELD]


# ---------------------------------------------------------------------------
# Schemed versions
# ---------------------------------------------------------------------------


def _read_port_version(obj: Mapping[str, Any], parent_type: str) -> Optional[int]:
    if PORT_VERSION_FIELD not in obj:
        return None
    value = obj[PORT_VERSION_FIELD]
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ManifestFormatError(
            message=f"{parent_type}: '{PORT_VERSION_FIELD}' must be a non-negative integer",
            parent_type=parent_type,
            fields=[PORT_VERSION_FIELD],
        )
    return value


def deserialize_optional_schemed_version(
    obj: Mapping[str, Any],
    parent_type: str,
    allow_hash_port_version: bool = False,
) -> Optional[SchemedVersion]:
    """Read a schemed version from ``obj`` if it carries one.

    Args:
        obj: JSON object.
        parent_type: Name of the enclosing object type, for diagnostics.
        allow_hash_port_version: Accept ``text#N`` when no ``port-version``
            field is present.

    Returns:
        SchemedVersion, or None when no version field is present.

    Raises:
        ManifestFormatError: On multiple version fields, a stray
            ``port-version``, or a bad ``#N`` suffix.
        VersionParseError: If the text is malformed for its scheme.
    """
    present = [f for f in _FIELD_TO_SCHEME if f in obj]
    port_version = _read_port_version(obj, parent_type)
    if not present:
        if port_version is not None:
            raise ManifestFormatError(
                message=f"{parent_type}: '{PORT_VERSION_FIELD}' given without a version field",
                parent_type=parent_type,
                fields=[PORT_VERSION_FIELD],
            )
        return None
    if len(present) > 1:
        raise ManifestFormatError(
            message=f"{parent_type}: expected exactly one version field, found {present}",
            parent_type=parent_type,
            fields=present,
        )

    field = present[0]
    scheme = _FIELD_TO_SCHEME[field]
    raw = obj[field]
    if not isinstance(raw, str):
        raise ManifestFormatError(
            message=f"{parent_type}: '{field}' must be a string",
            parent_type=parent_type,
            fields=[field],
        )

    if "#" in raw:
        if not allow_hash_port_version:
            raise ManifestFormatError(
                message=f"{parent_type}: '{field}' may not contain '#'; use '{PORT_VERSION_FIELD}'",
                parent_type=parent_type,
                fields=[field],
            )
        if port_version is not None:
            raise ManifestFormatError(
                message=(
                    f"{parent_type}: '{field}' has a '#' port-version and "
                    f"'{PORT_VERSION_FIELD}' is also set"
                ),
                parent_type=parent_type,
                fields=[field, PORT_VERSION_FIELD],
            )

    version = parse_version(raw, scheme)
    if port_version is not None:
        version = Version(text=version.text, port_version=port_version)
    return SchemedVersion(scheme=scheme, version=version)


def deserialize_schemed_version(
    obj: Mapping[str, Any],
    parent_type: str,
    allow_hash_port_version: bool = False,
) -> SchemedVersion:
    """Read a required schemed version from ``obj``.

    Raises:
        ManifestFormatError: If no version field is present, or see
            ``deserialize_optional_schemed_version``.
    """
    value = deserialize_optional_schemed_version(obj, parent_type, allow_hash_port_version)
    if value is None:
        raise ManifestFormatError(
            message=(
                f"{parent_type}: expected one of "
                f"{[s.json_field for s in VersionScheme]}"
            ),
            parent_type=parent_type,
        )
    return value


def serialize_schemed_version(
    scheme: VersionScheme,
    version: str,
    port_version: int,
    always_emit_port_version: bool = False,
) -> Dict[str, Any]:
    """Emit the scheme's version field and, when non-zero, ``port-version``."""
    out: Dict[str, Any] = {scheme.json_field: version}
    if port_version or always_emit_port_version:
        out[PORT_VERSION_FIELD] = port_version
    return out


def serialize_version(value: SchemedVersion, always_emit_port_version: bool = False) -> Dict[str, Any]:
    return serialize_schemed_version(
        value.scheme, value.version.text, value.version.port_version, always_emit_port_version,
    )


# ---------------------------------------------------------------------------
# Package specs
# ---------------------------------------------------------------------------


def parse_package_spec(text: str, default_triplet: Optional[str] = None) -> PackageSpec:
    """Parse ``port:triplet`` (or ``port`` with a default triplet).

    Raises:
        ManifestFormatError: If the text is not a valid spec.
    """
    port, sep, triplet = text.partition(":")
    if not sep:
        triplet = default_triplet or ""
    if not port or not triplet or ":" in triplet:
        raise ManifestFormatError(
            message=f"'{text}' is not a valid package spec (expected port:triplet)",
            parent_type="package spec",
        )
    return PackageSpec(port=port, triplet=triplet)


# ---------------------------------------------------------------------------
# Manifests
# ---------------------------------------------------------------------------


def _string_list(value: Any, parent_type: str, field: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ManifestFormatError(
            message=f"{parent_type}: '{field}' must be a list of strings",
            parent_type=parent_type,
            fields=[field],
        )
    return list(value)


def _dependency_from_json(data: Any, parent_type: str) -> Dependency:
    if isinstance(data, str):
        return Dependency(name=data)
    if not isinstance(data, dict) or not isinstance(data.get("name"), str):
        raise ManifestFormatError(
            message=f"{parent_type}: dependency must be a name or an object with 'name'",
            parent_type=parent_type,
        )

    name = data["name"]
    where = f"{parent_type} dependency '{name}'"
    if MINIMUM_FIELD in data and EXACT_FIELD in data:
        raise ManifestFormatError(
            message=f"{where}: '{MINIMUM_FIELD}' and '{EXACT_FIELD}' are mutually exclusive",
            parent_type=where,
            fields=[MINIMUM_FIELD, EXACT_FIELD],
        )

    minimum: Optional[SchemedVersion] = None
    text: Optional[str] = None
    exact = EXACT_FIELD in data
    raw = data.get(EXACT_FIELD if exact else MINIMUM_FIELD)
    if raw is not None:
        if not isinstance(raw, str) or not raw:
            raise ManifestFormatError(
                message=f"{where}: version constraint must be a non-empty string",
                parent_type=where,
            )
        if SCHEME_FIELD in data:
            try:
                scheme = VersionScheme(data[SCHEME_FIELD])
            except ValueError as exc:
                raise ManifestFormatError(
                    message=f"{where}: unknown '{SCHEME_FIELD}' {data[SCHEME_FIELD]!r}",
                    parent_type=where,
                    fields=[SCHEME_FIELD],
                ) from exc
            minimum = SchemedVersion(scheme=scheme, version=parse_version(raw, scheme))
        else:
            # bound to the dependency's declared scheme during resolution
            split_port_version(raw)
            text = raw

    return Dependency(
        name=name,
        features=_string_list(data.get("features"), where, "features"),
        default_features=bool(data.get("default-features", True)),
        host=bool(data.get("host", False)),
        minimum_version=minimum,
        version_text=text,
        exact=exact and (minimum is not None or text is not None),
        platforms=_string_list(data.get("platforms"), where, "platforms"),
    )


def manifest_from_dict(data: Mapping[str, Any], allow_hash_port_version: bool = False) -> PortManifest:
    """Build a PortManifest from its JSON form.

    Raises:
        ManifestFormatError: If the structure is invalid.
        VersionParseError: If a version text is malformed for its scheme.
    """
    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise ManifestFormatError(message="manifest: 'name' is required", parent_type="manifest")

    version = deserialize_optional_schemed_version(data, "manifest", allow_hash_port_version)
    if SCHEME_FIELD in data:
        try:
            scheme = VersionScheme(data[SCHEME_FIELD])
        except ValueError as exc:
            raise ManifestFormatError(
                message=f"manifest '{name}': unknown '{SCHEME_FIELD}' {data[SCHEME_FIELD]!r}",
                parent_type="manifest",
                fields=[SCHEME_FIELD],
                port_name=name,
            ) from exc
    elif version is not None:
        scheme = version.scheme
    else:
        scheme = VersionScheme.RELAXED

    features: Dict[str, FeatureDefinition] = {}
    raw_features = data.get("features") or {}
    if not isinstance(raw_features, dict):
        raise ManifestFormatError(
            message=f"manifest '{name}': 'features' must be an object",
            parent_type="manifest",
            fields=["features"],
            port_name=name,
        )
    try:
        for feature_name, body in raw_features.items():
            body = body or {}
            description = body.get("description", "")
            if isinstance(description, list):
                description = "\n".join(description)
            features[feature_name] = FeatureDefinition(
                name=feature_name,
                description=description,
                dependencies=[
                    _dependency_from_json(d, f"feature '{name}[{feature_name}]'")
                    for d in body.get("dependencies", [])
                ],
            )

        return PortManifest(
            name=name,
            scheme=scheme,
            version=version,
            default_features=_string_list(data.get("default-features"), "manifest", "default-features"),
            dependencies=[
                _dependency_from_json(d, f"manifest '{name}'")
                for d in data.get("dependencies", [])
            ],
            features=features,
        )
    except ValidationError as exc:
        raise ManifestFormatError(
            message=f"manifest '{name}' is invalid: {exc.errors()[0]['msg']}",
            parent_type="manifest",
            port_name=name,
        ) from exc


def _dependency_to_json(dep: Dependency) -> Any:
    out: Dict[str, Any] = {"name": dep.name}
    if dep.features:
        out["features"] = list(dep.features)
    if not dep.default_features:
        out["default-features"] = False
    if dep.host:
        out["host"] = True
    if dep.minimum_version is not None:
        out[EXACT_FIELD if dep.exact else MINIMUM_FIELD] = str(dep.minimum_version.version)
        out[SCHEME_FIELD] = dep.minimum_version.scheme.value
    elif dep.version_text is not None:
        out[EXACT_FIELD if dep.exact else MINIMUM_FIELD] = dep.version_text
    if dep.platforms:
        out["platforms"] = list(dep.platforms)
    if len(out) == 1:
        return dep.name
    return out


def manifest_to_dict(manifest: PortManifest, always_emit_port_version: bool = False) -> Dict[str, Any]:
    """Serialize a PortManifest to its JSON form."""
    out: Dict[str, Any] = {"name": manifest.name}
    if manifest.version is not None:
        out.update(serialize_version(manifest.version, always_emit_port_version))
    else:
        out[SCHEME_FIELD] = manifest.scheme.value
    if manifest.default_features:
        out["default-features"] = list(manifest.default_features)
    if manifest.dependencies:
        out["dependencies"] = [_dependency_to_json(d) for d in manifest.dependencies]
    if manifest.features:
        out["features"] = {
            name: {
                "description": feature.description,
                "dependencies": [_dependency_to_json(d) for d in feature.dependencies],
            }
            for name, feature in sorted(manifest.features.items())
        }
    return out


# ---------------------------------------------------------------------------
# Installed records
# ---------------------------------------------------------------------------


def installed_spec_to_dict(record: InstalledSpec, always_emit_port_version: bool = False) -> Dict[str, Any]:
    """Serialize an InstalledSpec for a status database file."""
    out: Dict[str, Any] = {"port": record.spec.port, "triplet": record.spec.triplet}
    out.update(serialize_version(record.version, always_emit_port_version))
    out["features"] = list(record.features)
    out["dependencies"] = [str(d) for d in record.dependencies]
    out["requested"] = record.requested
    return out


def installed_spec_from_dict(data: Mapping[str, Any], allow_hash_port_version: bool = False) -> InstalledSpec:
    """Build an InstalledSpec from its status database form.

    Raises:
        ManifestFormatError: If the record is malformed.
    """
    port, triplet = data.get("port"), data.get("triplet")
    if not isinstance(port, str) or not isinstance(triplet, str):
        raise ManifestFormatError(
            message="status record: 'port' and 'triplet' are required",
            parent_type="status record",
            fields=["port", "triplet"],
        )
    try:
        return InstalledSpec(
            spec=PackageSpec(port=port, triplet=triplet),
            version=deserialize_schemed_version(data, "status record", allow_hash_port_version),
            features=tuple(_string_list(data.get("features"), "status record", "features")),
            dependencies=tuple(
                parse_package_spec(d)
                for d in _string_list(data.get("dependencies"), "status record", "dependencies")
            ),
            requested=bool(data.get("requested", True)),
        )
    except ValidationError as exc:
        raise ManifestFormatError(
            message=f"status record for '{port}:{triplet}' is invalid: {exc.errors()[0]['msg']}",
            parent_type="status record",
            port_name=port,
        ) from exc


__all__ = [
    "PORT_VERSION_FIELD",
    "SCHEME_FIELD",
    "MINIMUM_FIELD",
    "EXACT_FIELD",
    "schemed_version_fields",
    "deserialize_optional_schemed_version",
    "deserialize_schemed_version",
    "serialize_schemed_version",
    "serialize_version",
    "parse_package_spec",
    "manifest_from_dict",
    "manifest_to_dict",
    "installed_spec_from_dict",
    "installed_spec_to_dict",
]
