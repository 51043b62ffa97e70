# -*- coding: utf-8 -*-
"""Tests for schemed version, manifest and status record serialization.

Covers:
- Reading exactly one version field plus an optional port-version
- The ``#N`` port-version switch
- Emitting port-version only when needed
- Manifest and status record JSON forms
- Package spec parsing
- The directory-backed manifest source
"""

import json

import pytest

from portgraph.exceptions import ManifestFormatError, VersionParseError
from portgraph.models import PackageSpec, VersionScheme
from portgraph.serialization import (
    deserialize_optional_schemed_version,
    deserialize_schemed_version,
    installed_spec_from_dict,
    installed_spec_to_dict,
    manifest_from_dict,
    manifest_to_dict,
    parse_package_spec,
    schemed_version_fields,
    serialize_schemed_version,
    serialize_version,
)
from portgraph.sources import DirectoryManifestSource


# ==============================================================================
# Schemed versions
# ==============================================================================

class TestDeserializeSchemedVersion:
    """Reading schemed versions from JSON objects."""

    @pytest.mark.parametrize("field,text,scheme", [
        ("version", "1.2.11", VersionScheme.RELAXED),
        ("version-semver", "1.2.0", VersionScheme.SEMVER),
        ("version-date", "2024-03-01.2", VersionScheme.DATE),
        ("version-string", "vista", VersionScheme.STRING),
    ])
    def test_each_field_selects_its_scheme(self, field, text, scheme):
        value = deserialize_schemed_version({field: text}, "manifest")
        assert value.scheme == scheme
        assert value.version.text == text
        assert value.version.port_version == 0

    def test_port_version_field(self):
        value = deserialize_schemed_version(
            {"version-semver": "1.2.0", "port-version": 1}, "manifest",
        )
        assert str(value) == "1.2.0#1"

    def test_no_version_field(self):
        assert deserialize_optional_schemed_version({"name": "zlib"}, "manifest") is None
        with pytest.raises(ManifestFormatError) as exc_info:
            deserialize_schemed_version({"name": "zlib"}, "status record")
        assert exc_info.value.context["parent_type"] == "status record"

    def test_multiple_version_fields(self):
        with pytest.raises(ManifestFormatError) as exc_info:
            deserialize_schemed_version({"version": "1.0", "version-semver": "1.0.0"}, "manifest")
        assert set(exc_info.value.context["fields"]) == {"version", "version-semver"}

    def test_port_version_without_version(self):
        with pytest.raises(ManifestFormatError):
            deserialize_optional_schemed_version({"port-version": 2}, "manifest")

    @pytest.mark.parametrize("value", [-1, "1", True, 1.5])
    def test_invalid_port_version(self, value):
        with pytest.raises(ManifestFormatError):
            deserialize_schemed_version({"version": "1.0", "port-version": value}, "manifest")

    def test_non_string_version(self):
        with pytest.raises(ManifestFormatError):
            deserialize_schemed_version({"version": 1}, "manifest")

    def test_hash_port_version_rejected_by_default(self):
        with pytest.raises(ManifestFormatError):
            deserialize_schemed_version({"version-semver": "1.2.0#1"}, "manifest")

    def test_hash_port_version_allowed(self):
        value = deserialize_schemed_version(
            {"version-semver": "1.2.0#1"}, "manifest", allow_hash_port_version=True,
        )
        assert value.version.port_version == 1

    def test_hash_and_field_together_rejected(self):
        with pytest.raises(ManifestFormatError):
            deserialize_schemed_version(
                {"version-semver": "1.2.0#1", "port-version": 2},
                "manifest",
                allow_hash_port_version=True,
            )

    def test_malformed_text_is_a_parse_error(self):
        with pytest.raises(VersionParseError):
            deserialize_schemed_version({"version-semver": "1.2"}, "manifest")

    def test_schemed_version_fields(self):
        assert "port-version" in schemed_version_fields()
        assert "version-date" in schemed_version_fields()


class TestSerializeSchemedVersion:
    """Emitting schemed versions."""

    def test_zero_port_version_omitted(self):
        assert serialize_schemed_version(VersionScheme.SEMVER, "1.2.0", 0) == {"version-semver": "1.2.0"}

    def test_non_zero_port_version_emitted(self):
        assert serialize_schemed_version(VersionScheme.RELAXED, "1.2", 3) == {
            "version": "1.2", "port-version": 3,
        }

    def test_always_emit_port_version(self):
        out = serialize_schemed_version(
            VersionScheme.DATE, "2024-03-01", 0, always_emit_port_version=True,
        )
        assert out == {"version-date": "2024-03-01", "port-version": 0}

    def test_serialize_then_deserialize(self, semver):
        value = semver("1.2.0#4")
        assert deserialize_schemed_version(serialize_version(value), "manifest") == value


# ==============================================================================
# Manifests
# ==============================================================================

CURL_MANIFEST = {
    "name": "curl",
    "version-semver": "8.5.0",
    "port-version": 1,
    "default-features": ["ssl"],
    "dependencies": [
        "zlib",
        {"name": "cmake", "host": True},
        {"name": "nghttp2", "version>=": "1.57.0", "version-scheme": "semver", "platforms": ["x64-linux"]},
    ],
    "features": {
        "ssl": {
            "description": "TLS support",
            "dependencies": [{"name": "openssl", "features": ["tools"], "default-features": False}],
        },
    },
}


class TestManifestSerialization:
    """PortManifest JSON form."""

    def test_manifest_from_dict(self):
        manifest = manifest_from_dict(CURL_MANIFEST)

        assert manifest.name == "curl"
        assert manifest.scheme == VersionScheme.SEMVER
        assert str(manifest.version) == "8.5.0#1"
        assert manifest.default_features == ["ssl"]
        assert [d.name for d in manifest.dependencies] == ["zlib", "cmake", "nghttp2"]
        assert manifest.dependencies[1].host
        assert str(manifest.dependencies[2].minimum_version) == "1.57.0"
        assert manifest.dependencies[2].platforms == ["x64-linux"]

        ssl = manifest.features["ssl"]
        assert ssl.description == "TLS support"
        assert ssl.dependencies[0].features == ["tools"]
        assert ssl.dependencies[0].default_features is False

    def test_manifest_round_trip(self):
        manifest = manifest_from_dict(CURL_MANIFEST)
        assert manifest_from_dict(manifest_to_dict(manifest)) == manifest

    def test_exact_dependency(self):
        manifest = manifest_from_dict({
            "name": "a",
            "version": "1.0",
            "dependencies": [{"name": "b", "version==": "2.0"}],
        })
        dep = manifest.dependencies[0]
        assert dep.exact
        assert dep.minimum_version is None
        assert dep.version_text == "2.0"

    def test_unschemed_constraint_round_trip(self):
        manifest = manifest_from_dict({
            "name": "a",
            "version": "1.0",
            "dependencies": [{"name": "b", "version>=": "1.2.0#2"}],
        })
        dep = manifest.dependencies[0]

        assert dep.version_text == "1.2.0#2"
        assert manifest_to_dict(manifest)["dependencies"] == [{"name": "b", "version>=": "1.2.0#2"}]

    def test_schemed_constraint_is_parsed(self):
        manifest = manifest_from_dict({
            "name": "a",
            "version": "1.0",
            "dependencies": [{"name": "b", "version>=": "1.2.0", "version-scheme": "semver"}],
        })
        dep = manifest.dependencies[0]

        assert dep.version_text is None
        assert dep.minimum_version.scheme == VersionScheme.SEMVER

    def test_unschemed_constraint_bad_port_version(self):
        with pytest.raises(VersionParseError):
            manifest_from_dict({
                "name": "a",
                "version": "1.0",
                "dependencies": [{"name": "b", "version>=": "1.2.0#x"}],
            })

    def test_minimum_and_exact_are_exclusive(self):
        with pytest.raises(ManifestFormatError):
            manifest_from_dict({
                "name": "a",
                "version": "1.0",
                "dependencies": [{"name": "b", "version==": "2.0", "version>=": "1.0"}],
            })

    def test_unknown_dependency_scheme(self):
        with pytest.raises(ManifestFormatError):
            manifest_from_dict({
                "name": "a",
                "dependencies": [{"name": "b", "version>=": "2.0", "version-scheme": "calver"}],
            })

    def test_missing_name(self):
        with pytest.raises(ManifestFormatError):
            manifest_from_dict({"version": "1.0"})

    def test_undeclared_default_feature(self):
        with pytest.raises(ManifestFormatError):
            manifest_from_dict({"name": "a", "version": "1.0", "default-features": ["gui"]})

    def test_declared_scheme_must_match_version(self):
        with pytest.raises(ManifestFormatError):
            manifest_from_dict({"name": "a", "version": "1.0", "version-scheme": "semver"})

    def test_scheme_without_version(self):
        manifest = manifest_from_dict({"name": "a", "version-scheme": "date"})
        assert manifest.version is None
        assert manifest.scheme == VersionScheme.DATE

    def test_core_feature_is_reserved(self):
        with pytest.raises(ManifestFormatError):
            manifest_from_dict({"name": "a", "version": "1.0", "features": {"core": {}}})

    def test_for_triplet_filters_platforms(self):
        manifest = manifest_from_dict(CURL_MANIFEST)
        windows = manifest.for_triplet("x64-windows")
        assert [d.name for d in windows.dependencies] == ["zlib", "cmake"]


# ==============================================================================
# Status records and specs
# ==============================================================================

class TestInstalledSpecSerialization:
    """Status record JSON form."""

    def test_round_trip(self, make_installed):
        record = make_installed("curl", "8.5.0#1", dependencies=["zlib"], requested=False, features=["ssl"])
        data = installed_spec_to_dict(record)

        assert data["port"] == "curl"
        assert data["version-semver"] == "8.5.0"
        assert data["port-version"] == 1
        assert data["dependencies"] == ["zlib:x64-linux"]
        assert installed_spec_from_dict(data) == record

    def test_missing_port(self):
        with pytest.raises(ManifestFormatError):
            installed_spec_from_dict({"triplet": "x64-linux", "version": "1.0"})


class TestParsePackageSpec:
    """port:triplet parsing."""

    def test_with_triplet(self):
        assert parse_package_spec("zlib:arm64-osx") == PackageSpec(port="zlib", triplet="arm64-osx")

    def test_default_triplet(self):
        assert parse_package_spec("zlib", default_triplet="x64-linux").triplet == "x64-linux"

    @pytest.mark.parametrize("text", ["zlib", ":x64-linux", "zlib:", "a:b:c"])
    def test_invalid(self, text):
        with pytest.raises(ManifestFormatError):
            parse_package_spec(text)


# ==============================================================================
# Directory manifest source
# ==============================================================================

class TestDirectoryManifestSource:
    """Reading <root>/<port>/manifest.json."""

    def _write(self, root, port, data):
        (root / port).mkdir()
        (root / port / "manifest.json").write_text(
            data if isinstance(data, str) else json.dumps(data), encoding="utf-8",
        )

    def test_reads_manifest(self, tmp_path):
        self._write(tmp_path, "curl", CURL_MANIFEST)
        source = DirectoryManifestSource(tmp_path)

        manifest = source.get_manifest("curl", "x64-linux")
        assert manifest.name == "curl"
        assert len(manifest.dependencies) == 3

    def test_filters_for_triplet(self, tmp_path):
        self._write(tmp_path, "curl", CURL_MANIFEST)
        source = DirectoryManifestSource(tmp_path)
        assert len(source.get_manifest("curl", "arm64-osx").dependencies) == 2

    def test_missing_port(self, tmp_path):
        assert DirectoryManifestSource(tmp_path).get_manifest("nope", "x64-linux") is None

    def test_invalid_json(self, tmp_path):
        self._write(tmp_path, "bad", "{not json")
        with pytest.raises(ManifestFormatError):
            DirectoryManifestSource(tmp_path).get_manifest("bad", "x64-linux")

    def test_name_must_match_directory(self, tmp_path):
        self._write(tmp_path, "zlib", {"name": "zstd", "version": "1.0"})
        with pytest.raises(ManifestFormatError):
            DirectoryManifestSource(tmp_path).get_manifest("zlib", "x64-linux")

    def test_hash_port_version_switch(self, tmp_path):
        self._write(tmp_path, "zlib", {"name": "zlib", "version": "1.3#2"})
        with pytest.raises(ManifestFormatError):
            DirectoryManifestSource(tmp_path).get_manifest("zlib", "x64-linux")

        source = DirectoryManifestSource(tmp_path, allow_hash_port_version=True)
        assert source.get_manifest("zlib", "x64-linux").version.version.port_version == 2
