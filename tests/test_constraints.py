# -*- coding: utf-8 -*-
"""Tests for per-port constraint accumulation and version selection.

Covers:
- Minimum-version selection over minimums and the baseline pin
- Exact pin agreement and the port-version tiebreak
- Unsatisfiable combinations naming every source
- Latest-known fallback
- Single-scheme enforcement
"""

import pytest

from portgraph.constraints import BASELINE_SOURCE, ConstraintSet
from portgraph.exceptions import (
    SchemeMismatchError,
    UnknownPortError,
    UnsatisfiableConstraintError,
)
from portgraph.models import ConstraintKind, VersionScheme
from portgraph.versions import parse_schemed


def _string(text):
    return parse_schemed(text, VersionScheme.STRING)


class TestMinimumSelection:
    """The chosen version is the max over minimums and the baseline."""

    def test_baseline_above_minimum_wins(self, semver):
        cs = ConstraintSet("b", declared_scheme=VersionScheme.SEMVER)
        cs.add_minimum(semver("1.2.0"), "a:x64-linux -> b:x64-linux")
        cs.set_baseline(semver("1.2.0#1"))

        assert str(cs.resolve()) == "1.2.0#1"
        assert cs.winning_source == BASELINE_SOURCE

    def test_minimum_above_baseline_wins(self, semver):
        cs = ConstraintSet("b", declared_scheme=VersionScheme.SEMVER)
        cs.set_baseline(semver("1.0.0"))
        cs.add_minimum(semver("1.4.0"), "a:x64-linux -> b:x64-linux")

        assert str(cs.resolve()) == "1.4.0"
        assert cs.winning_source == "a:x64-linux -> b:x64-linux"

    def test_highest_minimum_wins(self, semver):
        cs = ConstraintSet("b")
        cs.add_minimum(semver("1.2.0"), "a")
        cs.add_minimum(semver("1.10.0"), "c")
        cs.add_minimum(semver("1.3.0"), "d")

        assert str(cs.resolve()) == "1.10.0"
        assert cs.winning_source == "c"

    def test_baseline_replaced(self, semver):
        cs = ConstraintSet("b")
        cs.set_baseline(semver("1.0.0"))
        cs.set_baseline(semver("2.0.0"))

        assert len(cs.of_kind(ConstraintKind.BASELINE)) == 1
        assert str(cs.baseline) == "2.0.0"

    def test_resolve_is_idempotent(self, semver):
        cs = ConstraintSet("b")
        cs.add_minimum(semver("1.2.0"), "a")
        cs.set_baseline(semver("1.1.0"))

        assert cs.resolve() == cs.resolve()


class TestExactPins:
    """Exact pins must agree and satisfy the floor."""

    def test_single_exact_pin(self, semver):
        cs = ConstraintSet("b")
        cs.add_exact(semver("2.0.0"), "a")
        assert str(cs.resolve()) == "2.0.0"

    def test_agreeing_pins_take_highest_port_version(self, semver):
        cs = ConstraintSet("b")
        cs.add_exact(semver("2.0.0#1"), "a")
        cs.add_exact(semver("2.0.0#3"), "c")
        cs.add_exact(semver("2.0.0"), "d")

        assert str(cs.resolve()) == "2.0.0#3"
        assert cs.winning_source == "c"

    def test_disagreeing_pins_name_every_source(self, semver):
        cs = ConstraintSet("b")
        cs.add_exact(semver("2.0.0"), "a:x64-linux -> b:x64-linux")
        cs.add_exact(semver("1.0.0"), "c:x64-linux -> b:x64-linux")

        with pytest.raises(UnsatisfiableConstraintError) as exc_info:
            cs.resolve()

        constraints = exc_info.value.context["constraints"]
        assert any("a:x64-linux -> b:x64-linux" in c for c in constraints)
        assert any("c:x64-linux -> b:x64-linux" in c for c in constraints)
        assert exc_info.value.port_name == "b"

    def test_pin_below_minimum(self, semver):
        cs = ConstraintSet("b")
        cs.add_exact(semver("1.0.0"), "a")
        cs.add_minimum(semver("1.1.0"), "c")

        with pytest.raises(UnsatisfiableConstraintError):
            cs.resolve()

    def test_pin_below_baseline_port_version(self, semver):
        cs = ConstraintSet("b")
        cs.add_exact(semver("1.2.0"), "a")
        cs.set_baseline(semver("1.2.0#1"))

        with pytest.raises(UnsatisfiableConstraintError):
            cs.resolve()

    def test_pin_above_floor(self, semver):
        cs = ConstraintSet("b")
        cs.add_minimum(semver("1.1.0"), "c")
        cs.set_baseline(semver("1.0.0"))
        cs.add_exact(semver("1.5.0"), "a")

        assert str(cs.resolve()) == "1.5.0"
        assert cs.winning_source == "a"

    def test_describe_lists_contributions(self, semver):
        cs = ConstraintSet("b")
        cs.add_minimum(semver("1.0.0"), "a")
        cs.add_exact(semver("1.1.0"), "c")
        cs.set_baseline(semver("1.0.0#2"))

        assert cs.describe() == [
            "a >= 1.0.0 (semver)",
            "c == 1.1.0 (semver)",
            "baseline pins 1.0.0#2 (semver)",
        ]


class TestLatestFallback:
    """No constraints: use the registry's latest known version."""

    def test_latest_used(self, semver):
        cs = ConstraintSet("b")
        assert str(cs.resolve(latest_known=semver("3.1.0"))) == "3.1.0"
        assert cs.winning_source == "latest"

    def test_latest_ignored_when_constrained(self, semver):
        cs = ConstraintSet("b")
        cs.add_minimum(semver("1.0.0"), "a")
        assert str(cs.resolve(latest_known=semver("3.1.0"))) == "1.0.0"

    def test_nothing_known(self):
        with pytest.raises(UnknownPortError):
            ConstraintSet("b").resolve()


class TestSchemes:
    """Every contributor shares one scheme."""

    def test_mixed_contributors(self, semver):
        cs = ConstraintSet("b")
        cs.add_minimum(semver("1.0.0"), "a")
        cs.add_minimum(parse_schemed("1.0", VersionScheme.RELAXED), "c")

        with pytest.raises(SchemeMismatchError) as exc_info:
            cs.resolve()
        assert exc_info.value.context["schemes"] == ["semver", "relaxed"]
        assert exc_info.value.context["sources"] == ["a", "c"]

    def test_declared_scheme_mismatch(self, semver):
        cs = ConstraintSet("b", declared_scheme=VersionScheme.DATE)
        cs.add_minimum(semver("1.0.0"), "a")

        with pytest.raises(SchemeMismatchError) as exc_info:
            cs.resolve()
        assert exc_info.value.context["sources"] == ["manifest", "a"]

    def test_latest_checked_against_declared_scheme(self, semver):
        cs = ConstraintSet("b", declared_scheme=VersionScheme.RELAXED)
        with pytest.raises(SchemeMismatchError):
            cs.resolve(latest_known=semver("1.0.0"))

    def test_identical_string_pins(self):
        cs = ConstraintSet("b", declared_scheme=VersionScheme.STRING)
        cs.add_exact(_string("vista"), "a")
        cs.add_exact(_string("vista#2"), "c")
        assert str(cs.resolve()) == "vista#2"

    def test_different_string_pins_unsatisfiable(self):
        cs = ConstraintSet("b", declared_scheme=VersionScheme.STRING)
        cs.add_exact(_string("vista"), "a")
        cs.add_exact(_string("xp"), "c")
        with pytest.raises(UnsatisfiableConstraintError):
            cs.resolve()

    def test_different_string_minimums_unsatisfiable(self):
        cs = ConstraintSet("b", declared_scheme=VersionScheme.STRING)
        cs.add_minimum(_string("vista"), "a")
        cs.set_baseline(_string("xp"))
        with pytest.raises(UnsatisfiableConstraintError):
            cs.resolve()
