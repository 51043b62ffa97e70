# -*- coding: utf-8 -*-
"""
Constraint Set - portgraph resolution and planning engine

Accumulates every version constraint imposed on one (port, triplet) node
during a resolution run and selects the single version that satisfies all
of them.

Selection is minimum-version selection:
    - the candidate is the maximum over all minimum constraints and the
      baseline pin
    - exact pins must agree on the primary version (the highest
      port-version among agreeing pins wins) and be >= the candidate
    - with no constraints and no baseline, the registry's latest known
      version is used
    - every contributor must share the port's declared scheme

Alternative versions are never tried; any conflict is a permanent
failure that names every contributing source.

Example:
    >>> from portgraph.constraints import ConstraintSet
    >>> from portgraph.models import VersionScheme
    >>> from portgraph.versions import parse_schemed
    >>> cs = ConstraintSet("b", declared_scheme=VersionScheme.SEMVER)
    >>> cs.add_minimum(parse_schemed("1.2.0", VersionScheme.SEMVER), source="a:x64-linux -> b:x64-linux")
    >>> cs.set_baseline(parse_schemed("1.2.0#1", VersionScheme.SEMVER))
    >>> str(cs.resolve())
    '1.2.0#1'
"""

from __future__ import annotations

import logging
from typing import List, Optional

from portgraph.exceptions import (
    IncomparableVersionsError,
    SchemeMismatchError,
    UnknownPortError,
    UnsatisfiableConstraintError,
)
from portgraph.models import (
    ConstraintKind,
    SchemedVersion,
    VersionComparison,
    VersionConstraint,
    VersionScheme,
)
from portgraph.versions import compare_primary, compare_versions, max_version

logger = logging.getLogger(__name__)

BASELINE_SOURCE = "baseline"


class ConstraintSet:
    """All version constraints collected for one port in one triplet.

    Attributes:
        port: Port name the constraints target.
        declared_scheme: Scheme declared by the port's manifest, if known.
        constraints: Contributions in the order they were added.
        winning_source: Source of the chosen version after ``resolve``.
    """

    def __init__(self, port: str, declared_scheme: Optional[VersionScheme] = None) -> None:
        self.port = port
        self.declared_scheme = declared_scheme
        self.constraints: List[VersionConstraint] = []
        self.winning_source: Optional[str] = None

    # ------------------------------------------------------------------
    # Accumulation
    # ------------------------------------------------------------------

    def add_minimum(self, version: SchemedVersion, source: str) -> None:
        """Require the chosen version to be >= ``version``."""
        self._add(ConstraintKind.MINIMUM, version, source)

    def add_exact(self, version: SchemedVersion, source: str) -> None:
        """Require the chosen version to be exactly ``version``."""
        self._add(ConstraintKind.EXACT, version, source)

    def set_baseline(self, version: SchemedVersion, source: str = BASELINE_SOURCE) -> None:
        """Set the baseline pin, replacing any previous one."""
        self.constraints = [c for c in self.constraints if c.kind != ConstraintKind.BASELINE]
        self._add(ConstraintKind.BASELINE, version, source)

    def _add(self, kind: ConstraintKind, version: SchemedVersion, source: str) -> None:
        self.constraints.append(VersionConstraint(kind=kind, version=version, source=source))

    @property
    def baseline(self) -> Optional[SchemedVersion]:
        for constraint in self.constraints:
            if constraint.kind == ConstraintKind.BASELINE:
                return constraint.version
        return None

    def of_kind(self, kind: ConstraintKind) -> List[VersionConstraint]:
        return [c for c in self.constraints if c.kind == kind]

    def describe(self) -> List[str]:
        """Every contribution rendered as text, in insertion order."""
        return [c.describe() for c in self.constraints]

    def __len__(self) -> int:
        return len(self.constraints)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, latest_known: Optional[SchemedVersion] = None) -> SchemedVersion:
        """Select the single version satisfying every constraint.

        Args:
            latest_known: Version to use when there are no constraints and
                no baseline pin.

        Returns:
            The chosen SchemedVersion.

        Raises:
            SchemeMismatchError: If contributors disagree on the scheme.
            UnsatisfiableConstraintError: If exact pins disagree or a
                minimum exceeds an exact pin.
            UnknownPortError: If nothing constrains the port and no latest
                version is known.
        """
        self._check_schemes(latest_known)

        if not self.constraints:
            if latest_known is None:
                raise UnknownPortError(
                    message=f"no version of '{self.port}' is known and nothing constrains it",
                    port_name=self.port,
                )
            self.winning_source = "latest"
            logger.debug("%s: no constraints, using latest %s", self.port, latest_known)
            return latest_known

        lower_bounds = [c for c in self.constraints if c.kind != ConstraintKind.EXACT]
        exacts = self.of_kind(ConstraintKind.EXACT)

        floor: Optional[VersionConstraint] = None
        if lower_bounds:
            try:
                best = max_version(c.version for c in lower_bounds)
            except IncomparableVersionsError as exc:
                raise self._unsatisfiable(
                    f"minimum constraints on '{self.port}' cannot be ordered"
                ) from exc
            floor = next(c for c in lower_bounds if c.version == best)

        if not exacts and floor is not None:
            self.winning_source = floor.source
            logger.debug("%s resolved to %s via %s", self.port, floor.version, floor.source)
            return floor.version

        pin = exacts[0]
        for other in exacts[1:]:
            try:
                agrees = compare_primary(pin.version, other.version) == VersionComparison.EQUAL
            except IncomparableVersionsError:
                agrees = False
            if not agrees:
                raise self._unsatisfiable(
                    f"exact pins on '{self.port}' disagree: "
                    f"{pin.version} from {pin.source}, {other.version} from {other.source}"
                )
            if other.version.version.port_version > pin.version.version.port_version:
                pin = other

        if floor is not None:
            try:
                satisfied = compare_versions(pin.version, floor.version) != VersionComparison.LESS
            except IncomparableVersionsError:
                satisfied = False
            if not satisfied:
                raise self._unsatisfiable(
                    f"exact pin {pin.version} on '{self.port}' from {pin.source} "
                    f"does not satisfy {floor.version} from {floor.source}"
                )

        self.winning_source = pin.source
        logger.debug("%s resolved to exact pin %s via %s", self.port, pin.version, pin.source)
        return pin.version

    def _check_schemes(self, latest_known: Optional[SchemedVersion]) -> None:
        expected = self.declared_scheme
        expected_source = "manifest" if expected is not None else None
        contributors = [(c.version.scheme, c.source) for c in self.constraints]
        if not self.constraints and latest_known is not None:
            contributors.append((latest_known.scheme, "latest"))

        for scheme, source in contributors:
            if expected is None:
                expected, expected_source = scheme, source
                continue
            if scheme != expected:
                raise SchemeMismatchError(
                    message=(
                        f"constraints on '{self.port}' mix version schemes: "
                        f"{expected.value} from {expected_source}, {scheme.value} from {source}"
                    ),
                    schemes=[expected.value, scheme.value],
                    sources=[str(expected_source), source],
                    port_name=self.port,
                )

    def _unsatisfiable(self, message: str) -> UnsatisfiableConstraintError:
        return UnsatisfiableConstraintError(
            message=message,
            constraints=self.describe(),
            port_name=self.port,
        )


__all__ = [
    "BASELINE_SOURCE",
    "ConstraintSet",
]
