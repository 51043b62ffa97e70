# -*- coding: utf-8 -*-
"""
Version Model - portgraph resolution and planning engine

Strict parsing and scheme-aware comparison of port versions. Four
mutually incomparable ordering schemes are supported:

    - semver:  ``MAJOR.MINOR.PATCH[-prerelease][+build]`` with SemVer 2.0
               precedence (build metadata does not affect ordering)
    - date:    ``YYYY-MM-DD[.N...]``, date first, then the numeric sequence
    - string:  identity only; ordering two different texts is an error
    - relaxed: dot/underscore separated alphanumeric components with an
               optional dash qualifier, compared numeric-aware

Every scheme accepts an optional ``#N`` port-version suffix. The
port-version is compared only after the primary version text compares
equal, and a higher port-version is greater.

All functions are pure.

Example:
    >>> from portgraph.models import VersionScheme
    >>> from portgraph.versions import compare_versions, parse_schemed
    >>> a = parse_schemed("1.2.0", VersionScheme.SEMVER)
    >>> b = parse_schemed("1.2.0#1", VersionScheme.SEMVER)
    >>> compare_versions(a, b).value
    'less'
"""

from __future__ import annotations

import datetime
import logging
import re
from functools import cmp_to_key
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from portgraph.exceptions import (
    IncomparableVersionsError,
    SchemeMismatchError,
    VersionParseError,
)
from portgraph.models import SchemedVersion, Version, VersionComparison, VersionScheme

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Grammars
# ---------------------------------------------------------------------------

_NUMERIC = r"(?:0|[1-9][0-9]*)"
_PRERELEASE_ID = r"(?:0|[1-9][0-9]*|[0-9]*[A-Za-z-][0-9A-Za-z-]*)"

_SEMVER_RE = re.compile(
    rf"^({_NUMERIC})\.({_NUMERIC})\.({_NUMERIC})"
    rf"(?:-({_PRERELEASE_ID}(?:\.{_PRERELEASE_ID})*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?\Z"
)

_DATE_RE = re.compile(r"^([0-9]{4})-([0-9]{2})-([0-9]{2})((?:\.[0-9]+)*)\Z")

_RELAXED_RE = re.compile(
    r"^([0-9A-Za-z]+(?:[._][0-9A-Za-z]+)*)"
    r"(?:-([0-9A-Za-z]+(?:[._-][0-9A-Za-z]+)*))?\Z"
)

_PORT_VERSION_RE = re.compile(rf"^{_NUMERIC}\Z")

_TOKEN_RE = re.compile(r"[0-9]+|[^0-9]+")


def _cmp(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def _to_comparison(value: int) -> VersionComparison:
    if value < 0:
        return VersionComparison.LESS
    if value > 0:
        return VersionComparison.GREATER
    return VersionComparison.EQUAL


# ---------------------------------------------------------------------------
# Per-scheme parsers: validate text and return a comparison key
# ---------------------------------------------------------------------------


def _parse_semver(text: str) -> Tuple[Tuple[int, int, int], Optional[List[str]]]:
    match = _SEMVER_RE.match(text)
    if not match:
        raise VersionParseError(
            message=f"'{text}' is not a valid semver version (expected MAJOR.MINOR.PATCH)",
            text=text,
            scheme=VersionScheme.SEMVER.value,
        )
    core = (int(match.group(1)), int(match.group(2)), int(match.group(3)))
    prerelease = match.group(4).split(".") if match.group(4) else None
    return core, prerelease


def _parse_date(text: str) -> Tuple[str, Tuple[int, ...]]:
    match = _DATE_RE.match(text)
    if not match:
        raise VersionParseError(
            message=f"'{text}' is not a valid date version (expected YYYY-MM-DD[.N...])",
            text=text,
            scheme=VersionScheme.DATE.value,
        )
    year, month, day = (int(match.group(i)) for i in (1, 2, 3))
    try:
        datetime.date(year, month, day)
    except ValueError as exc:
        raise VersionParseError(
            message=f"'{text}' does not name a calendar date: {exc}",
            text=text,
            scheme=VersionScheme.DATE.value,
        ) from exc
    sequence = tuple(int(part) for part in match.group(4).split(".")[1:])
    return text[:10], sequence


def _component_key(component: str) -> Tuple[Tuple[int, Any], ...]:
    """Numeric-aware key: digit runs compare as integers and sort below text runs."""
    return tuple(
        (0, int(token)) if token.isdigit() else (1, token)
        for token in _TOKEN_RE.findall(component)
    )


def _parse_relaxed(text: str) -> Tuple[Any, ...]:
    match = _RELAXED_RE.match(text)
    if not match:
        raise VersionParseError(
            message=(
                f"'{text}' is not a valid relaxed version (expected alphanumeric "
                "components separated by '.', '_' and an optional '-qualifier')"
            ),
            text=text,
            scheme=VersionScheme.RELAXED.value,
        )
    main = tuple(_component_key(c) for c in re.split(r"[._]", match.group(1)))
    qualifier = match.group(2)
    if qualifier is None:
        # an unqualified version sorts above any qualified one with the same main part
        return (main, 1, ())
    return (main, 0, tuple(_component_key(c) for c in re.split(r"[._-]", qualifier)))


def _parse_string(text: str) -> str:
    if not text or text != text.strip():
        raise VersionParseError(
            message=f"'{text}' is not a valid string version (empty or padded)",
            text=text,
            scheme=VersionScheme.STRING.value,
        )
    return text


_VALIDATORS: Dict[VersionScheme, Callable[[str], Any]] = {
    VersionScheme.SEMVER: _parse_semver,
    VersionScheme.DATE: _parse_date,
    VersionScheme.RELAXED: _parse_relaxed,
    VersionScheme.STRING: _parse_string,
}


# ---------------------------------------------------------------------------
# Per-scheme comparators over primary text
# ---------------------------------------------------------------------------


def _compare_prerelease(a: Optional[List[str]], b: Optional[List[str]]) -> int:
    if a is None and b is None:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1
    for left, right in zip(a, b):
        left_num, right_num = left.isdigit(), right.isdigit()
        if left_num and right_num:
            result = _cmp(int(left), int(right))
        elif left_num:
            result = -1
        elif right_num:
            result = 1
        else:
            result = _cmp(left, right)
        if result:
            return result
    return _cmp(len(a), len(b))


def _compare_semver(a: str, b: str) -> int:
    core_a, pre_a = _parse_semver(a)
    core_b, pre_b = _parse_semver(b)
    result = _cmp(core_a, core_b)
    if result:
        return result
    return _compare_prerelease(pre_a, pre_b)


def _compare_date(a: str, b: str) -> int:
    return _cmp(_parse_date(a), _parse_date(b))


def _compare_relaxed(a: str, b: str) -> int:
    return _cmp(_parse_relaxed(a), _parse_relaxed(b))


def _compare_string(a: str, b: str) -> int:
    _parse_string(a)
    _parse_string(b)
    if a == b:
        return 0
    raise IncomparableVersionsError(
        message=f"string versions '{a}' and '{b}' have no ordering",
        versions=[a, b],
    )


_COMPARATORS: Dict[VersionScheme, Callable[[str, str], int]] = {
    VersionScheme.SEMVER: _compare_semver,
    VersionScheme.DATE: _compare_date,
    VersionScheme.RELAXED: _compare_relaxed,
    VersionScheme.STRING: _compare_string,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def split_port_version(text: str) -> Tuple[str, Optional[int]]:
    """Split ``text#N`` into ``(text, N)``; ``(text, None)`` without a suffix.

    Raises:
        VersionParseError: If the suffix is not a non-negative integer or
            the text contains more than one ``#``.
    """
    base, sep, suffix = text.rpartition("#")
    if not sep:
        return text, None
    if "#" in base or not _PORT_VERSION_RE.match(suffix):
        raise VersionParseError(
            message=f"'{text}' has an invalid port-version suffix",
            text=text,
        )
    return base, int(suffix)


def parse_version(text: str, scheme: VersionScheme) -> Version:
    """Parse version text under a scheme.

    Parsing is strict: text that does not match the scheme's grammar fails
    rather than being reinterpreted under another scheme.

    Args:
        text: Version text, optionally suffixed with ``#N``.
        scheme: Scheme the text must conform to.

    Returns:
        Parsed Version.

    Raises:
        VersionParseError: If the text is malformed for the scheme.
    """
    base, port_version = split_port_version(text)
    _VALIDATORS[scheme](base)
    return Version(text=base, port_version=port_version or 0)


def parse_schemed(text: str, scheme: VersionScheme) -> SchemedVersion:
    """Parse version text into a SchemedVersion."""
    return SchemedVersion(scheme=scheme, version=parse_version(text, scheme))


def format_version(version: Version) -> str:
    """Canonical textual form, accepted back by ``parse_version``."""
    return str(version)


def validate_version(value: SchemedVersion) -> SchemedVersion:
    """Check that a constructed SchemedVersion conforms to its scheme.

    Raises:
        VersionParseError: If the text is malformed for the scheme.
    """
    _VALIDATORS[value.scheme](value.version.text)
    return value


def compare_primary(a: SchemedVersion, b: SchemedVersion) -> VersionComparison:
    """Compare the primary version text only, ignoring port-versions.

    Raises:
        SchemeMismatchError: If the schemes differ.
        IncomparableVersionsError: For two different string-scheme texts.
        VersionParseError: If either text is malformed for the scheme.
    """
    if a.scheme != b.scheme:
        raise SchemeMismatchError(
            message=(
                f"cannot compare {a.describe()} with {b.describe()}: "
                "versions use different schemes"
            ),
            schemes=[a.scheme.value, b.scheme.value],
        )
    return _to_comparison(_COMPARATORS[a.scheme](a.version.text, b.version.text))


def compare_versions(a: SchemedVersion, b: SchemedVersion) -> VersionComparison:
    """Scheme-aware comparison including the port-version tiebreaker.

    Args:
        a: Left-hand version.
        b: Right-hand version.

    Returns:
        LESS, EQUAL or GREATER.

    Raises:
        SchemeMismatchError: If the schemes differ.
        IncomparableVersionsError: For two different string-scheme texts.
        VersionParseError: If either text is malformed for the scheme.
    """
    primary = compare_primary(a, b)
    if primary != VersionComparison.EQUAL:
        return primary
    return _to_comparison(_cmp(a.version.port_version, b.version.port_version))


def version_at_least(candidate: SchemedVersion, minimum: SchemedVersion) -> bool:
    """True when ``candidate`` >= ``minimum`` under their shared scheme."""
    return compare_versions(candidate, minimum) != VersionComparison.LESS


def max_version(versions: Iterable[SchemedVersion]) -> SchemedVersion:
    """Greatest version; the first one wins among equals.

    Raises:
        ValueError: If ``versions`` is empty.
    """
    best: Optional[SchemedVersion] = None
    for version in versions:
        if best is None or compare_versions(version, best) == VersionComparison.GREATER:
            best = version
    if best is None:
        raise ValueError("max_version() arg is an empty sequence")
    return best


def sort_versions(versions: Iterable[SchemedVersion]) -> List[SchemedVersion]:
    """Sort ascending under the shared scheme."""
    order = {VersionComparison.LESS: -1, VersionComparison.EQUAL: 0, VersionComparison.GREATER: 1}
    return sorted(versions, key=cmp_to_key(lambda x, y: order[compare_versions(x, y)]))


__all__ = [
    "split_port_version",
    "parse_version",
    "parse_schemed",
    "format_version",
    "validate_version",
    "compare_primary",
    "compare_versions",
    "version_at_least",
    "max_version",
    "sort_versions",
]
