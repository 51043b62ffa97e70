# -*- coding: utf-8 -*-
"""portgraph Exception Hierarchy.

Every failure the resolution and planning engine can report is a typed
exception carrying rich context for diagnostics. All of them are discovered
during the pure computation phase, before any status database write.

Exception Hierarchy:
    PortGraphException (base)
    ├── VersionException
    │   ├── VersionParseError
    │   ├── SchemeMismatchError
    │   └── IncomparableVersionsError
    ├── ManifestException
    │   ├── ManifestFormatError
    │   ├── UnknownPortError
    │   └── UnknownFeatureError
    ├── ResolutionException
    │   ├── UnsatisfiableConstraintError
    │   ├── CycleError
    │   ├── GraphLimitExceededError
    │   ├── ResolutionCancelledError
    │   └── InternalConsistencyError
    └── RemovalException
        └── BlockingDependentsError

All exceptions include:
- error_code: Unique error identifier
- port_name: Port the error is about (when there is one)
- context: Dictionary with error-specific details
- timestamp: When the error occurred

Example:
    >>> from portgraph.exceptions import UnsatisfiableConstraintError
    >>> raise UnsatisfiableConstraintError(
    ...     message="Exact pins disagree for zlib",
    ...     port_name="zlib",
    ...     constraints=["a:x64-linux == 1.2.11", "c:x64-linux == 1.3.0"],
    ... )
"""

import json
import re
import traceback as tb
from datetime import datetime
from typing import Any, Dict, List, Optional


# ==============================================================================
# Base Exception
# ==============================================================================

class PortGraphException(Exception):
    """Base exception for all portgraph errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier (e.g., "PG_RESOLUTION_CYCLE_ERROR")
        port_name: Name of the port the error concerns (optional)
        context: Dictionary with error-specific details
        timestamp: When the error occurred
        traceback_str: Stack at the point the error was created
    """

    ERROR_PREFIX = "PG"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        port_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize portgraph exception with rich context.

        Args:
            message: Human-readable error message
            error_code: Unique error identifier (auto-generated if not provided)
            port_name: Port the error concerns
            context: Dictionary with error-specific details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.port_name = port_name
        self.context = context or {}
        self.timestamp = datetime.now()
        self.traceback_str = "".join(tb.format_stack()[:-1])

    def _generate_error_code(self) -> str:
        """Generate error code from the exception class name.

        Returns:
            Error code like "PG_RESOLUTION_CYCLE_ERROR"
        """
        error_type = re.sub(r'(?<!^)(?=[A-Z])', '_', self.__class__.__name__).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary with all error details
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "port_name": self.port_name,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "traceback": self.traceback_str,
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        """String representation with error code and message."""
        parts = [f"[{self.error_code}]"]
        if self.port_name:
            parts.append(f"Port: {self.port_name}")
        parts.append(self.message)
        return " - ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}', "
            f"port_name='{self.port_name}')"
        )


# ==============================================================================
# Version Exceptions
# ==============================================================================

class VersionException(PortGraphException):
    """Base exception for version parsing and comparison errors."""
    ERROR_PREFIX = "PG_VERSION"


class VersionParseError(VersionException):
    """Version text does not match its scheme's grammar.

    Example:
        >>> raise VersionParseError(
        ...     message="'1.2' is not a valid semver version",
        ...     text="1.2",
        ...     scheme="semver",
        ... )
    """

    def __init__(
        self,
        message: str,
        text: Optional[str] = None,
        scheme: Optional[str] = None,
        port_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if text is not None:
            context["text"] = text
        if scheme is not None:
            context["scheme"] = scheme
        super().__init__(message, port_name=port_name, context=context)


class SchemeMismatchError(VersionException):
    """Two versions under different ordering schemes were combined.

    Raised both for a direct comparison across schemes and when the
    constraints collected for one port do not share a single scheme.
    """

    def __init__(
        self,
        message: str,
        schemes: Optional[List[str]] = None,
        sources: Optional[List[str]] = None,
        port_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize scheme mismatch error.

        Args:
            message: Error message
            schemes: The conflicting scheme names
            sources: Constraint sources that contributed each scheme
            port_name: Port whose constraints conflict
            context: Error context
        """
        context = context or {}
        if schemes:
            context["schemes"] = schemes
        if sources:
            context["sources"] = sources
        super().__init__(message, port_name=port_name, context=context)


class IncomparableVersionsError(VersionException):
    """Ordering was requested between two different string-scheme versions."""

    def __init__(
        self,
        message: str,
        versions: Optional[List[str]] = None,
        port_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if versions:
            context["versions"] = versions
        super().__init__(message, port_name=port_name, context=context)


# ==============================================================================
# Manifest Exceptions
# ==============================================================================

class ManifestException(PortGraphException):
    """Base exception for manifest and registry data errors."""
    ERROR_PREFIX = "PG_MANIFEST"


class ManifestFormatError(ManifestException):
    """A manifest, version object or status record is malformed.

    Example:
        >>> raise ManifestFormatError(
        ...     message="expected exactly one version field",
        ...     parent_type="dependency",
        ...     fields=["version", "version-semver"],
        ... )
    """

    def __init__(
        self,
        message: str,
        parent_type: Optional[str] = None,
        fields: Optional[List[str]] = None,
        port_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if parent_type:
            context["parent_type"] = parent_type
        if fields:
            context["fields"] = fields
        super().__init__(message, port_name=port_name, context=context)


class UnknownPortError(ManifestException):
    """A reachable port has no manifest or no known version."""


class UnknownFeatureError(ManifestException):
    """A requested feature is not declared by the port's manifest."""

    def __init__(
        self,
        message: str,
        feature: Optional[str] = None,
        port_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if feature:
            context["feature"] = feature
        super().__init__(message, port_name=port_name, context=context)


# ==============================================================================
# Resolution Exceptions
# ==============================================================================

class ResolutionException(PortGraphException):
    """Base exception for graph building and constraint resolution errors."""
    ERROR_PREFIX = "PG_RESOLUTION"


class UnsatisfiableConstraintError(ResolutionException):
    """Exact pins disagree, or a minimum constraint exceeds an exact pin.

    Example:
        >>> raise UnsatisfiableConstraintError(
        ...     message="Exact pins disagree for b",
        ...     port_name="b",
        ...     constraints=["a:x64-linux == 2.0.0", "c:x64-linux == 1.0.0"],
        ... )
    """

    def __init__(
        self,
        message: str,
        constraints: Optional[List[str]] = None,
        port_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize unsatisfiable constraint error.

        Args:
            message: Error message
            constraints: Every contributing constraint, rendered as text
            port_name: Port whose constraints conflict
            context: Error context
        """
        context = context or {}
        if constraints:
            context["constraints"] = constraints
        super().__init__(message, port_name=port_name, context=context)


class CycleError(ResolutionException):
    """A dependency cycle was found among active edges.

    Example:
        >>> raise CycleError(
        ...     message="Dependency cycle detected",
        ...     cycle=["a:x64-linux", "b:x64-linux", "a:x64-linux"],
        ... )
    """

    def __init__(
        self,
        message: str,
        cycle: Optional[List[str]] = None,
        port_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if cycle:
            context["cycle"] = cycle
        super().__init__(message, port_name=port_name, context=context)

    @property
    def cycle(self) -> List[str]:
        """Node sequence of the cycle, first node repeated at the end."""
        return list(self.context.get("cycle", []))


class GraphLimitExceededError(ResolutionException):
    """The expanded graph grew beyond the configured node limit."""


class ResolutionCancelledError(ResolutionException):
    """The run was cancelled at a cooperative checkpoint."""


class InternalConsistencyError(ResolutionException):
    """A post-resolution invariant failed; indicates a builder defect."""


# ==============================================================================
# Removal Exceptions
# ==============================================================================

class RemovalException(PortGraphException):
    """Base exception for remove planning errors."""
    ERROR_PREFIX = "PG_REMOVAL"


class BlockingDependentsError(RemovalException):
    """A removal target still has installed dependents.

    Example:
        >>> raise BlockingDependentsError(
        ...     message="Cannot remove zlib:x64-linux",
        ...     blockers={"zlib:x64-linux": ["curl:x64-linux"]},
        ... )
    """

    def __init__(
        self,
        message: str,
        blockers: Optional[Dict[str, List[str]]] = None,
        port_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if blockers:
            context["blockers"] = blockers
        super().__init__(message, port_name=port_name, context=context)

    @property
    def blockers(self) -> Dict[str, List[str]]:
        """Mapping of removal target to the installed specs depending on it."""
        return dict(self.context.get("blockers", {}))


# ==============================================================================
# Utilities
# ==============================================================================

def format_exception_chain(exc: Exception) -> str:
    """Format exception chain for logging/display.

    Args:
        exc: Exception to format

    Returns:
        Formatted string with full exception chain
    """
    lines = []
    current: Optional[BaseException] = exc

    while current is not None:
        if isinstance(current, PortGraphException):
            lines.append(str(current))
            lines.append(f"  Context: {current.context}")
        else:
            lines.append(f"{type(current).__name__}: {current}")
        current = getattr(current, "__cause__", None)

    return "\n".join(lines)


def is_retriable(exc: Exception) -> bool:
    """Check if exception is retriable.

    Resolution runs are pure computations over snapshots, so no engine
    error is transient. Only collaborator I/O failures are worth retrying.

    Args:
        exc: Exception to check

    Returns:
        True if operation should be retried
    """
    # Retriable: manifest source or status database I/O
    retriable_types = (TimeoutError, ConnectionError)

    # Non-retriable: every engine error is a property of the input snapshot
    non_retriable_types = (PortGraphException,)

    if isinstance(exc, retriable_types):
        return True
    if isinstance(exc, non_retriable_types):
        return False

    # Unknown exceptions: don't retry by default
    return False


__all__ = [
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
    "format_exception_chain",
    "is_retriable",
]
