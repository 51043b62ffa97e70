# -*- coding: utf-8 -*-
"""
Planner Configuration - portgraph resolution and planning engine

Centralized configuration for the planner covering:
- Default target triplet and host triplet for tool dependencies
- Graph size limit for a single resolution run
- Schemed version (de)serialization switches
- Audit trail toggle
- Log level for the ``portgraph`` logger

All settings can be overridden via environment variables with the
``PORTGRAPH_`` prefix (e.g. ``PORTGRAPH_HOST_TRIPLET``).

Example:
    >>> from portgraph.config import get_config
    >>> cfg = get_config()
    >>> print(cfg.default_triplet, cfg.host_triplet)
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment variable prefix
# ---------------------------------------------------------------------------

_ENV_PREFIX = "PORTGRAPH_"


# ---------------------------------------------------------------------------
# PlannerConfig
# ---------------------------------------------------------------------------


@dataclass
class PlannerConfig:
    """Complete configuration for the portgraph planner.

    All attributes can be overridden via environment variables using the
    ``PORTGRAPH_`` prefix.

    Attributes:
        default_triplet: Triplet used for requests that do not name one.
        host_triplet: Triplet that host (tool) dependencies resolve against.
        max_graph_nodes: Upper bound on (port, triplet) nodes in one run.
        allow_hash_port_version: Accept ``text#N`` in version fields that
            carry no explicit ``port-version``.
        always_emit_port_version: Serialize ``port-version`` even when zero.
        enable_audit: Whether to record provenance entries for status
            database writes and computed plans.
        log_level: Python log level name for the ``portgraph`` logger.
    """

    # -- Triplets ------------------------------------------------------------
    default_triplet: str = "x64-linux"
    host_triplet: str = "x64-linux"

    # -- Capacity limits -----------------------------------------------------
    max_graph_nodes: int = 10000

    # -- Serialization -------------------------------------------------------
    allow_hash_port_version: bool = False
    always_emit_port_version: bool = False

    # -- Auditing ------------------------------------------------------------
    enable_audit: bool = True

    # -- Logging -------------------------------------------------------------
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Factory helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> PlannerConfig:
        """Build a PlannerConfig from environment variables.

        Every field can be overridden via ``PORTGRAPH_<FIELD_UPPER>``.
        Boolean values accept ``true/1/yes`` (case-insensitive).
        Integer values are parsed via ``int()``.

        Returns:
            Populated PlannerConfig instance.
        """
        prefix = _ENV_PREFIX

        def _env(name: str, default: Any = None) -> Optional[str]:
            return os.environ.get(f"{prefix}{name}", default)

        def _bool(name: str, default: bool) -> bool:
            val = _env(name)
            if val is None:
                return default
            return val.lower() in ("true", "1", "yes")

        def _int(name: str, default: int) -> int:
            val = _env(name)
            if val is None:
                return default
            try:
                return int(val)
            except ValueError:
                logger.warning(
                    "Invalid integer for %s%s=%s, using default %d",
                    prefix, name, val, default,
                )
                return default

        def _str(name: str, default: str) -> str:
            val = _env(name)
            if val is None:
                return default
            return val

        config = cls(
            default_triplet=_str("DEFAULT_TRIPLET", cls.default_triplet),
            host_triplet=_str("HOST_TRIPLET", cls.host_triplet),
            max_graph_nodes=_int("MAX_GRAPH_NODES", cls.max_graph_nodes),
            allow_hash_port_version=_bool(
                "ALLOW_HASH_PORT_VERSION", cls.allow_hash_port_version,
            ),
            always_emit_port_version=_bool(
                "ALWAYS_EMIT_PORT_VERSION", cls.always_emit_port_version,
            ),
            enable_audit=_bool("ENABLE_AUDIT", cls.enable_audit),
            log_level=_str("LOG_LEVEL", cls.log_level),
        )

        logger.info(
            "PlannerConfig loaded: default_triplet=%s, host_triplet=%s, "
            "max_graph_nodes=%d, audit=%s",
            config.default_triplet,
            config.host_triplet,
            config.max_graph_nodes,
            config.enable_audit,
        )
        return config


# ---------------------------------------------------------------------------
# Thread-safe singleton accessor
# ---------------------------------------------------------------------------

_config_instance: Optional[PlannerConfig] = None
_config_lock = threading.Lock()


def get_config() -> PlannerConfig:
    """Return the singleton PlannerConfig, creating from env if needed.

    Returns:
        PlannerConfig singleton instance.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = PlannerConfig.from_env()
    return _config_instance


def set_config(config: PlannerConfig) -> None:
    """Replace the singleton PlannerConfig (useful for testing).

    Args:
        config: New configuration to install.
    """
    global _config_instance
    with _config_lock:
        _config_instance = config
    logger.info("PlannerConfig replaced programmatically")


def reset_config() -> None:
    """Reset the singleton (primarily for test teardown)."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "PlannerConfig",
    "get_config",
    "set_config",
    "reset_config",
]
