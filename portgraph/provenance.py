# -*- coding: utf-8 -*-
"""
Provenance Tracker - portgraph resolution and planning engine

SHA-256 chain-hashed audit trail of status database writes and computed
plans. Each entry is linked to its predecessor, so rewriting any recorded
entry breaks verification of every later one.

Example:
    >>> from portgraph.provenance import ProvenanceTracker
    >>> tracker = ProvenanceTracker()
    >>> tracker.record("package", "zlib:x64-linux", "remove", data_hash="ab12...")
    >>> assert tracker.verify_chain("zlib:x64-linux")
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC datetime with microseconds zeroed."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def _new_uuid() -> str:
    return str(uuid.uuid4())


def hash_payload(data: Any) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    serialized = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(serialized.encode()).hexdigest()


# ---------------------------------------------------------------------------
# ProvenanceEntry model
# ---------------------------------------------------------------------------


class ProvenanceEntry(BaseModel):
    """A single audit chain entry.

    Attributes:
        entry_id: Unique entry identifier.
        entity_type: "package" for status writes, "plan" for computed plans.
        entity_id: Package spec or plan hash the entry concerns.
        action: install, remove, plan_install or plan_remove.
        data_hash: SHA-256 of the entity data at this point.
        actor: Who triggered the action.
        timestamp: When the action occurred.
        chain_hash: SHA-256 linking this entry to the previous one.
        details: Additional context.
    """

    entry_id: str = Field(default_factory=_new_uuid, description="Entry ID")
    entity_type: str = Field(..., description="Entity type (package, plan)")
    entity_id: str = Field(..., description="Identifier of the affected entity")
    action: str = Field(..., description="Action performed")
    data_hash: str = Field(..., description="SHA-256 hash of entity data")
    actor: str = Field(default="system", description="Who triggered the action")
    timestamp: datetime = Field(default_factory=_utcnow, description="Action timestamp")
    chain_hash: str = Field(default="", description="Chain hash linking to previous entry")
    details: Dict[str, Any] = Field(default_factory=dict, description="Additional context")

    def payload(self) -> Dict[str, Any]:
        """Fields covered by the chain hash."""
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "data_hash": self.data_hash,
            "actor": self.actor,
            "timestamp": self.timestamp.isoformat(),
        }


# ---------------------------------------------------------------------------
# ProvenanceTracker
# ---------------------------------------------------------------------------


class ProvenanceTracker:
    """Ordered, chain-hashed log of planner side effects.

    Example:
        >>> tracker = ProvenanceTracker()
        >>> tracker.record("plan", "3f2a...", "plan_remove", "3f2a...")
        >>> tracker.entry_count
        1
    """

    _GENESIS_HASH = hashlib.sha256(b"portgraph-planner-genesis").hexdigest()

    def __init__(self) -> None:
        self._entries: List[ProvenanceEntry] = []
        self._last_chain_hash: str = self._GENESIS_HASH
        self._entity_index: Dict[str, List[int]] = {}
        self._lock = threading.Lock()
        logger.info("ProvenanceTracker initialized")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def record(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        data_hash: str,
        actor: str = "system",
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Append an entry chained to the previous one.

        Args:
            entity_type: Type of entity (package, plan).
            entity_id: Identifier of the affected entity.
            action: Action performed.
            data_hash: SHA-256 hash of the entity data.
            actor: Who triggered the action.
            details: Additional context.

        Returns:
            The chain_hash of the new entry.
        """
        entry = ProvenanceEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            data_hash=data_hash,
            actor=actor,
            details=details or {},
        )
        with self._lock:
            chain_hash = self._next_hash(self._last_chain_hash, entry)
            entry.chain_hash = chain_hash
            self._entity_index.setdefault(entity_id, []).append(len(self._entries))
            self._entries.append(entry)
            self._last_chain_hash = chain_hash

        logger.debug(
            "Recorded provenance: %s %s %s (%s)",
            action, entity_type, entity_id, entry.entry_id,
        )
        return chain_hash

    def get_chain(self, entity_id: str) -> List[ProvenanceEntry]:
        """Entries for one entity in chronological order."""
        indices = self._entity_index.get(entity_id, [])
        return [self._entries[i] for i in indices]

    def verify_chain(self, entity_id: Optional[str] = None) -> bool:
        """Recompute chain hashes from genesis and compare with stored ones.

        Args:
            entity_id: Only check entries of this entity; all entries when None.

        Returns:
            True if the chain is intact, False if any checked entry was altered.
        """
        checked = None if entity_id is None else set(self._entity_index.get(entity_id, []))
        current = self._GENESIS_HASH
        for idx, entry in enumerate(self._entries):
            expected = self._next_hash(current, entry)
            if (checked is None or idx in checked) and entry.chain_hash != expected:
                logger.warning(
                    "Chain verification failed at entry %s (index %d)",
                    entry.entry_id, idx,
                )
                return False
            current = expected
        return True

    def get_all_entries(self) -> List[ProvenanceEntry]:
        return list(self._entries)

    def export_json(self) -> str:
        """Export all entries as a JSON array."""
        records = [entry.model_dump(mode="json") for entry in self._entries]
        return json.dumps(records, indent=2, default=str)

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    @property
    def last_chain_hash(self) -> str:
        return self._last_chain_hash

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _next_hash(previous: str, entry: ProvenanceEntry) -> str:
        combined = f"{previous}:{hash_payload(entry.payload())}"
        return hashlib.sha256(combined.encode()).hexdigest()


__all__ = [
    "hash_payload",
    "ProvenanceEntry",
    "ProvenanceTracker",
]
