# -*- coding: utf-8 -*-
"""
Remove Plan Executor - portgraph resolution and planning engine

Plans and applies package removals over the installed-package graph
reconstructed from the status database's records.

Planning (pure, over one ``list_installed()`` snapshot):
    1. Targets that are not installed are reported, not failed.
    2. Installed dependents of the targets outside the removal set block
       the removal, unless ``recurse`` (they are removed too) or ``force``
       (the block is downgraded to a warning).
    3. With ``purge``, every automatically installed spec left without a
       remaining dependent is swept, repeatedly, until a fixed point.
    4. Removals are ordered dependents first, ties by (port, triplet).

Applying calls ``record_remove`` once per planned removal, in plan order,
and only after planning has fully succeeded.

Example:
    >>> from portgraph.remove_plan import RemovePlanExecutor
    >>> executor = RemovePlanExecutor(status_db)
    >>> plan = executor.compute_plan([PackageSpec(port="a", triplet="x64-linux")], purge=True)
    >>> plan.describe()
    ['remove a:x64-linux (requested)', 'remove b:x64-linux (purged)']
    >>> executor.execute_plan(plan)
"""

from __future__ import annotations

import heapq
import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from portgraph.exceptions import BlockingDependentsError
from portgraph.metrics import record_plan_action, record_removal, record_status_write
from portgraph.models import (
    ActionKind,
    ActionPlan,
    InstalledSpec,
    PackageSpec,
    PlanAction,
    RemoveReason,
)
from portgraph.provenance import ProvenanceTracker, hash_payload
from portgraph.sources import StatusDatabase

logger = logging.getLogger(__name__)


class RemovePlanExecutor:
    """Computes removal plans and applies them to the status database.

    Attributes:
        status_db: Status database collaborator.
        provenance: Audit trail receiving one entry per removal, if set.
    """

    def __init__(
        self,
        status_db: StatusDatabase,
        provenance: Optional[ProvenanceTracker] = None,
    ) -> None:
        self.status_db = status_db
        self.provenance = provenance
        logger.info("RemovePlanExecutor initialized")

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def compute_plan(
        self,
        requests: Iterable[PackageSpec],
        purge: bool = False,
        force: bool = False,
        recurse: bool = False,
        installed: Optional[Iterable[InstalledSpec]] = None,
    ) -> ActionPlan:
        """Compute the ordered removal plan for ``requests``.

        Args:
            requests: Specs the user asked to remove.
            purge: Also remove automatically installed specs left
                without dependents.
            force: Remove targets even if installed specs depend on them.
            recurse: Remove installed dependents of the targets too.
            installed: Installed snapshot; taken from the status database
                when omitted.

        Returns:
            ActionPlan of remove actions, dependents before dependencies.

        Raises:
            BlockingDependentsError: Targets have installed dependents and
                neither ``force`` nor ``recurse`` is set.
        """
        snapshot: Dict[PackageSpec, InstalledSpec] = {
            record.spec: record
            for record in (self.status_db.list_installed() if installed is None else installed)
        }
        dependents = self._reverse_graph(snapshot)

        plan = ActionPlan()
        reasons: Dict[PackageSpec, RemoveReason] = {}
        for spec in sorted(set(requests), key=lambda s: s.sort_key):
            if spec in snapshot:
                reasons[spec] = RemoveReason.REQUESTED
            else:
                logger.info("%s is not installed", spec)
                plan.not_installed.append(spec)

        blockers = self._blockers(reasons, dependents)
        if blockers and recurse:
            self._add_dependents(reasons, dependents)
            blockers = {}
        if blockers:
            rendered = {
                str(target): [str(d) for d in deps] for target, deps in blockers.items()
            }
            if not force:
                raise BlockingDependentsError(
                    message=(
                        "cannot remove "
                        + ", ".join(rendered)
                        + ": still required by installed packages"
                    ),
                    blockers=rendered,
                )
            for target, deps in rendered.items():
                warning = f"removing {target} although {', '.join(deps)} depend on it"
                logger.warning("Forced removal: %s", warning)
                plan.warnings.append(warning)

        if purge:
            self._sweep_orphans(reasons, snapshot, dependents)

        for spec in self._removal_order(reasons, snapshot):
            record = snapshot[spec]
            plan.actions.append(PlanAction(
                kind=ActionKind.REMOVE,
                spec=spec,
                version=record.version,
                features=list(record.features),
                dependencies=list(record.dependencies),
                remove_reason=reasons[spec],
            ))
            record_plan_action(ActionKind.REMOVE.value)

        logger.info(
            "Computed removal plan: %d removals, %d not installed",
            len(plan.actions), len(plan.not_installed),
        )
        return plan

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    def execute_plan(self, plan: ActionPlan, actor: str = "system") -> int:
        """Apply the removals of a computed plan to the status database.

        Args:
            plan: Plan returned by ``compute_plan``.
            actor: Recorded on provenance entries.

        Returns:
            Number of removals applied.
        """
        count = 0
        for action in plan.removals:
            self.status_db.record_remove(action.spec)
            record_status_write("remove")
            reason = action.remove_reason or RemoveReason.REQUESTED
            record_removal(reason.value)
            if self.provenance is not None:
                self.provenance.record(
                    entity_type="package",
                    entity_id=str(action.spec),
                    action="remove",
                    data_hash=hash_payload(action.model_dump(mode="json")),
                    actor=actor,
                    details={"reason": reason.value},
                )
            count += 1
        logger.info("Applied %d removals", count)
        return count

    def remove(
        self,
        requests: Iterable[PackageSpec],
        purge: bool = False,
        force: bool = False,
        recurse: bool = False,
    ) -> ActionPlan:
        """Compute a removal plan and apply it."""
        plan = self.compute_plan(requests, purge=purge, force=force, recurse=recurse)
        self.execute_plan(plan)
        return plan

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _reverse_graph(
        snapshot: Dict[PackageSpec, InstalledSpec],
    ) -> Dict[PackageSpec, Set[PackageSpec]]:
        """Map each installed spec to the installed specs depending on it."""
        dependents: Dict[PackageSpec, Set[PackageSpec]] = {spec: set() for spec in snapshot}
        for spec, record in snapshot.items():
            for dep in record.dependencies:
                if dep in dependents and dep != spec:
                    dependents[dep].add(spec)
        return dependents

    @staticmethod
    def _blockers(
        removing: Dict[PackageSpec, RemoveReason],
        dependents: Dict[PackageSpec, Set[PackageSpec]],
    ) -> Dict[PackageSpec, List[PackageSpec]]:
        blockers: Dict[PackageSpec, List[PackageSpec]] = {}
        for target in sorted(removing, key=lambda s: s.sort_key):
            live = sorted(
                (d for d in dependents[target] if d not in removing),
                key=lambda s: s.sort_key,
            )
            if live:
                blockers[target] = live
        return blockers

    @staticmethod
    def _add_dependents(
        removing: Dict[PackageSpec, RemoveReason],
        dependents: Dict[PackageSpec, Set[PackageSpec]],
    ) -> None:
        pending = list(removing)
        while pending:
            spec = pending.pop()
            for dependent in sorted(dependents[spec], key=lambda s: s.sort_key):
                if dependent not in removing:
                    removing[dependent] = RemoveReason.RECURSIVE
                    pending.append(dependent)
                    logger.debug("%s removed as dependent of %s", dependent, spec)

    @staticmethod
    def _sweep_orphans(
        removing: Dict[PackageSpec, RemoveReason],
        snapshot: Dict[PackageSpec, InstalledSpec],
        dependents: Dict[PackageSpec, Set[PackageSpec]],
    ) -> None:
        """Mark-and-sweep over every automatically installed spec."""
        automatic = sorted(
            (spec for spec, record in snapshot.items() if not record.requested),
            key=lambda s: s.sort_key,
        )
        changed = True
        while changed:
            changed = False
            for spec in automatic:
                if spec in removing:
                    continue
                if all(d in removing for d in dependents[spec]):
                    removing[spec] = RemoveReason.PURGED
                    changed = True
                    logger.debug("%s purged: no remaining dependents", spec)

    @staticmethod
    def _removal_order(
        removing: Dict[PackageSpec, RemoveReason],
        snapshot: Dict[PackageSpec, InstalledSpec],
    ) -> List[PackageSpec]:
        """Reverse topological order: a spec comes after all its dependents."""
        waiting: Dict[PackageSpec, int] = {spec: 0 for spec in removing}
        for spec in removing:
            for dep in set(snapshot[spec].dependencies):
                if dep in waiting and dep != spec:
                    waiting[dep] += 1

        heap: List[Tuple[Tuple[str, str], PackageSpec]] = []
        for spec, count in waiting.items():
            if count == 0:
                heapq.heappush(heap, (spec.sort_key, spec))

        order: List[PackageSpec] = []
        while heap:
            _, spec = heapq.heappop(heap)
            order.append(spec)
            for dep in set(snapshot[spec].dependencies):
                if dep in waiting and dep != spec:
                    waiting[dep] -= 1
                    if waiting[dep] == 0:
                        heapq.heappush(heap, (dep.sort_key, dep))

        if len(order) != len(removing):
            # Recorded dependencies form a cycle; remove the rest by name.
            leftover = sorted((s for s in removing if s not in order), key=lambda s: s.sort_key)
            logger.warning(
                "Installed dependencies are cyclic among %s", [str(s) for s in leftover],
            )
            order.extend(leftover)
        return order


__all__ = [
    "RemovePlanExecutor",
]
