# -*- coding: utf-8 -*-
"""
Planning Service Setup - portgraph resolution and planning engine

Provides the ``PlanningService`` facade which wires the planner together
(graph builder, plan computer, remove executor, provenance tracker) over
the three collaborators, plus ``configure_planner()`` / ``get_planner()``
for process-wide access.

Usage:
    >>> from portgraph.setup import configure_planner
    >>> service = configure_planner(manifests=manifests, registry=registry, status_db=db)
    >>> plan = service.plan_install([PackageRequest(port="curl")])
    >>> service.record_installed(plan)
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from portgraph.config import PlannerConfig, get_config
from portgraph.exceptions import PortGraphException
from portgraph.graph_builder import CancellationToken, DependencyGraphBuilder
from portgraph.metrics import record_operation, record_status_write
from portgraph.models import (
    ActionKind,
    ActionPlan,
    InstalledSpec,
    PackageRequest,
    PackageSpec,
    RequestType,
    ResolvedGraph,
    SchemedVersion,
)
from portgraph.plan import PlanComputer
from portgraph.provenance import ProvenanceTracker, hash_payload
from portgraph.remove_plan import RemovePlanExecutor
from portgraph.sources import (
    InMemoryManifestSource,
    InMemoryStatusDatabase,
    InMemoryVersionRegistry,
    ManifestSource,
    StatusDatabase,
    VersionRegistry,
)

logger = logging.getLogger(__name__)


# ===================================================================
# PlanningService facade
# ===================================================================

_singleton_lock = threading.Lock()
_singleton_instance: Optional[PlanningService] = None


class PlanningService:
    """Unified facade over the resolution and planning engine.

    Reads the status database once per planning call and writes to it only
    from ``apply_remove`` and ``record_installed``, after a plan exists.

    Attributes:
        config: PlannerConfig instance.
        manifests: Manifest source collaborator.
        registry: Version registry collaborator.
        status_db: Status database collaborator.
        builder: DependencyGraphBuilder instance.
        plan_computer: PlanComputer instance.
        remover: RemovePlanExecutor instance.
        provenance: ProvenanceTracker instance.

    Example:
        >>> service = PlanningService(manifests=manifests, registry=registry)
        >>> plan = service.plan_install([PackageRequest(port="zlib")])
    """

    def __init__(
        self,
        config: Optional[PlannerConfig] = None,
        manifests: Optional[ManifestSource] = None,
        registry: Optional[VersionRegistry] = None,
        status_db: Optional[StatusDatabase] = None,
    ) -> None:
        """Initialize the planning service facade.

        Args:
            config: Optional config. Uses global config if None.
            manifests: Manifest source; an empty in-memory one if None.
            registry: Version registry; an empty in-memory one if None.
            status_db: Status database; an empty in-memory one if None.
        """
        self.config = config or get_config()
        self.manifests: ManifestSource = manifests if manifests is not None else InMemoryManifestSource()
        self.registry: VersionRegistry = registry if registry is not None else InMemoryVersionRegistry()
        self.status_db: StatusDatabase = status_db if status_db is not None else InMemoryStatusDatabase()

        self.provenance = ProvenanceTracker()
        self.builder = DependencyGraphBuilder(self.manifests, self.registry, config=self.config)
        self.plan_computer = PlanComputer()
        self.remover = RemovePlanExecutor(
            self.status_db,
            provenance=self.provenance if self.config.enable_audit else None,
        )

        self._started = False
        self._start_time: Optional[float] = None
        self._total_operations = 0

        logger.info("PlanningService facade created")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def startup(self) -> None:
        """Start the service and apply the configured log level.

        Safe to call multiple times.
        """
        if self._started:
            logger.debug("PlanningService already started; skipping")
            return

        logging.getLogger("portgraph").setLevel(self.config.log_level.upper())
        self._start_time = time.time()
        self._started = True
        logger.info("PlanningService startup complete")

    def shutdown(self) -> None:
        if not self._started:
            return
        self._started = False
        self._start_time = None
        logger.info("PlanningService shut down")

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def resolve(
        self,
        requests: Sequence[PackageRequest],
        pins: Optional[Mapping[PackageSpec, SchemedVersion]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ResolvedGraph:
        """Build and resolve the dependency graph for ``requests``."""
        return self._timed(
            "resolve", lambda: self.builder.build(requests, pins=pins, cancel_token=cancel_token),
        )

    def plan_install(
        self,
        requests: Sequence[PackageRequest],
        pins: Optional[Mapping[PackageSpec, SchemedVersion]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ActionPlan:
        """Resolve ``requests`` and diff against the installed snapshot.

        Args:
            requests: Root requests.
            pins: Exact versions imposed on specific nodes.
            cancel_token: Cooperative cancellation flag.

        Returns:
            ActionPlan with install, upgrade and already-present actions.
        """

        def run() -> ActionPlan:
            installed = self.status_db.list_installed()
            graph = self.builder.build(requests, pins=pins, cancel_token=cancel_token)
            return self.plan_computer.compute(graph, installed)

        plan = self._timed("plan_install", run)
        self._audit_plan(plan, "plan_install")
        return plan

    def plan_remove(
        self,
        specs: Sequence[PackageSpec],
        purge: bool = False,
        force: bool = False,
        recurse: bool = False,
    ) -> ActionPlan:
        """Compute a removal plan without touching the status database."""
        plan = self._timed(
            "plan_remove",
            lambda: self.remover.compute_plan(specs, purge=purge, force=force, recurse=recurse),
        )
        self._audit_plan(plan, "plan_remove")
        return plan

    # ------------------------------------------------------------------
    # Write phase
    # ------------------------------------------------------------------

    def apply_remove(self, plan: ActionPlan) -> int:
        """Apply the removals of a computed plan.

        Returns:
            Number of removals applied.
        """
        return self._timed("apply_remove", lambda: self.remover.execute_plan(plan))

    def remove(
        self,
        specs: Sequence[PackageSpec],
        purge: bool = False,
        force: bool = False,
        recurse: bool = False,
    ) -> ActionPlan:
        """Plan and apply a removal; nothing is written if planning fails."""
        plan = self.plan_remove(specs, purge=purge, force=force, recurse=recurse)
        self.apply_remove(plan)
        return plan

    def record_installed(self, plan: ActionPlan) -> int:
        """Record the outcome of an executed install plan.

        Walks ``plan.execution_steps()`` so upgrades remove the old record
        before the new one is written. A spec that was user requested stays
        user requested after an upgrade, and an already-present automatic
        spec that the user now requests explicitly is marked requested.

        Returns:
            Number of status database writes performed.
        """

        def run() -> int:
            previous = {r.spec: r for r in self.status_db.list_installed()}
            writes = 0
            for step in plan.execution_steps():
                if step.kind == ActionKind.REMOVE:
                    self.status_db.record_remove(step.spec)
                    record_status_write("remove")
                    self._audit_write(step.spec, "remove", step.model_dump(mode="json"))
                elif step.kind == ActionKind.INSTALL and step.version is not None:
                    prior = previous.get(step.spec)
                    record = InstalledSpec(
                        spec=step.spec,
                        version=step.version,
                        features=tuple(step.features),
                        dependencies=tuple(step.dependencies),
                        requested=(
                            step.request_type == RequestType.USER_REQUESTED
                            or (prior is not None and prior.requested)
                        ),
                    )
                    self.status_db.record_install(record)
                    record_status_write("install")
                    self._audit_write(step.spec, "install", record.model_dump(mode="json"))
                else:
                    continue
                writes += 1

            for action in plan.already_present:
                prior = previous.get(action.spec)
                if (
                    action.request_type != RequestType.USER_REQUESTED
                    or prior is None
                    or prior.requested
                ):
                    continue
                record = prior.model_copy(update={"requested": True})
                self.status_db.record_install(record)
                record_status_write("install")
                self._audit_write(action.spec, "mark_requested", record.model_dump(mode="json"))
                logger.info("%s is now user requested", action.spec)
                writes += 1
            return writes

        return self._timed("record_installed", run)

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """Service metric summary."""
        uptime = 0.0
        if self._start_time is not None:
            uptime = time.time() - self._start_time

        return {
            "started": self._started,
            "uptime_seconds": round(uptime, 2),
            "total_operations": self._total_operations,
            "installed_packages": len(self.status_db.list_installed()),
            "provenance_entries": self.provenance.entry_count,
            "config": {
                "default_triplet": self.config.default_triplet,
                "host_triplet": self.config.host_triplet,
                "max_graph_nodes": self.config.max_graph_nodes,
                "enable_audit": self.config.enable_audit,
            },
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _timed(self, operation: str, func: Callable[[], Any]) -> Any:
        self._total_operations += 1
        start = time.time()
        try:
            result = func()
        except PortGraphException as exc:
            record_operation(operation, "error", time.time() - start)
            logger.info("%s failed: %s", operation, exc)
            raise
        record_operation(operation, "success", time.time() - start)
        return result

    def _audit_plan(self, plan: ActionPlan, action: str) -> None:
        if not self.config.enable_audit:
            return
        digest = plan.provenance_hash
        self.provenance.record(
            entity_type="plan",
            entity_id=digest,
            action=action,
            data_hash=digest,
            details={"actions": plan.describe()},
        )

    def _audit_write(self, spec: PackageSpec, action: str, payload: Any) -> None:
        if not self.config.enable_audit:
            return
        self.provenance.record(
            entity_type="package",
            entity_id=str(spec),
            action=action,
            data_hash=hash_payload(payload),
        )


# ===================================================================
# Thread-safe singleton access
# ===================================================================


def configure_planner(
    config: Optional[PlannerConfig] = None,
    manifests: Optional[ManifestSource] = None,
    registry: Optional[VersionRegistry] = None,
    status_db: Optional[StatusDatabase] = None,
) -> PlanningService:
    """Create, start and install the process-wide PlanningService.

    Returns:
        The new PlanningService.
    """
    global _singleton_instance

    service = PlanningService(
        config=config, manifests=manifests, registry=registry, status_db=status_db,
    )
    with _singleton_lock:
        previous, _singleton_instance = _singleton_instance, service
    if previous is not None:
        previous.shutdown()

    service.startup()
    logger.info("Planning service configured")
    return service


def get_planner() -> PlanningService:
    """Return the configured PlanningService.

    Raises:
        RuntimeError: If ``configure_planner()`` has not been called.
    """
    service = _singleton_instance
    if service is None:
        raise RuntimeError(
            "Planning service not configured. Call configure_planner() first."
        )
    return service


def reset_planner() -> None:
    """Shut down and forget the process-wide service (test teardown)."""
    global _singleton_instance
    with _singleton_lock:
        service, _singleton_instance = _singleton_instance, None
    if service is not None:
        service.shutdown()


__all__ = [
    "PlanningService",
    "configure_planner",
    "get_planner",
    "reset_planner",
]
