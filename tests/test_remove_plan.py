# -*- coding: utf-8 -*-
"""Tests for RemovePlanExecutor.

Covers:
- Blocking dependents, force and recurse modes
- Purge sweeps of automatically installed dependencies
- Dependents-first ordering
- Not-installed targets
- Writes only after a complete plan, with provenance entries
"""

import logging

import pytest

from portgraph.exceptions import BlockingDependentsError
from portgraph.models import ActionKind, RemoveReason
from portgraph.provenance import ProvenanceTracker
from portgraph.remove_plan import RemovePlanExecutor
from portgraph.sources import InMemoryStatusDatabase


def _summary(plan):
    return [(str(a.spec), a.remove_reason) for a in plan.actions]


@pytest.fixture
def make_executor():
    """Factory: executor over a status database holding ``records``."""
    def _make(*records, provenance=None):
        db = InMemoryStatusDatabase(records)
        return RemovePlanExecutor(db, provenance=provenance), db
    return _make


# ==============================================================================
# Purge
# ==============================================================================

class TestPurge:
    """Sweeping automatically installed dependencies."""

    def test_purge_removes_orphaned_dependency(self, make_executor, make_installed, spec):
        executor, db = make_executor(
            make_installed("a", dependencies=["b"], requested=True),
            make_installed("b", requested=False),
        )

        plan = executor.compute_plan([spec("a")], purge=True)

        assert plan.describe() == ["remove a:x64-linux (requested)", "remove b:x64-linux (purged)"]
        assert executor.execute_plan(plan) == 2
        assert db.list_installed() == frozenset()

    def test_second_purge_is_a_no_op(self, make_executor, make_installed, spec):
        executor, db = make_executor(
            make_installed("a", dependencies=["b"]),
            make_installed("b", requested=False),
        )
        executor.remove([spec("a")], purge=True)
        writes = db.write_count

        plan = executor.compute_plan([spec("a")], purge=True)

        assert plan.actions == []
        assert plan.not_installed == [spec("a")]
        assert executor.execute_plan(plan) == 0
        assert db.write_count == writes

    def test_purge_is_transitive(self, make_executor, make_installed, spec):
        executor, _ = make_executor(
            make_installed("a", dependencies=["b"]),
            make_installed("b", dependencies=["c"], requested=False),
            make_installed("c", requested=False),
        )

        plan = executor.compute_plan([spec("a")], purge=True)

        assert _summary(plan) == [
            ("a:x64-linux", RemoveReason.REQUESTED),
            ("b:x64-linux", RemoveReason.PURGED),
            ("c:x64-linux", RemoveReason.PURGED),
        ]

    def test_purge_keeps_user_requested(self, make_executor, make_installed, spec):
        executor, _ = make_executor(
            make_installed("a", dependencies=["b"]),
            make_installed("b", requested=True),
        )
        plan = executor.compute_plan([spec("a")], purge=True)
        assert _summary(plan) == [("a:x64-linux", RemoveReason.REQUESTED)]

    def test_purge_keeps_dependency_still_needed(self, make_executor, make_installed, spec):
        executor, _ = make_executor(
            make_installed("a", dependencies=["b"]),
            make_installed("x", dependencies=["b"]),
            make_installed("b", requested=False),
        )
        plan = executor.compute_plan([spec("a")], purge=True)
        assert _summary(plan) == [("a:x64-linux", RemoveReason.REQUESTED)]

    def test_without_purge_dependencies_stay(self, make_executor, make_installed, spec):
        executor, _ = make_executor(
            make_installed("a", dependencies=["b"]),
            make_installed("b", requested=False),
        )
        plan = executor.compute_plan([spec("a")])
        assert _summary(plan) == [("a:x64-linux", RemoveReason.REQUESTED)]

    def test_purge_sweeps_unrelated_orphans(self, make_executor, make_installed, spec):
        executor, _ = make_executor(
            make_installed("a", dependencies=["b"]),
            make_installed("b", requested=False),
            make_installed("c", requested=False),
        )
        plan = executor.compute_plan([spec("a")], purge=True)
        assert _summary(plan) == [
            ("a:x64-linux", RemoveReason.REQUESTED),
            ("b:x64-linux", RemoveReason.PURGED),
            ("c:x64-linux", RemoveReason.PURGED),
        ]

    def test_purge_keeps_dependencies_of_remaining_packages(self, make_executor, make_installed, spec):
        executor, _ = make_executor(
            make_installed("a"),
            make_installed("keep", dependencies=["lib"]),
            make_installed("lib", requested=False),
        )
        plan = executor.compute_plan([spec("a")], purge=True)
        assert _summary(plan) == [("a:x64-linux", RemoveReason.REQUESTED)]

    def test_cyclic_records(self, make_executor, make_installed, spec, caplog):
        executor, _ = make_executor(
            make_installed("a", dependencies=["b"]),
            make_installed("b", dependencies=["a"], requested=False),
        )

        with caplog.at_level(logging.WARNING, logger="portgraph.remove_plan"):
            plan = executor.compute_plan([spec("a")], purge=True, force=True)

        assert [str(a.spec) for a in plan.actions] == ["a:x64-linux", "b:x64-linux"]
        assert "cyclic" in caplog.text


# ==============================================================================
# Blocking dependents
# ==============================================================================

class TestBlockingDependents:
    """Installed dependents of removal targets."""

    @pytest.fixture
    def chain(self, make_executor, make_installed):
        """a -> b -> c, all user requested."""
        return make_executor(
            make_installed("a", dependencies=["b"]),
            make_installed("b", dependencies=["c"]),
            make_installed("c"),
        )

    def test_blocked_removal_writes_nothing(self, chain, spec):
        executor, db = chain

        with pytest.raises(BlockingDependentsError) as exc_info:
            executor.remove([spec("c")])

        assert exc_info.value.blockers == {"c:x64-linux": ["b:x64-linux"]}
        assert db.write_count == 0
        assert len(db.list_installed()) == 3

    def test_removing_dependents_together_is_not_blocked(self, chain, spec):
        executor, _ = chain
        plan = executor.compute_plan([spec("c"), spec("a"), spec("b")])
        assert [str(a.spec) for a in plan.actions] == ["a:x64-linux", "b:x64-linux", "c:x64-linux"]

    def test_force_downgrades_to_warning(self, chain, spec, caplog):
        executor, _ = chain

        with caplog.at_level(logging.WARNING, logger="portgraph.remove_plan"):
            plan = executor.compute_plan([spec("c")], force=True)

        assert _summary(plan) == [("c:x64-linux", RemoveReason.REQUESTED)]
        assert plan.warnings == ["removing c:x64-linux although b:x64-linux depend on it"]
        assert "Forced removal" in caplog.text

    def test_recurse_removes_dependents_first(self, chain, spec):
        executor, db = chain

        plan = executor.remove([spec("c")], recurse=True)

        assert _summary(plan) == [
            ("a:x64-linux", RemoveReason.RECURSIVE),
            ("b:x64-linux", RemoveReason.RECURSIVE),
            ("c:x64-linux", RemoveReason.REQUESTED),
        ]
        assert db.list_installed() == frozenset()

    def test_other_triplet_does_not_block(self, make_executor, make_installed, spec):
        executor, _ = make_executor(
            make_installed("a", dependencies=["zlib"], triplet="arm64-osx"),
            make_installed("zlib", triplet="arm64-osx"),
            make_installed("zlib"),
        )
        plan = executor.compute_plan([spec("zlib")])
        assert _summary(plan) == [("zlib:x64-linux", RemoveReason.REQUESTED)]


# ==============================================================================
# Plan shape and execution
# ==============================================================================

class TestPlanAndExecute:
    """Plan contents and the write phase."""

    def test_not_installed_reported(self, make_executor, make_installed, spec):
        executor, _ = make_executor(make_installed("a"))

        plan = executor.compute_plan([spec("a"), spec("ghost")])

        assert [str(s) for s in plan.not_installed] == ["ghost:x64-linux"]
        assert _summary(plan) == [("a:x64-linux", RemoveReason.REQUESTED)]

    def test_actions_carry_installed_record(self, make_executor, make_installed, spec):
        executor, _ = make_executor(
            make_installed("a", "2.1.0#3", dependencies=["b"], features=["ssl"]),
            make_installed("b", requested=False),
        )

        action = executor.compute_plan([spec("a")]).actions[0]

        assert action.kind == ActionKind.REMOVE
        assert str(action.version) == "2.1.0#3"
        assert action.features == ["ssl"]
        assert action.dependencies == [spec("b")]

    def test_explicit_snapshot(self, make_executor, make_installed, spec):
        executor, _ = make_executor()
        plan = executor.compute_plan([spec("a")], installed=[make_installed("a")])
        assert _summary(plan) == [("a:x64-linux", RemoveReason.REQUESTED)]

    def test_compute_plan_is_pure(self, make_executor, make_installed, spec):
        executor, db = make_executor(make_installed("a"))
        executor.compute_plan([spec("a")])
        assert db.write_count == 0

    def test_execute_records_provenance(self, make_executor, make_installed, spec):
        tracker = ProvenanceTracker()
        executor, db = make_executor(
            make_installed("a", dependencies=["b"]),
            make_installed("b", requested=False),
            provenance=tracker,
        )

        executor.remove([spec("a")], purge=True)

        entries = tracker.get_all_entries()
        assert [(e.entity_id, e.action) for e in entries] == [
            ("a:x64-linux", "remove"),
            ("b:x64-linux", "remove"),
        ]
        assert entries[1].details == {"reason": "purged"}
        assert tracker.verify_chain()
        assert db.write_count == 2
