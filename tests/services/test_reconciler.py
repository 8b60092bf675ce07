from __future__ import annotations

from datetime import timedelta

import pytest

from coursetrack.models.enrollment import Enrollment, ProgressEntry
from coursetrack.services.course_indexing import index_course
from coursetrack.services.reconciler import (
    compute_aggregates,
    compute_progress_percent,
    reconcile_enrollment,
    reconcile_entries,
)
from tests.conftest import T0, make_course

NOW = T0 + timedelta(days=1)


def _entry(m: int, s: int, *, completed: bool = False, **kwargs) -> ProgressEntry:
    return ProgressEntry(
        module_id=f"c1_module_{m}",
        leaf_id=f"c1_module_{m}_sub_{s}",
        completed=completed,
        completed_at=T0 if completed else None,
        **kwargs,
    )


@pytest.mark.parametrize(
    ("completed", "total", "expected"),
    [
        (0, 0, 0),
        (3, 0, 0),
        (0, 4, 0),
        (1, 4, 25),
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),  # 12.5 rounds half up
        (4, 4, 100),
        (9, 4, 100),
    ],
)
def test_compute_progress_percent(completed: int, total: int, expected: int) -> None:
    assert compute_progress_percent(completed, total) == expected


def test_aggregates_ignore_archived_and_clamp() -> None:
    entries = [
        _entry(1, 1, completed=True),
        _entry(1, 2, completed=True, archived=True, archived_at=T0),
        _entry(9, 9, completed=True),
    ]
    aggregates = compute_aggregates(entries, total_leaves=1)
    assert aggregates.completed_leaves == 1
    assert aggregates.progress_percent == 100


def test_missing_entries_created_in_target_order() -> None:
    index = index_course(make_course(modules=2, leaves_per_module=2)).index
    outcome = reconcile_entries(index, [_entry(2, 1, completed=True)], NOW)

    assert [e.key for e in outcome.entries] == index.keys()
    assert outcome.changed is True
    assert outcome.aggregates.total_leaves == 4
    assert outcome.aggregates.completed_leaves == 1
    assert outcome.aggregates.progress_percent == 25
    # The retained entry is kept untouched.
    assert outcome.entries[2] == _entry(2, 1, completed=True)


def test_stale_incomplete_entries_dropped() -> None:
    index = index_course(make_course(modules=1, leaves_per_module=2)).index
    entries = [_entry(1, 1), _entry(1, 2), _entry(2, 1), _entry(2, 2)]
    outcome = reconcile_entries(index, entries, NOW)
    assert [e.key for e in outcome.entries] == index.keys()
    assert not any(e.archived for e in outcome.entries)


def test_stale_completed_entries_archived_with_timestamp() -> None:
    index = index_course(make_course(modules=1, leaves_per_module=2)).index
    entries = [_entry(1, 1, completed=True), _entry(1, 2), _entry(2, 1, completed=True)]
    outcome = reconcile_entries(index, entries, NOW)

    archived = [e for e in outcome.entries if e.archived]
    assert [e.key for e in archived] == [("c1_module_2", "c1_module_2_sub_1")]
    assert archived[0].archived_at == NOW
    assert archived[0].completed is True
    assert outcome.aggregates.completed_leaves == 1
    assert outcome.aggregates.total_leaves == 2


def test_already_archived_entries_keep_original_timestamp() -> None:
    index = index_course(make_course(modules=1, leaves_per_module=1)).index
    old = _entry(2, 1, completed=True, archived=True, archived_at=T0)
    outcome = reconcile_entries(index, [_entry(1, 1), old], NOW)
    assert old in outcome.entries
    assert outcome.changed is False


def test_archived_entry_reactivated_when_key_returns() -> None:
    index = index_course(make_course(modules=1, leaves_per_module=1)).index
    archived = _entry(1, 1, completed=True, archived=True, archived_at=T0)
    outcome = reconcile_entries(index, [archived], NOW)

    assert len(outcome.entries) == 1
    entry = outcome.entries[0]
    assert entry.archived is False
    assert entry.archived_at is None
    assert entry.completed is True
    assert outcome.aggregates.completed_leaves == 1


def test_duplicate_keys_merged() -> None:
    index = index_course(make_course(modules=1, leaves_per_module=1)).index
    later = T0 + timedelta(hours=5)
    first = ProgressEntry(
        module_id="c1_module_1",
        leaf_id="c1_module_1_sub_1",
        completed=True,
        completed_at=T0 + timedelta(hours=1),
        last_visited_at=T0 + timedelta(hours=1),
    )
    second = ProgressEntry(
        module_id="c1_module_1",
        leaf_id="c1_module_1_sub_1",
        completed=True,
        completed_at=T0,
        last_visited_at=later,
    )
    outcome = reconcile_entries(index, [first, second], NOW)

    assert len(outcome.entries) == 1
    merged = outcome.entries[0]
    assert merged.completed_at == T0
    assert merged.last_visited_at == later
    assert outcome.aggregates.completed_leaves == 1


def test_active_keys_equal_target_keys() -> None:
    index = index_course(make_course(modules=3, leaves_per_module=3)).index
    entries = [_entry(1, 1, completed=True), _entry(4, 1, completed=True), _entry(5, 5)]
    outcome = reconcile_entries(index, entries, NOW)
    active = [e.key for e in outcome.entries if e.is_active]
    assert active == index.keys()


def test_reconcile_enrollment_returns_none_when_aligned() -> None:
    index = index_course(make_course(modules=1, leaves_per_module=2)).index
    enrollment = Enrollment.new(
        user_id="u1",
        course_id="c1",
        now=T0,
        total_leaves=2,
        entries=(_entry(1, 1), _entry(1, 2)),
    )
    assert reconcile_enrollment(enrollment, index, NOW) is None


def test_reconcile_enrollment_fixes_stale_aggregates_only() -> None:
    index = index_course(make_course(modules=1, leaves_per_module=2)).index
    enrollment = Enrollment(
        user_id="u1",
        course_id="c1",
        enrolled_at=T0,
        last_accessed_at=T0,
        total_leaves=7,
        completed_leaves=3,
        progress_percent=43,
        entries=(_entry(1, 1, completed=True), _entry(1, 2)),
        version=4,
    )
    updated = reconcile_enrollment(enrollment, index, NOW)

    assert updated is not None
    assert (updated.total_leaves, updated.completed_leaves, updated.progress_percent) == (
        2,
        1,
        50,
    )
    assert updated.entries == enrollment.entries
    # The repository bumps the version, not the reconciler.
    assert updated.version == 4
    assert updated.last_accessed_at == T0
