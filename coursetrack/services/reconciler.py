"""Reconcile one user's progress entries against a target course index.

The diff is always taken between the user's *current* entries and the
*current* index, never between an old and a new index, so a run is
idempotent and can be repeated for drift correction no matter how many
edits happened in between:

  retained  key still in the index      → kept untouched
  stale     key gone, completed         → kept as history, archived
  stale     key gone, not completed     → dropped
  missing   index key without an entry  → created, incomplete

Entries sharing a key (left behind by old races or manual edits) are
merged first so that keys stay unique.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from coursetrack.models.course import CourseIndex
from coursetrack.models.enrollment import Enrollment, ProgressAggregates, ProgressEntry


@dataclass(frozen=True, slots=True)
class Reconciliation:
    entries: tuple[ProgressEntry, ...]
    aggregates: ProgressAggregates
    # True when the entries differ from the ones passed in
    changed: bool


def compute_progress_percent(completed_leaves: int, total_leaves: int) -> int:
    if total_leaves <= 0:
        return 0
    # Integer round-half-up; round() would round 12.5 down to 12.
    percent = (completed_leaves * 200 + total_leaves) // (2 * total_leaves)
    return max(0, min(100, percent))


def compute_aggregates(
    entries: tuple[ProgressEntry, ...] | list[ProgressEntry], total_leaves: int
) -> ProgressAggregates:
    completed = sum(1 for e in entries if e.is_active and e.completed)
    # An entry created on completion for a leaf the index doesn't know yet must
    # not push the count past the total.
    completed = min(completed, total_leaves)
    return ProgressAggregates(
        total_leaves=total_leaves,
        completed_leaves=completed,
        progress_percent=compute_progress_percent(completed, total_leaves),
    )


def _merge(first: ProgressEntry, second: ProgressEntry) -> ProgressEntry:
    completed_at = [t for t in (first.completed_at, second.completed_at) if t]
    visited_at = [t for t in (first.last_visited_at, second.last_visited_at) if t]
    archived = first.archived and second.archived
    return replace(
        first,
        completed=first.completed or second.completed,
        completed_at=min(completed_at, default=None),
        last_visited_at=max(visited_at, default=None),
        archived=archived,
        archived_at=(first.archived_at or second.archived_at) if archived else None,
    )


def reconcile_entries(
    index: CourseIndex,
    entries: tuple[ProgressEntry, ...] | list[ProgressEntry],
    now: datetime,
) -> Reconciliation:
    by_key: dict[tuple[str, str], ProgressEntry] = {}
    for entry in entries:
        existing = by_key.get(entry.key)
        by_key[entry.key] = entry if existing is None else _merge(existing, entry)

    result: list[ProgressEntry] = []
    target_keys = set()
    for leaf in index.leaves:
        target_keys.add(leaf.key)
        entry = by_key.get(leaf.key)
        if entry is None:
            result.append(ProgressEntry(module_id=leaf.module_id, leaf_id=leaf.leaf_id))
        elif entry.archived:
            # The leaf is back at a known identity; its history becomes live again.
            result.append(replace(entry, archived=False, archived_at=None))
        else:
            result.append(entry)

    for key, entry in by_key.items():
        if key in target_keys or not entry.completed:
            continue
        if entry.archived:
            result.append(entry)
        else:
            result.append(replace(entry, archived=True, archived_at=now))

    return Reconciliation(
        entries=tuple(result),
        aggregates=compute_aggregates(result, index.total_leaves),
        changed=tuple(result) != tuple(entries),
    )


def reconcile_enrollment(
    enrollment: Enrollment, index: CourseIndex, now: datetime
) -> Enrollment | None:
    """Return the realigned enrollment, or None when it already matches."""
    outcome = reconcile_entries(index, enrollment.entries, now)
    if (
        not outcome.changed
        and outcome.aggregates == enrollment.aggregates
    ):
        return None
    return replace(
        enrollment,
        entries=outcome.entries,
        total_leaves=outcome.aggregates.total_leaves,
        completed_leaves=outcome.aggregates.completed_leaves,
        progress_percent=outcome.aggregates.progress_percent,
    )
