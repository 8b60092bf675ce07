"""Course indexing: stable identities and a flat leaf order for a hierarchy.

Identity is positional.  A node without an author-pinned ID gets one
derived from (course, module position, leaf position), so a leaf moved to
another slot is a new leaf as far as progress tracking is concerned.
Pinned IDs are never rewritten.

index_course() is pure: it returns a new Course with IDs and positions
filled in plus the CourseIndex.  Persisting the filled-in hierarchy is the
caller's job.
"""

from __future__ import annotations

import re
from dataclasses import replace

from coursetrack.models.course import (
    Course,
    CourseIndex,
    CourseModule,
    IndexedCourse,
    LeafDescriptor,
)
from coursetrack.services.errors import InvalidHierarchyError


def assign_id(
    course_id: str, module_position: int, leaf_position: int | None = None
) -> str:
    """Derive a node ID from its 1-based position."""
    module_id = f"{course_id}_module_{module_position}"
    if leaf_position is None:
        return module_id
    return f"{module_id}_sub_{leaf_position}"


def _collision_hint(course_id: str, node_id: str) -> str:
    # Positional IDs are stored once assigned, so a hierarchy read back and
    # edited by inserting nodes above them keeps the old ones.
    if re.fullmatch(rf"{re.escape(course_id)}_module_\d+(_sub_\d+)?", node_id):
        return (
            "; it looks like a generated ID from an earlier layout, "
            "drop it to have the node renumbered"
        )
    return ""


def index_course(course: Course) -> IndexedCourse:
    modules: list[CourseModule] = []
    descriptors: list[LeafDescriptor] = []
    seen_modules: set[str] = set()
    seen_leaves: set[str] = set()

    for module_position, module in enumerate(course.modules, start=1):
        module_id = module.id or assign_id(course.id, module_position)
        if module_id in seen_modules:
            raise InvalidHierarchyError(
                f"course {course.id}: duplicate module id {module_id!r} "
                f"at position {module_position}"
                f"{_collision_hint(course.id, module_id)}"
            )
        seen_modules.add(module_id)

        leaves = []
        for leaf_position, leaf in enumerate(module.leaves, start=1):
            leaf_id = leaf.id or assign_id(course.id, module_position, leaf_position)
            if leaf_id in seen_leaves:
                raise InvalidHierarchyError(
                    f"course {course.id}: duplicate leaf id {leaf_id!r} "
                    f"at module {module_position}, position {leaf_position}"
                    f"{_collision_hint(course.id, leaf_id)}"
                )
            seen_leaves.add(leaf_id)

            leaves.append(replace(leaf, id=leaf_id, position=leaf_position))
            descriptors.append(
                LeafDescriptor(
                    module_id=module_id,
                    module_position=module_position,
                    module_title=module.title,
                    leaf_id=leaf_id,
                    leaf_position=leaf_position,
                    leaf_title=leaf.title,
                )
            )

        modules.append(
            replace(
                module, id=module_id, position=module_position, leaves=tuple(leaves)
            )
        )

    index = CourseIndex(
        course_id=course.id,
        total_modules=len(modules),
        total_leaves=len(descriptors),
        leaves=tuple(descriptors),
    )
    return IndexedCourse(course=replace(course, modules=tuple(modules)), index=index)
