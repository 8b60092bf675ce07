from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class LeafUnit:
    """Smallest trackable content node inside a module.

    `id` is None until the indexer assigns a positional one, unless an
    author pinned it explicitly to keep identity across reorderings.
    """

    title: str
    id: str | None = None
    position: int | None = None


@dataclass(frozen=True, slots=True)
class CourseModule:
    title: str
    id: str | None = None
    position: int | None = None
    leaves: tuple[LeafUnit, ...] = ()


@dataclass(frozen=True, slots=True)
class Course:
    id: str
    title: str
    modules: tuple[CourseModule, ...] = ()

    @staticmethod
    def new(*, id: str, title: str, modules: list[dict] | None = None) -> Course:
        """Build a course from plain nested dicts.

        Each module dict: {"title", "id"?, "leaves": [{"title", "id"?}, ...]}.
        """
        return Course(
            id=id,
            title=title,
            modules=tuple(
                CourseModule(
                    title=m["title"],
                    id=m.get("id"),
                    leaves=tuple(
                        LeafUnit(title=leaf["title"], id=leaf.get("id"))
                        for leaf in m.get("leaves", [])
                    ),
                )
                for m in (modules or [])
            ),
        )


@dataclass(frozen=True, slots=True)
class LeafDescriptor:
    """One row of a target index: a leaf plus the module that holds it."""

    module_id: str
    module_position: int
    module_title: str
    leaf_id: str
    leaf_position: int
    leaf_title: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.module_id, self.leaf_id)


@dataclass(frozen=True, slots=True)
class CourseIndex:
    """Target indexing: leaf identities, order and counts for one course."""

    course_id: str
    total_modules: int
    total_leaves: int
    leaves: tuple[LeafDescriptor, ...]

    def keys(self) -> list[tuple[str, str]]:
        return [leaf.key for leaf in self.leaves]


@dataclass(frozen=True, slots=True)
class IndexedCourse:
    """Indexer output: the hierarchy with IDs/positions filled in, plus its index."""

    course: Course
    index: CourseIndex
