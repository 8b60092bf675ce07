from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """Caller identity handed over by the upstream auth layer.

    coursetrack never authenticates anyone itself; the gateway in front
    of it has already done so and forwards the result as headers.
    """

    user_id: str
    roles: frozenset[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles
