from __future__ import annotations

from dataclasses import dataclass

from crucible_router.routing.registry import Backend, ProviderRegistry
from crucible_router.utils.sequence_utils import rotate


@dataclass(frozen=True, slots=True)
class RotationCursor:
    offset: int = 0

    def advance(self, modulus: int) -> RotationCursor:
        return RotationCursor(offset=(self.offset + 1) % max(1, modulus))


def rotate_candidates(
    candidates: list[Backend],
    cursor: RotationCursor,
) -> tuple[list[Backend], RotationCursor]:
    """Rotate ``candidates`` by the cursor and return the advanced cursor.

    The cursor always advances, even for an empty candidate list, so repeated
    calls walk the starting offset round-robin.
    """
    return rotate(candidates, cursor.offset), cursor.advance(len(candidates))


class LoadBalancer:
    """Round-robin fallback candidates; the balancer is the only cursor owner.

    Calls are applied in event-loop order, so overlapping requests interleave
    their cursor advances in the order they reach ``get_fallback_providers``.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        cursor: RotationCursor | None = None,
    ) -> None:
        self._registry = registry
        self._cursor = cursor or RotationCursor()

    @property
    def cursor(self) -> RotationCursor:
        return self._cursor

    def get_fallback_providers(self, current_id: str, count: int = 2) -> list[Backend]:
        eligible = [
            backend for backend in self._registry.backends() if backend.id != current_id
        ]
        rotated, self._cursor = rotate_candidates(eligible, self._cursor)
        return rotated[: max(0, count)]
