# Search-order heuristics: which component to root on, which option to try first.
from __future__ import annotations

from typing import List, Mapping, Optional, Sequence, Set

from models import Component, Constraint
from solver.options import PlacementOption


def constraint_degree(name: str, constraints: Sequence[Constraint]) -> int:
    return sum(1 for c in constraints if c.involves(name))


def neighbour_count(name: str, constraints: Sequence[Constraint]) -> int:
    seen: Set[str] = set()
    for c in constraints:
        if c.involves(name):
            other = c.other(name)
            if other != name:
                seen.add(other)
    return len(seen)


def mobility_score(name: str, constraints: Sequence[Constraint]) -> int:
    # degree plus distinct neighbours in the dependency graph
    return constraint_degree(name, constraints) + neighbour_count(name, constraints)


def most_constrained(
    components: Sequence[Component],
    constraints: Sequence[Constraint],
    failed_counts: Optional[Mapping[str, int]] = None,
    *,
    heuristic: str = "degree",
) -> Optional[Component]:
    """Pick the unplaced component to anchor the search on.

    Highest degree wins (or mobility score when ``heuristic == "mobility"``);
    among equals the component with fewer failed placements goes first, then
    declaration order.
    """
    failed_counts = failed_counts or {}
    rank = mobility_score if heuristic == "mobility" else constraint_degree
    best: Optional[Component] = None
    best_key = None
    for comp in components:
        if comp.placed:
            continue
        key = (rank(comp.name, constraints), -int(failed_counts.get(comp.name, 0)))
        if best is None or key > best_key:
            best, best_key = comp, key
    return best


def order_options(options: Sequence[PlacementOption]) -> List[PlacementOption]:
    """Conflict-free before conflicting, then score descending; stable."""
    return sorted(options, key=lambda o: (o.has_conflict, -o.score))


__all__ = [
    "constraint_degree",
    "mobility_score",
    "most_constrained",
    "neighbour_count",
    "order_options",
]
