from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from models import Component, Constraint, Direction
from solver.constraints import ConstraintKind
from solver.grid import Conflict, Grid


@dataclass(frozen=True)
class PlacementOption:
    x: int
    y: int
    side: Direction
    score: int
    conflicts: Tuple[Conflict, ...] = ()

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)

    @property
    def conflict_cells(self) -> int:
        return sum(c.cells for c in self.conflicts)

    def describe(self) -> str:
        text = f"({self.x},{self.y}) {self.side.label} score={self.score}"
        if self.conflicts:
            names = ", ".join(f"{c.component}x{c.cells}" for c in self.conflicts)
            text += f" conflicts=[{names}] cells={self.conflict_cells}"
        return text


def build_options(
    kind: ConstraintKind,
    constraint: Constraint,
    unplaced: Component,
    placed: Component,
    grid: Grid,
) -> List[PlacementOption]:
    """Score every geometric candidate and attach a conflict report from ``grid``."""
    options: List[PlacementOption] = []
    for cand in kind.generate_placements(constraint, unplaced, placed):
        options.append(
            PlacementOption(
                x=cand.x,
                y=cand.y,
                side=cand.side,
                score=kind.score_placement(cand, constraint, unplaced, placed),
                conflicts=grid.conflicts_at(unplaced, cand.x, cand.y),
            )
        )
    return options


__all__ = ["PlacementOption", "build_options"]
