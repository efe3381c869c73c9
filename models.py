from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

BLANK = " "


class Direction(Enum):
    NORTH = "n"
    SOUTH = "s"
    EAST = "e"
    WEST = "w"
    ANY = "a"

    @classmethod
    def parse(cls, token: Union[str, "Direction"]) -> "Direction":
        if isinstance(token, Direction):
            return token
        key = str(token or "").strip().lower()
        found = _DIRECTION_ALIASES.get(key)
        if found is None:
            raise ValueError(f"unknown direction: {token!r}")
        return found

    @property
    def opposite(self) -> "Direction":
        return _OPPOSITES[self]

    @property
    def label(self) -> str:
        return self.name.capitalize()


_DIRECTION_ALIASES = {
    "n": Direction.NORTH, "north": Direction.NORTH, "up": Direction.NORTH,
    "s": Direction.SOUTH, "south": Direction.SOUTH, "down": Direction.SOUTH,
    "e": Direction.EAST, "east": Direction.EAST, "right": Direction.EAST,
    "w": Direction.WEST, "west": Direction.WEST, "left": Direction.WEST,
    "a": Direction.ANY, "any": Direction.ANY, "*": Direction.ANY,
}

_OPPOSITES = {
    Direction.NORTH: Direction.SOUTH,
    Direction.SOUTH: Direction.NORTH,
    Direction.EAST: Direction.WEST,
    Direction.WEST: Direction.EAST,
    Direction.ANY: Direction.ANY,
}

CARDINALS: Tuple[Direction, ...] = (
    Direction.NORTH,
    Direction.SOUTH,
    Direction.EAST,
    Direction.WEST,
)


def _mask_char(cell: object) -> str:
    # occupancy masks may be given as booleans instead of characters
    if isinstance(cell, str):
        return cell[:1] or BLANK
    return "#" if cell else BLANK


@dataclass
class Component:
    """A named rectangular ASCII tile plus its mutable placement state.

    ``rows`` is always ``height`` strings of exactly ``width`` characters; a
    space is a transparent cell that never collides with anything.
    """

    name: str
    rows: Tuple[str, ...]
    placed: bool = False
    x: Optional[int] = None
    y: Optional[int] = None
    filled_cells: Tuple[Tuple[int, int, str], ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.rows or not self.rows[0]:
            raise ValueError(f"component {self.name!r} has an empty tile")
        width = len(self.rows[0])
        if any(len(r) != width for r in self.rows):
            raise ValueError(f"component {self.name!r} has ragged rows")
        self.filled_cells = tuple(
            (dx, dy, ch)
            for dy, row in enumerate(self.rows)
            for dx, ch in enumerate(row)
            if ch != BLANK
        )

    @classmethod
    def from_tile(
        cls,
        name: str,
        tile: Union[str, Sequence[str]],
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> "Component":
        if isinstance(tile, str):
            lines: List[str] = tile.split("\n")
            # a trailing newline closes the last row; it is not a blank row
            if len(lines) > 1 and lines[-1] == "":
                lines.pop()
        else:
            lines = [r if isinstance(r, str) else "".join(_mask_char(c) for c in r) for r in tile]
        lines = [ln.replace("\t", BLANK).rstrip("\r") for ln in lines]

        w = max((len(ln) for ln in lines), default=0) if width is None else int(width)
        h = len(lines) if height is None else int(height)
        if w <= 0 or h <= 0:
            raise ValueError(f"component {name!r} needs a positive size, got {w}x{h}")

        lines = (lines + [""] * h)[:h]
        rows = tuple(ln[:w].ljust(w, BLANK) for ln in lines)
        return cls(name=name, rows=rows)

    @property
    def width(self) -> int:
        return len(self.rows[0])

    @property
    def height(self) -> int:
        return len(self.rows)

    @property
    def bounds(self) -> Tuple[int, int, int, int]:
        """``(x1, y1, x2, y2)`` with exclusive far edges; only valid when placed."""
        if not self.placed or self.x is None or self.y is None:
            raise ValueError(f"component {self.name!r} is not placed")
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def place_at(self, x: int, y: int) -> None:
        self.placed = True
        self.x = int(x)
        self.y = int(y)

    def unplace(self) -> None:
        self.placed = False
        self.x = None
        self.y = None


@dataclass(frozen=True)
class Constraint:
    kind: str
    a: str
    b: str
    direction: Direction

    def involves(self, name: str) -> bool:
        return name == self.a or name == self.b

    def other(self, name: str) -> str:
        return self.b if name == self.a else self.a

    def __str__(self) -> str:
        return f"{self.kind}({self.a}, {self.b}, {self.direction.value})"


class SolveReason(Enum):
    SOLVED = "solved"
    NO_COMPONENTS = "no_components"
    UNKNOWN_CONSTRAINT_KIND = "unknown_constraint_kind"
    UNKNOWN_COMPONENT = "unknown_component"
    NO_PLACEMENT_OPTIONS = "no_placement_options"
    SEARCH_EXHAUSTED = "search_exhausted"
    FRONTIER_NOT_FOUND = "frontier_not_found"
    ITERATION_LIMIT_EXCEEDED = "iteration_limit_exceeded"


@dataclass
class SolveResult:
    ok: bool
    reason: SolveReason
    detail: str = ""
    nodes_created: int = 0
    backtracks: int = 0
    iterations: int = 0
    restarts: int = 0
    elapsed_sec: float = 0.0

    def summary(self) -> str:
        text = self.reason.value
        if self.detail:
            text = f"{text}: {self.detail}"
        return text


@dataclass
class TreeNode:
    component: str
    x: int
    y: int
    constraint: Optional[Constraint]
    depth: int
    parent: Optional["TreeNode"] = field(default=None, repr=False)
    children: List["TreeNode"] = field(default_factory=list, repr=False)
    failed: bool = False

    def add_child(self, child: "TreeNode") -> "TreeNode":
        child.parent = self
        self.children.append(child)
        return child
