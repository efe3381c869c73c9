"""Growable character grid used as the spatial index during search.

The grid stores two parallel buffers: the characters painted by placed
components and the name of the component owning each cell.  Coordinates passed
in and out are world coordinates; ``min_x``/``min_y`` map them onto buffer
indices and move whenever the grid grows towards negative coordinates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from models import BLANK, Component


@dataclass(frozen=True)
class Conflict:
    component: str
    cells: int


class Grid:
    def __init__(self) -> None:
        self.min_x = 0
        self.min_y = 0
        self.width = 0
        self.height = 0
        self._chars: List[List[str]] = []
        self._owners: List[List[Optional[str]]] = []

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def expand(self, x: int, y: int, w: int, h: int) -> bool:
        """Grow so that the rectangle ``(x, y, w, h)`` lies inside the grid.

        Returns True when the buffers were reallocated.  Existing cells keep
        their world coordinates.
        """
        if w <= 0 or h <= 0:
            return False
        if self.is_empty:
            self.min_x, self.min_y = x, y
            self.width, self.height = w, h
            self._chars = [[BLANK] * w for _ in range(h)]
            self._owners = [[None] * w for _ in range(h)]
            return True

        x1 = min(self.min_x, x)
        y1 = min(self.min_y, y)
        x2 = max(self.min_x + self.width, x + w)
        y2 = max(self.min_y + self.height, y + h)
        if (x1, y1) == (self.min_x, self.min_y) and (x2 - x1, y2 - y1) == (self.width, self.height):
            return False

        new_w, new_h = x2 - x1, y2 - y1
        chars = [[BLANK] * new_w for _ in range(new_h)]
        owners: List[List[Optional[str]]] = [[None] * new_w for _ in range(new_h)]
        ox, oy = self.min_x - x1, self.min_y - y1
        for row in range(self.height):
            chars[row + oy][ox:ox + self.width] = self._chars[row]
            owners[row + oy][ox:ox + self.width] = self._owners[row]

        self.min_x, self.min_y = x1, y1
        self.width, self.height = new_w, new_h
        self._chars, self._owners = chars, owners
        return True

    def _index(self, x: int, y: int) -> Optional[Tuple[int, int]]:
        col, row = x - self.min_x, y - self.min_y
        if 0 <= col < self.width and 0 <= row < self.height:
            return col, row
        return None

    def cell(self, x: int, y: int) -> str:
        idx = self._index(x, y)
        if idx is None:
            return BLANK
        col, row = idx
        return self._chars[row][col]

    def owner(self, x: int, y: int) -> Optional[str]:
        idx = self._index(x, y)
        if idx is None:
            return None
        col, row = idx
        return self._owners[row][col]

    def is_occupied(self, x: int, y: int) -> bool:
        return self.cell(x, y) != BLANK

    def occupied_after_expand(self, comp: Component, x: int, y: int) -> bool:
        self.expand(x, y, comp.width, comp.height)
        for dx, dy, _ch in comp.filled_cells:
            if self._chars[y + dy - self.min_y][x + dx - self.min_x] != BLANK:
                return True
        return False

    def conflicts_at(self, comp: Component, x: int, y: int) -> Tuple[Conflict, ...]:
        """Name every owner whose filled cells ``comp`` would cover at ``(x, y)``.

        Read-only: cells outside the current bounds are blank by definition, so
        no expansion is needed.
        """
        counts: Dict[str, int] = {}
        for dx, dy, _ch in comp.filled_cells:
            who = self.owner(x + dx, y + dy)
            if who is not None:
                counts[who] = counts.get(who, 0) + 1
        return tuple(Conflict(name, n) for name, n in counts.items())

    def contains(self, x: int, y: int, w: int, h: int) -> bool:
        return (
            not self.is_empty
            and x >= self.min_x
            and y >= self.min_y
            and x + w <= self.min_x + self.width
            and y + h <= self.min_y + self.height
        )

    def write(self, comp: Component, x: int, y: int) -> None:
        """Paint ``comp`` at ``(x, y)``; the caller must have expanded to cover it."""
        if not self.contains(x, y, comp.width, comp.height):
            raise ValueError(f"{comp.name} at ({x},{y}) lies outside the grid; expand first")
        for dx, dy, ch in comp.filled_cells:
            row, col = y + dy - self.min_y, x + dx - self.min_x
            self._chars[row][col] = ch
            self._owners[row][col] = comp.name

    def erase(self, comp: Component, x: int, y: int) -> None:
        for dx, dy, _ch in comp.filled_cells:
            idx = self._index(x + dx, y + dy)
            if idx is None:
                continue
            col, row = idx
            if self._owners[row][col] == comp.name:
                self._chars[row][col] = BLANK
                self._owners[row][col] = None

    def clear(self) -> None:
        self.min_x = self.min_y = 0
        self.width = self.height = 0
        self._chars = []
        self._owners = []

    def snapshot(self) -> Tuple[int, int, int, int, Tuple[str, ...], Tuple[Tuple[Optional[str], ...], ...]]:
        return (
            self.min_x,
            self.min_y,
            self.width,
            self.height,
            tuple("".join(r) for r in self._chars),
            tuple(tuple(r) for r in self._owners),
        )

    def render(self) -> str:
        return "\n".join("".join(r).rstrip() for r in self._chars)


__all__ = ["Conflict", "Grid"]
