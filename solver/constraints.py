# Constraint kinds: candidate generation, preference scoring and validation.
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Tuple

from models import CARDINALS, Component, Constraint, Direction


class UnknownConstraintKindError(KeyError):
    pass


@dataclass(frozen=True)
class Candidate:
    x: int
    y: int
    side: Direction  # side of the placed component the candidate touches


class ConstraintKind:
    """Behaviour for one constraint tag.

    Subclasses supply the three hooks below and are registered with
    :func:`register_kind`; the tree solver never looks at the tag itself.
    """

    tag = ""

    def generate_placements(self, constraint: Constraint, unplaced: Component, placed: Component) -> List[Candidate]:
        raise NotImplementedError

    def score_placement(
        self,
        candidate: Candidate,
        constraint: Constraint,
        unplaced: Component,
        placed: Component,
    ) -> int:
        raise NotImplementedError

    def validate(self, constraint: Constraint, comp_a: Component, comp_b: Component) -> bool:
        raise NotImplementedError


# ---------- ADJACENT ----------

def _span_overlap(lo1: int, hi1: int, lo2: int, hi2: int) -> int:
    return min(hi1, hi2) - max(lo1, lo2)


def alignment_score(c_lo: int, c_len: int, r_lo: int, r_len: int) -> int:
    """Rank a span ``c`` against a reference span ``r`` on one axis.

    Bands: 100 flush edge, 90 centred, 50..89 partial overlap, 1..49 disjoint.
    """
    c_hi, r_hi = c_lo + c_len, r_lo + r_len
    if c_lo == r_lo or c_hi == r_hi:
        return 100
    if c_len % 2 == r_len % 2 and c_lo + c_len // 2 == r_lo + r_len // 2:
        return 90
    overlap = _span_overlap(c_lo, c_hi, r_lo, r_hi)
    if overlap > 0:
        edge = min(abs(c_lo - r_lo), abs(c_hi - r_hi))
        return max(50, min(89, 50 + overlap * 2 + (10 - edge)))
    gap = -overlap
    return max(1, min(49, 49 - gap))


def _side_ring(side: Direction, unplaced: Component, placed: Component) -> Iterator[Candidate]:
    px, py = placed.x, placed.y
    pw, ph = placed.width, placed.height
    uw, uh = unplaced.width, unplaced.height
    if side in (Direction.NORTH, Direction.SOUTH):
        y = py - uh if side is Direction.NORTH else py + ph
        for off in range(-uw + 1, pw):
            yield Candidate(px + off, y, side)
    else:
        x = px + pw if side is Direction.EAST else px - uw
        for off in range(-uh + 1, ph):
            yield Candidate(x, py + off, side)


def touches(a: Component, b: Component, side: Direction) -> bool:
    """True when placed ``a`` sits flush against side ``side`` of placed ``b``."""
    ax1, ay1, ax2, ay2 = a.bounds
    bx1, by1, bx2, by2 = b.bounds
    if side is Direction.NORTH:
        return ay2 == by1 and _span_overlap(ax1, ax2, bx1, bx2) > 0
    if side is Direction.SOUTH:
        return ay1 == by2 and _span_overlap(ax1, ax2, bx1, bx2) > 0
    if side is Direction.EAST:
        return ax1 == bx2 and _span_overlap(ay1, ay2, by1, by2) > 0
    if side is Direction.WEST:
        return ax2 == bx1 and _span_overlap(ay1, ay2, by1, by2) > 0
    return any(touches(a, b, s) for s in CARDINALS)


class AdjacentKind(ConstraintKind):
    """``ADJACENT(a, b, d)``: component ``a`` lies flush on side ``d`` of ``b``."""

    tag = "ADJACENT"

    @staticmethod
    def side_for(constraint: Constraint, unplaced: Component) -> Direction:
        # side of the *placed* endpoint on which the unplaced one must go
        if unplaced.name == constraint.a:
            return constraint.direction
        return constraint.direction.opposite

    def generate_placements(self, constraint: Constraint, unplaced: Component, placed: Component) -> List[Candidate]:
        side = self.side_for(constraint, unplaced)
        sides: Tuple[Direction, ...] = CARDINALS if side is Direction.ANY else (side,)
        out: List[Candidate] = []
        for s in sides:
            out.extend(_side_ring(s, unplaced, placed))
        return out

    def score_placement(
        self,
        candidate: Candidate,
        constraint: Constraint,
        unplaced: Component,
        placed: Component,
    ) -> int:
        if candidate.side in (Direction.NORTH, Direction.SOUTH):
            return alignment_score(candidate.x, unplaced.width, placed.x, placed.width)
        return alignment_score(candidate.y, unplaced.height, placed.y, placed.height)

    def validate(self, constraint: Constraint, comp_a: Component, comp_b: Component) -> bool:
        if not (comp_a.placed and comp_b.placed):
            return False
        return touches(comp_a, comp_b, constraint.direction)


# ---------- registry ----------

_REGISTRY: Dict[str, ConstraintKind] = {}


def _norm_tag(tag: str) -> str:
    return str(tag or "").strip().upper()


def register_kind(impl: ConstraintKind, tag: str = "") -> None:
    key = _norm_tag(tag or impl.tag)
    if not key:
        raise ValueError("constraint kind needs a tag")
    _REGISTRY[key] = impl


def unregister_kind(tag: str) -> None:
    _REGISTRY.pop(_norm_tag(tag), None)


def get_kind(tag: str) -> ConstraintKind:
    try:
        return _REGISTRY[_norm_tag(tag)]
    except KeyError:
        raise UnknownConstraintKindError(tag) from None


def is_known_kind(tag: str) -> bool:
    return _norm_tag(tag) in _REGISTRY


def known_kinds() -> List[str]:
    return sorted(_REGISTRY)


register_kind(AdjacentKind())


__all__ = [
    "AdjacentKind",
    "Candidate",
    "ConstraintKind",
    "UnknownConstraintKindError",
    "alignment_score",
    "get_kind",
    "is_known_kind",
    "known_kinds",
    "register_kind",
    "touches",
    "unregister_kind",
]
