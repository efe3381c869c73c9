"""Backtracking tree search that assembles components into one layout.

The search anchors the most constrained component, then repeatedly extends
the placed set along a *frontier* constraint (one endpoint placed, the other
not).  Every candidate position is written to the grid inside
:meth:`LayoutSolver._placed`, which erases it again unless the branch below
it succeeds, so a failed branch always leaves the grid exactly as it found it.
Backtracking is just returning from the recursive call.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from config import CFG
from models import Component, Constraint, Direction, SolveReason, SolveResult
from solver.constraints import get_kind, is_known_kind
from solver.grid import Grid
from solver.options import build_options
from solver.ordering import constraint_degree, most_constrained, order_options
from solver.trace import (
    BACKTRACK,
    CONSTRAINT_RESOLVED,
    NODE_CREATED,
    OPTIONS_GENERATED,
    ORPHAN_PLACED,
    PLACEMENT_TRIED,
    ROOT_PLACED,
    SOLVE_FINISHED,
    SOLVE_STARTED,
    LoggingSink,
    MultiSink,
    TraceEvent,
    TraceSink,
)

logger = logging.getLogger(__name__)

Placement = Tuple[str, int, int, int, int]
ORPHAN_POLICIES = ("place", "error")


class _IterationLimit(Exception):
    pass


class _Guard:
    __slots__ = ("committed",)

    def __init__(self) -> None:
        self.committed = False

    def commit(self) -> None:
        self.committed = True


class LayoutSolver:
    def __init__(self, *, sink: Optional[TraceSink] = None, iteration_limit: Optional[int] = None):
        self.components: List[Component] = []
        self.constraints: List[Constraint] = []
        self.grid = Grid()
        self.sink = sink
        self.iteration_limit = iteration_limit
        self.failed_counts: Dict[str, int] = {}
        self.result: Optional[SolveResult] = None

        self._by_name: Dict[str, Component] = {}
        self._active_sink: Optional[TraceSink] = None
        self._limit = 0
        self._attempt_ticks = 0
        self._unreached: List[str] = []
        self.nodes_created = 0
        self.backtracks = 0
        self.iterations = 0

    # ---------- building ----------

    def add_component(
        self,
        name: str,
        tile: Union[str, Sequence],
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> Component:
        name = str(name or "").strip()
        if not name:
            raise ValueError("component name must not be empty")
        if name in self._by_name:
            raise ValueError(f"duplicate component: {name}")
        comp = Component.from_tile(name, tile, width, height)
        self.components.append(comp)
        self._by_name[name] = comp
        self.failed_counts.setdefault(name, 0)
        return comp

    def add_constraint(self, kind: str, a: str, b: str, direction: Union[str, Direction] = Direction.ANY) -> Constraint:
        a = str(a or "").strip()
        b = str(b or "").strip()
        if not a or not b:
            raise ValueError("constraint needs two component names")
        if a == b:
            raise ValueError(f"constraint relates {a!r} to itself")
        constraint = Constraint(
            kind=str(kind or "").strip().upper(),
            a=a,
            b=b,
            direction=Direction.parse(direction),
        )
        self.constraints.append(constraint)
        return constraint

    def find_component(self, name: str) -> Optional[Component]:
        return self._by_name.get(str(name or "").strip())

    def degree(self, name: str) -> int:
        return constraint_degree(name, self.constraints)

    # ---------- grid mutation ----------

    @contextmanager
    def _placed(self, comp: Component, x: int, y: int) -> Iterator[_Guard]:
        self.grid.expand(x, y, comp.width, comp.height)
        self.grid.write(comp, x, y)
        comp.place_at(x, y)
        guard = _Guard()
        try:
            yield guard
        finally:
            if not guard.committed:
                self.grid.erase(comp, x, y)
                comp.unplace()

    def _commit(self, comp: Component, x: int, y: int) -> None:
        self.grid.expand(x, y, comp.width, comp.height)
        self.grid.write(comp, x, y)
        comp.place_at(x, y)

    def reset(self) -> None:
        self._clear_placements()
        self.failed_counts = {c.name: 0 for c in self.components}
        self.result = None

    def _clear_placements(self) -> None:
        for comp in self.components:
            comp.unplace()
        self.grid.clear()

    # ---------- events ----------

    def _emit(self, name: str, **fields) -> None:
        if self._active_sink is not None:
            self._active_sink.emit(TraceEvent(name, fields))

    def _placed_count(self) -> int:
        return sum(1 for c in self.components if c.placed)

    def _tick(self) -> None:
        self.iterations += 1
        self._attempt_ticks += 1
        if self._attempt_ticks > self._limit:
            raise _IterationLimit()

    # ---------- solve ----------

    def solve(self) -> bool:
        if CFG.ORPHAN_POLICY not in ORPHAN_POLICIES:
            raise ValueError(f"unknown orphan policy {CFG.ORPHAN_POLICY!r}, expected one of {ORPHAN_POLICIES}")
        t0 = time.time()
        self._clear_placements()
        self.nodes_created = self.backtracks = self.iterations = 0
        limit = self.iteration_limit if self.iteration_limit is not None else CFG.ITERATION_LIMIT
        self._limit = max(1, int(limit))
        self._active_sink = MultiSink([self.sink, LoggingSink() if CFG.TRACE else None])

        self._emit(
            SOLVE_STARTED,
            components=len(self.components),
            constraints=len(self.constraints),
            limit=self._limit,
        )
        ok, reason, detail, restarts = self._run()
        if not ok:
            self._clear_placements()

        self.result = SolveResult(
            ok=ok,
            reason=reason,
            detail=detail,
            nodes_created=self.nodes_created,
            backtracks=self.backtracks,
            iterations=self.iterations,
            restarts=restarts,
            elapsed_sec=time.time() - t0,
        )
        self._emit(
            SOLVE_FINISHED,
            ok=ok,
            reason=reason.value,
            detail=detail,
            nodes=self.nodes_created,
            backtracks=self.backtracks,
            iterations=self.iterations,
            placed=self._placed_count(),
        )
        level = logging.INFO if ok else logging.WARNING
        logger.log(
            level,
            "solve %s (%s) nodes=%d backtracks=%d iterations=%d",
            "ok" if ok else "failed",
            self.result.summary(),
            self.nodes_created,
            self.backtracks,
            self.iterations,
        )
        self._active_sink = None
        return ok

    def _run(self) -> Tuple[bool, SolveReason, str, int]:
        if not self.components:
            return False, SolveReason.NO_COMPONENTS, "nothing to place", 0

        for c in self.constraints:
            if not is_known_kind(c.kind):
                return False, SolveReason.UNKNOWN_CONSTRAINT_KIND, str(c), 0
            missing = [n for n in (c.a, c.b) if n not in self._by_name]
            if missing:
                return False, SolveReason.UNKNOWN_COMPONENT, f"{c}: {', '.join(missing)}", 0

        linked = [c for c in self.components if self.degree(c.name) > 0]
        orphans = [c for c in self.components if self.degree(c.name) == 0]
        if orphans and CFG.ORPHAN_POLICY == "error":
            names = ", ".join(c.name for c in orphans)
            return False, SolveReason.FRONTIER_NOT_FOUND, f"unconstrained: {names}", 0

        restarts = 0
        while linked:
            root = self._next_root()
            self._attempt_ticks = 0
            try:
                reason = self._search_from(root)
            except _IterationLimit:
                self.failed_counts[root.name] = self.failed_counts.get(root.name, 0) + 1
                if restarts < CFG.ROOT_RESTARTS and self._next_root() is not root:
                    restarts += 1
                    logger.info("iteration cap hit from root %s, restarting (%d)", root.name, restarts)
                    continue
                return False, SolveReason.ITERATION_LIMIT_EXCEEDED, f"cap {self._limit} from root {root.name}", restarts
            if reason is not SolveReason.SOLVED:
                detail = ""
                if reason is SolveReason.FRONTIER_NOT_FOUND:
                    detail = "unreached: " + ", ".join(self._unreached)
                return False, reason, detail, restarts
            break

        self._place_orphans(orphans)
        return True, SolveReason.SOLVED, "", restarts

    def _next_root(self) -> Optional[Component]:
        linked = [c for c in self.components if self.degree(c.name) > 0]
        return most_constrained(linked, self.constraints, self.failed_counts, heuristic=CFG.ROOT_HEURISTIC)

    def _search_from(self, root: Component) -> SolveReason:
        x, y = CFG.ROOT_X, CFG.ROOT_Y
        with self._placed(root, x, y) as guard:
            self._tick()
            self.nodes_created += 1
            self._emit(
                ROOT_PLACED,
                component=root.name,
                x=x,
                y=y,
                depth=0,
                constraint=None,
                nodes=self.nodes_created,
                placed=self._placed_count(),
            )
            reason = self._advance(tuple(self.constraints), 0)
            if reason is SolveReason.SOLVED:
                guard.commit()
            return reason

    def _frontier(self, remaining: Sequence[Constraint]) -> Optional[Tuple[Constraint, Component, Component]]:
        for c in remaining:
            a, b = self._by_name[c.a], self._by_name[c.b]
            if a.placed and not b.placed:
                return c, b, a
            if b.placed and not a.placed:
                return c, a, b
        return None

    def _resolve(self, remaining: Sequence[Constraint]) -> Tuple[Tuple[Constraint, ...], bool]:
        """Validate and drop constraints whose endpoints are now both placed."""
        kept: List[Constraint] = []
        for c in remaining:
            a, b = self._by_name[c.a], self._by_name[c.b]
            if not (a.placed and b.placed):
                kept.append(c)
                continue
            ok = get_kind(c.kind).validate(c, a, b)
            self._emit(CONSTRAINT_RESOLVED, constraint=str(c), ok=ok)
            if not ok:
                return tuple(remaining), False
        return tuple(kept), True

    def _advance(self, remaining: Tuple[Constraint, ...], depth: int) -> SolveReason:
        frontier = self._frontier(remaining)
        if frontier is None:
            if remaining:
                self._unreached = sorted({n for c in remaining for n in (c.a, c.b)})
                return SolveReason.FRONTIER_NOT_FOUND
            return SolveReason.SOLVED

        constraint, unplaced, anchor = frontier
        kind = get_kind(constraint.kind)
        options = order_options(build_options(kind, constraint, unplaced, anchor, self.grid))
        self._emit(
            OPTIONS_GENERATED,
            component=unplaced.name,
            constraint=str(constraint),
            count=len(options),
            conflict_free=sum(1 for o in options if not o.has_conflict),
            depth=depth,
        )
        if not options:
            self.failed_counts[unplaced.name] = self.failed_counts.get(unplaced.name, 0) + 1
            return SolveReason.NO_PLACEMENT_OPTIONS

        for opt in options:
            if self.grid.occupied_after_expand(unplaced, opt.x, opt.y):
                self._emit(PLACEMENT_TRIED, component=unplaced.name, x=opt.x, y=opt.y,
                           score=opt.score, outcome="conflict", depth=depth + 1)
                continue
            with self._placed(unplaced, opt.x, opt.y) as guard:
                self._tick()
                self.nodes_created += 1
                self._emit(
                    NODE_CREATED,
                    component=unplaced.name,
                    x=opt.x,
                    y=opt.y,
                    score=opt.score,
                    depth=depth + 1,
                    constraint=constraint,
                    nodes=self.nodes_created,
                    placed=self._placed_count(),
                )
                still, ok = self._resolve(remaining)
                if ok:
                    self._emit(PLACEMENT_TRIED, component=unplaced.name, x=opt.x, y=opt.y,
                               score=opt.score, outcome="placed", depth=depth + 1)
                    reason = self._advance(still, depth + 1)
                    if reason is SolveReason.SOLVED:
                        guard.commit()
                        return reason
                    if reason is SolveReason.FRONTIER_NOT_FOUND:
                        # connectivity does not depend on where anything sits
                        return reason
                else:
                    self._emit(PLACEMENT_TRIED, component=unplaced.name, x=opt.x, y=opt.y,
                               score=opt.score, outcome="invalid", depth=depth + 1)
                self.backtracks += 1
                self._emit(
                    BACKTRACK,
                    component=unplaced.name,
                    depth=depth + 1,
                    backtracks=self.backtracks,
                    placed=self._placed_count() - 1,
                )

        self.failed_counts[unplaced.name] = self.failed_counts.get(unplaced.name, 0) + 1
        return SolveReason.SEARCH_EXHAUSTED

    def _place_orphans(self, orphans: Sequence[Component]) -> None:
        bounds = self.bounds()
        if bounds is None:
            cursor, top = CFG.ROOT_X, CFG.ROOT_Y
        else:
            cursor, top = bounds[2] + CFG.ORPHAN_GAP, bounds[1]
        for comp in orphans:
            self._commit(comp, cursor, top)
            self._emit(ORPHAN_PLACED, component=comp.name, x=cursor, y=top, placed=self._placed_count())
            cursor += comp.width + CFG.ORPHAN_GAP

    # ---------- results ----------

    def bounds(self) -> Optional[Tuple[int, int, int, int]]:
        boxes = [c.bounds for c in self.components if c.placed]
        if not boxes:
            return None
        return (
            min(b[0] for b in boxes),
            min(b[1] for b in boxes),
            max(b[2] for b in boxes),
            max(b[3] for b in boxes),
        )

    def verify(self) -> List[Constraint]:
        """Constraints the current placements do not satisfy."""
        bad: List[Constraint] = []
        for c in self.constraints:
            a, b = self.find_component(c.a), self.find_component(c.b)
            if a is None or b is None or not is_known_kind(c.kind):
                bad.append(c)
            elif not get_kind(c.kind).validate(c, a, b):
                bad.append(c)
        return bad

    def normalize(self) -> None:
        """Shift every placed component so the layout starts at (0, 0)."""
        bounds = self.bounds()
        if bounds is None:
            return
        dx, dy = -bounds[0], -bounds[1]
        if dx == 0 and dy == 0:
            return
        self.grid.clear()
        for comp in self.components:
            if comp.placed:
                self._commit(comp, comp.x + dx, comp.y + dy)

    def placements(self) -> List[Placement]:
        return [(c.name, c.x, c.y, c.width, c.height) for c in self.components if c.placed]

    def render(self) -> str:
        return self.grid.render()


__all__ = ["LayoutSolver", "Placement"]
