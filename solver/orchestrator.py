# Orchestrator: structure text -> parsed components -> tree search -> layout
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Tuple

from config import CFG
from dsl_parser import ParsedStructure, load_into, parse_structure, read_structure_source
from solver.trace import TraceSink
from solver.tree_solver import LayoutSolver

logger = logging.getLogger(__name__)


def build_solver(parsed: ParsedStructure, *, sink: Optional[TraceSink] = None) -> LayoutSolver:
    solver = LayoutSolver(sink=sink)
    load_into(solver, parsed)
    return solver


def _meta(parsed: ParsedStructure, solver: LayoutSolver, elapsed: float) -> Dict[str, Any]:
    result = solver.result
    unplaced = [c.name for c in solver.components if not c.placed]
    return {
        "warnings": list(parsed.warnings),
        "descriptions": dict(parsed.descriptions),
        "component_count": len(solver.components),
        "constraint_count": len(solver.constraints),
        "placed_count": len(solver.components) - len(unplaced),
        "unplaced": unplaced,
        "violations": [str(c) for c in solver.verify()] if result and result.ok else [],
        "reason_code": result.reason.value if result else "",
        "nodes": result.nodes_created if result else 0,
        "backtracks": result.backtracks if result else 0,
        "iterations": result.iterations if result else 0,
        "restarts": result.restarts if result else 0,
        "elapsed_sec": elapsed,
    }


def solve_layout(
    source: str,
    *,
    sink: Optional[TraceSink] = None,
    normalize: Optional[bool] = None,
) -> Tuple[bool, LayoutSolver, str, Dict[str, Any]]:
    """Parse ``source`` (DSL text or a path to it) and run the tree search.

    Returns ``(ok, solver, reason, meta)``.  ``reason`` is a short human
    readable outcome; ``meta`` carries parse warnings and search counters.
    Raises :class:`dsl_parser.DSLParseError` when no tiles can be found.
    """
    t0 = time.time()
    text = read_structure_source(source)
    parsed = parse_structure(text)
    solver = build_solver(parsed, sink=sink)
    logger.info(
        "loaded %d components, %d constraints (%d warnings)",
        len(solver.components),
        len(solver.constraints),
        len(parsed.warnings),
    )

    ok = solver.solve()
    if ok and (CFG.NORMALIZE if normalize is None else normalize):
        solver.normalize()

    result = solver.result
    reason = "Solved" if ok else f"No solution: {result.summary()}"
    meta = _meta(parsed, solver, time.time() - t0)
    if meta["violations"]:
        # a solved layout always validates; anything else is a solver bug
        logger.error("solved layout violates %s", meta["violations"])
    return ok, solver, reason, meta


__all__ = ["build_solver", "solve_layout"]
