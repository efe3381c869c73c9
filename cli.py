"""Command line entry points: solve a file, generate with the LLM, probe options, serve."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

from config import CFG
from dsl_parser import DSLParseError
from io_files import write_layout_text, write_layout_view_html
from llm_client import STRUCTURE_TYPES, LLMError, generate_structure_text
from models import Component, Constraint, Direction
from render import coordinate_lines, render_ascii, render_result
from solver.constraints import get_kind
from solver.grid import Grid
from solver.options import build_options
from solver.ordering import order_options
from solver.orchestrator import solve_layout
from solver.trace import DecisionTreeRecorder, LoggingSink, MultiSink

logger = logging.getLogger(__name__)

PROBE_ROOM_A = [
    "XXXXXXX",
    "X.....X",
    "X.....X",
    "X.....X",
    "XXXXXXX",
]
PROBE_ROOM_B = [
    "#####",
    "#...#",
    "#####",
]


def _solve_and_report(text: str, args: argparse.Namespace) -> int:
    recorder = DecisionTreeRecorder() if args.tree else None
    sink = MultiSink([recorder, LoggingSink() if args.trace else None])
    try:
        ok, solver, reason, meta = solve_layout(text, sink=sink)
    except (DSLParseError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    for w in meta["warnings"]:
        print(f"warning: {w}", file=sys.stderr)
    print(reason)
    print(
        f"{meta['placed_count']}/{meta['component_count']} components, "
        f"{meta['constraint_count']} constraints, nodes={meta['nodes']} "
        f"backtracks={meta['backtracks']} iterations={meta['iterations']}"
    )
    if recorder is not None:
        print(recorder.render())
    if not ok:
        return 1

    print(render_ascii(solver.components, border=True))
    for line in coordinate_lines(solver.components):
        print(line)

    out_dir = args.out or os.getcwd()
    svg, legend = render_result(solver.components)
    layout_path = write_layout_text(solver.components, out_dir, status=reason)
    html_path = write_layout_view_html(svg, legend, out_dir, ascii_text=render_ascii(solver.components))
    print(f"wrote {layout_path}")
    print(f"wrote {html_path}")
    return 0


def cmd_solve(args: argparse.Namespace) -> int:
    try:
        with open(args.file, "r", encoding="utf-8") as fh:
            text = fh.read()
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    return _solve_and_report(text, args)


def cmd_generate(args: argparse.Namespace) -> int:
    try:
        text = generate_structure_text(args.structure_type)
    except LLMError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    if args.save:
        with open(args.save, "w", encoding="utf-8") as fh:
            fh.write(text)
        print(f"saved {args.save}")
    return _solve_and_report(text, args)


def probe_lines(direction: Direction, limit: int = 10, preview: bool = True) -> List[str]:
    """Rank every placement of a 5x3 room against a 7x5 room anchored at (5, 3)."""
    room_a = Component.from_tile("RoomA", PROBE_ROOM_A)
    room_b = Component.from_tile("RoomB", PROBE_ROOM_B)
    grid = Grid()
    grid.expand(5, 3, room_a.width, room_a.height)
    grid.write(room_a, 5, 3)
    room_a.place_at(5, 3)

    constraint = Constraint("ADJACENT", room_b.name, room_a.name, direction)
    kind = get_kind(constraint.kind)
    options = order_options(build_options(kind, constraint, room_b, room_a, grid))

    lines = [f"{constraint}: {len(options)} options"]
    for rank, opt in enumerate(options[:limit], start=1):
        lines.append(f"{rank:>3}. {opt.describe()}")
        if preview:
            room_b.place_at(opt.x, opt.y)
            lines.extend("     " + ln for ln in render_ascii([room_a, room_b]).splitlines())
            room_b.unplace()
    return lines


def cmd_probe(args: argparse.Namespace) -> int:
    try:
        direction = Direction.parse(args.direction)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    for line in probe_lines(direction, args.limit, not args.no_preview):
        print(line)
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    from app import app

    app.run(host=args.host, port=args.port, debug=False)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Assemble ASCII tiles into a layout from adjacency constraints")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def _solve_opts(p: argparse.ArgumentParser) -> None:
        p.add_argument("--out", type=str, default="", help="Directory for layout outputs")
        p.add_argument("--trace", action="store_true", help="Write every search event to the trace log")
        p.add_argument("--tree", action="store_true", help="Print the placement decision tree")

    p = sub.add_parser("solve", help="Solve a structure description file")
    p.add_argument("file", type=str)
    _solve_opts(p)
    p.set_defaults(func=cmd_solve)

    p = sub.add_parser("generate", help="Generate a structure with the LLM and solve it")
    p.add_argument("structure_type", type=str, help=f"e.g. {', '.join(STRUCTURE_TYPES)}")
    p.add_argument("--save", type=str, default="", help="Keep the generated description here")
    _solve_opts(p)
    p.set_defaults(func=cmd_generate)

    p = sub.add_parser("probe", help="List ranked placement options for two sample rooms")
    p.add_argument("--direction", type=str, default="n", help="n, s, e, w or a")
    p.add_argument("--limit", type=int, default=10)
    p.add_argument("--no-preview", action="store_true")
    p.set_defaults(func=cmd_probe)

    p = sub.add_parser("serve", help="Run the web front-end")
    p.add_argument("--host", type=str, default="127.0.0.1")
    p.add_argument("--port", type=int, default=5000)
    p.set_defaults(func=cmd_serve)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.debug("iteration cap %d, orphan policy %s", CFG.ITERATION_LIMIT, CFG.ORPHAN_POLICY)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
