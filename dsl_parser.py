# dsl_parser.py: markdown structure description -> components + constraints
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from models import Constraint, Direction
from solver.constraints import is_known_kind

logger = logging.getLogger(__name__)

SECTION_NONE = ""
SECTION_COMPONENTS = "components"
SECTION_CONSTRAINTS = "constraints"
SECTION_TILES = "tiles"

_HEADING_RE = re.compile(r"^\s*(?:#{1,6}\s*|\*\*)?(?P<title>[A-Za-z][A-Za-z ]*?)(?:\*\*)?\s*:?\s*(?:\*\*)?\s*$")
_BOLD_NAME_RE = re.compile(r"^\s*(?:[-*]\s+)?\*\*(?P<name>[^*]+?)\*\*\s*:?\s*(?:[-–—:]\s*(?P<desc>.*))?$")
_NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s+(?P<name>[^-–—:]+?)\s*(?:[-–—:]\s*(?P<desc>.*))?$")
_TILE_NAME_RE = re.compile(r"^\s*(?:#{1,6}\s*)?(?P<name>[^:`*#][^:`]*?)\s*:\s*$")
_TILE_HEADING_RE = re.compile(r"^\s*#{2,6}\s*(?P<name>[^#`:]+?)\s*:?\s*$")
_CALL_RE = re.compile(r"^\s*(?:[-*]\s+|\d+[.)]\s+)?`?(?P<kind>[A-Za-z_]+)\s*\((?P<args>[^)]*)\)")
_FENCE_RE = re.compile(r"^\s*```")


class DSLParseError(ValueError):
    pass


@dataclass
class ParsedStructure:
    tiles: Dict[str, List[str]] = field(default_factory=dict)
    constraints: List[Constraint] = field(default_factory=list)
    descriptions: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def component_names(self) -> List[str]:
        return list(self.tiles)

    def warn(self, msg: str) -> None:
        logger.warning("%s", msg)
        self.warnings.append(msg)


def _clean_name(raw: str) -> str:
    return raw.strip().strip("*`'\"").strip().rstrip(":").strip()


def _section_for(line: str) -> Optional[str]:
    m = _HEADING_RE.match(line)
    if not m:
        return None
    title = m.group("title").strip().lower()
    if title in ("component tiles", "tiles", "ascii tiles", "component ascii tiles"):
        return SECTION_TILES
    if title in ("constraints", "spatial constraints", "constraints dsl"):
        return SECTION_CONSTRAINTS
    if title in ("components", "core components"):
        return SECTION_COMPONENTS
    return None


def _parse_call(line: str, parsed: ParsedStructure, lineno: int) -> Optional[Tuple[str, str, str, Direction]]:
    m = _CALL_RE.match(line)
    if not m:
        return None
    kind = m.group("kind").upper()
    if not is_known_kind(kind):
        parsed.warn(f"line {lineno}: skipped unsupported constraint {kind}")
        return None
    args = [_clean_name(a) for a in m.group("args").split(",")]
    if len(args) == 2:
        args.append("a")
    if len(args) != 3 or not args[0] or not args[1]:
        parsed.warn(f"line {lineno}: malformed constraint {line.strip()!r}")
        return None
    try:
        direction = Direction.parse(args[2])
    except ValueError:
        parsed.warn(f"line {lineno}: bad direction {args[2]!r}")
        return None
    return kind, args[0], args[1], direction


def _trim_block(lines: List[str]) -> List[str]:
    block = [ln.rstrip() for ln in lines]
    while block and not block[0].strip():
        block.pop(0)
    while block and not block[-1].strip():
        block.pop()
    return block


def parse_structure(text: str) -> ParsedStructure:
    """Parse the three-section markdown format into tiles and constraints.

    ``## Components`` lists names (``**Name** - description`` or ``1. Name``),
    ``## Constraints`` holds ``KIND(a, b, dir)`` calls, and
    ``## Component Tiles`` pairs a ``**Name:**`` (or ``Name:``) label with a
    fenced code block holding the tile.  Constraint kinds nobody registered
    are skipped with a warning rather than passed on.
    """
    parsed = ParsedStructure()
    raw_calls: List[Tuple[int, str, str, str, Direction]] = []

    section = SECTION_NONE
    current: Optional[str] = None
    in_block = False
    block: List[str] = []

    for lineno, line in enumerate((text or "").splitlines(), start=1):
        if in_block:
            if _FENCE_RE.match(line):
                in_block = False
                rows = _trim_block(block)
                if not current:
                    parsed.warn(f"line {lineno}: tile block without a component name")
                elif not rows:
                    parsed.warn(f"line {lineno}: empty tile for {current}")
                elif current in parsed.tiles:
                    parsed.warn(f"line {lineno}: duplicate tile for {current}, keeping the first")
                else:
                    parsed.tiles[current] = rows
                current = None
            else:
                block.append(line)
            continue

        if not line.strip():
            continue

        new_section = _section_for(line)
        if new_section is not None:
            section = new_section
            current = None
            continue

        if section == SECTION_COMPONENTS:
            m = _BOLD_NAME_RE.match(line) or _NUMBERED_RE.match(line)
            if m:
                name = _clean_name(m.group("name"))
                parsed.descriptions.setdefault(name, (m.group("desc") or "").strip())
        elif section == SECTION_CONSTRAINTS:
            call = _parse_call(line, parsed, lineno)
            if call is not None:
                raw_calls.append((lineno,) + call)
        elif section == SECTION_TILES:
            if _FENCE_RE.match(line):
                in_block = True
                block = []
                continue
            m = _BOLD_NAME_RE.match(line) or _TILE_HEADING_RE.match(line) or _TILE_NAME_RE.match(line)
            if m:
                current = _clean_name(m.group("name"))

    if in_block:
        parsed.warn("unterminated code block at end of input")

    by_lower = {name.lower(): name for name in parsed.tiles}
    for lineno, kind, a, b, direction in raw_calls:
        ra, rb = by_lower.get(a.lower()), by_lower.get(b.lower())
        if ra is None or rb is None:
            missing = a if ra is None else b
            parsed.warn(f"line {lineno}: constraint references unknown component {missing!r}")
            continue
        if ra == rb:
            parsed.warn(f"line {lineno}: constraint relates {ra!r} to itself")
            continue
        parsed.constraints.append(Constraint(kind, ra, rb, direction))

    for name in parsed.descriptions:
        if name.lower() not in by_lower:
            parsed.warn(f"component {name!r} has no tile")

    return parsed


def load_into(solver, parsed: ParsedStructure):
    """Register parsed tiles and constraints on a :class:`LayoutSolver`."""
    if not parsed.tiles:
        raise DSLParseError("no component tiles found")
    for name, rows in parsed.tiles.items():
        solver.add_component(name, rows)
    for c in parsed.constraints:
        solver.add_constraint(c.kind, c.a, c.b, c.direction)
    return solver


def read_structure_source(source: str) -> str:
    """Return ``source`` itself, or the file contents when it names a file."""
    candidate = (source or "").strip()
    if "\n" not in candidate and candidate.lower().endswith((".txt", ".md")) and os.path.isfile(candidate):
        with open(candidate, "r", encoding="utf-8") as fh:
            return fh.read()
    return source


__all__ = [
    "DSLParseError",
    "ParsedStructure",
    "load_into",
    "parse_structure",
    "read_structure_source",
]
