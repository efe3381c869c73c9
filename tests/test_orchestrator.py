from pathlib import Path

import pytest

from config import CFG
from dsl_parser import DSLParseError
from solver.orchestrator import solve_layout
from solver.trace import ROOT_PLACED, RecordingSink

DATA = Path(__file__).parent / "data"


@pytest.fixture(autouse=True)
def _defaults(monkeypatch):
    monkeypatch.setattr(CFG, "ROOT_X", 0)
    monkeypatch.setattr(CFG, "ROOT_Y", 0)
    monkeypatch.setattr(CFG, "ORPHAN_POLICY", "place")
    monkeypatch.setattr(CFG, "ORPHAN_GAP", 2)
    monkeypatch.setattr(CFG, "ROOT_RESTARTS", 0)
    monkeypatch.setattr(CFG, "ITERATION_LIMIT", 10000)
    monkeypatch.setattr(CFG, "NORMALIZE", True)
    monkeypatch.setattr(CFG, "TRACE", False)


def test_castle_end_to_end():
    sink = RecordingSink()
    ok, solver, reason, meta = solve_layout(str(DATA / "castle.md"), sink=sink)

    assert ok
    assert reason == "Solved"
    assert solver.placements() == [
        ("Gatehouse", 0, 0, 7, 5),
        ("Courtyard", 0, 5, 11, 6),
        ("Keep", 13, 0, 9, 6),
    ]
    assert meta["component_count"] == 3
    assert meta["constraint_count"] == 1
    assert meta["placed_count"] == 3
    assert meta["unplaced"] == []
    assert meta["violations"] == []
    assert meta["reason_code"] == "solved"
    assert len(meta["warnings"]) == 2
    assert sink.count(ROOT_PLACED) == 1


def test_infeasible_cycle_reports_reason():
    ok, solver, reason, meta = solve_layout((DATA / "cycle.md").read_text(encoding="utf-8"))

    assert not ok
    assert reason.startswith("No solution: search_exhausted")
    assert meta["placed_count"] == 0
    assert meta["unplaced"] == ["North Wing", "South Wing", "Bridge"]
    assert meta["backtracks"] > 0
    assert solver.result.iterations == meta["iterations"]


def test_normalize_shifts_negative_layouts():
    text = "\n".join([
        "## Constraints",
        "ADJACENT(Roof, Hall, n)",
        "## Component Tiles",
        "**Hall:**",
        "```",
        "####",
        "#..#",
        "####",
        "```",
        "**Roof:**",
        "```",
        "/\\/\\",
        "```",
    ])
    ok, solver, _, _ = solve_layout(text, normalize=False)
    assert ok
    assert solver.find_component("Roof").y == -1

    ok, solver, _, _ = solve_layout(text)
    assert ok
    assert solver.find_component("Roof").y == 0
    assert solver.find_component("Hall").y == 1
    assert solver.render().splitlines()[0] == "/\\/\\"


def test_no_tiles_raises():
    with pytest.raises(DSLParseError):
        solve_layout("## Constraints\nADJACENT(A, B, n)\n")
