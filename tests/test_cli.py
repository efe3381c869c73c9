from pathlib import Path

import pytest

from cli import main, probe_lines
from config import CFG
from models import Direction

DATA = Path(__file__).parent / "data"


@pytest.fixture(autouse=True)
def _defaults(monkeypatch):
    monkeypatch.setattr(CFG, "ROOT_X", 0)
    monkeypatch.setattr(CFG, "ROOT_Y", 0)
    monkeypatch.setattr(CFG, "ORPHAN_POLICY", "place")
    monkeypatch.setattr(CFG, "ORPHAN_GAP", 2)
    monkeypatch.setattr(CFG, "LAYOUT_OUT", "layout.txt")
    monkeypatch.setattr(CFG, "LAYOUT_HTML", "layout_view.html")
    monkeypatch.setattr(CFG, "TRACE", False)


def test_probe_north_ranks_flush_edges_first():
    lines = probe_lines(Direction.NORTH, limit=3, preview=False)
    assert lines[0] == "ADJACENT(RoomB, RoomA, n): 11 options"
    assert lines[1] == "  1. (5,0) North score=100"
    assert lines[2] == "  2. (7,0) North score=100"
    assert lines[3] == "  3. (6,0) North score=90"
    assert len(lines) == 4


def test_probe_any_previews_layout(capsys):
    assert main(["probe", "--direction", "a", "--limit", "1"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "ADJACENT(RoomB, RoomA, a): 36 options"
    assert out[1].startswith("  1. ")
    assert out[2] == "     #####"


def test_probe_rejects_bad_direction(capsys):
    assert main(["probe", "--direction", "sideways"]) == 2
    assert "unknown direction" in capsys.readouterr().err


def test_solve_writes_outputs(tmp_path, capsys):
    code = main(["solve", str(DATA / "castle.md"), "--out", str(tmp_path), "--tree"])
    out = capsys.readouterr().out

    assert code == 0
    assert out.startswith("Solved\n3/3 components, 1 constraints")
    assert "Gatehouse @ (0,0)" in out
    assert "  Courtyard @ (0,5) via ADJACENT(Gatehouse, Courtyard, n)" in out
    assert (tmp_path / "layout.txt").read_text(encoding="utf-8").startswith("# Solved\n+")
    assert (tmp_path / "layout_view.html").exists()


def test_solve_failure_exit_code(tmp_path, capsys):
    assert main(["solve", str(DATA / "cycle.md"), "--out", str(tmp_path)]) == 1
    assert "No solution: search_exhausted" in capsys.readouterr().out
    assert not (tmp_path / "layout.txt").exists()


def test_solve_bad_input_exit_code(tmp_path, capsys):
    empty = tmp_path / "empty.md"
    empty.write_text("## Components\n**Keep** - tower\n", encoding="utf-8")
    assert main(["solve", str(empty)]) == 2
    assert "no component tiles" in capsys.readouterr().err

    assert main(["solve", str(tmp_path / "missing.md")]) == 2
