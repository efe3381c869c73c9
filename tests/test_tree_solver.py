import pytest

from config import CFG
from models import Direction, SolveReason
from solver.constraints import ConstraintKind, get_kind, register_kind, unregister_kind
from solver.trace import (
    BACKTRACK,
    NODE_CREATED,
    ROOT_PLACED,
    SOLVE_FINISHED,
    SOLVE_STARTED,
    DecisionTreeRecorder,
    MultiSink,
    RecordingSink,
)
from solver.tree_solver import LayoutSolver


@pytest.fixture(autouse=True)
def _defaults(monkeypatch):
    monkeypatch.setattr(CFG, "ROOT_X", 0)
    monkeypatch.setattr(CFG, "ROOT_Y", 0)
    monkeypatch.setattr(CFG, "ORPHAN_POLICY", "place")
    monkeypatch.setattr(CFG, "ORPHAN_GAP", 2)
    monkeypatch.setattr(CFG, "ROOT_RESTARTS", 0)
    monkeypatch.setattr(CFG, "ROOT_HEURISTIC", "degree")
    monkeypatch.setattr(CFG, "ITERATION_LIMIT", 10000)
    monkeypatch.setattr(CFG, "TRACE", False)


def _box(w, h, ch="#"):
    return [ch * w] * h


def _chain():
    solver = LayoutSolver()
    solver.add_component("A", _box(7, 5))
    solver.add_component("B", _box(4, 3))
    solver.add_constraint("ADJACENT", "B", "A", "north")
    return solver


def _cycle(**kwargs):
    solver = LayoutSolver(**kwargs)
    for name in ("A", "B", "C"):
        solver.add_component(name, _box(3, 3))
    solver.add_constraint("ADJACENT", "A", "B", "n")
    solver.add_constraint("ADJACENT", "B", "C", "n")
    solver.add_constraint("ADJACENT", "C", "A", "n")
    return solver


def _no_overlap(solver):
    seen = {}
    for comp in solver.components:
        if not comp.placed:
            continue
        for dx, dy, _ in comp.filled_cells:
            key = (comp.x + dx, comp.y + dy)
            assert key not in seen, f"{comp.name} overlaps {seen[key]} at {key}"
            seen[key] = comp.name


def _assert_grid_matches_placements(solver):
    expected = {}
    for comp in solver.components:
        if comp.placed:
            for dx, dy, ch in comp.filled_cells:
                expected[(comp.x + dx, comp.y + dy)] = (ch, comp.name)

    grid = solver.grid
    for y in range(grid.min_y, grid.min_y + grid.height):
        for x in range(grid.min_x, grid.min_x + grid.width):
            got = (grid.cell(x, y), grid.owner(x, y))
            assert got == expected.get((x, y), (" ", None)), f"stale cell at {(x, y)}"
    assert all(grid.contains(x, y, 1, 1) for x, y in expected)


def test_simple_chain_prefers_flush_edge():
    solver = _chain()
    assert solver.solve() is True
    assert solver.result.ok
    assert solver.result.reason is SolveReason.SOLVED

    a, b = solver.find_component("A"), solver.find_component("B")
    assert b.y == a.y - 3
    assert b.x == a.x
    assert solver.verify() == []


def test_solve_is_deterministic():
    first, second = _chain(), _chain()
    first.solve()
    second.solve()
    assert first.placements() == second.placements()


def test_every_constraint_validates_after_solve():
    solver = LayoutSolver()
    solver.add_component("Hall", _box(9, 5))
    solver.add_component("Gate", _box(5, 3, "G"))
    solver.add_component("Tower", _box(3, 3, "T"))
    solver.add_component("Vault", _box(4, 4, "V"))
    solver.add_component("Garden", _box(6, 2, "v"))
    solver.add_constraint("ADJACENT", "Gate", "Hall", "s")
    solver.add_constraint("ADJACENT", "Tower", "Hall", "e")
    solver.add_constraint("ADJACENT", "Vault", "Hall", "w")
    solver.add_constraint("ADJACENT", "Garden", "Hall", "n")
    # closes a cycle: only some Garden positions leave room for it
    solver.add_constraint("ADJACENT", "Tower", "Garden", "a")

    assert solver.solve()
    assert all(c.placed for c in solver.components)
    assert solver.verify() == []
    for c in solver.constraints:
        assert get_kind(c.kind).validate(c, solver.find_component(c.a), solver.find_component(c.b))
    _no_overlap(solver)
    _assert_grid_matches_placements(solver)


def test_conflicts_force_backtracking():
    solver = LayoutSolver()
    solver.add_component("A", _box(3, 3))
    solver.add_component("B", _box(3, 1, "b"))
    solver.add_component("C", _box(3, 1, "c"))
    solver.add_constraint("ADJACENT", "B", "A", "n")
    solver.add_constraint("ADJACENT", "C", "A", "n")

    sink = RecordingSink()
    solver.sink = sink
    assert solver.solve()
    assert solver.result.backtracks > 0
    assert solver.verify() == []
    _no_overlap(solver)
    assert sink.count(BACKTRACK) == solver.result.backtracks
    # abandoned trials left nothing behind
    _assert_grid_matches_placements(solver)


def test_infeasible_cycle_fails_within_cap():
    solver = _cycle()
    assert solver.solve() is False
    assert solver.result.reason is SolveReason.SEARCH_EXHAUSTED
    assert solver.result.iterations <= CFG.ITERATION_LIMIT
    # a failed search leaves nothing behind
    assert all(not c.placed for c in solver.components)
    assert solver.grid.is_empty


def test_iteration_cap_is_reported_separately():
    solver = _cycle(iteration_limit=5)
    assert solver.solve() is False
    assert solver.result.reason is SolveReason.ITERATION_LIMIT_EXCEEDED
    assert solver.grid.is_empty
    assert all(not c.placed for c in solver.components)


def test_restart_after_cap_changes_root(monkeypatch):
    monkeypatch.setattr(CFG, "ROOT_RESTARTS", 1)
    sink = RecordingSink()
    solver = _cycle(iteration_limit=5, sink=sink)
    assert solver.solve() is False
    assert solver.result.reason is SolveReason.ITERATION_LIMIT_EXCEEDED
    assert solver.result.restarts == 1
    roots = [e.get("component") for e in sink.events if e.name == ROOT_PLACED]
    assert roots == ["A", "B"]
    assert solver.failed_counts["A"] == 1
    assert solver.failed_counts["B"] == 1
    # one running total across both attempts, each stopped after its sixth node
    assert solver.result.iterations == 12


def test_orphan_is_placed_east_of_layout():
    solver = _chain()
    solver.add_component("Orphan", _box(2, 2, "o"))
    assert solver.solve()

    a, b, orphan = (solver.find_component(n) for n in ("A", "B", "Orphan"))
    assert orphan.placed
    assert orphan.x == max(a.x + a.width, b.x + b.width) + CFG.ORPHAN_GAP
    assert orphan.y == min(a.y, b.y)
    _no_overlap(solver)


def test_orphan_policy_error_reports_frontier_not_found(monkeypatch):
    monkeypatch.setattr(CFG, "ORPHAN_POLICY", "error")
    solver = _chain()
    solver.add_component("Orphan", _box(2, 2))
    assert solver.solve() is False
    assert solver.result.reason is SolveReason.FRONTIER_NOT_FOUND
    assert "Orphan" in solver.result.detail


def test_components_without_any_constraints_line_up():
    solver = LayoutSolver()
    solver.add_component("Solo", _box(3, 2))
    solver.add_component("Duo", _box(1, 1))
    assert solver.solve()
    assert solver.placements() == [("Solo", 0, 0, 3, 2), ("Duo", 5, 0, 1, 1)]


def test_disconnected_graph_reports_frontier_not_found():
    solver = LayoutSolver()
    for name in ("A", "B", "C", "D"):
        solver.add_component(name, _box(2, 2))
    solver.add_constraint("ADJACENT", "A", "B", "e")
    solver.add_constraint("ADJACENT", "C", "D", "e")

    assert solver.solve() is False
    assert solver.result.reason is SolveReason.FRONTIER_NOT_FOUND
    assert "C" in solver.result.detail and "D" in solver.result.detail
    assert solver.grid.is_empty


def test_unknown_constraint_kind_fails_explicitly():
    solver = _chain()
    solver.add_constraint("CONNECTED", "A", "B", "n")
    assert solver.solve() is False
    assert solver.result.reason is SolveReason.UNKNOWN_CONSTRAINT_KIND
    assert "CONNECTED" in solver.result.detail


def test_unknown_component_reference():
    solver = _chain()
    solver.add_constraint("ADJACENT", "A", "Ghost", "n")
    assert solver.solve() is False
    assert solver.result.reason is SolveReason.UNKNOWN_COMPONENT
    assert "Ghost" in solver.result.detail


def test_empty_solver():
    solver = LayoutSolver()
    assert solver.solve() is False
    assert solver.result.reason is SolveReason.NO_COMPONENTS


def test_input_validation():
    solver = _chain()
    with pytest.raises(ValueError):
        solver.add_component("A", _box(1, 1))
    with pytest.raises(ValueError):
        solver.add_component("Empty", "")
    with pytest.raises(ValueError):
        solver.add_constraint("ADJACENT", "A", "A", "n")
    with pytest.raises(ValueError):
        solver.add_constraint("ADJACENT", "A", "B", "up-left")


def test_find_component_and_masks():
    solver = LayoutSolver()
    comp = solver.add_component("M", [[True, False], [False, True]])
    assert comp.rows == ("# ", " #")
    assert solver.find_component("M") is comp
    assert solver.find_component(" M ") is comp
    assert solver.find_component("missing") is None

    padded = solver.add_component("P", "ab\nc", width=3, height=3)
    assert padded.rows == ("ab ", "c  ", "   ")
    assert padded.filled_cells == ((0, 0, "a"), (1, 0, "b"), (0, 1, "c"))


def test_normalize_moves_layout_to_origin():
    solver = _chain()
    solver.solve()
    solver.normalize()
    a, b = solver.find_component("A"), solver.find_component("B")
    assert (b.x, b.y) == (0, 0)
    assert (a.x, a.y) == (0, 3)
    assert solver.bounds() == (0, 0, 7, 8)
    assert solver.render().splitlines()[0] == "####"
    assert solver.grid.min_y == 0


def test_trace_events_and_decision_tree():
    recorder = DecisionTreeRecorder()
    sink = RecordingSink()
    solver = _chain()
    solver.sink = MultiSink([sink, recorder])
    assert solver.solve()

    names = sink.names()
    assert names[0] == SOLVE_STARTED
    assert names[-1] == SOLVE_FINISHED
    assert sink.count(ROOT_PLACED) + sink.count(NODE_CREATED) == solver.result.nodes_created

    root = recorder.root
    assert root.component == "A"
    assert [child.component for child in root.children] == ["B"]
    assert "B @ (0,-3)" in recorder.render()


def test_resolve_again_after_reset():
    solver = _cycle()
    solver.solve()
    assert sum(solver.failed_counts.values()) > 0
    solver.reset()
    assert set(solver.failed_counts.values()) == {0}
    assert solver.result is None


def test_direction_accepts_enum():
    solver = LayoutSolver()
    solver.add_component("A", _box(2, 2))
    solver.add_component("B", _box(2, 2))
    c = solver.add_constraint("adjacent", "A", "B", Direction.WEST)
    assert c.kind == "ADJACENT"
    assert solver.solve()
    a, b = solver.find_component("A"), solver.find_component("B")
    assert a.x + a.width == b.x


def test_kind_without_candidates_reports_no_options():
    class Nowhere(ConstraintKind):
        tag = "NOWHERE"

        def generate_placements(self, constraint, unplaced, placed):
            return []

    register_kind(Nowhere())
    try:
        solver = LayoutSolver()
        solver.add_component("A", _box(2, 2))
        solver.add_component("B", _box(2, 2))
        solver.add_constraint("nowhere", "A", "B")
        assert solver.solve() is False
        assert solver.result.reason is SolveReason.NO_PLACEMENT_OPTIONS
        assert solver.failed_counts["B"] == 1
    finally:
        unregister_kind("NOWHERE")


def test_restart_is_skipped_when_the_root_would_not_change(monkeypatch):
    monkeypatch.setattr(CFG, "ROOT_RESTARTS", 3)
    sink = RecordingSink()
    solver = _cycle(iteration_limit=5, sink=sink)
    solver.add_component("D", _box(3, 3))
    # A now has the highest degree outright, so failures cannot demote it
    solver.add_constraint("ADJACENT", "D", "A", "w")

    assert solver.solve() is False
    assert solver.result.reason is SolveReason.ITERATION_LIMIT_EXCEEDED
    assert solver.result.restarts == 0
    assert [e.get("component") for e in sink.events if e.name == ROOT_PLACED] == ["A"]
    assert solver.result.iterations == 6


def test_orphans_and_normalize_keep_grid_in_step():
    solver = _chain()
    solver.add_component("Orphan", _box(2, 2, "o"))
    assert solver.solve()
    _assert_grid_matches_placements(solver)
    solver.normalize()
    _assert_grid_matches_placements(solver)


def test_unknown_orphan_policy_is_rejected(monkeypatch):
    monkeypatch.setattr(CFG, "ORPHAN_POLICY", "eror")
    solver = _chain()
    with pytest.raises(ValueError, match="eror"):
        solver.solve()
