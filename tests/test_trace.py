import progress
from solver.trace import (
    BACKTRACK,
    NODE_CREATED,
    ROOT_PLACED,
    SOLVE_STARTED,
    DecisionTreeRecorder,
    LoggingSink,
    MultiSink,
    RecordingSink,
    TraceEvent,
)


def _node(name, depth, x=0, y=0):
    kind = ROOT_PLACED if depth == 0 else NODE_CREATED
    return TraceEvent(kind, {"component": name, "depth": depth, "x": x, "y": y})


def test_multisink_skips_missing_sinks():
    a, b = RecordingSink(), RecordingSink()
    sink = MultiSink([a, None, b])
    sink.emit(TraceEvent(SOLVE_STARTED))
    assert a.names() == b.names() == [SOLVE_STARTED]
    assert len(sink.sinks) == 2


def test_recorder_marks_abandoned_branches():
    rec = DecisionTreeRecorder()
    for event in (
        TraceEvent(SOLVE_STARTED),
        _node("Hall", 0),
        _node("Gate", 1, 0, 5),
        _node("Tower", 2, 9, 0),
        TraceEvent(BACKTRACK, {"depth": 2}),
        TraceEvent(BACKTRACK, {"depth": 1}),
        _node("Gate", 1, 2, 5),
        _node("Tower", 2, 9, 1),
    ):
        rec.emit(event)

    assert rec.node_count == 5
    hall = rec.root
    first, second = hall.children
    assert first.failed and first.children[0].failed
    assert not second.failed
    assert second.children[0].parent is second
    assert rec.render().splitlines() == [
        "Hall @ (0,0)",
        "  Gate @ (0,5) x",
        "    Tower @ (9,0) x",
        "  Gate @ (2,5)",
        "    Tower @ (9,1)",
    ]


def test_recorder_starts_over_on_new_solve():
    rec = DecisionTreeRecorder()
    rec.emit(_node("A", 0))
    rec.emit(_node("B", 0))
    assert [r.component for r in rec.roots] == ["A", "B"]
    rec.emit(TraceEvent(SOLVE_STARTED))
    assert rec.roots == [] and rec.root is None


def test_logging_sink_forwards_fields(monkeypatch):
    seen = []
    monkeypatch.setattr(progress, "log_trace_event", lambda name, **fields: seen.append((name, fields)))

    sink = LoggingSink(skip=[BACKTRACK])
    sink.emit(TraceEvent(NODE_CREATED, {"component": "Keep", "depth": 1}))
    sink.emit(TraceEvent(BACKTRACK, {"depth": 1}))

    assert seen == [(NODE_CREATED, {"component": "Keep", "depth": 1})]
