"""Structured search events and the sinks that consume them.

The tree solver emits a :class:`TraceEvent` at every decision point.  Nothing
in the search reads events back, so any sink (or none) can be attached:

* :class:`LoggingSink` writes ``event | k=v`` lines to the trace log.
* :class:`ProgressSink` mirrors counters into :mod:`progress` for the web UI.
* :class:`DecisionTreeRecorder` rebuilds the placement decision tree so a run
  can be explained after the fact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from models import TreeNode

SOLVE_STARTED = "solve_started"
ROOT_PLACED = "root_placed"
NODE_CREATED = "node_created"
OPTIONS_GENERATED = "options_generated"
PLACEMENT_TRIED = "placement_tried"
CONSTRAINT_RESOLVED = "constraint_resolved"
BACKTRACK = "backtrack"
ORPHAN_PLACED = "orphan_placed"
SOLVE_FINISHED = "solve_finished"


@dataclass(frozen=True)
class TraceEvent:
    name: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


class TraceSink:
    def emit(self, event: TraceEvent) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class MultiSink(TraceSink):
    def __init__(self, sinks: Iterable[Optional[TraceSink]]):
        self.sinks = [s for s in sinks if s is not None]

    def emit(self, event: TraceEvent) -> None:
        for sink in self.sinks:
            sink.emit(event)


class RecordingSink(TraceSink):
    """Keeps every event in memory; handy for tests and the CLI summary."""

    def __init__(self) -> None:
        self.events: List[TraceEvent] = []

    def emit(self, event: TraceEvent) -> None:
        self.events.append(event)

    def names(self) -> List[str]:
        return [e.name for e in self.events]

    def count(self, name: str) -> int:
        return sum(1 for e in self.events if e.name == name)


class LoggingSink(TraceSink):
    def __init__(self, skip: Iterable[str] = ()):
        self.skip = set(skip)

    def emit(self, event: TraceEvent) -> None:
        if event.name in self.skip:
            return
        from progress import log_trace_event

        log_trace_event(event.name, **event.fields)


class ProgressSink(TraceSink):
    def emit(self, event: TraceEvent) -> None:
        import progress

        if event.name == SOLVE_STARTED:
            progress.set_stage("search")
            progress.set_component_count(event.get("components", 0))
        elif event.name in (ROOT_PLACED, NODE_CREATED):
            progress.set_component(event.get("component"))
            progress.set_depth(event.get("depth", 0))
            progress.set_counters(nodes=event.get("nodes"), placed=event.get("placed"))
        elif event.name == BACKTRACK:
            progress.set_counters(backtracks=event.get("backtracks"), placed=event.get("placed"))
        elif event.name == ORPHAN_PLACED:
            progress.set_stage("orphans")
            progress.set_counters(placed=event.get("placed"))
        elif event.name == SOLVE_FINISHED:
            progress.set_counters(
                nodes=event.get("nodes"),
                backtracks=event.get("backtracks"),
                placed=event.get("placed"),
            )


class DecisionTreeRecorder(TraceSink):
    """Reassembles :class:`TreeNode` objects from node/backtrack events.

    Only the most recent ``solve_started`` run is kept; ``roots`` holds one
    entry per root attempt (restarts add more).
    """

    def __init__(self) -> None:
        self.roots: List[TreeNode] = []
        self.node_count = 0
        self._stack: List[TreeNode] = []

    def emit(self, event: TraceEvent) -> None:
        if event.name == SOLVE_STARTED:
            self.roots = []
            self.node_count = 0
            self._stack = []
        elif event.name in (ROOT_PLACED, NODE_CREATED):
            depth = int(event.get("depth", 0))
            node = TreeNode(
                component=str(event.get("component")),
                x=int(event.get("x", 0)),
                y=int(event.get("y", 0)),
                constraint=event.get("constraint"),
                depth=depth,
            )
            self.node_count += 1
            if depth == 0 or not self._stack:
                self.roots.append(node)
                self._stack = [node]
                return
            parent = self._stack[min(depth, len(self._stack)) - 1]
            parent.add_child(node)
            self._stack = self._stack[:depth] + [node]
        elif event.name == BACKTRACK:
            depth = int(event.get("depth", 0))
            if depth < len(self._stack):
                self._stack[depth].failed = True
                self._stack = self._stack[:depth]

    @property
    def root(self) -> Optional[TreeNode]:
        return self.roots[-1] if self.roots else None

    def render(self) -> str:
        lines: List[str] = []

        def _walk(node: TreeNode) -> None:
            mark = " x" if node.failed else ""
            via = f" via {node.constraint}" if node.constraint is not None else ""
            lines.append(f"{'  ' * node.depth}{node.component} @ ({node.x},{node.y}){via}{mark}")
            for child in node.children:
                _walk(child)

        for root in self.roots:
            _walk(root)
        return "\n".join(lines)


__all__ = [
    "BACKTRACK",
    "CONSTRAINT_RESOLVED",
    "DecisionTreeRecorder",
    "LoggingSink",
    "MultiSink",
    "NODE_CREATED",
    "OPTIONS_GENERATED",
    "ORPHAN_PLACED",
    "PLACEMENT_TRIED",
    "ProgressSink",
    "ROOT_PLACED",
    "RecordingSink",
    "SOLVE_FINISHED",
    "SOLVE_STARTED",
    "TraceEvent",
    "TraceSink",
]
