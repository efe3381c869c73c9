from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

from config import CFG

# ------------------------------
# Thread-safe global progress state
# ------------------------------

PROGRESS_LOCK = threading.Lock()


def _init_logger() -> logging.Logger:
    logger = logging.getLogger("solver.trace_log")
    if logger.handlers:
        return logger

    log_path = Path(CFG.LOG_DIR) / "solver_trace.log"
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
    except OSError:
        # An unwritable log directory leaves the trace log disabled.
        logger.handlers.clear()
    return logger


TRACE_LOGGER = _init_logger()


def _log_enabled() -> bool:
    return bool(TRACE_LOGGER.handlers)


def _fmt_seconds(seconds: Optional[float]) -> Optional[str]:
    if seconds is None:
        return None
    return f"{float(seconds):.2f}s"


def log_trace_event(event: str, **fields: Any) -> None:
    """Write one ``event | k=v ...`` line to the trace log."""
    if not _log_enabled():
        return
    extras = [
        f"{key}={value}"
        for key, value in fields.items()
        if value is not None and value != ""
    ]
    if extras:
        TRACE_LOGGER.info("%s | %s", event, " ".join(extras))
    else:
        TRACE_LOGGER.info("%s", event)


LOG_STATE: Dict[str, Any] = {
    "run_start": None,
    "stage": "",
    "stage_start": None,
}


def _log_stage_transition_locked(new_stage: str) -> None:
    prev_stage = LOG_STATE.get("stage") or ""
    if new_stage == prev_stage:
        return
    now = _now()
    if prev_stage and LOG_STATE.get("stage_start"):
        duration = max(0.0, now - float(LOG_STATE["stage_start"]))
        log_trace_event("Stage finished", stage=prev_stage, duration=_fmt_seconds(duration))
    LOG_STATE["stage"] = new_stage
    LOG_STATE["stage_start"] = now
    if new_stage:
        log_trace_event("Stage started", stage=new_stage)


# Single source of truth for the progress endpoint
PROGRESS: Dict[str, Any] = {
    "status": "Idle",          # Idle | Solving | Solved | Error
    "stage": "",               # parse | generate | search | orphans | render
    "component": "",           # component most recently placed
    "depth": 0,                # depth of the current search node
    "nodes": 0,
    "backtracks": 0,
    "placed": 0,
    "component_count": 0,
    "percent": 0.0,            # placed / component_count
    "elapsed_start": None,
    "elapsed": 0.0,
    "message": "",
    "reason": "",
    "done": False,
    "ok": None,
    "result_url": "",
    "run_id": 0,
}

# ------------------------------
# Helpers
# ------------------------------

def _now() -> float:
    return time.time()

def _fmt_elapsed(seconds: float) -> str:
    seconds = max(0.0, float(seconds))
    if seconds < 60:
        return f"{int(seconds)}s"
    m, s = divmod(int(seconds), 60)
    if m < 60:
        return f"{m}m {s}s"
    h, m = divmod(m, 60)
    return f"{h}h {m}m"

def _as_int(v: Any) -> int:
    try:
        return max(0, int(v))
    except (TypeError, ValueError):
        return 0

def _touch_elapsed_locked() -> None:
    t0 = PROGRESS.get("elapsed_start")
    if t0 is not None:
        PROGRESS["elapsed"] = _now() - float(t0)

def _touch_percent_locked() -> None:
    total = PROGRESS.get("component_count") or 0
    if total:
        PROGRESS["percent"] = max(0.0, min(100.0, 100.0 * PROGRESS["placed"] / total))

def reset() -> None:
    with PROGRESS_LOCK:
        new_run_id = _as_int(PROGRESS.get("run_id")) + 1
        PROGRESS.update({
            "status": "Idle",
            "stage": "",
            "component": "",
            "depth": 0,
            "nodes": 0,
            "backtracks": 0,
            "placed": 0,
            "component_count": 0,
            "percent": 0.0,
            "elapsed_start": None,
            "elapsed": 0.0,
            "message": "",
            "reason": "",
            "done": False,
            "ok": None,
            "result_url": "",
            "run_id": new_run_id,
        })
        LOG_STATE.update({"run_start": None, "stage": "", "stage_start": None})
        log_trace_event("Progress reset", run_id=new_run_id)

def start_timer() -> None:
    with PROGRESS_LOCK:
        now = _now()
        PROGRESS["elapsed_start"] = now
        PROGRESS["elapsed"] = 0.0
        LOG_STATE["run_start"] = now
        log_trace_event("Run timer started", run_id=PROGRESS["run_id"])

# ------------------------------
# Setters
# ------------------------------

def set_status(v: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["status"] = str(v)

def set_stage(v: Any) -> None:
    with PROGRESS_LOCK:
        stage = "" if v is None else str(v)
        PROGRESS["stage"] = stage
        _log_stage_transition_locked(stage)

def set_component(v: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["component"] = "" if v is None else str(v)

def set_depth(v: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["depth"] = _as_int(v)

def set_component_count(n: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["component_count"] = _as_int(n)
        _touch_percent_locked()

def set_counters(*, nodes: Any = None, backtracks: Any = None, placed: Any = None) -> None:
    with PROGRESS_LOCK:
        if nodes is not None:
            PROGRESS["nodes"] = _as_int(nodes)
        if backtracks is not None:
            PROGRESS["backtracks"] = _as_int(backtracks)
        if placed is not None:
            PROGRESS["placed"] = _as_int(placed)
            _touch_percent_locked()
        _touch_elapsed_locked()

def set_elapsed(seconds: Any) -> None:
    try:
        f = float(seconds)
    except (TypeError, ValueError):
        f = 0.0
    with PROGRESS_LOCK:
        PROGRESS["elapsed"] = max(0.0, f)

def set_message(msg: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["message"] = "" if msg is None else str(msg)

def set_result_url(url: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["result_url"] = "" if url is None else str(url)

def set_done(ok: Any = None, *, reason: Any = None, message: Any = None) -> None:
    """Mark the run complete.

    ``ok`` decides the final status when given; otherwise a run that never
    reported a status is assumed to have solved.  ``reason`` is the machine
    readable outcome (a :class:`models.SolveReason` value) and doubles as the
    message when no explicit ``message`` is passed.
    """

    ok_flag: Optional[bool] = None if ok is None else bool(ok)
    final_message = message if message is not None else reason

    with PROGRESS_LOCK:
        _touch_elapsed_locked()
        now = _now()
        if ok_flag is not None:
            PROGRESS["status"] = "Solved" if ok_flag else "Error"
        elif PROGRESS.get("status") in ("", "Idle", "Solving", None):
            PROGRESS["status"] = "Solved"
            ok_flag = True
        else:
            ok_flag = PROGRESS.get("status") == "Solved"
        PROGRESS["percent"] = 100.0
        if reason is not None:
            PROGRESS["reason"] = str(getattr(reason, "value", reason))
        if final_message is not None:
            PROGRESS["message"] = str(getattr(final_message, "value", final_message))
        PROGRESS["done"] = True
        PROGRESS["ok"] = ok_flag
        _log_stage_transition_locked("")
        run_start = LOG_STATE.get("run_start")
        total = max(0.0, now - float(run_start)) if isinstance(run_start, (int, float)) else None
        LOG_STATE["run_start"] = None
        log_trace_event(
            "Run finished",
            status=PROGRESS.get("status"),
            ok=PROGRESS.get("ok"),
            reason=PROGRESS.get("reason"),
            duration=_fmt_seconds(total),
            nodes=PROGRESS.get("nodes"),
            backtracks=PROGRESS.get("backtracks"),
            placed=PROGRESS.get("placed"),
            message=PROGRESS.get("message"),
        )

# ------------------------------
# Snapshots for the UI
# ------------------------------

def snapshot() -> Dict[str, Any]:
    with PROGRESS_LOCK:
        _touch_elapsed_locked()
        snap = {k: v for k, v in PROGRESS.items() if k != "elapsed_start"}
        snap["elapsed_str"] = _fmt_elapsed(PROGRESS["elapsed"])
        return snap

def as_json() -> Dict[str, Any]:
    # Alias used by /progress
    return snapshot()


__all__ = [
    "PROGRESS",
    "PROGRESS_LOCK",
    "as_json",
    "log_trace_event",
    "reset",
    "set_component",
    "set_component_count",
    "set_counters",
    "set_depth",
    "set_done",
    "set_elapsed",
    "set_message",
    "set_result_url",
    "set_stage",
    "set_status",
    "snapshot",
    "start_timer",
]
