# app.py: paste or generate a structure description, solve, show the layout
from __future__ import annotations
import logging
import os
import time
from typing import Any, Dict, Tuple

from flask import Flask, request, render_template, send_from_directory, jsonify, url_for

from config import CFG
from dsl_parser import DSLParseError
from io_files import write_layout_text, write_layout_view_html
from llm_client import LLMError, STRUCTURE_TYPES, generate_structure_text
from render import coordinate_lines, render_ascii, render_result
from solver.orchestrator import solve_layout
from solver.trace import DecisionTreeRecorder, MultiSink, ProgressSink

from progress import (
    reset as progress_reset,
    as_json as progress_json,
    start_timer as progress_start,
    set_status, set_stage, set_elapsed, set_message, set_done, set_result_url,
)

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _resolve_output_paths(configured: str, fallback: str) -> Tuple[str, str, str]:
    name = (configured or "").strip() or fallback
    if os.path.isabs(name):
        full_path = name
    else:
        full_path = os.path.abspath(os.path.join(BASE_DIR, name))
    directory = os.path.dirname(full_path) or BASE_DIR
    filename = os.path.basename(full_path) or fallback
    return full_path, directory, filename


_LAYOUT_FULL_PATH, LAYOUT_DIR, LAYOUT_FILENAME = _resolve_output_paths(
    CFG.LAYOUT_OUT, "layout.txt"
)
_HTML_FULL_PATH, HTML_DIR, HTML_FILENAME = _resolve_output_paths(
    CFG.LAYOUT_HTML, "layout_view.html"
)


def _empty_result() -> Dict[str, Any]:
    return {
        "ok": False,
        "reason": "",
        "reason_code": "",
        "structure_type": "",
        "component_count": 0,
        "constraint_count": 0,
        "placed_count": 0,
        "nodes": 0,
        "backtracks": 0,
        "elapsed_str": "0s",
        "svg": "",
        "legend": "",
        "ascii": "",
        "coords": [],
        "warnings": [],
        "tree": "",
        "source_text": "",
        "layout_filename": LAYOUT_FILENAME,
        "html_filename": HTML_FILENAME,
    }


LAST_RESULT: Dict[str, Any] = _empty_result()

app = Flask(__name__, static_folder=None, template_folder="templates")


@app.after_request
def _no_cache_progress(resp):
    if request.path == "/progress":
        resp.headers["Cache-Control"] = "no-store, max-age=0"
        resp.headers["Pragma"] = "no-cache"
        resp.headers["Expires"] = "0"
    return resp


@app.route("/")
def index():
    return render_template("index.html", structure_types=STRUCTURE_TYPES)


@app.route("/result/latest")
def result_latest():
    return render_template("result.html", **LAST_RESULT)


@app.route("/styles.css")
def styles_css():
    return send_from_directory(BASE_DIR, "styles.css")


def _fmt_elapsed(seconds: float) -> str:
    if seconds < 1:
        return "0s"
    m, s = divmod(int(seconds), 60)
    if m == 0:
        return f"{s}s"
    h, m = divmod(m, 60)
    if h == 0:
        return f"{m}m {s}s"
    return f"{h}h {m}m {s}s"


def _request_value(key: str) -> str:
    payload = request.get_json(silent=True)
    if isinstance(payload, dict) and payload.get(key) is not None:
        return str(payload[key])
    if key in request.form:
        return request.form.get(key, "")
    return request.args.get(key, "")


def _fail(reason: str, t0: float, **extra: Any):
    set_done(False, reason=reason)
    set_elapsed(time.time() - t0)
    LAST_RESULT.clear()
    LAST_RESULT.update(_empty_result())
    LAST_RESULT.update(extra)
    LAST_RESULT.update({"ok": False, "reason": reason, "elapsed_str": _fmt_elapsed(time.time() - t0)})
    set_result_url(url_for("result_latest"))
    return render_template("result.html", **LAST_RESULT), 400


@app.route("/solve", methods=["POST"])
def solve():
    progress_reset()
    progress_start()
    set_status("Solving")
    t0 = time.time()

    text = _request_value("structure")
    structure_type = _request_value("structure_type").strip()

    if not text.strip() and structure_type:
        set_stage("generate")
        set_message(f"Generating {structure_type}")
        try:
            text = generate_structure_text(structure_type)
        except LLMError as e:
            logger.warning("generation failed: %s", e)
            return _fail(f"Generation failed: {e}", t0, structure_type=structure_type)

    if not text.strip():
        return _fail("Nothing to solve: paste a structure description or pick a structure type.", t0)

    set_stage("search")
    recorder = DecisionTreeRecorder()
    try:
        ok, solver, reason, meta = solve_layout(text, sink=MultiSink([ProgressSink(), recorder]))
    except (DSLParseError, ValueError) as e:
        return _fail(f"Bad structure description: {e}", t0, source_text=text, structure_type=structure_type)

    set_stage("render")
    svg_markup, legend_html = ("", "")
    ascii_text = ""
    layout_name, html_name = LAYOUT_FILENAME, HTML_FILENAME
    if ok:
        svg_markup, legend_html = render_result(solver.components)
        ascii_text = render_ascii(solver.components)
        try:
            layout_name = os.path.basename(write_layout_text(solver.components, BASE_DIR, status=reason))
            html_name = os.path.basename(
                write_layout_view_html(svg_markup, legend_html, BASE_DIR, ascii_text=ascii_text)
            )
        except OSError as e:
            logger.warning("could not write layout outputs: %s", e)

    set_done(ok, reason=meta["reason_code"], message=reason)
    set_elapsed(time.time() - t0)

    LAST_RESULT.clear()
    LAST_RESULT.update(_empty_result())
    LAST_RESULT.update({
        "ok": ok,
        "reason": reason,
        "reason_code": meta["reason_code"],
        "structure_type": structure_type,
        "component_count": meta["component_count"],
        "constraint_count": meta["constraint_count"],
        "placed_count": meta["placed_count"],
        "nodes": meta["nodes"],
        "backtracks": meta["backtracks"],
        "elapsed_str": _fmt_elapsed(time.time() - t0),
        "svg": svg_markup,
        "legend": legend_html,
        "ascii": ascii_text,
        "coords": coordinate_lines(solver.components),
        "warnings": meta["warnings"],
        "tree": recorder.render(),
        "source_text": text,
        "layout_filename": layout_name,
        "html_filename": html_name,
    })
    set_result_url(url_for("result_latest"))
    return render_template("result.html", **LAST_RESULT)


@app.route("/download/layout")
def download_layout():
    return send_from_directory(LAYOUT_DIR, LAYOUT_FILENAME, as_attachment=True)


@app.route("/download/html")
def download_html():
    return send_from_directory(HTML_DIR, HTML_FILENAME, as_attachment=True)


@app.route("/progress")
def progress_state():
    return jsonify(progress_json())


if __name__ == "__main__":
    app.run(debug=False)
