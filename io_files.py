"""Helpers for writing solver outputs to disk."""

from __future__ import annotations

import os
from html import escape
from typing import Sequence

from config import CFG
from models import Component
from render import coordinate_lines, render_ascii


def _resolve_output_path(base_dir: str, configured_name: str, fallback: str) -> str:
    """Return the absolute path where an output artifact should be written."""

    name = (configured_name or "").strip() or fallback
    if os.path.isabs(name):
        return name
    return os.path.join(base_dir, name)


def write_layout_text(components: Sequence[Component], base_dir: str, *, status: str = "") -> str:
    """Write the assembled ASCII layout followed by a coordinate listing."""

    path = _resolve_output_path(base_dir, CFG.LAYOUT_OUT, "layout.txt")
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        if status:
            f.write(f"# {status}\n")
        if not any(c.placed for c in components):
            f.write("No solution\n")
        else:
            f.write(render_ascii(components, border=True))
            f.write("\n\n")
        for line in coordinate_lines(components):
            f.write(line + "\n")
    return path


def write_layout_view_html(svg: str, legend_html: str, base_dir: str, *, title: str = "Layout View", ascii_text: str = "") -> str:
    """Write the rendered SVG/legend preview to the configured HTML file."""

    path = _resolve_output_path(base_dir, CFG.LAYOUT_HTML, "layout_view.html")
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    pre = ""
    if ascii_text:
        pre = f"<section class='card'><h3>ASCII</h3><pre>{escape(ascii_text)}</pre></section>"

    with open(path, "w", encoding="utf-8") as vf:
        vf.write(
            f"""<!doctype html>
<html><head><meta charset='utf-8'><title>{escape(title)}</title>
<link rel='stylesheet' href='/styles.css'></head>
<body class='container'>
<h1>{escape(title)}</h1>
<section class='card'><div class='gridwrap'>{svg}</div></section>
<section class='card'><h3>Legend</h3><ul>{legend_html}</ul></section>
{pre}
</body></html>"""
        )
    return path


__all__ = ["write_layout_text", "write_layout_view_html"]
