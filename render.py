import random
import zlib
from html import escape
from typing import Dict, Iterable, List, Sequence, Tuple

from models import BLANK, Component


def _color(name: str) -> str:
    rng = random.Random(zlib.crc32(name.encode("utf-8")))
    r = rng.randint(40, 200)
    g = rng.randint(40, 200)
    b = rng.randint(40, 200)
    return f"rgb({r},{g},{b})"


def _placed(components: Iterable[Component]) -> List[Component]:
    return [c for c in components if c.placed]


def layout_bounds(components: Sequence[Component]) -> Tuple[int, int, int, int]:
    placed = _placed(components)
    if not placed:
        return (0, 0, 0, 0)
    return (
        min(c.x for c in placed),
        min(c.y for c in placed),
        max(c.x + c.width for c in placed),
        max(c.y + c.height for c in placed),
    )


def render_ascii(components: Sequence[Component], *, border: bool = False) -> str:
    """Paint every placed component onto one character canvas."""
    x1, y1, x2, y2 = layout_bounds(components)
    w, h = x2 - x1, y2 - y1
    if w <= 0 or h <= 0:
        return ""
    canvas = [[BLANK] * w for _ in range(h)]
    for comp in _placed(components):
        for dx, dy, ch in comp.filled_cells:
            canvas[comp.y + dy - y1][comp.x + dx - x1] = ch
    lines = ["".join(row).rstrip() for row in canvas]
    if border:
        lines = ["+" + "-" * w + "+"] + [f"|{ln.ljust(w)}|" for ln in lines] + ["+" + "-" * w + "+"]
    return "\n".join(lines)


def coordinate_lines(components: Sequence[Component]) -> List[str]:
    out = []
    for c in components:
        if c.placed:
            out.append(f"{c.name} @ ({c.x},{c.y}) size ({c.width}x{c.height})")
        else:
            out.append(f"{c.name} unplaced size ({c.width}x{c.height})")
    return out


def render_result(components: Sequence[Component]):
    palette: Dict[str, str] = {}
    for c in _placed(components):
        palette.setdefault(c.name, _color(c.name))

    cw, ch = 12, 18  # px per cell
    x1, y1, x2, y2 = layout_bounds(components)
    svg_w = (x2 - x1) * cw + 2
    svg_h = (y2 - y1) * ch + 2

    parts = []
    for c in _placed(components):
        x = (c.x - x1) * cw + 1
        y = (c.y - y1) * ch + 1
        parts.append(
            f'<rect x="{x}" y="{y}" width="{c.width * cw}" height="{c.height * ch}" '
            f'fill="{palette[c.name]}" fill-opacity="0.25" stroke="{palette[c.name]}" stroke-width="1">'
            f'<title>{escape(c.name)}</title></rect>'
        )
        for dy, row in enumerate(c.rows):
            if not row.strip():
                continue
            parts.append(
                f'<text x="{x}" y="{y + (dy + 1) * ch - 4}" font-family="monospace" font-size="16" '
                f'textLength="{c.width * cw}" lengthAdjust="spacingAndGlyphs" xml:space="preserve">'
                f'{escape(row)}</text>'
            )
    frame = f'<rect x="1" y="1" width="{max(0, svg_w - 2)}" height="{max(0, svg_h - 2)}" fill="none" stroke="black" stroke-width="2"/>'
    svg = (
        f'<svg class="layout-svg" xmlns="http://www.w3.org/2000/svg" '
        f'width="{svg_w}" height="{svg_h}" '
        f'viewBox="0 0 {svg_w} {svg_h}" preserveAspectRatio="xMinYMin meet">'
        f'{frame}{"".join(parts)}</svg>'
    )

    legend = "".join(
        f"<li><span class='swatch' style='background:{c}'></span>{escape(n)}</li>" for n, c in palette.items()
    )
    return svg, legend
