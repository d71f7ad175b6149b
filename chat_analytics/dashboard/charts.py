# Minimal line chart rasterization for the dashboard

from dataclasses import dataclass, field
from typing import List, Sequence, Tuple
from xml.sax.saxutils import escape

AXIS_COLOR = "#e5e7eb"
LINE_COLOR = "#111827"
LABEL_COLOR = "#6b7280"


@dataclass
class ChartLayout:
    width: int
    height: int
    padding: int
    max_value: float
    points: List[Tuple[float, float]] = field(default_factory=list)
    # (x, text) for the first, middle and last labels
    x_labels: List[Tuple[float, str]] = field(default_factory=list)


def rasterize_line_chart(
        labels: Sequence[str],
        values: Sequence[float],
        width: int = 600,
        height: int = 240,
        padding: int = 40
) -> ChartLayout:
    """Place values on a 0..max y axis with evenly spaced x positions"""
    plot_w = width - padding * 2
    plot_h = height - padding * 2
    numbers = [float(v or 0) for v in values]
    max_value = max([1.0] + numbers)
    n = max(1, len(numbers))
    step = plot_w / max(1, n - 1)

    def x_at(i: int) -> float:
        return padding + step * i

    points = [
        (x_at(i), padding + plot_h - plot_h * (v / max_value))
        for i, v in enumerate(numbers)
    ]

    x_labels = []
    if numbers:
        for i in sorted({0, (n - 1) // 2, n - 1}):
            text = labels[i] if i < len(labels) else ""
            x_labels.append((x_at(i), text))

    return ChartLayout(width, height, padding, max_value, points, x_labels)


def _fmt(value: float) -> str:
    return f"{value:.1f}".rstrip("0").rstrip(".")


def render_svg(layout: ChartLayout) -> str:
    """SVG document for a rasterized chart"""
    p = layout.padding
    bottom = layout.height - p
    right = layout.width - p
    parts = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{layout.width}" height="{layout.height}" '
        f'viewBox="0 0 {layout.width} {layout.height}">',
        f'<polyline fill="none" stroke="{AXIS_COLOR}" stroke-width="1" '
        f'points="{p},{p} {p},{bottom} {right},{bottom}"/>',
        f'<text x="8" y="{p + 4}" fill="{LABEL_COLOR}" font-size="12">{_fmt(layout.max_value)}</text>',
        f'<text x="20" y="{bottom + 4}" fill="{LABEL_COLOR}" font-size="12">0</text>',
    ]

    if layout.points:
        coords = " ".join(f"{_fmt(x)},{_fmt(y)}" for x, y in layout.points)
        parts.append(f'<polyline fill="none" stroke="{LINE_COLOR}" stroke-width="2" points="{coords}"/>')
        parts.extend(
            f'<circle cx="{_fmt(x)}" cy="{_fmt(y)}" r="3" fill="{LINE_COLOR}"/>'
            for x, y in layout.points
        )

    for x, text in layout.x_labels:
        parts.append(
            f'<text x="{_fmt(max(0.0, x - 18))}" y="{bottom + 22}" fill="{LABEL_COLOR}" '
            f'font-size="12">{escape(text)}</text>'
        )

    parts.append("</svg>")
    return "\n".join(parts)
