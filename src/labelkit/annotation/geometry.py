# src/labelkit/annotation/geometry.py

"""
Stateless geometry used to interpret user gestures: hit-testing, resize
handle math, drawing-rectangle normalization and polygon derivation.
All coordinates are image-space floats.
"""

import math
from typing import Iterable, List, Optional, Sequence, Tuple

Point = Tuple[float, float]
Box = Tuple[float, float, float, float]  # (x, y, width, height)

HIT_RADIUS = 10.0

RESIZE_HANDLES = (
    "corner-tl", "corner-tr", "corner-bl", "corner-br",
    "edge-t", "edge-r", "edge-b", "edge-l",
)


def point_hit(px: float, py: float, x: float, y: float, radius: float = HIT_RADIUS) -> bool:
    """True when (px, py) lies strictly closer than `radius` to (x, y)."""
    return math.hypot(px - x, py - y) < radius


def box_hit(px: float, py: float, box: Box) -> bool:
    """Inclusive axis-aligned containment test."""
    x, y, w, h = box
    return x <= px <= x + w and y <= py <= y + h


def hit_test(px: float, py: float, annotation, radius: float = HIT_RADIUS) -> bool:
    """
    Hit test a click against one annotation.

    Points use the distance test. Every other kind uses its axis-aligned
    bounds; rotation of rotated boxes is ignored.
    """
    if annotation.is_point:
        return point_hit(px, py, annotation.x, annotation.y, radius)
    return box_hit(px, py, annotation.bounds)


def topmost_hit(annotations: Sequence, px: float, py: float,
                radius: float = HIT_RADIUS, kinds: Optional[Iterable] = None) -> Optional[int]:
    """
    Index of the last non-rejected annotation hit by (px, py), or None.

    Later entries are drawn on top, so the scan runs from the end.
    `kinds` optionally restricts the match to a set of shape kinds.
    """
    allowed = set(kinds) if kinds is not None else None
    for i in reversed(range(len(annotations))):
        ann = annotations[i]
        if ann.is_rejected:
            continue
        if allowed is not None and ann.kind not in allowed:
            continue
        if hit_test(px, py, ann, radius):
            return i
    return None


def resize_box(handle: str, original: Box, cursor_x: float, cursor_y: float) -> Box:
    """
    New bounds for a box dragged by `handle` to the cursor.

    Always computed from the bounds captured when the handle was grabbed,
    so the result depends only on (handle, original, cursor). Unknown
    handles return the original bounds.
    """
    ox, oy, ow, oh = original
    x, y, w, h = ox, oy, ow, oh

    if handle == "corner-tl":
        fixed_x, fixed_y = ox + ow, oy + oh
        x = min(cursor_x, fixed_x)
        y = min(cursor_y, fixed_y)
        w = abs(fixed_x - x)
        h = abs(fixed_y - y)
    elif handle == "corner-tr":
        fixed_x, fixed_y = ox, oy + oh
        x = min(cursor_x, fixed_x)
        y = min(cursor_y, fixed_y)
        w = abs(cursor_x - fixed_x)
        h = abs(fixed_y - y)
    elif handle == "corner-bl":
        fixed_x, fixed_y = ox + ow, oy
        x = min(cursor_x, fixed_x)
        y = min(cursor_y, fixed_y)
        w = abs(fixed_x - x)
        h = abs(cursor_y - fixed_y)
    elif handle == "corner-br":
        fixed_x, fixed_y = ox, oy
        x = min(cursor_x, fixed_x)
        y = min(cursor_y, fixed_y)
        w = abs(cursor_x - fixed_x)
        h = abs(cursor_y - fixed_y)
    elif handle == "edge-t":
        fixed_y = oy + oh
        y = min(cursor_y, fixed_y)
        h = max(abs(fixed_y - y), 1.0)
    elif handle == "edge-r":
        w = max(cursor_x - ox, 1.0)
    elif handle == "edge-b":
        h = max(cursor_y - oy, 1.0)
    elif handle == "edge-l":
        fixed_x = ox + ow
        x = min(cursor_x, fixed_x)
        w = max(abs(fixed_x - x), 1.0)

    return (x, y, w, h)


def normalize_rect(anchor: Point, cursor: Point) -> Box:
    """(min_x, min_y, width, height) of the rectangle spanned by two corners."""
    ax, ay = anchor
    cx, cy = cursor
    return (min(ax, cx), min(ay, cy), abs(cx - ax), abs(cy - ay))


def polygon_bounds(vertices: Sequence[Point]) -> Box:
    """Axis-aligned bounding box of a vertex list (zeros when empty)."""
    if not vertices:
        return (0.0, 0.0, 0.0, 0.0)
    xs = [v[0] for v in vertices]
    ys = [v[1] for v in vertices]
    min_x, min_y = min(xs), min(ys)
    return (min_x, min_y, max(xs) - min_x, max(ys) - min_y)


def _fmt(value: float) -> str:
    return f"{value:g}"


def polygon_path(vertices: Sequence[Point], closed: bool = True) -> str:
    """
    SVG-style path for a vertex list: "M x0 y0 L x1 y1 ... Z".

    The preview variant (closed=False) omits the closing segment.
    """
    if not vertices:
        return ""
    parts = [f"M {_fmt(vertices[0][0])} {_fmt(vertices[0][1])}"]
    for vx, vy in vertices[1:]:
        parts.append(f"L {_fmt(vx)} {_fmt(vy)}")
    if closed:
        parts.append("Z")
    return " ".join(parts)


def polygon_area(vertices: Sequence[Point]) -> float:
    """Shoelace area; fewer than 3 vertices have zero area."""
    n = len(vertices)
    if n < 3:
        return 0.0
    acc = 0.0
    for i in range(n):
        x1, y1 = vertices[i]
        x2, y2 = vertices[(i + 1) % n]
        acc += x1 * y2 - x2 * y1
    return abs(acc) / 2.0


def format_vertices(vertices: Sequence[Point]) -> str:
    """Serialize vertices as "x0,y0;x1,y1;..."."""
    return ";".join(f"{x},{y}" for x, y in vertices)


def parse_vertices(text: str) -> List[Point]:
    """Parse "x0,y0;x1,y1;..." skipping malformed pairs."""
    vertices: List[Point] = []
    if not text:
        return vertices
    for pair in text.split(";"):
        if not pair:
            continue
        parts = pair.split(",")
        if len(parts) != 2:
            continue
        try:
            vertices.append((float(parts[0]), float(parts[1])))
        except ValueError:
            continue
    return vertices
