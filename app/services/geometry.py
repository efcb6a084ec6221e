"""Unit conversion and coordinate helpers.

Callers describe boxes with a top-left origin (the way a page is viewed);
PDF drawing uses a bottom-left origin in points. ``box_to_rect`` is the one
place that conversion happens.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from app.errors import ValidationError

POINTS_PER_INCH = 72.0
POINTS_PER_MM = 72.0 / 25.4
# CSS pixel at 96 DPI; an approximation, not a measured device value.
POINTS_PER_PX = 0.75

_UNIT_FACTORS = {
    "pt": 1.0,
    "px": POINTS_PER_PX,
    "mm": POINTS_PER_MM,
    "in": POINTS_PER_INCH,
}

UNITS = tuple(_UNIT_FACTORS)

ANCHORS = ("center", "top-left", "top-right", "bottom-left", "bottom-right")

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


@dataclass(frozen=True)
class Box:
    """Rectangle with a top-left origin, in caller units."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class Rect:
    """Rectangle with a bottom-left origin, in points."""

    x: float
    y: float
    width: float
    height: float


def to_points(value: float, unit: str) -> float:
    """Convert ``value`` in ``unit`` (px, mm, in, pt) to PDF points."""
    try:
        factor = _UNIT_FACTORS[unit]
    except KeyError:
        raise ValidationError(
            f"Unsupported unit '{unit}'. Use one of: {', '.join(UNITS)}"
        ) from None
    return float(value) * factor


def flip_origin_y(y: float, page_height: float) -> float:
    return page_height - y


def box_to_rect(box: Box, page_height: float, unit: str = "pt") -> Rect:
    """Convert a top-left box in ``unit`` to a bottom-left rect in points."""
    x = to_points(box.x, unit)
    y = to_points(box.y, unit)
    width = to_points(box.width, unit)
    height = to_points(box.height, unit)
    return Rect(x=x, y=flip_origin_y(y, page_height) - height, width=width, height=height)


def anchor_box(
    anchor: str,
    page_width: float,
    page_height: float,
    width: float,
    height: float,
    margin: float = 0.0,
) -> Box:
    """Place a ``width`` x ``height`` box (points) at a named anchor.

    The result is a top-left origin box in points, ready for ``box_to_rect``.
    """
    if anchor == "center":
        return Box((page_width - width) / 2, (page_height - height) / 2, width, height)

    vertical, _, horizontal = anchor.partition("-")
    if vertical not in ("top", "bottom") or horizontal not in ("left", "center", "right"):
        raise ValidationError(f"Unsupported position '{anchor}'")

    if horizontal == "left":
        x = margin
    elif horizontal == "right":
        x = page_width - margin - width
    else:
        x = (page_width - width) / 2

    y = margin if vertical == "top" else page_height - margin - height
    return Box(x, y, width, height)


def parse_color(value: str) -> tuple[float, float, float]:
    """Parse ``#rrggbb`` or ``#rgb`` into RGB floats in [0, 1]."""
    match = _HEX_COLOR.match(value.strip()) if value else None
    if not match:
        raise ValidationError(f"Invalid colour '{value}', expected #rrggbb")
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return tuple(int(digits[i:i + 2], 16) / 255.0 for i in (0, 2, 4))
