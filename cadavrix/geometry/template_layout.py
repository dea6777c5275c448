# cadavrix/geometry/template_layout.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Literal, Tuple

from cadavrix.grid.neighbors import OFFSETS, Direction

# Artwork (centre of the guide) is fixed.
CENTER_PX = 2000

# Border strip borrowed from each neighbor.
BORDER_PX = 100

# Full guide canvas: centre plus a border on each side.
CANVAS_PX = CENTER_PX + 2 * BORDER_PX  # 2200

# Guide background.
BACKGROUND_RGB = (255, 255, 255)

Rect = Tuple[int, int, int, int]  # (left, top, right, bottom), right/bottom exclusive

# Which slice of the NEIGHBOR's artwork to take, per axis:
#   near = first BORDER_PX, far = last BORDER_PX, full = whole side
Span = Literal["near", "far", "full"]

# Where the fragment lands on the guide canvas, per axis:
#   start = 0, inset = BORDER_PX, end = BORDER_PX + CENTER_PX
Anchor = Literal["start", "inset", "end"]

# Keyed by the neighbor's direction as seen from the new cell. The slice is
# always the neighbor's edge that touches the new cell: a neighbor on the
# left gives its right-hand strip, one above gives its bottom strip.
EXTRACT_SPANS: Dict[Direction, Tuple[Span, Span]] = {
    "topLeft": ("far", "far"),
    "top": ("full", "far"),
    "topRight": ("near", "far"),
    "left": ("far", "full"),
    "right": ("near", "full"),
    "bottomLeft": ("far", "near"),
    "bottom": ("full", "near"),
    "bottomRight": ("near", "near"),
}

PLACEMENT_ANCHORS: Dict[Direction, Tuple[Anchor, Anchor]] = {
    "topLeft": ("start", "start"),
    "top": ("inset", "start"),
    "topRight": ("end", "start"),
    "left": ("start", "inset"),
    "right": ("end", "inset"),
    "bottomLeft": ("start", "end"),
    "bottom": ("inset", "end"),
    "bottomRight": ("end", "end"),
}

if set(EXTRACT_SPANS) != {d for d, _, _ in OFFSETS} or set(PLACEMENT_ANCHORS) != set(EXTRACT_SPANS):
    raise AssertionError("template layout tables must cover every direction exactly once")


@dataclass(frozen=True)
class TemplateLayout:
    center_px: int = CENTER_PX
    border_px: int = BORDER_PX

    def __post_init__(self) -> None:
        if self.center_px <= 0 or self.border_px <= 0:
            raise ValueError("center_px and border_px must be positive")
        if self.border_px > self.center_px:
            raise ValueError(f"border_px {self.border_px} exceeds center_px {self.center_px}")

    @property
    def canvas_px(self) -> int:
        return self.center_px + 2 * self.border_px

    @property
    def canvas_size(self) -> Tuple[int, int]:
        return (self.canvas_px, self.canvas_px)

    def _span(self, span: Span) -> Tuple[int, int]:
        c, b = self.center_px, self.border_px
        if span == "near":
            return (0, b)
        if span == "far":
            return (c - b, c)
        if span == "full":
            return (0, c)
        raise ValueError(f"Unknown span: {span}")

    def _anchor(self, anchor: Anchor) -> int:
        if anchor == "start":
            return 0
        if anchor == "inset":
            return self.border_px
        if anchor == "end":
            return self.border_px + self.center_px
        raise ValueError(f"Unknown anchor: {anchor}")

    def extract_rect(self, direction: Direction) -> Rect:
        """
        Crop box inside a center_px x center_px neighbor artwork.

        e.g. with the defaults:
          left   -> (1900, 0, 2000, 2000)   neighbor's right strip
          top    -> (0, 1900, 2000, 2000)   neighbor's bottom strip
          topLeft-> (1900, 1900, 2000, 2000) neighbor's bottom-right corner
        """
        try:
            sx, sy = EXTRACT_SPANS[direction]
        except KeyError:
            raise ValueError(f"Unknown direction: {direction}") from None
        left, right = self._span(sx)
        top, bottom = self._span(sy)
        return (left, top, right, bottom)

    def footprint(self, direction: Direction) -> Tuple[int, int]:
        """(width, height) the fragment occupies on the guide canvas."""
        left, top, right, bottom = self.extract_rect(direction)
        return (right - left, bottom - top)

    def placement(self, direction: Direction) -> Tuple[int, int]:
        """(left, top) of the fragment on the guide canvas."""
        try:
            ax, ay = PLACEMENT_ANCHORS[direction]
        except KeyError:
            raise ValueError(f"Unknown direction: {direction}") from None
        return (self._anchor(ax), self._anchor(ay))

    def placement_rect(self, direction: Direction) -> Rect:
        left, top = self.placement(direction)
        w, h = self.footprint(direction)
        return (left, top, left + w, top + h)

    def center_rect(self) -> Rect:
        b, c = self.border_px, self.center_px
        return (b, b, b + c, b + c)


DEFAULT_LAYOUT = TemplateLayout()
