# cadavrix/geometry/seam_score.py
from __future__ import annotations

import logging
from typing import Dict

import numpy as np
from PIL import Image

from cadavrix.geometry.template_layout import DEFAULT_LAYOUT, TemplateLayout
from cadavrix.grid.errors import Invalid
from cadavrix.grid.model import OCCUPIED
from cadavrix.grid.neighbors import EDGE_DIRECTIONS, OFFSETS, Direction, neighbors_of
from cadavrix.grid.state_machine import GridStateMachine
from cadavrix.imaging.regions import decode, extract_region, normalize_artwork
from cadavrix.store.canvas_store import CanvasStore

logger = logging.getLogger(__name__)

OPPOSITE: Dict[Direction, Direction] = {"top": "bottom", "bottom": "top", "left": "right", "right": "left"}

_OFFSET: Dict[Direction, tuple[int, int]] = {d: (dx, dy) for d, dx, dy in OFFSETS}


def _to_f32(img: Image.Image) -> np.ndarray:
    return np.asarray(img.convert("RGB"), dtype=np.float32) / 255.0


def _seam_first(a: np.ndarray, axis: int, seam_at_end: bool) -> np.ndarray:
    # index 0 along `axis` becomes the row/column touching the seam
    return np.flip(a, axis=axis) if seam_at_end else a


def _edge_weight(shape: tuple[int, int], axis: int) -> np.ndarray:
    # weights emphasize pixels closest to the seam
    H, W = shape
    if axis == 1:
        w = np.linspace(1.0, 0.2, W, dtype=np.float32)
        return np.tile(w[None, :], (H, 1))
    w = np.linspace(1.0, 0.2, H, dtype=np.float32)
    return np.tile(w[:, None], (1, W))


def seam_score(
    artwork: Image.Image,
    neighbor_artwork: Image.Image,
    direction: Direction,
    layout: TemplateLayout = DEFAULT_LAYOUT,
) -> float:
    """
    Continuity across the shared edge with the neighbor lying in `direction`,
    in 0..1 (1 = identical pixels on both sides of the seam).

    Both border strips are oriented seam-first and compared with a mean
    absolute difference weighted towards the seam.
    """
    if direction not in EDGE_DIRECTIONS:
        raise ValueError(f"Seams exist only for edge directions, not {direction}")

    own = normalize_artwork(artwork, layout)
    other = normalize_artwork(neighbor_artwork, layout)

    dx, dy = _OFFSET[direction]
    axis = 1 if dx != 0 else 0
    own_seam_at_end = (dx > 0) or (dy > 0)

    # own edge facing the neighbor == what the neighbor would borrow from us
    own_strip = _to_f32(extract_region(own, layout.extract_rect(OPPOSITE[direction])))
    other_strip = _to_f32(extract_region(other, layout.extract_rect(direction)))

    a = _seam_first(own_strip, axis, own_seam_at_end)
    b = _seam_first(other_strip, axis, not own_seam_at_end)

    diff = np.abs(a - b).mean(axis=2)  # (H, W), averaged over channels
    w = _edge_weight(diff.shape, axis)
    mad = float(np.sum(diff * w) / np.sum(w))
    return max(0.0, min(1.0, 1.0 - mad))


def seam_report(
    store: CanvasStore,
    grid_id: str,
    x: int,
    y: int,
    *,
    layout: TemplateLayout = DEFAULT_LAYOUT,
) -> Dict[Direction, float]:
    """
    Seam scores between the artwork at (x, y) and each occupied edge
    neighbor. Informational: a neighbor whose image can't be read is
    skipped.
    """
    sm = GridStateMachine(store, grid_id)
    grid = sm.require_in_bounds(x, y)
    cell = sm.get_cell(x, y)
    if cell.status != OCCUPIED or not cell.artifact_id:
        raise Invalid(f"Cell ({x}, {y}) is {cell.status}; only occupied cells have seams")

    own = decode(store.get_artifact_image(cell.artifact_id))

    report: Dict[Direction, float] = {}
    for n in neighbors_of(grid, x, y, sm.cells()):
        if n.direction not in EDGE_DIRECTIONS or n.cell is None or n.cell.status != OCCUPIED:
            continue
        try:
            other = decode(store.get_artifact_image(n.cell.artifact_id))
        except Exception as e:
            logger.warning(f"[seam_score] skipping {n.direction} neighbor of ({x}, {y}): {e}")
            continue
        report[n.direction] = round(seam_score(own, other, n.direction, layout), 4)
    return report
