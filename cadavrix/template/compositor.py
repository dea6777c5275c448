from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from cadavrix.config import CanvasConfig
from cadavrix.geometry.template_layout import DEFAULT_LAYOUT, TemplateLayout
from cadavrix.grid.errors import NotFound, NotOwner
from cadavrix.grid.model import OCCUPIED, Position
from cadavrix.grid.neighbors import Neighbor, neighbors_of
from cadavrix.grid.state_machine import GridStateMachine
from cadavrix.imaging.regions import (
    Fragment,
    composite_over_blank_canvas,
    decode,
    encode,
    extract_region,
    normalize_artwork,
    resize,
)
from cadavrix.store.canvas_store import CanvasStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateResult:
    handle: str
    position: Position
    fragments_applied: int
    size: Tuple[int, int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guide_image_handle": self.handle,
            "position": self.position.to_dict(),
            "fragments_applied_count": self.fragments_applied,
        }


def template_name(x: int, y: int, now_ms: int, extension: str) -> str:
    return f"template-{x}-{y}-{now_ms}.{extension}"


def neighbor_fragment(store: CanvasStore, neighbor: Neighbor, layout: TemplateLayout = DEFAULT_LAYOUT) -> Fragment:
    """
    Load one occupied neighbor's artwork and cut out the strip (or corner)
    that touches the new cell, positioned on the guide canvas.
    """
    cell = neighbor.cell
    if cell is None or not cell.artifact_id:
        raise NotFound(f"Neighbor {neighbor.direction} at ({neighbor.position.x}, {neighbor.position.y}) has no artwork")

    img = decode(store.get_artifact_image(cell.artifact_id))
    img = normalize_artwork(img, layout)

    region = extract_region(img, layout.extract_rect(neighbor.direction))
    w, h = layout.footprint(neighbor.direction)
    region = resize(region, w, h)

    left, top = layout.placement(neighbor.direction)
    return Fragment(image=region, left=left, top=top)


def _collect_fragments(
    store: CanvasStore,
    sources: list[Neighbor],
    layout: TemplateLayout,
    config: CanvasConfig,
) -> list[Fragment]:
    if not sources:
        return []

    pool = ThreadPoolExecutor(
        # one worker per neighbor: every fetch starts at once and gets the whole timeout
        max_workers=len(sources),
        thread_name_prefix="cadavrix-template",
    )
    try:
        futures: list[tuple[Neighbor, Future[Fragment]]] = [
            (n, pool.submit(neighbor_fragment, store, n, layout)) for n in sources
        ]
        wait([f for _, f in futures], timeout=config.neighbor_timeout_s)
    finally:
        # stragglers are abandoned, not awaited
        pool.shutdown(wait=False, cancel_futures=True)

    fragments: list[Fragment] = []
    for n, fut in futures:  # neighbor order, not completion order
        where = f"{n.direction} ({n.position.x}, {n.position.y})"
        if not fut.done():
            logger.warning(f"[compositor] neighbor {where} timed out after {config.neighbor_timeout_s}s; omitted")
            continue
        exc = fut.exception()
        if exc is not None:
            logger.warning(f"[compositor] neighbor {where} failed: {exc}; omitted")
            continue
        fragments.append(fut.result())
    return fragments


def generate_template(
    store: CanvasStore,
    grid_id: str,
    x: int,
    y: int,
    *,
    contributor_id: Optional[str] = None,
    config: Optional[CanvasConfig] = None,
    layout: TemplateLayout = DEFAULT_LAYOUT,
    now_ms: Optional[int] = None,
) -> TemplateResult:
    """
    Build the guide image for (x, y): a blank canvas whose border carries
    the touching edges of every occupied neighbor, centre left blank for
    the contributor.

    When contributor_id is given it must hold (x, y). Without it the guide
    can be rendered for any position (previews, administration).
    """
    config = config or CanvasConfig.from_env()
    sm = GridStateMachine(store, grid_id)
    grid = sm.require_in_bounds(x, y)

    if contributor_id is not None:
        contributor = store.get_contributor(contributor_id)
        if contributor is None:
            raise NotFound(f"Contributor {contributor_id} not found")
        cell = sm.get_cell(x, y)
        if contributor.held_cell != Position(x, y) or cell.assigned_to != contributor_id:
            raise NotOwner(f"Cell ({x}, {y}) is not held by {contributor_id}")

    neighbors = neighbors_of(grid, x, y, sm.cells())
    sources = [n for n in neighbors if n.cell is not None and n.cell.status == OCCUPIED]

    fragments = _collect_fragments(store, sources, layout, config)
    canvas = composite_over_blank_canvas(layout.canvas_size, fragments)
    data = encode(canvas, config.template_format, config.template_quality)

    store.prune_ephemeral(older_than_s=config.template_ttl_s)
    stamp = int(time.time() * 1000) if now_ms is None else int(now_ms)
    handle = store.put_ephemeral(data, name=template_name(x, y, stamp, config.template_extension))

    logger.info(
        f"[compositor] template for ({x}, {y}) in grid {grid_id}: "
        f"{len(fragments)}/{len(sources)} fragments -> {handle}"
    )
    return TemplateResult(handle=handle, position=Position(x, y), fragments_applied=len(fragments), size=canvas.size)
