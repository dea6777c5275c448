from __future__ import annotations

import logging
import uuid
from typing import Optional

from cadavrix.grid.errors import Invalid, NotFound
from cadavrix.grid.model import (
    EMPTY,
    MAX_GRID_SIDE,
    MIN_GRID_SIDE,
    Cell,
    Grid,
    utc_now_iso,
)
from cadavrix.grid.state_machine import GridStateMachine
from cadavrix.store.canvas_store import CanvasStore

logger = logging.getLogger(__name__)


def initialize_grid(
    store: CanvasStore,
    width: int = 10,
    height: int = 10,
    *,
    title: str = "Untitled canvas",
    description: str = "",
    archive_active: bool = False,
    grid_id: Optional[str] = None,
) -> Grid:
    """
    Create a new active grid with every cell empty.

    Refuses while another grid is active unless archive_active=True, in
    which case the current one is archived first.
    """
    for name, side in (("width", width), ("height", height)):
        if not (MIN_GRID_SIDE <= int(side) <= MAX_GRID_SIDE):
            raise Invalid(f"Grid {name} must be between {MIN_GRID_SIDE} and {MAX_GRID_SIDE}, got {side}")

    current = store.find_grid("active")
    if current is not None:
        if not archive_active:
            raise Invalid(f"Grid {current.grid_id} is still active; archive it first")
        store.set_grid_status(current.grid_id, "archived")
        logger.info(f"[admin] archived grid {current.grid_id}")

    grid = Grid(
        grid_id=grid_id or f"cadavrix-{uuid.uuid4().hex[:12]}",
        width=int(width),
        height=int(height),
        status="active",
        title=title,
        description=description,
        created_at=utc_now_iso(),
    )
    store.create_grid(grid)
    logger.info(f"[admin] initialized grid {grid.grid_id} ({grid.width}x{grid.height})")
    return grid


def complete_grid(store: CanvasStore, grid_id: str) -> Grid:
    sm = GridStateMachine(store, grid_id)
    grid = sm.grid
    if grid.status != "active":
        raise Invalid(f"Grid {grid_id} is {grid.status}, not active")
    stats = sm.statistics()
    if stats.occupied != stats.total:
        raise Invalid(f"Grid {grid_id} still has {stats.total - stats.occupied} unoccupied cells")
    store.set_grid_status(grid_id, "completed")
    logger.info(f"[admin] grid {grid_id} completed")
    return store.get_grid(grid_id) or grid


def archive_grid(store: CanvasStore, grid_id: str) -> None:
    if store.get_grid(grid_id) is None:
        raise NotFound(f"Grid {grid_id} not found")
    store.set_grid_status(grid_id, "archived")
    logger.info(f"[admin] archived grid {grid_id}")


def clear_owner(store: CanvasStore, cell: Cell) -> bool:
    """
    Drop the owner's claim on `cell` (held_cell and has_submitted) so they
    may claim again. No-op when the owner is gone or already holds another
    cell.
    """
    if not cell.assigned_to:
        return False
    owner = store.get_contributor(cell.assigned_to)
    if owner is None or owner.held_cell != cell.position:
        return False
    return store.atomic_update_contributor(
        owner.contributor_id, cell.position, {"held_cell": None, "has_submitted": False}
    )


def release_cell(store: CanvasStore, grid_id: str, x: int, y: int) -> Cell:
    """
    Give a cell back to the pool: reset it to empty, then drop its artifact
    (if any) and clear the owner's claim so they may claim again.
    """
    sm = GridStateMachine(store, grid_id)
    cell = sm.get_cell(x, y)
    if cell.status == EMPTY:
        return cell

    if not sm.reset_cell(x, y, cell.status, expected_owner=cell.assigned_to):
        raise Invalid(f"Cell ({x}, {y}) changed while being released")

    # the cell no longer points at the artifact
    if cell.artifact_id:
        artifact = store.get_artifact(cell.artifact_id)
        if artifact is not None:
            store.delete_artifact(artifact.artifact_id)
            store.delete_artifact_image(artifact.image_ref)

    clear_owner(store, cell)

    logger.info(f"[admin] released ({x}, {y}) in grid {grid_id} (was {cell.status})")
    return sm.get_cell(x, y)
