from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cadavrix.config import DEFAULT_ASSIGN_MAX_ATTEMPTS
from cadavrix.grid.errors import AlreadyHeld, Contention, Invalid, NoCapacity, NotFound
from cadavrix.grid.model import ASSIGNED, Cell, Position, utc_now_iso
from cadavrix.grid.state_machine import GridStateMachine
from cadavrix.store.canvas_store import CanvasStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Assignment:
    position: Position
    cell: Cell

    def to_dict(self) -> Dict[str, Any]:
        return {"position": self.position.to_dict(), "cell": self.cell.to_dict()}


def assign_random_cell(
    store: CanvasStore,
    grid_id: str,
    contributor_id: str,
    *,
    rng: Optional[random.Random] = None,
    max_attempts: int = DEFAULT_ASSIGN_MAX_ATTEMPTS,
) -> Assignment:
    """
    Claim one uniformly random empty cell for `contributor_id`.

    Each attempt re-reads the empty set and tries an empty->assigned CAS on
    the chosen cell. Losing the CAS means another request took that cell
    between our read and our write; we re-sample instead of failing. After
    `max_attempts` losses the claim fails with Contention.

    The contributor record is then pointed at the cell with its own CAS
    (held_cell must still be None). If that fails, the cell claim is undone
    so neither record is left half-updated.
    """
    rng = rng or random.SystemRandom()
    sm = GridStateMachine(store, grid_id)

    grid = sm.grid
    if grid.status != "active":
        raise Invalid(f"Grid {grid_id} is {grid.status}, not active")

    contributor = store.get_contributor(contributor_id)
    if contributor is None:
        raise NotFound(f"Contributor {contributor_id} not found")
    if contributor.held_cell is not None:
        p = contributor.held_cell
        raise AlreadyHeld(
            f"Contributor {contributor_id} already holds cell ({p.x}, {p.y})",
            position=(p.x, p.y),
        )

    won: Optional[Cell] = None
    for attempt in range(max(1, int(max_attempts))):
        empty = sm.list_empty_cells()
        if not empty:
            raise NoCapacity(f"Grid {grid_id} has no empty cells")

        candidate = rng.choice(empty)
        if sm.try_assign(candidate.x, candidate.y, contributor_id, at=utc_now_iso()):
            won = candidate
            break
        logger.debug(f"[allocator] attempt {attempt + 1} lost ({candidate.x}, {candidate.y}), re-sampling")

    if won is None:
        raise Contention(f"Gave up after {max_attempts} contended attempts on grid {grid_id}")

    pos = Position(won.x, won.y)
    if not store.atomic_update_contributor(contributor_id, None, {"held_cell": pos}):
        # contributor claimed (or vanished) concurrently; give the cell back
        sm.reset_cell(pos.x, pos.y, ASSIGNED, expected_owner=contributor_id)
        logger.warning(f"[allocator] compensated claim of ({pos.x}, {pos.y}) for {contributor_id}")
        current = store.get_contributor(contributor_id)
        if current is None:
            raise NotFound(f"Contributor {contributor_id} disappeared during assignment")
        held = current.held_cell
        raise AlreadyHeld(
            f"Contributor {contributor_id} already holds a cell",
            position=(held.x, held.y) if held else None,
        )

    cell = sm.get_cell(pos.x, pos.y)
    logger.info(f"[allocator] assigned ({pos.x}, {pos.y}) in grid {grid_id} to {contributor_id}")
    return Assignment(position=pos, cell=cell)
