from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from cadavrix.grid.errors import Invalid, NotFound
from cadavrix.grid.model import ASSIGNED, EMPTY, OCCUPIED, Cell, CellStatus, Grid, GridStatus, utc_now_iso
from cadavrix.store.canvas_store import CanvasStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridStatistics:
    total: int
    empty: int
    assigned: int
    occupied: int
    completion_percentage: float
    status: GridStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "empty": self.empty,
            "assigned": self.assigned,
            "occupied": self.occupied,
            "completion_percentage": self.completion_percentage,
            "status": self.status,
        }


def completion_percentage(occupied: int, total: int) -> float:
    if total <= 0:
        return 0.0
    pct = Decimal(occupied) * Decimal(100) / Decimal(total)
    return float(pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class GridStateMachine:
    """
    Authoritative view of one grid's cells, and the only writer of
    cell-status transitions.

    Reads go straight to the store (no cached copy of the cell table).
    Writes are compare-and-swap on a single cell; each try_* method returns
    True when this caller's transition was the one that happened.

        empty --try_assign--> assigned --try_occupy--> occupied
          ^                      |                        |
          +------- reset_cell (administrative only) ------+
    """

    def __init__(self, store: CanvasStore, grid_id: str) -> None:
        self.store = store
        self.grid_id = grid_id

    @property
    def grid(self) -> Grid:
        grid = self.store.get_grid(self.grid_id)
        if grid is None:
            raise NotFound(f"Grid {self.grid_id} not found")
        return grid

    def require_in_bounds(self, x: int, y: int, grid: Optional[Grid] = None) -> Grid:
        grid = grid or self.grid
        if not grid.contains(x, y):
            raise Invalid(f"Position ({x}, {y}) is outside the {grid.width}x{grid.height} grid")
        return grid

    # -----------------------------
    # reads

    def get_cell(self, x: int, y: int) -> Cell:
        self.require_in_bounds(x, y)
        cell = self.store.get_cell(self.grid_id, x, y)
        if cell is None:
            raise NotFound(f"Cell ({x}, {y}) not found in grid {self.grid_id}")
        return cell

    def cells(self) -> list[Cell]:
        return self.store.list_cells(self.grid_id)

    def _with_status(self, status: CellStatus) -> list[Cell]:
        return [c for c in self.cells() if c.status == status]

    def list_empty_cells(self) -> list[Cell]:
        return self._with_status(EMPTY)

    def list_assigned_cells(self) -> list[Cell]:
        return self._with_status(ASSIGNED)

    def list_occupied_cells(self) -> list[Cell]:
        return self._with_status(OCCUPIED)

    def statistics(self) -> GridStatistics:
        grid = self.grid
        counts = {EMPTY: 0, ASSIGNED: 0, OCCUPIED: 0}
        for c in self.cells():
            counts[c.status] += 1
        total = grid.total_cells
        return GridStatistics(
            total=total,
            empty=counts[EMPTY],
            assigned=counts[ASSIGNED],
            occupied=counts[OCCUPIED],
            completion_percentage=completion_percentage(counts[OCCUPIED], total),
            status=grid.status,
        )

    # -----------------------------
    # transitions

    def try_assign(self, x: int, y: int, contributor_id: str, *, at: Optional[str] = None) -> bool:
        won = self.store.atomic_update_cell(
            self.grid_id,
            x,
            y,
            EMPTY,
            {"status": ASSIGNED, "assigned_to": contributor_id, "assigned_at": at or utc_now_iso()},
        )
        if not won:
            logger.debug(f"[state_machine] lost empty->assigned race on ({x}, {y}) for {contributor_id}")
        return won

    def try_occupy(self, x: int, y: int, contributor_id: str, artifact_id: str) -> bool:
        won = self.store.atomic_update_cell(
            self.grid_id,
            x,
            y,
            ASSIGNED,
            {"status": OCCUPIED, "artifact_id": artifact_id},
            expected_owner=contributor_id,
        )
        if not won:
            logger.debug(f"[state_machine] lost assigned->occupied race on ({x}, {y}) for {contributor_id}")
        return won

    def reset_cell(self, x: int, y: int, expected_status: CellStatus, *, expected_owner: Optional[str] = None) -> bool:
        """
        Out-of-band path back to empty, used by compensation, release and
        reconciliation. Never part of the normal contributor flow.
        """
        if expected_status == EMPTY:
            return False
        won = self.store.atomic_update_cell(
            self.grid_id,
            x,
            y,
            expected_status,
            {"status": EMPTY, "assigned_to": None, "artifact_id": None, "assigned_at": None},
            expected_owner=expected_owner,
        )
        if won:
            logger.info(f"[state_machine] reset ({x}, {y}) {expected_status}->empty in grid {self.grid_id}")
        return won
