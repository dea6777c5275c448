from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional, Tuple

from cadavrix.grid.errors import AlreadyOccupied, Invalid, NotFound
from cadavrix.grid.model import Artifact, Cell, CellStatus, Contributor, Grid, GridStatus, Position
from cadavrix.store.canvas_store import CELL_FIELDS, CONTRIBUTOR_FIELDS, CanvasStore, check_fields

logger = logging.getLogger(__name__)


class MemoryCanvasStore(CanvasStore):
    """
    Process-local store. One lock serializes every read-compare-write, which
    is what makes atomic_update_cell a real compare-and-swap across threads.

    Records are frozen dataclasses, so handing them out never exposes
    mutable internal state.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._grids: Dict[str, Grid] = {}
        self._cells: Dict[str, Dict[tuple[int, int], Cell]] = {}
        self._contributors: Dict[str, Contributor] = {}
        self._artifacts: Dict[str, Artifact] = {}
        self._blobs: Dict[str, bytes] = {}
        self._ephemeral: Dict[str, Tuple[float, bytes]] = {}

    # -----------------------------
    # grids

    def create_grid(self, grid: Grid) -> Grid:
        with self._lock:
            if grid.grid_id in self._grids:
                raise Invalid(f"Grid {grid.grid_id} already exists")
            if grid.status == "active" and any(g.status == "active" for g in self._grids.values()):
                raise Invalid("Another grid is already active")
            self._grids[grid.grid_id] = grid
            self._cells[grid.grid_id] = {(p.x, p.y): Cell(p.x, p.y) for p in grid.positions()}
        return grid

    def get_grid(self, grid_id: str) -> Optional[Grid]:
        with self._lock:
            return self._grids.get(grid_id)

    def find_grid(self, status: GridStatus) -> Optional[Grid]:
        with self._lock:
            for g in self._grids.values():
                if g.status == status:
                    return g
        return None

    def set_grid_status(self, grid_id: str, status: GridStatus) -> None:
        with self._lock:
            grid = self._grids.get(grid_id)
            if grid is None:
                raise NotFound(f"Grid {grid_id} not found")
            if status == "active" and any(
                g.status == "active" and g.grid_id != grid_id for g in self._grids.values()
            ):
                raise Invalid("Another grid is already active")
            self._grids[grid_id] = replace(grid, status=status)

    # -----------------------------
    # cells

    def list_cells(self, grid_id: str) -> list[Cell]:
        with self._lock:
            cells = self._cells.get(grid_id)
            if cells is None:
                return []
            return sorted(cells.values(), key=lambda c: (c.y, c.x))

    def get_cell(self, grid_id: str, x: int, y: int) -> Optional[Cell]:
        with self._lock:
            return self._cells.get(grid_id, {}).get((x, y))

    def atomic_update_cell(
        self,
        grid_id: str,
        x: int,
        y: int,
        expected_status: CellStatus,
        fields: Mapping[str, Any],
        *,
        expected_owner: Optional[str] = None,
    ) -> bool:
        check_fields(fields, CELL_FIELDS)
        with self._lock:
            cells = self._cells.get(grid_id)
            cell = cells.get((x, y)) if cells is not None else None
            if cell is None:
                return False
            if cell.status != expected_status:
                return False
            if expected_owner is not None and cell.assigned_to != expected_owner:
                return False
            cells[(x, y)] = replace(cell, **fields)
            return True

    # -----------------------------
    # contributors

    def create_contributor(self, contributor: Contributor) -> Contributor:
        with self._lock:
            if contributor.contributor_id in self._contributors:
                raise Invalid(f"Contributor {contributor.contributor_id} already exists")
            self._contributors[contributor.contributor_id] = contributor
        return contributor

    def get_contributor(self, contributor_id: str) -> Optional[Contributor]:
        with self._lock:
            return self._contributors.get(contributor_id)

    def delete_contributor(self, contributor_id: str) -> None:
        with self._lock:
            self._contributors.pop(contributor_id, None)

    def atomic_update_contributor(
        self,
        contributor_id: str,
        expected_cell: Optional[Position],
        fields: Mapping[str, Any],
    ) -> bool:
        check_fields(fields, CONTRIBUTOR_FIELDS)
        with self._lock:
            c = self._contributors.get(contributor_id)
            if c is None or c.held_cell != expected_cell:
                return False
            self._contributors[contributor_id] = replace(c, **fields)
            return True

    # -----------------------------
    # artifacts

    def create_artifact(self, artifact: Artifact) -> Artifact:
        with self._lock:
            for a in self._artifacts.values():
                if a.grid_id == artifact.grid_id and a.position == artifact.position:
                    raise AlreadyOccupied(
                        f"Position ({artifact.position.x}, {artifact.position.y}) already has artifact {a.artifact_id}"
                    )
            self._artifacts[artifact.artifact_id] = artifact
        return artifact

    def get_artifact(self, artifact_id: str) -> Optional[Artifact]:
        with self._lock:
            return self._artifacts.get(artifact_id)

    def find_artifact_at(self, grid_id: str, x: int, y: int) -> Optional[Artifact]:
        with self._lock:
            for a in self._artifacts.values():
                if a.grid_id == grid_id and a.position == Position(x, y):
                    return a
        return None

    def list_artifacts(self, grid_id: str) -> list[Artifact]:
        with self._lock:
            return [a for a in self._artifacts.values() if a.grid_id == grid_id]

    def delete_artifact(self, artifact_id: str) -> None:
        with self._lock:
            self._artifacts.pop(artifact_id, None)

    # -----------------------------
    # blobs

    def put_artifact_image(self, artifact_id: str, data: bytes, *, extension: str) -> str:
        ref = f"mem://artworks/{artifact_id}.{extension}"
        with self._lock:
            self._blobs[ref] = bytes(data)
        return ref

    def get_artifact_image(self, artifact_id: str) -> bytes:
        with self._lock:
            artifact = self._artifacts.get(artifact_id)
            if artifact is None:
                raise NotFound(f"Artifact {artifact_id} not found")
            data = self._blobs.get(artifact.image_ref)
        if data is None:
            raise NotFound(f"Image for artifact {artifact_id} is missing ({artifact.image_ref})")
        return data

    def delete_artifact_image(self, image_ref: str) -> None:
        with self._lock:
            self._blobs.pop(image_ref, None)

    def put_ephemeral(self, data: bytes, *, name: str) -> str:
        handle = f"mem://templates/{name}"
        with self._lock:
            self._ephemeral[handle] = (time.time(), bytes(data))
        logger.debug(f"[memory_store] stored ephemeral {handle} ({len(data)} bytes)")
        return handle

    def get_ephemeral(self, handle: str) -> bytes:
        with self._lock:
            entry = self._ephemeral.get(handle)
        if entry is None:
            raise NotFound(f"Ephemeral {handle} not found")
        return entry[1]

    def prune_ephemeral(self, *, older_than_s: float, now: Optional[float] = None) -> int:
        cutoff = (time.time() if now is None else now) - older_than_s
        with self._lock:
            stale = [h for h, (created, _) in self._ephemeral.items() if created < cutoff]
            for h in stale:
                del self._ephemeral[h]
        if stale:
            logger.debug(f"[memory_store] pruned {len(stale)} ephemeral image(s)")
        return len(stale)
