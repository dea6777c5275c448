from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

from cadavrix.grid.model import Artifact, Cell, CellStatus, Contributor, Grid, GridStatus, Position

# Fields a cell CAS may write. Anything else is a programming error.
CELL_FIELDS = frozenset({"status", "assigned_to", "artifact_id", "assigned_at"})

# Fields a contributor CAS may write.
CONTRIBUTOR_FIELDS = frozenset({"held_cell", "has_submitted"})


def check_fields(fields: Mapping[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Unknown fields for update: {sorted(unknown)}")


class CanvasStore(Protocol):
    """
    Durable keyed storage for grids, cells, contributors and artifacts.

    The contract the allocator and finalizer depend on:

    - atomic_update_cell is a compare-and-swap scoped to ONE cell: it applies
      `fields` only if the stored status still equals `expected_status`
      (and, when given, the stored owner equals `expected_owner`), and tells
      the caller whether it won.
    - atomic_update_contributor is the same idea keyed on the contributor's
      held cell.

    Whole-grid writes (create_grid / set_grid_status) are administrative.
    """

    # grids
    def create_grid(self, grid: Grid) -> Grid:
        ...

    def get_grid(self, grid_id: str) -> Optional[Grid]:
        ...

    def find_grid(self, status: GridStatus) -> Optional[Grid]:
        ...

    def set_grid_status(self, grid_id: str, status: GridStatus) -> None:
        ...

    # cells
    def list_cells(self, grid_id: str) -> list[Cell]:
        ...

    def get_cell(self, grid_id: str, x: int, y: int) -> Optional[Cell]:
        ...

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
        ...

    # contributors
    def create_contributor(self, contributor: Contributor) -> Contributor:
        ...

    def get_contributor(self, contributor_id: str) -> Optional[Contributor]:
        ...

    def delete_contributor(self, contributor_id: str) -> None:
        ...

    def atomic_update_contributor(
        self,
        contributor_id: str,
        expected_cell: Optional[Position],
        fields: Mapping[str, Any],
    ) -> bool:
        ...

    # artifacts
    def create_artifact(self, artifact: Artifact) -> Artifact:
        ...

    def get_artifact(self, artifact_id: str) -> Optional[Artifact]:
        ...

    def find_artifact_at(self, grid_id: str, x: int, y: int) -> Optional[Artifact]:
        ...

    def list_artifacts(self, grid_id: str) -> list[Artifact]:
        ...

    def delete_artifact(self, artifact_id: str) -> None:
        ...

    # blobs
    def put_artifact_image(self, artifact_id: str, data: bytes, *, extension: str) -> str:
        ...

    def get_artifact_image(self, artifact_id: str) -> bytes:
        ...

    def delete_artifact_image(self, image_ref: str) -> None:
        ...

    def put_ephemeral(self, data: bytes, *, name: str) -> str:
        ...

    def get_ephemeral(self, handle: str) -> bytes:
        ...

    def prune_ephemeral(self, *, older_than_s: float, now: Optional[float] = None) -> int:
        """Drop ephemeral images stored more than `older_than_s` seconds ago. Returns how many went."""
        ...
