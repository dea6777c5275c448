"""
SQLite Canvas Store

Durable persistence for grids, cells, contributors and artifacts. Artwork
images and ephemeral guide images live as files next to the database.

Every contributor-facing write is a single conditional UPDATE scoped to one
row; SQLite executes it atomically, so `rowcount == 1` means the caller won the
compare-and-swap and `0` means somebody else changed the row first.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional

from cadavrix import paths
from cadavrix.grid.errors import AlreadyOccupied, Invalid, NotFound
from cadavrix.grid.model import Artifact, Cell, CellStatus, Contributor, Grid, GridStatus, Position
from cadavrix.io.atomic_write import atomic_write_bytes, unlink_quietly
from cadavrix.store.canvas_store import CELL_FIELDS, CONTRIBUTOR_FIELDS, CanvasStore, check_fields

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS grids (
    grid_id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    width INTEGER NOT NULL,
    height INTEGER NOT NULL,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL
);

-- at most one active grid
CREATE UNIQUE INDEX IF NOT EXISTS idx_grids_one_active ON grids(status) WHERE status = 'active';

CREATE TABLE IF NOT EXISTS cells (
    grid_id TEXT NOT NULL,
    x INTEGER NOT NULL,
    y INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'empty',
    assigned_to TEXT,
    artifact_id TEXT,
    assigned_at TEXT,
    PRIMARY KEY (grid_id, x, y),
    FOREIGN KEY (grid_id) REFERENCES grids(grid_id)
);

CREATE INDEX IF NOT EXISTS idx_cells_status ON cells(grid_id, status);

CREATE TABLE IF NOT EXISTS contributors (
    contributor_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'artist',
    held_x INTEGER,
    held_y INTEGER,
    has_submitted INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS artifacts (
    artifact_id TEXT PRIMARY KEY,
    grid_id TEXT NOT NULL,
    x INTEGER NOT NULL,
    y INTEGER NOT NULL,
    contributor_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    image_ref TEXT NOT NULL,
    mime TEXT NOT NULL,
    width INTEGER NOT NULL,
    height INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

-- one artifact per grid position
CREATE UNIQUE INDEX IF NOT EXISTS idx_artifacts_position ON artifacts(grid_id, x, y);
CREATE INDEX IF NOT EXISTS idx_artifacts_contributor ON artifacts(contributor_id);
"""


def _row_to_grid(row: sqlite3.Row) -> Grid:
    return Grid(
        grid_id=row["grid_id"],
        width=row["width"],
        height=row["height"],
        status=row["status"],
        title=row["title"],
        description=row["description"],
        created_at=row["created_at"],
    )


def _row_to_cell(row: sqlite3.Row) -> Cell:
    return Cell(
        x=row["x"],
        y=row["y"],
        status=row["status"],
        assigned_to=row["assigned_to"],
        artifact_id=row["artifact_id"],
        assigned_at=row["assigned_at"],
    )


def _row_to_contributor(row: sqlite3.Row) -> Contributor:
    held = None
    if row["held_x"] is not None and row["held_y"] is not None:
        held = Position(row["held_x"], row["held_y"])
    return Contributor(
        contributor_id=row["contributor_id"],
        name=row["name"],
        role=row["role"],
        held_cell=held,
        has_submitted=bool(row["has_submitted"]),
    )


def _row_to_artifact(row: sqlite3.Row) -> Artifact:
    return Artifact(
        artifact_id=row["artifact_id"],
        grid_id=row["grid_id"],
        position=Position(row["x"], row["y"]),
        contributor_id=row["contributor_id"],
        title=row["title"],
        description=row["description"],
        image_ref=row["image_ref"],
        mime=row["mime"],
        width=row["width"],
        height=row["height"],
        created_at=row["created_at"],
    )


def _contributor_columns(fields: Mapping[str, Any]) -> dict[str, Any]:
    cols: dict[str, Any] = {}
    if "held_cell" in fields:
        held = fields["held_cell"]
        cols["held_x"] = held.x if held is not None else None
        cols["held_y"] = held.y if held is not None else None
    if "has_submitted" in fields:
        cols["has_submitted"] = 1 if fields["has_submitted"] else 0
    return cols


class SQLiteCanvasStore(CanvasStore):
    """
    SQLite persistence for the canvas.

    A fresh connection is opened per operation, so the store can be shared
    by any number of request-handling threads.
    """

    def __init__(
        self,
        database_path: Optional[Path] = None,
        *,
        data_root: Optional[Path] = None,
        busy_timeout_s: float = 30.0,
    ) -> None:
        self.data_root = Path(data_root or paths.DATA_ROOT)
        self.database_path = Path(database_path or self.data_root / "cadavrix.sqlite3")
        self.artworks_dir = self.data_root / "artworks"
        self.templates_dir = self.data_root / "templates"
        self.busy_timeout_s = busy_timeout_s

        for d in (self.data_root, self.artworks_dir, self.templates_dir, self.database_path.parent):
            d.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.database_path), timeout=self.busy_timeout_s, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _init_schema(self) -> None:
        with self._connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
        logger.info(f"[sqlite_store] schema ready at {self.database_path}")

    # -----------------------------
    # grids

    def create_grid(self, grid: Grid) -> Grid:
        try:
            with self._transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO grids (grid_id, title, description, width, height, status, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (grid.grid_id, grid.title, grid.description, grid.width, grid.height, grid.status, grid.created_at),
                )
                conn.executemany(
                    "INSERT INTO cells (grid_id, x, y, status) VALUES (?, ?, ?, 'empty')",
                    [(grid.grid_id, p.x, p.y) for p in grid.positions()],
                )
        except sqlite3.IntegrityError as e:
            raise Invalid(f"Cannot create grid {grid.grid_id}: {e}") from e
        return grid

    def get_grid(self, grid_id: str) -> Optional[Grid]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM grids WHERE grid_id = ?", (grid_id,)).fetchone()
        return _row_to_grid(row) if row else None

    def find_grid(self, status: GridStatus) -> Optional[Grid]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM grids WHERE status = ? ORDER BY created_at DESC LIMIT 1", (status,)
            ).fetchone()
        return _row_to_grid(row) if row else None

    def set_grid_status(self, grid_id: str, status: GridStatus) -> None:
        try:
            with self._connection() as conn:
                updated = conn.execute("UPDATE grids SET status = ? WHERE grid_id = ?", (status, grid_id)).rowcount
        except sqlite3.IntegrityError as e:
            raise Invalid(f"Cannot set grid {grid_id} to {status}: {e}") from e
        if updated == 0:
            raise NotFound(f"Grid {grid_id} not found")

    # -----------------------------
    # cells

    def list_cells(self, grid_id: str) -> list[Cell]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM cells WHERE grid_id = ? ORDER BY y, x", (grid_id,)).fetchall()
        return [_row_to_cell(r) for r in rows]

    def get_cell(self, grid_id: str, x: int, y: int) -> Optional[Cell]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM cells WHERE grid_id = ? AND x = ? AND y = ?", (grid_id, x, y)
            ).fetchone()
        return _row_to_cell(row) if row else None

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
        if not fields:
            return False

        names = sorted(fields)
        sql = f"UPDATE cells SET {', '.join(f'{n} = ?' for n in names)} WHERE grid_id = ? AND x = ? AND y = ? AND status = ?"
        params: list[Any] = [fields[n] for n in names] + [grid_id, x, y, expected_status]
        if expected_owner is not None:
            sql += " AND assigned_to = ?"
            params.append(expected_owner)

        with self._connection() as conn:
            return conn.execute(sql, params).rowcount == 1

    # -----------------------------
    # contributors

    def create_contributor(self, contributor: Contributor) -> Contributor:
        cols = _contributor_columns({"held_cell": contributor.held_cell, "has_submitted": contributor.has_submitted})
        try:
            with self._connection() as conn:
                conn.execute(
                    """
                    INSERT INTO contributors (contributor_id, name, role, held_x, held_y, has_submitted)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        contributor.contributor_id,
                        contributor.name,
                        contributor.role,
                        cols["held_x"],
                        cols["held_y"],
                        cols["has_submitted"],
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise Invalid(f"Contributor {contributor.contributor_id} already exists") from e
        return contributor

    def get_contributor(self, contributor_id: str) -> Optional[Contributor]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM contributors WHERE contributor_id = ?", (contributor_id,)).fetchone()
        return _row_to_contributor(row) if row else None

    def delete_contributor(self, contributor_id: str) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM contributors WHERE contributor_id = ?", (contributor_id,))

    def atomic_update_contributor(
        self,
        contributor_id: str,
        expected_cell: Optional[Position],
        fields: Mapping[str, Any],
    ) -> bool:
        check_fields(fields, CONTRIBUTOR_FIELDS)
        cols = _contributor_columns(fields)
        if not cols:
            return False

        names = sorted(cols)
        ex, ey = (expected_cell.x, expected_cell.y) if expected_cell is not None else (None, None)
        sql = (
            f"UPDATE contributors SET {', '.join(f'{n} = ?' for n in names)} "
            "WHERE contributor_id = ? AND held_x IS ? AND held_y IS ?"
        )
        with self._connection() as conn:
            return conn.execute(sql, [cols[n] for n in names] + [contributor_id, ex, ey]).rowcount == 1

    # -----------------------------
    # artifacts

    def create_artifact(self, artifact: Artifact) -> Artifact:
        try:
            with self._connection() as conn:
                conn.execute(
                    """
                    INSERT INTO artifacts
                    (artifact_id, grid_id, x, y, contributor_id, title, description,
                     image_ref, mime, width, height, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        artifact.artifact_id,
                        artifact.grid_id,
                        artifact.position.x,
                        artifact.position.y,
                        artifact.contributor_id,
                        artifact.title,
                        artifact.description,
                        artifact.image_ref,
                        artifact.mime,
                        artifact.width,
                        artifact.height,
                        artifact.created_at,
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise AlreadyOccupied(
                f"Position ({artifact.position.x}, {artifact.position.y}) already has an artifact"
            ) from e
        return artifact

    def get_artifact(self, artifact_id: str) -> Optional[Artifact]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM artifacts WHERE artifact_id = ?", (artifact_id,)).fetchone()
        return _row_to_artifact(row) if row else None

    def find_artifact_at(self, grid_id: str, x: int, y: int) -> Optional[Artifact]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM artifacts WHERE grid_id = ? AND x = ? AND y = ?", (grid_id, x, y)
            ).fetchone()
        return _row_to_artifact(row) if row else None

    def list_artifacts(self, grid_id: str) -> list[Artifact]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM artifacts WHERE grid_id = ? ORDER BY created_at", (grid_id,)
            ).fetchall()
        return [_row_to_artifact(r) for r in rows]

    def delete_artifact(self, artifact_id: str) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM artifacts WHERE artifact_id = ?", (artifact_id,))

    # -----------------------------
    # blobs

    def _resolve_ref(self, ref: str, base: Path) -> Path:
        p = (self.data_root / ref).resolve()
        if base.resolve() not in p.parents:
            raise Invalid(f"Reference {ref!r} escapes {base}")
        return p

    def put_artifact_image(self, artifact_id: str, data: bytes, *, extension: str) -> str:
        filename = f"{artifact_id}.{extension}"
        atomic_write_bytes(self.artworks_dir / filename, data)
        return f"artworks/{filename}"

    def get_artifact_image(self, artifact_id: str) -> bytes:
        artifact = self.get_artifact(artifact_id)
        if artifact is None:
            raise NotFound(f"Artifact {artifact_id} not found")
        path = self._resolve_ref(artifact.image_ref, self.artworks_dir)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NotFound(f"Image for artifact {artifact_id} is missing ({artifact.image_ref})") from e

    def delete_artifact_image(self, image_ref: str) -> None:
        unlink_quietly(self._resolve_ref(image_ref, self.artworks_dir))

    def put_ephemeral(self, data: bytes, *, name: str) -> str:
        atomic_write_bytes(self.templates_dir / name, data)
        return f"templates/{name}"

    def get_ephemeral(self, handle: str) -> bytes:
        path = self._resolve_ref(handle, self.templates_dir)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NotFound(f"Ephemeral {handle} not found") from e

    def prune_ephemeral(self, *, older_than_s: float, now: Optional[float] = None) -> int:
        if not self.templates_dir.is_dir():
            return 0
        cutoff = (time.time() if now is None else now) - older_than_s
        pruned = 0
        for path in self.templates_dir.iterdir():
            try:
                stale = path.is_file() and path.stat().st_mtime < cutoff
            except FileNotFoundError:
                continue  # pruned concurrently
            if stale and unlink_quietly(path):
                pruned += 1
        if pruned:
            logger.info(f"[sqlite_store] pruned {pruned} guide image(s) older than {older_than_s}s")
        return pruned
