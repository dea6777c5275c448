from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

CellStatus = Literal["empty", "assigned", "occupied"]
GridStatus = Literal["active", "completed", "archived"]
Role = Literal["artist", "admin"]

EMPTY: CellStatus = "empty"
ASSIGNED: CellStatus = "assigned"
OCCUPIED: CellStatus = "occupied"

MIN_GRID_SIDE = 1
MAX_GRID_SIDE = 20


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True, order=True)
class Position:
    x: int
    y: int

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Position":
        return cls(x=int(d["x"]), y=int(d["y"]))


@dataclass(frozen=True)
class Cell:
    x: int
    y: int
    status: CellStatus = EMPTY

    # set on empty -> assigned, cleared only by a release/reset
    assigned_to: Optional[str] = None

    # set on assigned -> occupied
    artifact_id: Optional[str] = None

    # ISO-8601 UTC
    assigned_at: Optional[str] = None

    @property
    def position(self) -> Position:
        return Position(self.x, self.y)

    def emptied(self) -> "Cell":
        return replace(self, status=EMPTY, assigned_to=None, artifact_id=None, assigned_at=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position.to_dict(),
            "status": self.status,
            "assigned_to": self.assigned_to,
            "artifact_id": self.artifact_id,
            "assigned_at": self.assigned_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Cell":
        pos = Position.from_dict(d["position"])
        return cls(
            x=pos.x,
            y=pos.y,
            status=d.get("status", EMPTY),
            assigned_to=d.get("assigned_to"),
            artifact_id=d.get("artifact_id"),
            assigned_at=d.get("assigned_at"),
        )


@dataclass(frozen=True)
class Grid:
    grid_id: str
    width: int
    height: int
    status: GridStatus = "active"
    title: str = "Untitled canvas"
    description: str = ""
    created_at: str = ""

    @property
    def total_cells(self) -> int:
        return self.width * self.height

    def contains(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def positions(self) -> list[Position]:
        # row-major, same order cells are created in
        return [Position(x, y) for y in range(self.height) for x in range(self.width)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grid_id": self.grid_id,
            "title": self.title,
            "description": self.description,
            "width": self.width,
            "height": self.height,
            "total_cells": self.total_cells,
            "status": self.status,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class Contributor:
    contributor_id: str
    name: str
    role: Role = "artist"

    # the single "my cell" attribute
    held_cell: Optional[Position] = None
    has_submitted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contributor_id": self.contributor_id,
            "name": self.name,
            "role": self.role,
            "held_cell": self.held_cell.to_dict() if self.held_cell else None,
            "has_submitted": self.has_submitted,
        }


@dataclass(frozen=True)
class Artifact:
    artifact_id: str
    grid_id: str
    position: Position
    contributor_id: str
    title: str
    description: str
    image_ref: str
    mime: str = "image/webp"
    width: int = 0
    height: int = 0
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "artifact_id": self.artifact_id,
            "grid_id": self.grid_id,
            "position": self.position.to_dict(),
            "contributor_id": self.contributor_id,
            "title": self.title,
            "description": self.description,
            "image_ref": self.image_ref,
            "mime": self.mime,
            "width": self.width,
            "height": self.height,
            "created_at": self.created_at,
        }
