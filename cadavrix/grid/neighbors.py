from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Literal, Optional

from cadavrix.grid.errors import Invalid
from cadavrix.grid.model import Cell, Grid, Position

Direction = Literal[
    "topLeft", "top", "topRight",
    "left", "right",
    "bottomLeft", "bottom", "bottomRight",
]

# Fixed enumeration order. Neighbor lists always come out in this order.
OFFSETS: tuple[tuple[Direction, int, int], ...] = (
    ("topLeft", -1, -1),
    ("top", 0, -1),
    ("topRight", 1, -1),
    ("left", -1, 0),
    ("right", 1, 0),
    ("bottomLeft", -1, 1),
    ("bottom", 0, 1),
    ("bottomRight", 1, 1),
)

DIRECTION_BY_OFFSET: Dict[tuple[int, int], Direction] = {(dx, dy): d for d, dx, dy in OFFSETS}

CORNER_DIRECTIONS: frozenset[Direction] = frozenset({"topLeft", "topRight", "bottomLeft", "bottomRight"})
EDGE_DIRECTIONS: frozenset[Direction] = frozenset({"top", "left", "right", "bottom"})


@dataclass(frozen=True)
class Neighbor:
    position: Position
    direction: Direction
    cell: Optional[Cell]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position.to_dict(),
            "direction": self.direction,
            "cell": self.cell.to_dict() if self.cell else None,
        }


def direction_for_offset(dx: int, dy: int) -> Direction:
    try:
        return DIRECTION_BY_OFFSET[(dx, dy)]
    except KeyError:
        raise ValueError(f"Not a Moore-neighborhood offset: ({dx}, {dy})") from None


def neighbor_positions(grid: Grid, x: int, y: int) -> list[tuple[Position, Direction]]:
    if not grid.contains(x, y):
        raise Invalid(f"Position ({x}, {y}) is outside the {grid.width}x{grid.height} grid")
    out: list[tuple[Position, Direction]] = []
    for direction, dx, dy in OFFSETS:
        nx, ny = x + dx, y + dy
        if grid.contains(nx, ny):
            out.append((Position(nx, ny), direction))
    return out


def neighbors_of(grid: Grid, x: int, y: int, cells: Iterable[Cell] = ()) -> list[Neighbor]:
    """
    Up to 8 in-bounds Moore neighbors of (x, y), each labelled with the
    direction it lies in as seen from (x, y).

    Pure: `cells` is a snapshot supplied by the caller; a neighbor position
    with no matching cell in the snapshot gets cell=None.
    """
    index = {(c.x, c.y): c for c in cells}
    return [
        Neighbor(position=p, direction=d, cell=index.get((p.x, p.y)))
        for p, d in neighbor_positions(grid, x, y)
    ]
