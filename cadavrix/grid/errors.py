from __future__ import annotations


class CanvasError(RuntimeError):
    """Base class for grid allocation / finalization failures."""


class NotFound(CanvasError):
    """Grid, cell, contributor or artifact is absent."""


class Invalid(CanvasError):
    """Out-of-bounds position, inactive grid, or malformed artifact."""


class AlreadyHeld(CanvasError):
    """Contributor already owns a cell."""

    def __init__(self, message: str, *, position: tuple[int, int] | None = None) -> None:
        super().__init__(message)
        self.position = position


class RetryableAllocationError(CanvasError):
    """Allocation failed for a reason a client may retry later."""


class NoCapacity(RetryableAllocationError):
    """No empty cells left in the grid."""


class Contention(RetryableAllocationError):
    """Every compare-and-swap attempt lost to a concurrent claim."""


class NotOwner(CanvasError):
    """Cell is not held by the contributor acting on it."""


class AlreadyOccupied(CanvasError):
    """Position already bound to an artifact (double submission race)."""


class NotAuthorized(CanvasError):
    """Principal lacks the capability for this operation."""
