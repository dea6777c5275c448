from __future__ import annotations

import logging

from cadavrix.grid.errors import AlreadyOccupied, Invalid, NotFound, NotOwner
from cadavrix.grid.model import ASSIGNED, OCCUPIED, Artifact, Cell, Position
from cadavrix.grid.state_machine import GridStateMachine
from cadavrix.store.canvas_store import CanvasStore

logger = logging.getLogger(__name__)

TITLE_MIN, TITLE_MAX = 3, 200
DESCRIPTION_MIN, DESCRIPTION_MAX = 10, 1000


def validate_artifact(artifact: Artifact, *, grid_id: str, position: Position, contributor_id: str) -> None:
    if artifact.grid_id != grid_id:
        raise Invalid(f"Artifact belongs to grid {artifact.grid_id}, not {grid_id}")
    if artifact.position != position:
        raise Invalid(f"Artifact position {artifact.position} does not match {position}")
    if artifact.contributor_id != contributor_id:
        raise Invalid("Artifact contributor does not match the finalizing contributor")
    if not (TITLE_MIN <= len(artifact.title.strip()) <= TITLE_MAX):
        raise Invalid(f"Title must be {TITLE_MIN}-{TITLE_MAX} characters")
    if not (DESCRIPTION_MIN <= len(artifact.description.strip()) <= DESCRIPTION_MAX):
        raise Invalid(f"Description must be {DESCRIPTION_MIN}-{DESCRIPTION_MAX} characters")
    if not artifact.image_ref:
        raise Invalid("Artifact has no stored image")


def finalize(
    store: CanvasStore,
    grid_id: str,
    position: Position,
    contributor_id: str,
    artifact: Artifact,
) -> Cell:
    """
    assigned -> occupied for the contributor's own cell, binding `artifact`.

    Order matters: the artifact record goes in first (the store allows one
    per position), then the cell CAS keyed on status AND owner. If the CAS
    loses, the artifact record is removed again.
    """
    sm = GridStateMachine(store, grid_id)
    cell = sm.get_cell(position.x, position.y)

    contributor = store.get_contributor(contributor_id)
    if contributor is None:
        raise NotFound(f"Contributor {contributor_id} not found")

    if cell.assigned_to != contributor_id or contributor.held_cell != position:
        raise NotOwner(f"Cell ({position.x}, {position.y}) is not held by {contributor_id}")
    if cell.status == OCCUPIED:
        raise AlreadyOccupied(f"Cell ({position.x}, {position.y}) is already occupied")
    if cell.status != ASSIGNED:
        raise NotOwner(f"Cell ({position.x}, {position.y}) is {cell.status}, not assigned")

    validate_artifact(artifact, grid_id=grid_id, position=position, contributor_id=contributor_id)

    existing = store.find_artifact_at(grid_id, position.x, position.y)
    if existing is not None:
        raise AlreadyOccupied(f"Position ({position.x}, {position.y}) already bound to {existing.artifact_id}")

    store.create_artifact(artifact)

    if not sm.try_occupy(position.x, position.y, contributor_id, artifact.artifact_id):
        store.delete_artifact(artifact.artifact_id)
        raise AlreadyOccupied(f"Cell ({position.x}, {position.y}) changed while finalizing")

    if not store.atomic_update_contributor(contributor_id, position, {"has_submitted": True}):
        # the binding stands; reconciliation picks up the vanished owner
        logger.warning(f"[finalizer] could not flag {contributor_id} as submitted")

    logger.info(
        f"[finalizer] ({position.x}, {position.y}) in grid {grid_id} occupied by artifact {artifact.artifact_id}"
    )
    return sm.get_cell(position.x, position.y)
