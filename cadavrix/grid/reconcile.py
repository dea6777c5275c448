from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from cadavrix.grid.admin import clear_owner
from cadavrix.grid.model import ASSIGNED, OCCUPIED, Artifact, Position
from cadavrix.grid.state_machine import GridStateMachine
from cadavrix.store.canvas_store import CanvasStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    grid_id: str
    applied: bool
    orphan_artifacts: list[str] = field(default_factory=list)
    unbound_artifacts: list[str] = field(default_factory=list)
    rebound_artifacts: list[str] = field(default_factory=list)
    reset_cells: list[Position] = field(default_factory=list)
    released_contributors: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not (self.orphan_artifacts or self.unbound_artifacts or self.rebound_artifacts or self.reset_cells)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grid_id": self.grid_id,
            "applied": self.applied,
            "orphan_artifacts": list(self.orphan_artifacts),
            "unbound_artifacts": list(self.unbound_artifacts),
            "rebound_artifacts": list(self.rebound_artifacts),
            "reset_cells": [p.to_dict() for p in self.reset_cells],
            "released_contributors": list(self.released_contributors),
        }


def _drop_artifact(store: CanvasStore, artifact: Artifact) -> None:
    store.delete_artifact(artifact.artifact_id)
    store.delete_artifact_image(artifact.image_ref)


def reconcile(store: CanvasStore, grid_id: str, *, apply: bool = False) -> ReconcileReport:
    """
    Re-derive cell state from what actually exists instead of trusting the
    cell table:

      1. artifacts whose contributor is gone are orphans: drop them and
         reset their cell to empty
      2. occupied cells with no (surviving) artifact go back to empty and
         their owner, if still around, may claim again
      3. assigned cells whose contributor is gone go back to empty
      4. artifacts the cell does not point at (an interrupted finalize) are
         bound when the owner still holds the cell, otherwise dropped

    Dry run unless apply=True. Administrative: assumes no contributor
    traffic is being served while it runs.
    """
    sm = GridStateMachine(store, grid_id)
    sm.grid  # NotFound early
    report = ReconcileReport(grid_id=grid_id, applied=apply)

    artifacts = store.list_artifacts(grid_id)
    live: dict[str, Artifact] = {}
    for a in artifacts:
        if store.get_contributor(a.contributor_id) is None:
            report.orphan_artifacts.append(a.artifact_id)
            logger.warning(
                f"[reconcile] orphan artifact {a.artifact_id} at ({a.position.x}, {a.position.y}): "
                f"contributor {a.contributor_id} no longer exists"
            )
            if apply:
                _drop_artifact(store, a)
        else:
            live[a.artifact_id] = a

    bound: set[str] = set()
    for c in sm.cells():
        if c.status == OCCUPIED:
            if c.artifact_id in live:
                bound.add(c.artifact_id)
                continue
            report.reset_cells.append(c.position)
            if apply and sm.reset_cell(c.x, c.y, OCCUPIED):
                # a surviving owner would otherwise still point at the freed cell
                if clear_owner(store, c):
                    report.released_contributors.append(c.assigned_to)
        elif c.status == ASSIGNED and store.get_contributor(c.assigned_to) is None:
            report.reset_cells.append(c.position)
            if apply:
                sm.reset_cell(c.x, c.y, ASSIGNED, expected_owner=c.assigned_to)

    for artifact_id, a in live.items():
        if artifact_id in bound:
            continue
        cell = store.get_cell(grid_id, a.position.x, a.position.y)
        owner = store.get_contributor(a.contributor_id)
        can_bind = (
            cell is not None
            and cell.status == ASSIGNED
            and cell.assigned_to == a.contributor_id
            and owner is not None
            and owner.held_cell == a.position
        )
        if can_bind:
            report.rebound_artifacts.append(artifact_id)
            if apply and sm.try_occupy(a.position.x, a.position.y, a.contributor_id, artifact_id):
                store.atomic_update_contributor(a.contributor_id, a.position, {"has_submitted": True})
        else:
            report.unbound_artifacts.append(artifact_id)
            if apply:
                _drop_artifact(store, a)

    logger.info(
        f"[reconcile] grid {grid_id}: {len(report.orphan_artifacts)} orphan, "
        f"{len(report.unbound_artifacts)} unbound, {len(report.rebound_artifacts)} rebound, "
        f"{len(report.reset_cells)} cells reset (applied={apply})"
    )
    return report
