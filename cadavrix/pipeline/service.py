# cadavrix/pipeline/service.py
from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cadavrix.config import CanvasConfig
from cadavrix.geometry.seam_score import seam_report
from cadavrix.geometry.template_layout import DEFAULT_LAYOUT, TemplateLayout
from cadavrix.grid import admin
from cadavrix.grid.allocator import Assignment, assign_random_cell
from cadavrix.grid.authz import Principal, require
from cadavrix.grid.errors import Invalid, NotFound
from cadavrix.grid.finalizer import finalize
from cadavrix.grid.model import Artifact, Cell, Contributor, Grid, Position, utc_now_iso
from cadavrix.grid.neighbors import Neighbor, neighbors_of
from cadavrix.grid.reconcile import ReconcileReport, reconcile
from cadavrix.grid.state_machine import GridStateMachine, GridStatistics
from cadavrix.imaging.regions import decode, encode, normalize_artwork
from cadavrix.store.canvas_store import CanvasStore
from cadavrix.template.compositor import TemplateResult, generate_template

logger = logging.getLogger(__name__)

_MIME_BY_FORMAT = {"WEBP": "image/webp", "PNG": "image/png", "JPEG": "image/jpeg"}


@dataclass(frozen=True)
class CellDetail:
    cell: Cell
    artifact: Optional[Artifact]

    def to_dict(self) -> Dict[str, Any]:
        d = self.cell.to_dict()
        d["artifact"] = self.artifact.to_dict() if self.artifact else None
        return d


class CanvasService:
    """
    One entry point per user-facing operation, with the capability check in
    front of it. Transport layers (HTTP, CLI) call this and serialize the
    results with to_dict().
    """

    def __init__(
        self,
        store: CanvasStore,
        config: Optional[CanvasConfig] = None,
        *,
        rng: Optional[random.Random] = None,
        layout: TemplateLayout = DEFAULT_LAYOUT,
    ):
        self.store = store
        self.config = config or CanvasConfig.from_env()
        self.rng = rng
        self.layout = layout

    # -----------------------------
    # contributors

    def register_contributor(self, principal: Principal, name: str) -> Contributor:
        existing = self.store.get_contributor(principal.contributor_id)
        if existing is not None:
            return existing
        return self.store.create_contributor(
            Contributor(contributor_id=principal.contributor_id, name=name, role=principal.role)
        )

    # -----------------------------
    # reads

    def active_grid(self) -> Grid:
        grid = self.store.find_grid("active")
        if grid is None:
            raise NotFound("No active grid")
        return grid

    def statistics(self, grid_id: str) -> GridStatistics:
        return GridStateMachine(self.store, grid_id).statistics()

    def cell_detail(self, grid_id: str, x: int, y: int) -> CellDetail:
        cell = GridStateMachine(self.store, grid_id).get_cell(x, y)
        artifact = self.store.get_artifact(cell.artifact_id) if cell.artifact_id else None
        return CellDetail(cell=cell, artifact=artifact)

    def neighbors(self, grid_id: str, x: int, y: int) -> list[Neighbor]:
        sm = GridStateMachine(self.store, grid_id)
        return neighbors_of(sm.grid, x, y, sm.cells())

    def seam_report(self, grid_id: str, x: int, y: int) -> Dict[str, float]:
        return dict(seam_report(self.store, grid_id, x, y, layout=self.layout))

    # -----------------------------
    # contributor flow

    def assign(self, principal: Principal, grid_id: str) -> Assignment:
        require(principal, "can_claim")
        return assign_random_cell(
            self.store,
            grid_id,
            principal.contributor_id,
            rng=self.rng,
            max_attempts=self.config.assign_max_attempts,
        )

    def template(
        self,
        principal: Principal,
        grid_id: str,
        x: Optional[int] = None,
        y: Optional[int] = None,
    ) -> TemplateResult:
        """
        Guide image for the principal's held cell. Administrators may render
        any position.
        """
        caps = require(principal, "can_claim")
        if x is None or y is None:
            contributor = self.store.get_contributor(principal.contributor_id)
            if contributor is None or contributor.held_cell is None:
                raise Invalid(f"{principal.contributor_id} holds no cell; pass a position")
            x, y = contributor.held_cell.x, contributor.held_cell.y

        return generate_template(
            self.store,
            grid_id,
            x,
            y,
            contributor_id=None if caps.can_administer else principal.contributor_id,
            config=self.config,
            layout=self.layout,
        )

    def submit_artwork(
        self,
        principal: Principal,
        grid_id: str,
        x: int,
        y: int,
        image_bytes: bytes,
        *,
        title: str,
        description: str,
    ) -> Cell:
        require(principal, "can_finalize")

        img = normalize_artwork(decode(image_bytes), self.layout)
        data = encode(img, self.config.template_format, self.config.template_quality)

        artifact_id = uuid.uuid4().hex
        image_ref = self.store.put_artifact_image(artifact_id, data, extension=self.config.template_extension)
        artifact = Artifact(
            artifact_id=artifact_id,
            grid_id=grid_id,
            position=Position(x, y),
            contributor_id=principal.contributor_id,
            title=title.strip(),
            description=description.strip(),
            image_ref=image_ref,
            mime=_MIME_BY_FORMAT.get(self.config.template_format, "application/octet-stream"),
            width=img.width,
            height=img.height,
            created_at=utc_now_iso(),
        )
        try:
            return finalize(self.store, grid_id, Position(x, y), principal.contributor_id, artifact)
        except Exception:
            self.store.delete_artifact_image(image_ref)
            raise

    # -----------------------------
    # administration

    def initialize_grid(
        self,
        principal: Principal,
        width: int = 10,
        height: int = 10,
        *,
        title: str = "Untitled canvas",
        description: str = "",
        archive_active: bool = False,
    ) -> Grid:
        require(principal, "can_administer")
        return admin.initialize_grid(
            self.store, width, height, title=title, description=description, archive_active=archive_active
        )

    def complete_grid(self, principal: Principal, grid_id: str) -> Grid:
        require(principal, "can_administer")
        return admin.complete_grid(self.store, grid_id)

    def release(self, principal: Principal, grid_id: str, x: int, y: int) -> Cell:
        require(principal, "can_administer")
        return admin.release_cell(self.store, grid_id, x, y)

    def reconcile(self, principal: Principal, grid_id: str, *, apply: bool = False) -> ReconcileReport:
        require(principal, "can_administer")
        return reconcile(self.store, grid_id, apply=apply)
