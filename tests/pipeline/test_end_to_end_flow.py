from __future__ import annotations

import random

import pytest

from cadavrix.config import CanvasConfig
from cadavrix.geometry.template_layout import TemplateLayout
from cadavrix.grid.authz import Principal
from cadavrix.grid.errors import AlreadyOccupied, Invalid, NoCapacity, NotAuthorized, NotOwner
from cadavrix.pipeline.service import CanvasService

from conftest import solid_png

ADMIN = Principal("root", role="admin")
LAYOUT = TemplateLayout(center_px=200, border_px=10)


@pytest.fixture
def service(store) -> CanvasService:
    config = CanvasConfig(template_format="PNG", neighbor_timeout_s=5.0)
    return CanvasService(store, config, rng=random.Random(1), layout=LAYOUT)


def test_two_by_two_canvas_end_to_end(service, store):
    grid = service.initialize_grid(ADMIN, 2, 2, title="Four corners", description="end to end")
    artists = [Principal(f"artist-{i}") for i in range(4)]
    colors = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (255, 255, 0)]

    for i, (artist, color) in enumerate(zip(artists, colors)):
        service.register_contributor(artist, artist.contributor_id)
        pos = service.assign(artist, grid.grid_id).position

        tpl = service.template(artist, grid.grid_id)
        assert tpl.position == pos
        # every earlier artwork on a 2x2 grid is a neighbor
        assert tpl.fragments_applied == i

        cell = service.submit_artwork(
            artist,
            grid.grid_id,
            pos.x,
            pos.y,
            solid_png(color),
            title=f"Panel {i}",
            description="a flat colour field",
        )
        assert cell.status == "occupied"

    stats = service.statistics(grid.grid_id)
    assert (stats.occupied, stats.total, stats.completion_percentage) == (4, 4, 100.0)

    occupied = [c for c in store.list_cells(grid.grid_id) if c.status == "occupied"]
    artifacts = store.list_artifacts(grid.grid_id)
    assert len(occupied) == len(artifacts)
    assert {c.artifact_id for c in occupied} == {a.artifact_id for a in artifacts}
    assert all(a.width == a.height == LAYOUT.center_px for a in artifacts)

    late = Principal("late")
    service.register_contributor(late, "Late")
    with pytest.raises(NoCapacity):
        service.assign(late, grid.grid_id)

    assert service.reconcile(ADMIN, grid.grid_id).clean
    assert service.complete_grid(ADMIN, grid.grid_id).status == "completed"


def test_two_by_two_fills_with_four_claims(service, store):
    grid = service.initialize_grid(ADMIN, 2, 2, title="Four claims")
    artists = [Principal(f"artist-{i}") for i in range(5)]
    for artist in artists:
        service.register_contributor(artist, artist.contributor_id)

    positions = {service.assign(artist, grid.grid_id).position for artist in artists[:4]}
    assert len(positions) == 4

    with pytest.raises(NoCapacity):
        service.assign(artists[4], grid.grid_id)
    assert store.get_contributor(artists[4].contributor_id).held_cell is None

    stats = service.statistics(grid.grid_id)
    assert (stats.empty, stats.assigned, stats.occupied) == (0, 4, 0)
    assert stats.completion_percentage == 0.0


def test_submission_by_non_owner_leaves_no_trace(service, store):
    grid = service.initialize_grid(ADMIN, 2, 1, title="Pair")
    alice, mallory = Principal("alice"), Principal("mallory")
    service.register_contributor(alice, "Alice")
    service.register_contributor(mallory, "Mallory")
    pos = service.assign(alice, grid.grid_id).position

    with pytest.raises(NotOwner):
        service.submit_artwork(
            mallory, grid.grid_id, pos.x, pos.y, solid_png((1, 2, 3)), title="Stolen", description="not my cell"
        )

    assert service.cell_detail(grid.grid_id, pos.x, pos.y).cell.status == "assigned"
    assert store.list_artifacts(grid.grid_id) == []


def test_double_submit_is_already_occupied(service, store):
    grid = service.initialize_grid(ADMIN, 1, 1, title="Solo")
    alice = Principal("alice")
    service.register_contributor(alice, "Alice")
    service.assign(alice, grid.grid_id)

    kwargs = dict(title="First try", description="the one that counts")
    service.submit_artwork(alice, grid.grid_id, 0, 0, solid_png((9, 9, 9)), **kwargs)
    with pytest.raises(AlreadyOccupied):
        service.submit_artwork(alice, grid.grid_id, 0, 0, solid_png((8, 8, 8)), **kwargs)

    detail = service.cell_detail(grid.grid_id, 0, 0).to_dict()
    assert detail["status"] == "occupied"
    assert detail["artifact"]["title"] == "First try"


def test_undecodable_upload_is_invalid(service):
    grid = service.initialize_grid(ADMIN, 1, 1, title="Solo")
    alice = Principal("alice")
    service.register_contributor(alice, "Alice")
    service.assign(alice, grid.grid_id)

    with pytest.raises(Invalid):
        service.submit_artwork(alice, grid.grid_id, 0, 0, b"\x00\x01", title="Broken", description="not an image")


def test_artists_cannot_administer(service):
    with pytest.raises(NotAuthorized):
        service.initialize_grid(Principal("alice"), 2, 2, title="Mine")


def test_template_without_held_cell_needs_position(service):
    grid = service.initialize_grid(ADMIN, 2, 2, title="Preview")
    alice = Principal("alice")
    service.register_contributor(alice, "Alice")
    with pytest.raises(Invalid):
        service.template(alice, grid.grid_id)

    # administrators may preview any position
    assert service.template(ADMIN, grid.grid_id, 1, 1).fragments_applied == 0


def test_neighbors_and_active_grid(service):
    grid = service.initialize_grid(ADMIN, 3, 3, title="Nine")
    assert service.active_grid().grid_id == grid.grid_id
    assert len(service.neighbors(grid.grid_id, 0, 0)) == 3
