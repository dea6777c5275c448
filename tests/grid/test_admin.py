from __future__ import annotations

import pytest
from PIL import Image

from cadavrix.grid import admin
from cadavrix.grid.allocator import assign_random_cell
from cadavrix.grid.errors import Invalid, NotFound
from cadavrix.store.memory_store import MemoryCanvasStore

from conftest import occupy_with_image


@pytest.mark.parametrize("width,height", [(0, 5), (5, 0), (21, 5), (5, 21)])
def test_initialize_rejects_bad_dimensions(store, width, height):
    with pytest.raises(Invalid):
        admin.initialize_grid(store, width, height, title="Bad")


def test_initialize_creates_all_cells_empty(store):
    grid = admin.initialize_grid(store, 4, 3, title="Fresh", description="four by three")
    cells = store.list_cells(grid.grid_id)
    assert len(cells) == 12
    assert {c.status for c in cells} == {"empty"}
    assert store.find_grid("active").grid_id == grid.grid_id


def test_second_active_grid_requires_archive(store):
    first = admin.initialize_grid(store, 2, 2, title="First")
    with pytest.raises(Invalid):
        admin.initialize_grid(store, 2, 2, title="Second")

    second = admin.initialize_grid(store, 2, 2, title="Second", archive_active=True)
    assert store.get_grid(first.grid_id).status == "archived"
    assert store.find_grid("active").grid_id == second.grid_id


def test_complete_requires_every_cell_occupied(store, make_grid):
    grid = make_grid(2, 1)
    occupy_with_image(store, grid.grid_id, 0, 0, Image.new("RGB", (8, 8), "red"))
    with pytest.raises(Invalid):
        admin.complete_grid(store, grid.grid_id)

    occupy_with_image(store, grid.grid_id, 1, 0, Image.new("RGB", (8, 8), "blue"))
    done = admin.complete_grid(store, grid.grid_id)
    assert done.status == "completed"


def test_archive_unknown_grid(store):
    with pytest.raises(NotFound):
        admin.archive_grid(store, "nope")


def test_release_assigned_cell_frees_owner(store, make_grid, add_contributor):
    grid = make_grid(2, 2)
    add_contributor("alice")
    pos = assign_random_cell(store, grid.grid_id, "alice").position

    cell = admin.release_cell(store, grid.grid_id, pos.x, pos.y)
    assert cell.status == "empty"
    assert store.get_contributor("alice").held_cell is None

    # may claim again
    assign_random_cell(store, grid.grid_id, "alice")


def test_release_occupied_cell_drops_artwork(store, make_grid):
    grid = make_grid(2, 2)
    art = occupy_with_image(store, grid.grid_id, 1, 1, Image.new("RGB", (8, 8), "green"))

    admin.release_cell(store, grid.grid_id, 1, 1)
    assert store.get_cell(grid.grid_id, 1, 1).status == "empty"
    assert store.get_artifact(art.artifact_id) is None
    owner = store.get_contributor(art.contributor_id)
    assert owner.held_cell is None
    assert owner.has_submitted is False


class _ResetLosingStore(MemoryCanvasStore):
    """Every reset back to empty loses its compare-and-swap."""

    def atomic_update_cell(self, grid_id, x, y, expected_status, fields, *, expected_owner=None):
        if fields.get("status") == "empty":
            return False
        return super().atomic_update_cell(grid_id, x, y, expected_status, fields, expected_owner=expected_owner)


def test_release_that_loses_the_reset_keeps_the_artwork():
    store = _ResetLosingStore()
    grid = admin.initialize_grid(store, 2, 2, title="Contended")
    art = occupy_with_image(store, grid.grid_id, 0, 0, Image.new("RGB", (8, 8), "green"))

    with pytest.raises(Invalid):
        admin.release_cell(store, grid.grid_id, 0, 0)

    cell = store.get_cell(grid.grid_id, 0, 0)
    assert (cell.status, cell.artifact_id) == ("occupied", art.artifact_id)
    assert store.get_artifact(art.artifact_id) is not None
    assert store.get_artifact_image(art.artifact_id)
    assert store.get_contributor(art.contributor_id).held_cell == cell.position
