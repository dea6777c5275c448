import time

import pytest

from cadavrix.grid.errors import AlreadyOccupied, Invalid, NotFound
from cadavrix.grid.model import Artifact, Grid, Position


def _artifact(artifact_id: str) -> Artifact:
    return Artifact(
        artifact_id=artifact_id,
        grid_id="g",
        position=Position(0, 0),
        contributor_id="alice",
        title="Title",
        description="Description",
        image_ref="",
    )


def test_second_active_grid_is_invalid(memory_store):
    memory_store.create_grid(Grid("a", 2, 2))
    with pytest.raises(Invalid):
        memory_store.create_grid(Grid("b", 2, 2))


def test_cells_created_row_major(memory_store):
    memory_store.create_grid(Grid("g", 3, 2))
    assert [(c.x, c.y) for c in memory_store.list_cells("g")] == [(0, 0), (1, 0), (2, 0), (0, 1), (1, 1), (2, 1)]


def test_unknown_cas_field(memory_store):
    memory_store.create_grid(Grid("g", 1, 1))
    with pytest.raises(ValueError):
        memory_store.atomic_update_cell("g", 0, 0, "empty", {"title": "x"})


def test_cas_on_missing_cell_loses(memory_store):
    memory_store.create_grid(Grid("g", 1, 1))
    assert memory_store.atomic_update_cell("g", 5, 5, "empty", {"status": "assigned"}) is False


def test_duplicate_position(memory_store):
    memory_store.create_artifact(_artifact("a1"))
    with pytest.raises(AlreadyOccupied):
        memory_store.create_artifact(_artifact("a2"))


def test_blob_refs(memory_store):
    ref = memory_store.put_artifact_image("a1", b"png", extension="png")
    assert ref == "mem://artworks/a1.png"
    with pytest.raises(NotFound):
        memory_store.get_artifact_image("a1")  # no artifact record yet

    handle = memory_store.put_ephemeral(b"tpl", name="template-0-0-5.webp")
    assert memory_store.get_ephemeral(handle) == b"tpl"


def test_prune_ephemeral_drops_only_stale_images(memory_store):
    handle = memory_store.put_ephemeral(b"tpl", name="template-0-0-5.webp")
    later = time.time() + 10

    assert memory_store.prune_ephemeral(older_than_s=60, now=later) == 0
    assert memory_store.get_ephemeral(handle) == b"tpl"

    assert memory_store.prune_ephemeral(older_than_s=5, now=later) == 1
    with pytest.raises(NotFound):
        memory_store.get_ephemeral(handle)
