from __future__ import annotations

import io
import uuid
from typing import Callable, Tuple

import numpy as np
import pytest
from PIL import Image

from cadavrix.config import CanvasConfig
from cadavrix.grid import admin
from cadavrix.grid.model import OCCUPIED, Artifact, Contributor, Grid, Position, utc_now_iso
from cadavrix.store.memory_store import MemoryCanvasStore
from cadavrix.store.sqlite_store import SQLiteCanvasStore


@pytest.fixture
def memory_store() -> MemoryCanvasStore:
    return MemoryCanvasStore()


@pytest.fixture
def sqlite_store(tmp_path) -> SQLiteCanvasStore:
    return SQLiteCanvasStore(data_root=tmp_path / "data")


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Every store implementation; tests using this run once per backend."""
    if request.param == "memory":
        return MemoryCanvasStore()
    return SQLiteCanvasStore(data_root=tmp_path / "data")


@pytest.fixture
def png_config() -> CanvasConfig:
    # lossless, so pixel assertions on templates are exact
    return CanvasConfig(template_format="PNG", neighbor_timeout_s=5.0)


@pytest.fixture
def make_grid(store) -> Callable[..., Grid]:
    def _make(width: int = 3, height: int = 3) -> Grid:
        return admin.initialize_grid(
            store, width, height, title="Test canvas", description="fixture grid", archive_active=True
        )

    return _make


@pytest.fixture
def add_contributor(store) -> Callable[..., Contributor]:
    def _add(contributor_id: str | None = None, *, role: str = "artist") -> Contributor:
        cid = contributor_id or f"artist-{uuid.uuid4().hex[:8]}"
        return store.create_contributor(Contributor(contributor_id=cid, name=cid, role=role))  # type: ignore[arg-type]

    return _add


def solid_png(color: Tuple[int, int, int], size: Tuple[int, int] = (64, 64)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def patterned_image(size: int) -> Image.Image:
    """
    Deterministic RGB image with a strong spatial pattern.
    Every pixel differs from its neighbours, so off-by-one crops show up.
    """
    y, x = np.indices((size, size))
    arr = np.stack(
        [(x * 37 + y * 17) % 256, (x * 13 + y * 53) % 256, (x * 97 + y * 19) % 256],
        axis=-1,
    ).astype(np.uint8)
    return Image.fromarray(arr)


def occupy_with_image(store, grid_id: str, x: int, y: int, image: Image.Image, *, fmt: str = "PNG") -> Artifact:
    """
    Put (x, y) straight into the occupied state with `image` as its artwork,
    bypassing the contributor flow.
    """
    owner = store.create_contributor(
        Contributor(contributor_id=f"owner-{x}-{y}-{uuid.uuid4().hex[:6]}", name="owner", held_cell=Position(x, y))
    )
    buf = io.BytesIO()
    image.save(buf, format=fmt)
    artifact_id = uuid.uuid4().hex
    ref = store.put_artifact_image(artifact_id, buf.getvalue(), extension=fmt.lower())
    artifact = store.create_artifact(
        Artifact(
            artifact_id=artifact_id,
            grid_id=grid_id,
            position=Position(x, y),
            contributor_id=owner.contributor_id,
            title="fixture",
            description="fixture artwork",
            image_ref=ref,
            mime=f"image/{fmt.lower()}",
            width=image.width,
            height=image.height,
            created_at=utc_now_iso(),
        )
    )
    assert store.atomic_update_cell(
        grid_id, x, y, "empty", {"status": OCCUPIED, "assigned_to": owner.contributor_id, "artifact_id": artifact_id}
    )
    return artifact
