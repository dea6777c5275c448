from __future__ import annotations

import random
import threading

import pytest

from cadavrix.grid import admin
from cadavrix.grid.allocator import assign_random_cell
from cadavrix.grid.errors import AlreadyHeld, Invalid, NoCapacity, NotFound, RetryableAllocationError


def test_assign_marks_cell_and_contributor(store, make_grid, add_contributor):
    grid = make_grid(3, 3)
    alice = add_contributor("alice")

    a = assign_random_cell(store, grid.grid_id, alice.contributor_id, rng=random.Random(7))

    assert a.cell.status == "assigned"
    assert a.cell.assigned_to == "alice"
    assert store.get_contributor("alice").held_cell == a.position
    assert a.to_dict()["position"] == {"x": a.position.x, "y": a.position.y}


def test_second_claim_raises_already_held_with_position(store, make_grid, add_contributor):
    grid = make_grid(3, 3)
    add_contributor("alice")
    first = assign_random_cell(store, grid.grid_id, "alice")

    with pytest.raises(AlreadyHeld) as ei:
        assign_random_cell(store, grid.grid_id, "alice")
    assert ei.value.position == (first.position.x, first.position.y)


def test_full_grid_raises_no_capacity(store, make_grid, add_contributor):
    grid = make_grid(1, 1)
    add_contributor("alice")
    add_contributor("bob")
    assign_random_cell(store, grid.grid_id, "alice")

    with pytest.raises(NoCapacity):
        assign_random_cell(store, grid.grid_id, "bob")
    assert store.get_contributor("bob").held_cell is None


def test_no_capacity_is_retryable():
    assert issubclass(NoCapacity, RetryableAllocationError)


def test_unknown_contributor_is_not_found(store, make_grid):
    grid = make_grid(2, 2)
    with pytest.raises(NotFound):
        assign_random_cell(store, grid.grid_id, "ghost")


def test_inactive_grid_is_invalid(store, make_grid, add_contributor):
    grid = make_grid(2, 2)
    add_contributor("alice")
    admin.archive_grid(store, grid.grid_id)

    with pytest.raises(Invalid):
        assign_random_cell(store, grid.grid_id, "alice")


def test_parallel_claims_never_share_a_cell(store, make_grid, add_contributor):
    grid = make_grid(3, 3)  # M = 9
    n = 20
    ids = [add_contributor(f"artist-{i}").contributor_id for i in range(n)]

    barrier = threading.Barrier(n)
    wins: list = []
    failures: list = []
    lock = threading.Lock()

    def claim(cid: str) -> None:
        barrier.wait()
        try:
            # more attempts than cells: every loss removes one empty cell
            a = assign_random_cell(store, grid.grid_id, cid, max_attempts=grid.total_cells + 1)
        except Exception as e:
            with lock:
                failures.append(e)
        else:
            with lock:
                wins.append((cid, a.position))

    threads = [threading.Thread(target=claim, args=(cid,)) for cid in ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(wins) == grid.total_cells
    assert len({p for _, p in wins}) == grid.total_cells
    assert len(failures) == n - grid.total_cells
    assert all(isinstance(e, RetryableAllocationError) for e in failures)

    for cid, p in wins:
        assert store.get_cell(grid.grid_id, p.x, p.y).assigned_to == cid
        assert store.get_contributor(cid).held_cell == p
