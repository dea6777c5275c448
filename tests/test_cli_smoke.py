import json
import subprocess
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]

pytestmark = pytest.mark.integration


def _cli(data_root: Path, *args: str) -> subprocess.CompletedProcess:
    # Call the console script via python -m to avoid PATH issues
    cmd = [sys.executable, "-m", "cadavrix.cli", "--data-root", str(data_root), *args]
    return subprocess.run(cmd, capture_output=True, text=True, cwd=REPO_ROOT)


def test_init_then_stats(tmp_path):
    res = _cli(tmp_path, "init", "--width", "2", "--height", "3", "--title", "Smoke")
    assert res.returncode == 0, res.stderr
    grid = json.loads(res.stdout)
    assert (grid["width"], grid["height"], grid["status"]) == (2, 3, "active")

    res = _cli(tmp_path, "stats")
    assert res.returncode == 0, res.stderr
    stats = json.loads(res.stdout)
    assert (stats["total"], stats["empty"], stats["completion_percentage"]) == (6, 6, 0.0)

    assert (tmp_path / "cadavrix.sqlite3").exists()


def test_second_init_needs_force(tmp_path):
    assert _cli(tmp_path, "init", "--width", "2", "--height", "2").returncode == 0

    res = _cli(tmp_path, "init", "--width", "2", "--height", "2")
    assert res.returncode != 0
    assert "Invalid" in res.stderr

    assert _cli(tmp_path, "init", "--width", "2", "--height", "2", "--force").returncode == 0


def test_template_and_reconcile_dry_run(tmp_path):
    assert _cli(tmp_path, "init", "--width", "2", "--height", "2").returncode == 0

    res = _cli(tmp_path, "template", "1", "1")
    assert res.returncode == 0, res.stderr
    tpl = json.loads(res.stdout)
    assert tpl["fragments_applied_count"] == 0
    assert (tmp_path / tpl["guide_image_handle"]).exists()

    res = _cli(tmp_path, "reconcile")
    assert res.returncode == 0, res.stderr
    assert json.loads(res.stdout)["applied"] is False


def test_out_of_bounds_cell_fails(tmp_path):
    assert _cli(tmp_path, "init", "--width", "2", "--height", "2").returncode == 0
    res = _cli(tmp_path, "cell", "5", "5")
    assert res.returncode != 0
    assert "Invalid" in res.stderr
