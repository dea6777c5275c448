from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _fsync_dir(dirpath: Path) -> None:
    """
    Best-effort directory fsync so the rename itself is durable.
    """
    try:
        fd = os.open(str(dirpath), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def atomic_write_bytes(path: PathLike, data: bytes) -> Path:
    """
    Atomically replace `path` with `data`:
      - write temp file next to the destination
      - fsync temp
      - os.replace into place
      - fsync directory (best-effort)

    Readers see either the previous file or the complete new one, never a
    partially written image.
    """
    dst = Path(path)
    dst.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(dir=str(dst.parent), prefix=dst.name + ".", suffix=".tmp", delete=False) as f:
        tmp_path = Path(f.name)
        try:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        except OSError:
            f.close()
            tmp_path.unlink(missing_ok=True)
            raise

    os.replace(tmp_path, dst)
    _fsync_dir(dst.parent)
    logger.debug(f"[atomic_write] wrote {dst} ({len(data)} bytes)")
    return dst


def unlink_quietly(path: PathLike) -> bool:
    try:
        Path(path).unlink()
    except FileNotFoundError:
        return False
    return True
