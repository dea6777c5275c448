import os
from pathlib import Path

# resolve project root assuming this file lives in cadavrix/paths.py
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# everything the canvas writes lives under one data root
DATA_ROOT = Path(os.environ.get("CADAVRIX_DATA_ROOT", PROJECT_ROOT / "_data"))

# subdirectories
ARTWORKS_DIR = DATA_ROOT / "artworks"
TEMPLATES_DIR = DATA_ROOT / "templates"  # ephemeral guide images

DATABASE_PATH = DATA_ROOT / "cadavrix.sqlite3"


def ensure_dirs():
    dirs = [
        DATA_ROOT,
        ARTWORKS_DIR,
        TEMPLATES_DIR,
    ]

    for d in dirs:
        d.mkdir(parents=True, exist_ok=True)
