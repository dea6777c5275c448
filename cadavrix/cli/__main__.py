# cadavrix/cli/__main__.py
from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from cadavrix.config import CanvasConfig
from cadavrix.grid.authz import Principal
from cadavrix.grid.errors import CanvasError
from cadavrix.pipeline.service import CanvasService
from cadavrix.store.sqlite_store import SQLiteCanvasStore

# command-line operator acts as an administrator
CLI_PRINCIPAL = Principal(contributor_id="cli-admin", role="admin")


def _emit(obj: Any) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True))


def _grid_id(service: CanvasService, explicit: Optional[str]) -> str:
    return explicit or service.active_grid().grid_id


def _add_position(p: argparse.ArgumentParser) -> None:
    p.add_argument("x", type=int)
    p.add_argument("y", type=int)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="python -m cadavrix.cli")
    p.add_argument("--data-root", type=str, default=None, help="Directory holding the database and images.")
    p.add_argument("--grid", type=str, default=None, help="Grid id (default: the active grid).")

    sub = p.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Create a new active grid.")
    init.add_argument("--width", type=int, default=10)
    init.add_argument("--height", type=int, default=10)
    init.add_argument("--title", type=str, default="Untitled canvas")
    init.add_argument("--description", type=str, default="")
    init.add_argument("--force", action="store_true", help="Archive the current active grid first.")

    sub.add_parser("stats", help="Cell counts and completion percentage.")

    cell = sub.add_parser("cell", help="Show one cell and its artwork.")
    _add_position(cell)

    nb = sub.add_parser("neighbors", help="List the neighbors of a cell.")
    _add_position(nb)

    tpl = sub.add_parser("template", help="Render the guide image for a position.")
    _add_position(tpl)

    seams = sub.add_parser("seams", help="Seam continuity scores for an occupied cell.")
    _add_position(seams)

    rel = sub.add_parser("release", help="Reset a cell to empty and free its owner.")
    _add_position(rel)

    rec = sub.add_parser("reconcile", help="Re-derive cell state from stored artworks.")
    rec.add_argument("--force", action="store_true", help="Apply the fixes (default is a dry run).")

    sub.add_parser("complete", help="Mark a fully occupied grid as completed.")
    return p


def run(args: argparse.Namespace, service: CanvasService) -> Any:
    if args.command == "init":
        grid = service.initialize_grid(
            CLI_PRINCIPAL,
            args.width,
            args.height,
            title=args.title,
            description=args.description,
            archive_active=args.force,
        )
        return grid.to_dict()

    grid_id = _grid_id(service, args.grid)

    if args.command == "stats":
        return service.statistics(grid_id).to_dict()
    if args.command == "cell":
        return service.cell_detail(grid_id, args.x, args.y).to_dict()
    if args.command == "neighbors":
        return [n.to_dict() for n in service.neighbors(grid_id, args.x, args.y)]
    if args.command == "template":
        return service.template(CLI_PRINCIPAL, grid_id, args.x, args.y).to_dict()
    if args.command == "seams":
        return service.seam_report(grid_id, args.x, args.y)
    if args.command == "release":
        return service.release(CLI_PRINCIPAL, grid_id, args.x, args.y).to_dict()
    if args.command == "reconcile":
        return service.reconcile(CLI_PRINCIPAL, grid_id, apply=args.force).to_dict()
    if args.command == "complete":
        return service.complete_grid(CLI_PRINCIPAL, grid_id).to_dict()
    raise SystemExit(f"Unknown command: {args.command}")


def main(argv: Optional[list[str]] = None) -> None:
    load_dotenv()
    config = CanvasConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    args = build_parser().parse_args(argv)
    data_root = Path(args.data_root).expanduser().resolve() if args.data_root else None
    store = SQLiteCanvasStore(data_root=data_root)
    service = CanvasService(store, config)

    try:
        result = run(args, service)
    except CanvasError as e:
        raise SystemExit(f"{type(e).__name__}: {e}") from e
    _emit(result)


if __name__ == "__main__":
    main()
