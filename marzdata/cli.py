#!/usr/bin/env python3
"""
marzdata command line.

Commands:
    import <level> <path> [--emit out.json] [--dry-run] [--strategy union|first-seen]
    convert <level> <shapefile> <out.json>
    import-all [--province P] [--county C] [--bakhsh B] [--city X]
    resolve-parents [--level L] [--workers N]
    update-regions [--dry-run]
    inspect <shapefile> [--samples N]
    check [--level L]
    region <lat> <lng>
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, List, Optional

from .boundary_store import BoundaryStore
from .config import load_settings
from .dedupe import DedupeStrategy
from .engine import GeoEngine
from .exceptions import MarzdataError, ReprojectionUnavailableError, StoreUnavailableError
from .levels import HIERARCHY, Level, coerce_level
from .parents import ParentResolver
from .pipeline import import_all, import_level
from .sources import inspect_shapefile

logger = logging.getLogger(__name__)

_LEVELS = [lv.value for lv in HIERARCHY]


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _open_store(settings) -> BoundaryStore:
    return BoundaryStore.from_url(settings.database_url, max_cache=settings.index_cache_levels)


def _cmd_import(args, settings) -> int:
    store = None if args.dry_run else _open_store(settings)
    try:
        report = import_level(
            store,
            args.level,
            args.path,
            settings,
            emit=args.emit,
            dry_run=args.dry_run,
            strategy=args.strategy,
        )
    finally:
        if store is not None:
            store.close()
    _print_json(report.as_dict())
    return 0


def _cmd_convert(args, settings) -> int:
    report = import_level(None, args.level, args.path, settings, emit=args.out, dry_run=True)
    _print_json(report.as_dict())
    return 0


def _cmd_import_all(args, settings) -> int:
    sources = {lv: getattr(args, lv) for lv in _LEVELS if getattr(args, lv)}
    if not sources:
        print("import-all needs at least one of --province/--county/--bakhsh/--city", file=sys.stderr)
        return 2
    store = _open_store(settings)
    try:
        reports, resolved = import_all(store, sources, settings, strategy=args.strategy)
    finally:
        store.close()
    _print_json(
        {
            "imports": {lv.value: r.as_dict() for lv, r in reports.items()},
            "parents": {lv.value: vars(r) for lv, r in resolved.items()},
        }
    )
    return 0


def _cmd_resolve_parents(args, settings) -> int:
    store = _open_store(settings)
    try:
        resolver = ParentResolver(store, workers=args.workers or settings.parent_workers)
        if args.level:
            results = {coerce_level(args.level): resolver.resolve_level(args.level)}
        else:
            results = resolver.resolve_all()
    finally:
        store.close()
    _print_json({lv.value: vars(r) for lv, r in results.items()})
    return 0


def _cmd_update_regions(args, settings) -> int:
    engine = GeoEngine.from_settings(settings)
    try:
        report = engine.refresh_entity_regions(dry_run=args.dry_run)
    finally:
        engine.close()
    _print_json(vars(report))
    return 0


def _cmd_inspect(args, settings) -> int:
    _print_json(inspect_shapefile(args.path, encoding=settings.dbf_encoding, samples=args.samples))
    return 0


def _cmd_check(args, settings) -> int:
    store = _open_store(settings)
    try:
        levels = [coerce_level(args.level)] if args.level else list(Level)
        summary = store.levels_summary()
        payload = {
            lv.value: {**summary[lv.value], "duplicates": store.duplicate_report(lv)}
            for lv in levels
        }
    finally:
        store.close()
    _print_json(payload)
    return 0


def _cmd_region(args, settings) -> int:
    engine = GeoEngine.from_settings(settings)
    try:
        result = engine.resolve_region_at_point(args.lat, args.lng)
    finally:
        engine.close()
    _print_json(result.to_dict())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="marzdata",
        description="Import administrative boundaries and resolve regions.",
    )
    parser.add_argument("--config", help="YAML/TOML settings file")
    parser.add_argument("--database-url", help="override the configured database URL")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    strategies = [s.value for s in DedupeStrategy]

    p = sub.add_parser("import", help="replace one level with the features of a source file")
    p.add_argument("level", choices=_LEVELS)
    p.add_argument("path", help=".shp, GeoJSON, or canonical boundary JSON")
    p.add_argument("--emit", help="also write canonical boundary JSON here")
    p.add_argument("--dry-run", action="store_true", help="normalize and report without writing")
    p.add_argument("--strategy", choices=strategies)
    p.set_defaults(func=_cmd_import)

    p = sub.add_parser("convert", help="write canonical boundary JSON from a shapefile")
    p.add_argument("level", choices=_LEVELS)
    p.add_argument("path")
    p.add_argument("out")
    p.set_defaults(func=_cmd_convert)

    p = sub.add_parser("import-all", help="import several levels then resolve parents")
    for lv in _LEVELS:
        p.add_argument(f"--{lv}", metavar="PATH")
    p.add_argument("--strategy", choices=strategies)
    p.set_defaults(func=_cmd_import_all)

    p = sub.add_parser("resolve-parents", help="backfill parents from geometry")
    p.add_argument("--level", choices=_LEVELS[1:])
    p.add_argument("--workers", type=int)
    p.set_defaults(func=_cmd_resolve_parents)

    p = sub.add_parser("update-regions", help="recompute stored entity region triples")
    p.add_argument("--dry-run", action="store_true")
    p.set_defaults(func=_cmd_update_regions)

    p = sub.add_parser("inspect", help="print shapefile fields and sample rows")
    p.add_argument("path")
    p.add_argument("--samples", type=int, default=3)
    p.set_defaults(func=_cmd_inspect)

    p = sub.add_parser("check", help="per-level counts, unresolved parents, duplicates")
    p.add_argument("--level", choices=_LEVELS)
    p.set_defaults(func=_cmd_check)

    p = sub.add_parser("region", help="resolve the regions containing a point")
    p.add_argument("lat", type=float)
    p.add_argument("lng", type=float)
    p.set_defaults(func=_cmd_region)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    try:
        settings = load_settings(args.config)
        if args.database_url:
            settings.database_url = args.database_url
        return args.func(args, settings)
    except StoreUnavailableError as exc:
        print(f"store unavailable: {exc}", file=sys.stderr)
        return 1
    except ReprojectionUnavailableError as exc:
        print(f"import aborted: {exc}", file=sys.stderr)
        return 1
    except (MarzdataError, ValueError, FileNotFoundError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
