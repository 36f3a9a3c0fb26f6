"""
ImmiDir CLI entrypoint.

A thin presentation layer over `immidir.directory.service.ResourceDirectory`
for local browsing and catalog maintenance. Output is JSON; directory errors are
printed as `{code, message[, fields]}` with a non-zero exit code.
"""

from __future__ import annotations

import argparse
import json
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import httpx

from immidir.catalog.loader import load_catalog, seed_directory
from immidir.config.settings import Settings, get_settings
from immidir.core.cache import FileCache
from immidir.core.env import resolve_project_path
from immidir.core.logging import configure_logging
from immidir.directory.registry import build_registry
from immidir.directory.service import ResourceDirectory
from immidir.domain.errors import DirectoryError, InvalidArgument, NotFound, StoreFailure, ValidationError
from immidir.ingestion.geocoding_client import GeocodingClient

EXIT_CODES: dict[type[DirectoryError], int] = {
    ValidationError: 2,
    InvalidArgument: 2,
    NotFound: 3,
    StoreFailure: 4,
}


def build_directory(settings: Settings, *, seed: bool | None = None) -> ResourceDirectory:
    """Build the directory; the memory backend is seeded from the catalog by default."""
    directory = ResourceDirectory(build_registry(settings), settings)
    if seed is None:
        seed = settings.store.backend == "memory"
    if seed:
        seed_directory(directory, load_catalog(settings.catalog.path))
    return directory


def build_geocoder(settings: Settings) -> GeocodingClient:
    cache = FileCache(
        resolve_project_path(settings.cache.dir),
        enabled=settings.cache.enabled,
        default_ttl_seconds=settings.cache.default_ttl_seconds,
    )
    return GeocodingClient(settings, cache)


@contextmanager
def _geocoding_errors() -> Iterator[None]:
    """Report geocoder transport failures as `StoreFailure` (exit code 4)."""
    try:
        yield
    except (httpx.HTTPError, json.JSONDecodeError) as exc:
        raise StoreFailure(f"Geocoding request failed: {exc}") from exc


def _print(payload: Any, args: argparse.Namespace) -> None:
    indent = None if getattr(args, "compact", False) else 2
    print(json.dumps(payload, ensure_ascii=False, indent=indent))


def _parse_payload(args: argparse.Namespace) -> dict[str, Any]:
    if args.data is not None:
        raw = args.data
    elif args.file is not None:
        raw = Path(args.file).read_text(encoding="utf-8")
    else:
        raise InvalidArgument("Provide the record as --data JSON or --file PATH")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidArgument(f"Record payload is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise InvalidArgument("Record payload must be a JSON object")
    return payload


def _cmd_kinds(args: argparse.Namespace, directory: ResourceDirectory, settings: Settings) -> int:
    _print({"kinds": directory.kinds()}, args)
    return 0


def _cmd_list(args: argparse.Namespace, directory: ResourceDirectory, settings: Settings) -> int:
    lat, lng = args.lat, args.lng
    if args.near:
        with _geocoding_errors():
            point = build_geocoder(settings).geocode(args.near)
        if point is None:
            raise InvalidArgument(f"Could not geocode '{args.near}'")
        lat, lng = point.lat, point.lon

    limit = args.limit
    max_limit = settings.query.max_limit
    if limit is not None and max_limit is not None:
        limit = min(limit, max_limit)

    page = directory.list(
        args.kind,
        {
            "city": args.city,
            "state": args.state,
            "lat": lat,
            "lng": lng,
            "radius_km": args.radius,
            "limit": limit,
            "page": args.page,
            "sort_by": args.sort_by,
        },
    )
    _print(page.model_dump(mode="json"), args)
    return 0


def _cmd_search(args: argparse.Namespace, directory: ResourceDirectory, settings: Settings) -> int:
    results = directory.search(args.kind, args.query, args.limit)
    _print({"data": [r.to_public() for r in results], "count": len(results)}, args)
    return 0


def _cmd_get(args: argparse.Namespace, directory: ResourceDirectory, settings: Settings) -> int:
    _print({"data": directory.get(args.kind, args.id).to_public()}, args)
    return 0


def _cmd_create(args: argparse.Namespace, directory: ResourceDirectory, settings: Settings) -> int:
    kind = directory.kind(args.kind)
    record = directory.create(kind.key, _parse_payload(args))
    _print({"data": record.to_public(), "message": f"{kind.label} created successfully"}, args)
    return 0


def _cmd_update(args: argparse.Namespace, directory: ResourceDirectory, settings: Settings) -> int:
    kind = directory.kind(args.kind)
    record = directory.update(kind.key, args.id, _parse_payload(args))
    _print({"data": record.to_public(), "message": f"{kind.label} updated successfully"}, args)
    return 0


def _cmd_delete(args: argparse.Namespace, directory: ResourceDirectory, settings: Settings) -> int:
    kind = directory.kind(args.kind)
    record = directory.delete(kind.key, args.id)
    _print({"id": record.id, "message": f"{kind.label} deleted successfully"}, args)
    return 0


def _cmd_seed(args: argparse.Namespace, directory: ResourceDirectory, settings: Settings) -> int:
    catalog = load_catalog(args.path or settings.catalog.path)
    use_geocoder = args.geocode or settings.catalog.geocode_missing
    with _geocoding_errors():
        counts = seed_directory(
            directory,
            catalog,
            reset=not args.no_reset,
            geocoder=build_geocoder(settings) if use_geocoder else None,
        )
    _print({"seeded": counts, "backend": settings.store.backend}, args)
    return 0


def _cmd_geocode(args: argparse.Namespace, directory: ResourceDirectory | None, settings: Settings) -> int:
    with _geocoding_errors():
        point = build_geocoder(settings).geocode(args.text)
    if point is None:
        raise NotFound("Location", args.text)
    _print({"lat": point.lat, "lon": point.lon}, args)
    return 0


def _add_record_payload(p: argparse.ArgumentParser) -> None:
    src = p.add_mutually_exclusive_group()
    src.add_argument("--data", type=str, default=None, help="Record fields as a JSON object")
    src.add_argument("--file", type=str, default=None, help="Path to a JSON file with the record fields")


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ImmiDir CLI."""
    parser = argparse.ArgumentParser(prog="immidir")
    parser.add_argument("--compact", action="store_true", help="Print single-line JSON")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        default=None,
        help="Override app.log_level for this run",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    k = sub.add_parser("kinds", help="List resource kinds with their required and enum fields.")
    k.set_defaults(func=_cmd_kinds)

    ls = sub.add_parser("list", help="Browse active resources of a kind (optionally near a point).")
    ls.add_argument("kind")
    ls.add_argument("--city", type=str, default=None)
    ls.add_argument("--state", type=str, default=None)
    ls.add_argument("--lat", type=float, default=None)
    ls.add_argument("--lng", type=float, default=None)
    ls.add_argument("--near", type=str, default=None, help="Free-text address; geocoded to --lat/--lng")
    ls.add_argument("--radius", type=float, default=None, help="Search radius in km")
    ls.add_argument("--limit", type=int, default=None)
    ls.add_argument("--page", type=int, default=None)
    ls.add_argument("--sort-by", dest="sort_by", type=str, default=None)
    ls.set_defaults(func=_cmd_list)

    s = sub.add_parser("search", help="Keyword search over name, description, city and state.")
    s.add_argument("kind")
    s.add_argument("query")
    s.add_argument("--limit", type=int, default=None)
    s.set_defaults(func=_cmd_search)

    g = sub.add_parser("get", help="Fetch one record by id (inactive records included).")
    g.add_argument("kind")
    g.add_argument("id")
    g.set_defaults(func=_cmd_get)

    c = sub.add_parser("create", help="Create a record.")
    c.add_argument("kind")
    _add_record_payload(c)
    c.set_defaults(func=_cmd_create)

    u = sub.add_parser("update", help="Partially update a record.")
    u.add_argument("kind")
    u.add_argument("id")
    _add_record_payload(u)
    u.set_defaults(func=_cmd_update)

    d = sub.add_parser("delete", help="Soft-delete a record (marks it inactive).")
    d.add_argument("kind")
    d.add_argument("id")
    d.set_defaults(func=_cmd_delete)

    sd = sub.add_parser("seed", help="Load the seed catalog into the configured store.")
    sd.add_argument("--path", type=str, default=None, help="Catalog JSON (default: settings catalog.path)")
    sd.add_argument("--no-reset", action="store_true", help="Append instead of replacing existing records")
    sd.add_argument("--geocode", action="store_true", help="Geocode records that have an address but no coordinates")
    sd.set_defaults(func=_cmd_seed)

    gc = sub.add_parser("geocode", help="Geocode a free-text address.")
    gc.add_argument("text")
    gc.set_defaults(func=_cmd_geocode)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m immidir.cli`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    settings = get_settings()
    func: Any = getattr(args, "func")
    try:
        # `seed` fills the store itself; `geocode` never touches it.
        if args.command == "geocode":
            directory = None
        else:
            directory = build_directory(settings, seed=False if args.command == "seed" else None)
        return int(func(args, directory, settings))
    except DirectoryError as exc:
        print(json.dumps(exc.as_dict(), ensure_ascii=False), file=sys.stderr)
        return EXIT_CODES.get(type(exc), 1)


if __name__ == "__main__":
    raise SystemExit(main())
