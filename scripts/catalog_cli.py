#!/usr/bin/env python3
"""
LiDAR Tile Catalog Command Line Tool

Resolves point cloud files, directories and .vpc catalogs and runs the
catalog checks and filters on them.

Usage:
    python scripts/catalog_cli.py resolve tiles/ -o tiles.vpc
    python scripts/catalog_cli.py multitemporal tiles/ old_survey.vpc
    python scripts/catalog_cli.py select tiles/ --mode latest -o latest.vpc
    python scripts/catalog_cli.py spatial tiles.vpc --extent 547500 5724500
    python scripts/catalog_cli.py temporal tiles.vpc --start 2024-03
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

# Allow running as a plain script from the repository root
REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from services.core.catalog import Catalog, write_catalog
from services.core.extent import spatial_extent, temporal_extent
from services.core.grid import check_tiling
from services.core.multitemporal import classify, multitemporal_table
from services.core.resolver import merge_catalogs, resolve
from services.core.selection import filter_first, filter_latest, filter_multitemporal
from services.data.reference_dates import assign_reference_dates
from services.data.region_lookup import RegionLookup
from services.data.stac_export import export_stac_collection
from services.processing.point_cloud_io import PointCloudEngine
from services.processing.spatial_filter import filter_spatial
from services.processing.temporal_filter import filter_temporal
from services.utils.config import load_params
from services.utils.naming import check_names
from services.visualization.summary_reporter import SummaryReporter

logger = logging.getLogger("lidar-catalog-cli")


def _print_rows(rows) -> None:
    if not rows:
        print("No results")
        return
    for row in rows:
        print(json.dumps(row, default=str))


def _emit_catalog(catalog: Optional[Catalog], out_file: Optional[str], overwrite: bool) -> int:
    if catalog is None:
        print("No features matched")
        return 1
    if out_file:
        path = write_catalog(catalog, out_file, overwrite=overwrite)
        print(f"Catalog with {len(catalog)} entries saved to {path}")
    else:
        for entry in catalog:
            print(entry.href)
    return 0


def _add_common(parser: argparse.ArgumentParser, params: dict) -> None:
    parser.add_argument("inputs", nargs="+", help="LAS/LAZ/COPC files, directories or .vpc catalogs")
    parser.add_argument(
        "--cell-size", type=float, default=params["cell_size"],
        help=f"Tile size in CRS units (default: {params['cell_size']})",
    )
    parser.add_argument(
        "--tolerance", type=float, default=params["tolerance"],
        help=f"Grid snapping tolerance, 0 disables snapping (default: {params['tolerance']})",
    )
    parser.add_argument("--full-names", action="store_true", help="Report full paths instead of file names")


def _add_output(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-o", "--output", help="Write the resulting catalog (.vpc) to this path")
    parser.add_argument("--overwrite", action="store_true", help="Replace an existing output file")


def build_parser(params: dict) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Manage multi-temporal LiDAR tile catalogs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("resolve", help="Resolve inputs into one deduplicated catalog")
    _add_common(p, params)
    _add_output(p)
    p.add_argument(
        "--workers", type=int, default=None,
        help="Worker processes for reading file headers (default: half the CPUs)",
    )

    p = sub.add_parser("merge", help="Merge .vpc catalogs, removing duplicate tiles")
    p.add_argument("catalogs", nargs="+", help="Catalog files to merge")
    _add_output(p)

    p = sub.add_parser("tiling", help="Check tile size and grid alignment")
    _add_common(p, params)

    p = sub.add_parser("multitemporal", help="Group tiles and count observations")
    _add_common(p, params)
    p.add_argument("--multitemporal-only", action="store_true")
    p.add_argument("--partial-tiles", action="store_true", help="Also group tiles that are not entire cells")

    p = sub.add_parser("select", help="Keep the first/latest acquisition, or tiles observed n times")
    _add_common(p, params)
    _add_output(p)
    p.add_argument("--mode", choices=["first", "latest", "count"], default="first")
    p.add_argument("-n", type=int, default=None, help="Observation count for --mode count")
    p.add_argument("--multitemporal-only", action="store_true")
    p.add_argument("--partial-tiles", action="store_true")

    p = sub.add_parser("spatial", help="Keep tiles intersecting a point or bbox")
    _add_common(p, params)
    _add_output(p)
    p.add_argument("--extent", nargs="+", type=float, required=True, help="x y or xmin ymin xmax ymax")
    p.add_argument("--extent-crs", type=int, default=None, help="EPSG code of the extent")

    p = sub.add_parser("temporal", help="Keep tiles acquired within a date range")
    _add_common(p, params)
    _add_output(p)
    p.add_argument("--start", required=True, help="YYYY, YYYY-MM, YYYY-MM-DD or ISO datetime")
    p.add_argument("--end", default=None)

    p = sub.add_parser("names", help="Check file names against the tile naming schema")
    _add_common(p, params)
    p.add_argument("--prefix", default=params["naming_prefix"])
    p.add_argument("--zone", type=int, default=None, help="UTM zone (default: from EPSG code)")
    p.add_argument("--region", default=None, help="Region code (default: boundary lookup)")
    p.add_argument("--year", type=int, default=None)

    p = sub.add_parser("dates", help="Replace header dates with reference acquisition dates")
    _add_common(p, params)
    _add_output(p)
    p.add_argument("--csv", required=True, help="Reference table with minx, miny (km) and date columns")

    p = sub.add_parser("extent", help="Print spatial and temporal extent")
    _add_common(p, params)
    p.add_argument("--per-file", action="store_true")
    p.add_argument("--reference-year", action="store_true")

    p = sub.add_parser("stac", help="Export a static STAC collection")
    _add_common(p, params)
    p.add_argument("--output-dir", required=True)
    p.add_argument("--collection-id", default="lidar-tiles")

    p = sub.add_parser("report", help="Write a JSON summary report")
    _add_common(p, params)
    p.add_argument("--output-dir", default=".")

    return parser


def run(args, params: dict) -> int:
    command = args.command

    if command == "merge":
        merged = merge_catalogs(args.catalogs)
        return _emit_catalog(merged, args.output, args.overwrite)

    if command == "resolve":
        engine = PointCloudEngine(pool_threshold=params["pool_threshold"], max_workers=args.workers)
        return _emit_catalog(resolve(args.inputs, engine=engine), args.output, args.overwrite)

    if command == "select":
        entire = params["entire_tiles_only"] and not args.partial_tiles
        options = dict(entire_tiles_only=entire, tolerance=args.tolerance, cell_size=args.cell_size)
        if args.mode == "first":
            result = filter_first(args.inputs, multitemporal_only=args.multitemporal_only, **options)
        elif args.mode == "latest":
            result = filter_latest(args.inputs, multitemporal_only=args.multitemporal_only, **options)
        else:
            result = filter_multitemporal(args.inputs, n=args.n, **options)
        return _emit_catalog(result, args.output, args.overwrite)

    catalog = resolve(args.inputs)
    if catalog is None:
        return 1

    if command == "tiling":
        _print_rows(check_tiling(catalog, args.cell_size, args.tolerance, args.full_names))
    elif command == "multitemporal":
        groups = classify(
            catalog,
            cell_size=args.cell_size,
            tolerance=args.tolerance,
            entire_tiles_only=params["entire_tiles_only"] and not args.partial_tiles,
        )
        _print_rows(multitemporal_table(groups, args.full_names, args.multitemporal_only))
    elif command == "spatial":
        return _emit_catalog(
            filter_spatial(catalog, args.extent, extent_crs=args.extent_crs), args.output, args.overwrite
        )
    elif command == "temporal":
        return _emit_catalog(filter_temporal(catalog, args.start, args.end), args.output, args.overwrite)
    elif command == "names":
        lookup = None if args.region else RegionLookup(source=params["region_source"])
        results = check_names(
            catalog,
            prefix=args.prefix,
            utm_zone=args.zone,
            region=args.region,
            year=args.year,
            region_lookup=lookup,
            cell_size=args.cell_size,
            tolerance=args.tolerance,
            full_names=args.full_names,
        )
        _print_rows([asdict(r) for r in results or []])
    elif command == "dates":
        updated = assign_reference_dates(catalog, args.csv, args.cell_size, args.tolerance)
        return _emit_catalog(updated, args.output, args.overwrite)
    elif command == "extent":
        _print_rows(spatial_extent(catalog, per_file=args.per_file, full_names=args.full_names))
        _print_rows(
            temporal_extent(
                catalog,
                per_file=args.per_file,
                full_names=args.full_names,
                as_reference_year=args.reference_year,
            )
        )
    elif command == "stac":
        path = export_stac_collection(catalog, args.output_dir, args.collection_id)
        if path is None:
            return 1
        print(f"STAC collection saved to {path}")
    elif command == "report":
        reporter = SummaryReporter(Path(args.output_dir))
        path = reporter.create_summary_report(
            catalog, cell_size=args.cell_size, tolerance=args.tolerance,
            entire_tiles_only=params["entire_tiles_only"],
        )
        print(f"Report saved to {path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    params = load_params()
    parser = build_parser(params)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        return run(args, params)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 1
    except (ValueError, FileNotFoundError, FileExistsError) as e:
        print(f"Error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
