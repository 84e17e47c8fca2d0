#!/usr/bin/env python3
"""wnv.boundaries

Boundary preparation CLI for the WNV pipeline.

This is one of three subsystem CLIs:
- wnv.boundaries → study region and zip polygons (this file)
- wnv.water      → standing-water rasters, zonal series, animations
- wnv.tables     → temperature, trap and transmission tables

wnv.boundaries is the source of truth for spatial units. Every other stage
reads the zips/region layers it writes.

Examples:
  python -m wnv.boundaries prep
  python -m wnv.boundaries --config config/pipeline.yaml prep --qa-csv out/qa.csv
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from wnv.config import DEFAULT_PIPELINE_YAML, load_pipeline_config
from wnv.errors import PipelineError


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for wnv.boundaries."""
    ap = argparse.ArgumentParser(
        prog="wnv.boundaries",
        description="Study region and zip-code boundaries for the WNV pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subsystem CLIs:
  python -m wnv.boundaries  # Boundaries (this)
  python -m wnv.water       # Water rasters, zonal series, videos
  python -m wnv.tables      # Temperature, traps, transmission
        """,
    )

    # --- Global args ---
    ap.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_PIPELINE_YAML,
        help=f"Path to pipeline YAML (default: {DEFAULT_PIPELINE_YAML})",
    )
    ap.add_argument(
        "--dry-run",
        action="store_true",
        help="Print planned actions without writing files",
    )

    # --- Subcommands ---
    sub = ap.add_subparsers(dest="command", required=True)

    prep = sub.add_parser(
        "prep",
        help="Clip zip codes to county ∩ alluvial basin",
        description="""
Build the study boundaries.

This command:
1. Reads counties, alluvial basin and zip-code layers
2. Reprojects all of them to the area CRS
3. Intersects county ∩ basin, then zips ∩ that region
4. Drops zip slivers below the minimum area
5. Writes region, basin and zips layers in the display CRS
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    prep.add_argument(
        "--qa-csv",
        type=Path,
        default=None,
        help="Optional path to write a zip area QA CSV (overrides config)",
    )

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_prep(args: argparse.Namespace) -> int:
    cfg = load_pipeline_config(args.config)
    sec = cfg.section("boundaries")

    if args.dry_run:
        print("[dry-run] Would prepare boundaries:")
        for key in ("counties", "basin", "zips"):
            print(f"  {key}: {cfg.input_path(sec[key])}")
        print(f"  Output GeoPackage: {cfg.output_path(sec['out_gpkg'])}")
        print(f"  Min area (m²): {sec.get('min_area_m2', 1_000_000)}")
        return 0

    # Lazy import to keep CLI startup fast
    from wnv.boundaries.prep_boundaries import prep_boundaries

    prep_boundaries(cfg, qa_csv=args.qa_csv)
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for wnv.boundaries CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)

    handlers = {
        "prep": _handle_prep,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    try:
        return handler(args)
    except PipelineError as e:
        raise SystemExit(f"[boundaries {args.command}] {e}") from e


if __name__ == "__main__":
    raise SystemExit(main())
