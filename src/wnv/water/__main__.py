#!/usr/bin/env python3
"""wnv.water

Standing-water CLI for the WNV pipeline.

This is one of three subsystem CLIs:
- wnv.boundaries → study region and zip polygons
- wnv.water      → standing-water rasters, zonal series, animations (this file)
- wnv.tables     → temperature, trap and transmission tables

Commands, in pipeline order:
  normalize    ENVI binary+header -> GeoTIFF, originals deleted
  merge        mask swaths by quality, mosaic, crop to region
  zonal        water acres per zip per date -> canonical CSV
  repair       patch cloud-corrupted dates in the CSV (in place)
  persistence  water occurrence count raster (+ display copy)
  animate      one video per zip

Examples:
  python -m wnv.water normalize
  python -m wnv.water merge --limit 3
  python -m wnv.water zonal && python -m wnv.water repair
  python -m wnv.water animate --zips 93301 93305
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from wnv.config import (
    DEFAULT_CORRECTIONS_YAML,
    DEFAULT_PIPELINE_YAML,
    format_dates,
    load_corrections,
    load_pipeline_config,
)
from wnv.errors import PipelineError


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for wnv.water."""
    ap = argparse.ArgumentParser(
        prog="wnv.water",
        description="Standing-water rasters, zonal series and animations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subsystem CLIs:
  python -m wnv.boundaries  # Boundaries
  python -m wnv.water       # Water (this)
  python -m wnv.tables      # Temperature, traps, transmission
        """,
    )

    # --- Global args ---
    ap.add_argument("--config", type=Path, default=DEFAULT_PIPELINE_YAML,
                    help=f"Path to pipeline YAML (default: {DEFAULT_PIPELINE_YAML})")
    ap.add_argument("--corrections", type=Path, default=DEFAULT_CORRECTIONS_YAML,
                    help=f"Path to corrections YAML (default: {DEFAULT_CORRECTIONS_YAML})")
    ap.add_argument("--overwrite", action="store_true", help="Rewrite outputs that already exist")
    ap.add_argument("--dry-run", action="store_true", help="Print planned actions without writing files")
    ap.add_argument("--limit", type=int, default=None, help="Debug: only process first N dates per batch")

    sub = ap.add_subparsers(dest="command", required=True)

    norm = sub.add_parser("normalize", help="Convert ENVI rasters to GeoTIFF and delete the originals")
    norm.add_argument("--dir", type=Path, action="append", default=None,
                      help="Directory to normalize (repeatable; default: water.raw_dirs)")

    merge = sub.add_parser("merge", help="Mask, mosaic and crop swaths per date")
    merge.add_argument("--batch", default=None, help="Only this batch name (default: all)")

    sub.add_parser("zonal", help="Water acres per zip per date")
    sub.add_parser("repair", help="Patch cloud-corrupted dates in the water table")
    sub.add_parser("persistence", help="Water occurrence count raster")

    anim = sub.add_parser("animate", help="Render one video per zip code")
    anim.add_argument("--zips", nargs="+", default=None, help="Only these zip codes (default: all)")
    anim.add_argument("--delay-ms", type=int, default=None,
                      help="Wait before each screenshot (default: animation.capture_delay_ms)")

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _boundaries_gpkg(cfg) -> Path:
    return cfg.output_path(cfg.section("boundaries")["out_gpkg"])


def _handle_normalize(args: argparse.Namespace) -> int:
    cfg = load_pipeline_config(args.config)
    sec = cfg.section("water")
    dirs = args.dir or [cfg.input_path(d) for d in sec.get("raw_dirs", [])]
    if not dirs:
        raise SystemExit("No directories to normalize (pass --dir or set water.raw_dirs)")

    from wnv.water.normalize import normalize_directory

    for d in dirs:
        normalize_directory(d, overwrite=args.overwrite, dry_run=args.dry_run)
    return 0


def _handle_merge(args: argparse.Namespace) -> int:
    cfg = load_pipeline_config(args.config)
    sec = cfg.section("water")
    batches = sec.get("batches") or []
    if args.batch:
        batches = [b for b in batches if str(b.get("name")) == args.batch]
        if not batches:
            raise SystemExit(f"No batch named {args.batch!r} in water.batches")

    from wnv.boundaries.prep_boundaries import read_region
    from wnv.water.merge_swaths import merge_batch

    region = read_region(_boundaries_gpkg(cfg))
    for batch in batches:
        merge_batch(cfg, batch, region, overwrite=args.overwrite, dry_run=args.dry_run, limit=args.limit)
    return 0


def _handle_zonal(args: argparse.Namespace) -> int:
    cfg = load_pipeline_config(args.config)

    from wnv.boundaries.prep_boundaries import read_zips
    from wnv.water.merge_swaths import cropped_dirs
    from wnv.water.zonal_water import run_zonal

    dirs = cropped_dirs(cfg)
    if args.dry_run:
        print("[dry-run] Would compute zonal water from:")
        for d in dirs:
            print(f"  {d}")
        print(f"  -> {cfg.output_path(cfg.section('water')['zonal_csv'])}")
        return 0

    run_zonal(cfg, read_zips(_boundaries_gpkg(cfg)), dirs)
    return 0


def _handle_repair(args: argparse.Namespace) -> int:
    cfg = load_pipeline_config(args.config)
    corrections = load_corrections(args.corrections)
    table_csv = cfg.output_path(cfg.section("water")["zonal_csv"])

    if args.dry_run:
        print(f"[dry-run] Would repair {table_csv} in place:")
        print(f"  drop:        {format_dates(list(corrections.drop_dates))}")
        print(f"  average:     {format_dates(list(corrections.average_dates))}")
        print(f"  interpolate: {format_dates(list(corrections.interpolate_dates))}")
        return 0

    from wnv.water.gap_repair import run_repair

    run_repair(table_csv, corrections)
    return 0


def _handle_persistence(args: argparse.Namespace) -> int:
    cfg = load_pipeline_config(args.config)
    corrections = load_corrections(args.corrections)
    sec = cfg.section("water")

    from wnv.water.merge_swaths import cropped_dirs
    from wnv.water.persistence import build_persistence

    out_tif = cfg.output_path(sec["persistence_tif"])
    display_tif = cfg.output_path(sec["persistence_display_tif"])
    if args.dry_run:
        print(f"[dry-run] Would write {out_tif} and {display_tif}")
        print(f"  excluding: {format_dates(list(corrections.excluded_dates))}")
        return 0

    build_persistence(
        cropped_dirs(cfg),
        corrections.excluded_dates,
        out_tif,
        display_tif,
        water_value=int(sec.get("water_value", 1)),
        factor=int(sec.get("aggregate_factor", 3)),
        display_crs=sec.get("display_crs", "EPSG:4326"),
    )
    return 0


def _handle_animate(args: argparse.Namespace) -> int:
    cfg = load_pipeline_config(args.config)
    corrections = load_corrections(args.corrections)
    sec = cfg.section("water")
    anim = cfg.section("animation")

    from wnv.boundaries.prep_boundaries import read_zips
    from wnv.water.animate import AnimationStyle, BrowserCapture, render_all
    from wnv.water.merge_swaths import cropped_dirs
    from wnv.water.persistence import select_rasters

    zips = read_zips(_boundaries_gpkg(cfg))
    rasters = select_rasters(cropped_dirs(cfg), corrections.excluded_dates)
    out_dir = cfg.output_path(anim["out_dir"])

    if args.dry_run:
        n = len(args.zips) if args.zips else zips["zip"].nunique()
        print(f"[dry-run] Would render {n} zips × {len(rasters)} dates -> {out_dir}")
        return 0

    style = AnimationStyle.from_config(anim, water_value=int(sec.get("water_value", 1)))
    delay_ms = args.delay_ms if args.delay_ms is not None else int(anim.get("capture_delay_ms", 3000))

    with BrowserCapture(width=style.width, height=style.height, delay_ms=delay_ms) as capture:
        render_all(
            zips,
            rasters,
            capture,
            style=style,
            out_dir=out_dir,
            frames_root=cfg.output_path(anim["frames_dir"]),
            tmp_html=cfg.output_path(anim["tmp_dir"]) / "map.html",
            fps=int(anim.get("fps", 2)),
            only=args.zips,
        )
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for wnv.water CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)

    handlers = {
        "normalize": _handle_normalize,
        "merge": _handle_merge,
        "zonal": _handle_zonal,
        "repair": _handle_repair,
        "persistence": _handle_persistence,
        "animate": _handle_animate,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    try:
        return handler(args)
    except PipelineError as e:
        raise SystemExit(f"[water {args.command}] {e}") from e


if __name__ == "__main__":
    raise SystemExit(main())
