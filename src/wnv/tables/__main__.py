#!/usr/bin/env python3
"""wnv.tables

Tabular tidying CLI for the WNV pipeline.

This is one of three subsystem CLIs:
- wnv.boundaries → study region and zip polygons
- wnv.water      → standing-water rasters, zonal series, animations
- wnv.tables     → temperature, trap and transmission tables (this file)

Each command only needs the zips layer from wnv.boundaries (temperature not
even that), so they can run in any order.

Examples:
  python -m wnv.tables temperature
  python -m wnv.tables traps
  python -m wnv.tables transmission
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from wnv.config import (
    DEFAULT_CORRECTIONS_YAML,
    DEFAULT_PIPELINE_YAML,
    load_corrections,
    load_pipeline_config,
)
from wnv.errors import PipelineError


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for wnv.tables."""
    ap = argparse.ArgumentParser(
        prog="wnv.tables",
        description="Temperature, trap and transmission tables",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subsystem CLIs:
  python -m wnv.boundaries  # Boundaries
  python -m wnv.water       # Water rasters, zonal series, videos
  python -m wnv.tables      # Tables (this)
        """,
    )

    # --- Global args ---
    ap.add_argument("--config", type=Path, default=DEFAULT_PIPELINE_YAML,
                    help=f"Path to pipeline YAML (default: {DEFAULT_PIPELINE_YAML})")
    ap.add_argument("--corrections", type=Path, default=DEFAULT_CORRECTIONS_YAML,
                    help=f"Path to corrections YAML (default: {DEFAULT_CORRECTIONS_YAML})")
    ap.add_argument("--dry-run", action="store_true", help="Print planned actions without writing files")

    sub = ap.add_subparsers(dest="command", required=True)
    sub.add_parser("temperature", help="Tidy and classify zip daily temperatures")
    sub.add_parser("traps", help="Assign trap clusters to zips and tidy trap tables")
    sub.add_parser("transmission", help="Mean transmission efficiency per zip and county")

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _read_zips(cfg):
    from wnv.boundaries.prep_boundaries import read_zips

    return read_zips(cfg.output_path(cfg.section("boundaries")["out_gpkg"]))


def _handle_temperature(args: argparse.Namespace) -> int:
    cfg = load_pipeline_config(args.config)
    sec = cfg.section("temperature")
    source = cfg.input_path(sec["source"])
    out_csv = cfg.output_path(sec["out_csv"])

    if args.dry_run:
        print(f"[dry-run] Would tidy {source} -> {out_csv}")
        return 0

    from wnv.tables.temperature import run_temperature

    run_temperature(source, out_csv, sec)
    return 0


def _handle_traps(args: argparse.Namespace) -> int:
    cfg = load_pipeline_config(args.config)
    corrections = load_corrections(args.corrections)
    sec = cfg.section("traps")
    tables = sec.get("tables")
    if not isinstance(tables, list) or not tables:
        raise SystemExit("Pipeline config traps.tables must be a non-empty list")

    if args.dry_run:
        print(f"[dry-run] Would assign clusters from {cfg.input_path(sec['clusters'])}")
        for cid, ov in sorted(corrections.cluster_overrides.items()):
            print(f"  override: cluster {cid} -> {ov.zip}")
        for t in tables:
            print(f"  {t['name']}: {cfg.input_path(t['source'])} -> {cfg.output_path(t['out_csv'])}")
        return 0

    from wnv.tables.traps import run_traps

    run_traps(
        cfg.input_path(sec["clusters"]),
        _read_zips(cfg),
        tables,
        input_root=cfg.input_root,
        output_root=cfg.output_root,
        mapping_csv=cfg.output_path(sec["mapping_csv"]),
        cluster_field=sec.get("cluster_field", "cluster_id"),
        area_crs=cfg.section("boundaries").get("area_crs", "EPSG:3310"),
        overrides=corrections.cluster_overrides,
    )
    return 0


def _handle_transmission(args: argparse.Namespace) -> int:
    cfg = load_pipeline_config(args.config)
    sec = cfg.section("transmission")
    raster = cfg.input_path(sec["raster"])
    out_csv = cfg.output_path(sec["out_csv"])

    if args.dry_run:
        print(f"[dry-run] Would summarize {raster} -> {out_csv}")
        return 0

    from wnv.tables.transmission import DEFAULT_COUNTY_LABEL, run_transmission

    run_transmission(
        _read_zips(cfg),
        raster,
        out_csv,
        county_label=sec.get("county_label", DEFAULT_COUNTY_LABEL),
    )
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for wnv.tables CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)

    handlers = {
        "temperature": _handle_temperature,
        "traps": _handle_traps,
        "transmission": _handle_transmission,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    try:
        return handler(args)
    except PipelineError as e:
        raise SystemExit(f"[tables {args.command}] {e}") from e


if __name__ == "__main__":
    raise SystemExit(main())
