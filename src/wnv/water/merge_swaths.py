#!/usr/bin/env python3
"""merge_swaths.py

Per acquisition date: mask two adjacent swaths with their quality rasters,
mosaic them, and crop the mosaic to the study region.

Each swath directory holds GeoTIFFs (after `normalize`) named by the provider
convention, with a product suffix:

    LC08_L1TP_042035_20190314_20190325_01_T1_INWM.tif   water indicator
    LC08_L1TP_042035_20190314_20190325_01_T1_MASK.tif   quality flags

Quality value 1 marks unusable cells; those become nodata in the water raster.
Swath A is listed first in the mosaic, so where both swaths have a valid value
swath A's value is kept. A date found in only one swath is skipped.

Outputs per batch:
  <rasters_dir>/<batch>/merged/YYYY-MM-DD.tif    full mosaic extent
  <rasters_dir>/<batch>/cropped/YYYY-MM-DD.tif   cropped + masked to region

Called by:
  python -m wnv.water merge
"""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import geopandas as gpd
import numpy as np
import rasterio
from rasterio.io import MemoryFile
from rasterio.merge import merge

from wnv.config import PipelineConfig
from wnv.errors import InputArtifactError, SpatialReferenceError
from wnv.water.dates import date_stem, filename_opts, parse_acquisition_date
from wnv.water.rasters import crop_to_shapes, write_single_band


DEFAULT_NODATA = 255

MERGED_DIR = "merged"
CROPPED_DIR = "cropped"


# -----------------------------------------------------------------------------
# Masking
# -----------------------------------------------------------------------------

def mask_with_quality(water: np.ndarray, quality: np.ndarray, *, nodata, bad_value: int = 1) -> np.ndarray:
    """Set water cells to nodata wherever the quality flag equals bad_value.

    Applying the same quality raster twice gives the same result.
    """
    if water.shape != quality.shape:
        raise SpatialReferenceError(
            f"Water and quality rasters differ in shape: {water.shape} vs {quality.shape}"
        )
    out = water.copy()
    out[quality == bad_value] = nodata
    return out


# -----------------------------------------------------------------------------
# Swath inventory
# -----------------------------------------------------------------------------

def index_swath(directory: Path, suffix: str, opts: Dict[str, Any]) -> Dict[dt.date, Path]:
    """Map acquisition date -> raster path for one product in a swath directory."""
    if not directory.is_dir():
        raise InputArtifactError(f"Swath directory not found: {directory}")

    out: Dict[dt.date, Path] = {}
    for p in sorted(directory.glob(f"*_{suffix}.tif")):
        d = parse_acquisition_date(p.name, **opts)
        if d in out:
            raise InputArtifactError(f"Two {suffix} rasters for {d} in {directory}: {out[d].name}, {p.name}")
        out[d] = p
    return out


def pair_swath_products(
    directory: Path, water_suffix: str, qa_suffix: str, opts: Dict[str, Any]
) -> Dict[dt.date, Tuple[Path, Path]]:
    """Pair water and quality rasters by date within one swath."""
    water = index_swath(directory, water_suffix, opts)
    quality = index_swath(directory, qa_suffix, opts)
    missing = sorted(set(water) - set(quality))
    if missing:
        raise InputArtifactError(
            f"No {qa_suffix} raster for dates {[d.isoformat() for d in missing]} in {directory}"
        )
    return {d: (water[d], quality[d]) for d in water}


def common_dates(a: Dict[dt.date, Any], b: Dict[dt.date, Any]) -> List[dt.date]:
    """Dates present in both swaths; the rest are skipped."""
    return sorted(set(a) & set(b))


# -----------------------------------------------------------------------------
# Merge
# -----------------------------------------------------------------------------

def _read_masked(water_path: Path, qa_path: Path, bad_value: int) -> Tuple[np.ndarray, Dict[str, Any]]:
    with rasterio.open(water_path) as w, rasterio.open(qa_path) as q:
        if w.crs is None:
            raise SpatialReferenceError(f"Raster has no CRS: {water_path}")
        if q.crs != w.crs or q.transform != w.transform:
            raise SpatialReferenceError(f"Quality raster grid does not match water raster: {qa_path}")
        nodata = w.nodata if w.nodata is not None else DEFAULT_NODATA
        masked = mask_with_quality(w.read(1), q.read(1), nodata=nodata, bad_value=bad_value)
        profile = w.profile.copy()
        profile.update(nodata=nodata, driver="GTiff", count=1)
    return masked, profile


def merge_masked(
    first: Tuple[np.ndarray, Dict[str, Any]],
    second: Tuple[np.ndarray, Dict[str, Any]],
) -> Tuple[np.ndarray, Dict[str, Any]]:
    """Mosaic two masked swaths. `first` wins where both are valid."""
    arr_a, prof_a = first
    arr_b, prof_b = second
    if prof_a["crs"] != prof_b["crs"]:
        raise SpatialReferenceError(f"Swaths are in different CRS: {prof_a['crs']} vs {prof_b['crs']}")

    nodata = prof_a["nodata"]
    # B's missing cells must carry A's nodata value or merge reads them as data
    if prof_b.get("nodata") is not None and prof_b["nodata"] != nodata:
        arr_b = np.where(arr_b == prof_b["nodata"], nodata, arr_b)

    with MemoryFile() as mem_a, MemoryFile() as mem_b:
        with mem_a.open(**prof_a) as ds:
            ds.write(arr_a, 1)
        with mem_b.open(**{**prof_b, "dtype": prof_a["dtype"], "nodata": nodata}) as ds:
            ds.write(arr_b.astype(prof_a["dtype"]), 1)
        with mem_a.open() as a, mem_b.open() as b:
            mosaic, transform = merge([a, b], nodata=nodata, method="first")

    profile = prof_a.copy()
    profile.update(height=mosaic.shape[1], width=mosaic.shape[2], transform=transform)
    return mosaic[0], profile


def merge_date(
    swath_a: Tuple[Path, Path],
    swath_b: Tuple[Path, Path],
    region: gpd.GeoDataFrame,
    merged_path: Path,
    cropped_path: Path,
    *,
    bad_value: int = 1,
) -> None:
    """Mask, mosaic and crop one date; writes both outputs."""
    first = _read_masked(*swath_a, bad_value)
    second = _read_masked(*swath_b, bad_value)
    mosaic, profile = merge_masked(first, second)
    write_single_band(merged_path, mosaic, profile)

    with rasterio.open(merged_path) as src:
        cropped, crop_profile = crop_to_shapes(src, region)
    write_single_band(cropped_path, cropped, crop_profile)


def merge_batch(
    cfg: PipelineConfig,
    batch: Dict[str, Any],
    region: gpd.GeoDataFrame,
    *,
    overwrite: bool = False,
    dry_run: bool = False,
    limit: Optional[int] = None,
) -> List[dt.date]:
    """Merge every date shared by the batch's two swaths. Returns merged dates."""
    sec = cfg.section("water")
    opts = filename_opts(sec)
    water_suffix = sec.get("water_suffix", "INWM")
    qa_suffix = sec.get("qa_suffix", "MASK")
    bad_value = int(sec.get("qa_bad_value", 1))

    name = str(batch["name"])
    a = pair_swath_products(cfg.input_path(batch["swath_a"]), water_suffix, qa_suffix, opts)
    b = pair_swath_products(cfg.input_path(batch["swath_b"]), water_suffix, qa_suffix, opts)
    dates = common_dates(a, b)
    skipped = sorted(set(a) ^ set(b))

    out_dir = cfg.output_path(sec["rasters_dir"]) / name
    print(f"[MERGE] batch {name}: {len(dates)} shared dates, {len(skipped)} single-swath dates skipped")

    done = []
    for i, d in enumerate(dates, start=1):
        if limit is not None and i > int(limit):
            print(f"[MERGE] Reached --limit {limit}; stopping")
            break
        merged_path = out_dir / MERGED_DIR / f"{date_stem(d)}.tif"
        cropped_path = out_dir / CROPPED_DIR / f"{date_stem(d)}.tif"
        if cropped_path.exists() and merged_path.exists() and not overwrite:
            print(f"[SKIP] {name}/{date_stem(d)}")
            done.append(d)
            continue
        print(f"[MERGE] {name} {d.isoformat()} ({i}/{len(dates)})")
        if dry_run:
            continue
        merge_date(a[d], b[d], region, merged_path, cropped_path, bad_value=bad_value)
        done.append(d)

    return done


def cropped_dirs(cfg: PipelineConfig) -> List[Path]:
    """Cropped raster directories of every configured batch, in config order."""
    sec = cfg.section("water")
    batches = sec.get("batches")
    if not isinstance(batches, list) or not batches:
        raise SystemExit("Pipeline config water.batches must be a non-empty list")
    root = cfg.output_path(sec["rasters_dir"])
    return [root / str(b["name"]) / CROPPED_DIR for b in batches]
