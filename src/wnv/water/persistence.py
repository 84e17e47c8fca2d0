#!/usr/bin/env python3
"""persistence.py

Water persistence: how many acquisition dates flagged each cell as water.

1. Take every cropped per-date raster except the bad dates
2. Resample all of them onto the first raster's grid (nearest neighbour,
   the values are categorical)
3. Count water occurrences per cell; cells never flooded become nodata
4. Write the full-resolution count raster
5. Write a display copy: modal aggregation by a fixed factor, then
   reprojection to the display CRS

Called by:
  python -m wnv.water persistence
"""

from __future__ import annotations

import datetime as dt
import math
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

import numpy as np
import rasterio
from rasterio.transform import Affine, array_bounds
from rasterio.warp import Resampling, calculate_default_transform, reproject

from wnv.errors import InputArtifactError
from wnv.water.dates import dated_rasters
from wnv.water.rasters import write_single_band


PERSISTENCE_NODATA = -1
FILL_NODATA = 255


def select_rasters(raster_dirs: List[Path], excluded: Iterable[dt.date]) -> List[Tuple[dt.date, Path]]:
    """All dated rasters across directories, minus excluded dates, sorted by date."""
    excluded = set(excluded)
    out = []
    for directory in raster_dirs:
        if not directory.is_dir():
            raise InputArtifactError(f"Cropped raster directory not found (run wnv.water merge): {directory}")
        out.extend((d, p) for d, p in dated_rasters(directory) if d not in excluded)
    return sorted(out)


def _read_on_grid(path: Path, ref: Dict[str, Any]) -> np.ndarray:
    """Read band 1 resampled onto the reference grid (nearest neighbour)."""
    with rasterio.open(path) as src:
        if src.crs == ref["crs"] and src.transform == ref["transform"] and src.shape == ref["shape"]:
            return src.read(1)
        nodata = src.nodata if src.nodata is not None else FILL_NODATA
        dest = np.full(ref["shape"], nodata, dtype=src.dtypes[0])
        reproject(
            source=rasterio.band(src, 1),
            destination=dest,
            src_transform=src.transform,
            src_crs=src.crs,
            src_nodata=nodata,
            dst_transform=ref["transform"],
            dst_crs=ref["crs"],
            dst_nodata=nodata,
            resampling=Resampling.nearest,
        )
        return dest


def occurrence_count(paths: List[Path], *, water_value: int = 1) -> Tuple[np.ndarray, Dict[str, Any]]:
    """Cell-wise count of water observations on the first raster's grid.

    Zero counts are returned as PERSISTENCE_NODATA.
    """
    if not paths:
        raise InputArtifactError("No rasters to build a persistence layer from")

    with rasterio.open(paths[0]) as first:
        profile = first.profile.copy()
        ref = {"crs": first.crs, "transform": first.transform, "shape": first.shape}

    total = np.zeros(ref["shape"], dtype="int32")
    for p in paths:
        total += (_read_on_grid(p, ref) == water_value).astype("int32")

    total[total == 0] = PERSISTENCE_NODATA
    profile.update(dtype="int32", nodata=PERSISTENCE_NODATA)
    return total, profile


def aggregate_modal(data: np.ndarray, profile: Dict[str, Any], factor: int) -> Tuple[np.ndarray, Dict[str, Any]]:
    """Coarsen by `factor` in the source CRS using the most frequent value."""
    h, w = data.shape
    out_h, out_w = math.ceil(h / factor), math.ceil(w / factor)
    transform = profile["transform"] * Affine.scale(factor)
    nodata = profile["nodata"]

    out = np.full((out_h, out_w), nodata, dtype=data.dtype)
    reproject(
        source=data,
        destination=out,
        src_transform=profile["transform"],
        src_crs=profile["crs"],
        src_nodata=nodata,
        dst_transform=transform,
        dst_crs=profile["crs"],
        dst_nodata=nodata,
        resampling=Resampling.mode,
    )
    out_profile = profile.copy()
    out_profile.update(height=out_h, width=out_w, transform=transform)
    return out, out_profile


def reproject_categorical(data: np.ndarray, profile: Dict[str, Any], dst_crs: str) -> Tuple[np.ndarray, Dict[str, Any]]:
    """Nearest-neighbour reprojection to dst_crs."""
    h, w = data.shape
    west, south, east, north = array_bounds(h, w, profile["transform"])
    transform, width, height = calculate_default_transform(
        profile["crs"], dst_crs, w, h, left=west, bottom=south, right=east, top=north
    )
    nodata = profile["nodata"]
    out = np.full((height, width), nodata, dtype=data.dtype)
    reproject(
        source=data,
        destination=out,
        src_transform=profile["transform"],
        src_crs=profile["crs"],
        src_nodata=nodata,
        dst_transform=transform,
        dst_crs=dst_crs,
        dst_nodata=nodata,
        resampling=Resampling.nearest,
    )
    out_profile = profile.copy()
    out_profile.update(crs=dst_crs, transform=transform, width=width, height=height)
    return out, out_profile


def build_persistence(
    raster_dirs: List[Path],
    excluded: Iterable[dt.date],
    out_tif: Path,
    display_tif: Path,
    *,
    water_value: int = 1,
    factor: int = 3,
    display_crs: str = "EPSG:4326",
) -> Dict[str, Path]:
    selected = select_rasters(raster_dirs, excluded)
    print(f"[PERSISTENCE] {len(selected)} dates after exclusions")

    counts, profile = occurrence_count([p for _, p in selected], water_value=water_value)
    write_single_band(out_tif, counts, profile)
    print(f"[PERSISTENCE] max occurrences {int(counts.max())} -> {out_tif}")

    coarse, coarse_profile = aggregate_modal(counts, profile, factor)
    display, display_profile = reproject_categorical(coarse, coarse_profile, display_crs)
    write_single_band(display_tif, display, display_profile)
    print(f"[PERSISTENCE] display copy (×{factor}, {display_crs}) -> {display_tif}")

    return {"full": out_tif, "display": display_tif}
