#!/usr/bin/env python3
"""zonal_water.py

Standing-water area per zip code per acquisition date.

For every cropped per-date raster, water-flagged cells are counted inside
each zip polygon and converted to acres. Batches (acquisition years) are
concatenated into one date-ordered table:

    zip, date, ncells, acres, date_label

The zip polygons are reprojected to the raster CRS once, rather than warping
every raster to the vector CRS.

Called by:
  python -m wnv.water zonal
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import geopandas as gpd
import pandas as pd
import rasterio
from rasterstats import zonal_stats

from wnv.config import PipelineConfig
from wnv.errors import InputArtifactError
from wnv.water.dates import dated_rasters
from wnv.water.rasters import shapes_in_crs


CELL_AREA_M2 = 900.0
ACRE_M2 = 4046.86

COLUMNS = ["zip", "date", "ncells", "acres", "date_label"]


def pixels_to_acres(ncells, cell_area_m2: float = CELL_AREA_M2, acre_m2: float = ACRE_M2):
    """acres = ncells * cell_area_m2 / acre_m2 (works on scalars and Series)."""
    return ncells * cell_area_m2 / acre_m2


def count_water_cells(zips: gpd.GeoDataFrame, raster_path: Path, *, water_value: int = 1) -> List[int]:
    """Number of cells equal to water_value inside each zip polygon.

    Nodata and non-water cells do not contribute; empty zones count 0.
    """
    with rasterio.open(raster_path) as src:
        nodata = src.nodata
        geoms = shapes_in_crs(zips, src.crs)

    stats = zonal_stats(
        vectors=list(geoms),
        raster=str(raster_path),
        categorical=True,
        nodata=nodata,
    )
    return [int(s.get(water_value, 0)) if s else 0 for s in stats]


def zonal_water_table(
    zips: gpd.GeoDataFrame,
    raster_dirs: List[Path],
    *,
    water_value: int = 1,
    cell_area_m2: float = CELL_AREA_M2,
    acre_m2: float = ACRE_M2,
    label_format: str = "%B %d, %Y",
) -> pd.DataFrame:
    """Build the zip × date water table from one or more cropped raster directories."""
    if "zip" not in zips.columns:
        raise InputArtifactError("Zips layer has no 'zip' column")

    zones: Optional[gpd.GeoDataFrame] = None
    frames = []
    for directory in raster_dirs:
        if not directory.is_dir():
            raise InputArtifactError(f"Cropped raster directory not found (run wnv.water merge): {directory}")
        rasters = dated_rasters(directory)
        print(f"[ZONAL] {directory}: {len(rasters)} dates")
        for d, path in rasters:
            if zones is None:
                # Reproject vectors once, to the first raster's CRS
                with rasterio.open(path) as src:
                    zones = gpd.GeoDataFrame(zips[["zip"]], geometry=shapes_in_crs(zips, src.crs))
            counts = count_water_cells(zones, path, water_value=water_value)
            frames.append(pd.DataFrame({"zip": zones["zip"].values, "date": pd.Timestamp(d), "ncells": counts}))

    if not frames:
        raise InputArtifactError(f"No dated rasters found in {[str(d) for d in raster_dirs]}")

    table = pd.concat(frames, ignore_index=True)
    table["acres"] = pixels_to_acres(table["ncells"], cell_area_m2, acre_m2)
    table = table.sort_values(["date", "zip"], kind="mergesort").reset_index(drop=True)
    table["date_label"] = table["date"].dt.strftime(label_format)
    return table[COLUMNS]


def write_table(table: pd.DataFrame, out_csv: Path) -> Path:
    out_csv.parent.mkdir(parents=True, exist_ok=True)
    out = table.copy()
    out["date"] = out["date"].dt.strftime("%Y-%m-%d")
    out.to_csv(out_csv, index=False)
    return out_csv


def read_table(path: Path) -> pd.DataFrame:
    """Read the canonical water CSV with typed columns."""
    if not path.exists():
        raise InputArtifactError(f"Water table not found (run wnv.water zonal): {path}")
    df = pd.read_csv(path, dtype={"zip": str}, parse_dates=["date"])
    missing = [c for c in ("zip", "date", "ncells", "acres") if c not in df.columns]
    if missing:
        raise InputArtifactError(f"Water table {path} missing columns {missing}")
    return df


def run_zonal(cfg: PipelineConfig, zips: gpd.GeoDataFrame, raster_dirs: List[Path]) -> pd.DataFrame:
    sec = cfg.section("water")
    anim = cfg.sections.get("animation") or {}
    table = zonal_water_table(
        zips,
        raster_dirs,
        water_value=int(sec.get("water_value", 1)),
        cell_area_m2=float(sec.get("cell_area_m2", CELL_AREA_M2)),
        acre_m2=float(sec.get("acre_m2", ACRE_M2)),
        label_format=anim.get("date_format", "%B %d, %Y"),
    )
    out_csv = write_table(table, cfg.output_path(sec["zonal_csv"]))
    print(f"[ZONAL] Wrote {len(table)} rows ({table['zip'].nunique()} zips × {table['date'].nunique()} dates) -> {out_csv}")
    return table
