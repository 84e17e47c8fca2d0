#!/usr/bin/env python3
"""transmission.py

Mean WNV transmission efficiency per zip code, plus one whole-county row.

The county value is the plain mean of every valid raster cell (nodata and NaN
excluded), not a mean of the zip means.

Output columns: zip, mean_efficiency

Called by:
  python -m wnv.tables transmission
"""

from __future__ import annotations

from pathlib import Path

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio
from rasterstats import zonal_stats

from wnv.errors import InputArtifactError
from wnv.water.rasters import shapes_in_crs


DEFAULT_COUNTY_LABEL = "Kern County"


def raster_mean(raster_path: Path) -> float:
    """NaN-safe mean over all valid cells."""
    with rasterio.open(raster_path) as src:
        data = src.read(1, masked=True).astype("float64")
    values = data.filled(np.nan)
    if np.isnan(values).all():
        return float("nan")
    return float(np.nanmean(values))


def zip_means(zips: gpd.GeoDataFrame, raster_path: Path) -> pd.DataFrame:
    with rasterio.open(raster_path) as src:
        geoms = shapes_in_crs(zips, src.crs)
        nodata = src.nodata

    stats = zonal_stats(vectors=list(geoms), raster=str(raster_path), stats=["mean"], nodata=nodata)
    return pd.DataFrame({
        "zip": zips["zip"].values,
        "mean_efficiency": [s["mean"] if s["mean"] is not None else np.nan for s in stats],
    })


def transmission_table(
    zips: gpd.GeoDataFrame,
    raster_path: Path,
    *,
    county_label: str = DEFAULT_COUNTY_LABEL,
) -> pd.DataFrame:
    if not raster_path.exists():
        raise InputArtifactError(f"Transmission raster not found: {raster_path}")
    if county_label in set(zips["zip"]):
        raise SystemExit(f"County label {county_label!r} collides with a zip code")

    per_zip = zip_means(zips, raster_path).sort_values("zip", kind="mergesort")
    county = pd.DataFrame({"zip": [county_label], "mean_efficiency": [raster_mean(raster_path)]})
    return pd.concat([per_zip, county], ignore_index=True)


def run_transmission(zips: gpd.GeoDataFrame, raster_path: Path, out_csv: Path, *, county_label: str) -> pd.DataFrame:
    table = transmission_table(zips, raster_path, county_label=county_label)
    out_csv.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(out_csv, index=False)
    county = table.iloc[-1]
    print(f"[TRANSMISSION] {len(table) - 1} zips + '{county['zip']}' (mean {county['mean_efficiency']:.4f}) -> {out_csv}")
    return table
