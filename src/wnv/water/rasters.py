"""rasters.py

Small rasterio helpers shared by the water stages.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Tuple

import geopandas as gpd
import numpy as np
import rasterio
from rasterio.mask import mask

from wnv.errors import SpatialReferenceError


def write_single_band(path: Path, data: np.ndarray, profile: Dict[str, Any]) -> Path:
    """Write a 2-D array as a single-band, deflate-compressed GeoTIFF."""
    if data.ndim == 3:
        data = data[0]
    out_profile = profile.copy()
    out_profile.update(
        driver="GTiff",
        count=1,
        height=data.shape[0],
        width=data.shape[1],
        dtype=data.dtype.name,
        compress="deflate",
    )
    # ENVI/in-memory profiles can carry options GTiff rejects
    for key in ("interleave", "blockxsize", "blockysize", "tiled"):
        out_profile.pop(key, None)
    path.parent.mkdir(parents=True, exist_ok=True)
    with rasterio.open(path, "w", **out_profile) as dst:
        dst.write(data, 1)
    return path


def shapes_in_crs(gdf: gpd.GeoDataFrame, crs) -> gpd.GeoSeries:
    """Return geometries reprojected to the raster CRS."""
    if gdf.crs is None:
        raise SpatialReferenceError("Vector layer has no CRS; can't align it to the raster")
    if crs is None:
        raise SpatialReferenceError("Raster has no CRS; can't align vectors to it")
    if gdf.crs != crs:
        gdf = gdf.to_crs(crs)
    return gdf.geometry


def crop_to_shapes(src, gdf: gpd.GeoDataFrame) -> Tuple[np.ndarray, Dict[str, Any]]:
    """Crop and mask an open dataset to polygons.

    Cells outside the polygons become the dataset's nodata value.
    Returns (band array, profile).
    """
    geoms = shapes_in_crs(gdf, src.crs)
    out_img, out_transform = mask(src, list(geoms), crop=True, nodata=src.nodata)
    profile = src.profile.copy()
    profile.update(
        height=out_img.shape[1],
        width=out_img.shape[2],
        transform=out_transform,
    )
    return out_img[0], profile
