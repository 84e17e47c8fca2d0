#!/usr/bin/env python3
"""prep_boundaries.py

Clip the statewide zip-code polygons to the Kern study region.

The study region is the intersection of the Kern County boundary with the
alluvial basin. Zip polygons are intersected with that region, slivers left
over from edge clipping are dropped by area, and the three layers are written
to one GeoPackage in a web-map friendly CRS.

Called by:
  python -m wnv.boundaries prep

Outputs (GeoPackage layers):
- region : county ∩ basin
- basin  : the alluvial basin boundary
- zips   : filtered zip polygons with `zip` and `area_m2`
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

import geopandas as gpd

from wnv.config import PipelineConfig
from wnv.errors import InputArtifactError, SpatialReferenceError


REGION_LAYER = "region"
BASIN_LAYER = "basin"
ZIPS_LAYER = "zips"


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------

def normalize_zip(x) -> str:
    """Normalize a zip code to a 5-character string ('93301', 93301.0 -> '93301')."""
    if x is None:
        return ""
    s = str(x).strip()
    if s.endswith(".0"):
        s = s[:-2]
    return s.zfill(5) if s.isdigit() else s


def read_layer(path: Path, what: str) -> gpd.GeoDataFrame:
    """Read a vector layer, failing on missing file, empty layer or missing CRS."""
    if not path.exists():
        raise InputArtifactError(f"{what} layer not found: {path}")
    gdf = gpd.read_file(path)
    if gdf.empty:
        raise InputArtifactError(f"{what} layer has zero features: {path}")
    if gdf.crs is None:
        raise SpatialReferenceError(
            f"{what} layer has no CRS (.prj missing or unreadable): {path}"
        )
    return gdf


def _make_valid(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    gdf = gdf.copy()
    gdf["geometry"] = gdf.geometry.make_valid()
    return gdf[~gdf.geometry.is_empty & gdf.geometry.notna()].copy()


def compute_area_m2(gdf: gpd.GeoDataFrame, area_crs: str) -> gpd.GeoSeries:
    """Planar area in m² using a projected CRS."""
    if gdf.crs is None:
        raise SpatialReferenceError("Geometries have no CRS; can't compute area safely.")
    return gdf.to_crs(area_crs).geometry.area.astype(float)


def filter_slivers(zips: gpd.GeoDataFrame, min_area_m2: float) -> gpd.GeoDataFrame:
    """Drop polygons whose area_m2 is below the threshold (edge-clipping artifacts)."""
    return zips[zips["area_m2"] >= min_area_m2].copy()


def clip_zips_to_region(
    counties: gpd.GeoDataFrame,
    basin: gpd.GeoDataFrame,
    zips: gpd.GeoDataFrame,
    *,
    zip_field: str,
    area_crs: str,
    min_area_m2: float,
) -> Dict[str, gpd.GeoDataFrame]:
    """Intersect county ∩ basin, then zips ∩ region, and drop slivers.

    All layers are harmonized to area_crs before any overlay. Returned layers
    stay in area_crs; reprojection for display happens in prep_boundaries().
    """
    for name, gdf in (("counties", counties), ("basin", basin), ("zips", zips)):
        if gdf.crs is None:
            raise SpatialReferenceError(f"{name} layer has no CRS")

    if zip_field not in zips.columns:
        raise InputArtifactError(
            f"Zip field '{zip_field}' not found. Available columns: {list(zips.columns)}"
        )

    counties = _make_valid(counties.to_crs(area_crs))
    basin = _make_valid(basin.to_crs(area_crs))
    zips = _make_valid(zips.to_crs(area_crs))

    # --- Study region: county ∩ basin ---
    region = gpd.overlay(
        counties[["geometry"]], basin[["geometry"]], how="intersection", keep_geom_type=True
    )
    if region.empty:
        raise SpatialReferenceError("County and basin layers do not intersect")
    region = region.dissolve().reset_index(drop=True)
    region["name"] = "study_region"

    # --- Zips ∩ region ---
    zip_cols = [c for c in zips.columns if c != "geometry"]
    clipped = gpd.overlay(zips, region[["geometry"]], how="intersection", keep_geom_type=True)
    clipped = clipped[zip_cols + ["geometry"]].copy()
    clipped["zip"] = clipped[zip_field].map(normalize_zip)
    clipped["area_m2"] = compute_area_m2(clipped, area_crs)

    kept = filter_slivers(clipped, min_area_m2)

    return {
        REGION_LAYER: region[["name", "geometry"]],
        BASIN_LAYER: basin[["geometry"]].dissolve().reset_index(drop=True),
        ZIPS_LAYER: kept.reset_index(drop=True),
    }


def read_zips(gpkg: Path) -> gpd.GeoDataFrame:
    """Read the filtered zips layer written by prep_boundaries()."""
    if not gpkg.exists():
        raise InputArtifactError(f"Boundaries GeoPackage not found (run wnv.boundaries prep): {gpkg}")
    zips = gpd.read_file(gpkg, layer=ZIPS_LAYER)
    zips["zip"] = zips["zip"].map(normalize_zip)
    return zips


def read_region(gpkg: Path) -> gpd.GeoDataFrame:
    if not gpkg.exists():
        raise InputArtifactError(f"Boundaries GeoPackage not found (run wnv.boundaries prep): {gpkg}")
    return gpd.read_file(gpkg, layer=REGION_LAYER)


# -----------------------------------------------------------------------------
# Core function (called by CLI)
# -----------------------------------------------------------------------------

def prep_boundaries(cfg: PipelineConfig, *, qa_csv: Optional[Path] = None) -> Dict[str, gpd.GeoDataFrame]:
    """Build region, basin and filtered zip layers and write them.

    Returns the layers as written (display CRS).
    """
    sec = cfg.section("boundaries")
    area_crs = sec.get("area_crs", "EPSG:3310")
    display_crs = sec.get("display_crs", "EPSG:4326")
    min_area_m2 = float(sec.get("min_area_m2", 1_000_000))

    counties = read_layer(cfg.input_path(sec["counties"]), "Counties")
    basin = read_layer(cfg.input_path(sec["basin"]), "Basin")
    zips = read_layer(cfg.input_path(sec["zips"]), "Zips")

    county_field = sec.get("county_field")
    county_name = sec.get("county_name")
    if county_field and county_name:
        if county_field not in counties.columns:
            raise InputArtifactError(
                f"County field '{county_field}' not found. Available columns: {list(counties.columns)}"
            )
        counties = counties[counties[county_field] == county_name]
        if counties.empty:
            raise InputArtifactError(f"No county with {county_field} == {county_name!r}")

    layers = clip_zips_to_region(
        counties,
        basin,
        zips,
        zip_field=sec.get("zip_field", "ZCTA5CE10"),
        area_crs=area_crs,
        min_area_m2=min_area_m2,
    )
    n_clipped = len(layers[ZIPS_LAYER])

    # --- Reproject to output CRS ---
    layers = {name: gdf.to_crs(display_crs) for name, gdf in layers.items()}

    # --- Write outputs ---
    out_gpkg = cfg.output_path(sec["out_gpkg"])
    out_gpkg.parent.mkdir(parents=True, exist_ok=True)
    for name, gdf in layers.items():
        gdf.to_file(out_gpkg, layer=name, driver="GPKG")

    if qa_csv is None and sec.get("qa_csv"):
        qa_csv = cfg.output_path(sec["qa_csv"])
    if qa_csv:
        qa_csv.parent.mkdir(parents=True, exist_ok=True)
        layers[ZIPS_LAYER].drop(columns="geometry").to_csv(qa_csv, index=False)

    # --- Human-friendly summary ---
    print(f"[BOUNDARIES] Wrote layers {list(layers)} -> {out_gpkg}")
    print(f"  {n_clipped} zips kept (area_m2 >= {min_area_m2:,.0f}); output CRS: {display_crs}")
    for _, row in layers[ZIPS_LAYER].drop(columns="geometry").sort_values("zip").iterrows():
        print(f"  - {row['zip']} | area_km2={row['area_m2'] / 1e6:.1f}")

    return layers
