#!/usr/bin/env python3

from __future__ import annotations

import geopandas as gpd
import pytest
from shapely.geometry import box

from wnv.boundaries import prep_boundaries as pb
from wnv.config import pipeline_config_from_dict
from wnv.errors import InputArtifactError, SpatialReferenceError

CRS = "EPSG:3310"


def _layers():
    counties = gpd.GeoDataFrame(
        {"NAME": ["Kern", "Tulare"]},
        geometry=[box(0, 0, 10000, 10000), box(0, 10000, 10000, 20000)],
        crs=CRS,
    )
    # Basin supplied in a different CRS on purpose
    basin = gpd.GeoDataFrame(geometry=[box(2000, -1000, 12000, 8000)], crs=CRS).to_crs("EPSG:4326")
    zips = gpd.GeoDataFrame(
        {
            "ZCTA5CE10": ["93301", "93305", "93399", "90001"],
            "POP": [100, 200, 3, 999],
        },
        geometry=[
            box(0, 0, 5000, 5000),           # clipped to 3000 x 5000
            box(5000, 0, 10000, 8000),       # clipped to 5000 x 8000
            box(9500, 7990, 20000, 20000),   # sliver: 500 x 10 after clip
            box(50000, 50000, 60000, 60000), # outside the region
        ],
        crs=CRS,
    )
    return counties, basin, zips


def test_normalize_zip():
    assert pb.normalize_zip("93301") == "93301"
    assert pb.normalize_zip(93301) == "93301"
    assert pb.normalize_zip("93301.0") == "93301"
    assert pb.normalize_zip(" 9330 ") == "09330"
    assert pb.normalize_zip(None) == ""


def test_slivers_dropped_and_attributes_kept():
    counties, basin, zips = _layers()
    layers = pb.clip_zips_to_region(
        counties[counties["NAME"] == "Kern"], basin, zips,
        zip_field="ZCTA5CE10", area_crs=CRS, min_area_m2=1_000_000,
    )
    out = layers["zips"].set_index("zip")

    assert sorted(out.index) == ["93301", "93305"]
    assert out.loc["93301", "area_m2"] == pytest.approx(15_000_000)
    assert out.loc["93305", "area_m2"] == pytest.approx(40_000_000)
    assert out.loc["93301", "POP"] == 100
    assert (out["area_m2"] >= 1_000_000).all()


def test_region_is_county_intersect_basin():
    counties, basin, zips = _layers()
    layers = pb.clip_zips_to_region(
        counties[counties["NAME"] == "Kern"], basin, zips,
        zip_field="ZCTA5CE10", area_crs=CRS, min_area_m2=1_000_000,
    )
    region = layers["region"]
    assert len(region) == 1
    assert region.geometry.iloc[0].area == pytest.approx(8000 * 8000)


def test_filter_slivers_threshold_is_inclusive():
    gdf = gpd.GeoDataFrame({"area_m2": [999_999.9, 1_000_000.0]}, geometry=[box(0, 0, 1, 1)] * 2, crs=CRS)
    kept = pb.filter_slivers(gdf, 1_000_000)
    assert kept["area_m2"].tolist() == [1_000_000.0]


def test_missing_crs_is_fatal():
    counties, basin, zips = _layers()
    zips = gpd.GeoDataFrame(zips.drop(columns="geometry"), geometry=list(zips.geometry))
    with pytest.raises(SpatialReferenceError):
        pb.clip_zips_to_region(counties, basin, zips, zip_field="ZCTA5CE10", area_crs=CRS, min_area_m2=1)


def test_missing_input_file_is_fatal(tmp_path):
    with pytest.raises(InputArtifactError):
        pb.read_layer(tmp_path / "nope.shp", "Zips")


def test_prep_boundaries_writes_three_layers(tmp_path):
    counties, basin, zips = _layers()
    src = tmp_path / "in"
    src.mkdir()
    counties.to_file(src / "counties.shp")
    basin.to_file(src / "basin.shp")
    zips.to_file(src / "zips.shp")

    cfg = pipeline_config_from_dict({
        "paths": {"input_root": str(src), "output_root": str(tmp_path / "out")},
        "boundaries": {
            "counties": "counties.shp",
            "basin": "basin.shp",
            "zips": "zips.shp",
            "county_field": "NAME",
            "county_name": "Kern",
            "zip_field": "ZCTA5CE10",
            "area_crs": CRS,
            "display_crs": "EPSG:4326",
            "min_area_m2": 1_000_000,
            "out_gpkg": "vectors/kern.gpkg",
        },
    })
    pb.prep_boundaries(cfg)

    gpkg = tmp_path / "out" / "vectors" / "kern.gpkg"
    for layer in ("region", "basin", "zips"):
        gdf = gpd.read_file(gpkg, layer=layer)
        assert gdf.crs.to_epsg() == 4326
    written = pb.read_zips(gpkg)
    assert sorted(written["zip"]) == ["93301", "93305"]
