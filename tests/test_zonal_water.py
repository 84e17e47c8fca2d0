#!/usr/bin/env python3

from __future__ import annotations

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import box

from wnv.errors import InputArtifactError
from wnv.water import zonal_water as zw

from conftest import CRS, RES, X0, Y0


@pytest.fixture
def zips():
    west = box(X0, Y0 - 4 * RES, X0 + 2 * RES, Y0)
    east = box(X0 + 2 * RES, Y0 - 4 * RES, X0 + 4 * RES, Y0)
    # Stored in lon/lat like the boundaries GeoPackage
    return gpd.GeoDataFrame({"zip": ["93305", "93301"]}, geometry=[east, west], crs=CRS).to_crs("EPSG:4326")


@pytest.fixture
def cropped(tmp_path, make_raster):
    d = tmp_path / "2019" / "cropped"
    first = np.zeros((4, 4), dtype="uint8")
    first[:, :2] = 1
    first[0, 3] = 1
    first[1, 3] = 255
    make_raster(d / "2019-03-30.tif", first)
    make_raster(d / "2019-03-14.tif", np.zeros((4, 4), dtype="uint8"))
    return d


def test_pixels_to_acres():
    assert zw.pixels_to_acres(0) == 0
    assert zw.pixels_to_acres(4046.86) == pytest.approx(900.0)
    assert zw.pixels_to_acres(pd.Series([1, 2])).tolist() == pytest.approx([900 / 4046.86, 1800 / 4046.86])


def test_table_counts_water_per_zip(zips, cropped):
    table = zw.zonal_water_table(zips, [cropped])

    assert table.columns.tolist() == zw.COLUMNS
    assert table["date"].is_monotonic_increasing
    assert len(table) == 4

    later = table[table["date"] == pd.Timestamp("2019-03-30")].set_index("zip")
    assert later.loc["93301", "ncells"] == 8
    # nodata cell is not counted
    assert later.loc["93305", "ncells"] == 1
    assert later.loc["93301", "acres"] == pytest.approx(8 * 900 / 4046.86)
    assert later.loc["93301", "date_label"] == "March 30, 2019"

    earlier = table[table["date"] == pd.Timestamp("2019-03-14")]
    assert (earlier["ncells"] == 0).all()
    assert earlier["zip"].tolist() == ["93301", "93305"]


def test_batches_are_concatenated(zips, cropped, tmp_path, make_raster):
    other = tmp_path / "2020" / "cropped"
    make_raster(other / "2020-01-02.tif", np.ones((4, 4), dtype="uint8"))
    table = zw.zonal_water_table(zips, [other, cropped])
    assert table["date"].dt.year.tolist() == [2019] * 4 + [2020] * 2
    assert table["ncells"].iloc[-1] == 8


def test_csv_round_trip_keeps_zip_text(zips, cropped, tmp_path):
    table = zw.zonal_water_table(zips, [cropped])
    out = zw.write_table(table, tmp_path / "tables" / "water.csv")
    back = zw.read_table(out)
    assert back["zip"].tolist() == table["zip"].tolist()
    assert back["date"].tolist() == table["date"].tolist()


def test_missing_directory_is_fatal(zips, tmp_path):
    with pytest.raises(InputArtifactError):
        zw.zonal_water_table(zips, [tmp_path / "nope"])
