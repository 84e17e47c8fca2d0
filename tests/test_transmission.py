#!/usr/bin/env python3

from __future__ import annotations

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import box

from wnv.tables import transmission as tx

from conftest import CRS, RES, X0, Y0

NODATA = -9999.0


@pytest.fixture
def raster(tmp_path, make_raster):
    data = np.arange(16, dtype="float32").reshape(4, 4)
    data[0, 0] = NODATA
    data[3, 3] = np.nan
    return make_raster(tmp_path / "efficiency.tif", data, nodata=NODATA)


@pytest.fixture
def zips():
    return gpd.GeoDataFrame(
        {"zip": ["93305", "93301"]},
        geometry=[box(X0 + 2 * RES, Y0 - 4 * RES, X0 + 4 * RES, Y0), box(X0, Y0 - 4 * RES, X0 + 2 * RES, Y0)],
        crs=CRS,
    ).to_crs("EPSG:4326")


def test_county_mean_is_cell_mean(raster):
    # 1..14 valid: nodata at 0, NaN at 15
    assert tx.raster_mean(raster) == pytest.approx(7.5)


def test_table_has_zips_then_county(zips, raster):
    table = tx.transmission_table(zips, raster)

    assert table.columns.tolist() == ["zip", "mean_efficiency"]
    assert table["zip"].tolist() == ["93301", "93305", tx.DEFAULT_COUNTY_LABEL]
    # West half without the nodata cell
    assert table.loc[0, "mean_efficiency"] == pytest.approx(52 / 7)
    assert np.isfinite(table.loc[1, "mean_efficiency"])
    assert table.loc[2, "mean_efficiency"] == pytest.approx(7.5)


def test_county_label_must_not_be_a_zip(zips, raster):
    with pytest.raises(SystemExit):
        tx.transmission_table(zips, raster, county_label="93301")


def test_run_writes_csv(zips, raster, tmp_path):
    out = tmp_path / "tables" / "transmission.csv"
    tx.run_transmission(zips, raster, out, county_label="Kern County")
    back = pd.read_csv(out, dtype={"zip": str})
    assert back["zip"].iloc[-1] == "Kern County"
    assert len(back) == 3
