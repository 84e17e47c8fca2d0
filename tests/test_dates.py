#!/usr/bin/env python3

from __future__ import annotations

import datetime as dt

import numpy as np
import pytest

from wnv.errors import DateParseError
from wnv.water import dates


def test_parse_landsat_name():
    name = "LC08_L1TP_042035_20190314_20190325_01_T1_INWM.tif"
    assert dates.parse_acquisition_date(name) == dt.date(2019, 3, 14)


def test_parse_without_extension_and_custom_index():
    assert dates.parse_acquisition_date("A-B-20200105", delimiter="-", index=2) == dt.date(2020, 1, 5)


def test_short_name_raises():
    with pytest.raises(DateParseError):
        dates.parse_acquisition_date("LC08_L1TP_042035.tif")


def test_non_date_token_raises():
    with pytest.raises(DateParseError):
        dates.parse_acquisition_date("LC08_L1TP_042035_2019XX14_x_INWM.tif")


def test_dated_rasters_sorted(tmp_path, make_raster):
    data = np.zeros((2, 2), dtype="uint8")
    for stem in ("2019-03-30", "2019-03-14", "2020-01-02"):
        make_raster(tmp_path / f"{stem}.tif", data)
    got = [d for d, _ in dates.dated_rasters(tmp_path)]
    assert got == [dt.date(2019, 3, 14), dt.date(2019, 3, 30), dt.date(2020, 1, 2)]


def test_dated_rasters_rejects_foreign_names(tmp_path, make_raster):
    make_raster(tmp_path / "mosaic.tif", np.zeros((2, 2), dtype="uint8"))
    with pytest.raises(DateParseError):
        dates.dated_rasters(tmp_path)
