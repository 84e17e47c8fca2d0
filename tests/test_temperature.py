#!/usr/bin/env python3

from __future__ import annotations

import datetime as dt

import numpy as np
import pandas as pd
import pytest

from wnv.errors import DateParseError, InputArtifactError
from wnv.tables import temperature as tp


@pytest.mark.parametrize(
    "temp_c, expected",
    [
        (20.0, tp.IN_RANGE),
        (23.9, tp.OPTIMAL),
        (22.9, tp.OPTIMAL),
        (27.1, tp.OPTIMAL),
        (27.2, tp.IN_RANGE),
        (31.9, tp.IN_RANGE),
        (12.1, tp.IN_RANGE),
        (35.0, tp.OUT_RANGE),
        (10.0, tp.OUT_RANGE),
    ],
)
def test_classify_temperature(temp_c, expected):
    assert tp.classify_temperature(temp_c) == expected


def test_vectorized_matches_scalar():
    temps = pd.Series([10.0, 12.1, 20.0, 22.9, 25.0, 27.1, 27.2, 31.9, 32.0, np.nan])
    got = tp.classify_series(temps).tolist()
    assert got[:-1] == [tp.classify_temperature(t) for t in temps[:-1]]
    assert got[-1] == tp.OUT_RANGE


def test_parse_image_date():
    assert tp.parse_image_date("20190601_0000000000000000002a") == dt.date(2019, 6, 1)
    assert tp.parse_image_date("2019_06_01_12") == dt.date(2019, 6, 1)
    # Path/row digits before the date must not be mistaken for a year
    assert tp.parse_image_date("LC08_042035_20190601") == dt.date(2019, 6, 1)
    assert tp.parse_image_date("1_LC08_042035_20190601_0000002a") == dt.date(2019, 6, 1)
    with pytest.raises(DateParseError):
        tp.parse_image_date("no_date_here")


def test_thresholds_must_increase():
    with pytest.raises(SystemExit):
        tp.ThermalBands.from_config({"optimal_min": 30.0, "optimal_max": 25.0})


def test_tidy_temperature():
    raw = pd.DataFrame({
        "system:index": ["20190602_00000000000000000001", "20190601_00000000000000000001", "20190601_0000000000000002"],
        "ZCTA5CE10": ["93305", "93305", "93301"],
        "mean": [25.0, 10.0, 30.0],
        ".geo": ["{}", "{}", "{}"],
    })
    out = tp.tidy_temperature(raw)

    assert out.columns.tolist() == ["zip", "date", "temp_c", "temp_f", "suitability"]
    assert out["zip"].tolist() == ["93301", "93305", "93305"]
    assert out["date"].dt.day.tolist() == [1, 1, 2]
    assert out["temp_f"].tolist() == pytest.approx([86.0, 50.0, 77.0])
    assert out["suitability"].tolist() == [tp.IN_RANGE, tp.OUT_RANGE, tp.OPTIMAL]


def test_tidy_requires_columns():
    with pytest.raises(InputArtifactError):
        tp.tidy_temperature(pd.DataFrame({"mean": [1.0]}))


def test_run_temperature_writes_csv(tmp_path):
    src = tmp_path / "temps.csv"
    pd.DataFrame({
        "system:index": ["20190601_1"],
        "ZCTA5CE10": ["09330"],
        "mean": [23.0],
    }).to_csv(src, index=False)

    out = tmp_path / "tables" / "temperature.csv"
    tp.run_temperature(src, out, {})
    back = pd.read_csv(out, dtype={"zip": str})
    assert back.loc[0, "zip"] == "09330"
    assert back.loc[0, "date"] == "2019-06-01"
    assert back.loc[0, "suitability"] == tp.OPTIMAL
