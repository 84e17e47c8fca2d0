#!/usr/bin/env python3
"""temperature.py

Tidy the per-zip daily mean temperature export and classify each day against
the thermal optimum for WNV transmission by Culex mosquitoes.

The input is a CSV exported from Earth Engine (reduceRegions over the zip
polygons), with three meaningful columns:

    system:index   image id with the date embedded (e.g. 20190601_0000000000000000002a)
    ZCTA5CE10      zip code
    mean           mean temperature, °C

Output columns: zip, date, temp_c, temp_f, suitability

Suitability bands (°C):
    optimal     22.9 <= t <= 27.1
    in range    12.1 <= t < 22.9  or  27.1 < t <= 31.9
    out range   everything else

Called by:
  python -m wnv.tables temperature
"""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from wnv.errors import DateParseError, InputArtifactError


OPTIMAL = "optimal"
IN_RANGE = "in range"
OUT_RANGE = "out range"

_IMAGE_DATE = re.compile(r"(?<!\d)(\d{4})_?(\d{2})_?(\d{2})(?!\d)")


@dataclass(frozen=True)
class ThermalBands:
    in_range_min: float = 12.1
    optimal_min: float = 22.9
    optimal_max: float = 27.1
    in_range_max: float = 31.9

    @classmethod
    def from_config(cls, d: Optional[Dict[str, Any]]) -> "ThermalBands":
        if not d:
            return cls()
        base = cls()
        bands = cls(
            in_range_min=float(d.get("in_range_min", base.in_range_min)),
            optimal_min=float(d.get("optimal_min", base.optimal_min)),
            optimal_max=float(d.get("optimal_max", base.optimal_max)),
            in_range_max=float(d.get("in_range_max", base.in_range_max)),
        )
        if not bands.in_range_min <= bands.optimal_min <= bands.optimal_max <= bands.in_range_max:
            raise SystemExit(f"temperature.thresholds must be increasing: {bands}")
        return bands


def parse_image_date(image_id: str) -> dt.date:
    """Pull the acquisition date out of an Earth Engine image id."""
    m = _IMAGE_DATE.search(str(image_id))
    if not m:
        raise DateParseError(f"No date in image id {image_id!r}")
    try:
        return dt.date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError as e:
        raise DateParseError(f"Bad date in image id {image_id!r}") from e


def classify_temperature(temp_c: float, bands: ThermalBands = ThermalBands()) -> str:
    """Suitability category for one temperature (°C)."""
    if bands.optimal_min <= temp_c <= bands.optimal_max:
        return OPTIMAL
    if bands.in_range_min <= temp_c < bands.optimal_min or bands.optimal_max < temp_c <= bands.in_range_max:
        return IN_RANGE
    return OUT_RANGE


def classify_series(temp_c: pd.Series, bands: ThermalBands = ThermalBands()) -> pd.Series:
    """Vectorized classify_temperature(); NaN falls through to 'out range'."""
    t = temp_c.to_numpy(dtype=float)
    optimal = (t >= bands.optimal_min) & (t <= bands.optimal_max)
    in_range = ((t >= bands.in_range_min) & (t < bands.optimal_min)) | (
        (t > bands.optimal_max) & (t <= bands.in_range_max)
    )
    return pd.Series(
        np.select([optimal, in_range], [OPTIMAL, IN_RANGE], default=OUT_RANGE),
        index=temp_c.index,
    )


def celsius_to_fahrenheit(temp_c):
    return temp_c * 9.0 / 5.0 + 32.0


def tidy_temperature(
    raw: pd.DataFrame,
    *,
    id_field: str = "system:index",
    zip_field: str = "ZCTA5CE10",
    value_field: str = "mean",
    bands: ThermalBands = ThermalBands(),
) -> pd.DataFrame:
    missing = [c for c in (id_field, zip_field, value_field) if c not in raw.columns]
    if missing:
        raise InputArtifactError(f"Temperature CSV missing columns {missing}; has {list(raw.columns)}")

    out = pd.DataFrame({
        "zip": raw[zip_field].astype(str).str.strip().str.zfill(5),
        "date": pd.to_datetime(raw[id_field].map(parse_image_date)),
        "temp_c": raw[value_field].astype(float),
    })
    out["temp_f"] = celsius_to_fahrenheit(out["temp_c"])
    out["suitability"] = classify_series(out["temp_c"], bands)
    return out.sort_values(["zip", "date"], kind="mergesort").reset_index(drop=True)


def run_temperature(source: Path, out_csv: Path, sec: Dict[str, Any]) -> pd.DataFrame:
    if not source.exists():
        raise InputArtifactError(f"Temperature CSV not found: {source}")
    raw = pd.read_csv(source, dtype={sec.get("zip_field", "ZCTA5CE10"): str})

    tidy = tidy_temperature(
        raw,
        id_field=sec.get("id_field", "system:index"),
        zip_field=sec.get("zip_field", "ZCTA5CE10"),
        value_field=sec.get("value_field", "mean"),
        bands=ThermalBands.from_config(sec.get("thresholds")),
    )

    out_csv.parent.mkdir(parents=True, exist_ok=True)
    written = tidy.copy()
    written["date"] = written["date"].dt.strftime("%Y-%m-%d")
    written.to_csv(out_csv, index=False)

    counts = tidy["suitability"].value_counts().to_dict()
    print(f"[TEMPERATURE] Wrote {len(tidy)} rows -> {out_csv}")
    print(f"  {counts}")
    return tidy
