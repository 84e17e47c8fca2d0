#!/usr/bin/env python3
"""gap_repair.py

Patch cloud-corrupted dates in the water-by-zip table.

The policy is a fixed list of dates from corrections.yaml, applied to each
zip's series independently, in date order:

- drop:        unrecoverable dates (first/last in series), rows removed
- average:     value = mean of the previous and next clean observation
- interpolate: value nulled, then filled by linear interpolation in time

`acres` and `ncells` are repaired the same way; `ncells` is rounded to whole
cells afterwards. Dates outside the three lists are never changed.

Called by:
  python -m wnv.water repair
"""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Iterable

import numpy as np
import pandas as pd

from wnv.config import Corrections
from wnv.water.zonal_water import read_table, write_table


REPAIRED_COLUMNS = ("acres", "ncells")


def _timestamps(dates: Iterable[dt.date]) -> pd.DatetimeIndex:
    return pd.DatetimeIndex([pd.Timestamp(d) for d in dates])


def repair_series(
    series: pd.Series,
    *,
    average_dates: Iterable[dt.date] = (),
    interpolate_dates: Iterable[dt.date] = (),
) -> pd.Series:
    """Repair one date-indexed series (already sorted, bad 'drop' dates removed).

    Every listed date is nulled first, so neighbours and interpolation
    anchors are clean observations only. A small gap whose neighbour is itself
    a bad date has no mean and is interpolated with the surrounding run.
    Leading/trailing gaps have nothing to interpolate from and stay NaN.
    """
    repaired = series.astype(float)

    avg = repaired.index.isin(_timestamps(average_dates))
    gap = repaired.index.isin(_timestamps(interpolate_dates))
    bad = avg | gap
    if not bad.any():
        return repaired

    repaired[bad] = np.nan
    if avg.any():
        neighbours = (repaired.shift(1) + repaired.shift(-1)) / 2.0
        repaired[avg] = neighbours[avg]

    if repaired[bad].isna().any():
        filled = repaired.interpolate(method="time", limit_area="inside")
        repaired[bad] = filled[bad]

    return repaired


def repair_table(table: pd.DataFrame, corrections: Corrections) -> pd.DataFrame:
    """Apply the correction policy per zip. Returns a new, date-ordered table."""
    drop = _timestamps(corrections.drop_dates)
    kept = table[~table["date"].isin(drop)]

    parts = []
    for _, group in kept.groupby("zip", sort=True):
        group = group.sort_values("date").set_index("date")
        for col in REPAIRED_COLUMNS:
            group[col] = repair_series(
                group[col],
                average_dates=corrections.average_dates,
                interpolate_dates=corrections.interpolate_dates,
            )
        parts.append(group.reset_index())

    out = pd.concat(parts, ignore_index=True) if parts else kept.iloc[0:0].copy()
    out["ncells"] = out["ncells"].round(0).astype("Int64")
    out = out.sort_values(["date", "zip"], kind="mergesort").reset_index(drop=True)
    return out[table.columns.tolist()]


def run_repair(table_csv: Path, corrections: Corrections) -> pd.DataFrame:
    """Repair the canonical CSV in place."""
    table = read_table(table_csv)
    repaired = repair_table(table, corrections)
    write_table(repaired, table_csv)

    n_dropped = len(table) - len(repaired)
    n_avg = int(repaired["date"].isin(_timestamps(corrections.average_dates)).sum())
    n_interp = int(repaired["date"].isin(_timestamps(corrections.interpolate_dates)).sum())
    print(f"[REPAIR] {table_csv}: dropped {n_dropped} rows, averaged {n_avg}, interpolated {n_interp}")
    return repaired
