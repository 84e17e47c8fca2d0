"""dates.py

Acquisition dates from satellite file names.

Landsat collection names are `_`-delimited with the acquisition date as a
YYYYMMDD token, e.g.

    LC08_L1TP_042035_20190314_20190325_01_T1_INWM.tif  -> 2019-03-14

Per-date outputs of this pipeline are named `YYYY-MM-DD.tif`.
"""

from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Dict, List, Tuple

from wnv.errors import DateParseError


DEFAULT_DELIMITER = "_"
DEFAULT_DATE_INDEX = 3
DEFAULT_DATE_FORMAT = "%Y%m%d"


def parse_acquisition_date(
    name: str,
    *,
    delimiter: str = DEFAULT_DELIMITER,
    index: int = DEFAULT_DATE_INDEX,
    fmt: str = DEFAULT_DATE_FORMAT,
) -> dt.date:
    """Parse the acquisition date from a file name.

    Raises DateParseError if the token is missing or is not a date.
    """
    stem = Path(name).name.split(".")[0]
    tokens = stem.split(delimiter)
    if index >= len(tokens):
        raise DateParseError(
            f"Can't find date token {index} in {name!r} (split on {delimiter!r}: {tokens})"
        )
    token = tokens[index]
    try:
        return dt.datetime.strptime(token, fmt).date()
    except ValueError as e:
        raise DateParseError(f"Token {token!r} in {name!r} is not a {fmt} date") from e


def filename_opts(water_cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Keyword args for parse_acquisition_date() from the water config section."""
    f = water_cfg.get("filename") or {}
    return {
        "delimiter": f.get("delimiter", DEFAULT_DELIMITER),
        "index": int(f.get("date_index", DEFAULT_DATE_INDEX)),
        "fmt": f.get("date_format", DEFAULT_DATE_FORMAT),
    }


def date_stem(d: dt.date) -> str:
    return d.isoformat()


def dated_rasters(directory: Path) -> List[Tuple[dt.date, Path]]:
    """List `YYYY-MM-DD.tif` rasters in a directory, sorted by date."""
    out = []
    for p in directory.glob("*.tif"):
        try:
            out.append((dt.date.fromisoformat(p.stem), p))
        except ValueError as e:
            raise DateParseError(f"Unexpected raster name in {directory}: {p.name}") from e
    return sorted(out)
