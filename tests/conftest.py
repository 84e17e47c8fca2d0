from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

# Small California Albers grid used across tests: 30 m cells, 4x4
CRS = "EPSG:3310"
X0, Y0, RES = 100000.0, -300000.0, 30.0


def write_raster(path: Path, data: np.ndarray, *, x0: float = X0, y0: float = Y0, res: float = RES,
                 nodata=255, crs: str = CRS, driver: str = "GTiff") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    profile = {
        "driver": driver,
        "height": data.shape[0],
        "width": data.shape[1],
        "count": 1,
        "dtype": data.dtype.name,
        "crs": crs,
        "transform": from_origin(x0, y0, res, res),
        "nodata": nodata,
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data, 1)
    return path


@pytest.fixture
def make_raster():
    return write_raster
