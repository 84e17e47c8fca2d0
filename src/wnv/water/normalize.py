#!/usr/bin/env python3
"""normalize.py

Convert ENVI binary+header satellite files into GeoTIFFs, then remove the
originals.

The imagery provider delivers each raster as a binary file with no extension
plus a `<name>.hdr` header. GDAL reads the pair through its ENVI driver; each
is rewritten as `<name>.tif`.

Cleanup is destructive: every file in the directory whose suffix is not
`.tif` is deleted (binaries, headers, .aux.xml sidecars). Reprocessing needs
the source files fetched again. A `.tif` is never deleted.

Called by:
  python -m wnv.water normalize
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import rasterio

from wnv.errors import InputArtifactError
from wnv.water.rasters import write_single_band


NORMALIZED_SUFFIX = ".tif"
HEADER_SUFFIX = ".hdr"


def is_normalized(p: Path) -> bool:
    return p.suffix.lower() == NORMALIZED_SUFFIX


def find_envi_pairs(directory: Path) -> List[Path]:
    """Return extension-less data files that have a matching header."""
    if not directory.is_dir():
        raise InputArtifactError(f"Raster directory not found: {directory}")

    pairs = []
    for p in sorted(directory.iterdir()):
        if not p.is_file() or p.suffix != "":
            continue
        header = p.with_name(p.name + HEADER_SUFFIX)
        if not header.exists():
            raise InputArtifactError(f"Binary raster without header: {p} (expected {header.name})")
        pairs.append(p)
    return pairs


def convert_envi(data_path: Path, *, overwrite: bool = False) -> Path:
    """Rewrite one ENVI raster as `<name>.tif`; returns the output path."""
    out_path = data_path.with_name(data_path.name + NORMALIZED_SUFFIX)
    if out_path.exists() and not overwrite:
        print(f"[SKIP] {out_path.name}")
        return out_path

    with rasterio.open(data_path) as src:
        if src.count != 1:
            raise InputArtifactError(f"Expected single-band raster, got {src.count} bands: {data_path}")
        data = src.read(1)
        profile = src.profile.copy()

    write_single_band(out_path, data, profile)
    return out_path


def cleanup_originals(directory: Path) -> List[Path]:
    """Delete every regular file in directory that is not a normalized raster."""
    deleted = []
    for p in sorted(directory.iterdir()):
        if not p.is_file() or is_normalized(p):
            continue
        p.unlink()
        deleted.append(p)
    return deleted


def normalize_directory(directory: Path, *, overwrite: bool = False, dry_run: bool = False) -> Dict[str, List[Path]]:
    """Convert all ENVI pairs in a directory, then clean up the originals."""
    pairs = find_envi_pairs(directory)
    print(f"[NORMALIZE] {directory}: {len(pairs)} ENVI rasters")

    if dry_run:
        for p in pairs:
            print(f"  - would convert {p.name} -> {p.name}{NORMALIZED_SUFFIX}")
        return {"converted": [], "deleted": []}

    converted = [convert_envi(p, overwrite=overwrite) for p in pairs]

    # Only clean up once every conversion has been written
    missing = [p for p in pairs if not p.with_name(p.name + NORMALIZED_SUFFIX).exists()]
    if missing:
        raise InputArtifactError(f"Conversion incomplete, refusing to delete originals: {missing}")

    deleted = cleanup_originals(directory)
    print(f"  converted {len(converted)}, deleted {len(deleted)} original files")
    return {"converted": converted, "deleted": deleted}
