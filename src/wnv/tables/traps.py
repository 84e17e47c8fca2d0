#!/usr/bin/env python3
"""traps.py

Assign mosquito trap clusters to zip codes and tidy the trap tables.

1. Centroid of each trap-cluster polygon (computed in the projected CRS)
2. Spatial join of centroids to the filtered zip polygons (`within`)
3. Manual overrides from corrections.yaml for clusters whose centroid falls
   just outside the intended zip (zip and area both replaced)
4. Each observation table (MIR, vector index, abundance) is inner-joined to
   the cluster -> zip map, so rows for unmapped clusters are dropped;
   configured columns are selected/renamed and a `month` is derived

Called by:
  python -m wnv.tables traps
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import geopandas as gpd
import pandas as pd

from wnv.config import ClusterOverride
from wnv.errors import InputArtifactError, SpatialReferenceError


MAP_COLUMNS = ["cluster_id", "zip", "area_m2"]


def cluster_centroids(clusters: gpd.GeoDataFrame, cluster_field: str, area_crs: str) -> gpd.GeoDataFrame:
    if clusters.crs is None:
        raise SpatialReferenceError("Trap cluster layer has no CRS")
    if cluster_field not in clusters.columns:
        raise InputArtifactError(
            f"Cluster field '{cluster_field}' not found. Available columns: {list(clusters.columns)}"
        )
    projected = clusters.to_crs(area_crs)
    return gpd.GeoDataFrame(
        {"cluster_id": projected[cluster_field].astype(int).values},
        geometry=projected.geometry.centroid.values,
        crs=area_crs,
    )


def assign_clusters(
    clusters: gpd.GeoDataFrame,
    zips: gpd.GeoDataFrame,
    *,
    cluster_field: str = "cluster_id",
    area_crs: str = "EPSG:3310",
    overrides: Optional[Mapping[int, ClusterOverride]] = None,
) -> pd.DataFrame:
    """Cluster -> (zip, area_m2) map. Clusters outside every zip are left out,
    unless an override places them."""
    if zips.crs is None:
        raise SpatialReferenceError("Zips layer has no CRS")

    centroids = cluster_centroids(clusters, cluster_field, area_crs)
    zones = zips[["zip", "area_m2", "geometry"]].to_crs(area_crs)

    joined = gpd.sjoin(centroids, zones, how="left", predicate="within")
    mapping = (
        pd.DataFrame(joined.drop(columns=["geometry", "index_right"], errors="ignore"))
        .drop_duplicates("cluster_id")
        .set_index("cluster_id")
    )
    mapping["zip"] = mapping["zip"].astype(object)
    mapping["area_m2"] = mapping["area_m2"].astype(float)

    zip_area = zones.groupby("zip")["area_m2"].sum()
    for cid, ov in (overrides or {}).items():
        area = ov.area_m2
        if area is None:
            if ov.zip not in zip_area.index:
                raise InputArtifactError(f"Override for cluster {cid}: zip {ov.zip} not in zips layer")
            area = float(zip_area[ov.zip])
        mapping.loc[int(cid), ["zip", "area_m2"]] = [ov.zip, area]

    mapping = mapping.dropna(subset=["zip"]).reset_index()
    mapping["cluster_id"] = mapping["cluster_id"].astype(int)
    mapping["area_m2"] = mapping["area_m2"].astype(float)
    return mapping[MAP_COLUMNS].sort_values("cluster_id").reset_index(drop=True)


def tidy_trap_table(
    raw: pd.DataFrame,
    mapping: pd.DataFrame,
    *,
    columns: Dict[str, str],
    date_field: str,
    cluster_field: str = "cluster_id",
) -> pd.DataFrame:
    """Inner-join one observation table to the cluster map, select/rename, add month."""
    missing = [c for c in list(columns) + [date_field, cluster_field] if c not in raw.columns]
    if missing:
        raise InputArtifactError(f"Trap table missing columns {sorted(set(missing))}; has {list(raw.columns)}")

    obs = raw.copy()
    obs[cluster_field] = obs[cluster_field].astype(int)
    joined = obs.merge(
        mapping.rename(columns={"cluster_id": cluster_field}),
        on=cluster_field,
        how="inner",
    )

    out = joined[list(columns) + ["zip", "area_m2"]].rename(columns=columns)
    out = out.loc[:, ~out.columns.duplicated()]
    dates = pd.to_datetime(joined[date_field])
    out["date"] = dates.values
    out["month"] = dates.dt.month.values
    return out.sort_values(["date", "zip"], kind="mergesort").reset_index(drop=True)


def run_traps(
    clusters_path: Path,
    zips: gpd.GeoDataFrame,
    tables: List[Dict[str, Any]],
    *,
    input_root: Path,
    output_root: Path,
    mapping_csv: Path,
    cluster_field: str,
    area_crs: str,
    overrides: Mapping[int, ClusterOverride],
) -> Dict[str, pd.DataFrame]:
    if not clusters_path.exists():
        raise InputArtifactError(f"Trap cluster layer not found: {clusters_path}")
    clusters = gpd.read_file(clusters_path)

    mapping = assign_clusters(
        clusters, zips, cluster_field=cluster_field, area_crs=area_crs, overrides=overrides
    )
    mapping_csv.parent.mkdir(parents=True, exist_ok=True)
    mapping.to_csv(mapping_csv, index=False)
    print(f"[TRAPS] {len(mapping)}/{len(clusters)} clusters mapped to zips -> {mapping_csv}")

    out: Dict[str, pd.DataFrame] = {}
    for spec in tables:
        name = spec["name"]
        source = input_root / spec["source"]
        if not source.exists():
            raise InputArtifactError(f"Trap table '{name}' not found: {source}")
        raw = pd.read_csv(source)
        tidy = tidy_trap_table(
            raw,
            mapping,
            columns=dict(spec["columns"]),
            date_field=spec["date_field"],
            cluster_field=spec.get("cluster_field", "cluster_id"),
        )
        out_csv = output_root / spec["out_csv"]
        out_csv.parent.mkdir(parents=True, exist_ok=True)
        written = tidy.copy()
        written["date"] = written["date"].dt.strftime("%Y-%m-%d")
        written.to_csv(out_csv, index=False)
        print(f"[TRAPS] {name}: kept {len(tidy)}/{len(raw)} rows -> {out_csv}")
        out[name] = tidy
    return out
