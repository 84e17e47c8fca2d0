#!/usr/bin/env python3

from __future__ import annotations

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

from wnv.config import ClusterOverride, load_corrections
from wnv.errors import InputArtifactError
from wnv.tables import traps

from conftest import ROOT

CRS = "EPSG:3310"


@pytest.fixture
def zips():
    return gpd.GeoDataFrame(
        {
            "zip": ["93301", "93280", "93308"],
            "area_m2": [1.0e8, 2.5e7, 4.0e7],
        },
        geometry=[box(0, 0, 10000, 10000), box(20000, 0, 25000, 5000), box(30000, 0, 35000, 8000)],
        crs=CRS,
    )


@pytest.fixture
def clusters():
    return gpd.GeoDataFrame(
        {"cluster_id": [1, 7, 9, 95]},
        geometry=[
            box(1000, 1000, 2000, 2000),      # inside 93301
            box(25500, 500, 26500, 1500),     # just east of 93280
            box(80000, 80000, 81000, 81000),  # nowhere
            box(8000, 8000, 9000, 9000),      # inside 93301
        ],
        crs=CRS,
    ).to_crs("EPSG:4326")


@pytest.fixture
def overrides():
    return load_corrections(ROOT / "config" / "corrections.yaml").cluster_overrides


def test_centroids_join_within(clusters, zips):
    mapping = traps.assign_clusters(clusters, zips, area_crs=CRS)
    assert mapping.columns.tolist() == traps.MAP_COLUMNS
    assert mapping["cluster_id"].tolist() == [1, 95]
    assert mapping["zip"].tolist() == ["93301", "93301"]


def test_overrides_replace_zip_and_area(clusters, zips, overrides):
    mapping = traps.assign_clusters(clusters, zips, area_crs=CRS, overrides=overrides).set_index("cluster_id")

    assert mapping.loc[7, "zip"] == "93280"
    assert mapping.loc[7, "area_m2"] == pytest.approx(2.5e7)
    assert mapping.loc[95, "zip"] == "93308"
    assert mapping.loc[95, "area_m2"] == pytest.approx(4.0e7)
    assert mapping.loc[1, "zip"] == "93301"
    assert 9 not in mapping.index


def test_override_area_when_given(clusters, zips):
    mapping = traps.assign_clusters(
        clusters, zips, area_crs=CRS, overrides={9: ClusterOverride(zip="99999", area_m2=123.0)}
    ).set_index("cluster_id")
    assert mapping.loc[9, "zip"] == "99999"
    assert mapping.loc[9, "area_m2"] == 123.0


def test_override_to_unknown_zip_without_area(clusters, zips):
    with pytest.raises(InputArtifactError):
        traps.assign_clusters(clusters, zips, area_crs=CRS, overrides={9: ClusterOverride(zip="99999")})


def test_tidy_trap_table(clusters, zips, overrides):
    mapping = traps.assign_clusters(clusters, zips, area_crs=CRS, overrides=overrides)
    raw = pd.DataFrame({
        "cluster_id": [1, 9, 7, 95],
        "collection_date": ["2019-07-02", "2019-07-02", "2019-06-15", "2019-08-01"],
        "mir": [1.5, 9.9, 0.0, 3.2],
        "trap_type": ["CO2", "CO2", "GRAVID", "CO2"],
    })
    out = traps.tidy_trap_table(
        raw, mapping,
        columns={"cluster_id": "cluster", "mir": "mir_per_1000"},
        date_field="collection_date",
    )

    assert len(out) == 3
    assert 9 not in set(out["cluster"])
    assert "trap_type" not in out.columns
    assert out["month"].tolist() == [6, 7, 8]
    assert out["zip"].tolist() == ["93280", "93301", "93308"]
    assert out.loc[0, "area_m2"] == pytest.approx(2.5e7)


def test_tidy_requires_columns(zips, clusters):
    mapping = traps.assign_clusters(clusters, zips, area_crs=CRS)
    with pytest.raises(InputArtifactError):
        traps.tidy_trap_table(pd.DataFrame({"cluster_id": [1]}), mapping, columns={"mir": "mir"},
                              date_field="collection_date")
