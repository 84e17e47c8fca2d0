#!/usr/bin/env python3

from __future__ import annotations

import pytest
import yaml

from wnv.boundaries.__main__ import main as boundaries_main
from wnv.tables.__main__ import main as tables_main
from wnv.water.__main__ import main as water_main

from conftest import ROOT


@pytest.fixture
def config(tmp_path):
    data = yaml.safe_load((ROOT / "config" / "pipeline.yaml").read_text())
    data["paths"] = {"input_root": str(tmp_path / "raw"), "output_root": str(tmp_path / "out")}
    path = tmp_path / "pipeline.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def test_repair_dry_run_lists_policy(config, capsys):
    rc = water_main(["--config", str(config), "--corrections", str(ROOT / "config" / "corrections.yaml"),
                     "--dry-run", "repair"])
    out = capsys.readouterr().out
    assert rc == 0
    assert "2019-01-10" in out
    assert "2019-12-10" in out


def test_traps_dry_run_lists_overrides(config, capsys):
    rc = tables_main(["--config", str(config), "--corrections", str(ROOT / "config" / "corrections.yaml"),
                      "--dry-run", "traps"])
    out = capsys.readouterr().out
    assert rc == 0
    assert "cluster 7 -> 93280" in out
    assert "cluster 95 -> 93308" in out


def test_pipeline_errors_exit_with_stage_tag(config):
    # No boundaries inputs exist under the temp raw root
    with pytest.raises(SystemExit) as exc:
        boundaries_main(["--config", str(config), "prep"])
    assert "[boundaries prep]" in str(exc.value)


def test_missing_config_exits(tmp_path):
    with pytest.raises(SystemExit):
        water_main(["--config", str(tmp_path / "nope.yaml"), "zonal"])
