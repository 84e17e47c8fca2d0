#!/usr/bin/env python3
"""wnv.config

Shared configuration utilities for the WNV pipeline CLIs.

This module provides the helpers used across wnv.boundaries, wnv.water and
wnv.tables. Every stage receives a PipelineConfig (input/output roots plus
per-stage sections) and, where it needs it, the Corrections policy.

Design notes:
- YAML loading is strict: files must exist and be valid mappings.
- Paths in the YAML are relative to input_root / output_root, never to the
  current working directory.
- Correction lists (bad dates, cluster overrides) are data, not code.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

import yaml


# -----------------------------------------------------------------------------
# YAML loading
# -----------------------------------------------------------------------------

def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return as dict.

    Raises SystemExit on missing file or invalid format (non-mapping).
    """
    if not path.exists():
        raise SystemExit(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise SystemExit(f"Expected YAML mapping at {path}")
    return data


# -----------------------------------------------------------------------------
# Pipeline config
# -----------------------------------------------------------------------------

@dataclass
class PipelineConfig:
    input_root: Path
    output_root: Path
    sections: Dict[str, Any] = field(default_factory=dict)

    def section(self, name: str) -> Dict[str, Any]:
        """Return a stage section, failing fast if it is missing."""
        sec = self.sections.get(name)
        if not isinstance(sec, dict):
            raise SystemExit(f"Pipeline config missing section: {name}")
        return sec

    def input_path(self, rel: str) -> Path:
        return self.input_root / rel

    def output_path(self, rel: str) -> Path:
        return self.output_root / rel


def pipeline_config_from_dict(data: Dict[str, Any], base_dir: Optional[Path] = None) -> PipelineConfig:
    """Build a PipelineConfig from a parsed pipeline YAML.

    Relative roots are resolved against base_dir (the YAML's directory when
    loaded from disk).
    """
    paths = data.get("paths")
    if not isinstance(paths, dict) or "input_root" not in paths or "output_root" not in paths:
        raise SystemExit("Pipeline config must have 'paths:' with input_root and output_root")

    base = base_dir if base_dir is not None else Path(".")
    input_root = Path(paths["input_root"])
    output_root = Path(paths["output_root"])
    if not input_root.is_absolute():
        input_root = base / input_root
    if not output_root.is_absolute():
        output_root = base / output_root

    sections = {k: v for k, v in data.items() if k != "paths"}
    return PipelineConfig(input_root=input_root, output_root=output_root, sections=sections)


def load_pipeline_config(path: Path) -> PipelineConfig:
    data = load_yaml(path)
    return pipeline_config_from_dict(data, base_dir=path.resolve().parent)


# -----------------------------------------------------------------------------
# Corrections (bad dates, cluster overrides)
# -----------------------------------------------------------------------------

def _parse_dates(values: Any, key: str) -> FrozenSet[dt.date]:
    if values is None:
        return frozenset()
    if not isinstance(values, list):
        raise SystemExit(f"corrections: bad_dates.{key} must be a list of dates")
    out = set()
    for v in values:
        # PyYAML already turns unquoted ISO dates into datetime.date
        if isinstance(v, dt.date):
            out.add(v)
        else:
            try:
                out.add(dt.date.fromisoformat(str(v).strip()))
            except ValueError as e:
                raise SystemExit(f"corrections: bad date in bad_dates.{key}: {v!r}") from e
    return frozenset(out)


@dataclass(frozen=True)
class ClusterOverride:
    zip: str
    area_m2: Optional[float] = None


@dataclass(frozen=True)
class Corrections:
    drop_dates: FrozenSet[dt.date] = frozenset()
    average_dates: FrozenSet[dt.date] = frozenset()
    interpolate_dates: FrozenSet[dt.date] = frozenset()
    cluster_overrides: Dict[int, ClusterOverride] = field(default_factory=dict)

    @property
    def excluded_dates(self) -> FrozenSet[dt.date]:
        """Every date that is not a clean observation."""
        return self.drop_dates | self.average_dates | self.interpolate_dates


def corrections_from_dict(data: Dict[str, Any]) -> Corrections:
    bad = data.get("bad_dates") or {}
    if not isinstance(bad, dict):
        raise SystemExit("corrections: 'bad_dates' must be a mapping")

    drop = _parse_dates(bad.get("drop"), "drop")
    average = _parse_dates(bad.get("average"), "average")
    interpolate = _parse_dates(bad.get("interpolate"), "interpolate")

    overlap = (drop & average) | (drop & interpolate) | (average & interpolate)
    if overlap:
        raise SystemExit(f"corrections: dates listed under more than one policy: {sorted(overlap)}")

    overrides: Dict[int, ClusterOverride] = {}
    raw_overrides = data.get("cluster_overrides") or {}
    if not isinstance(raw_overrides, dict):
        raise SystemExit("corrections: 'cluster_overrides' must be a mapping")
    for cid, spec in raw_overrides.items():
        if not isinstance(spec, dict) or "zip" not in spec:
            raise SystemExit(f"corrections: cluster override {cid} needs a 'zip'")
        area = spec.get("area_m2")
        overrides[int(cid)] = ClusterOverride(
            zip=str(spec["zip"]),
            area_m2=float(area) if area is not None else None,
        )

    return Corrections(
        drop_dates=drop,
        average_dates=average,
        interpolate_dates=interpolate,
        cluster_overrides=overrides,
    )


def load_corrections(path: Path) -> Corrections:
    return corrections_from_dict(load_yaml(path))


def format_dates(dates: List[dt.date]) -> str:
    """Format a date list as a readable string."""
    return ", ".join(d.isoformat() for d in sorted(dates)) or "(none)"


# -----------------------------------------------------------------------------
# Default paths
# -----------------------------------------------------------------------------
# Centralized so all CLIs use the same defaults.

DEFAULT_PIPELINE_YAML = Path("config/pipeline.yaml")
DEFAULT_CORRECTIONS_YAML = Path("config/corrections.yaml")
