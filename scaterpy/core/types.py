"""Typed configuration and value containers for scaterpy operations."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any

import pandas as pd


@dataclass(frozen=True)
class VisValues:
    """Values resolved for one plot aesthetic.

    - `name`: label used for axes and legends.
    - `values`: one entry per cell (column mode) or feature (row mode).
    """

    name: str
    values: pd.Series

    @property
    def is_discrete(self) -> bool:
        s = self.values
        return not (pd.api.types.is_numeric_dtype(s) and not pd.api.types.is_bool_dtype(s))


@dataclass(frozen=True)
class QCConfig:
    """Configuration for one end-to-end QC/normalisation run."""

    h5ad_path: str
    outdir: str = "scaterpy_qc"
    exprs_values: str = "counts"
    feature_controls: dict[str, Any] = field(default_factory=dict)
    cell_controls: dict[str, Any] = field(default_factory=dict)
    percent_top: tuple[int, ...] = (50, 100, 200, 500)
    detection_limit: float = 0.0
    nmads: float = 5.0
    batch_key: str | None = None
    discard_outliers: bool = False
    pca_components: int = 2
    ntop: int = 500
    colour_by: str | None = None
    plot_features: tuple[str, ...] = ()
    highest_n: int = 50
    write_h5ad: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QCConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown QC config keys: {', '.join(unknown)}")
        if "h5ad_path" not in data:
            raise ValueError("QC config requires 'h5ad_path'.")
        kwargs = dict(data)
        for key in ("percent_top", "plot_features"):
            if key in kwargs:
                kwargs[key] = tuple(kwargs[key])
        if float(kwargs.get("nmads", 5.0)) <= 0:
            raise ValueError("nmads must be positive.")
        return cls(**kwargs)


@dataclass(frozen=True)
class OutlierThresholds:
    lower: float
    higher: float

    def as_dict(self) -> dict[str, float]:
        return {"lower": float(self.lower), "higher": float(self.higher)}
