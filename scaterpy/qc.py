"""Per-cell and per-feature quality-control metrics and outlier calls."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

import numpy as np
import pandas as pd
import scipy.sparse as sp
from scipy.stats import median_abs_deviation

from scaterpy.core.assays import get_assay, is_spike, selection_mask, spike_names
from scaterpy.core.types import OutlierThresholds
from scaterpy.core.utils import as_dense, axis_count_above, axis_sum, log10p, safe_pct

logger = logging.getLogger("scaterpy")

OUTLIER_TYPES: tuple[str, ...] = ("both", "lower", "higher")


def _with_suffix(name: str, suffix: str | None) -> str:
    return name if not suffix else f"{name}_{suffix}"


def _cell_metrics(
    mat: Any,
    ev: str,
    *,
    suffix: str | None,
    detection_limit: float,
    percent_top: Iterable[int],
) -> dict[str, np.ndarray]:
    n_features = int(mat.shape[1])
    totals = axis_sum(mat, axis=1)
    detected = axis_count_above(mat, axis=1, limit=detection_limit)
    out = {
        _with_suffix(f"total_features_by_{ev}", suffix): detected,
        _with_suffix(f"log10_total_features_by_{ev}", suffix): log10p(detected),
        _with_suffix(f"total_{ev}", suffix): totals,
        _with_suffix(f"log10_total_{ev}", suffix): log10p(totals),
    }
    tops = sorted({int(n) for n in percent_top if 0 < int(n) <= n_features})
    if tops:
        ranked = -np.sort(-as_dense(mat), axis=1)
        cum = np.cumsum(ranked, axis=1)
        for n in tops:
            out[_with_suffix(f"pct_{ev}_in_top_{n}_features", suffix)] = safe_pct(
                cum[:, n - 1], totals
            )
    return out


def _feature_metrics(
    mat: Any, ev: str, *, suffix: str | None, detection_limit: float
) -> dict[str, np.ndarray]:
    n_cells = int(mat.shape[0])
    totals = axis_sum(mat, axis=0)
    means = totals / n_cells if n_cells > 0 else np.full_like(totals, np.nan)
    n_expr = axis_count_above(mat, axis=0, limit=detection_limit)
    dropout = 100.0 * (1.0 - n_expr / n_cells) if n_cells > 0 else np.full_like(totals, np.nan)
    return {
        _with_suffix(f"mean_{ev}", suffix): means,
        _with_suffix(f"log10_mean_{ev}", suffix): log10p(means),
        _with_suffix(f"n_cells_by_{ev}", suffix): n_expr,
        _with_suffix(f"pct_dropout_by_{ev}", suffix): dropout,
        _with_suffix(f"total_{ev}", suffix): totals,
        _with_suffix(f"log10_total_{ev}", suffix): log10p(totals),
    }


def _feature_sets(
    adata, feature_controls: Mapping[str, Any] | None, use_spikes: bool
) -> dict[str, np.ndarray]:
    sets: dict[str, np.ndarray] = {}
    for name, selection in (feature_controls or {}).items():
        sets[str(name)] = selection_mask(adata, selection, axis="var")
    if use_spikes:
        for spike in spike_names(adata):
            if spike not in sets:
                sets[spike] = is_spike(adata, spike)
    for reserved in ("feature_control", "endogenous"):
        if reserved in sets:
            raise ValueError(f"'{reserved}' is a reserved feature control name.")
    return sets


def calculate_qc_metrics(
    adata,
    exprs_values: str = "counts",
    feature_controls: Mapping[str, Any] | None = None,
    cell_controls: Mapping[str, Any] | None = None,
    percent_top: Iterable[int] = (50, 100, 200, 500),
    detection_limit: float = 0.0,
    use_spikes: bool = True,
    inplace: bool = True,
) -> tuple[pd.DataFrame, pd.DataFrame] | None:
    """Compute per-cell and per-feature QC metrics from one assay.

    Per-cell metrics cover the whole feature set, every feature-control set,
    and (when controls exist) the control union and the endogenous remainder.
    Per-feature metrics cover all cells and every cell-control set.

    Returns `(cell_metrics, feature_metrics)` when `inplace=False`; otherwise
    the columns are written into `adata.obs` and `adata.var`.
    """
    mat = get_assay(adata, exprs_values)
    if sp.issparse(mat):
        mat = sp.csr_matrix(mat)
    ev = str(exprs_values)
    percent_top = tuple(int(n) for n in percent_top)

    fsets = _feature_sets(adata, feature_controls, use_spikes)
    cell_df = pd.DataFrame(index=adata.obs_names.copy())
    for key, val in _cell_metrics(
        mat, ev, suffix=None, detection_limit=detection_limit, percent_top=percent_top
    ).items():
        cell_df[key] = val
    lib_total = cell_df[f"total_{ev}"].to_numpy()

    subsets: dict[str, np.ndarray] = dict(fsets)
    if fsets:
        union = np.logical_or.reduce(list(fsets.values()))
        subsets["feature_control"] = union
        subsets["endogenous"] = ~union
    for name, mask in subsets.items():
        sub = mat[:, np.flatnonzero(mask)]
        for key, val in _cell_metrics(
            sub, ev, suffix=name, detection_limit=detection_limit, percent_top=percent_top
        ).items():
            cell_df[key] = val
        cell_df[f"pct_{ev}_{name}"] = safe_pct(cell_df[f"total_{ev}_{name}"], lib_total)

    csets: dict[str, np.ndarray] = {
        str(name): selection_mask(adata, selection, axis="obs")
        for name, selection in (cell_controls or {}).items()
    }
    cell_df["is_cell_control"] = (
        np.logical_or.reduce(list(csets.values()))
        if csets
        else np.zeros(adata.n_obs, dtype=bool)
    )
    for name, mask in csets.items():
        cell_df[f"is_cell_control_{name}"] = mask

    feature_df = pd.DataFrame(index=adata.var_names.copy())
    for key, val in _feature_metrics(
        mat, ev, suffix=None, detection_limit=detection_limit
    ).items():
        feature_df[key] = val
    for name, mask in csets.items():
        for key, val in _feature_metrics(
            mat[np.flatnonzero(mask), :], ev, suffix=name, detection_limit=detection_limit
        ).items():
            feature_df[key] = val
    feature_df["is_feature_control"] = subsets.get(
        "feature_control", np.zeros(adata.n_vars, dtype=bool)
    )
    for name, mask in fsets.items():
        feature_df[f"is_feature_control_{name}"] = mask

    logger.info(
        "QC metrics on '%s': %d cells, %d features, %d feature control set(s), %d cell control set(s)",
        ev,
        adata.n_obs,
        adata.n_vars,
        len(fsets),
        len(csets),
    )

    if not inplace:
        return cell_df, feature_df
    for col in cell_df.columns:
        adata.obs[col] = cell_df[col].to_numpy()
    for col in feature_df.columns:
        adata.var[col] = feature_df[col].to_numpy()
    return None


def _thresholds(
    values: np.ndarray, nmads: float, min_diff: float
) -> OutlierThresholds:
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        return OutlierThresholds(lower=float("nan"), higher=float("nan"))
    center = float(np.median(finite))
    mad = float(median_abs_deviation(finite, scale="normal"))
    diff = float(nmads) * mad
    if np.isfinite(min_diff):
        diff = max(diff, float(min_diff))
    return OutlierThresholds(lower=center - diff, higher=center + diff)


def _call(values: np.ndarray, th: OutlierThresholds, type: str) -> np.ndarray:
    with np.errstate(invalid="ignore"):
        lower = values < th.lower
        higher = values > th.higher
    if type == "lower":
        out = lower
    elif type == "higher":
        out = higher
    else:
        out = lower | higher
    return out & ~np.isnan(values)


def _back_transform(th: OutlierThresholds, log: bool) -> OutlierThresholds:
    if not log:
        return th
    return OutlierThresholds(lower=10.0**th.lower, higher=10.0**th.higher)


def is_outlier(
    metric: Any,
    nmads: float = 5.0,
    type: str = "both",
    log: bool = False,
    subset: Any = None,
    batch: Any = None,
    min_diff: float = float("nan"),
) -> pd.Series:
    """Flag values more than `nmads` median absolute deviations from the median.

    The MAD is scaled to be consistent with the standard deviation of a
    normal distribution. With `log=True` the metric is log10-transformed
    before thresholds are computed. Thresholds (on the original scale) are
    attached as `result.attrs["thresholds"]`.
    """
    if type not in OUTLIER_TYPES:
        raise ValueError(f"type must be one of {OUTLIER_TYPES}, got '{type}'.")
    index = metric.index if isinstance(metric, pd.Series) else None
    values = np.asarray(metric, dtype=float).ravel()
    if log:
        with np.errstate(divide="ignore", invalid="ignore"):
            values = np.log10(values)
    n = values.size

    use = np.ones(n, dtype=bool)
    if subset is not None:
        use = np.asarray(subset, dtype=bool).ravel()
        if use.size != n:
            raise ValueError("subset must have the same length as metric.")

    result = np.zeros(n, dtype=bool)
    if batch is None:
        th = _thresholds(values[use], nmads, min_diff)
        result = _call(values, th, type)
        thresholds: dict[str, Any] = _back_transform(th, log).as_dict()
    else:
        batch_arr = np.asarray(batch, dtype=object).ravel()
        if batch_arr.size != n:
            raise ValueError("batch must have the same length as metric.")
        if pd.isna(batch_arr).any():
            raise ValueError("batch contains missing labels.")
        thresholds = {}
        for level in pd.unique(batch_arr):
            in_batch = batch_arr == level
            th = _thresholds(values[in_batch & use], nmads, min_diff)
            result[in_batch] = _call(values[in_batch], th, type)
            thresholds[str(level)] = _back_transform(th, log).as_dict()

    out = pd.Series(result, index=index, name="is_outlier", dtype=bool)
    out.attrs["thresholds"] = thresholds
    return out


def nexprs(
    adata,
    exprs_values: str = "counts",
    detection_limit: float = 0.0,
    by: str = "cell",
    subset_row: Any = None,
    subset_col: Any = None,
) -> np.ndarray:
    """Count expressed features per cell, or expressing cells per feature."""
    if by not in ("cell", "feature"):
        raise ValueError("by must be 'cell' or 'feature'.")
    mat = get_assay(adata, exprs_values)
    if sp.issparse(mat):
        mat = sp.csr_matrix(mat)
    if subset_col is not None:
        mat = mat[np.flatnonzero(selection_mask(adata, subset_col, axis="obs")), :]
    if subset_row is not None:
        mat = mat[:, np.flatnonzero(selection_mask(adata, subset_row, axis="var"))]
    axis = 1 if by == "cell" else 0
    return axis_count_above(mat, axis=axis, limit=detection_limit).astype(int)
