"""Accessors and setters for named assays, size factors and spike-in sets."""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd
import scipy.sparse as sp

from scaterpy.core.features import resolve_features

SIZE_FACTOR_COLUMN = "size_factor"
SPIKE_PREFIX = "is_spike_"


def assay_names(adata) -> list[str]:
    return [str(k) for k in adata.layers.keys()]


def get_assay(adata, name: str) -> Any:
    """Return the matrix stored under `name` in `adata.layers`."""
    if name not in adata.layers:
        available = ", ".join(assay_names(adata)) or "<none>"
        raise KeyError(f"'{name}' not in names of assays (available: {available}).")
    return adata.layers[name]


def set_assay(adata, name: str, value: Any) -> None:
    """Store `value` as assay `name` after checking its shape."""
    expected = (adata.n_obs, adata.n_vars)
    shape = tuple(getattr(value, "shape", np.shape(value)))
    if shape != expected:
        raise ValueError(f"Assay '{name}' has shape {shape}; expected {expected}.")
    if sp.issparse(value):
        adata.layers[name] = sp.csr_matrix(value)
    else:
        adata.layers[name] = np.asarray(value, dtype=float)


def counts(adata) -> Any:
    return get_assay(adata, "counts")


def set_counts(adata, value: Any) -> None:
    set_assay(adata, "counts", value)


def logcounts(adata) -> Any:
    return get_assay(adata, "logcounts")


def set_logcounts(adata, value: Any) -> None:
    set_assay(adata, "logcounts", value)


def normcounts(adata) -> Any:
    return get_assay(adata, "normcounts")


def set_normcounts(adata, value: Any) -> None:
    set_assay(adata, "normcounts", value)


def cpm(adata) -> Any:
    return get_assay(adata, "cpm")


def set_cpm(adata, value: Any) -> None:
    set_assay(adata, "cpm", value)


def exprs(adata) -> Any:
    return get_assay(adata, "exprs")


def set_exprs(adata, value: Any) -> None:
    set_assay(adata, "exprs", value)


def _size_factor_column(type: str | None) -> str:
    if type is None:
        return SIZE_FACTOR_COLUMN
    return f"{SIZE_FACTOR_COLUMN}_{type}"


def size_factors(adata, type: str | None = None) -> np.ndarray | None:
    """Return the stored size factors, or None when the set is absent."""
    col = _size_factor_column(type)
    if col not in adata.obs.columns:
        return None
    return adata.obs[col].to_numpy(dtype=float)


def set_size_factors(adata, values: Any, type: str | None = None) -> None:
    arr = np.asarray(values, dtype=float).ravel()
    if arr.size != adata.n_obs:
        raise ValueError(
            f"Size factors have length {arr.size}; expected {adata.n_obs} cells."
        )
    if not np.isfinite(arr).all() or np.any(arr <= 0):
        raise ValueError("Size factors must be finite and strictly positive.")
    adata.obs[_size_factor_column(type)] = arr


def size_factor_types(adata) -> list[str]:
    prefix = f"{SIZE_FACTOR_COLUMN}_"
    return [
        str(col)[len(prefix) :]
        for col in adata.obs.columns
        if str(col).startswith(prefix)
    ]


def set_spike(adata, name: str, features: Any) -> None:
    """Register `features` as spike-in set `name`."""
    positions, _ = resolve_features(adata, features)
    mask = np.zeros(adata.n_vars, dtype=bool)
    mask[positions] = True
    adata.var[f"{SPIKE_PREFIX}{name}"] = mask


def spike_names(adata) -> list[str]:
    return [
        str(col)[len(SPIKE_PREFIX) :]
        for col in adata.var.columns
        if str(col).startswith(SPIKE_PREFIX)
    ]


def is_spike(adata, name: str | None = None) -> np.ndarray:
    """Boolean mask over features for one spike-in set or for all of them."""
    if name is not None:
        col = f"{SPIKE_PREFIX}{name}"
        if col not in adata.var.columns:
            raise KeyError(f"Spike-in set '{name}' is not registered.")
        return adata.var[col].to_numpy(dtype=bool)
    mask = np.zeros(adata.n_vars, dtype=bool)
    for spike in spike_names(adata):
        mask |= adata.var[f"{SPIKE_PREFIX}{spike}"].to_numpy(dtype=bool)
    return mask


def selection_mask(adata, selection: Any, axis: str = "var") -> np.ndarray:
    """Turn names, positions or a boolean mask into a mask over cells or features."""
    if axis == "var":
        positions, _ = resolve_features(adata, selection)
        mask = np.zeros(adata.n_vars, dtype=bool)
    elif axis == "obs":
        positions = _resolve_cells(adata, selection)
        mask = np.zeros(adata.n_obs, dtype=bool)
    else:
        raise ValueError("axis must be 'var' or 'obs'.")
    mask[positions] = True
    return mask


def _resolve_cells(adata, selection: Any) -> np.ndarray:
    arr = np.asarray(selection)
    if arr.dtype == bool:
        if arr.size != adata.n_obs:
            raise ValueError("Boolean cell selection has the wrong length.")
        return np.flatnonzero(arr)
    if np.issubdtype(arr.dtype, np.integer):
        if np.any(arr < 0) or np.any(arr >= adata.n_obs):
            raise IndexError("Cell position out of range.")
        return arr.ravel().astype(int)
    obs_names = pd.Index(adata.obs_names)
    idx = obs_names.get_indexer(arr.astype(str).ravel())
    if np.any(idx < 0):
        missing = arr.ravel()[idx < 0][0]
        raise KeyError(f"Cell '{missing}' not found in obs_names.")
    return idx
