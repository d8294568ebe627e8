"""Feature namespace resolution utilities."""

from __future__ import annotations

import warnings
from typing import Any

import numpy as np
import pandas as pd
import scipy.sparse as sp

SYMBOL_COLUMNS: tuple[str, ...] = ("hugo_symbol", "gene_name", "gene_symbol")


def _pick_symbol_column(adata_like: Any) -> str | None:
    if not hasattr(adata_like, "var") or adata_like.var is None:
        return None
    for col in SYMBOL_COLUMNS:
        if col in adata_like.var.columns:
            return str(col)
    return None


def has_feature_names(adata_like: Any) -> bool:
    """False when `var_names` are only the positional defaults anndata assigns."""
    names = pd.Index(adata_like.var_names).astype(str)
    return not names.equals(pd.Index([str(i) for i in range(len(names))]))


def feature_labels(adata_like: Any, positions: np.ndarray) -> list[str]:
    if has_feature_names(adata_like):
        names = pd.Index(adata_like.var_names).astype(str)
        return [str(names[int(p)]) for p in positions]
    return [f"Feature {int(p)}" for p in positions]


def resolve_feature_index(
    adata_like: Any,
    feature: str,
) -> tuple[int, str, str | None, str]:
    """Resolve feature index without mutating `var_names`.

    Returns `(idx, display_label, symbol_column_used, resolution_source)`.
    """
    key = str(feature).strip()
    if key == "":
        raise KeyError("Feature name is empty.")

    var_names = pd.Index(adata_like.var_names)
    symbol_col = _pick_symbol_column(adata_like)

    if key in var_names:
        loc = var_names.get_loc(key)
        if isinstance(loc, (int, np.integer)):
            idx = int(loc)
        elif isinstance(loc, np.ndarray) and loc.size > 0:
            idx = int(np.flatnonzero(loc)[0])
        elif isinstance(loc, slice):
            idx = int(loc.start)
        else:
            raise KeyError(f"Feature '{feature}' did not resolve uniquely in var_names.")
        label = key
        if symbol_col is not None:
            sym = str(adata_like.var.iloc[idx][symbol_col]).strip()
            if sym not in ("", "nan"):
                label = sym
        return idx, label, symbol_col, "var_names"

    if symbol_col is not None:
        raw = (
            adata_like.var[symbol_col]
            .astype("string")
            .fillna("")
            .astype(str)
            .str.strip()
        )
        non_empty = raw[raw != ""]
        if key in non_empty.values:
            hits = np.flatnonzero((raw == key).to_numpy())
            if hits.size > 1:
                warnings.warn(
                    (
                        f"Symbol '{key}' is duplicated in {symbol_col}; "
                        "resolution keeps first occurrence."
                    ),
                    RuntimeWarning,
                    stacklevel=2,
                )
            return int(hits[0]), key, symbol_col, "symbol"

    raise KeyError(f"Feature '{feature}' not found in var_names or symbol columns.")


def resolve_features(adata_like: Any, features: Any) -> tuple[np.ndarray, list[str]]:
    """Resolve names, positions or a boolean mask to `(positions, labels)`."""
    n_vars = int(adata_like.n_vars)
    if isinstance(features, (str, bytes)):
        items: list[Any] = [features]
    elif isinstance(features, (int, np.integer)):
        items = [int(features)]
    elif isinstance(features, list):
        items = features
    else:
        items = list(np.asarray(features).ravel())

    if len(items) == 0:
        raise ValueError("No features requested.")

    arr = np.asarray(items)
    if arr.dtype == bool:
        if arr.size != n_vars:
            raise ValueError(
                f"Boolean feature mask has length {arr.size}; expected {n_vars}."
            )
        positions = np.flatnonzero(arr)
    elif np.issubdtype(arr.dtype, np.integer):
        positions = arr.astype(int)
        bad = positions[(positions < 0) | (positions >= n_vars)]
        if bad.size > 0:
            raise IndexError(
                f"Feature position {int(bad[0])} out of range for {n_vars} features."
            )
    else:
        positions = np.array(
            [resolve_feature_index(adata_like, str(item))[0] for item in items],
            dtype=int,
        )
    return positions, feature_labels(adata_like, positions)


def get_feature_vector(expr_matrix: Any, idx: int) -> np.ndarray:
    vec = expr_matrix[:, int(idx)]
    if sp.issparse(vec):
        return vec.toarray().ravel().astype(float)
    return np.asarray(vec).ravel().astype(float)
