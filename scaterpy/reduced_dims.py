"""PCA on a chosen assay and per-variable variance explained."""

from __future__ import annotations

import logging
from typing import Any, Iterable

import anndata as ad
import numpy as np
import pandas as pd
import scanpy as sc

from scaterpy.core.assays import get_assay, selection_mask
from scaterpy.core.utils import as_dense

logger = logging.getLogger("scaterpy")


def _select_features(
    mat: np.ndarray, adata, ntop: int, feature_set: Any
) -> np.ndarray:
    if feature_set is not None:
        return np.flatnonzero(selection_mask(adata, feature_set, axis="var"))
    variances = mat.var(axis=0, ddof=1) if mat.shape[0] > 1 else np.zeros(mat.shape[1])
    order = np.argsort(-variances, kind="mergesort")
    return np.sort(order[: min(int(ntop), mat.shape[1])])


def run_pca(
    adata,
    ncomponents: int = 2,
    exprs_values: str = "logcounts",
    ntop: int = 500,
    feature_set: Any = None,
    scale_features: bool = True,
    key: str = "X_pca",
    random_state: int = 0,
) -> None:
    """Run PCA on the most variable features and store it in `adata.obsm[key]`."""
    mat = as_dense(get_assay(adata, exprs_values))
    keep = _select_features(mat, adata, ntop, feature_set)
    sub = mat[:, keep]

    if scale_features:
        sd = sub.std(axis=0, ddof=1) if sub.shape[0] > 1 else np.zeros(sub.shape[1])
        varying = sd > 0
        keep = keep[varying]
        sub = (sub[:, varying] - sub[:, varying].mean(axis=0)) / sd[varying]

    max_comp = min(sub.shape) - 1
    if int(ncomponents) < 1 or int(ncomponents) > max_comp:
        raise ValueError(
            f"ncomponents must be between 1 and {max_comp} for a "
            f"{sub.shape[0]} x {sub.shape[1]} input."
        )

    tmp = ad.AnnData(X=sub)
    sc.pp.pca(tmp, n_comps=int(ncomponents), zero_center=True, random_state=random_state)

    adata.obsm[key] = np.asarray(tmp.obsm["X_pca"], dtype=float)
    adata.uns["pca"] = {
        "variance_ratio": np.asarray(tmp.uns["pca"]["variance_ratio"], dtype=float),
        "variance": np.asarray(tmp.uns["pca"]["variance"], dtype=float),
        "exprs_values": str(exprs_values),
        "features": [str(adata.var_names[i]) for i in keep],
    }
    logger.info(
        "PCA on '%s': %d features, %d components stored in obsm['%s']",
        exprs_values,
        keep.size,
        int(ncomponents),
        key,
    )


def _design_matrix(values: pd.Series) -> np.ndarray | None:
    if pd.api.types.is_numeric_dtype(values) and not pd.api.types.is_bool_dtype(values):
        x = values.to_numpy(dtype=float)
        if np.nanstd(x) == 0:
            return None
        return np.column_stack([np.ones_like(x), x])
    dummies = pd.get_dummies(values.astype("string"), drop_first=True, dtype=float)
    if dummies.shape[1] == 0:
        return None
    return np.column_stack([np.ones(len(values)), dummies.to_numpy()])


def get_variance_explained(
    adata, variables: Iterable[str], exprs_values: str = "logcounts"
) -> pd.DataFrame:
    """Percentage of each feature's variance explained by each `obs` variable."""
    mat = as_dense(get_assay(adata, exprs_values))
    out = pd.DataFrame(index=adata.var_names.copy())
    for var in variables:
        if var not in adata.obs.columns:
            raise KeyError(f"adata.obs['{var}'] not found.")
        values = adata.obs[var]
        keep = values.notna().to_numpy()
        design = _design_matrix(values[keep])
        if design is None:
            logger.warning("Variable '%s' has a single level; variance explained is NaN", var)
            out[var] = np.nan
            continue
        y = mat[keep]
        coef, *_ = np.linalg.lstsq(design, y, rcond=None)
        rss = np.sum((y - design @ coef) ** 2, axis=0)
        tss = np.sum((y - y.mean(axis=0)) ** 2, axis=0)
        r2 = np.full(y.shape[1], np.nan)
        np.divide(tss - rss, tss, out=r2, where=tss > 0)
        out[var] = 100.0 * r2
    return out
