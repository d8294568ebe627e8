"""Small pure helpers for matrix computations."""

from __future__ import annotations

from typing import Any

import numpy as np
import scipy.sparse as sp


def as_dense(mat: Any) -> np.ndarray:
    """Return a dense float ndarray view of a dense or sparse matrix."""
    if sp.issparse(mat):
        return np.asarray(mat.toarray(), dtype=float)
    return np.asarray(mat, dtype=float)


def axis_sum(mat: Any, axis: int) -> np.ndarray:
    return np.asarray(mat.sum(axis=axis), dtype=float).ravel()


def axis_count_above(mat: Any, axis: int, limit: float = 0.0) -> np.ndarray:
    """Count entries strictly above `limit` along `axis`."""
    if sp.issparse(mat):
        if limit >= 0:
            csr = sp.csr_matrix(mat)
            above = csr > limit
            return np.asarray(above.sum(axis=axis), dtype=float).ravel()
        mat = mat.toarray()
    return np.asarray((np.asarray(mat) > limit).sum(axis=axis), dtype=float).ravel()


def log10p(values: np.ndarray) -> np.ndarray:
    return np.log10(np.asarray(values, dtype=float) + 1.0)


def safe_pct(num: np.ndarray, denom: np.ndarray) -> np.ndarray:
    """Percentage that is zero wherever the denominator is zero."""
    num = np.asarray(num, dtype=float)
    denom = np.asarray(denom, dtype=float)
    out = np.zeros_like(num, dtype=float)
    np.divide(num, denom, out=out, where=denom > 0)
    return 100.0 * out
