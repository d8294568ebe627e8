"""Size factors, counts-per-million and log-normalisation."""

from __future__ import annotations

import logging
import warnings
from typing import Any

import numpy as np
import scipy.sparse as sp

from scaterpy.core.assays import (
    get_assay,
    is_spike,
    selection_mask,
    set_assay,
    set_size_factors,
    size_factor_types,
    size_factors,
    spike_names,
)
from scaterpy.core.utils import as_dense, axis_sum

logger = logging.getLogger("scaterpy")


def library_size_factors(
    adata, exprs_values: str = "counts", subset_row: Any = None
) -> np.ndarray:
    """Library sizes scaled to unit mean."""
    mat = get_assay(adata, exprs_values)
    if subset_row is not None:
        mat = mat[:, np.flatnonzero(selection_mask(adata, subset_row, axis="var"))]
    lib = axis_sum(mat, axis=1)
    if np.any(lib <= 0):
        raise ValueError(
            f"{int(np.sum(lib <= 0))} cell(s) have a library size of zero; "
            "remove them before computing size factors."
        )
    return lib / float(np.mean(lib))


def _centre_all(adata, centre: float) -> None:
    for sf_type in [None, *size_factor_types(adata)]:
        sf = size_factors(adata, sf_type)
        if sf is None:
            continue
        set_size_factors(adata, sf / float(np.mean(sf)) * float(centre), sf_type)


def centre_size_factors(adata, centre: float = 1.0) -> None:
    """Rescale every stored size-factor set to mean `centre`."""
    _centre_all(adata, centre)


def _factor_table(adata, default: np.ndarray, *, warn_missing: bool) -> tuple[np.ndarray, np.ndarray]:
    """Build per-group factors and the group index of every feature.

    Group 0 holds the default factors. Each spike-in set with its own
    size factors gets its own group.
    """
    table = [np.asarray(default, dtype=float)]
    groups = np.zeros(adata.n_vars, dtype=int)
    for spike in spike_names(adata):
        sf_spike = size_factors(adata, spike)
        if sf_spike is None:
            if warn_missing:
                warnings.warn(
                    f"Spike-in set '{spike}' has no size factors; using the default set.",
                    RuntimeWarning,
                    stacklevel=3,
                )
            continue
        table.append(np.asarray(sf_spike, dtype=float))
        groups[is_spike(adata, spike)] = len(table) - 1
    return np.vstack(table), groups


def _divide_by_factors(mat: Any, table: np.ndarray, groups: np.ndarray) -> Any:
    if sp.issparse(mat):
        coo = sp.coo_matrix(mat)
        data = coo.data / table[groups[coo.col], coo.row]
        return sp.csr_matrix((data, (coo.row, coo.col)), shape=coo.shape)
    return np.asarray(mat, dtype=float) / table[groups].T


def normalize(
    adata,
    exprs_values: str = "counts",
    return_log: bool = True,
    log_exprs_offset: float = 1.0,
    centre_size_factors: bool = True,
) -> None:
    """Divide by size factors and optionally log2-transform with an offset.

    Writes `logcounts` (or `normcounts` when `return_log=False`).
    """
    mat = get_assay(adata, exprs_values)
    if size_factors(adata) is None:
        warnings.warn(
            "No size factors stored; using library size factors instead.",
            RuntimeWarning,
            stacklevel=2,
        )
        set_size_factors(adata, library_size_factors(adata, exprs_values))
    if centre_size_factors:
        _centre_all(adata, 1.0)

    table, groups = _factor_table(adata, size_factors(adata), warn_missing=True)
    out = _divide_by_factors(mat, table, groups)

    if not return_log:
        set_assay(adata, "normcounts", out)
        logger.info("Stored size-factor normalised '%s' as 'normcounts'", exprs_values)
        return

    offset = float(log_exprs_offset)
    if offset <= 0:
        raise ValueError("log_exprs_offset must be positive.")
    if sp.issparse(out) and offset == 1.0:
        out.data = np.log2(out.data + 1.0)
    else:
        out = np.log2(as_dense(out) + offset)
    set_assay(adata, "logcounts", out)
    adata.uns["log_exprs_offset"] = offset
    logger.info(
        "Stored log2-normalised '%s' as 'logcounts' (offset=%g)", exprs_values, offset
    )


def calculate_cpm(
    adata,
    exprs_values: str = "counts",
    use_size_factors: bool = True,
    subset_row: Any = None,
) -> Any:
    """Counts-per-million, using size-factor scaled library sizes when available."""
    mat = get_assay(adata, exprs_values)
    lib_mat = mat
    if subset_row is not None:
        lib_mat = mat[:, np.flatnonzero(selection_mask(adata, subset_row, axis="var"))]
    lib = axis_sum(lib_mat, axis=1)
    if np.any(lib <= 0):
        raise ValueError("CPM undefined for cells with a library size of zero.")

    sf = size_factors(adata) if use_size_factors else None
    if sf is None:
        table = lib[np.newaxis, :]
        groups = np.zeros(adata.n_vars, dtype=int)
    else:
        mean_lib = float(np.mean(lib))
        table, groups = _factor_table(adata, sf, warn_missing=False)
        table = table / table.mean(axis=1, keepdims=True) * mean_lib
    return _divide_by_factors(mat, table / 1e6, groups)


def calc_average(
    adata, exprs_values: str = "counts", use_size_factors: bool = True
) -> np.ndarray:
    """Per-feature mean of size-factor normalised values."""
    mat = get_assay(adata, exprs_values)
    sf = size_factors(adata) if use_size_factors else None
    if sf is None:
        return axis_sum(mat, axis=0) / float(adata.n_obs)
    table, groups = _factor_table(adata, sf, warn_missing=False)
    table = table / table.mean(axis=1, keepdims=True)
    return axis_sum(_divide_by_factors(mat, table, groups), axis=0) / float(adata.n_obs)
