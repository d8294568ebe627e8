"""Core container subpackage: assays, features and typed containers."""

from scaterpy.core.assays import (
    assay_names,
    counts,
    cpm,
    exprs,
    get_assay,
    is_spike,
    logcounts,
    normcounts,
    set_assay,
    set_counts,
    set_cpm,
    set_exprs,
    set_logcounts,
    set_normcounts,
    set_size_factors,
    set_spike,
    size_factor_types,
    size_factors,
    spike_names,
)
from scaterpy.core.features import (
    get_feature_vector,
    resolve_feature_index,
    resolve_features,
)
from scaterpy.core.types import OutlierThresholds, QCConfig, VisValues

__all__ = [
    "QCConfig",
    "VisValues",
    "OutlierThresholds",
    "assay_names",
    "get_assay",
    "set_assay",
    "counts",
    "set_counts",
    "logcounts",
    "set_logcounts",
    "normcounts",
    "set_normcounts",
    "cpm",
    "set_cpm",
    "exprs",
    "set_exprs",
    "size_factors",
    "set_size_factors",
    "size_factor_types",
    "set_spike",
    "is_spike",
    "spike_names",
    "resolve_feature_index",
    "resolve_features",
    "get_feature_vector",
]
