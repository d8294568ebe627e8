"""scaterpy public API."""

from scaterpy._version import __version__
from scaterpy.core.assays import (
    counts,
    cpm,
    get_assay,
    logcounts,
    normcounts,
    set_assay,
    set_counts,
    set_cpm,
    set_logcounts,
    set_normcounts,
    set_size_factors,
    set_spike,
    size_factors,
)
from scaterpy.normalization import (
    calc_average,
    calculate_cpm,
    centre_size_factors,
    library_size_factors,
    normalize,
)
from scaterpy.plotting.expression import plot_expression
from scaterpy.qc import calculate_qc_metrics, is_outlier, nexprs
from scaterpy.reduced_dims import get_variance_explained, run_pca


def run_qc_pipeline(*args, **kwargs):
    """Lazy wrapper to avoid importing the report pipeline at import time."""
    from scaterpy.pipeline.qc_report import run_qc_pipeline as _run_qc_pipeline

    return _run_qc_pipeline(*args, **kwargs)


__all__ = [
    "__version__",
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
    "size_factors",
    "set_size_factors",
    "set_spike",
    "calculate_qc_metrics",
    "is_outlier",
    "nexprs",
    "library_size_factors",
    "centre_size_factors",
    "calculate_cpm",
    "normalize",
    "calc_average",
    "run_pca",
    "get_variance_explained",
    "plot_expression",
    "run_qc_pipeline",
]
