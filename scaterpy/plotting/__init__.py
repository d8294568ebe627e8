"""Unified plotting API for scaterpy diagnostics."""

from scaterpy.plotting.aesthetics import choose_vis_values
from scaterpy.plotting.expression import expression_frame, plot_expression
from scaterpy.plotting.qc import (
    plot_col_data,
    plot_exprs_freq_vs_mean,
    plot_highest_exprs,
    plot_row_data,
    plot_scater,
)
from scaterpy.plotting.reduced_dims import (
    plot_explanatory_variables,
    plot_pca,
    plot_reduced_dim,
)
from scaterpy.plotting.styles import (
    DEFAULT_PLOT_STYLE,
    PlotStyle,
    apply_plot_style,
    plot_style_dict,
)
from scaterpy.plotting.utils import ScaterPlot, sanitize_feature_label, save_figure

__all__ = [
    "PlotStyle",
    "DEFAULT_PLOT_STYLE",
    "apply_plot_style",
    "plot_style_dict",
    "ScaterPlot",
    "save_figure",
    "sanitize_feature_label",
    "choose_vis_values",
    "expression_frame",
    "plot_expression",
    "plot_col_data",
    "plot_row_data",
    "plot_highest_exprs",
    "plot_exprs_freq_vs_mean",
    "plot_scater",
    "plot_reduced_dim",
    "plot_pca",
    "plot_explanatory_variables",
]
