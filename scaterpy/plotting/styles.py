"""Shared plotting style settings for deterministic figure outputs."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

import matplotlib
import matplotlib.pyplot as plt
import numpy as np


@dataclass(frozen=True)
class PlotStyle:
    """Centralized plotting defaults used across diagnostic figures."""

    dpi: int = 200
    figsize_single: tuple[float, float] = (6.0, 4.5)
    facet_size: tuple[float, float] = (3.6, 3.0)
    figsize_highest: tuple[float, float] = (6.5, 9.0)
    s_point: float = 14.0
    s_min: float = 4.0
    s_max: float = 60.0
    alpha_point: float = 0.75
    alpha_violin: float = 0.35
    violin_color: str = "#bdbdbd"
    point_color: str = "#404040"
    median_color: str = "#d62728"
    smooth_color: str = "#1f77b4"
    control_color: str = "#ff7f0e"
    endogenous_color: str = "#4c72b0"
    cmap_continuous: str = "viridis"
    swarm_width: float = 0.38
    jitter_width: float = 0.25
    swarm_bins: int = 60
    jitter_seed: int = 0
    legend_fontsize: int = 8
    axis_label_fontsize: int = 10
    title_fontsize: int = 11
    tick_fontsize: int = 8
    colorbar_shrink: float = 0.8
    colorbar_pad: float = 0.02


DEFAULT_PLOT_STYLE = PlotStyle()


def apply_plot_style(style: PlotStyle = DEFAULT_PLOT_STYLE) -> None:
    """Apply deterministic matplotlib rcParams for diagnostic plots."""
    plt.rcParams.update(
        {
            "figure.dpi": style.dpi,
            "savefig.dpi": style.dpi,
            "savefig.facecolor": "white",
            "font.family": "DejaVu Sans",
            "axes.titlesize": style.title_fontsize,
            "axes.labelsize": style.axis_label_fontsize,
            "xtick.labelsize": style.tick_fontsize,
            "ytick.labelsize": style.tick_fontsize,
            "legend.fontsize": style.legend_fontsize,
            "axes.spines.top": False,
            "axes.spines.right": False,
            "axes.grid": False,
        }
    )


def plot_style_dict(style: PlotStyle = DEFAULT_PLOT_STYLE) -> dict[str, Any]:
    """Return style + dependency versions for metadata manifests."""
    d = asdict(style)
    d["matplotlib_version"] = str(matplotlib.__version__)
    d["numpy_version"] = str(np.__version__)
    return d
