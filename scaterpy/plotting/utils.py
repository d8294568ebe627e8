"""Shared plotting utilities used by figure factories."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import matplotlib.axes
import matplotlib.figure
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from scaterpy.plotting.styles import DEFAULT_PLOT_STYLE, PlotStyle


@dataclass(frozen=True)
class ScaterPlot:
    """A drawn figure together with the long-format data behind it."""

    fig: matplotlib.figure.Figure
    axes: tuple[matplotlib.axes.Axes, ...]
    data: pd.DataFrame

    @property
    def ax(self) -> matplotlib.axes.Axes:
        return self.axes[0]

    def save(
        self,
        out_path: str | Path,
        *,
        style: PlotStyle = DEFAULT_PLOT_STYLE,
        close: bool = True,
    ) -> Path:
        out = Path(out_path)
        save_figure(self.fig, out, style=style, bbox_tight=True, close=close)
        return out


def sanitize_feature_label(label: str, max_len: int = 40) -> str:
    """Create deterministic filesystem-safe stems for feature labels."""
    clean = "".join(ch if (ch.isalnum() or ch == "_") else "_" for ch in str(label))
    clean = clean.strip("_") or "feature"
    return clean[:max_len]


def facet_grid(
    n_panels: int,
    ncol: int,
    *,
    scales: str = "fixed",
    style: PlotStyle = DEFAULT_PLOT_STYLE,
) -> tuple[matplotlib.figure.Figure, list[matplotlib.axes.Axes]]:
    """Create a wrapped grid of `n_panels` axes; spare cells are hidden."""
    if scales not in ("fixed", "free", "free_x", "free_y"):
        raise ValueError("scales must be one of 'fixed', 'free', 'free_x', 'free_y'.")
    if int(ncol) < 1:
        raise ValueError("ncol must be positive.")
    ncol = min(int(ncol), max(n_panels, 1))
    nrow = int(np.ceil(n_panels / ncol))
    fig, grid = plt.subplots(
        nrow,
        ncol,
        figsize=(style.facet_size[0] * ncol, style.facet_size[1] * nrow),
        sharex=scales in ("fixed", "free_y"),
        sharey=scales in ("fixed", "free_x"),
        squeeze=False,
        layout="constrained",
    )
    flat = list(grid.ravel())
    for ax in flat[n_panels:]:
        ax.set_visible(False)
    return fig, flat[:n_panels]


def save_figure(
    fig: matplotlib.figure.Figure,
    out_path: Path,
    *,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
    bbox_tight: bool = False,
    close: bool = True,
) -> None:
    """Save figure deterministically and optionally close it."""
    out_path.parent.mkdir(parents=True, exist_ok=True)
    save_kwargs: dict[str, object] = {
        "dpi": style.dpi,
        "facecolor": "white",
        "pad_inches": 0.02,
    }
    if bbox_tight:
        save_kwargs["bbox_inches"] = "tight"
    fig.savefig(out_path, **save_kwargs)
    if close:
        plt.close(fig)
