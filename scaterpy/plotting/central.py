"""Single-panel drawing shared by expression and metadata plots.

A panel receives a long-format frame with `X`, `Y` and optional aesthetic
columns. A categorical `X` gives violins with spread points; a numeric `X`
gives a scatter with an optional least-squares trend.
"""

from __future__ import annotations

from typing import Any

import matplotlib.axes
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from scipy import stats

from scaterpy.plotting.aesthetics import (
    Aesthetics,
    add_legends,
    build_aesthetics,
    scatter_points,
)
from scaterpy.plotting.styles import DEFAULT_PLOT_STYLE, PlotStyle
from scaterpy.plotting.utils import ScaterPlot, facet_grid

JITTER_TYPES: tuple[str, ...] = ("swarm", "jitter")


def swarm_offsets(y: np.ndarray, width: float, n_bins: int = 60) -> np.ndarray:
    """Deterministic beeswarm-like horizontal offsets in [-width, width]."""
    y = np.asarray(y, dtype=float)
    if y.size == 0:
        return np.zeros(0, dtype=float)
    finite = np.nan_to_num(y, nan=0.0, posinf=0.0, neginf=0.0)
    lo = float(np.min(finite))
    span = float(np.max(finite)) - lo
    if span <= 0:
        bins = np.zeros(y.size, dtype=int)
    else:
        bins = np.floor((finite - lo) / span * (n_bins - 1)).astype(int)

    offsets = np.zeros(y.size, dtype=float)
    for b in np.unique(bins):
        idx = np.flatnonzero(bins == b)
        k = np.arange(idx.size)
        # 0, +1, -1, +2, -2, ...
        offsets[idx] = ((k + 1) // 2) * np.where(k % 2 == 1, 1.0, -1.0)
    peak = float(np.max(np.abs(offsets)))
    if peak > 0:
        offsets = offsets / peak * float(width)
    return offsets


def point_offsets(
    y: np.ndarray, jitter_type: str, *, style: PlotStyle, seed: int
) -> np.ndarray:
    if jitter_type == "swarm":
        return swarm_offsets(y, style.swarm_width, n_bins=style.swarm_bins)
    rng = np.random.default_rng(seed)
    return rng.uniform(-style.jitter_width, style.jitter_width, size=np.asarray(y).size)


def _draw_smooth(
    ax: matplotlib.axes.Axes,
    x: np.ndarray,
    y: np.ndarray,
    *,
    show_se: bool,
    style: PlotStyle,
) -> None:
    ok = np.isfinite(x) & np.isfinite(y)
    x, y = x[ok], y[ok]
    n = x.size
    if n < 3 or np.ptp(x) == 0:
        return
    fit = stats.linregress(x, y)
    grid = np.linspace(float(x.min()), float(x.max()), 100)
    line = fit.intercept + fit.slope * grid
    ax.plot(grid, line, color=style.smooth_color, lw=1.5)
    if not show_se:
        return
    resid = y - (fit.intercept + fit.slope * x)
    s = float(np.sqrt(np.sum(resid**2) / (n - 2)))
    sxx = float(np.sum((x - x.mean()) ** 2))
    se = s * np.sqrt(1.0 / n + (grid - x.mean()) ** 2 / sxx)
    t_crit = float(stats.t.ppf(0.975, n - 2))
    ax.fill_between(
        grid, line - t_crit * se, line + t_crit * se, color=style.smooth_color, alpha=0.2, lw=0
    )


def draw_panel(
    ax: matplotlib.axes.Axes,
    frame: pd.DataFrame,
    aes: Aesthetics,
    *,
    show_violin: bool = True,
    show_median: bool = False,
    jitter_type: str = "swarm",
    show_smooth: bool = False,
    show_se: bool = True,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
) -> None:
    """Draw one panel from a frame holding `X`, `Y` and aesthetic columns."""
    if jitter_type not in JITTER_TYPES:
        raise ValueError(f"jitter_type must be one of {JITTER_TYPES}, got '{jitter_type}'.")
    y_all = frame["Y"].to_numpy(dtype=float)

    if not isinstance(frame["X"].dtype, pd.CategoricalDtype):
        x_all = frame["X"].to_numpy(dtype=float)
        scatter_points(ax, x_all, y_all, frame, aes, style=style)
        if show_smooth:
            _draw_smooth(ax, x_all, y_all, show_se=show_se, style=style)
        return

    categories = [str(c) for c in frame["X"].cat.categories]
    codes = frame["X"].cat.codes.to_numpy()
    x_pos = np.zeros(len(frame), dtype=float)
    for i, _cat in enumerate(categories):
        keep = codes == i
        y = y_all[keep]
        finite = y[np.isfinite(y)]
        if show_violin and finite.size > 1 and np.ptp(finite) > 0:
            parts: dict[str, Any] = ax.violinplot(
                finite, positions=[i], widths=0.8, showextrema=False
            )
            for body in parts["bodies"]:
                body.set_facecolor(style.violin_color)
                body.set_edgecolor("none")
                body.set_alpha(style.alpha_violin)
        x_pos[keep] = i + point_offsets(y, jitter_type, style=style, seed=style.jitter_seed + i)
        if show_median and finite.size > 0:
            med = float(np.median(finite))
            ax.hlines(med, i - 0.3, i + 0.3, colors=style.median_color, lw=2, zorder=3)

    scatter_points(ax, x_pos, y_all, frame, aes, style=style)
    crowded = len(categories) > 4
    ax.set_xticks(np.arange(len(categories)))
    ax.set_xticklabels(
        categories, rotation=60 if crowded else 0, ha="right" if crowded else "center"
    )
    ax.set_xlim(-0.6, len(categories) - 0.4)


def render_panels(
    data: pd.DataFrame,
    names: dict[str, str],
    *,
    y: str = "Y",
    facet_by: str | None = None,
    ncol: int = 2,
    scales: str = "fixed",
    xlab: str = "",
    ylab: str = "",
    style: PlotStyle = DEFAULT_PLOT_STYLE,
    **panel_kwargs: Any,
) -> ScaterPlot:
    """Draw `data` in one panel, or one panel per level of `facet_by`."""
    aes = build_aesthetics(data, names, style=style)
    frame = data.assign(Y=data[y]) if y != "Y" else data

    if facet_by is None:
        fig, ax = plt.subplots(figsize=style.figsize_single, layout="constrained")
        draw_panel(ax, frame, aes, style=style, **panel_kwargs)
        ax.set_xlabel(xlab, fontsize=style.axis_label_fontsize)
        ax.set_ylabel(ylab, fontsize=style.axis_label_fontsize)
        axes = [ax]
    else:
        levels = [str(c) for c in frame[facet_by].cat.categories]
        levels = [lvl for lvl in levels if (frame[facet_by] == lvl).any()]
        fig, axes = facet_grid(len(levels), ncol, scales=scales, style=style)
        for ax, level in zip(axes, levels):
            draw_panel(
                ax, frame.loc[frame[facet_by] == level], aes, style=style, **panel_kwargs
            )
            ax.set_title(level, fontsize=style.title_fontsize)
        fig.supxlabel(xlab, fontsize=style.axis_label_fontsize)
        fig.supylabel(ylab, fontsize=style.axis_label_fontsize)

    add_legends(fig, axes, aes, style=style)
    return ScaterPlot(fig=fig, axes=tuple(axes), data=data)
