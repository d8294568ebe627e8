"""QC and metadata figure factories."""

from __future__ import annotations

from typing import Any

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.colors import Normalize
from matplotlib.lines import Line2D

from scaterpy.core.assays import get_assay
from scaterpy.core.features import feature_labels
from scaterpy.core.utils import as_dense, axis_count_above, axis_sum, safe_pct
from scaterpy.plotting.aesthetics import (
    as_categorical,
    build_aesthetics,
    choose_vis_values,
    palette_for_categories,
)
from scaterpy.plotting.central import render_panels
from scaterpy.plotting.styles import DEFAULT_PLOT_STYLE, PlotStyle
from scaterpy.plotting.utils import ScaterPlot, facet_grid


def _aesthetic_value(vis) -> Any:
    if vis.is_discrete:
        return as_categorical(vis.values)
    return vis.values.to_numpy(dtype=float)


def _metadata_plot(
    adata,
    y: str,
    *,
    mode: str,
    x: Any,
    colour_by: Any,
    shape_by: Any,
    size_by: Any,
    by_exprs_values: str,
    by_show_single: bool,
    style: PlotStyle,
    panel_kwargs: dict[str, Any],
) -> ScaterPlot:
    y_vis = choose_vis_values(adata, y, mode=mode, search="metadata")
    if y_vis is None or y_vis.is_discrete:
        raise ValueError(f"y variable '{y}' must be a numeric metadata column.")
    data = pd.DataFrame({"Y": y_vis.values.to_numpy(dtype=float)})

    x_vis = choose_vis_values(adata, x, mode=mode, search="any", exprs_values=by_exprs_values)
    if x_vis is None:
        data["X"] = pd.Categorical([""] * len(data), categories=[""])
    else:
        data["X"] = _aesthetic_value(x_vis)

    names: dict[str, str] = {}
    specs = (
        ("colour_by", colour_by, {}),
        ("shape_by", shape_by, {"coerce_factor": True, "level_limit": 10}),
        ("size_by", size_by, {}),
    )
    for column, by, extra in specs:
        vis = choose_vis_values(
            adata,
            by,
            mode=mode,
            search="any",
            exprs_values=by_exprs_values,
            discard_solo=not by_show_single,
            **extra,
        )
        if vis is None:
            continue
        if column == "size_by" and vis.is_discrete:
            raise ValueError(f"size_by variable '{vis.name}' must be numeric.")
        data[column] = _aesthetic_value(vis)
        names[column] = vis.name

    return render_panels(
        data,
        names,
        xlab="" if x_vis is None else x_vis.name,
        ylab=y_vis.name,
        style=style,
        **panel_kwargs,
    )


def plot_col_data(
    adata,
    y: str,
    x: Any = None,
    colour_by: Any = None,
    shape_by: Any = None,
    size_by: Any = None,
    by_exprs_values: str = "logcounts",
    by_show_single: bool = False,
    show_violin: bool = True,
    show_median: bool = False,
    jitter_type: str = "swarm",
    show_smooth: bool = False,
    show_se: bool = True,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
) -> ScaterPlot:
    """Plot a numeric `obs` column against another cell variable."""
    return _metadata_plot(
        adata,
        y,
        mode="column",
        x=x,
        colour_by=colour_by,
        shape_by=shape_by,
        size_by=size_by,
        by_exprs_values=by_exprs_values,
        by_show_single=by_show_single,
        style=style,
        panel_kwargs={
            "show_violin": show_violin,
            "show_median": show_median,
            "jitter_type": jitter_type,
            "show_smooth": show_smooth,
            "show_se": show_se,
        },
    )


def plot_row_data(
    adata,
    y: str,
    x: Any = None,
    colour_by: Any = None,
    shape_by: Any = None,
    size_by: Any = None,
    by_exprs_values: str = "logcounts",
    by_show_single: bool = False,
    show_violin: bool = True,
    show_median: bool = False,
    jitter_type: str = "swarm",
    show_smooth: bool = False,
    show_se: bool = True,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
) -> ScaterPlot:
    """Plot a numeric `var` column against another feature variable."""
    return _metadata_plot(
        adata,
        y,
        mode="row",
        x=x,
        colour_by=colour_by,
        shape_by=shape_by,
        size_by=size_by,
        by_exprs_values=by_exprs_values,
        by_show_single=by_show_single,
        style=style,
        panel_kwargs={
            "show_violin": show_violin,
            "show_median": show_median,
            "jitter_type": jitter_type,
            "show_smooth": show_smooth,
            "show_se": show_se,
        },
    )


def _control_mask(adata, controls: str | None) -> np.ndarray | None:
    if controls is None or controls not in adata.var.columns:
        return None
    return adata.var[controls].to_numpy(dtype=bool)


def plot_highest_exprs(
    adata,
    n: int = 50,
    controls: str | None = "is_feature_control",
    colour_cells_by: Any = "total_features_by_counts",
    exprs_values: str = "counts",
    feature_names_to_plot: str | None = None,
    as_percentage: bool = True,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
) -> ScaterPlot:
    """Show the features holding the largest share of the total expression.

    Each cell contributes one tick per feature; the feature mean is drawn as
    a circle coloured by control status.
    """
    mat = as_dense(get_assay(adata, exprs_values))
    totals = mat.sum(axis=0)
    n_top = min(int(n), adata.n_vars)
    if n_top < 1:
        raise ValueError("n must be positive.")
    top = np.argsort(-totals, kind="mergesort")[:n_top]

    if feature_names_to_plot is None:
        labels = feature_labels(adata, top)
    else:
        if feature_names_to_plot not in adata.var.columns:
            raise KeyError(f"adata.var['{feature_names_to_plot}'] not found.")
        labels = adata.var[feature_names_to_plot].astype(str).to_numpy()[top].tolist()

    values = mat[:, top]
    if as_percentage:
        lib = mat.sum(axis=1)
        values = safe_pct(values, np.broadcast_to(lib[:, None], values.shape))
        xlab = f"% of total {exprs_values}"
    else:
        xlab = exprs_values

    colour_vis = None
    if colour_cells_by is not None:
        try:
            colour_vis = choose_vis_values(adata, colour_cells_by, search="any")
        except KeyError:
            if colour_cells_by != "total_features_by_counts":
                raise
    ctrl = _control_mask(adata, controls)

    data = pd.DataFrame(
        {
            "Feature": pd.Categorical(
                np.repeat(labels, adata.n_obs), categories=list(dict.fromkeys(labels))
            ),
            "Cell": np.tile(np.asarray(adata.obs_names, dtype=str), n_top),
            "Value": values.T.ravel(),
        }
    )
    names: dict[str, str] = {}
    if colour_vis is not None:
        col = _aesthetic_value(colour_vis)
        data["colour_by"] = (
            pd.Categorical(np.tile(np.asarray(col), n_top), categories=col.categories)
            if isinstance(col, pd.Categorical)
            else np.tile(col, n_top)
        )
        names["colour_by"] = colour_vis.name
    aes = build_aesthetics(data, names, style=style)

    fig, ax = plt.subplots(figsize=style.figsize_highest, layout="constrained")
    y_pos = np.repeat(np.arange(n_top)[::-1], adata.n_obs).astype(float)
    kwargs: dict[str, Any] = {"marker": "|", "s": 25, "alpha": 0.6, "linewidths": 1.0}
    if aes.colour_lookup is not None:
        kwargs["color"] = [aes.colour_lookup[str(v)] for v in data["colour_by"]]
    elif aes.colour_norm is not None:
        kwargs.update(c=data["colour_by"].to_numpy(dtype=float), cmap=aes.cmap, norm=aes.colour_norm)
    else:
        kwargs["color"] = style.point_color
    pts = ax.scatter(data["Value"].to_numpy(), y_pos, **kwargs)
    if aes.colour_norm is not None:
        cbar = fig.colorbar(pts, ax=ax, shrink=style.colorbar_shrink, pad=style.colorbar_pad)
        cbar.set_label(aes.colour_name or "", fontsize=style.axis_label_fontsize)

    means = values.mean(axis=0)
    is_ctrl = ctrl[top] if ctrl is not None else np.zeros(n_top, dtype=bool)
    ax.scatter(
        means,
        np.arange(n_top)[::-1],
        s=45,
        c=[style.control_color if flag else style.endogenous_color for flag in is_ctrl],
        edgecolors="black",
        linewidths=0.6,
        zorder=3,
    )
    ax.set_yticks(np.arange(n_top)[::-1])
    ax.set_yticklabels(labels, fontsize=style.tick_fontsize)
    ax.set_xlabel(xlab, fontsize=style.axis_label_fontsize)
    ax.set_ylabel("Feature", fontsize=style.axis_label_fontsize)
    share = float(safe_pct(totals[top].sum(), totals.sum()))
    ax.set_title(
        f"Top {n_top} features account for {share:.1f}% of total",
        fontsize=style.title_fontsize,
    )
    data["is_control"] = np.repeat(is_ctrl, adata.n_obs)
    return ScaterPlot(fig=fig, axes=(ax,), data=data)


def plot_exprs_freq_vs_mean(
    adata,
    freq_exprs: str = "counts",
    mean_exprs: str = "logcounts",
    controls: str | None = "is_feature_control",
    detection_limit: float = 0.0,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
) -> ScaterPlot:
    """Percentage of expressing cells against mean expression per feature."""
    freq = 100.0 * axis_count_above(
        get_assay(adata, freq_exprs), axis=0, limit=detection_limit
    ) / float(adata.n_obs)
    mean = axis_sum(get_assay(adata, mean_exprs), axis=0) / float(adata.n_obs)
    ctrl = _control_mask(adata, controls)
    is_ctrl = ctrl if ctrl is not None else np.zeros(adata.n_vars, dtype=bool)

    data = pd.DataFrame(
        {
            "Feature": feature_labels(adata, np.arange(adata.n_vars)),
            "mean": mean,
            "frequency": freq,
            "is_control": is_ctrl,
        }
    )

    fig, ax = plt.subplots(figsize=style.figsize_single, layout="constrained")
    for flag, color, label in (
        (False, style.endogenous_color, "endogenous"),
        (True, style.control_color, "feature control"),
    ):
        keep = is_ctrl == flag
        if not keep.any():
            continue
        ax.scatter(
            mean[keep], freq[keep], s=style.s_point, alpha=style.alpha_point,
            color=color, linewidths=0.0, label=label,
        )
    n_half = int(np.sum(freq >= 50.0))
    ax.axhline(50.0, color="grey", ls="--", lw=1)
    ax.text(
        0.02,
        0.97,
        f"{n_half} features are expressed in at least 50% of cells",
        transform=ax.transAxes,
        ha="left",
        va="top",
        fontsize=style.legend_fontsize,
    )
    ax.set_xlabel(f"Mean expression ({mean_exprs})", fontsize=style.axis_label_fontsize)
    ax.set_ylabel(f"% of cells expressing ({freq_exprs})", fontsize=style.axis_label_fontsize)
    ax.set_ylim(-2, 102)
    if ctrl is not None and is_ctrl.any():
        ax.legend(loc="lower right", fontsize=style.legend_fontsize, frameon=False)
    return ScaterPlot(fig=fig, axes=(ax,), data=data)


def _block_labels(adata, block: str | None) -> pd.Categorical | None:
    if block is None:
        return None
    if block not in adata.obs.columns:
        raise KeyError(f"adata.obs['{block}'] not found.")
    return as_categorical(adata.obs[block].reset_index(drop=True))


def plot_scater(
    adata,
    block1: str | None = None,
    block2: str | None = None,
    colour_by: Any = None,
    nfeatures: int = 500,
    exprs_values: str = "counts",
    ncol: int = 3,
    line_width: float = 1.0,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
) -> ScaterPlot:
    """Cumulative proportion of each cell's library held by its top features."""
    mat = as_dense(get_assay(adata, exprs_values))
    n_top = min(int(nfeatures), adata.n_vars)
    if n_top < 1:
        raise ValueError("nfeatures must be positive.")
    ranked = -np.sort(-mat, axis=1)[:, :n_top]
    lib = mat.sum(axis=1)
    cum = np.cumsum(ranked, axis=1)
    prop = safe_pct(cum, np.broadcast_to(lib[:, None], cum.shape)) / 100.0

    b1 = _block_labels(adata, block1)
    b2 = _block_labels(adata, block2)
    panel = np.full(adata.n_obs, "", dtype=object)
    if b1 is not None and b2 is not None:
        panel = np.array([f"{a} | {b}" for a, b in zip(np.asarray(b1), np.asarray(b2))], dtype=object)
        levels = [f"{a} | {b}" for a in b1.categories for b in b2.categories]
    elif b1 is not None or b2 is not None:
        only = b1 if b1 is not None else b2
        panel = np.asarray(only, dtype=object)
        levels = [str(c) for c in only.categories]
    else:
        levels = [""]
    levels = [lvl for lvl in levels if (panel == lvl).any()]

    colour_vis = choose_vis_values(adata, colour_by, search="any")
    colours: list[Any]
    if colour_vis is None:
        colours = [style.point_color] * adata.n_obs
        colour_col = None
    elif colour_vis.is_discrete:
        colour_col = as_categorical(colour_vis.values)
        lookup = palette_for_categories([str(c) for c in colour_col.categories])
        colours = [lookup[str(v)] for v in colour_col]
    else:
        colour_col = colour_vis.values.to_numpy(dtype=float)
        norm = Normalize(float(np.nanmin(colour_col)), float(np.nanmax(colour_col)))
        cmap = plt.get_cmap(style.cmap_continuous)
        colours = [cmap(norm(v)) for v in colour_col]

    fig, axes = facet_grid(len(levels), ncol, scales="fixed", style=style)
    ranks = np.arange(1, n_top + 1)
    for ax, level in zip(axes, levels):
        for cell in np.flatnonzero(panel == level):
            ax.plot(ranks, prop[cell], color=colours[cell], lw=line_width, alpha=0.7)
        if level:
            ax.set_title(level, fontsize=style.title_fontsize)
        ax.set_ylim(0.0, 1.0)
    fig.supxlabel("Number of features", fontsize=style.axis_label_fontsize)
    fig.supylabel("Cumulative proportion of library", fontsize=style.axis_label_fontsize)
    if colour_vis is not None and colour_vis.is_discrete:
        axes[-1].legend(
            handles=[
                Line2D([], [], color=lookup[c], lw=2, label=c) for c in lookup
            ],
            title=colour_vis.name,
            loc="upper left",
            bbox_to_anchor=(1.02, 1.0),
            fontsize=style.legend_fontsize,
            frameon=False,
        )

    data = pd.DataFrame(
        {
            "Cell": np.repeat(np.asarray(adata.obs_names, dtype=str), n_top),
            "Feature_rank": np.tile(ranks, adata.n_obs),
            "Cumulative_proportion": prop.ravel(),
            "Panel": np.repeat(panel, n_top),
        }
    )
    if colour_col is not None:
        data["colour_by"] = np.repeat(np.asarray(colour_col), n_top)
    return ScaterPlot(fig=fig, axes=tuple(axes), data=data)
