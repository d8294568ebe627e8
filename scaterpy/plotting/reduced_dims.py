"""Reduced-dimension and explanatory-variable figure factories."""

from __future__ import annotations

from typing import Any, Iterable

import matplotlib.axes
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from scipy.stats import gaussian_kde

from scaterpy.plotting.aesthetics import (
    add_legends,
    as_categorical,
    build_aesthetics,
    choose_vis_values,
    palette_for_categories,
    scatter_points,
)
from scaterpy.plotting.styles import DEFAULT_PLOT_STYLE, PlotStyle
from scaterpy.plotting.utils import ScaterPlot
from scaterpy.reduced_dims import get_variance_explained, run_pca


def _axis_labels(adata, use_dimred: str, ncomponents: int) -> list[str]:
    stem = use_dimred[2:] if use_dimred.startswith("X_") else use_dimred
    prefix = "PC" if stem.lower() == "pca" else stem.upper()
    labels = [f"{prefix}{i + 1}" for i in range(ncomponents)]
    ratio = adata.uns.get("pca", {}).get("variance_ratio") if prefix == "PC" else None
    if ratio is not None and len(ratio) >= ncomponents:
        labels = [f"{lab} ({100.0 * float(r):.1f}%)" for lab, r in zip(labels, ratio)]
    return labels


def finalize_embedding_axes(
    ax: matplotlib.axes.Axes,
    xlabel: str,
    ylabel: str,
    *,
    show_ticks: bool = True,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
) -> None:
    ax.set_xlabel(xlabel, fontsize=style.axis_label_fontsize)
    ax.set_ylabel(ylabel, fontsize=style.axis_label_fontsize)
    if not show_ticks:
        ax.set_xticks([])
        ax.set_yticks([])


def plot_reduced_dim(
    adata,
    use_dimred: str,
    ncomponents: int = 2,
    colour_by: Any = None,
    shape_by: Any = None,
    size_by: Any = None,
    by_exprs_values: str = "logcounts",
    by_show_single: bool = False,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
) -> ScaterPlot:
    """Scatter of two components, or a pairs grid for more."""
    if use_dimred not in adata.obsm:
        raise KeyError(f"adata.obsm['{use_dimred}'] not found.")
    coords = np.asarray(adata.obsm[use_dimred], dtype=float)
    ncomponents = int(ncomponents)
    if ncomponents < 2 or ncomponents > coords.shape[1]:
        raise ValueError(
            f"ncomponents must be between 2 and {coords.shape[1]} for '{use_dimred}'."
        )

    labels = _axis_labels(adata, use_dimred, ncomponents)
    data = pd.DataFrame(
        {f"Dim{i + 1}": coords[:, i] for i in range(ncomponents)},
        index=np.asarray(adata.obs_names, dtype=str),
    )
    names: dict[str, str] = {}
    for column, by, extra in (
        ("colour_by", colour_by, {}),
        ("shape_by", shape_by, {"coerce_factor": True, "level_limit": 10}),
        ("size_by", size_by, {}),
    ):
        vis = choose_vis_values(
            adata,
            by,
            exprs_values=by_exprs_values,
            discard_solo=not by_show_single,
            **extra,
        )
        if vis is None:
            continue
        if column == "size_by" and vis.is_discrete:
            raise ValueError(f"size_by variable '{vis.name}' must be numeric.")
        data[column] = (
            as_categorical(vis.values) if vis.is_discrete else vis.values.to_numpy(dtype=float)
        )
        names[column] = vis.name
    aes = build_aesthetics(data, names, style=style)

    if ncomponents == 2:
        fig, ax = plt.subplots(figsize=style.figsize_single, layout="constrained")
        scatter_points(ax, coords[:, 0], coords[:, 1], data, aes, style=style)
        finalize_embedding_axes(ax, labels[0], labels[1], style=style)
        axes = [ax]
    else:
        side = style.facet_size[1] * ncomponents
        fig, grid = plt.subplots(
            ncomponents, ncomponents, figsize=(side, side), squeeze=False, layout="constrained"
        )
        axes = []
        for i in range(ncomponents):
            for j in range(ncomponents):
                ax = grid[i, j]
                if i == j:
                    ax.set_xticks([])
                    ax.set_yticks([])
                    ax.text(0.5, 0.5, labels[i], ha="center", va="center", transform=ax.transAxes)
                    continue
                scatter_points(ax, coords[:, j], coords[:, i], data, aes, style=style)
                axes.append(ax)
    add_legends(fig, axes, aes, style=style)
    return ScaterPlot(fig=fig, axes=tuple(axes), data=data)


def plot_pca(
    adata,
    ncomponents: int = 2,
    rerun: bool = False,
    run_args: dict[str, Any] | None = None,
    **kwargs: Any,
) -> ScaterPlot:
    """Plot PCA coordinates, computing them first when absent or `rerun`."""
    args = dict(run_args or {})
    key = args.get("key", "X_pca")
    stored = adata.obsm[key].shape[1] if key in adata.obsm else 0
    if rerun or stored < int(ncomponents):
        args.setdefault("ncomponents", int(ncomponents))
        run_pca(adata, **args)
    return plot_reduced_dim(adata, key, ncomponents=ncomponents, **kwargs)


def plot_explanatory_variables(
    adata,
    variables: Iterable[str],
    exprs_values: str = "logcounts",
    nvars_to_plot: int = 10,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
) -> ScaterPlot:
    """Density of per-feature variance explained (log10 %) for each variable."""
    explained = get_variance_explained(adata, list(variables), exprs_values=exprs_values)
    medians = explained.median(axis=0, skipna=True).sort_values(ascending=False)
    keep = [str(v) for v in medians.index[: int(nvars_to_plot)] if np.isfinite(medians[v])]

    long = (
        explained[keep]
        .rename_axis("Feature")
        .reset_index()
        .melt(id_vars="Feature", var_name="Variable", value_name="Pct_var_explained")
    )
    colours = palette_for_categories(keep)

    fig, ax = plt.subplots(figsize=style.figsize_single, layout="constrained")
    for var in keep:
        vals = explained[var].to_numpy(dtype=float)
        vals = np.log10(vals[np.isfinite(vals) & (vals > 0)])
        if vals.size < 2 or np.ptp(vals) == 0:
            continue
        grid = np.linspace(vals.min() - 0.5, vals.max() + 0.5, 200)
        ax.plot(grid, gaussian_kde(vals)(grid), color=colours[var], lw=1.8, label=var)
    ax.axvline(0.0, color="grey", ls="--", lw=1)
    ax.set_xlabel("% variance explained (log10)", fontsize=style.axis_label_fontsize)
    ax.set_ylabel("Density", fontsize=style.axis_label_fontsize)
    if keep:
        ax.legend(loc="upper left", bbox_to_anchor=(1.02, 1.0), frameon=False, fontsize=style.legend_fontsize)
    return ScaterPlot(fig=fig, axes=(ax,), data=long)
