"""Per-feature expression plots across cells."""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd

from scaterpy.core.assays import get_assay
from scaterpy.core.features import resolve_features
from scaterpy.core.types import VisValues
from scaterpy.core.utils import as_dense
from scaterpy.plotting.aesthetics import as_categorical, choose_vis_values
from scaterpy.plotting.central import render_panels
from scaterpy.plotting.styles import DEFAULT_PLOT_STYLE, PlotStyle
from scaterpy.plotting.utils import ScaterPlot

MAX_SHAPE_LEVELS = 10


def tile_values(vis: VisValues, reps: int) -> Any:
    """Repeat per-cell values once per feature, keeping categorical levels."""
    if vis.is_discrete:
        cat = as_categorical(vis.values)
        return pd.Categorical(np.tile(np.asarray(cat), reps), categories=cat.categories)
    return np.tile(vis.values.to_numpy(dtype=float), reps)


def _expression_data(
    adata,
    features: Any,
    *,
    x: Any,
    exprs_values: str,
    log2_values: bool,
    colour_by: Any,
    shape_by: Any,
    size_by: Any,
    by_exprs_values: str | None,
    by_show_single: bool,
    one_facet: bool,
    feature_colours: bool,
) -> tuple[pd.DataFrame, dict[str, str], VisValues | None]:
    mat = get_assay(adata, exprs_values)
    positions, labels = resolve_features(adata, features)
    sub = as_dense(mat[:, positions])
    if log2_values:
        sub = np.log2(sub + 1.0)
    n_cells, n_features = sub.shape
    by_ev = exprs_values if by_exprs_values is None else by_exprs_values

    data = pd.DataFrame(
        {
            "Feature": pd.Categorical(
                np.repeat(labels, n_cells), categories=sorted(set(labels))
            ),
            "Expression": sub.T.ravel(),
        }
    )

    x_vis = choose_vis_values(adata, x, mode="column", search="any", exprs_values=by_ev)
    if x_vis is not None:
        data["X"] = tile_values(x_vis, n_features)
    elif one_facet:
        data["X"] = data["Feature"]
    else:
        data["X"] = pd.Categorical([""] * len(data), categories=[""])

    names: dict[str, str] = {}
    colour_vis = choose_vis_values(
        adata, colour_by, exprs_values=by_ev, discard_solo=not by_show_single
    )
    if colour_vis is not None:
        data["colour_by"] = tile_values(colour_vis, n_features)
        names["colour_by"] = colour_vis.name
    elif feature_colours and x_vis is None and one_facet and n_features > 1:
        data["colour_by"] = data["Feature"]
        names["colour_by"] = "Feature"

    shape_vis = choose_vis_values(
        adata,
        shape_by,
        exprs_values=by_ev,
        coerce_factor=True,
        level_limit=MAX_SHAPE_LEVELS,
        discard_solo=not by_show_single,
    )
    if shape_vis is not None:
        data["shape_by"] = tile_values(shape_vis, n_features)
        names["shape_by"] = shape_vis.name

    size_vis = choose_vis_values(
        adata, size_by, exprs_values=by_ev, discard_solo=not by_show_single
    )
    if size_vis is not None:
        if size_vis.is_discrete:
            raise ValueError(f"size_by variable '{size_vis.name}' must be numeric.")
        data["size_by"] = tile_values(size_vis, n_features)
        names["size_by"] = size_vis.name

    return data, names, x_vis


def expression_frame(
    adata,
    features: Any,
    x: Any = None,
    exprs_values: str = "logcounts",
    log2_values: bool = False,
    colour_by: Any = None,
    shape_by: Any = None,
    size_by: Any = None,
    by_exprs_values: str | None = None,
    by_show_single: bool = False,
    one_facet: bool = True,
    feature_colours: bool = True,
) -> pd.DataFrame:
    """Long-format (feature-major) data drawn by `plot_expression`."""
    data, _, _ = _expression_data(
        adata,
        features,
        x=x,
        exprs_values=exprs_values,
        log2_values=log2_values,
        colour_by=colour_by,
        shape_by=shape_by,
        size_by=size_by,
        by_exprs_values=by_exprs_values,
        by_show_single=by_show_single,
        one_facet=one_facet,
        feature_colours=feature_colours,
    )
    return data


def plot_expression(
    adata,
    features: Any,
    x: Any = None,
    exprs_values: str = "logcounts",
    log2_values: bool = False,
    colour_by: Any = None,
    shape_by: Any = None,
    size_by: Any = None,
    by_exprs_values: str | None = None,
    by_show_single: bool = False,
    xlab: str | None = None,
    feature_colours: bool = True,
    one_facet: bool = True,
    ncol: int = 2,
    scales: str = "fixed",
    show_median: bool = False,
    show_violin: bool = True,
    jitter_type: str = "swarm",
    show_smooth: bool = False,
    show_se: bool = True,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
) -> ScaterPlot:
    """Plot expression values of one or more features across cells.

    Args:
        adata: AnnData object holding the `exprs_values` layer.
        features: Feature names, integer positions or a boolean mask.
        x: Cell metadata column or feature name for the x axis. A categorical
            variable draws violins, a numeric one draws a scatter. With no
            `x`, features go on the x axis (`one_facet=True`) or get one
            panel each.
        exprs_values: Layer providing the plotted values.
        log2_values: Plot `log2(x + 1)` of the values.
        colour_by, shape_by, size_by: Cell metadata columns or feature names
            controlling point aesthetics. `shape_by` may have at most 10
            levels; `size_by` must be numeric.
        by_exprs_values: Layer used when an aesthetic names a feature;
            defaults to `exprs_values`.
        by_show_single: Keep aesthetics that have a single level.
        feature_colours: Colour by feature when features share one panel.
        ncol, scales: Facet layout and axis sharing.

    Returns:
        `ScaterPlot` whose `data` holds `Feature`, `Expression`, `X` and the
        active aesthetic columns.
    """
    data, names, x_vis = _expression_data(
        adata,
        features,
        x=x,
        exprs_values=exprs_values,
        log2_values=log2_values,
        colour_by=colour_by,
        shape_by=shape_by,
        size_by=size_by,
        by_exprs_values=by_exprs_values,
        by_show_single=by_show_single,
        one_facet=one_facet,
        feature_colours=feature_colours,
    )
    if log2_values:
        ylab = f"Expression ({exprs_values}; log2-scale)"
    else:
        ylab = f"Expression ({exprs_values})"
    if xlab is None:
        if x_vis is not None:
            xlab = x_vis.name
        else:
            xlab = "Feature" if one_facet else ""

    faceted = x_vis is not None or not one_facet
    return render_panels(
        data,
        names,
        y="Expression",
        facet_by="Feature" if faceted else None,
        ncol=ncol,
        scales=scales,
        xlab=xlab,
        ylab=ylab,
        style=style,
        show_violin=show_violin,
        show_median=show_median,
        jitter_type=jitter_type,
        show_smooth=show_smooth,
        show_se=show_se,
    )
