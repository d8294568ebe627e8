"""Resolution of plot aesthetics and the shared point/legend drawing helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import matplotlib.axes
import matplotlib.figure
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.colors import Normalize
from matplotlib.lines import Line2D

from scaterpy.core.assays import get_assay
from scaterpy.core.features import get_feature_vector, resolve_feature_index
from scaterpy.core.types import VisValues
from scaterpy.core.utils import as_dense
from scaterpy.plotting.styles import DEFAULT_PLOT_STYLE, PlotStyle

SHAPE_MARKERS: tuple[str, ...] = ("o", "^", "s", "D", "v", "P", "X", "*", "<", ">")
SEARCH_MODES: tuple[str, ...] = ("any", "metadata", "exprs")


def _maybe_numeric_sort(categories: list[str]) -> list[str]:
    parsed: list[tuple[float, str] | None] = []
    for cat in categories:
        try:
            parsed.append((float(cat), cat))
        except ValueError:
            parsed.append(None)
    if any(item is None for item in parsed):
        return sorted(categories)
    pairs = [item for item in parsed if item is not None]
    pairs.sort(key=lambda x: (x[0], x[1]))
    return [cat for _, cat in pairs]


def as_categorical(values: pd.Series) -> pd.Categorical:
    """String categorical; declared categories keep their order, others sort."""
    labels = values.astype("string").fillna("NA").astype(str)
    if isinstance(values.dtype, pd.CategoricalDtype):
        cats = [str(c) for c in values.cat.categories]
        if (labels == "NA").any() and "NA" not in cats:
            cats.append("NA")
    else:
        cats = _maybe_numeric_sort(sorted(set(labels)))
    return pd.Categorical(labels, categories=cats)


def _lookup_expression(adata, by: str, mode: str, exprs_values: str) -> np.ndarray | None:
    mat = get_assay(adata, exprs_values)
    if mode == "column":
        try:
            idx, *_ = resolve_feature_index(adata, by)
        except KeyError:
            return None
        return get_feature_vector(mat, idx)
    if by not in adata.obs_names:
        return None
    idx = int(pd.Index(adata.obs_names).get_loc(by))
    return as_dense(mat[idx, :]).ravel()


def choose_vis_values(
    adata,
    by: Any,
    mode: str = "column",
    search: str = "any",
    exprs_values: str = "logcounts",
    coerce_factor: bool = False,
    level_limit: int | None = None,
    discard_solo: bool = False,
) -> VisValues | None:
    """Resolve an aesthetic request to per-cell (or per-feature) values.

    Strings are looked up in metadata (`obs` for `mode="column"`, `var` for
    `mode="row"`) and then, if allowed by `search`, as a feature (or cell)
    name in the `exprs_values` assay. Array-likes of matching length are used
    as-is. Returns None when `by` is None, or when `discard_solo` is set and
    the values have at most one distinct level.
    """
    if by is None:
        return None
    if mode not in ("column", "row"):
        raise ValueError("mode must be 'column' or 'row'.")
    if search not in SEARCH_MODES:
        raise ValueError(f"search must be one of {SEARCH_MODES}.")

    meta = adata.obs if mode == "column" else adata.var
    n = adata.n_obs if mode == "column" else adata.n_vars

    if isinstance(by, str):
        values = None
        if search in ("any", "metadata") and by in meta.columns:
            values = meta[by].reset_index(drop=True)
        elif search in ("any", "exprs"):
            vec = _lookup_expression(adata, by, mode, exprs_values)
            if vec is not None:
                values = pd.Series(vec)
        if values is None:
            where = "obs" if mode == "column" else "var"
            raise KeyError(
                f"cannot find '{by}' in adata.{where} columns or in the names of the '{exprs_values}' assay."
            )
        name = by
    else:
        if isinstance(by, pd.DataFrame):
            if by.shape[1] != 1:
                raise ValueError("A data frame aesthetic must have exactly one column.")
            name, values = str(by.columns[0]), by.iloc[:, 0].reset_index(drop=True)
        else:
            name = str(getattr(by, "name", "") or "")
            values = pd.Series(np.asarray(by)) if not isinstance(by, pd.Series) else by.reset_index(drop=True)
        if len(values) != n:
            raise ValueError(f"Aesthetic values have length {len(values)}; expected {n}.")

    if coerce_factor:
        values = pd.Series(as_categorical(values))
        n_levels = len(values.cat.categories)
        if level_limit is not None and n_levels > int(level_limit):
            raise ValueError(
                f"'{name}' has {n_levels} levels; the number of unique levels exceeds {level_limit}."
            )

    if discard_solo and values.nunique(dropna=False) <= 1:
        return None
    return VisValues(name=name, values=values)


@dataclass(frozen=True)
class Aesthetics:
    """Colour/shape/size scales shared by every panel of one figure."""

    colour_name: str | None = None
    colour_lookup: dict[str, Any] | None = None
    colour_norm: Normalize | None = None
    cmap: str = "viridis"
    shape_name: str | None = None
    shape_lookup: dict[str, str] | None = None
    size_name: str | None = None
    size_limits: tuple[float, float] | None = None


def palette_for_categories(categories: list[str]) -> dict[str, tuple[float, float, float, float]]:
    cmap = plt.get_cmap("tab10" if len(categories) <= 10 else "tab20")
    n = cmap.N
    return {cat: cmap(i % n) for i, cat in enumerate(categories)}


def build_aesthetics(
    data: pd.DataFrame,
    names: dict[str, str],
    *,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
) -> Aesthetics:
    """Derive shared scales from the `colour_by`/`shape_by`/`size_by` columns."""
    kwargs: dict[str, Any] = {"cmap": style.cmap_continuous}
    if "colour_by" in data.columns:
        col = data["colour_by"]
        kwargs["colour_name"] = names.get("colour_by", "colour_by")
        if isinstance(col.dtype, pd.CategoricalDtype):
            kwargs["colour_lookup"] = palette_for_categories(
                [str(c) for c in col.cat.categories]
            )
        else:
            vals = col.to_numpy(dtype=float)
            lo, hi = float(np.nanmin(vals)), float(np.nanmax(vals))
            if np.isclose(lo, hi):
                hi = lo + 1.0
            kwargs["colour_norm"] = Normalize(vmin=lo, vmax=hi)
    if "shape_by" in data.columns:
        cats = [str(c) for c in data["shape_by"].cat.categories]
        kwargs["shape_name"] = names.get("shape_by", "shape_by")
        kwargs["shape_lookup"] = {
            cat: SHAPE_MARKERS[i % len(SHAPE_MARKERS)] for i, cat in enumerate(cats)
        }
    if "size_by" in data.columns:
        vals = data["size_by"].to_numpy(dtype=float)
        kwargs["size_name"] = names.get("size_by", "size_by")
        kwargs["size_limits"] = (float(np.nanmin(vals)), float(np.nanmax(vals)))
    return Aesthetics(**kwargs)


def _point_sizes(values: np.ndarray, aes: Aesthetics, style: PlotStyle) -> np.ndarray:
    lo, hi = aes.size_limits or (0.0, 1.0)
    span = hi - lo
    if span <= 0:
        return np.full(values.shape, style.s_point)
    frac = np.clip((values - lo) / span, 0.0, 1.0)
    return style.s_min + frac * (style.s_max - style.s_min)


def scatter_points(
    ax: matplotlib.axes.Axes,
    x: np.ndarray,
    y: np.ndarray,
    frame: pd.DataFrame,
    aes: Aesthetics,
    *,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
    alpha: float | None = None,
) -> None:
    """Draw points with colour/shape/size taken from the aesthetic columns of `frame`."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if "shape_by" in frame.columns and aes.shape_lookup is not None:
        shape_vals = frame["shape_by"].astype(str).to_numpy()
    else:
        shape_vals = np.full(x.shape, "")

    for shape in pd.unique(shape_vals):
        keep = shape_vals == shape
        kwargs: dict[str, Any] = {
            "marker": (aes.shape_lookup or {}).get(shape, "o"),
            "alpha": style.alpha_point if alpha is None else alpha,
            "linewidths": 0.0,
        }
        if "size_by" in frame.columns:
            kwargs["s"] = _point_sizes(frame["size_by"].to_numpy(dtype=float)[keep], aes, style)
        else:
            kwargs["s"] = style.s_point
        if "colour_by" in frame.columns and aes.colour_lookup is not None:
            labels = frame["colour_by"].astype(str).to_numpy()[keep]
            kwargs["color"] = [aes.colour_lookup[label] for label in labels]
        elif "colour_by" in frame.columns:
            kwargs["c"] = frame["colour_by"].to_numpy(dtype=float)[keep]
            kwargs["cmap"] = aes.cmap
            kwargs["norm"] = aes.colour_norm
        else:
            kwargs["color"] = style.point_color
        ax.scatter(x[keep], y[keep], **kwargs)


def add_legends(
    fig: matplotlib.figure.Figure,
    axes: list[matplotlib.axes.Axes],
    aes: Aesthetics,
    *,
    style: PlotStyle = DEFAULT_PLOT_STYLE,
) -> None:
    """Attach legends/colorbars for the active aesthetics to the figure."""
    if not axes:
        return
    if aes.colour_norm is not None:
        mappable = plt.cm.ScalarMappable(norm=aes.colour_norm, cmap=aes.cmap)
        cbar = fig.colorbar(
            mappable, ax=axes, shrink=style.colorbar_shrink, pad=style.colorbar_pad
        )
        cbar.set_label(aes.colour_name or "value", fontsize=style.axis_label_fontsize)

    handles: list[Line2D] = []
    if aes.colour_lookup:
        handles.append(Line2D([], [], linestyle="none", label=aes.colour_name))
        for cat, color in aes.colour_lookup.items():
            handles.append(
                Line2D([], [], marker="o", linestyle="none", color=color, label=cat)
            )
    if aes.shape_lookup:
        handles.append(Line2D([], [], linestyle="none", label=aes.shape_name))
        for cat, marker in aes.shape_lookup.items():
            handles.append(
                Line2D([], [], marker=marker, linestyle="none", color=style.point_color, label=cat)
            )
    if aes.size_limits is not None:
        lo, hi = aes.size_limits
        handles.append(Line2D([], [], linestyle="none", label=aes.size_name))
        for val in np.unique(np.linspace(lo, hi, num=3)):
            size = float(_point_sizes(np.array([val]), aes, style)[0])
            handles.append(
                Line2D(
                    [],
                    [],
                    marker="o",
                    linestyle="none",
                    color=style.point_color,
                    markersize=float(np.sqrt(size)),
                    label=f"{val:.3g}",
                )
            )
    if handles:
        axes[-1].legend(
            handles=handles,
            loc="upper left",
            bbox_to_anchor=(1.02, 1.0),
            borderaxespad=0.0,
            fontsize=style.legend_fontsize,
            frameon=False,
        )
