"""End-to-end QC report: metrics, outlier calls, normalisation and figures."""

from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Mapping

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from scaterpy._version import __version__
from scaterpy.config import load_qc_config
from scaterpy.core.assays import (
    assay_names,
    get_assay,
    is_spike,
    selection_mask,
    set_counts,
    set_cpm,
    set_size_factors,
    size_factors,
    spike_names,
)
from scaterpy.core.features import _pick_symbol_column
from scaterpy.core.types import QCConfig
from scaterpy.normalization import calculate_cpm, library_size_factors, normalize
from scaterpy.pipeline.io import close_logger, ensure_dir, setup_logger, write_json, write_table
from scaterpy.plotting.expression import plot_expression
from scaterpy.plotting.qc import (
    plot_col_data,
    plot_exprs_freq_vs_mean,
    plot_highest_exprs,
    plot_scater,
)
from scaterpy.plotting.reduced_dims import plot_pca
from scaterpy.plotting.styles import apply_plot_style, plot_style_dict
from scaterpy.plotting.utils import ScaterPlot, sanitize_feature_label
from scaterpy.qc import calculate_qc_metrics, is_outlier
from scaterpy.reduced_dims import run_pca


def _get_scanpy():
    import scanpy as sc

    return sc


def _read_adata(h5ad_path: str):
    path = Path(h5ad_path)
    if not path.exists():
        raise FileNotFoundError(f"Input file '{h5ad_path}' not found.")
    return _get_scanpy().read_h5ad(path)


def _prepare_dirs(outdir: Path) -> dict[str, Path]:
    return {
        "root": ensure_dir(outdir),
        "tables": ensure_dir(outdir / "tables"),
        "figures": ensure_dir(outdir / "figures"),
        "logs": ensure_dir(outdir / "logs"),
    }


def _prefix_mask(adata, prefix: str) -> np.ndarray:
    names = np.asarray(adata.var_names, dtype=str)
    mask = np.char.startswith(names, prefix)
    symbol_col = _pick_symbol_column(adata)
    if symbol_col is not None:
        symbols = np.asarray(adata.var[symbol_col].astype(str), dtype=str)
        mask |= np.char.startswith(symbols, prefix)
    return mask


def resolve_feature_controls(
    adata, controls: Mapping[str, Any], logger: logging.Logger
) -> dict[str, np.ndarray]:
    """Turn configured control sets into feature masks.

    A set is either a list of feature names/positions or `{"prefix": "MT-"}`.
    Sets matching no features are dropped with a warning.
    """
    out: dict[str, np.ndarray] = {}
    for name, selection in controls.items():
        if isinstance(selection, Mapping):
            if "prefix" not in selection:
                raise ValueError(
                    f"Feature control '{name}' must be a list of features or {{'prefix': ...}}."
                )
            mask = _prefix_mask(adata, str(selection["prefix"]))
        elif np.asarray(selection).size == 0:
            mask = np.zeros(adata.n_vars, dtype=bool)
        else:
            mask = selection_mask(adata, selection, axis="var")
        if not mask.any():
            logger.warning("Feature control set '%s' matches no features; skipped", name)
            continue
        logger.info("Feature control set '%s': %d features", name, int(mask.sum()))
        out[str(name)] = mask
    return out


def resolve_cell_controls(adata, controls: Mapping[str, Any]) -> dict[str, np.ndarray]:
    """Cell control sets are cell names/positions or `{"column": <bool obs column>}`."""
    out: dict[str, np.ndarray] = {}
    for name, selection in controls.items():
        if isinstance(selection, Mapping):
            col = selection.get("column")
            if col not in adata.obs.columns:
                raise KeyError(f"adata.obs['{col}'] not found for cell control '{name}'.")
            if not pd.api.types.is_bool_dtype(adata.obs[col]):
                raise ValueError(
                    f"adata.obs['{col}'] must be boolean for cell control '{name}', "
                    f"got {adata.obs[col].dtype}."
                )
            out[str(name)] = adata.obs[col].to_numpy(dtype=bool)
        else:
            out[str(name)] = selection_mask(adata, selection, axis="obs")
    return out


def flag_outliers(adata, cfg: QCConfig, control_sets: list[str]) -> dict[str, Any]:
    """Add `qc_outlier_*` and `discard` columns to `adata.obs`.

    Small libraries and low feature counts are called on the log scale;
    control percentages are called on the high side only.
    """
    ev = cfg.exprs_values
    batch = None
    if cfg.batch_key is not None:
        if cfg.batch_key not in adata.obs.columns:
            raise KeyError(f"adata.obs['{cfg.batch_key}'] not found.")
        batch = adata.obs[cfg.batch_key].to_numpy()

    calls = {
        "libsize": is_outlier(
            adata.obs[f"total_{ev}"], nmads=cfg.nmads, type="lower", log=True, batch=batch
        ),
        "feature": is_outlier(
            adata.obs[f"total_features_by_{ev}"],
            nmads=cfg.nmads,
            type="lower",
            log=True,
            batch=batch,
        ),
    }
    for name in control_sets:
        calls[name] = is_outlier(
            adata.obs[f"pct_{ev}_{name}"], nmads=cfg.nmads, type="higher", batch=batch
        )

    discard = np.zeros(adata.n_obs, dtype=bool)
    summary: dict[str, Any] = {}
    for name, flags in calls.items():
        arr = flags.to_numpy(dtype=bool)
        adata.obs[f"qc_outlier_{name}"] = arr
        discard |= arr
        summary[name] = {"n_outliers": int(arr.sum()), "thresholds": flags.attrs["thresholds"]}
    adata.obs["discard"] = discard
    summary["n_discard"] = int(discard.sum())
    return summary


def _compute_size_factors(adata, ev: str) -> None:
    set_size_factors(adata, library_size_factors(adata, ev))
    for spike in spike_names(adata):
        sf = library_size_factors(adata, ev, subset_row=is_spike(adata, spike))
        set_size_factors(adata, sf, spike)


def _save_plot(
    name: str,
    make: Callable[[], ScaterPlot],
    out_path: Path,
    written: list[str],
    logger: logging.Logger,
) -> None:
    try:
        plot = make()
    except (KeyError, ValueError) as exc:
        logger.warning("Skipped figure '%s': %s", name, exc)
        plt.close("all")
        return
    plot.save(out_path)
    written.append(out_path.as_posix())


def run_qc_pipeline(config: QCConfig | dict[str, Any] | str | Path) -> dict[str, Any]:
    """Run QC, outlier detection, normalisation and PCA; write tables and figures.

    Returns the run metadata also written to `metadata.json`.
    """
    cfg = load_qc_config(config)
    dirs = _prepare_dirs(Path(cfg.outdir))
    logger = setup_logger(dirs["logs"] / "scaterpy_qc.log", "scaterpy")
    apply_plot_style()
    ev = cfg.exprs_values

    try:
        adata = _read_adata(cfg.h5ad_path)
        logger.info("Loaded %s: %d cells x %d features", cfg.h5ad_path, adata.n_obs, adata.n_vars)
        if "counts" not in assay_names(adata):
            set_counts(adata, adata.X)
            logger.info("No 'counts' layer; using X as counts")
        get_assay(adata, ev)
        n_cells_in = int(adata.n_obs)

        fcontrols = resolve_feature_controls(adata, cfg.feature_controls, logger)
        ccontrols = resolve_cell_controls(adata, cfg.cell_controls)
        calculate_qc_metrics(
            adata,
            exprs_values=ev,
            feature_controls=fcontrols,
            cell_controls=ccontrols,
            percent_top=cfg.percent_top,
            detection_limit=cfg.detection_limit,
        )
        control_sets = [*fcontrols, *(s for s in spike_names(adata) if s not in fcontrols)]
        outliers = flag_outliers(adata, cfg, control_sets)
        logger.info("Flagged %d of %d cells as outliers", outliers["n_discard"], adata.n_obs)

        write_table(dirs["tables"] / "cell_qc.csv", adata.obs, index_label="cell")
        write_table(dirs["tables"] / "feature_qc.csv", adata.var, index_label="feature")

        if cfg.discard_outliers and outliers["n_discard"] > 0:
            keep = ~adata.obs["discard"].to_numpy(dtype=bool)
            if not keep.any():
                raise ValueError("Every cell was flagged as an outlier; nothing left to normalise.")
            adata = adata[keep].copy()
            logger.info("Discarded outliers; %d cells remain", adata.n_obs)

        normalised = False
        try:
            _compute_size_factors(adata, ev)
            normalize(adata, exprs_values=ev)
            set_cpm(adata, calculate_cpm(adata, exprs_values=ev))
            normalised = True
        except ValueError as exc:
            logger.warning("Skipped normalisation: %s", exc)

        pca_done = False
        if normalised:
            try:
                run_pca(adata, ncomponents=cfg.pca_components, ntop=cfg.ntop)
                pca_done = True
            except ValueError as exc:
                logger.warning("Skipped PCA: %s", exc)

        figures: list[str] = []
        fig_dir = dirs["figures"]
        colour_by = cfg.colour_by
        _save_plot(
            "highest_exprs",
            lambda: plot_highest_exprs(
                adata,
                n=cfg.highest_n,
                colour_cells_by=f"total_features_by_{ev}",
                exprs_values=ev,
            ),
            fig_dir / "highest_exprs.png",
            figures,
            logger,
        )
        _save_plot(
            "exprs_freq_vs_mean",
            lambda: plot_exprs_freq_vs_mean(
                adata, freq_exprs=ev, detection_limit=cfg.detection_limit
            ),
            fig_dir / "exprs_freq_vs_mean.png",
            figures,
            logger,
        )
        _save_plot(
            "total_features_vs_total",
            lambda: plot_col_data(
                adata,
                y=f"total_features_by_{ev}",
                x=f"total_{ev}",
                colour_by=colour_by,
                by_exprs_values="logcounts" if normalised else ev,
            ),
            fig_dir / "total_features_vs_total.png",
            figures,
            logger,
        )
        _save_plot(
            "cumulative_expression",
            lambda: plot_scater(adata, colour_by=colour_by, exprs_values=ev),
            fig_dir / "cumulative_expression.png",
            figures,
            logger,
        )
        if pca_done and cfg.pca_components >= 2:
            _save_plot(
                "pca",
                lambda: plot_pca(
                    adata, ncomponents=min(cfg.pca_components, 4), colour_by=colour_by
                ),
                fig_dir / "pca.png",
                figures,
                logger,
            )
        for feature in cfg.plot_features:
            _save_plot(
                f"expression:{feature}",
                lambda feature=feature: plot_expression(
                    adata,
                    feature,
                    x=colour_by,
                    exprs_values="logcounts" if normalised else ev,
                ),
                fig_dir / f"expression_{sanitize_feature_label(feature)}.png",
                figures,
                logger,
            )

        sf = size_factors(adata)
        metadata: dict[str, Any] = {
            "scaterpy_version": __version__,
            "config": asdict(cfg),
            "n_cells_in": n_cells_in,
            "n_cells_out": int(adata.n_obs),
            "n_features": int(adata.n_vars),
            "feature_controls": {k: int(v.sum()) for k, v in fcontrols.items()},
            "cell_controls": {k: int(v.sum()) for k, v in ccontrols.items()},
            "outliers": outliers,
            "normalised": normalised,
            "size_factors": None
            if sf is None
            else {"min": float(sf.min()), "median": float(np.median(sf)), "max": float(sf.max())},
            "pca_variance_ratio": adata.uns["pca"]["variance_ratio"] if pca_done else None,
            "assays": assay_names(adata),
            "plot_style": plot_style_dict(),
            "figures": figures,
        }

        if cfg.write_h5ad:
            h5ad_out = dirs["root"] / "scaterpy_qc.h5ad"
            adata.write_h5ad(h5ad_out)
            metadata["h5ad_out"] = h5ad_out.as_posix()

        write_json(dirs["root"] / "metadata.json", metadata)
        logger.info("QC pipeline complete. Results in %s", dirs["root"].as_posix())
        return metadata
    finally:
        close_logger(logger)
