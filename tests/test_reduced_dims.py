from __future__ import annotations

import logging

import numpy as np
import pytest

from scaterpy.plotting.reduced_dims import (
    plot_explanatory_variables,
    plot_pca,
    plot_reduced_dim,
)
from scaterpy.reduced_dims import get_variance_explained, run_pca


def test_run_pca_stores_embedding_and_variance(normalized_adata) -> None:
    run_pca(normalized_adata, ncomponents=3, ntop=100)
    emb = normalized_adata.obsm["X_pca"]
    assert emb.shape == (normalized_adata.n_obs, 3)
    ratio = normalized_adata.uns["pca"]["variance_ratio"]
    assert ratio.shape == (3,)
    assert np.all(np.diff(ratio) <= 1e-12)
    assert len(normalized_adata.uns["pca"]["features"]) <= 100


def test_run_pca_on_explicit_feature_set(normalized_adata) -> None:
    genes = [f"Gene_{i:04d}" for i in range(1, 31)]
    run_pca(normalized_adata, ncomponents=2, feature_set=genes, scale_features=False, key="X_sub")
    assert normalized_adata.obsm["X_sub"].shape == (normalized_adata.n_obs, 2)
    assert set(normalized_adata.uns["pca"]["features"]) <= set(genes)


def test_run_pca_rejects_too_many_components(normalized_adata) -> None:
    with pytest.raises(ValueError, match="ncomponents"):
        run_pca(normalized_adata, ncomponents=normalized_adata.n_obs + 5)


def test_variance_explained(normalized_adata, caplog) -> None:
    logcounts = np.asarray(normalized_adata.layers["logcounts"])
    normalized_adata.obs["driver"] = logcounts[:, 0]
    normalized_adata.obs["constant"] = "same"
    caplog.set_level(logging.WARNING, logger="scaterpy")
    out = get_variance_explained(normalized_adata, ["driver", "Treatment", "constant"])
    assert list(out.columns) == ["driver", "Treatment", "constant"]
    assert out.loc["Gene_0001", "driver"] == pytest.approx(100.0)
    valid = out["Treatment"].dropna()
    assert ((valid >= -1e-9) & (valid <= 100.0 + 1e-9)).all()
    assert out["constant"].isna().all()
    assert "single level" in caplog.text
    with pytest.raises(KeyError):
        get_variance_explained(normalized_adata, ["missing"])


def test_plot_pca_runs_pca_when_missing(normalized_adata) -> None:
    assert "X_pca" not in normalized_adata.obsm
    p = plot_pca(normalized_adata, colour_by="Cell_Cycle", shape_by="Treatment")
    assert "X_pca" in normalized_adata.obsm
    assert list(p.data.columns) == ["Dim1", "Dim2", "colour_by", "shape_by"]
    assert p.ax.get_xlabel().startswith("PC1 (")
    np.testing.assert_allclose(p.data["Dim1"], normalized_adata.obsm["X_pca"][:, 0])


def test_plot_pca_rerun_replaces_embedding(normalized_adata) -> None:
    run_pca(normalized_adata, ncomponents=2, ntop=20)
    before = normalized_adata.obsm["X_pca"].copy()
    plot_pca(normalized_adata, rerun=True, run_args={"ntop": 150})
    assert not np.allclose(before, normalized_adata.obsm["X_pca"])


def test_plot_reduced_dim_pairs_grid(normalized_adata) -> None:
    run_pca(normalized_adata, ncomponents=3)
    p = plot_reduced_dim(normalized_adata, "X_pca", ncomponents=3, size_by="Gene_0001")
    assert len(p.axes) == 6
    assert {"Dim1", "Dim2", "Dim3", "size_by"} <= set(p.data.columns)
    with pytest.raises(ValueError, match="ncomponents"):
        plot_reduced_dim(normalized_adata, "X_pca", ncomponents=5)
    with pytest.raises(KeyError):
        plot_reduced_dim(normalized_adata, "X_umap")


def test_plot_explanatory_variables(normalized_adata) -> None:
    p = plot_explanatory_variables(
        normalized_adata, ["Treatment", "Cell_Cycle", "Mutation_Status"], nvars_to_plot=2
    )
    assert set(p.data.columns) == {"Feature", "Variable", "Pct_var_explained"}
    assert p.data["Variable"].nunique() == 2
    assert p.ax.get_xlabel() == "% variance explained (log10)"
