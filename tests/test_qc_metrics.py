from __future__ import annotations

import anndata as ad
import numpy as np
import pandas as pd
import pytest
import scipy.sparse as sp

from scaterpy.core.assays import set_spike
from scaterpy.qc import calculate_qc_metrics, nexprs


def _mito(adata) -> list[str]:
    return [str(name) for name in adata.var_names[:5]]


def test_cell_metrics_without_controls(example_adata) -> None:
    calculate_qc_metrics(example_adata, percent_top=(50, 100))
    counts = np.asarray(example_adata.layers["counts"])
    obs = example_adata.obs

    np.testing.assert_allclose(obs["total_counts"], counts.sum(axis=1))
    np.testing.assert_allclose(obs["total_features_by_counts"], (counts > 0).sum(axis=1))
    np.testing.assert_allclose(obs["log10_total_counts"], np.log10(counts.sum(axis=1) + 1.0))

    top50 = -np.sort(-counts, axis=1)[:, :50].sum(axis=1)
    np.testing.assert_allclose(
        obs["pct_counts_in_top_50_features"], 100.0 * top50 / counts.sum(axis=1)
    )
    assert "pct_counts_in_top_100_features" in obs.columns
    assert "total_counts_feature_control" not in obs.columns
    assert not obs["is_cell_control"].any()
    assert not example_adata.var["is_feature_control"].any()


def test_percent_top_larger_than_feature_count_is_skipped(example_adata) -> None:
    calculate_qc_metrics(example_adata, percent_top=(50, 500))
    assert "pct_counts_in_top_50_features" in example_adata.obs.columns
    assert "pct_counts_in_top_500_features" not in example_adata.obs.columns


def test_feature_control_sets(example_adata) -> None:
    mito = _mito(example_adata)
    calculate_qc_metrics(example_adata, feature_controls={"MT": mito}, percent_top=(50,))
    obs = example_adata.obs
    counts = np.asarray(example_adata.layers["counts"])

    mt_total = counts[:, :5].sum(axis=1)
    np.testing.assert_allclose(obs["total_counts_MT"], mt_total)
    np.testing.assert_allclose(obs["pct_counts_MT"], 100.0 * mt_total / counts.sum(axis=1))
    np.testing.assert_allclose(obs["total_counts_feature_control"], mt_total)
    np.testing.assert_allclose(
        obs["total_counts_endogenous"], counts.sum(axis=1) - mt_total
    )
    np.testing.assert_allclose(
        obs["pct_counts_MT"] + obs["pct_counts_endogenous"], 100.0
    )
    assert example_adata.var["is_feature_control_MT"].sum() == 5
    assert example_adata.var["is_feature_control"].sum() == 5


def test_spike_ins_become_feature_controls(example_adata) -> None:
    spikes = [n for n in example_adata.var_names if n.startswith("ERCC")]
    set_spike(example_adata, "ERCC", spikes)
    calculate_qc_metrics(example_adata, percent_top=())
    assert "pct_counts_ERCC" in example_adata.obs.columns
    assert example_adata.var["is_feature_control"].sum() == len(spikes)

    calculate_qc_metrics(example_adata, percent_top=(), use_spikes=False)
    assert not example_adata.var["is_feature_control"].any()


def test_reserved_control_names_rejected(example_adata) -> None:
    with pytest.raises(ValueError, match="reserved"):
        calculate_qc_metrics(example_adata, feature_controls={"endogenous": [0, 1]})


def test_cell_controls_drive_feature_metrics(example_adata) -> None:
    calculate_qc_metrics(
        example_adata, cell_controls={"empty": ["Cell_001", "Cell_002"]}, percent_top=()
    )
    obs = example_adata.obs
    var = example_adata.var
    counts = np.asarray(example_adata.layers["counts"])

    assert obs["is_cell_control"].sum() == 2
    assert obs["is_cell_control_empty"].iloc[:2].all()
    np.testing.assert_allclose(var["total_counts_empty"], counts[:2].sum(axis=0))
    np.testing.assert_allclose(var["mean_counts"], counts.mean(axis=0))
    np.testing.assert_allclose(var["n_cells_by_counts"], (counts > 0).sum(axis=0))
    np.testing.assert_allclose(
        var["pct_dropout_by_counts"], 100.0 * (1.0 - (counts > 0).mean(axis=0))
    )


def test_detection_limit(example_adata) -> None:
    calculate_qc_metrics(example_adata, detection_limit=2.0, percent_top=())
    counts = np.asarray(example_adata.layers["counts"])
    np.testing.assert_allclose(
        example_adata.obs["total_features_by_counts"], (counts > 2.0).sum(axis=1)
    )


def test_sparse_and_dense_give_identical_metrics(example_adata, example_adata_sparse) -> None:
    controls = {"MT": _mito(example_adata)}
    dense_cells, dense_features = calculate_qc_metrics(
        example_adata, feature_controls=controls, inplace=False
    )
    sparse_cells, sparse_features = calculate_qc_metrics(
        example_adata_sparse, feature_controls=controls, inplace=False
    )
    pd.testing.assert_frame_equal(dense_cells, sparse_cells)
    pd.testing.assert_frame_equal(dense_features, sparse_features)
    assert "total_counts" not in example_adata.obs.columns


def test_zero_library_cells_have_zero_percentages() -> None:
    counts = np.array([[0.0, 0.0, 0.0], [1.0, 2.0, 3.0]])
    adata = ad.AnnData(X=counts)
    adata.layers["counts"] = sp.csr_matrix(counts)
    with np.errstate(all="raise"):
        calculate_qc_metrics(adata, feature_controls={"first": [0]}, percent_top=(1,))
    assert adata.obs["pct_counts_first"].iloc[0] == 0.0
    assert adata.obs["pct_counts_in_top_1_features"].iloc[0] == 0.0


def test_nexprs_by_cell_and_feature(example_adata) -> None:
    counts = np.asarray(example_adata.layers["counts"])
    np.testing.assert_array_equal(nexprs(example_adata), (counts > 0).sum(axis=1))
    np.testing.assert_array_equal(
        nexprs(example_adata, by="feature", subset_col=[0, 1, 2]),
        (counts[:3] > 0).sum(axis=0),
    )
    np.testing.assert_array_equal(
        nexprs(example_adata, subset_row=["Gene_0001", "Gene_0002"]),
        (counts[:, :2] > 0).sum(axis=1),
    )
    with pytest.raises(ValueError, match="by must be"):
        nexprs(example_adata, by="gene")
