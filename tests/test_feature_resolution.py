import anndata as ad
import numpy as np
import pandas as pd
import pytest

from scaterpy.core.features import (
    feature_labels,
    has_feature_names,
    resolve_feature_index,
    resolve_features,
)


def test_resolve_feature_from_hugo_symbol() -> None:
    x = np.zeros((3, 3), dtype=float)
    var = pd.DataFrame(
        {
            "hugo_symbol": ["TNNT2", "VWF", "COL1A1"],
        },
        index=["ENSG00000118194", "ENSG00000110799", "ENSG00000108821"],
    )
    obs = pd.DataFrame(index=["c0", "c1", "c2"])
    adata = ad.AnnData(X=x, obs=obs, var=var)

    idx, label, symbol_col, source = resolve_feature_index(adata, "TNNT2")
    assert idx == 0
    assert label == "TNNT2"
    assert symbol_col == "hugo_symbol"
    assert source == "symbol"

    positions, labels = resolve_features(adata, ["VWF", "ENSG00000108821"])
    assert positions.tolist() == [1, 2]
    assert labels == ["ENSG00000110799", "ENSG00000108821"]


def test_duplicated_symbol_warns_and_keeps_first() -> None:
    var = pd.DataFrame({"gene_symbol": ["A", "B", "A"]}, index=["g1", "g2", "g3"])
    adata = ad.AnnData(X=np.zeros((2, 3)), var=var)
    with pytest.warns(RuntimeWarning, match="duplicated"):
        idx, *_ = resolve_feature_index(adata, "A")
    assert idx == 0


def test_resolve_features_by_name_position_and_mask(example_adata) -> None:
    positions, labels = resolve_features(example_adata, "Gene_0005")
    assert positions.tolist() == [4]
    assert labels == ["Gene_0005"]

    positions, labels = resolve_features(example_adata, range(6, 9))
    assert positions.tolist() == [6, 7, 8]
    assert labels == ["Gene_0007", "Gene_0008", "Gene_0009"]

    mask = np.zeros(example_adata.n_vars, dtype=bool)
    mask[[1, 3]] = True
    positions, _ = resolve_features(example_adata, mask)
    assert positions.tolist() == [1, 3]

    positions, _ = resolve_features(example_adata, ["Gene_0002", "Gene_0002"])
    assert positions.tolist() == [1, 1]


def test_resolve_features_errors(example_adata) -> None:
    with pytest.raises(KeyError, match="not found"):
        resolve_features(example_adata, ["Gene_0001", "NOT_A_GENE"])
    with pytest.raises(IndexError, match="out of range"):
        resolve_features(example_adata, [example_adata.n_vars + 5])
    with pytest.raises(ValueError, match="length"):
        resolve_features(example_adata, np.array([True, False]))
    with pytest.raises(ValueError, match="No features"):
        resolve_features(example_adata, [])


def test_unnamed_features_get_positional_labels() -> None:
    adata = ad.AnnData(X=np.ones((4, 5)))
    assert not has_feature_names(adata)
    positions, labels = resolve_features(adata, [0, 3])
    assert labels == ["Feature 0", "Feature 3"]
    assert feature_labels(adata, np.array([4])) == ["Feature 4"]
