from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from scaterpy.plotting.aesthetics import as_categorical, choose_vis_values
from scaterpy.plotting.central import swarm_offsets
from scaterpy.plotting.utils import facet_grid, sanitize_feature_label


def test_metadata_lookup_takes_precedence(normalized_adata) -> None:
    normalized_adata.obs["Gene_0001"] = np.arange(normalized_adata.n_obs, dtype=float)
    vis = choose_vis_values(normalized_adata, "Gene_0001")
    np.testing.assert_allclose(vis.values, np.arange(normalized_adata.n_obs))
    assert not vis.is_discrete


def test_expression_lookup_and_search_modes(normalized_adata) -> None:
    vis = choose_vis_values(normalized_adata, "Gene_0001", exprs_values="counts")
    np.testing.assert_allclose(vis.values, np.asarray(normalized_adata.layers["counts"])[:, 0])
    with pytest.raises(KeyError, match="cannot find 'Gene_0001'"):
        choose_vis_values(normalized_adata, "Gene_0001", search="metadata")
    with pytest.raises(KeyError, match="cannot find 'Treatment'"):
        choose_vis_values(normalized_adata, "Treatment", search="exprs")
    with pytest.raises(ValueError, match="search must be"):
        choose_vis_values(normalized_adata, "Treatment", search="everywhere")


def test_row_mode_uses_var_and_cell_names(normalized_adata) -> None:
    normalized_adata.var["kind"] = ["gene"] * 190 + ["spike"] * 10
    vis = choose_vis_values(normalized_adata, "kind", mode="row")
    assert len(vis.values) == normalized_adata.n_vars
    assert vis.is_discrete
    by_cell = choose_vis_values(normalized_adata, "Cell_002", mode="row")
    np.testing.assert_allclose(
        by_cell.values, np.asarray(normalized_adata.layers["logcounts"])[1]
    )


def test_array_like_values(normalized_adata) -> None:
    n = normalized_adata.n_obs
    vis = choose_vis_values(normalized_adata, pd.Series(np.arange(n), name="rank"))
    assert vis.name == "rank"
    frame = pd.DataFrame({"group": ["a", "b"] * (n // 2)})
    vis = choose_vis_values(normalized_adata, frame, coerce_factor=True)
    assert vis.name == "group"
    assert list(vis.values.cat.categories) == ["a", "b"]
    with pytest.raises(ValueError, match="length"):
        choose_vis_values(normalized_adata, np.arange(3))


def test_discard_solo(normalized_adata) -> None:
    normalized_adata.obs["plate"] = "p1"
    assert choose_vis_values(normalized_adata, "plate", discard_solo=True) is None
    assert choose_vis_values(normalized_adata, "plate") is not None
    assert choose_vis_values(normalized_adata, None) is None


def test_as_categorical_orders_levels() -> None:
    numeric_like = as_categorical(pd.Series(["10", "2", "1"]))
    assert list(numeric_like.categories) == ["1", "2", "10"]
    declared = as_categorical(pd.Series(pd.Categorical(["lo", "hi"], categories=["lo", "hi"])))
    assert list(declared.categories) == ["lo", "hi"]
    with_na = as_categorical(pd.Series(["a", None]))
    assert "NA" in list(with_na.categories)


def test_swarm_offsets_are_deterministic_and_bounded() -> None:
    y = np.repeat([1.0, 2.0, 3.0], 5)
    off = swarm_offsets(y, width=0.3)
    np.testing.assert_allclose(off, swarm_offsets(y, width=0.3))
    assert np.abs(off).max() == pytest.approx(0.3)
    assert swarm_offsets(np.zeros(0), width=0.3).size == 0


def test_facet_grid_hides_spare_axes() -> None:
    fig, axes = facet_grid(5, 2)
    assert len(axes) == 5
    assert sum(ax.get_visible() for ax in fig.axes) == 5
    with pytest.raises(ValueError, match="ncol"):
        facet_grid(2, 0)


def test_sanitize_feature_label() -> None:
    assert sanitize_feature_label("MT-CO1/alt") == "MT_CO1_alt"
    assert sanitize_feature_label("///") == "feature"
