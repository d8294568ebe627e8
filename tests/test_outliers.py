from __future__ import annotations

import numpy as np
import pandas as pd
import pytest
from scipy.stats import median_abs_deviation

from scaterpy.qc import is_outlier


def test_symmetric_thresholds_and_calls() -> None:
    values = np.array([10.0, 11.0, 9.0, 10.5, 9.5, 10.0, 40.0, -20.0])
    out = is_outlier(values, nmads=3.0)
    mad = median_abs_deviation(values, scale="normal")
    th = out.attrs["thresholds"]
    assert th["lower"] == pytest.approx(np.median(values) - 3.0 * mad)
    assert th["higher"] == pytest.approx(np.median(values) + 3.0 * mad)
    assert out.tolist() == [False] * 6 + [True, True]
    assert out.dtype == bool


def test_one_sided_types() -> None:
    values = np.array([10.0, 11.0, 9.0, 10.5, 9.5, 10.0, 40.0, -20.0])
    assert is_outlier(values, nmads=3.0, type="higher").tolist()[-2:] == [True, False]
    assert is_outlier(values, nmads=3.0, type="lower").tolist()[-2:] == [False, True]
    with pytest.raises(ValueError, match="type must be"):
        is_outlier(values, type="middle")


def test_series_index_is_kept_and_nan_never_flagged() -> None:
    metric = pd.Series([1.0, 1.1, 0.9, np.nan, 50.0], index=list("abcde"))
    out = is_outlier(metric, nmads=3.0)
    assert list(out.index) == list("abcde")
    assert not out["d"]
    assert out["e"]


def test_log_scale_reports_original_scale_thresholds() -> None:
    values = np.array([1000.0, 1200.0, 900.0, 1100.0, 1050.0, 950.0, 10.0])
    out = is_outlier(values, nmads=3.0, type="lower", log=True)
    assert out.tolist() == [False] * 6 + [True]
    logged = np.log10(values)
    expected = 10.0 ** (np.median(logged) - 3.0 * median_abs_deviation(logged, scale="normal"))
    assert out.attrs["thresholds"]["lower"] == pytest.approx(expected)


def test_log_scale_flags_zero_as_low_outlier() -> None:
    values = np.array([1000.0, 1200.0, 900.0, 1100.0, 0.0])
    assert is_outlier(values, nmads=3.0, type="lower", log=True).iloc[-1]


def test_min_diff_widens_thresholds() -> None:
    values = np.array([5.0, 5.0, 5.0, 5.0, 6.0])
    assert is_outlier(values, nmads=3.0).iloc[-1]
    assert not is_outlier(values, nmads=3.0, min_diff=2.0).iloc[-1]


def test_subset_defines_reference_cells() -> None:
    values = np.array([1.0, 1.2, 0.8, 1.1, 100.0, 101.0, 99.0])
    subset = np.array([True, True, True, True, False, False, False])
    out = is_outlier(values, nmads=3.0, subset=subset)
    assert out.tolist() == [False] * 4 + [True] * 3
    with pytest.raises(ValueError, match="same length"):
        is_outlier(values, subset=subset[:3])


def test_batches_get_their_own_thresholds() -> None:
    values = np.array([1.0, 1.1, 0.9, 1.0, 100.0, 110.0, 90.0, 100.0])
    batch = np.array(["a"] * 4 + ["b"] * 4)
    out = is_outlier(values, nmads=3.0, batch=batch)
    assert not out.any()
    thresholds = out.attrs["thresholds"]
    assert set(thresholds) == {"a", "b"}
    assert thresholds["b"]["lower"] > thresholds["a"]["higher"]


def test_missing_batch_labels_raise() -> None:
    values = np.array([1.0, 1.1, 0.9, 50.0])
    batch = pd.Series(["a", "a", "a", np.nan])
    with pytest.raises(ValueError, match="missing labels"):
        is_outlier(values, batch=batch)
