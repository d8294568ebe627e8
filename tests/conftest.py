from __future__ import annotations

import os

import matplotlib

os.environ.setdefault("MPLBACKEND", "Agg")
matplotlib.use("Agg", force=True)

import anndata as ad
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest
import scipy.sparse as sp

N_GENES = 190
N_SPIKES = 10
N_CELLS = 40


def build_example_adata(seed: int = 0, sparse: bool = False) -> ad.AnnData:
    """Negative-binomial counts with cell metadata resembling a small plate."""
    rng = np.random.default_rng(seed)
    gene_means = np.exp(rng.normal(1.0, 1.2, size=N_GENES + N_SPIKES))
    depth = rng.uniform(0.5, 1.5, size=N_CELLS)
    mu = depth[:, None] * gene_means[None, :]
    n_disp = 2.0
    counts = rng.negative_binomial(n_disp, n_disp / (n_disp + mu)).astype(float)
    # every cell keeps non-empty gene and spike-in libraries
    counts[:, 0] += 1.0
    counts[:, N_GENES] += 1.0

    var_names = [f"Gene_{i + 1:04d}" for i in range(N_GENES)] + [
        f"ERCC-{i + 1:05d}" for i in range(N_SPIKES)
    ]
    obs = pd.DataFrame(
        {
            "Cell_Cycle": rng.choice(["G0", "G1", "G2M", "S"], size=N_CELLS),
            "Treatment": rng.choice(["treat1", "treat2"], size=N_CELLS),
            "Mutation_Status": rng.choice(["negative", "positive"], size=N_CELLS),
            "Cell_Quality": np.repeat(["good", "bad"], [N_CELLS - 4, 4]),
        },
        index=[f"Cell_{i + 1:03d}" for i in range(N_CELLS)],
    )
    var = pd.DataFrame(index=var_names)
    X = sp.csr_matrix(counts) if sparse else counts
    adata = ad.AnnData(X=X, obs=obs, var=var)
    adata.layers["counts"] = sp.csr_matrix(counts) if sparse else counts.copy()
    return adata


@pytest.fixture
def example_adata() -> ad.AnnData:
    return build_example_adata()


@pytest.fixture
def example_adata_sparse() -> ad.AnnData:
    return build_example_adata(sparse=True)


@pytest.fixture
def normalized_adata() -> ad.AnnData:
    from scaterpy.core.assays import set_size_factors
    from scaterpy.normalization import library_size_factors, normalize

    adata = build_example_adata()
    set_size_factors(adata, library_size_factors(adata))
    normalize(adata)
    return adata


@pytest.fixture(autouse=True)
def _close_figures():
    yield
    plt.close("all")
