import warnings

import numpy as np
import pandas as pd
import pytest

from nmfspot import DeconvolutionConfig, ReferenceDataset, train_model

CELL_TYPES = ("A", "B", "C")
MARKERS_PER_TYPE = 10
N_BACKGROUND = 5
CELLS_PER_TYPE = 50


def rng(seed=0):
    return np.random.default_rng(seed)


def make_three_type_reference(seed=42):
    """
    Three cell types with disjoint marker blocks and a few background genes.

    Every cell is a random library-size multiple of its type profile, so the
    genes x cells matrix has rank exactly 3.
    """
    r = rng(seed)
    n_genes = len(CELL_TYPES) * MARKERS_PER_TYPE + N_BACKGROUND
    genes = [f"g{i}" for i in range(n_genes)]
    profiles = np.zeros((n_genes, len(CELL_TYPES)))
    markers = {}
    for t, ct in enumerate(CELL_TYPES):
        block = slice(t * MARKERS_PER_TYPE, (t + 1) * MARKERS_PER_TYPE)
        profiles[block, t] = r.uniform(5.0, 20.0, size=MARKERS_PER_TYPE)
        markers[ct] = genes[block]
    profiles[-N_BACKGROUND:, :] = r.uniform(0.5, 2.0, size=(N_BACKGROUND, len(CELL_TYPES)))

    cols, labels = [], []
    for t, ct in enumerate(CELL_TYPES):
        scale = r.uniform(0.5, 1.5, size=CELLS_PER_TYPE)
        cols.append(profiles[:, [t]] * scale[np.newaxis, :])
        labels += [ct] * CELLS_PER_TYPE
    X = np.hstack(cols)
    cells = [f"cell_{j}" for j in range(X.shape[1])]
    reference = ReferenceDataset.from_arrays(X, labels, genes=genes, cells=cells)
    return reference, markers


@pytest.fixture(scope="session")
def three_types():
    return make_three_type_reference()


@pytest.fixture(scope="session")
def type_means(three_types):
    reference, _ = three_types
    labels = reference.labels("cluster")
    return pd.DataFrame(
        {ct: reference.counts.loc[:, labels == ct].mean(axis=1) for ct in CELL_TYPES}
    )


@pytest.fixture(scope="session")
def exact_config():
    return DeconvolutionConfig(
        cl_n=100, hvg=0, transf="none", method="standard",
        max_iter=3000, tol=1e-10, n_init=3,
    )


@pytest.fixture(scope="session")
def trained_model(three_types, exact_config):
    reference, markers = three_types
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return train_model(reference, markers, exact_config, rng=0)
