import numpy as np
import pandas as pd
import pytest
from scipy import sparse

from nmfspot import (
    InvalidConfig, NegativeInputError, ReferenceDataset, downsample_reference, markers_from_frame,
)
from nmfspot._downsample import sample_cells, select_genes, top_variable_genes
from nmfspot._utils import check_no_negatives


def _reference(sizes, n_genes=8, seed=0):
    r = np.random.default_rng(seed)
    labels = np.concatenate([[ct] * n for ct, n in sizes.items()])
    X = r.poisson(3.0, size=(n_genes, labels.size)).astype(float)
    return ReferenceDataset.from_arrays(X, labels)


def test_small_cluster_kept_whole():
    ref = _reference({"rare": 5, "common": 50})
    markers = {"rare": ["gene_0"], "common": ["gene_1"]}
    ds = downsample_reference(ref, markers, cl_n=10, rng=0)
    counts = pd.Series(ds.labels).value_counts()
    assert counts["rare"] == 5
    assert counts["common"] == 10
    rare_cells = ref.counts.columns[ref.labels("cluster") == "rare"]
    assert set(rare_cells) <= set(ds.counts.columns)


def test_sampled_cells_keep_reference_order():
    labels = np.array(["a"] * 30 + ["b"] * 30)
    idx = sample_cells(labels, 7, np.random.default_rng(3))
    assert idx.size == 14
    assert np.all(np.diff(idx) > 0)


def test_same_seed_same_sample():
    ref = _reference({"x": 40, "y": 40})
    markers = {"x": ["gene_0"], "y": ["gene_1"]}
    a = downsample_reference(ref, markers, cl_n=10, rng=11)
    b = downsample_reference(ref, markers, cl_n=10, rng=np.random.default_rng(11))
    assert list(a.counts.columns) == list(b.counts.columns)


def test_gene_union_ntop_and_hvg():
    genes = ["g0", "g1", "g2", "g3", "g4", "g5"]
    markers = {"a": ["g3", "g0", "g5"], "b": ["g1", "missing"]}
    assert select_genes(genes, markers, [], ntop=1) == ["g1", "g3"]
    assert select_genes(genes, markers, ["g4"], ntop=None) == ["g0", "g1", "g3", "g4", "g5"]


def test_top_variable_genes_ranks_by_variance():
    counts = pd.DataFrame(
        [[1, 1, 1, 1], [0, 10, 0, 10], [0, 2, 0, 2], [5, 5, 5, 6]],
        index=["flat", "wild", "mild", "tiny"], dtype=float,
    )
    assert top_variable_genes(counts, 2) == ["wild", "mild"]
    assert top_variable_genes(counts, 0) == []


def test_hvg_genes_join_marker_genes():
    ref = _reference({"x": 10, "y": 10}, n_genes=6)
    ref.counts.loc["gene_5"] = np.tile([0.0, 100.0], 10)
    ds = downsample_reference(ref, {"x": ["gene_0"]}, cl_n=10, hvg=1, rng=0)
    assert ds.genes == ("gene_0", "gene_5")


def test_invalid_parameters():
    ref = _reference({"x": 10, "y": 10})
    markers = {"x": ["gene_0"]}
    with pytest.raises(InvalidConfig):
        downsample_reference(ref, markers, cl_n=0, rng=0)
    with pytest.raises(InvalidConfig):
        downsample_reference(ref, markers, cluster_field="celltype", rng=0)
    with pytest.raises(InvalidConfig):
        downsample_reference(ref, {"x": ["not_a_gene"]}, hvg=0, rng=0)
    with pytest.raises(InvalidConfig):
        downsample_reference(ref, markers, ntop=0, rng=0)


def test_negative_counts_rejected():
    X = np.ones((3, 4))
    X[1, 2] = -1.0
    ref = ReferenceDataset.from_arrays(X, ["a", "a", "b", "b"])
    with pytest.raises(NegativeInputError):
        downsample_reference(ref, {"a": ["gene_0"]}, rng=0)


@pytest.mark.parametrize("wrap", [np.asarray, pd.DataFrame, sparse.csr_matrix])
def test_check_no_negatives_accepts_frames_and_sparse(wrap):
    X = np.array([[0.0, 2.0], [1.0, 0.0]])
    check_no_negatives(wrap(X))
    X[1, 1] = -0.5
    with pytest.raises(NegativeInputError):
        check_no_negatives(wrap(X), what="reference counts")


def test_check_no_negatives_empty_table():
    check_no_negatives(pd.DataFrame(index=["g1", "g2"]))


def test_reference_not_mutated(three_types):
    reference, markers = three_types
    before = reference.counts.copy()
    downsample_reference(reference, markers, cl_n=20, hvg=3, rng=1)
    pd.testing.assert_frame_equal(reference.counts, before)


def test_markers_from_frame_orders_by_weight():
    df = pd.DataFrame({
        "cluster": ["a", "a", "a", "b"],
        "gene": ["g1", "g2", "g3", "g4"],
        "avg_log2FC": [0.5, 2.0, 1.0, 3.0],
    })
    assert markers_from_frame(df) == {"a": ["g1", "g2", "g3"], "b": ["g4"]}
    assert markers_from_frame(df, weight_col="avg_log2FC") == {"a": ["g2", "g3", "g1"], "b": ["g4"]}
    with pytest.raises(InvalidConfig):
        markers_from_frame(df, gene_col="symbol")
