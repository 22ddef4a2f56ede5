# SPDX-License-Identifier: BSD-3-Clause
"""
Reference downsampling: balanced cell sampling per cluster and gene selection.

The training set keeps at most ``cl_n`` cells of every cell type and restricts
genes to the union of per-cluster marker genes and the most variable genes of
the full reference.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ._errors import InvalidConfig
from ._utils import as_generator, check_no_negatives

logger = logging.getLogger(__name__)

__all__ = [
    "DownsampledReference", "downsample_reference", "sample_cells",
    "select_genes", "top_variable_genes", "markers_from_frame",
]


@dataclass(frozen=True)
class DownsampledReference:
    counts: pd.DataFrame        # genes x cells
    labels: np.ndarray          # one label per column of counts
    genes: Tuple[str, ...]
    cell_types: Tuple[str, ...]


def markers_from_frame(df: pd.DataFrame, group_col: str = "cluster", gene_col: str = "gene",
                       weight_col: Optional[str] = None) -> dict:
    """
    Build the cluster -> ordered gene list mapping from a long marker table.

    With ``weight_col`` the genes of each cluster are ordered by decreasing
    weight (e.g. log fold change); otherwise the table order is kept.
    """
    for col in (group_col, gene_col) + ((weight_col,) if weight_col else ()):
        if col not in df.columns:
            raise InvalidConfig(f"marker table has no column {col!r}")
    if weight_col is not None:
        df = df.sort_values(weight_col, ascending=False, kind="stable")
    out = {}
    for cluster, sub in df.groupby(group_col, sort=True):
        genes = list(dict.fromkeys(sub[gene_col].astype(str)))
        out[str(cluster)] = genes
    return out


def sample_cells(labels: np.ndarray, cl_n: int, rng: np.random.Generator) -> np.ndarray:
    """
    Column indices of at most ``cl_n`` cells per label, in original order.

    Clusters with ``cl_n`` cells or fewer are kept whole.
    """
    if cl_n <= 0:
        raise InvalidConfig(f"cl_n must be a positive integer, got {cl_n}")
    keep = []
    for label in sorted(pd.unique(labels)):
        idx = np.flatnonzero(labels == label)
        if idx.size > cl_n:
            idx = rng.choice(idx, size=cl_n, replace=False)
        keep.append(idx)
    return np.sort(np.concatenate(keep))


def top_variable_genes(counts: pd.DataFrame, hvg: int) -> list:
    """The ``hvg`` genes with largest variance across cells (ties: gene order)."""
    if hvg < 0:
        raise InvalidConfig(f"hvg must be >= 0, got {hvg}")
    if hvg == 0 or counts.shape[1] < 2:
        return []
    var = counts.to_numpy(dtype=float).var(axis=1, ddof=1)
    order = np.argsort(-var, kind="stable")[:hvg]
    return [counts.index[i] for i in order]


def select_genes(genes: Sequence[str], markers: Mapping[str, Sequence[str]],
                 hvg_genes: Sequence[str], ntop: Optional[int] = None) -> list:
    """Union of (truncated) marker lists and HVGs, restricted to ``genes`` and in their order."""
    if ntop is not None and ntop <= 0:
        raise InvalidConfig(f"ntop must be a positive integer or None, got {ntop}")
    wanted = set(hvg_genes)
    for cluster_genes in markers.values():
        cluster_genes = list(cluster_genes)
        if ntop is not None:
            cluster_genes = cluster_genes[:ntop]
        wanted.update(cluster_genes)
    return [g for g in genes if g in wanted]


def downsample_reference(reference, markers: Mapping[str, Sequence[str]], *,
                         cluster_field: str = "cluster", cl_n: int = 100, hvg: int = 0,
                         ntop: Optional[int] = None, rng) -> DownsampledReference:
    """
    Downsample a :class:`~nmfspot.model.ReferenceDataset` for training.

    Parameters
    ----------
    reference : ReferenceDataset
        Genes x cells counts plus per-cell metadata.
    markers : mapping
        Cluster -> ordered list of marker genes.
    cluster_field : str
        Column of ``reference.obs`` holding the cell-type label.
    cl_n : int
        Maximum number of cells kept per cell type.
    hvg : int
        Number of highly variable genes added to the marker genes.
    ntop : int or None
        Marker genes kept per cluster (``None`` keeps all).
    rng : numpy.random.Generator or int
        Source of randomness for cell sampling.
    """
    if cl_n <= 0:
        raise InvalidConfig(f"cl_n must be a positive integer, got {cl_n}")
    rng = as_generator(rng)
    labels = reference.labels(cluster_field)
    counts = reference.counts
    check_no_negatives(counts, what="reference counts")

    cols = sample_cells(labels, cl_n, rng)
    hvg_genes = top_variable_genes(counts, hvg)
    genes = select_genes(list(counts.index), markers, hvg_genes, ntop=ntop)
    if not genes:
        raise InvalidConfig("no marker or highly variable gene is present in the reference")

    sub = counts.iloc[:, cols].loc[genes]
    kept = labels[cols]
    cell_types = tuple(sorted(pd.unique(kept)))
    logger.info("downsampled reference to %d genes x %d cells (%d cell types)",
                len(genes), sub.shape[1], len(cell_types))
    return DownsampledReference(counts=sub, labels=kept, genes=tuple(genes), cell_types=cell_types)
