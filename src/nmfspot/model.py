# SPDX-License-Identifier: BSD-3-Clause
"""
Reference data, the trained model, and the training pipeline.

Training path::

    ReferenceDataset --downsample--> DownsampledReference --scale--> V
    V --TopicNMF--> (W, H) --topic_profiles--> TrainedModel

The TrainedModel is immutable: its arrays are flagged read-only and it can be
shared between any number of concurrent deconvolution calls.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ._deconvolution import DeconvolutionResult, deconvolve_spots
from ._downsample import downsample_reference
from ._errors import InvalidConfig
from ._initialization import informed_init
from ._profiles import topic_profiles
from ._scaling import scale_columns
from ._utils import as_generator
from .config import DeconvolutionConfig
from .estimator import TopicNMF

logger = logging.getLogger(__name__)

__all__ = ["ReferenceDataset", "TrainedModel", "train_model"]


def _readonly(a) -> np.ndarray:
    a = np.array(a, dtype=float)
    a.flags.writeable = False
    return a


@dataclass(frozen=True, eq=False)
class ReferenceDataset:
    """Genes x cells counts with per-cell metadata (``obs`` indexed by cell)."""
    counts: pd.DataFrame
    obs: pd.DataFrame

    def __post_init__(self):
        missing = pd.Index(self.counts.columns).difference(self.obs.index)
        if len(missing):
            raise InvalidConfig(f"{len(missing)} cells of the count matrix have no metadata row")
        if self.counts.shape[1] == 0 or self.counts.shape[0] == 0:
            raise InvalidConfig("reference count matrix is empty")

    @classmethod
    def from_arrays(cls, X, labels, genes: Optional[Sequence[str]] = None,
                    cells: Optional[Sequence[str]] = None, cluster_field: str = "cluster"):
        X = np.asarray(X)
        genes = list(genes) if genes is not None else [f"gene_{i}" for i in range(X.shape[0])]
        cells = list(cells) if cells is not None else [f"cell_{j}" for j in range(X.shape[1])]
        counts = pd.DataFrame(X, index=genes, columns=cells)
        obs = pd.DataFrame({cluster_field: np.asarray(labels)}, index=cells)
        return cls(counts=counts, obs=obs)

    def labels(self, cluster_field: str) -> np.ndarray:
        """Cell-type label of every count column, as strings."""
        if cluster_field not in self.obs.columns:
            raise InvalidConfig(f"label field {cluster_field!r} not found in cell metadata")
        labels = self.obs.loc[self.counts.columns, cluster_field]
        if labels.isna().any():
            raise InvalidConfig(f"label field {cluster_field!r} has missing values")
        return labels.astype(str).to_numpy()


@dataclass(frozen=True, eq=False)
class TrainedModel:
    W: np.ndarray                      # genes x k
    H: np.ndarray                      # k x training cells
    profiles: np.ndarray               # cell types x k
    genes: Tuple[str, ...]
    cell_types: Tuple[str, ...]
    labels: Tuple[str, ...]            # cell type of every column of H
    method: str = "nonsmooth"
    transf: str = "uv"
    theta: float = 0.5
    converged: bool = True
    n_iter: int = 0
    loss_curve: Tuple[float, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "W", _readonly(self.W))
        object.__setattr__(self, "H", _readonly(self.H))
        object.__setattr__(self, "profiles", _readonly(self.profiles))
        for name in ("genes", "cell_types", "labels", "loss_curve"):
            object.__setattr__(self, name, tuple(getattr(self, name)))
        k = self.W.shape[1]
        if self.H.shape[0] != k or self.profiles.shape != (len(self.cell_types), k):
            raise InvalidConfig("inconsistent model shapes")
        if self.W.shape[0] != len(self.genes) or self.H.shape[1] != len(self.labels):
            raise InvalidConfig("gene or label count does not match the factor shapes")

    @property
    def n_topics(self) -> int:
        return self.W.shape[1]

    @property
    def projection_basis(self) -> np.ndarray:
        """Design matrix for spot projection: the trained basis W, for either method."""
        return self.W

    def profiles_frame(self) -> pd.DataFrame:
        topics = [f"topic_{i + 1}" for i in range(self.n_topics)]
        return pd.DataFrame(self.profiles, index=pd.Index(self.cell_types, name="cell_type"), columns=topics)

    def basis_frame(self) -> pd.DataFrame:
        topics = [f"topic_{i + 1}" for i in range(self.n_topics)]
        return pd.DataFrame(self.W, index=pd.Index(self.genes, name="gene"), columns=topics)

    def deconvolve(self, spots, *, min_cont: float = 0.0, n_jobs: int = 1, **kwargs) -> DeconvolutionResult:
        return deconvolve_spots(self, spots, min_cont=min_cont, n_jobs=n_jobs, **kwargs)


def train_model(reference: ReferenceDataset, markers: Mapping[str, Sequence[str]],
                config: Optional[DeconvolutionConfig] = None, *, rng, verbose: int = 0) -> TrainedModel:
    """
    Downsample, scale and factorize the reference, then aggregate topic profiles.

    Parameters
    ----------
    reference : ReferenceDataset
    markers : mapping
        Cluster -> ordered marker genes (see :func:`markers_from_frame`).
    config : DeconvolutionConfig, optional
    rng : numpy.random.Generator or int
        Drives both cell sampling and the NMF start, in that order.
    """
    config = config or DeconvolutionConfig()
    rng = as_generator(rng)

    ds = downsample_reference(
        reference, markers,
        cluster_field=config.cluster_field, cl_n=config.cl_n,
        hvg=config.hvg, ntop=config.ntop, rng=rng,
    )
    V = scale_columns(ds.counts.to_numpy(dtype=float), config.transf)
    k = len(ds.cell_types)

    W_init = H_init = None
    if config.init == "informed":
        W_init, H_init = informed_init(ds.genes, ds.labels, ds.cell_types, markers)

    logger.info("training %s NMF with k=%d on %d genes x %d cells",
                config.method, k, V.shape[0], V.shape[1])
    est = TopicNMF(
        n_components=k, method=config.method, theta=config.theta,
        max_iter=config.max_iter, tol=config.tol, random_state=rng,
        n_init=config.n_init, W_init=W_init, H_init=H_init, verbose=verbose,
    ).fit(V)
    if not est.converged_:
        logger.warning("NMF did not converge within %d iterations", config.max_iter)

    profiles = topic_profiles(est.components_, ds.labels, ds.cell_types)
    return TrainedModel(
        W=est.W_, H=est.components_, profiles=profiles.to_numpy(),
        genes=ds.genes, cell_types=ds.cell_types, labels=tuple(ds.labels),
        method=config.method, transf=config.transf, theta=config.theta,
        converged=bool(est.converged_), n_iter=int(est.n_iter_),
        loss_curve=tuple(est.loss_curve_),
    )
