# SPDX-License-Identifier: BSD-3-Clause
"""
Spot projection and deconvolution.

Every spot goes through two non-negative least-squares solves:

1. project the (scaled) expression vector v onto the trained basis B,
   ``h = argmin ||v - B h||, h >= 0``;
2. explain the topic vector h with the cell-type topic profiles P,
   ``w = argmin ||h - P^T w||, w >= 0``.

The unexplained share of h is reported as ``residual``: the relative residual
sum of squares ``||h - P^T w||^2 / ||h||^2``. Cell-type proportions are
``w / sum(w)`` scaled by ``1 - residual`` so that a row sums to one.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy.optimize import lsq_linear, nnls

from ._errors import EmptyOverlapError, InvalidConfig, NNLSNonConvergence
from ._scaling import scale_columns
from ._utils import check_counts, check_no_negatives

logger = logging.getLogger(__name__)

Array = np.ndarray
RESIDUAL = "residual"

__all__ = [
    "DeconvolutionResult", "align_spots", "project_spot", "project_columns",
    "deconvolve_topics", "deconvolve_spots", "RESIDUAL",
]


def _nnls(A: Array, b: Array, maxiter: Optional[int] = None) -> Tuple[Array, float, bool]:
    """NNLS with a bounded least-squares fallback when the active-set solver gives up."""
    try:
        x, rnorm = nnls(A, b, maxiter=maxiter)
        return x, float(rnorm), True
    except RuntimeError as exc:
        logger.warning("NNLS did not converge (%s); using bounded least squares", exc)
        warnings.warn(
            f"NNLS exceeded its iteration budget ({exc}); using the best bounded least-squares iterate.",
            NNLSNonConvergence,
            stacklevel=3,
        )
    res = lsq_linear(A, b, bounds=(0.0, np.inf))
    x = np.maximum(res.x, 0.0)
    return x, float(np.linalg.norm(A @ x - b)), False


def _check_min_cont(min_cont: float) -> None:
    if not 0.0 <= min_cont < 1.0:
        raise InvalidConfig(f"min_cont must lie in [0, 1), got {min_cont}")


def align_spots(spots: pd.DataFrame, genes: Sequence[str]) -> pd.DataFrame:
    """
    Restrict a genes x spots table to ``genes`` in that order.

    Trained genes missing from the table become zero rows; extra rows are dropped.
    """
    if spots.index.has_duplicates:
        raise InvalidConfig("spot table has duplicated gene names")
    return spots.reindex(index=list(genes), fill_value=0.0)


def project_spot(v: Array, basis: Array, *, transf: str = "none",
                 maxiter: Optional[int] = None) -> Tuple[Array, bool]:
    """
    Map one aligned spot vector into topic space.

    Returns the topic vector h and whether NNLS converged. Raises
    :class:`EmptyOverlapError` when the spot has no counts on the basis genes.
    """
    v = np.asarray(v, dtype=float)
    if v.shape != (basis.shape[0],):
        raise ValueError(f"spot vector has shape {v.shape}, expected ({basis.shape[0]},)")
    if not np.any(v > 0):
        raise EmptyOverlapError("spot has no expression on the trained gene set")
    h, _, converged = _nnls(basis, scale_columns(v, transf), maxiter=maxiter)
    return h, converged


def project_columns(V: Array, basis: Array, maxiter: Optional[int] = None) -> Tuple[Array, Array]:
    """Column-wise NNLS projection; all-zero columns project to zero."""
    k = basis.shape[1]
    H = np.zeros((k, V.shape[1]))
    converged = np.ones(V.shape[1], dtype=bool)
    for j in range(V.shape[1]):
        H[:, j], _, converged[j] = _nnls(basis, V[:, j], maxiter=maxiter)
    return H, converged


def deconvolve_topics(h: Array, profiles: Array, min_cont: float = 0.0,
                      maxiter: Optional[int] = None) -> Tuple[Array, float, bool]:
    """
    Explain a topic vector with cell-type topic profiles.

    Parameters
    ----------
    h : array, shape (k,)
    profiles : array, shape (n_cell_types, k)
    min_cont : float in [0, 1)
        Proportions below this value are zeroed and the row renormalized.

    Returns
    -------
    proportions : array, shape (n_cell_types,)
    residual : float
    converged : bool
    """
    _check_min_cont(min_cont)
    h = np.asarray(h, dtype=float)
    profiles = np.asarray(profiles, dtype=float)
    total_ss = float(h @ h)
    if total_ss <= 0.0:
        raise EmptyOverlapError("spot projects onto an all-zero topic vector")

    w, rnorm, converged = _nnls(profiles.T, h, maxiter=maxiter)
    residual = min(rnorm ** 2 / total_ss, 1.0)
    wsum = w.sum()
    if wsum <= 0.0:
        return np.zeros_like(w), 1.0, converged
    props = w / wsum * (1.0 - residual)

    low = props < min_cont
    if np.any(low):
        props[low] = 0.0
        total = props.sum() + residual
        if total <= 0.0:
            return props, 1.0, converged
        props /= total
        residual /= total
    return props, residual, converged


@dataclass
class DeconvolutionResult:
    """Spots x (cell types + residual) proportions with per-spot status."""
    proportions: pd.DataFrame
    valid: pd.Series
    converged: pd.Series
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def cell_type_proportions(self) -> pd.DataFrame:
        return self.proportions.drop(columns=RESIDUAL)


def deconvolve_spots(model, spots, *, min_cont: float = 0.0, n_jobs: int = 1,
                     genes: Optional[Sequence[str]] = None,
                     maxiter: Optional[int] = None) -> DeconvolutionResult:
    """
    Deconvolve every spot of a genes x spots table with a trained model.

    Parameters
    ----------
    model : TrainedModel
    spots : pandas.DataFrame or array
        Genes x spots counts. A bare array needs ``genes`` naming its rows.
    min_cont : float in [0, 1)
    n_jobs : int
        Worker threads; spots are independent tasks writing disjoint rows.

    Negative counts raise :class:`NegativeInputError` for the whole batch. A spot
    without expression on the trained genes is recorded as an invalid (NaN) row.
    """
    _check_min_cont(min_cont)
    if not isinstance(spots, pd.DataFrame):
        arr = np.asarray(spots)
        if genes is None or len(genes) != arr.shape[0]:
            raise InvalidConfig("a bare spot array needs one gene name per row")
        spots = pd.DataFrame(arr, index=list(genes))
    check_no_negatives(spots, what="spot counts")
    aligned = align_spots(spots, model.genes)
    X = check_counts(aligned.to_numpy(), what="spot counts")

    basis = model.projection_basis
    profiles = np.asarray(model.profiles)
    n_spots = X.shape[1]
    n_types = len(model.cell_types)
    out = np.full((n_spots, n_types + 1), np.nan)
    conv = np.zeros(n_spots, dtype=bool)

    def _run_spot(i):
        try:
            h, ok1 = project_spot(X[:, i], basis, transf=model.transf, maxiter=maxiter)
            props, residual, ok2 = deconvolve_topics(h, profiles, min_cont, maxiter=maxiter)
        except EmptyOverlapError as exc:
            return i, str(exc)
        out[i, :n_types] = props
        out[i, n_types] = residual
        conv[i] = ok1 and ok2
        return i, None

    statuses = Parallel(n_jobs=n_jobs, prefer="threads")(
        delayed(_run_spot)(i) for i in range(n_spots)
    )

    spot_ids = [str(s) for s in spots.columns]
    errors = {spot_ids[i]: msg for i, msg in statuses if msg is not None}
    if errors:
        logger.warning("%d of %d spots could not be deconvolved", len(errors), n_spots)

    columns = list(model.cell_types) + [RESIDUAL]
    index = pd.Index(spots.columns)
    valid = pd.Series(~np.isnan(out).any(axis=1), index=index, name="valid")
    return DeconvolutionResult(
        proportions=pd.DataFrame(out, index=index, columns=columns),
        valid=valid,
        converged=pd.Series(conv, index=index, name="converged"),
        errors=errors,
    )
