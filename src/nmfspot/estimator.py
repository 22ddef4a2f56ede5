# SPDX-License-Identifier: BSD-3-Clause
"""
TopicNMF estimator: non-negative factorization of a genes x cells matrix
into a genes x topics basis W and a topics x cells coefficient matrix H.

Two variants are available:

- "standard":  V ~ W H, Lee & Seung (2001) multiplicative updates.
- "nonsmooth": V ~ W S H with S = (1-theta) I + (theta/k) J, after
  Pascual-Montano et al. (2006). The smoothing matrix pushes the sparseness
  into W and H, giving more distinctive topic loadings.

References
----------
- D. Lee and H. S. Seung (2001).
  "Algorithms for non-negative matrix factorization." NIPS 13.
- A. Pascual-Montano, J. M. Carazo, K. Kochi, D. Lehmann, R. D. Pascual-Marqui (2006).
  "Nonsmooth nonnegative matrix factorization (nsNMF)." IEEE TPAMI 28(3).
"""
from typing import Optional

import numpy as np
from sklearn.base import BaseEstimator, TransformerMixin

from ._deconvolution import project_columns
from ._objective import reconstruct, relative_error, smoothing_matrix
from ._solver import nmf_solver
from ._utils import as_generator, check_counts, check_is_fitted


class TopicNMF(BaseEstimator, TransformerMixin):
    """
    Topic NMF with a scikit-learn style API.

    Parameters
    ----------
    n_components : int
    method : {"standard", "nonsmooth"}, default="nonsmooth"
    theta : float, default=0.5
        Smoothing strength of the nonsmooth variant, in (0, 1).
    max_iter : int, default=1000
    tol : float, default=1e-6
        Relative loss decrease below which fitting stops.
    random_state : int or numpy.random.Generator
        Required; there is no hidden global seed.
    n_init : int, default=1
        Random restarts; the run with the lowest final loss is kept.
        Ignored when W_init and H_init are given.
    W_init, H_init : array or None
        Explicit starting point (e.g. a marker-informed seed).
    verbose : int, default=0

    Orientation: rows of the fitted matrix are genes and columns are cells,
    so ``W_`` is (genes, k) and ``components_`` is (k, cells). ``transform``
    maps new columns (spots) into topic space with W held fixed.
    """

    def __init__(
        self,
        n_components: int = 10,
        method: str = "nonsmooth",
        theta: float = 0.5,
        max_iter: int = 1000,
        tol: float = 1e-6,
        random_state=None,
        n_init: int = 1,
        W_init: Optional[np.ndarray] = None,
        H_init: Optional[np.ndarray] = None,
        verbose: int = 0,
    ):
        self.n_components = n_components
        self.method = method
        self.theta = theta
        self.max_iter = max_iter
        self.tol = tol
        self.random_state = random_state
        self.n_init = n_init
        self.W_init = W_init
        self.H_init = H_init
        self.verbose = verbose

    # ---- Internal helpers ----------------------------------------------------

    def _smoothing(self):
        if self.method == "nonsmooth":
            return smoothing_matrix(int(self.n_components), self.theta)
        return None

    def _fit_single(self, V, rng, W_init=None, H_init=None):
        return nmf_solver(
            V, self.n_components,
            rng=rng, method=self.method, theta=self.theta,
            max_iter=self.max_iter, tol=self.tol,
            W_init=W_init, H_init=H_init, verbose=self.verbose,
        )

    # ---- sklearn API ---------------------------------------------------------

    def fit(self, X, y=None):
        V = check_counts(X, what="training matrix")
        rng = as_generator(self.random_state)

        if self.W_init is not None and self.H_init is not None:
            W, H, losses, elapsed, n_iter, converged = self._fit_single(V, rng, self.W_init, self.H_init)
        else:
            best = None
            elapsed = 0.0
            for _ in range(max(1, int(self.n_init))):
                run = self._fit_single(V, rng)
                elapsed += run[3]
                if best is None or run[2][-1] < best[2][-1]:
                    best = run
            W, H, losses, _, n_iter, converged = best

        self.W_ = W                       # (m, k)
        self.components_ = H              # (k, n)
        self.n_iter_ = n_iter
        self.converged_ = converged
        self.training_time_ = elapsed
        self.loss_curve_ = losses
        self.reconstruction_err_ = losses[-1] if losses else np.nan
        return self

    def fit_transform(self, X, y=None):
        return self.fit(X).components_

    @property
    def basis_(self):
        """W S for the nonsmooth variant, W otherwise: the design used for projection."""
        check_is_fitted(self, ["W_"])
        S = self._smoothing()
        return self.W_ if S is None else self.W_ @ S

    def transform(self, X):
        """Project the columns of X (genes x samples) onto the basis by NNLS."""
        check_is_fitted(self, ["W_", "components_"])
        V = check_counts(X, what="matrix to transform")
        if V.shape[0] != self.W_.shape[0]:
            raise ValueError(f"X has {V.shape[0]} rows, model was fitted on {self.W_.shape[0]} genes")
        H, _ = project_columns(V, self.basis_)
        return H

    def inverse_transform(self, H):
        check_is_fitted(self, ["W_"])
        return reconstruct(self.W_, np.asarray(H, dtype=float), self._smoothing())

    def score(self, X, y=None):
        """Negative relative reconstruction error of X (higher is better)."""
        check_is_fitted(self, ["W_", "components_"])
        V = check_counts(X, what="matrix to score")
        H = self.transform(V)
        return -relative_error(V, self.W_, H, self._smoothing())
