# SPDX-License-Identifier: BSD-3-Clause
import logging
import time
import warnings
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from ._errors import ConvergenceWarning, InvalidConfig
from ._initialization import random_init
from ._objective import frobenius_loss, smoothing_matrix

logger = logging.getLogger(__name__)

METHODS = ("standard", "nonsmooth")
INITS = ("random", "informed")


def _validate_method(method: str, theta: float) -> None:
    if method not in METHODS:
        raise InvalidConfig(f"method must be one of {METHODS}, got {method!r}")
    if method == "nonsmooth" and not 0.0 < theta < 1.0:
        raise InvalidConfig(f"theta must lie in (0, 1) for the nonsmooth method, got {theta}")


def mu_update_standard(V: np.ndarray, W: np.ndarray, H: np.ndarray,
                       S: Optional[np.ndarray] = None, eps: float = 1e-12) -> Tuple[np.ndarray, np.ndarray]:
    """
    One Lee-Seung multiplicative step for ||V - W H||_F (H first, then W).

    Each half-step cannot increase the objective, and non-negative inputs
    stay non-negative.
    """
    H_new = H * (W.T @ V) / (W.T @ W @ H + eps)
    W_new = W * (V @ H_new.T) / (W @ (H_new @ H_new.T) + eps)
    return W_new, H_new


def mu_update_nonsmooth(V: np.ndarray, W: np.ndarray, H: np.ndarray,
                        S: np.ndarray, eps: float = 1e-12) -> Tuple[np.ndarray, np.ndarray]:
    """
    One multiplicative step for ||V - W S H||_F.

    For the H step W S is the fixed design; for the W step S H is. Both are
    Lee-Seung steps on a fixed linear factor, so the objective stays
    non-increasing.
    """
    WS = W @ S
    H_new = H * (WS.T @ V) / (WS.T @ WS @ H + eps)
    SH = S @ H_new
    W_new = W * (V @ SH.T) / (W @ (SH @ SH.T) + eps)
    return W_new, H_new


UPDATES: Dict[str, Callable[..., Tuple[np.ndarray, np.ndarray]]] = {
    "standard": mu_update_standard,
    "nonsmooth": mu_update_nonsmooth,
}


def nmf_solver(
    V: np.ndarray,
    n_components: int,
    *,
    rng: np.random.Generator,
    method: str = "nonsmooth",
    theta: float = 0.5,
    max_iter: int = 1000,
    tol: float = 1e-6,
    W_init: Optional[np.ndarray] = None,
    H_init: Optional[np.ndarray] = None,
    verbose: int = 0,
    eps: float = 1e-12,
) -> Tuple[np.ndarray, np.ndarray, List[float], float, int, bool]:
    """
    Multiplicative-update NMF supporting the standard and nonsmooth variants.

    Parameters
    ----------
    V : array-like, shape (m, n)
        Non-negative data matrix (genes x cells).
    n_components : int
        Number of topics k.
    rng : numpy.random.Generator
        Used for the random start when no explicit init is given.
    method : {"standard", "nonsmooth"}
        - "standard": minimize ||V - W H||_F
        - "nonsmooth": minimize ||V - W S H||_F, S = (1-theta) I + theta/k J
    tol : float
        Stop once the relative loss decrease falls below tol.

    Returns
    -------
    W : array-like, shape (m, k)
    H : array-like, shape (k, n)
    losses : list
        Frobenius loss after every iteration
    time_elapsed : float
    n_iter : int
    converged : bool
    """
    _validate_method(method, theta)
    if max_iter <= 0:
        raise InvalidConfig(f"max_iter must be positive, got {max_iter}")
    if tol < 0:
        raise InvalidConfig(f"tol must be >= 0, got {tol}")
    k = int(n_components)
    if k <= 0:
        raise InvalidConfig(f"n_components must be positive, got {n_components}")

    V = np.asarray(V, dtype=float)
    if W_init is None or H_init is None:
        W, H = random_init(V, k, rng)
    else:
        W = np.array(W_init, dtype=float)
        H = np.array(H_init, dtype=float)
        if W.shape != (V.shape[0], k) or H.shape != (k, V.shape[1]):
            raise InvalidConfig("W_init/H_init shapes do not match V and n_components")

    S = smoothing_matrix(k, theta) if method == "nonsmooth" else None
    update = UPDATES[method]

    start = time.perf_counter()
    losses: List[float] = []
    loss_prev = frobenius_loss(V, W, H, S)
    best = (W, H, loss_prev)
    converged = False

    for iteration in range(max_iter):
        W, H = update(V, W, H, S, eps=eps)
        loss = frobenius_loss(V, W, H, S)
        losses.append(loss)
        if loss <= best[2]:
            best = (W, H, loss)

        if verbose > 0 and iteration % 10 == 0:
            logger.info("Iter %4d: loss = %.6f", iteration, loss)

        rel_change = (loss_prev - loss) / loss_prev if loss_prev > 0 else 0.0
        if rel_change < tol:
            converged = True
            if verbose > 0:
                logger.info("Converged at iteration %d", iteration)
            break
        loss_prev = loss

    n_iter = len(losses)
    elapsed = time.perf_counter() - start
    if not converged:
        warnings.warn(
            f"NMF stopped after max_iter={max_iter} iterations without reaching tol={tol}; "
            "returning the best factorization found.",
            ConvergenceWarning,
            stacklevel=2,
        )
    W, H, _ = best
    return W, H, losses, elapsed, n_iter, converged
