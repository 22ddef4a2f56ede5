# SPDX-License-Identifier: BSD-3-Clause
"""Per-column (per-cell / per-spot) transforms applied before factorization."""
from __future__ import annotations

from typing import Callable, Dict, Literal

import numpy as np

from ._errors import InvalidConfig

Array = np.ndarray
Transform = Literal["none", "uv"]

__all__ = ["scale_columns", "TRANSFORMS"]


def _identity(X: Array) -> Array:
    return X.copy()


def _unit_variance(X: Array) -> Array:
    """Divide every column by its sample standard deviation, no centering."""
    Y = X.copy()
    if Y.shape[0] < 2:
        return Y
    sd = Y.std(axis=0, ddof=1)
    ok = np.isfinite(sd) & (sd > 0.0)
    Y[:, ok] /= sd[ok]
    return Y


TRANSFORMS: Dict[str, Callable[[Array], Array]] = {
    "none": _identity,
    "uv": _unit_variance,
}


def scale_columns(X: Array, transf: str = "uv") -> Array:
    """
    Apply the named transform column-wise and return a new array.

    A 1D input is treated as a single column. Scale factors are computed from
    the array itself, so training cells and inference spots are handled the
    same way without carrying statistics between them.
    """
    try:
        fn = TRANSFORMS[transf]
    except KeyError:
        raise InvalidConfig(f"transf must be one of {sorted(TRANSFORMS)}, got {transf!r}") from None
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        return fn(X[:, np.newaxis])[:, 0]
    return fn(X)
