# SPDX-License-Identifier: BSD-3-Clause
import logging

import numpy as np
from sklearn.utils import check_array
from sklearn.utils.validation import check_non_negative

from ._errors import NegativeInputError


def get_logger(logger_name="nmfspot", level=logging.INFO):
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("[{asctime}] {levelname:.5s} | {name} - {message}", style="{")
        )
        logger.addHandler(handler)
    return logger


def check_is_fitted(estimator, attributes):
    """Check if estimator is fitted by verifying attributes exist."""
    for attr in attributes:
        if getattr(estimator, attr, None) is None:
            raise AttributeError(f"This {type(estimator).__name__} instance is not fitted yet.")


def check_counts(X, what="counts", ensure_2d=True):
    """
    Return X as a dense float array, rejecting NaN/inf and negative entries.

    Sparse inputs are densified; the caller's object is never modified.
    """
    X = check_array(X, accept_sparse=True, dtype=float, ensure_2d=ensure_2d,
                    ensure_all_finite=True, copy=True)
    if hasattr(X, "toarray"):
        X = X.toarray()
    if X.size and X.min() < 0:
        raise NegativeInputError(f"{what} contain negative entries (min={X.min():.4g}).")
    return X


def check_no_negatives(X, what="counts"):
    """Reject negative entries of an array, sparse matrix or DataFrame without copying it."""
    values = X.to_numpy() if hasattr(X, "to_numpy") else X
    if not np.prod(values.shape):
        return
    try:
        check_non_negative(values, whom=what)
    except ValueError as exc:
        raise NegativeInputError(f"{what} contain negative entries.") from exc


def as_generator(rng):
    """Turn an int seed or an existing Generator into a Generator."""
    if isinstance(rng, np.random.Generator):
        return rng
    if rng is None:
        raise TypeError("an explicit random generator or integer seed is required")
    return np.random.default_rng(rng)
