# SPDX-License-Identifier: BSD-3-Clause
"""Exceptions and warnings raised by nmfspot."""
from __future__ import annotations

from sklearn.exceptions import ConvergenceWarning as _SKConvergenceWarning

__all__ = [
    "NmfSpotError", "InvalidConfig", "NegativeInputError",
    "EmptyOverlapError", "ConvergenceWarning", "NNLSNonConvergence",
]


class NmfSpotError(Exception):
    """Base class for all nmfspot errors."""


class InvalidConfig(NmfSpotError, ValueError):
    """Bad parameter value, missing label field or empty gene selection."""


class NegativeInputError(NmfSpotError, ValueError):
    """A count matrix handed to training or inference holds negative entries."""


class EmptyOverlapError(NmfSpotError, ValueError):
    """A spot carries no expression on the genes the model was trained on."""


class ConvergenceWarning(_SKConvergenceWarning):
    """The NMF trainer stopped at max_iter before reaching tol."""


class NNLSNonConvergence(ConvergenceWarning):
    """The NNLS solver ran out of iterations; the best iterate is used."""
