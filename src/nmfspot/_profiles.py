# SPDX-License-Identifier: BSD-3-Clause
"""Cell-type topic profiles: mean topic usage of every cell type."""
from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from ._errors import InvalidConfig

__all__ = ["topic_profiles"]


def topic_profiles(H: np.ndarray, labels, cell_types: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Average the columns of H (topics x cells) per cell type.

    Rows follow ``cell_types`` when given, sorted label order otherwise.
    Profiles are raw mean topic usages; no normalization is applied.
    """
    H = np.asarray(H, dtype=float)
    labels = np.asarray(labels)
    if labels.shape != (H.shape[1],):
        raise InvalidConfig(f"expected {H.shape[1]} labels, got {labels.shape[0]}")
    if cell_types is None:
        cell_types = sorted(pd.unique(labels))
    rows = []
    for ct in cell_types:
        cols = labels == ct
        if not np.any(cols):
            raise InvalidConfig(f"cell type {ct!r} has no cells in the training set")
        rows.append(H[:, cols].mean(axis=1))
    topics = [f"topic_{i + 1}" for i in range(H.shape[0])]
    return pd.DataFrame(np.vstack(rows), index=pd.Index(list(cell_types), name="cell_type"), columns=topics)
