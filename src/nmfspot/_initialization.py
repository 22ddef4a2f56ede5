# -*- coding: utf-8 -*-
# SPDX-License-Identifier: BSD-3-Clause
"""Initialization helpers for the topic NMF."""
from __future__ import annotations

from typing import Mapping, Sequence

import numpy as np

__all__ = ["random_init", "informed_init"]


def random_init(V: np.ndarray, k: int, rng: np.random.Generator, eps: float = 1e-9):
    """
    Uniform random non-negative start, scaled so W @ H matches the mean of V.

    W is drawn before H so a given generator state always yields the same pair.
    """
    m, n = V.shape
    avg = np.sqrt(max(float(V.mean()), eps) / k)
    W = avg * rng.random((m, k))
    H = avg * rng.random((k, n))
    return np.maximum(W, eps), np.maximum(H, eps)


def informed_init(genes: Sequence[str], labels: np.ndarray, cell_types: Sequence[str],
                  markers: Mapping[str, Sequence[str]], floor: float = 1e-5):
    """
    Marker-seeded start: topic j belongs to cell type ``cell_types[j]``.

    W[g, j] = 1 for marker genes of that type and H[j, c] = 1 for its cells;
    every other entry is ``floor`` so multiplicative updates can still move it.
    """
    gene_pos = {g: i for i, g in enumerate(genes)}
    k = len(cell_types)
    W = np.full((len(genes), k), floor)
    H = np.full((k, len(labels)), floor)
    for j, ct in enumerate(cell_types):
        rows = [gene_pos[g] for g in markers.get(ct, ()) if g in gene_pos]
        W[rows, j] = 1.0
        H[j, np.asarray(labels) == ct] = 1.0
    return W, H
