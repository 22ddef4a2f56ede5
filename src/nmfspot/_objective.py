# -*- coding: utf-8 -*-
# SPDX-License-Identifier: BSD-3-Clause
"""Objective utilities for the topic NMF."""
from __future__ import annotations
import numpy as np

__all__ = ["smoothing_matrix", "reconstruct", "frobenius_loss", "relative_error"]


def smoothing_matrix(k: int, theta: float) -> np.ndarray:
    """
    Nonsmooth NMF smoothing matrix S = (1-theta) I + (theta/k) J.

    theta = 0 gives the identity (standard NMF).
    """
    if not 0.0 <= theta < 1.0:
        raise ValueError(f"theta must lie in [0, 1), got {theta}")
    return (1.0 - theta) * np.eye(k) + (theta / k) * np.ones((k, k))


def reconstruct(W: np.ndarray, H: np.ndarray, S: np.ndarray | None = None) -> np.ndarray:
    if S is None:
        return W @ H
    return W @ (S @ H)


def frobenius_loss(V: np.ndarray, W: np.ndarray, H: np.ndarray, S: np.ndarray | None = None) -> float:
    """||V - W S H||_F."""
    return float(np.linalg.norm(V - reconstruct(W, H, S)))


def relative_error(V: np.ndarray, W: np.ndarray, H: np.ndarray, S: np.ndarray | None = None) -> float:
    """||V - W S H||_F / ||V||_F (0 for an all-zero V)."""
    denom = float(np.linalg.norm(V))
    if denom <= 0.0:
        return 0.0
    return frobenius_loss(V, W, H, S) / denom
