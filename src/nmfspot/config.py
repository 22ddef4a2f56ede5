# SPDX-License-Identifier: BSD-3-Clause
"""Configuration for training and deconvolution."""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from numbers import Integral
from typing import Any, Literal, Mapping, Optional

from ._errors import InvalidConfig
from ._scaling import TRANSFORMS
from ._solver import INITS, METHODS

_TRANSF = Literal["uv", "none"]
_METHOD = Literal["standard", "nonsmooth"]
_INIT = Literal["random", "informed"]


@dataclass(frozen=True)
class DeconvolutionConfig:
    cl_n: int = 100                  # max cells per cell type
    hvg: int = 0                     # highly variable genes added to markers
    ntop: Optional[int] = None       # marker genes per cluster, None = all
    transf: _TRANSF = "uv"
    method: _METHOD = "nonsmooth"
    min_cont: float = 0.0
    theta: float = 0.5               # nonsmooth smoothing strength
    max_iter: int = 1000
    tol: float = 1e-6
    init: _INIT = "random"
    n_init: int = 1
    cluster_field: str = "cluster"

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        if not isinstance(self.cl_n, Integral) or self.cl_n <= 0:
            raise InvalidConfig(f"cl_n must be a positive integer, got {self.cl_n!r}")
        if not isinstance(self.hvg, Integral) or self.hvg < 0:
            raise InvalidConfig(f"hvg must be a non-negative integer, got {self.hvg!r}")
        if self.ntop is not None and (not isinstance(self.ntop, Integral) or self.ntop <= 0):
            raise InvalidConfig(f"ntop must be a positive integer or None, got {self.ntop!r}")
        if self.transf not in TRANSFORMS:
            raise InvalidConfig(f"transf must be one of {sorted(TRANSFORMS)}, got {self.transf!r}")
        if self.method not in METHODS:
            raise InvalidConfig(f"method must be one of {METHODS}, got {self.method!r}")
        if self.init not in INITS:
            raise InvalidConfig(f"init must be one of {INITS}, got {self.init!r}")
        if not 0.0 <= self.min_cont < 1.0:
            raise InvalidConfig(f"min_cont must lie in [0, 1), got {self.min_cont!r}")
        if not 0.0 < self.theta < 1.0:
            raise InvalidConfig(f"theta must lie in (0, 1), got {self.theta!r}")
        if self.max_iter <= 0 or self.n_init <= 0:
            raise InvalidConfig("max_iter and n_init must be positive")
        if self.tol < 0:
            raise InvalidConfig(f"tol must be >= 0, got {self.tol!r}")
        if not self.cluster_field:
            raise InvalidConfig("cluster_field must be a non-empty column name")

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "DeconvolutionConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise InvalidConfig(f"unknown configuration options: {sorted(unknown)}")
        return cls(**options)

    def to_dict(self) -> dict:
        return asdict(self)
