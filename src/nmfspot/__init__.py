# SPDX-License-Identifier: BSD-3-Clause
"""
nmfspot: cell-type deconvolution of spatial spots with topic NMF.

A reference single-cell atlas is factorized into gene x topic signatures;
every spot is then projected into topic space and explained by the mean topic
profile of each cell type with non-negative least squares.
"""

from ._deconvolution import (
    DeconvolutionResult, align_spots, deconvolve_spots, deconvolve_topics, project_spot,
)
from ._downsample import DownsampledReference, downsample_reference, markers_from_frame
from ._errors import (
    ConvergenceWarning, EmptyOverlapError, InvalidConfig, NegativeInputError,
    NmfSpotError, NNLSNonConvergence,
)
from ._profiles import topic_profiles
from ._scaling import scale_columns
from .config import DeconvolutionConfig
from .estimator import TopicNMF
from .model import ReferenceDataset, TrainedModel, train_model

__version__ = "0.1.0"

__all__ = [
    "TopicNMF",
    "ReferenceDataset",
    "TrainedModel",
    "DeconvolutionConfig",
    "DeconvolutionResult",
    "DownsampledReference",
    "train_model",
    "deconvolve_spots",
    "downsample_reference",
    "markers_from_frame",
    "scale_columns",
    "topic_profiles",
    "align_spots",
    "project_spot",
    "deconvolve_topics",
    "NmfSpotError",
    "InvalidConfig",
    "NegativeInputError",
    "EmptyOverlapError",
    "ConvergenceWarning",
    "NNLSNonConvergence",
]
