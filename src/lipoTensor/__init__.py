"""
lipoTensor: PyTorch-based global optimization of black-box functions.

Finds the global maximum or minimum of an expensive function over a
box-constrained, optionally mixed-integer domain, using MaxLIPO upper
bounds interleaved with a quadratic trust region.
"""

import logging

from lipoTensor.core import (
    Direction,
    DomainVariable,
    GlobalOptimizationError,
    InvalidDomain,
    InvalidObjective,
    InvalidOptions,
    ObjectiveError,
    OptimizationResult,
    OptimizerOptions,
    SearchError,
    TerminationReason,
)
from lipoTensor.optimization import GlobalOptimizer, find_max_global, find_min_global

__version__ = "0.0.1"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "find_max_global",
    "find_min_global",
    "GlobalOptimizer",
    "Direction",
    "DomainVariable",
    "OptimizerOptions",
    "OptimizationResult",
    "TerminationReason",
    "GlobalOptimizationError",
    "InvalidObjective",
    "InvalidDomain",
    "InvalidOptions",
    "ObjectiveError",
    "SearchError",
]
