"""Core module: value types, error kinds and device selection."""

from lipoTensor.core.device import get_device
from lipoTensor.core.errors import (
    GlobalOptimizationError,
    InvalidObjective,
    InvalidDomain,
    InvalidOptions,
    ObjectiveError,
    SearchError,
)
from lipoTensor.core.types import (
    Direction,
    TerminationReason,
    DomainVariable,
    Domain,
    OptimizerOptions,
    OptimizationResult,
)

__all__ = [
    "get_device",
    "GlobalOptimizationError",
    "InvalidObjective",
    "InvalidDomain",
    "InvalidOptions",
    "ObjectiveError",
    "SearchError",
    "Direction",
    "TerminationReason",
    "DomainVariable",
    "Domain",
    "OptimizerOptions",
    "OptimizationResult",
]
