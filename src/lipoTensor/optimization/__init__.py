"""Optimization module for global black-box optimization.

This module provides tools for:
- Domain normalization for box-constrained, mixed-integer domains
- Option resolution with evaluation and wall-clock budgets
- A sequential driver around pluggable global search backends
- find_max_global / find_min_global entry points

Backends:
1. lipo (default) - MaxLIPO + trust region
2. random - uniform random search
3. thompson - Gaussian-process Thompson sampling (needs scikit-learn)

LEVEL 8 of the 10-level architecture.
"""

from lipoTensor.optimization.domain import normalize_domain
from lipoTensor.optimization.options import resolve_options
from lipoTensor.optimization.objective import ObjectiveAdapter
from lipoTensor.optimization.driver import DriverState, OptimizationDriver
from lipoTensor.optimization.result import package_result
from lipoTensor.optimization.validation import validate_request
from lipoTensor.optimization.search import (
    GlobalSearch,
    MaxLipoSearch,
    RandomSearch,
    ThompsonSearch,
    get_search,
    resolve_backend,
)
from lipoTensor.optimization.global_optimizer import (
    GlobalOptimizer,
    find_max_global,
    find_min_global,
)

__all__ = [
    "normalize_domain",
    "resolve_options",
    "ObjectiveAdapter",
    "DriverState",
    "OptimizationDriver",
    "package_result",
    "validate_request",
    "GlobalSearch",
    "MaxLipoSearch",
    "RandomSearch",
    "ThompsonSearch",
    "get_search",
    "resolve_backend",
    "GlobalOptimizer",
    "find_max_global",
    "find_min_global",
]
