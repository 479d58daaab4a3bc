"""Global optimization of black-box functions over box-constrained domains.

Finds the global maximum or minimum of f(x) over a box in which some
dimensions may be restricted to integers, within an evaluation budget
and/or a wall-clock budget, to an accuracy epsilon.

Example:
    >>> import math
    >>> result = find_max_global(lambda x: math.sin(x[0]), [[-3, 3]], {"max_iterations": 20})
    >>> round(result.x[0], 3), round(result.y, 6)
    (1.571, 1.0)

References:
    - dlib find_max_global: http://dlib.net/optimization.html#find_max_global

LEVEL 8 of the 10-level architecture.
"""

import logging
from typing import Any, Callable, Mapping, Optional, Union

import torch

from lipoTensor.core.device import get_device
from lipoTensor.core.types import Direction, OptimizerOptions, OptimizationResult
from lipoTensor.optimization.driver import OptimizationDriver
from lipoTensor.optimization.objective import ObjectiveAdapter
from lipoTensor.optimization.result import package_result
from lipoTensor.optimization.search import GlobalSearch, get_search, resolve_backend
from lipoTensor.optimization.validation import validate_request

logger = logging.getLogger(__name__)

OptionsLike = Optional[Union[Mapping[str, Any], OptimizerOptions]]


class GlobalOptimizer:
    """Global optimizer with a selectable search backend.

    Every call validates its request, runs a fresh backend instance
    through an OptimizationDriver, and packages the best observation.
    No state is shared between calls apart from the settings below and
    the record of the last run.

    Attributes:
        backend: Search backend ('lipo', 'random', 'thompson', or 'auto')
        verbose: Print progress information
        device: Device holding the search tensors
        settings: Extra keyword settings passed to the backend
        last_driver: Driver of the most recent call, for inspection
    """

    def __init__(
        self,
        backend: str = "auto",
        verbose: bool = False,
        device: Optional[Union[str, torch.device]] = None,
        **settings,
    ):
        """Initialize the optimizer.

        Args:
            backend: Search backend ('lipo', 'random', 'thompson', or 'auto')
                    'auto' selects 'lipo'
            verbose: Print progress information
            device: Device for the search tensors (CPU by default)
            **settings: Backend settings, e.g. num_random_samples for 'lipo'

        Raises:
            InvalidOptions: If the backend name is unknown
            ImportError: If the thompson backend is requested without scikit-learn
        """
        self.backend = resolve_backend(backend)
        self.verbose = verbose
        self.device = get_device(device)
        self.settings = settings
        self.last_driver: Optional[OptimizationDriver] = None

    def _get_backend(self, seed: int) -> GlobalSearch:
        return get_search(self.backend, seed=seed, device=self.device, **self.settings)

    def optimize(
        self,
        objective: Callable,
        domain: Any,
        options: OptionsLike = None,
        direction: Direction = Direction.MAXIMIZE,
    ) -> OptimizationResult:
        """Run one optimization call.

        Args:
            objective: Function f(x) -> float; x is a read-only float64 numpy array
            domain: Sequence of [lower, upper] pairs, bounds objects
                    {"bounds": [lower, upper], "is_integer": bool}, or DomainVariables
            options: Mapping or OptimizerOptions with max_iterations,
                    max_runtime_ms, epsilon and seed
            direction: Direction.MAXIMIZE or Direction.MINIMIZE

        Returns:
            OptimizationResult with the best point and its objective value

        Raises:
            InvalidObjective: If objective is not callable
            InvalidDomain: If the domain is malformed
            InvalidOptions: If the options are malformed
            ObjectiveError: If the objective raises or returns a non-finite value
            SearchError: If the search backend fails
        """
        objective, normalized, resolved = validate_request(
            objective, domain, options, device=self.device
        )
        adapter = ObjectiveAdapter(objective, direction)
        driver = OptimizationDriver(self._get_backend(resolved.seed), resolved, verbose=self.verbose)
        self.last_driver = driver

        best, reason = driver.run(adapter, normalized)
        return package_result(
            best, normalized, direction, reason, driver.n_evaluations, driver.elapsed_ms
        )

    def maximize(self, objective: Callable, domain: Any, options: OptionsLike = None) -> OptimizationResult:
        """Find the global maximum of objective over domain."""
        return self.optimize(objective, domain, options, Direction.MAXIMIZE)

    def minimize(self, objective: Callable, domain: Any, options: OptionsLike = None) -> OptimizationResult:
        """Find the global minimum of objective over domain."""
        return self.optimize(objective, domain, options, Direction.MINIMIZE)


def find_max_global(
    objective: Callable,
    domain: Any,
    options: OptionsLike = None,
    *,
    backend: str = "lipo",
    verbose: bool = False,
    device: Optional[Union[str, torch.device]] = None,
) -> OptimizationResult:
    """Find the global maximum of a black-box function.

    Args:
        objective: Function f(x) -> float; x is a read-only float64 numpy array
        domain: Sequence of [lower, upper] pairs or bounds objects
                {"bounds": [lower, upper], "is_integer": bool}
        options: max_iterations, max_runtime_ms, epsilon, seed
        backend: Search backend ('lipo', 'random', 'thompson', or 'auto')
        verbose: Print progress information
        device: Device for the search tensors

    Returns:
        OptimizationResult (x, y, n_evaluations, termination, elapsed_ms)

    Example:
        >>> domain = [{"bounds": [1, 3], "is_integer": True}, [0.0, 1.0]]
        >>> result = find_max_global(lambda x: x[0] - x[1], domain, {"max_iterations": 30})
        >>> result.x[0]
        3.0
    """
    optimizer = GlobalOptimizer(backend=backend, verbose=verbose, device=device)
    return optimizer.maximize(objective, domain, options)


def find_min_global(
    objective: Callable,
    domain: Any,
    options: OptionsLike = None,
    *,
    backend: str = "lipo",
    verbose: bool = False,
    device: Optional[Union[str, torch.device]] = None,
) -> OptimizationResult:
    """Find the global minimum of a black-box function.

    Same arguments as find_max_global; the returned y is the minimum value
    of the objective itself (never negated).
    """
    optimizer = GlobalOptimizer(backend=backend, verbose=verbose, device=device)
    return optimizer.minimize(objective, domain, options)


__all__ = [
    "GlobalOptimizer",
    "find_max_global",
    "find_min_global",
]
