"""Global search backends.

Every backend implements the GlobalSearch protocol (initialize,
propose_next, report_result, has_converged) and always maximizes.

Backends:
1. lipo (default) - MaxLIPO upper-bound sampling interleaved with a
   quadratic trust region
2. random - uniform random search baseline
3. thompson - Gaussian-process Thompson sampling (needs scikit-learn)

References:
    - dlib find_max_global: http://dlib.net/optimization.html#find_max_global

Dependencies:
    - torch>=2.0
    - scikit-learn (optional, thompson backend only)

LEVEL 7 of the 10-level architecture.
"""

from typing import Optional, Union

import torch

from lipoTensor.core.errors import InvalidOptions
from lipoTensor.optimization.search.base import GlobalSearch
from lipoTensor.optimization.search.lipo_backend import MaxLipoSearch
from lipoTensor.optimization.search.random_backend import RandomSearch
from lipoTensor.optimization.search.thompson_backend import ThompsonSearch, require_sklearn
from lipoTensor.optimization.search.upper_bound import LipschitzUpperBound
from lipoTensor.optimization.search.trust_region import (
    QuadraticModel,
    fit_quadratic_model,
    solve_trust_region_subproblem,
)

BACKENDS = {
    "lipo": MaxLipoSearch,
    "random": RandomSearch,
    "thompson": ThompsonSearch,
}


def resolve_backend(name: str) -> str:
    """Resolve a backend name, mapping 'auto' to 'lipo'.

    Raises:
        InvalidOptions: If the backend name is unknown
        ImportError: If the backend's optional dependency is missing
    """
    if name == "auto":
        return "lipo"
    if not isinstance(name, str) or name not in BACKENDS:
        raise InvalidOptions(
            f"Unknown backend: {name!r}. Use 'lipo', 'random', 'thompson', or 'auto'.",
            option="backend",
        )
    if name == "thompson":
        require_sklearn()
    return name


def get_search(
    name: str = "auto",
    seed: int = 0,
    device: Optional[Union[str, torch.device]] = None,
    **settings,
) -> GlobalSearch:
    """Create a search backend by name.

    Args:
        name: 'lipo', 'random', 'thompson', or 'auto' (same as 'lipo')
        seed: Seed for the backend's random generators
        device: Device for the search tensors
        **settings: Backend-specific keyword settings

    Returns:
        Fresh, uninitialized backend

    Raises:
        InvalidOptions: If the backend name is unknown
        ImportError: If the backend's optional dependency is missing
    """
    return BACKENDS[resolve_backend(name)](seed=seed, device=device, **settings)


__all__ = [
    "BACKENDS",
    "get_search",
    "resolve_backend",
    "GlobalSearch",
    "MaxLipoSearch",
    "RandomSearch",
    "ThompsonSearch",
    "LipschitzUpperBound",
    "QuadraticModel",
    "fit_quadratic_model",
    "solve_trust_region_subproblem",
]
