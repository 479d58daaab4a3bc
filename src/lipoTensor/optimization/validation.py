"""Request validation.

Every check runs before the objective is evaluated even once, in a fixed
order where the first failure wins:

1. objective is callable            -> InvalidObjective
2. domain is well formed            -> InvalidDomain
3. options have valid types/ranges  -> InvalidOptions

LEVEL 3 module.
"""

from typing import Any, Callable, Optional, Tuple, Union

import torch

from lipoTensor.core.types import Domain, OptimizerOptions
from lipoTensor.optimization.domain import normalize_domain
from lipoTensor.optimization.objective import check_objective
from lipoTensor.optimization.options import resolve_options


def validate_request(
    objective: Any,
    domain: Any,
    options: Any = None,
    device: Optional[Union[str, torch.device]] = None,
) -> Tuple[Callable, Domain, OptimizerOptions]:
    """Validate an optimization request.

    Args:
        objective: The caller's objective
        domain: Domain specification (see normalize_domain)
        options: Options (see resolve_options)
        device: Device for the domain tensors

    Returns:
        (objective, domain, options) tuple, normalized

    Raises:
        InvalidObjective: If objective is not callable
        InvalidDomain: If the domain is malformed
        InvalidOptions: If the options are malformed
    """
    objective = check_objective(objective)
    normalized = normalize_domain(domain, device=device)
    resolved = resolve_options(options)
    return objective, normalized, resolved


__all__ = ["validate_request"]
