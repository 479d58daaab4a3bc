"""Result packaging: undo the internal sign flip and build the public result."""

from typing import Tuple

import torch

from lipoTensor.core.types import Direction, Domain, OptimizationResult, TerminationReason
from lipoTensor.optimization.search.utils import snap_to_domain


def package_result(
    best: Tuple[torch.Tensor, float],
    domain: Domain,
    direction: Direction,
    reason: TerminationReason,
    n_evaluations: int,
    elapsed_ms: float,
) -> OptimizationResult:
    """Build the OptimizationResult for the best observation.

    Args:
        best: (x, g) with g the internally maximized value
        domain: The normalized domain
        direction: Direction of the optimization
        reason: Why the driver stopped
        n_evaluations: Number of objective evaluations
        elapsed_ms: Wall-clock duration in milliseconds

    Returns:
        OptimizationResult with y in the caller's direction
    """
    x, g = best
    x = snap_to_domain(
        x.to(domain.device, dtype=torch.float64), domain.lower, domain.upper, domain.is_integer
    )
    return OptimizationResult(
        x=tuple(float(v) for v in x.tolist()),
        y=direction.sign * float(g),
        n_evaluations=int(n_evaluations),
        termination=reason,
        elapsed_ms=float(elapsed_ms),
    )


__all__ = ["package_result"]
