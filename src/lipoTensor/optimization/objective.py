"""Objective adapter.

Wraps the caller's objective f(x) -> float so the driver can always
maximize: the adapter returns g(x) = sign * f(x), with sign = +1 for
maximization and -1 for minimization.

The objective receives a fresh read-only numpy float64 array of length N
per call, with integer dimensions already holding integral values.

LEVEL 2 module.
"""

import math
from typing import Any, Callable

import numpy as np
import torch

from lipoTensor.core.errors import InvalidObjective, ObjectiveError
from lipoTensor.core.types import Direction, as_real


def check_objective(objective: Any) -> Callable:
    """Raise InvalidObjective unless objective is callable."""
    if objective is None or not callable(objective):
        raise InvalidObjective(
            f"objective must be callable, got {type(objective).__name__}"
        )
    return objective


class ObjectiveAdapter:
    """Sign-flipping, validating wrapper around the caller's objective.

    Attributes:
        objective: The caller's objective
        direction: Direction of the optimization
        n_calls: Number of completed evaluations

    Example:
        >>> adapter = ObjectiveAdapter(lambda x: float(x[0] ** 2), Direction.MINIMIZE)
        >>> adapter(torch.tensor([3.0], dtype=torch.float64))
        -9.0
    """

    def __init__(self, objective: Callable, direction: Direction = Direction.MAXIMIZE):
        self.objective = check_objective(objective)
        self.direction = direction
        self.n_calls = 0

    def point_for(self, x: torch.Tensor) -> np.ndarray:
        """Read-only copy of x handed to the objective."""
        point = np.array(x.detach().cpu().numpy(), dtype=np.float64, copy=True).reshape(-1)
        point.setflags(write=False)
        return point

    def __call__(self, x: torch.Tensor) -> float:
        """Evaluate g(x) = sign * f(x).

        Raises:
            ObjectiveError: If the objective raises or returns a value that
                is not a finite real number
        """
        point = self.point_for(x)
        try:
            value = self.objective(point)
        except Exception as exc:
            raise ObjectiveError(
                f"Objective raised {type(exc).__name__} at {point.tolist()}: {exc}",
                point=point.tolist(),
            ) from exc

        y = as_real(value)
        if y is None:
            raise ObjectiveError(
                f"Objective must return a real number, got {type(value).__name__} "
                f"at {point.tolist()}",
                point=point.tolist(),
            )
        if not math.isfinite(y):
            raise ObjectiveError(
                f"Objective returned non-finite value {y} at {point.tolist()}",
                point=point.tolist(),
            )

        self.n_calls += 1
        return self.direction.sign * y


__all__ = ["check_objective", "ObjectiveAdapter"]
