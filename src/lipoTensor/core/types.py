"""Type definitions for lipoTensor core module."""

import math
import numbers
from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple

import numpy as np
import torch

from lipoTensor.core.errors import InvalidOptions


def as_real(value: Any) -> Optional[float]:
    """Convert a scalar to a Python float, or return None if it is not real.

    Python and numpy ints and floats are accepted, as are zero-dimensional
    numeric numpy arrays and torch tensors. Booleans are rejected.

    Examples:
        >>> as_real(3), as_real(np.float32(0.5)), as_real(torch.tensor(2.0))
        (3.0, 0.5, 2.0)
        >>> as_real(True) is None, as_real("1") is None, as_real([1.0]) is None
        (True, True, True)
        >>> as_real(10 ** 400)
        inf
    """
    if isinstance(value, torch.Tensor):
        if value.dim() != 0 or value.dtype == torch.bool or value.is_complex():
            return None
        return float(value.item())
    if isinstance(value, np.ndarray):
        if value.ndim != 0 or value.dtype.kind not in "iuf":
            return None
        return float(value)
    if isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, numbers.Real):
        try:
            return float(value)
        except OverflowError:
            # Integers and fractions too large for a double
            return math.inf if value > 0 else -math.inf
    return None


def is_integer_number(value: Any) -> bool:
    """Check for a Python or numpy integer that is not a bool."""
    return isinstance(value, numbers.Integral) and not isinstance(value, (bool, np.bool_))


class Direction(Enum):
    """Optimization direction; the value is the sign applied to objective outputs."""

    MAXIMIZE = 1
    MINIMIZE = -1

    @property
    def sign(self) -> float:
        return float(self.value)


class TerminationReason(Enum):
    """Why the driver stopped requesting evaluations."""

    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"
    MAX_RUNTIME = "max_runtime"


@dataclass(frozen=True)
class DomainVariable:
    """
    One dimension of the search space.

    Attributes:
        lower: Lower bound (inclusive)
        upper: Upper bound (inclusive), strictly greater than lower
        is_integer: Restrict the dimension to integral values

    Examples:
        >>> DomainVariable(0.0, 3.5)
        DomainVariable(lower=0.0, upper=3.5, is_integer=False)
        >>> DomainVariable(1, 3, is_integer=True).as_dict()
        {'bounds': [1.0, 3.0], 'is_integer': True}
    """
    lower: float
    upper: float
    is_integer: bool = False

    def as_dict(self) -> Dict[str, Any]:
        """Convert to the bounds-object form accepted by the optimizer."""
        return {"bounds": [float(self.lower), float(self.upper)], "is_integer": self.is_integer}

    @classmethod
    def from_spec(cls, spec: Any, dimension: int = 0) -> "DomainVariable":
        """Create from a bounds pair or bounds object, validating it.

        Raises:
            InvalidDomain: If the element is malformed
        """
        from lipoTensor.optimization.domain import parse_domain_variable

        return parse_domain_variable(spec, dimension)

    @property
    def width(self) -> float:
        return float(self.upper) - float(self.lower)


@dataclass(frozen=True, eq=False)
class Domain:
    """
    Box-and-integrality representation of a search space.

    The N dimensions are stored as three aligned tensors rather than N
    DomainVariable records, so candidate generation and bound checks stay
    vectorized.

    Attributes:
        lower: Lower bounds, shape (N,), float64
        upper: Upper bounds, shape (N,), float64
        is_integer: Integrality flags, shape (N,), bool
    """
    lower: torch.Tensor
    upper: torch.Tensor
    is_integer: torch.Tensor

    @property
    def n_dim(self) -> int:
        return int(self.lower.shape[0])

    @property
    def widths(self) -> torch.Tensor:
        return self.upper - self.lower

    @property
    def device(self) -> torch.device:
        return self.lower.device

    def variables(self) -> List[DomainVariable]:
        """Unpack into one DomainVariable per dimension."""
        return [
            DomainVariable(float(lo), float(hi), bool(is_int))
            for lo, hi, is_int in zip(self.lower.tolist(), self.upper.tolist(), self.is_integer.tolist())
        ]

    def to(self, device: torch.device) -> "Domain":
        return Domain(self.lower.to(device), self.upper.to(device), self.is_integer.to(device))

    def contains(self, x: torch.Tensor) -> bool:
        """Check that x lies in the box and is integral on integer dimensions."""
        x = x.to(self.device, dtype=torch.float64)
        if x.shape != self.lower.shape or not bool(torch.isfinite(x).all()):
            return False
        if bool((x < self.lower).any()) or bool((x > self.upper).any()):
            return False
        ints = x[self.is_integer]
        return bool((ints == torch.round(ints)).all())

    def __repr__(self) -> str:
        return f"Domain(n_dim={self.n_dim}, variables={self.variables()})"


@dataclass(frozen=True)
class OptimizerOptions:
    """
    Budgets and accuracy for one optimization call.

    None is the explicit "unbounded" value for both budgets. When both are
    unbounded the search only stops once the backend reports convergence,
    which may never happen for continuous domains with epsilon = 0.

    Attributes:
        max_iterations: Maximum number of objective evaluations
        max_runtime_ms: Maximum wall-clock time in milliseconds
        epsilon: Accuracy to which the global optimum is sought
        seed: Seed for the search backend's random number generators

    Raises:
        InvalidOptions: If any field has the wrong type or range
    """
    max_iterations: Optional[int] = None
    max_runtime_ms: Optional[float] = None
    epsilon: float = 0.0
    seed: int = 0

    def __post_init__(self):
        if self.max_iterations is not None:
            if not is_integer_number(self.max_iterations):
                raise InvalidOptions(
                    f"max_iterations must be an integer, got {type(self.max_iterations).__name__}",
                    option="max_iterations",
                )
            if self.max_iterations <= 0:
                raise InvalidOptions(
                    f"max_iterations must be > 0, got {self.max_iterations}", option="max_iterations"
                )
            object.__setattr__(self, "max_iterations", int(self.max_iterations))

        if self.max_runtime_ms is not None:
            runtime = as_real(self.max_runtime_ms)
            if runtime is None:
                raise InvalidOptions(
                    f"max_runtime_ms must be a number, got {type(self.max_runtime_ms).__name__}",
                    option="max_runtime_ms",
                )
            if math.isnan(runtime) or runtime <= 0:
                raise InvalidOptions(
                    f"max_runtime_ms must be > 0, got {self.max_runtime_ms}", option="max_runtime_ms"
                )
            object.__setattr__(self, "max_runtime_ms", runtime)

        epsilon = as_real(self.epsilon)
        if epsilon is None:
            raise InvalidOptions(
                f"epsilon must be a number, got {type(self.epsilon).__name__}", option="epsilon"
            )
        if not math.isfinite(epsilon) or epsilon < 0:
            raise InvalidOptions(f"epsilon must be finite and >= 0, got {self.epsilon}", option="epsilon")
        object.__setattr__(self, "epsilon", epsilon)

        if not is_integer_number(self.seed) or self.seed < 0:
            raise InvalidOptions(f"seed must be a non-negative integer, got {self.seed!r}", option="seed")
        object.__setattr__(self, "seed", int(self.seed))

    @property
    def is_bounded(self) -> bool:
        """True if an evaluation or runtime budget ends the search."""
        return self.max_iterations is not None or (
            self.max_runtime_ms is not None and math.isfinite(self.max_runtime_ms)
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "max_iterations": self.max_iterations,
            "max_runtime_ms": self.max_runtime_ms,
            "epsilon": self.epsilon,
            "seed": self.seed,
        }


@dataclass(frozen=True)
class OptimizationResult:
    """
    Best point found by an optimization call.

    Attributes:
        x: The optimal point within the domain
        y: The objective value at x (in the caller's direction, never negated)
        n_evaluations: Number of objective evaluations performed
        termination: Why the search stopped
        elapsed_ms: Wall-clock duration of the search in milliseconds
    """
    x: Tuple[float, ...]
    y: float
    n_evaluations: int = 0
    termination: TerminationReason = TerminationReason.MAX_ITERATIONS
    elapsed_ms: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "x": list(self.x),
            "y": self.y,
            "n_evaluations": self.n_evaluations,
            "termination": self.termination.value,
            "elapsed_ms": self.elapsed_ms,
        }


__all__ = [
    "as_real",
    "is_integer_number",
    "Direction",
    "TerminationReason",
    "DomainVariable",
    "Domain",
    "OptimizerOptions",
    "OptimizationResult",
]
