"""Error kinds raised by the global optimizer.

Validation errors (InvalidObjective, InvalidDomain, InvalidOptions) are
raised before the objective is evaluated even once. ObjectiveError and
SearchError abort a running optimization; no partial result is returned.

Each error also derives from the matching builtin exception so callers
can catch TypeError / ValueError / RuntimeError as usual.

LEVEL 1 utility module.
"""

from typing import Optional, Sequence


class GlobalOptimizationError(Exception):
    """Base class for every error raised by lipoTensor."""


class InvalidObjective(GlobalOptimizationError, TypeError):
    """The objective is not callable."""


class InvalidDomain(GlobalOptimizationError, ValueError):
    """The domain is empty, malformed, or has inverted or non-integral bounds.

    Attributes:
        dimension: Index of the offending domain variable, or None when the
            domain as a whole is malformed
    """

    def __init__(self, message: str, dimension: Optional[int] = None):
        if dimension is not None:
            message = f"Invalid domain variable at dimension {dimension}: {message}"
        super().__init__(message)
        self.dimension = dimension


class InvalidOptions(GlobalOptimizationError, ValueError):
    """An option has the wrong type or an out-of-range value.

    Attributes:
        option: Name of the offending option, if known
    """

    def __init__(self, message: str, option: Optional[str] = None):
        super().__init__(message)
        self.option = option


class ObjectiveError(GlobalOptimizationError, RuntimeError):
    """The objective raised, or returned a non-numeric or non-finite value.

    Attributes:
        point: The point the objective was evaluated at
    """

    def __init__(self, message: str, point: Optional[Sequence[float]] = None):
        super().__init__(message)
        self.point = None if point is None else tuple(point)


class SearchError(GlobalOptimizationError, RuntimeError):
    """The search backend failed or proposed a point outside the domain."""


__all__ = [
    "GlobalOptimizationError",
    "InvalidObjective",
    "InvalidDomain",
    "InvalidOptions",
    "ObjectiveError",
    "SearchError",
]
