"""Domain normalization.

Turns the caller's per-dimension domain specification into the aligned
lower / upper / is_integer tensors used by the driver and search
backends. Each element of the domain is one of:

- a bounds pair: ``[lower, upper]``
- a bounds object: ``{"bounds": [lower, upper], "is_integer": bool}``
  (``is_integer`` is optional and defaults to False)
- a ``DomainVariable``

LEVEL 2 module.
"""

import math
from collections.abc import Mapping, Sequence
from typing import Any, Optional, Union

import numpy as np
import torch

from lipoTensor.core.device import get_device
from lipoTensor.core.errors import InvalidDomain
from lipoTensor.core.types import Domain, DomainVariable, as_real

BOUNDS_OBJECT_KEYS = ("bounds", "is_integer")


def _is_ordered_sequence(value: Any) -> bool:
    if isinstance(value, (str, bytes, Mapping)):
        return False
    return isinstance(value, (Sequence, np.ndarray, torch.Tensor))


def _read_bounds(bounds: Any, dimension: int) -> tuple:
    if not _is_ordered_sequence(bounds):
        raise InvalidDomain(
            f"bounds must be a [lower, upper] pair, got {type(bounds).__name__}", dimension
        )
    if len(bounds) != 2:
        raise InvalidDomain(f"bounds must have exactly 2 entries, got {len(bounds)}", dimension)

    lower, upper = as_real(bounds[0]), as_real(bounds[1])
    if lower is None or upper is None:
        raise InvalidDomain(f"bounds must be numbers, got {list(bounds)!r}", dimension)
    if not (math.isfinite(lower) and math.isfinite(upper)):
        raise InvalidDomain(f"bounds must be finite, got [{lower}, {upper}]", dimension)
    if lower >= upper:
        raise InvalidDomain(f"lower bound must be < upper bound, got [{lower}, {upper}]", dimension)
    if not math.isfinite(upper - lower):
        raise InvalidDomain(f"bounds span too wide, got [{lower}, {upper}]", dimension)
    return lower, upper


def parse_domain_variable(spec: Any, dimension: int = 0) -> DomainVariable:
    """Parse a single domain element into a DomainVariable.

    Args:
        spec: Bounds pair, bounds object, or DomainVariable
        dimension: Index of the element, used in error messages

    Returns:
        Validated DomainVariable

    Raises:
        InvalidDomain: If the element is malformed
    """
    if isinstance(spec, DomainVariable):
        lower, upper = _read_bounds((spec.lower, spec.upper), dimension)
        is_integer = spec.is_integer
    elif isinstance(spec, Mapping):
        unknown = sorted(str(key) for key in spec if key not in BOUNDS_OBJECT_KEYS)
        if unknown:
            raise InvalidDomain(f"Unknown bounds object key '{unknown[0]}'", dimension)
        if "bounds" not in spec:
            raise InvalidDomain("bounds object is missing 'bounds'", dimension)
        lower, upper = _read_bounds(spec["bounds"], dimension)
        is_integer = spec.get("is_integer", False)
    elif _is_ordered_sequence(spec):
        lower, upper = _read_bounds(spec, dimension)
        is_integer = False
    else:
        raise InvalidDomain(
            f"expected a [lower, upper] pair or a bounds object, got {type(spec).__name__}", dimension
        )

    if not isinstance(is_integer, (bool, np.bool_)):
        raise InvalidDomain(f"is_integer must be a bool, got {type(is_integer).__name__}", dimension)
    is_integer = bool(is_integer)

    if is_integer and not (lower.is_integer() and upper.is_integer()):
        raise InvalidDomain(
            f"integer variable must have integral bounds, got [{lower}, {upper}]", dimension
        )
    return DomainVariable(lower, upper, is_integer)


def normalize_domain(
    domain: Any,
    device: Optional[Union[str, torch.device]] = None,
) -> Domain:
    """Normalize a domain specification into aligned bound and integrality tensors.

    Args:
        domain: Non-empty ordered sequence of domain elements
        device: Device for the resulting tensors (CPU by default)

    Returns:
        Domain with lower, upper (float64) and is_integer (bool) tensors of length N

    Raises:
        InvalidDomain: If the domain is not a non-empty sequence or any element is invalid

    Example:
        >>> d = normalize_domain([[-3, 3], {"bounds": [0, 4], "is_integer": True}])
        >>> d.lower.tolist(), d.upper.tolist(), d.is_integer.tolist()
        ([-3.0, 0.0], [3.0, 4.0], [False, True])
    """
    if domain is None:
        raise InvalidDomain("domain must be a sequence of variables, got None")
    if not _is_ordered_sequence(domain):
        raise InvalidDomain(f"domain must be a sequence of variables, got {type(domain).__name__}")
    if len(domain) < 1:
        raise InvalidDomain("domain must have at least one variable")

    variables = [parse_domain_variable(spec, i) for i, spec in enumerate(domain)]

    device = get_device(device)
    return Domain(
        lower=torch.tensor([v.lower for v in variables], dtype=torch.float64, device=device),
        upper=torch.tensor([v.upper for v in variables], dtype=torch.float64, device=device),
        is_integer=torch.tensor([v.is_integer for v in variables], dtype=torch.bool, device=device),
    )


__all__ = ["BOUNDS_OBJECT_KEYS", "parse_domain_variable", "normalize_domain"]
