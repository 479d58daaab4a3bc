"""Option resolution.

Merges caller-supplied options over the defaults
{max_iterations: None, max_runtime_ms: None, epsilon: 0.0, seed: 0}.
None is the explicit "unbounded" value for both budgets.

LEVEL 2 module.
"""

import logging
from collections.abc import Mapping
from dataclasses import fields
from typing import Any, Optional, Union

from lipoTensor.core.errors import InvalidOptions
from lipoTensor.core.types import OptimizerOptions

logger = logging.getLogger(__name__)

OPTION_KEYS = tuple(f.name for f in fields(OptimizerOptions))


def resolve_options(
    options: Optional[Union[Mapping, OptimizerOptions]] = None,
) -> OptimizerOptions:
    """Resolve caller options into a validated OptimizerOptions.

    Args:
        options: None, a mapping with keys from OPTION_KEYS, or an
            OptimizerOptions instance

    Returns:
        Validated OptimizerOptions

    Raises:
        InvalidOptions: If options has the wrong type, an unknown key, or an
            invalid value

    Example:
        >>> resolve_options({"max_iterations": 20})
        OptimizerOptions(max_iterations=20, max_runtime_ms=None, epsilon=0.0, seed=0)
    """
    if options is None:
        resolved = OptimizerOptions()
    elif isinstance(options, OptimizerOptions):
        resolved = options
    elif isinstance(options, Mapping):
        unknown = sorted(str(key) for key in options if key not in OPTION_KEYS)
        if unknown:
            raise InvalidOptions(
                f"Unknown option(s): {', '.join(unknown)}. Valid options: {', '.join(OPTION_KEYS)}",
                option=unknown[0],
            )
        resolved = OptimizerOptions(**options)
    else:
        raise InvalidOptions(f"options must be a mapping, got {type(options).__name__}")

    if not resolved.is_bounded:
        logger.warning(
            "Neither max_iterations nor max_runtime_ms is set; "
            "the search only stops once it converges"
        )
    return resolved


__all__ = ["OPTION_KEYS", "resolve_options"]
