"""Pure random search backend.

Evaluates the initial design, then uniform random points (unevaluated
lattice points on small integer domains). Useful as a baseline for the
model-based backends.

LEVEL 7 backend module.
"""

import torch

from lipoTensor.core.errors import SearchError
from lipoTensor.optimization.search.base import GlobalSearch


class RandomSearch(GlobalSearch):
    """Uniform random search over the domain.

    Example:
        >>> search = RandomSearch(seed=1)
        >>> search.initialize(torch.tensor([0.0]), torch.tensor([1.0]), torch.tensor([False]))
        >>> x = search.propose_next()
        >>> bool((x >= 0).all() and (x <= 1).all())
        True
    """

    name = "random"

    def propose_next(self) -> torch.Tensor:
        self._require_initialized()
        x = self._next_initial_point()
        if x is not None:
            return x
        if self.lattice_exhausted:
            raise SearchError("Every point of the integer domain has been evaluated")
        return self._random_point()


__all__ = ["RandomSearch"]
