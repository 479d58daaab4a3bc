"""Base class for global search backends.

A backend is driven one point at a time:

    search.initialize(lower, upper, is_integer, epsilon)
    while not search.has_converged():
        x = search.propose_next()
        search.report_result(x, objective(x))

Backends always maximize. The base class keeps the observation history,
the best observation (first-observed wins ties), the initial design
(domain centre followed by a Latin hypercube sample) and, for fully
integer domains small enough to enumerate, the set of lattice points that
have not been evaluated yet.

LEVEL 7 backend module.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Set, Tuple, Union

import torch

from lipoTensor.core.device import get_device
from lipoTensor.core.errors import SearchError
from lipoTensor.optimization.search.utils import (
    from_unit,
    latin_hypercube_sampling,
    lattice_points,
    lattice_size,
    lattice_strides,
    snap_to_domain,
    to_unit,
    uniform_samples,
)

logger = logging.getLogger(__name__)


class GlobalSearch(ABC):
    """Abstract global search procedure over a box with integer dimensions.

    Attributes:
        seed: Seed of the backend's random generator
        device: Device holding the search tensors
        lattice_limit: Largest fully integer domain that is enumerated
        lower, upper, is_integer: The domain, set by initialize()
        epsilon: Accuracy to which the global optimum is sought
        n_init: Number of points in the initial design
        X_observed: Evaluated points, shape (n, n_dim)
        y_observed: Observed values, shape (n,)
        lattice: Every point of an enumerated integer domain, or None
    """

    name = "base"

    def __init__(
        self,
        seed: int = 0,
        device: Optional[Union[str, torch.device]] = None,
        n_init: Optional[int] = None,
        lattice_limit: int = 5000,
    ):
        """Initialize the backend.

        Args:
            seed: Seed for the backend's random generator
            device: Device for the search tensors (CPU by default)
            n_init: Size of the initial design, default max(3, n_dim + 1)
            lattice_limit: Enumerate fully integer domains up to this many points
        """
        if n_init is not None and n_init < 1:
            raise ValueError(f"n_init must be >= 1, got {n_init}")
        self.seed = seed
        self.device = get_device(device)
        self.lattice_limit = lattice_limit
        self._n_init_setting = n_init

        # Random draws always happen on CPU so runs replay across devices
        self.generator = torch.Generator()

        self.lower: Optional[torch.Tensor] = None
        self.upper: Optional[torch.Tensor] = None
        self.is_integer: Optional[torch.Tensor] = None
        self.epsilon: float = 0.0
        self.n_init: int = 0

        self.X_observed: Optional[torch.Tensor] = None
        self.y_observed: Optional[torch.Tensor] = None
        self.lattice: Optional[torch.Tensor] = None

        self._best_index: Optional[int] = None
        self._seen: Set[Tuple[float, ...]] = set()
        self._initial_design: Optional[torch.Tensor] = None
        self._design_position = 0
        self._lattice_open: Optional[torch.Tensor] = None
        self._lattice_strides: Optional[torch.Tensor] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(
        self,
        lower: torch.Tensor,
        upper: torch.Tensor,
        is_integer: torch.Tensor,
        epsilon: float = 0.0,
    ):
        """Prepare a fresh search over the given domain.

        Calling initialize again discards all history and reseeds the
        generator, so two runs over the same domain are identical.

        Args:
            lower: Lower bounds, shape (n_dim,)
            upper: Upper bounds, shape (n_dim,)
            is_integer: Integrality flags, shape (n_dim,)
            epsilon: Accuracy to which the global optimum is sought
        """
        self.lower = lower.to(self.device, dtype=torch.float64)
        self.upper = upper.to(self.device, dtype=torch.float64)
        self.is_integer = is_integer.to(self.device, dtype=torch.bool)
        self.epsilon = float(epsilon)
        self.generator.manual_seed(self.seed)

        n_dim = self.n_dim
        self.n_init = self._n_init_setting or max(3, n_dim + 1)

        self.X_observed = torch.empty((0, n_dim), dtype=torch.float64, device=self.device)
        self.y_observed = torch.empty(0, dtype=torch.float64, device=self.device)
        self._best_index = None
        self._seen = set()

        self.lattice = None
        self._lattice_open = None
        if bool(self.is_integer.all()):
            size = lattice_size(self.lower, self.upper, limit=self.lattice_limit)
            if size <= self.lattice_limit:
                self.lattice = lattice_points(self.lower, self.upper)
                self._lattice_open = torch.ones(size, dtype=torch.bool, device=self.device)
                self._lattice_strides = lattice_strides(self.lower, self.upper)
                logger.debug("Enumerating integer lattice of %d points", size)

        self._initial_design = self._build_initial_design()
        self._design_position = 0
        self._on_initialize()

    def _on_initialize(self):
        """Hook for backend-specific state, called at the end of initialize()."""

    def _build_initial_design(self) -> torch.Tensor:
        centre = torch.full((1, self.n_dim), 0.5, dtype=torch.float64, device=self.device)
        lhs = latin_hypercube_sampling(self.n_init - 1, self.n_dim, self.generator, self.device)
        return self._snap(from_unit(torch.cat([centre, lhs], dim=0), self.lower, self.upper))

    # ------------------------------------------------------------------
    # Search protocol
    # ------------------------------------------------------------------

    @abstractmethod
    def propose_next(self) -> torch.Tensor:
        """Propose the next point to evaluate.

        Returns:
            Point inside the domain with integral integer dimensions, shape (n_dim,)
        """

    def report_result(self, x: torch.Tensor, y: float):
        """Record the value observed at x.

        Args:
            x: Evaluated point, shape (n_dim,)
            y: Observed value (larger is better)
        """
        self._require_initialized()
        x = torch.as_tensor(x, dtype=torch.float64).to(self.device).reshape(-1)
        if x.shape[0] != self.n_dim:
            raise SearchError(f"Reported point has {x.shape[0]} dimensions, expected {self.n_dim}")
        y = float(y)

        self.X_observed = torch.cat([self.X_observed, x.unsqueeze(0)], dim=0)
        self.y_observed = torch.cat(
            [self.y_observed, torch.tensor([y], dtype=torch.float64, device=self.device)]
        )
        self._seen.add(tuple(x.tolist()))

        if self._best_index is None or y > float(self.y_observed[self._best_index]):
            self._best_index = self.n_observed - 1

        if self.lattice is not None:
            index = int(((x - self.lower).round().to(torch.int64) * self._lattice_strides).sum())
            self._lattice_open[index] = False

    def has_converged(self) -> bool:
        """True once no further improvement beyond epsilon is achievable.

        The base certificate only covers enumerated lattices whose points
        have all been evaluated. Backends extend it.
        """
        return self.n_observed > 0 and self.lattice_exhausted

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def n_dim(self) -> int:
        self._require_initialized()
        return int(self.lower.shape[0])

    @property
    def n_observed(self) -> int:
        return 0 if self.y_observed is None else int(self.y_observed.shape[0])

    @property
    def best_x(self) -> Optional[torch.Tensor]:
        if self._best_index is None:
            return None
        return self.X_observed[self._best_index].clone()

    @property
    def best_y(self) -> Optional[float]:
        if self._best_index is None:
            return None
        return float(self.y_observed[self._best_index])

    @property
    def in_initial_phase(self) -> bool:
        return self._design_position < self._initial_design.shape[0]

    @property
    def lattice_exhausted(self) -> bool:
        return self._lattice_open is not None and not bool(self._lattice_open.any())

    def is_evaluated(self, x: torch.Tensor) -> bool:
        return tuple(x.tolist()) in self._seen

    def open_lattice_points(self) -> torch.Tensor:
        """Lattice points that have not been evaluated yet, shape (m, n_dim)."""
        return self.lattice[self._lattice_open]

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def _require_initialized(self):
        if self.lower is None:
            raise SearchError(f"{type(self).__name__} used before initialize()")

    def _snap(self, x: torch.Tensor) -> torch.Tensor:
        return snap_to_domain(x, self.lower, self.upper, self.is_integer)

    def _to_unit(self, x: torch.Tensor) -> torch.Tensor:
        return to_unit(x, self.lower, self.upper)

    def _from_unit(self, u: torch.Tensor) -> torch.Tensor:
        return from_unit(u, self.lower, self.upper)

    def _next_initial_point(self) -> Optional[torch.Tensor]:
        """Next unevaluated point of the initial design, or None once it is used up."""
        while self.in_initial_phase:
            x = self._initial_design[self._design_position]
            self._design_position += 1
            if not self.is_evaluated(x):
                return x.clone()
        return None

    def _random_point(self, max_tries: int = 100) -> torch.Tensor:
        """Uniform random point; on enumerated lattices, a random unevaluated one."""
        if self.lattice is not None:
            candidates = self.open_lattice_points()
            if candidates.shape[0] == 0:
                raise SearchError("Every point of the integer domain has been evaluated")
            index = int(torch.randint(candidates.shape[0], (1,), generator=self.generator))
            return candidates[index].clone()

        x = None
        for _ in range(max_tries):
            u = uniform_samples(1, self.n_dim, self.generator, self.device).squeeze(0)
            x = self._snap(self._from_unit(u))
            if not self.is_evaluated(x):
                break
        return x


__all__ = ["GlobalSearch"]
