"""MaxLIPO + trust region backend.

The default backend. After the initial design it alternates between two
kinds of step:

- Trust region step: maximize a quadratic model fitted around the best
  point. Successful steps are followed by another trust region step, and
  the radius grows or shrinks with the ratio of actual to predicted
  improvement.
- LIPO step: propose the candidate with the largest Lipschitz upper bound
  (see upper_bound.py), or with a small probability a uniform random point.

The trust region restarts with its initial radius whenever a LIPO or
random step finds a new best point, and stalls once its radius drops
below min_radius or, for epsilon > 0, once the model cannot promise an
improvement of epsilon.

Convergence is certified when the largest upper bound over the candidates
is within epsilon of the best value. On domains with continuous
dimensions this is only checked once the trust region has stalled and
epsilon > 0. On enumerated integer lattices it is checked over every
unevaluated point, and while the top bound is still above the best value
the point holding it is evaluated first; the run stops once that point
fails to improve on the best value.

References:
    - Malherbe & Vayatis, "Global optimization of Lipschitz functions", ICML 2017
    - King, "A Global Optimization Algorithm Worth Using", dlib blog, 2017

LEVEL 7 backend module.
"""

import logging
import math
from typing import Optional, Tuple, Union

import torch

from lipoTensor.core.errors import SearchError
from lipoTensor.optimization.search.base import GlobalSearch
from lipoTensor.optimization.search.trust_region import (
    fit_quadratic_model,
    solve_trust_region_subproblem,
)
from lipoTensor.optimization.search.upper_bound import LipschitzUpperBound
from lipoTensor.optimization.search.utils import uniform_samples

logger = logging.getLogger(__name__)


class MaxLipoSearch(GlobalSearch):
    """Global search alternating MaxLIPO and trust region steps.

    Attributes:
        num_random_samples: Random candidates scored per LIPO step
        pure_random_probability: Chance that a LIPO step is a uniform random point
        initial_radius: Trust region radius in unit-cube coordinates after a restart
        min_radius: Radius below which the trust region stalls
        radius: Current trust region radius
        trust_region_stalled: True while the trust region makes no progress

    Example:
        >>> search = MaxLipoSearch(seed=0)
        >>> search.initialize(torch.tensor([-3.0]), torch.tensor([3.0]), torch.tensor([False]))
        >>> for _ in range(20):
        ...     x = search.propose_next()
        ...     search.report_result(x, float(torch.sin(x)))
        >>> abs(search.best_x.item() - math.pi / 2) < 1e-3
        True
    """

    name = "lipo"

    def __init__(
        self,
        seed: int = 0,
        device: Optional[Union[str, torch.device]] = None,
        n_init: Optional[int] = None,
        lattice_limit: int = 5000,
        num_random_samples: int = 5000,
        pure_random_probability: float = 0.02,
        initial_radius: float = 0.25,
        min_radius: float = 1e-11,
        max_pairs: int = 2000,
    ):
        """Initialize the backend.

        Args:
            seed: Seed for the backend's random generator
            device: Device for the search tensors (CPU by default)
            n_init: Size of the initial design, default max(3, n_dim + 1)
            lattice_limit: Enumerate fully integer domains up to this many points
            num_random_samples: Random candidates scored per LIPO step
            pure_random_probability: Chance that a LIPO step is a uniform random point
            initial_radius: Trust region radius in unit-cube coordinates
            min_radius: Radius below which the trust region stalls
            max_pairs: Largest number of observation pairs used to fit the upper bound
        """
        super().__init__(seed=seed, device=device, n_init=n_init, lattice_limit=lattice_limit)
        if not 0.0 <= pure_random_probability <= 1.0:
            raise ValueError(f"pure_random_probability must be in [0, 1], got {pure_random_probability}")
        if initial_radius <= 0 or min_radius <= 0:
            raise ValueError("initial_radius and min_radius must be > 0")
        self.num_random_samples = num_random_samples
        self.pure_random_probability = pure_random_probability
        self.initial_radius = initial_radius
        self.min_radius = min_radius
        self.max_pairs = max_pairs

        self.radius = initial_radius
        self.trust_region_stalled = False

    def _on_initialize(self):
        self.radius = self.initial_radius
        # The unit cube's diagonal
        self.max_radius = math.sqrt(self.n_dim)
        self.trust_region_stalled = False

        self._bound = LipschitzUpperBound(max_pairs=self.max_pairs)
        self._next_is_trust_region = True
        # (predicted gain, best value before the step) of an outstanding trust region proposal
        self._pending_step: Optional[Tuple[float, float]] = None
        # Best LIPO candidate for the current history
        self._candidate: Optional[Tuple[torch.Tensor, float]] = None
        self._candidate_n = -1
        # Lattice certificate: evaluate the top candidate before stopping on epsilon
        self._force_candidate = False
        self._forced_step = False
        self._forced_without_gain = False

    # ------------------------------------------------------------------
    # Search protocol
    # ------------------------------------------------------------------

    def propose_next(self) -> torch.Tensor:
        self._require_initialized()
        self._pending_step = None
        self._forced_step = False

        x = self._next_initial_point()
        if x is not None:
            return x
        if self.lattice_exhausted:
            raise SearchError("Every point of the integer domain has been evaluated")

        if self._force_candidate:
            self._force_candidate = False
            self._forced_step = True
            x, upper_bound = self._best_candidate()
            logger.debug("Certificate step: upper bound %.6g at %s", upper_bound, x.tolist())
            return x.clone()

        if self._next_is_trust_region and not self.trust_region_stalled:
            x = self._trust_region_step()
            if x is not None:
                return x

        self._next_is_trust_region = True
        if float(torch.rand(1, generator=self.generator)) < self.pure_random_probability:
            logger.debug("Pure random step")
            return self._random_point()

        x, upper_bound = self._best_candidate()
        logger.debug("LIPO step: upper bound %.6g at %s", upper_bound, x.tolist())
        return x.clone()

    def report_result(self, x: torch.Tensor, y: float):
        best_before = self.best_y
        super().report_result(x, y)
        y = float(y)

        if self._forced_step:
            self._forced_step = False
            self._forced_without_gain = best_before is not None and y <= best_before
        elif best_before is not None and y > best_before:
            self._forced_without_gain = False

        if self._pending_step is not None:
            predicted, best_at_step = self._pending_step
            self._pending_step = None
            improvement = y - best_at_step
            if improvement > 0:
                rho = improvement / predicted
                if rho < 0.25:
                    self.radius *= 0.5
                elif rho > 0.75:
                    self.radius = min(2.0 * self.radius, self.max_radius)
                self._next_is_trust_region = True
            else:
                self.radius *= 0.5
                self._next_is_trust_region = False
            self._check_radius()
        elif best_before is not None and y > best_before:
            # Exploration found a better basin: restart the trust region there
            self.radius = self.initial_radius
            self.trust_region_stalled = False

    def has_converged(self) -> bool:
        if self.n_observed == 0:
            return False
        if self.lattice_exhausted:
            return True
        if self.in_initial_phase:
            return False
        if self.lattice is None and (self.epsilon <= 0.0 or not self.trust_region_stalled):
            return False
        _, upper_bound = self._best_candidate()
        if upper_bound > self.best_y + self.epsilon:
            return False
        if self.lattice is None or upper_bound <= self.best_y or self._forced_without_gain:
            return True
        # Within epsilon but the top lattice point could still be better
        self._force_candidate = True
        return False

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _check_radius(self):
        if self.radius < self.min_radius and not self.trust_region_stalled:
            logger.debug("Trust region stalled at radius %.3g", self.radius)
            self.trust_region_stalled = True

    def _reject_step(self, reason: str) -> None:
        self.radius *= 0.5
        logger.debug("Trust region step rejected (%s), radius -> %.3g", reason, self.radius)
        self._check_radius()

    def _trust_region_step(self) -> Optional[torch.Tensor]:
        """Maximize the local quadratic model, or return None to fall back to LIPO."""
        best_index = self._best_index
        centre = self._to_unit(self.X_observed[best_index])
        others = torch.arange(self.n_observed, device=self.device) != best_index

        model = fit_quadratic_model(
            centre, self.best_y, self._to_unit(self.X_observed[others]), self.y_observed[others]
        )
        if model is None:
            return None

        step = solve_trust_region_subproblem(
            model.gradient, model.hessian, self.radius, -centre, 1.0 - centre
        )
        gain = model.gain(step)
        if not gain > 0.0:
            self._reject_step("no predicted gain")
            return None
        if self.epsilon > 0.0 and self.lattice is None and gain < self.epsilon:
            logger.debug("Trust region stalled: predicted gain %.3g below epsilon", gain)
            self.trust_region_stalled = True
            return None

        x = self._snap(self._from_unit(centre + step))
        if self.is_evaluated(x):
            self._reject_step("duplicate point")
            return None

        # Rounding integer dimensions moves the step, so predict at the snapped point
        predicted = model.gain(self._to_unit(x) - centre)
        if not predicted > 0.0:
            self._reject_step("no predicted gain after rounding")
            return None

        self._pending_step = (predicted, self.best_y)
        logger.debug(
            "Trust region step (%s model, radius %.3g): predicted gain %.6g",
            model.kind, self.radius, predicted,
        )
        return x

    def _best_candidate(self) -> Tuple[torch.Tensor, float]:
        """Candidate with the largest Lipschitz upper bound for the current history."""
        if self._candidate is not None and self._candidate_n == self.n_observed:
            return self._candidate

        self._bound.fit(self._to_unit(self.X_observed), self.y_observed, self.generator)

        if self.lattice is not None:
            candidates = self.open_lattice_points()
        else:
            u = uniform_samples(self.num_random_samples, self.n_dim, self.generator, self.device)
            candidates = self._snap(self._from_unit(u))

        upper_bounds = self._bound(self._to_unit(candidates))
        if self.lattice is None and bool(self.is_integer.any()):
            # Rounding can land candidates on evaluated points
            evaluated = torch.cdist(candidates, self.X_observed).min(dim=1).values == 0
            upper_bounds = upper_bounds.masked_fill(evaluated, -math.inf)

        index = int(torch.argmax(upper_bounds))
        upper_bound = float(upper_bounds[index])
        if upper_bound == -math.inf:
            self._candidate = (self._random_point(), math.inf)
        else:
            self._candidate = (candidates[index].clone(), upper_bound)
        self._candidate_n = self.n_observed
        return self._candidate


__all__ = ["MaxLipoSearch"]
