"""Optimization driver.

Runs the propose / evaluate / report loop between a search backend and
the objective adapter, tracks the best observation, and enforces the
evaluation and wall-clock budgets.

States:

    IDLE -> RUNNING -> {CONVERGED, BUDGET_EXHAUSTED, FAILED} -> DONE

Budgets are checked after each completed evaluation; an evaluation in
progress is never interrupted, so a runtime budget can be overrun by the
duration of one evaluation.

LEVEL 4 module.
"""

import logging
import time
from enum import Enum
from typing import Optional, Tuple

import torch

from lipoTensor.core.errors import GlobalOptimizationError, SearchError
from lipoTensor.core.types import Domain, OptimizerOptions, TerminationReason
from lipoTensor.optimization.objective import ObjectiveAdapter
from lipoTensor.optimization.search.base import GlobalSearch

logger = logging.getLogger(__name__)


class DriverState(Enum):
    """Lifecycle of one optimization run."""

    IDLE = "idle"
    RUNNING = "running"
    CONVERGED = "converged"
    BUDGET_EXHAUSTED = "budget_exhausted"
    FAILED = "failed"
    DONE = "done"


class OptimizationDriver:
    """Sequential driver for a GlobalSearch backend.

    The driver always maximizes; minimization is handled by the objective
    adapter's sign flip.

    Attributes:
        search: The search backend
        options: Budgets and accuracy
        verbose: Print progress information
        state: Current DriverState
        n_evaluations: Completed objective evaluations
        best_x: Best point so far
        best_g: Best (internally maximized) value so far
        termination: Why the last run stopped
    """

    def __init__(self, search: GlobalSearch, options: OptimizerOptions, verbose: bool = False):
        self.search = search
        self.options = options
        self.verbose = verbose

        self.state = DriverState.IDLE
        self.n_evaluations = 0
        self.best_x: Optional[torch.Tensor] = None
        self.best_g: Optional[float] = None
        self.termination: Optional[TerminationReason] = None
        self._start: Optional[float] = None
        self._stop: Optional[float] = None

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the run started, frozen once it stops."""
        if self._start is None:
            return 0.0
        end = self._stop if self._stop is not None else time.perf_counter()
        return (end - self._start) * 1000.0

    def run(
        self,
        adapter: ObjectiveAdapter,
        domain: Domain,
    ) -> Tuple[Tuple[torch.Tensor, float], TerminationReason]:
        """Run the search to convergence or budget exhaustion.

        Args:
            adapter: Objective adapter returning the value to maximize
            domain: Normalized domain

        Returns:
            ((best_x, best_g), termination) tuple

        Raises:
            ObjectiveError: If the objective fails; re-raised unchanged
            SearchError: If the backend fails or proposes an invalid point
        """
        self.state = DriverState.RUNNING
        self.n_evaluations = 0
        self.best_x, self.best_g = None, None
        self.termination = None
        self._start = time.perf_counter()
        self._stop = None

        logger.info(
            "Starting %s search over %d dimension(s): %s",
            self.search.name, domain.n_dim, self.options.as_dict(),
        )

        try:
            self.search.initialize(domain.lower, domain.upper, domain.is_integer, self.options.epsilon)
            if self.verbose:
                print(f"Phase 1: Initial design ({self.search.n_init} samples)")
                print(f"  Backend: {self.search.name.upper()}")
            reason = self._loop(adapter, domain)
        except GlobalOptimizationError as exc:
            self._stop = time.perf_counter()
            self.state = DriverState.FAILED
            logger.error("Optimization failed after %d evaluation(s): %s", self.n_evaluations, exc)
            raise
        except Exception as exc:
            self._stop = time.perf_counter()
            self.state = DriverState.FAILED
            logger.error("Search backend failed after %d evaluation(s): %s", self.n_evaluations, exc)
            raise SearchError(f"Search backend failed: {exc}") from exc

        self._stop = time.perf_counter()
        self.termination = reason
        self.state = (
            DriverState.CONVERGED if reason is TerminationReason.CONVERGED
            else DriverState.BUDGET_EXHAUSTED
        )
        elapsed = self.elapsed_ms
        logger.info(
            "Search stopped (%s) after %d evaluation(s) in %.1f ms",
            reason.value, self.n_evaluations, elapsed,
        )

        if self.verbose:
            print(f"\nOptimization complete! ({reason.value})")
            print(f"  Evaluations: {self.n_evaluations}")
            print(f"  Best value: {adapter.direction.sign * self.best_g:.6f}")
            print(f"  Best parameters: {self.best_x.cpu().numpy()}")

        self.state = DriverState.DONE
        return (self.best_x, self.best_g), reason

    def _loop(self, adapter: ObjectiveAdapter, domain: Domain) -> TerminationReason:
        max_iterations = self.options.max_iterations
        max_runtime_ms = self.options.max_runtime_ms
        announced_search = False

        while True:
            if self.search.has_converged():
                return TerminationReason.CONVERGED

            x = self.search.propose_next()
            x = torch.as_tensor(x, dtype=torch.float64).to(domain.device)
            if not domain.contains(x):
                raise SearchError(
                    f"{type(self.search).__name__} proposed a point outside the domain: {x.tolist()}"
                )

            g = adapter(x)
            self.n_evaluations += 1
            self.search.report_result(x, g)

            # Strict improvement only: the first of several equal values wins
            if self.best_g is None or g > self.best_g:
                self.best_x, self.best_g = x.clone(), g

            logger.debug("Evaluation %d: g(%s) = %.10g", self.n_evaluations, x.tolist(), g)

            if self.verbose:
                if not announced_search and not self.search.in_initial_phase:
                    print(f"  Initial best: {adapter.direction.sign * self.best_g:.6f}")
                    print("Phase 2: Global search")
                    announced_search = True
                if self.n_evaluations % 10 == 0:
                    print(
                        f"  Evaluation {self.n_evaluations}: "
                        f"best = {adapter.direction.sign * self.best_g:.6f}"
                    )

            if max_iterations is not None and self.n_evaluations >= max_iterations:
                return TerminationReason.MAX_ITERATIONS
            if max_runtime_ms is not None and self.elapsed_ms >= max_runtime_ms:
                return TerminationReason.MAX_RUNTIME


__all__ = ["DriverState", "OptimizationDriver"]
