"""Lipschitz upper bound for the MaxLIPO step.

Given observations (u_i, y_i) in unit-cube coordinates, the bound

    U(u) = min_i ( y_i + sqrt( sum_d k_d * (u_d - u_id)^2 ) )

is an upper bound on any function whose per-dimension squared Lipschitz
constants are at most k. The constants are fitted as the minimum-norm
k >= 0 satisfying every pairwise constraint

    sum_d k_d * (u_id - u_jd)^2 >= (y_i - y_j)^2

by accelerated projected gradient ascent (FISTA) on the dual problem

    max_{alpha >= 0}  alpha . b - 1/2 ||D^T alpha||^2,   k = D^T alpha,

followed by a rescaling that makes every constraint hold exactly. D holds
the squared coordinate differences of each pair and b the squared value
differences.

References:
    - Malherbe & Vayatis, "Global optimization of Lipschitz functions", ICML 2017
    - King, "A Global Optimization Algorithm Worth Using", dlib blog, 2017

LEVEL 7 backend module.
"""

import logging
import math
from typing import Optional, Tuple

import torch

logger = logging.getLogger(__name__)


class LipschitzUpperBound:
    """Piecewise upper bound on the objective built from observed values.

    Attributes:
        max_pairs: Largest number of observation pairs used to fit k
        max_iter: FISTA iteration cap for the dual problem
        k: Fitted squared Lipschitz constants, shape (n_dim,)
        points: Observed points in unit coordinates, shape (n, n_dim)
        values: Observed values, shape (n,)

    Example:
        >>> U = torch.tensor([[0.0], [1.0]], dtype=torch.float64)
        >>> y = torch.tensor([0.0, 2.0], dtype=torch.float64)
        >>> bound = LipschitzUpperBound().fit(U, y)
        >>> bound.k
        tensor([4.], dtype=torch.float64)
        >>> bound(torch.tensor([[0.5]], dtype=torch.float64))
        tensor([1.], dtype=torch.float64)
    """

    def __init__(self, max_pairs: int = 2000, max_iter: int = 200, tol: float = 1e-10):
        self.max_pairs = max_pairs
        self.max_iter = max_iter
        self.tol = tol

        self.k: Optional[torch.Tensor] = None
        self.points: Optional[torch.Tensor] = None
        self.values: Optional[torch.Tensor] = None

    def fit(
        self,
        points: torch.Tensor,
        values: torch.Tensor,
        generator: Optional[torch.Generator] = None,
    ) -> "LipschitzUpperBound":
        """Fit the Lipschitz constants to the observations.

        Args:
            points: Observed points in unit coordinates, shape (n, n_dim)
            values: Observed values, shape (n,)
            generator: CPU generator used to subsample pairs when there are
                more than max_pairs of them

        Returns:
            self
        """
        self.points = points
        self.values = values
        n, n_dim = points.shape
        self.k = torch.zeros(n_dim, dtype=torch.float64, device=points.device)
        if n < 2:
            return self

        i, j = self._select_pairs(n, generator)
        i, j = i.to(points.device), j.to(points.device)
        D = (points[i] - points[j]) ** 2
        b = (values[i] - values[j]) ** 2

        # Coincident points carry no slope information
        keep = D.sum(dim=1) > 0
        D, b = D[keep], b[keep]
        if D.shape[0] == 0:
            return self

        b_scale = float(b.max())
        if b_scale <= 0.0:
            # Constant observations: the bound is flat
            return self
        b = b / b_scale

        alpha = self._solve_dual(D, b)
        k = D.T @ alpha

        k_max = float(k.max())
        if k_max <= 0.0:
            k = torch.ones_like(k)
            k_max = 1.0
        k = torch.clamp(k, min=1e-12 * k_max)

        # Scale up so every pairwise constraint holds exactly
        violation = float((b / (D @ k)).max())
        self.k = k * max(1.0, violation) * b_scale

        logger.debug("Fitted Lipschitz constants on %d pairs: k = %s", D.shape[0], self.k.tolist())
        return self

    def _select_pairs(
        self,
        n: int,
        generator: Optional[torch.Generator],
    ) -> Tuple[torch.Tensor, torch.Tensor]:
        """All pairs, or the newest point's pairs plus a random sample of the rest."""
        if n * (n - 1) // 2 <= self.max_pairs:
            pairs = torch.triu_indices(n, n, offset=1)
            return pairs[0], pairs[1]

        newest_i = torch.arange(n - 1)
        newest_j = torch.full((n - 1,), n - 1, dtype=torch.int64)

        n_random = self.max_pairs - (n - 1)
        if n_random <= 0:
            return newest_i, newest_j

        random_i = torch.randint(n, (n_random,), generator=generator)
        random_j = torch.randint(n, (n_random,), generator=generator)
        distinct = random_i != random_j
        return (
            torch.cat([newest_i, random_i[distinct]]),
            torch.cat([newest_j, random_j[distinct]]),
        )

    def _solve_dual(self, D: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
        """FISTA on max_{alpha >= 0} alpha . b - 1/2 ||D^T alpha||^2."""
        lipschitz = float(torch.linalg.eigvalsh(D.T @ D)[-1])
        step = 1.0 / lipschitz

        alpha = torch.zeros_like(b)
        z = alpha.clone()
        t = 1.0
        for _ in range(self.max_iter):
            grad = b - D @ (D.T @ z)
            alpha_next = torch.clamp(z + step * grad, min=0.0)
            t_next = 0.5 * (1.0 + math.sqrt(1.0 + 4.0 * t * t))
            z = alpha_next + ((t - 1.0) / t_next) * (alpha_next - alpha)

            change = float((alpha_next - alpha).abs().max())
            alpha, t = alpha_next, t_next
            if change <= self.tol * (1.0 + float(alpha.abs().max())):
                break

        return alpha

    def __call__(self, candidates: torch.Tensor) -> torch.Tensor:
        """Evaluate the bound at candidate points.

        Args:
            candidates: Points in unit coordinates, shape (m, n_dim)

        Returns:
            Upper bounds, shape (m,)
        """
        if self.points is None:
            raise RuntimeError("LipschitzUpperBound.fit() must be called first")
        scale = torch.sqrt(self.k)
        # The matmul-based distance loses precision for nearby points
        dist = torch.cdist(
            candidates * scale,
            self.points * scale,
            compute_mode="donot_use_mm_for_euclid_dist",
        )
        return (self.values.unsqueeze(0) + dist).min(dim=1).values


__all__ = ["LipschitzUpperBound"]
