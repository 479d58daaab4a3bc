"""Quadratic-model trust region step for local refinement.

Around the best observation u* the objective is modelled as

    y(u* + z) - y* ~= g . z + 1/2 z^T H z

fitted by least squares to the nearest observations. The model is then
maximized over the ball ||z|| <= r intersected with the box, which yields
the next point to evaluate together with the improvement the model
predicts for it.

The ball subproblem is solved exactly through an eigendecomposition of H
(including the so-called hard case); box faces are handled by fixing
violated coordinates at their bound and re-solving over the remaining
ones.

References:
    - Conn, Gould & Toint, "Trust-Region Methods", SIAM 2000, chapter 7
    - Powell, "The NEWUOA software for unconstrained optimization", 2006

LEVEL 7 backend module.
"""

import math
from dataclasses import dataclass
from typing import Optional

import torch


@dataclass
class QuadraticModel:
    """Local model y(u* + z) - y* ~= g . z + 1/2 z^T H z.

    Attributes:
        gradient: g, shape (n_dim,)
        hessian: H, shape (n_dim, n_dim)
        kind: 'full', 'diagonal' or 'linear', depending on how many
            neighbours were available for the fit
        n_points: Number of neighbours used in the fit
    """
    gradient: torch.Tensor
    hessian: torch.Tensor
    kind: str
    n_points: int

    def gain(self, z: torch.Tensor) -> float:
        """Improvement the model predicts for the step z."""
        return float(self.gradient @ z + 0.5 * z @ (self.hessian @ z))


def _n_full(n_dim: int) -> int:
    return n_dim + n_dim * (n_dim + 1) // 2


def fit_quadratic_model(
    centre: torch.Tensor,
    centre_value: float,
    points: torch.Tensor,
    values: torch.Tensor,
) -> Optional[QuadraticModel]:
    """Fit a quadratic model around centre from neighbouring observations.

    A full quadratic needs n_dim + n_dim * (n_dim + 1) / 2 neighbours; with
    fewer, a diagonal Hessian (2 * n_dim neighbours) or a purely linear
    model is fitted instead. Only the nearest neighbours are used.

    Args:
        centre: Centre of the model, shape (n_dim,)
        centre_value: Observed value at the centre
        points: Other observed points, shape (n, n_dim)
        values: Values at those points, shape (n,)

    Returns:
        The fitted model, or None if no neighbour differs from the centre
    """
    n_dim = centre.shape[0]
    offsets = points - centre
    distances = offsets.norm(dim=1)

    usable = distances > 0
    offsets, distances, dy = offsets[usable], distances[usable], values[usable] - centre_value
    n = offsets.shape[0]
    if n == 0:
        return None

    if n >= _n_full(n_dim):
        kind, n_points = "full", _n_full(n_dim)
    elif n >= 2 * n_dim:
        kind, n_points = "diagonal", 2 * n_dim
    else:
        kind, n_points = "linear", n

    nearest = torch.argsort(distances)[:n_points]
    scale = float(distances[nearest].max())
    w = offsets[nearest] / scale

    columns = [w]
    if kind == "diagonal":
        columns.append(0.5 * w ** 2)
    elif kind == "full":
        rows, cols = torch.triu_indices(n_dim, n_dim)
        cross = w[:, rows] * w[:, cols]
        # Diagonal terms carry the 1/2 of the quadratic form
        cross = torch.where(rows == cols, 0.5 * cross, cross)
        columns.append(cross)
    A = torch.cat(columns, dim=1)

    # gelsd is CPU only; it returns the minimum-norm solution for rank-deficient fits
    solution = torch.linalg.lstsq(
        A.cpu(), dy[nearest].cpu().unsqueeze(1), driver="gelsd"
    ).solution.squeeze(1).to(centre.device)

    gradient = solution[:n_dim] / scale
    hessian = torch.zeros((n_dim, n_dim), dtype=centre.dtype, device=centre.device)
    if kind == "diagonal":
        hessian = torch.diag(solution[n_dim:])
    elif kind == "full":
        hessian[rows, cols] = solution[n_dim:]
        hessian = hessian + torch.triu(hessian, diagonal=1).T
    hessian = hessian / scale ** 2

    return QuadraticModel(gradient, hessian, kind, n_points)


def _solve_ball(
    c: torch.Tensor,
    B: torch.Tensor,
    radius: float,
    tol: float = 1e-12,
    max_iter: int = 200,
) -> torch.Tensor:
    """Minimize c . w + 1/2 w^T B w subject to ||w|| <= radius."""
    B = 0.5 * (B + B.T)
    eigvals, Q = torch.linalg.eigh(B)
    c_hat = Q.T @ c

    lam_min = float(eigvals[0])
    scale = max(1.0, float(eigvals.abs().max()))

    def step(mu: float) -> torch.Tensor:
        return -(Q @ (c_hat / (eigvals + mu)))

    # Interior Newton step
    if lam_min > tol * scale:
        w = step(0.0)
        if float(w.norm()) <= radius:
            return w

    mu_lo = max(0.0, -lam_min)
    c_norm = float(c_hat.norm())

    # Hard case: c has no component along the leftmost eigenvectors
    degenerate = (eigvals - lam_min) <= tol * scale
    if lam_min < -tol * scale and float(c_hat[degenerate].norm()) <= tol * max(1.0, c_norm):
        shifted = torch.where(degenerate, torch.ones_like(eigvals), eigvals + mu_lo)
        coeff = torch.where(degenerate, torch.zeros_like(c_hat), -c_hat / shifted)
        interior_norm = float(coeff.norm())
        if interior_norm <= radius:
            first = int(torch.nonzero(degenerate)[0])
            coeff[first] = coeff[first] + math.sqrt(radius ** 2 - interior_norm ** 2)
            return Q @ coeff

    if c_norm == 0.0:
        return torch.zeros_like(c)

    # ||step(mu)|| decreases in mu and is <= radius at mu_hi
    lo, hi = mu_lo, mu_lo + c_norm / radius
    for _ in range(max_iter):
        mid = 0.5 * (lo + hi)
        if mid <= lo or mid >= hi:
            break
        if float(step(mid).norm()) > radius:
            lo = mid
        else:
            hi = mid
    return step(hi)


def solve_trust_region_subproblem(
    gradient: torch.Tensor,
    hessian: torch.Tensor,
    radius: float,
    lower: torch.Tensor,
    upper: torch.Tensor,
) -> torch.Tensor:
    """Maximize g . p + 1/2 p^T H p over ||p|| <= radius and lower <= p <= upper.

    Args:
        gradient: Model gradient g, shape (n_dim,)
        hessian: Model Hessian H, shape (n_dim, n_dim)
        radius: Trust region radius
        lower: Lower bounds on the step, all <= 0
        upper: Upper bounds on the step, all >= 0

    Returns:
        Step p, shape (n_dim,)

    Example:
        >>> g = torch.tensor([1.0, 0.0], dtype=torch.float64)
        >>> H = -torch.eye(2, dtype=torch.float64)
        >>> box = torch.tensor([1.0, 1.0], dtype=torch.float64)
        >>> p = solve_trust_region_subproblem(g, H, 2.0, -box, box)
        >>> torch.allclose(p, torch.tensor([1.0, 0.0], dtype=torch.float64))
        True
    """
    # Work in coordinates where the trust region is the unit ball
    c = -gradient * radius
    B = -hessian * radius ** 2
    lo = lower / radius
    hi = upper / radius

    n_dim = c.shape[0]
    free = torch.ones(n_dim, dtype=torch.bool, device=c.device)
    w = torch.zeros_like(c)

    for _ in range(n_dim + 1):
        if not bool(free.any()):
            break
        fixed = ~free
        remaining = 1.0 - float((w[fixed] ** 2).sum())
        if remaining <= 0.0:
            break

        c_free = c[free] + B[free][:, fixed] @ w[fixed]
        w_new = w.clone()
        w_new[free] = _solve_ball(c_free, B[free][:, free], math.sqrt(remaining))

        over = free & (w_new > hi)
        under = free & (w_new < lo)
        w = w_new
        if not bool((over | under).any()):
            break
        w[over] = hi[over]
        w[under] = lo[under]
        free = free & ~(over | under)

    w = torch.maximum(torch.minimum(w, hi), lo)
    return w * radius


__all__ = ["QuadraticModel", "fit_quadratic_model", "solve_trust_region_subproblem"]
