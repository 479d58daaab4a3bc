"""Shared utilities for the global search backends.

Coordinate transforms between the domain box and the unit cube, rounding
of integer dimensions, stratified and uniform sampling, and enumeration of
small integer lattices.

All random draws use an explicit CPU torch.Generator owned by the calling
backend, so a backend seeded with the same value replays the same run.

LEVEL 7 utility module.
"""

from typing import Optional
import torch


def round_half_away(x: torch.Tensor) -> torch.Tensor:
    """Round to the nearest integer, ties away from zero.

    torch.round rounds ties to even, which would send 0.5 to 0 and 2.5 to 2.

    Example:
        >>> round_half_away(torch.tensor([0.5, 1.5, 2.5, -0.5]))
        tensor([ 1.,  2.,  3., -1.])
    """
    return torch.sign(x) * torch.floor(torch.abs(x) + 0.5)


def snap_to_domain(
    x: torch.Tensor,
    lower: torch.Tensor,
    upper: torch.Tensor,
    is_integer: torch.Tensor,
) -> torch.Tensor:
    """Clamp points into the box and round integer dimensions.

    Args:
        x: Points, shape (n_dim,) or (n_samples, n_dim)
        lower: Lower bounds, shape (n_dim,)
        upper: Upper bounds, shape (n_dim,)
        is_integer: Integrality flags, shape (n_dim,)

    Returns:
        Snapped points with the shape of x
    """
    x = torch.where(is_integer, round_half_away(x), x)
    # Integer bounds are integral, so clamping keeps rounded values integral
    return torch.maximum(torch.minimum(x, upper), lower)


def to_unit(x: torch.Tensor, lower: torch.Tensor, upper: torch.Tensor) -> torch.Tensor:
    """Map points from the box to the unit cube."""
    return (x - lower) / (upper - lower)


def from_unit(u: torch.Tensor, lower: torch.Tensor, upper: torch.Tensor) -> torch.Tensor:
    """Map points from the unit cube to the box."""
    return lower + u * (upper - lower)


def latin_hypercube_sampling(
    n_samples: int,
    n_dim: int,
    generator: torch.Generator,
    device: Optional[torch.device] = None,
) -> torch.Tensor:
    """Latin Hypercube Sampling in the unit cube.

    Latin Hypercube Sampling (LHS) is a stratified sampling technique that
    ensures better coverage of the search space than pure random sampling.
    Each dimension is divided into n_samples equal strata, and one sample is
    taken from each stratum.

    Args:
        n_samples: Number of samples to generate
        n_dim: Number of dimensions
        generator: CPU random generator to draw from
        device: Device to place tensor on

    Returns:
        Samples with shape (n_samples, n_dim), every entry in [0, 1)

    Example:
        >>> g = torch.Generator().manual_seed(0)
        >>> latin_hypercube_sampling(10, 2, g).shape
        torch.Size([10, 2])
    """
    samples = torch.zeros((n_samples, n_dim), dtype=torch.float64)

    for d in range(n_dim):
        # One sample from each stratum with random position within stratum
        perm = torch.randperm(n_samples, generator=generator)
        offsets = torch.rand(n_samples, generator=generator, dtype=torch.float64)
        samples[:, d] = (perm + offsets) / n_samples

    return samples.to(device) if device is not None else samples


def uniform_samples(
    n_samples: int,
    n_dim: int,
    generator: torch.Generator,
    device: Optional[torch.device] = None,
) -> torch.Tensor:
    """Uniform random samples in the unit cube, shape (n_samples, n_dim)."""
    samples = torch.rand((n_samples, n_dim), generator=generator, dtype=torch.float64)
    return samples.to(device) if device is not None else samples


def lattice_size(lower: torch.Tensor, upper: torch.Tensor, limit: Optional[int] = None) -> int:
    """Number of integer points in the box.

    Args:
        lower: Integral lower bounds
        upper: Integral upper bounds
        limit: Stop counting and return limit + 1 once the count exceeds it

    Returns:
        Number of lattice points (or limit + 1 if the lattice is larger)
    """
    size = 1
    for lo, hi in zip(lower.tolist(), upper.tolist()):
        size *= int(hi - lo) + 1
        if limit is not None and size > limit:
            return limit + 1
    return size


def lattice_points(lower: torch.Tensor, upper: torch.Tensor) -> torch.Tensor:
    """Enumerate every integer point in the box.

    Points are ordered with the last dimension varying fastest, so the point
    at x has row index sum((x - lower) * strides) with strides from
    lattice_strides.

    Returns:
        Lattice points, shape (n_points, n_dim), float64
    """
    axes = [
        torch.arange(int(lo), int(hi) + 1, dtype=torch.float64, device=lower.device)
        for lo, hi in zip(lower.tolist(), upper.tolist())
    ]
    if len(axes) == 1:
        return axes[0].unsqueeze(1)
    return torch.cartesian_prod(*axes)


def lattice_strides(lower: torch.Tensor, upper: torch.Tensor) -> torch.Tensor:
    """Row-index strides matching the ordering of lattice_points."""
    sizes = (upper - lower + 1).to(torch.int64)
    strides = torch.ones_like(sizes)
    for d in range(sizes.shape[0] - 2, -1, -1):
        strides[d] = strides[d + 1] * sizes[d + 1]
    return strides


__all__ = [
    "round_half_away",
    "snap_to_domain",
    "to_unit",
    "from_unit",
    "latin_hypercube_sampling",
    "uniform_samples",
    "lattice_size",
    "lattice_points",
    "lattice_strides",
]
