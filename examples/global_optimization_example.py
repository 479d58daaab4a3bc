#!/usr/bin/env python3
"""
Global Optimization of Black-Box Functions

This example compares the search backends on three classic problems.

**Problems:**
- (1/x) sin(x^2) on [0, 3.5]: a one-dimensional function with several
  local minima (global minimum -0.463 at x = 2.144)
- Rosenbrock on [-3.1, 6.51] x [-5.2, 3.3]: a narrow curved valley with
  its minimum 0 at (1, 1)
- A mixed-integer problem with one continuous and two integer dimensions

**Features:**
- find_min_global / find_max_global with evaluation or runtime budgets
- Comparison of the lipo, random and (optional) thompson backends
- Uniform grid search as a reference

Usage:
    python global_optimization_example.py --backend lipo --n-iter 50
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import argparse
import logging
import math
from typing import Callable, List, Tuple

import numpy as np

from lipoTensor import GlobalOptimizer, OptimizationResult, find_min_global


def damped_sine(x: np.ndarray) -> float:
    """(1/x) sin(x^2), with the removable singularity at 0 filled in."""
    if x[0] == 0.0:
        return 0.0
    return math.sin(x[0] ** 2) / x[0]


def rosenbrock(x: np.ndarray) -> float:
    return (1.0 - x[0]) ** 2 + 100.0 * (x[1] - x[0] ** 2) ** 2


def mixed_integer(x: np.ndarray) -> float:
    """Quadratic bowl over one continuous and two integer variables."""
    return (x[0] - 0.7) ** 2 + (x[1] - 3.0) ** 2 + 0.5 * abs(x[2] + 2.0)


PROBLEMS = {
    "damped_sine": (damped_sine, [[0.0, 3.5]]),
    "rosenbrock": (rosenbrock, [[-3.1, 6.51], [-5.2, 3.3]]),
    "mixed_integer": (
        mixed_integer,
        [[-2.0, 2.0], {"bounds": [0, 6], "is_integer": True}, {"bounds": [-5, 5], "is_integer": True}],
    ),
}


def grid_search(objective: Callable, domain: List, n_evals: int) -> Tuple[Tuple[float, ...], float]:
    """Minimize on a uniform grid with about n_evals points."""
    n_dim = len(domain)
    per_dim = max(2, int(round(n_evals ** (1.0 / n_dim))))

    axes = []
    for spec in domain:
        if isinstance(spec, dict):
            lo, hi = spec["bounds"]
            axes.append(np.arange(lo, hi + 1, dtype=np.float64))
        else:
            axes.append(np.linspace(spec[0], spec[1], per_dim))

    grid = np.stack(np.meshgrid(*axes, indexing="ij"), axis=-1).reshape(-1, n_dim)
    values = np.array([objective(x) for x in grid])
    best = int(np.argmin(values))
    return tuple(grid[best].tolist()), float(values[best])


def run_backend(backend: str, objective: Callable, domain: List, args) -> OptimizationResult:
    """Minimize with one backend and print the result."""
    options = {"seed": args.seed}
    if args.runtime_ms is not None:
        options["max_runtime_ms"] = args.runtime_ms
    else:
        options["max_iterations"] = args.n_iter

    optimizer = GlobalOptimizer(backend=backend, verbose=args.verbose)
    result = optimizer.minimize(objective, domain, options)

    print(f"  {backend:>8}: y = {result.y: .10f} at x = {np.round(result.x, 6).tolist()}")
    print(f"            {result.n_evaluations} evaluations, {result.elapsed_ms:.1f} ms "
          f"({result.termination.value})")
    return result


def main():
    """Main function to run the backend comparison."""
    parser = argparse.ArgumentParser(
        description="Global Optimization of Black-Box Functions"
    )
    parser.add_argument(
        "--backend",
        type=str,
        default="all",
        choices=["all", "auto", "lipo", "random", "thompson"],
        help="Search backend to run (default: all)"
    )
    parser.add_argument(
        "--problem",
        type=str,
        default="all",
        choices=["all"] + list(PROBLEMS),
        help="Test problem (default: all)"
    )
    parser.add_argument(
        "--n-iter",
        type=int,
        default=100,
        help="Objective evaluations per run (default: 100)"
    )
    parser.add_argument(
        "--runtime-ms",
        type=float,
        default=None,
        help="Wall-clock budget per run in ms, replaces --n-iter"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=0,
        help="Seed for the search backends (default: 0)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print optimizer progress"
    )

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    print("=" * 70)
    print("Global Optimization of Black-Box Functions")
    print("=" * 70)

    print(f"\nParameters:")
    print(f"  Backend = {args.backend}")
    print(f"  Problem = {args.problem}")
    if args.runtime_ms is not None:
        print(f"  Runtime budget = {args.runtime_ms} ms")
    else:
        print(f"  Evaluations = {args.n_iter}")
    print(f"  Seed = {args.seed}")

    if args.backend == "all":
        backends = ["lipo", "random"]
        try:
            import sklearn  # noqa: F401
            backends.append("thompson")
        except ImportError:
            print("  (scikit-learn not installed, skipping thompson)")
    else:
        backends = [args.backend]

    problems = PROBLEMS if args.problem == "all" else {args.problem: PROBLEMS[args.problem]}

    for name, (objective, domain) in problems.items():
        print("\n" + "=" * 70)
        print(f"Problem: {name}")
        print("=" * 70)

        for backend in backends:
            run_backend(backend, objective, domain, args)

        grid_x, grid_y = grid_search(objective, domain, args.n_iter)
        print(f"  {'grid':>8}: y = {grid_y: .10f} at x = {np.round(grid_x, 6).tolist()}")

    # Small evaluation budget
    print("\n" + "=" * 70)
    print("Small budget: (1/x) sin(x^2), 10 evaluations")
    print("=" * 70)
    result = find_min_global(damped_sine, [[0.0, 3.5]], {"max_iterations": 10})
    print(f"  x = {result.x[0]:.3f}, y = {result.y:.3f}")

    print("\nDone!")


if __name__ == "__main__":
    main()
