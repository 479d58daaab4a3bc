#!/usr/bin/env python3
"""
Test the global search backends directly.

This module drives each backend through propose_next / report_result
without the driver:
- MaxLipoSearch (MaxLIPO + trust region)
- RandomSearch (uniform random baseline)
- ThompsonSearch (scikit-learn Gaussian Process, optional)

Tests include:
1. Backend selection by name
2. Initial design (centre first, then Latin hypercube)
3. Proposals honour bounds and integrality
4. Determinism by seed
5. Exhaustive lattice search without duplicates
6. Convergence rules of the MaxLIPO backend
7. Best tracking and protocol errors
8. Thompson sampling (skipped without scikit-learn)
9. Sampling utilities
"""

import math
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
import torch

from lipoTensor.core import InvalidOptions, SearchError
from lipoTensor.optimization.domain import normalize_domain
from lipoTensor.optimization.search import (
    MaxLipoSearch,
    RandomSearch,
    get_search,
    resolve_backend,
)
from lipoTensor.optimization.search.utils import (
    latin_hypercube_sampling,
    lattice_points,
    lattice_size,
    round_half_away,
    snap_to_domain,
)

MIXED_DOMAIN = [[-2.0, 3.0], {"bounds": [0, 4], "is_integer": True}, [10.0, 10.5]]


def _objective(x):
    return float(-((x[0] - 1.0) ** 2) - (x[1] - 3.0) ** 2 + torch.sin(4.0 * x[2]))


def _drive(search, domain, n_steps, objective=_objective, epsilon=0.0):
    search.initialize(domain.lower, domain.upper, domain.is_integer, epsilon)
    proposals = []
    for _ in range(n_steps):
        if search.has_converged():
            break
        x = search.propose_next()
        proposals.append(x.clone())
        search.report_result(x, objective(x))
    return proposals


def test_get_search():
    """Test backend selection by name."""
    print("=" * 70)
    print("Test 1: Backend Selection")
    print("=" * 70)

    assert isinstance(get_search("auto"), MaxLipoSearch)
    assert isinstance(get_search("lipo", seed=4), MaxLipoSearch)
    assert isinstance(get_search("random"), RandomSearch)

    search = get_search("lipo", seed=9, num_random_samples=100, initial_radius=0.1)
    assert search.seed == 9
    assert search.num_random_samples == 100
    assert search.initial_radius == 0.1

    with pytest.raises(InvalidOptions):
        get_search("nelder-mead")
    assert resolve_backend("auto") == "lipo"
    assert resolve_backend("random") == "random"
    with pytest.raises(InvalidOptions) as info:
        resolve_backend("nelder-mead")
    assert info.value.option == "backend"
    with pytest.raises(TypeError):
        get_search("random", num_random_samples=10)

    print("  ✅ Backends selected by name")


def test_initial_design():
    """Test that the initial design starts at the domain centre."""
    print("\n" + "=" * 70)
    print("Test 2: Initial Design")
    print("=" * 70)

    domain = normalize_domain(MIXED_DOMAIN)
    search = MaxLipoSearch(seed=0)
    proposals = _drive(search, domain, 4)

    assert search.n_init == 4
    # Centre of [0, 4] is 2; centre of the others is the midpoint
    assert proposals[0].tolist() == [0.5, 2.0, 10.25]
    assert search.n_observed == 4
    assert not search.in_initial_phase

    search = MaxLipoSearch(n_init=7)
    search.initialize(domain.lower, domain.upper, domain.is_integer)
    assert search.n_init == 7
    with pytest.raises(ValueError):
        MaxLipoSearch(n_init=0)

    print(f"  ✅ First point is the centre: {proposals[0].tolist()}")


def _check_proposals(backend):
    domain = normalize_domain(MIXED_DOMAIN)
    search = get_search(backend, seed=1, num_random_samples=500) if backend == "lipo" \
        else get_search(backend, seed=1)
    proposals = _drive(search, domain, 40)

    assert len(proposals) == 40
    for x in proposals:
        assert x.dtype == torch.float64
        assert domain.contains(x), f"{x.tolist()} outside the domain"


@pytest.mark.parametrize("backend", ["lipo", "random"])
def test_proposals_in_domain(backend):
    """Test that every proposal lies in the box with integral integer dimensions."""
    _check_proposals(backend)


def test_proposals_honour_domain():
    """Standalone run of the domain checks for every built-in backend."""
    print("\n" + "=" * 70)
    print("Test 3: Proposals Honour the Domain")
    print("=" * 70)

    for backend in ("lipo", "random"):
        _check_proposals(backend)

    print("  ✅ All proposals inside the domain")


def test_determinism():
    """Test that equal seeds replay and different seeds diverge."""
    print("\n" + "=" * 70)
    print("Test 4: Determinism")
    print("=" * 70)

    domain = normalize_domain([[-3.0, 3.0], [0.0, 1.0]])

    def objective(x):
        return float(-((x[0] - 1.0) ** 2) - x[1])

    first = _drive(MaxLipoSearch(seed=3), domain, 30, objective=objective)
    second = _drive(MaxLipoSearch(seed=3), domain, 30, objective=objective)
    other = _drive(MaxLipoSearch(seed=4), domain, 30, objective=objective)

    assert len(first) == len(second) == len(other) == 30

    assert all(torch.equal(a, b) for a, b in zip(first, second))
    assert not all(torch.equal(a, b) for a, b in zip(first, other))

    # Re-initializing the same instance replays the run
    search = MaxLipoSearch(seed=3)
    _drive(search, domain, 10, objective=objective)
    replay = _drive(search, domain, 30, objective=objective)
    assert len(replay) == 30
    assert all(torch.equal(a, b) for a, b in zip(first, replay))

    print("  ✅ Runs are reproducible by seed")


def test_lattice_search():
    """Test that integer domains are searched without duplicates until exhausted."""
    print("\n" + "=" * 70)
    print("Test 5: Lattice Search")
    print("=" * 70)

    domain = normalize_domain([
        {"bounds": [0, 3], "is_integer": True},
        {"bounds": [-1, 1], "is_integer": True},
    ])

    def objective(x):
        return float(-(x[0] - 2.0) ** 2 - x[1] ** 2)

    for backend in ("lipo", "random"):
        search = get_search(backend, seed=2)
        proposals = _drive(search, domain, 100, objective=objective)

        keys = [tuple(x.tolist()) for x in proposals]
        assert len(keys) == len(set(keys)), f"{backend} proposed a point twice"
        assert len(keys) <= 12
        assert search.has_converged()
        assert search.best_x.tolist() == [2.0, 0.0]
        assert search.best_y == 0.0

    # Once every point is evaluated there is nothing left to propose
    search = RandomSearch(seed=0)
    _drive(search, domain, 100, objective=objective)
    assert search.lattice_exhausted
    with pytest.raises(SearchError):
        search.propose_next()

    print("  ✅ Lattice searched without duplicates")


def test_convergence_rules():
    """Test when MaxLipoSearch may report convergence."""
    print("\n" + "=" * 70)
    print("Test 6: Convergence Rules")
    print("=" * 70)

    domain = normalize_domain([[-3.0, 3.0]])
    search = MaxLipoSearch(seed=0)
    search.initialize(domain.lower, domain.upper, domain.is_integer, 0.0)
    assert not search.has_converged()

    # epsilon = 0 on a continuous domain never certifies convergence
    _drive(search, domain, 40, objective=lambda x: math.sin(float(x[0])))
    assert not search.has_converged()
    assert search.n_observed == 40

    # On a lattice, epsilon does not stop the run while the top bound exceeds the best value
    lattice = normalize_domain([
        {"bounds": [1, 3], "is_integer": True},
        {"bounds": [0, 1], "is_integer": True},
        {"bounds": [-1, 2], "is_integer": True},
    ])
    search = MaxLipoSearch(seed=0)
    proposals = _drive(search, lattice, 10, objective=lambda x: float(x.sum()), epsilon=1.0)
    assert search.best_x.tolist() == [3.0, 1.0, 2.0]
    assert search.best_y == 6.0
    assert len(proposals) <= 10
    keys = [tuple(x.tolist()) for x in proposals]
    assert len(keys) == len(set(keys))

    print("  ✅ No early stop without an accuracy target")


def test_best_tracking_and_errors():
    """Test first-observed-wins ties and protocol errors."""
    print("\n" + "=" * 70)
    print("Test 7: Best Tracking and Protocol Errors")
    print("=" * 70)

    search = RandomSearch(seed=0)
    with pytest.raises(SearchError):
        search.propose_next()

    domain = normalize_domain([[0.0, 1.0], [0.0, 1.0]])
    search.initialize(domain.lower, domain.upper, domain.is_integer)
    assert search.best_x is None and search.best_y is None

    search.report_result(torch.tensor([0.1, 0.1], dtype=torch.float64), 1.0)
    search.report_result(torch.tensor([0.2, 0.2], dtype=torch.float64), 1.0)
    search.report_result(torch.tensor([0.3, 0.3], dtype=torch.float64), 0.5)
    assert search.best_x.tolist() == [0.1, 0.1]
    assert search.best_y == 1.0
    assert search.X_observed.shape == (3, 2)
    assert search.y_observed.tolist() == [1.0, 1.0, 0.5]
    assert search.is_evaluated(torch.tensor([0.2, 0.2], dtype=torch.float64))

    with pytest.raises(SearchError):
        search.report_result(torch.tensor([0.1], dtype=torch.float64), 0.0)

    print("  ✅ First-observed best kept, protocol errors raised")


def test_thompson_backend():
    """Test the scikit-learn Thompson sampling backend."""
    print("\n" + "=" * 70)
    print("Test 8: Thompson Backend")
    print("=" * 70)

    pytest.importorskip("sklearn")

    domain = normalize_domain(MIXED_DOMAIN)
    first = _drive(get_search("thompson", seed=5, n_candidates=200), domain, 12)
    second = _drive(get_search("thompson", seed=5, n_candidates=200), domain, 12)

    assert len(first) == 12
    for x in first:
        assert domain.contains(x)
    assert all(torch.equal(a, b) for a, b in zip(first, second))

    print("  ✅ Thompson proposals valid and reproducible")


def test_sampling_utilities():
    """Test rounding, snapping, LHS stratification and lattice enumeration."""
    print("\n" + "=" * 70)
    print("Test 9: Sampling Utilities")
    print("=" * 70)

    rounded = round_half_away(torch.tensor([0.5, 1.5, 2.5, -0.5, -1.49, 0.49], dtype=torch.float64))
    assert rounded.tolist() == [1.0, 2.0, 3.0, -1.0, -1.0, 0.0]

    lower = torch.tensor([0.0, -1.0], dtype=torch.float64)
    upper = torch.tensor([1.0, 2.0], dtype=torch.float64)
    is_integer = torch.tensor([False, True])
    snapped = snap_to_domain(torch.tensor([[1.7, 1.5], [-0.2, -3.0]], dtype=torch.float64),
                             lower, upper, is_integer)
    assert snapped.tolist() == [[1.0, 2.0], [0.0, -1.0]]

    g = torch.Generator().manual_seed(0)
    samples = latin_hypercube_sampling(10, 3, g)
    assert samples.shape == (10, 3)
    for d in range(3):
        strata = torch.floor(samples[:, d] * 10).to(torch.int64).sort().values
        assert strata.tolist() == list(range(10))

    assert lattice_size(lower, upper) == 2 * 4
    assert lattice_size(torch.zeros(3), torch.full((3,), 99.0), limit=1000) == 1001
    points = lattice_points(lower, upper)
    assert points.shape == (8, 2)
    assert points[0].tolist() == [0.0, -1.0]
    assert points[1].tolist() == [0.0, 0.0]
    assert lattice_points(torch.tensor([2.0]), torch.tensor([4.0])).tolist() == [[2.0], [3.0], [4.0]]

    print("  ✅ Utilities behave as documented")


def main():
    print("\n" + "=" * 70)
    print("Global Search Backend Tests")
    print("=" * 70)

    tests = [
        ("Backend Selection", test_get_search),
        ("Initial Design", test_initial_design),
        ("Proposals Honour the Domain", test_proposals_honour_domain),
        ("Determinism", test_determinism),
        ("Lattice Search", test_lattice_search),
        ("Convergence Rules", test_convergence_rules),
        ("Best Tracking and Protocol Errors", test_best_tracking_and_errors),
        ("Thompson Backend", test_thompson_backend),
        ("Sampling Utilities", test_sampling_utilities),
    ]

    results = []
    for test_name, test_func in tests:
        try:
            test_func()
            results.append((test_name, True))
        except pytest.skip.Exception as e:
            print(f"  ⚠️  Skipped: {e}")
            results.append((test_name, None))
        except Exception as e:
            print(f"\n❌ {test_name} FAILED: {e}")
            import traceback
            traceback.print_exc()
            results.append((test_name, False))

    print("\n" + "=" * 70)
    print("Test Summary")
    print("=" * 70)

    failed = 0
    for test_name, passed in results:
        if passed is True:
            print(f"  ✅ PASSED: {test_name}")
        elif passed is False:
            print(f"  ❌ FAILED: {test_name}")
            failed += 1
        else:
            print(f"  ⚠️  SKIPPED: {test_name}")

    print(f"\nTotal: {len(results)} tests, {failed} failed")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
