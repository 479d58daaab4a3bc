#!/usr/bin/env python3
"""
Test the Lipschitz upper bound used by the MaxLIPO step.

Tests include:
1. Closed-form two-point fit
2. The bound interpolates the observations
3. The bound dominates a Lipschitz function
4. Pair subsampling keeps the newest point's constraints
5. Degenerate observations (constant values, coincident points)
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import torch

from lipoTensor.optimization.search.upper_bound import LipschitzUpperBound


def _generator(seed=0):
    return torch.Generator().manual_seed(seed)


def test_two_point_fit():
    """Test the fit on two points in one dimension."""
    print("=" * 70)
    print("Test 1: Two-Point Fit")
    print("=" * 70)

    points = torch.tensor([[0.0], [1.0]], dtype=torch.float64)
    values = torch.tensor([0.0, 2.0], dtype=torch.float64)
    bound = LipschitzUpperBound().fit(points, values)

    assert torch.allclose(bound.k, torch.tensor([4.0], dtype=torch.float64))
    at = bound(torch.tensor([[0.5], [0.0], [1.0]], dtype=torch.float64))
    assert torch.allclose(at, torch.tensor([1.0, 0.0, 2.0], dtype=torch.float64))

    print(f"  ✅ k = {bound.k.tolist()}")


def test_interpolates_observations():
    """Test U(u_i) == y_i when every pair constraint is used."""
    print("\n" + "=" * 70)
    print("Test 2: Interpolation")
    print("=" * 70)

    g = _generator(1)
    points = torch.rand((30, 3), generator=g, dtype=torch.float64)
    values = torch.sin(4.0 * points).sum(dim=1) + points[:, 0] ** 2
    bound = LipschitzUpperBound().fit(points, values, g)

    assert bound.k.shape == (3,)
    assert bool((bound.k > 0).all())
    assert torch.allclose(bound(points), values, atol=1e-9)

    # Every pairwise constraint holds
    diff_u = (points.unsqueeze(0) - points.unsqueeze(1)) ** 2
    diff_y = (values.unsqueeze(0) - values.unsqueeze(1)) ** 2
    assert bool(((diff_u @ bound.k) >= diff_y * (1 - 1e-9) - 1e-12).all())

    print(f"  ✅ k = {[round(v, 3) for v in bound.k.tolist()]}")


def test_dominates_lipschitz_function():
    """Test that the bound lies above a linear function everywhere."""
    print("\n" + "=" * 70)
    print("Test 3: Upper Bound Property")
    print("=" * 70)

    g = _generator(2)
    points = torch.rand((12, 1), generator=g, dtype=torch.float64)
    values = 3.0 * points[:, 0]
    bound = LipschitzUpperBound().fit(points, values, g)

    assert float(bound.k[0]) >= 9.0 * (1 - 1e-9)

    grid = torch.linspace(0, 1, 201, dtype=torch.float64).unsqueeze(1)
    assert bool((bound(grid) >= 3.0 * grid[:, 0] - 1e-9).all())

    print(f"  ✅ k = {bound.k.item():.6f} >= 9")


def test_pair_subsampling():
    """Test that subsampled fits still satisfy the newest point's constraints."""
    print("\n" + "=" * 70)
    print("Test 4: Pair Subsampling")
    print("=" * 70)

    g = _generator(3)
    points = torch.rand((80, 2), generator=g, dtype=torch.float64)
    values = torch.cos(3.0 * points[:, 0]) * points[:, 1]
    bound = LipschitzUpperBound(max_pairs=200).fit(points, values, g)

    newest_u = ((points[:-1] - points[-1]) ** 2) @ bound.k
    newest_y = (values[:-1] - values[-1]) ** 2
    assert bool((newest_u >= newest_y * (1 - 1e-9) - 1e-12).all())

    # The bound never exceeds an observation at its own point
    assert bool((bound(points) <= values + 1e-12).all())

    print("  ✅ Newest point's pairs always used")


def test_degenerate_observations():
    """Test constant values and coincident points."""
    print("\n" + "=" * 70)
    print("Test 5: Degenerate Observations")
    print("=" * 70)

    points = torch.tensor([[0.1, 0.2], [0.7, 0.4], [0.3, 0.9]], dtype=torch.float64)
    bound = LipschitzUpperBound().fit(points, torch.full((3,), 2.0, dtype=torch.float64))
    assert bound.k.tolist() == [0.0, 0.0]
    assert torch.allclose(bound(torch.rand((5, 2), dtype=torch.float64)),
                          torch.full((5,), 2.0, dtype=torch.float64))

    same = torch.tensor([[0.5], [0.5]], dtype=torch.float64)
    bound = LipschitzUpperBound().fit(same, torch.tensor([1.0, 3.0], dtype=torch.float64))
    assert bound.k.tolist() == [0.0]

    single = LipschitzUpperBound().fit(same[:1], torch.tensor([1.0], dtype=torch.float64))
    assert single.k.tolist() == [0.0]

    print("  ✅ Degenerate observations give a flat bound")


def main():
    print("\n" + "=" * 70)
    print("Lipschitz Upper Bound Tests")
    print("=" * 70)

    tests = [
        ("Two-Point Fit", test_two_point_fit),
        ("Interpolation", test_interpolates_observations),
        ("Upper Bound Property", test_dominates_lipschitz_function),
        ("Pair Subsampling", test_pair_subsampling),
        ("Degenerate Observations", test_degenerate_observations),
    ]

    results = []
    for test_name, test_func in tests:
        try:
            test_func()
            results.append((test_name, True))
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
        if passed:
            print(f"  ✅ PASSED: {test_name}")
        else:
            print(f"  ❌ FAILED: {test_name}")
            failed += 1

    print(f"\nTotal: {len(results)} tests, {failed} failed")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
