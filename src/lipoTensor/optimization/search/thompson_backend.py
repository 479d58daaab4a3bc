"""Gaussian-process Thompson sampling backend.

Uses Thompson sampling with scikit-learn's Gaussian Process as the
surrogate model: after the initial design the GP is refitted on every
observation, a posterior sample is drawn at a batch of Latin hypercube
candidates, and the candidate with the largest sampled value is proposed.

Dependencies:
    - scikit-learn (optional, install with: pip install lipoTensor[gp])

LEVEL 7 backend module.
"""

import logging
from typing import Optional, Union

import numpy as np
import torch

from lipoTensor.core.errors import SearchError
from lipoTensor.optimization.search.base import GlobalSearch
from lipoTensor.optimization.search.utils import latin_hypercube_sampling

logger = logging.getLogger(__name__)


def require_sklearn() -> None:
    """Raise ImportError with an install hint when scikit-learn is missing."""
    try:
        import sklearn  # noqa: F401
    except ImportError:
        raise ImportError(
            "Thompson backend requested but scikit-learn is not installed. "
            "Install with: pip install scikit-learn"
        )


class ThompsonSearch(GlobalSearch):
    """Thompson sampling with a scikit-learn Gaussian Process.

    Attributes:
        n_candidates: Candidates at which the posterior is sampled per step
        length_scale: Initial RBF length scale in unit-cube coordinates
    """

    name = "thompson"

    def __init__(
        self,
        seed: int = 0,
        device: Optional[Union[str, torch.device]] = None,
        n_init: Optional[int] = None,
        lattice_limit: int = 5000,
        n_candidates: int = 500,
        length_scale: float = 0.2,
    ):
        """Initialize the backend.

        Args:
            seed: Seed for the generators and the GP optimizer restarts
            device: Device for the search tensors (CPU by default)
            n_init: Size of the initial design, default max(3, n_dim + 1)
            lattice_limit: Enumerate fully integer domains up to this many points
            n_candidates: Candidates at which the posterior is sampled per step
            length_scale: Initial RBF length scale in unit-cube coordinates

        Raises:
            ImportError: If scikit-learn is not installed
        """
        require_sklearn()
        super().__init__(seed=seed, device=device, n_init=n_init, lattice_limit=lattice_limit)
        self.n_candidates = n_candidates
        self.length_scale = length_scale
        self._rng: Optional[np.random.RandomState] = None

    def _on_initialize(self):
        # Persistent RNG so every step draws a different posterior sample
        self._rng = np.random.RandomState(self.seed)

    def _candidates(self) -> torch.Tensor:
        if self.lattice is not None:
            candidates = self.open_lattice_points()
            if candidates.shape[0] > self.n_candidates:
                keep = torch.randperm(candidates.shape[0], generator=self.generator)[: self.n_candidates]
                candidates = candidates[keep.to(self.device)]
            return candidates

        u = latin_hypercube_sampling(self.n_candidates, self.n_dim, self.generator, self.device)
        candidates = self._snap(self._from_unit(u))
        if bool(self.is_integer.any()):
            evaluated = torch.cdist(candidates, self.X_observed).min(dim=1).values == 0
            candidates = candidates[~evaluated]
        return candidates

    def propose_next(self) -> torch.Tensor:
        """Propose the candidate with the largest posterior sample."""
        from sklearn.gaussian_process import GaussianProcessRegressor
        from sklearn.gaussian_process.kernels import RBF, ConstantKernel as C

        self._require_initialized()
        x = self._next_initial_point()
        if x is not None:
            return x
        if self.lattice_exhausted:
            raise SearchError("Every point of the integer domain has been evaluated")

        candidates = self._candidates()
        if candidates.shape[0] == 0:
            return self._random_point()

        X_np = self._to_unit(self.X_observed).cpu().numpy()
        y_np = self.y_observed.cpu().numpy()

        # Fit GP
        kernel = C(1.0) * RBF(length_scale=self.length_scale)
        gp = GaussianProcessRegressor(
            kernel=kernel, alpha=1e-8, normalize_y=True, random_state=self.seed
        )
        gp.fit(X_np, y_np)

        # Thompson sampling: sample from the posterior at the candidates
        posterior_mean, posterior_std = gp.predict(
            self._to_unit(candidates).cpu().numpy(), return_std=True
        )
        posterior_sample = posterior_mean + posterior_std * self._rng.randn(len(posterior_mean))

        best_idx = int(np.argmax(posterior_sample))
        logger.debug("Thompson step: posterior sample %.6g", posterior_sample[best_idx])
        return candidates[best_idx].clone()


__all__ = ["ThompsonSearch", "require_sklearn"]
