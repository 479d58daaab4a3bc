"""Device management for the search backends.

Search state (observed points, candidate batches, Lipschitz models) lives
on a torch device. CPU is the default; CUDA is opt-in through the device
argument of the optimizer and falls back to CPU when unavailable.

LEVEL 1 utility module.
"""

import logging
from typing import Optional, Union

import torch

logger = logging.getLogger(__name__)


def get_device(device: Optional[Union[str, torch.device]] = None) -> torch.device:
    """Resolve the device that holds a search's tensors.

    None means CPU. CUDA devices, given by name ("cuda", "cuda:1") or as a
    torch.device, fall back to CPU with a warning when no GPU is present.

    Raises:
        ValueError: For device names other than cpu and cuda

    Example:
        >>> get_device(), get_device("cpu")
        (device(type='cpu'), device(type='cpu'))
    """
    if device is None:
        return torch.device("cpu")

    if not isinstance(device, torch.device):
        try:
            device = torch.device(device)
        except (RuntimeError, TypeError) as e:
            raise ValueError(f"Unknown search device {device!r}, expected 'cpu' or 'cuda'") from e
    if device.type not in ("cpu", "cuda"):
        raise ValueError(f"Unknown search device {str(device)!r}, expected 'cpu' or 'cuda'")

    if device.type == "cuda" and not torch.cuda.is_available():
        logger.warning("Search device %s requested without CUDA support, using CPU", device)
        return torch.device("cpu")
    return device


__all__ = ["get_device"]
