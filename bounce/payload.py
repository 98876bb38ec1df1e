import torch

from .errors import BallAllocationError


def allocate_ball(size: int) -> torch.Tensor:
    """Allocate a contiguous CPU byte buffer of exactly ``size`` bytes."""
    try:
        return torch.ones(size, dtype=torch.uint8)
    except (RuntimeError, MemoryError) as e:
        raise BallAllocationError(size, e) from e
