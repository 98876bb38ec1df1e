"""
Process bootstrap and teardown.

Ranks either come from an external launcher (``torchrun`` sets the ``env://``
variables, ``mpirun`` starts the MPI world) or are spawned locally with
:func:`parallel_launch`.
"""

import logging
from typing import Callable, Optional

import torch.distributed as dist
from torch.multiprocessing import spawn

from .log import rank_prefix, setup_logging
from .transport import MpiTransport, TorchDistTransport, Transport

logger = logging.getLogger(__name__)

DEFAULT_INIT_METHOD = "tcp://localhost:29500"
BACKENDS = ("gloo", "mpi")


def init_distributed(
    backend: str = "gloo",
    init_method: Optional[str] = None,
    rank: int = -1,
    world_size: int = -1,
) -> TorchDistTransport:
    """Initialize the default torch.distributed group and wrap it."""
    if not dist.is_initialized():
        logger.debug("calling init_process_group(backend=%s)", backend)
        dist.init_process_group(
            backend=backend,
            init_method=init_method or "env://",
            rank=rank,
            world_size=world_size,
        )
    return TorchDistTransport()


def init_transport(backend: str = "gloo", init_method: Optional[str] = None) -> Transport:
    if backend == "mpi":
        return MpiTransport()
    if backend == "gloo":
        return init_distributed(backend, init_method)
    raise ValueError(f"unknown backend: {backend!r}")


def teardown() -> None:
    """Destroy the torch.distributed group, if one is up. MPI finalizes at exit."""
    if dist.is_initialized():
        dist.destroy_process_group()


def _worker_parallel_launch(
    local_rank: int,
    world_size: int,
    init_method: str,
    verbosity: int,
    worker: Callable,
    *args,
) -> None:
    """Internal worker function for parallel launch."""
    transport = init_distributed("gloo", init_method, local_rank, world_size)

    # Setup logging with rank prefix
    setup_logging(verbosity, rank_prefix(local_rank, world_size))
    logger.info("startup complete for rank %d of %d", local_rank, world_size)

    try:
        worker(transport, *args)
    except Exception:
        logger.exception("Error in worker function of parallel_launch")
        raise
    finally:
        teardown()


def parallel_launch(
    nprocs: int,
    worker: Callable,
    *args,
    init_method: str = DEFAULT_INIT_METHOD,
    verbosity: int = 0,
) -> None:
    """
    Launch ``nprocs`` ranks on this machine using torch.multiprocessing.

    Each rank initializes a gloo group over ``init_method`` and calls
    ``worker(transport, *args)``. ``worker`` must be picklable, i.e. defined
    at module level.
    """
    spawn(
        _worker_parallel_launch,
        args=(nprocs, init_method, verbosity, worker) + args,
        nprocs=nprocs,
        join=True,
    )
