"""
Transports the bounce engine circulates the ball over.

Every operation is blocking. ``broadcast`` and ``barrier`` are collective and
need every rank of the group to take part. Backend failures are re-raised as
:class:`TransportError`; nothing is retried.
"""

from __future__ import annotations

from typing import Optional

import torch
import torch.distributed as dist

from .errors import TransportError


class Transport:
    """Interface shared by the torch.distributed and MPI backends."""

    rank: int
    size: int

    def send(self, buffer: torch.Tensor, dst: int) -> None:
        raise NotImplementedError

    def recv(self, buffer: torch.Tensor, src: int) -> int:
        """Receive into ``buffer`` from ``src``; returns the sender's rank."""
        raise NotImplementedError

    def broadcast(self, buffer: torch.Tensor, src: int) -> None:
        raise NotImplementedError

    def barrier(self) -> None:
        raise NotImplementedError


class TorchDistTransport(Transport):
    """Point-to-point and collectives over an initialized torch.distributed group."""

    def __init__(self, group: Optional[dist.ProcessGroup] = None):
        if not dist.is_initialized():
            raise RuntimeError(
                "torch.distributed must be initialized before creating TorchDistTransport"
            )
        self.group = group
        self.rank = dist.get_rank(group)
        self.size = dist.get_world_size(group)

    def send(self, buffer, dst):
        try:
            dist.send(buffer, dst=dst, group=self.group)
        except RuntimeError as e:
            raise TransportError(f"send from {self.rank} to {dst} failed: {e}") from e

    def recv(self, buffer, src):
        try:
            return dist.recv(buffer, src=src, group=self.group)
        except RuntimeError as e:
            raise TransportError(f"recv in {self.rank} from {src} failed: {e}") from e

    def broadcast(self, buffer, src):
        try:
            dist.broadcast(buffer, src=src, group=self.group)
        except RuntimeError as e:
            raise TransportError(
                f"broadcast from {src} failed in rank {self.rank}: {e}"
            ) from e

    def barrier(self):
        try:
            dist.barrier(group=self.group)
        except RuntimeError as e:
            raise TransportError(f"barrier failed in rank {self.rank}: {e}") from e


class MpiTransport(Transport):
    """
    Same operations over mpi4py, for runs launched with ``mpirun``.

    The ball is handed to MPI as a byte view of the CPU tensor, so no copy is
    made on either side.
    """

    def __init__(self, comm=None):
        from mpi4py import MPI

        self._mpi = MPI
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.rank = self.comm.Get_rank()
        self.size = self.comm.Get_size()

    def _view(self, buffer: torch.Tensor):
        return [buffer.numpy(), self._mpi.BYTE]

    def send(self, buffer, dst):
        try:
            self.comm.Send(self._view(buffer), dest=dst, tag=0)
        except self._mpi.Exception as e:
            raise TransportError(f"send from {self.rank} to {dst} failed: {e}") from e

    def recv(self, buffer, src):
        status = self._mpi.Status()
        try:
            self.comm.Recv(self._view(buffer), source=src, tag=0, status=status)
        except self._mpi.Exception as e:
            raise TransportError(f"recv in {self.rank} from {src} failed: {e}") from e
        return status.Get_source()

    def broadcast(self, buffer, src):
        try:
            self.comm.Bcast(self._view(buffer), root=src)
        except self._mpi.Exception as e:
            raise TransportError(
                f"broadcast from {src} failed in rank {self.rank}: {e}"
            ) from e

    def barrier(self):
        try:
            self.comm.Barrier()
        except self._mpi.Exception as e:
            raise TransportError(f"barrier failed in rank {self.rank}: {e}") from e
