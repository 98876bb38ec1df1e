"""
The bounce protocol engine.

A strategy circulates the ball among all ranks one unit at a time until the
round limit is reached or the local termination flag is observed. The flag is
only polled between communication calls, never while a message is in flight:

* at the top of every loop iteration, on every rank, and
* inside a ring relay step, right after the root's send or a follower's
  receive, so a terminated rank never starts the second half of the step.

Termination is process-local. Ranks that never see the signal keep running,
which for the collective broadcast means they block in the next broadcast.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Type

import torch

from .config import BounceConfig, BounceMethod
from .payload import allocate_ball
from .reporter import Reporter
from .termination import TerminationSignal
from .transport import Transport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BounceResult:
    """Outcome of one rank's run."""

    rank: int
    size: int
    method: BounceMethod
    rounds: int
    signum: int = 0

    @property
    def terminated(self) -> bool:
        return self.signum != 0


def started_round_line(round_: int) -> str:
    return f"Started round {round_}"


def early_termination_line(signum: int, round_: int, rank: int, size: int) -> str:
    return (
        f"Early termination on signal {signum} at round {round_} "
        f"in rank {rank} of {size}"
    )


class BounceStrategy:
    """
    Shared loop for the circulation strategies.

    Subclasses implement :meth:`step`, which circulates one unit and returns
    False if it stopped part-way because termination was observed.
    """

    method: BounceMethod

    def __init__(
        self,
        config: BounceConfig,
        transport: Transport,
        ball: torch.Tensor,
        termination: TerminationSignal,
        reporter: Optional[Reporter] = None,
    ):
        self.config = config
        self.transport = transport
        self.ball = ball
        self.termination = termination
        self.reporter = reporter
        self.rank = transport.rank
        self.size = transport.size
        self.round = 0

    @property
    def is_root(self) -> bool:
        return self.rank == self.config.root

    def step(self) -> bool:
        raise NotImplementedError

    def run(self) -> BounceResult:
        while True:
            if self.termination.is_set:
                break
            if self.config.round_limit_reached(self.round):
                break
            if not self.step():
                break

        if self.termination.is_set:
            self._report_termination()
        logger.info(
            "ball-passing loop has exited in rank %d of %d", self.rank, self.size
        )
        return BounceResult(
            rank=self.rank,
            size=self.size,
            method=self.method,
            rounds=self.round,
            signum=self.termination.signum,
        )

    def _emit(self, text: str) -> None:
        if self.is_root and self.reporter is not None:
            self.reporter.emit(text)

    def _report_round_started(self) -> None:
        self._emit(started_round_line(self.round))

    def _report_termination(self) -> None:
        signum = self.termination.signum
        logger.warning("caught signal %d", signum)
        line = early_termination_line(signum, self.round, self.rank, self.size)
        if self.is_root:
            self._emit(line)
        else:
            logger.info(line)


class RingRelay(BounceStrategy):
    """
    Pass the ball around the ring of ranks, ``rank -> rank + 1 (mod N)``.

    The root injects the ball and then waits for it to come back; every other
    rank waits for the ball and then forwards it. Each rank's round counter
    counts how many times the ball has passed through it.
    """

    method = BounceMethod.RING_RELAY

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.successor = (self.rank + 1) % self.size
        self.predecessor = (self.rank - 1) % self.size

    def step(self) -> bool:
        if self.is_root:
            return self._lead()
        return self._follow()

    def _lead(self) -> bool:
        self._report_round_started()
        self.transport.send(self.ball, self.successor)
        logger.info("[*] Ball sent from %d to %d", self.rank, self.successor)
        # Stop with the ball still out on the ring; nobody will hand it back.
        if self.termination.is_set:
            return False
        self.transport.recv(self.ball, self.predecessor)
        logger.info("[*] Ball received from %d to %d", self.predecessor, self.rank)
        self.round += 1
        return True

    def _follow(self) -> bool:
        self.transport.recv(self.ball, self.predecessor)
        logger.info("[ ] Ball received from %d to %d", self.predecessor, self.rank)
        if self.termination.is_set:
            return False
        self.transport.send(self.ball, self.successor)
        logger.info("[ ] Ball sent from %d to %d", self.rank, self.successor)
        self.round += 1
        return True


class RotatingBroadcast(BounceStrategy):
    """
    Broadcast the ball from a source that rotates through every rank.

    The source starts at the designated root and advances by one after each
    broadcast; a round is one full rotation back to the root. All ranks
    derive the same source sequence, so no coordination beyond the broadcast
    itself is needed.
    """

    method = BounceMethod.ROTATING_BROADCAST

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.current_root = self.config.root

    def step(self) -> bool:
        if self.current_root == self.config.root:
            self._report_round_started()
        if self.rank == self.current_root:
            logger.info("[*] Ball sent from %d", self.rank)
        self.transport.broadcast(self.ball, self.current_root)
        if self.rank != self.current_root:
            logger.info("[ ] Ball received in %d", self.rank)
        self.current_root = (self.current_root + 1) % self.size
        if self.current_root == self.config.root:
            self.round += 1
        return True


STRATEGIES: Dict[BounceMethod, Type[BounceStrategy]] = {
    BounceMethod.RING_RELAY: RingRelay,
    BounceMethod.ROTATING_BROADCAST: RotatingBroadcast,
}


def check_preconditions(config: BounceConfig, world_size: int) -> None:
    if config.root >= world_size:
        raise ValueError(
            f"root rank {config.root} is outside a group of {world_size} ranks"
        )
    if (
        config.method is BounceMethod.RING_RELAY
        and config.rounds != 0
        and world_size < 2
    ):
        raise ValueError("ring relay needs at least 2 ranks")


def run_bounce(
    config: BounceConfig,
    transport: Transport,
    termination: TerminationSignal,
    reporter: Optional[Reporter] = None,
) -> BounceResult:
    """
    Run one bounce on this rank.

    Allocates the ball, meets every other rank at a start barrier, circulates
    the ball unless ``config.rounds`` is zero, releases the ball and closes the
    root's output, then meets them again at an end barrier. Every rank must
    call this with the same configuration.

    Raises:
        BallAllocationError: the ball could not be allocated. The other ranks
            will be left waiting at the start barrier.
        TransportError: any communication call failed.
    """
    rank, size = transport.rank, transport.size
    check_preconditions(config, size)

    logger.debug("allocating the ball in rank %d of %d", rank, size)
    ball = allocate_ball(config.size)
    logger.info("ball allocated in rank %d of %d", rank, size)

    transport.barrier()
    logger.info("start barrier reached for rank %d of %d", rank, size)

    if config.rounds != 0:
        result = STRATEGIES[config.method](
            config, transport, ball, termination, reporter
        ).run()
    else:
        result = BounceResult(
            rank=rank,
            size=size,
            method=config.method,
            rounds=0,
            signum=termination.signum,
        )

    del ball
    logger.info("ball deallocated in rank %d of %d", rank, size)
    if reporter is not None:
        reporter.close()

    transport.barrier()
    logger.info("end barrier reached for rank %d of %d", rank, size)
    return result
