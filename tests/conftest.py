"""
In-process stand-in for a group of ranks.

Each rank runs ``run_bounce`` in its own thread against a ``ThreadedTransport``.
Point-to-point messages travel through one queue per directed edge and the
collectives are built on ``threading.Barrier``. Every completed call is
recorded so tests can check ordering and that every send was received.
Blocking calls time out and raise ``TransportError`` instead of hanging.
"""

import collections
import io
import queue
import signal
import threading

import pytest

from bounce.errors import TransportError
from bounce.reporter import Reporter
from bounce.termination import TerminationSignal
from bounce.transport import Transport
from bounce.engine import run_bounce


class ThreadedGroup:
    def __init__(self, size, timeout=5.0):
        self.size = size
        self.timeout = timeout
        self.edges = {
            (src, dst): queue.Queue() for src in range(size) for dst in range(size)
        }
        self.barrier = threading.Barrier(size, timeout=timeout)
        self.bcast_barrier = threading.Barrier(size, timeout=timeout)
        self.bcast_slot = None
        self.log = []
        self.buffer_sizes = set()
        self._lock = threading.Lock()

    def record(self, rank, op, peer):
        with self._lock:
            self.log.append((rank, op, peer))

    def calls(self, rank=None, op=None):
        return [
            entry
            for entry in self.log
            if (rank is None or entry[0] == rank) and (op is None or entry[1] == op)
        ]

    def transports(self):
        return [ThreadedTransport(self, rank) for rank in range(self.size)]


class ThreadedTransport(Transport):
    def __init__(self, group, rank):
        self.group = group
        self.rank = rank
        self.size = group.size
        self.counts = collections.Counter()
        self._triggers = {}

    def signal_after(self, op, count, termination, signum=signal.SIGUSR2):
        """Set ``termination`` once the ``count``-th ``op`` call has completed."""
        self._triggers[op] = (count, termination, signum)

    def _done(self, op, peer, buffer=None):
        self.group.record(self.rank, op, peer)
        if buffer is not None:
            self.group.buffer_sizes.add(buffer.numel())
        self.counts[op] += 1
        trigger = self._triggers.get(op)
        if trigger is not None and self.counts[op] == trigger[0]:
            trigger[1].set(trigger[2])

    def _wait(self, barrier):
        try:
            barrier.wait()
        except threading.BrokenBarrierError:
            raise TransportError(f"collective timed out in rank {self.rank}") from None

    def send(self, buffer, dst):
        self.group.edges[(self.rank, dst)].put(buffer.clone())
        self._done("send", dst, buffer)

    def recv(self, buffer, src):
        try:
            data = self.group.edges[(src, self.rank)].get(timeout=self.group.timeout)
        except queue.Empty:
            raise TransportError(f"recv in {self.rank} from {src} timed out") from None
        buffer.copy_(data)
        self._done("recv", src, buffer)
        return src

    def broadcast(self, buffer, src):
        if self.rank == src:
            self.group.bcast_slot = buffer.clone()
        self._wait(self.group.bcast_barrier)
        if self.rank != src:
            buffer.copy_(self.group.bcast_slot)
        self._wait(self.group.bcast_barrier)
        self._done("broadcast", src, buffer)

    def barrier(self):
        self._wait(self.group.barrier)
        self._done("barrier", None)


class GroupRun:
    def __init__(self, group, transports, terminations, output):
        self.group = group
        self.transports = transports
        self.terminations = terminations
        self.output = output
        self.results = {}
        self.errors = {}

    @property
    def lines(self):
        return self.output.getvalue().splitlines()

    def run(self, config):
        def target(rank):
            reporter = Reporter(self.output) if rank == config.root else None
            try:
                self.results[rank] = run_bounce(
                    config, self.transports[rank], self.terminations[rank], reporter
                )
            except Exception as e:
                self.errors[rank] = e

        threads = [
            threading.Thread(target=target, args=(rank,), daemon=True)
            for rank in range(self.group.size)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=self.group.timeout * 4)
        return self


@pytest.fixture
def make_group():
    """Return a factory building a GroupRun over ``size`` threaded ranks."""

    def factory(size, timeout=5.0):
        group = ThreadedGroup(size, timeout=timeout)
        return GroupRun(
            group,
            group.transports(),
            [TerminationSignal() for _ in range(size)],
            io.StringIO(),
        )

    return factory
