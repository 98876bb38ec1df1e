import signal


class TerminationSignal:
    """
    Process-local early termination flag.

    The flag moves one way, from running (``signum == 0``) to terminated, and
    is never reset. It is set from a signal handler, so the handler does
    nothing but assign the signal number; the bounce loop polls it at safe
    points between communication calls.
    """

    def __init__(self):
        self.signum = 0
        self._installed = None

    @property
    def is_set(self) -> bool:
        return self.signum != 0

    def __bool__(self) -> bool:
        return self.is_set

    def set(self, signum: int = signal.SIGUSR2) -> None:
        self.signum = int(signum)

    def _handler(self, signum, frame):
        self.signum = signum

    def install(self, signum: int = signal.SIGUSR2):
        """Route ``signum`` to this flag. Returns the previous handler."""
        previous = signal.signal(signum, self._handler)
        self._installed = (signum, previous)
        return previous

    def restore(self) -> None:
        if self._installed is None:
            return
        signum, previous = self._installed
        signal.signal(signum, previous)
        self._installed = None
