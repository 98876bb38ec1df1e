class BounceError(Exception):
    """Base class for fatal bounce run failures."""


class BallAllocationError(BounceError):
    def __init__(self, size: int, cause: BaseException):
        super().__init__(f"failed to allocate ball of {size} bytes: {cause}")
        self.size = size


class TransportError(BounceError):
    """A send, receive, broadcast or barrier failed. Never retried."""
