from .config import BounceConfig, BounceMethod, parse_byte_size
from .engine import BounceResult, RingRelay, RotatingBroadcast, run_bounce
from .errors import BallAllocationError, BounceError, TransportError
from .reporter import Reporter
from .termination import TerminationSignal
from .transport import MpiTransport, TorchDistTransport, Transport

__version__ = "0.1.0"
