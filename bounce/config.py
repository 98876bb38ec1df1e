from __future__ import annotations

import enum
import re
from decimal import Decimal
from dataclasses import dataclass
from typing import Optional

DEFAULT_BALL_SIZE = 8192
MAX_ROOT_RANK = 2**31 - 1

_BYTE_SIZE_RE = re.compile(
    r"^\s*(?P<value>\d+(?:\.\d*)?|\.\d+)\s*(?P<magnitude>[kmgt])?(?P<binary>i)?b?\s*$",
    re.IGNORECASE,
)
_MAGNITUDES = {"k": 1, "m": 2, "g": 3, "t": 4}


class BounceMethod(enum.Enum):
    RING_RELAY = "ring-relay"
    ROTATING_BROADCAST = "rotating-broadcast"

    @classmethod
    def parse(cls, text: str) -> "BounceMethod":
        """Look up a method by name, case-insensitive.

        The historical names ``sendrecv`` and ``broadcast`` are accepted as
        aliases for ring relay and rotating broadcast.
        """
        key = text.strip().lower()
        if key in _METHOD_ALIASES:
            return _METHOD_ALIASES[key]
        for method in cls:
            if method.value == key:
                return method
        raise ValueError(f"unknown bounce method: {text!r}")

    @classmethod
    def names(cls):
        return [method.value for method in cls]


_METHOD_ALIASES = {
    "sendrecv": BounceMethod.RING_RELAY,
    "broadcast": BounceMethod.ROTATING_BROADCAST,
}


@dataclass(frozen=True)
class BounceConfig:
    """Immutable run configuration, identical on every rank."""

    size: int = DEFAULT_BALL_SIZE
    rounds: int = -1
    method: BounceMethod = BounceMethod.RING_RELAY
    root: int = 0
    verbosity: int = 0
    outfile: Optional[str] = None

    def __post_init__(self):
        if self.size <= 0:
            raise ValueError(f"ball size must be positive, got {self.size}")
        if self.root < 0:
            raise ValueError(f"root rank must be non-negative, got {self.root}")

    @property
    def unbounded(self) -> bool:
        return self.rounds < 0

    def round_limit_reached(self, round_: int) -> bool:
        return self.rounds >= 0 and round_ >= self.rounds


def parse_byte_size(text: str) -> int:
    """
    Parse a human-readable byte size.

    Grammar is ``#{.#}{TGMK{i}{B}}``: ``8192``, ``64K``, ``1.5MiB``, ``2 GB``.
    Magnitudes are powers of 1000 unless followed by ``i``, which selects
    powers of 1024.

    Raises:
        ValueError: if the text does not match or the size comes out as zero.
    """
    match = _BYTE_SIZE_RE.match(text)
    if match is None:
        raise ValueError(f"invalid byte size: {text!r}")
    base = 1024 if match.group("binary") else 1000
    magnitude = _MAGNITUDES.get((match.group("magnitude") or "").lower(), 0)
    value = int(Decimal(match.group("value")) * base**magnitude)
    if value <= 0:
        raise ValueError(f"invalid byte size: {text!r}")
    return value


def parse_rounds(text: str) -> int:
    try:
        return int(text.strip(), 0)
    except ValueError:
        raise ValueError(f"invalid round count: {text!r}") from None


def check_root_rank(value: int) -> int:
    if value < 0 or value > MAX_ROOT_RANK:
        raise ValueError(f"invalid rank index (out of range): {value}")
    return value


def reduce_root_rank(value: int, world_size: int) -> int:
    """Fold a user-supplied root rank into ``[0, world_size)``."""
    return check_root_rank(value) % world_size
