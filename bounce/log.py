import logging

_VERBOSITY_LEVELS = [logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG]
MAX_VERBOSITY = len(_VERBOSITY_LEVELS) - 1


def verbosity_level(verbosity: int) -> int:
    """Map a ``-v`` count onto a logging level, saturating at DEBUG."""
    return _VERBOSITY_LEVELS[max(0, min(verbosity, MAX_VERBOSITY))]


def rank_prefix(rank: int, world_size: int) -> str:
    return f"[rank{rank:{len(str(max(world_size - 1, 0)))}d}] "


def setup_logging(verbosity: int = 0, prefix: str = "") -> None:
    """
    Setup basic logging configuration.

    Args:
        verbosity: number of ``-v`` flags given on the command line
        prefix: Prefix to add to log messages
    """
    logging.basicConfig(
        level=verbosity_level(verbosity),
        format=prefix
        + "[%(asctime)s] [%(levelname)s] (%(filename)s:%(lineno)s) %(message)s",
        datefmt="%H:%M:%S",
        force=True,
    )
