"""
Command line front end.

Usage:
    # 4 local ranks, 10 rounds of ring relay
    bounce --nprocs 4 --rounds 10 --size 1MiB

    # Under torchrun or mpirun
    torchrun --nproc_per_node=8 -m bounce -m broadcast -R 3 -o rounds.txt
    mpirun -np 8 bounce --backend mpi --rounds -1

Send SIGUSR2 to a rank to stop its loop early.
"""

import argparse
import dataclasses
import errno
import logging
import sys

from torch.multiprocessing.spawn import ProcessException

from .config import (
    DEFAULT_BALL_SIZE,
    BounceConfig,
    BounceMethod,
    check_root_rank,
    parse_byte_size,
    parse_rounds,
    reduce_root_rank,
)
from .engine import BounceResult, check_preconditions, run_bounce
from .errors import BallAllocationError, TransportError
from .launch import (
    BACKENDS,
    DEFAULT_INIT_METHOD,
    init_transport,
    parallel_launch,
    teardown,
)
from .log import MAX_VERBOSITY, rank_prefix, setup_logging
from .reporter import Reporter
from .termination import TerminationSignal
from .transport import Transport

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bounce",
        description="Bounce a ball of bytes among ranks to exercise the transport.",
        epilog="<byte-size> := #{.#}{TGMK{i}{B}}    <method> := "
        + ", ".join(BounceMethod.names() + ["sendrecv", "broadcast"]),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="increase amount of information displayed",
    )
    parser.add_argument(
        "-R",
        "--root-rank",
        default="0",
        help="which rank should handle output and start the ball rolling (default: 0)",
    )
    parser.add_argument(
        "-o",
        "--outfile",
        default=None,
        help="file to which round output is written instead of stdout",
    )
    parser.add_argument(
        "-m",
        "--method",
        default=BounceMethod.RING_RELAY.value,
        help=f"method used to pass the ball (default: {BounceMethod.RING_RELAY.value})",
    )
    parser.add_argument(
        "-s",
        "--size",
        default=str(DEFAULT_BALL_SIZE),
        help=f"size of the ball (default: {DEFAULT_BALL_SIZE})",
    )
    parser.add_argument(
        "-r",
        "--rounds",
        default="-1",
        help="number of rounds to pass the ball; negative runs until signalled, "
        "zero sets up the run and exits before passing the ball",
    )
    parser.add_argument(
        "--backend",
        choices=BACKENDS,
        default="gloo",
        help="transport backend (default: gloo)",
    )
    parser.add_argument(
        "--nprocs",
        type=int,
        default=None,
        help="spawn this many local ranks instead of joining a launcher's group",
    )
    parser.add_argument(
        "--init-method",
        default=DEFAULT_INIT_METHOD,
        help=f"rendezvous URL for --nprocs (default: {DEFAULT_INIT_METHOD})",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> BounceConfig:
    """Build the run configuration; the root rank is reduced later, per group size."""
    try:
        size = parse_byte_size(args.size)
    except ValueError:
        raise ValueError(
            f"invalid memory size provided to -s/--size: {args.size}"
        ) from None
    try:
        rounds = parse_rounds(args.rounds)
    except ValueError:
        raise ValueError(
            f"invalid round count provided to -r/--rounds: {args.rounds}"
        ) from None
    try:
        method = BounceMethod.parse(args.method)
    except ValueError:
        raise ValueError(
            f"invalid bounce method provided to -m/--method: {args.method}"
        ) from None
    try:
        root = int(args.root_rank, 0)
    except ValueError:
        raise ValueError(
            f"invalid rank index provided to -R/--root-rank: {args.root_rank}"
        ) from None
    try:
        check_root_rank(root)
    except ValueError:
        raise ValueError(
            f"invalid rank index (out of range) provided to -R/--root-rank: {root}"
        ) from None
    return BounceConfig(
        size=size,
        rounds=rounds,
        method=method,
        root=root,
        verbosity=min(args.verbose, MAX_VERBOSITY),
        outfile=args.outfile,
    )


def bounce_worker(transport: Transport, config: BounceConfig) -> BounceResult:
    """Run one rank: reduce the root, hook SIGUSR2, open output on the root, bounce."""
    rank, size = transport.rank, transport.size
    root = reduce_root_rank(config.root, size)
    if root != config.root:
        logger.info("root rank %d reduces to %d", config.root, root)
    config = dataclasses.replace(config, root=root)
    check_preconditions(config, size)

    termination = TerminationSignal()
    logger.debug("registering SIGUSR2 handler in rank %d of %d", rank, size)
    termination.install()

    reporter = None
    try:
        if rank == config.root:
            reporter = Reporter.open(config.outfile)
            logger.info("primary rank output opened for writing")
        logger.info("initialization complete for rank %d of %d", rank, size)
        return run_bounce(config, transport, termination, reporter)
    finally:
        if reporter is not None:
            reporter.close()
        termination.restore()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = config_from_args(args)
    except ValueError as e:
        logger.error("%s", e)
        return errno.EINVAL

    if args.nprocs is not None:
        if args.nprocs < 1:
            logger.error("invalid process count provided to --nprocs: %d", args.nprocs)
            return errno.EINVAL
        try:
            parallel_launch(
                args.nprocs,
                bounce_worker,
                config,
                init_method=args.init_method,
                verbosity=config.verbosity,
            )
        except ProcessException as e:
            logger.error("bounce failed: %s", e)
            return 1
        return 0

    try:
        transport = init_transport(args.backend)
        setup_logging(config.verbosity, rank_prefix(transport.rank, transport.size))
        logger.info(
            "startup complete for rank %d of %d", transport.rank, transport.size
        )
        bounce_worker(transport, config)
    except ImportError as e:
        logger.error("backend %s is not available: %s", args.backend, e)
        return 1
    except ValueError as e:
        logger.error("%s", e)
        return errno.EINVAL
    except BallAllocationError as e:
        logger.error("%s", e)
        return errno.ENOMEM
    except (TransportError, RuntimeError) as e:
        logger.error("%s", e)
        return 1
    except OSError as e:
        logger.error("failed to open output file %r: %s", config.outfile, e)
        return e.errno or 1
    finally:
        teardown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
