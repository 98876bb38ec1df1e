import pytest

from bounce.config import (
    DEFAULT_BALL_SIZE,
    BounceConfig,
    BounceMethod,
    check_root_rank,
    parse_byte_size,
    parse_rounds,
    reduce_root_rank,
)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("8192", 8192),
        ("64K", 64_000),
        ("64k", 64_000),
        ("64KiB", 65_536),
        ("64kib", 65_536),
        ("1.5M", 1_500_000),
        ("1.5MiB", 1_572_864),
        ("2 GB", 2_000_000_000),
        ("1T", 10**12),
        ("1Ti", 2**40),
        ("100B", 100),
        ("4.1M", 4_100_000),
        ("0.3KiB", 307),
        ("9007199254740993", 9_007_199_254_740_993),
    ],
)
def test_parse_byte_size(text, expected):
    assert parse_byte_size(text) == expected


@pytest.mark.parametrize("text", ["", "0", "0K", "K", "12Q", "1.2.3", "-5", "4KBx"])
def test_parse_byte_size_rejects(text):
    with pytest.raises(ValueError):
        parse_byte_size(text)


def test_parse_rounds():
    assert parse_rounds("10") == 10
    assert parse_rounds("-1") == -1
    assert parse_rounds("0x10") == 16
    with pytest.raises(ValueError):
        parse_rounds("ten")


@pytest.mark.parametrize(
    "text,expected",
    [
        ("ring-relay", BounceMethod.RING_RELAY),
        ("sendrecv", BounceMethod.RING_RELAY),
        ("SendRecv", BounceMethod.RING_RELAY),
        ("rotating-broadcast", BounceMethod.ROTATING_BROADCAST),
        ("BROADCAST", BounceMethod.ROTATING_BROADCAST),
    ],
)
def test_method_parse(text, expected):
    assert BounceMethod.parse(text) is expected


def test_method_parse_rejects_unknown():
    with pytest.raises(ValueError):
        BounceMethod.parse("allreduce")


def test_root_rank_reduces_modulo_world_size():
    assert reduce_root_rank(0, 4) == 0
    assert reduce_root_rank(5, 4) == 1
    assert reduce_root_rank(2**31 - 1, 2) == 1
    with pytest.raises(ValueError):
        reduce_root_rank(-1, 4)
    with pytest.raises(ValueError):
        check_root_rank(2**31)


def test_config_defaults():
    config = BounceConfig()
    assert config.size == DEFAULT_BALL_SIZE
    assert config.rounds == -1
    assert config.unbounded
    assert config.method is BounceMethod.RING_RELAY
    assert config.root == 0


def test_config_round_limit():
    assert not BounceConfig(rounds=-1).round_limit_reached(10**9)
    assert BounceConfig(rounds=0).round_limit_reached(0)
    assert not BounceConfig(rounds=3).round_limit_reached(2)
    assert BounceConfig(rounds=3).round_limit_reached(3)


def test_config_validates():
    with pytest.raises(ValueError):
        BounceConfig(size=0)
    with pytest.raises(ValueError):
        BounceConfig(root=-1)
