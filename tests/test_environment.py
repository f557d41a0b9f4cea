"""Tests for the environment block codec."""

import pytest

from procpipe import EnvironmentBlockError, decode_environment, encode_environment


def test_absent_block_inherits():
    assert decode_environment(None) is None


def test_terminator_alone_is_empty_environment():
    assert decode_environment(b"\0\0") == {}


def test_two_entries():
    block = b"ONE=one\0TWO=twotwo\0\0"
    assert decode_environment(block) == {b"ONE": b"one", b"TWO": b"twotwo"}


def test_value_may_contain_equals_and_be_empty():
    block = b"A=b=c\0EMPTY=\0\0"
    assert decode_environment(block) == {b"A": b"b=c", b"EMPTY": b""}


def test_later_duplicate_wins():
    assert decode_environment(b"K=1\0K=2\0\0") == {b"K": b"2"}


@pytest.mark.parametrize(
    "block, message",
    [
        (b"clown", "no NUL"),
        (b"a", "no NUL"),
        (b"", "no NUL"),
        (b"\0", "two consecutive NUL"),
        (b"FOO=bar\0", "two consecutive NUL"),
        (b"A=1\0\0B=2\0\0", "empty"),
        (b"NOEQUALS\0\0", "no '='"),
        (b"=value\0\0", "empty name"),
    ],
)
def test_malformed_blocks_are_rejected(block, message):
    with pytest.raises(EnvironmentBlockError, match=message):
        decode_environment(block)


def test_error_is_a_value_error():
    with pytest.raises(ValueError):
        decode_environment(b"clown")


def test_encode():
    assert encode_environment({"ONE": "one", b"TWO": b"twotwo"}) == (
        b"ONE=one\0TWO=twotwo\0\0"
    )
    assert encode_environment({}) == b"\0\0"


def test_encode_rejects_bad_names():
    with pytest.raises(EnvironmentBlockError):
        encode_environment({"A=B": "c"})
    with pytest.raises(EnvironmentBlockError):
        encode_environment({"": "c"})


def test_encode_then_decode():
    env = {b"PATH": b"/usr/bin:/bin", b"LANG": b"C.UTF-8"}
    assert decode_environment(encode_environment(env)) == env
