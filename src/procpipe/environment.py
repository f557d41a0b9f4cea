"""Environment blocks: NUL-separated KEY=VALUE entries ended by an extra NUL.

    b"ONE=one\\0TWO=twotwo\\0\\0"  ->  {b"ONE": b"one", b"TWO": b"twotwo"}

A missing block (None) means "inherit the parent's environment". The block
b"\\0\\0" (no entries, then the terminator) means an empty environment; a
block shorter than that is malformed.
"""

import os
from typing import Dict, Mapping, Optional, Union

from typeguard import typechecked

_EMPTY_BLOCK = b"\0\0"


class EnvironmentBlockError(ValueError):
    """A malformed environment block."""


@typechecked
def decode_environment(block: Optional[bytes]) -> Optional[Dict[bytes, bytes]]:
    if block is None:
        return None
    if block == _EMPTY_BLOCK:
        return {}
    if b"\0" not in block:
        raise EnvironmentBlockError(
            f"environment block of {len(block)} bytes contains no NUL terminator"
        )
    if not block.endswith(b"\0\0"):
        raise EnvironmentBlockError(
            "environment block must end with two consecutive NUL bytes"
        )

    env = {}
    for index, entry in enumerate(block[:-2].split(b"\0")):
        if not entry:
            raise EnvironmentBlockError(
                f"environment entry {index} is empty; the block ends early"
            )
        key, sep, value = entry.partition(b"=")
        if not sep:
            raise EnvironmentBlockError(
                f"environment entry {index} has no '=': {entry[:64]!r}"
            )
        if not key:
            raise EnvironmentBlockError(
                f"environment entry {index} has an empty name: {entry[:64]!r}"
            )
        env[key] = value
    return env


@typechecked
def encode_environment(
    env: Mapping[Union[str, bytes], Union[str, bytes]]
) -> bytes:
    """Builds a block that decode_environment accepts."""
    if not env:
        return b"\0\0"
    parts = []
    for key, value in env.items():
        key = os.fsencode(key)
        value = os.fsencode(value)
        if not key or b"=" in key or b"\0" in key or b"\0" in value:
            raise EnvironmentBlockError(f"cannot encode environment entry {key!r}")
        parts.append(key + b"=" + value + b"\0")
    return b"".join(parts) + b"\0"
