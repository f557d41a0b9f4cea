import shlex
from typing import List

from typeguard import typechecked


@typechecked
def quote_command_line(args: List[str]) -> str:
    """
    Joins args into one command line that split_command_line turns back into
    exactly the same list. Empty arguments survive as '' tokens.
    """
    return shlex.join(args)


@typechecked
def split_command_line(command_line: str) -> List[str]:
    """Tokenizes a command line with POSIX shell rules. Raises ValueError on
    unbalanced quotes."""
    return shlex.split(command_line)
