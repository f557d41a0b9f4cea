"""Handle-based child processes with byte-exact pipe I/O."""

from .command_line import quote_command_line, split_command_line
from .environment import EnvironmentBlockError, decode_environment, encode_environment
from .processes import (
    close_stdin,
    create_process,
    dispose,
    get_last_error,
    get_pid,
    interrupt,
    is_interrupted,
    read_stderr,
    read_stdout,
    terminate,
    wait_for,
    write_stdin,
)

__all__ = [
    "quote_command_line",
    "split_command_line",
    "EnvironmentBlockError",
    "decode_environment",
    "encode_environment",
    "create_process",
    "write_stdin",
    "read_stdout",
    "read_stderr",
    "close_stdin",
    "wait_for",
    "interrupt",
    "is_interrupted",
    "terminate",
    "dispose",
    "get_last_error",
    "get_pid",
]

__version__ = "1.0.0"
