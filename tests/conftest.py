"""Shared helpers and fixtures for procpipe tests."""

import sys
from pathlib import Path

import pytest

import procpipe

MOCK_SUBPROCESS = str(Path(__file__).with_name("mock_subprocess.py"))


def mock_args(*args: str) -> str:
    """Command line that runs mock_subprocess.py with the given operations."""
    return procpipe.quote_command_line([sys.executable, MOCK_SUBPROCESS, *args])


def read_fully(handle: int, n: int, reader=procpipe.read_stdout) -> bytes:
    """Reads until n bytes arrived or the stream finished."""
    buf = bytearray(n)
    got = 0
    while got < n:
        rv = reader(handle, buf, got, n - got)
        if rv == -1:
            break
        got += rv
    return bytes(buf[:got])


@pytest.fixture
def spawn():
    """create_process that terminates and disposes its handles after the test."""
    handles = []

    def _spawn(command_line, env=None, stdout_redirect=None, stderr_redirect=None):
        handle = procpipe.create_process(
            command_line, env, stdout_redirect, stderr_redirect
        )
        handles.append(handle)
        return handle

    yield _spawn

    for handle in handles:
        procpipe.terminate(handle)
        procpipe.dispose(handle)
