"""Handle-based process API.

Every function takes the integer handle returned by create_process. Nothing
here raises for runtime conditions: failures are reported by a -1 (or False)
return and by get_last_error(), which describes the outcome of the most recent
operation on that handle ("" means it succeeded).

A read or write returning -1 means one of three things:

  * the offset/length pair does not fit the buffer (last error untouched);
  * the stream is finished: end of stream, process exited or terminated,
    stdin closed (get_last_error() == "");
  * something failed (get_last_error() != "").
"""

import os
from typing import Optional, Union

from typeguard import typechecked

from .logger import logger
from .process import ProcessRecord
from .registry import HandleRegistry, UnknownHandleError
from .util import Buffer, byte_view, in_bounds

PathArg = Union[str, os.PathLike]

_registry: HandleRegistry[ProcessRecord] = HandleRegistry()


@typechecked
def create_process(
    command_line: str,
    env: Optional[bytes] = None,
    stdout_redirect: Optional[PathArg] = None,
    stderr_redirect: Optional[PathArg] = None,
) -> int:
    """
    Starts command_line (see quote_command_line) and returns its handle.

    env is an environment block (see decode_environment); None inherits ours.
    A redirect path makes that stream append to the file instead of a pipe.
    The handle is returned even if the process could not be started, in which
    case get_last_error() explains why.
    """
    record = ProcessRecord.launch(
        command_line,
        env,
        os.fspath(stdout_redirect) if stdout_redirect is not None else None,
        os.fspath(stderr_redirect) if stderr_redirect is not None else None,
    )
    handle = _registry.register(record)
    logger.debug("Registered process", handle=handle, pid=record.pid)
    return handle


def _lookup(handle: int) -> Optional[ProcessRecord]:
    try:
        return _registry.lookup(handle)
    except UnknownHandleError:
        return None


def _read(name: str, handle: int, buffer: Buffer, offset: int, length: int) -> int:
    view = byte_view(buffer)
    if view is None or view.readonly or not in_bounds(len(view), offset, length):
        return -1
    record = _lookup(handle)
    if record is None:
        return -1
    return record.read(name, view[offset : offset + length])


@typechecked
def read_stdout(
    handle: int, buffer: Union[bytearray, memoryview], offset: int, length: int
) -> int:
    """Reads up to length bytes of stdout into buffer[offset:]."""
    return _read("stdout", handle, buffer, offset, length)


@typechecked
def read_stderr(
    handle: int, buffer: Union[bytearray, memoryview], offset: int, length: int
) -> int:
    """Reads up to length bytes of stderr into buffer[offset:]."""
    return _read("stderr", handle, buffer, offset, length)


@typechecked
def write_stdin(handle: int, buffer: Buffer, offset: int, length: int) -> int:
    """
    Writes up to length bytes of buffer[offset:] to stdin. Returns how many
    were written; callers loop to write the rest.
    """
    view = byte_view(buffer)
    if view is None or not in_bounds(len(view), offset, length):
        return -1
    record = _lookup(handle)
    if record is None:
        return -1
    return record.write(view[offset : offset + length])


@typechecked
def close_stdin(handle: int) -> bool:
    record = _lookup(handle)
    if record is None:
        return False
    return record.close_stdin()


@typechecked
def wait_for(handle: int) -> int:
    """
    Blocks until the process exits and returns its exit code. Returns -1 if
    the handle is interrupted, before or during the wait. A process killed by
    signal N reports 128 + N.
    """
    record = _lookup(handle)
    if record is None:
        return -1
    return record.wait()


@typechecked
def interrupt(handle: int) -> None:
    """
    Makes a pending or future wait_for on handle return -1. The process keeps
    running. Has no effect on blocked reads or writes; use terminate for those.

    Threads stuck in a system call that cannot be woken are not helped by this.
    """
    record = _lookup(handle)
    if record is None:
        logger.debug("Interrupt of unknown handle ignored", handle=handle)
        return
    record.interrupt()
    logger.debug("Interrupt requested", handle=handle)


@typechecked
def is_interrupted(handle: int) -> bool:
    record = _lookup(handle)
    return record is not None and record.interrupted


@typechecked
def terminate(handle: int) -> bool:
    """Kills the process. Blocked reads and writes on it return -1."""
    record = _lookup(handle)
    if record is None:
        return False
    ok = record.terminate()
    if ok:
        logger.info("Terminated process", handle=handle, pid=record.pid)
    return ok


@typechecked
def dispose(handle: int) -> None:
    """
    Forgets handle: kills the process if it is still running, closes its pipes
    and reaps it. Later calls with handle fail as for any unknown handle.
    """
    try:
        record = _registry.remove(handle)
    except UnknownHandleError:
        logger.debug("Dispose of unknown handle ignored", handle=handle)
        return
    record.close()
    logger.debug("Disposed process", handle=handle, pid=record.pid)


@typechecked
def get_last_error(handle: int) -> str:
    try:
        return _registry.lookup(handle).last_error
    except UnknownHandleError as exn:
        return str(exn)


@typechecked
def get_pid(handle: int) -> int:
    record = _lookup(handle)
    return record.pid if record is not None else -1
