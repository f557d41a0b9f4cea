import os
import fcntl
import select
from typing import Callable, Optional, Union

# How long a blocked read/write sleeps in select() before it re-checks whether
# the process was terminated or has exited.
SLEEP_BETWEEN_READS = 0.1
SLEEP_BETWEEN_WRITES = 0.01
# Granularity at which wait_for notices that the process exited.
SLEEP_BETWEEN_EXIT_POLLS = 0.01
# Upper bound on how long dispose waits to reap a killed process.
REAP_TIMEOUT_SECONDS = 5

Buffer = Union[bytes, bytearray, memoryview]


def set_nonblocking(reader):
    fd = reader.fileno()
    fl = fcntl.fcntl(fd, fcntl.F_GETFL)
    fcntl.fcntl(fd, fcntl.F_SETFL, fl | os.O_NONBLOCK)


def byte_view(buffer: Buffer) -> Optional[memoryview]:
    """A flat, one-byte-per-item view of buffer, or None if buffer is strided."""
    view = memoryview(buffer)
    if not view.c_contiguous:
        return None
    return view.cast("B")


def in_bounds(size: int, offset: int, length: int) -> bool:
    """
    True if [offset, offset + length) lies inside a buffer of the given size.
    Never computes offset + length, so huge values cannot wrap around.
    """
    return 0 <= offset <= size and 0 <= length <= size - offset


def exit_status(returncode: int) -> int:
    """
    Popen reports death by signal N as -N. Report it the way a shell does
    instead, so that -1 stays free to mean "interrupted".
    """
    if returncode < 0:
        return 128 - returncode
    return returncode


def read_nonblocking_sync(
    *, fd: int, view: memoryview, should_stop: Callable[[], bool]
) -> int:
    """
    Reads into view from a nonblocking file descriptor.

    Returns as soon as any bytes are available, with the number of bytes read.
    Returns 0 at end of stream. Returns -1 if should_stop() became true while
    nothing was available. OSError propagates.
    """
    while True:
        try:
            return os.readv(fd, [view])
        except BlockingIOError:
            pass
        if should_stop():
            # The writer may have produced its last bytes just before it went
            # away, so look one final time.
            try:
                return os.readv(fd, [view])
            except BlockingIOError:
                return -1
        select.select([fd], [], [], SLEEP_BETWEEN_READS)


# The mirror image of read_nonblocking_sync. Unlike the reader, a BrokenPipeError
# is left to the caller, which treats it as the child closing its end.
def write_nonblocking_sync(
    *, fd: int, view: memoryview, should_stop: Callable[[], bool]
) -> int:
    """
    Writes a prefix of view to a nonblocking file descriptor.

    Returns the number of bytes the pipe accepted, which may be fewer than
    len(view). Returns -1 if should_stop() became true while the pipe was full.
    """
    while True:
        try:
            return os.write(fd, view)
        except BlockingIOError:
            pass
        if should_stop():
            return -1
        select.select([], [fd], [], SLEEP_BETWEEN_WRITES)
