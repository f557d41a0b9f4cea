import contextlib
import os
import signal
import subprocess
import threading
from typing import Dict, Optional

from .command_line import split_command_line
from .environment import EnvironmentBlockError, decode_environment
from .logger import logger
from .util import (
    REAP_TIMEOUT_SECONDS,
    SLEEP_BETWEEN_EXIT_POLLS,
    exit_status,
    read_nonblocking_sync,
    set_nonblocking,
    write_nonblocking_sync,
)

STREAM_NAMES = ("stdin", "stdout", "stderr")


class _Stream:
    """One pipe endpoint of a child, or the path it was redirected to."""

    def __init__(self, name: str, file=None, redirect_path: Optional[str] = None):
        self.name = name
        self.file = file
        self.redirect_path = redirect_path
        # Held for the whole of a read/write, and by dispose before closing.
        self.lock = threading.Lock()


def _same_path(a: str, b: str) -> bool:
    return os.path.abspath(a) == os.path.abspath(b)


class ProcessRecord:
    """
    Everything behind one process handle: the Popen object, its three stream
    endpoints, the interrupt flag and the outcome of the last operation.

    No method raises. Failures become a -1 (or False) return plus a message in
    last_error; success sets last_error to "".
    """

    def __init__(self) -> None:
        self.p: Optional[subprocess.Popen] = None
        self.process_group_id: Optional[int] = None
        self.spawn_error = ""
        self._state_lock = threading.Lock()
        self._last_error = ""
        self._interrupted = threading.Event()
        self._terminated = threading.Event()
        self._streams: Dict[str, _Stream] = {
            name: _Stream(name) for name in STREAM_NAMES
        }

    @classmethod
    def launch(
        cls,
        command_line: str,
        env_block: Optional[bytes] = None,
        stdout_path: Optional[str] = None,
        stderr_path: Optional[str] = None,
    ) -> "ProcessRecord":
        """
        Starts the process. Always returns a record; if the process could not
        be started, spawn_error and last_error say why.
        """
        record = cls()
        try:
            record._spawn(command_line, env_block, stdout_path, stderr_path)
        except EnvironmentBlockError as exn:
            record.spawn_error = f"Invalid environment block: {exn}"
        except ValueError as exn:
            record.spawn_error = f"Invalid command line {command_line!r}: {exn}"
        except OSError as exn:
            record.spawn_error = f"Cannot create process: {exn}"
        if record.spawn_error:
            logger.warning("Process spawn failed", error=record.spawn_error)
        record._set_error(record.spawn_error)
        return record

    def _spawn(self, command_line, env_block, stdout_path, stderr_path) -> None:
        env = decode_environment(env_block)
        args = split_command_line(command_line)
        if not args:
            raise ValueError("no executable given")

        # The child gets its own copies of the redirect files; ours are closed
        # as soon as Popen returns.
        with contextlib.ExitStack() as stack:
            stdout_file = None
            stderr_file = None
            if stdout_path is not None:
                stdout_file = stack.enter_context(open(stdout_path, "ab"))
            if stderr_path is not None:
                if stdout_path is not None and _same_path(stdout_path, stderr_path):
                    stderr_file = stdout_file
                else:
                    stderr_file = stack.enter_context(open(stderr_path, "ab"))

            p = subprocess.Popen(
                args,
                env=env,
                stdin=subprocess.PIPE,
                stdout=stdout_file if stdout_file is not None else subprocess.PIPE,
                stderr=stderr_file if stderr_file is not None else subprocess.PIPE,
                start_new_session=True,
                bufsize=0,
            )

        self.p = p
        self.process_group_id = os.getpgid(p.pid)
        self._streams["stdin"].file = p.stdin
        self._streams["stdout"].file = p.stdout
        self._streams["stdout"].redirect_path = stdout_path
        self._streams["stderr"].file = p.stderr
        self._streams["stderr"].redirect_path = stderr_path
        for stream in self._streams.values():
            if stream.file is not None:
                set_nonblocking(stream.file)
        logger.debug("Process started", pid=p.pid, args=args)

    @property
    def last_error(self) -> str:
        with self._state_lock:
            return self._last_error

    def _set_error(self, message: str) -> None:
        with self._state_lock:
            self._last_error = message

    @property
    def pid(self) -> int:
        return self.p.pid if self.p is not None else -1

    @property
    def exit_code(self) -> Optional[int]:
        """The exit code once the process has been reaped, else None."""
        if self.p is None or self.p.returncode is None:
            return None
        return exit_status(self.p.returncode)

    def _finished(self) -> bool:
        return self._terminated.is_set() or self.p.poll() is not None

    def read(self, name: str, view: memoryview) -> int:
        """
        Reads up to len(view) bytes from stdout or stderr into view.

        Returns the number of bytes read. Returns -1 with an empty last_error
        once the stream is finished, and -1 with a message on failure.
        """
        if self.p is None:
            self._set_error(self.spawn_error)
            return -1
        stream = self._streams[name]
        if stream.redirect_path is not None:
            self._set_error(
                f"{name} is redirected to {stream.redirect_path} and cannot be read"
            )
            return -1
        with stream.lock:
            if stream.file is None:
                self._set_error("")
                return -1
            if len(view) == 0:
                self._set_error("")
                return 0
            try:
                n = read_nonblocking_sync(
                    fd=stream.file.fileno(), view=view, should_stop=self._finished
                )
            except OSError as exn:
                self._set_error(f"Reading {name} failed: {exn}")
                return -1
        self._set_error("")
        # End of stream and "gave up because the process is gone" look the
        # same to callers.
        return n if n > 0 else -1

    def write(self, view: memoryview) -> int:
        """
        Writes a prefix of view to stdin. Returns the number of bytes written,
        which may be less than len(view).
        """
        if self.p is None:
            self._set_error(self.spawn_error)
            return -1
        stream = self._streams["stdin"]
        with stream.lock:
            if stream.file is None:
                self._set_error("")
                return -1
            if len(view) == 0:
                self._set_error("")
                return 0
            try:
                n = write_nonblocking_sync(
                    fd=stream.file.fileno(), view=view, should_stop=self._finished
                )
            except BrokenPipeError:
                # The child closed its end of stdin, most likely by exiting.
                n = -1
            except OSError as exn:
                self._set_error(f"Writing stdin failed: {exn}")
                return -1
        self._set_error("")
        return n

    def close_stdin(self) -> bool:
        if self.p is None:
            self._set_error(self.spawn_error)
            return False
        stream = self._streams["stdin"]
        with stream.lock:
            if stream.file is not None:
                stream.file.close()
                stream.file = None
        self._set_error("")
        return True

    def wait(self) -> int:
        """
        Blocks until the process exits or the interrupt flag is set. Returns
        the exit code, or -1 if interrupted. Interruption leaves the process
        running.
        """
        if self.p is None:
            self._set_error(self.spawn_error)
            return -1
        while True:
            if self._interrupted.is_set():
                self._set_error("")
                return -1
            returncode = self.p.poll()
            if returncode is not None:
                self._set_error("")
                return exit_status(returncode)
            self._interrupted.wait(SLEEP_BETWEEN_EXIT_POLLS)

    def interrupt(self) -> None:
        self._interrupted.set()

    @property
    def interrupted(self) -> bool:
        return self._interrupted.is_set()

    def terminate(self) -> bool:
        """Kills the process group. Blocked reads and writes then return -1."""
        if self.p is None:
            self._set_error(self.spawn_error)
            return False
        self._terminated.set()
        if self.exit_code is not None:
            # Already reaped: the process group id may belong to someone else
            # by now.
            self._set_error("")
            return True
        try:
            os.killpg(self.process_group_id, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except OSError as exn:
            self._set_error(f"Cannot terminate process {self.p.pid}: {exn}")
            return False
        logger.debug("Process terminated", pid=self.p.pid)
        self._set_error("")
        return True

    def close(self) -> None:
        """
        Terminates the process if it is still running, closes every pipe and
        reaps it.
        """
        if self.p is None:
            return
        if self.p.poll() is None:
            self.terminate()
        else:
            self._terminated.set()
        # Any call still inside a stream gives up within one select() slice
        # now that the process is marked terminated.
        for stream in self._streams.values():
            with stream.lock:
                if stream.file is not None:
                    stream.file.close()
                    stream.file = None
        try:
            self.p.wait(timeout=REAP_TIMEOUT_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning("Process did not exit after SIGKILL", pid=self.p.pid)
