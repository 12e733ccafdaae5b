"""Child process supervision and concurrent pipe streaming."""

from __future__ import annotations

import logging
import signal
import subprocess
import threading
from collections import deque
from collections.abc import Callable, Sequence
from contextlib import suppress
from dataclasses import dataclass
from typing import IO, Any

from neurobridge.core.errors import SpawnError

logger = logging.getLogger(__name__)

_SIGPIPE_LOCK = threading.Lock()
_SIGPIPE_CONFIGURED = False


def ignore_sigpipe() -> None:
    """Make writes to a closed pipe raise ``BrokenPipeError`` instead of killing the process.

    This is a process-wide disposition, applied once. CPython already ignores
    SIGPIPE at interpreter start; this guards against embedders that restore
    the default handler. Signal handlers can only be installed from the main
    thread, so calls from other threads are no-ops.
    """

    global _SIGPIPE_CONFIGURED
    with _SIGPIPE_LOCK:
        if _SIGPIPE_CONFIGURED:
            return
        if not hasattr(signal, "SIGPIPE"):
            _SIGPIPE_CONFIGURED = True
            return
        if threading.current_thread() is not threading.main_thread():
            return
        signal.signal(signal.SIGPIPE, signal.SIG_IGN)
        _SIGPIPE_CONFIGURED = True


class ChildProcess:
    """Exclusive owner of a spawned engine process and its three pipes."""

    def __init__(self, popen: subprocess.Popen[str], argv: Sequence[str]) -> None:
        self._popen = popen
        self._argv = tuple(argv)
        self._returncode: int | None = None
        self._release_lock = threading.Lock()

    @classmethod
    def spawn(
        cls,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> ChildProcess:
        argv = [command, *args]
        try:
            popen = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                env=env,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise SpawnError(f"Could not start '{command}': {exc}") from exc
        logger.debug("Spawned %s (pid %s)", " ".join(argv), popen.pid)
        return cls(popen, argv)

    @property
    def pid(self) -> int:
        return self._popen.pid

    @property
    def argv(self) -> tuple[str, ...]:
        return self._argv

    @property
    def child_stdin(self) -> IO[str]:
        return _stream(self._popen.stdin, "stdin")

    @property
    def child_stdout(self) -> IO[str]:
        return _stream(self._popen.stdout, "stdout")

    @property
    def child_stderr(self) -> IO[str]:
        return _stream(self._popen.stderr, "stderr")

    @property
    def returncode(self) -> int | None:
        return self._returncode

    def close_input(self) -> None:
        """Close the child's stdin; the child observes end-of-file."""

        stdin = self._popen.stdin
        if stdin is None or stdin.closed:
            return
        # Flushing the remaining buffer fails if the child already exited.
        with suppress(BrokenPipeError):
            stdin.close()

    def signal_kill(self) -> None:
        """Kill the child without reaping it or touching its pipes."""

        if self._popen.poll() is None:
            with suppress(ProcessLookupError):
                self._popen.kill()

    def wait(self) -> int:
        """Wait for exit and release every handle; later calls return the cached code."""

        with self._release_lock:
            if self._returncode is not None:
                return self._returncode
            self.close_input()
            code = self._popen.wait()
            for stream in (self._popen.stdout, self._popen.stderr):
                if stream is not None and not stream.closed:
                    stream.close()
            self._returncode = code
            logger.debug("Process %s exited with code %s", self._popen.pid, code)
            return code

    def kill(self) -> int:
        self.signal_kill()
        return self.wait()

    def __enter__(self) -> ChildProcess:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if self._returncode is None:
            self.kill()


def _stream(handle: IO[str] | None, label: str) -> IO[str]:
    if handle is None:
        raise RuntimeError(f"Child process has no {label} pipe")
    return handle


@dataclass(slots=True)
class StreamResult[T]:
    exit_code: int
    value: T
    stderr: str


class _Task:
    """A function run on its own thread, capturing its result or exception."""

    def __init__(self, name: str, target: Callable[[], Any]) -> None:
        self._target = target
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self.result: Any = None
        self.error: BaseException | None = None

    def start(self) -> None:
        self._thread.start()

    def join(self) -> None:
        self._thread.join()

    def _run(self) -> None:
        try:
            self.result = self._target()
        except BaseException as exc:
            self.error = exc


def run_streaming[T](
    proc: ChildProcess,
    writer: Callable[[IO[str]], None],
    reader: Callable[[IO[str]], T],
    *,
    stderr_lines: int = 200,
    before_wait: Callable[[], None] | None = None,
) -> StreamResult[T]:
    """Feed the child's stdin and drain its stdout/stderr concurrently.

    The writer, reader and stderr drain each run on their own thread so that a
    full pipe in one direction can never stall the other. Order of completion:
    writer joined and stdin closed, then reader and stderr drain joined (both
    saw end-of-file), then the child is reaped. If the writer or reader raise,
    the child is killed so the other side unblocks, and the exception is
    re-raised after the child was reaped. Any other failure on the calling
    thread (a task that cannot start, an interrupt while joining) kills and
    reaps the child before propagating.
    """

    def write() -> None:
        try:
            writer(proc.child_stdin)
            proc.child_stdin.flush()
        except BrokenPipeError:
            logger.debug("Engine closed its input early; stopping the writer")
        except BaseException:
            proc.signal_kill()
            raise
        finally:
            proc.close_input()

    def read() -> T:
        try:
            return reader(proc.child_stdout)
        except BaseException:
            proc.signal_kill()
            raise

    def drain() -> str:
        tail: deque[str] = deque(maxlen=stderr_lines)
        for line in proc.child_stderr:
            text = line.rstrip("\n")
            logger.debug("[stderr] %s", text)
            tail.append(text)
        return "\n".join(tail)

    pid = proc.pid
    write_task = _Task(f"engine-{pid}-writer", write)
    read_task = _Task(f"engine-{pid}-reader", read)
    drain_task = _Task(f"engine-{pid}-stderr", drain)
    try:
        for task in (write_task, read_task, drain_task):
            task.start()

        write_task.join()
        proc.close_input()
        read_task.join()
        drain_task.join()
        if before_wait is not None:
            before_wait()
        exit_code = proc.wait()
    except BaseException:
        # Started tasks unblock once the child is gone.
        proc.kill()
        raise

    for task in (read_task, write_task, drain_task):
        if task.error is not None:
            raise task.error
    return StreamResult(exit_code=exit_code, value=read_task.result, stderr=drain_task.result or "")


__all__ = ["ChildProcess", "StreamResult", "ignore_sigpipe", "run_streaming"]
