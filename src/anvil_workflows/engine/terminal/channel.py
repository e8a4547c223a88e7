"""Shell process owned per workspace.

The engine only needs `ensure_ready` and `write`. `resize` shares the channel for
whatever terminal view sits on top of it.
"""

from __future__ import annotations

import fcntl
import logging
import os
import pty
import struct
import subprocess
import termios
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChannelUnavailableError(Exception):
    """Raised when a shell cannot be started for a workspace."""

    workspace_path: str
    reason: str

    def __str__(self) -> str:
        return f"Terminal unavailable for {self.workspace_path}: {self.reason}"


class TerminalChannel(Protocol):
    def ensure_ready(self, workspace_path: str) -> None: ...

    def write(self, text: str) -> None: ...

    def resize(self, cols: int, rows: int) -> None: ...


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


class PtyTerminalChannel:
    """Run a shell on a pseudo-terminal.

    A shell is spawned at most once per workspace path. Asking for a different
    workspace terminates the current shell and starts a new one there.
    """

    def __init__(
        self,
        *,
        shell: str = "bash",
        cols: int = 80,
        rows: int = 24,
        on_output: Callable[[str], None] | None = None,
    ) -> None:
        self._shell = shell
        self._cols = cols
        self._rows = rows
        self._on_output = on_output
        self._lock = threading.Lock()
        self._process: subprocess.Popen[bytes] | None = None
        self._master_fd: int | None = None
        self._workspace_path: str | None = None
        self._reader: threading.Thread | None = None

    @property
    def workspace_path(self) -> str | None:
        return self._workspace_path

    def ensure_ready(self, workspace_path: str) -> None:
        with self._lock:
            if (
                self._process is not None
                and self._workspace_path == workspace_path
                and self._process.poll() is None
            ):
                return
            self._close_unlocked()
            self._spawn_unlocked(workspace_path)

    def _spawn_unlocked(self, workspace_path: str) -> None:
        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise ChannelUnavailableError(workspace_path=workspace_path, reason=str(e)) from e

        try:
            _set_winsize(slave_fd, self._cols, self._rows)
            process = subprocess.Popen(
                [self._shell],
                cwd=workspace_path,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                close_fds=True,
            )
        except OSError as e:
            os.close(master_fd)
            raise ChannelUnavailableError(workspace_path=workspace_path, reason=str(e)) from e
        finally:
            os.close(slave_fd)

        self._process = process
        self._master_fd = master_fd
        self._workspace_path = workspace_path
        logger.info(
            "Shell spawned",
            extra={"workspace_path": workspace_path, "shell": self._shell, "pid": process.pid},
        )

        thread = threading.Thread(
            target=self._read_loop,
            name=f"terminal-reader-{process.pid}",
            daemon=True,
            kwargs={"fd": master_fd},
        )
        thread.start()
        self._reader = thread

    def _read_loop(self, *, fd: int) -> None:
        while True:
            try:
                chunk = os.read(fd, 1024)
            except OSError:
                break
            if not chunk:
                break
            if self._on_output is not None:
                self._on_output(chunk.decode("utf-8", errors="replace"))

    def write(self, text: str) -> None:
        with self._lock:
            if self._master_fd is None:
                return
            try:
                os.write(self._master_fd, text.encode("utf-8"))
            except OSError as e:
                raise ChannelUnavailableError(
                    workspace_path=self._workspace_path or "", reason=str(e)
                ) from e

    def resize(self, cols: int, rows: int) -> None:
        with self._lock:
            self._cols, self._rows = cols, rows
            if self._master_fd is None:
                return
            _set_winsize(self._master_fd, cols, rows)

    def close(self, *, graceful: bool = False, timeout: float = 30.0) -> None:
        """Terminate the shell.

        With `graceful`, ask the shell to exit and wait up to `timeout` seconds
        for it, so commands already written get to finish and their output is
        flushed. A shell still busy after that is terminated.
        """

        with self._lock:
            if (
                graceful
                and self._process is not None
                and self._process.poll() is None
                and self._master_fd is not None
            ):
                try:
                    os.write(self._master_fd, b"exit\n")
                    self._process.wait(timeout=timeout)
                except (OSError, subprocess.TimeoutExpired):
                    logger.warning(
                        "Shell did not exit cleanly; terminating",
                        extra={"workspace_path": self._workspace_path, "timeout": timeout},
                    )
                if self._reader is not None:
                    self._reader.join(timeout=1)
            self._close_unlocked()

    def _close_unlocked(self) -> None:
        if self._process is not None and self._process.poll() is None:
            self._process.terminate()
            try:
                self._process.wait(timeout=2)
            except subprocess.TimeoutExpired:
                self._process.kill()
        if self._master_fd is not None:
            try:
                os.close(self._master_fd)
            except OSError:
                pass
        self._process = None
        self._master_fd = None
        self._workspace_path = None
        self._reader = None
