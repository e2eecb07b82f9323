"""PTY session — the OS handles behind one running shell."""

from __future__ import annotations

import enum
import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import termios
from dataclasses import dataclass, field

from tabterm.pty.errors import PTYIOError
from tabterm.pty.shell import ShellCommand

logger = logging.getLogger(__name__)

DEFAULT_ROWS = 24
DEFAULT_COLS = 80


class PTYStatus(enum.Enum):
    """Lifecycle states for a PTY session."""

    RUNNING = "running"
    KILLING = "killing"  # Kill requested, waiting for process to die
    KILLED = "killed"  # Killed by us
    EXITED = "exited"  # Process exited on its own


def set_window_size(fd: int, rows: int, cols: int) -> None:
    """Apply a terminal size to a PTY fd (raises OSError)."""
    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


def _acquire_controlling_tty() -> None:
    # Runs in the forked child after setsid(), where stdin is the PTY slave.
    # The parent is multi-threaded, so this must stay a single ioctl: no
    # locks, logging or imports.
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


@dataclass
class PTYSession:
    """A running shell attached to a pseudo-terminal.

    Holds the master fd (used for both writes and resizes) and the
    process handle. The read side is a ``dup`` of the master handed to the
    pump by ``open()``; the session never reads.

    The child gets its own session and process group (``start_new_session``)
    so ``terminate()`` can take down everything the shell started.
    """

    id: str
    command: ShellCommand
    rows: int = DEFAULT_ROWS
    cols: int = DEFAULT_COLS

    # Internal state
    _master_fd: int = field(default=-1, init=False)
    _proc: subprocess.Popen | None = field(default=None, init=False)
    _pid: int = field(default=0, init=False)
    _pgid: int = field(default=0, init=False)
    _status: PTYStatus = field(default=PTYStatus.RUNNING, init=False)

    def open(self) -> int:
        """Allocate the PTY, start the shell, and return a read fd.

        The caller owns the returned fd. On failure every handle opened so
        far is closed and ``PTYIOError`` is raised.
        """
        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise PTYIOError(f"Failed to allocate PTY: {e}") from e

        try:
            try:
                set_window_size(master_fd, self.rows, self.cols)
                self._proc = subprocess.Popen(
                    self.command.argv,
                    stdin=slave_fd,
                    stdout=slave_fd,
                    stderr=slave_fd,
                    start_new_session=True,
                    preexec_fn=_acquire_controlling_tty,
                    env=self.command.env,
                    cwd=self.command.cwd,
                )
            finally:
                # Parent always closes slave fd
                os.close(slave_fd)
            read_fd = os.dup(master_fd)
        except OSError as e:
            if self._proc is not None:
                self._reap(signal.SIGKILL, timeout=1.0)
            os.close(master_fd)
            raise PTYIOError(f"Failed to spawn {self.command.program}: {e}") from e
        except subprocess.SubprocessError as e:
            os.close(master_fd)
            raise PTYIOError(f"Failed to spawn {self.command.program}: {e}") from e

        self._master_fd = master_fd
        self._pid = self._proc.pid
        try:
            self._pgid = os.getpgid(self._pid)
        except ProcessLookupError:
            # Already gone; it was started as a session leader.
            self._pgid = self._pid
        self._status = PTYStatus.RUNNING

        logger.info(
            "PTY session %s started: pid=%d pgid=%d cmd=%s",
            self.id,
            self._pid,
            self._pgid,
            " ".join(self.command.argv),
        )
        return read_fd

    def write(self, data: bytes) -> None:
        """Write every byte of ``data`` to the shell's input."""
        view = memoryview(data)
        try:
            while view:
                written = os.write(self._master_fd, view)
                view = view[written:]
        except OSError as e:
            raise PTYIOError(f"Failed to write to PTY {self.id}: {e}") from e

    def resize(self, rows: int, cols: int) -> None:
        try:
            set_window_size(self._master_fd, rows, cols)
        except OSError as e:
            raise PTYIOError(f"Failed to resize PTY {self.id}: {e}") from e
        self.rows, self.cols = rows, cols

    def terminate(self, grace: float = 2.0) -> None:
        """Hang up the process group, escalate to SIGKILL, close the master.

        Closing the slave side makes the pump's next read fail, so the
        pump emits its exit event on its own.
        """
        if self._status in (PTYStatus.KILLED, PTYStatus.KILLING) or self._master_fd < 0:
            return

        exited = self.poll() is not None
        self._status = PTYStatus.KILLING
        if not self._reap(signal.SIGHUP, timeout=grace):
            self._reap(signal.SIGKILL, timeout=grace)

        try:
            os.close(self._master_fd)
        except OSError:
            pass
        self._master_fd = -1
        self._status = PTYStatus.EXITED if exited else PTYStatus.KILLED
        logger.info("Killed PTY session %s (pgid=%d)", self.id, self._pgid)

    def _reap(self, sig: signal.Signals, timeout: float) -> bool:
        """Signal the process group and wait for the leader. True if reaped."""
        if self._proc is None:
            return True
        pgid = self._pgid or self._proc.pid
        try:
            os.killpg(pgid, sig)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", pgid)
        except PermissionError as e:
            logger.warning("Cannot signal PTY session %s: %s", self.id, e)
        try:
            self._proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return False
        return True

    def poll(self) -> int | None:
        """Exit code if the shell has exited, else None."""
        if self._proc is None:
            return None
        code = self._proc.poll()
        if code is not None and self._status == PTYStatus.RUNNING:
            self._status = PTYStatus.EXITED
        return code

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def alive(self) -> bool:
        return self._status == PTYStatus.RUNNING and self.poll() is None

    @property
    def status(self) -> PTYStatus:
        return self._status
