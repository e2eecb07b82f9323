"""PTY Manager — the registry of live PTY sessions."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterator

from tabterm.config import PTYConfig
from tabterm.pty.errors import PTYLockError, PTYNotFoundError
from tabterm.pty.pump import OutputPump
from tabterm.pty.session import PTYSession
from tabterm.pty.shell import build_shell_command

if TYPE_CHECKING:
    from tabterm.session.wire import PTYSink

logger = logging.getLogger(__name__)

MAX_DIMENSION = 65535


@dataclass
class _Entry:
    session: PTYSession
    pump: OutputPump


class PTYManager:
    """Tracks PTY sessions by caller-supplied id.

    A single lock guards the id -> session map. It is held across lookups,
    inserts and removals and across the short write/resize system calls,
    but never while a process is being torn down. Each session's read side
    belongs to its pump thread and is never touched here.

    - ``spawn`` is idempotent per id
    - ``write``/``resize`` on unknown ids raise ``PTYNotFoundError``
    - ``kill`` removes the session, then hangs up its process group
    - sessions whose output has ended are pruned (``prune_exited``)
    """

    def __init__(self, config: PTYConfig | None = None) -> None:
        self._config = config or PTYConfig()
        self._sessions: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    @contextmanager
    def _locked(self) -> Iterator[dict[str, _Entry]]:
        if not self._lock.acquire(timeout=self._config.lock_timeout):
            raise PTYLockError("PTY manager lock unavailable")
        try:
            yield self._sessions
        finally:
            self._lock.release()

    def spawn(self, session_id: str, sink: PTYSink) -> bool:
        """Start a shell for ``session_id`` unless one is already running.

        Returns True if a new session was created, False for the no-op.
        Raises ``PTYIOError`` if the PTY or process cannot be set up.
        """
        with self._locked() as sessions:
            if session_id in sessions:
                return False

            command = build_shell_command(
                override=self._config.shell,
                args=self._config.shell_args,
            )
            session = PTYSession(
                id=session_id,
                command=command,
                rows=self._config.rows,
                cols=self._config.cols,
            )
            read_fd = session.open()

            pump = OutputPump(
                session_id,
                read_fd,
                sink,
                chunk_size=self._config.read_chunk_size,
                on_done=self._on_pump_done,
            )
            entry = _Entry(session=session, pump=pump)
            sessions[session_id] = entry
            pump.start()
        return True

    def write(self, session_id: str, data: bytes | str) -> None:
        """Inject ``data`` into the shell's input stream."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self._locked() as sessions:
            entry = sessions.get(session_id)
            if entry is None:
                raise PTYNotFoundError(session_id)
            entry.session.write(data)

    def resize(self, session_id: str, rows: int, cols: int) -> None:
        """Propagate new terminal dimensions to the PTY."""
        if not (0 <= rows <= MAX_DIMENSION and 0 <= cols <= MAX_DIMENSION):
            raise ValueError(f"Invalid terminal size: {rows}x{cols}")
        with self._locked() as sessions:
            entry = sessions.get(session_id)
            if entry is None:
                raise PTYNotFoundError(session_id)
            entry.session.resize(rows, cols)

    def kill(self, session_id: str) -> None:
        """Remove a session and terminate its process. Unknown ids are fine."""
        with self._locked() as sessions:
            entry = sessions.pop(session_id, None)
        if entry is None:
            return
        entry.session.terminate(grace=self._config.kill_grace_seconds)

    def get(self, session_id: str) -> PTYSession | None:
        """Get a session by ID."""
        with self._locked() as sessions:
            entry = sessions.get(session_id)
        return entry.session if entry else None

    def pump(self, session_id: str) -> OutputPump | None:
        """Get the output pump of a session by ID."""
        with self._locked() as sessions:
            entry = sessions.get(session_id)
        return entry.pump if entry else None

    def list_sessions(self) -> list[dict[str, Any]]:
        """List all registered sessions."""
        with self._locked() as sessions:
            entries = list(sessions.values())
        return [
            {
                "id": e.session.id,
                "pid": e.session.pid,
                "alive": e.session.alive,
                "status": e.session.status.value,
                "rows": e.session.rows,
                "cols": e.session.cols,
            }
            for e in entries
        ]

    def cleanup(self) -> None:
        """Kill all sessions. Called on shutdown."""
        with self._locked() as sessions:
            session_ids = list(sessions.keys())
        for session_id in session_ids:
            self.kill(session_id)
        logger.info("All PTY sessions cleaned up")

    def _on_pump_done(self, pump: OutputPump) -> None:
        # Runs on the pump thread before its exit event goes out, so a sink
        # that respawns on exit finds the id free. Only the generation this
        # pump belongs to may be pruned; a later spawn is left alone.
        if not self._config.prune_exited:
            return
        with self._locked() as sessions:
            entry = sessions.get(pump.session_id)
            if entry is None or entry.pump is not pump:
                return
            del sessions[pump.session_id]
        entry.session.terminate(grace=self._config.kill_grace_seconds)
        logger.info("Pruned exited PTY session %s", pump.session_id)

    def __contains__(self, session_id: object) -> bool:
        with self._locked() as sessions:
            return session_id in sessions

    def __len__(self) -> int:
        with self._locked() as sessions:
            return len(sessions)
