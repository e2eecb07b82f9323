"""Tests for tabterm.pty.manager.PTYManager against real /bin/sh sessions."""

from __future__ import annotations

import os
import queue
import sys
import time
from collections.abc import Iterator

import pytest

from tabterm.config import PTYConfig
from tabterm.pty.errors import PTYIOError, PTYLockError, PTYNotFoundError
from tabterm.pty.manager import PTYManager
from tabterm.session.wire import EventType, Wire, WireEvent

pytestmark = pytest.mark.skipif(
    sys.platform == "win32" or not os.path.exists("/bin/sh"),
    reason="needs a POSIX PTY and /bin/sh",
)

Events = queue.Queue[WireEvent | None]


def _config(**overrides) -> PTYConfig:
    values = {"shell": "/bin/sh", "shell_args": [], "kill_grace_seconds": 1.0}
    values.update(overrides)
    return PTYConfig(**values)


@pytest.fixture
def manager() -> Iterator[PTYManager]:
    mgr = PTYManager(_config())
    yield mgr
    mgr.cleanup()


@pytest.fixture
def wire() -> Wire:
    return Wire()


def _read_until(
    events: Events, session_id: str, needle: str | None = None, timeout: float = 10.0
) -> tuple[str, int]:
    """Collect output for ``session_id`` until ``needle`` shows up or it exits.

    Returns (text, exit_event_count).
    """
    deadline = time.monotonic() + timeout
    chunks: list[str] = []
    exits = 0
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        try:
            event = events.get(timeout=remaining)
        except queue.Empty:
            break
        if event is None or event.data.get("session_id") != session_id:
            continue
        if event.type == EventType.PTY_OUTPUT:
            chunks.append(event.data["text"])
            if needle is not None and needle in "".join(chunks):
                break
        elif event.type == EventType.PTY_EXIT:
            exits += 1
            break
    return "".join(chunks), exits


def _count_late_exits(events: Events, session_id: str, wait: float = 0.3) -> int:
    time.sleep(wait)
    count = 0
    while not events.empty():
        event = events.get_nowait()
        if (
            event is not None
            and event.type == EventType.PTY_EXIT
            and event.data.get("session_id") == session_id
        ):
            count += 1
    return count


class _RespawningSink:
    """Restarts the session once from inside its exit notification."""

    def __init__(self, manager: PTYManager) -> None:
        self._manager = manager
        self.respawned: list[bool] = []

    def send_pty_output(self, session_id: str, text: str) -> None:
        pass

    def send_pty_exit(self, session_id: str) -> None:
        if not self.respawned:
            self.respawned.append(self._manager.spawn(session_id, self))


# ---------------------------------------------------------------------------
# Unknown ids
# ---------------------------------------------------------------------------


class TestUnknownSession:
    def test_write_unknown(self, manager: PTYManager) -> None:
        with pytest.raises(PTYNotFoundError, match="PTY not found"):
            manager.write("nope", "ls\n")

    def test_resize_unknown(self, manager: PTYManager) -> None:
        with pytest.raises(PTYNotFoundError):
            manager.resize("nope", 24, 80)

    def test_kill_unknown_is_noop(self, manager: PTYManager) -> None:
        manager.kill("nope")
        assert len(manager) == 0

    def test_resize_rejects_bad_size(self, manager: PTYManager) -> None:
        with pytest.raises(ValueError):
            manager.resize("nope", -1, 80)
        with pytest.raises(ValueError):
            manager.resize("nope", 24, 65536)

    def test_get_unknown(self, manager: PTYManager) -> None:
        assert manager.get("nope") is None
        assert manager.pump("nope") is None


# ---------------------------------------------------------------------------
# spawn
# ---------------------------------------------------------------------------


class TestSpawn:
    def test_spawn_is_idempotent(self, manager: PTYManager, wire: Wire) -> None:
        assert manager.spawn("t1", wire) is True
        first = manager.get("t1")
        first_pump = manager.pump("t1")
        assert manager.spawn("t1", wire) is False
        assert manager.get("t1") is first
        assert manager.pump("t1") is first_pump
        assert len(manager) == 1

    def test_list_sessions(self, manager: PTYManager, wire: Wire) -> None:
        manager.spawn("t1", wire)
        [info] = manager.list_sessions()
        assert info["id"] == "t1"
        assert info["alive"] is True
        assert (info["rows"], info["cols"]) == (24, 80)
        assert info["pid"] > 0

    def test_spawn_failure(self, wire: Wire) -> None:
        mgr = PTYManager(_config(shell="/nonexistent/shell"))
        with pytest.raises(PTYIOError, match="Failed to spawn"):
            mgr.spawn("t1", wire)
        assert "t1" not in mgr

    def test_child_environment(self, manager: PTYManager, wire: Wire) -> None:
        events = wire.subscribe()
        manager.spawn("t1", wire)
        manager.write("t1", "echo T=$TERM L=$LC_ALL\n")
        text, _ = _read_until(events, "t1", "T=xterm-256color L=en_US.UTF-8")
        assert "T=xterm-256color L=en_US.UTF-8" in text


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class TestOutput:
    def test_output_in_order(self, manager: PTYManager, wire: Wire) -> None:
        events = wire.subscribe()
        manager.spawn("t1", wire)
        # Quoting keeps the echoed command line from containing the markers.
        manager.write("t1", "printf '%s\\n' AA\"\"A; printf '%s\\n' BB\"\"B\n")
        text, exits = _read_until(events, "t1", "BBB")
        assert exits == 0
        assert "AAA" in text
        assert text.index("AAA") < text.index("BBB")

    def test_multibyte_output(self, manager: PTYManager, wire: Wire) -> None:
        events = wire.subscribe()
        manager.spawn("t1", wire)
        manager.write("t1", "printf '\\342\\202\\254\\n'\n")
        text, _ = _read_until(events, "t1", "€")
        assert "€" in text
        assert "\ufffd" not in text

    def test_write_bytes(self, manager: PTYManager, wire: Wire) -> None:
        events = wire.subscribe()
        manager.spawn("t1", wire)
        manager.write("t1", b"echo X\"\"Y\n")
        text, _ = _read_until(events, "t1", "XY")
        assert "XY" in text


# ---------------------------------------------------------------------------
# resize
# ---------------------------------------------------------------------------


class TestResize:
    def test_resize_reaches_the_shell(self, manager: PTYManager, wire: Wire) -> None:
        events = wire.subscribe()
        manager.spawn("t1", wire)
        manager.resize("t1", 40, 100)
        session = manager.get("t1")
        assert session is not None
        assert (session.rows, session.cols) == (40, 100)
        manager.write("t1", "stty size\n")
        text, _ = _read_until(events, "t1", "40 100")
        assert "40 100" in text

    def test_zero_size_is_accepted(self, manager: PTYManager, wire: Wire) -> None:
        manager.spawn("t1", wire)
        manager.resize("t1", 0, 0)
        session = manager.get("t1")
        assert session is not None
        assert (session.rows, session.cols) == (0, 0)


# ---------------------------------------------------------------------------
# Exit and kill
# ---------------------------------------------------------------------------


class TestExit:
    def test_shell_exit_emits_one_exit_event(
        self, manager: PTYManager, wire: Wire
    ) -> None:
        events = wire.subscribe()
        manager.spawn("t1", wire)
        pump = manager.pump("t1")
        assert pump is not None
        manager.write("t1", "exit\n")
        _, exits = _read_until(events, "t1")
        assert exits == 1
        assert pump.join(timeout=5)
        assert _count_late_exits(events, "t1") == 0

    def test_exited_session_is_pruned(self, manager: PTYManager, wire: Wire) -> None:
        manager.spawn("t1", wire)
        pump = manager.pump("t1")
        assert pump is not None
        manager.write("t1", "exit\n")
        assert pump.join(timeout=10)
        assert "t1" not in manager
        with pytest.raises(PTYNotFoundError):
            manager.write("t1", "echo hi\n")

    def test_exited_session_kept_without_pruning(self, wire: Wire) -> None:
        mgr = PTYManager(_config(prune_exited=False))
        try:
            mgr.spawn("t1", wire)
            pump = mgr.pump("t1")
            assert pump is not None
            mgr.write("t1", "exit\n")
            assert pump.join(timeout=10)
            assert "t1" in mgr
        finally:
            mgr.cleanup()
        assert "t1" not in mgr

    def test_spawn_from_exit_handler(self, manager: PTYManager) -> None:
        sink = _RespawningSink(manager)
        manager.spawn("t1", sink)
        first_pump = manager.pump("t1")
        assert first_pump is not None
        manager.write("t1", "exit\n")
        assert first_pump.join(timeout=10)
        assert sink.respawned == [True]
        assert "t1" in manager
        assert manager.pump("t1") is not first_pump


class TestKill:
    def test_kill_removes_and_terminates(
        self, manager: PTYManager, wire: Wire
    ) -> None:
        events = wire.subscribe()
        manager.spawn("t1", wire)
        session = manager.get("t1")
        assert session is not None
        manager.kill("t1")
        assert "t1" not in manager
        assert not session.alive
        _, exits = _read_until(events, "t1")
        assert exits == 1
        assert _count_late_exits(events, "t1") == 0

    def test_write_after_kill(self, manager: PTYManager, wire: Wire) -> None:
        manager.spawn("t1", wire)
        manager.kill("t1")
        with pytest.raises(PTYNotFoundError):
            manager.write("t1", "echo hi\n")
        with pytest.raises(PTYNotFoundError):
            manager.resize("t1", 30, 90)

    def test_respawn_is_independent(self, manager: PTYManager, wire: Wire) -> None:
        events = wire.subscribe()
        manager.spawn("t1", wire)
        old_session = manager.get("t1")
        old_pump = manager.pump("t1")
        assert old_session is not None and old_pump is not None

        manager.kill("t1")
        assert manager.spawn("t1", wire) is True
        new_session = manager.get("t1")
        new_pump = manager.pump("t1")
        assert new_session is not None and new_pump is not None
        assert new_session is not old_session
        assert new_pump is not old_pump
        assert new_session.pid != old_session.pid

        # The old pump finishing must not prune the new generation.
        assert old_pump.join(timeout=10)
        assert "t1" in manager

        # Drop the old generation's exit event before reading the new one.
        while not events.empty():
            events.get_nowait()
        manager.write("t1", "echo N\"\"EW\n")
        text, _ = _read_until(events, "t1", "NEW")
        assert "NEW" in text

    def test_cleanup_kills_everything(self, wire: Wire) -> None:
        mgr = PTYManager(_config())
        mgr.spawn("a", wire)
        mgr.spawn("b", wire)
        assert len(mgr) == 2
        mgr.cleanup()
        assert len(mgr) == 0


# ---------------------------------------------------------------------------
# Lock failure
# ---------------------------------------------------------------------------


class TestLockFailure:
    def test_lock_timeout_raises(self) -> None:
        mgr = PTYManager(_config(lock_timeout=0.05))
        mgr._lock.acquire()
        try:
            with pytest.raises(PTYLockError):
                mgr.write("t1", "x")
            with pytest.raises(PTYLockError):
                mgr.kill("t1")
        finally:
            mgr._lock.release()
