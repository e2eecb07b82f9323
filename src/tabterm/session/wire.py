"""Wire protocol — decouples PTY sessions from whatever renders them.

Pumps publish output/exit events to the wire; UIs subscribe and render.
The CLI attach loop, tests and any future front end consume the same
events.
"""

from __future__ import annotations

import enum
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol


class EventType(enum.Enum):
    PTY_OUTPUT = "pty_output"
    PTY_EXIT = "pty_exit"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


class PTYSink(Protocol):
    """Anything a pump can publish to."""

    def send_pty_output(self, session_id: str, text: str) -> None: ...

    def send_pty_exit(self, session_id: str) -> None: ...


class Wire:
    """Thread-safe message bus: PTY pumps -> UI subscribers.

    Multi-producer (one pump thread per session), multi-consumer broadcast.
    """

    def __init__(self) -> None:
        self._subscribers: list[queue.Queue[WireEvent | None]] = []
        self._lock = threading.Lock()
        self._closed: bool = False

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        with self._lock:
            if self._closed:
                return
            for q in self._subscribers:
                q.put_nowait(event)

    def send_pty_output(self, session_id: str, text: str) -> None:
        self.send(
            WireEvent(
                type=EventType.PTY_OUTPUT,
                data={"session_id": session_id, "text": text},
            )
        )

    def send_pty_exit(self, session_id: str) -> None:
        """Notify subscribers that a PTY session's output has ended."""
        self.send(WireEvent(type=EventType.PTY_EXIT, data={"session_id": session_id}))

    def subscribe(self) -> queue.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: queue.Queue[WireEvent | None] = queue.Queue()
        with self._lock:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        """Unsubscribe from events."""
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        with self._lock:
            self._closed = True
            for q in self._subscribers:
                q.put_nowait(None)

    @property
    def closed(self) -> bool:
        return self._closed
