"""Errors raised by the PTY session registry."""

from __future__ import annotations


class PTYError(RuntimeError):
    """Base class for PTY registry failures."""


class PTYNotFoundError(PTYError):
    """The operation referenced a session id that is not registered."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"PTY not found: {session_id}")
        self.session_id = session_id


class PTYIOError(PTYError):
    """An OS-level PTY, process, read, write or resize call failed.

    The underlying ``OSError`` is chained as ``__cause__`` by the raiser.
    """


class PTYLockError(PTYError):
    """The registry lock could not be acquired."""
