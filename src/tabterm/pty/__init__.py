"""PTY process management — interactive shells on pseudo-terminals.

Each session runs a login shell on its own PTY. A background pump thread
per session decodes the shell's output into text events for a sink, and
the manager serializes spawn/write/resize/kill across sessions.
"""

from tabterm.pty.decoder import Utf8StreamDecoder
from tabterm.pty.errors import PTYError, PTYIOError, PTYLockError, PTYNotFoundError
from tabterm.pty.manager import PTYManager
from tabterm.pty.pump import OutputPump
from tabterm.pty.session import PTYSession, PTYStatus

__all__ = [
    "OutputPump",
    "PTYError",
    "PTYIOError",
    "PTYLockError",
    "PTYManager",
    "PTYNotFoundError",
    "PTYSession",
    "PTYStatus",
    "Utf8StreamDecoder",
]
