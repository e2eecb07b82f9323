"""tabterm — PTY-backed interactive shell sessions."""

__version__ = "0.1.0"
