"""Crash and lifecycle diagnostics.

Uncaught exceptions (on the main thread or any pump thread) are written
to stderr and appended to a crash log. Nothing is recovered: the hook
records the failure and lets the process die.
"""

from __future__ import annotations

import logging
import sys
import threading
import time
import traceback
from dataclasses import dataclass
from types import TracebackType

logger = logging.getLogger(__name__)

LIFECYCLE_LOG = "/tmp/tabbed-terminal-lifecycle.log"
CRASH_LOG = "/tmp/tabbed-terminal-panic.log"


@dataclass(frozen=True)
class FailureInfo:
    """Plain description of an uncaught failure."""

    message: str
    location: str
    traceback: str = ""

    @classmethod
    def from_exception(
        cls,
        exc_type: type[BaseException],
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> FailureInfo:
        if exc_value is not None and str(exc_value):
            message = f"{exc_type.__name__}: {exc_value}"
        else:
            message = exc_type.__name__

        frames = traceback.extract_tb(exc_tb) if exc_tb is not None else []
        if frames:
            last = frames[-1]
            location = f"{last.filename}:{last.lineno}"
        else:
            location = "unknown location"

        tb_text = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
        return cls(message=message, location=location, traceback=tb_text)

    def render(self) -> str:
        return (
            f"[crash] {self.message}\n"
            f"location: {self.location}\n"
            f"traceback:\n{self.traceback}\n"
        )


def _append(path: str, text: str) -> None:
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(text)
    except OSError as e:
        logger.debug("Could not append to %s: %s", path, e)


def append_lifecycle_log(message: str, path: str = LIFECYCLE_LOG) -> None:
    """Append ``[<unix-ts>] message`` to the lifecycle log."""
    _append(path, f"[{int(time.time())}] {message}\n")


def report_failure(info: FailureInfo, crash_log: str = CRASH_LOG) -> None:
    """Write a failure to stderr and the crash log."""
    body = info.render()
    try:
        sys.stderr.write(body + "\n")
        sys.stderr.flush()
    except (OSError, ValueError):
        pass
    _append(crash_log, body + "\n")


def install_crash_hook(crash_log: str = CRASH_LOG) -> None:
    """Route uncaught exceptions through ``report_failure``.

    Replaces ``sys.excepthook`` and ``threading.excepthook``. The report
    already carries the traceback, so the default hooks are not chained.
    KeyboardInterrupt is not reported.
    """

    def _hook(
        exc_type: type[BaseException],
        exc_value: BaseException,
        exc_tb: TracebackType | None,
    ) -> None:
        if not issubclass(exc_type, KeyboardInterrupt):
            report_failure(
                FailureInfo.from_exception(exc_type, exc_value, exc_tb), crash_log
            )

    def _thread_hook(args: threading.ExceptHookArgs) -> None:
        if not issubclass(args.exc_type, SystemExit):
            report_failure(
                FailureInfo.from_exception(
                    args.exc_type, args.exc_value, args.exc_traceback
                ),
                crash_log,
            )

    sys.excepthook = _hook
    threading.excepthook = _thread_hook
