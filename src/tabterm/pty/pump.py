"""Output pump — one background thread per PTY session."""

from __future__ import annotations

import logging
import os
import threading
from typing import TYPE_CHECKING, Callable

from tabterm.pty.decoder import Utf8StreamDecoder

if TYPE_CHECKING:
    from tabterm.session.wire import PTYSink

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class OutputPump:
    """Moves bytes from a PTY read fd to a sink as decoded text.

    The pump owns ``read_fd`` for its whole life and closes it when done.
    It stops only when a read returns EOF or raises; on Linux a PTY master
    raises ``EIO`` once the slave side has no more holders, which is the
    normal way a shell exit shows up here.

    Exactly one exit event is published per pump, after all output and
    after ``on_done`` has run, so a sink reacting to the exit already sees
    the registry without this session.
    """

    def __init__(
        self,
        session_id: str,
        read_fd: int,
        sink: PTYSink,
        chunk_size: int = READ_CHUNK_SIZE,
        on_done: Callable[[OutputPump], None] | None = None,
    ) -> None:
        self.session_id = session_id
        self._read_fd = read_fd
        self._sink = sink
        self._chunk_size = chunk_size
        self._on_done = on_done
        self._thread: threading.Thread | None = None
        self._exit_sent = False
        self._exit_lock = threading.Lock()
        self.done = threading.Event()

    def start(self) -> None:
        """Start the pump thread. Can only be called once."""
        if self._thread is not None:
            raise RuntimeError(f"Pump for {self.session_id} already started")
        self._thread = threading.Thread(
            target=self.run,
            name=f"pty-pump-{self.session_id}",
            daemon=True,
        )
        self._thread.start()

    def run(self) -> None:
        """Pump until EOF or read error. Runs on the pump thread."""
        decoder = Utf8StreamDecoder()
        try:
            while True:
                try:
                    data = os.read(self._read_fd, self._chunk_size)
                except OSError as e:
                    logger.debug("PTY reader %s ended: %s", self.session_id, e)
                    break

                if not data:
                    break

                text = decoder.feed(data)
                if text:
                    self._publish_output(text)

            tail = decoder.flush()
            if tail:
                self._publish_output(tail)
        finally:
            try:
                os.close(self._read_fd)
            except OSError:
                pass
            if self._on_done is not None:
                try:
                    self._on_done(self)
                except Exception:
                    logger.exception(
                        "Error in pump completion callback for %s", self.session_id
                    )
            self._publish_exit()
            self.done.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the pump to finish. Returns True if it did."""
        return self.done.wait(timeout)

    @property
    def alive(self) -> bool:
        return self._thread is not None and not self.done.is_set()

    def _publish_output(self, text: str) -> None:
        try:
            self._sink.send_pty_output(self.session_id, text)
        except Exception as e:
            logger.debug("Dropped output for %s: %s", self.session_id, e)

    def _publish_exit(self) -> None:
        with self._exit_lock:
            if self._exit_sent:
                return
            self._exit_sent = True
        logger.info("PTY session %s output ended", self.session_id)
        try:
            self._sink.send_pty_exit(self.session_id)
        except Exception as e:
            logger.debug("Dropped exit event for %s: %s", self.session_id, e)
