"""Incremental UTF-8 decoding for boundary-unaware PTY reads."""

from __future__ import annotations

import codecs


def _is_incomplete_tail(data: bytes) -> bool:
    """True if ``data`` is a truncated but so-far valid UTF-8 sequence."""
    checker = codecs.getincrementaldecoder("utf-8")("strict")
    try:
        checker.decode(data, final=False)
    except UnicodeDecodeError:
        return False
    return True


class Utf8StreamDecoder:
    """Turns arbitrarily split byte chunks into valid text.

    Bytes that cannot be decoded yet (a multi-byte character cut off at the
    end of a read) stay in a pending buffer until the next ``feed()``.
    Definitely-invalid sequences are surfaced as U+FFFD, never dropped.

    Not thread-safe: each pump owns exactly one decoder.
    """

    def __init__(self) -> None:
        self._pending = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes held back waiting for the rest of a character."""
        return bytes(self._pending)

    def segments(self, data: bytes) -> list[str]:
        """Append ``data`` and return every decodable segment, in order.

        Each segment is either a run of valid text or the lossy rendering
        of one invalid sequence.
        """
        self._pending.extend(data)
        out: list[str] = []

        while self._pending:
            try:
                text = self._pending.decode("utf-8")
            except UnicodeDecodeError as e:
                if e.start > 0:
                    out.append(self._pending[: e.start].decode("utf-8"))
                    del self._pending[: e.start]
                    continue

                if e.end == len(self._pending) and _is_incomplete_tail(
                    bytes(self._pending)
                ):
                    # More bytes may still arrive.
                    break

                out.append(
                    self._pending[: e.end].decode("utf-8", errors="replace")
                )
                del self._pending[: e.end]
                continue

            out.append(text)
            self._pending.clear()

        return out

    def feed(self, data: bytes) -> str:
        """Append ``data`` and return all text decodable so far."""
        return "".join(self.segments(data))

    def flush(self) -> str:
        """Lossily decode and drop whatever is still pending."""
        if not self._pending:
            return ""
        text = self._pending.decode("utf-8", errors="replace")
        self._pending.clear()
        return text
