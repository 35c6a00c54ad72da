"""Incremental parser for newline-delimited JSON emitted by backends."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import IO, Any

from codeagent_wrapper.orchestrator.errors import MessageTooLarge, StreamIOError

logger = logging.getLogger(__name__)

MAX_MESSAGE_SIZE = 1_048_576

_JSON_OPENERS = (b"{", b"[")


class EventStreamParser:
    """Decode one JSON value per line from a binary stream.

    Blank lines, free-text noise and undecodable lines are skipped so that
    human-readable diagnostics interleaved by the child never stop the
    stream. Only an oversize line (reported, then skipped) and a read
    failure (terminal) surface as errors.
    """

    def __init__(self, stream: IO[bytes], *, max_message_size: int = MAX_MESSAGE_SIZE) -> None:
        self._stream = stream
        self._max_message_size = max_message_size
        self._exhausted = False

    def next_event(self) -> Any | None:
        """Return the next decoded value, or None at end of stream.

        Raises:
            MessageTooLarge: the current line exceeded the size limit. The
                line is consumed; the following call continues after it.
            StreamIOError: the stream failed. The parser is exhausted.
        """

        while not self._exhausted:
            line = self._read_line()
            if not line:
                self._exhausted = True
                return None

            if len(line) > self._max_message_size:
                size = len(line) + self._discard_rest_of_line(line)
                raise MessageTooLarge(size, self._max_message_size)

            stripped = line.strip()
            if not stripped:
                continue
            if not stripped.startswith(_JSON_OPENERS):
                logger.debug("Skipping non-JSON line: %.120r", stripped)
                continue
            try:
                return json.loads(stripped)
            except (ValueError, RecursionError) as error:
                # RecursionError: nesting deeper than the interpreter can decode.
                logger.debug("Skipping undecodable line: %s", error)
                continue
        return None

    def events(self) -> Iterator[Any]:
        """Yield decoded values until end of stream, logging parse errors."""

        while True:
            try:
                event = self.next_event()
            except MessageTooLarge as error:
                logger.warning("%s", error)
                continue
            except StreamIOError as error:
                logger.warning("%s", error)
                return
            if event is None:
                return
            yield event

    def _read_line(self) -> bytes:
        try:
            return self._stream.readline(self._max_message_size + 1)
        except (OSError, ValueError) as error:
            self._exhausted = True
            raise StreamIOError(str(error)) from error

    def _discard_rest_of_line(self, head: bytes) -> int:
        discarded = 0
        chunk = head
        while not chunk.endswith(b"\n"):
            chunk = self._read_line()
            if not chunk:
                self._exhausted = True
                break
            discarded += len(chunk)
        return discarded
