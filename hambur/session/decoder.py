"""Incremental decoder for OpenAI-compatible chat completion streams.

The response body is a sequence of server-sent-event records separated
by blank lines. Each record carries one or more ``data:`` lines whose
joined value is either a JSON chunk object or the terminator token.

    data: {"choices":[{"delta":{"content":"Hel"}}]}

    data: [DONE]

The decoder is fed raw bytes exactly as they arrive on the wire and
produces StreamEvents record by record. It never looks at a record until
its terminating blank line has arrived, so the events produced do not
depend on where the transport happened to split the body.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from hambur.session.schemas import StreamEvent

logger = logging.getLogger(__name__)

DATA_MARKER = "data:"
DONE_TOKEN = "[DONE]"

# SSE fields that carry no payload for chat completions
_IGNORED_FIELDS = frozenset({"event", "id", "retry"})

_RECORD_END = re.compile(rb"\r?\n\r?\n")


class _MalformedRecord(ValueError):
    pass


def parse_chunk(data: Any) -> list[StreamEvent]:
    """Turn one decoded chat completion chunk into StreamEvents.

    Only ``choices[0].delta`` is read; everything else in the object is
    ignored. Chunks without text (role announcements, usage summaries,
    finish_reason markers) produce no events. An ``error`` object sent
    in-stream by the API becomes an upstream error event.
    """
    if not isinstance(data, dict):
        return [StreamEvent.error(f"payload is not a JSON object: {type(data).__name__}")]

    error = data.get("error")
    if error:
        if isinstance(error, dict):
            code = error.get("code") or error.get("type") or "unknown"
            message = error.get("message", "")
            return [StreamEvent.error(f"API error {code}: {message}", upstream=True)]
        return [StreamEvent.error(f"API error: {error}", upstream=True)]

    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return []
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return []

    events: list[StreamEvent] = []
    reasoning = delta.get("reasoning_content")
    if isinstance(reasoning, str) and reasoning:
        events.append(StreamEvent.reasoning(reasoning))
    content = delta.get("content")
    if isinstance(content, str) and content:
        events.append(StreamEvent.delta(content))
    return events


class StreamDecoder:
    """Reassembles records from byte chunks and decodes them in arrival order.

    Call feed() for every chunk and finish() once the body has ended.
    Errors are per record: a bad record yields an error event but the
    records around it are still decoded. Once the terminator has been
    seen, the only further event the decoder can produce is a single
    "data after terminator" error.
    """

    def __init__(self, marker: str = DATA_MARKER, terminator: str = DONE_TOKEN) -> None:
        self._marker = marker
        self._terminator = terminator
        self._buffer = bytearray()
        self._done = False
        self._closed = False
        self.records = 0

    @property
    def done(self) -> bool:
        """True once the terminator record has been decoded."""
        return self._done

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        if self._closed:
            return []
        self._buffer.extend(chunk)

        events: list[StreamEvent] = []
        while not self._closed:
            match = _RECORD_END.search(self._buffer)
            if match is None:
                break
            record = bytes(self._buffer[: match.start()])
            del self._buffer[: match.end()]
            events.extend(self._decode_record(record))

        if self._closed:
            self._buffer.clear()
        return events

    def finish(self) -> list[StreamEvent]:
        """Flush at end of body. Idempotent; the decoder is closed afterwards."""
        if self._closed:
            return []
        residual = bytes(self._buffer).strip()
        self._buffer.clear()
        self._closed = True

        if self._done:
            if residual:
                return [StreamEvent.error("data after terminator")]
            return []

        if residual:
            if self._is_terminator(residual):
                self._done = True
                return [StreamEvent.done()]
            logger.debug("Truncated record at end of stream: %r", residual[:200])
            return [StreamEvent.error("stream ended inside an incomplete record")]

        return [StreamEvent.error("stream ended before terminator")]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _decode_record(self, record: bytes) -> list[StreamEvent]:
        if self._done:
            if record.strip():
                self._closed = True
                return [StreamEvent.error("data after terminator")]
            return []

        try:
            values = self._data_values(record)
        except _MalformedRecord as e:
            return [StreamEvent.error(str(e))]

        if not values:
            # Blank, comment-only or keepalive record
            return []

        self.records += 1
        payload = "\n".join(values)
        if payload.strip() == self._terminator:
            self._done = True
            return [StreamEvent.done()]

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            logger.debug("JSON decode error: %s, payload: %s", e, payload[:500])
            return [StreamEvent.error(f"invalid JSON payload: {e}")]
        return parse_chunk(data)

    def _data_values(self, record: bytes) -> list[str]:
        """Return the values of the record's data lines.

        Raises _MalformedRecord on invalid UTF-8 or an unrecognised line.
        """
        try:
            text = record.decode("utf-8")
        except UnicodeDecodeError as e:
            raise _MalformedRecord(f"record is not valid UTF-8: {e}") from e

        values: list[str] = []
        for line in text.split("\n"):
            line = line.rstrip("\r")
            if not line or line.startswith(":"):
                continue
            if line.startswith(self._marker):
                value = line[len(self._marker):]
                values.append(value[1:] if value.startswith(" ") else value)
                continue
            if line.split(":", 1)[0] in _IGNORED_FIELDS:
                continue
            raise _MalformedRecord(f"malformed record line: {line[:200]!r}")
        return values

    def _is_terminator(self, record: bytes) -> bool:
        try:
            values = self._data_values(record)
        except _MalformedRecord:
            return False
        return "\n".join(values).strip() == self._terminator
