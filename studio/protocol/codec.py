"""Newline-delimited JSON encoding of stream events."""

import codecs

from pydantic import TypeAdapter, ValidationError

from studio.protocol.events import StreamEvent

_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def encode_event(event: StreamEvent) -> str:
    """Serialize an event as a single line terminated by ``\\n``.

    JSON string escaping guarantees the payload itself never contains a raw newline.
    """
    return event.model_dump_json(by_alias=True, exclude_none=True) + "\n"


def decode_line(line: str) -> StreamEvent | None:
    """Parse one line into an event.

    Blank lines and anything that is not a valid event yield ``None``.
    """
    stripped = line.strip()
    if not stripped:
        return None
    try:
        return _event_adapter.validate_json(stripped)
    except ValidationError:
        return None


class StreamDecoder:
    """Incremental decoder for a chunked event stream.

    Transports may split the stream at any byte offset, including inside a
    multi-byte character, so incomplete trailing data is buffered until the
    next chunk completes it.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes | str) -> list[StreamEvent]:
        """Consume a chunk and return the events of every completed line."""
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self._buffer += chunk

        *lines, self._buffer = self._buffer.split("\n")
        return [event for event in map(decode_line, lines) if event is not None]

    def flush(self) -> list[StreamEvent]:
        """Parse whatever remains once the stream has ended."""
        remainder = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        event = decode_line(remainder)
        return [event] if event is not None else []
