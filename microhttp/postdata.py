"""Incremental parsing of ``application/x-www-form-urlencoded`` request bodies."""

from __future__ import annotations

import enum
from typing import Callable, Optional

from microhttp.unescape import http_unescape, unescape_plus

XBUF_SIZE = 512
"""Largest piece of a value that is decoded and handed over in one call."""

MIN_BUFFER_SIZE = 256
"""Smallest buffer size a processor accepts."""

PostDataIterator = Callable[
    [str, Optional[str], Optional[str], Optional[str], bytes, int], Optional[bool]
]
"""Called as ``iterator(key, filename, content_type, transfer_encoding, data, offset)``.

*data* is the next piece of the value for *key*, starting at byte
*offset* of that value.  Returning ``False`` aborts processing; any
other return value continues.
"""


class PostDataError(ValueError):
    """Raised when POST data is malformed, too large, or processing was aborted."""


class PostState(enum.Enum):
    """States of the POST data parser."""

    ERROR = enum.auto()
    DONE = enum.auto()
    INIT = enum.auto()
    NEXT_BOUNDARY = enum.auto()
    PROCESS_VALUE = enum.auto()
    EXPECT_NEW_LINE = enum.auto()
    PROCESS_ENTRY_HEADERS = enum.auto()
    PERFORM_CHECK_MULTIPART = enum.auto()
    PROCESS_VALUE_TO_BOUNDARY = enum.auto()
    PERFORM_CLEANUP = enum.auto()
    NESTED_INIT = enum.auto()
    NESTED_PERFORM_MARKING = enum.auto()
    NESTED_PROCESS_ENTRY_HEADERS = enum.auto()
    NESTED_PROCESS_VALUE_TO_BOUNDARY = enum.auto()
    NESTED_PERFORM_CLEANUP = enum.auto()


_VALUE_END = frozenset(b"&\n\r")
_NEWLINES = frozenset(b"\n\r")


def _decode_key(raw: bytes) -> str:
    return raw.decode("utf-8", errors="surrogateescape")


class UrlEncodedProcessor:
    """Feed URL-encoded form data in pieces; values are passed to *iterator*.

    Keys are decoded before the iterator sees them.  Values are decoded
    and delivered in pieces as they arrive, each with its offset within
    the value.  *buffer_size* bounds the length of a key.
    """

    def __init__(self, iterator: PostDataIterator, buffer_size: int = 1024) -> None:
        if iterator is None:
            raise ValueError("an iterator is required")
        if buffer_size < MIN_BUFFER_SIZE:
            raise ValueError(
                f"buffer size must be at least {MIN_BUFFER_SIZE}, got {buffer_size}"
            )
        self._iterator = iterator
        self._buffer_size = buffer_size + 4
        self._key_buffer = bytearray()
        self._key = ""
        self._pending = b""
        self._value_offset = 0
        self.state = PostState.INIT

    def _fail(self, message: str) -> PostDataError:
        self.state = PostState.ERROR
        return PostDataError(message)

    def feed(self, data: bytes) -> None:
        """Process the next piece of the body; raises PostDataError on failure."""
        data = bytes(data)
        if not data:
            return
        self._process(data)

    def _process(self, data: bytes) -> None:
        length = len(data)
        poff = 0
        while poff < length:
            if self.state is PostState.ERROR:
                raise PostDataError("post processor is in the error state")
            if self.state is PostState.DONE:
                raise self._fail("unexpected data after the end of the body")
            if self.state is PostState.INIT:
                found = data.find(b"=", poff)
                equals = (length if found == -1 else found) - poff
                if equals + len(self._key_buffer) > self._buffer_size:
                    raise self._fail("key does not fit in the buffer")
                self._key_buffer += data[poff:poff + equals]
                if equals + poff == length:
                    return
                raw_key = http_unescape(unescape_plus(bytes(self._key_buffer)))
                self._key = _decode_key(raw_key)
                self._key_buffer.clear()
                poff += equals + 1
                self.state = PostState.PROCESS_VALUE
                self._value_offset = 0
            elif self.state is PostState.PROCESS_VALUE:
                poff = self._process_value(data, poff)
            elif self.state is PostState.EXPECT_NEW_LINE:
                if data[poff] in _NEWLINES:
                    self.state = PostState.DONE
                    return
                raise PostDataError("expected a line break after the last value")
            else:
                raise self._fail(f"unexpected parser state {self.state.name}")

    def _process_value(self, data: bytes, poff: int) -> int:
        length = len(data)
        chunk = self._pending
        self._pending = b""

        amper = 0
        while (
            amper + poff < length
            and amper < XBUF_SIZE
            and data[amper + poff] not in _VALUE_END
        ):
            amper += 1
        end_of_value_found = amper + poff < length and data[amper + poff] in _VALUE_END

        delta = min(amper, XBUF_SIZE - len(chunk))
        chunk += data[poff:poff + delta]
        poff += delta

        keep = len(chunk)
        if keep > 0 and chunk[keep - 1] == ord("%"):
            keep -= 1
        elif keep > 1 and chunk[keep - 2] == ord("%"):
            keep -= 2
        if keep < len(chunk):
            self._pending = chunk[keep:]
            chunk = chunk[:keep]

        if not chunk and poff == length:
            return poff

        value = http_unescape(unescape_plus(chunk))
        if self._iterator(self._key, None, None, None, value, self._value_offset) is False:
            raise self._fail("processing aborted by the iterator")
        self._value_offset += len(value)

        if end_of_value_found:
            terminator = data[poff]
            if terminator in _NEWLINES:
                self.state = PostState.EXPECT_NEW_LINE
            elif terminator == ord("&"):
                poff += 1
                self.state = PostState.INIT
        return poff

    def finish(self) -> bool:
        """End processing and report whether the body ended cleanly.

        A value still being read is completed first.  Returns ``False``
        if an escape sequence was left incomplete or the body stopped in
        the middle of a key or after an error.
        """
        if self.state is PostState.PROCESS_VALUE:
            try:
                self._process(b"\n")
            except PostDataError:
                pass
        if self._pending:
            return False
        return self.state in (PostState.DONE, PostState.EXPECT_NEW_LINE)