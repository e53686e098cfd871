"""Response objects: a body source plus the header and footer lines to send."""

from __future__ import annotations

import enum
import os
import threading
from dataclasses import dataclass
from typing import BinaryIO, Callable, NamedTuple

DEFAULT_FILE_BLOCK_SIZE = 4 * 1024
"""Block size used for responses read from a file."""


class ValueKind(enum.IntFlag):
    """Where in the HTTP exchange a key/value pair comes from."""

    RESPONSE_HEADER = 0
    HEADER = 1
    COOKIE = 2
    POSTDATA = 4
    GET_ARGUMENT = 8
    FOOTER = 16


class ResponseFlags(enum.IntFlag):
    """Special behaviour requested for a response."""

    NONE = 0
    HTTP_VERSION_1_0_ONLY = 1


class EndOfStream(Exception):
    """Raised by a body reader when there is no more data."""


class ReaderError(Exception):
    """Raised by a body reader when the data cannot be produced."""


class Header(NamedTuple):
    """One header or footer line of a response."""

    kind: ValueKind
    name: str
    value: str


Reader = Callable[[int, int], bytes]
"""Reads at most ``max_size`` bytes of the body starting at ``position``."""


@dataclass
class _Entry:
    kind: ValueKind
    name: str
    value: str


_FORBIDDEN = ("\t", "\r", "\n")


def _valid_line_part(text: str) -> bool:
    return bool(text) and not any(char in text for char in _FORBIDDEN)


class Response:
    """A response that can be queued any number of times.

    Create one with :meth:`from_buffer`, :meth:`from_callback` or
    :meth:`from_file`.  It starts with one reference; every user that
    keeps it calls :meth:`acquire`, and each :meth:`release` drops one.
    When the last reference is released the body source is freed.
    """

    def __init__(
        self,
        *,
        total_size: int | None,
        data: bytes | bytearray | memoryview | None = None,
        reader: Reader | None = None,
        on_free: Callable[[], None] | None = None,
        block_size: int = 0,
    ) -> None:
        self._entries: list[_Entry] = []
        self._lock = threading.Lock()
        self._references = 1
        self._data = data
        self._reader = reader
        self._on_free = on_free
        self.block_size = block_size
        self.total_size = total_size
        self.flags = ResponseFlags.NONE

    @classmethod
    def from_callback(
        cls,
        size: int | None,
        block_size: int,
        reader: Reader,
        on_free: Callable[[], None] | None = None,
    ) -> Response:
        """Create a response whose body is produced by *reader*.

        *size* is the body length, or ``None`` if it is not known.
        *block_size* is the preferred amount to ask the reader for.
        *on_free* is called once when the last reference is released.
        """
        if reader is None:
            raise ValueError("a reader is required")
        if block_size <= 0:
            raise ValueError(f"block size must be positive, got {block_size}")
        return cls(
            total_size=size,
            reader=reader,
            on_free=on_free,
            block_size=block_size,
        )

    @classmethod
    def from_buffer(
        cls, data: bytes | bytearray | memoryview, copy: bool = True
    ) -> Response:
        """Create a response whose body is *data*.

        With *copy* the bytes are copied now; otherwise the object is kept
        and changes to it show up in the body.
        """
        if data is None:
            raise ValueError("data is required")
        body = bytes(data) if copy else data
        return cls(total_size=len(body), data=body)

    @classmethod
    def from_file(
        cls, file: BinaryIO | int, size: int, offset: int = 0
    ) -> Response:
        """Create a response reading *size* bytes of *file* from *offset*.

        *file* is a binary file object or a file descriptor; it is closed
        when the last reference is released.
        """
        handle: BinaryIO = (
            os.fdopen(file, "rb", closefd=True) if isinstance(file, int) else file
        )

        def read_file(position: int, max_size: int) -> bytes:
            try:
                handle.seek(position + offset)
                chunk = handle.read(max_size)
            except OSError as error:
                raise ReaderError(str(error)) from error
            if not chunk:
                raise EndOfStream()
            return chunk

        return cls.from_callback(
            size, DEFAULT_FILE_BLOCK_SIZE, read_file, handle.close
        )

    def _add_entry(self, kind: ValueKind, name: str, value: str) -> None:
        if name is None or value is None:
            raise ValueError("header name and value are required")
        if not _valid_line_part(name) or not _valid_line_part(value):
            raise ValueError(f"invalid header line {name!r}: {value!r}")
        self._entries.insert(0, _Entry(kind, name, value))

    def add_header(self, header: str, content: str) -> None:
        """Add a header line; raises ValueError if it is empty or malformed."""
        self._add_entry(ValueKind.HEADER, header, content)

    def add_footer(self, footer: str, content: str) -> None:
        """Add a footer line; raises ValueError if it is empty or malformed."""
        self._add_entry(ValueKind.FOOTER, footer, content)

    def delete_header(self, header: str, content: str) -> None:
        """Remove the most recent line with exactly this name and value.

        Raises KeyError if there is no such line.
        """
        if header is None or content is None:
            raise KeyError((header, content))
        for entry in self._entries:
            if entry.name == header and entry.value == content:
                self._entries.remove(entry)
                return
        raise KeyError((header, content))

    def headers(self) -> list[Header]:
        """Return all header and footer lines, most recently added first."""
        return [Header(e.kind, e.name, e.value) for e in self._entries]

    def get_header(self, key: str) -> str | None:
        """Return the value of the most recent line named *key*, if any."""
        if key is None:
            return None
        for entry in self._entries:
            if entry.name == key:
                return entry.value
        return None

    def set_options(self, flags: ResponseFlags | int, *args: object) -> None:
        """Set the response flags.

        No further options are known, so any extra argument is rejected
        with ValueError (the flags are still applied).
        """
        self.flags = ResponseFlags(flags)
        if args:
            raise ValueError(f"unknown response options: {args!r}")

    def read(self, position: int, max_size: int | None = None) -> bytes:
        """Return up to *max_size* bytes of the body starting at *position*.

        Raises EndOfStream when a buffered body or a reader has no more
        data, and ReaderError when a reader fails.
        """
        if position < 0:
            raise ValueError(f"position must not be negative, got {position}")
        if self._reader is not None:
            size = self.block_size if max_size is None else max_size
            return self._reader(position, size)
        data = self._data if self._data is not None else b""
        if position >= len(data):
            raise EndOfStream()
        end = len(data) if max_size is None else position + max_size
        return bytes(data[position:end])

    @property
    def references(self) -> int:
        """Number of references currently held."""
        with self._lock:
            return self._references

    def acquire(self) -> Response:
        """Take one more reference to this response."""
        with self._lock:
            if self._references == 0:
                raise RuntimeError("response has already been destroyed")
            self._references += 1
        return self

    def release(self) -> None:
        """Drop one reference; the last one frees the body source."""
        with self._lock:
            if self._references == 0:
                return
            self._references -= 1
            if self._references:
                return
        on_free, self._on_free = self._on_free, None
        if on_free is not None:
            on_free()
        self._entries.clear()