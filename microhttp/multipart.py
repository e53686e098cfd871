"""Incremental parsing of ``multipart/form-data`` request bodies."""

from __future__ import annotations

import enum

from microhttp.postdata import (
    MIN_BUFFER_SIZE,
    PostDataError,
    PostDataIterator,
    PostState,
)
from microhttp.unescape import equal_caseless_prefix

_CR = ord("\r")
_LF = ord("\n")
_DASH = ord("-")
_QUOTE = ord('"')

_DISPOSITION = b"Content-disposition: "
_CONTENT_TYPE = b"Content-type: "
_TRANSFER_ENCODING = b"Content-Transfer-Encoding: "
_MIXED = "multipart/mixed"
_BOUNDARY_KEY = "boundary="


class _Skip(enum.Enum):
    """Side state machine that skips line breaks and ``--`` after boundaries."""

    INACTIVE = enum.auto()
    OPT_N = enum.auto()
    FULL = enum.auto()
    DASH = enum.auto()
    DASH2 = enum.auto()


class _Field(enum.Flag):
    """Part headers that were given for the enclosing part of a nested body."""

    NONE = 0
    NAME = enum.auto()
    TYPE = enum.auto()
    FILENAME = enum.auto()
    ENCODING = enum.auto()


class _Step(enum.Enum):
    CONTINUE = enum.auto()
    CHANGED = enum.auto()
    STOP = enum.auto()


def _text(raw: bytes) -> str:
    return raw.decode("utf-8", errors="surrogateescape")


def _raw(text: str) -> bytes:
    return text.encode("utf-8", errors="surrogateescape")


def _quoted_value(text: bytes, key: bytes) -> bytes | None:
    """Find ``key="value"`` in *text* and return the value, if present."""
    klen = len(key)
    start = 0
    while (spos := text.find(key, start)) != -1:
        if text[spos + klen:spos + klen + 1] != b"=" or (
            spos != 0 and text[spos - 1:spos] != b" "
        ):
            start = spos + 1
            continue
        if text[spos + klen + 1:spos + klen + 2] != b'"':
            return None
        endv = text.find(b'"', spos + klen + 2)
        if endv == -1:
            return None
        return text[spos + klen + 2:endv]
    return None


def _header_suffix(prefix: bytes, line: bytes) -> bytes | None:
    """Return what follows *prefix* (matched anywhere, ignoring case) in *line*."""
    found = line.lower().find(prefix.lower())
    if found == -1:
        return None
    return line[found + len(prefix):]


class MultipartProcessor:
    """Feed multipart form data in pieces; part values are passed to *iterator*.

    The iterator gets the part's name, file name, content type and
    transfer encoding along with each piece of the value and its offset
    within that value.  Parts of a nested ``multipart/mixed`` part are
    reported under the name of the enclosing part.  *buffer_size* bounds
    the length of a header line and of the data held while looking for
    a boundary.
    """

    def __init__(
        self,
        boundary: str | bytes,
        iterator: PostDataIterator,
        buffer_size: int = 1024,
    ) -> None:
        if iterator is None:
            raise ValueError("an iterator is required")
        if buffer_size < MIN_BUFFER_SIZE:
            raise ValueError(
                f"buffer size must be at least {MIN_BUFFER_SIZE}, got {buffer_size}"
            )
        raw = _raw(boundary) if isinstance(boundary, str) else bytes(boundary)
        if not raw or len(raw) * 2 + 2 > buffer_size:
            raise ValueError(f"invalid boundary {raw!r}")
        if raw[0] == _QUOTE and raw[-1] == _QUOTE:
            raw = raw[1:-1]
            if not raw:
                raise ValueError("boundary is empty once quotes are removed")
        self._boundary = raw
        self._iterator = iterator
        self._buffer_size = buffer_size + 4
        self._buffer = bytearray()
        self._consumed = 0
        self._nested_boundary: bytes | None = None
        self._content_name: str | None = None
        self._content_type: str | None = None
        self._content_filename: str | None = None
        self._transfer_encoding: str | None = None
        self._value_offset = 0
        self._must_call = False
        self._skip = _Skip.INACTIVE
        self._dash_state = PostState.ERROR
        self._have = _Field.NONE
        self.state = PostState.INIT

    def _fail(self, message: str) -> PostDataError:
        self.state = PostState.ERROR
        return PostDataError(message)

    def feed(self, data: bytes) -> None:
        """Process the next piece of the body; raises PostDataError on failure."""
        data = bytes(data)
        if not data:
            return
        if self.state is PostState.ERROR:
            raise PostDataError("post processor is in the error state")
        self._process(data)

    def _process(self, data: bytes) -> None:
        buf = self._buffer
        length = len(data)
        poff = 0
        self._consumed = 0
        state_changed = True
        while poff < length or (buf and state_changed):
            take = min(self._buffer_size - len(buf), length - poff)
            buf += data[poff:poff + take]
            poff += take
            if take == 0 and not state_changed and poff < length:
                raise self._fail("data does not fit in the buffer")
            state_changed = False

            if not self._skip_line_break():
                if self.state is PostState.ERROR:
                    raise PostDataError("expected a second dash after a boundary")
                step = self._step()
                if step is _Step.STOP:
                    break
                if step is _Step.CHANGED:
                    state_changed = True

            if self._consumed:
                del buf[:self._consumed]
                self._consumed = 0
                state_changed = True
        if self._consumed:
            del buf[:self._consumed]
            self._consumed = 0
        if poff < length:
            raise self._fail("could not process all of the data")

    def _skip_line_break(self) -> bool:
        """Run the line-break side machine; True if it consumed input."""
        buf = self._buffer
        first = buf[0] if buf else 0
        skip = self._skip
        if skip is _Skip.INACTIVE:
            return False
        if skip is _Skip.DASH2:
            if first == _DASH:
                self._consumed += 1
                self._skip = _Skip.FULL
                self.state = self._dash_state
                return True
            self.state = PostState.ERROR
            return False
        if skip is _Skip.OPT_N:
            if first == _LF:
                self._consumed += 1
                self._skip = _Skip.INACTIVE
                return True
            skip = _Skip.DASH
        if skip is _Skip.DASH:
            if first == _DASH:
                self._consumed += 1
                self._skip = _Skip.DASH2
                return True
            self._skip = _Skip.FULL
        if first == _CR:
            if len(buf) > 1 and buf[1] == _LF:
                self._skip = _Skip.INACTIVE
                self._consumed += 2
            else:
                self._skip = _Skip.OPT_N
                self._consumed += 1
            return True
        if first == _LF:
            self._consumed += 1
            self._skip = _Skip.INACTIVE
            return True
        self._skip = _Skip.INACTIVE
        raise self._fail("expected a line break")

    def _step(self) -> _Step:
        state = self.state
        if state is PostState.ERROR:
            raise PostDataError("post processor is in the error state")
        if state is PostState.DONE:
            raise self._fail("unexpected data after the final boundary")
        if state is PostState.INIT:
            self._find_boundary(
                self._boundary, PostState.PROCESS_ENTRY_HEADERS, PostState.DONE
            )
            return _Step.CONTINUE
        if state is PostState.NEXT_BOUNDARY:
            if not self._find_boundary(
                self._boundary, PostState.PROCESS_ENTRY_HEADERS, PostState.DONE
            ):
                return _Step.STOP
            return _Step.CONTINUE
        if state is PostState.PROCESS_ENTRY_HEADERS:
            self._must_call = True
            if not self._process_headers(PostState.PERFORM_CHECK_MULTIPART):
                return _Step.STOP
            return _Step.CHANGED
        if state is PostState.PERFORM_CHECK_MULTIPART:
            return self._check_multipart()
        if state is PostState.PROCESS_VALUE_TO_BOUNDARY:
            self._process_value_to_boundary(
                self._boundary, PostState.PERFORM_CLEANUP, PostState.DONE
            )
            return _Step.CONTINUE
        if state is PostState.PERFORM_CLEANUP:
            self._have = _Field.NONE
            self._free_unmarked()
            self._nested_boundary = None
            self.state = PostState.PROCESS_ENTRY_HEADERS
            return _Step.CHANGED
        if state is PostState.NESTED_INIT:
            if self._nested_boundary is None:
                raise self._fail("nested part has no boundary")
            if not self._find_boundary(
                self._nested_boundary,
                PostState.NESTED_PERFORM_MARKING,
                PostState.NEXT_BOUNDARY,
            ):
                return _Step.STOP
            return _Step.CONTINUE
        if state is PostState.NESTED_PERFORM_MARKING:
            self._mark_fields()
            self.state = PostState.NESTED_PROCESS_ENTRY_HEADERS
            return _Step.CHANGED
        if state is PostState.NESTED_PROCESS_ENTRY_HEADERS:
            self._value_offset = 0
            if not self._process_headers(PostState.NESTED_PROCESS_VALUE_TO_BOUNDARY):
                return _Step.STOP
            return _Step.CHANGED
        if state is PostState.NESTED_PROCESS_VALUE_TO_BOUNDARY:
            assert self._nested_boundary is not None
            self._process_value_to_boundary(
                self._nested_boundary,
                PostState.NESTED_PERFORM_CLEANUP,
                PostState.NEXT_BOUNDARY,
            )
            return _Step.CONTINUE
        if state is PostState.NESTED_PERFORM_CLEANUP:
            self._free_unmarked()
            self.state = PostState.NESTED_PROCESS_ENTRY_HEADERS
            return _Step.CHANGED
        raise self._fail(f"unexpected parser state {state.name}")

    def _check_multipart(self) -> _Step:
        content_type = self._content_type
        if content_type is not None and equal_caseless_prefix(
            content_type, _MIXED, len(_MIXED)
        ):
            found = content_type.find(_BOUNDARY_KEY)
            if found == -1:
                raise self._fail("nested multipart part has no boundary")
            self._nested_boundary = _raw(content_type[found + len(_BOUNDARY_KEY):])
            self._content_type = None
            self.state = PostState.NESTED_INIT
            return _Step.CHANGED
        self.state = PostState.PROCESS_VALUE_TO_BOUNDARY
        self._value_offset = 0
        return _Step.CHANGED

    def _find_boundary(
        self, boundary: bytes, next_state: PostState, next_dash_state: PostState
    ) -> bool:
        buf = self._buffer
        blen = len(boundary)
        if len(buf) < 2 + blen:
            if len(buf) == self._buffer_size:
                raise self._fail("boundary does not fit in the buffer")
            return False
        if buf[:2] != b"--" or buf[2:2 + blen] != boundary:
            if self.state is not PostState.INIT:
                raise self._fail("expected a boundary")
            dash = buf.find(b"-")
            if dash == -1:
                self._consumed += len(buf)
            elif dash == 0:
                self._consumed += 1
            else:
                self._consumed += dash
            return False
        self._consumed += 2 + blen
        self._skip = _Skip.DASH
        self.state = next_state
        self._dash_state = next_dash_state
        return True

    def _process_headers(self, next_state: PostState) -> bool:
        buf = self._buffer
        newline = len(buf)
        for index, byte in enumerate(buf):
            if byte in (_CR, _LF):
                newline = index
                break
        if newline == self._buffer_size:
            raise self._fail("header line does not fit in the buffer")
        if newline == len(buf):
            return False
        if newline == 0:
            self._skip = _Skip.FULL
            self.state = next_state
            return True
        if buf[newline] == _CR:
            self._skip = _Skip.OPT_N
        line = bytes(buf[:newline]).split(b"\0", 1)[0]
        if equal_caseless_prefix(_DISPOSITION, line, len(_DISPOSITION)):
            rest = line[len(_DISPOSITION):]
            if self._content_name is None:
                name = _quoted_value(rest, b"name")
                if name is not None:
                    self._content_name = _text(name)
            if self._content_filename is None:
                filename = _quoted_value(rest, b"filename")
                if filename is not None:
                    self._content_filename = _text(filename)
        else:
            if self._content_type is None:
                value = _header_suffix(_CONTENT_TYPE, line)
                if value is not None:
                    self._content_type = _text(value)
            if self._transfer_encoding is None:
                value = _header_suffix(_TRANSFER_ENCODING, line)
                if value is not None:
                    self._transfer_encoding = _text(value)
        self._consumed += newline + 1
        return True

    def _process_value_to_boundary(
        self, boundary: bytes, next_state: PostState, next_dash_state: PostState
    ) -> None:
        buf = self._buffer
        pos = len(buf)
        blen = len(boundary)
        newline = 0
        while True:
            while newline + 4 < pos:
                found = buf.find(b"\r", newline, pos - 4)
                if found == -1:
                    newline = pos - 4
                    break
                newline = found
                if buf[newline:newline + 4] == b"\r\n--":
                    break
                newline += 1
            if newline + blen + 4 <= pos:
                if buf[newline + 4:newline + 4 + blen] != boundary:
                    newline += 4
                    continue
                self._skip = _Skip.DASH
                self.state = next_state
                self._dash_state = next_dash_state
                self._consumed += blen + 4
                break
            if newline == 0 and pos == self._buffer_size:
                raise self._fail("value does not fit in the buffer")
            break
        if self._must_call or newline != 0:
            result = self._iterator(
                self._content_name,
                self._content_filename,
                self._content_type,
                self._transfer_encoding,
                bytes(buf[:newline]),
                self._value_offset,
            )
            if result is False:
                raise self._fail("processing aborted by the iterator")
        self._must_call = False
        self._value_offset += newline
        self._consumed += newline

    def _mark_fields(self) -> None:
        have = _Field.NONE
        if self._content_name is not None:
            have |= _Field.NAME
        if self._content_type is not None:
            have |= _Field.TYPE
        if self._content_filename is not None:
            have |= _Field.FILENAME
        if self._transfer_encoding is not None:
            have |= _Field.ENCODING
        self._have = have

    def _free_unmarked(self) -> None:
        if not self._have & _Field.NAME:
            self._content_name = None
        if not self._have & _Field.TYPE:
            self._content_type = None
        if not self._have & _Field.FILENAME:
            self._content_filename = None
        if not self._have & _Field.ENCODING:
            self._transfer_encoding = None

    def finish(self) -> bool:
        """End processing and report whether the body ended cleanly.

        Returns ``False`` if the final boundary was never seen or an
        error occurred.
        """
        ok = self.state in (PostState.DONE, PostState.EXPECT_NEW_LINE)
        self._have = _Field.NONE
        self._free_unmarked()
        self._nested_boundary = None
        self._buffer.clear()
        return ok