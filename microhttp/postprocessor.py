"""Parsing of POST request bodies, chosen by the request's content type."""

from __future__ import annotations

from types import TracebackType

from microhttp.multipart import MultipartProcessor
from microhttp.postdata import (
    MIN_BUFFER_SIZE,
    PostDataError,
    PostDataIterator,
    UrlEncodedProcessor,
)
from microhttp.unescape import equal_caseless_prefix

FORM_URLENCODED = "application/x-www-form-urlencoded"
MULTIPART_FORMDATA = "multipart/form-data"
_BOUNDARY_KEY = "boundary="


class UnsupportedEncoding(ValueError):
    """Raised when a body's content type cannot be parsed as form data."""


class PostProcessor:
    """Parse a form body in pieces, handing each value to *iterator*.

    *content_type* is the value of the request's Content-Type header.
    URL-encoded and multipart form data are supported; anything else,
    or a multipart type without a usable boundary, raises
    :class:`UnsupportedEncoding`.  *buffer_size* bounds the memory used
    for keys, header lines and boundary searching; it must be at least
    256.  Use as a context manager or call :meth:`close` when done.
    """

    def __init__(
        self,
        content_type: str | None,
        buffer_size: int,
        iterator: PostDataIterator,
    ) -> None:
        if iterator is None:
            raise ValueError("an iterator is required")
        if buffer_size < MIN_BUFFER_SIZE:
            raise ValueError(
                f"buffer size must be at least {MIN_BUFFER_SIZE}, got {buffer_size}"
            )
        if content_type is None:
            raise UnsupportedEncoding("request has no content type")
        self.encoding = content_type
        self._closed = False
        self._parser: UrlEncodedProcessor | MultipartProcessor
        if equal_caseless_prefix(FORM_URLENCODED, content_type, len(FORM_URLENCODED)):
            self._parser = UrlEncodedProcessor(iterator, buffer_size)
            return
        if not equal_caseless_prefix(
            MULTIPART_FORMDATA, content_type, len(MULTIPART_FORMDATA)
        ):
            raise UnsupportedEncoding(f"unsupported content type {content_type!r}")
        rest = content_type[len(MULTIPART_FORMDATA):]
        found = rest.find(_BOUNDARY_KEY)
        if found == -1:
            raise UnsupportedEncoding("multipart content type has no boundary")
        boundary = rest[found + len(_BOUNDARY_KEY):]
        try:
            self._parser = MultipartProcessor(boundary, iterator, buffer_size)
        except ValueError as error:
            raise UnsupportedEncoding(str(error)) from error

    def process(self, data: bytes) -> None:
        """Parse the next piece of the body; raises PostDataError on failure."""
        if not data:
            return
        if self._closed:
            raise PostDataError("post processor has been closed")
        self._parser.feed(data)

    def close(self) -> bool:
        """Finish parsing; return whether the body ended cleanly."""
        if self._closed:
            return True
        self._closed = True
        return self._parser.finish()

    def __enter__(self) -> PostProcessor:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()