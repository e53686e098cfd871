"""Helpers for decoding URL-encoded text and comparing header values."""

from __future__ import annotations

import string
import time
from typing import AnyStr

_WHITESPACE = " \t\n\v\f\r"
_HEX_DIGITS = frozenset(string.hexdigits)
_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def unescape_plus(data: bytes) -> bytes:
    """Return *data* with every ``+`` replaced by a space."""
    return bytes(data).replace(b"+", b" ")


def _parse_escape(pair: bytes) -> int | None:
    """Decode the two characters after a ``%`` the way ``strtoul`` base 16 does.

    Leading whitespace and a sign are accepted; the whole pair must be
    consumed for the escape to count.  Returns the resulting byte value,
    or ``None`` if the pair is not a valid escape.
    """
    text = pair.decode("latin-1").lstrip(_WHITESPACE)
    negative = False
    if text[:1] in ("+", "-"):
        negative = text[0] == "-"
        text = text[1:]
    if not text or any(char not in _HEX_DIGITS for char in text):
        return None
    value = int(text, 16)
    return (-value) % 256 if negative else value


def http_unescape(data: bytes) -> bytes:
    """Decode ``%HH`` escape sequences in *data*.

    Input ends at the first NUL byte.  A ``%`` with fewer than two
    characters after it ends the result there; a ``%`` followed by
    something that is not a hexadecimal number is kept literally.
    The result is never longer than the input.
    """
    source = bytes(data).split(b"\0", 1)[0]
    result = bytearray()
    position = 0
    length = len(source)
    while position < length:
        byte = source[position]
        if byte == ord("%"):
            if position + 2 >= length:
                return bytes(result)
            value = _parse_escape(source[position + 1:position + 3])
            if value is not None:
                result.append(value)
                position += 3
                continue
        result.append(byte)
        position += 1
    return bytes(result)


def monotonic_time() -> int:
    """Return whole seconds from a clock unaffected by system time changes."""
    return int(time.monotonic())


def _ascii_lower(value: AnyStr) -> AnyStr:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).lower()
    return value.translate(_ASCII_LOWER)


def equal_caseless(a: AnyStr, b: AnyStr) -> bool:
    """Compare two strings for equality ignoring ASCII case."""
    return _ascii_lower(a) == _ascii_lower(b)


def equal_caseless_prefix(a: AnyStr, b: AnyStr, n: int) -> bool:
    """Compare at most the first *n* characters of two strings ignoring ASCII case."""
    return _ascii_lower(a[:n]) == _ascii_lower(b[:n])