import urllib.parse

import pytest

from microhttp.unescape import (
    equal_caseless,
    equal_caseless_prefix,
    http_unescape,
    monotonic_time,
    unescape_plus,
)


def test_unescape_plus_without_plus_is_unchanged():
    data = b"plain-text_value"
    assert unescape_plus(data) == data


def test_unescape_plus_replaces_every_plus():
    data = b"a+b+c++d"
    result = unescape_plus(data)
    assert b"+" not in result
    assert len(result) == len(data)
    assert result.split(b" ") == data.split(b"+")


@pytest.mark.parametrize(
    "text",
    [b"hello world", b"a&b=c", b"\x00\x01\xff\xfe", "na\u00efve caf\u00e9".encode(), b""],
)
def test_http_unescape_inverts_quoting(text):
    quoted = urllib.parse.quote_from_bytes(text, safe="").encode("ascii")
    if b"\x00" in text:
        expected = urllib.parse.unquote_to_bytes(quoted)
        assert http_unescape(quoted) == expected
    else:
        assert http_unescape(quoted) == text


@pytest.mark.parametrize("data", [b"%41%42c", b"x%2fy%2Fz", b"%7e%7E", b"100%25"])
def test_http_unescape_matches_standard_decoding(data):
    assert http_unescape(data) == urllib.parse.unquote_to_bytes(data)


def test_http_unescape_never_grows():
    for data in (b"%41%4", b"abc", b"%zz%20", b"%%%"):
        assert len(http_unescape(data)) <= len(data)


@pytest.mark.parametrize("data", [b"abc%", b"abc%4"])
def test_http_unescape_truncates_incomplete_escape(data):
    assert http_unescape(data) == data[: data.index(b"%")]


@pytest.mark.parametrize("data", [b"%zz", b"a%g1b", b"%0x1", b"%  x"])
def test_http_unescape_keeps_invalid_escape(data):
    assert http_unescape(data) == data


def test_http_unescape_accepts_sign_and_whitespace_like_strtoul():
    assert http_unescape(b"%+7") == urllib.parse.unquote_to_bytes(b"%07")
    assert http_unescape(b"%-1") == urllib.parse.unquote_to_bytes(b"%ff")
    assert http_unescape(b"% 9") == urllib.parse.unquote_to_bytes(b"%09")


def test_http_unescape_stops_at_nul():
    data = b"ab\x00cd"
    assert http_unescape(data) == data[:2]


def test_http_unescape_leaves_plus_alone():
    data = b"a+b"
    assert http_unescape(data) == data


def test_combined_decoding_of_form_value():
    data = b"x+y%21"
    assert http_unescape(unescape_plus(data)) == urllib.parse.unquote_plus(
        data.decode("ascii")
    ).encode("ascii")


def test_equal_caseless():
    assert equal_caseless("Content-Type", "content-type")
    assert equal_caseless(b"Content-Type", b"CONTENT-TYPE")
    assert not equal_caseless("abc", "abd")
    assert not equal_caseless("abc", "abcd")


def test_equal_caseless_folds_ascii_only():
    assert not equal_caseless("\u00c9", "\u00e9")


def test_equal_caseless_prefix():
    prefix = "multipart/form-data"
    header = "MULTIPART/FORM-DATA; boundary=xyz"
    assert equal_caseless_prefix(prefix, header, len(prefix))
    assert not equal_caseless_prefix(prefix, header, len(prefix) + 1)
    assert equal_caseless_prefix("abc", "ABC", 10)
    assert not equal_caseless_prefix("abc", "abcd", 10)
    assert equal_caseless_prefix(b"abcX", b"ABCy", 3)


def test_monotonic_time_does_not_go_backwards():
    first = monotonic_time()
    second = monotonic_time()
    assert isinstance(first, int)
    assert second >= first