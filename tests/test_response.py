import os

import pytest

from microhttp.response import (
    EndOfStream,
    Header,
    ReaderError,
    Response,
    ResponseFlags,
    ValueKind,
)


def test_add_and_get_header():
    response = Response.from_buffer(b"body")
    response.add_header("Content-Type", "text/plain")
    assert response.get_header("Content-Type") == "text/plain"
    assert response.get_header("Missing") is None


def test_headers_are_listed_newest_first():
    response = Response.from_buffer(b"")
    response.add_header("A", "1")
    response.add_footer("B", "2")
    assert response.headers() == [
        Header(ValueKind.FOOTER, "B", "2"),
        Header(ValueKind.HEADER, "A", "1"),
    ]


def test_get_header_returns_latest_value():
    response = Response.from_buffer(b"")
    response.add_header("X", "old")
    response.add_header("X", "new")
    assert response.get_header("X") == "new"


@pytest.mark.parametrize(
    "name, value",
    [("", "v"), ("n", ""), ("a\tb", "v"), ("n", "a\rb"), ("n", "a\nb"), ("a\nb", "v")],
)
def test_invalid_header_rejected(name, value):
    response = Response.from_buffer(b"")
    with pytest.raises(ValueError):
        response.add_header(name, value)
    assert response.headers() == []


def test_delete_header():
    response = Response.from_buffer(b"")
    response.add_header("A", "1")
    response.add_header("B", "2")
    response.delete_header("A", "1")
    assert [h.name for h in response.headers()] == ["B"]


def test_delete_missing_header_raises():
    response = Response.from_buffer(b"")
    response.add_header("A", "1")
    with pytest.raises(KeyError):
        response.delete_header("A", "2")
    assert len(response.headers()) == 1


def test_buffer_copy_is_independent():
    data = bytearray(b"hello")
    copied = Response.from_buffer(data, copy=True)
    shared = Response.from_buffer(data, copy=False)
    data[0:1] = b"J"
    assert copied.read(0) == b"hello"
    assert shared.read(0) == b"Jello"
    assert copied.total_size == 5


def test_buffer_read_ranges_and_end():
    response = Response.from_buffer(b"abcdef")
    assert response.read(2, 3) == b"cde"
    assert response.read(4, 10) == b"ef"
    with pytest.raises(EndOfStream):
        response.read(6)


def test_from_callback_requires_block_size():
    with pytest.raises(ValueError):
        Response.from_callback(10, 0, lambda pos, size: b"")


def test_from_callback_delegates_and_frees_once():
    calls = []
    freed = []

    def reader(position, size):
        calls.append((position, size))
        return b"x" * size

    response = Response.from_callback(None, 8, reader, lambda: freed.append(True))
    assert response.total_size is None
    assert response.read(3) == b"x" * 8
    assert response.read(0, 2) == b"xx"
    assert calls == [(3, 8), (0, 2)]

    response.acquire()
    assert response.references == 2
    response.release()
    assert freed == []
    response.release()
    assert freed == [True]
    response.release()
    assert freed == [True]


def test_acquire_after_destroy_fails():
    response = Response.from_buffer(b"")
    response.release()
    with pytest.raises(RuntimeError):
        response.acquire()


def test_reader_errors_propagate():
    def reader(position, size):
        raise ReaderError("broken")

    response = Response.from_callback(1, 4, reader)
    with pytest.raises(ReaderError):
        response.read(0)


def test_from_file_reads_with_offset(tmp_path):
    path = tmp_path / "body.bin"
    path.write_bytes(b"0123456789")
    handle = open(path, "rb")
    response = Response.from_file(handle, 6, offset=4)
    assert response.block_size == 4096
    assert response.read(0) == b"456789"
    assert response.read(2, 2) == b"67"
    with pytest.raises(EndOfStream):
        response.read(6)
    response.release()
    assert handle.closed


def test_from_file_descriptor(tmp_path):
    path = tmp_path / "body.bin"
    path.write_bytes(b"payload")
    fd = os.open(path, os.O_RDONLY)
    response = Response.from_file(fd, 7)
    assert response.read(0) == b"payload"
    response.release()
    with pytest.raises(OSError):
        os.fstat(fd)


def test_set_options():
    response = Response.from_buffer(b"")
    response.set_options(ResponseFlags.HTTP_VERSION_1_0_ONLY)
    assert response.flags == ResponseFlags.HTTP_VERSION_1_0_ONLY
    with pytest.raises(ValueError):
        response.set_options(ResponseFlags.NONE, 7)
    assert response.flags == ResponseFlags.NONE