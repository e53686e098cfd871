# microhttp

Pure-Python building blocks for a small HTTP server. No third-party
dependencies.

## What is inside

- `microhttp.postprocessor.PostProcessor` takes the value of a `Content-Type`
  header and parses a POST body in pieces. The body may be
  `application/x-www-form-urlencoded` or `multipart/form-data`. Nested
  `multipart/mixed` parts are reported under the name of the part that
  encloses them.
- `microhttp.postdata.UrlEncodedProcessor` and
  `microhttp.multipart.MultipartProcessor` are the two parsers behind it. Each
  can be used on its own through `feed(data)` and `finish()`.
- `microhttp.response.Response` is a response object. It holds header and
  footer lines and takes its body from a buffer (`from_buffer`), a file or
  file descriptor (`from_file`) or a reader callback (`from_callback`). It is
  reference counted with `acquire` and `release`; the last `release` frees the
  body source, which for `from_file` closes the file.
- `microhttp.unescape` holds `unescape_plus` and `http_unescape` for `+` and
  `%HH` decoding, `equal_caseless` and `equal_caseless_prefix` for comparing
  strings without regard to ASCII case, and `monotonic_time` for whole
  seconds from a monotonic clock.

## Installing

```
pip install .
```

## Parsing a form body

```python
from microhttp.postprocessor import PostProcessor

fields = {}

def on_value(key, filename, content_type, transfer_encoding, data, offset):
    fields[key] = fields.get(key, b"") + data

with PostProcessor("application/x-www-form-urlencoded", 1024, on_value) as pp:
    pp.process(b"name=J%C3%BCrgen&city=New+York")

print(fields)  # {'name': b'J\xc3\xbcrgen', 'city': b'New York'}
```

The iterator gets the key as a string and the value as bytes. It may be
called several times for one value, each time with the next piece and that
piece's offset within the value. For multipart bodies it also gets the part's
file name, content type and transfer encoding (`None` when absent). If the
iterator returns `False`, processing stops with `PostDataError`.

`close()` (called on leaving the `with` block) returns whether the body ended
cleanly. A `Content-Type` that is neither form encoding, or a multipart type
without a usable boundary, raises `UnsupportedEncoding`. Malformed input, or
input too large for the buffer, raises `PostDataError`. The buffer size must
be at least 256.

For a multipart body, pass the full header value:

```python
pp = PostProcessor("multipart/form-data; boundary=XyZ", 4096, on_value)
```

## Responses

```python
from microhttp.response import EndOfStream, Response

response = Response.from_buffer(b"hello")
response.add_header("Content-Type", "text/plain")
response.get_header("Content-Type")   # "text/plain"
response.read(0, 3)                   # b"hel"
response.read(5)                      # raises EndOfStream
response.release()
```

Header names and values must be non-empty and free of tabs and line breaks,
or `ValueError` is raised. `headers()` lists the lines most recently added
first. A reader passed to `from_callback` is called as
`reader(position, max_size)` and signals the end of the body by raising
`EndOfStream`, or a failure by raising `ReaderError`.

## What this package does not do

It is not a server. It opens no sockets, accepts no connections, parses no
request lines or headers off the wire and writes no responses to a client. It
provides no command to run. It only supplies the pieces listed above for code
that does those things.

## Running the tests

```
pip install .[test]
pytest
```