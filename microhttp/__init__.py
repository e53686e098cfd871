"""Building blocks for a small HTTP server: POST body parsing, responses and URL decoding."""

__version__ = "0.1.0"

__all__ = ["multipart", "postdata", "postprocessor", "response", "unescape"]