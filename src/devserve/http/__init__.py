"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Translates between raw bytes and the objects the request handler works on.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py        raw bytes  ──►  HTTPRequest                       │
    │ response.py       HTTPResponse  ──►  status line, headers, body     │
    │ status_codes.py   HTTPStatus enum with reason phrases               │
    │ content_type.py   file name / first bytes  ──►  Content-Type        │
    │ compression.py    gzip decision and (streaming) gzip encoding       │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .compression import accepts_gzip, gzip_bytes, gzip_chunks, should_compress
from .content_type import TypeResult, get_content_type, type_for_file_path
from .request import HTTPParseError, HTTPRequest, RequestParser
from .response import HTTPResponse, format_http_date
from .status_codes import HTTPStatus, reason_phrase

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    # Responses
    "HTTPResponse",
    "format_http_date",
    # Status codes
    "HTTPStatus",
    "reason_phrase",
    # Content types
    "TypeResult",
    "get_content_type",
    "type_for_file_path",
    # Compression
    "accepts_gzip",
    "should_compress",
    "gzip_bytes",
    "gzip_chunks",
]
