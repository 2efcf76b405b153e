"""
HTTP status codes used by the static server.

Only the codes the server can actually emit are listed:

    ┌───────┬─────────────────────────────────────────────────────────┐
    │ Code  │ When                                                    │
    ├───────┼─────────────────────────────────────────────────────────┤
    │ 200   │ file or directory listing served                        │
    │ 204   │ OPTIONS (preflight, or "OPTIONS *")                     │
    │ 307   │ trailing-slash or double-slash redirect                 │
    │ 400   │ unparsable request, invalid URL path                    │
    │ 403   │ found but not readable                                  │
    │ 404   │ missing, outside root, or excluded                      │
    │ 405   │ method other than GET, HEAD, OPTIONS, POST              │
    │ 408   │ client too slow to send its request                     │
    │ 431   │ request head over max_head_size                         │
    │ 500   │ could not open or read the file                         │
    │ 503   │ worker queue full                                       │
    │ 505   │ not HTTP/1.0 or HTTP/1.1                                │
    └───────┴─────────────────────────────────────────────────────────┘
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so members compare equal to plain ints:
        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    OK = 200
    NO_CONTENT = 204

    TEMPORARY_REDIRECT = 307     # Like 302 but preserves the method

    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    HEADER_FIELDS_TOO_LARGE = 431

    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        return _PHRASES[self]

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300


_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.TEMPORARY_REDIRECT: "Temporary Redirect",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.HEADER_FIELDS_TOO_LARGE: "Request Header Fields Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}


def reason_phrase(status: int) -> str:
    """Reason phrase for any status code, known or not."""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown"
