"""
=============================================================================
HTTP RESPONSE
=============================================================================

A response that is filled in by the request handler, then written to the
socket by the server.

=============================================================================
LIFECYCLE
=============================================================================

    RequestHandler                          StaticServer
    ──────────────                          ────────────
    set_header("Content-Type", ...)
    set_header(...)
    end(b"<html>...")   or   pipe(chunks)
        │
        └── headers_sent = True             iter_wire()
            (set_header is now a no-op)         │
                                                ├── status line + headers
                                                └── body bytes / chunks
                                            close()
                                                └── on_close callbacks
                                                    (timing, request log)

=============================================================================
BODY FRAMING
=============================================================================

The client must be able to tell where the body ends:

    ┌──────────────────────────────┬─────────────────────────────────────┐
    │ Body                         │ Framing                             │
    ├──────────────────────────────┼─────────────────────────────────────┤
    │ bytes (pages, small files)   │ Content-Length (added if missing)   │
    │ stream with Content-Length   │ Content-Length, raw bytes           │
    │ stream without (gzip)        │ HTTP/1.1: Transfer-Encoding chunked │
    │                              │ HTTP/1.0: close the connection      │
    │ 204, or a HEAD request       │ no body at all                      │
    └──────────────────────────────┴─────────────────────────────────────┘

A HEAD response keeps every header the GET response would have had
(Content-Length, Content-Encoding) and sends no body.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from .status_codes import HTTPStatus, reason_phrase

logger = logging.getLogger(__name__)


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    Headers are stored case-insensitively but written with the casing
    they were set with.

    Attributes:
        status: HTTP status code.
        version: Protocol version of the status line, the request's version.
        body: Buffered body, set by end().
        stream: Iterator of body chunks, set by pipe().
        headers_sent: Latch; once True, header changes are ignored.
        keep_alive: Whether the connection stays open after this response.
                    May be turned off while serialising (HTTP/1.0 streams).
    """

    status: int = HTTPStatus.OK
    version: str = "HTTP/1.1"
    body: bytes = b""
    stream: Optional[Iterator[bytes]] = field(default=None, repr=False)
    headers_sent: bool = False
    finished: bool = False
    keep_alive: bool = True
    _headers: Dict[str, Tuple[str, str]] = field(default_factory=dict, repr=False)
    _close_callbacks: List[Callable[[], None]] = field(default_factory=list, repr=False)
    _closed: bool = field(default=False, repr=False)

    @property
    def status_line(self) -> str:
        """
        Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE
        Example: "HTTP/1.1 200 OK"
        """
        return f"{self.version} {int(self.status)} {reason_phrase(self.status)}"

    # =========================================================================
    # HEADERS
    # =========================================================================

    def set_header(self, name: str, value: Union[str, int]) -> "HTTPResponse":
        """
        Set a header, replacing any header with the same name (in any case).
        Does nothing once headers are sent.

        Raises:
            ValueError: If name or value contains a line break.
        """
        if self.headers_sent:
            logger.debug(f"Ignoring header {name!r}: headers already sent")
            return self
        value = str(value)
        if any(c in name or c in value for c in "\r\n"):
            raise ValueError(f"Invalid character in header {name!r}")
        self._headers[name.lower()] = (name, value)
        return self

    def get_header(self, name: str) -> Optional[str]:
        item = self._headers.get(name.lower())
        return item[1] if item is not None else None

    def has_header(self, name: str) -> bool:
        return name.lower() in self._headers

    def remove_header(self, name: str) -> "HTTPResponse":
        if not self.headers_sent:
            self._headers.pop(name.lower(), None)
        return self

    @property
    def headers(self) -> Dict[str, str]:
        """Headers by their written name, in insertion order."""
        return dict(self._headers.values())

    # =========================================================================
    # BODY
    # =========================================================================

    def end(self, body: Union[str, bytes] = b"") -> None:
        """Finish the response with a buffered body (possibly empty)."""
        if self.finished:
            return
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.body = body
        self.headers_sent = True
        self.finished = True

    def pipe(self, stream: Iterator[bytes]) -> None:
        """Finish the response with a body read lazily from stream."""
        if self.finished:
            close = getattr(stream, "close", None)
            if close is not None:
                close()
            return
        self.stream = stream
        self.headers_sent = True
        self.finished = True

    # =========================================================================
    # CLOSE
    # =========================================================================

    def on_close(self, callback: Callable[[], None]) -> None:
        """Run callback once the response has been written (or abandoned)."""
        if self._closed:
            callback()
        else:
            self._close_callbacks.append(callback)

    def close(self) -> None:
        """Release the body stream and fire close callbacks. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._close_stream()
        for callback in self._close_callbacks:
            callback()
        self._close_callbacks.clear()

    def _close_stream(self) -> None:
        close = getattr(self.stream, "close", None)
        if close is not None:
            close()

    # =========================================================================
    # SERIALISATION
    # =========================================================================

    def _has_body_status(self) -> bool:
        return not (100 <= self.status < 200 or self.status in (204, 304))

    def _wire_headers(self, head_only: bool, keep_alive_timeout: Optional[int]) -> List[Tuple[str, str]]:
        headers = dict(self._headers)

        def default(name: str, value: str) -> None:
            headers.setdefault(name.lower(), (name, value))

        if self._has_body_status():
            if self.stream is None:
                if not head_only:
                    default("Content-Length", str(len(self.body)))
            elif "content-length" not in headers:
                if self.version == "HTTP/1.1":
                    headers["transfer-encoding"] = ("Transfer-Encoding", "chunked")
                else:
                    self.keep_alive = False

        default("Date", format_http_date())

        if self.keep_alive:
            headers["connection"] = ("Connection", "keep-alive")
            if keep_alive_timeout is not None:
                headers["keep-alive"] = ("Keep-Alive", f"timeout={keep_alive_timeout}")
        else:
            headers["connection"] = ("Connection", "close")
            headers.pop("keep-alive", None)
        return list(headers.values())

    def iter_wire(self, head_only: bool = False, keep_alive_timeout: Optional[int] = None) -> Iterator[bytes]:
        """
        Yield the response as it goes on the wire: first the status line
        and headers, then the body in pieces.

        Args:
            head_only: True for HEAD requests; no body bytes are produced.
            keep_alive_timeout: Advertised in a Keep-Alive header when the
                                connection stays open.
        """
        headers = self._wire_headers(head_only, keep_alive_timeout)
        lines = [self.status_line] + [f"{name}: {value}" for name, value in headers]
        yield ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1", errors="replace")

        if head_only or not self._has_body_status():
            self._close_stream()
            return

        if self.stream is None:
            if self.body:
                yield self.body
            return

        chunked = any(name.lower() == "transfer-encoding" for name, _ in headers)
        try:
            for chunk in self.stream:
                if not chunk:
                    continue
                if chunked:
                    yield f"{len(chunk):X}\r\n".encode("ascii") + chunk + b"\r\n"
                else:
                    yield chunk
            if chunked:
                yield b"0\r\n\r\n"
        finally:
            self._close_stream()

    def to_bytes(self, head_only: bool = False) -> bytes:
        """The complete serialised response, for buffered bodies."""
        return b"".join(self.iter_wire(head_only=head_only))


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def format_http_date(dt: Optional[datetime] = None) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231), always in GMT.

    Example: Wed, 01 Jan 2026 12:00:00 GMT
    """
    if dt is None:
        dt = datetime.now(timezone.utc)
    elif dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )
