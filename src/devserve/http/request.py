"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes of one HTTP/1.x request into an HTTPRequest.

=============================================================================
WHAT THE PARSER DOES NOT DO
=============================================================================

The parser only checks SYNTAX. It deliberately leaves the request target
untouched (no percent-decoding, no ".." rejection) and accepts any method
token. Those are decisions for the request handler, which answers them with
proper pages:

    "BREW /pot HTTP/1.1"          parser: OK    handler: 405 + Allow
    "GET /%2E%2E/etc HTTP/1.1"    parser: OK    handler: 400
    "GET / HTTP/1.1" + "Bad"      parser: 400   (header line without colon)
    "GET / HTTP/2.0"              parser: 505

=============================================================================
REQUEST FORMAT (RFC 7230)
=============================================================================

    GET /docs/?lang=en HTTP/1.1\\r\\n       <- request line
    Host: localhost:8080\\r\\n              <- headers
    Accept-Encoding: gzip, br\\r\\n
    \\r\\n                                  <- blank line
    (optional body, Content-Length bytes)

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the HTTP status code to answer with:
        400 Bad Request                 - malformed syntax
        431 Header Fields Too Large     - request head exceeds size limit
        505 HTTP Version Not Supported  - not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         Method token, as sent ("GET", "BREW", ...)
        url:            Raw request target ("/a%20b/?x=1", "*", ...)
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Header values keyed by LOWERCASE name. Repeated
                        headers are joined with ", ".
        body:           Raw body bytes (read, then ignored)
        client_address: (ip, port) of the client
        alive_check:    Optional callback telling whether the client is still
                        connected; set by the server for socket requests.
    """

    method: str
    url: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_address: Tuple[str, int] = ("", 0)
    alive_check: Optional[Callable[[], bool]] = field(default=None, repr=False, compare=False)

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    @property
    def destroyed(self) -> bool:
        """True once the client has gone away."""
        if self.alive_check is None:
            return False
        return not self.alive_check()

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 keeps the connection open unless "Connection: close";
        HTTP/1.0 closes it unless "Connection: keep-alive".
        """
        tokens = {t.strip().lower() for t in self.headers.get("connection", "").split(",")}
        if self.version == "HTTP/1.1":
            return "close" not in tokens
        return "keep-alive" in tokens


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    Usage:
        parser = RequestParser(max_head_size=1024 * 1024)
        request = parser.parse(raw_bytes, client_address=("127.0.0.1", 50312))
    """

    # token = 1*tchar (RFC 7230 section 3.2.6)
    REQUEST_LINE_PATTERN = re.compile(r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+) (\S+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+):[ \t]*(.*?)[ \t]*$")

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(self, max_head_size: int = 1024 * 1024):
        self.max_head_size = max_head_size

    def parse(self, data: bytes, client_address: Tuple[str, int] = ("", 0)) -> HTTPRequest:
        """
        Parse one complete request.

        Args:
            data: Request bytes, from the request line to the end of the
                  head; a body, if present, follows.
            client_address: Client's (ip, port), kept for logging.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")
        if header_end + 4 > self.max_head_size:
            raise HTTPParseError(f"Request head too large: {header_end + 4} bytes", status_code=431)

        # Header bytes are ISO-8859-1 per RFC 7230; non-ASCII targets stay
        # recoverable with .encode("latin-1")
        head = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = head.split("\r\n")
        # Tolerate leading empty lines (RFC 7230 section 3.5)
        while lines and not lines[0]:
            lines.pop(0)
        if not lines:
            raise HTTPParseError("Empty request")

        method, url, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", "0") or 0)
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")

        return HTTPRequest(
            method=method,
            url=url,
            version=version,
            headers=headers,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, url, version = match.groups()
        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        # Keep non-ASCII bytes percent-encoded, as browsers send them
        try:
            url.encode("ascii")
        except UnicodeEncodeError:
            url = "".join(
                c if ord(c) < 128 else f"%{ord(c):02X}" for c in url
            )
        return method, url, version

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        for line in lines:
            if not line:
                continue
            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise HTTPParseError(f"Invalid header line: {line!r}")
            name, value = match.groups()
            name = name.lower()
            if name in headers:
                headers[name] = f"{headers[name]}, {value}"
            else:
                headers[name] = value
        return headers
