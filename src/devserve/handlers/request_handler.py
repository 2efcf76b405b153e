"""
=============================================================================
STATIC FILE REQUEST HANDLER
=============================================================================

One RequestHandler is created per request. It decides what to answer
(file, directory listing, redirect or error page), composes the headers
and hands the body to the HTTPResponse.

=============================================================================
DISPATCH ORDER
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  1. method not GET/HEAD/OPTIONS/POST      → 405 + Allow + page      │
    │  2. request target could not be parsed    → 400 + page              │
    │  3. "OPTIONS *"                           → 204 + Allow             │
    │  4. collapse "//", validate the segments  → 400 + page if invalid   │
    │  5. FileResolver.find(decoded path)       → status, file            │
    │  6. slash policy or "//" says otherwise   → 307 + Location          │
    │  7. 200 + regular file                    → file (streamed)         │
    │  8. 200 + directory + listing enabled     → listing page            │
    │  9. anything else                         → error page for status   │
    └─────────────────────────────────────────────────────────────────────┘

POST is answered exactly like GET; its body is ignored.

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    GET /%2E%2E/etc/passwd

    Segments are percent-decoded one at a time BEFORE resolution, and any
    segment that decodes to "." or "..", or that contains "/" or "\\",
    rejects the whole request with a 400. The resolver adds its own
    containment check on top, and symlinks are only followed when their
    target stays under the root.

=============================================================================
RESPONSE HEADERS
=============================================================================

    Allow                          OPTIONS requests and 405 responses
    Content-Type                   everything except OPTIONS
    Access-Control-Allow-*         --cors, when the request has an Origin
    user rules (--header)          files only, names kept as typed

Core header names are Title-Kebab-Cased. User rules can never override
Content-Encoding or Content-Length.

=============================================================================
"""

import errno
import logging
import os
import re
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable, Iterator, List, NamedTuple, Optional, Sequence, Tuple, Union
from urllib.parse import quote, unquote, urlsplit

from ..config import SUPPORTED_METHODS, HeaderRule, ServerOptions, TrailingSlash
from ..fs_utils import FSKind, FSLocation, get_local_path, is_subpath
from ..http.compression import gzip_bytes, gzip_chunks, should_compress
from ..http.content_type import TypeResult, get_content_type, type_for_file_path
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from ..http.status_codes import HTTPStatus
from ..pages import dir_list_page, error_page
from ..path_matcher import PathMatcher
from ..resolver import FileResolver

logger = logging.getLogger(__name__)


FILE_CHUNK_SIZE = 64 * 1024

# User header rules may not touch the body framing
BLOCKED_RULE_HEADERS = ("content-encoding", "content-length")

_ALLOW_HEADER_TOKEN = re.compile(r"^[A-Za-z\d\-_]+$")
_HEADER_CASE = re.compile(r"(^|\b|_)[a-z]")
_ABSOLUTE_URL = re.compile(r"^[a-zA-Z][a-zA-Z\d+.\-]*://")
_MALFORMED_ESCAPE = re.compile(r"%(?![0-9a-fA-F]{2})")
_SLASH_RUN = re.compile(r"/{2,}")

# Characters left as-is in a request path; everything else is %-encoded
_PATH_SAFE = "/%!$&'()*+,;=:@-._~[]|^"


# =============================================================================
# URL HELPERS
# =============================================================================

class RequestURL(NamedTuple):
    """
    The parts of a request target that matter to a static server.

    path is percent-encoded. search and hash keep their leading "?" and
    "#" and are empty strings when absent.
    """

    path: str
    search: str = ""
    hash: str = ""

    @property
    def href(self) -> str:
        return self.path + self.search + self.hash


def url_from_target(target: str) -> RequestURL:
    """
    Parse a request target (origin form, absolute form or "*").

    No dot-segment normalisation happens: "/a/../b" keeps its "..", so
    that validation can reject it.

    Raises:
        ValueError: If the target is empty or not a valid URL.
    """
    if not target or any(c.isspace() for c in target):
        raise ValueError(f"Invalid request target: {target!r}")
    if target == "*":
        return RequestURL(path="/*")

    if _ABSOLUTE_URL.match(target):
        parts = urlsplit(target)
        path, query, fragment = parts.path or "/", parts.query, parts.fragment
    else:
        rest, _, fragment = target.partition("#")
        path, _, query = rest.partition("?")
        if not path.startswith("/"):
            path = "/" + path

    path = quote(path.replace("\\", "/"), safe=_PATH_SAFE)
    return RequestURL(
        path=path,
        search=f"?{query}" if query else "",
        hash=f"#{fragment}" if fragment else "",
    )


def collapse_slashes(url_path: str) -> str:
    """
    Example:
        >>> collapse_slashes("//docs///api/")
        '/docs/api/'
    """
    return _SLASH_RUN.sub("/", url_path)


def decode_uri_component(value: str) -> str:
    """
    Strict percent-decoding.

    Raises:
        ValueError: On a stray "%" or an escape sequence that is not UTF-8.
    """
    if _MALFORMED_ESCAPE.search(value):
        raise ValueError(f"Malformed percent-encoding: {value!r}")
    return unquote(value, errors="strict")


def is_valid_url_path(url_path: str) -> bool:
    """
    True if every segment of a percent-encoded URL path is safe to map
    onto the filesystem.

    Examples:
        >>> is_valid_url_path("/docs/api%20v2/")
        True
        >>> is_valid_url_path("/docs/%2E%2E/secret")
        False
        >>> is_valid_url_path("/a%2Fb")
        False
    """
    if url_path == "/":
        return True
    if not url_path.startswith("/") or "//" in url_path:
        return False

    for segment in url_path.strip("/").split("/"):
        if "?" in segment or "#" in segment:
            return False
        try:
            decoded = decode_uri_component(segment)
        except ValueError:
            return False
        if decoded in (".", ".."):
            return False
        if "/" in decoded or "\\" in decoded:
            return False
    return True


def redirect_slash(
    url: Optional[RequestURL],
    file: Optional[FSLocation],
    slash: TrailingSlash,
    ext: Sequence[str] = (),
) -> Optional[str]:
    """
    Location to redirect to, if the URL path should change.

    Runs of slashes are always collapsed. The trailing slash is then added
    or removed according to the policy, if a file is given. With AUTO:

        GET /docs         docs/ is a dir, or served docs/index.html → /docs/
        GET /page.html/   served page.html                          → /page.html
        GET /page/        served page.html via --ext                → /page

    Returns:
        Path plus query string and fragment, or None to serve as-is.
    """
    if url is None or len(url.path) < 2:
        return None

    url_path = collapse_slashes(url.path)

    if file is not None and slash != TrailingSlash.IGNORE and url_path != "/":
        has_slash = url_path.endswith("/")
        want_slash: Optional[bool] = None

        if slash == TrailingSlash.ALWAYS:
            want_slash = True
        elif slash == TrailingSlash.NEVER:
            want_slash = False
        elif slash == TrailingSlash.AUTO:
            kind = file.effective.kind
            if kind == FSKind.DIR:
                want_slash = True
            elif kind == FSKind.FILE:
                # Names of the file actually served, not of a link to it
                served_path = file.effective.file_path
                last_segment = unquote(url_path.rstrip("/").rsplit("/", 1)[-1])
                file_name = os.path.basename(served_path)
                parent_name = os.path.basename(os.path.dirname(served_path))
                if last_segment == file_name or any(last_segment + e == file_name for e in ext):
                    want_slash = False
                elif last_segment == parent_name:
                    want_slash = True

        if want_slash is True and not has_slash:
            url_path += "/"
        elif want_slash is False and has_slash:
            url_path = url_path.rstrip("/") or "/"

    if url_path != url.path:
        return url_path + url.search + url.hash
    return None


# =============================================================================
# HEADER HELPERS
# =============================================================================

def header_case(name: str) -> str:
    """
    Example:
        >>> header_case("access-control-allow-origin")
        'Access-Control-Allow-Origin'
    """
    return _HEADER_CASE.sub(lambda m: m.group(0).upper(), name)


@lru_cache(maxsize=64)
def _include_matcher(include: Tuple[str, ...]) -> PathMatcher:
    return PathMatcher(include, case_sensitive=True)


def file_headers(
    local_path: str,
    rules: Iterable[HeaderRule],
    blocklist: Sequence[str] = (),
) -> List[Tuple[str, str]]:
    """
    Headers from every rule that applies to local_path, in rule order.
    Names in blocklist (any case) are skipped.
    """
    blocked = {name.lower() for name in blocklist}
    result: List[Tuple[str, str]] = []
    for rule in rules:
        if rule.include and not _include_matcher(tuple(rule.include)).test(local_path):
            continue
        for name, value in rule.headers:
            if name.lower() not in blocked:
                result.append((name, value))
    return result


def is_preflight(request: HTTPRequest) -> bool:
    return (
        request.method == "OPTIONS"
        and bool(request.get_header("origin"))
        and bool(request.get_header("access-control-request-method"))
    )


def parse_header_names(value: Optional[str]) -> List[str]:
    """
    Names from an Access-Control-Request-Headers value.

    Returns an empty list unless every name is a plain token.
    """
    if not value:
        return []
    names = [name.strip() for name in value.split(",") if name.strip()]
    if not all(_ALLOW_HEADER_TOKEN.match(name) for name in names):
        return []
    return names


def read_file_chunks(file_path: str, chunk_size: int = FILE_CHUNK_SIZE) -> Iterator[bytes]:
    """Stream a file; the handle is closed on exhaustion, error or close()."""
    with open(file_path, "rb") as handle:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                return
            yield chunk


# =============================================================================
# REQUEST METADATA
# =============================================================================

@dataclass
class Timing:
    """Wall-clock timestamps (time.time()) of one request."""

    start: float
    send: Optional[float] = None
    close: Optional[float] = None

    @property
    def duration_ms(self) -> Optional[float]:
        end = self.close if self.close is not None else self.send
        if end is None:
            return None
        return (end - self.start) * 1000


@dataclass
class RequestMeta:
    """What the request log needs to know about a handled request."""

    method: str
    status: int
    url: str
    url_path: Optional[str]
    local_path: Optional[str]
    timing: Timing
    error: Optional[Union[str, BaseException]] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300


# =============================================================================
# REQUEST HANDLER
# =============================================================================

class RequestHandler:
    """
    Answers one request for a file under the served root.

    Usage:
        handler = RequestHandler(request, response, resolver, options)
        handler.process()
        # response now holds headers and a body (bytes or stream)
    """

    def __init__(
        self,
        request: HTTPRequest,
        response: HTTPResponse,
        resolver: FileResolver,
        options: ServerOptions,
    ):
        self.request = request
        self.response = response
        self.resolver = resolver
        self.options = options

        self.timing = Timing(start=time.time())
        self.url: Optional[RequestURL] = None
        self.url_path: Optional[str] = None
        self.file: Optional[FSLocation] = None
        self.error: Optional[Union[str, BaseException]] = None

        response.on_close(self._on_close)

        try:
            self.url = url_from_target(request.url)
            self.url_path = self.url.path
        except ValueError as e:
            self.error = e
            self.status = HTTPStatus.BAD_REQUEST

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def status(self) -> int:
        return self.response.status

    @status.setter
    def status(self, value: int) -> None:
        if not self.response.headers_sent:
            self.response.status = value

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def process(self) -> None:
        """
        Fill in the response. Never raises: unexpected errors become a 500
        error page, or end the response if headers are already sent.
        """
        try:
            self._process()
        except Exception as e:
            logger.exception(f"Failed to handle {self.method} {self.request.url}: {e}")
            self.error = e
            if not self.response.headers_sent:
                self.status = HTTPStatus.INTERNAL_SERVER_ERROR
                try:
                    self._send_error_page()
                except Exception:
                    logger.exception("Failed to render the error page")
            self.response.end()

    def _process(self) -> None:
        if self.method not in SUPPORTED_METHODS:
            self.status = HTTPStatus.METHOD_NOT_ALLOWED
            return self._send_error_page()

        if self.url is None:
            self.status = HTTPStatus.BAD_REQUEST
            return self._send_error_page()

        if self.method == "OPTIONS" and self.request.url == "*":
            self.status = HTTPStatus.NO_CONTENT
            self._header("allow", ", ".join(SUPPORTED_METHODS))
            return self._send()

        self.url_path = collapse_slashes(self.url.path)
        if not is_valid_url_path(self.url_path):
            self.status = HTTPStatus.BAD_REQUEST
            return self._send_error_page()

        result = self.resolver.find(decode_uri_component(self.url_path))
        self.file = result.file
        self.status = result.status

        location = self._redirect_location()
        if location is not None:
            self.status = HTTPStatus.TEMPORARY_REDIRECT
            self._header("location", location)
            return self._send()

        effective = self.file.effective if self.file is not None else None
        if self.status == HTTPStatus.OK and effective is not None:
            if effective.kind == FSKind.FILE:
                return self._send_file(effective.file_path)
            if effective.kind == FSKind.DIR and self.options.list:
                return self._send_list_page(effective.file_path)

        self._send_error_page()

    def _redirect_location(self) -> Optional[str]:
        # The slash policy applies to servable content only; collapsing
        # "//" applies to every request
        file = None
        if self.method in ("GET", "HEAD", "POST") and self.status == HTTPStatus.OK:
            file = self.file
        return redirect_slash(self.url, file, self.options.trailing_slash, self.options.ext)

    # =========================================================================
    # RESPONDERS
    # =========================================================================

    def _send_file(self, file_path: str) -> None:
        try:
            if not is_subpath(self.resolver.root, file_path):
                raise PermissionError(f"Refusing to serve file outside root: {file_path}")
            with open(file_path, "rb") as handle:
                content_type = get_content_type(path=file_path, handle=handle)
                size = os.fstat(handle.fileno()).st_size
        except OSError as e:
            logger.warning(f"Could not open {file_path}: {e}")
            self.error = e
            self.status = HTTPStatus.FORBIDDEN if e.errno == errno.EBUSY else HTTPStatus.INTERNAL_SERVER_ERROR
            return self._send_error_page()

        self._set_headers(file_path, content_type=content_type)

        if self.method == "OPTIONS":
            self.status = HTTPStatus.NO_CONTENT
            return self._send()

        stream = None if self.method == "HEAD" else read_file_chunks(file_path)
        self._send(stream=stream, is_text=content_type.is_text, size=size)

    def _send_list_page(self, dir_path: str) -> None:
        self._set_headers("index.html", cors=False, headers=())

        if self.method == "OPTIONS":
            self.status = HTTPStatus.NO_CONTENT
            return self._send()

        body = dir_list_page(
            root=self.resolver.root,
            url_path=self.url_path or "/",
            file_path=dir_path,
            items=self.resolver.index(dir_path),
            ext=self.options.ext,
        )
        self._send(body=body, is_text=True)

    def _send_error_page(self) -> None:
        self._set_headers("error.html", headers=())

        if self.method == "OPTIONS":
            return self._send()

        body = error_page(self.status, self.request.url, self.url_path)
        self._send(body=body, is_text=True)

    def _send(
        self,
        body: Optional[Union[str, bytes]] = None,
        stream: Optional[Iterator[bytes]] = None,
        is_text: bool = False,
        size: Optional[int] = None,
    ) -> None:
        self.timing.send = time.time()

        if self.request.destroyed:
            logger.debug(f"Client gone before {self.method} {self.request.url} was answered")
            self._close_stream(stream)
            return self.response.end()

        if self.method == "OPTIONS":
            self._close_stream(stream)
            self._header("content-length", "0")
            return self.response.end()

        is_head = self.method == "HEAD"

        if body is not None:
            data = body.encode("utf-8") if isinstance(body, str) else body
            if self._can_compress(is_text, len(data)):
                data = gzip_bytes(data)
                self._header("content-encoding", "gzip")
            self._header("content-length", str(len(data)))
            return self.response.end(b"" if is_head else data)

        compress = self._can_compress(is_text, size)
        if size is not None and not compress:
            self._header("content-length", str(size))
        if compress:
            self._header("content-encoding", "gzip")

        if is_head or stream is None:
            self._close_stream(stream)
            return self.response.end()

        self.response.pipe(gzip_chunks(stream) if compress else stream)

    @staticmethod
    def _close_stream(stream: Optional[Iterator[bytes]]) -> None:
        close = getattr(stream, "close", None)
        if close is not None:
            close()

    def _can_compress(self, is_text: bool, size: Optional[int]) -> bool:
        if not self.options.gzip:
            return False
        return should_compress(self.request.get_header("accept-encoding"), is_text, size)

    # =========================================================================
    # HEADERS
    # =========================================================================

    def _header(self, name: str, value: str, normalize: bool = True) -> None:
        if self.response.headers_sent:
            return
        self.response.set_header(header_case(name) if normalize else name, value)

    def _set_headers(
        self,
        file_path: str,
        content_type: Optional[TypeResult] = None,
        cors: Optional[bool] = None,
        headers: Optional[Sequence[HeaderRule]] = None,
    ) -> None:
        if self.method == "OPTIONS" or self.status == HTTPStatus.METHOD_NOT_ALLOWED:
            self._header("allow", ", ".join(SUPPORTED_METHODS))

        if self.method != "OPTIONS":
            value = content_type if content_type is not None else type_for_file_path(file_path)
            self._header("content-type", str(value))

        if self.options.cors if cors is None else cors:
            self._set_cors_headers()

        rules = self.options.headers if headers is None else headers
        local_path = get_local_path(self.resolver.root, file_path)
        if rules and local_path is not None:
            for name, value in file_headers(local_path, rules, BLOCKED_RULE_HEADERS):
                self._header(name, value, normalize=False)

    def _set_cors_headers(self) -> None:
        origin = self.request.get_header("origin")
        if not origin:
            return

        self._header("access-control-allow-origin", origin)

        if is_preflight(self.request):
            self._header("access-control-allow-methods", ", ".join(SUPPORTED_METHODS))
            allow_headers = parse_header_names(self.request.get_header("access-control-request-headers"))
            if allow_headers:
                self._header("access-control-allow-headers", ", ".join(allow_headers))
            self._header("access-control-max-age", "60")

    # =========================================================================
    # METADATA
    # =========================================================================

    def _on_close(self) -> None:
        self.timing.close = time.time()

    def data(self) -> RequestMeta:
        local_path = None
        if self.file is not None:
            local_path = get_local_path(self.resolver.root, self.file.effective.file_path)
        return RequestMeta(
            method=self.method,
            status=int(self.status),
            url=self.request.url,
            url_path=self.url_path,
            local_path=local_path,
            timing=self.timing,
            error=self.error,
        )
