"""
=============================================================================
SERVER OPTIONS
=============================================================================

Every knob the server understands lives in one immutable dataclass,
ServerOptions. The CLI builds it once at startup, validates it, and hands
the same instance to the resolver, the request handler and the socket
layer. Nothing mutates it afterwards.

=============================================================================
OPTION GROUPS
=============================================================================

    FILE SERVING
    - root, index, ext, exclude, list, trailing_slash

    RESPONSE HEADERS
    - headers (user rules), cors, gzip

    NETWORK
    - host, ports, backlog, buffer_size, timeout, keep_alive_timeout,
      max_head_size

    THREADING
    - min_workers, max_workers

=============================================================================
WHY FROZEN?
=============================================================================

Requests are handled concurrently by worker threads. If options could
change mid-flight, two requests for the same URL could be answered with
different rules. A frozen dataclass makes that impossible, and list-like
fields are tuples for the same reason.

    options = ServerOptions(root="/srv/site")
    options.gzip = False          # FrozenInstanceError
    replace(options, gzip=False)  # OK: a brand new instance

=============================================================================
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


# ─────────────────────────────────────────────────────────────────────────────
# CONSTANTS
# ─────────────────────────────────────────────────────────────────────────────

SUPPORTED_METHODS: Tuple[str, ...] = ("GET", "HEAD", "OPTIONS", "POST")

# Larger text files are streamed as-is
MAX_COMPRESS_SIZE = 50_000_000

INITIAL_PORT = 8080
PORT_COUNT = 10
MAX_PORT_COUNT = 100

LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")
WILDCARD_HOSTS = ("0.0.0.0", "::")


def int_range(start: int, end: int, limit: int = 1_000) -> List[int]:
    """
    Inclusive integer range that may run backwards.

    Example:
        int_range(8080, 8083)  -> [8080, 8081, 8082, 8083]
        int_range(9000, 8998)  -> [9000, 8999, 8998]
        int_range(1, 500, 3)   -> [1, 2, 3]
    """
    length = min(abs(end - start) + 1, abs(limit))
    step = 1 if start < end else -1
    return [start + i * step for i in range(length)]


DEFAULT_PORTS: Tuple[int, ...] = tuple(
    int_range(INITIAL_PORT, INITIAL_PORT + PORT_COUNT - 1)
)


class TrailingSlash(str, Enum):
    """
    Trailing slash policy for URL paths.

    AUTO:   directories get a slash, files don't
    ALWAYS: every path ends with a slash
    NEVER:  no path ends with a slash (except "/")
    IGNORE: leave URLs alone
    """

    AUTO = "auto"
    ALWAYS = "always"
    NEVER = "never"
    IGNORE = "ignore"


class OptionsError(ValueError):
    """
    Raised when ServerOptions fail validation.

    Carries every problem found, not only the first one, so the CLI can
    report them all in a single run.
    """

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


# ─────────────────────────────────────────────────────────────────────────────
# HEADER RULES
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class HeaderRule:
    """
    Custom response headers, optionally limited to matching files.

    Attributes:
        headers: (name, value) pairs, in the order the user gave them.
                 Names keep their original casing on the wire.
        include: Segment globs tested against the file's local path.
                 Empty means "every file".

    Example:
        HeaderRule(headers=(("Cache-Control", "no-store"),),
                   include=("*.html",))
    """

    headers: Tuple[Tuple[str, str], ...]
    include: Tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, headers: dict, include=None) -> "HeaderRule":
        """Build a rule from a dict, stringifying booleans and numbers."""
        pairs = tuple(
            (str(name), header_value(value)) for name, value in headers.items()
        )
        return cls(headers=pairs, include=tuple(include or ()))


def header_value(value) -> str:
    """
    Render a header value the way users expect from JSON input.

    True -> "true", 3 -> "3", 1.0 -> "1", "x" -> "x"
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ─────────────────────────────────────────────────────────────────────────────
# VALUE VALIDATORS
# ─────────────────────────────────────────────────────────────────────────────

_EXT_PATTERN = re.compile(r"^\.[\w\-]+(\.[\w\-]+){0,4}$")
_HEADER_NAME_PATTERN = re.compile(r"^[a-z\d\-_]+$", re.IGNORECASE)
_DOMAIN_LIKE = re.compile(r"^([a-z\d\-]+)(\.[a-z\d\-]+)*$", re.IGNORECASE)
_IP_LIKE = re.compile(r"^([\d.]+|[a-f\d:]+)$", re.IGNORECASE)
_PATTERN_FORBIDDEN = re.compile(r"[\\/:]")


def is_valid_ext(value: str) -> bool:
    return isinstance(value, str) and bool(_EXT_PATTERN.match(value))


def is_valid_header_name(name: str) -> bool:
    return isinstance(name, str) and bool(_HEADER_NAME_PATTERN.match(name))


def is_valid_host(value: str) -> bool:
    """
    Check that all characters are plausible for a domain name or an IP.

    This only catches obvious typos; the OS resolver has the final word.
    """
    if not isinstance(value, str) or not value:
        return False
    return bool(_DOMAIN_LIKE.match(value) or _IP_LIKE.match(value))


def is_valid_pattern(value: str) -> bool:
    """File names and segment globs: non-empty, no path separators or colons."""
    return isinstance(value, str) and len(value) > 0 and not _PATTERN_FORBIDDEN.search(value)


def is_valid_port(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 65_535


def is_valid_header_rule(rule: HeaderRule) -> bool:
    if not isinstance(rule, HeaderRule) or not rule.headers:
        return False
    if not all(isinstance(item, str) for item in rule.include):
        return False
    return all(
        is_valid_header_name(name) and isinstance(value, str)
        for name, value in rule.headers
    )


# ─────────────────────────────────────────────────────────────────────────────
# SERVER OPTIONS
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ServerOptions:
    """
    Validated, immutable runtime options.

    =========================================================================
    DEVELOPMENT DEFAULTS
    =========================================================================

        ServerOptions(root="/home/me/site")

        - Listens on every interface, first free port in 8080-8089
        - Serves index.html for directories, page.html for /page
        - Hides dotfiles, except .well-known
        - Lists directories without an index file
        - gzip for text responses, no CORS

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # FILE SERVING
    # ─────────────────────────────────────────────────────────────────────

    root: str = field(default_factory=os.getcwd)
    """Absolute path of the directory being served."""

    index: Tuple[str, ...] = ("index.html",)
    """File names tried, in order, when a URL points to a directory."""

    ext: Tuple[str, ...] = (".html",)
    """Suffixes tried, in order, when a URL matches no file as-is."""

    exclude: Tuple[str, ...] = (".*", "!.well-known")
    """Segment globs for paths that must never be served."""

    list: bool = True
    """Render a listing for directories without an index file."""

    trailing_slash: TrailingSlash = TrailingSlash.AUTO

    # ─────────────────────────────────────────────────────────────────────
    # RESPONSE HEADERS
    # ─────────────────────────────────────────────────────────────────────

    headers: Tuple[HeaderRule, ...] = ()
    cors: bool = False
    gzip: bool = True

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: Optional[str] = None
    """
    Address to bind to.
    None  - every interface (IPv4)
    "::"  - every interface (IPv6, dual stack where the OS allows it)
    """

    ports: Tuple[int, ...] = DEFAULT_PORTS
    """Ports tried in order until one is free."""

    backlog: int = 128
    buffer_size: int = 8192

    timeout: Optional[float] = 30.0
    """Socket timeout for the first request on a connection."""

    keep_alive_timeout: float = 5.0
    """Idle time allowed between requests on a kept-alive connection."""

    max_head_size: int = 1024 * 1024
    """Largest accepted request head, in bytes. Bodies are skipped, not buffered."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    def __post_init__(self):
        # Coerce list input to tuples so callers can pass plain lists
        for name in ("index", "ext", "exclude", "headers", "ports"):
            value = getattr(self, name)
            if isinstance(value, list):
                object.__setattr__(self, name, tuple(value))
        if isinstance(self.trailing_slash, str) and not isinstance(self.trailing_slash, TrailingSlash):
            try:
                object.__setattr__(self, "trailing_slash", TrailingSlash(self.trailing_slash))
            except ValueError:
                pass  # reported by validate()

    @property
    def port(self) -> int:
        """First port that will be tried."""
        return self.ports[0]

    def errors(self) -> List[str]:
        """Return every validation problem, in option order."""
        errors: List[str] = []

        if not isinstance(self.root, str) or not os.path.isabs(self.root):
            errors.append(f"root must be an absolute path: {self.root!r}")

        if self.host is not None and not is_valid_host(self.host):
            errors.append(f"invalid host value: {self.host!r}")

        if not self.ports:
            errors.append("no port specified")
        elif len(self.ports) > MAX_PORT_COUNT:
            errors.append(f"too many ports: {len(self.ports)} (max {MAX_PORT_COUNT})")
        for port in self.ports:
            if not is_valid_port(port):
                errors.append(f"invalid port number: {port!r}")
                break

        for rule in self.headers:
            if not is_valid_header_rule(rule):
                errors.append(f"invalid header value: {rule!r}")

        for item in self.index:
            if not is_valid_pattern(item):
                errors.append(f"invalid dir-file value: {item!r}")

        for item in self.ext:
            if not is_valid_ext(item):
                errors.append(f"invalid ext value: {item!r}")

        for item in self.exclude:
            if not is_valid_pattern(item):
                errors.append(f"invalid exclude pattern: {item!r}")

        if not isinstance(self.trailing_slash, TrailingSlash):
            errors.append(f"invalid trailing-slash value: {self.trailing_slash!r}")

        if self.min_workers < 1:
            errors.append("min_workers must be at least 1")
        if self.max_workers < self.min_workers:
            errors.append("max_workers must be >= min_workers")

        return errors

    def validate(self) -> "ServerOptions":
        """
        Validate every option.

        Returns:
            Self, for chaining: ServerOptions(...).validate()

        Raises:
            OptionsError: Listing every invalid value.
        """
        errors = self.errors()
        if errors:
            raise OptionsError(errors)
        return self
