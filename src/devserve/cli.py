"""
=============================================================================
COMMAND LINE INTERFACE
=============================================================================

    $ devserve                         # serve the current directory
    $ devserve ./public --port 3000    # custom root and port
    $ devserve -p 8000-8010 --cors     # port range, CORS headers
    $ devserve --header "*.js Cache-Control: no-store"

Turning argv into a running server takes four steps:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   argv ──► prepare_argv()   boolean "=value" forms, short combos    │
    │        ──► argparse         known options, unknown leftovers        │
    │        ──► build_options()  ServerOptions + every error found       │
    │        ──► run()            bind, banner, serve until Ctrl+C        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Errors are collected, not raised one by one: a command with a bad port
AND a bad header reports both, then exits with status 1.

=============================================================================
OPTION VALUE GRAMMAR
=============================================================================

    --port 8080          one port
    --port 8080+         8080 to 8089
    --port 8000-8005     inclusive range, may run backwards (max 100)

    --ext html,htm       comma-separated, trimmed, de-duplicated;
                         a missing leading "." is added

    --header "Name: value"                    every file
    --header "*.css,*.js Name: value"         matching files only
    --header '{"Name": "value", "X-N": 1}'    JSON object form
    --header '*.html {"Name": "value"}'       JSON with file patterns

    --cors  --cors=true  --cors=1             on
    --no-cors  --cors=false  --cors=0         off

=============================================================================
"""

import argparse
import json
import logging
import os
import re
import socket
import sys
from typing import Dict, List, Optional, Sequence, Tuple

from . import __version__
from .config import (
    HeaderRule,
    LOCAL_HOSTS,
    MAX_PORT_COUNT,
    PORT_COUNT,
    ServerOptions,
    TrailingSlash,
    WILDCARD_HOSTS,
    header_value,
    int_range,
)
from .core import PortsInUseError
from .fs_utils import check_dir_access
from .logger import ColorUtils, setup_logging
from .server import StaticServer

logger = logging.getLogger(__name__)

PROG = "devserve"

# Options that take no value; "--name=value" is rewritten to --name / --no-name
BOOLEAN_OPTIONS = ("--cors", "--gzip", "--list", "--dir-list")

_PORT_PATTERN = re.compile(r"^(\d+)(\+|-\d+)?$")
_SHORT_EQUAL = re.compile(r"^-[a-z]=", re.IGNORECASE)
_SHORT_COMBO = re.compile(r"^-[a-z\d]{2,}", re.IGNORECASE)


class CLIError(Exception):
    """A command line problem worth one "devserve: ..." line."""


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of printing usage and exiting."""

    def error(self, message):
        raise CLIError(message)


# ─────────────────────────────────────────────────────────────────────────────
# VALUE PARSING
# ─────────────────────────────────────────────────────────────────────────────

def str_to_bool(value: str) -> Optional[bool]:
    """
    "true"/"1" -> True, "false"/"0" -> False, anything else -> None.
    """
    value = value.strip().lower()
    if value in ("true", "1"):
        return True
    if value in ("false", "0"):
        return False
    return None


def split_option_value(values: Sequence[str]) -> List[str]:
    """
    Split comma-separated values, dropping blanks and duplicates.

    Example:
        split_option_value(["a, b", "c,a"]) -> ["a", "b", "c"]
    """
    result: List[str] = []
    for value in values:
        for item in value.split(","):
            item = item.strip()
            if item and item not in result:
                result.append(item)
    return result


def normalize_ext(value: str) -> str:
    if value and not value.startswith("."):
        return f".{value}"
    return value


def parse_port(value: str) -> Optional[List[int]]:
    """
    Parse a --port value into the list of ports to try.

    Returns:
        The ports in order, or None for invalid input.
    """
    match = _PORT_PATTERN.match(value.strip())
    if not match:
        return None

    start = int(match.group(1))
    suffix = match.group(2)
    if suffix == "+":
        return int_range(start, start + PORT_COUNT - 1, MAX_PORT_COUNT)
    if suffix:
        return int_range(start, int(suffix[1:]), MAX_PORT_COUNT)
    return [start]


def _header_rule(include: str, pairs: List[Tuple[str, str]]) -> HeaderRule:
    include = include.strip()
    if include and include != "*":
        patterns = tuple(item.strip() for item in include.split(","))
    else:
        patterns = ()
    return HeaderRule(headers=tuple(pairs), include=patterns)


def parse_header(value: str) -> Optional[HeaderRule]:
    """
    Parse a --header value.

    Both forms may start with comma-separated file patterns:

        "*.html X-Frame-Options: DENY"
        '*.html {"X-Frame-Options": "DENY", "X-Count": 1}'

    Returns:
        The rule, or None if no valid header could be read.
    """
    value = value.strip()
    brace = value.find("{")
    colon = value.find(":")

    if brace >= 0 and colon > brace and value.endswith("}"):
        try:
            data = json.loads(value[brace:])
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        pairs = []
        for name, item in data.items():
            if isinstance(item, (str, bool, int, float)):
                name = name.strip()
                item = header_value(item).strip()
                if name and item:
                    pairs.append((name, item))
        if not pairs:
            return None
        return _header_rule(value[:brace], pairs)

    if colon > 0:
        key = value[:colon].strip()
        text = value[colon + 1:].strip()
        if not key or not text:
            return None
        words = key.split()
        name = words[-1]
        include = key[: len(key) - len(name)]
        return _header_rule(include, [(name, text)])

    return None


# ─────────────────────────────────────────────────────────────────────────────
# ARGUMENT PARSER
# ─────────────────────────────────────────────────────────────────────────────

def create_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog=PROG,
        description="Local HTTP server for static files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        # -h is --host, so help is --help only
        add_help=False,
        allow_abbrev=False,
        epilog="""
Examples:
  devserve                             # Serve the current directory
  devserve ./public --port 3000        # Custom root and port
  devserve -p 8000-8010 --cors         # Port range, CORS headers
  devserve --no-list --ext html,htm    # No directory listings
        """,
    )

    parser.add_argument(
        "root",
        nargs="?",
        default=None,
        help="Directory to serve (default: current directory)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "-h", "--host",
        default=None,
        help="Specify custom host (default: every interface)",
    )
    parser.add_argument(
        "-p", "--port", "--ports",
        dest="port",
        action="append",
        help="Specify custom port(s) (default: '8080+')",
    )

    # ─────────────────────────────────────────────────────────────────────
    # RESPONSE ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--header", "--headers",
        dest="header",
        action="append",
        help="Add custom HTTP header(s) to responses",
    )
    _add_switch(parser, "cors", "Send CORS HTTP headers")
    _add_switch(parser, "gzip", "Use gzip compression for text files (default: on)")

    # ─────────────────────────────────────────────────────────────────────
    # FILE ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--ext",
        action="append",
        help="Extension(s) used to resolve URLs (default: '.html')",
    )
    parser.add_argument("--no-ext", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument(
        "--dir-file", "--index",
        dest="index",
        action="append",
        help="Directory index file name(s) (default: 'index.html')",
    )
    parser.add_argument("--no-dir-file", "--no-index", dest="no_index", action="store_true", help=argparse.SUPPRESS)
    _add_switch(parser, "list", "List files of directories without an index (default: on)", aliases=("--dir-list",))
    parser.add_argument(
        "--exclude",
        action="append",
        help="Deny file access by pattern (default: '.*, !.well-known')",
    )
    parser.add_argument("--no-exclude", action="store_true", help=argparse.SUPPRESS)
    parser.add_argument(
        "--trailing-slash",
        default=None,
        help="Enforce trailing slash in URL path: auto, always, never, ignore (default: auto)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--help", action="store_true", help="Display this help message")
    parser.add_argument("--version", action="store_true", help="Display the current version")

    return parser


def _add_switch(parser: argparse.ArgumentParser, name: str, help: str, aliases: Tuple[str, ...] = ()):
    """Add --name / --no-name, both writing to the same destination."""
    negatives = [f"--no-{name}"] + [f"--no-{alias[2:]}" for alias in aliases]
    parser.add_argument(f"--{name}", *aliases, dest=name, action="store_true", default=None, help=help)
    parser.add_argument(*negatives, dest=f"no_{name}", action="store_true", help=argparse.SUPPRESS)


def prepare_argv(argv: Sequence[str]) -> Tuple[List[str], List[str]]:
    """
    Normalize argv before argparse sees it.

    - "-p=8080" becomes "-p", "8080"
    - "--cors=false" becomes "--no-cors" (and "--cors=1" becomes "--cors")
    - short option combos like "-abc" are reported, not guessed at

    Returns:
        (args, errors)
    """
    args: List[str] = []
    errors: List[str] = []

    for arg in argv:
        if arg.startswith("--") and "=" in arg:
            name, value = arg.split("=", 1)
            if name in BOOLEAN_OPTIONS:
                flag = str_to_bool(value)
                if flag is None:
                    errors.append(f"invalid {name} value: {value!r}")
                else:
                    args.append(name if flag else f"--no-{name[2:]}")
                continue
        elif _SHORT_EQUAL.match(arg):
            args.extend(arg.split("=", 1))
            continue
        elif _SHORT_COMBO.match(arg):
            errors.append(f"unknown option '{arg}'")
            continue
        args.append(arg)

    return args, errors


def parse_args(argv: Sequence[str]) -> Tuple[argparse.Namespace, List[str]]:
    """
    Parse argv into a Namespace, collecting problems instead of exiting.

    Returns:
        (namespace, errors)
    """
    parser = create_parser()
    args, errors = prepare_argv(argv)

    try:
        namespace, extras = parser.parse_known_args(args)
    except CLIError as e:
        return parser.parse_known_args([])[0], errors + [str(e)]

    for extra in extras:
        if extra.startswith("-") and not any(c.isspace() for c in extra):
            name = extra.split("=", 1)[0]
            errors.append(f"unknown option '{name}'")
    return namespace, errors


# ─────────────────────────────────────────────────────────────────────────────
# OPTIONS
# ─────────────────────────────────────────────────────────────────────────────

def build_options(args: argparse.Namespace, cwd: Optional[str] = None) -> Tuple[Optional[ServerOptions], List[str]]:
    """
    Translate parsed arguments to ServerOptions.

    Only options the user gave are set; everything else keeps the
    ServerOptions default.

    Returns:
        (options, errors). options is None when it could not be built.
    """
    errors: List[str] = []
    kwargs: Dict[str, object] = {}

    root = args.root.strip() if args.root else ""
    kwargs["root"] = os.path.abspath(os.path.join(cwd or os.getcwd(), root))

    if args.host is not None:
        kwargs["host"] = args.host.strip()

    if args.port:
        ports = parse_port(args.port[-1])
        if ports is None:
            errors.append(f"invalid --port value: {args.port[-1]!r}")
        else:
            kwargs["ports"] = tuple(ports)

    rules = []
    for value in args.header or ():
        if not value.strip():
            continue
        rule = parse_header(value)
        if rule is None:
            errors.append(f"invalid --header value: {value!r}")
        else:
            rules.append(rule)
    if rules:
        kwargs["headers"] = tuple(rules)

    for name in ("cors", "gzip", "list"):
        if getattr(args, f"no_{name}"):
            kwargs[name] = False
        elif getattr(args, name):
            kwargs[name] = True

    if args.no_ext:
        kwargs["ext"] = ()
    elif args.ext:
        kwargs["ext"] = tuple(normalize_ext(item) for item in split_option_value(args.ext))

    if args.no_index:
        kwargs["index"] = ()
    elif args.index:
        kwargs["index"] = tuple(split_option_value(args.index))

    if args.no_exclude:
        kwargs["exclude"] = ()
    elif args.exclude:
        kwargs["exclude"] = tuple(split_option_value(args.exclude))

    if args.trailing_slash is not None:
        try:
            kwargs["trailing_slash"] = TrailingSlash(args.trailing_slash.strip().lower())
        except ValueError:
            errors.append(f"invalid --trailing-slash value: {args.trailing_slash!r}")

    options = ServerOptions(**kwargs)
    errors.extend(options.errors())

    access_error = check_dir_access(options.root)
    if access_error:
        errors.append(access_error)

    return options, errors


# ─────────────────────────────────────────────────────────────────────────────
# STARTUP BANNER
# ─────────────────────────────────────────────────────────────────────────────

def is_private_ipv4(address: str) -> bool:
    """10.0.0.0/8, 172.16.0.0/12 and 192.168.0.0/16."""
    parts = address.split(".")
    if len(parts) != 4 or not all(p.isdigit() for p in parts):
        return False
    a, b = int(parts[0]), int(parts[1])
    return a == 10 or (a == 172 and 16 <= b <= 31) or (a == 192 and b == 168)


def network_address() -> Optional[str]:
    """Private IPv4 address of this machine on the local network, if any."""
    try:
        # No packet is sent: connect() on UDP only picks a route
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("10.255.255.255", 1))
            address = sock.getsockname()[0]
    except OSError:
        return None
    return address if is_private_ipv4(address) else None


def display_hosts(configured: Optional[str], actual: str, network: Optional[str] = None) -> Tuple[str, Optional[str]]:
    """
    Pick the hosts to show in the banner.

    Returns:
        (local, network). network is only shown for wildcard hosts.
    """
    is_wildcard = configured is None or configured in WILDCARD_HOSTS
    if not is_wildcard and configured not in LOCAL_HOSTS:
        return configured, None

    local = "localhost" if actual in WILDCARD_HOSTS or actual in LOCAL_HOSTS else actual
    return local, network if is_wildcard else None


def display_root(root: str, home: Optional[str] = None) -> str:
    """Replace the home directory with "~" (not on Windows)."""
    if sys.platform == "win32":
        return root
    home = home or os.path.expanduser("~")
    prefix = home.rstrip(os.sep) + os.sep
    if root.startswith(prefix):
        return "~" + os.sep + root[len(prefix):]
    return root


def url_host(host: str) -> str:
    return f"[{host}]" if ":" in host else host


def banner(
    root: str,
    port: int,
    local: str,
    network: Optional[str] = None,
    color: Optional[ColorUtils] = None,
) -> str:
    c = color or ColorUtils(False)
    rows = [("serving", display_root(root)), ("local", f"http://{url_host(local)}:{port}")]
    if network:
        rows.append(("network", f"http://{network}:{port}"))

    width = max(len(name) for name, _ in rows)
    lines = [
        f"  {c.style(name.rjust(width), 'bold')}  {c.style(value, 'underline' if value.startswith('http') else '')}"
        for name, value in rows
    ]
    return "\n".join(lines)


# ─────────────────────────────────────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────────────────────────────────────

def _print_errors(errors: Sequence[str]) -> None:
    for message in errors:
        print(f"{PROG}: {message}", file=sys.stderr)


def run(argv: Optional[Sequence[str]] = None) -> int:
    """
    Run the command line tool.

    Returns:
        Process exit status: 0 after a clean shutdown, 1 on any error.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    args, errors = parse_args(argv)

    if args.version:
        print(__version__)
        return 0
    if args.help:
        print(create_parser().format_help())
        return 0

    options, option_errors = build_options(args)
    errors.extend(option_errors)
    if errors:
        _print_errors(errors)
        print(f"Try '{PROG} --help' for more information.", file=sys.stderr)
        return 1

    color = setup_logging(args.log_level)
    logger.debug(f"Options: {options}")
    server = StaticServer(options, color=color)

    try:
        server.bind()
    except PortsInUseError as e:
        _print_errors([str(e)])
        return 1
    except socket.gaierror:
        _print_errors([f"host not found: {options.host!r}"])
        return 1
    except OSError as e:
        _print_errors([e.strerror or str(e)])
        return 1

    local, network = display_hosts(options.host, server.host, network_address())
    print(f"\n{banner(options.root, server.port, local, network, color)}\n", flush=True)

    server.run()
    return 0
