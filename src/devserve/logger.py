"""
=============================================================================
REQUEST LOG AND TERMINAL COLORS
=============================================================================

Two kinds of output:

    ACCESS LOG (logger "devserve.access", stdout, message only)

        14:03:27 200 — GET /docs/[index.html]/ (3ms)
        14:03:28 200 — GET /blog/hello[.html] (1ms)
        14:03:29 404 — GET /favicon.ico (1ms)
        │        │     │   │         │          │
        │        │     │   │         │          └── time to last byte
        │        │     │   │         └── part of the file path the URL
        │        │     │   │             left out (index file, --ext)
        │        │     │   └── URL path, as requested
        │        │     └── method
        │        └── status, green for 2xx, red otherwise
        └── local time of the request

    DIAGNOSTICS (every other logger, stderr)

        2026-01-01 14:03:27 [WARNING] devserve.handlers...: Could not open ...

=============================================================================
COLOR SUPPORT
=============================================================================

    FORCE_COLOR=true|<digit>   → on, even with NO_COLOR
    NO_COLOR (any value)       → off
    Windows 10 build 10586+    → on
    COLORTERM=truecolor        → on
    TERM=xterm-256color, xterm-16color, xterm-color → on
    otherwise                  → off

=============================================================================
"""

import logging
import math
import os
import re
import sys
import time
from typing import Mapping, Optional, Sequence, Tuple, Union

from .fs_utils import fwd_slash, trim_slash
from .handlers.request_handler import RequestMeta

ACCESS_LOGGER_NAME = "devserve.access"

access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# (open, close) SGR codes
ANSI_CODES = {
    "reset": (0, 0),
    "bold": (1, 22),
    "dim": (2, 22),
    "italic": (3, 23),
    "underline": (4, 24),
    "inverse": (7, 27),
    "black": (30, 39),
    "red": (31, 39),
    "green": (32, 39),
    "yellow": (33, 39),
    "blue": (34, 39),
    "magenta": (35, 39),
    "cyan": (36, 39),
    "white": (37, 39),
    "gray": (90, 39),
    "grey": (90, 39),
}

_COLOR_TERMS = ("xterm-256color", "xterm-16color", "xterm-color")
_ANSI_PATTERN = re.compile(r"\x1b\[\d+m")


def supports_color(environ: Optional[Mapping[str, str]] = None, platform: Optional[str] = None) -> bool:
    env = os.environ if environ is None else environ
    platform = platform or sys.platform

    if env.get("NO_COLOR"):
        force = env.get("FORCE_COLOR", "")
        return force == "true" or bool(re.fullmatch(r"\d", force))

    if platform == "win32":
        # First Windows 10 release with 256 color support
        try:
            version = sys.getwindowsversion()
        except AttributeError:
            return False
        return version.major >= 10 and version.build >= 10_586

    return env.get("COLORTERM") == "truecolor" or env.get("TERM") in _COLOR_TERMS


def strip_ansi(text: str) -> str:
    return _ANSI_PATTERN.sub("", text)


class ColorUtils:
    """
    ANSI styling that turns into a no-op when colors are disabled.

    Formats are space-separated style names, e.g. "dim underline".
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def style(self, text: str, fmt: str = "") -> str:
        if not self.enabled or not fmt.strip():
            return text
        before = after = ""
        for name in fmt.split():
            codes = ANSI_CODES.get(name)
            if codes is None:
                continue
            before = f"{before}\x1b[{codes[0]}m"
            after = f"\x1b[{codes[1]}m{after}"
        return f"{before}{text}{after}"

    def sequence(self, parts: Sequence[str], fmt: str = "") -> str:
        """Style each part with the matching comma-separated format."""
        if not fmt or not self.enabled:
            return "".join(parts)
        formats = fmt.split(",")
        return "".join(
            self.style(part, formats[i]) if i < len(formats) and formats[i] else part
            for i, part in enumerate(parts)
        )

    def brackets(self, text: str, fmt: str = "dim,,dim", chars: Tuple[str, str] = ("[", "]")) -> str:
        return self.sequence([chars[0], text, chars[1]], fmt)


# =============================================================================
# REQUEST LOG LINE
# =============================================================================

def _path_suffix(base_path: str, full_path: str) -> Optional[str]:
    if base_path == full_path:
        return ""
    if full_path.startswith(base_path):
        return full_path[len(base_path):]
    return None


def _error_text(error: Union[str, BaseException]) -> str:
    if isinstance(error, BaseException):
        return f"{type(error).__name__}: {error}"
    return str(error)


def request_log_line(meta: RequestMeta, color: Optional[ColorUtils] = None) -> str:
    """Format one access log line (two if there is an error to show)."""
    c = color or ColorUtils(False)
    is_success = meta.is_success
    url_path = meta.url_path

    timestamp = time.strftime("%H:%M:%S", time.localtime(meta.timing.start)) if meta.timing.start else ""
    duration = None
    if meta.timing.start and meta.timing.close:
        duration = math.ceil((meta.timing.close - meta.timing.start) * 1000)

    display_path = c.style(url_path if url_path is not None else meta.url, "cyan")
    if is_success and url_path is not None and meta.local_path is not None:
        base_path = trim_slash(url_path, end=True) if len(url_path) > 1 else url_path
        suffix = _path_suffix(base_path, "/" + fwd_slash(meta.local_path))
        if suffix:
            display_path = c.style(base_path, "cyan") + c.brackets(suffix, "dim,gray,dim")
            if len(url_path) > 1 and url_path.endswith("/"):
                display_path += c.style("/", "cyan")

    parts = [
        c.style(timestamp, "dim") if timestamp else "",
        c.style(str(meta.status), "green" if is_success else "red"),
        c.style("—", "dim"),
        c.style(meta.method, "cyan"),
        display_path,
        c.style(f"({duration}ms)", "dim") if duration else "",
    ]
    line = " ".join(part for part in parts if part)

    if not is_success and meta.error:
        return f"{line}\n{c.style(_error_text(meta.error), 'red')}"
    return line


def log_request(meta: RequestMeta, color: Optional[ColorUtils] = None) -> None:
    access_logger.info(request_log_line(meta, color))


# =============================================================================
# SETUP
# =============================================================================

def setup_logging(level: Union[int, str] = logging.INFO, color: Optional[bool] = None) -> ColorUtils:
    """
    Configure diagnostics and the access log.

    Args:
        level: Level for diagnostics ("DEBUG", "INFO", ... or an int).
        color: Force colors on or off; None detects terminal support.

    Returns:
        The ColorUtils to format request lines with.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logging.getLogger("devserve").setLevel(level)

    # Request lines are the main output: plain text on stdout, always shown
    if not any(getattr(h, "_devserve_access", False) for h in access_logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler._devserve_access = True
        access_logger.addHandler(handler)
    access_logger.setLevel(logging.INFO)
    access_logger.propagate = False

    return ColorUtils(supports_color() if color is None else color)
