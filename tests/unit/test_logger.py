"""
Unit tests for request log lines, colors and logging setup.
"""

import logging
import time

from devserve.handlers.request_handler import RequestMeta, Timing
from devserve.logger import (
    ACCESS_LOGGER_NAME,
    ColorUtils,
    request_log_line,
    setup_logging,
    strip_ansi,
    supports_color,
)

START = 1_767_270_000.0


def make_meta(status=200, url="/", url_path="/", local_path=None, error=None, method="GET"):
    return RequestMeta(
        method=method,
        status=status,
        url=url,
        url_path=url_path,
        local_path=local_path,
        timing=Timing(start=START, send=START + 0.001, close=START + 0.0024),
        error=error,
    )


def clock():
    return time.strftime("%H:%M:%S", time.localtime(START))


class TestSupportsColor:

    def test_plain_terminal(self):
        assert supports_color({"TERM": "dumb"}, "linux") is False

    def test_color_terms(self):
        assert supports_color({"TERM": "xterm-256color"}, "linux") is True
        assert supports_color({"COLORTERM": "truecolor"}, "linux") is True

    def test_no_color_wins(self):
        assert supports_color({"NO_COLOR": "1", "TERM": "xterm-256color"}, "linux") is False

    def test_force_color_beats_no_color(self):
        assert supports_color({"NO_COLOR": "1", "FORCE_COLOR": "true"}, "linux") is True
        assert supports_color({"NO_COLOR": "1", "FORCE_COLOR": "3"}, "linux") is True
        assert supports_color({"NO_COLOR": "1", "FORCE_COLOR": "yes"}, "linux") is False


class TestColorUtils:

    def test_style(self):
        c = ColorUtils(True)
        assert c.style("hi", "red") == "\x1b[31mhi\x1b[39m"
        assert c.style("hi", "dim cyan") == "\x1b[2m\x1b[36mhi\x1b[39m\x1b[22m"

    def test_unknown_and_empty_formats(self):
        c = ColorUtils(True)
        assert c.style("hi", "sparkly") == "hi"
        assert c.style("hi", "") == "hi"

    def test_disabled(self):
        c = ColorUtils(False)
        assert c.style("hi", "red") == "hi"
        assert c.brackets("x") == "[x]"

    def test_sequence(self):
        c = ColorUtils(True)
        assert c.sequence(["a", "b", "c"], "red,,green") == "\x1b[31ma\x1b[39mb\x1b[32mc\x1b[39m"

    def test_brackets(self):
        c = ColorUtils(True)
        assert strip_ansi(c.brackets("x")) == "[x]"
        assert c.brackets("x", "", ("(", ")")) == "(x)"

    def test_strip_ansi(self):
        assert strip_ansi("\x1b[1m\x1b[31mbold red\x1b[39m\x1b[22m") == "bold red"


class TestRequestLogLine:

    def test_exact_file(self):
        meta = make_meta(url="/about.html", url_path="/about.html", local_path="about.html")
        assert request_log_line(meta) == f"{clock()} 200 — GET /about.html (3ms)"

    def test_extension_suffix(self):
        meta = make_meta(url="/section/page", url_path="/section/page", local_path="section/page.html")
        assert request_log_line(meta) == f"{clock()} 200 — GET /section/page[.html] (3ms)"

    def test_index_suffix_keeps_trailing_slash(self):
        meta = make_meta(url="/section/", url_path="/section/", local_path="section/index.html")
        assert request_log_line(meta) == f"{clock()} 200 — GET /section[/index.html]/ (3ms)"

    def test_root_index(self):
        meta = make_meta(url="/", url_path="/", local_path="index.html")
        assert request_log_line(meta) == f"{clock()} 200 — GET /[index.html] (3ms)"

    def test_error_adds_second_line(self):
        meta = make_meta(
            status=500, url="/boom", url_path="/boom", local_path=None, error=RuntimeError("disk on fire")
        )
        first, second = request_log_line(meta).split("\n")

        assert first == f"{clock()} 500 — GET /boom (3ms)"
        assert second == "RuntimeError: disk on fire"

    def test_error_ignored_on_success(self):
        meta = make_meta(url="/about.html", url_path="/about.html", local_path="about.html", error="odd")
        assert "\n" not in request_log_line(meta)

    def test_raw_url_without_path(self):
        meta = make_meta(status=400, url="/%E0%A4%A", url_path=None, local_path=None)
        assert request_log_line(meta) == f"{clock()} 400 — GET /%E0%A4%A (3ms)"

    def test_colors(self):
        meta = make_meta(url="/section/page", url_path="/section/page", local_path="section/page.html")
        line = request_log_line(meta, ColorUtils(True))

        assert "\x1b[32m200\x1b[39m" in line
        assert strip_ansi(line) == request_log_line(meta)

    def test_not_found_is_red(self):
        meta = make_meta(status=404, url="/missing", url_path="/missing")
        assert "\x1b[31m404\x1b[39m" in request_log_line(meta, ColorUtils(True))


class TestSetupLogging:

    def test_returns_color_utils(self):
        assert setup_logging("DEBUG", color=False).enabled is False
        assert setup_logging(logging.INFO, color=True).enabled is True

    def test_access_logger(self):
        setup_logging("WARNING", color=False)
        access = logging.getLogger(ACCESS_LOGGER_NAME)

        assert access.propagate is False
        assert access.level == logging.INFO
        assert logging.getLogger("devserve").level == logging.WARNING

    def test_single_access_handler(self):
        setup_logging(color=False)
        setup_logging(color=False)
        access = logging.getLogger(ACCESS_LOGGER_NAME)

        assert sum(1 for h in access.handlers if getattr(h, "_devserve_access", False)) == 1
