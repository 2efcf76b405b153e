"""
Unit tests for RequestHandler and its URL and header helpers.
"""

import errno
import gzip
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Dict, Optional

import pytest

from devserve.config import HeaderRule, ServerOptions, TrailingSlash
from devserve.fs_utils import FSKind, FSLocation
from devserve.handlers import (
    RequestHandler,
    decode_uri_component,
    file_headers,
    header_case,
    is_valid_url_path,
    redirect_slash,
    url_from_target,
)
from devserve.handlers import request_handler
from devserve.handlers.request_handler import RequestURL, parse_header_names
from devserve.http.request import HTTPRequest
from devserve.http.response import HTTPResponse
from devserve.resolver import FileResolver


needs_symlinks = pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")


def handle(
    options: ServerOptions,
    method: str = "GET",
    url: str = "/",
    headers: Optional[Dict[str, str]] = None,
):
    """Run one request through a handler; returns (handler, response, body)."""
    request = HTTPRequest(
        method=method,
        url=url,
        headers={name.lower(): value for name, value in (headers or {}).items()},
    )
    response = HTTPResponse()
    handler = RequestHandler(request, response, FileResolver(options), options)
    handler.process()

    body = response.body
    if response.stream is not None:
        body = b"".join(response.stream)
    response.close()
    return handler, response, body


# =============================================================================
# URL HELPERS
# =============================================================================

class TestUrlFromTarget:

    def test_origin_form(self):
        url = url_from_target("/docs/a%20b?x=1#top")
        assert url == RequestURL("/docs/a%20b", "?x=1", "#top")
        assert url.href == "/docs/a%20b?x=1#top"

    def test_absolute_form(self):
        assert url_from_target("http://example.com/a/b?q") == RequestURL("/a/b", "?q", "")
        assert url_from_target("http://example.com").path == "/"

    def test_asterisk(self):
        assert url_from_target("*").path == "/*"

    def test_no_dot_normalisation(self):
        assert url_from_target("/a/../b").path == "/a/../b"

    def test_backslashes_and_unsafe_characters(self):
        assert url_from_target("/a\\b").path == "/a/b"
        assert url_from_target('/a"b<c>').path == "/a%22b%3Cc%3E"

    def test_invalid(self):
        with pytest.raises(ValueError):
            url_from_target("")
        with pytest.raises(ValueError):
            url_from_target("/a b")


class TestUrlPathValidation:

    @pytest.mark.parametrize("path", ["/", "/a", "/a/b/", "/a%20b", "/.well-known/x", "/caf%C3%A9"])
    def test_valid(self, path):
        assert is_valid_url_path(path)

    @pytest.mark.parametrize("path", [
        "a/b",
        "/a//b",
        "/a/./b",
        "/a/../b",
        "/%2e%2e/secret",
        "/a%2Fb",
        "/a%5Cb",
        "/bad%zz",
        "/bad%",
        "/%FF",
    ])
    def test_invalid(self, path):
        assert not is_valid_url_path(path)

    def test_decode_uri_component(self):
        assert decode_uri_component("a%20b%2F") == "a b/"
        with pytest.raises(ValueError):
            decode_uri_component("100%")
        with pytest.raises(ValueError):
            decode_uri_component("%E9")


class TestRedirectSlash:

    def file(self, path, kind=FSKind.FILE):
        return FSLocation(path, kind)

    def test_collapse_only(self):
        url = RequestURL("//a///b", "?q=1")
        assert redirect_slash(url, None, TrailingSlash.IGNORE) == "/a/b?q=1"

    def test_short_paths_never_redirect(self):
        assert redirect_slash(RequestURL("/"), self.file("/srv", FSKind.DIR), TrailingSlash.ALWAYS) is None

    def test_auto_directory(self):
        assert redirect_slash(RequestURL("/docs"), self.file("/srv/docs", FSKind.DIR), TrailingSlash.AUTO) == "/docs/"
        assert redirect_slash(RequestURL("/docs/"), self.file("/srv/docs", FSKind.DIR), TrailingSlash.AUTO) is None

    def test_auto_index_file(self):
        index = self.file("/srv/docs/index.html")
        assert redirect_slash(RequestURL("/docs"), index, TrailingSlash.AUTO) == "/docs/"

    def test_auto_file(self):
        page = self.file("/srv/page.html")
        assert redirect_slash(RequestURL("/page.html/"), page, TrailingSlash.AUTO) == "/page.html"
        assert redirect_slash(RequestURL("/page.html"), page, TrailingSlash.AUTO) is None

    def test_auto_extension_fallback(self):
        page = self.file("/srv/page.html")
        assert redirect_slash(RequestURL("/page/"), page, TrailingSlash.AUTO, (".html",)) == "/page"
        assert redirect_slash(RequestURL("/page"), page, TrailingSlash.AUTO, (".html",)) is None

    def test_auto_symlink_to_directory(self):
        link = FSLocation("/srv/latest", FSKind.LINK, FSLocation("/srv/v2", FSKind.DIR))
        assert redirect_slash(RequestURL("/latest"), link, TrailingSlash.AUTO) == "/latest/"

    def test_auto_symlink_to_index_file(self):
        """Slash decisions look at the served file, not the link name."""
        link = FSLocation("/srv/latest", FSKind.LINK, FSLocation("/srv/v2/index.html", FSKind.FILE))
        assert redirect_slash(RequestURL("/latest/"), link, TrailingSlash.AUTO) is None
        assert redirect_slash(RequestURL("/latest"), link, TrailingSlash.AUTO) is None

    def test_always_and_never(self):
        page = self.file("/srv/page.html")
        assert redirect_slash(RequestURL("/page.html", "?x"), page, TrailingSlash.ALWAYS) == "/page.html/?x"
        assert redirect_slash(RequestURL("/docs/"), page, TrailingSlash.NEVER) == "/docs"

    def test_ignore(self):
        page = self.file("/srv/page.html")
        assert redirect_slash(RequestURL("/page.html/"), page, TrailingSlash.IGNORE) is None


class TestHeaderHelpers:

    def test_header_case(self):
        assert header_case("content-type") == "Content-Type"
        assert header_case("x_custom_header") == "X_Custom_Header"
        assert header_case("etag") == "Etag"

    def test_file_headers(self):
        rules = [
            HeaderRule(headers=(("X-All", "1"),)),
            HeaderRule(headers=(("Cache-Control", "no-store"), ("Content-Length", "0")), include=("*.css",)),
        ]

        assert file_headers("style.css", rules, ("content-length",)) == [("X-All", "1"), ("Cache-Control", "no-store")]
        assert file_headers("index.html", rules) == [("X-All", "1")]

    def test_parse_header_names(self):
        assert parse_header_names("X-Foo, content_type") == ["X-Foo", "content_type"]
        assert parse_header_names("X-Foo, bad header") == []
        assert parse_header_names(None) == []


# =============================================================================
# REQUEST HANDLER
# =============================================================================

class TestServeFiles:

    def test_get_file(self, options: ServerOptions, site: Path):
        handler, response, body = handle(options, url="/about.html")

        assert response.status == 200
        assert response.get_header("Content-Type") == "text/html; charset=UTF-8"
        assert response.get_header("Content-Length") == str(len(body))
        assert body == (site / "about.html").read_bytes()

    def test_status_is_fixed_once_sent(self, options: ServerOptions):
        handler, response, _ = handle(options, url="/about.html")
        assert response.headers_sent

        handler.status = 500

        assert handler.status == 200
        assert response.status == 200

    def test_root_index(self, options: ServerOptions, site: Path):
        _, response, body = handle(options, url="/")

        assert response.status == 200
        assert body == (site / "index.html").read_bytes()

    def test_extensionless_url(self, options: ServerOptions, site: Path):
        _, response, body = handle(options, url="/section/page")

        assert response.status == 200
        assert body == (site / "section" / "page.html").read_bytes()

    def test_post_serves_file(self, options: ServerOptions):
        _, response, _ = handle(options, method="POST", url="/about.html")
        assert response.status == 200

    def test_binary_file(self, options: ServerOptions, site: Path):
        _, response, body = handle(options, url="/assets/logo.png", headers={"Accept-Encoding": "gzip"})

        assert response.get_header("Content-Type") == "image/png"
        assert response.get_header("Content-Encoding") is None
        assert body == (site / "assets" / "logo.png").read_bytes()

    def test_gzip(self, options: ServerOptions, site: Path):
        _, response, body = handle(options, url="/style.css", headers={"Accept-Encoding": "gzip, br"})

        assert response.get_header("Content-Encoding") == "gzip"
        assert response.get_header("Content-Length") is None
        assert gzip.decompress(body) == (site / "style.css").read_bytes()

    def test_gzip_disabled(self, options: ServerOptions):
        _, response, _ = handle(replace(options, gzip=False), url="/style.css", headers={"Accept-Encoding": "gzip"})
        assert response.get_header("Content-Encoding") is None

    def test_head(self, options: ServerOptions, site: Path):
        _, response, body = handle(options, method="HEAD", url="/style.css")

        assert response.status == 200
        assert response.get_header("Content-Length") == str((site / "style.css").stat().st_size)
        assert body == b""

    def test_head_with_gzip(self, options: ServerOptions):
        _, response, body = handle(options, method="HEAD", url="/style.css", headers={"Accept-Encoding": "gzip"})

        assert response.get_header("Content-Encoding") == "gzip"
        assert response.get_header("Content-Length") is None
        assert body == b""

    def test_options_file(self, options: ServerOptions):
        _, response, body = handle(options, method="OPTIONS", url="/about.html")

        assert response.status == 204
        assert response.get_header("Allow") == "GET, HEAD, OPTIONS, POST"
        assert response.get_header("Content-Length") == "0"
        assert response.get_header("Content-Type") is None
        assert body == b""

    def test_sniffed_content_type(self, options: ServerOptions, site: Path):
        (site / "notes").write_text("plain words")
        _, response, _ = handle(replace(options, ext=()), url="/notes")

        assert response.get_header("Content-Type") == "text/plain; charset=UTF-8"

    def test_client_gone(self, options: ServerOptions):
        request = HTTPRequest(method="GET", url="/about.html", alive_check=lambda: False)
        response = HTTPResponse()
        RequestHandler(request, response, FileResolver(options), options).process()

        assert response.finished
        assert response.stream is None
        assert response.body == b""


class TestRedirects:

    def test_directory_index_gets_slash(self, options: ServerOptions):
        _, response, body = handle(options, url="/section?x=1")

        assert response.status == 307
        assert response.get_header("Location") == "/section/?x=1"
        assert body == b""

    def test_listing_gets_slash(self, options: ServerOptions):
        _, response, _ = handle(options, url="/docs")
        assert response.get_header("Location") == "/docs/"

    def test_file_loses_slash(self, options: ServerOptions):
        _, response, _ = handle(options, url="/about.html/")
        assert response.get_header("Location") == "/about.html"

    def test_double_slashes(self, options: ServerOptions):
        _, response, _ = handle(options, url="//about.html")

        assert response.status == 307
        assert response.get_header("Location") == "/about.html"

    def test_double_slashes_on_missing_file(self, options: ServerOptions):
        _, response, _ = handle(options, url="/nothing//here")
        assert response.get_header("Location") == "/nothing/here"

    def test_no_slash_redirect_for_excluded_files(self, options: ServerOptions):
        _, response, _ = handle(options, url="/.env/")
        assert response.status == 404

    def test_no_slash_redirect_for_options(self, options: ServerOptions):
        _, response, _ = handle(options, method="OPTIONS", url="/docs")
        assert response.status == 204

    @needs_symlinks
    def test_symlinked_directory_keeps_its_slash(self, options: ServerOptions, site: Path):
        os.symlink(site / "section", site / "latest")
        _, response, body = handle(options, url="/latest/")

        assert response.status == 200
        assert response.get_header("Location") is None
        assert body == (site / "section" / "index.html").read_bytes()

    def test_always(self, options: ServerOptions):
        _, response, _ = handle(replace(options, trailing_slash=TrailingSlash.ALWAYS), url="/about.html")
        assert response.get_header("Location") == "/about.html/"

    def test_never(self, options: ServerOptions):
        _, response, _ = handle(replace(options, trailing_slash=TrailingSlash.NEVER), url="/section/")
        assert response.get_header("Location") == "/section"

    def test_ignore(self, options: ServerOptions, site: Path):
        _, response, body = handle(replace(options, trailing_slash=TrailingSlash.IGNORE), url="/section")

        assert response.status == 200
        assert body == (site / "section" / "index.html").read_bytes()


class TestListings:

    def test_listing(self, options: ServerOptions):
        _, response, body = handle(options, url="/docs/")

        assert response.status == 200
        assert response.get_header("Content-Type") == "text/html; charset=UTF-8"
        assert b"Index of" in body
        assert b"guide.txt" in body
        assert b"api" in body

    def test_listing_hides_excluded(self, options: ServerOptions):
        _, _, body = handle(options, url="/assets/")

        assert b"logo.png" in body
        assert b".hidden" not in body

    def test_listing_gzip(self, options: ServerOptions):
        _, response, body = handle(options, url="/docs/", headers={"Accept-Encoding": "gzip"})

        assert response.get_header("Content-Encoding") == "gzip"
        assert response.get_header("Content-Length") == str(len(body))
        assert b"Index of" in gzip.decompress(body)

    def test_listing_disabled(self, options: ServerOptions):
        _, response, _ = handle(replace(options, list=False), url="/docs/")
        assert response.status == 404

    def test_listing_without_cors_or_custom_headers(self, options: ServerOptions):
        opts = replace(options, cors=True, headers=(HeaderRule(headers=(("X-Rule", "1"),)),))
        _, response, _ = handle(opts, url="/docs/", headers={"Origin": "http://example.com"})

        assert response.get_header("Access-Control-Allow-Origin") is None
        assert response.get_header("X-Rule") is None


class TestErrors:

    def test_not_found(self, options: ServerOptions):
        handler, response, body = handle(options, url="/missing.html")

        assert response.status == 404
        assert response.get_header("Content-Type") == "text/html; charset=UTF-8"
        assert b"404: Not found" in body
        assert handler.data().local_path is None

    def test_excluded_file(self, options: ServerOptions):
        handler, response, _ = handle(options, url="/.env")

        assert response.status == 404
        assert handler.data().local_path == ".env"

    def test_method_not_allowed(self, options: ServerOptions):
        _, response, body = handle(options, method="DELETE", url="/about.html")

        assert response.status == 405
        assert response.get_header("Allow") == "GET, HEAD, OPTIONS, POST"
        assert b"405: Method not allowed" in body

    @pytest.mark.parametrize("url", ["/a%2Fb", "/%2e%2e/secret", "/bad%zz", "/a/../about.html"])
    def test_bad_request(self, options: ServerOptions, url):
        _, response, body = handle(options, url=url)

        assert response.status == 400
        assert b"400: Bad request" in body

    def test_unparseable_target(self, options: ServerOptions):
        handler, response, _ = handle(options, url="")

        assert response.status == 400
        assert handler.error is not None

    def test_error_pages_are_compressed(self, options: ServerOptions):
        _, response, body = handle(options, url="/missing", headers={"Accept-Encoding": "gzip"})

        assert response.status == 404
        assert response.get_header("Content-Encoding") == "gzip"
        assert b"404: Not found" in gzip.decompress(body)

    @pytest.mark.parametrize("code, status, title", [
        (errno.EBUSY, 403, b"403: Forbidden"),
        (errno.EIO, 500, b"500: Error"),
    ])
    def test_open_failure(self, options: ServerOptions, monkeypatch, code, status, title):
        def failing_open(path, *args, **kwargs):
            raise OSError(code, os.strerror(code), str(path))

        monkeypatch.setattr(request_handler, "open", failing_open, raising=False)
        handler, response, body = handle(options, url="/about.html")

        assert response.status == status
        assert title in body
        assert isinstance(handler.data().error, OSError)
        assert handler.data().error.errno == code

    def test_head_error_page(self, options: ServerOptions):
        _, response, body = handle(options, method="HEAD", url="/missing")

        assert response.status == 404
        assert int(response.get_header("Content-Length")) > 0
        assert body == b""

    def test_unexpected_exception(self, options: ServerOptions, monkeypatch):
        def explode(self, url_path):
            raise RuntimeError("boom")

        monkeypatch.setattr(FileResolver, "find", explode)
        handler, response, body = handle(options, url="/about.html")

        assert response.status == 500
        assert b"500: Error" in body
        assert isinstance(handler.data().error, RuntimeError)


class TestOptionsAsterisk:

    def test_options_asterisk(self, options: ServerOptions):
        _, response, body = handle(options, method="OPTIONS", url="*")

        assert response.status == 204
        assert response.get_header("Allow") == "GET, HEAD, OPTIONS, POST"
        assert body == b""


class TestHeaders:

    def test_cors_simple(self, options: ServerOptions):
        _, response, _ = handle(replace(options, cors=True), url="/about.html", headers={"Origin": "http://localhost:3000"})

        assert response.get_header("Access-Control-Allow-Origin") == "http://localhost:3000"
        assert response.get_header("Access-Control-Allow-Methods") is None

    def test_cors_without_origin(self, options: ServerOptions):
        _, response, _ = handle(replace(options, cors=True), url="/about.html")
        assert response.get_header("Access-Control-Allow-Origin") is None

    def test_cors_off(self, options: ServerOptions):
        _, response, _ = handle(options, url="/about.html", headers={"Origin": "http://localhost:3000"})
        assert response.get_header("Access-Control-Allow-Origin") is None

    def test_cors_preflight(self, options: ServerOptions):
        _, response, _ = handle(
            replace(options, cors=True),
            method="OPTIONS",
            url="/about.html",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
                "Access-Control-Request-Headers": "X-Token, content-type",
            },
        )

        assert response.status == 204
        assert response.get_header("Access-Control-Allow-Origin") == "http://localhost:3000"
        assert response.get_header("Access-Control-Allow-Methods") == "GET, HEAD, OPTIONS, POST"
        assert response.get_header("Access-Control-Allow-Headers") == "X-Token, content-type"
        assert response.get_header("Access-Control-Max-Age") == "60"
        assert response.get_header("Allow") == "GET, HEAD, OPTIONS, POST"
        assert response.get_header("Content-Length") == "0"

    def test_cors_preflight_invalid_request_headers(self, options: ServerOptions):
        _, response, _ = handle(
            replace(options, cors=True),
            method="OPTIONS",
            url="/about.html",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
                "Access-Control-Request-Headers": "X-Token, bad header!",
            },
        )

        assert response.get_header("Access-Control-Allow-Headers") is None
        assert response.get_header("Access-Control-Max-Age") == "60"

    def test_custom_header_rules(self, options: ServerOptions):
        rules = (
            HeaderRule(headers=(("x-powered-by", "devserve"),)),
            HeaderRule(headers=(("Cache-Control", "no-store"), ("Content-Length", "1")), include=("*.css",)),
        )
        opts = replace(options, headers=rules)

        _, css, body = handle(opts, url="/style.css")
        _, page, _ = handle(opts, url="/about.html")

        assert css.headers["x-powered-by"] == "devserve"
        assert css.get_header("Cache-Control") == "no-store"
        assert css.get_header("Content-Length") == str(len(body))
        assert page.get_header("Cache-Control") is None

    def test_rules_cannot_override_content_encoding(self, options: ServerOptions, site: Path):
        opts = replace(options, headers=(HeaderRule(headers=(("Content-Encoding", "br"),)),))

        _, gzipped, body = handle(opts, url="/style.css", headers={"Accept-Encoding": "gzip"})
        _, plain, _ = handle(opts, url="/style.css")

        assert gzipped.get_header("Content-Encoding") == "gzip"
        assert gzip.decompress(body) == (site / "style.css").read_bytes()
        assert plain.get_header("Content-Encoding") is None

    def test_error_pages_skip_custom_headers(self, options: ServerOptions):
        opts = replace(options, headers=(HeaderRule(headers=(("X-Rule", "1"),)),))
        _, response, _ = handle(opts, url="/missing")

        assert response.get_header("X-Rule") is None


class TestRequestMeta:

    def test_data(self, options: ServerOptions):
        handler, response, _ = handle(options, url="/section/?q=1")
        meta = handler.data()

        assert meta.method == "GET"
        assert meta.status == 200
        assert meta.url == "/section/?q=1"
        assert meta.url_path == "/section/"
        assert meta.local_path == "section/index.html"
        assert meta.is_success
        assert meta.timing.send is not None
        assert meta.timing.close is not None
        assert meta.timing.duration_ms >= 0
