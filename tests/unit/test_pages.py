"""
Unit tests for the error and directory listing pages.
"""

import os

from devserve.fs_utils import FSKind, FSLocation
from devserve.pages import attr, dir_list_page, error_page, html, nl2sp


class TestEscaping:

    def test_text(self):
        assert html("<a href='x'>&</a>") == "&lt;a href='x'&gt;&amp;&lt;/a&gt;"

    def test_attr(self):
        assert attr("\"it's\" <b>") == "&quot;it&apos;s&quot; &lt;b&gt;"

    def test_nl2sp(self):
        assert nl2sp("a\nb\rc d\te") == "a b c d\te"


class TestErrorPage:

    def test_not_found(self):
        page = error_page(404, "/missing%20file.txt?x=1", "/missing%20file.txt")

        assert page.startswith("<!doctype html>")
        assert '<meta charset="UTF-8">' in page
        assert "<title>404: Not found</title>" in page
        assert "<h1>404: Not found</h1>" in page
        assert "Could not find" in page
        assert "/missing file.txt" in page

    def test_escapes_url(self):
        page = error_page(400, "/<script>", None)

        assert "<script>" not in page
        assert "&lt;script&gt;" in page

    def test_encoded_slash_stays_visible(self):
        page = error_page(404, "/a%2Fb", "/a%2Fb")
        assert "/a\\/b" in page

    def test_known_statuses(self):
        for status, title in [(400, "400: Bad request"), (403, "403: Forbidden"), (405, "405: Method not allowed"), (500, "500: Error")]:
            assert f"<h1>{title}</h1>" in error_page(status, "/x")

    def test_method_not_allowed_has_no_description(self):
        page = error_page(405, "/about.html", "/about.html")

        assert "<h1>405: Method not allowed</h1>\n<p></p>" in page
        assert "about.html" not in page

    def test_unknown_status_is_generic(self):
        first = error_page(418, "/teapot")
        second = error_page(503, "/other", "/other")

        assert "<h1>Error</h1>" in first
        assert "Something went wrong" in first
        assert first == second


class TestDirListPage:

    def make_items(self, root):
        return [
            FSLocation(os.path.join(root, "docs", "a.html"), FSKind.FILE),
            FSLocation(os.path.join(root, "docs", "api"), FSKind.DIR),
            FSLocation(os.path.join(root, "docs", "b<c>.txt"), FSKind.FILE),
            FSLocation(
                os.path.join(root, "docs", "shortcut"),
                FSKind.LINK,
                FSLocation(os.path.join(root, "section"), FSKind.DIR),
            ),
        ]

    def test_title_and_base(self, tmp_path):
        root = str(tmp_path / "site")
        page = dir_list_page(root, "/docs/", os.path.join(root, "docs"), self.make_items(root))

        assert "<title>Index of site/docs</title>" in page
        assert '<base href="/docs/">' in page

    def test_root_listing_has_no_parent(self, tmp_path):
        root = str(tmp_path / "site")
        page = dir_list_page(root, "/", root, [FSLocation(os.path.join(root, "a.txt"), FSKind.FILE)])

        assert '<base href="/">' in page
        assert 'href="../"' not in page
        assert "--max-col-count:1" in page

    def test_directories_first_with_parent(self, tmp_path):
        root = str(tmp_path / "site")
        page = dir_list_page(root, "/docs", os.path.join(root, "docs"), self.make_items(root))

        order = [page.index(marker) for marker in ('href="../"', 'href="api"', 'href="shortcut"', 'href="a.html"', 'href="b%3Cc%3E.txt"')]
        assert order == sorted(order)
        assert "#icon-dir-link" in page
        assert "b&lt;c&gt;.txt" in page

    def test_extension_stripped_from_links(self, tmp_path):
        root = str(tmp_path / "site")
        page = dir_list_page(root, "/docs/", os.path.join(root, "docs"), self.make_items(root), ext=(".html",))

        assert 'href="a"' in page
        assert ">a.html<" in page

    def test_column_count(self, tmp_path):
        root = str(tmp_path / "site")
        items = [FSLocation(os.path.join(root, f"f{i}.txt"), FSKind.FILE) for i in range(20)]

        assert "--max-col-count:4" in dir_list_page(root, "/", root, items)
        assert "--max-col-count:2" in dir_list_page(root, "/", root, items[:5])

    def test_file_names_with_line_breaks(self, tmp_path):
        root = str(tmp_path / "site")
        items = [FSLocation(os.path.join(root, "two\nlines.txt"), FSKind.FILE)]
        page = dir_list_page(root, "/", root, items)

        assert "two lines.txt" in page
