"""
=============================================================================
HTML PAGES
=============================================================================

Directory listings and error pages. Both are complete, self-contained HTML
documents built from plain string templates.

=============================================================================
ESCAPING
=============================================================================

Every piece of dynamic text (file names, URL paths) goes through
escape_html() exactly once:

    Context     Escaped characters
    ─────────   ──────────────────────────────
    "text"      &  <  >
    "attr"      &  <  >  "  '

File names may also contain line breaks or U+2028, which would break the
layout; nl2sp() turns those into spaces for display.

=============================================================================
"""

import base64
import math
import os
import re
from typing import List, Optional, Sequence
from urllib.parse import quote, unquote

from .assets import FAVICON_ERROR, FAVICON_LIST, ICONS, STYLES
from .fs_utils import FSKind, FSLocation, trim_slash


_TEXT_ESCAPES = {"&": "&amp;", "<": "&lt;", ">": "&gt;"}
_ATTR_ESCAPES = {**_TEXT_ESCAPES, '"': "&quot;", "'": "&apos;"}
_TEXT_PATTERN = re.compile(r"[&<>]")
_ATTR_PATTERN = re.compile(r"[&<>\"']")
_LINE_BREAKS = re.compile("[\u000a-\u000d\u2028]")


def escape_html(value: str, context: str = "text") -> str:
    """
    Escape a string for an HTML text node or a quoted attribute value.

    Examples:
        >>> escape_html("<b>&amp;</b>")
        '&lt;b&gt;&amp;amp;&lt;/b&gt;'
        >>> escape_html("a 'b'", "attr")
        'a &apos;b&apos;'
    """
    if context == "attr":
        return _ATTR_PATTERN.sub(lambda m: _ATTR_ESCAPES[m.group(0)], value)
    return _TEXT_PATTERN.sub(lambda m: _TEXT_ESCAPES[m.group(0)], value)


def attr(value: str) -> str:
    return escape_html(value, "attr")


def html(value: str) -> str:
    return escape_html(value, "text")


def nl2sp(value: str) -> str:
    return _LINE_BREAKS.sub(" ", value)


def decode_path_segment(segment: str) -> str:
    """Decode one URL path segment, keeping encoded slashes visible as "\\/"."""
    return unquote(segment, errors="replace").replace("\\", "\\\\").replace("/", "\\/")


def decode_path_segments(path: str) -> str:
    return "/".join(decode_path_segment(s) for s in path.split("/"))


def _html_template(body: str, title: str = "", base: str = "", icon: str = "") -> str:
    favicon = {"list": FAVICON_LIST, "error": FAVICON_ERROR}.get(icon)
    lines = [
        "<!doctype html>",
        '<html lang="en">',
        "<head>",
        '<meta charset="UTF-8">',
        f"<title>{html(title)}</title>" if title else "",
        f'<base href="{attr(base)}">' if base else "",
        '<meta name="viewport" content="width=device-width">',
    ]
    if favicon:
        data = base64.b64encode(favicon.encode("utf-8")).decode("ascii")
        lines.append(f'<link rel="icon" type="image/svg+xml" href="data:image/svg+xml;base64,{data}">')
    lines += [
        f"<style>{STYLES}</style>",
        "</head>",
        "<body>",
        ICONS,
        body,
        "</body>",
        "</html>",
        "",
    ]
    return "\n".join(lines)


# =============================================================================
# ERROR PAGE
# =============================================================================

# status -> (title, description prefix); no prefix, no description
ERROR_PAGES = {
    400: ("400: Bad request", "Invalid request for"),
    403: ("403: Forbidden", "Could not access"),
    404: ("404: Not found", "Could not find"),
    405: ("405: Method not allowed", None),
    500: ("500: Error", "Could not serve"),
}


def error_page(status: int, url: str, url_path: Optional[str] = None) -> str:
    """
    Render an error page.

    Args:
        status: HTTP status code.
        url: Raw request target, shown when url_path is unknown.
        url_path: Path part of the URL (still percent-encoded).
    """
    if status not in ERROR_PAGES:
        title = "Error"
        return _html_template(
            f"<h1>{html(title)}</h1>\n<p>Something went wrong</p>\n",
            title=title,
            icon="error",
        )

    title, desc = ERROR_PAGES[status]
    display_path = decode_path_segments(url_path if url_path is not None else url)
    path_html = f'<code class="filepath">{html(nl2sp(display_path))}</code>'
    text = f"{desc} {path_html}" if desc else ""
    body = f"<h1>{html(title)}</h1>\n<p>{text}</p>\n"
    return _html_template(body, title=title, icon="error")


# =============================================================================
# DIRECTORY LISTING
# =============================================================================

def dir_list_page(
    root: str,
    url_path: str,
    file_path: str,
    items: Sequence[FSLocation],
    ext: Sequence[str] = (),
) -> str:
    """
    Render a directory listing.

    Args:
        root: Served root directory, its name starts the breadcrumbs.
        url_path: Path part of the request URL (percent-encoded).
        file_path: The listed directory.
        items: Entries as returned by FileResolver.index().
        ext: Configured extensions, stripped from file links.

    Layout:
        ┌──────────────────────────────────────────────┐
        │ Index of site / docs / api                   │
        │                                              │
        │  📁 ../        📁 images/     📄 intro       │
        │  📁 guides/    📄 api.html    📄 notes.md    │
        └──────────────────────────────────────────────┘
    """
    root_name = os.path.basename(trim_slash(root, end=True))
    trimmed_url = trim_slash(trim_slash(url_path, start=True), end=True)
    base_url = f"/{trimmed_url}/" if trimmed_url else "/"

    display_path = decode_path_segments(f"{root_name}/{trimmed_url}" if trimmed_url else root_name)
    parent_path = os.path.dirname(file_path)

    sorted_items: List[FSLocation] = [i for i in items if i.is_dir_like]
    sorted_items += [i for i in items if not i.is_dir_like]
    if trimmed_url:
        sorted_items.insert(0, FSLocation(file_path=parent_path, kind=FSKind.DIR))

    # At least 3 items per CSS column
    max_cols = min(max(math.ceil(len(sorted_items) / 3), 1), 4)

    list_html = "\n".join(
        _render_list_item(item, ext, parent_path if trimmed_url else None)
        for item in sorted_items
    )
    body = (
        "<h1>\n"
        f'\tIndex of <span class="bc">{_render_breadcrumbs(display_path)}</span>\n'
        "</h1>\n"
        f'<ul class="files" style="--max-col-count:{max_cols}">\n'
        f"{list_html}\n"
        "</ul>"
    )
    return _html_template(body, title=f"Index of {display_path}", base=base_url, icon="list")


def _render_list_item(item: FSLocation, ext: Sequence[str], parent_path: Optional[str]) -> str:
    is_dir = item.is_dir_like
    is_parent = is_dir and parent_path is not None and item.file_path == parent_path

    icon = "icon-dir" if is_dir else "icon-file"
    if item.kind == FSKind.LINK:
        icon += "-link"

    name = os.path.basename(item.file_path)
    href = quote(name, safe="-_.!~*'()")
    suffix = ""
    label = ""

    if is_parent:
        name = ".."
        href = "../"
        label = "Parent directory"
    if is_dir:
        suffix = "/"
    else:
        # Clean URLs: drop a configured extension from the link
        match = next((e for e in ext if item.file_path.endswith(e)), None)
        if match:
            href = href[: len(href) - len(match)]

    label_attrs = f' aria-label="{attr(label)}" title="{attr(label)}"' if label else ""
    suffix_html = f"<span>{html(suffix)}</span>" if suffix else ""
    return "".join([
        '<li class="files-item">\n',
        f'<a class="files-link" href="{attr(href)}"{label_attrs}>',
        f'<svg class="files-icon" width="20" height="20"><use xlink:href="#{attr(icon)}"></use></svg>',
        f'<span class="files-name filepath">{html(nl2sp(name))}{suffix_html}</span>',
        "</a>",
        "\n</li>",
    ])


def _render_breadcrumbs(path: str) -> str:
    parts = [p for p in path.split("/") if p]
    crumbs = []
    for index, part in enumerate(parts):
        distance = len(parts) - index - 1
        if distance <= 0:
            crumbs.append(f'<span class="bc-current filepath">{html(nl2sp(part))}</span>')
        else:
            href = "/".join([".."] * distance)
            crumbs.append(f'<a class="bc-link filepath" href="{attr(href)}">{html(nl2sp(part))}</a>')
    return '<span class="bc-sep">/</span>'.join(crumbs)
