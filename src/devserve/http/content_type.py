"""
=============================================================================
CONTENT-TYPE DETECTION
=============================================================================

Maps file names to MIME types, and falls back to sniffing the first bytes
of a file when the name says nothing useful.

=============================================================================
TWO TABLES: TEXT AND BINARY
=============================================================================

Knowing the exact MIME type matters less than knowing whether a file is
TEXT or BINARY:

    - Text responses get "; charset=UTF-8" so browsers decode them right
    - Text responses are worth compressing with gzip
    - Binary responses must be sent untouched

So each table carries four kinds of hints:

    ┌──────────────────┬───────────────────────────┬─────────────────────┐
    │ Hint             │ TEXT example              │ BIN example         │
    ├──────────────────┼───────────────────────────┼─────────────────────┤
    │ extension_map    │ "css" -> text/css         │ "png" -> image/png  │
    │ extensions       │ "py", "toml" (text/plain) │ "exe" (octet-stream)│
    │ file_names       │ "readme", ".gitignore"    │ -                   │
    │ suffixes         │ "...rc", "...config"      │ -                   │
    └──────────────────┴───────────────────────────┴─────────────────────┘

=============================================================================
SNIFFING MISLABELED FILES
=============================================================================

For "Makefile", "LICENSE.x" or "data.unknown" we read up to 1500 bytes and
apply the WHATWG "mislabeled binary resource" rule:

    1. Starts with a UTF-8 or UTF-16 byte order mark?  -> text
    2. Any "binary data byte" in the first 2000 bytes?  -> binary
    3. Otherwise                                        -> text

    Binary data bytes: 0x00-0x08, 0x0B, 0x0E-0x1A, 0x1C-0x1F
    (tab, LF, FF, CR and ESC are NOT binary)

    https://mimesniff.spec.whatwg.org/#sniffing-a-mislabeled-binary-resource

=============================================================================
"""

import logging
import os
from dataclasses import dataclass
from typing import BinaryIO, FrozenSet, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


SNIFF_BUFFER_SIZE = 1500
SNIFF_LIMIT = 2000

DEFAULT_CHARSET = "UTF-8"


def _words(value: str) -> FrozenSet[str]:
    return frozenset(value.split())


@dataclass(frozen=True)
class TypeMap:
    """One lookup table (text or binary)."""

    default: str
    extension_map: Mapping[str, str]
    extensions: FrozenSet[str] = frozenset()
    file_names: FrozenSet[str] = frozenset()
    suffixes: Tuple[str, ...] = ()


# =============================================================================
# TEXT TYPES
# =============================================================================

TEXT_TYPES = TypeMap(
    default="text/plain",
    extension_map={
        "atom": "application/atom+xml",
        "cjs": "text/javascript",
        "css": "text/css",
        "csv": "text/csv",
        "htm": "text/html",
        "html": "text/html",
        "ics": "text/calendar",
        "js": "text/javascript",
        "json": "application/json",
        "json5": "text/plain",
        "jsonc": "text/plain",
        "jsonld": "application/ld+json",
        "map": "application/json",
        "md": "text/markdown",
        "mdown": "text/markdown",
        "mjs": "text/javascript",
        "rss": "application/rss+xml",
        "sql": "application/sql",
        "svg": "image/svg+xml",
        "text": "text/plain",
        "txt": "text/plain",
        "xhtml": "application/xhtml+xml",
        "xml": "application/xml",
    },
    # Loosely based on the "textextensions" list
    extensions=_words("""
        ada adb ads as ascx asm asmx asp aspx astro atom
        bas bat bbcolors bdsgroup bdsproj bib
        c cbl cc cfc cfg cfm cfml cgi clj cls cmake cmd cnf cob coffee conf cpp cpt cpy crt cs cson csr ctl cxx
        dart dfm diff dof dpk dproj dtd
        eco ejs el emacs eml ent erb erl ex exs
        for fpp frm ftn
        go gpp gradle groovy groupproj grunit gtmpl
        h haml hbs hh hpp hrl hs hta htc hxx
        iced inc ini ino int itcl itk
        jade java jhtm jhtml js jsp jspx jsx
        latex less lhs liquid lisp log ls lsp lua
        m mak markdown mdwn mdx metadata mht mhtml mjs mk mkd mkdn mkdown ml mli mm mxml
        nfm nfo njk noon
        ops pas pasm patch pbxproj pch pem pg php pir pl pm pmc pod pot properties props ps1 pt pug py
        r rake rb rdoc resx rhtml rjs rlib rmd ron rs rst rtf rxml
        s sass scala scm scss sh shtml sls spec sql sqlite ss sss st strings sty styl stylus sub sv svc svelte
        t tcl tex textile tg tmpl toml tpl ts tsv tsx tt tt2 ttml txt
        v vb vbs vh vhd vhdl vim vue
        wxml wxss x-php xaml xht xs xsd xsl xslt
    """),
    file_names=_words("""
        .gitattributes .gitkeep .gitignore .gitmodules
        .htaccess .htpasswd
        .viminfo .vimrc
        changelog license readme
    """),
    suffixes=("config", "file", "html", "ignore", "rc"),
)


# =============================================================================
# BINARY TYPES
# =============================================================================

BIN_TYPES = TypeMap(
    default="application/octet-stream",
    extension_map={
        "7z": "application/x-7z-compressed",
        "aac": "audio/aac",
        "apng": "image/apng",
        "aif": "audio/aiff",
        "aiff": "audio/aiff",
        "avi": "video/x-msvideo",
        "avif": "image/avif",
        "bmp": "image/bmp",
        "bz": "application/x-bzip",
        "bz2": "application/x-bzip2",
        "doc": "application/msword",
        "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "epub": "application/epub+zip",
        "flac": "audio/flac",
        "gif": "image/gif",
        "gzip": "application/gzip",
        "gz": "application/gzip",
        "ico": "image/x-icon",
        "jpg": "image/jpg",
        "jpeg": "image/jpg",
        "jar": "application/zip",
        "jxl": "image/jxl",
        "jxr": "image/jxr",
        "mid": "audio/midi",
        "midi": "audio/midi",
        "mp3": "audio/mpeg",
        "mp4": "video/mp4",
        "mpeg": "video/mpeg",
        "ods": "application/vnd.oasis.opendocument.spreadsheet",
        "odt": "application/vnd.oasis.opendocument.text",
        "oga": "audio/ogg",
        "ogg": "audio/ogg",
        "ogv": "video/ogg",
        "opus": "audio/opus",
        "otf": "font/otf",
        "pdf": "application/pdf",
        "ppt": "application/vnd.ms-powerpoint",
        "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "png": "image/png",
        "rar": "application/vnd.rar",
        "rtf": "application/rtf",
        "tar": "application/x-tar",
        "tif": "image/tiff",
        "tiff": "image/tiff",
        "ttf": "font/ttf",
        "wav": "audio/wav",
        "weba": "audio/webm",
        "webm": "video/webm",
        "webp": "image/webp",
        "woff": "font/woff",
        "woff2": "font/woff2",
        "xls": "application/vnd.ms-excel",
        "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "yaml": "application/yaml",
        "yml": "application/yaml",
        "zip": "application/zip",
    },
    extensions=_words("bin dng exe link pkg msi so"),
)


# =============================================================================
# RESULT TYPE
# =============================================================================

@dataclass(frozen=True)
class TypeResult:
    """
    Outcome of a content-type lookup.

    Attributes:
        group: "text", "bin" or "unknown".
        mime: The MIME type, without parameters.
        charset: Charset announced for text responses.

    str(result) gives the Content-Type header value:
        text/css; charset=UTF-8
        image/png
    """

    group: str = "unknown"
    mime: str = BIN_TYPES.default
    charset: str = DEFAULT_CHARSET

    @classmethod
    def text(cls, mime: Optional[str] = None, charset: str = DEFAULT_CHARSET) -> "TypeResult":
        return cls("text", mime or TEXT_TYPES.default, charset)

    @classmethod
    def bin(cls, mime: Optional[str] = None) -> "TypeResult":
        return cls("bin", mime or BIN_TYPES.default)

    @classmethod
    def unknown(cls) -> "TypeResult":
        return cls("unknown", BIN_TYPES.default)

    @property
    def is_text(self) -> bool:
        return self.group == "text"

    def __str__(self) -> str:
        if self.group == "text":
            suffix = f"; charset={self.charset}" if self.charset else ""
            return f"{self.mime or TEXT_TYPES.default}{suffix}"
        return self.mime or BIN_TYPES.default


# =============================================================================
# LOOKUPS
# =============================================================================

def type_for_file_path(file_path: str) -> TypeResult:
    """
    Classify a file by its name only.

    Examples:
        >>> str(type_for_file_path("style.css"))
        'text/css; charset=UTF-8'
        >>> str(type_for_file_path("photo.JPEG"))
        'image/jpg'
        >>> type_for_file_path(".gitignore").group
        'text'
        >>> type_for_file_path("mystery.xyz").group
        'unknown'
    """
    name = os.path.basename(file_path).lower() if file_path else ""
    ext = os.path.splitext(name)[1][1:] if name else ""

    if ext:
        if ext in TEXT_TYPES.extension_map:
            return TypeResult.text(TEXT_TYPES.extension_map[ext])
        if ext in BIN_TYPES.extension_map:
            return TypeResult.bin(BIN_TYPES.extension_map[ext])
        if ext in TEXT_TYPES.extensions:
            return TypeResult.text()
        if ext in BIN_TYPES.extensions:
            return TypeResult.bin()
    elif name:
        if name in TEXT_TYPES.file_names or any(name.endswith(s) for s in TEXT_TYPES.suffixes):
            return TypeResult.text()

    return TypeResult.unknown()


# 256-entry lookup table of "binary data bytes"
_BINARY_BYTES = bytes(
    1 if (b <= 0x08 or b == 0x0B or 0x0E <= b <= 0x1A or 0x1C <= b <= 0x1F) else 0
    for b in range(256)
)


def is_bin_data_byte(value: int) -> bool:
    return 0 <= value <= 255 and _BINARY_BYTES[value] == 1


def is_bin_header(data: bytes) -> bool:
    """Apply the WHATWG binary-resource rule to the first bytes of a file."""
    if data[:2] in (b"\xfe\xff", b"\xff\xfe") or data[:3] == b"\xef\xbb\xbf":
        return False
    return any(_BINARY_BYTES[b] for b in data[:SNIFF_LIMIT])


def type_for_file(handle: BinaryIO) -> TypeResult:
    """
    Classify an open file by sniffing its first bytes.

    The file position is restored, so the handle can be streamed afterwards.
    """
    try:
        position = handle.tell()
        data = handle.read(SNIFF_BUFFER_SIZE)
        handle.seek(position)
    except OSError as e:
        logger.debug(f"Could not sniff file content: {e}")
        return TypeResult.unknown()

    return TypeResult.bin() if is_bin_header(data) else TypeResult.text()


def get_content_type(path: Optional[str] = None, handle: Optional[BinaryIO] = None) -> TypeResult:
    """
    Best-effort content type: name first, then content.

    Args:
        path: File path or name.
        handle: Open binary file, used only if the name is inconclusive.
    """
    if path:
        result = type_for_file_path(path)
        if result.group != "unknown":
            return result
    if handle is not None:
        return type_for_file(handle)
    return TypeResult.unknown()
