"""
=============================================================================
GZIP COMPRESSION
=============================================================================

Decides when a response is worth compressing, and compresses it, either in
one go (pages built in memory) or chunk by chunk (files streamed from disk).

=============================================================================
WHEN DO WE COMPRESS?
=============================================================================

All four must hold:

    1. gzip is enabled (--gzip, on by default)
    2. The content is TEXT (see content_type.py)
    3. The size is known to be <= MAX_COMPRESS_SIZE, or unknown
    4. The client lists "gzip" in Accept-Encoding

    Accept-Encoding: gzip, deflate, br       -> yes
    Accept-Encoding: GZIP;q=0.8              -> yes (case and params ignored)
    Accept-Encoding: br                      -> no
    (no header)                              -> no

Binary formats (images, video, archives) are already compressed, so
gzipping them burns CPU for nothing.

=============================================================================
STREAMING
=============================================================================

A compressed stream has no size known up front, so the response goes out
with Transfer-Encoding: chunked (HTTP/1.1) instead of Content-Length:

    file chunks ──► zlib.compressobj(wbits=31) ──► gzip chunks ──► socket

wbits=31 (16 + 15) makes zlib write a gzip header and trailer, so the
output is byte-compatible with gzip.compress().

=============================================================================
"""

import gzip
import zlib
from typing import Iterable, Iterator, Optional

from ..config import MAX_COMPRESS_SIZE

GZIP_WBITS = 16 + zlib.MAX_WBITS
DEFAULT_LEVEL = 6


def parse_accept_encoding(value: Optional[str]) -> list:
    """
    Encoding names from an Accept-Encoding header, lowercased, without
    parameters.

    Example:
        >>> parse_accept_encoding("gzip;q=1.0, Br ,identity")
        ['gzip', 'br', 'identity']
    """
    if not value:
        return []
    names = (part.split(";", 1)[0].strip().lower() for part in value.split(","))
    return [name for name in names if name]


def accepts_gzip(accept_encoding: Optional[str]) -> bool:
    return "gzip" in parse_accept_encoding(accept_encoding)


def should_compress(
    accept_encoding: Optional[str],
    is_text: bool,
    size: Optional[int] = None,
) -> bool:
    """
    True if a text body of the given size should be gzipped for a client
    sending this Accept-Encoding header. The gzip option itself is checked
    by the caller.
    """
    if not is_text:
        return False
    if size is not None and size > MAX_COMPRESS_SIZE:
        return False
    return accepts_gzip(accept_encoding)


def gzip_bytes(data: bytes, level: int = DEFAULT_LEVEL) -> bytes:
    """Compress a complete in-memory body."""
    return gzip.compress(data, compresslevel=level)


def gzip_chunks(chunks: Iterable[bytes], level: int = DEFAULT_LEVEL) -> Iterator[bytes]:
    """
    Gzip a stream of chunks lazily.

    Empty output pieces are skipped, since an empty chunk would end a
    chunked response early. The source iterator is closed when this
    generator is closed.
    """
    compressor = zlib.compressobj(level, zlib.DEFLATED, GZIP_WBITS)
    try:
        for chunk in chunks:
            data = compressor.compress(chunk)
            if data:
                yield data
        tail = compressor.flush()
        if tail:
            yield tail
    finally:
        close = getattr(chunks, "close", None)
        if close is not None:
            close()
