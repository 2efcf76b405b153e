"""
=============================================================================
DEVSERVE - Local HTTP Server for Static Files
=============================================================================

Serves a directory over HTTP/1.1 for local development, with the behavior
people expect from a static host:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   /blog/hello        → blog/hello.html   (extension fallback)       │
    │   /docs/             → docs/index.html   (directory index)          │
    │   /assets/           → file listing      (no index file)            │
    │   /.env              → 404               (excluded by pattern)      │
    │   /docs              → 307 /docs/        (trailing slash policy)    │
    │   text files         → gzip              (when the client allows)   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Nothing outside the served directory is ever readable, symlinks included.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    devserve/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # python -m devserve
    ├── cli.py               # Argument parsing, banner, exit codes
    ├── config.py            # ServerOptions dataclass and validators
    ├── server.py            # StaticServer: wires everything together
    ├── logger.py            # Access log lines, colors, logging setup
    ├── resolver.py          # URL path → file, index, listing
    ├── fs_utils.py          # Filesystem lookups and path containment
    ├── path_matcher.py      # Exclude / include segment globs
    ├── pages.py             # Error and directory listing pages
    ├── assets.py            # Inline CSS and SVG icons
    ├── core/                # Sockets and threads
    ├── http/                # Request parsing, responses, content types
    └── handlers/            # RequestHandler: one request, start to end

=============================================================================
QUICK START
=============================================================================

    from devserve import ServerOptions, StaticServer

    server = StaticServer(ServerOptions(root="/srv/site", ports=(8000,)))
    server.run()

    $ devserve ./site --port 8000

=============================================================================
"""

__version__ = "1.0.0"

from .config import HeaderRule, OptionsError, ServerOptions, TrailingSlash
from .core import PortsInUseError
from .handlers import RequestHandler, RequestMeta
from .resolver import FileResolver
from .server import StaticServer

__all__ = [
    "StaticServer",
    "ServerOptions",
    "HeaderRule",
    "TrailingSlash",
    "OptionsError",
    "PortsInUseError",
    "FileResolver",
    "RequestHandler",
    "RequestMeta",
    "__version__",
]
