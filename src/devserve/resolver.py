"""
=============================================================================
URL TO FILE RESOLUTION
=============================================================================

FileResolver turns the path of a URL into something on disk, and decides
whether it may be served.

=============================================================================
LOOKUP ORDER
=============================================================================

    GET /docs/guide

        /srv/site/docs/guide          exists?
            │
            ├── it's a directory  →  try each --dir-file name inside it
            │                          /srv/site/docs/guide/index.html
            │
            ├── it's missing      →  try each --ext suffix
            │                          /srv/site/docs/guide.html
            │
            └── otherwise         →  use it as-is

        then, if the result is a symlink, follow it (only into the root)

=============================================================================
STATUS DECISION
=============================================================================

    ┌───────────────────────────────────────────────┬────────┐
    │ Situation                                     │ Status │
    ├───────────────────────────────────────────────┼────────┤
    │ outside root, missing, not a file or dir      │ 404    │
    │ excluded by pattern, or dir with --no-list    │ 404    │
    │ found but not readable                        │ 403    │
    │ found and readable                            │ 200    │
    └───────────────────────────────────────────────┴────────┘

Excluded files get a 404 rather than a 403 on purpose: a 403 would tell
the client that ".env" exists.

=============================================================================
"""

import logging
import os
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .config import ServerOptions
from .fs_utils import (
    FSKind,
    FSLocation,
    get_index,
    get_kind,
    get_local_path,
    get_realpath,
    is_readable,
    is_subpath,
    trim_slash,
)
from .path_matcher import PathMatcher

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    """Result of FileResolver.find()."""

    status: int
    file: Optional[FSLocation]


class FileResolver:
    """
    Maps URL paths to filesystem locations under a root directory.

    Shared by all worker threads. It holds no mutable state after
    construction.

    Usage:
        resolver = FileResolver(options)
        result = resolver.find("/docs/guide")
        if result.status == 200:
            serve(result.file.effective.file_path)
    """

    def __init__(self, options: ServerOptions):
        root = options.root
        if not isinstance(root, str) or not root:
            raise ValueError("Missing root directory")
        if not os.path.isabs(root):
            raise ValueError("Expected absolute root path")

        self.root = trim_slash(root, end=True)
        self.ext = tuple(options.ext)
        self.index_names = tuple(options.index)
        self.list = bool(options.list)

        self._exclude_matcher: Optional[PathMatcher] = None
        if options.exclude:
            self._exclude_matcher = PathMatcher(options.exclude, case_sensitive=True)

    # =========================================================================
    # ACCESS RULES
    # =========================================================================

    def within_root(self, file_path: str) -> bool:
        return is_subpath(self.root, file_path)

    def allowed_path(self, file_path: str) -> bool:
        """True if file_path is under root and not excluded."""
        local_path = get_local_path(self.root, file_path)
        if local_path is None:
            return False
        if self._exclude_matcher is None:
            return True
        return not self._exclude_matcher.test(local_path)

    def resolve_path(self, url_path: str) -> Optional[str]:
        """
        Join a (decoded) URL path onto root.

        Returns:
            Absolute path without trailing separator, or None if the result
            would fall outside root.
        """
        parts = [p for p in url_path.replace("\\", "/").split("/") if p and p != "."]
        file_path = os.path.join(self.root or os.sep, *parts) if parts else (self.root or os.sep)
        if not self.within_root(file_path):
            return None
        return trim_slash(file_path, end=True) if len(file_path) > 1 else file_path

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def _locate_alt_file(self, file_paths: Iterable[str]) -> Optional[FSLocation]:
        for file_path in file_paths:
            if not self.within_root(file_path):
                continue
            kind = get_kind(file_path)
            if kind in (FSKind.FILE, FSKind.LINK):
                return FSLocation(file_path=file_path, kind=kind)
        return None

    def locate_file(self, file_path: str) -> FSLocation:
        """
        Find what can be served for file_path, applying the index-file and
        extension fallbacks.
        """
        if not self.within_root(file_path):
            return FSLocation(file_path=file_path, kind=None)

        kind = get_kind(file_path)

        if kind == FSKind.DIR and self.index_names:
            match = self._locate_alt_file(os.path.join(file_path, name) for name in self.index_names)
            if match is not None:
                return match
        elif kind is None and self.ext:
            match = self._locate_alt_file(file_path + ext for ext in self.ext)
            if match is not None:
                return match

        return FSLocation(file_path=file_path, kind=kind)

    def find(self, url_path: str) -> Resolution:
        """
        Resolve a decoded URL path to a servable location and a status.

        The returned file may be set even for a 404 (excluded files), so the
        request log can show what was matched.
        """
        target_path = self.resolve_path(url_path)
        file = self.locate_file(target_path) if target_path is not None else None

        if file is not None and file.kind == FSKind.LINK:
            real_path = get_realpath(file.file_path)
            target = self.locate_file(real_path) if real_path is not None else None
            if target is not None and target.kind in (FSKind.FILE, FSKind.DIR):
                file.target = target

        real = file.effective if file is not None else None
        if real is None or real.kind not in (FSKind.FILE, FSKind.DIR):
            return Resolution(status=404, file=None)

        if real.kind == FSKind.DIR and not self.list:
            allowed = False
        else:
            allowed = self.allowed_path(real.file_path)

        if not allowed:
            return Resolution(status=404, file=file)
        if not is_readable(real.file_path, real.kind):
            return Resolution(status=403, file=file)
        return Resolution(status=200, file=file)

    def index(self, dir_path: str) -> List[FSLocation]:
        """
        Directory entries that may be listed, sorted by path, with symlink
        targets attached when they stay under root.
        """
        if not self.list:
            return []

        items = [
            item for item in get_index(dir_path)
            if item.kind is not None and self.allowed_path(item.file_path)
        ]
        items.sort(key=lambda item: item.file_path)

        for item in items:
            if item.kind == FSKind.LINK:
                real_path = get_realpath(item.file_path)
                if real_path is not None and self.within_root(real_path):
                    item.target = FSLocation(file_path=real_path, kind=get_kind(real_path))
        return items
