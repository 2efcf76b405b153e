"""
Filesystem lookups.

Thin wrappers around lstat, scandir, realpath and access that never raise:
anything that goes wrong becomes a None kind, an empty list or False. The
resolver relies on this to turn every filesystem problem into a 404.
"""

import errno
import logging
import os
import stat
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

logger = logging.getLogger(__name__)


class FSKind(str, Enum):
    """Kind of a filesystem entry. A missing entry has kind None."""

    FILE = "file"
    DIR = "dir"
    LINK = "link"


@dataclass
class FSLocation:
    """
    A path on disk and what lives there.

    Attributes:
        file_path: Absolute path.
        kind: FSKind, or None if nothing (accessible) is there.
        target: For symlinks, the resolved location, when it is a file or
                directory under the served root.
    """

    file_path: str
    kind: Optional[FSKind]
    target: Optional["FSLocation"] = None

    @property
    def effective(self) -> "FSLocation":
        """The symlink target if there is one, else this location."""
        return self.target if self.target is not None else self

    @property
    def is_dir_like(self) -> bool:
        return self.kind == FSKind.DIR or (
            self.kind == FSKind.LINK and self.target is not None and self.target.kind == FSKind.DIR
        )


# ─────────────────────────────────────────────────────────────────────────────
# KIND LOOKUPS
# ─────────────────────────────────────────────────────────────────────────────

def stats_kind(mode: int) -> Optional[FSKind]:
    """Kind from an lstat() st_mode. Symlinks win over what they point to."""
    if stat.S_ISLNK(mode):
        return FSKind.LINK
    if stat.S_ISDIR(mode):
        return FSKind.DIR
    if stat.S_ISREG(mode):
        return FSKind.FILE
    return None


def get_kind(file_path: str) -> Optional[FSKind]:
    try:
        return stats_kind(os.lstat(file_path).st_mode)
    except (OSError, ValueError):
        return None


def _entry_kind(entry: os.DirEntry) -> Optional[FSKind]:
    try:
        if entry.is_symlink():
            return FSKind.LINK
        if entry.is_dir(follow_symlinks=False):
            return FSKind.DIR
        if entry.is_file(follow_symlinks=False):
            return FSKind.FILE
    except OSError:
        pass
    return None


def get_index(dir_path: str) -> List[FSLocation]:
    """Immediate children of a directory, unsorted. Errors give []."""
    try:
        with os.scandir(dir_path) as entries:
            return [
                FSLocation(file_path=os.path.join(dir_path, entry.name), kind=_entry_kind(entry))
                for entry in entries
            ]
    except OSError as e:
        logger.debug(f"Cannot list {dir_path}: {e}")
        return []


def get_realpath(file_path: str) -> Optional[str]:
    """Canonical path with every symlink resolved, or None if broken."""
    try:
        return os.path.realpath(file_path, strict=True)
    except (OSError, ValueError):
        return None


def is_readable(file_path: str, kind: Optional[FSKind] = None) -> bool:
    """
    Check read access. Directories also need execute (search) permission
    so their entries can be reached.
    """
    if kind is None:
        kind = get_kind(file_path)
    if kind is None:
        return False
    mode = os.R_OK | os.X_OK if kind == FSKind.DIR else os.R_OK
    try:
        return os.access(file_path, mode)
    except (OSError, ValueError):
        return False


def check_dir_access(dir_path: str) -> Optional[str]:
    """
    Verify that a directory can be served.

    Returns:
        None if it can, else a user-facing error message.
    """
    try:
        if not stat.S_ISDIR(os.stat(dir_path).st_mode):
            return f"not a directory: {dir_path}"
    except FileNotFoundError:
        return f"not a directory: {dir_path}"
    except PermissionError:
        return f"permission denied: {dir_path}"
    except OSError as e:
        if e.errno == errno.ENOTDIR:
            return f"not a directory: {dir_path}"
        return str(e)

    if not os.access(dir_path, os.R_OK | os.X_OK):
        return f"permission denied: {dir_path}"
    return None


# ─────────────────────────────────────────────────────────────────────────────
# PATH CONTAINMENT
# ─────────────────────────────────────────────────────────────────────────────

def trim_slash(value: str, start: bool = False, end: bool = False) -> str:
    """Remove ONE leading and/or trailing slash (either separator style)."""
    if start and value[:1] in ("/", "\\"):
        value = value[1:]
    if end and value[-1:] in ("/", "\\"):
        value = value[:-1]
    return value


def fwd_slash(value: str) -> str:
    """Backslashes to forward slashes, with runs of slashes collapsed."""
    value = value.replace("\\", "/")
    while "//" in value:
        value = value.replace("//", "/")
    return value


def is_subpath(parent: str, file_path: str) -> bool:
    """
    True if file_path is parent itself or lives below it.

    Any ".." anywhere in file_path is refused outright, as are relative
    paths. No normalisation happens here, so callers cannot be tricked by
    "/srv/site/../etc".
    """
    if ".." in file_path or not os.path.isabs(file_path):
        return False
    parent = trim_slash(parent, end=True)
    return file_path == parent or file_path.startswith(parent + os.sep)


def get_local_path(root: str, file_path: str) -> Optional[str]:
    """
    Path relative to root, without leading/trailing separators.

    Example:
        get_local_path("/srv/site", "/srv/site/blog/index.html")
        -> "blog/index.html"
    """
    if is_subpath(root, file_path):
        root = trim_slash(root, end=True)
        return trim_slash(file_path[len(root):], start=True, end=True)
    return None
