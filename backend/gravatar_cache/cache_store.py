"""
Cache Store

Owns the on-disk lifecycle of cached avatars:

cache_dir/
├── 205e460b479e2e5b48aec07710c08d50.jpg
├── 9f86d081884c7d659a2feaa0c55ad015.png
└── ...

Each avatar is stored once as <stem>.<ext>. Files are never updated or
removed individually; the whole folder is wiped by the eviction sweep.
"""

import logging
import posixpath
import re
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

from .filesystem import DIR_MODE, Filesystem, LocalFilesystem

logger = logging.getLogger(__name__)

# Lookup order matters: the first existing file wins
KNOWN_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp", "svg", "bmp", "tiff")

_SPECIAL_CHARS = frozenset(
    "?[]/\\=<>:;,'\"&$#*()|~`!{}%+" "’«»”“" "\x00"
)
_WHITESPACE_RUN = re.compile(r"[\r\n\t -]+")


def sanitize_file_name(name: str) -> str:
    """
    Make a string safe to use as a filename.

    Strips characters that are special in paths, URLs or shells, folds
    whitespace runs into single dashes, removes '..' sequences and trims
    leading/trailing dots, dashes and underscores.
    """
    name = name.replace("\u00a0", " ")
    name = "".join(
        ch for ch in name
        if ch not in _SPECIAL_CHARS and (ch.isprintable() or ch in "\r\n\t")
    )
    name = _WHITESPACE_RUN.sub("-", name)
    while ".." in name:
        name = name.replace("..", ".")
    return name.strip(".-_")


def derive_stem(url: str) -> str:
    """
    Derive the cache filename stem from a remote URL.

    Takes the last segment of the URL path, drops its extension and
    sanitizes what's left. May return an empty string.
    """
    path = urlparse(url).path or ""
    base_name = posixpath.basename(path.rstrip("/"))
    stem, _ext = posixpath.splitext(base_name)
    return sanitize_file_name(stem)


class CacheStore:
    """File-based avatar cache rooted at base_path."""

    def __init__(
        self,
        base_path: Union[str, Path],
        filesystem: Optional[Filesystem] = None,
    ):
        self.base_path = Path(base_path)
        self.filesystem = filesystem or LocalFilesystem()

    def ensure_dir(self) -> bool:
        """Create the cache folder if it doesn't exist."""
        if self.filesystem.exists(self.base_path):
            return True
        logger.info(f"[CacheStore] Creating cache directory: {self.base_path}")
        return self.filesystem.mkdir(self.base_path, DIR_MODE)

    def path_for(self, filename: str) -> Path:
        """Path of a file inside the cache folder."""
        if not filename or posixpath.basename(filename) != filename or filename in (".", ".."):
            raise ValueError(f"Invalid cache filename: {filename!r}")
        return self.base_path / filename

    def exists(self, stem: str) -> Optional[str]:
        """
        Find a cached file for a stem.

        Returns:
            The first existing '<stem>.<ext>' filename, or None.
        """
        for ext in KNOWN_EXTENSIONS:
            filename = f"{stem}.{ext}"
            if self.filesystem.exists(self.path_for(filename)):
                logger.debug(f"[CacheStore] Hit: {filename}")
                return filename
        return None

    def persist(self, temp_path: Union[str, Path], final_name: str) -> bool:
        """
        Move a downloaded file into the cache folder.

        Overwrites any existing file with the exact same name.

        Returns:
            True if the file is in place, False otherwise.
        """
        try:
            target = self.path_for(final_name)
        except ValueError as e:
            logger.error(f"[CacheStore] {e}")
            return False

        if not self.filesystem.move(temp_path, target, True):
            logger.error(f"[CacheStore] Failed to persist {final_name}")
            return False

        logger.info(f"[CacheStore] Stored: {final_name}")
        return True

    def wipe(self, recursive: bool = True) -> bool:
        """
        Delete the whole cache folder, including the folder itself.

        A failure is not fatal: the next scheduled sweep tries again.
        """
        deleted = self.filesystem.delete(self.base_path, recursive)
        if deleted:
            logger.info(f"[CacheStore] Wiped cache directory: {self.base_path}")
        else:
            logger.warning(f"[CacheStore] Could not wipe cache directory: {self.base_path}")
        return deleted
