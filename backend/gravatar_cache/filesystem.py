"""
Filesystem capability used by the cache store.

Filesystem is the interface the cache depends on; LocalFilesystem is the
implementation backed by the local disk. Mutating operations return
False on failure instead of raising.
"""

import errno
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Protocol, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

DIR_MODE = 0o755


class Filesystem(Protocol):
    """Operations the cache needs from the host filesystem."""

    def mkdir(self, path: PathLike, mode: int = DIR_MODE) -> bool: ...

    def move(self, src: PathLike, dst: PathLike, overwrite: bool = False) -> bool: ...

    def delete(self, path: PathLike, recursive: bool = False) -> bool: ...

    def exists(self, path: PathLike) -> bool: ...


class LocalFilesystem:
    """Filesystem implementation on top of os/shutil."""

    def mkdir(self, path: PathLike, mode: int = DIR_MODE) -> bool:
        try:
            Path(path).mkdir(mode=mode, parents=True, exist_ok=True)
            return True
        except OSError as e:
            logger.error(f"[Filesystem] Failed to create {path}: {e}")
            return False

    def move(self, src: PathLike, dst: PathLike, overwrite: bool = False) -> bool:
        """
        Move src to dst.

        The final path is always written with os.replace, so readers see
        either the old file or the complete new one. Moves across
        devices are staged next to dst first.
        """
        src, dst = Path(src), Path(dst)

        if dst.exists() and not overwrite:
            logger.warning(f"[Filesystem] Refusing to overwrite {dst}")
            return False

        try:
            os.replace(src, dst)
            return True
        except OSError as e:
            if e.errno != errno.EXDEV:
                logger.error(f"[Filesystem] Failed to move {src} -> {dst}: {e}")
                return False

        staging = dst.with_name(f".{dst.name}.{uuid.uuid4().hex[:8]}.part")
        try:
            shutil.copyfile(src, staging)
            os.replace(staging, dst)
            src.unlink()
            return True
        except OSError as e:
            logger.error(f"[Filesystem] Failed to move {src} -> {dst}: {e}")
            staging.unlink(missing_ok=True)
            return False

    def delete(self, path: PathLike, recursive: bool = False) -> bool:
        """Delete a file or directory. A missing path counts as deleted."""
        path = Path(path)

        if not path.exists() and not path.is_symlink():
            return True

        try:
            if path.is_dir() and not path.is_symlink():
                if recursive:
                    shutil.rmtree(path)
                else:
                    path.rmdir()
            else:
                path.unlink()
            return True
        except OSError as e:
            logger.error(f"[Filesystem] Failed to delete {path}: {e}")
            return False

    def exists(self, path: PathLike) -> bool:
        return Path(path).exists()
