"""Backup and restore for patched files and containers (<path>.bak)."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from .errors import BackupWriteFailed, InputNotFound

logger = logging.getLogger(__name__)

_BACKUP_SUFFIX = ".bak"


def backup_path(original: Path) -> Path:
    """Return the backup path for a given file or directory."""
    return original.with_name(original.name + _BACKUP_SUFFIX)


def has_backup(original: Path) -> bool:
    """Check if a backup exists for the given path."""
    return backup_path(original).exists()


def _copy(src: Path, dst: Path) -> None:
    """Copy a file (bytes + mode) or a directory tree (symlinks kept) over ``dst``."""
    if dst.is_dir() and not dst.is_symlink():
        shutil.rmtree(dst)
    elif dst.exists() or dst.is_symlink():
        dst.unlink()

    if src.is_dir():
        shutil.copytree(src, dst, symlinks=True)
        return

    shutil.copyfile(src, dst)
    # Preserve permissions
    try:
        os.chmod(dst, src.stat().st_mode)
    except OSError:
        pass


def ensure_backup(original: Path, force: bool = False) -> Path:
    """
    Make sure ``<original>.bak`` exists before a destructive write.

    An existing backup is left untouched unless ``force`` is set, in which
    case it is refreshed from the current content. Raises BackupWriteFailed
    if the copy cannot be made.
    """
    bak = backup_path(original)
    if bak.exists() and not force:
        logger.info("Backup '%s' already exists, keeping it", bak.name)
        return bak

    if not original.exists():
        raise BackupWriteFailed(original, "source does not exist")

    refreshing = bak.exists()
    try:
        _copy(original, bak)
    except OSError as e:
        raise BackupWriteFailed(original, str(e)) from e

    logger.info("%s backup: '%s'", "Updated" if refreshing else "Created", bak.name)
    return bak


def restore_backup(original: Path) -> Path:
    """
    Restore ``original`` from its backup. The backup itself is kept.

    Raises InputNotFound if there is no backup.
    """
    bak = backup_path(original)
    if not bak.exists():
        raise InputNotFound(f"no backup found at '{bak}'")
    _copy(bak, original)
    logger.info("Restored '%s' from '%s'", original, bak.name)
    return original
