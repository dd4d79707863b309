"""Linux AppImages: extract, expose main.js, repack over the original."""

from __future__ import annotations

import logging
import os
import platform
import shutil
import stat
from pathlib import Path
from typing import Optional

from .appimagetool import normalize_arch
from .errors import InputNotFound, ShadowPatchError
from .tools import run_tool

logger = logging.getLogger(__name__)

EXTRACT_DIR_NAME = "squashfs-root"

# Known payload locations inside the extracted tree, first match wins.
PAYLOAD_RELPATHS = (
    Path("resources/app/out/main.js"),
    Path("usr/share/cursor/resources/app/out/main.js"),
)

SEALED = "sealed"
UNSEALING = "unsealing"
UNSEALED = "unsealed"
RESEALING = "resealing"
DISCARDED = "discarded"


def _make_executable(path: Path) -> None:
    st = path.stat()
    os.chmod(path, st.st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


class AppImage:
    """
    A self-extracting AppImage.

    unseal() runs ``--appimage-extract`` into ``<work_dir>/squashfs-root``;
    reseal() rebuilds the AppImage at its original path from that tree with
    appimagetool and removes the tree.
    """

    def __init__(self, path: Path, work_dir: Optional[Path] = None):
        self.path = Path(path)
        self.work_dir = Path(work_dir) if work_dir is not None else Path.cwd()
        self.state = SEALED

    @property
    def tree(self) -> Path:
        return self.work_dir / EXTRACT_DIR_NAME

    def unseal(self) -> Path:
        """Extract the AppImage. Returns the extracted tree root."""
        if self.state != SEALED:
            raise ShadowPatchError(f"AppImage is {self.state}, expected {SEALED}")
        if not self.path.is_file():
            raise InputNotFound(f"AppImage '{self.path}' not found")

        self.work_dir.mkdir(parents=True, exist_ok=True)
        # A tree left over from an interrupted run is not reusable.
        if self.tree.exists():
            shutil.rmtree(self.tree)

        local = self.work_dir / self.path.name
        copied = local.absolute() != self.path.absolute()
        if copied:
            shutil.copyfile(self.path, local)

        self.state = UNSEALING
        try:
            _make_executable(local)
            run_tool(
                [local.absolute(), "--appimage-extract"],
                step="extract AppImage",
                cwd=self.work_dir,
            )
        except (ShadowPatchError, OSError):
            self.state = SEALED
            raise
        finally:
            if copied and local.exists():
                local.unlink()

        if not self.tree.is_dir():
            self.state = SEALED
            raise ShadowPatchError(f"AppImage extraction produced no {EXTRACT_DIR_NAME} directory")

        self.state = UNSEALED
        logger.info("AppImage extracted -> %s", self.tree)
        return self.tree

    def locate_payload(self) -> Path:
        """Return the first known main.js location present in the tree."""
        for rel in PAYLOAD_RELPATHS:
            candidate = self.tree / rel
            if candidate.is_file():
                return candidate
        raise InputNotFound(f"main.js not found in {self.tree}")

    def reseal(self, tool: Path) -> Path:
        """Repack the tree over the original AppImage (already backed up)."""
        if self.state != UNSEALED:
            raise ShadowPatchError(f"AppImage is {self.state}, expected {UNSEALED}")

        env = dict(os.environ)
        env.setdefault("ARCH", normalize_arch(platform.machine()))
        self.state = RESEALING
        try:
            run_tool(
                [Path(tool).absolute(), self.tree, self.path.absolute()],
                step="repack AppImage",
                cwd=self.work_dir,
                env=env,
            )
        except ShadowPatchError:
            self.state = UNSEALED
            raise
        logger.info("AppImage repacked, overwrote %s (backup: %s.bak)", self.path, self.path.name)

        shutil.rmtree(self.tree)
        self.state = SEALED
        logger.info("Removed temporary directory %s", self.tree)
        return self.path

    def discard(self) -> None:
        """Remove the extracted tree without repacking."""
        if self.tree.exists():
            shutil.rmtree(self.tree)
        self.state = DISCARDED
