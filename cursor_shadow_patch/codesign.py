"""macOS .app bundles: patch a staged copy, re-sign it, swap it into place."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Optional

from .errors import InputNotFound, ShadowPatchError, SubprocessMissing
from .tools import run_tool

logger = logging.getLogger(__name__)

PAYLOAD_RELPATH = Path("Contents/Resources/app/out/main.js")

_STAGED_SUFFIX = ".tmp"

SIGNED = "signed"
STAGED = "staged"
UNSIGNING = "unsigning"
UNSIGNED = "unsigned"
RESIGNING = "resigning"
RESIGNED = "resigned"
COMMITTED = "committed"
DISCARDED = "discarded"


def find_app_bundle(path: Path) -> Optional[Path]:
    """
    Given a path inside a bundle (e.g. .../Cursor.app/Contents/Resources/app/out/main.js),
    find the enclosing .app directory.
    """
    current = path.absolute()
    # Walk up at most 8 levels
    for _ in range(8):
        if current.name.lower().endswith(".app") and current.is_dir():
            return current
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def payload_in_bundle(bundle: Path) -> Path:
    return bundle / PAYLOAD_RELPATH


def _codesign_bin() -> str:
    codesign_bin = shutil.which("codesign")
    if not codesign_bin:
        raise SubprocessMissing("codesign binary not found (install the Xcode command line tools)")
    return codesign_bin


class AppBundle:
    """
    A signed .app bundle, modified out of place.

    stage() → strip_signature() → (payload patched in staged copy) →
    resign() → commit(). The original bundle is only touched by commit(),
    so any failure before that leaves it as it was.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.state = SIGNED

    @property
    def staged_path(self) -> Path:
        return self.path.with_name(self.path.name + _STAGED_SUFFIX)

    @property
    def staged_payload(self) -> Path:
        return payload_in_bundle(self.staged_path)

    def _require(self, *states: str) -> None:
        if self.state not in states:
            raise ShadowPatchError(
                f"app bundle is {self.state}, expected {' or '.join(states)}"
            )

    def stage(self) -> Path:
        """Copy the bundle to ``<bundle>.tmp``, replacing a stale copy."""
        self._require(SIGNED)
        if not self.path.is_dir():
            raise InputNotFound(f"app bundle '{self.path}' not found")

        staged = self.staged_path
        if staged.exists():
            shutil.rmtree(staged)
        shutil.copytree(self.path, staged, symlinks=True)
        self.state = STAGED
        logger.info("App bundle copied to %s", staged)
        return staged

    def strip_signature(self) -> None:
        self._require(STAGED)
        cmd = [_codesign_bin(), "--remove-signature", self.staged_path]
        self.state = UNSIGNING
        try:
            run_tool(cmd, step="remove app bundle signature")
        except ShadowPatchError:
            self.state = STAGED
            raise
        self.state = UNSIGNED
        logger.info("App bundle signature removed")

    def resign(self) -> None:
        """Apply an ad-hoc signature, enough for local launch policy."""
        self._require(UNSIGNED)
        cmd = [_codesign_bin(), "--force", "--deep", "--sign", "-", self.staged_path]
        self.state = RESIGNING
        try:
            run_tool(cmd, step="re-sign app bundle")
        except ShadowPatchError:
            self.state = UNSIGNED
            raise
        self.state = RESIGNED
        logger.info("App bundle re-signed")

    def commit(self) -> Path:
        """Replace the original bundle with the re-signed copy."""
        self._require(RESIGNED)
        shutil.rmtree(self.path)
        self.staged_path.rename(self.path)
        self.state = COMMITTED
        logger.info("App bundle moved back to %s", self.path)
        return self.path

    def discard(self) -> None:
        """Drop the staged copy; the original bundle is left untouched."""
        if self.state in (COMMITTED, DISCARDED):
            return
        if self.staged_path.exists():
            shutil.rmtree(self.staged_path)
        self.state = DISCARDED


def remove_quarantine(bundle: Path) -> bool:
    """
    Remove the quarantine extended attribute from the .app bundle.

    Prevents the "app downloaded from the internet" prompt after
    re-signing. Uses: xattr -cr <app_path>. Best effort.
    """
    if sys.platform != "darwin":
        return False

    xattr_bin = shutil.which("xattr")
    if not xattr_bin:
        return False

    try:
        subprocess.run(
            [xattr_bin, "-cr", str(bundle)],
            capture_output=True,
            timeout=60,
        )
        return True
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("xattr -cr failed: %s", e)
        return False
