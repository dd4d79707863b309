"""Fatal error types raised by the patch pipeline."""

from __future__ import annotations

from typing import List, Optional, Sequence


class ShadowPatchError(Exception):
    """Base class: every fatal condition aborts the run with one of these."""


class InputNotFound(ShadowPatchError):
    """A required input path (payload, AppImage, bundle, backup) is missing."""


class UnsupportedPlatform(ShadowPatchError):
    pass


class PatternNotMatched(ShadowPatchError):
    """A required identity patch matched none of its pattern variants."""

    def __init__(self, patch_names: Sequence[str]):
        self.patch_names: List[str] = list(patch_names)
        super().__init__(
            "required pattern(s) not found: " + ", ".join(self.patch_names)
            + " (the Cursor version may be unsupported)"
        )


class SubprocessMissing(ShadowPatchError):
    """An external tool (codesign, appimagetool) is not available."""

    def __init__(self, message: str, *, url: Optional[str] = None):
        self.url = url
        if url:
            message = f"{message}\nLink: {url}"
        super().__init__(message)


class SubprocessFailed(ShadowPatchError):
    """An external tool ran but did not succeed."""

    def __init__(self, step: str, cmd: Sequence[str], detail: str = ""):
        self.step = step
        self.cmd = list(cmd)
        self.detail = detail
        msg = f"{step} failed: {' '.join(self.cmd)}"
        if detail:
            msg += f"\n{detail}"
        super().__init__(msg)


class FileInUse(ShadowPatchError):
    """The final payload write was refused (file locked or read-only)."""

    def __init__(self, path, detail: str = ""):
        self.path = path
        msg = f"file '{path}' is in use or not writable, close it and retry"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class BackupWriteFailed(ShadowPatchError):
    def __init__(self, path, detail: str = ""):
        self.path = path
        msg = f"backup of '{path}' failed"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
