"""Platform detection and discovery of Cursor's main.js / AppImage."""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path
from typing import List, Optional

from .errors import UnsupportedPlatform

ENV_PLATFORM = "CSP_PLATFORM"
ENV_PAYLOAD = "CSP_PAYLOAD"
ENV_APPIMAGE = "CSP_APPIMAGE"
ENV_WORK_DIR = "CSP_WORK_DIR"

WINDOWS = "Windows"
DARWIN = "Darwin"
LINUX = "Linux"
PLATFORMS = (WINDOWS, DARWIN, LINUX)

_SYS_PLATFORMS = {"win32": WINDOWS, "darwin": DARWIN, "linux": LINUX}

# cursor-1.2.3-x86_64.AppImage, Cursor.AppImage; not cursorless.AppImage
_RE_CURSOR_APPIMAGE = re.compile(r"^cursor(?![a-z]).*\.appimage$", re.IGNORECASE)

_PAYLOAD_IN_APP = Path("out/main.js")


def normalize_platform(tag: str) -> str:
    """Return the canonical platform tag or raise UnsupportedPlatform."""
    low = (tag or "").strip().lower()
    for p in PLATFORMS:
        if low == p.lower():
            return p
    if low in _SYS_PLATFORMS:
        return _SYS_PLATFORMS[low]
    if low == "macos":
        return DARWIN
    raise UnsupportedPlatform(f"unsupported operating system: {tag!r}")


def current_platform() -> str:
    """Detect the platform (CSP_PLATFORM overrides sys.platform)."""
    override = os.environ.get(ENV_PLATFORM)
    if override:
        return normalize_platform(override)
    for prefix, tag in _SYS_PLATFORMS.items():
        if sys.platform.startswith(prefix):
            return tag
    raise UnsupportedPlatform(f"unsupported operating system: {sys.platform!r}")


def resolve_user_path(raw: Optional[str]) -> Optional[Path]:
    """Normalise a path typed or pasted by the user (quotes, ~, relative)."""
    if raw is None:
        return None
    s = raw.strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        s = s[1:-1].strip()
    if not s:
        return None
    return Path(s).expanduser().absolute()


def default_work_dir() -> Path:
    v = os.environ.get(ENV_WORK_DIR)
    if isinstance(v, str) and v.strip():
        return Path(v).expanduser().absolute()
    return Path.cwd()


def _appimage_search_dirs() -> List[Path]:
    home = Path.home()
    dirs = [
        Path("/usr/local/bin"),
        Path("/opt"),
        home / "Applications",
        home / ".local/bin",
        home / "Downloads",
        home / "Desktop",
        home,
        Path("."),
    ]
    for entry in os.environ.get("PATH", "").split(os.pathsep):
        if entry:
            dirs.append(Path(entry))
    return dirs


def find_appimage() -> Optional[Path]:
    """Look for a Cursor AppImage in the usual download/install places."""
    explicit = os.environ.get(ENV_APPIMAGE)
    if explicit:
        p = resolve_user_path(explicit)
        return p if p is not None and p.is_file() else None

    for d in _appimage_search_dirs():
        try:
            children = sorted(d.iterdir())
        except OSError:
            continue
        for child in children:
            if _RE_CURSOR_APPIMAGE.match(child.name) and child.is_file():
                return child.absolute()
    return None


def _app_candidates(platform_tag: str) -> List[Path]:
    """Candidate ``resources/app`` directories for the platform."""
    candidates: List[Path] = []
    if platform_tag == WINDOWS:
        local = os.environ.get("LOCALAPPDATA")
        if local:
            candidates.append(Path(local) / "Programs" / "cursor" / "resources" / "app")
    elif platform_tag == DARWIN:
        candidates.extend([
            Path("/Applications/Cursor.app/Contents/Resources/app"),
            Path.home() / "Applications/Cursor.app/Contents/Resources/app",
        ])
    return candidates


def _app_from_path_launcher() -> Optional[Path]:
    """A ``cursor`` launcher on PATH lives in ``<app>/bin``; return ``<app>``."""
    for entry in os.environ.get("PATH", "").split(os.pathsep):
        if not entry:
            continue
        bin_dir = Path(entry)
        for name in ("cursor", "cursor.cmd", "cursor.exe"):
            if (bin_dir / name).exists():
                app = bin_dir.parent
                if (app / _PAYLOAD_IN_APP).is_file():
                    return app
    return None


def payload_from_env() -> Optional[Path]:
    """The main.js path set in $CSP_PAYLOAD, if any."""
    return resolve_user_path(os.environ.get(ENV_PAYLOAD) or None)


def find_payload(platform_tag: str) -> Optional[Path]:
    """Locate main.js for an installed (non-AppImage) Cursor."""
    explicit = payload_from_env()
    if explicit is not None:
        return explicit if explicit.is_file() else None

    for app in _app_candidates(platform_tag):
        if (app / _PAYLOAD_IN_APP).is_file():
            return app / _PAYLOAD_IN_APP

    app = _app_from_path_launcher()
    if app is not None:
        return app / _PAYLOAD_IN_APP
    return None
