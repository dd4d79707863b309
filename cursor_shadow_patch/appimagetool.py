"""Locate or download appimagetool, needed to repack an extracted AppImage."""

from __future__ import annotations

import logging
import os
import platform
import shutil
import stat
import urllib.request
from pathlib import Path
from typing import Callable, Dict, Optional

from .errors import SubprocessMissing

logger = logging.getLogger(__name__)

ENV_APPIMAGETOOL = "CSP_APPIMAGETOOL"
ENV_APPIMAGETOOL_URL = "CSP_APPIMAGETOOL_URL"

TOOL_NAME = "appimagetool"
_DOWNLOADING_NAME = "appimagetool_downloading"

_URL_TEMPLATE = (
    "https://github.com/AppImage/appimagetool/releases/download/continuous/"
    "appimagetool-{arch}.AppImage"
)

Fetch = Callable[[str, float, Dict[str, str]], bytes]
Confirm = Callable[[str], bool]


def default_fetch(url: str, timeout_s: float, headers: Dict[str, str]) -> bytes:
    req = urllib.request.Request(url, headers=headers)
    with urllib.request.urlopen(req, timeout=timeout_s) as resp:
        return resp.read()


def _http_headers() -> Dict[str, str]:
    return {"User-Agent": "cursor-shadow-patch"}


def normalize_arch(machine: str) -> str:
    """Map platform.machine() to appimagetool's release naming."""
    m = (machine or "").lower()
    if m in ("x86_64", "amd64"):
        return "x86_64"
    if m in ("aarch64", "arm64"):
        return "aarch64"
    if m in ("i386", "i686", "x86"):
        return "i686"
    if m.startswith("armv7") or m == "armhf":
        return "armhf"
    return m or "x86_64"


def tool_url(machine: Optional[str] = None) -> str:
    v = os.environ.get(ENV_APPIMAGETOOL_URL)
    if isinstance(v, str) and v.strip():
        return v.strip()
    return _URL_TEMPLATE.format(arch=normalize_arch(machine or platform.machine()))


def find_tool(work_dir: Path, explicit: Optional[str] = None) -> Optional[Path]:
    """Explicit path / env var, then ``<work_dir>/appimagetool``, then PATH."""
    explicit = explicit or os.environ.get(ENV_APPIMAGETOOL)
    if explicit:
        p = Path(explicit).expanduser()
        return p if p.is_file() else None

    local = work_dir / TOOL_NAME
    if local.is_file():
        return local

    which = shutil.which(TOOL_NAME)
    return Path(which) if which else None


def download_tool(
    work_dir: Path,
    *,
    url: Optional[str] = None,
    fetch: Fetch = default_fetch,
    timeout_s: float = 300.0,
) -> Path:
    """Download appimagetool into ``work_dir`` (tmp file + rename)."""
    url = url or tool_url()
    target = work_dir / TOOL_NAME
    partial = work_dir / _DOWNLOADING_NAME
    if partial.exists():
        partial.unlink()

    logger.info("Downloading appimagetool from %s", url)
    try:
        data = fetch(url, timeout_s, _http_headers())
        partial.write_bytes(data)
        st = partial.stat()
        os.chmod(partial, st.st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        os.replace(partial, target)
    except Exception as e:
        if partial.exists():
            partial.unlink()
        raise SubprocessMissing(
            f"appimagetool download failed ({e}); download it manually and save it to {target}",
            url=url,
        ) from e

    logger.info("appimagetool downloaded to %s", target)
    return target


def ensure_tool(
    work_dir: Path,
    *,
    explicit: Optional[str] = None,
    confirm: Optional[Confirm] = None,
    fetch: Fetch = default_fetch,
) -> Path:
    """
    Return a usable appimagetool, downloading it if the operator agrees.

    ``confirm(url)`` decides whether to download; without it nothing is
    fetched. Raises SubprocessMissing when the tool stays unavailable.
    """
    explicit = explicit or os.environ.get(ENV_APPIMAGETOOL)
    found = find_tool(work_dir, explicit)
    if found is not None:
        return found

    url = tool_url()
    if explicit:
        raise SubprocessMissing(f"appimagetool not found at '{explicit}'", url=url)

    logger.warning("appimagetool not found")
    if confirm is None or not confirm(url):
        raise SubprocessMissing(
            f"appimagetool is required to repack the AppImage; "
            f"download it and save it to {work_dir / TOOL_NAME}",
            url=url,
        )
    return download_tool(work_dir, url=url, fetch=fetch)
