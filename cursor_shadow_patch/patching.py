"""Patch pipeline: open container, rewrite main.js, back up, write, reseal."""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from . import backup as bak
from .appimage import AppImage
from .appimagetool import Confirm, Fetch, default_fetch, ensure_tool
from .codesign import AppBundle, find_app_bundle, payload_in_bundle, remove_quarantine
from .discovery import (
    DARWIN,
    LINUX,
    WINDOWS,
    current_platform,
    default_work_dir,
    find_appimage,
    find_payload,
    normalize_platform,
    payload_from_env,
)
from .engine import apply_all, is_patched, read_marker_value
from .errors import FileInUse, InputNotFound, PatternNotMatched
from .patches import all_patches
from .patches.base import check_value
from .report import PatchReport, PatchStatus, StatusReport

logger = logging.getLogger(__name__)


def resolve_values(given: Optional[Mapping[str, Optional[str]]] = None) -> Dict[str, str]:
    """
    One value per patch: the caller's when given (validated), else generated.

    An explicit empty string is kept as is.
    """
    given = given or {}
    unknown = set(given) - {p.name for p in all_patches()}
    if unknown:
        raise ValueError(f"Unknown patch value(s): {', '.join(sorted(unknown))}")

    values: Dict[str, str] = {}
    for p in all_patches():
        v = given.get(p.name)
        values[p.name] = check_value(v) if v is not None else p.generate()
    return values


@dataclass
class PatchRun:
    """State threaded through the pipeline steps of one run."""
    platform: str
    work_dir: Path
    payload: Optional[Path] = None
    appimage: Optional[AppImage] = None
    bundle: Optional[AppBundle] = None
    content: str = ""
    new_content: str = ""
    report: PatchReport = field(default_factory=PatchReport)

    @property
    def container_path(self) -> Optional[Path]:
        if self.appimage is not None:
            return self.appimage.path
        if self.bundle is not None:
            return self.bundle.path
        return None


def _require_payload(run: PatchRun) -> Path:
    if run.payload is None:
        raise InputNotFound("Cursor main.js not found, pass its path with --payload")
    return run.payload


def _read_text(path: Path) -> str:
    # Binary read keeps bytes exact (no newline translation, no lossy decode).
    try:
        return path.read_bytes().decode("utf-8", errors="surrogateescape")
    except FileNotFoundError as e:
        raise InputNotFound(f"file '{path}' does not exist") from e


def _start(
    platform: Optional[str],
    payload: Optional[Path],
    appimage: Optional[Path],
    work_dir: Optional[Path],
) -> PatchRun:
    """Validate inputs: explicit > environment > discovery."""
    tag = normalize_platform(platform) if platform else current_platform()
    run = PatchRun(platform=tag, work_dir=Path(work_dir) if work_dir else default_work_dir())

    if tag == LINUX and payload is None and appimage is None:
        payload = payload_from_env()
    if tag == LINUX and payload is None:
        found = Path(appimage) if appimage is not None else find_appimage()
        if found is None:
            raise InputNotFound("Cursor AppImage not found, pass its path with --appimage")
        if not found.is_file():
            raise InputNotFound(f"AppImage '{found}' does not exist")
        run.appimage = AppImage(found, run.work_dir)
        return run

    found = Path(payload) if payload is not None else find_payload(tag)
    if found is None:
        raise InputNotFound("Cursor main.js not found, pass its path with --payload")
    if not found.is_file():
        raise InputNotFound(f"file '{found}' does not exist")
    run.payload = found

    if tag == DARWIN:
        bundle = find_app_bundle(found)
        if bundle is not None:
            run.bundle = AppBundle(bundle)
    return run


def _open_container(run: PatchRun) -> None:
    if run.appimage is not None:
        run.appimage.unseal()
        run.payload = run.appimage.locate_payload()
    run.report.container = run.container_path
    run.report.payload = run.payload


def _rewrite(run: PatchRun, values: Mapping[str, str]) -> None:
    """Read main.js and run every identity patch over it in memory."""
    payload = _require_payload(run)
    run.content = _read_text(payload)
    run.report.already_patched = is_patched(run.content)
    if run.report.already_patched:
        logger.info("%s already contains patch markers, re-patching", payload.name)

    run.report.values = dict(values)
    try:
        run.new_content, run.report.outcomes = apply_all(run.content, values)
    except PatternNotMatched:
        _abandon(run)
        raise


def _abandon(run: PatchRun) -> None:
    """Drop working copies; originals have not been touched yet."""
    if run.appimage is not None:
        run.appimage.discard()


def _make_writable(path: Path) -> None:
    try:
        os.chmod(path, os.stat(path).st_mode | stat.S_IWRITE | stat.S_IREAD)
    except OSError as e:
        logger.debug("could not clear read-only flag on %s: %s", path, e)


def _prepare_write(run: PatchRun) -> None:
    """Make the payload writable: stage + unsign on macOS, clear read-only on Windows."""
    force = run.report.already_patched
    if run.bundle is not None:
        run.report.backups.append(bak.ensure_backup(run.bundle.path, force=force))
        run.bundle.stage()
        run.bundle.strip_signature()
        run.payload = run.bundle.staged_payload
    elif run.platform == WINDOWS:
        payload = _require_payload(run)
        _make_writable(payload.parent)
        _make_writable(payload)


def _write_payload(run: PatchRun) -> None:
    path = _require_payload(run)
    run.report.backups.append(bak.ensure_backup(path, force=run.report.already_patched))

    logger.info("Saving %s", path)
    try:
        mode = path.stat().st_mode
        path.write_bytes(run.new_content.encode("utf-8", errors="surrogateescape"))
        os.chmod(path, mode)
    except OSError as e:
        raise FileInUse(path, str(e)) from e
    run.report.written = True


def _reseal(
    run: PatchRun,
    *,
    tool: Optional[str],
    confirm_download: Optional[Confirm],
    fetch: Fetch,
) -> None:
    if run.bundle is not None:
        run.bundle.resign()
        run.bundle.commit()
        staged = run.bundle.staged_path
        run.report.backups = [
            run.bundle.path / b.relative_to(staged) if staged in b.parents else b
            for b in run.report.backups
        ]
        remove_quarantine(run.bundle.path)
        run.report.resealed = True
        run.report.payload = payload_in_bundle(run.bundle.path)
    elif run.appimage is not None:
        tool_path = ensure_tool(run.work_dir, explicit=tool, confirm=confirm_download, fetch=fetch)
        run.report.backups.append(
            bak.ensure_backup(run.appimage.path, force=run.report.already_patched)
        )
        run.appimage.reseal(tool_path)
        run.report.resealed = True


def patch(
    *,
    platform: Optional[str] = None,
    payload: Optional[Path] = None,
    appimage: Optional[Path] = None,
    values: Optional[Mapping[str, Optional[str]]] = None,
    work_dir: Optional[Path] = None,
    dry_run: bool = False,
    tool: Optional[str] = None,
    confirm_download: Optional[Confirm] = None,
    fetch: Fetch = default_fetch,
) -> PatchReport:
    """
    Patch Cursor's main.js and reseal its container.

    Args:
        platform: Platform tag (Windows/Darwin/Linux); detected if None.
        payload: Explicit main.js path (Windows/macOS, or an unpacked Linux install).
        appimage: Explicit AppImage path (Linux).
        values: Replacement values by patch name; missing ones are generated.
        work_dir: Where the AppImage is extracted and appimagetool looked up.
        dry_run: Report outcomes without writing anything.
        tool: Explicit appimagetool path.
        confirm_download: Asked before downloading appimagetool; None never downloads.

    Fatal conditions raise ShadowPatchError subclasses. Patterns that are
    not found are reported in the returned PatchReport.
    """
    resolved = resolve_values(values)
    run = _start(platform, payload, appimage, work_dir)
    run.report.platform = run.platform
    run.report.dry_run = dry_run

    _open_container(run)
    _rewrite(run, resolved)

    if dry_run:
        _abandon(run)
        return run.report

    _prepare_write(run)
    _write_payload(run)
    _reseal(run, tool=tool, confirm_download=confirm_download, fetch=fetch)
    return run.report


def status(
    *,
    platform: Optional[str] = None,
    payload: Optional[Path] = None,
    appimage: Optional[Path] = None,
    work_dir: Optional[Path] = None,
) -> StatusReport:
    """Report which identity patches are present and their stored values."""
    run = _start(platform, payload, appimage, work_dir)
    report = StatusReport(platform=run.platform)

    _open_container(run)
    try:
        content = _read_text(_require_payload(run))
    finally:
        _abandon(run)

    report.container = run.container_path
    report.payload = run.payload
    report.has_backup = bak.has_backup(run.container_path or run.payload)
    for p in all_patches():
        report.patches.append(PatchStatus(
            name=p.name,
            label=p.label,
            patched=p.is_already_patched(content),
            value=read_marker_value(content, p.rule_id),
        ))
    return report


def restore(path: Path) -> Path:
    """Restore a payload or container from its ``.bak`` sibling."""
    return bak.restore_backup(Path(path))
