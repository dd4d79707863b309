"""CLI interface: csp patch / status / restore."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Callable, Dict, List, Optional

from . import __version__
from .discovery import resolve_user_path
from .errors import ShadowPatchError
from .patches import all_patches
from .patching import patch, restore, status
from .report import is_permission_error, permission_hint

# patch name → CLI option
_VALUE_OPTIONS = {
    "machine_id": "--machine-id",
    "mac_address": "--mac",
    "sqm_id": "--sqm-id",
    "dev_device_id": "--device-id",
}


def _add_target_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--platform", metavar="TAG", default=None,
                   help="Windows, Darwin or Linux (default: detected, or $CSP_PLATFORM)")
    p.add_argument("--payload", metavar="FILE", default=None,
                   help="Path to Cursor's out/main.js (default: auto-detect, or $CSP_PAYLOAD)")
    p.add_argument("--appimage", metavar="FILE", default=None,
                   help="Path to the Cursor AppImage on Linux (default: auto-detect, or $CSP_APPIMAGE)")
    p.add_argument("--work-dir", metavar="DIR", default=None,
                   help="Where AppImages are extracted (default: cwd, or $CSP_WORK_DIR)")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="csp",
        description="Cursor Shadow Patch: custom machine id, MAC address, etc.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")

    sub = parser.add_subparsers(dest="command")

    # patch
    p_patch = sub.add_parser("patch", help="Apply patches")
    _add_target_args(p_patch)
    for p in all_patches():
        p_patch.add_argument(
            _VALUE_OPTIONS[p.name], dest=p.name, metavar="VALUE", default=None,
            help=f"{p.label} (default: {p.default_hint})",
        )
    p_patch.add_argument("-i", "--interactive", action="store_true",
                         help="Prompt for every value not given as an option")
    p_patch.add_argument("--dry-run", action="store_true", help="Preview changes without writing")
    p_patch.add_argument("--appimagetool", metavar="FILE", default=None,
                         help="Path to appimagetool (default: ./appimagetool, PATH, or $CSP_APPIMAGETOOL)")
    dl = p_patch.add_mutually_exclusive_group()
    dl.add_argument("--download-tool", dest="download_tool", action="store_true", default=None,
                    help="Download appimagetool without asking if it is missing")
    dl.add_argument("--no-download-tool", dest="download_tool", action="store_false", default=None,
                    help="Never download appimagetool")

    # status
    p_status = sub.add_parser("status", help="Show patch status and stored values")
    _add_target_args(p_status)
    p_status.add_argument("--json", dest="json_output", action="store_true", help="Output as JSON")

    # restore
    p_restore = sub.add_parser("restore", help="Restore a file, AppImage or .app from its .bak")
    p_restore.add_argument("path", help="The patched path (not the .bak)")

    return parser


def _configure_logging(args: argparse.Namespace) -> None:
    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(message)s", stream=sys.stderr)


def _prompt_values(args: argparse.Namespace, ask: Callable[[str], str]) -> Dict[str, Optional[str]]:
    values: Dict[str, Optional[str]] = {}
    for p in all_patches():
        v = getattr(args, p.name)
        if v is None and args.interactive:
            answer = ask(f"{p.label}: (leave blank = {p.default_hint}) ").strip()
            v = answer or None
        values[p.name] = v
    return values


def _download_confirm(args: argparse.Namespace, ask: Callable[[str], str]):
    if args.download_tool is True:
        return lambda url: True
    if args.download_tool is False:
        return None
    if not args.interactive and not sys.stdin.isatty():
        return None

    def confirm(url: str) -> bool:
        return ask(f"Download appimagetool from {url}? (Y/n): ").strip().lower() != "n"

    return confirm


def _fail(e: Exception, command: str) -> None:
    print(f"[ERR] {e}", file=sys.stderr)
    if is_permission_error(str(e)):
        print(permission_hint(command), file=sys.stderr)
    sys.exit(1)


def main(argv: Optional[List[str]] = None, ask: Callable[[str], str] = input) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    _configure_logging(args)

    if args.command == "patch":
        try:
            report = patch(
                platform=args.platform,
                payload=resolve_user_path(args.payload),
                appimage=resolve_user_path(args.appimage),
                values=_prompt_values(args, ask),
                work_dir=resolve_user_path(args.work_dir),
                dry_run=args.dry_run,
                tool=args.appimagetool,
                confirm_download=_download_confirm(args, ask),
            )
        except (ShadowPatchError, ValueError, OSError) as e:
            _fail(e, "patch")
            return

        if args.dry_run:
            print("[DRY RUN]")
        print(report.summary())

    elif args.command == "status":
        try:
            report = status(
                platform=args.platform,
                payload=resolve_user_path(args.payload),
                appimage=resolve_user_path(args.appimage),
                work_dir=resolve_user_path(args.work_dir),
            )
        except (ShadowPatchError, OSError) as e:
            _fail(e, "status")
            return

        if args.json_output:
            print(json.dumps(report.to_dict(), indent=2))
        else:
            print(report.summary())

    elif args.command == "restore":
        target = resolve_user_path(args.path)
        if target is None:
            parser.error("restore: empty path")
        try:
            restored = restore(target)
        except (ShadowPatchError, OSError) as e:
            _fail(e, "restore")
            return
        print(f"Restored {restored}")
