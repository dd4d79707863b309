"""Report data classes for patch/status operations."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .engine import NOT_FOUND, REAPPLIED, RuleOutcome


def is_permission_error(msg: str) -> bool:
    """Check if an error message looks like a permission issue."""
    low = msg.lower()
    return "permission denied" in low or "errno 13" in low or "access is denied" in low


def permission_hint(command: str = "patch") -> str:
    if sys.platform == "win32":
        return "Fix: Run as Administrator"
    return f"Fix: Run with elevated permissions:\n  sudo csp {command}"


@dataclass
class PatchReport:
    """Report for a patch run."""
    platform: str = ""
    payload: Optional[Path] = None
    container: Optional[Path] = None
    already_patched: bool = False
    dry_run: bool = False
    values: Dict[str, str] = field(default_factory=dict)
    outcomes: List[RuleOutcome] = field(default_factory=list)
    backups: List[Path] = field(default_factory=list)
    written: bool = False
    resealed: bool = False

    @property
    def not_found(self) -> List[RuleOutcome]:
        return [o for o in self.outcomes if o.status == NOT_FOUND]

    @property
    def ok(self) -> bool:
        return not self.not_found

    def summary(self) -> str:
        lines = [f"Platform: {self.platform}"]
        if self.container is not None:
            lines.append(f"Container: {self.container}")
        if self.payload is not None:
            lines.append(f"Payload: {self.payload}")
        lines.append(f"Previously patched: {'yes' if self.already_patched else 'no'}")
        lines.append("")

        for o in self.outcomes:
            value = self.values.get(o.patch, "")
            if o.status == NOT_FOUND:
                lines.append(f"  [WARN] {o.patch}: pattern not found, skipped")
            elif o.status == REAPPLIED:
                lines.append(f"  [OK] {o.patch} = {value!r} (re-patched, {o.count} region(s))")
            else:
                lines.append(f"  [OK] {o.patch} = {value!r} ({o.count} region(s))")

        applied = len(self.outcomes) - len(self.not_found)
        lines.append("")
        lines.append(f"Patched: {applied}/{len(self.outcomes)}")
        for b in self.backups:
            lines.append(f"Backup: {b}")
        if self.dry_run:
            lines.append("Nothing written (dry run).")
        if self.not_found:
            lines.append(
                "Some patterns were not found; this Cursor version may have changed "
                "the code they target."
            )
        if self.written:
            lines.append("")
            lines.append("Tip: to undo, run:")
            lines.append(f"  csp restore {self.container or self.payload}")
        return "\n".join(lines)


@dataclass
class PatchStatus:
    """Status of a single identity patch in the payload."""
    name: str
    label: str
    patched: bool = False
    value: Optional[str] = None


@dataclass
class StatusReport:
    """Report for the status command."""
    platform: str = ""
    payload: Optional[Path] = None
    container: Optional[Path] = None
    has_backup: bool = False
    patches: List[PatchStatus] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "platform": self.platform,
            "payload": str(self.payload) if self.payload else None,
            "container": str(self.container) if self.container else None,
            "has_backup": self.has_backup,
            "patches": [
                {"name": p.name, "patched": p.patched, "value": p.value}
                for p in self.patches
            ],
        }

    def summary(self) -> str:
        lines: List[str] = []
        if self.container is not None:
            lines.append(f"Container: {self.container}")
        lines.append(f"Payload: {self.payload}{' [backup]' if self.has_backup else ''}")
        lines.append("")
        for p in self.patches:
            if p.patched:
                lines.append(f"  {p.label}: patched ({p.value!r})")
            else:
                lines.append(f"  {p.label}: unpatched")
        return "\n".join(lines)
