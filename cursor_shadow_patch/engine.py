"""Idempotent pattern-patch engine."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import PatternNotMatched
from .patches import all_patches
from .patches.base import IdentityPatch, PatternRule, marker_regex

logger = logging.getLogger(__name__)

APPLIED = "applied"
REAPPLIED = "reapplied"
NOT_FOUND = "not_found"


@dataclass
class RuleOutcome:
    """Result of applying one rule (or one patch's variants) to a buffer."""
    patch: str = ""
    rule_id: int = 0
    status: str = NOT_FOUND
    count: int = 0  # Regions replaced
    variant: Optional[int] = None  # Index of the variant that matched
    details: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.status != NOT_FOUND


def _first_unprotected(
    pattern: "re.Pattern[str]",
    content: str,
    protected: Sequence[Tuple[int, int]],
) -> Optional["re.Match[str]"]:
    """First match lying entirely in a gap between protected spans."""
    start = 0
    for p_start, p_end in list(protected) + [(len(content), len(content))]:
        m = pattern.search(content, start, p_start)
        if m is not None:
            return m
        start = p_end
    return None


def apply_rule(content: str, rule: PatternRule, value: str) -> Tuple[str, RuleOutcome]:
    """
    Apply one rule to ``content``.

    The probe runs first: every region a previous run produced is rewritten
    with the new value. The main pattern then replaces its first match that
    lies outside those marker-wrapped regions, so a patched region is never
    matched twice.

    Returns (new_content, outcome). On ``not_found`` the content is unchanged.
    """
    outcome = RuleOutcome(rule_id=rule.id)

    reapplied = 0

    def probe_repl(m):
        nonlocal reapplied
        reapplied += 1
        return rule.render(m, value)

    new_content = rule.probe_re.sub(probe_repl, content)

    protected = [m.span() for m in rule.probe_re.finditer(new_content)]
    applied = 0
    m = _first_unprotected(rule.search_re, new_content, protected)
    if m is not None:
        applied = 1
        new_content = new_content[:m.start()] + rule.render(m, value) + new_content[m.end():]

    outcome.count = reapplied + applied
    if reapplied:
        outcome.status = REAPPLIED
        outcome.details.append(f"Overwrote {reapplied} previously patched region(s)")
    elif applied:
        outcome.status = APPLIED
    if applied:
        outcome.details.append(f"Patched {applied} region(s)")

    if outcome.status == NOT_FOUND:
        return content, outcome
    return new_content, outcome


def apply_patch(content: str, patch: IdentityPatch, value: str) -> Tuple[str, RuleOutcome]:
    """Try the patch's variants in order; the first one that matches wins."""
    for index, rule in enumerate(patch.rules):
        new_content, outcome = apply_rule(content, rule, value)
        if outcome.found:
            outcome.patch = patch.name
            outcome.variant = index
            logger.info("%s: %s (%d region(s), variant %d)", patch.name, outcome.status, outcome.count, index)
            return new_content, outcome
        logger.debug("%s: variant %d did not match", patch.name, index)

    outcome = RuleOutcome(patch=patch.name, rule_id=patch.rule_id)
    outcome.details.append(f"None of {len(patch.rules)} pattern variant(s) matched")
    logger.warning("%s: pattern not found, skipped", patch.name)
    return content, outcome


def apply_all(
    content: str,
    values: Mapping[str, str],
    patches: Optional[Iterable[IdentityPatch]] = None,
) -> Tuple[str, List[RuleOutcome]]:
    """
    Apply every patch in order, one outcome per patch.

    Patches without a value in ``values`` are skipped. Raises
    PatternNotMatched once all patches ran if a required one was not found.
    """
    if patches is None:
        patches = all_patches()

    new_content = content
    outcomes: List[RuleOutcome] = []
    missing: List[str] = []

    for p in patches:
        if p.name not in values:
            continue
        new_content, outcome = apply_patch(new_content, p, values[p.name])
        outcomes.append(outcome)
        if not outcome.found and p.required:
            missing.append(p.name)

    if missing:
        raise PatternNotMatched(missing)
    return new_content, outcomes


def is_patched(content: str, patches: Optional[Iterable[IdentityPatch]] = None) -> bool:
    """Return True if any patch marker is present."""
    if patches is None:
        patches = all_patches()
    return any(p.is_already_patched(content) for p in patches)


def read_marker_value(content: str, rule_id: int) -> Optional[str]:
    """Return the literal stored between the first ``rule_id`` marker pair, if any."""
    m = re.search(marker_regex(rule_id), content)
    return m.group("value") if m else None


def read_values(content: str, patches: Optional[Iterable[IdentityPatch]] = None) -> Dict[str, Optional[str]]:
    """Return the literal currently stored for each patch (None if unpatched)."""
    if patches is None:
        patches = all_patches()
    return {p.name: read_marker_value(content, p.rule_id) for p in patches}
