"""Declarative rule model shared by all identity patches."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Tuple

# Placeholder for the marker-wrapped literal inside a replacement template.
PAYLOAD = "{payload}"

# Characters that would corrupt the JS string literal or the marker pair.
_FORBIDDEN_IN_VALUE = ('"', "\\", "\n", "\r", "*/")


def start_marker(rule_id: int) -> str:
    return f"/*csp{rule_id}*/"


def end_marker(rule_id: int) -> str:
    return f"/*{rule_id}csp*/"


def check_value(value: str) -> str:
    """Reject values that cannot be embedded verbatim between markers."""
    for bad in _FORBIDDEN_IN_VALUE:
        if bad in value:
            raise ValueError(f"value {value!r} must not contain {bad!r}")
    return value


def wrap_value(rule_id: int, value: str) -> str:
    """Render the persisted literal: /*cspN*/"value"/*Ncsp*/."""
    check_value(value)
    return f'{start_marker(rule_id)}"{value}"{end_marker(rule_id)}'


def marker_regex(rule_id: int) -> str:
    """Regex source matching one marker-wrapped literal of ``rule_id``."""
    return re.escape(start_marker(rule_id)) + r'"(?P<value>[^"]*)"' + re.escape(end_marker(rule_id))


def make_probe(rule_id: int, before: str = "", after: str = "", *, groups: Tuple[str, ...] = ()) -> str:
    """
    Build a probe pattern for a replacement ``before{payload}after``.

    Named groups referenced by the replacement template are declared empty
    so the same template can be expanded against a probe match.
    """
    empty = "".join(f"(?P<{g}>)" for g in groups)
    return empty + re.escape(before) + marker_regex(rule_id) + re.escape(after)


@dataclass(frozen=True)
class PatternRule:
    """One search/replace variant for an identity patch."""
    id: int  # marker number, stable across versions
    search: str  # tolerant regex, compiled with DOTALL
    replacement: str  # template with {payload} and optional \g<name> refs
    probe: str  # regex matching this rule's own prior output
    required: bool = False

    def __post_init__(self) -> None:
        if self.replacement.count(PAYLOAD) != 1:
            raise ValueError(f"rule {self.id}: replacement needs exactly one {PAYLOAD}")

    @property
    def search_re(self) -> "re.Pattern[str]":
        return re.compile(self.search, re.DOTALL)

    @property
    def probe_re(self) -> "re.Pattern[str]":
        return re.compile(self.probe, re.DOTALL)

    def render(self, match: "re.Match[str]", value: str) -> str:
        """Expand the template against ``match``; ``value`` is never expanded."""
        head, tail = self.replacement.split(PAYLOAD)
        return match.expand(head) + wrap_value(self.id, value) + match.expand(tail)


@dataclass(frozen=True)
class IdentityPatch:
    """A semantic target with ordered fallback variants sharing one marker."""
    name: str
    label: str  # prompt / report label
    rules: Tuple[PatternRule, ...]
    generate: Callable[[], str]
    default_hint: str = ""  # e.g. "random uuid"

    def __post_init__(self) -> None:
        if not self.rules:
            raise ValueError(f"{self.name}: at least one rule is required")
        ids = {r.id for r in self.rules}
        if len(ids) != 1:
            raise ValueError(f"{self.name}: all variants must share one marker id")

    @property
    def rule_id(self) -> int:
        return self.rules[0].id

    @property
    def required(self) -> bool:
        return any(r.required for r in self.rules)

    @property
    def marker(self) -> str:
        return start_marker(self.rule_id)

    def is_already_patched(self, content: str) -> bool:
        return self.marker in content


def rule_variants(
    rule_id: int,
    searches: List[str],
    replacement: str,
    probe: str,
    *,
    required: bool = False,
) -> Tuple[PatternRule, ...]:
    """Expand several search patterns into variants with a shared template."""
    return tuple(
        PatternRule(id=rule_id, search=s, replacement=replacement, probe=probe, required=required)
        for s in searches
    )
