"""Windows SQM id patch: skip the registry read of the SQMClient machine id."""

from __future__ import annotations

from ..values import empty
from .base import PAYLOAD, IdentityPatch, make_probe, rule_variants

RULE_ID = 3

#   return(await import("@vscode/windows-registry")).GetStringRegKey(
#     "HKEY_LOCAL_MACHINE","SOFTWARE\\Microsoft\\SQMClient","MachineId")||""
_SEARCHES = [
    r"return[^;{}]{0,50}?\.GetStringRegKey[^;]*?HKEY_LOCAL_MACHINE[^;]*?MachineId[^;]*?\|\|\s*(?:\"\"|'')",
]

SQM_ID = IdentityPatch(
    name="sqm_id",
    label="Windows SQM Id",
    rules=rule_variants(
        RULE_ID,
        _SEARCHES,
        replacement=f"return{PAYLOAD}",
        probe=make_probe(RULE_ID, "return"),
    ),
    generate=empty,
    default_hint="empty",
)
