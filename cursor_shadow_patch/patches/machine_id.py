"""Machine id patch: replace the telemetry machine id lookup with a literal."""

from __future__ import annotations

from ..values import random_uuid
from .base import PAYLOAD, IdentityPatch, make_probe, rule_variants

RULE_ID = 1

# The machine id is resolved through a lookup raced against a 5s timeout:
#   this.machineId=await Promise.race([Ys(),timeout(5e3).then(()=>Xs)]),...
# Everything from "=" up to the first comma after 5e3 becomes the literal.
# [^;] keeps the match inside one statement.
_SEARCHES = [
    r"=[^;]{0,50}?timeout[^;]{0,10}?5e3[^;]*?,",
    r"=[^;]{0,50}?[Tt]imeout\([^;]{0,10}?5e3[^;]*?,",
]

MACHINE_ID = IdentityPatch(
    name="machine_id",
    label="MachineId",
    rules=rule_variants(
        RULE_ID,
        _SEARCHES,
        replacement=f"={PAYLOAD},",
        probe=make_probe(RULE_ID, "=", ","),
        required=True,
    ),
    generate=random_uuid,
    default_hint="random uuid",
)
