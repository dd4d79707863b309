"""devDeviceId patch: replace the @vscode/deviceid lookup with a literal."""

from __future__ import annotations

from ..values import random_uuid
from .base import PAYLOAD, IdentityPatch, make_probe, rule_variants

RULE_ID = 4

_SEARCHES = [
    #   return await(await import("@vscode/deviceid")).getDeviceId()
    r"(?P<head>)return[^;{}]{0,50}?vscode/deviceid[^;]*?getDeviceId\(\)",
    #   const e=await import("@vscode/deviceid");return await e.getDeviceId()
    r"(?P<head>vscode/deviceid[\"']\)[^;]{0,20};\s*)return[^;]{0,30}?getDeviceId\(\)",
]

DEV_DEVICE_ID = IdentityPatch(
    name="dev_device_id",
    label="devDeviceId",
    rules=rule_variants(
        RULE_ID,
        _SEARCHES,
        replacement=rf"\g<head>return{PAYLOAD}",
        probe=make_probe(RULE_ID, "return", groups=("head",)),
    ),
    generate=random_uuid,
    default_hint="random uuid",
)
