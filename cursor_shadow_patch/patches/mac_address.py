"""MAC address patch: make the network interface lookup return a literal."""

from __future__ import annotations

from ..values import random_mac
from .base import PAYLOAD, IdentityPatch, make_probe, rule_variants

RULE_ID = 2

# Classic form, the lookup throws once no usable interface is found:
#   function Fs(){const e=Ls.networkInterfaces();for(const t in e){...}
#   throw new Error("Unable to retrieve mac address (unexpected format)")}
# The match may not run into a neighbouring function or arrow body. The header and
# closing brace are kept, the body becomes
#   return/*csp2*/"AA:BB:..."/*2csp*/;
_CLASSIC = (
    r"(?P<head>function [^{]{0,50}\{)"
    r"(?:(?!function |=>\s*\{).){0,300}?Unable to retrieve mac address"
    r".*?(?P<tail>\})"
)

# Method or arrow form seen in newer bundles:
#   async getMacAddress(){const e=networkInterfaces();...throw new Error("Unable to retrieve mac address")}
#   Fs=()=>{const e=Ls.networkInterfaces();...throw new Error("Unable to retrieve mac address")}
_METHOD_OR_ARROW = (
    r"(?P<head>(?:\b[\w$]+\s*\(\s*\)|\(\s*\)\s*=>)\s*\{)"
    r"[^{}]{0,120}?networkInterfaces\(\)"
    r"(?:(?!function ).){0,400}?Unable to retrieve mac address"
    r"[^}]*?(?P<tail>\})"
)

MAC_ADDRESS = IdentityPatch(
    name="mac_address",
    label="MAC address",
    rules=rule_variants(
        RULE_ID,
        [_CLASSIC, _METHOD_OR_ARROW],
        replacement=rf"\g<head>return{PAYLOAD};\g<tail>",
        probe=make_probe(RULE_ID, "return", ";", groups=("head", "tail")),
    ),
    generate=random_mac,
    default_hint="random mac",
)
