"""Patch registry: identity patches in application order."""

from __future__ import annotations

from typing import Dict, List

from .base import IdentityPatch
from .device_id import DEV_DEVICE_ID
from .mac_address import MAC_ADDRESS
from .machine_id import MACHINE_ID
from .sqm_id import SQM_ID

# Registry: patch name → patch, iterated in this order.
PATCHES: Dict[str, IdentityPatch] = {
    p.name: p for p in (MACHINE_ID, MAC_ADDRESS, SQM_ID, DEV_DEVICE_ID)
}


def get_patch(name: str) -> IdentityPatch:
    """Look up a patch by name."""
    p = PATCHES.get(name)
    if p is None:
        raise ValueError(f"Unknown patch: {name!r}")
    return p


def all_patches() -> List[IdentityPatch]:
    return list(PATCHES.values())
