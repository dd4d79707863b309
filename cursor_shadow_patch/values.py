"""Replacement value generators."""

from __future__ import annotations

import random
import uuid

_HEX_DIGITS = "0123456789ABCDEF"


def random_uuid() -> str:
    return str(uuid.uuid4())


def random_mac() -> str:
    """Random MAC address in ``AA:BB:CC:DD:EE:FF`` form."""
    return ":".join(
        random.choice(_HEX_DIGITS) + random.choice(_HEX_DIGITS)
        for _ in range(6)
    )


def empty() -> str:
    return ""
