"""
Custody — Principal Primitives

A principal is the authenticated identity a call is attributed to. The core
treats it as an opaque string compared only for equality, with one
distinguished value meaning "nobody".

Null forms recognised:
  - None
  - ""  (and whitespace-only strings)
  - the all-zero hex account address, e.g. "0x0000000000000000000000000000000000000000"
"""

from __future__ import annotations

import re
from typing import TypeAlias

from custody.systems.ownership.errors import NullPrincipalError

Principal: TypeAlias = str

NULL_PRINCIPAL: Principal = ""

_ZERO_ADDRESS = re.compile(r"^0[xX]0+$")


def is_null_principal(value: object) -> bool:
    """True if ``value`` denotes the null identity."""
    if value is None:
        return True
    if not isinstance(value, str):
        return False
    stripped = value.strip()
    if not stripped:
        return True
    return bool(_ZERO_ADDRESS.match(stripped))


def require_principal(value: Principal | None, *, slot: int | None = None) -> Principal:
    """Return ``value`` unchanged, or raise NullPrincipalError if it is null."""
    if value is None or is_null_principal(value):
        raise NullPrincipalError(slot=slot)
    return value
