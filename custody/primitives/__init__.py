"""
Custody — Primitives

Shared value types used by every system.
"""

from custody.primitives.common import CustodyBaseModel, new_id, utc_now
from custody.primitives.principal import (
    NULL_PRINCIPAL,
    Principal,
    is_null_principal,
    require_principal,
)

__all__ = [
    "CustodyBaseModel",
    "NULL_PRINCIPAL",
    "Principal",
    "is_null_principal",
    "new_id",
    "require_principal",
    "utc_now",
]
