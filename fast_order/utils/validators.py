from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


_ENVIRONMENT_ALIASES = {
    "sandbox": "sandbox",
    "prod": "production",
    "production": "production",
}


def normalize_environment(value: str) -> str:
    normalized = value.strip().lower()
    resolved = _ENVIRONMENT_ALIASES.get(normalized)
    if resolved is None:
        raise ValueError("QB_ENVIRONMENT must be 'sandbox' or 'production'")
    return resolved


def normalize_search_term(value: Optional[str]) -> str:
    if value is None:
        return ""
    return value.strip().lower()


def matches_search_term(name: Optional[str], term: str) -> bool:
    if not term:
        return True
    return term in (name or "").lower()


def normalize_quantity(value: Any) -> int:
    """Coerce a requested quantity to a whole number of at least one."""
    if isinstance(value, bool):
        value = int(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(number):
        return 1
    return max(1, math.floor(number))


def normalize_unit_price(value: Any) -> Decimal:
    """Coerce a unit price to a Decimal, falling back to zero."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not price.is_finite():
        return Decimal("0")
    return price
