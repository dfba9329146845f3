"""
Cache key derivation.

Key format: availability:{kind}:{name:value|name:value...}
Params are sorted by name; None values are left out.

    availability:daily:date:2025-01-06|plan_type:DIY|unit_count:2
    availability:monthly:month:1|plan_type:DIY|unit_count:2|year:2025

Only this module and the invalidator know the format.
"""

from datetime import date
from enum import Enum

KEY_PREFIX = "availability"

MONTHLY = "monthly"
DAILY = "daily"


def _format_value(value) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def generate_cache_key(kind: str, params: dict) -> str:
    param_string = "|".join(
        f"{name}:{_format_value(params[name])}"
        for name in sorted(params)
        if params[name] is not None
    )
    return f"{KEY_PREFIX}:{kind}:{param_string}"


def daily_date_pattern(target_date: date) -> str:
    """Every daily entry of a date, whatever plan/units/exclusion."""
    return f"{KEY_PREFIX}:{DAILY}:*date:{target_date.isoformat()}*"


def monthly_pattern(year: int, month: int) -> str:
    """Every monthly entry of a year/month."""
    # "month:1|" must not match month 10-12
    return f"{KEY_PREFIX}:{MONTHLY}:month:{month}|*year:{year}*"


def all_pattern() -> str:
    return f"{KEY_PREFIX}:*"
