"""Administrative tiers and their fixed parent/child ordering."""

from __future__ import annotations

from enum import Enum
from typing import Optional

__all__ = ["Level", "parent_level", "child_level", "coerce_level", "HIERARCHY"]


class Level(str, Enum):
    PROVINCE = "province"
    COUNTY = "county"
    BAKHSH = "bakhsh"
    CITY = "city"

    def __str__(self) -> str:
        return self.value


HIERARCHY: tuple[Level, ...] = (Level.PROVINCE, Level.COUNTY, Level.BAKHSH, Level.CITY)


def coerce_level(value: "Level | str") -> Level:
    if isinstance(value, Level):
        return value
    try:
        return Level(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(lv.value for lv in HIERARCHY)
        raise ValueError(f"unknown level {value!r}; expected one of: {allowed}") from None


def parent_level(level: "Level | str") -> Optional[Level]:
    """Tier directly above ``level``; ``None`` for provinces."""
    idx = HIERARCHY.index(coerce_level(level))
    return HIERARCHY[idx - 1] if idx > 0 else None


def child_level(level: "Level | str") -> Optional[Level]:
    idx = HIERARCHY.index(coerce_level(level))
    return HIERARCHY[idx + 1] if idx + 1 < len(HIERARCHY) else None
