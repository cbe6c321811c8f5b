"""
Tier policy: which viewer roles may see which listing tiers.

The feed's initial query and its live-update filter both go through this
module, so the two paths can never disagree. Roles and tiers arrive as
opaque strings (or their enums); anything unrecognised is denied.
"""
from enum import Enum
from typing import Dict, FrozenSet, Optional, Union

from app.models.listing import ListingTier
from app.models.user import ViewerRole


TIER_RANK: Dict[str, int] = {
    ListingTier.BASE.value: 0,
    ListingTier.PRIORITY.value: 1,
    ListingTier.EXCLUSIVE.value: 2,
}

ROLE_VISIBLE_TIERS: Dict[str, FrozenSet[str]] = {
    ViewerRole.PRIVILEGED.value: frozenset(TIER_RANK),
    ViewerRole.STANDARD.value: frozenset({ListingTier.BASE.value, ListingTier.PRIORITY.value}),
}


def _normalize(value: Union[str, Enum, None]) -> Optional[str]:
    if isinstance(value, Enum):
        value = value.value
    if not isinstance(value, str):
        return None
    return value


def visible_tiers(role: Union[str, Enum, None]) -> FrozenSet[str]:
    """Tiers the role may see; empty for roles outside the feed."""
    return ROLE_VISIBLE_TIERS.get(_normalize(role), frozenset())


def is_visible(role: Union[str, Enum, None], tier: Union[str, Enum, None]) -> bool:
    """Return True if a viewer with `role` may see a listing of `tier`."""
    tier_value = _normalize(tier)
    if tier_value not in TIER_RANK:
        return False
    return tier_value in visible_tiers(role)


def tier_rank(tier: Union[str, Enum, None]) -> int:
    """Sort rank of a tier (higher is more exclusive); -1 when unknown."""
    return TIER_RANK.get(_normalize(tier), -1)
