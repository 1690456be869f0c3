"""
Access checks for role panels.

Pure functions: the caller reads the member's roles and passes them in.
"""
from typing import Iterable, Optional

from .models import AccessCheck, Panel, RoleEntry


def _missing(member_roles: Iterable[int], required: Iterable[int]) -> list:
    held = set(member_roles)
    return [role_id for role_id in required if role_id not in held]


def can_access_panel(member_roles: Iterable[int], panel: Panel) -> AccessCheck:
    """Allowed iff the member holds every panel-level required role."""
    missing = _missing(member_roles, panel.required_roles)
    return AccessCheck(allowed=not missing, missing=missing)


def can_acquire_role(member_roles: Iterable[int], entry: RoleEntry) -> AccessCheck:
    """Allowed iff the member holds every prerequisite of the role entry."""
    missing = _missing(member_roles, entry.prerequisites)
    return AccessCheck(allowed=not missing, missing=missing)


def outranks(actor_rank: int, target_rank: Optional[int]) -> bool:
    """An actor may manage a role only when its own top role sits strictly above it."""
    return target_rank is not None and actor_rank > target_rank
