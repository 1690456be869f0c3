"""
Typed errors of the role panel system.

Cogs catch ``RolePanelError`` subclasses and turn ``detail`` into an ephemeral
reply; none of them is retried automatically.
"""
from __future__ import annotations

from typing import Iterable, List


class RolePanelError(Exception):
    """Base class for all role panel errors."""

    def __init__(self, detail: str = "Role panel error"):
        self.detail = detail
        super().__init__(detail)


class ConfigurationError(RolePanelError):
    """Panel, role entry or request not found, or no approval destination."""


class InsufficientPermissionError(RolePanelError):
    """The bot (or the caller) has no authority over the target role."""


class ValidationError(RolePanelError):
    """The member lacks prerequisite roles."""

    def __init__(self, missing: Iterable[int], detail: str = ""):
        self.missing: List[int] = list(missing)
        if not detail:
            mentions = ", ".join(f"<@&{role_id}>" for role_id in self.missing)
            detail = f"You need {mentions} before you can get this role."
        super().__init__(detail)


class ConflictError(RolePanelError):
    """Duplicate role entry, missing role entry on removal, or request already resolved."""


class ExternalServiceError(RolePanelError):
    """Discord refused or failed a delivery or a membership change."""
