"""
Role Panels UI Module

Discord embeds and views for self-assignable role panels and their
approval cards.
"""

from .embeds import (
    build_panel_embed, build_approval_embed, build_panels_overview, build_pending_requests_embed, build_teams_embed,
)
from .views import RoleToggleButton, RevokeConfirmView, build_panel_view, describe_outcome, run_toggle

__all__ = [
    'build_panel_embed',
    'build_approval_embed',
    'build_panels_overview',
    'build_pending_requests_embed',
    'build_teams_embed',
    'RoleToggleButton',
    'RevokeConfirmView',
    'build_panel_view',
    'describe_outcome',
    'run_toggle',
]
