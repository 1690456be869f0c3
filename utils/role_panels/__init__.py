"""
Role Panels

Self-assignable role panels with prerequisite checks and an approval
workflow for gated roles (team captain or administrators decide).
"""

from .errors import (
    RolePanelError, ConfigurationError, InsufficientPermissionError,
    ValidationError, ConflictError, ExternalServiceError,
)
from .models import (
    ApprovalRequest, ApproverKind, Decision, MessageRef, Panel, RequestStatus,
    ResolutionOutcome, ResolutionResult, RoleEntry, ToggleAction, ToggleOutcome,
)
from .access import can_access_panel, can_acquire_role, outranks
from .panel_store import PanelStore
from .approval_store import ApprovalRequestStore
from .approval_workflow import ApprovalWorkflow
from .toggle import RoleToggleCoordinator
from .retention import RetentionSweeper
from .service import RolePanelService

__all__ = [
    'RolePanelError',
    'ConfigurationError',
    'InsufficientPermissionError',
    'ValidationError',
    'ConflictError',
    'ExternalServiceError',
    'ApprovalRequest',
    'ApproverKind',
    'Decision',
    'MessageRef',
    'Panel',
    'RequestStatus',
    'ResolutionOutcome',
    'ResolutionResult',
    'RoleEntry',
    'ToggleAction',
    'ToggleOutcome',
    'can_access_panel',
    'can_acquire_role',
    'outranks',
    'PanelStore',
    'ApprovalRequestStore',
    'ApprovalWorkflow',
    'RoleToggleCoordinator',
    'RetentionSweeper',
    'RolePanelService',
]
