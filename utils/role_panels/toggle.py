"""
Role toggle coordinator: one button click on a role panel.

Holding the role means "leave it" (the UI has already asked for
confirmation); not holding it means "get it", either right away or through an
approval request.
"""
from utils.logging_setup import get_logger

from .access import can_acquire_role, can_access_panel, outranks
from .approval_workflow import ApprovalWorkflow, approver_text
from .errors import ConfigurationError, ConflictError, InsufficientPermissionError, ValidationError
from .models import RoleEntry, ToggleAction, ToggleOutcome
from .panel_store import PanelStore
from .ports import MembershipService, NotificationDispatcher

logger = get_logger(__name__)


class RoleToggleCoordinator:
    def __init__(self, panels: PanelStore, workflow: ApprovalWorkflow, membership: MembershipService,
                 notifier: NotificationDispatcher, system_actor_id: int):
        self.panels = panels
        self.workflow = workflow
        self.membership = membership
        self.notifier = notifier
        self.system_actor_id = system_actor_id

    async def _ensure_can_manage(self, community_id: int, entry: RoleEntry) -> None:
        role_rank = await self.membership.role_rank(community_id, entry.role_id)
        if role_rank is None:
            raise ConfigurationError("Role not found.")
        bot_rank = await self.membership.authority_rank(community_id, self.system_actor_id)
        if not outranks(bot_rank, role_rank):
            raise InsufficientPermissionError(
                "I don't have permission to manage this role. "
                "Please ensure my role is higher than the roles I need to manage."
            )

    async def toggle_role(self, community_id: int, panel_id: str, user_id: int, role_id: int) -> ToggleOutcome:
        panel = await self.panels.get_panel(community_id, panel_id)
        if panel is None:
            raise ConfigurationError(f'Panel "{panel_id}" not found.')
        entry = panel.get_role(role_id)
        if entry is None:
            raise ConfigurationError("This role is no longer offered by this panel.")

        await self._ensure_can_manage(community_id, entry)

        member_roles = await self.membership.member_roles(community_id, user_id)

        if role_id in member_roles:
            return await self._revoke(community_id, user_id, entry)

        panel_access = can_access_panel(member_roles, panel)
        if not panel_access.allowed:
            raise ValidationError(panel_access.missing)
        role_access = can_acquire_role(member_roles, entry)
        if not role_access.allowed:
            raise ValidationError(role_access.missing)

        if not entry.requires_approval:
            await self.membership.grant_role(community_id, user_id, role_id, reason=f"Self-assigned via panel {panel_id}")
            logger.info("Пользователь %s получил роль %s через панель %s", user_id, entry.name, panel_id)
            return ToggleOutcome(ToggleAction.ADDED, role_id, entry.name)

        existing = await self.workflow.find_pending_for(community_id, user_id, role_id)
        if existing is not None:
            if existing.card is None:
                # Earlier card delivery failed; retry it instead of opening a second request
                await self.workflow.dispatch(existing.id)
                return ToggleOutcome(ToggleAction.APPROVAL_REQUESTED, role_id, entry.name,
                                     existing.id, approver_text(entry.approver_id))
            raise ConflictError(f"You already have a pending request for **{entry.name}**.")

        request_id = await self.workflow.submit_request(
            community_id, user_id, role_id, entry.name, panel.panel_id, panel.name,
            approver_id=entry.approver_id,
            approval_channel_id=entry.approval_channel_id or panel.approval_channel_id,
        )
        await self.workflow.dispatch(request_id)
        return ToggleOutcome(ToggleAction.APPROVAL_REQUESTED, role_id, entry.name,
                             request_id, approver_text(entry.approver_id))

    async def _revoke(self, community_id: int, user_id: int, entry: RoleEntry) -> ToggleOutcome:
        await self.membership.revoke_role(community_id, user_id, entry.role_id, reason="Self-removed via role panel")
        logger.info("Пользователь %s снял роль %s", user_id, entry.name)

        if entry.approver_id:
            sent = await self.notifier.notify_user(
                entry.approver_id,
                f"👋 <@{user_id}> has left **{entry.name}**.",
            )
            if not sent:
                logger.warning("Не удалось уведомить капитана %s об уходе %s из %s",
                               entry.approver_id, user_id, entry.name)
        return ToggleOutcome(ToggleAction.REMOVED, entry.role_id, entry.name)
