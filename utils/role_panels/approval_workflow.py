"""
Approval workflow for gated roles.

Lifecycle of a request:

    pending --approve (captain/admin)--> approved   [role granted]
    pending --reject  (captain/admin)--> rejected
    anything else on a non-pending card  -> no-op

The pending -> resolved transition is a single conditional write in the
document store, so two approvers reacting at the same time resolve a request
exactly once. The role is granted *before* the transition: if the grant fails
the request stays pending and the error goes back to the caller.
"""
from typing import Optional

from utils.logging_setup import get_logger

from .access import outranks
from .approval_store import ApprovalRequestStore, make_request_id
from .errors import ConfigurationError, ConflictError, ExternalServiceError, InsufficientPermissionError
from .models import (
    ApprovalRequest, ApproverKind, Decision, MessageRef, RequestStatus,
    ResolutionOutcome, ResolutionResult, utcnow,
)
from .ports import AuthorizationQuery, MembershipService, NotificationDispatcher

logger = get_logger(__name__)


def approver_text(approver_id: Optional[int]) -> str:
    return f"<@{approver_id}>" if approver_id else "administrators"


class ApprovalWorkflow:
    def __init__(self, requests: ApprovalRequestStore, membership: MembershipService,
                 authorization: AuthorizationQuery, notifier: NotificationDispatcher, system_actor_id: int):
        self.requests = requests
        self.membership = membership
        self.authorization = authorization
        self.notifier = notifier
        self.system_actor_id = system_actor_id

    # ------------------------------------------------------------------
    # submission
    # ------------------------------------------------------------------

    async def submit_request(self, community_id: int, user_id: int, role_id: int, role_name: str,
                             panel_id: str, panel_name: str, approver_id: Optional[int] = None,
                             approval_channel_id: Optional[int] = None) -> str:
        """Persist a new pending request and return its id."""
        now = utcnow()
        request = ApprovalRequest(
            id=make_request_id(community_id, user_id, role_id, now),
            community_id=community_id,
            user_id=user_id,
            role_id=role_id,
            role_name=role_name,
            panel_id=panel_id,
            panel_name=panel_name,
            approver_id=approver_id,
            requested_at=now,
            approval_channel_id=approval_channel_id,
        )
        await self.requests.create(request)
        logger.info("Заявка %s создана: пользователь %s -> роль %s (%s)", request.id, user_id, role_name, role_id)
        return request.id

    async def find_pending_for(self, community_id: int, user_id: int, role_id: int) -> Optional[ApprovalRequest]:
        for request in await self.requests.list_pending(community_id):
            if request.user_id == user_id and request.role_id == role_id:
                return request
        return None

    async def dispatch(self, request_id: str) -> MessageRef:
        """
        Post the approval card and remember where it went.

        Destination precedence: role override / panel default (stored on the
        request at submission) -> channel discovery -> ConfigurationError.
        A configured channel that no longer exists counts as unset.
        """
        request = await self.requests.require(request_id)
        if not request.is_pending:
            raise ConflictError("This request has already been resolved.")

        destination = request.approval_channel_id
        if destination is not None and not await self.notifier.channel_exists(destination):
            logger.warning("Канал заявок %s для заявки %s удален, ищем канал заявок на сервере",
                           destination, request.id)
            destination = None
        if destination is None:
            destination = await self.notifier.find_approval_channel(request.community_id)
        if destination is None:
            raise ConfigurationError(
                "No approval channel found. Set one for this panel or role, "
                "or create a channel with 'approval' in the name."
            )

        card = await self.notifier.post_card(destination, request)
        await self.requests.attach_card(request.id, card)
        logger.info("Карточка заявки %s отправлена в канал %s (сообщение %s)", request.id, card.channel_id, card.message_id)
        return card

    # ------------------------------------------------------------------
    # resolution
    # ------------------------------------------------------------------

    async def _approver_kind(self, request: ApprovalRequest, acting_user_id: int) -> Optional[ApproverKind]:
        if request.approver_id and acting_user_id == request.approver_id:
            return ApproverKind.TEAM_CAPTAIN
        if await self.authorization.is_elevated_administrator(request.community_id, acting_user_id):
            return ApproverKind.ADMIN
        return None

    async def _ensure_can_grant(self, request: ApprovalRequest) -> None:
        role_rank = await self.membership.role_rank(request.community_id, request.role_id)
        if role_rank is None:
            raise ConfigurationError(f"Role {request.role_name} no longer exists.")
        bot_rank = await self.membership.authority_rank(request.community_id, self.system_actor_id)
        if not outranks(bot_rank, role_rank):
            raise InsufficientPermissionError(
                f"I can't manage {request.role_name}: my highest role must be above it."
            )

    async def resolve(self, card: MessageRef, acting_user_id: int, decision: Decision) -> ResolutionResult:
        request = await self.requests.find_pending_by_card(card)
        if request is None:
            return ResolutionResult(ResolutionOutcome.NOOP)

        kind = await self._approver_kind(request, acting_user_id)
        if kind is None:
            logger.info("Пользователь %s не может рассматривать заявку %s", acting_user_id, request.id)
            return ResolutionResult(ResolutionOutcome.UNAUTHORIZED, request)

        if decision == Decision.APPROVE:
            return await self._approve(request, acting_user_id, kind)
        return await self._reject(request, acting_user_id, kind)

    async def _approve(self, request: ApprovalRequest, acting_user_id: int, kind: ApproverKind) -> ResolutionResult:
        await self._ensure_can_grant(request)
        # Errors here leave the request pending so the approver can retry
        await self.membership.grant_role(
            request.community_id, request.user_id, request.role_id,
            reason=f"Role request approved by {acting_user_id} ({kind.value})",
        )

        won = await self.requests.mark_resolved(request.id, RequestStatus.APPROVED, acting_user_id, kind)
        if not won:
            await self._undo_lost_grant(request)
            return ResolutionResult(ResolutionOutcome.NOOP, request)

        logger.info("Заявка %s одобрена: %s (%s)", request.id, acting_user_id, kind.value)
        resolved = await self.requests.get(request.id) or request
        await self._after_resolution(resolved, f"✅ Your request for **{request.role_name}** was approved!")
        return ResolutionResult(ResolutionOutcome.APPROVED, resolved, kind)

    async def _reject(self, request: ApprovalRequest, acting_user_id: int, kind: ApproverKind) -> ResolutionResult:
        won = await self.requests.mark_resolved(request.id, RequestStatus.REJECTED, acting_user_id, kind)
        if not won:
            return ResolutionResult(ResolutionOutcome.NOOP, request)

        logger.info("Заявка %s отклонена: %s (%s)", request.id, acting_user_id, kind.value)
        resolved = await self.requests.get(request.id) or request
        await self._after_resolution(resolved, f"❌ Your request for **{request.role_name}** was rejected.")
        return ResolutionResult(ResolutionOutcome.REJECTED, resolved, kind)

    async def _undo_lost_grant(self, request: ApprovalRequest) -> None:
        """Another resolver got there first; a concurrent rejection must not leave the role granted."""
        current = await self.requests.get(request.id)
        if current is None or current.status != RequestStatus.REJECTED:
            return
        logger.warning("Заявка %s отклонена параллельно с одобрением, снимаем выданную роль", request.id)
        try:
            await self.membership.revoke_role(
                request.community_id, request.user_id, request.role_id,
                reason="Role request was rejected concurrently",
            )
        except (ExternalServiceError, InsufficientPermissionError) as e:
            logger.error("Не удалось снять роль %s у %s после параллельного отказа: %s",
                         request.role_id, request.user_id, e)
            raise

    async def _after_resolution(self, request: ApprovalRequest, requester_text: str) -> None:
        """Card edit and requester DM; both are best effort after the state change."""
        if request.card:
            try:
                await self.notifier.update_card(request.card, request)
            except ExternalServiceError as e:
                logger.warning("Не удалось обновить карточку заявки %s: %s", request.id, e)
        if not await self.notifier.notify_user(request.user_id, requester_text):
            logger.info("Не удалось отправить ЛС пользователю %s по заявке %s", request.user_id, request.id)
