"""
Approval request storage (``role_approvals`` collection, keyed by request id)
"""
from datetime import datetime, timedelta
from typing import List, Optional

from utils.database.document_store import DocumentStore
from utils.logging_setup import get_logger

from .errors import ConfigurationError
from .models import ApprovalRequest, ApproverKind, MessageRef, RequestStatus, utcnow

logger = get_logger(__name__)


def make_request_id(community_id: int, user_id: int, role_id: int, when: Optional[datetime] = None) -> str:
    when = when or utcnow()
    return f"{community_id}_{user_id}_{role_id}_{int(when.timestamp() * 1000)}"


class ApprovalRequestStore:
    """Owns approval request documents"""

    collection = "role_approvals"

    def __init__(self, store: DocumentStore):
        self.store = store

    async def create(self, request: ApprovalRequest) -> ApprovalRequest:
        await self.store.set(self.collection, request.id, request.to_document())
        return request

    async def get(self, request_id: str) -> Optional[ApprovalRequest]:
        doc = await self.store.get(self.collection, request_id)
        return ApprovalRequest.from_document(doc) if doc else None

    async def require(self, request_id: str) -> ApprovalRequest:
        request = await self.get(request_id)
        if request is None:
            raise ConfigurationError(f"Approval request {request_id} not found.")
        return request

    async def attach_card(self, request_id: str, card: MessageRef) -> None:
        await self.store.set(self.collection, request_id, {
            'card_channel_id': card.channel_id,
            'card_message_id': card.message_id,
            'approval_channel_id': card.channel_id,
        }, merge=True)

    async def find_pending_by_card(self, card: MessageRef) -> Optional[ApprovalRequest]:
        docs = await self.store.query(
            self.collection,
            card_channel_id=card.channel_id,
            card_message_id=card.message_id,
            status=RequestStatus.PENDING.value,
        )
        if not docs:
            return None
        if len(docs) > 1:
            logger.warning("Несколько pending заявок на одно сообщение %s: %s", card, [d['id'] for d in docs])
        return ApprovalRequest.from_document(docs[0])

    async def mark_resolved(self, request_id: str, status: RequestStatus, resolved_by: int,
                            kind: ApproverKind) -> bool:
        """
        pending -> approved/rejected as one conditional write.

        Returns False when the request is no longer pending (someone else won).
        """
        if status == RequestStatus.PENDING:
            raise ValueError("a request can only be resolved to approved or rejected")
        return await self.store.update_if(
            self.collection,
            request_id,
            {'status': RequestStatus.PENDING.value},
            {
                'status': status.value,
                'resolved_by': resolved_by,
                'resolved_at': utcnow().isoformat(),
                'approver_kind': kind.value,
            },
        )

    async def list_pending(self, community_id: int) -> List[ApprovalRequest]:
        docs = await self.store.query(
            self.collection,
            community_id=community_id,
            status=RequestStatus.PENDING.value,
        )
        requests = [ApprovalRequest.from_document(doc) for doc in docs]
        return sorted(requests, key=lambda r: r.requested_at, reverse=True)

    async def purge_older_than(self, days: int, now: Optional[datetime] = None) -> int:
        """Delete requests of any status requested more than ``days`` ago."""
        cutoff = (now or utcnow()) - timedelta(days=days)
        removed = 0
        for doc in await self.store.query(self.collection):
            request = ApprovalRequest.from_document(doc)
            if request.requested_at <= cutoff and await self.store.delete(self.collection, request.id):
                removed += 1
        if removed:
            logger.info("Очищено %s старых заявок на роли (старше %s дн.)", removed, days)
        return removed
