"""
Data model of the role panel system: panels, role entries, approval requests
and the result types returned by toggles and resolutions.

Everything is stored as plain JSON: ids are ints, datetimes are ISO-8601
strings in UTC.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dump_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _load_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _load_id(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApproverKind(str, Enum):
    TEAM_CAPTAIN = "Team Captain"
    ADMIN = "Admin"


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ToggleAction(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    APPROVAL_REQUESTED = "approval_requested"


class ResolutionOutcome(str, Enum):
    NOOP = "noop"
    UNAUTHORIZED = "unauthorized"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class MessageRef:
    """Where a message lives on the platform"""
    channel_id: int
    message_id: int


@dataclass(frozen=True)
class AccessCheck:
    allowed: bool
    missing: List[int] = field(default_factory=list)


@dataclass
class RoleEntry:
    role_id: int
    name: str
    description: Optional[str] = None
    emoji: Optional[str] = None
    button_color: str = "secondary"
    requires_approval: bool = False
    # "Team captain": the one member who may approve besides administrators
    approver_id: Optional[int] = None
    approval_channel_id: Optional[int] = None
    prerequisites: List[int] = field(default_factory=list)
    added_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        # A role can never be its own prerequisite; order is kept, duplicates dropped
        cleaned = []
        for role_id in self.prerequisites:
            if role_id != self.role_id and role_id not in cleaned:
                cleaned.append(role_id)
        self.prerequisites = cleaned

    def to_document(self) -> Dict[str, Any]:
        return {
            'role_id': self.role_id,
            'name': self.name,
            'description': self.description,
            'emoji': self.emoji,
            'button_color': self.button_color,
            'requires_approval': self.requires_approval,
            'approver_id': self.approver_id,
            'approval_channel_id': self.approval_channel_id,
            'prerequisites': list(self.prerequisites),
            'added_at': _dump_dt(self.added_at),
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "RoleEntry":
        return cls(
            role_id=int(doc['role_id']),
            name=doc.get('name') or str(doc['role_id']),
            description=doc.get('description'),
            emoji=doc.get('emoji'),
            button_color=doc.get('button_color') or "secondary",
            requires_approval=bool(doc.get('requires_approval', False)),
            approver_id=_load_id(doc.get('approver_id')),
            approval_channel_id=_load_id(doc.get('approval_channel_id')),
            prerequisites=[int(r) for r in doc.get('prerequisites', [])],
            added_at=_load_dt(doc.get('added_at')) or utcnow(),
        )


@dataclass
class Panel:
    community_id: int
    panel_id: str
    channel_id: int
    name: str
    description: str = "Click the buttons below to add or remove roles!"
    roles: List[RoleEntry] = field(default_factory=list)
    required_roles: List[int] = field(default_factory=list)
    approval_channel_id: Optional[int] = None
    message: Optional[MessageRef] = None
    order: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def get_role(self, role_id: int) -> Optional[RoleEntry]:
        for entry in self.roles:
            if entry.role_id == role_id:
                return entry
        return None

    def to_document(self) -> Dict[str, Any]:
        return {
            'panel_id': self.panel_id,
            'channel_id': self.channel_id,
            'name': self.name,
            'description': self.description,
            'roles': [entry.to_document() for entry in self.roles],
            'required_roles': list(self.required_roles),
            'approval_channel_id': self.approval_channel_id,
            'message_channel_id': self.message.channel_id if self.message else None,
            'message_id': self.message.message_id if self.message else None,
            'order': self.order,
            'created_at': _dump_dt(self.created_at),
            'updated_at': _dump_dt(self.updated_at),
        }

    @classmethod
    def from_document(cls, community_id: int, doc: Dict[str, Any]) -> "Panel":
        message = None
        if doc.get('message_id') is not None:
            message = MessageRef(
                channel_id=int(doc.get('message_channel_id') or doc['channel_id']),
                message_id=int(doc['message_id']),
            )
        return cls(
            community_id=community_id,
            panel_id=doc['panel_id'],
            channel_id=int(doc['channel_id']),
            name=doc.get('name') or doc['panel_id'],
            description=doc.get('description') or "",
            roles=[RoleEntry.from_document(r) for r in doc.get('roles', [])],
            required_roles=[int(r) for r in doc.get('required_roles', [])],
            approval_channel_id=_load_id(doc.get('approval_channel_id')),
            message=message,
            order=int(doc.get('order', 1)),
            created_at=_load_dt(doc.get('created_at')) or utcnow(),
            updated_at=_load_dt(doc.get('updated_at')) or utcnow(),
        )


@dataclass
class ApprovalRequest:
    id: str
    community_id: int
    user_id: int
    role_id: int
    role_name: str
    panel_id: str
    panel_name: str
    approver_id: Optional[int] = None
    status: RequestStatus = RequestStatus.PENDING
    requested_at: datetime = field(default_factory=utcnow)
    resolved_by: Optional[int] = None
    resolved_at: Optional[datetime] = None
    approver_kind: Optional[ApproverKind] = None
    card: Optional[MessageRef] = None
    approval_channel_id: Optional[int] = None

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    def to_document(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'community_id': self.community_id,
            'user_id': self.user_id,
            'role_id': self.role_id,
            'role_name': self.role_name,
            'panel_id': self.panel_id,
            'panel_name': self.panel_name,
            'approver_id': self.approver_id,
            'status': self.status.value,
            'requested_at': _dump_dt(self.requested_at),
            'resolved_by': self.resolved_by,
            'resolved_at': _dump_dt(self.resolved_at),
            'approver_kind': self.approver_kind.value if self.approver_kind else None,
            'card_channel_id': self.card.channel_id if self.card else None,
            'card_message_id': self.card.message_id if self.card else None,
            'approval_channel_id': self.approval_channel_id,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ApprovalRequest":
        card = None
        if doc.get('card_message_id') is not None:
            card = MessageRef(int(doc['card_channel_id']), int(doc['card_message_id']))
        kind = doc.get('approver_kind')
        return cls(
            id=doc['id'],
            community_id=int(doc['community_id']),
            user_id=int(doc['user_id']),
            role_id=int(doc['role_id']),
            role_name=doc.get('role_name') or str(doc['role_id']),
            panel_id=doc.get('panel_id') or "",
            panel_name=doc.get('panel_name') or "",
            approver_id=_load_id(doc.get('approver_id')),
            status=RequestStatus(doc.get('status', RequestStatus.PENDING.value)),
            requested_at=_load_dt(doc.get('requested_at')) or utcnow(),
            resolved_by=_load_id(doc.get('resolved_by')),
            resolved_at=_load_dt(doc.get('resolved_at')),
            approver_kind=ApproverKind(kind) if kind else None,
            card=card,
            approval_channel_id=_load_id(doc.get('approval_channel_id')),
        )


@dataclass(frozen=True)
class ToggleOutcome:
    action: ToggleAction
    role_id: int
    role_name: str
    request_id: Optional[str] = None
    # Who has to approve, e.g. "<@123>" or "administrators"
    approver_text: Optional[str] = None


@dataclass(frozen=True)
class ResolutionResult:
    outcome: ResolutionOutcome
    request: Optional[ApprovalRequest] = None
    approver_kind: Optional[ApproverKind] = None
