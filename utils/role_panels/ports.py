# Capabilities the role panel core needs from the chat platform.
# discord_adapters.py implements them on top of discord.py; tests use fakes.
from __future__ import annotations

from typing import Optional, Protocol, Set

from .models import ApprovalRequest, MessageRef


class MembershipService(Protocol):
    async def member_roles(self, community_id: int, user_id: int) -> Set[int]: ...

    async def grant_role(self, community_id: int, user_id: int, role_id: int, reason: str = "") -> None:
        """No-op if already held. Raises InsufficientPermissionError / ExternalServiceError."""
        ...

    async def revoke_role(self, community_id: int, user_id: int, role_id: int, reason: str = "") -> None:
        """No-op if not held. Raises InsufficientPermissionError / ExternalServiceError."""
        ...

    async def authority_rank(self, community_id: int, actor_id: int) -> int:
        """Highest role position of the actor."""
        ...

    async def role_rank(self, community_id: int, role_id: int) -> Optional[int]:
        """Position of the role, None if it does not exist."""
        ...


class AuthorizationQuery(Protocol):
    async def is_elevated_administrator(self, community_id: int, user_id: int) -> bool: ...


class NotificationDispatcher(Protocol):
    async def find_approval_channel(self, community_id: int) -> Optional[int]:
        """Discovery fallback for requests with no configured destination."""
        ...

    async def channel_exists(self, channel_id: int) -> bool:
        """False for channels deleted since they were configured."""
        ...

    async def post_card(self, destination_id: int, request: ApprovalRequest) -> MessageRef:
        """Raises ExternalServiceError when the card cannot be posted."""
        ...

    async def update_card(self, ref: MessageRef, request: ApprovalRequest) -> None: ...

    async def notify_user(self, user_id: int, text: str) -> bool:
        """Best effort, returns False instead of raising."""
        ...
