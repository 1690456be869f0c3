"""
Role panel service: wires stores, workflow, toggles and the retention sweep
together. The cog keeps one instance on ``bot.role_panels``.
"""
from utils.config_manager import load_config
from utils.logging_setup import get_logger

from .approval_store import ApprovalRequestStore
from .approval_workflow import ApprovalWorkflow
from .panel_store import PanelStore
from .retention import RetentionSweeper
from .toggle import RoleToggleCoordinator

logger = get_logger(__name__)


class RolePanelService:
    def __init__(self, store, membership, authorization, notifier, system_actor_id: int):
        self.store = store
        self.membership = membership
        self.authorization = authorization
        self.notifier = notifier
        self.panels = PanelStore(store)
        self.requests = ApprovalRequestStore(store)
        self.workflow = ApprovalWorkflow(self.requests, membership, authorization, notifier, system_actor_id)
        self.toggles = RoleToggleCoordinator(self.panels, self.workflow, membership, notifier, system_actor_id)
        self.sweeper = RetentionSweeper(self.requests)

    @property
    def revoke_confirmation_timeout(self) -> float:
        return float(load_config().get('revoke_confirmation_timeout', 30))

    @classmethod
    def for_bot(cls, bot, store) -> "RolePanelService":
        from .discord_adapters import DiscordAuthorization, DiscordMembershipService, DiscordNotificationDispatcher

        service = cls(
            store,
            DiscordMembershipService(bot),
            DiscordAuthorization(bot),
            DiscordNotificationDispatcher(bot),
            system_actor_id=bot.user.id,
        )
        logger.info("Сервис панелей ролей инициализирован (%s)", type(store).__name__)
        return service
