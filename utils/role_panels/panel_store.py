"""
Panel Store

CRUD over role panels and their role entries. All panels of a community live
in one document (``role_panels/<community_id>``) and every mutation is a
whole-document read-modify-write.
"""
import re
from typing import Any, Dict, List, Optional, Tuple

from utils.database.document_store import DocumentStore
from utils.logging_setup import get_logger

from .errors import ConfigurationError, ConflictError
from .models import MessageRef, Panel, RoleEntry, utcnow

logger = get_logger(__name__)

PANEL_ID_PATTERN = re.compile(r'^[a-zA-Z0-9_-]{1,50}$')

# Sentinel for "leave this field as it is" in update_panel
UNSET: Any = object()


class PanelStore:
    """Owns panel and role entry documents"""

    collection = "role_panels"

    def __init__(self, store: DocumentStore):
        self.store = store

    # ------------------------------------------------------------------
    # document helpers
    # ------------------------------------------------------------------

    async def _load(self, community_id: int) -> Dict[str, Any]:
        doc = await self.store.get(self.collection, str(community_id))
        if not doc:
            doc = {'community_id': community_id, 'panels': {}}
        doc.setdefault('panels', {})
        return doc

    async def _save(self, community_id: int, doc: Dict[str, Any]) -> None:
        doc['updated_at'] = utcnow().isoformat()
        doc.setdefault('created_at', doc['updated_at'])
        await self.store.set(self.collection, str(community_id), doc)

    def _require_panel(self, community_id: int, doc: Dict[str, Any], panel_id: str) -> Panel:
        panel_doc = doc['panels'].get(panel_id)
        if not panel_doc:
            raise ConfigurationError(f'Panel "{panel_id}" not found. Use /setup_panel first.')
        return Panel.from_document(community_id, panel_doc)

    async def _mutate_panel(self, community_id: int, panel_id: str, mutate) -> Panel:
        doc = await self._load(community_id)
        panel = self._require_panel(community_id, doc, panel_id)
        mutate(panel)
        panel.updated_at = utcnow()
        doc['panels'][panel_id] = panel.to_document()
        await self._save(community_id, doc)
        return panel

    def _panels_with_role(self, community_id: int, doc: Dict[str, Any], role_id: int,
                          panel_id: Optional[str]) -> List[Panel]:
        if panel_id is not None:
            panels = [self._require_panel(community_id, doc, panel_id)]
        else:
            panels = [Panel.from_document(community_id, p) for p in doc['panels'].values()]
        matching = [panel for panel in panels if panel.get_role(role_id)]
        if not matching:
            where = f'panel "{panel_id}"' if panel_id else "any panel"
            raise ConfigurationError(f"Role <@&{role_id}> is not in {where}.")
        return matching

    async def _mutate_role(self, community_id: int, role_id: int, panel_id: Optional[str], mutate) -> List[Panel]:
        """Apply ``mutate`` to the role entry in one panel, or in every panel holding it."""
        doc = await self._load(community_id)
        panels = self._panels_with_role(community_id, doc, role_id, panel_id)
        now = utcnow()
        for panel in panels:
            mutate(panel.get_role(role_id))
            panel.updated_at = now
            doc['panels'][panel.panel_id] = panel.to_document()
        await self._save(community_id, doc)
        return panels

    # ------------------------------------------------------------------
    # panels
    # ------------------------------------------------------------------

    async def create_panel(self, community_id: int, panel_id: str, channel_id: int, name: str,
                           description: Optional[str] = None, required_roles: Optional[List[int]] = None,
                           approval_channel_id: Optional[int] = None, update: bool = False) -> Panel:
        """
        Create a panel.

        With ``update=True`` an existing panel is re-pointed (channel, name,
        description, requirements) while its role entries are kept and its
        rendered message is forgotten.
        """
        if not PANEL_ID_PATTERN.match(panel_id or ""):
            raise ConfigurationError("Panel ID must be 1-50 letters, numbers, underscores, or hyphens.")

        doc = await self._load(community_id)
        existing = doc['panels'].get(panel_id)
        if existing and not update:
            raise ConfigurationError(f'Panel "{panel_id}" already exists.')

        now = utcnow()
        if existing:
            panel = Panel.from_document(community_id, existing)
            panel.channel_id = channel_id
            panel.name = name
            if description is not None:
                panel.description = description
            panel.required_roles = list(required_roles or [])
            if approval_channel_id is not None:
                panel.approval_channel_id = approval_channel_id
            panel.message = None
            panel.updated_at = now
        else:
            panel = Panel(
                community_id=community_id,
                panel_id=panel_id,
                channel_id=channel_id,
                name=name,
                required_roles=list(required_roles or []),
                approval_channel_id=approval_channel_id,
                order=len(doc['panels']) + 1,
                created_at=now,
                updated_at=now,
            )
            if description:
                panel.description = description

        doc['panels'][panel_id] = panel.to_document()
        await self._save(community_id, doc)
        logger.info("Панель %s %s в сообществе %s", panel_id, "обновлена" if existing else "создана", community_id)
        return panel

    async def update_panel(self, community_id: int, panel_id: str, *, name=UNSET, description=UNSET,
                           channel_id=UNSET, required_roles=UNSET, approval_channel_id=UNSET) -> Panel:
        """Change selected panel fields; passing None to approval_channel_id clears it."""
        def apply(panel: Panel):
            if name is not UNSET:
                panel.name = name
            if description is not UNSET:
                panel.description = description or ""
            if channel_id is not UNSET:
                panel.channel_id = channel_id
            if required_roles is not UNSET:
                panel.required_roles = list(required_roles or [])
            if approval_channel_id is not UNSET:
                panel.approval_channel_id = approval_channel_id

        return await self._mutate_panel(community_id, panel_id, apply)

    async def get_panel(self, community_id: int, panel_id: str) -> Optional[Panel]:
        doc = await self._load(community_id)
        panel_doc = doc['panels'].get(panel_id)
        return Panel.from_document(community_id, panel_doc) if panel_doc else None

    async def list_panels(self, community_id: int) -> List[Panel]:
        doc = await self._load(community_id)
        panels = [Panel.from_document(community_id, p) for p in doc['panels'].values()]
        return sorted(panels, key=lambda panel: (panel.order, panel.panel_id))

    async def set_last_rendered_message(self, community_id: int, panel_id: str,
                                        ref: Optional[MessageRef]) -> Panel:
        def apply(panel: Panel):
            panel.message = ref

        return await self._mutate_panel(community_id, panel_id, apply)

    # ------------------------------------------------------------------
    # role entries
    # ------------------------------------------------------------------

    async def add_role(self, community_id: int, panel_id: str, entry: RoleEntry) -> None:
        def apply(panel: Panel):
            if panel.get_role(entry.role_id):
                raise ConflictError("This role is already in this panel.")
            panel.roles.append(entry)

        await self._mutate_panel(community_id, panel_id, apply)
        logger.info("Роль %s добавлена в панель %s (%s)", entry.role_id, panel_id, community_id)

    async def remove_role(self, community_id: int, panel_id: str, role_id: int) -> None:
        def apply(panel: Panel):
            remaining = [entry for entry in panel.roles if entry.role_id != role_id]
            if len(remaining) == len(panel.roles):
                raise ConflictError("This role was not found in this panel.")
            panel.roles = remaining

        await self._mutate_panel(community_id, panel_id, apply)
        logger.info("Роль %s удалена из панели %s (%s)", role_id, panel_id, community_id)

    async def set_approval_requirement(self, community_id: int, role_id: int, required: bool,
                                       panel_id: Optional[str] = None) -> List[Panel]:
        def apply(entry: RoleEntry):
            entry.requires_approval = required

        return await self._mutate_role(community_id, role_id, panel_id, apply)

    async def set_designated_approver(self, community_id: int, role_id: int, approver_id: Optional[int],
                                      panel_id: Optional[str] = None) -> List[Panel]:
        def apply(entry: RoleEntry):
            entry.approver_id = approver_id

        return await self._mutate_role(community_id, role_id, panel_id, apply)

    async def set_role_approval_channel(self, community_id: int, role_id: int, channel_id: Optional[int],
                                        panel_id: Optional[str] = None) -> List[Panel]:
        def apply(entry: RoleEntry):
            entry.approval_channel_id = channel_id

        return await self._mutate_role(community_id, role_id, panel_id, apply)

    async def set_prerequisites(self, community_id: int, role_id: int, prerequisites: List[int],
                                panel_id: Optional[str] = None) -> List[Panel]:
        def apply(entry: RoleEntry):
            entry.prerequisites = [r for r in dict.fromkeys(prerequisites) if r != entry.role_id]

        return await self._mutate_role(community_id, role_id, panel_id, apply)

    # ------------------------------------------------------------------
    # read helpers for commands
    # ------------------------------------------------------------------

    async def panel_choices(self, community_id: int, current: str = "") -> List[Tuple[str, str]]:
        """(label, panel_id) pairs for autocomplete, filtered by ``current``."""
        needle = current.lower()
        choices = []
        for panel in await self.list_panels(community_id):
            label = f"{panel.name} ({panel.panel_id})"
            if needle in label.lower():
                choices.append((label, panel.panel_id))
        return choices

    async def list_teams_and_series(self, community_id: int) -> Dict[str, List[Dict[str, Any]]]:
        """
        Teams are role entries with a designated approver (team captain);
        everything else is a series role.
        """
        teams, series = [], []
        for panel in await self.list_panels(community_id):
            for entry in panel.roles:
                item = {
                    'role_id': entry.role_id,
                    'role_name': entry.name,
                    'panel_id': panel.panel_id,
                    'panel_name': panel.name,
                    'channel_id': panel.channel_id,
                    'button_color': entry.button_color,
                    'requires_approval': entry.requires_approval,
                }
                if entry.approver_id:
                    item['captain_id'] = entry.approver_id
                    teams.append(item)
                else:
                    series.append(item)
        return {'teams': teams, 'series': series}
