"""
Views for role panels: persistent toggle buttons and the leave confirmation
"""
import discord
from discord import ui

from utils.logging_setup import get_logger
from utils.role_panels.errors import RolePanelError
from utils.role_panels.models import Panel, ToggleAction, ToggleOutcome

logger = get_logger(__name__)

MAX_BUTTONS = 25
BUTTON_STYLES = {
    'primary': discord.ButtonStyle.primary,
    'secondary': discord.ButtonStyle.secondary,
    'success': discord.ButtonStyle.success,
    'danger': discord.ButtonStyle.danger,
}


def button_style(name: str) -> discord.ButtonStyle:
    return BUTTON_STYLES.get((name or "").lower(), discord.ButtonStyle.secondary)


def describe_outcome(outcome: ToggleOutcome) -> str:
    if outcome.action == ToggleAction.ADDED:
        return f"✅ You now have the **{outcome.role_name}** role!"
    if outcome.action == ToggleAction.REMOVED:
        return f"➖ The **{outcome.role_name}** role has been removed."
    return (f"📨 Your request to join **{outcome.role_name}** has been sent for approval.\n"
            f"It must be approved by {outcome.approver_text}.")


def _service(interaction: discord.Interaction):
    return getattr(interaction.client, 'role_panels', None)


async def run_toggle(interaction: discord.Interaction, panel_id: str, role_id: int) -> str:
    """Run a toggle and return the text to show the member"""
    service = _service(interaction)
    if service is None:
        return "⚠️ Role panels are still starting up, please try again in a moment."
    try:
        outcome = await service.toggles.toggle_role(interaction.guild.id, panel_id, interaction.user.id, role_id)
        return describe_outcome(outcome)
    except RolePanelError as e:
        logger.info("Переключение роли %s для %s отклонено: %s", role_id, interaction.user.id, e.detail)
        return f"❌ {e.detail}"
    except Exception:
        logger.exception("Ошибка переключения роли %s (панель %s) для %s", role_id, panel_id, interaction.user.id)
        return "⚠️ An unexpected error occurred while updating your roles."


class RoleToggleButton(ui.DynamicItem[ui.Button], template=r'role_toggle:(?P<panel_id>[a-zA-Z0-9_-]+):(?P<role_id>\d+)'):
    """One role button; survives restarts because the custom id carries panel and role"""

    def __init__(self, panel_id: str, role_id: int, label: str = "Role",
                 style: discord.ButtonStyle = discord.ButtonStyle.secondary, emoji=None):
        super().__init__(ui.Button(
            label=label[:80],
            style=style,
            emoji=emoji,
            custom_id=f"role_toggle:{panel_id}:{role_id}",
        ))
        self.panel_id = panel_id
        self.role_id = role_id

    @classmethod
    async def from_custom_id(cls, interaction: discord.Interaction, item: ui.Button, match, /):
        return cls(match['panel_id'], int(match['role_id']), label=item.label or "Role", style=item.style)

    async def callback(self, interaction: discord.Interaction):
        held = any(role.id == self.role_id for role in getattr(interaction.user, 'roles', []))
        if held:
            service = _service(interaction)
            timeout = service.revoke_confirmation_timeout if service else 30
            view = RevokeConfirmView(self.panel_id, self.role_id, interaction.user.id, timeout=timeout)
            await interaction.response.send_message(
                f"Are you sure you want to leave <@&{self.role_id}>?",
                view=view,
                ephemeral=True,
            )
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        await interaction.followup.send(await run_toggle(interaction, self.panel_id, self.role_id), ephemeral=True)


class RevokeConfirmView(ui.View):
    """Asks the member to confirm leaving a role"""

    def __init__(self, panel_id: str, role_id: int, user_id: int, timeout: float = 30):
        super().__init__(timeout=timeout)
        self.panel_id = panel_id
        self.role_id = role_id
        self.user_id = user_id

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        return interaction.user.id == self.user_id

    @discord.ui.button(label="Leave role", style=discord.ButtonStyle.danger)
    async def confirm(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.stop()
        held = any(role.id == self.role_id for role in getattr(interaction.user, 'roles', []))
        if not held:
            await interaction.response.edit_message(content="ℹ️ You no longer have this role.", view=None)
            return
        await interaction.response.edit_message(content="⏳ Updating your roles...", view=None)
        await interaction.edit_original_response(content=await run_toggle(interaction, self.panel_id, self.role_id))

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.secondary)
    async def cancel(self, interaction: discord.Interaction, button: discord.ui.Button):
        self.stop()
        await interaction.response.edit_message(content="Cancelled, your roles were not changed.", view=None)


def build_panel_view(panel: Panel) -> ui.View:
    view = ui.View(timeout=None)
    for entry in panel.roles[:MAX_BUTTONS]:
        emoji = discord.PartialEmoji.from_str(entry.emoji) if entry.emoji else None
        view.add_item(RoleToggleButton(
            panel.panel_id, entry.role_id,
            label=entry.name,
            style=button_style(entry.button_color),
            emoji=emoji,
        ))
    if len(panel.roles) > MAX_BUTTONS:
        logger.warning("Панель %s содержит %s ролей, показаны первые %s", panel.panel_id, len(panel.roles), MAX_BUTTONS)
    return view
