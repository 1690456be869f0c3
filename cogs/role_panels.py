import discord
from discord import app_commands
from discord.ext import commands
from typing import List, Optional

from forms.role_panels import (
    RoleToggleButton, build_panel_embed, build_panel_view, build_panels_overview, build_pending_requests_embed,
    build_teams_embed,
)
from utils.config_manager import is_administrator, load_config
from utils.database import open_document_store
from utils.logging_setup import get_logger
from utils.role_panels import (
    Decision, MessageRef, RoleEntry, RolePanelError, RolePanelService, ResolutionOutcome,
)

logger = get_logger(__name__)

BUTTON_COLOR_CHOICES = [
    app_commands.Choice(name="Grey", value="secondary"),
    app_commands.Choice(name="Blue", value="primary"),
    app_commands.Choice(name="Green", value="success"),
    app_commands.Choice(name="Red", value="danger"),
]


class NotAdministrator(app_commands.CheckFailure):
    pass


def admin_only():
    """Configured administrators, Administrator or Manage Roles permission"""
    async def predicate(interaction: discord.Interaction) -> bool:
        if interaction.guild is None or not is_administrator(interaction.user, load_config()):
            raise NotAdministrator()
        return True
    return app_commands.check(predicate)


def _missing_channel_perms(channel: discord.abc.GuildChannel) -> List[str]:
    perms = channel.permissions_for(channel.guild.me)
    needed = {
        'View Channel': perms.view_channel,
        'Send Messages': perms.send_messages,
        'Embed Links': perms.embed_links,
    }
    return [name for name, granted in needed.items() if not granted]


def _where(panels) -> str:
    return ", ".join(f"**{panel.name}**" for panel in panels)


class RolePanelsCog(commands.Cog):
    """Self-assignable role panels and the approval flow for gated roles"""

    def __init__(self, bot, service: RolePanelService, connection=None):
        self.bot = bot
        self.service = service
        self.connection = connection

    async def cog_load(self):
        self.service.sweeper.start()

    async def cog_unload(self):
        self.service.sweeper.stop()
        if self.connection is not None:
            await self.connection.close()

    async def panel_autocomplete(self, interaction: discord.Interaction, current: str) -> List[app_commands.Choice[str]]:
        choices = await self.service.panels.panel_choices(interaction.guild_id, current)
        return [app_commands.Choice(name=label[:100], value=panel_id) for label, panel_id in choices[:25]]

    # ===================== ПАНЕЛИ =====================

    @app_commands.command(name="setup_panel", description="🎭 Create or re-point a role panel")
    @app_commands.describe(
        panel_id="Unique id (up to 50 letters, numbers, _ and -)",
        channel="Channel where the panel is posted",
        name="Panel title",
        description="Text shown on the panel",
        required_role="Role members need before they can use this panel",
        approval_channel="Where approval cards for this panel go",
    )
    @admin_only()
    async def setup_panel(self, interaction: discord.Interaction, panel_id: str, channel: discord.TextChannel,
                          name: str, description: Optional[str] = None,
                          required_role: Optional[discord.Role] = None,
                          approval_channel: Optional[discord.TextChannel] = None):
        await interaction.response.defer(ephemeral=True)

        missing = _missing_channel_perms(channel)
        if missing:
            await interaction.followup.send(
                f"❌ I need {', '.join(missing)} in {channel.mention}.", ephemeral=True
            )
            return

        existing = await self.service.panels.get_panel(interaction.guild_id, panel_id)
        panel = await self.service.panels.create_panel(
            interaction.guild_id, panel_id, channel.id, name,
            description=description,
            required_roles=[required_role.id] if required_role else [],
            approval_channel_id=approval_channel.id if approval_channel else None,
            update=existing is not None,
        )

        response = f"✅ Role panel **{panel.name}** (ID: `{panel.panel_id}`) has been {'updated' if existing else 'set up'} for {channel.mention}!"
        if required_role:
            response += f"\n🔒 Required role: {required_role.mention}"
        if approval_channel:
            response += f"\n📨 Approvals go to {approval_channel.mention}"
        response += (f"\n\nNext steps:\n1. Use `/add_panel_role panel_id:{panel_id}` to add roles"
                     f"\n2. Use `/update_panel panel_id:{panel_id}` to post the panel")
        await interaction.followup.send(response, ephemeral=True)
        logger.info("%s настроил панель %s в #%s", interaction.user.display_name, panel_id, channel.name)

    @app_commands.command(name="add_panel_role", description="➕ Add a role to a panel")
    @app_commands.describe(
        panel_id="Panel to add the role to",
        role="Role members can pick",
        description="Short text shown next to the role",
        emoji="Emoji for the button",
        button_color="Button color",
        requires_approval="Members must be approved before getting the role",
        team_captain="Member who approves requests for this role",
    )
    @app_commands.autocomplete(panel_id=panel_autocomplete)
    @app_commands.choices(button_color=BUTTON_COLOR_CHOICES)
    @admin_only()
    async def add_panel_role(self, interaction: discord.Interaction, panel_id: str, role: discord.Role,
                             description: Optional[str] = None, emoji: Optional[str] = None,
                             button_color: Optional[app_commands.Choice[str]] = None,
                             requires_approval: bool = False,
                             team_captain: Optional[discord.Member] = None):
        await interaction.response.defer(ephemeral=True)

        if role.is_default():
            await interaction.followup.send("❌ You cannot add the @everyone role to self-selection.", ephemeral=True)
            return
        if role.managed:
            await interaction.followup.send(
                "❌ This role is managed by an integration and cannot be assigned manually.", ephemeral=True
            )
            return
        if role >= interaction.guild.me.top_role:
            await interaction.followup.send(
                "❌ I cannot manage this role because it's higher than or equal to my highest role. "
                "Please move my role above this role in the server settings.",
                ephemeral=True,
            )
            return

        entry = RoleEntry(
            role_id=role.id,
            name=role.name,
            description=description,
            emoji=emoji,
            button_color=button_color.value if button_color else "secondary",
            requires_approval=requires_approval or team_captain is not None,
            approver_id=team_captain.id if team_captain else None,
        )
        await self.service.panels.add_role(interaction.guild_id, panel_id, entry)

        response = f"✅ Added **{role.name}** to panel **{panel_id}**!"
        if description:
            response += f"\nDescription: {description}"
        if emoji:
            response += f"\nEmoji: {emoji}"
        if entry.requires_approval:
            approver = team_captain.mention if team_captain else "administrators"
            response += f"\n🔐 Requires approval by {approver}"
        response += f"\n\nUse `/update_panel panel_id:{panel_id}` to refresh the panel."
        await interaction.followup.send(response, ephemeral=True)

    @app_commands.command(name="remove_panel_role", description="➖ Remove a role from a panel")
    @app_commands.describe(panel_id="Panel to remove the role from", role="Role to remove")
    @app_commands.autocomplete(panel_id=panel_autocomplete)
    @admin_only()
    async def remove_panel_role(self, interaction: discord.Interaction, panel_id: str, role: discord.Role):
        await interaction.response.defer(ephemeral=True)
        await self.service.panels.remove_role(interaction.guild_id, panel_id, role.id)
        await interaction.followup.send(
            f"✅ Removed **{role.name}** from panel **{panel_id}**!\n\n"
            f"Use `/update_panel panel_id:{panel_id}` to refresh the panel.",
            ephemeral=True,
        )

    @app_commands.command(name="update_panel", description="🔄 Post or refresh a role panel")
    @app_commands.describe(panel_id="Panel to post")
    @app_commands.autocomplete(panel_id=panel_autocomplete)
    @admin_only()
    async def update_panel(self, interaction: discord.Interaction, panel_id: str):
        await interaction.response.defer(ephemeral=True)

        panel = await self.service.panels.get_panel(interaction.guild_id, panel_id)
        if panel is None:
            await interaction.followup.send(f'❌ Panel "{panel_id}" not found.', ephemeral=True)
            return

        channel = interaction.guild.get_channel(panel.channel_id)
        if not isinstance(channel, discord.TextChannel):
            await interaction.followup.send(
                "❌ The configured panel channel no longer exists. Please run `/setup_panel` again.", ephemeral=True
            )
            return
        missing = _missing_channel_perms(channel)
        if missing:
            await interaction.followup.send(
                f"❌ I need {', '.join(missing)} in {channel.mention}.", ephemeral=True
            )
            return

        if panel.message:
            old_channel = interaction.guild.get_channel(panel.message.channel_id)
            if old_channel is not None:
                try:
                    old_message = await old_channel.fetch_message(panel.message.message_id)
                    await old_message.delete()
                except discord.HTTPException as e:
                    logger.info("Не удалось удалить старое сообщение панели %s: %s", panel_id, e)

        message = await channel.send(
            embed=build_panel_embed(panel, interaction.guild.name),
            view=build_panel_view(panel),
        )
        await self.service.panels.set_last_rendered_message(
            interaction.guild_id, panel_id, MessageRef(channel.id, message.id)
        )

        await interaction.followup.send(
            f"✅ Panel **{panel.name}** has been {'updated' if panel.message else 'created'} in {channel.mention}!",
            ephemeral=True,
        )
        logger.info("Панель %s опубликована в #%s (%s)", panel_id, channel.name, message.id)

    @app_commands.command(name="list_panels", description="📋 Show all role panels of this server")
    @admin_only()
    async def list_panels(self, interaction: discord.Interaction):
        panels = await self.service.panels.list_panels(interaction.guild_id)
        if not panels:
            await interaction.response.send_message(
                "❌ No role panels found for this server.\n\nUse `/setup_panel` to create your first panel!",
                ephemeral=True,
            )
            return
        await interaction.response.send_message(embed=build_panels_overview(panels, interaction.guild), ephemeral=True)

    @app_commands.command(name="list_teams", description="🏁 Show team roles with captains and series roles")
    @admin_only()
    async def list_teams(self, interaction: discord.Interaction):
        teams_and_series = await self.service.panels.list_teams_and_series(interaction.guild_id)
        await interaction.response.send_message(
            embed=build_teams_embed(teams_and_series, interaction.guild), ephemeral=True
        )

    @app_commands.command(name="set_panel_approval_channel", description="📨 Set where approval cards of a panel go")
    @app_commands.describe(panel_id="Panel", channel="Approval channel; leave empty to clear")
    @app_commands.autocomplete(panel_id=panel_autocomplete)
    @admin_only()
    async def set_panel_approval_channel(self, interaction: discord.Interaction, panel_id: str,
                                         channel: Optional[discord.TextChannel] = None):
        await self.service.panels.update_panel(
            interaction.guild_id, panel_id, approval_channel_id=channel.id if channel else None
        )
        text = f"approvals go to {channel.mention}" if channel else "approval channel cleared"
        await interaction.response.send_message(f"✅ Panel **{panel_id}**: {text}.", ephemeral=True)

    # ===================== РОЛИ С ОДОБРЕНИЕМ =====================

    @app_commands.command(name="set_role_approval", description="🔐 Require or drop approval for a role")
    @app_commands.describe(role="Role", required="Whether members need approval", panel_id="Only this panel")
    @app_commands.autocomplete(panel_id=panel_autocomplete)
    @admin_only()
    async def set_role_approval(self, interaction: discord.Interaction, role: discord.Role, required: bool,
                                panel_id: Optional[str] = None):
        panels = await self.service.panels.set_approval_requirement(interaction.guild_id, role.id, required, panel_id)
        state = "now requires approval" if required else "no longer requires approval"
        await interaction.response.send_message(f"✅ {role.mention} {state} in {_where(panels)}.", ephemeral=True)

    @app_commands.command(name="set_team_captain", description="👨‍✈️ Set who approves requests for a role")
    @app_commands.describe(role="Team role", captain="Team captain; leave empty to clear", panel_id="Only this panel")
    @app_commands.autocomplete(panel_id=panel_autocomplete)
    @admin_only()
    async def set_team_captain(self, interaction: discord.Interaction, role: discord.Role,
                               captain: Optional[discord.Member] = None, panel_id: Optional[str] = None):
        panels = await self.service.panels.set_designated_approver(
            interaction.guild_id, role.id, captain.id if captain else None, panel_id
        )
        if captain:
            text = f"✅ {captain.mention} is now the team captain of {role.mention} in {_where(panels)}."
        else:
            text = f"✅ Team captain of {role.mention} cleared; administrators approve requests."
        await interaction.response.send_message(text, ephemeral=True)

    @app_commands.command(name="set_role_approval_channel", description="📨 Set where approval cards of a role go")
    @app_commands.describe(role="Role", channel="Approval channel; leave empty to use the panel's", panel_id="Only this panel")
    @app_commands.autocomplete(panel_id=panel_autocomplete)
    @admin_only()
    async def set_role_approval_channel(self, interaction: discord.Interaction, role: discord.Role,
                                        channel: Optional[discord.TextChannel] = None,
                                        panel_id: Optional[str] = None):
        panels = await self.service.panels.set_role_approval_channel(
            interaction.guild_id, role.id, channel.id if channel else None, panel_id
        )
        target = channel.mention if channel else "the panel's approval channel"
        await interaction.response.send_message(
            f"✅ Requests for {role.mention} in {_where(panels)} go to {target}.", ephemeral=True
        )

    @app_commands.command(name="set_role_prerequisites", description="🔗 Roles a member must hold before getting a role")
    @app_commands.describe(
        role="Role", first="Required role", second="Required role", third="Required role",
        panel_id="Only this panel",
    )
    @app_commands.autocomplete(panel_id=panel_autocomplete)
    @admin_only()
    async def set_role_prerequisites(self, interaction: discord.Interaction, role: discord.Role,
                                     first: Optional[discord.Role] = None, second: Optional[discord.Role] = None,
                                     third: Optional[discord.Role] = None, panel_id: Optional[str] = None):
        prerequisites = [r.id for r in (first, second, third) if r is not None]
        panels = await self.service.panels.set_prerequisites(interaction.guild_id, role.id, prerequisites, panel_id)
        entry = panels[0].get_role(role.id)
        if entry.prerequisites:
            listed = ", ".join(f"<@&{r}>" for r in entry.prerequisites)
            text = f"✅ {role.mention} now requires {listed}."
        else:
            text = f"✅ {role.mention} has no prerequisites."
        await interaction.response.send_message(text, ephemeral=True)

    @app_commands.command(name="pending_requests", description="⏳ Show pending role requests")
    @admin_only()
    async def pending_requests(self, interaction: discord.Interaction):
        requests = await self.service.requests.list_pending(interaction.guild_id)
        await interaction.response.send_message(
            embed=build_pending_requests_embed(requests, interaction.guild), ephemeral=True
        )

    # ===================== РЕАКЦИИ НА КАРТОЧКАХ =====================

    @commands.Cog.listener()
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent):
        if payload.guild_id is None or payload.user_id == self.bot.user.id:
            return

        config = load_config()
        emoji = str(payload.emoji)
        if emoji == config.get('approve_emoji', '✅'):
            decision = Decision.APPROVE
        elif emoji == config.get('reject_emoji', '❌'):
            decision = Decision.REJECT
        else:
            return

        card = MessageRef(payload.channel_id, payload.message_id)
        try:
            result = await self.service.workflow.resolve(card, payload.user_id, decision)
        except RolePanelError as e:
            logger.warning("Заявка по карточке %s не обработана: %s", payload.message_id, e.detail)
            await self.service.notifier.notify_user(payload.user_id, f"❌ {e.detail}")
            return
        except Exception:
            logger.exception("Ошибка обработки реакции на карточке %s", payload.message_id)
            return

        if result.outcome == ResolutionOutcome.UNAUTHORIZED:
            await self._remove_reaction(payload)
            who = f"the team captain (<@{result.request.approver_id}>)" if result.request.approver_id else "administrators"
            await self.service.notifier.notify_user(
                payload.user_id, f"❌ Only {who} can approve or reject this request."
            )

    async def _remove_reaction(self, payload: discord.RawReactionActionEvent):
        channel = self.bot.get_channel(payload.channel_id)
        if channel is None:
            return
        try:
            message = await channel.fetch_message(payload.message_id)
            await message.remove_reaction(payload.emoji, discord.Object(id=payload.user_id))
        except discord.HTTPException as e:
            logger.info("Не удалось убрать реакцию %s с карточки %s: %s", payload.user_id, payload.message_id, e)

    # ===================== ОШИБКИ =====================

    async def cog_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        original = getattr(error, 'original', error)
        if isinstance(original, NotAdministrator):
            text = "❌ You need administrator or Manage Roles permission to use this command."
        elif isinstance(original, RolePanelError):
            text = f"❌ {original.detail}"
        else:
            logger.error("Ошибка команды %s: %s", interaction.command.name if interaction.command else "?", error,
                         exc_info=original)
            text = "⚠️ An unexpected error occurred. Please try again."

        if interaction.response.is_done():
            await interaction.followup.send(text, ephemeral=True)
        else:
            await interaction.response.send_message(text, ephemeral=True)


async def setup(bot):
    store, connection = await open_document_store()
    service = RolePanelService.for_bot(bot, store)
    bot.role_panels = service
    bot.add_dynamic_items(RoleToggleButton)
    await bot.add_cog(RolePanelsCog(bot, service, connection))
