"""
discord.py implementations of the role panel ports.

Discord exceptions are translated here into the role panel error types so the
core never imports discord.
"""
from typing import Optional, Set

import discord

from utils.config_manager import is_administrator, load_config
from utils.logging_setup import get_logger

from .errors import ConfigurationError, ExternalServiceError, InsufficientPermissionError
from .models import ApprovalRequest, MessageRef

logger = get_logger(__name__)


class _GuildLookup:
    def __init__(self, bot):
        self.bot = bot

    def _guild(self, community_id: int) -> discord.Guild:
        guild = self.bot.get_guild(community_id)
        if guild is None:
            raise ConfigurationError("Server not found.")
        return guild

    async def _member(self, guild: discord.Guild, user_id: int) -> Optional[discord.Member]:
        member = guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id)
        except discord.NotFound:
            return None
        except discord.HTTPException as e:
            raise ExternalServiceError(f"Could not load member {user_id}: {e}") from e


class DiscordMembershipService(_GuildLookup):
    """Role membership through the guild's member cache"""

    async def member_roles(self, community_id: int, user_id: int) -> Set[int]:
        member = await self._member(self._guild(community_id), user_id)
        if member is None:
            return set()
        return {role.id for role in member.roles}

    async def _resolve(self, community_id: int, user_id: int, role_id: int):
        guild = self._guild(community_id)
        role = guild.get_role(role_id)
        if role is None:
            raise ConfigurationError("Role not found.")
        member = await self._member(guild, user_id)
        if member is None:
            raise ConfigurationError("Member not found on this server.")
        return member, role

    async def grant_role(self, community_id: int, user_id: int, role_id: int, reason: str = "") -> None:
        member, role = await self._resolve(community_id, user_id, role_id)
        if role in member.roles:
            return
        try:
            await member.add_roles(role, reason=reason or None)
            logger.info("Роль %s выдана пользователю %s", role.name, member.display_name)
        except discord.Forbidden as e:
            logger.error("Нет прав для выдачи роли %s пользователю %s", role.name, member.display_name)
            raise InsufficientPermissionError(f"I don't have permission to assign {role.mention}.") from e
        except discord.HTTPException as e:
            logger.error("Ошибка Discord при выдаче роли %s: %s", role.name, e)
            raise ExternalServiceError(f"Discord failed to assign {role.mention}. Please try again.") from e

    async def revoke_role(self, community_id: int, user_id: int, role_id: int, reason: str = "") -> None:
        member, role = await self._resolve(community_id, user_id, role_id)
        if role not in member.roles:
            return
        try:
            await member.remove_roles(role, reason=reason or None)
            logger.info("Роль %s снята с пользователя %s", role.name, member.display_name)
        except discord.Forbidden as e:
            logger.error("Нет прав для снятия роли %s с пользователя %s", role.name, member.display_name)
            raise InsufficientPermissionError(f"I don't have permission to remove {role.mention}.") from e
        except discord.HTTPException as e:
            logger.error("Ошибка Discord при снятии роли %s: %s", role.name, e)
            raise ExternalServiceError(f"Discord failed to remove {role.mention}. Please try again.") from e

    async def authority_rank(self, community_id: int, actor_id: int) -> int:
        guild = self._guild(community_id)
        if guild.me is not None and actor_id == guild.me.id:
            return guild.me.top_role.position
        member = await self._member(guild, actor_id)
        return member.top_role.position if member else 0

    async def role_rank(self, community_id: int, role_id: int) -> Optional[int]:
        role = self._guild(community_id).get_role(role_id)
        return role.position if role else None


class DiscordAuthorization(_GuildLookup):
    """Administrators: configured users/roles, Administrator or Manage Roles permission"""

    async def is_elevated_administrator(self, community_id: int, user_id: int) -> bool:
        guild = self.bot.get_guild(community_id)
        if guild is None:
            return False
        member = await self._member(guild, user_id)
        if member is None:
            return False
        return is_administrator(member, load_config())


class DiscordNotificationDispatcher(_GuildLookup):
    """Approval cards in text channels and direct messages to members"""

    def _can_post(self, channel: discord.TextChannel) -> bool:
        perms = channel.permissions_for(channel.guild.me)
        return perms.send_messages and perms.embed_links and perms.add_reactions

    async def find_approval_channel(self, community_id: int) -> Optional[int]:
        guild = self.bot.get_guild(community_id)
        if guild is None:
            return None
        config = load_config()

        configured = config.get('approval_channel')
        if configured:
            channel = guild.get_channel(int(configured))
            if isinstance(channel, discord.TextChannel):
                return channel.id
            logger.warning("Канал заявок %s из конфигурации не найден на сервере %s", configured, guild.name)

        keyword = (config.get('approval_channel_keyword') or 'approval').lower()
        for channel in guild.text_channels:
            if keyword in channel.name.lower() and self._can_post(channel):
                logger.info("Канал заявок найден по названию: #%s", channel.name)
                return channel.id
        return None

    async def channel_exists(self, channel_id: int) -> bool:
        return isinstance(self.bot.get_channel(channel_id), (discord.TextChannel, discord.Thread))

    def _channel(self, channel_id: int) -> discord.TextChannel:
        channel = self.bot.get_channel(channel_id)
        if not isinstance(channel, (discord.TextChannel, discord.Thread)):
            raise ConfigurationError(f"Approval channel <#{channel_id}> not found.")
        return channel

    async def post_card(self, destination_id: int, request: ApprovalRequest) -> MessageRef:
        # Local import: forms depends on utils, not the other way round at import time
        from forms.role_panels.embeds import build_approval_embed

        channel = self._channel(destination_id)
        config = load_config()
        approve_emoji = config.get('approve_emoji', '✅')
        reject_emoji = config.get('reject_emoji', '❌')
        content = f"<@{request.approver_id}>" if request.approver_id else None
        try:
            message = await channel.send(
                content=content,
                embed=build_approval_embed(request, channel.guild.name, approve_emoji, reject_emoji),
            )
        except discord.Forbidden as e:
            raise ExternalServiceError(f"I can't post in {channel.mention}.") from e
        except discord.HTTPException as e:
            raise ExternalServiceError(f"Failed to send the approval request: {e}") from e

        try:
            await message.add_reaction(approve_emoji)
            await message.add_reaction(reject_emoji)
        except discord.HTTPException as e:
            logger.warning("Не удалось добавить реакции к карточке %s: %s", message.id, e)

        return MessageRef(channel.id, message.id)

    async def update_card(self, ref: MessageRef, request: ApprovalRequest) -> None:
        from forms.role_panels.embeds import build_approval_embed

        try:
            channel = self._channel(ref.channel_id)
            message = await channel.fetch_message(ref.message_id)
        except (ConfigurationError, discord.HTTPException) as e:
            raise ExternalServiceError(f"Approval card {ref.message_id} is gone: {e}") from e

        try:
            await message.edit(embed=build_approval_embed(request, channel.guild.name))
        except discord.HTTPException as e:
            raise ExternalServiceError(f"Failed to update approval card: {e}") from e

        try:
            await message.clear_reactions()
        except discord.Forbidden:
            logger.info("Нет прав Manage Messages для очистки реакций в #%s", channel.name)
        except discord.HTTPException as e:
            logger.warning("Не удалось очистить реакции карточки %s: %s", ref.message_id, e)

    async def notify_user(self, user_id: int, text: str) -> bool:
        try:
            user = self.bot.get_user(user_id) or await self.bot.fetch_user(user_id)
            await user.send(text)
            return True
        except discord.HTTPException as e:
            logger.debug("ЛС пользователю %s не доставлено: %s", user_id, e)
            return False
