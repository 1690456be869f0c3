"""
Embeds for role panels and approval cards
"""
import discord

from utils.role_panels.models import ApprovalRequest, Panel, RequestStatus

PANEL_COLOR = 0x5865F2
LOCKED_COLOR = 0xFF6B6B
PENDING_COLOR = 0xFFAA00
APPROVED_COLOR = 0x00FF00
REJECTED_COLOR = 0xFF0000

MAX_FIELD_LENGTH = 1024


def _timestamp(value) -> str:
    return f"<t:{int(value.timestamp())}:R>"


def _clip(text: str) -> str:
    return text if len(text) <= MAX_FIELD_LENGTH else text[:MAX_FIELD_LENGTH - 3] + "..."


def build_panel_embed(panel: Panel, guild_name: str) -> discord.Embed:
    embed = discord.Embed(
        title=f"🎭 {panel.name}",
        description=panel.description or "Click the buttons below to add or remove roles!",
        color=PANEL_COLOR,
        timestamp=discord.utils.utcnow(),
    )
    embed.set_footer(text=f"{guild_name} • {panel.name}")

    if not panel.roles:
        embed.description = "No roles are currently available in this panel."
        return embed

    lines = []
    for entry in panel.roles:
        line = f"{entry.emoji or '🔹'} <@&{entry.role_id}>"
        if entry.description:
            line += f" - {entry.description}"
        if entry.requires_approval:
            line += " *(approval required)*"
        lines.append(line)
    embed.add_field(name="Available Roles", value=_clip("\n".join(lines)), inline=False)

    if panel.required_roles:
        required = ", ".join(f"<@&{role_id}>" for role_id in panel.required_roles)
        embed.add_field(name="🔒 Required Roles", value=f"You need: {required}", inline=False)

    return embed


def build_approval_embed(request: ApprovalRequest, guild_name: str,
                         approve_emoji: str = "✅", reject_emoji: str = "❌") -> discord.Embed:
    """Approval card; reflects the request status, so the same builder renders pending and resolved cards."""
    embed = discord.Embed(
        title="🏁 Team Join Request",
        description="A member wants to join a team!",
        color=PENDING_COLOR,
        timestamp=request.requested_at,
    )
    embed.add_field(name="🚴 Member", value=f"<@{request.user_id}>", inline=True)
    embed.add_field(name="🏆 Team Role", value=f"<@&{request.role_id}>", inline=True)
    embed.add_field(name="📋 Panel", value=request.panel_name or request.panel_id, inline=True)
    embed.add_field(name="🕐 Requested At", value=_timestamp(request.requested_at), inline=False)

    if request.status == RequestStatus.PENDING:
        if request.approver_id:
            embed.add_field(name="👨‍✈️ Team Captain", value=f"<@{request.approver_id}>", inline=True)
            embed.add_field(
                name="✅ How to Approve",
                value=(f"<@{request.approver_id}> React with {approve_emoji} to approve or {reject_emoji} to reject!\n\n"
                       "*Admins can also approve or reject this request.*"),
                inline=False,
            )
            embed.set_footer(text=f"{guild_name} • Team Captain: React {approve_emoji} to approve, {reject_emoji} to reject")
        else:
            embed.add_field(
                name="✅ How to Approve",
                value=f"Admins: React with {approve_emoji} to approve or {reject_emoji} to reject this request.",
                inline=False,
            )
            embed.set_footer(text=f"{guild_name} • Admin approval required")
        return embed

    approved = request.status == RequestStatus.APPROVED
    verb = "Approved" if approved else "Rejected"
    embed.title = f"{'✅' if approved else '❌'} Team Join Request - {verb.upper()}"
    embed.color = APPROVED_COLOR if approved else REJECTED_COLOR
    resolver = f"<@{request.resolved_by}>" if request.resolved_by else "unknown"
    embed.add_field(name=f"👮 {verb} By", value=resolver, inline=True)
    if request.resolved_at:
        embed.add_field(name=f"🕐 {verb} At", value=_timestamp(request.resolved_at), inline=True)
    if request.approver_kind:
        embed.add_field(name="👥 Approver Type", value=request.approver_kind.value, inline=True)
    embed.set_footer(text=f"{guild_name} • {verb}")
    return embed


def build_panels_overview(panels, guild: discord.Guild) -> discord.Embed:
    embed = discord.Embed(
        title="🎭 Role Panels",
        description="Here are all the role panels configured for this server:",
        color=PANEL_COLOR,
        timestamp=discord.utils.utcnow(),
    )
    embed.set_footer(text=f"{guild.name} • Role Panel Management")

    for panel in panels[:24]:
        channel = guild.get_channel(panel.channel_id)
        value = f"**Channel:** {channel.mention if channel else '❌ Channel not found'}\n"
        value += f"**Roles:** {len(panel.roles)}"
        gated = sum(1 for entry in panel.roles if entry.requires_approval)
        if gated:
            value += f" ({gated} need approval)"
        value += "\n"
        if panel.required_roles:
            value += "**Required:** " + ", ".join(f"<@&{r}>" for r in panel.required_roles) + "\n"
        if panel.approval_channel_id:
            value += f"**Approvals:** <#{panel.approval_channel_id}>\n"
        value += f"**Status:** {'✅ Active' if panel.message else '⚠️ Not deployed'}"
        embed.add_field(name=f"{panel.name} (`{panel.panel_id}`)", value=_clip(value), inline=True)

    return embed


def build_pending_requests_embed(requests, guild: discord.Guild) -> discord.Embed:
    embed = discord.Embed(
        title="⏳ Pending Role Requests",
        color=PENDING_COLOR,
        timestamp=discord.utils.utcnow(),
    )
    if not requests:
        embed.description = "No pending requests."
        return embed

    lines = []
    for request in requests[:25]:
        line = f"<@{request.user_id}> → <@&{request.role_id}> ({_timestamp(request.requested_at)})"
        if request.card:
            line += f" [card](https://discord.com/channels/{guild.id}/{request.card.channel_id}/{request.card.message_id})"
        else:
            line += " ⚠️ card not delivered"
        lines.append(line)
    embed.description = _clip("\n".join(lines))
    if len(requests) > 25:
        embed.set_footer(text=f"... and {len(requests) - 25} more")
    return embed


def build_teams_embed(teams_and_series, guild: discord.Guild) -> discord.Embed:
    """Team roles with their captains, then the remaining series roles"""
    embed = discord.Embed(
        title="🏁 Teams & Series",
        color=PANEL_COLOR,
        timestamp=discord.utils.utcnow(),
    )
    embed.set_footer(text=f"{guild.name} • Role Panel Management")

    teams = teams_and_series['teams']
    series = teams_and_series['series']
    if not teams and not series:
        embed.description = "No panel roles configured yet."
        return embed

    if teams:
        lines = [f"<@&{team['role_id']}> - captain <@{team['captain_id']}> ({team['panel_name']})" for team in teams]
        embed.add_field(name="🏆 Teams", value=_clip("\n".join(lines)), inline=False)
    if series:
        lines = []
        for item in series:
            line = f"<@&{item['role_id']}> ({item['panel_name']})"
            if item['requires_approval']:
                line += " *(admin approval)*"
            lines.append(line)
        embed.add_field(name="🚴 Series", value=_clip("\n".join(lines)), inline=False)
    return embed
