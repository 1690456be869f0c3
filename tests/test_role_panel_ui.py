from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from conftest import ADMIN_ID, CAPTAIN_A, GUILD_ID, MEMBER_ID, PANEL_CHANNEL, SERIES, TEAM_A, VERIFIED
from forms.role_panels import (
    RoleToggleButton, build_approval_embed, build_panel_embed, build_panel_view, build_teams_embed, describe_outcome,
    run_toggle,
)
from utils.role_panels import (
    ApprovalRequest, ApproverKind, Panel, RequestStatus, RoleEntry, ToggleAction, ToggleOutcome,
)


def make_panel():
    return Panel(
        community_id=GUILD_ID, panel_id="teams", channel_id=PANEL_CHANNEL, name="Teams",
        required_roles=[VERIFIED],
        roles=[
            RoleEntry(role_id=TEAM_A, name="TeamA", emoji="🏁", button_color="success",
                      requires_approval=True, approver_id=CAPTAIN_A),
            RoleEntry(role_id=SERIES, name="Series", description="Race series"),
        ],
    )


class TestPanelRendering:
    """Тесты отображения панели"""

    def test_panel_embed_lists_roles_and_requirements(self):
        embed = build_panel_embed(make_panel(), "Test Guild")
        roles_field = embed.fields[0].value
        assert f"<@&{TEAM_A}>" in roles_field and "approval required" in roles_field
        assert "Race series" in roles_field
        assert f"<@&{VERIFIED}>" in embed.fields[1].value

    def test_empty_panel(self):
        panel = make_panel()
        panel.roles = []
        assert build_panel_embed(panel, "Test Guild").description == "No roles are currently available in this panel."

    @pytest.mark.asyncio
    async def test_panel_view_buttons(self):
        view = build_panel_view(make_panel())
        buttons = [child.item for child in view.children]

        assert view.timeout is None
        assert [button.custom_id for button in buttons] == [f"role_toggle:teams:{TEAM_A}", f"role_toggle:teams:{SERIES}"]
        assert buttons[0].style == discord.ButtonStyle.success
        assert buttons[1].style == discord.ButtonStyle.secondary


class TestApprovalCard:
    """Тесты карточки заявки"""

    def make_request(self, **overrides):
        fields = dict(
            id="r1", community_id=GUILD_ID, user_id=MEMBER_ID, role_id=TEAM_A, role_name="TeamA",
            panel_id="teams", panel_name="Teams", approver_id=CAPTAIN_A,
            requested_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        fields.update(overrides)
        return ApprovalRequest(**fields)

    def test_pending_card_names_captain(self):
        embed = build_approval_embed(self.make_request(), "Test Guild")
        values = " ".join(field.value for field in embed.fields)
        assert f"<@{CAPTAIN_A}>" in values
        assert embed.color.value == 0xFFAA00

    def test_pending_card_uses_configured_emojis(self):
        embed = build_approval_embed(self.make_request(approver_id=None), "Test Guild", "👍", "👎")
        instructions = " ".join(field.value for field in embed.fields)
        assert "👍" in instructions and "👎" in instructions
        assert "✅" not in instructions

    def test_resolved_card(self):
        request = self.make_request(
            status=RequestStatus.REJECTED, resolved_by=ADMIN_ID, approver_kind=ApproverKind.ADMIN,
            resolved_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
        )
        embed = build_approval_embed(request, "Test Guild")
        assert "REJECTED" in embed.title
        assert any(field.value == "Admin" for field in embed.fields)
        assert any(field.value == f"<@{ADMIN_ID}>" for field in embed.fields)


class TestTeamsOverview:
    """Тесты списка команд и серий"""

    @pytest.mark.asyncio
    async def test_teams_embed(self, service, teams_panel, mock_discord_guild):
        teams_and_series = await service.panels.list_teams_and_series(GUILD_ID)
        embed = build_teams_embed(teams_and_series, mock_discord_guild)

        teams_field, series_field = embed.fields
        assert f"<@&{TEAM_A}>" in teams_field.value and f"<@{CAPTAIN_A}>" in teams_field.value
        assert f"<@&{SERIES}>" in series_field.value
        assert "admin approval" in series_field.value

    def test_empty_teams_embed(self, mock_discord_guild):
        embed = build_teams_embed({'teams': [], 'series': []}, mock_discord_guild)
        assert embed.description == "No panel roles configured yet."


class TestToggleMessages:
    """Тесты ответов на нажатие кнопки"""

    def test_describe_outcome(self):
        assert "now have" in describe_outcome(ToggleOutcome(ToggleAction.ADDED, SERIES, "Series"))
        assert "removed" in describe_outcome(ToggleOutcome(ToggleAction.REMOVED, SERIES, "Series"))
        text = describe_outcome(ToggleOutcome(ToggleAction.APPROVAL_REQUESTED, TEAM_A, "TeamA", "r1", f"<@{CAPTAIN_A}>"))
        assert f"<@{CAPTAIN_A}>" in text

    def make_interaction(self, service):
        interaction = MagicMock()
        interaction.client.role_panels = service
        interaction.guild.id = GUILD_ID
        interaction.user.id = MEMBER_ID
        return interaction

    @pytest.mark.asyncio
    async def test_run_toggle_reports_missing_roles(self, service, teams_panel):
        text = await run_toggle(self.make_interaction(service), "teams", SERIES)
        assert text.startswith("❌")
        assert f"<@&{VERIFIED}>" in text

    @pytest.mark.asyncio
    async def test_run_toggle_grants(self, service, membership, teams_panel):
        membership.give(MEMBER_ID, VERIFIED)
        text = await run_toggle(self.make_interaction(service), "teams", SERIES)
        assert "Series" in text
        assert SERIES in await membership.member_roles(GUILD_ID, MEMBER_ID)

    @pytest.mark.asyncio
    async def test_run_toggle_hides_unexpected_errors(self, service, teams_panel):
        service.toggles.toggle_role = AsyncMock(side_effect=RuntimeError("boom"))
        text = await run_toggle(self.make_interaction(service), "teams", SERIES)
        assert text.startswith("⚠️")

    @pytest.mark.asyncio
    async def test_button_restored_from_custom_id(self):
        item = discord.ui.Button(label="TeamA", custom_id=f"role_toggle:teams:{TEAM_A}")
        match = RoleToggleButton("x", 1).template.fullmatch(item.custom_id)
        button = await RoleToggleButton.from_custom_id(MagicMock(), item, match)
        assert button.panel_id == "teams"
        assert button.role_id == TEAM_A
