import pytest

from conftest import APPROVAL_CHANNEL, CAPTAIN_A, GUILD_ID, PANEL_CHANNEL, SERIES, TEAM_A, TEAM_B, VERIFIED
from utils.role_panels import ConfigurationError, ConflictError, MessageRef, RoleEntry


class TestPanels:
    """Тесты хранилища панелей"""

    @pytest.mark.asyncio
    async def test_create_and_get_panel(self, service):
        await service.panels.create_panel(GUILD_ID, "basic", PANEL_CHANNEL, "Basic Roles", description="Pick one")
        panel = await service.panels.get_panel(GUILD_ID, "basic")

        assert panel.name == "Basic Roles"
        assert panel.description == "Pick one"
        assert panel.channel_id == PANEL_CHANNEL
        assert panel.roles == []
        assert panel.message is None

    @pytest.mark.asyncio
    async def test_missing_panel_is_none(self, service):
        assert await service.panels.get_panel(GUILD_ID, "nope") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("panel_id", ["has space", "bad!", "", "p" * 51])
    async def test_invalid_panel_id(self, service, panel_id):
        with pytest.raises(ConfigurationError):
            await service.panels.create_panel(GUILD_ID, panel_id, PANEL_CHANNEL, "X")

    @pytest.mark.asyncio
    async def test_duplicate_panel_rejected_unless_update(self, service):
        await service.panels.create_panel(GUILD_ID, "basic", PANEL_CHANNEL, "Basic")
        await service.panels.add_role(GUILD_ID, "basic", RoleEntry(role_id=SERIES, name="Series"))
        await service.panels.set_last_rendered_message(GUILD_ID, "basic", MessageRef(PANEL_CHANNEL, 55))

        with pytest.raises(ConfigurationError):
            await service.panels.create_panel(GUILD_ID, "basic", PANEL_CHANNEL, "Again")

        panel = await service.panels.create_panel(GUILD_ID, "basic", 801, "Renamed", update=True)
        assert panel.name == "Renamed"
        assert panel.channel_id == 801
        assert [entry.role_id for entry in panel.roles] == [SERIES]
        assert panel.message is None

    @pytest.mark.asyncio
    async def test_update_panel_changes_only_given_fields(self, service):
        await service.panels.create_panel(GUILD_ID, "basic", PANEL_CHANNEL, "Basic", required_roles=[VERIFIED],
                                          approval_channel_id=APPROVAL_CHANNEL)
        panel = await service.panels.update_panel(GUILD_ID, "basic", name="New name")
        assert panel.name == "New name"
        assert panel.required_roles == [VERIFIED]
        assert panel.approval_channel_id == APPROVAL_CHANNEL

        panel = await service.panels.update_panel(GUILD_ID, "basic", approval_channel_id=None, required_roles=[])
        assert panel.approval_channel_id is None
        assert panel.required_roles == []

    @pytest.mark.asyncio
    async def test_panels_listed_in_creation_order(self, service):
        for panel_id in ("zeta", "alpha", "mid"):
            await service.panels.create_panel(GUILD_ID, panel_id, PANEL_CHANNEL, panel_id.title())
        panels = await service.panels.list_panels(GUILD_ID)
        assert [panel.panel_id for panel in panels] == ["zeta", "alpha", "mid"]

    @pytest.mark.asyncio
    async def test_communities_are_isolated(self, service):
        await service.panels.create_panel(GUILD_ID, "basic", PANEL_CHANNEL, "Basic")
        assert await service.panels.list_panels(GUILD_ID + 1) == []

    @pytest.mark.asyncio
    async def test_last_rendered_message(self, service):
        await service.panels.create_panel(GUILD_ID, "basic", PANEL_CHANNEL, "Basic")
        await service.panels.set_last_rendered_message(GUILD_ID, "basic", MessageRef(PANEL_CHANNEL, 42))
        panel = await service.panels.get_panel(GUILD_ID, "basic")
        assert panel.message == MessageRef(PANEL_CHANNEL, 42)

    @pytest.mark.asyncio
    async def test_panel_choices_filter(self, service):
        await service.panels.create_panel(GUILD_ID, "teams", PANEL_CHANNEL, "Teams")
        await service.panels.create_panel(GUILD_ID, "series", PANEL_CHANNEL, "Race Series")
        assert await service.panels.panel_choices(GUILD_ID, "race") == [("Race Series (series)", "series")]
        assert len(await service.panels.panel_choices(GUILD_ID)) == 2


class TestRoleEntries:
    """Тесты ролей внутри панели"""

    @pytest.mark.asyncio
    async def test_add_role_to_missing_panel(self, service):
        with pytest.raises(ConfigurationError):
            await service.panels.add_role(GUILD_ID, "nope", RoleEntry(role_id=SERIES, name="Series"))

    @pytest.mark.asyncio
    async def test_duplicate_role_conflict(self, service, teams_panel):
        with pytest.raises(ConflictError):
            await service.panels.add_role(GUILD_ID, "teams", RoleEntry(role_id=TEAM_A, name="TeamA"))

    @pytest.mark.asyncio
    async def test_remove_role(self, service, teams_panel):
        await service.panels.remove_role(GUILD_ID, "teams", SERIES)
        panel = await service.panels.get_panel(GUILD_ID, "teams")
        assert panel.get_role(SERIES) is None

        with pytest.raises(ConflictError):
            await service.panels.remove_role(GUILD_ID, "teams", SERIES)

    @pytest.mark.asyncio
    async def test_role_settings_apply_to_every_panel_holding_the_role(self, service, teams_panel):
        await service.panels.create_panel(GUILD_ID, "extra", PANEL_CHANNEL, "Extra")
        await service.panels.add_role(GUILD_ID, "extra", RoleEntry(role_id=SERIES, name="Series"))

        updated = await service.panels.set_approval_requirement(GUILD_ID, SERIES, True)
        assert {panel.panel_id for panel in updated} == {"teams", "extra"}
        for panel_id in ("teams", "extra"):
            panel = await service.panels.get_panel(GUILD_ID, panel_id)
            assert panel.get_role(SERIES).requires_approval

    @pytest.mark.asyncio
    async def test_role_settings_limited_to_one_panel(self, service, teams_panel):
        await service.panels.create_panel(GUILD_ID, "extra", PANEL_CHANNEL, "Extra")
        await service.panels.add_role(GUILD_ID, "extra", RoleEntry(role_id=SERIES, name="Series"))

        await service.panels.set_role_approval_channel(GUILD_ID, SERIES, APPROVAL_CHANNEL, panel_id="extra")
        assert (await service.panels.get_panel(GUILD_ID, "extra")).get_role(SERIES).approval_channel_id == APPROVAL_CHANNEL
        assert (await service.panels.get_panel(GUILD_ID, "teams")).get_role(SERIES).approval_channel_id is None

    @pytest.mark.asyncio
    async def test_role_settings_for_unknown_role(self, service, teams_panel):
        with pytest.raises(ConfigurationError):
            await service.panels.set_designated_approver(GUILD_ID, 999, CAPTAIN_A)

    @pytest.mark.asyncio
    async def test_set_prerequisites_drops_self_and_duplicates(self, service, teams_panel):
        await service.panels.set_prerequisites(GUILD_ID, TEAM_A, [VERIFIED, TEAM_A, VERIFIED])
        panel = await service.panels.get_panel(GUILD_ID, "teams")
        assert panel.get_role(TEAM_A).prerequisites == [VERIFIED]

    @pytest.mark.asyncio
    async def test_teams_and_series(self, service, teams_panel):
        result = await service.panels.list_teams_and_series(GUILD_ID)
        assert [team['role_id'] for team in result['teams']] == [TEAM_A]
        assert result['teams'][0]['captain_id'] == CAPTAIN_A
        assert {item['role_id'] for item in result['series']} == {TEAM_B, SERIES}


class TestPanelButtonIds:
    """Тесты длины custom_id кнопок панели"""

    @pytest.mark.asyncio
    async def test_longest_panel_id_fits_discord_custom_id(self, service):
        from forms.role_panels import build_panel_view

        panel_id = "p" * 50
        await service.panels.create_panel(GUILD_ID, panel_id, PANEL_CHANNEL, "Long")
        await service.panels.add_role(GUILD_ID, panel_id, RoleEntry(role_id=2 ** 63 - 1, name="Big"))
        view = build_panel_view(await service.panels.get_panel(GUILD_ID, panel_id))

        assert all(len(child.item.custom_id) <= 100 for child in view.children)
