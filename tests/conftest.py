# Test configuration
import os
import sys

# Add the project root to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Test environment variables
os.environ['TESTING'] = 'true'
os.environ['DISCORD_TOKEN'] = 'test_token_for_testing'
os.environ['DOCUMENT_STORE'] = 'memory'

import pytest
import pytest_asyncio
from itertools import count
from unittest.mock import MagicMock

from utils.database import MemoryDocumentStore
from utils.role_panels import MessageRef, RoleEntry, RolePanelService
from utils.role_panels.errors import ExternalServiceError

# Configure asyncio for pytest
pytest_plugins = ('pytest_asyncio',)

GUILD_ID = 987654321
BOT_ID = 1
ADMIN_ID = 30
CAPTAIN_A = 20
MEMBER_ID = 40
OTHER_MEMBER_ID = 41

VERIFIED = 500
TEAM_A = 501
TEAM_B = 502
SERIES = 503

APPROVAL_CHANNEL = 900
PANEL_CHANNEL = 800


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )


class FakeMembership:
    """Member roles and role positions kept in dicts"""

    def __init__(self, bot_rank: int = 100):
        self.roles = {}
        self.role_positions = {VERIFIED: 5, TEAM_A: 10, TEAM_B: 11, SERIES: 12}
        self.bot_rank = bot_rank
        self.grant_calls = []
        self.revoke_calls = []
        self.grant_error = None
        self.revoke_error = None

    def give(self, user_id, *role_ids):
        self.roles.setdefault((GUILD_ID, user_id), set()).update(role_ids)

    async def member_roles(self, community_id, user_id):
        return set(self.roles.get((community_id, user_id), set()))

    async def grant_role(self, community_id, user_id, role_id, reason=""):
        self.grant_calls.append((community_id, user_id, role_id))
        if self.grant_error:
            raise self.grant_error
        self.roles.setdefault((community_id, user_id), set()).add(role_id)

    async def revoke_role(self, community_id, user_id, role_id, reason=""):
        self.revoke_calls.append((community_id, user_id, role_id))
        if self.revoke_error:
            raise self.revoke_error
        self.roles.get((community_id, user_id), set()).discard(role_id)

    async def authority_rank(self, community_id, actor_id):
        return self.bot_rank if actor_id == BOT_ID else 0

    async def role_rank(self, community_id, role_id):
        return self.role_positions.get(role_id)


class FakeAuthorization:
    def __init__(self, admins=(ADMIN_ID,)):
        self.admins = set(admins)

    async def is_elevated_administrator(self, community_id, user_id):
        return user_id in self.admins


class FakeNotifier:
    """Records cards and DMs instead of talking to Discord"""

    def __init__(self, discovered_channel=None):
        self.discovered_channel = discovered_channel
        self.cards = []
        self.updated = []
        self.dms = []
        self.unreachable = set()
        self.deleted_channels = set()
        self.post_error = None
        self._message_ids = count(7000)

    async def find_approval_channel(self, community_id):
        return self.discovered_channel

    async def channel_exists(self, channel_id):
        return channel_id not in self.deleted_channels

    async def post_card(self, destination_id, request):
        if self.post_error:
            raise self.post_error
        ref = MessageRef(destination_id, next(self._message_ids))
        self.cards.append((ref, request))
        return ref

    async def update_card(self, ref, request):
        self.updated.append((ref, request.status))

    async def notify_user(self, user_id, text):
        if user_id in self.unreachable:
            return False
        self.dms.append((user_id, text))
        return True


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep config files of every test inside its own tmp directory"""
    data_dir = tmp_path / "data"
    monkeypatch.setattr('utils.config_manager.CONFIG_FILE', str(data_dir / "config.json"))
    monkeypatch.setattr('utils.config_manager.TEMP_CONFIG_FILE', str(data_dir / "config.json.tmp"))
    monkeypatch.setattr('utils.config_manager.BACKUP_DIR', str(data_dir / "backups"))
    return data_dir


@pytest.fixture
def document_store():
    return MemoryDocumentStore()


@pytest.fixture
def membership():
    return FakeMembership()


@pytest.fixture
def authorization():
    return FakeAuthorization()


@pytest.fixture
def notifier():
    return FakeNotifier(discovered_channel=APPROVAL_CHANNEL)


@pytest.fixture
def service(document_store, membership, authorization, notifier):
    return RolePanelService(document_store, membership, authorization, notifier, system_actor_id=BOT_ID)


@pytest_asyncio.fixture
async def teams_panel(service):
    """
    Panel "teams" gated by Verified: TeamA approved by captain A,
    TeamB approved by administrators and requiring Verified, plus a free series role.
    """
    await service.panels.create_panel(GUILD_ID, "teams", PANEL_CHANNEL, "Teams", required_roles=[VERIFIED])
    await service.panels.add_role(GUILD_ID, "teams", RoleEntry(
        role_id=TEAM_A, name="TeamA", requires_approval=True, approver_id=CAPTAIN_A,
    ))
    await service.panels.add_role(GUILD_ID, "teams", RoleEntry(
        role_id=TEAM_B, name="TeamB", requires_approval=True, prerequisites=[VERIFIED],
    ))
    await service.panels.add_role(GUILD_ID, "teams", RoleEntry(role_id=SERIES, name="Series"))
    return await service.panels.get_panel(GUILD_ID, "teams")


@pytest.fixture
def mock_discord_guild():
    """Fixture for mocking Discord guild"""
    guild = MagicMock()
    guild.id = GUILD_ID
    guild.name = "Test Guild"
    guild.get_channel = MagicMock()
    guild.get_role = MagicMock()
    guild.get_member = MagicMock()
    return guild


@pytest.fixture
def external_failure():
    return ExternalServiceError("Discord is unavailable")
