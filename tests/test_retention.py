from datetime import datetime, timedelta, timezone

import pytest
import pytz

from conftest import GUILD_ID, MEMBER_ID, TEAM_A
from utils.config_manager import load_config, save_config
from utils.role_panels import ApprovalRequest
from utils.role_panels.approval_store import make_request_id
from utils.role_panels.retention import seconds_until


class TestSchedule:
    """Тесты расчета времени следующей очистки"""

    def test_later_today(self):
        now = pytz.timezone('Europe/Moscow').localize(datetime(2024, 5, 1, 3, 30))
        assert seconds_until(4, 0, now) == 30 * 60

    def test_tomorrow_when_time_passed(self):
        now = pytz.utc.localize(datetime(2024, 5, 1, 4, 0))
        assert seconds_until(4, 0, now) == 24 * 3600


class TestSweep:
    """Тесты очистки старых заявок"""

    async def _create(self, service, age_days, user_id):
        when = datetime.now(timezone.utc) - timedelta(days=age_days)
        request = ApprovalRequest(
            id=make_request_id(GUILD_ID, user_id, TEAM_A, when),
            community_id=GUILD_ID, user_id=user_id, role_id=TEAM_A, role_name="TeamA",
            panel_id="teams", panel_name="Teams", requested_at=when,
        )
        return await service.requests.create(request)

    @pytest.mark.asyncio
    async def test_sweep_uses_configured_retention(self, service):
        old = await self._create(service, 10, MEMBER_ID)
        fresh = await self._create(service, 1, MEMBER_ID + 1)

        assert await service.sweeper.sweep() == 0

        config = load_config()
        config['request_retention_days'] = 7
        save_config(config)

        assert await service.sweeper.sweep() == 1
        assert await service.requests.get(old.id) is None
        assert await service.requests.get(fresh.id) is not None

    @pytest.mark.asyncio
    async def test_disabled_sweep_loop_exits(self, service):
        config = load_config()
        config['retention_sweep']['enabled'] = False
        save_config(config)

        await service.sweeper._loop()
        assert service.sweeper.task is None
