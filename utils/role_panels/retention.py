"""
Daily purge of old approval requests.

Requests are never expired in memory; this sweep runs once a day at the
configured local time and deletes stored requests older than
``request_retention_days``.
"""
import asyncio
from datetime import datetime, timedelta

import pytz

from utils.config_manager import load_config
from utils.logging_setup import get_logger

from .approval_store import ApprovalRequestStore

logger = get_logger(__name__)


def seconds_until(hour: int, minute: int, now: datetime) -> float:
    """Seconds from ``now`` (tz-aware) until the next hour:minute in the same timezone."""
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if now >= target:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class RetentionSweeper:
    """Background task purging old approval requests"""

    def __init__(self, requests: ApprovalRequestStore):
        self.requests = requests
        self.task = None

    def start(self):
        if self.task is None or self.task.done():
            self.task = asyncio.create_task(self._loop())
            logger.info("Очистка заявок на роли запланирована")

    def stop(self):
        if self.task and not self.task.done():
            self.task.cancel()
            logger.info("Очистка заявок на роли остановлена")

    async def sweep(self) -> int:
        config = load_config()
        days = int(config.get('request_retention_days', 30))
        return await self.requests.purge_older_than(days)

    async def _loop(self):
        while True:
            try:
                schedule = load_config().get('retention_sweep', {})
                if not schedule.get('enabled', True):
                    logger.info("Очистка заявок отключена в конфигурации")
                    return

                tz = pytz.timezone(schedule.get('timezone', 'UTC'))
                delay = seconds_until(schedule.get('hour', 4), schedule.get('minute', 0), datetime.now(tz))
                logger.info("Следующая очистка заявок через %sч %sм", int(delay // 3600), int((delay % 3600) // 60))
                await asyncio.sleep(delay)

                removed = await self.sweep()
                logger.info("Очистка заявок завершена, удалено: %s", removed)

                # Avoid firing twice within the same minute
                await asyncio.sleep(60)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning("Ошибка в задаче очистки заявок: %s", e)
                await asyncio.sleep(300)
