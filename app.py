import os
import asyncio
import signal
import discord
from discord.ext import commands
from dotenv import load_dotenv

from utils.config_manager import load_config, create_backup, get_config_status
from utils.logging_setup import setup_logging, get_logger

# Load environment variables from .env file
load_dotenv()

# Initialize logging before bot creation
setup_logging()
logger = get_logger(__name__)

# Members for role checks, reactions for approval cards
intents = discord.Intents.default()
intents.members = True
intents.guild_reactions = True

bot = commands.Bot(command_prefix='!', intents=intents)

_extensions_loaded = False


@bot.event
async def on_ready():
    global _extensions_loaded
    logger.info('Logged in as %s (ID: %s)', bot.user, bot.user.id)
    logger.info('------')

    # on_ready fires again after reconnects
    if _extensions_loaded:
        logger.info("Переподключение к Discord, расширения уже загружены")
        return

    logger.info("Проверка системы конфигурации...")
    status = get_config_status()
    if status['config_exists'] and status['config_valid']:
        backup_path = create_backup("startup")
        if backup_path:
            logger.info("Создан стартовый бэкап: %s", backup_path)
        logger.info("Статус конфигурации: доступно %s бэкапов", status['backup_count'])
    else:
        logger.warning("Обнаружены проблемы конфигурации, будет создана конфигурация по умолчанию")

    config = load_config()
    logger.info('Канал заявок: %s', config.get('approval_channel') or 'поиск по названию')
    logger.info('Хранение заявок: %s дн.', config.get('request_retention_days'))

    await load_extensions()
    _extensions_loaded = True

    try:
        synced = await bot.tree.sync()
        logger.info('Синхронизировано %s команд(ы)', len(synced))
    except discord.HTTPException as e:
        logger.error('Не удалось синхронизировать команды: %s', e)


async def load_extensions():
    """Load all extension cogs from the cogs directory."""
    for filename in sorted(os.listdir('./cogs')):
        if filename.endswith('.py') and not filename.startswith('_'):
            cog_name = filename[:-3]
            try:
                await bot.load_extension(f'cogs.{cog_name}')
                logger.info('Загружено расширение: %s', cog_name)
            except commands.ExtensionError as e:
                logger.error('Не удалось загрузить расширение %s: %s', cog_name, e, exc_info=e)


async def shutdown_handler(sig=None):
    """Gracefully shutdown the bot."""
    logger.warning("Получен сигнал завершения %s", sig or "")
    for extension in list(bot.extensions):
        try:
            await bot.unload_extension(extension)
        except commands.ExtensionError as e:
            logger.error("Ошибка выгрузки расширения %s: %s", extension, e)
    await bot.close()
    logger.info("Бот успешно завершил работу")


async def main(token: str):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda s=sig: asyncio.create_task(shutdown_handler(s)))
        except NotImplementedError:
            logger.debug("Обработчик сигнала %s недоступен на этой платформе", sig)

    async with bot:
        await bot.start(token)


if __name__ == '__main__':
    logger.info("Запуск бота панелей ролей...")
    logger.info("Для остановки нажмите Ctrl+C")

    token = os.environ.get('DISCORD_TOKEN')
    if not token:
        raise ValueError(
            "No Discord token found. Please either:\n"
            "1. Set the DISCORD_TOKEN environment variable\n"
            "2. Create a .env file with DISCORD_TOKEN=your_token"
        )

    try:
        asyncio.run(main(token))
    except KeyboardInterrupt:
        pass
