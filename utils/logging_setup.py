import gzip
import logging
import logging.config
import os
import shutil
from logging.handlers import TimedRotatingFileHandler
from typing import Iterable, Optional

logging.addLevelName(logging.WARNING, "WARN")
logging.addLevelName(logging.CRITICAL, "FATAL")

# discord.py is very chatty on DEBUG/INFO about gateway and HTTP traffic
NOISY_LOGGERS = ("discord.gateway", "discord.http", "discord.client", "sqlalchemy.engine")


class GZipTimedRotatingFileHandler(TimedRotatingFileHandler):
    """Rotates at midnight and gzips the rotated file."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.namer = lambda name: f"{name}.gz"

    def rotator(self, source: str, dest: str) -> None:
        with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
            shutil.copyfileobj(src, dst)
        os.remove(source)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = "logs/role_panels.log",
    noisy_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Configure root logging for the bot.

    Environment overrides:
        - LOG_LEVEL: root level (default INFO)
        - LOG_CONSOLE_LEVEL / LOG_FILE_LEVEL: per-handler levels (default LOG_LEVEL)
        - LOG_FILE: log file path ("", "none" or "false" disables the file handler)
        - LOG_BACKUP_COUNT: rotated archives to keep (default 14)
        - LOG_NOISY_LEVEL: level applied to discord/sqlalchemy internals (default WARNING)
    """
    env_level = os.getenv("LOG_LEVEL", level).upper()
    console_level = (os.getenv("LOG_CONSOLE_LEVEL", "") or env_level).upper()
    file_level = (os.getenv("LOG_FILE_LEVEL", "") or env_level).upper()
    noisy_level = os.getenv("LOG_NOISY_LEVEL", "WARNING").upper()
    env_log_file = os.getenv("LOG_FILE", log_file)
    backup_count = int(os.getenv("LOG_BACKUP_COUNT", "14"))
    file_disabled = env_log_file is None or str(env_log_file).strip().lower() in {"", "none", "false"}

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "console",
            "level": console_level,
        }
    }

    if not file_disabled:
        log_dir = os.path.dirname(env_log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        handlers["file"] = {
            "class": "utils.logging_setup.GZipTimedRotatingFileHandler",
            "formatter": "file",
            "filename": env_log_file,
            "when": "midnight",
            "backupCount": backup_count,
            "encoding": "utf-8",
            "level": file_level,
        }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"},
            "file": {"format": "[%(asctime)s] [%(levelname)s] [%(name)s] [%(filename)s:%(lineno)d]: %(message)s"},
        },
        "handlers": handlers,
        "loggers": {name: {"level": noisy_level} for name in noisy_loggers},
        "root": {
            "handlers": list(handlers.keys()),
            "level": env_level,
        },
    })


def get_logger(name: str) -> logging.Logger:
    """Module logger."""
    return logging.getLogger(name)
