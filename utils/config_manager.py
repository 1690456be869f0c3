"""
Bot configuration manager with backup and recovery.

The configuration lives in a single JSON file. Every save goes through a
temporary file and a timestamped backup, and a corrupted file is recovered
from the newest readable backup.
"""
import copy
import datetime
import json
import os
import shutil
from typing import Any, Dict

from utils.logging_setup import get_logger

logger = get_logger(__name__)

CONFIG_FILE = 'data/config.json'
BACKUP_DIR = 'data/backups'
TEMP_CONFIG_FILE = 'data/config.json.tmp'
MAX_BACKUPS = 10

default_config = {
    # Extra elevated administrators on top of Discord Administrator / Manage Roles
    'administrators': {
        'users': [],
        'roles': []
    },
    # Global approval channel, used when neither the role nor the panel sets one
    'approval_channel': None,
    # Discovery fallback: first text channel whose name contains this keyword
    'approval_channel_keyword': 'approval',
    'approve_emoji': '✅',
    'reject_emoji': '❌',
    # Approval requests older than this are purged by the daily sweep
    'request_retention_days': 30,
    'retention_sweep': {
        'enabled': True,
        'hour': 4,
        'minute': 0,
        'timezone': 'UTC'
    },
    # Seconds a member has to confirm leaving a role
    'revoke_confirmation_timeout': 30,
}


def _ensure_data_dir() -> None:
    directory = os.path.dirname(CONFIG_FILE)
    if directory:
        os.makedirs(directory, exist_ok=True)


def create_backup(reason: str = "auto") -> str:
    """Copy the current config file into the backup directory. Returns the backup path or ''."""
    if not os.path.exists(CONFIG_FILE):
        logger.info("No config file to backup")
        return ""

    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup_path = os.path.join(BACKUP_DIR, f"config_backup_{timestamp}_{reason}.json")
    os.makedirs(BACKUP_DIR, exist_ok=True)

    try:
        shutil.copy2(CONFIG_FILE, backup_path)
        logger.info("Backup created: %s", backup_path)
        cleanup_old_backups()
        return backup_path
    except OSError as e:
        logger.error("Failed to create backup: %s", e)
        return ""


def list_backups() -> list:
    """Backup file names, newest first."""
    if not os.path.exists(BACKUP_DIR):
        return []
    backups = [
        name for name in os.listdir(BACKUP_DIR)
        if name.startswith('config_backup_') and name.endswith('.json')
    ]
    return sorted(backups, reverse=True)


def cleanup_old_backups(keep_count: int = MAX_BACKUPS) -> None:
    for name in list_backups()[keep_count:]:
        try:
            os.remove(os.path.join(BACKUP_DIR, name))
        except OSError as e:
            logger.warning("Failed to remove old backup %s: %s", name, e)


def safe_save_config(config: Dict[str, Any]) -> bool:
    """Atomic save: write a temp file, validate it, back up the old file, move into place."""
    try:
        _ensure_data_dir()

        with open(TEMP_CONFIG_FILE, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=4, ensure_ascii=False)

        with open(TEMP_CONFIG_FILE, 'r', encoding='utf-8') as f:
            json.load(f)

        if os.path.exists(CONFIG_FILE):
            create_backup("replaced")

        shutil.move(TEMP_CONFIG_FILE, CONFIG_FILE)
        logger.info("Configuration saved")
        return True

    except (OSError, TypeError, ValueError) as e:
        logger.error("Failed to save configuration: %s", e)
        if os.path.exists(TEMP_CONFIG_FILE):
            try:
                os.remove(TEMP_CONFIG_FILE)
            except OSError:
                logger.warning("Could not remove temp config file %s", TEMP_CONFIG_FILE)
        return False


def apply_defaults(config: Dict[str, Any]) -> bool:
    """Fill keys missing from an older config file. Returns True if anything was added."""
    changed = False
    for key, value in default_config.items():
        if key not in config:
            config[key] = copy.deepcopy(value)
            changed = True
        elif isinstance(value, dict) and isinstance(config[key], dict):
            for sub_key, sub_value in value.items():
                if sub_key not in config[key]:
                    config[key][sub_key] = copy.deepcopy(sub_value)
                    changed = True
    return changed


def load_config() -> Dict[str, Any]:
    """Load the configuration, creating or recovering it when needed."""
    try:
        _ensure_data_dir()

        if not os.path.exists(CONFIG_FILE):
            logger.info("Config file doesn't exist, creating default configuration")
            config = copy.deepcopy(default_config)
            safe_save_config(config)
            return config

        with open(CONFIG_FILE, 'r', encoding='utf-8') as f:
            config = json.load(f)

        if not isinstance(config, dict):
            raise ValueError("config root must be an object")

        if apply_defaults(config):
            logger.info("Configuration extended with new default keys")
            safe_save_config(config)
        return config

    except (json.JSONDecodeError, ValueError) as e:
        logger.warning("Config file is corrupted: %s", e)
        return attempt_recovery()
    except OSError as e:
        logger.error("Error loading config: %s", e)
        return attempt_recovery()


def attempt_recovery() -> Dict[str, Any]:
    """Restore the newest readable backup, falling back to defaults."""
    logger.info("Attempting configuration recovery...")

    for backup_file in list_backups():
        backup_path = os.path.join(BACKUP_DIR, backup_file)
        try:
            with open(backup_path, 'r', encoding='utf-8') as f:
                recovered = json.load(f)
            shutil.copy2(backup_path, CONFIG_FILE)
            apply_defaults(recovered)
            logger.info("Recovered configuration from backup: %s", backup_file)
            return recovered
        except (OSError, json.JSONDecodeError) as e:
            logger.info("Backup %s is also unreadable: %s", backup_file, e)

    logger.warning("No usable backups, using default configuration")
    config = copy.deepcopy(default_config)
    safe_save_config(config)
    return config


def save_config(config: Dict[str, Any]) -> bool:
    return safe_save_config(config)


def get_config_status() -> Dict[str, Any]:
    status = {
        'config_exists': os.path.exists(CONFIG_FILE),
        'config_valid': False,
        'backup_count': len(list_backups()),
    }
    if status['config_exists']:
        try:
            with open(CONFIG_FILE, 'r', encoding='utf-8') as f:
                json.load(f)
            status['config_valid'] = True
        except (OSError, json.JSONDecodeError):
            pass
    return status


def is_administrator(user, config) -> bool:
    """Elevated administrator: configured user/role, or Discord Administrator / Manage Roles."""
    administrators = config.get('administrators', {'users': [], 'roles': []})

    if user.id in administrators.get('users', []):
        return True

    if hasattr(user, 'roles') and user.roles:
        user_role_ids = {role.id for role in user.roles}
        if user_role_ids & set(administrators.get('roles', [])):
            return True

    permissions = getattr(user, 'guild_permissions', None)
    if permissions and (permissions.administrator or permissions.manage_roles):
        return True

    return False
