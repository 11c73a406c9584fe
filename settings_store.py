"""
Key-value settings kept in Redis.

Holds the reasoning-service credential that the admin settings endpoints manage.
Values missing from Redis fall back to the environment defaults from config.py.
"""

from typing import Dict, Optional

from logger_config import logger, log_error


class SettingsStore:
    """Redis hash backed settings with environment defaults."""

    def __init__(self, redis_client, defaults: Optional[Dict[str, Optional[str]]] = None, hash_key: str = "app_settings"):
        self.redis_client = redis_client
        self.defaults = defaults or {}
        self.hash_key = hash_key

    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, the environment default, or None. Never raises."""
        try:
            value = await self.redis_client.hget(self.hash_key, key)
        except Exception as e:
            log_error(e, "SettingsStore.get", {"key": key})
            value = None
        if value:
            return value
        return self.defaults.get(key) or None

    async def set(self, key: str, value: str) -> None:
        await self.redis_client.hset(self.hash_key, key, value)
        logger.info(f"Setting {key} updated")

    async def delete(self, key: str) -> None:
        await self.redis_client.hdel(self.hash_key, key)
        logger.info(f"Setting {key} removed")


def mask_secret(value: Optional[str]) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"
