"""
Interaction Log Module for Redis

This module records lightweight analytics about chat turns:
- How often each Vastu direction rule was served
- Metadata of uploaded room photos (never the image bytes)

Writes are best effort: a Redis outage is logged and never fails a turn.
"""

import json
import time
from typing import Dict

from logger_config import log_error

DIRECTION_COUNTS_KEY = "analytics:vastu_directions"
IMAGE_UPLOADS_KEY = "analytics:image_uploads"
MAX_IMAGE_RECORDS = 1000


class InteractionLog:
    """Handles storage of turn analytics in Redis"""

    def __init__(self, redis_client=None):
        self.redis_client = redis_client

    async def record_direction(self, direction: str) -> None:
        try:
            await self.redis_client.hincrby(DIRECTION_COUNTS_KEY, direction, 1)
        except Exception as e:
            log_error(e, "InteractionLog.record_direction", {"direction": direction})

    async def record_image(self, size_bytes: int, filename: str = None, mime_type: str = None) -> None:
        record = {
            "timestamp": int(time.time()),
            "size_bytes": size_bytes,
            "filename": filename,
            "mime_type": mime_type,
        }
        try:
            await self.redis_client.lpush(IMAGE_UPLOADS_KEY, json.dumps(record))
            await self.redis_client.ltrim(IMAGE_UPLOADS_KEY, 0, MAX_IMAGE_RECORDS - 1)
        except Exception as e:
            log_error(e, "InteractionLog.record_image", record)

    async def get_direction_counts(self) -> Dict[str, int]:
        try:
            counts = await self.redis_client.hgetall(DIRECTION_COUNTS_KEY)
        except Exception as e:
            log_error(e, "InteractionLog.get_direction_counts")
            return {}
        return {direction: int(count) for direction, count in (counts or {}).items()}
