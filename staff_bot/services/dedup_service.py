import logging
from typing import Optional

import redis

logger = logging.getLogger(__name__)

_KEY_PREFIX = "webhook:seen:line"


class DedupService:
    """再送されたWebhookイベントの重複チェック（redisのSET NX）

    redisに繋がらない場合は処理を通す（書き込みは全て冪等なため）。
    """

    def __init__(self, redis_client: Optional["redis.Redis"] = None, ttl_seconds: int = 86400):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, redis_url: str, ttl_seconds: int = 86400) -> "DedupService":
        if not redis_url:
            logger.info("REDIS_URL not set, redelivery de-duplication disabled")
            return cls(None, ttl_seconds)
        return cls(redis.from_url(redis_url, decode_responses=True), ttl_seconds)

    def is_duplicate(self, webhook_event_id: Optional[str]) -> bool:
        """初めて見るIDなら記録してFalse、既出ならTrue"""
        if not webhook_event_id or self.redis_client is None:
            return False

        key = f"{_KEY_PREFIX}:{webhook_event_id}"
        try:
            was_set = self.redis_client.set(key, "1", nx=True, ex=self.ttl_seconds)
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable for webhook dedup, allowing {webhook_event_id}: {e}")
            return False

        if not was_set:
            logger.info(f"Duplicate webhook event skipped: {webhook_event_id}")
            return True
        return False
