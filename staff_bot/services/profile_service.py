import logging
import time
from typing import Callable

from staff_bot.exceptions import ProfileUnavailable, UpstreamUnavailable
from staff_bot.models.user import Profile
from staff_bot.services.line_bot_service import LineBotService

logger = logging.getLogger(__name__)


class ProfileService:
    """LINEプロフィール取得（リトライ・フォールバック付き）"""

    def __init__(
        self,
        line_bot_service: LineBotService,
        max_attempts: int = 3,
        timeout: float = 8.0,
        backoff: float = 2.0,
        fallback_display_name: str = "ゲストユーザー",
        sleep: Callable[[float], None] = time.sleep
    ):
        self.line_bot_service = line_bot_service
        self.max_attempts = max(1, max_attempts)
        self.timeout = timeout
        self.backoff = backoff
        self.fallback_display_name = fallback_display_name
        self._sleep = sleep

    def fetch_profile(self, user_id: str) -> Profile:
        """プロフィールを取得。上限回数まで失敗したら ProfileUnavailable"""
        for attempt in range(1, self.max_attempts + 1):
            try:
                logger.info(f"get_profile attempt {attempt}/{self.max_attempts} for {user_id}")
                profile = self.line_bot_service.get_profile(user_id, timeout=self.timeout)
                logger.info(f"get_profile succeeded: {profile.display_name} ({user_id})")
                return Profile(user_id=user_id, display_name=profile.display_name or self.fallback_display_name)
            except UpstreamUnavailable as e:
                logger.warning(f"get_profile failed (attempt {attempt}, retryable={e.retryable}): {e}")
                if attempt == self.max_attempts:
                    raise ProfileUnavailable(user_id, attempt) from e
                # 2秒、4秒... と待ち時間を延ばす
                self._sleep(self.backoff * attempt)

        raise ProfileUnavailable(user_id, self.max_attempts)

    def get_profile_or_default(self, user_id: str) -> Profile:
        """取得できなければ仮の表示名を返す（例外は投げない）"""
        try:
            return self.fetch_profile(user_id)
        except ProfileUnavailable as e:
            logger.warning(f"Using fallback profile for {user_id}: {e}")
            return Profile(user_id=user_id, display_name=self.fallback_display_name, is_fallback=True)
