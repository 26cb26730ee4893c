import logging
from typing import List, Optional

import requests
from linebot import LineBotApi
from linebot.exceptions import LineBotApiError
from linebot.models import RichMenu

from staff_bot.exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)

# リトライしてよいHTTPステータス
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class LineBotService:
    """LINE Messaging APIの呼び出しをまとめたクライアント

    失敗は全て UpstreamUnavailable に変換する（retryable 属性付き）。
    """

    def __init__(self, channel_access_token: str, timeout: float = 10.0, line_bot_api: Optional[LineBotApi] = None):
        self.timeout = timeout
        self.line_bot_api = line_bot_api or LineBotApi(channel_access_token, timeout=timeout)
        logger.info("Line Bot service initialized")

    def get_profile(self, user_id: str, timeout: Optional[float] = None):
        return self._call("get_profile", user_id, timeout=timeout or self.timeout)

    def reply_message(self, reply_token: str, messages: List) -> None:
        self._call("reply_message", reply_token, messages, timeout=self.timeout)
        logger.info(f"Reply message sent ({len(messages)} messages)")

    def push_message(self, user_id: str, messages: List) -> None:
        self._call("push_message", user_id, messages, timeout=self.timeout)
        logger.info(f"Push message sent to {user_id} ({len(messages)} messages)")

    def get_rich_menu_list(self):
        return self._call("get_rich_menu_list", timeout=self.timeout)

    def create_rich_menu(self, rich_menu: RichMenu) -> str:
        return self._call("create_rich_menu", rich_menu, timeout=self.timeout)

    def set_rich_menu_image(self, rich_menu_id: str, content_type: str, content: bytes) -> None:
        self._call("set_rich_menu_image", rich_menu_id, content_type, content, timeout=self.timeout)

    def delete_rich_menu(self, rich_menu_id: str) -> None:
        self._call("delete_rich_menu", rich_menu_id, timeout=self.timeout)

    def link_rich_menu_to_user(self, user_id: str, rich_menu_id: str) -> None:
        self._call("link_rich_menu_to_user", user_id, rich_menu_id, timeout=self.timeout)

    def _call(self, method_name: str, *args, **kwargs):
        method = getattr(self.line_bot_api, method_name)
        try:
            return method(*args, **kwargs)
        except LineBotApiError as e:
            raise UpstreamUnavailable(
                f"LINE API {method_name} failed with status {e.status_code}: {e.error.message}",
                status_code=e.status_code,
                retryable=e.status_code in RETRYABLE_STATUS_CODES
            ) from e
        except requests.exceptions.RequestException as e:
            # タイムアウト・接続エラーはリトライ対象
            raise UpstreamUnavailable(
                f"LINE API {method_name} request failed: {type(e).__name__}",
                retryable=True
            ) from e
