import logging
from typing import List, Optional

from staff_bot.exceptions import ReplyTokenAlreadyUsed, UpstreamUnavailable
from staff_bot.services.line_bot_service import LineBotService

logger = logging.getLogger(__name__)

# 1回の送信で送れるメッセージ数の上限
MAX_MESSAGES_PER_CALL = 5


class ReplyChannel:
    """1イベント分の送信口

    リプライトークンは最初の送信で1度だけ使い、以降はユーザーID宛ての
    プッシュ送信に切り替える。
    """

    def __init__(self, line_bot_service: LineBotService, user_id: Optional[str], reply_token: Optional[str]):
        self.line_bot_service = line_bot_service
        self.user_id = user_id
        self.reply_token = reply_token
        self._token_used = not reply_token

    @property
    def token_available(self) -> bool:
        return not self._token_used

    def reply(self, messages: List) -> None:
        """リプライトークンで送信（2回目の呼び出しはプログラミングエラー）"""
        if self._token_used:
            raise ReplyTokenAlreadyUsed(f"Reply token for {self.user_id} has already been consumed")
        self._token_used = True

        head, rest = messages[:MAX_MESSAGES_PER_CALL], messages[MAX_MESSAGES_PER_CALL:]
        try:
            self.line_bot_service.reply_message(self.reply_token, head)
        except UpstreamUnavailable as e:
            # 期限切れ・再送イベントなどでトークンが無効な場合はプッシュで届ける
            logger.warning(f"Reply failed for {self.user_id}, falling back to push: {e}")
            rest = messages
        if rest:
            self.push(rest)

    def push(self, messages: List) -> None:
        if not self.user_id:
            logger.warning("Cannot push message: event has no source user id")
            return
        for i in range(0, len(messages), MAX_MESSAGES_PER_CALL):
            self.line_bot_service.push_message(self.user_id, messages[i:i + MAX_MESSAGES_PER_CALL])

    def send(self, *messages) -> None:
        """トークンが未使用ならリプライ、使用済みならプッシュ"""
        messages = list(messages)
        if not messages:
            return
        if self.token_available:
            self.reply(messages)
        else:
            self.push(messages)
