"""Webhook処理で扱うエラー分類"""


class StaffBotError(Exception):
    """全エラーの基底クラス"""


class AuthenticationFailure(StaffBotError):
    """署名検証に失敗したリクエスト"""


class UpstreamUnavailable(StaffBotError):
    """LINE APIなど外部サービスの呼び出し失敗"""

    def __init__(self, message: str, status_code=None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ProfileUnavailable(UpstreamUnavailable):
    """リトライ上限までプロフィールを取得できなかった"""

    def __init__(self, user_id: str, attempts: int):
        super().__init__(f"Profile for {user_id} unavailable after {attempts} attempts")
        self.user_id = user_id
        self.attempts = attempts


class StoreNotFound(StaffBotError):
    """店舗コードに該当する店舗がない"""

    def __init__(self, code: str):
        super().__init__(f"Store not found for code: {code}")
        self.code = code


class PersistenceError(StaffBotError):
    """データストアへの書き込み・読み込み失敗"""


class MalformedEvent(StaffBotError):
    """必須項目が欠けたイベント（黙って破棄する）"""


class ReplyTokenAlreadyUsed(StaffBotError):
    """同じリプライトークンを2回使おうとした（プログラミングエラー）"""
