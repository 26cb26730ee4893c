from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # LINE Bot設定
    line_channel_access_token: str = ""
    line_channel_secret: str = ""
    line_api_timeout: float = 10.0

    # データベース設定
    database_url: str = "sqlite:///./staff_shift.db"
    database_timeout: float = 5.0

    # Redis設定（空の場合は再送重複チェックを行わない）
    redis_url: str = ""
    dedup_ttl_seconds: int = 86400

    # プロフィール取得のリトライ設定
    profile_fetch_max_attempts: int = 3
    profile_fetch_timeout: float = 8.0
    profile_fetch_backoff: float = 2.0
    fallback_display_name: str = "ゲストユーザー"

    # リッチメニュー設定
    default_rich_menu_id: Optional[str] = None
    rich_menu_image_path: str = "static/rich_menu.png"
    rich_menu_name: str = "staff-shift-menu"

    # シフト希望メニュー設定
    shift_menu_days: int = 7
    immediate_ack_text_messages: bool = False

    # アプリケーション設定
    debug: bool = False
    environment: str = "development"

    # サーバー設定
    host: str = "0.0.0.0"
    port: int = 8000

    # 本番環境判定
    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    # 開発環境判定
    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def database_path(self) -> str:
        """sqlite:///path 形式のURLからファイルパスを取り出す"""
        prefix = "sqlite:///"
        if self.database_url.startswith(prefix):
            return self.database_url[len(prefix):]
        return self.database_url

    class Config:
        env_file = ".env"


settings = Settings()
