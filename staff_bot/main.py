import logging
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from staff_bot import __version__
from staff_bot.config import Settings, settings as default_settings
from staff_bot.exceptions import AuthenticationFailure
from staff_bot.api.webhook import router as line_webhook_router
from staff_bot.services.database_service import DatabaseService
from staff_bot.services.dedup_service import DedupService
from staff_bot.services.event_router import EventRouter
from staff_bot.services.line_bot_service import LineBotService
from staff_bot.services.profile_service import ProfileService
from staff_bot.services.registration_service import RegistrationService
from staff_bot.services.rich_menu_service import RichMenuService

# ログ設定
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    line_bot_service: Optional[LineBotService] = None,
    database: Optional[DatabaseService] = None,
    dedup_service: Optional[DedupService] = None
) -> FastAPI:
    """アプリケーションを組み立てる（依存はここで一度だけ生成して渡す）"""
    settings = settings or default_settings

    line_bot_service = line_bot_service or LineBotService(
        settings.line_channel_access_token,
        timeout=settings.line_api_timeout
    )
    database = database or DatabaseService(settings.database_path, timeout=settings.database_timeout)
    database.init_schema()
    dedup_service = dedup_service or DedupService.from_url(settings.redis_url, settings.dedup_ttl_seconds)

    profile_service = ProfileService(
        line_bot_service,
        max_attempts=settings.profile_fetch_max_attempts,
        timeout=settings.profile_fetch_timeout,
        backoff=settings.profile_fetch_backoff,
        fallback_display_name=settings.fallback_display_name
    )
    registration_service = RegistrationService(database, profile_service, shift_menu_days=settings.shift_menu_days)
    rich_menu_service = RichMenuService(
        line_bot_service,
        menu_name=settings.rich_menu_name,
        image_path=settings.rich_menu_image_path,
        default_rich_menu_id=settings.default_rich_menu_id
    )

    # FastAPIアプリケーションの作成
    app = FastAPI(
        title="スタッフシフト希望収集Bot",
        description="LINE Botで店舗スタッフの登録とシフト希望の提出を受け付けるシステム",
        version=__version__
    )
    app.state.settings = settings
    app.state.database = database
    app.state.event_router = EventRouter(
        line_bot_service,
        registration_service,
        rich_menu_service,
        dedup_service=dedup_service,
        immediate_ack_text_messages=settings.immediate_ack_text_messages
    )

    # CORS設定
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ルーターの追加
    app.include_router(line_webhook_router)

    @app.get("/")
    async def root():
        """ルートエンドポイント"""
        return {
            "message": "スタッフシフト希望収集Bot",
            "version": __version__,
            "status": "running"
        }

    @app.get("/health")
    async def health_check():
        """ヘルスチェックエンドポイント"""
        return {"status": "healthy"}

    @app.exception_handler(AuthenticationFailure)
    async def authentication_failure_handler(request: Request, exc: AuthenticationFailure):
        """署名検証エラー（イベントは一切処理しない）"""
        logger.error(f"Rejected webhook: {exc}")
        return JSONResponse(
            status_code=401,
            content={"error": "Invalid signature"}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """グローバル例外ハンドラー（内部の詳細は返さない）"""
        logger.error(f"Global exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    return app


if __name__ == "__main__":
    uvicorn.run(
        "staff_bot.main:create_app",
        factory=True,
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug
    )
