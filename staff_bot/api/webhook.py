import json
import logging
from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import JSONResponse

from staff_bot.exceptions import AuthenticationFailure
from staff_bot.models.events import parse_events
from staff_bot.services.signature_service import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/line", tags=["line"])


@router.post("/webhook")
async def line_webhook(request: Request, background_tasks: BackgroundTasks):
    """LINE Bot Webhook エンドポイント

    署名を検証してから200を返し、イベント処理はレスポンス後に行う。
    個々のイベントの処理結果はレスポンスに影響しない。
    """
    # 署名は受信したバイト列そのままで検証する
    body = await request.body()
    signature = request.headers.get("x-line-signature", "")
    settings = request.app.state.settings

    if not verify_signature(body, signature, settings.line_channel_secret):
        raise AuthenticationFailure("Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        logger.error("Webhook body is not valid JSON")
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})
    if not isinstance(payload, dict):
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})

    events = parse_events(payload)
    logger.info(f"Webhook accepted: {len(events)} events")
    if events:
        background_tasks.add_task(request.app.state.event_router.dispatch_batch, events)

    return {"status": "OK"}
