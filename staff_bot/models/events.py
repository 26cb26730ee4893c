import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class EventSource(BaseModel):
    type: str = "user"
    user_id: Optional[str] = Field(default=None, alias="userId")


class DeliveryContext(BaseModel):
    is_redelivery: bool = Field(default=False, alias="isRedelivery")


class BaseEvent(BaseModel):
    """全イベント共通のフィールド（unfollowにはreplyTokenが付かない）"""
    source: EventSource
    timestamp: int = 0
    mode: str = "active"
    reply_token: Optional[str] = Field(default=None, alias="replyToken")
    webhook_event_id: Optional[str] = Field(default=None, alias="webhookEventId")
    delivery_context: DeliveryContext = Field(default_factory=DeliveryContext, alias="deliveryContext")

    @property
    def source_user_id(self) -> Optional[str]:
        return self.source.user_id

    @property
    def is_redelivery(self) -> bool:
        return self.delivery_context.is_redelivery


class FollowEvent(BaseEvent):
    type: Literal["follow"]


class UnfollowEvent(BaseEvent):
    type: Literal["unfollow"]


class MessageContent(BaseModel):
    id: Optional[str] = None
    type: str
    text: Optional[str] = None


class MessageEvent(BaseEvent):
    type: Literal["message"]
    message: MessageContent

    @property
    def text(self) -> Optional[str]:
        """テキストメッセージ以外はNone"""
        if self.message.type != "text":
            return None
        return self.message.text


class PostbackContent(BaseModel):
    data: str = ""
    params: Dict[str, Any] = Field(default_factory=dict)


class PostbackEvent(BaseEvent):
    type: Literal["postback"]
    postback: PostbackContent


InboundEvent = Annotated[
    Union[FollowEvent, UnfollowEvent, MessageEvent, PostbackEvent],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(InboundEvent)


def parse_event(payload: Dict[str, Any]) -> Optional[BaseEvent]:
    """1件のイベントを型付きモデルに変換（未対応・不正なものはNone）"""
    try:
        return _event_adapter.validate_python(payload)
    except ValidationError as e:
        logger.info(f"Skipping unsupported or malformed event (type={payload.get('type')}): {e.error_count()} errors")
        return None


def parse_events(body: Dict[str, Any]) -> List[BaseEvent]:
    """Webhookボディ {events: [...]} からイベント一覧を取り出す"""
    raw_events = body.get("events") or []
    if not isinstance(raw_events, list):
        logger.warning("Webhook body 'events' is not a list")
        return []

    events = []
    for payload in raw_events:
        if not isinstance(payload, dict):
            continue
        event = parse_event(payload)
        if event is not None:
            events.append(event)
    return events
