import asyncio
import logging
from typing import List, Optional

from staff_bot.exceptions import MalformedEvent
from staff_bot.models.events import (
    BaseEvent,
    FollowEvent,
    UnfollowEvent,
    MessageEvent,
    PostbackEvent
)
from staff_bot.services import message_builder
from staff_bot.services.dedup_service import DedupService
from staff_bot.services.line_bot_service import LineBotService
from staff_bot.services.registration_service import RegistrationService
from staff_bot.services.reply_channel import ReplyChannel
from staff_bot.services.rich_menu_service import RichMenuService
from staff_bot.utils.text_parser import is_store_code, contains_shift_keyword, parse_postback_data

logger = logging.getLogger(__name__)


class EventRouter:
    """受信イベントを種類ごとに振り分ける

    1イベントは1タスク内で順に処理し、イベント同士は並行に処理する。
    個々のイベントの失敗はログに残すだけで、他のイベントには影響しない。
    """

    def __init__(
        self,
        line_bot_service: LineBotService,
        registration_service: RegistrationService,
        rich_menu_service: RichMenuService,
        dedup_service: Optional[DedupService] = None,
        immediate_ack_text_messages: bool = False
    ):
        self.line_bot_service = line_bot_service
        self.registration_service = registration_service
        self.rich_menu_service = rich_menu_service
        self.dedup_service = dedup_service or DedupService()
        self.immediate_ack_text_messages = immediate_ack_text_messages

        self.postback_handlers = {
            "submit_preference": self._handle_submit_preference,
            "view_preferences": self._handle_view_preferences,
            "change_store": self._handle_change_store,
            "switch_store": self._handle_switch_store,
            "show_menu": self._handle_show_menu,
        }

    async def dispatch_batch(self, events: List[BaseEvent]):
        """バッチ内のイベントを並行に処理する"""
        await asyncio.gather(*(asyncio.to_thread(self.dispatch, event) for event in events))

    def dispatch(self, event: BaseEvent):
        user_id = event.source_user_id
        logger.info(f"Event received: {event.type} (user={user_id}, redelivery={event.is_redelivery})")

        if event.mode == "standby":
            logger.info(f"Skipping standby-mode event for {user_id}")
            return
        if not user_id:
            logger.info(f"Skipping {event.type} event without a user id")
            return
        if self.dedup_service.is_duplicate(event.webhook_event_id):
            return

        channel = ReplyChannel(self.line_bot_service, user_id, event.reply_token)
        try:
            self._route(event, channel)
        except MalformedEvent as e:
            logger.info(f"Discarding malformed {event.type} event from {user_id}: {e}")
        except Exception as e:
            logger.exception(f"Error handling {event.type} event from {user_id}: {e}")

    def _route(self, event: BaseEvent, channel: ReplyChannel):
        if isinstance(event, FollowEvent):
            self._handle_follow(event, channel)
        elif isinstance(event, UnfollowEvent):
            self._handle_unfollow(event)
        elif isinstance(event, MessageEvent):
            self._handle_message(event, channel)
        elif isinstance(event, PostbackEvent):
            self._handle_postback(event, channel)
        else:
            raise TypeError(f"Unhandled event type: {type(event).__name__}")

    def _handle_follow(self, event: FollowEvent, channel: ReplyChannel):
        """友だち追加 → 登録案内 → リッチメニュー"""
        user_id = event.source_user_id
        logger.info(f"New user followed: {user_id}")
        self.registration_service.on_follow(user_id, channel)
        self.rich_menu_service.provision_for_user(user_id)

    def _handle_unfollow(self, event: UnfollowEvent):
        # プロフィール・所属はダッシュボード側で管理するため削除しない
        logger.info(f"User unfollowed: {event.source_user_id}")

    def _handle_message(self, event: MessageEvent, channel: ReplyChannel):
        user_id = event.source_user_id
        if self.immediate_ack_text_messages and event.text is not None:
            channel.reply([message_builder.text_message(message_builder.PROCESSING_TEXT)])

        if event.text is None:
            logger.info(f"Non-text message ({event.message.type}) from {user_id}")
            channel.send(message_builder.text_message(message_builder.HELP_TEXT))
            return

        text = event.text.strip()
        logger.info(f"Received text message from {user_id}: {text}")

        if is_store_code(text):
            self.registration_service.on_store_code(user_id, text, channel)
        elif contains_shift_keyword(text):
            self.registration_service.show_shift_menu(channel)
        else:
            channel.send(message_builder.text_message(message_builder.HELP_TEXT))

    def _handle_postback(self, event: PostbackEvent, channel: ReplyChannel):
        user_id = event.source_user_id
        params = parse_postback_data(event.postback.data)
        action = params.get("action")
        logger.info(f"Received postback from {user_id}: action={action}")

        handler = self.postback_handlers.get(action)
        if handler is None:
            raise MalformedEvent(f"Unknown postback action: {action!r}")
        handler(user_id, params, channel)

    def _handle_submit_preference(self, user_id, params, channel):
        self.registration_service.submit_preference(user_id, params, channel)

    def _handle_view_preferences(self, user_id, params, channel):
        self.registration_service.view_preferences(user_id, channel)

    def _handle_change_store(self, user_id, params, channel):
        self.registration_service.change_store(user_id, channel)

    def _handle_switch_store(self, user_id, params, channel):
        self.registration_service.switch_store(user_id, params, channel)

    def _handle_show_menu(self, user_id, params, channel):
        self.registration_service.show_shift_menu(channel)
