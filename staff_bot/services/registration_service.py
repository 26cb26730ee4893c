import logging
from datetime import date
from typing import Dict, Optional

from staff_bot.exceptions import MalformedEvent, PersistenceError, StoreNotFound
from staff_bot.models.shift import ShiftPreference, PreferenceStatus
from staff_bot.models.user import Store, UserRole
from staff_bot.services import message_builder
from staff_bot.services.database_service import DatabaseService
from staff_bot.services.profile_service import ProfileService
from staff_bot.services.reply_channel import ReplyChannel
from staff_bot.utils.text_parser import normalize_store_code, parse_shift_date

logger = logging.getLogger(__name__)


class RegistrationService:
    """友だち追加 → 店舗コード登録 → シフト希望提出 の流れを扱う"""

    def __init__(self, database: DatabaseService, profile_service: ProfileService, shift_menu_days: int = 7):
        self.database = database
        self.profile_service = profile_service
        self.shift_menu_days = shift_menu_days

    def on_follow(self, user_id: str, channel: ReplyChannel):
        """友だち追加時の処理

        案内文を先に返信し、その後でプロフィール取得と保存を行う。
        保存に失敗しても案内には影響しない。
        """
        channel.send(message_builder.text_message(message_builder.WELCOME_TEXT))
        logger.info(f"Sent welcome message to {user_id}")

        profile = self.profile_service.get_profile_or_default(user_id)
        try:
            # 仮の表示名では既存の名前を上書きしない
            self.database.upsert_profile(user_id, profile.display_name, overwrite_name=not profile.is_fallback)
        except PersistenceError as e:
            logger.error(f"Failed to save profile for {user_id}: {e}")

    def on_store_code(self, user_id: str, text: str, channel: ReplyChannel):
        """店舗コード入力時の処理"""
        typed_code = text.strip()
        code = normalize_store_code(typed_code)
        logger.info(f"Store code received from {user_id}: {code}")

        try:
            store = self._find_store(code)
        except StoreNotFound:
            logger.info(f"Store code not found: {code}")
            channel.send(message_builder.build_store_not_found_message(typed_code))
            return
        except PersistenceError as e:
            logger.error(f"Store lookup failed for {code}: {e}")
            channel.send(message_builder.text_message(message_builder.REGISTRATION_FAILED_TEXT))
            return

        logger.info(f"Store found: {store.id} ({store.name})")

        try:
            known = self.database.get_profile(user_id)
            # プロフィール行は所属登録と同じトランザクションで（名前なしで）作られる
            self.database.upsert_membership(user_id, store.id, UserRole.STAFF)
        except PersistenceError as e:
            logger.error(f"Membership registration failed for {user_id} -> {store.id}: {e}")
            channel.send(message_builder.text_message(message_builder.REGISTRATION_FAILED_TEXT))
            return

        try:
            self.database.set_current_store(user_id, store.id)
        except PersistenceError as e:
            logger.error(f"Failed to set current store for {user_id}: {e}")

        channel.send(
            *message_builder.build_registration_messages(store),
            self.build_shift_menu()
        )
        logger.info(f"Registration completed: {user_id} -> {store.id}")

        # 友だち追加イベントを取りこぼした場合は返信の後で表示名を補う
        if known is None or not known.name:
            self._fill_profile_name(user_id)

    def _find_store(self, code: str) -> Store:
        store = self.database.find_store_by_code(code)
        if store is None:
            raise StoreNotFound(code)
        return store

    def _fill_profile_name(self, user_id: str):
        """名前が未設定のプロフィールにだけ表示名を保存する"""
        profile = self.profile_service.get_profile_or_default(user_id)
        try:
            self.database.upsert_profile(user_id, profile.display_name, overwrite_name=False)
        except PersistenceError as e:
            logger.error(f"Failed to save profile name for {user_id}: {e}")

    def submit_preference(self, user_id: str, params: Dict[str, str], channel: ReplyChannel):
        """シフト希望の提出（postback: action=submit_preference）"""
        shift_date, status = self._parse_preference(params)

        try:
            store = self.resolve_acting_store(user_id)
        except PersistenceError as e:
            logger.error(f"Failed to resolve store for {user_id}: {e}")
            channel.send(message_builder.text_message(message_builder.PREFERENCE_FAILED_TEXT))
            return

        if store is None:
            logger.info(f"Preference from unregistered user {user_id}")
            channel.send(message_builder.text_message(message_builder.NO_STORE_TEXT))
            return

        preference = ShiftPreference(
            user_id=user_id,
            store_id=store.id,
            shift_date=shift_date,
            status=status,
            time_slot=params.get("time_slot") or None,
            note=params.get("note") or None
        )
        try:
            self.database.upsert_shift_preference(preference)
        except PersistenceError as e:
            logger.error(f"Failed to save shift preference for {user_id}: {e}")
            channel.send(message_builder.text_message(message_builder.PREFERENCE_FAILED_TEXT))
            return

        channel.send(message_builder.build_preference_saved_message(preference))

    def _parse_preference(self, params: Dict[str, str]):
        if not params.get("date") or not params.get("status"):
            raise MalformedEvent("submit_preference requires date and status")

        shift_date = parse_shift_date(params["date"])
        if shift_date is None:
            raise MalformedEvent(f"Invalid date: {params['date']}")

        try:
            status = PreferenceStatus(params["status"])
        except ValueError:
            raise MalformedEvent(f"Invalid status: {params['status']}")

        return shift_date, status

    def view_preferences(self, user_id: str, channel: ReplyChannel, today: Optional[date] = None):
        """提出済みのシフト希望を表示"""
        try:
            store = self.resolve_acting_store(user_id)
            if store is None:
                channel.send(message_builder.text_message(message_builder.NO_STORE_TEXT))
                return
            preferences = self.database.list_shift_preferences(user_id, store.id, from_date=today or date.today())
        except PersistenceError as e:
            logger.error(f"Failed to load preferences for {user_id}: {e}")
            channel.send(message_builder.text_message(message_builder.PREFERENCE_FAILED_TEXT))
            return

        channel.send(message_builder.build_preference_list_message(store, preferences))

    def change_store(self, user_id: str, channel: ReplyChannel):
        logger.info(f"Store change requested by {user_id}")
        channel.send(message_builder.text_message(message_builder.CHANGE_STORE_TEXT))

    def switch_store(self, user_id: str, params: Dict[str, str], channel: ReplyChannel):
        """提出先の店舗を切り替える（store_idなしなら候補を表示）"""
        store_id = params.get("store_id")
        try:
            memberships = self.database.get_memberships(user_id)
            if not memberships:
                channel.send(message_builder.text_message(message_builder.NO_STORE_TEXT))
                return

            if not store_id:
                profile = self.database.get_profile(user_id)
                stores = [self.database.get_store(m.store_id) for m in memberships]
                channel.send(message_builder.build_store_select_message(
                    [s for s in stores if s is not None],
                    profile.current_store_id if profile else None
                ))
                return

            if store_id not in {m.store_id for m in memberships}:
                logger.info(f"User {user_id} is not a member of store {store_id}")
                channel.send(message_builder.build_not_member_message())
                return

            store = self.database.get_store(store_id)
            self.database.set_current_store(user_id, store_id)
        except PersistenceError as e:
            logger.error(f"Failed to switch store for {user_id}: {e}")
            channel.send(message_builder.text_message(message_builder.REGISTRATION_FAILED_TEXT))
            return

        channel.send(message_builder.build_store_switched_message(store))

    def show_shift_menu(self, channel: ReplyChannel):
        channel.send(self.build_shift_menu())

    def build_shift_menu(self):
        return message_builder.build_shift_menu(days=self.shift_menu_days)

    def resolve_acting_store(self, user_id: str) -> Optional[Store]:
        """提出先の店舗を決める

        選択中の店舗（まだ所属していれば）→ 最も古い所属店舗 → なし
        """
        memberships = self.database.get_memberships(user_id)
        if not memberships:
            return None

        member_store_ids = [m.store_id for m in memberships]
        profile = self.database.get_profile(user_id)
        if profile and profile.current_store_id in member_store_ids:
            return self.database.get_store(profile.current_store_id)
        return self.database.get_store(member_store_ids[0])
