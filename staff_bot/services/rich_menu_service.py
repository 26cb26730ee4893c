import logging
import math
import mimetypes
import threading
from pathlib import Path
from typing import List, Optional, Tuple

from linebot.models import (
    RichMenu,
    RichMenuSize,
    RichMenuArea,
    RichMenuBounds,
    PostbackAction
)

from staff_bot.exceptions import UpstreamUnavailable
from staff_bot.services.line_bot_service import LineBotService

logger = logging.getLogger(__name__)

MENU_WIDTH = 2500
MENU_HEIGHT = 1686

# (ラベル, postbackデータ) を左上から右下の順に並べる
MENU_ITEMS: List[Tuple[str, str]] = [
    ("シフト希望提出", "action=show_menu"),
    ("提出内容の確認", "action=view_preferences"),
    ("店舗を追加・変更", "action=change_store"),
    ("提出先の店舗切替", "action=switch_store"),
]


def build_rich_menu(name: str, items: List[Tuple[str, str]] = MENU_ITEMS, columns: int = 2) -> RichMenu:
    """ボタンを格子状に並べたリッチメニュー定義を作る"""
    rows = math.ceil(len(items) / columns)
    cell_width = MENU_WIDTH // columns
    cell_height = MENU_HEIGHT // rows

    areas = []
    for index, (label, data) in enumerate(items):
        row, column = divmod(index, columns)
        areas.append(
            RichMenuArea(
                bounds=RichMenuBounds(
                    x=column * cell_width,
                    y=row * cell_height,
                    width=cell_width,
                    height=cell_height
                ),
                action=PostbackAction(label=label, data=data, display_text=label)
            )
        )

    return RichMenu(
        size=RichMenuSize(width=MENU_WIDTH, height=MENU_HEIGHT),
        selected=True,
        name=name,
        chat_bar_text="メニュー",
        areas=areas
    )


class RichMenuService:
    """リッチメニューの作成とユーザーへの紐付け（失敗しても例外は外に出さない）"""

    def __init__(
        self,
        line_bot_service: LineBotService,
        menu_name: str,
        image_path: str,
        default_rich_menu_id: Optional[str] = None
    ):
        self.line_bot_service = line_bot_service
        self.menu_name = menu_name
        self.image_path = Path(image_path)
        self.default_rich_menu_id = default_rich_menu_id
        self._rich_menu_id: Optional[str] = None
        # 同じバッチ内の友だち追加が並行してメニューを作らないようにする
        self._lock = threading.Lock()

    def provision_for_user(self, user_id: str) -> bool:
        """メニューを用意してユーザーに紐付ける"""
        try:
            rich_menu_id = self.ensure_rich_menu()
            self.line_bot_service.link_rich_menu_to_user(user_id, rich_menu_id)
            logger.info(f"Rich menu {rich_menu_id} linked to {user_id}")
            return True
        except Exception as e:
            logger.error(f"Rich menu provisioning failed for {user_id}: {e}")
            return False

    def ensure_rich_menu(self) -> str:
        """設定済みのID → 同名の既存メニュー → 新規作成 の順でメニューIDを決める

        同一プロセス内では一度決めたIDを使い回す。複数プロセスで動かす場合は
        DEFAULT_RICH_MENU_ID を設定しておくこと。
        """
        if self.default_rich_menu_id:
            return self.default_rich_menu_id

        with self._lock:
            if self._rich_menu_id is None:
                self._rich_menu_id = self._find_or_create_rich_menu()
            return self._rich_menu_id

    def _find_or_create_rich_menu(self) -> str:
        for rich_menu in self.line_bot_service.get_rich_menu_list():
            if rich_menu.name == self.menu_name:
                return rich_menu.rich_menu_id

        image = self.image_path.read_bytes()
        content_type = mimetypes.guess_type(str(self.image_path))[0] or "image/png"

        rich_menu_id = self.line_bot_service.create_rich_menu(build_rich_menu(self.menu_name))
        logger.info(f"Rich menu created: {rich_menu_id}")
        try:
            self.line_bot_service.set_rich_menu_image(rich_menu_id, content_type, image)
        except UpstreamUnavailable:
            # 画像のないメニューが次回再利用されないよう削除しておく
            self._delete_quietly(rich_menu_id)
            raise
        logger.info(f"Rich menu image uploaded: {rich_menu_id}")
        return rich_menu_id

    def _delete_quietly(self, rich_menu_id: str):
        try:
            self.line_bot_service.delete_rich_menu(rich_menu_id)
        except UpstreamUnavailable as e:
            logger.warning(f"Could not delete incomplete rich menu {rich_menu_id}: {e}")
