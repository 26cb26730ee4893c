import logging
from datetime import date, timedelta
from typing import List, Optional
from urllib.parse import urlencode

from linebot.models import (
    TextSendMessage,
    FlexSendMessage,
    BubbleContainer,
    CarouselContainer,
    BoxComponent,
    TextComponent,
    ButtonComponent,
    PostbackAction,
    QuickReply,
    QuickReplyButton
)

from staff_bot.models.shift import ShiftPreference, PreferenceStatus, STATUS_LABELS
from staff_bot.models.user import Store

logger = logging.getLogger(__name__)

WEEKDAYS = ["月", "火", "水", "木", "金", "土", "日"]

# カルーセルに入れられるバブル数の上限
MAX_CAROUSEL_BUBBLES = 12

WELCOME_TEXT = (
    "友だち追加ありがとうございます！\n\n"
    "シフト希望を提出するには、まず所属店舗の登録が必要です。\n"
    "店舗から配布された店舗コード（英数字4〜10文字）を送信してください。\n"
    "例：AB12"
)

HELP_TEXT = "「シフト希望提出」と送るとメニューが出ます！"

PROCESSING_TEXT = "処理中です...！"

REGISTRATION_FAILED_TEXT = "登録に失敗しました。店舗に連絡してください。"

PREFERENCE_FAILED_TEXT = (
    "シフト希望の登録に失敗しました。\n"
    "時間をおいてもう一度お試しください。"
)

NO_STORE_TEXT = (
    "店舗が登録されていません。\n"
    "店舗コードを送信して登録してください。"
)

CHANGE_STORE_TEXT = (
    "新しく所属する店舗の店舗コードを送信してください。\n"
    "例：AB12"
)


def text_message(text: str, quick_reply: Optional[QuickReply] = None) -> TextSendMessage:
    return TextSendMessage(text=text, quick_reply=quick_reply)


def build_store_not_found_message(code: str) -> TextSendMessage:
    return TextSendMessage(
        text="店舗コードが見つかりませんでした。\n"
             f"入力したコード: {code}\n"
             "もう一度確認してください！"
    )


def build_registration_messages(store: Store) -> List[TextSendMessage]:
    return [
        TextSendMessage(text=f"店舗登録完了しました！\n店舗: {store.name}"),
        TextSendMessage(text="これからシフト希望を提出できます。メニューから選んでください！")
    ]


def build_preference_saved_message(preference: ShiftPreference) -> TextSendMessage:
    text = f"{preference.shift_date.isoformat()} の希望を「{preference.status_label}」で登録しました！"
    if preference.time_slot:
        text += f"\n時間帯: {preference.time_slot}"
    text += "\nありがとうございます！"
    return TextSendMessage(text=text)


def build_preference_list_message(store: Store, preferences: List[ShiftPreference]) -> TextSendMessage:
    """提出済みのシフト希望一覧"""
    if not preferences:
        return TextSendMessage(text=f"【{store.name}】\nまだシフト希望が提出されていません。")

    lines = [f"【{store.name}】提出済みのシフト希望"]
    for preference in preferences:
        line = f"{_format_date(preference.shift_date)} {preference.status_label}"
        if preference.time_slot:
            line += f" ({preference.time_slot})"
        lines.append(line)
    return TextSendMessage(text="\n".join(lines))


def build_store_switched_message(store: Store) -> TextSendMessage:
    return TextSendMessage(text=f"提出先の店舗を「{store.name}」に切り替えました。")


def build_not_member_message() -> TextSendMessage:
    return TextSendMessage(
        text="その店舗には登録されていません。\n"
             "店舗コードを送信して登録してください。"
    )


def build_store_select_message(stores: List[Store], current_store_id: Optional[str]) -> TextSendMessage:
    """所属店舗を選ぶクイックリプライ"""
    items = []
    for store in stores[:13]:
        label = store.name if store.id != current_store_id else f"✓{store.name}"
        items.append(
            QuickReplyButton(
                action=PostbackAction(
                    label=label[:20],
                    data=urlencode({"action": "switch_store", "store_id": store.id}),
                    display_text=store.name
                )
            )
        )
    return TextSendMessage(
        text="シフト希望の提出先の店舗を選んでください。",
        quick_reply=QuickReply(items=items)
    )


def build_shift_menu(start: Optional[date] = None, days: int = 7) -> FlexSendMessage:
    """日付ごとに ◯/△/× を選べるシフト希望提出メニュー（翌日から）"""
    start = start or date.today() + timedelta(days=1)
    days = max(1, min(days, MAX_CAROUSEL_BUBBLES))

    bubbles = [_build_day_bubble(start + timedelta(days=offset)) for offset in range(days)]
    return FlexSendMessage(
        alt_text="シフト希望提出",
        contents=CarouselContainer(contents=bubbles)
    )


def _build_day_bubble(target_date: date) -> BubbleContainer:
    buttons = []
    for status in PreferenceStatus:
        data = urlencode({
            "action": "submit_preference",
            "date": target_date.isoformat(),
            "status": status.value
        })
        buttons.append(
            ButtonComponent(
                action=PostbackAction(label=STATUS_LABELS[status], data=data),
                style="primary" if status == PreferenceStatus.OK else "secondary",
                height="sm",
                margin="sm"
            )
        )

    return BubbleContainer(
        size="kilo",
        body=BoxComponent(
            layout="vertical",
            contents=[
                TextComponent(text="シフト希望を提出", weight="bold", size="md"),
                TextComponent(text=_format_date(target_date), weight="bold", size="xl", margin="md"),
                BoxComponent(layout="vertical", margin="lg", contents=buttons)
            ]
        )
    )


def _format_date(target_date: date) -> str:
    return f"{target_date.strftime('%m/%d')}({WEEKDAYS[target_date.weekday()]})"
