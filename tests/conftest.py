"""Shared fixtures for the staff bot test suite."""

import base64
import hashlib
import hmac
import json
from unittest.mock import MagicMock

import pytest

from staff_bot.config import Settings
from staff_bot.models.user import Store
from staff_bot.services.database_service import DatabaseService
from staff_bot.services.dedup_service import DedupService
from staff_bot.services.event_router import EventRouter
from staff_bot.services.line_bot_service import LineBotService
from staff_bot.services.profile_service import ProfileService
from staff_bot.services.registration_service import RegistrationService
from staff_bot.services.rich_menu_service import RichMenuService

CHANNEL_SECRET = "test-channel-secret"


def sign(body: bytes, secret: str = CHANNEL_SECRET) -> str:
    """Compute a valid x-line-signature for body."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def sent_texts(calls) -> list:
    """Flatten the text (or alt text) of every message sent through the given mock calls."""
    texts = []
    for call in calls:
        for message in call.args[1]:
            texts.append(getattr(message, "text", None) or getattr(message, "alt_text", ""))
    return texts


def follow_event(user_id="U1", reply_token="rt-follow", **extra):
    return {"type": "follow", "source": {"type": "user", "userId": user_id}, "replyToken": reply_token, "timestamp": 1, **extra}


def text_event(text, user_id="U1", reply_token="rt-msg", **extra):
    return {
        "type": "message",
        "source": {"type": "user", "userId": user_id},
        "replyToken": reply_token,
        "timestamp": 1,
        "message": {"id": "m1", "type": "text", "text": text},
        **extra
    }


def postback_event(data, user_id="U1", reply_token="rt-pb", **extra):
    return {
        "type": "postback",
        "source": {"type": "user", "userId": user_id},
        "replyToken": reply_token,
        "timestamp": 1,
        "postback": {"data": data},
        **extra
    }


class FakeRedis:
    """Minimal stand-in for redis SET NX EX."""

    def __init__(self):
        self.store = {}

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        line_channel_secret=CHANNEL_SECRET,
        line_channel_access_token="test-token",
        database_url=f"sqlite:///{tmp_path / 'app.db'}",
        redis_url="",
        profile_fetch_backoff=0,
        default_rich_menu_id="richmenu-default",
        _env_file=None
    )


@pytest.fixture()
def database(tmp_path):
    db = DatabaseService(str(tmp_path / "test.db"))
    db.init_schema()
    db.upsert_store(Store(id="S1", name="Sunrise Cafe", store_code="AB12", max_consecutive_days=5, max_weekly_days=4))
    db.upsert_store(Store(id="S2", name="Moonlight Bar", store_code="abc123"))
    return db


@pytest.fixture()
def line_api():
    api = MagicMock()
    api.get_profile.return_value = MagicMock(display_name="Taro")
    return api


@pytest.fixture()
def line_bot_service(line_api):
    return LineBotService("test-token", line_bot_api=line_api)


@pytest.fixture()
def profile_service(line_bot_service):
    return ProfileService(line_bot_service, max_attempts=3, backoff=0, sleep=lambda seconds: None)


@pytest.fixture()
def registration_service(database, profile_service):
    return RegistrationService(database, profile_service)


@pytest.fixture()
def rich_menu_service(line_bot_service):
    return RichMenuService(line_bot_service, "staff-shift-menu", "missing.png", default_rich_menu_id="richmenu-default")


@pytest.fixture()
def router(line_bot_service, registration_service, rich_menu_service):
    return EventRouter(line_bot_service, registration_service, rich_menu_service, dedup_service=DedupService(FakeRedis()))


@pytest.fixture()
def webhook_body():
    def _build(*events) -> bytes:
        return json.dumps({"destination": "Uxxx", "events": list(events)}).encode("utf-8")
    return _build
