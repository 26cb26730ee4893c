from .database_service import DatabaseService
from .dedup_service import DedupService
from .event_router import EventRouter
from .line_bot_service import LineBotService
from .profile_service import ProfileService
from .registration_service import RegistrationService
from .reply_channel import ReplyChannel
from .rich_menu_service import RichMenuService

__all__ = [
    "DatabaseService",
    "DedupService",
    "EventRouter",
    "LineBotService",
    "ProfileService",
    "RegistrationService",
    "ReplyChannel",
    "RichMenuService"
]
