from .events import (
    BaseEvent,
    FollowEvent,
    UnfollowEvent,
    MessageEvent,
    PostbackEvent,
    InboundEvent,
    parse_event,
    parse_events,
)
from .shift import ShiftPreference, PreferenceStatus
from .user import Profile, ProfileRecord, Store, StoreMembership, UserRole

__all__ = [
    "BaseEvent",
    "FollowEvent",
    "UnfollowEvent",
    "MessageEvent",
    "PostbackEvent",
    "InboundEvent",
    "parse_event",
    "parse_events",
    "ShiftPreference",
    "PreferenceStatus",
    "Profile",
    "ProfileRecord",
    "Store",
    "StoreMembership",
    "UserRole",
]
