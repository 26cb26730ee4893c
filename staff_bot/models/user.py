from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel
from enum import Enum


class UserRole(str, Enum):
    MANAGER = "manager"
    STAFF = "staff"
    ADMIN = "admin"


class Profile(BaseModel):
    """LINEから取得した表示用プロフィール（保存はしない）"""
    user_id: str
    display_name: str
    is_fallback: bool = False


class ProfileRecord(BaseModel):
    line_user_id: str
    name: Optional[str] = None
    current_store_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Store(BaseModel):
    id: str
    name: str
    store_code: str
    max_consecutive_days: Optional[int] = None
    max_weekly_days: Optional[int] = None


class StoreMembership(BaseModel):
    user_id: str
    store_id: str
    role: UserRole = UserRole.STAFF
    max_consecutive_days: Optional[int] = None
    max_weekly_days: Optional[int] = None
    unavailable_days: List[str] = []
    preferred_time_slots: List[str] = []
    created_at: Optional[datetime] = None
