from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel
from enum import Enum


class PreferenceStatus(str, Enum):
    OK = "ok"
    MAYBE = "maybe"
    NO = "no"


# 表示用ラベル
STATUS_LABELS = {
    PreferenceStatus.OK: "◯ 出勤可",
    PreferenceStatus.MAYBE: "△ 相談可",
    PreferenceStatus.NO: "× 出勤不可",
}


class ShiftPreference(BaseModel):
    user_id: str
    store_id: str
    shift_date: date
    status: PreferenceStatus
    time_slot: Optional[str] = None
    note: Optional[str] = None
    submitted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def status_label(self) -> str:
        return STATUS_LABELS[self.status]
