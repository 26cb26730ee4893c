import re
import logging
from datetime import date
from typing import Dict, Optional
from urllib.parse import parse_qsl
from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

# 店舗コード（英数字とハイフン、4〜10文字）
STORE_CODE_PATTERN = re.compile(r'^[A-Za-z0-9-]{4,10}$')

# シフト希望メニューを呼び出すキーワード
SHIFT_KEYWORDS = ("希望", "シフト")


def is_store_code(text: str) -> bool:
    """店舗コードの形式かどうか"""
    return bool(STORE_CODE_PATTERN.match(text.strip()))


def normalize_store_code(code: str) -> str:
    """前後の空白を除去して大文字に揃える"""
    return code.strip().upper()


def contains_shift_keyword(text: str) -> bool:
    return any(keyword in text for keyword in SHIFT_KEYWORDS)


def parse_postback_data(data: str) -> Dict[str, str]:
    """key=value&key=value 形式のpostbackデータを解析（同じキーは先勝ち）"""
    params: Dict[str, str] = {}
    for key, value in parse_qsl(data or "", keep_blank_values=True):
        params.setdefault(key, value)
    return params


def parse_shift_date(value: Optional[str]) -> Optional[date]:
    """YYYY-MM-DD 形式の日付を解析"""
    if not value:
        return None
    try:
        return date_parser.isoparse(value.strip()).date()
    except (ValueError, OverflowError):
        logger.info(f"Invalid shift date in postback: {value!r}")
        return None
