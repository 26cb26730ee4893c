import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterator, List, Optional

from staff_bot.exceptions import PersistenceError
from staff_bot.models.shift import ShiftPreference, PreferenceStatus
from staff_bot.models.user import ProfileRecord, Store, StoreMembership, UserRole

logger = logging.getLogger(__name__)

SCHEMA = '''
    CREATE TABLE IF NOT EXISTS stores (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        store_code TEXT NOT NULL UNIQUE,
        max_consecutive_days INTEGER,
        max_weekly_days INTEGER
    );
    CREATE UNIQUE INDEX IF NOT EXISTS idx_stores_code_upper ON stores (UPPER(store_code));

    CREATE TABLE IF NOT EXISTS profiles (
        line_user_id TEXT PRIMARY KEY,
        name TEXT,
        current_store_id TEXT REFERENCES stores (id),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS user_stores (
        user_id TEXT NOT NULL REFERENCES profiles (line_user_id),
        store_id TEXT NOT NULL REFERENCES stores (id),
        role TEXT NOT NULL,
        max_consecutive_days INTEGER,
        max_weekly_days INTEGER,
        unavailable_days TEXT NOT NULL DEFAULT '[]',
        preferred_time_slots TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL,
        UNIQUE (user_id, store_id)
    );

    CREATE TABLE IF NOT EXISTS shift_preferences (
        user_id TEXT NOT NULL REFERENCES profiles (line_user_id),
        store_id TEXT NOT NULL REFERENCES stores (id),
        shift_date TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('ok', 'maybe', 'no')),
        time_slot TEXT,
        note TEXT,
        submitted_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (user_id, store_id, shift_date)
    );
'''


class DatabaseService:
    """共有データストアへのアクセス（書き込みは全て一意キーでのupsert）"""

    def __init__(self, db_path: str, timeout: float = 5.0):
        self.db_path = db_path
        self.timeout = timeout

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """1操作ごとに接続し、コミットまたはロールバックする"""
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not open database: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        finally:
            conn.close()

    def init_schema(self):
        """テーブルを作成（何度呼んでもよい）"""
        with self._connect() as conn:
            conn.executescript(SCHEMA)
        logger.info(f"Database schema ready: {self.db_path}")

    # --- 店舗 ---

    def upsert_store(self, store: Store) -> Store:
        with self._connect() as conn:
            conn.execute('''
                INSERT INTO stores (id, name, store_code, max_consecutive_days, max_weekly_days)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    name = excluded.name,
                    store_code = excluded.store_code,
                    max_consecutive_days = excluded.max_consecutive_days,
                    max_weekly_days = excluded.max_weekly_days
            ''', (
                store.id,
                store.name,
                store.store_code.upper(),
                store.max_consecutive_days,
                store.max_weekly_days
            ))
        return store

    def find_store_by_code(self, code: str) -> Optional[Store]:
        """店舗コードで店舗を検索（大文字小文字は区別しない）"""
        with self._connect() as conn:
            row = conn.execute('''
                SELECT id, name, store_code, max_consecutive_days, max_weekly_days
                FROM stores
                WHERE UPPER(store_code) = UPPER(?)
            ''', (code.strip(),)).fetchone()
        return Store(**dict(row)) if row else None

    def get_store(self, store_id: str) -> Optional[Store]:
        with self._connect() as conn:
            row = conn.execute('''
                SELECT id, name, store_code, max_consecutive_days, max_weekly_days
                FROM stores
                WHERE id = ?
            ''', (store_id,)).fetchone()
        return Store(**dict(row)) if row else None

    # --- プロフィール ---

    def upsert_profile(self, line_user_id: str, name: Optional[str] = None, overwrite_name: bool = True) -> None:
        """プロフィールをupsert

        name=None のときは既存の名前を保持する。overwrite_name=False のときは
        名前が未設定の行だけを埋める（仮の表示名で本名を上書きしないため）。
        """
        if not line_user_id:
            raise PersistenceError("line_user_id is required")

        if overwrite_name:
            condition = "excluded.name IS NOT NULL AND profiles.name IS NOT excluded.name"
        else:
            condition = "excluded.name IS NOT NULL AND profiles.name IS NULL"

        now = datetime.now().isoformat()
        with self._connect() as conn:
            conn.execute(f'''
                INSERT INTO profiles (line_user_id, name, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (line_user_id) DO UPDATE SET
                    name = excluded.name,
                    updated_at = excluded.updated_at
                WHERE {condition}
            ''', (line_user_id, name, now, now))
        logger.info(f"Profile upserted: {line_user_id}")

    def get_profile(self, line_user_id: str) -> Optional[ProfileRecord]:
        with self._connect() as conn:
            row = conn.execute('''
                SELECT line_user_id, name, current_store_id, created_at, updated_at
                FROM profiles
                WHERE line_user_id = ?
            ''', (line_user_id,)).fetchone()
        return ProfileRecord(**dict(row)) if row else None

    def set_current_store(self, line_user_id: str, store_id: str) -> None:
        with self._connect() as conn:
            conn.execute('''
                UPDATE profiles
                SET current_store_id = ?, updated_at = ?
                WHERE line_user_id = ? AND current_store_id IS NOT ?
            ''', (store_id, datetime.now().isoformat(), line_user_id, store_id))

    # --- 所属店舗 ---

    def upsert_membership(self, user_id: str, store_id: str, role: UserRole = UserRole.STAFF) -> StoreMembership:
        """所属をupsert

        プロフィール行の確保と同じトランザクションで行う。既存の所属は
        役割・勤務条件とも変更しない。勤務条件の初期値は店舗の設定を引き継ぐ。
        """
        now = datetime.now().isoformat()
        with self._connect() as conn:
            store = conn.execute('''
                SELECT max_consecutive_days, max_weekly_days FROM stores WHERE id = ?
            ''', (store_id,)).fetchone()
            if store is None:
                raise PersistenceError(f"Unknown store id: {store_id}")

            conn.execute('''
                INSERT INTO profiles (line_user_id, name, created_at, updated_at)
                VALUES (?, NULL, ?, ?)
                ON CONFLICT (line_user_id) DO NOTHING
            ''', (user_id, now, now))

            conn.execute('''
                INSERT INTO user_stores
                (user_id, store_id, role, max_consecutive_days, max_weekly_days, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id, store_id) DO NOTHING
            ''', (
                user_id,
                store_id,
                UserRole(role).value,
                store["max_consecutive_days"],
                store["max_weekly_days"],
                now
            ))

            row = conn.execute('''
                SELECT * FROM user_stores WHERE user_id = ? AND store_id = ?
            ''', (user_id, store_id)).fetchone()

        logger.info(f"Membership upserted: {user_id} -> {store_id}")
        return self._row_to_membership(row)

    def get_memberships(self, user_id: str) -> List[StoreMembership]:
        """ユーザーの所属店舗（登録が古い順）"""
        with self._connect() as conn:
            rows = conn.execute('''
                SELECT * FROM user_stores
                WHERE user_id = ?
                ORDER BY created_at, rowid
            ''', (user_id,)).fetchall()
        return [self._row_to_membership(row) for row in rows]

    def _row_to_membership(self, row: sqlite3.Row) -> StoreMembership:
        return StoreMembership(
            user_id=row["user_id"],
            store_id=row["store_id"],
            role=UserRole(row["role"]),
            max_consecutive_days=row["max_consecutive_days"],
            max_weekly_days=row["max_weekly_days"],
            unavailable_days=json.loads(row["unavailable_days"] or "[]"),
            preferred_time_slots=json.loads(row["preferred_time_slots"] or "[]"),
            created_at=datetime.fromisoformat(row["created_at"])
        )

    # --- シフト希望 ---

    def upsert_shift_preference(self, preference: ShiftPreference) -> ShiftPreference:
        """同じ日付の希望は後勝ちで上書き（内容が同じなら何もしない）"""
        now = datetime.now().isoformat()
        with self._connect() as conn:
            conn.execute('''
                INSERT INTO shift_preferences
                (user_id, store_id, shift_date, status, time_slot, note, submitted_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id, store_id, shift_date) DO UPDATE SET
                    status = excluded.status,
                    time_slot = excluded.time_slot,
                    note = excluded.note,
                    updated_at = excluded.updated_at
                WHERE shift_preferences.status IS NOT excluded.status
                   OR shift_preferences.time_slot IS NOT excluded.time_slot
                   OR shift_preferences.note IS NOT excluded.note
            ''', (
                preference.user_id,
                preference.store_id,
                preference.shift_date.isoformat(),
                PreferenceStatus(preference.status).value,
                preference.time_slot,
                preference.note,
                now,
                now
            ))
        logger.info(f"Shift preference upserted: {preference.user_id} {preference.shift_date} {preference.status.value}")
        return preference

    def list_shift_preferences(self, user_id: str, store_id: str, from_date: Optional[date] = None) -> List[ShiftPreference]:
        query = '''
            SELECT user_id, store_id, shift_date, status, time_slot, note, submitted_at, updated_at
            FROM shift_preferences
            WHERE user_id = ? AND store_id = ?
        '''
        params = [user_id, store_id]
        if from_date is not None:
            query += " AND shift_date >= ?"
            params.append(from_date.isoformat())
        query += " ORDER BY shift_date"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [ShiftPreference(**dict(row)) for row in rows]
