"""
Record store backends.

MemoryBackend and SqliteBackend expose the same CRUD contract over
profiles, learning records, share records, statistics and achievements.
Records are plain JSON-serializable dicts keyed by an opaque user id.
"""
import copy
import json
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class MemoryBackend:
    name = "memory"

    def __init__(self):
        self._lock = threading.Lock()
        self._profiles = {}
        self._records = {}
        self._shares = {}
        self._stats = {}
        self._achievements = {}

    # Profiles
    def get_profile(self, user_id):
        with self._lock:
            return copy.deepcopy(self._profiles.get(user_id))

    def save_profile(self, user_id, profile):
        with self._lock:
            self._profiles[user_id] = copy.deepcopy(profile)

    def delete_profile(self, user_id):
        with self._lock:
            return self._profiles.pop(user_id, None) is not None

    # Learning records
    def add_record(self, record):
        with self._lock:
            self._records[record["id"]] = copy.deepcopy(record)

    def get_record(self, record_id):
        with self._lock:
            return copy.deepcopy(self._records.get(record_id))

    def list_records(self, user_id, limit=50, record_type=None):
        with self._lock:
            rows = [r for r in self._records.values() if r.get("userId") == user_id]
        if record_type:
            rows = [r for r in rows if r.get("type") == record_type]
        rows.sort(key=lambda r: r.get("createdAt", ""), reverse=True)
        return copy.deepcopy(rows[:limit])

    def delete_record(self, user_id, record_id):
        with self._lock:
            rec = self._records.get(record_id)
            if rec is None or rec.get("userId") != user_id:
                return False
            del self._records[record_id]
            return True

    # Share records
    def save_share(self, share):
        with self._lock:
            self._shares[share["shareId"]] = copy.deepcopy(share)

    def get_share(self, share_id):
        with self._lock:
            return copy.deepcopy(self._shares.get(share_id))

    def delete_shares_expiring_before(self, cutoff_iso):
        with self._lock:
            expired = [sid for sid, s in self._shares.items() if s.get("expiresAt", "") <= cutoff_iso]
            for sid in expired:
                del self._shares[sid]
            return len(expired)

    # Statistics
    def get_stats(self, user_id):
        with self._lock:
            return copy.deepcopy(self._stats.get(user_id))

    def save_stats(self, user_id, stats):
        with self._lock:
            self._stats[user_id] = copy.deepcopy(stats)

    # Achievements
    def list_achievements(self, user_id):
        with self._lock:
            rows = list(self._achievements.get(user_id, {}).values())
        rows.sort(key=lambda a: a.get("unlockedAt", ""))
        return copy.deepcopy(rows)

    def add_achievement(self, user_id, achievement):
        """Returns False when the user already holds this achievement."""
        with self._lock:
            held = self._achievements.setdefault(user_id, {})
            if achievement["id"] in held:
                return False
            held[achievement["id"]] = copy.deepcopy(achievement)
            return True


class SqliteBackend:
    name = "sqlite"

    def __init__(self, db_path):
        self.db_path = db_path
        directory = os.path.dirname(os.path.abspath(db_path))
        os.makedirs(directory, exist_ok=True)
        self._init_db()

    @contextmanager
    def get_connection(self):
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=30)
            conn.row_factory = sqlite3.Row
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            logger.error("Database error: %s", e)
            raise
        finally:
            if conn:
                conn.close()

    def _init_db(self):
        with self.get_connection() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS profiles (
                    user_id TEXT PRIMARY KEY,
                    data TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS learning_records (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    record_type TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    data TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_records_user
                    ON learning_records (user_id, created_at);
                CREATE TABLE IF NOT EXISTS share_records (
                    share_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    data TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS user_stats (
                    user_id TEXT PRIMARY KEY,
                    data TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS achievements (
                    user_id TEXT NOT NULL,
                    achievement_id TEXT NOT NULL,
                    unlocked_at TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (user_id, achievement_id)
                );
            """)

    def _dump(self, data):
        return json.dumps(data, ensure_ascii=False)

    def _load_one(self, sql, params):
        with self.get_connection() as conn:
            row = conn.execute(sql, params).fetchone()
        return json.loads(row["data"]) if row else None

    # Profiles
    def get_profile(self, user_id):
        return self._load_one("SELECT data FROM profiles WHERE user_id = ?", (user_id,))

    def save_profile(self, user_id, profile):
        with self.get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO profiles (user_id, data) VALUES (?, ?)",
                (user_id, self._dump(profile)),
            )

    def delete_profile(self, user_id):
        with self.get_connection() as conn:
            cur = conn.execute("DELETE FROM profiles WHERE user_id = ?", (user_id,))
            return cur.rowcount > 0

    # Learning records
    def add_record(self, record):
        with self.get_connection() as conn:
            conn.execute(
                "INSERT INTO learning_records (id, user_id, record_type, created_at, data) VALUES (?, ?, ?, ?, ?)",
                (record["id"], record["userId"], record["type"], record["createdAt"], self._dump(record)),
            )

    def get_record(self, record_id):
        return self._load_one("SELECT data FROM learning_records WHERE id = ?", (record_id,))

    def list_records(self, user_id, limit=50, record_type=None):
        sql = "SELECT data FROM learning_records WHERE user_id = ?"
        params = [user_id]
        if record_type:
            sql += " AND record_type = ?"
            params.append(record_type)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(int(limit))
        with self.get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [json.loads(r["data"]) for r in rows]

    def delete_record(self, user_id, record_id):
        with self.get_connection() as conn:
            cur = conn.execute(
                "DELETE FROM learning_records WHERE id = ? AND user_id = ?",
                (record_id, user_id),
            )
            return cur.rowcount > 0

    # Share records
    def save_share(self, share):
        with self.get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO share_records (share_id, user_id, expires_at, data) VALUES (?, ?, ?, ?)",
                (share["shareId"], share["userId"], share["expiresAt"], self._dump(share)),
            )

    def get_share(self, share_id):
        return self._load_one("SELECT data FROM share_records WHERE share_id = ?", (share_id,))

    def delete_shares_expiring_before(self, cutoff_iso):
        with self.get_connection() as conn:
            cur = conn.execute("DELETE FROM share_records WHERE expires_at <= ?", (cutoff_iso,))
            return cur.rowcount

    # Statistics
    def get_stats(self, user_id):
        return self._load_one("SELECT data FROM user_stats WHERE user_id = ?", (user_id,))

    def save_stats(self, user_id, stats):
        with self.get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO user_stats (user_id, data) VALUES (?, ?)",
                (user_id, self._dump(stats)),
            )

    # Achievements
    def list_achievements(self, user_id):
        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT data FROM achievements WHERE user_id = ? ORDER BY unlocked_at",
                (user_id,),
            ).fetchall()
        return [json.loads(r["data"]) for r in rows]

    def add_achievement(self, user_id, achievement):
        with self.get_connection() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO achievements (user_id, achievement_id, unlocked_at, data) VALUES (?, ?, ?, ?)",
                (user_id, achievement["id"], achievement["unlockedAt"], self._dump(achievement)),
            )
            return cur.rowcount > 0


def create_backend(database_path=None):
    if database_path:
        logger.info("Using SQLite record store at %s", database_path)
        return SqliteBackend(database_path)
    logger.info("No database configured, using in-memory record store")
    return MemoryBackend()
