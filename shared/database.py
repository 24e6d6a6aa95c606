"""
SQLite Database Manager for Bourbon Buddy.
Owns the schema and every query for collections, videos, comments,
live-stream interactions and security events.
"""

import sqlite3
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import List, Dict, Any, Optional, Iterable

from shared.models import (
    Spirit, Video, Comment, SecurityEvent, Stream, StreamReport, StreamTip, User,
    VideoStatus, utc_now_iso,
)
from shared.constants import DEFAULT_CONFIG_DIR, DATABASE_FILENAME, PLACEHOLDER_PLAYBACK_PREFIX

logger = logging.getLogger(__name__)

SPIRIT_COLUMNS = [
    "id", "owner_id", "name", "brand", "category", "type", "description",
    "release_year", "proof", "price", "rating", "is_favorite", "date_acquired",
    "bottle_size", "distillery", "bottle_level", "image_url", "web_image_url",
    "nose", "palate", "finish", "notes", "created_at", "updated_at", "deleted_at",
]

VIDEO_COLUMNS = [
    "id", "title", "description", "status", "mux_upload_id", "mux_asset_id",
    "mux_playback_id", "duration", "aspect_ratio", "thumbnail_time", "user_id",
    "publicly_listed", "views", "created_at", "updated_at",
]

SPIRIT_SORTS = {
    "updated": "updated_at DESC",
    "name": "name COLLATE NOCASE ASC",
    "rating": "rating IS NULL, rating DESC",
    "price": "price IS NULL, price DESC",
    "created": "created_at DESC",
}


def _fts_query(query: str) -> str:
    """Turn free text into an FTS5 prefix query: each word quoted and starred."""
    words = [w.replace('"', '') for w in query.split()]
    return " ".join(f'"{w}"*' for w in words if w)


class DatabaseManager:
    def __init__(self, db_path: Optional[str] = None):
        if db_path is None:
            db_dir = Path(DEFAULT_CONFIG_DIR).expanduser()
            db_dir.mkdir(parents=True, exist_ok=True)
            self.db_path = db_dir / DATABASE_FILENAME
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.fts_enabled = False
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly in _transaction()
        conn = sqlite3.connect(self.db_path, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def _connection(self):
        conn = self._get_connection()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self):
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    def _init_db(self):
        """Initialize the database schema."""
        with self._transaction() as conn:
            # 1. Base Tables
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT UNIQUE NOT NULL,
                    image TEXT,
                    token_hash TEXT UNIQUE,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS spirits (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    brand TEXT NOT NULL,
                    category TEXT NOT NULL DEFAULT 'whiskey',
                    type TEXT,
                    description TEXT,
                    release_year INTEGER,
                    proof REAL,
                    price REAL,
                    rating INTEGER,
                    is_favorite BOOLEAN DEFAULT 0,
                    date_acquired TEXT,
                    bottle_size TEXT,
                    distillery TEXT,
                    bottle_level INTEGER,
                    image_url TEXT,
                    web_image_url TEXT,
                    nose TEXT,
                    palate TEXT,
                    finish TEXT,
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    deleted_at TEXT
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS spirits_owner_idx ON spirits(owner_id)")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS videos (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL DEFAULT 'uploading',
                    mux_upload_id TEXT UNIQUE,
                    mux_asset_id TEXT UNIQUE,
                    mux_playback_id TEXT,
                    duration REAL,
                    aspect_ratio TEXT,
                    thumbnail_time REAL DEFAULT 0,
                    user_id TEXT,
                    publicly_listed BOOLEAN DEFAULT 1,
                    views INTEGER DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS video_status_idx ON videos(status)")
            conn.execute("CREATE INDEX IF NOT EXISTS video_user_id_idx ON videos(user_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS video_created_at_idx ON videos(created_at)")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS comments (
                    id TEXT PRIMARY KEY,
                    content TEXT NOT NULL,
                    video_id TEXT NOT NULL REFERENCES videos(id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL,
                    review_id TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS comments_video_idx ON comments(video_id)")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS security_events (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    severity TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    user_id TEXT,
                    ip TEXT,
                    user_agent TEXT,
                    metadata TEXT
                )
            """)
            for column in ("type", "timestamp", "ip", "user_id"):
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS security_events_{column}_idx ON security_events({column})"
                )

            conn.execute("""
                CREATE TABLE IF NOT EXISTS streams (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    host_id TEXT NOT NULL,
                    spirit_id TEXT,
                    is_live BOOLEAN DEFAULT 1,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS stream_likes (
                    stream_id TEXT NOT NULL REFERENCES streams(id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (stream_id, user_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS stream_reports (
                    id TEXT PRIMARY KEY,
                    stream_id TEXT NOT NULL REFERENCES streams(id) ON DELETE CASCADE,
                    user_id TEXT NOT NULL,
                    reason TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS stream_tips (
                    id TEXT PRIMARY KEY,
                    stream_id TEXT NOT NULL REFERENCES streams(id) ON DELETE CASCADE,
                    sender_id TEXT NOT NULL,
                    host_id TEXT NOT NULL,
                    amount REAL NOT NULL,
                    message TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            # 2. Search Index (FTS5)
            try:
                conn.execute("""
                    CREATE VIRTUAL TABLE IF NOT EXISTS spirits_fts USING fts5(
                        id UNINDEXED,
                        name,
                        brand,
                        distillery,
                        type,
                        notes,
                        content='spirits',
                        content_rowid='rowid'
                    )
                """)
                conn.execute("DROP TRIGGER IF EXISTS spirits_ai")
                conn.execute("""
                    CREATE TRIGGER spirits_ai AFTER INSERT ON spirits BEGIN
                        INSERT INTO spirits_fts(rowid, id, name, brand, distillery, type, notes)
                        VALUES (new.rowid, new.id, new.name, new.brand, new.distillery, new.type, new.notes);
                    END
                """)
                conn.execute("DROP TRIGGER IF EXISTS spirits_ad")
                conn.execute("""
                    CREATE TRIGGER spirits_ad AFTER DELETE ON spirits BEGIN
                        INSERT INTO spirits_fts(spirits_fts, rowid, id, name, brand, distillery, type, notes)
                        VALUES ('delete', old.rowid, old.id, old.name, old.brand, old.distillery, old.type, old.notes);
                    END
                """)
                conn.execute("DROP TRIGGER IF EXISTS spirits_au")
                conn.execute("""
                    CREATE TRIGGER spirits_au AFTER UPDATE ON spirits BEGIN
                        INSERT INTO spirits_fts(spirits_fts, rowid, id, name, brand, distillery, type, notes)
                        VALUES ('delete', old.rowid, old.id, old.name, old.brand, old.distillery, old.type, old.notes);
                        INSERT INTO spirits_fts(rowid, id, name, brand, distillery, type, notes)
                        VALUES (new.rowid, new.id, new.name, new.brand, new.distillery, new.type, new.notes);
                    END
                """)
                self.fts_enabled = True
            except sqlite3.OperationalError:
                logger.info("FTS5 not available; spirit search falls back to LIKE")

            # 3. Schema Migrations (Ensure columns exist)
            columns = [row[1] for row in conn.execute("PRAGMA table_info(videos)").fetchall()]
            if 'thumbnail_time' not in columns:
                conn.execute("ALTER TABLE videos ADD COLUMN thumbnail_time REAL DEFAULT 0")
            columns = [row[1] for row in conn.execute("PRAGMA table_info(spirits)").fetchall()]
            if 'web_image_url' not in columns:
                conn.execute("ALTER TABLE spirits ADD COLUMN web_image_url TEXT")

    # --- Users ---

    def insert_user(self, user: User) -> User:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO users (id, name, email, image, token_hash, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                (user.id, user.name, user.email, user.image, user.token_hash, user.created_at),
            )
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return User.from_dict(dict(row)) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ? COLLATE NOCASE", (email,)).fetchone()
            return User.from_dict(dict(row)) if row else None

    def get_user_by_token_hash(self, token_hash: str) -> Optional[User]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE token_hash = ?", (token_hash,)).fetchone()
            return User.from_dict(dict(row)) if row else None

    # --- Spirits ---

    def _spirit_params(self, spirit: Spirit) -> List[Any]:
        data = spirit.to_dict()
        for key in ("nose", "palate", "finish"):
            data[key] = json.dumps(data[key] or [])
        return [data[c] for c in SPIRIT_COLUMNS]

    def insert_spirit(self, spirit: Spirit) -> Spirit:
        placeholders = ", ".join("?" * len(SPIRIT_COLUMNS))
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO spirits ({', '.join(SPIRIT_COLUMNS)}) VALUES ({placeholders})",
                self._spirit_params(spirit),
            )
        return spirit

    def update_spirit(self, spirit_id: str, owner_id: str, updates: Dict[str, Any]) -> Optional[Spirit]:
        """Apply a partial update. Returns the updated spirit, or None if not found."""
        updates = {k: v for k, v in updates.items() if k in SPIRIT_COLUMNS and k not in ("id", "owner_id", "created_at")}
        for key in ("nose", "palate", "finish"):
            if key in updates:
                updates[key] = json.dumps(updates[key] or [])
        updates["updated_at"] = utc_now_iso()

        assignments = ", ".join(f"{k} = ?" for k in updates)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE spirits SET {assignments} WHERE id = ? AND owner_id = ? AND deleted_at IS NULL",
                list(updates.values()) + [spirit_id, owner_id],
            )
            if cursor.rowcount == 0:
                return None
        return self.get_spirit(spirit_id, owner_id)

    def soft_delete_spirit(self, spirit_id: str, owner_id: str) -> bool:
        now = utc_now_iso()
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE spirits SET deleted_at = ?, updated_at = ? WHERE id = ? AND owner_id = ? AND deleted_at IS NULL",
                (now, now, spirit_id, owner_id),
            )
            return cursor.rowcount > 0

    def get_spirit(self, spirit_id: str, owner_id: Optional[str] = None) -> Optional[Spirit]:
        sql = "SELECT * FROM spirits WHERE id = ? AND deleted_at IS NULL"
        params: List[Any] = [spirit_id]
        if owner_id is not None:
            sql += " AND owner_id = ?"
            params.append(owner_id)
        with self._connection() as conn:
            row = conn.execute(sql, params).fetchone()
            return Spirit.from_dict(dict(row)) if row else None

    def list_spirits(
        self,
        owner_id: str,
        category: Optional[str] = None,
        spirit_type: Optional[str] = None,
        favorites_only: bool = False,
        query: Optional[str] = None,
        sort: str = "updated",
        limit: Optional[int] = None,
    ) -> List[Spirit]:
        """Owner's live spirits with optional filters."""
        sql = "SELECT * FROM spirits WHERE owner_id = ? AND deleted_at IS NULL"
        params: List[Any] = [owner_id]
        if category:
            sql += " AND category = ?"
            params.append(category)
        if spirit_type:
            sql += " AND type = ? COLLATE NOCASE"
            params.append(spirit_type)
        if favorites_only:
            sql += " AND is_favorite = 1"
        if query:
            ids = self._search_ids(owner_id, query)
            if not ids:
                return []
            sql += f" AND id IN ({','.join('?' * len(ids))})"
            params.extend(ids)
        sql += f" ORDER BY {SPIRIT_SORTS.get(sort, SPIRIT_SORTS['updated'])}"
        if limit:
            sql += " LIMIT ?"
            params.append(limit)

        with self._connection() as conn:
            return [Spirit.from_dict(dict(row)) for row in conn.execute(sql, params).fetchall()]

    def _search_ids(self, owner_id: str, query: str) -> List[str]:
        with self._connection() as conn:
            if self.fts_enabled and _fts_query(query):
                try:
                    rows = conn.execute("""
                        SELECT s.id FROM spirits s
                        JOIN spirits_fts f ON s.id = f.id
                        WHERE spirits_fts MATCH ? AND s.owner_id = ? AND s.deleted_at IS NULL
                        ORDER BY rank
                    """, (_fts_query(query), owner_id)).fetchall()
                    return [r["id"] for r in rows]
                except sqlite3.OperationalError as e:
                    logger.debug(f"FTS query failed for '{query}': {e}")
            like = f"%{query}%"
            rows = conn.execute("""
                SELECT id FROM spirits
                WHERE owner_id = ? AND deleted_at IS NULL
                  AND (name LIKE ? OR brand LIKE ? OR distillery LIKE ? OR type LIKE ? OR notes LIKE ?)
            """, (owner_id, like, like, like, like, like)).fetchall()
            return [r["id"] for r in rows]

    def search_spirits(self, owner_id: str, query: str) -> List[Spirit]:
        """Fast search spirits using FTS5 or LIKE, relevance ordered."""
        if not query:
            return self.list_spirits(owner_id)
        ids = self._search_ids(owner_id, query)
        by_id = {s.id: s for s in self.list_spirits(owner_id, query=query)}
        return [by_id[i] for i in ids if i in by_id]

    def featured_spirits(self, limit: int = 10) -> List[Spirit]:
        """Favourites and top rated bottles across all collections."""
        with self._connection() as conn:
            rows = conn.execute("""
                SELECT * FROM spirits
                WHERE deleted_at IS NULL
                ORDER BY is_favorite DESC, rating IS NULL, rating DESC, updated_at DESC
                LIMIT ?
            """, (limit,)).fetchall()
            return [Spirit.from_dict(dict(row)) for row in rows]

    def spirit_stats(self, owner_id: str) -> Dict[str, Any]:
        with self._connection() as conn:
            row = conn.execute("""
                SELECT COUNT(*) AS total,
                       COALESCE(SUM(CASE WHEN is_favorite THEN 1 ELSE 0 END), 0) AS favorites,
                       COUNT(DISTINCT category) AS categories,
                       AVG(rating) AS average_rating,
                       COALESCE(SUM(price), 0) AS total_value
                FROM spirits WHERE owner_id = ? AND deleted_at IS NULL
            """, (owner_id,)).fetchone()
            tastings = conn.execute(
                "SELECT COUNT(*) FROM videos WHERE user_id = ? AND status != ?",
                (owner_id, VideoStatus.DELETED.value),
            ).fetchone()[0]
        average = row["average_rating"]
        return {
            "total_spirits": row["total"],
            "favorites": row["favorites"],
            "categories": row["categories"],
            "average_rating": round(average, 1) if average is not None else None,
            "total_value": round(row["total_value"], 2),
            "tastings": tastings,
        }

    # --- Videos ---

    def insert_video(self, video: Video) -> Video:
        data = video.to_dict()
        placeholders = ", ".join("?" * len(VIDEO_COLUMNS))
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO videos ({', '.join(VIDEO_COLUMNS)}) VALUES ({placeholders})",
                [data[c] for c in VIDEO_COLUMNS],
            )
        return video

    def _get_video_where(self, column: str, value: str) -> Optional[Video]:
        with self._connection() as conn:
            row = conn.execute(f"SELECT * FROM videos WHERE {column} = ?", (value,)).fetchone()
            return Video.from_dict(dict(row)) if row else None

    def get_video(self, video_id: str) -> Optional[Video]:
        return self._get_video_where("id", video_id)

    def get_video_by_upload_id(self, upload_id: str) -> Optional[Video]:
        return self._get_video_where("mux_upload_id", upload_id)

    def get_video_by_asset_id(self, asset_id: str) -> Optional[Video]:
        return self._get_video_where("mux_asset_id", asset_id)

    def update_video(self, video_id: str, updates: Dict[str, Any]) -> Optional[Video]:
        """Write the given columns on one video row. Last write wins."""
        updates = {k: v for k, v in updates.items() if k in VIDEO_COLUMNS and k not in ("id", "created_at")}
        if not updates:
            return self.get_video(video_id)
        updates["updated_at"] = utc_now_iso()
        assignments = ", ".join(f"{k} = ?" for k in updates)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE videos SET {assignments} WHERE id = ?",
                list(updates.values()) + [video_id],
            )
            if cursor.rowcount == 0:
                return None
        return self.get_video(video_id)

    def list_public_videos(self, limit: int = 20, offset: int = 0) -> List[Video]:
        with self._connection() as conn:
            rows = conn.execute("""
                SELECT * FROM videos
                WHERE publicly_listed = 1 AND status = ?
                ORDER BY created_at DESC
                LIMIT ? OFFSET ?
            """, (VideoStatus.READY.value, limit, offset)).fetchall()
            return [Video.from_dict(dict(row)) for row in rows]

    def list_videos(self, user_id: Optional[str] = None) -> List[Video]:
        sql = "SELECT * FROM videos"
        params: List[Any] = []
        if user_id:
            sql += " WHERE user_id = ?"
            params.append(user_id)
        sql += " ORDER BY created_at DESC"
        with self._connection() as conn:
            return [Video.from_dict(dict(row)) for row in conn.execute(sql, params).fetchall()]

    def reconciliation_candidates(self, cutoff_iso: str, limit: int) -> List[Video]:
        """
        Videos whose local state may lag the video platform: stuck in
        uploading/processing since before the cutoff, or ready without a
        real playback id.
        """
        with self._connection() as conn:
            rows = conn.execute("""
                SELECT * FROM videos
                WHERE (status IN (?, ?) AND updated_at < ?)
                   OR mux_playback_id LIKE ?
                   OR (status = ? AND (mux_playback_id IS NULL OR mux_playback_id = ''))
                ORDER BY updated_at ASC
                LIMIT ?
            """, (
                VideoStatus.UPLOADING.value, VideoStatus.PROCESSING.value, cutoff_iso,
                f"{PLACEHOLDER_PLAYBACK_PREFIX}%",
                VideoStatus.READY.value,
                limit,
            )).fetchall()
            return [Video.from_dict(dict(row)) for row in rows]

    def increment_views(self, video_id: str) -> Optional[int]:
        with self._transaction() as conn:
            cursor = conn.execute("UPDATE videos SET views = views + 1 WHERE id = ?", (video_id,))
            if cursor.rowcount == 0:
                return None
            return conn.execute("SELECT views FROM videos WHERE id = ?", (video_id,)).fetchone()[0]

    def delete_video(self, video_id: str) -> bool:
        with self._transaction() as conn:
            return conn.execute("DELETE FROM videos WHERE id = ?", (video_id,)).rowcount > 0

    # --- Comments ---

    def insert_comment(self, comment: Comment) -> Comment:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO comments (id, content, video_id, user_id, review_id, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                (comment.id, comment.content, comment.video_id, comment.user_id, comment.review_id, comment.created_at),
            )
        return self.get_comment(comment.id)

    def get_comment(self, comment_id: str) -> Optional[Comment]:
        with self._connection() as conn:
            row = conn.execute("""
                SELECT c.*, u.name AS user_name, u.image AS user_image
                FROM comments c LEFT JOIN users u ON u.id = c.user_id
                WHERE c.id = ?
            """, (comment_id,)).fetchone()
            return Comment.from_dict(dict(row)) if row else None

    def list_comments(self, video_id: str) -> List[Comment]:
        with self._connection() as conn:
            rows = conn.execute("""
                SELECT c.*, u.name AS user_name, u.image AS user_image
                FROM comments c LEFT JOIN users u ON u.id = c.user_id
                WHERE c.video_id = ?
                ORDER BY c.created_at DESC
            """, (video_id,)).fetchall()
            return [Comment.from_dict(dict(row)) for row in rows]

    # --- Security events ---

    def insert_security_event(self, event: SecurityEvent) -> None:
        with self._transaction() as conn:
            conn.execute("""
                INSERT INTO security_events (id, type, severity, timestamp, user_id, ip, user_agent, metadata)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                event.id, event.type, event.severity, event.timestamp, event.user_id,
                event.ip, event.user_agent, json.dumps(event.metadata or {}, default=str),
            ))

    def count_security_events(self, event_type: str, ip: str, since_iso: str) -> int:
        with self._connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM security_events WHERE type = ? AND ip = ? AND timestamp >= ?",
                (event_type, ip, since_iso),
            ).fetchone()[0]

    def query_security_events(
        self,
        limit: int = 100,
        types: Optional[Iterable[str]] = None,
        severities: Optional[Iterable[str]] = None,
        user_id: Optional[str] = None,
        ip: Optional[str] = None,
        start_iso: Optional[str] = None,
        end_iso: Optional[str] = None,
    ) -> List[SecurityEvent]:
        sql = "SELECT * FROM security_events WHERE 1 = 1"
        params: List[Any] = []
        for column, values in (("type", types), ("severity", severities)):
            values = list(values or [])
            if values:
                sql += f" AND {column} IN ({','.join('?' * len(values))})"
                params.extend(values)
        if user_id:
            sql += " AND user_id = ?"
            params.append(user_id)
        if ip:
            sql += " AND ip = ?"
            params.append(ip)
        if start_iso:
            sql += " AND timestamp >= ?"
            params.append(start_iso)
        if end_iso:
            sql += " AND timestamp <= ?"
            params.append(end_iso)
        sql += " ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)
        with self._connection() as conn:
            return [SecurityEvent.from_dict(dict(row)) for row in conn.execute(sql, params).fetchall()]

    def clear_security_events(self) -> int:
        with self._transaction() as conn:
            return conn.execute("DELETE FROM security_events").rowcount

    # --- Streams ---

    def insert_stream(self, stream: Stream) -> Stream:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO streams (id, title, description, host_id, spirit_id, is_live, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (stream.id, stream.title, stream.description, stream.host_id, stream.spirit_id, stream.is_live, stream.created_at),
            )
        return stream

    def get_stream(self, stream_id: str) -> Optional[Stream]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM streams WHERE id = ?", (stream_id,)).fetchone()
            return Stream.from_dict(dict(row)) if row else None

    def list_live_streams(self) -> List[Stream]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM streams WHERE is_live = 1 ORDER BY created_at DESC").fetchall()
            return [Stream.from_dict(dict(row)) for row in rows]

    def set_stream_live(self, stream_id: str, is_live: bool) -> bool:
        with self._transaction() as conn:
            return conn.execute("UPDATE streams SET is_live = ? WHERE id = ?", (is_live, stream_id)).rowcount > 0

    def toggle_stream_like(self, stream_id: str, user_id: str) -> bool:
        """Flip the like. Returns True if the stream is now liked by the user."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM stream_likes WHERE stream_id = ? AND user_id = ?", (stream_id, user_id)
            )
            if cursor.rowcount:
                return False
            conn.execute(
                "INSERT INTO stream_likes (stream_id, user_id, created_at) VALUES (?, ?, ?)",
                (stream_id, user_id, utc_now_iso()),
            )
            return True

    def count_stream_likes(self, stream_id: str) -> int:
        with self._connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM stream_likes WHERE stream_id = ?", (stream_id,)).fetchone()[0]

    def has_liked_stream(self, stream_id: str, user_id: str) -> bool:
        with self._connection() as conn:
            return conn.execute(
                "SELECT 1 FROM stream_likes WHERE stream_id = ? AND user_id = ?", (stream_id, user_id)
            ).fetchone() is not None

    def has_pending_report(self, stream_id: str, user_id: str) -> bool:
        with self._connection() as conn:
            return conn.execute(
                "SELECT 1 FROM stream_reports WHERE stream_id = ? AND user_id = ? AND status = 'pending'",
                (stream_id, user_id),
            ).fetchone() is not None

    def insert_stream_report(self, report: StreamReport) -> StreamReport:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO stream_reports (id, stream_id, user_id, reason, status, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                (report.id, report.stream_id, report.user_id, report.reason, report.status, report.created_at),
            )
        return report

    def insert_stream_tip(self, tip: StreamTip) -> StreamTip:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO stream_tips (id, stream_id, sender_id, host_id, amount, message, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (tip.id, tip.stream_id, tip.sender_id, tip.host_id, tip.amount, tip.message, tip.created_at),
            )
        return tip

    def stream_tip_total(self, stream_id: str) -> float:
        with self._connection() as conn:
            return conn.execute(
                "SELECT COALESCE(SUM(amount), 0) FROM stream_tips WHERE stream_id = ?", (stream_id,)
            ).fetchone()[0]
