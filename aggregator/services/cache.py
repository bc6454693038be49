"""
SQLite persistence layer for playlists and user preferences.
Also provides a key/value table with expiry for provider lookups.
"""
import aiosqlite
import json
import hashlib
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Any

from aggregator.config import get_settings
from aggregator.models.channel import Playlist, PlaylistSummary
from aggregator.models.preferences import UserPreferences

DEFAULT_PROFILE = "default"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheService:
    """Async SQLite store for imported playlists and preferences."""

    def __init__(self, db_path: Optional[str] = None):
        settings = get_settings()
        self.db_path = db_path or settings.database_path
        self._ensure_directory()

    def _ensure_directory(self):
        """Create data directory if it doesn't exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    async def initialize(self):
        """Create database tables if they don't exist."""
        async with aiosqlite.connect(self.db_path) as db:
            # Key-value cache for provider responses
            await db.execute("""
                CREATE TABLE IF NOT EXISTS cache (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at TIMESTAMP NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            # One JSON document per playlist
            await db.execute("""
                CREATE TABLE IF NOT EXISTS playlists (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    source TEXT NOT NULL,
                    channel_count INTEGER DEFAULT 0,
                    added_at TIMESTAMP NOT NULL,
                    last_updated TIMESTAMP,
                    data TEXT NOT NULL
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS preferences (
                    profile TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            await db.execute("CREATE INDEX IF NOT EXISTS idx_playlists_added ON playlists(added_at)")
            await db.commit()

    # ==================== KEY/VALUE ====================

    @staticmethod
    def generate_key(prefix: str, params: dict) -> str:
        """Generate cache key from prefix and parameters."""
        param_str = json.dumps(params, sort_keys=True)
        hash_val = hashlib.md5(param_str.encode()).hexdigest()[:8]
        return f"{prefix}:{hash_val}"

    async def get(self, key: str) -> Optional[Any]:
        """Get cached value if not expired."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT value FROM cache WHERE key = ? AND expires_at > ?",
                (key, _utcnow().isoformat())
            )
            row = await cursor.fetchone()
            if row:
                return json.loads(row[0])
            return None

    async def set(self, key: str, value: Any, ttl_seconds: float = 3600):
        """Set cached value with TTL."""
        expires_at = _utcnow() + timedelta(seconds=ttl_seconds)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT OR REPLACE INTO cache (key, value, expires_at)
                   VALUES (?, ?, ?)""",
                (key, json.dumps(value), expires_at.isoformat())
            )
            await db.commit()

    async def clear_expired(self):
        """Remove expired cache entries."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "DELETE FROM cache WHERE expires_at < ?",
                (_utcnow().isoformat(),)
            )
            await db.commit()

    # ==================== PLAYLISTS ====================

    async def store_playlist(self, playlist: Playlist):
        """Insert or replace a playlist with all its records."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                INSERT OR REPLACE INTO playlists
                (id, name, source, channel_count, added_at, last_updated, data)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                playlist.id,
                playlist.name,
                playlist.source,
                len(playlist.channels),
                playlist.added_at.isoformat(),
                playlist.last_updated.isoformat() if playlist.last_updated else None,
                playlist.model_dump_json(),
            ))
            await db.commit()

    async def get_playlist(self, playlist_id: str) -> Optional[Playlist]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT data FROM playlists WHERE id = ?", (playlist_id,)
            )
            row = await cursor.fetchone()
            return Playlist.model_validate_json(row[0]) if row else None

    async def list_playlists(self) -> list[PlaylistSummary]:
        """Playlist summaries, oldest import first."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("""
                SELECT id, name, source, channel_count, added_at, last_updated
                FROM playlists
                ORDER BY added_at
            """)
            rows = await cursor.fetchall()
            return [PlaylistSummary(**dict(row)) for row in rows]

    async def delete_playlist(self, playlist_id: str) -> bool:
        """Remove a playlist; False when it did not exist."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM playlists WHERE id = ?", (playlist_id,))
            await db.commit()
            return cursor.rowcount > 0

    # ==================== PREFERENCES ====================

    async def get_preferences(self, profile: str = DEFAULT_PROFILE) -> Optional[UserPreferences]:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT data FROM preferences WHERE profile = ?", (profile,)
            )
            row = await cursor.fetchone()
            return UserPreferences.model_validate_json(row[0]) if row else None

    async def store_preferences(self, preferences: UserPreferences, profile: str = DEFAULT_PROFILE):
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                INSERT OR REPLACE INTO preferences (profile, data, updated_at)
                VALUES (?, ?, ?)
            """, (profile, preferences.model_dump_json(), _utcnow().isoformat()))
            await db.commit()

    async def delete_preferences(self, profile: str = DEFAULT_PROFILE):
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM preferences WHERE profile = ?", (profile,))
            await db.commit()


# Singleton instance
_cache_service: Optional[CacheService] = None


async def get_cache() -> CacheService:
    """Get or create cache service singleton."""
    global _cache_service
    if _cache_service is None:
        _cache_service = CacheService()
        await _cache_service.initialize()
    return _cache_service
