import json
import sqlite3
import hashlib
from pathlib import Path
from typing import NamedTuple

import structlog

from .pipeline.models import AllocationItem
from .utils import now_ms, ms_to_iso

log = structlog.get_logger()

MS_PER_HOUR = 3600 * 1000


class CacheEntry(NamedTuple):
    payload: object
    timestamp_ms: int
    age_ms: int
    is_stale: bool


def make_key(namespace: str, source_id: str, identity_address: str) -> str:
    return f"{namespace}:{source_id}:{identity_address.lower()}"


class CacheLayer:
    """
    Long-lived key -> blob cache for upstream payloads.
    - Index in SQLite (cache_index): key, file path, write time, TTL
    - Payloads stored on disk as {"payload": ..., "timestampMillis": ...}
    Entries past their TTL read as misses; entries older than stale_hours
    are still returned but flagged stale.
    """
    def __init__(
        self,
        root_dir: str = ".cache",
        db_path: str = "./data/cache.sqlite3",
        default_ttl_seconds: int = 31_536_000,
        stale_hours: int = 24,
    ):
        self.root_dir = Path(root_dir)
        self.db_path = db_path
        self.default_ttl_seconds = int(default_ttl_seconds)
        self.stale_ms = int(stale_hours) * MS_PER_HOUR
        self.root_dir.mkdir(parents=True, exist_ok=True)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("""
        CREATE TABLE IF NOT EXISTS cache_index(
            cache_key TEXT PRIMARY KEY,
            path TEXT NOT NULL,
            timestamp_ms INTEGER NOT NULL,
            ttl_seconds INTEGER NOT NULL
        )
        """)
        conn.close()

    def _conn(self):
        return sqlite3.connect(self.db_path, isolation_level=None)

    def _path_for(self, cache_key: str) -> Path:
        # shard by sha prefix
        h = hashlib.sha256(cache_key.encode("utf-8")).hexdigest()
        sub = self.root_dir / h[:2] / h[2:4]
        sub.mkdir(parents=True, exist_ok=True)
        return sub / f"{h}.json"

    def is_stale(self, timestamp_ms: int, now: int | None = None) -> bool:
        now = now_ms() if now is None else now
        return now - timestamp_ms > self.stale_ms

    def get(self, cache_key: str, now: int | None = None) -> CacheEntry | None:
        now = now_ms() if now is None else now
        conn = self._conn()
        row = conn.execute(
            "SELECT path, timestamp_ms, ttl_seconds FROM cache_index WHERE cache_key=?", (cache_key,)
        ).fetchone()
        conn.close()
        if not row:
            log.debug("cache_miss", key=cache_key)
            return None
        path, ts_ms, ttl_seconds = row
        age_ms = now - int(ts_ms)
        if age_ms > int(ttl_seconds) * 1000:
            log.info("cache_expired", key=cache_key, written_at=ms_to_iso(ts_ms))
            return None
        try:
            blob = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.warning("cache_read_failed", key=cache_key, error=str(exc))
            return None
        entry = CacheEntry(blob["payload"], int(blob["timestampMillis"]), age_ms, self.is_stale(int(ts_ms), now))
        log.debug("cache_hit", key=cache_key, age_minutes=round(age_ms / 60000, 1), stale=entry.is_stale)
        return entry

    def set(self, cache_key: str, payload, ttl_seconds: int | None = None, now: int | None = None) -> int:
        ttl = int(ttl_seconds or self.default_ttl_seconds)
        ts_ms = now_ms() if now is None else now
        path = self._path_for(cache_key)
        path.write_text(json.dumps({"payload": payload, "timestampMillis": ts_ms}, ensure_ascii=False), encoding="utf-8")
        conn = self._conn()
        conn.execute("""
        INSERT INTO cache_index(cache_key, path, timestamp_ms, ttl_seconds)
        VALUES(?,?,?,?)
        ON CONFLICT(cache_key) DO UPDATE SET path=excluded.path, timestamp_ms=excluded.timestamp_ms, ttl_seconds=excluded.ttl_seconds
        """, (cache_key, str(path), ts_ms, ttl))
        conn.close()
        log.info("cache_set", key=cache_key, ttl_seconds=ttl, written_at=ms_to_iso(ts_ms))
        return ts_ms

    def invalidate_all(self) -> int:
        conn = self._conn()
        rows = conn.execute("SELECT path FROM cache_index").fetchall()
        for (path,) in rows:
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as exc:
                log.warning("cache_unlink_failed", path=path, error=str(exc))
        conn.execute("DELETE FROM cache_index")
        conn.close()
        return len(rows)


def store_allocations(cache: CacheLayer, cache_key: str, items, now: int | None = None) -> int:
    # amount is serialized as a decimal string
    payload = [item.model_dump(mode="json") for item in items]
    return cache.set(cache_key, payload, now=now)


def load_allocations(cache: CacheLayer, cache_key: str, now: int | None = None):
    entry = cache.get(cache_key, now=now)
    if entry is None:
        return None, None
    items = [AllocationItem.model_validate(row) for row in entry.payload]
    return items, entry
