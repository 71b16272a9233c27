"""SQLite cache for parsed point results."""
from __future__ import annotations

import hashlib
import json
import sqlite3
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

from .models import SearchResultItem


def make_query_cache_key(endpoint: str, body: Dict[str, Any]) -> str:
    payload = json.dumps(body, sort_keys=True, separators=(",", ":"))
    raw = f"{endpoint}|{payload}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


class ResultCache:
    """Result lists keyed by request shape; shared by all point workers."""

    def __init__(self, db_path: str, ttl_seconds: int = 24 * 3600) -> None:
        self.db_path = db_path
        self.ttl_seconds = int(ttl_seconds)
        self._lock = threading.Lock()
        self._closed = False
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._configure_conn()
        self._init_db()

    def _configure_conn(self) -> None:
        cur = self.conn.cursor()
        try:
            cur.execute("PRAGMA journal_mode=WAL")
            cur.fetchone()
        except sqlite3.DatabaseError:
            pass
        try:
            cur.execute("PRAGMA synchronous=NORMAL")
        except sqlite3.DatabaseError:
            pass

    def _init_db(self) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS point_results (
                key TEXT PRIMARY KEY,
                items_json TEXT,
                search_volume INTEGER,
                created_at REAL
            )
            """
        )
        self.conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.conn.commit()
            self.conn.close()

    def get(self, key: str, now: Optional[float] = None) -> Optional[Tuple[List[SearchResultItem], Optional[int]]]:
        now = time.time() if now is None else now
        with self._lock:
            if self._closed:
                return None
            cur = self.conn.cursor()
            cur.execute(
                "SELECT items_json, search_volume, created_at FROM point_results WHERE key = ?",
                (key,),
            )
            row = cur.fetchone()
        if not row:
            return None
        if self.ttl_seconds > 0 and now - float(row["created_at"]) > self.ttl_seconds:
            return None
        items = [
            SearchResultItem(position=int(it["position"]), title=it["title"], url=it.get("url", ""))
            for it in json.loads(row["items_json"] or "[]")
        ]
        return items, row["search_volume"]

    def set(
        self,
        key: str,
        items: List[SearchResultItem],
        search_volume: Optional[int] = None,
        now: Optional[float] = None,
    ) -> None:
        now = time.time() if now is None else now
        payload = json.dumps(
            [{"position": it.position, "title": it.title, "url": it.url} for it in items],
            ensure_ascii=False,
        )
        with self._lock:
            # Late writers from abandoned workers are dropped.
            if self._closed:
                return
            self.conn.execute(
                """
                INSERT OR REPLACE INTO point_results (key, items_json, search_volume, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (key, payload, search_volume, now),
            )
            self.conn.commit()

    def purge_expired(self, now: Optional[float] = None) -> int:
        if self.ttl_seconds <= 0:
            return 0
        now = time.time() if now is None else now
        with self._lock:
            if self._closed:
                return 0
            cur = self.conn.execute(
                "DELETE FROM point_results WHERE created_at < ?",
                (now - self.ttl_seconds,),
            )
            self.conn.commit()
            return cur.rowcount
