#
# Copyright 2025 University of Southern California
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
import sqlite3
import time
from typing import Optional, Union
from .base import StorageBackend


class SQLiteBackend(StorageBackend):
    """
    SQLite-backed cache with TTL support, for hosts without redis.
    """
    def __init__(self, url: Optional[str] = None, db_path: str = ":memory:", **kwargs):
        self.conn = sqlite3.connect(url or db_path, check_same_thread=False)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS lms_prometheus_cache (
                key TEXT PRIMARY KEY,
                value BLOB,
                expires_at REAL
            )
        """)
        self.conn.commit()

    @staticmethod
    def _encode(value: Union[str, bytes]) -> bytes:
        return value if isinstance(value, (bytes, bytearray)) else value.encode()

    def _upsert(self, key: str, value: Union[str, bytes], expires_at: Optional[float]) -> None:
        self.conn.execute("""
            INSERT OR REPLACE INTO lms_prometheus_cache (key, value, expires_at)
            VALUES (?, ?, ?)
        """, (key, self._encode(value), expires_at))
        self.conn.commit()

    def setex(self, key: str, value: Union[str, bytes], ttl: int) -> None:
        self._upsert(key, value, time.time() + ttl)

    def set(self, key: str, value: Union[str, bytes]) -> None:
        self._upsert(key, value, None)

    def get(self, key: str) -> Optional[bytes]:
        cur = self.conn.execute("""
            SELECT value, expires_at FROM lms_prometheus_cache WHERE key = ?
        """, (key,))
        row = cur.fetchone()
        if not row:
            return None
        value, expires_at = row
        if expires_at is not None and time.time() >= expires_at:
            self.delete(key)
            return None
        return bytes(value)

    def delete(self, key: str) -> None:
        self.conn.execute("DELETE FROM lms_prometheus_cache WHERE key = ?", (key,))
        self.conn.commit()

    def exists(self, key: str) -> bool:
        return self.get(key) is not None

    def ttl(self, key: str) -> int:
        cur = self.conn.execute("""
            SELECT expires_at FROM lms_prometheus_cache WHERE key = ?
        """, (key,))
        row = cur.fetchone()
        if not row:
            return -2  # key does not exist
        expires_at, = row
        if expires_at is None:
            return -1  # no TTL set
        remaining = int(expires_at - time.time())
        return remaining if remaining >= 0 else -2
