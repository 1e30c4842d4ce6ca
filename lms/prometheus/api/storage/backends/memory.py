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
import time
import logging
from typing import Dict, Optional, Tuple, Union
from .base import StorageBackend

logger = logging.getLogger(__name__)


class MemoryBackend(StorageBackend):
    """
    Process-local cache backend with TTL support.

    Entries live as long as the reporting process; a fresh process starts cold.
    """
    def __init__(self, **kwargs):
        # key -> (value, expiration timestamp or None)
        self._store: Dict[str, Tuple[bytes, Optional[float]]] = {}

    @staticmethod
    def _encode(value: Union[str, bytes]) -> bytes:
        return value if isinstance(value, bytes) else value.encode()

    def setex(self, key: str, value: Union[str, bytes], ttl: int) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._store[key] = (self._encode(value), time.time() + ttl)

    def set(self, key: str, value: Union[str, bytes]) -> None:
        self._store[key] = (self._encode(value), None)

    def _live_entry(self, key: str) -> Optional[Tuple[bytes, Optional[float]]]:
        entry = self._store.get(key)
        if entry is None:
            return None
        _, expiration = entry
        if expiration is not None and time.time() >= expiration:
            del self._store[key]
            return None
        return entry

    def get(self, key: str) -> Optional[bytes]:
        entry = self._live_entry(key)
        return entry[0] if entry else None

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def exists(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def ttl(self, key: str) -> int:
        entry = self._live_entry(key)
        if entry is None:
            return -2  # key missing or expired
        _, expiration = entry
        if expiration is None:
            return -1  # no expiration
        return int(expiration - time.time())
