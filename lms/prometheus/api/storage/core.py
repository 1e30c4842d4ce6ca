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

import hashlib
import json
import logging
import math
from typing import Iterable, Optional
from werkzeug.utils import import_string
from .backends import STORAGE_BACKENDS
from .backends.base import StorageBackend
from .backends.memory import MemoryBackend
from ..metrics.models import CacheEntry

logger = logging.getLogger(__name__)


def create_storage_backend(backend_name: str, **kwargs) -> StorageBackend:
    backend_class = STORAGE_BACKENDS[backend_name]
    logger.debug(f"Creating storage backend type '{backend_name}' with implementation '{backend_class}'")
    return import_string(backend_class)(**kwargs)


class RoleCountCache:
    """
    Short-lived cache for online-users-by-role results.

    Cache problems never reach the caller: a failing or corrupt backend is
    reported as a miss on read and ignored on write.
    """

    def __init__(self, backend: Optional[StorageBackend] = None):
        self.backend = backend if backend is not None else MemoryBackend()
        self.prefix = "lms-prometheus:"
        self.online_roles_prefix = "online_roles:"

    def _key(self, prefix, identifier):
        return f"{self.prefix}{prefix}{identifier}"

    @staticmethod
    def fingerprint(window: int, role_priority: Iterable[str], contexts: Iterable[int]) -> str:
        """Digest of every input that affects a resolver result.

        Role order is significant (it decides tie-breaks); context order is not.
        """
        document = json.dumps([int(window), list(role_priority), sorted(int(c) for c in contexts)],
                              separators=(",", ":"))
        return hashlib.sha256(document.encode()).hexdigest()

    def get(self, fingerprint: str) -> Optional[CacheEntry]:
        key = self._key(self.online_roles_prefix, fingerprint)
        try:
            data = self.backend.get(key)
        except Exception as e:
            logger.warning(f"Role count cache read failed for {key}: {e}")
            return None
        if not data:
            return None
        try:
            return CacheEntry.from_dict(json.loads(data.decode() if isinstance(data, bytes) else data))
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning(f"Discarding unreadable role count cache entry {key}: {e}")
            return None

    def set(self, fingerprint: str, entry: CacheEntry, ttl: float) -> None:
        if ttl <= 0:
            return
        key = self._key(self.online_roles_prefix, fingerprint)
        try:
            self.backend.setex(key, json.dumps(entry.to_dict()), max(1, math.ceil(ttl)))
        except Exception as e:
            logger.warning(f"Role count cache write failed for {key}: {e}")
