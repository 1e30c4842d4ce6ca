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
import logging
from typing import Optional, Union
from lms.prometheus.api.storage.backends.base import StorageBackend

logger = logging.getLogger(__name__)


class RedisBackend(StorageBackend):
    """Shared cache backend, lets several reporting processes reuse one result."""

    def __init__(self, **kwargs):
        import redis
        url = kwargs.get("url") or "redis://localhost:6379/0"
        self.r = redis.Redis.from_url(url)
        logger.debug(f"Redis cache backend configured for {url}")

    def setex(self, key: str, value: Union[str, bytes], ttl: int) -> None:
        self.r.setex(key, ttl, value)

    def set(self, key: str, value: Union[str, bytes]) -> None:
        self.r.set(key, value)

    def get(self, key: str) -> Optional[bytes]:
        return self.r.get(key)

    def delete(self, key: str) -> None:
        self.r.delete(key)

    def exists(self, key: str) -> bool:
        return bool(self.r.exists(key))

    def ttl(self, key: str) -> int:
        return self.r.ttl(key)
