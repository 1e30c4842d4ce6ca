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
from types import MappingProxyType
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional

# Context levels as stored in the LMS context table
CONTEXT_SYSTEM = 10
CONTEXT_USER = 30
CONTEXT_COURSECAT = 40
CONTEXT_COURSE = 50
CONTEXT_MODULE = 70
CONTEXT_BLOCK = 80

CONTEXT_LEVELS = {
    "system": CONTEXT_SYSTEM,
    "user": CONTEXT_USER,
    "coursecat": CONTEXT_COURSECAT,
    "course": CONTEXT_COURSE,
    "module": CONTEXT_MODULE,
    "block": CONTEXT_BLOCK,
}


class MetricType(Enum):
    GAUGE = "gauge"


@dataclass(frozen=True)
class MetricValue:
    """A single labeled measurement belonging to a metric."""
    labels: Mapping[str, str]
    value: float

    def __post_init__(self):
        # Normalise label values so the renderer only ever sees strings
        labels = {str(k): "" if v is None else str(v) for k, v in self.labels.items()}
        object.__setattr__(self, "labels", MappingProxyType(labels))
        object.__setattr__(self, "value", 0 if self.value is None else self.value)

    def with_labels(self, extra: Mapping[str, str]) -> "MetricValue":
        """Return a copy carrying the extra labels; existing labels take precedence."""
        return MetricValue({**extra, **self.labels}, self.value)


@dataclass
class Metric:
    name: str
    type: MetricType = MetricType.GAUGE
    help: str = ""
    values: List[MetricValue] = field(default_factory=list)

    def add_value(self, value: MetricValue) -> None:
        self.values.append(value)


@dataclass(frozen=True)
class RoleAssignment:
    user_id: int
    role_id: int
    context_level: int


@dataclass(frozen=True)
class CacheEntry:
    computed_at: float
    counts: Dict[str, int]

    def is_valid(self, ttl: float, now: Optional[float] = None) -> bool:
        """An entry is only usable while it is younger than ttl; ttl <= 0 never is."""
        if ttl <= 0:
            return False
        now = time.time() if now is None else now
        return (now - self.computed_at) < ttl

    def to_dict(self) -> dict:
        return {"time": self.computed_at, "data": dict(self.counts)}

    @staticmethod
    def from_dict(data: dict) -> "CacheEntry":
        counts = {str(k): int(v) for k, v in data["data"].items()}
        return CacheEntry(computed_at=float(data["time"]), counts=counts)
