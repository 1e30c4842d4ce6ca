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

"""
Validated configuration for a reporting pass.

Raw settings arrive as strings (environment, .env files). They are parsed
once here into frozen dataclasses; the resolver and assemblers never look at
raw strings. Nothing in this module raises on malformed input: bad values fall
back to their defaults, empty lists mean "nothing tracked".
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple
from .metrics.models import CONTEXT_LEVELS, CONTEXT_SYSTEM, CONTEXT_COURSE
from ..telemetry.metrics.prometheus import label_name

logger = logging.getLogger(__name__)

DEFAULT_ONLINE_WINDOW = 300
DEFAULT_ONLINE_ROLES = "editingteacher,teacher,student"
DEFAULT_ONLINE_CONTEXTS = f"{CONTEXT_SYSTEM},{CONTEXT_COURSE}"
DEFAULT_ONLINE_CACHE_TTL = 30

STATISTICS_GROUPS = ("users", "courses", "enrolments", "modules", "tasks")

# Label names the assemblers and global tags already use; an extra tag may not shadow them
RESERVED_TAG_NAMES = frozenset({
    "role", "auth", "theme", "format", "enrol", "module",
    "type", "component", "classname", "hostname", "site", "version",
})

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


def parse_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        logger.warning(f"Ignoring malformed integer setting {value!r}, using {default}")
        return default


def parse_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    logger.warning(f"Ignoring malformed boolean setting {value!r}, using {default}")
    return default


def _split_csv(value: Any) -> Iterable[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [str(v) for v in value]
    else:
        items = str(value).split(",")
    return [item.strip() for item in items if item.strip()]


def parse_role_priority(value: Any) -> Tuple[str, ...]:
    """Parse a role CSV into an ordered tuple, keeping the first occurrence of duplicates."""
    roles = []
    for role in _split_csv(value):
        if role not in roles:
            roles.append(role)
    return tuple(roles)


def parse_contexts(value: Any) -> FrozenSet[int]:
    """Parse context levels given as numbers or names ("system,course" or "10,50")."""
    levels = set()
    for item in _split_csv(value):
        if item.lower() in CONTEXT_LEVELS:
            levels.add(CONTEXT_LEVELS[item.lower()])
            continue
        try:
            level = int(item)
        except ValueError:
            logger.warning(f"Ignoring unknown context level {item!r}")
            continue
        if level <= 0:
            logger.warning(f"Ignoring non-positive context level {item!r}")
            continue
        levels.add(level)
    return frozenset(levels)


def parse_extra_tags(value: Any) -> Dict[str, str]:
    """Parse "name=value" pairs, one per line or separated by ';'."""
    tags = {}
    if not value:
        return tags
    for line in str(value).replace(";", "\n").splitlines():
        line = line.strip()
        if not line:
            continue
        name, sep, tag_value = line.partition("=")
        name = name.strip()
        if not sep or not name:
            logger.warning(f"Ignoring malformed extra tag {line!r}")
            continue
        name = label_name(name)
        if name.startswith("__"):
            logger.warning(f"Ignoring extra tag {line!r}: names starting with '__' are reserved")
            continue
        if name in tags:
            logger.warning(f"Ignoring extra tag {line!r}: label {name!r} is already set")
            continue
        tags[name] = tag_value.strip()
    return tags


@dataclass(frozen=True)
class OnlineUsersConfig:
    window: int = DEFAULT_ONLINE_WINDOW
    role_priority: Tuple[str, ...] = tuple(DEFAULT_ONLINE_ROLES.split(","))
    contexts: FrozenSet[int] = frozenset({CONTEXT_SYSTEM, CONTEXT_COURSE})
    cache_ttl: int = DEFAULT_ONLINE_CACHE_TTL

    @staticmethod
    def from_settings(settings: Mapping[str, Any]) -> "OnlineUsersConfig":
        window = parse_int(settings.get("ONLINE_WINDOW"), DEFAULT_ONLINE_WINDOW)
        if window <= 0:
            logger.warning(f"Online window must be positive, using {DEFAULT_ONLINE_WINDOW}")
            window = DEFAULT_ONLINE_WINDOW
        return OnlineUsersConfig(
            window=window,
            role_priority=parse_role_priority(settings.get("ONLINE_ROLES", DEFAULT_ONLINE_ROLES)),
            contexts=parse_contexts(settings.get("ONLINE_CONTEXTS", DEFAULT_ONLINE_CONTEXTS)),
            cache_ttl=parse_int(settings.get("ONLINE_CACHE_TTL"), DEFAULT_ONLINE_CACHE_TTL),
        )


@dataclass(frozen=True)
class ReportConfig:
    online: OnlineUsersConfig = field(default_factory=OnlineUsersConfig)
    enabled_groups: Tuple[str, ...] = STATISTICS_GROUPS
    site_tag: bool = True
    site_name: str = ""
    version_tag: bool = False
    version: str = ""
    extra_tags: Dict[str, str] = field(default_factory=dict)
    strict: bool = False

    def __post_init__(self):
        tags = {}
        for name, value in self.extra_tags.items():
            if name in RESERVED_TAG_NAMES:
                logger.warning(f"Ignoring extra tag {name!r}: the label is set by the report itself")
                continue
            tags[name] = value
        object.__setattr__(self, "extra_tags", tags)

    @staticmethod
    def from_settings(settings: Mapping[str, Any]) -> "ReportConfig":
        enabled = tuple(
            group for group in STATISTICS_GROUPS
            if parse_bool(settings.get(f"{group[:-1].upper()}_STATISTICS"), True)
        )
        return ReportConfig(
            online=OnlineUsersConfig.from_settings(settings),
            enabled_groups=enabled,
            site_tag=parse_bool(settings.get("SITE_TAG"), True),
            site_name=str(settings.get("SITE_NAME") or ""),
            version_tag=parse_bool(settings.get("VERSION_TAG"), False),
            version=str(settings.get("VERSION") or ""),
            extra_tags=parse_extra_tags(settings.get("EXTRA_TAGS")),
            strict=parse_bool(settings.get("STRICT"), False),
        )

    def global_labels(self) -> Dict[str, str]:
        """Labels attached to every value in a report."""
        labels = dict(self.extra_tags)
        if self.site_tag and self.site_name:
            labels["site"] = self.site_name
        if self.version_tag and self.version:
            labels["version"] = self.version
        return labels

    def is_enabled(self, group: str) -> bool:
        return group in self.enabled_groups
