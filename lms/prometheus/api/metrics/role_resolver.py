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
import time
from typing import Dict, Iterable, Optional, Sequence
from .models import CacheEntry, RoleAssignment
from ..database.base import LmsDatabase
from ..storage.core import RoleCountCache

logger = logging.getLogger(__name__)


def resolve_user_roles(assignments: Iterable[RoleAssignment],
                       role_ids: Dict[int, str],
                       role_priority: Sequence[str]) -> Dict[int, str]:
    """
    Pick one role per user: the tracked role with the lowest priority index.

    All of a user's assignments are considered, so the result does not depend
    on the order rows come back from the database. Assignments to roles that
    are unknown or not in role_priority are ignored.
    """
    priority = {}
    for index, shortname in enumerate(role_priority):
        priority.setdefault(shortname, index)

    best: Dict[int, int] = {}
    for assignment in assignments:
        shortname = role_ids.get(assignment.role_id)
        if shortname is None or shortname not in priority:
            continue
        index = priority[shortname]
        current = best.get(assignment.user_id)
        if current is None or index < current:
            best[assignment.user_id] = index

    return {user_id: role_priority[index] for user_id, index in best.items()}


def tally_roles(user_roles: Dict[int, str], role_priority: Sequence[str]) -> Dict[str, int]:
    """Count users per role in priority order, leaving out roles nobody holds."""
    counts = dict.fromkeys(role_priority, 0)
    for shortname in user_roles.values():
        counts[shortname] += 1
    return {shortname: count for shortname, count in counts.items() if count > 0}


class OnlineRoleResolver:
    """Counts currently online users per tracked role."""

    def __init__(self, database: LmsDatabase, cache: Optional[RoleCountCache] = None):
        self.database = database
        self.cache = cache

    def resolve(self, window: int, role_priority: Sequence[str],
                contexts: Iterable[int], cache_ttl: float = 0) -> Dict[str, int]:
        """
        Count online users by role.

        Args:
            window: Seconds since last access for a user to count as online
            role_priority: Role shortnames, highest priority first
            contexts: Context levels whose role assignments are considered
            cache_ttl: Seconds a computed result may be reused; <= 0 disables caching

        Returns:
            Mapping of role shortname to user count, zero counts omitted
        """
        role_priority = tuple(role_priority)
        contexts = frozenset(contexts)
        use_cache = self.cache is not None and cache_ttl > 0

        fingerprint = None
        if use_cache:
            fingerprint = self.cache.fingerprint(window, role_priority, contexts)
            entry = self.cache.get(fingerprint)
            if entry is not None and entry.is_valid(cache_ttl):
                logger.debug(f"Online role counts served from cache ({fingerprint[:12]})")
                return dict(entry.counts)

        counts = self._compute(window, role_priority, contexts)

        if use_cache:
            self.cache.set(fingerprint, CacheEntry(computed_at=time.time(), counts=counts), cache_ttl)
        return counts

    def _compute(self, window: int, role_priority: Sequence[str], contexts: frozenset) -> Dict[str, int]:
        if not role_priority or not contexts:
            logger.debug("No roles or contexts configured - skipping online role breakdown")
            return {}

        online_user_ids = self.database.get_online_user_ids(window)
        if not online_user_ids:
            return {}

        role_ids = self.database.get_role_ids(role_priority)
        if not role_ids:
            logger.debug(f"None of the configured roles exist: {', '.join(role_priority)}")
            return {}

        assignments = self.database.get_role_assignments(online_user_ids, contexts)
        user_roles = resolve_user_roles(assignments, role_ids, role_priority)
        counts = tally_roles(user_roles, role_priority)
        logger.debug(f"Resolved {len(user_roles)} of {len(online_user_ids)} online users to tracked roles")
        return counts
