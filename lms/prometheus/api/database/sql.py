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
import sqlite3
import time
from typing import Any, Dict, Iterable, List, Sequence
from .base import LmsDatabase
from ..metrics.models import RoleAssignment

logger = logging.getLogger(__name__)

# Keeps IN (...) lists under the bound-parameter limit of common drivers
IN_BATCH_SIZE = 500


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


def _batched(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class SQLDatabase(LmsDatabase):
    """
    LMS database accessed through a DB-API connection using qmark parameters.

    Table names are built from a prefix ("mdl_" by default) so the same queries
    work against any installation.
    """

    def __init__(self, connection, prefix: str = "mdl_"):
        self.conn = connection
        self.prefix = prefix

    @classmethod
    def connect(cls, db_path: str, prefix: str = "mdl_") -> "SQLDatabase":
        logger.debug(f"Opening LMS database at {db_path}")
        return cls(sqlite3.connect(db_path, check_same_thread=False), prefix=prefix)

    def _table(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def _fetch_dicts(self, sql: str, params: Sequence[Any] = ()) -> List[dict]:
        cur = self.conn.cursor()
        try:
            cur.execute(sql, tuple(params))
            columns = [desc[0] for desc in cur.description]
            return [dict(zip(columns, row)) for row in cur.fetchall()]
        finally:
            cur.close()

    @staticmethod
    def _threshold(window: int) -> int:
        return int(time.time()) - int(window)

    # Online users
    def get_online_user_ids(self, window: int) -> List[int]:
        rows = self._fetch_dicts(
            f"SELECT id FROM {self._table('user')} WHERE lastaccess > ? ORDER BY id",
            [self._threshold(window)])
        return [int(row["id"]) for row in rows]

    def count_online_users(self, window: int) -> int:
        rows = self._fetch_dicts(
            f"SELECT COUNT(*) AS online FROM {self._table('user')} WHERE lastaccess > ?",
            [self._threshold(window)])
        return int(rows[0]["online"] or 0) if rows else 0

    def get_role_ids(self, shortnames: Iterable[str]) -> Dict[int, str]:
        names = list(dict.fromkeys(shortnames))
        if not names:
            return {}
        rows = self._fetch_dicts(
            f"SELECT id, shortname FROM {self._table('role')} "
            f"WHERE shortname IN ({_placeholders(len(names))})",
            names)
        return {int(row["id"]): row["shortname"] for row in rows}

    def get_role_assignments(self, user_ids: Iterable[int],
                             context_levels: Iterable[int]) -> List[RoleAssignment]:
        users = sorted(set(user_ids))
        levels = sorted(set(context_levels))
        if not users or not levels:
            return []

        assignments = []
        for batch in _batched(users, IN_BATCH_SIZE):
            rows = self._fetch_dicts(
                f"""
                SELECT ra.userid AS userid, ra.roleid AS roleid, ctx.contextlevel AS contextlevel
                  FROM {self._table('role_assignments')} ra
                  JOIN {self._table('context')} ctx ON ctx.id = ra.contextid
                 WHERE ra.userid IN ({_placeholders(len(batch))})
                   AND ctx.contextlevel IN ({_placeholders(len(levels))})
              ORDER BY ra.userid
                """,
                list(batch) + levels)
            assignments.extend(
                RoleAssignment(int(row["userid"]), int(row["roleid"]), int(row["contextlevel"]))
                for row in rows)
        return assignments

    # Aggregate statistics
    def get_user_auth_statistics(self) -> List[dict]:
        return self._fetch_dicts(f"""
            SELECT
                auth,
                SUM(CASE WHEN deleted = 0 AND suspended = 0 THEN 1 ELSE 0 END) AS active,
                SUM(CASE WHEN deleted = 1 AND suspended = 0 THEN 1 ELSE 0 END) AS deleted,
                SUM(CASE WHEN deleted = 0 AND suspended = 1 THEN 1 ELSE 0 END) AS suspended
            FROM {self._table('user')}
            GROUP BY auth
            ORDER BY auth
        """)

    def get_course_statistics(self) -> List[dict]:
        return self._fetch_dicts(f"""
            SELECT
                format,
                theme,
                SUM(CASE WHEN visible = 0 THEN 1 ELSE 0 END) AS hidden,
                SUM(CASE WHEN visible = 1 THEN 1 ELSE 0 END) AS visible
            FROM {self._table('course')}
            GROUP BY format, theme
            ORDER BY format, theme
        """)

    def get_enrol_statistics(self) -> List[dict]:
        return self._fetch_dicts(f"""
            SELECT
                e_stats.enrol AS enrol,
                e_stats.disabled AS disabled,
                e_stats.enabled AS enabled,
                COALESCE(ue_stats.active_enrolments, 0) AS active_enrolments,
                COALESCE(ue_stats.suspended_enrolments, 0) AS suspended_enrolments
            FROM (
                SELECT
                    enrol,
                    SUM(CASE WHEN status = 1 THEN 1 ELSE 0 END) AS disabled,
                    SUM(CASE WHEN status = 0 THEN 1 ELSE 0 END) AS enabled
                FROM {self._table('enrol')}
                GROUP BY enrol
            ) e_stats
            LEFT JOIN (
                SELECT
                    e.enrol AS enrol,
                    SUM(CASE WHEN ue.status = 0 THEN 1 ELSE 0 END) AS active_enrolments,
                    SUM(CASE WHEN ue.status = 1 THEN 1 ELSE 0 END) AS suspended_enrolments
                FROM {self._table('enrol')} e
                JOIN {self._table('user_enrolments')} ue ON ue.enrolid = e.id
                GROUP BY e.enrol
            ) ue_stats ON ue_stats.enrol = e_stats.enrol
            ORDER BY e_stats.enrol
        """)

    def get_module_statistics(self) -> List[dict]:
        return self._fetch_dicts(f"""
            SELECT
                m.name AS name,
                COALESCE(SUM(CASE WHEN cm.deletioninprogress = 0 AND cm.visible = 1
                                  THEN 1 ELSE 0 END), 0) AS visible,
                COALESCE(SUM(CASE WHEN cm.deletioninprogress = 0 AND cm.visible = 0
                                  THEN 1 ELSE 0 END), 0) AS hidden
            FROM {self._table('modules')} m
            LEFT JOIN {self._table('course_modules')} cm ON cm.module = m.id
            GROUP BY m.id, m.name
            ORDER BY m.name
        """)

    def get_task_statistics(self, window: int) -> List[dict]:
        return self._fetch_dicts(f"""
            SELECT
                type,
                component,
                classname,
                hostname,
                COUNT(*) AS runs,
                COALESCE(SUM(result), 0) AS failures
            FROM {self._table('task_log')}
            WHERE timeend > ?
            GROUP BY component, classname, hostname, type
            ORDER BY component, classname, hostname, type
        """, [self._threshold(window)])
