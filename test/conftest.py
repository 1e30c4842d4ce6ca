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
import sys
import pathlib
import sqlite3
import pytest
from unittest.mock import Mock, patch

# Insert the project root (one level up from test/) onto sys.path
sys.path.insert(0, str(pathlib.Path(__file__).resolve().parent.parent))

from lms.prometheus.api.database.sql import SQLDatabase
from lms.prometheus.api.metrics.models import CONTEXT_SYSTEM, CONTEXT_COURSECAT, CONTEXT_COURSE
from lms.prometheus.api.metrics.role_resolver import OnlineRoleResolver
from lms.prometheus.api.storage.backends.memory import MemoryBackend
from lms.prometheus.api.storage.core import RoleCountCache

NOW = 1700000000

LMS_SCHEMA = """
CREATE TABLE mdl_user (
    id INTEGER PRIMARY KEY,
    auth TEXT NOT NULL DEFAULT 'manual',
    deleted INTEGER NOT NULL DEFAULT 0,
    suspended INTEGER NOT NULL DEFAULT 0,
    lastaccess INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE mdl_role (id INTEGER PRIMARY KEY, shortname TEXT NOT NULL);
CREATE TABLE mdl_context (id INTEGER PRIMARY KEY, contextlevel INTEGER NOT NULL);
CREATE TABLE mdl_role_assignments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    userid INTEGER NOT NULL,
    roleid INTEGER NOT NULL,
    contextid INTEGER NOT NULL
);
CREATE TABLE mdl_course (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    format TEXT NOT NULL,
    theme TEXT NOT NULL DEFAULT '',
    visible INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE mdl_enrol (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    enrol TEXT NOT NULL,
    status INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE mdl_user_enrolments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    enrolid INTEGER NOT NULL,
    userid INTEGER NOT NULL,
    status INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE mdl_modules (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL);
CREATE TABLE mdl_course_modules (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    module INTEGER NOT NULL,
    visible INTEGER NOT NULL DEFAULT 1,
    deletioninprogress INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE mdl_task_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    type INTEGER NOT NULL,
    component TEXT NOT NULL,
    classname TEXT NOT NULL,
    hostname TEXT NOT NULL,
    result INTEGER NOT NULL DEFAULT 0,
    timeend INTEGER NOT NULL
);
"""

ROLE_IDS = {"editingteacher": 3, "teacher": 4, "student": 5, "manager": 1}
CONTEXT_IDS = {CONTEXT_SYSTEM: 1, CONTEXT_COURSECAT: 2, CONTEXT_COURSE: 3}


@pytest.fixture
def frozen_now():
    """Freeze time.time() at NOW"""
    with patch("time.time", return_value=float(NOW)):
        yield NOW


@pytest.fixture
def lms_connection():
    """Empty in-memory LMS database with roles and contexts in place"""
    conn = sqlite3.connect(":memory:")
    conn.executescript(LMS_SCHEMA)
    conn.executemany("INSERT INTO mdl_role (id, shortname) VALUES (?, ?)",
                     [(role_id, name) for name, role_id in ROLE_IDS.items()])
    conn.executemany("INSERT INTO mdl_context (id, contextlevel) VALUES (?, ?)",
                     [(ctx_id, level) for level, ctx_id in CONTEXT_IDS.items()])
    conn.commit()
    yield conn
    conn.close()


@pytest.fixture
def lms_database(lms_connection):
    return SQLDatabase(lms_connection)


@pytest.fixture
def role_cache():
    return RoleCountCache(MemoryBackend())


def add_user(conn, user_id, lastaccess=NOW - 10, auth="manual", deleted=0, suspended=0):
    """Helper to insert a user; defaults to one who is online"""
    conn.execute("INSERT INTO mdl_user (id, auth, deleted, suspended, lastaccess) VALUES (?, ?, ?, ?, ?)",
                 (user_id, auth, deleted, suspended, lastaccess))
    conn.commit()


def assign_role(conn, user_id, shortname, context_level):
    """Helper to assign a role to a user in the context of the given level"""
    conn.execute("INSERT INTO mdl_role_assignments (userid, roleid, contextid) VALUES (?, ?, ?)",
                 (user_id, ROLE_IDS[shortname], CONTEXT_IDS[context_level]))
    conn.commit()


@pytest.fixture
def scenario_database(lms_connection, lms_database):
    """Three online users, one offline teacher.

    User 1 holds student and teacher in course contexts, user 2 is a student
    at system level and user 3 is a teacher in a course.
    """
    for user_id in (1, 2, 3):
        add_user(lms_connection, user_id)
    add_user(lms_connection, 4, lastaccess=NOW - 100000)

    assign_role(lms_connection, 1, "student", CONTEXT_COURSE)
    assign_role(lms_connection, 1, "teacher", CONTEXT_COURSE)
    assign_role(lms_connection, 2, "student", CONTEXT_SYSTEM)
    assign_role(lms_connection, 3, "teacher", CONTEXT_COURSE)
    assign_role(lms_connection, 4, "teacher", CONTEXT_COURSE)
    return lms_database


@pytest.fixture
def spy_database(scenario_database):
    """Scenario database wrapped so tests can count queries"""
    return Mock(wraps=scenario_database)


@pytest.fixture
def resolver(spy_database, role_cache):
    return OnlineRoleResolver(spy_database, role_cache)
