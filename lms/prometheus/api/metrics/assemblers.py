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
Assemblers turning aggregate query rows into gauge metrics.

Course ids are never used as labels: on a large site that would create one
series per course.
"""

import logging
from typing import List, Optional
from .models import Metric, MetricType, MetricValue
from .role_resolver import OnlineRoleResolver
from ..config import OnlineUsersConfig
from ..database.base import LmsDatabase

logger = logging.getLogger(__name__)

TASK_TYPE_ADHOC = 1


def _gauge(name: str, help_text: str) -> Metric:
    return Metric(name, MetricType.GAUGE, help_text)


def get_user_statistics(database: LmsDatabase, window: int,
                        resolver: Optional[OnlineRoleResolver] = None,
                        online_config: Optional[OnlineUsersConfig] = None) -> List[Metric]:
    online_metric = _gauge("moodle_users_online", "Users currently online")
    # Unlabeled total first, then one value per resolved role
    online_metric.add_value(MetricValue({}, database.count_online_users(window)))

    if resolver is not None:
        online_config = online_config or OnlineUsersConfig()
        role_counts = resolver.resolve(window, online_config.role_priority,
                                       online_config.contexts, online_config.cache_ttl)
        for shortname, count in role_counts.items():
            online_metric.add_value(MetricValue({"role": shortname}, count))

    active_metric = _gauge("moodle_users_active", "Active user accounts")
    deleted_metric = _gauge("moodle_users_deleted", "Deleted user accounts")
    suspended_metric = _gauge("moodle_users_suspended", "Suspended user accounts")

    for item in database.get_user_auth_statistics():
        labels = {"auth": item["auth"]}
        active_metric.add_value(MetricValue(labels, item["active"]))
        deleted_metric.add_value(MetricValue(labels, item["deleted"]))
        suspended_metric.add_value(MetricValue(labels, item["suspended"]))

    return [online_metric, active_metric, deleted_metric, suspended_metric]


def get_course_statistics(database: LmsDatabase, window: int) -> List[Metric]:
    visible_metric = _gauge("moodle_courses_visible", "Visible courses")
    hidden_metric = _gauge("moodle_courses_hidden", "Hidden courses")

    for item in database.get_course_statistics():
        labels = {"theme": item["theme"], "format": item["format"]}
        visible_metric.add_value(MetricValue(labels, item["visible"]))
        hidden_metric.add_value(MetricValue(labels, item["hidden"]))

    return [visible_metric, hidden_metric]


def get_enrol_statistics(database: LmsDatabase, window: int) -> List[Metric]:
    enabled_metric = _gauge("moodle_enrolments_enabled", "Enabled enrolment instances")
    disabled_metric = _gauge("moodle_enrolments_disabled", "Disabled enrolment instances")
    active_metric = _gauge("moodle_enrolments_active", "Active user enrolments")
    suspended_metric = _gauge("moodle_enrolments_suspended", "Suspended user enrolments")

    for item in database.get_enrol_statistics():
        labels = {"enrol": item["enrol"]}
        enabled_metric.add_value(MetricValue(labels, item["enabled"]))
        disabled_metric.add_value(MetricValue(labels, item["disabled"]))
        active_metric.add_value(MetricValue(labels, item["active_enrolments"]))
        suspended_metric.add_value(MetricValue(labels, item["suspended_enrolments"]))

    return [enabled_metric, disabled_metric, active_metric, suspended_metric]


def get_module_statistics(database: LmsDatabase, window: int) -> List[Metric]:
    visible_metric = _gauge("moodle_modules_visible", "Visible activity modules")
    hidden_metric = _gauge("moodle_modules_hidden", "Hidden activity modules")

    for item in database.get_module_statistics():
        labels = {"module": item["name"]}
        visible_metric.add_value(MetricValue(labels, item["visible"]))
        hidden_metric.add_value(MetricValue(labels, item["hidden"]))

    return [visible_metric, hidden_metric]


def get_task_statistics(database: LmsDatabase, window: int) -> List[Metric]:
    run_metric = _gauge("moodle_task_runs", "Task runs within the window")
    failure_metric = _gauge("moodle_task_failures", "Task failures within the window")

    for task in database.get_task_statistics(window):
        labels = {
            "type": "adhoc" if task["type"] == TASK_TYPE_ADHOC else "scheduled",
            "component": task["component"],
            "classname": task["classname"],
            "hostname": task["hostname"],
        }
        run_metric.add_value(MetricValue(labels, task["runs"]))
        failure_metric.add_value(MetricValue(labels, task["failures"]))

    return [run_metric, failure_metric]
