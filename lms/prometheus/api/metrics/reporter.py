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
from typing import Callable, Dict, List, Optional
from .assemblers import (get_user_statistics, get_course_statistics, get_enrol_statistics,
                         get_module_statistics, get_task_statistics)
from .models import Metric
from .role_resolver import OnlineRoleResolver
from ..config import ReportConfig
from ..database.base import LmsDatabase
from ...telemetry.audit.logger import audit_event
from ...telemetry.metrics.prometheus import render_metrics

logger = logging.getLogger(__name__)


class MetricsReporter:
    """Runs the enabled statistics groups for one reporting pass."""

    def __init__(self, database: LmsDatabase, config: Optional[ReportConfig] = None,
                 resolver: Optional[OnlineRoleResolver] = None):
        self.database = database
        self.config = config or ReportConfig()
        self.resolver = resolver if resolver is not None else OnlineRoleResolver(database)

    def _assemblers(self) -> Dict[str, Callable[[int], List[Metric]]]:
        return {
            "users": lambda window: get_user_statistics(self.database, window, self.resolver,
                                                        self.config.online),
            "courses": lambda window: get_course_statistics(self.database, window),
            "enrolments": lambda window: get_enrol_statistics(self.database, window),
            "modules": lambda window: get_module_statistics(self.database, window),
            "tasks": lambda window: get_task_statistics(self.database, window),
        }

    def collect(self, window: Optional[int] = None) -> List[Metric]:
        """
        Collect every enabled metric group.

        A group whose queries fail is logged and left out of the report, unless
        the reporter is strict, in which case the error propagates.
        """
        if window is None:
            window = self.config.online.window
        if window <= 0:
            raise ValueError(f"window must be positive, got {window}")

        started = time.time()
        metrics: List[Metric] = []
        failed = []
        for group, assemble in self._assemblers().items():
            if not self.config.is_enabled(group):
                continue
            try:
                metrics.extend(assemble(window))
            except Exception as e:
                if self.config.strict:
                    raise
                logger.exception(f"Failed to collect {group} statistics")
                audit_event("metric_group_failed", group=group, window=window, error=str(e))
                failed.append(group)

        global_labels = self.config.global_labels()
        if global_labels:
            for metric in metrics:
                metric.values = [value.with_labels(global_labels) for value in metric.values]

        audit_event("report_generated", window=window, metrics=len(metrics), failed_groups=failed,
                    duration=round(time.time() - started, 3))
        return metrics

    def render(self, window: Optional[int] = None) -> str:
        return render_metrics(self.collect(window))
