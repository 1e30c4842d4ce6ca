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
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List
from ..metrics.models import RoleAssignment

logger = logging.getLogger(__name__)


class LmsDatabase(ABC):
    """Read-only queries the reporter runs against the LMS database.

    Every method issues aggregate queries only. Driver errors are not caught
    here; callers decide whether a failure aborts the report.
    """

    @abstractmethod
    def get_online_user_ids(self, window: int) -> List[int]:
        """Ids of users whose last access is within window seconds of now"""

    @abstractmethod
    def count_online_users(self, window: int) -> int: ...

    @abstractmethod
    def get_role_ids(self, shortnames: Iterable[str]) -> Dict[int, str]:
        """Map role id -> shortname for the shortnames that exist; unknown names are absent"""

    @abstractmethod
    def get_role_assignments(self, user_ids: Iterable[int],
                             context_levels: Iterable[int]) -> List[RoleAssignment]: ...

    @abstractmethod
    def get_user_auth_statistics(self) -> List[dict]: ...

    @abstractmethod
    def get_course_statistics(self) -> List[dict]: ...

    @abstractmethod
    def get_enrol_statistics(self) -> List[dict]: ...

    @abstractmethod
    def get_module_statistics(self) -> List[dict]: ...

    @abstractmethod
    def get_task_statistics(self, window: int) -> List[dict]: ...
