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
Audit trail of reporting passes.

One JSON document per event, written to a daily-rotated file or to the local
syslog socket when requested and writable.
"""

import os
import datetime
import logging
from logging.handlers import SysLogHandler, TimedRotatingFileHandler
from pythonjsonlogger import json

logger = logging.getLogger(__name__)

SYSLOG_SOCKET = "/dev/log"


def _build_handler(filename: str, use_syslog: bool) -> logging.Handler:
    # the use of '/dev/log' causes SysLogHandler to assume the availability of Unix sockets
    if use_syslog and os.path.exists(SYSLOG_SOCKET) and os.access(SYSLOG_SOCKET, os.W_OK):
        try:
            handler = SysLogHandler(address=SYSLOG_SOCKET, facility=SysLogHandler.LOG_LOCAL1)
            handler.ident = "lms-prometheus-audit: "
            return handler
        except OSError as e:
            logging.getLogger("lms.prometheus").warning(f"Syslog unavailable, auditing to {filename}: {e}")
    return TimedRotatingFileHandler(filename=filename, when="D", interval=1, backupCount=0)


def init_audit_logger(filename="lms-prometheus-audit.log", use_syslog=False) -> logging.Handler:
    log_handler = _build_handler(filename, use_syslog)
    log_handler.setFormatter(json.JsonFormatter("{message}", style="{", rename_fields={"message": "event"}))
    logger.addHandler(log_handler)
    logger.setLevel(logging.INFO)
    return log_handler


def close_audit_logger(handler: logging.Handler) -> None:
    logger.removeHandler(handler)
    handler.close()


def audit_event(event, **kwargs):
    logger.info({
        "event": event,
        "timestamp": datetime.datetime.now().astimezone().isoformat(),  # ISO 8601 with offset
        **kwargs
    })
