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
import os
import sys
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv
from .api.config import ReportConfig, parse_bool
from .api.database.sql import SQLDatabase
from .api.metrics.reporter import MetricsReporter
from .api.metrics.role_resolver import OnlineRoleResolver
from .api.storage.core import RoleCountCache, create_storage_backend
from .telemetry.audit.logger import init_audit_logger

logger = logging.getLogger(__name__)

ENV_PREFIX = "LMS_PROMETHEUS_"


def configure_env() -> None:
    """
    Load LMS_PROMETHEUS_* env vars from a .env file if present, otherwise
    fall back to sane defaults for any keys still unset.
    """
    # Load .env from one of these locations, if it exists
    dotenv_locations = [
        Path("/etc/lms-prometheus/lms-prometheus.env"),
        Path.home() / "lms-prometheus.env",
        Path("./config/lms-prometheus.env"),
        Path("./lms-prometheus.env"),
        Path("./.env"),
    ]
    for fn in dotenv_locations:
        if fn.is_file():
            fp = str(fn)
            load_dotenv(dotenv_path=fp, override=False)
            logger.info(f"Loaded dotenv configuration file from: {fp}")
            break

    # Defaults for any missing LMS_PROMETHEUS_* vars
    defaults = {
        "LMS_PROMETHEUS_DATABASE_PATH": "lms.sqlite3",
        "LMS_PROMETHEUS_TABLE_PREFIX": "mdl_",
        "LMS_PROMETHEUS_STORAGE_BACKEND": "memory",
        "LMS_PROMETHEUS_AUDIT_USE_SYSLOG": "false",
        "LMS_PROMETHEUS_AUDIT_LOGFILE_PATH": "lms-prometheus-audit.log",
    }
    for key, fallback in defaults.items():
        os.environ.setdefault(key, fallback)


def load_config(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Collect LMS_PROMETHEUS_* settings with the prefix stripped. Values stay strings."""
    environ = os.environ if environ is None else environ
    return {key[len(ENV_PREFIX):]: value for key, value in environ.items() if key.startswith(ENV_PREFIX)}


def create_reporter(settings: Optional[Dict[str, Any]] = None) -> MetricsReporter:
    if settings is None:
        configure_env()
        settings = load_config()

    database = SQLDatabase.connect(str(settings.get("DATABASE_PATH", "lms.sqlite3")),
                                   prefix=str(settings.get("TABLE_PREFIX", "mdl_")))

    backend_kwargs = {}
    if settings.get("STORAGE_BACKEND_URL"):
        backend_kwargs["url"] = settings["STORAGE_BACKEND_URL"]
    backend = create_storage_backend(settings.get("STORAGE_BACKEND", "memory"), **backend_kwargs)
    resolver = OnlineRoleResolver(database, RoleCountCache(backend))

    config = ReportConfig.from_settings(settings)
    logger.debug(f"Reporting groups enabled: {', '.join(config.enabled_groups) or 'none'}")
    return MetricsReporter(database, config, resolver)


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s", force=True)
    configure_env()
    settings = load_config()
    logging.getLogger("lms.prometheus").setLevel(
        logging.DEBUG if parse_bool(settings.get("DEBUG"), False) else logging.INFO)

    init_audit_logger(filename=settings.get("AUDIT_LOGFILE_PATH", "lms-prometheus-audit.log"),
                      use_syslog=parse_bool(settings.get("AUDIT_USE_SYSLOG"), False))

    window = None
    if len(sys.argv) > 1:
        try:
            window = int(sys.argv[1])
        except ValueError:
            window = 0
        if window <= 0:
            sys.stderr.write(f"usage: {Path(sys.argv[0]).name} [WINDOW_SECONDS]\n"
                             f"window must be a positive integer, got {sys.argv[1]!r}\n")
            return 2

    reporter = create_reporter(settings)
    sys.stdout.write(reporter.render(window))
    return 0


if __name__ == "__main__":
    sys.exit(main())
