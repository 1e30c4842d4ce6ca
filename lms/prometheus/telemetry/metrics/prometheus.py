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
import re
from typing import Iterable
from lms.prometheus.api.metrics.models import Metric

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_]")


def label_name(name: str) -> str:
    """Map an arbitrary name onto the label-name alphabet [a-zA-Z_][a-zA-Z0-9_]*."""
    name = _INVALID_NAME_CHARS.sub("_", name)
    return f"_{name}" if name[:1].isdigit() else name


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _format_value(value) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def render_metrics(metrics: Iterable[Metric]) -> str:
    out = []
    for metric in metrics:
        out.append(f"# HELP {metric.name} {_escape_help(metric.help)}")
        out.append(f"# TYPE {metric.name} {metric.type.value}")
        for value in metric.values:
            if value.labels:
                labels = ",".join(
                    f'{label_name(k)}="{_escape_label_value(v)}"' for k, v in value.labels.items())
                out.append(f"{metric.name}{{{labels}}} {_format_value(value.value)}")
            else:
                out.append(f"{metric.name} {_format_value(value.value)}")

    return "\n".join(out) + "\n"
