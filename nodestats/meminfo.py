"""Memory statistics from /proc/meminfo."""

from __future__ import annotations

import logging
import os
import re
from typing import Iterable

from nodestats.helper import DEFAULT_PROC_PATH, NAMESPACE, Desc, Metric, ValueType, build_fq_name

SUBSYSTEM = "memory"

_log = logging.getLogger(__name__)
_PARENS_RE = re.compile(r"\((.*)\)")


def parse_mem_info(stream: Iterable[str]) -> dict[str, float]:
    """Parse meminfo lines into a mapping of field names to values."""
    mem_info: dict[str, float] = {}
    for line in stream:
        line = line.rstrip("\n")
        parts = line.split()
        if not parts:
            continue
        if len(parts) < 2:
            raise ValueError(f"invalid line in meminfo: {line}")
        try:
            value = float(parts[1])
        except ValueError as err:
            raise ValueError(f"invalid value in meminfo: {err}") from err
        key = _PARENS_RE.sub(r"_\1", parts[0][:-1])
        if len(parts) == 3:
            value *= 1024
            key += "_bytes"
        elif len(parts) != 2:
            raise ValueError(f"invalid line in meminfo: {line}")
        mem_info[key] = value
    return mem_info


class MeminfoCollector:
    """Exposes memory statistics."""

    def __init__(self, proc_path: str = DEFAULT_PROC_PATH) -> None:
        self.proc_path = proc_path

    def update(self) -> list[Metric]:
        try:
            with open(os.path.join(self.proc_path, "meminfo"), encoding="utf-8") as handle:
                mem_info = parse_mem_info(handle)
        except (OSError, ValueError) as err:
            raise RuntimeError(f"couldn't get meminfo: {err}") from err
        _log.debug("Set node_mem memInfo=%s", mem_info)
        metrics = []
        for key, value in mem_info.items():
            value_type = ValueType.COUNTER if key.endswith("_total") else ValueType.GAUGE
            desc = Desc(
                build_fq_name(NAMESPACE, SUBSYSTEM, key),
                f"Memory information field {key}.",
            )
            metrics.append(desc.metric(value_type, value))
        return metrics