"""Per-NUMA-node memory statistics from sysfs."""

from __future__ import annotations

import glob
import os
import re
from dataclasses import dataclass
from typing import Iterable

from nodestats.helper import DEFAULT_SYS_PATH, NAMESPACE, Desc, Metric, ValueType, build_fq_name

SUBSYSTEM = "memory_numa"

_NODE_RE = re.compile(r".*devices/system/node/node([0-9]*)")
_PARENS_RE = re.compile(r"\((.*)\)")


@dataclass
class MeminfoMetric:
    """One value read from a node's meminfo or numastat file."""

    metric_name: str
    metric_type: ValueType
    numa_node: str
    value: float


def parse_mem_info_numa(stream: Iterable[str]) -> list[MeminfoMetric]:
    """Parse a node meminfo file."""
    metrics = []
    for raw in stream:
        line = raw.strip()
        if not line:
            continue
        parts = line.split()
        if len(parts) < 4:
            raise ValueError(f"invalid line in meminfo: {line}")
        try:
            value = float(parts[3])
        except ValueError as err:
            raise ValueError(f"invalid value in meminfo: {err}") from err
        if len(parts) == 5 and parts[4] == "kB":
            value *= 1024
        elif len(parts) != 4:
            raise ValueError(f"invalid line in meminfo: {line}")
        name = _PARENS_RE.sub(r"_\1", parts[2].rstrip(":"))
        metrics.append(MeminfoMetric(name, ValueType.GAUGE, parts[1], value))
    return metrics


def parse_mem_info_numa_stat(stream: Iterable[str], node_number: str) -> list[MeminfoMetric]:
    """Parse a node numastat file."""
    metrics = []
    for raw in stream:
        line = raw.strip()
        if not line:
            continue
        parts = line.split()
        if len(parts) != 2:
            raise ValueError(f"line scan did not return 2 fields: {line}")
        try:
            value = float(parts[1])
        except ValueError as err:
            raise ValueError(f"invalid value in numastat: {err}") from err
        metrics.append(MeminfoMetric(parts[0] + "_total", ValueType.COUNTER, node_number, value))
    return metrics


def get_mem_info_numa(sys_path: str = DEFAULT_SYS_PATH) -> list[MeminfoMetric]:
    """Collect meminfo and numastat values of every NUMA node."""
    metrics: list[MeminfoMetric] = []
    pattern = os.path.join(sys_path, "devices/system/node/node[0-9]*")
    for node in sorted(glob.glob(pattern)):
        with open(os.path.join(node, "meminfo"), encoding="utf-8") as handle:
            metrics.extend(parse_mem_info_numa(handle))
        match = _NODE_RE.search(node)
        if match is None:
            raise ValueError(f"device node string didn't match regexp: {node}")
        with open(os.path.join(node, "numastat"), encoding="utf-8") as handle:
            metrics.extend(parse_mem_info_numa_stat(handle, match.group(1)))
    return metrics


class MeminfoNumaCollector:
    """Exposes per-node memory statistics."""

    def __init__(self, sys_path: str = DEFAULT_SYS_PATH) -> None:
        self.sys_path = sys_path
        self.metric_descs: dict[str, Desc] = {}

    def update(self) -> list[Metric]:
        try:
            values = get_mem_info_numa(self.sys_path)
        except (OSError, ValueError) as err:
            raise RuntimeError(f"couldn't get NUMA meminfo: {err}") from err
        metrics = []
        for item in values:
            desc = self.metric_descs.get(item.metric_name)
            if desc is None:
                desc = Desc(
                    build_fq_name(NAMESPACE, SUBSYSTEM, item.metric_name),
                    f"Memory information field {item.metric_name}.",
                    ("node",),
                )
                self.metric_descs[item.metric_name] = desc
            metrics.append(desc.metric(item.metric_type, item.value, item.numa_node))
        return metrics