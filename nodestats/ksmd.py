"""Kernel same-page merging statistics from sysfs."""

from __future__ import annotations

import os

from nodestats.helper import (
    DEFAULT_SYS_PATH,
    NAMESPACE,
    Desc,
    Metric,
    ValueType,
    build_fq_name,
    read_uint_from_file,
)

SUBSYSTEM = "ksmd"

KSMD_FILES = (
    "full_scans", "merge_across_nodes", "pages_shared", "pages_sharing",
    "pages_to_scan", "pages_unshared", "pages_volatile", "run", "sleep_millisecs",
)


def canonical_metric_name(filename: str) -> str:
    """Map a ksm sysfs file name to its metric name."""
    if filename == "full_scans":
        return filename + "_total"
    if filename == "sleep_millisecs":
        return "sleep_seconds"
    return filename


class KsmdCollector:
    """Exposes the ksm daemon statistics."""

    def __init__(self, sys_path: str = DEFAULT_SYS_PATH) -> None:
        self.sys_path = sys_path
        self.metric_descs = {
            name: Desc(
                build_fq_name(NAMESPACE, SUBSYSTEM, canonical_metric_name(name)),
                f"ksmd '{name}' file.",
            )
            for name in KSMD_FILES
        }

    def update(self) -> list[Metric]:
        metrics = []
        for name in KSMD_FILES:
            raw = read_uint_from_file(os.path.join(self.sys_path, "kernel/mm/ksm", name))
            value_type = ValueType.GAUGE
            value = float(raw)
            if name == "full_scans":
                value_type = ValueType.COUNTER
            elif name == "sleep_millisecs":
                value /= 1000
            metrics.append(self.metric_descs[name].metric(value_type, value))
        return metrics