"""Load average from /proc/loadavg."""

from __future__ import annotations

import logging
import os

from nodestats.helper import DEFAULT_PROC_PATH, NAMESPACE, Desc, Metric, ValueType

_log = logging.getLogger(__name__)


def parse_load(data: str) -> list[float]:
    """Parse loadavg content into the 1m, 5m and 15m averages."""
    parts = data.split()
    if len(parts) < 3:
        raise ValueError("unexpected content in loadavg")
    loads = []
    for part in parts[:3]:
        try:
            loads.append(float(part))
        except ValueError as err:
            raise ValueError(f"could not parse load '{part}': {err}") from err
    return loads


def get_load(proc_path: str = DEFAULT_PROC_PATH) -> list[float]:
    """Read the load averages from the loadavg file under proc_path."""
    with open(os.path.join(proc_path, "loadavg"), encoding="utf-8") as handle:
        return parse_load(handle.read())


class LoadavgCollector:
    """Exposes the system load averages."""

    def __init__(self, proc_path: str = DEFAULT_PROC_PATH) -> None:
        self.proc_path = proc_path
        self.descs = [
            Desc(f"{NAMESPACE}_load1", "1m load average."),
            Desc(f"{NAMESPACE}_load5", "5m load average."),
            Desc(f"{NAMESPACE}_load15", "15m load average."),
        ]

    def update(self) -> list[Metric]:
        try:
            loads = get_load(self.proc_path)
        except (OSError, ValueError) as err:
            raise RuntimeError(f"couldn't get load: {err}") from err
        metrics = []
        for index, (desc, load) in enumerate(zip(self.descs, loads)):
            _log.debug("return load index=%d load=%s", index, load)
            metrics.append(desc.metric(ValueType.GAUGE, load))
        return metrics