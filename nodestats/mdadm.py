"""Software RAID (md) device statistics."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from nodestats.helper import NAMESPACE, Desc, Metric, ValueType, build_fq_name

_log = logging.getLogger(__name__)

_STATE_HELP = "Indicates the state of md-device."


def _state_desc(state: str) -> Desc:
    return Desc(build_fq_name(NAMESPACE, "md", "state"), _STATE_HELP, ("device",), {"state": state})


ACTIVE_DESC = _state_desc("active")
INACTIVE_DESC = _state_desc("inactive")
RECOVERING_DESC = _state_desc("recovering")
RESYNC_DESC = _state_desc("resync")
CHECK_DESC = _state_desc("check")

DISKS_DESC = Desc(
    build_fq_name(NAMESPACE, "md", "disks"),
    "Number of active/failed/spare disks of device.",
    ("device", "state"),
)
DISKS_TOTAL_DESC = Desc(
    build_fq_name(NAMESPACE, "md", "disks_required"),
    "Total number of disks of device.",
    ("device",),
)
BLOCKS_TOTAL_DESC = Desc(
    build_fq_name(NAMESPACE, "md", "blocks"),
    "Total number of blocks on device.",
    ("device",),
)
BLOCKS_SYNCED_DESC = Desc(
    build_fq_name(NAMESPACE, "md", "blocks_synced"),
    "Number of blocks synced on device.",
    ("device",),
)

# State descriptions and the activity state that sets each of them to 1.
_STATE_DESCS = (
    (ACTIVE_DESC, "active"),
    (INACTIVE_DESC, "inactive"),
    (RECOVERING_DESC, "recovering"),
    (RESYNC_DESC, "resyncing"),
    (CHECK_DESC, "checking"),
)


@dataclass
class MDStat:
    """Status of one md device as read from mdstat."""

    name: str
    activity_state: str = ""
    disks_active: int = 0
    disks_total: int = 0
    disks_failed: int = 0
    disks_spare: int = 0
    blocks_total: int = 0
    blocks_synced: int = 0


class MdadmCollector:
    """Exposes the state, disks and sync progress of md devices."""

    def update(self, md_stats: Iterable[MDStat]) -> list[Metric]:
        metrics = []
        for stat in md_stats:
            _log.debug("collecting metrics for device %s", stat.name)
            metrics.append(DISKS_TOTAL_DESC.metric(ValueType.GAUGE, stat.disks_total, stat.name))
            metrics.append(DISKS_DESC.metric(ValueType.GAUGE, stat.disks_active, stat.name, "active"))
            metrics.append(DISKS_DESC.metric(ValueType.GAUGE, stat.disks_failed, stat.name, "failed"))
            metrics.append(DISKS_DESC.metric(ValueType.GAUGE, stat.disks_spare, stat.name, "spare"))
            for desc, state in _STATE_DESCS:
                value = 1.0 if stat.activity_state == state else 0.0
                metrics.append(desc.metric(ValueType.GAUGE, value, stat.name))
            metrics.append(BLOCKS_TOTAL_DESC.metric(ValueType.GAUGE, stat.blocks_total, stat.name))
            metrics.append(BLOCKS_SYNCED_DESC.metric(ValueType.GAUGE, stat.blocks_synced, stat.name))
        return metrics