"""Fibre Channel host statistics from /sys/class/fc_host."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, NamedTuple

from nodestats.helper import NAMESPACE, Desc, Metric, ValueType, build_fq_name

SUBSYSTEM = "fibrechannel"

# The firmware reports this value for counters it does not implement.
MAX_UINT64 = 2**64 - 1

INFO_LABEL_NAMES = (
    "fc_host", "speed", "port_state", "port_type", "port_id", "port_name",
    "fabric_name", "symbolic_name", "supported_classes", "supported_speeds", "dev_loss_tmo",
)


class _Counter(NamedTuple):
    metric: str
    attribute: str
    help: str


# Counters in the order they are exposed.
_COUNTERS = (
    _Counter("dumped_frames_total", "dumped_frames",
             "Number of dumped frames"),
    _Counter("error_frames_total", "error_frames",
             "Number of errors in frames"),
    _Counter("invalid_crc_total", "invalid_crc_count",
             "Invalid Cyclic Redundancy Check count"),
    _Counter("rx_frames_total", "rx_frames",
             "Number of frames received"),
    _Counter("rx_words_total", "rx_words",
             "Number of words received by host port"),
    _Counter("tx_frames_total", "tx_frames",
             "Number of frames transmitted by host port"),
    _Counter("tx_words_total", "tx_words",
             "Number of words transmitted by host port"),
    _Counter("seconds_since_last_reset_total", "seconds_since_last_reset",
             "Number of seconds since last host port reset"),
    _Counter("invalid_tx_words_total", "invalid_tx_word_count",
             "Number of invalid words transmitted by host port"),
    _Counter("link_failure_total", "link_failure_count",
             "Number of times the host port link has failed"),
    _Counter("loss_of_sync_total", "loss_of_sync_count",
             "Number of failures on either bit or transmission word boundaries"),
    _Counter("loss_of_signal_total", "loss_of_signal_count",
             "Number of times signal has been lost"),
    _Counter("nos_total", "nos_count",
             "Number Not_Operational Primitive Sequence received by host port"),
    _Counter("fcp_packet_aborts_total", "fcp_packet_aborts",
             "Number of aborted packets"),
)

# Descriptions of the non-numeric host attributes.
_ATTRIBUTE_HELP = (
    ("name", "Name of Fibre Channel HBA"),
    ("speed", "Current operating speed"),
    ("port_state", "Current port state"),
    ("port_type", "Port type, what the port is connected to"),
    ("symbolic_name", "Symoblic Name"),
    ("node_name", "Node Name as hexadecimal string"),
    ("port_id", "Port ID as string"),
    ("port_name", "Port Name as hexadecimal string"),
    ("fabric_name", "Fabric Name; 0 if PTP"),
    ("dev_loss_tmo", "Device Loss Timeout in seconds"),
    ("supported_classes", "The FC classes supported"),
    ("supported_speeds", "The FC speeds supported"),
)

DESCRIPTIONS = {
    **{counter.metric: counter.help for counter in _COUNTERS},
    **dict(_ATTRIBUTE_HELP),
}


@dataclass
class FibreChannelCounters:
    """Statistics counters of one Fibre Channel host."""

    dumped_frames: int = 0
    error_frames: int = 0
    invalid_crc_count: int = 0
    rx_frames: int = 0
    rx_words: int = 0
    tx_frames: int = 0
    tx_words: int = 0
    seconds_since_last_reset: int = 0
    invalid_tx_word_count: int = 0
    link_failure_count: int = 0
    loss_of_sync_count: int = 0
    loss_of_signal_count: int = 0
    nos_count: int = 0
    fcp_packet_aborts: int = 0


@dataclass
class FibreChannelHost:
    """Attributes and counters of one Fibre Channel host."""

    name: str
    speed: str = ""
    port_state: str = ""
    port_type: str = ""
    symbolic_name: str = ""
    node_name: str = ""
    port_id: str = ""
    port_name: str = ""
    fabric_name: str = ""
    dev_loss_tmo: str = ""
    supported_classes: str = ""
    supported_speeds: str = ""
    counters: FibreChannelCounters = field(default_factory=FibreChannelCounters)


class FibreChannelCollector:
    """Exposes Fibre Channel host attributes and counters."""

    def __init__(self) -> None:
        self.subsystem = SUBSYSTEM
        self.metric_descs = {
            name: Desc(build_fq_name(NAMESPACE, SUBSYSTEM, name), description, ("fc_host",))
            for name, description in DESCRIPTIONS.items()
        }
        self.info_desc = Desc(
            build_fq_name(NAMESPACE, SUBSYSTEM, "info"),
            "Non-numeric data from /sys/class/fc_host/<host>, value is always 1.",
            INFO_LABEL_NAMES,
        )

    def _info(self, host: FibreChannelHost) -> Metric:
        label_values = [host.name]
        label_values.extend(getattr(host, label) for label in INFO_LABEL_NAMES[1:])
        return self.info_desc.metric(ValueType.GAUGE, 1.0, *label_values)

    def update(self, hosts: Iterable[FibreChannelHost]) -> list[Metric]:
        """Return the info metric and implemented counters of every host."""
        metrics = []
        for host in hosts:
            metrics.append(self._info(host))
            for counter in _COUNTERS:
                value = getattr(host.counters, counter.attribute)
                if value == MAX_UINT64:
                    continue
                desc = self.metric_descs[counter.metric]
                metrics.append(desc.metric(ValueType.COUNTER, value, host.name))
        return metrics