"""InfiniBand device and port statistics from /sys/class/infiniband."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from nodestats.helper import NAMESPACE, Desc, Metric, ValueType, build_fq_name

SUBSYSTEM = "infiniband"

DESCRIPTIONS = {
    "legacy_multicast_packets_received_total": "Number of multicast packets received",
    "legacy_multicast_packets_transmitted_total": "Number of multicast packets transmitted",
    "legacy_data_received_bytes_total": "Number of data octets received on all links",
    "legacy_packets_received_total": "Number of data packets received on all links",
    "legacy_unicast_packets_received_total": "Number of unicast packets received",
    "legacy_unicast_packets_transmitted_total": "Number of unicast packets transmitted",
    "legacy_data_transmitted_bytes_total": "Number of data octets transmitted on all links",
    "legacy_packets_transmitted_total": "Number of data packets received on all links",
    "excessive_buffer_overrun_errors_total": (
        "Number of times that OverrunErrors consecutive flow control update periods "
        "occurred, each having at least one overrun error."
    ),
    "link_downed_total": "Number of times the link failed to recover from an error state and went down",
    "link_error_recovery_total": "Number of times the link successfully recovered from an error state",
    "local_link_integrity_errors_total": (
        "Number of times that the count of local physical errors exceeded the threshold "
        "specified by LocalPhyErrors."
    ),
    "multicast_packets_received_total": "Number of multicast packets received (including errors)",
    "multicast_packets_transmitted_total": "Number of multicast packets transmitted (including errors)",
    "physical_state_id": (
        "Physical state of the InfiniBand port (0: no change, 1: sleep, 2: polling, 3: disable, "
        "4: shift, 5: link up, 6: link error recover, 7: phytest)"
    ),
    "port_constraint_errors_received_total": (
        "Number of packets received on the switch physical port that are discarded"
    ),
    "port_constraint_errors_transmitted_total": "Number of packets not transmitted from the switch physical port",
    "port_data_received_bytes_total": "Number of data octets received on all links",
    "port_data_transmitted_bytes_total": "Number of data octets transmitted on all links",
    "port_discards_received_total": (
        "Number of inbound packets discarded by the port because the port is down or congested"
    ),
    "port_discards_transmitted_total": (
        "Number of outbound packets discarded by the port because the port is down or congested"
    ),
    "port_errors_received_total": "Number of packets containing an error that were received on this port",
    "port_packets_received_total": "Number of packets received on all VLs by this port (including errors)",
    "port_packets_transmitted_total": (
        "Number of packets transmitted on all VLs from this port (including errors)"
    ),
    "port_transmit_wait_total": (
        "Number of ticks during which the port had data to transmit but no data was sent "
        "during the entire tick"
    ),
    "rate_bytes_per_second": "Maximum signal transfer rate",
    "state_id": (
        "State of the InfiniBand port (0: no change, 1: down, 2: init, 3: armed, 4: active, "
        "5: act defer)"
    ),
    "unicast_packets_received_total": "Number of unicast packets received (including errors)",
    "unicast_packets_transmitted_total": "Number of unicast packets transmitted (including errors)",
    "port_receive_remote_physical_errors_total": (
        "Number of packets marked with the EBP (End of Bad Packet) delimiter received on the port."
    ),
    "port_receive_switch_relay_errors_total": "Number of packets that could not be forwarded by the switch.",
    "symbol_error_total": "Number of minor link errors detected on one or more physical lanes.",
    "vl15_dropped_total": "Number of incoming VL15 packets dropped due to resource limitations.",
}

# Metric name and counter attribute, in the order they are exposed.
_COUNTERS = (
    ("legacy_multicast_packets_received_total", "legacy_port_multicast_rcv_packets"),
    ("legacy_multicast_packets_transmitted_total", "legacy_port_multicast_xmit_packets"),
    ("legacy_data_received_bytes_total", "legacy_port_rcv_data64"),
    ("legacy_packets_received_total", "legacy_port_rcv_packets64"),
    ("legacy_unicast_packets_received_total", "legacy_port_unicast_rcv_packets"),
    ("legacy_unicast_packets_transmitted_total", "legacy_port_unicast_xmit_packets"),
    ("legacy_data_transmitted_bytes_total", "legacy_port_xmit_data64"),
    ("legacy_packets_transmitted_total", "legacy_port_xmit_packets64"),
    ("excessive_buffer_overrun_errors_total", "excessive_buffer_overrun_errors"),
    ("link_downed_total", "link_downed"),
    ("link_error_recovery_total", "link_error_recovery"),
    ("local_link_integrity_errors_total", "local_link_integrity_errors"),
    ("multicast_packets_received_total", "multicast_rcv_packets"),
    ("multicast_packets_transmitted_total", "multicast_xmit_packets"),
    ("port_constraint_errors_received_total", "port_rcv_constraint_errors"),
    ("port_constraint_errors_transmitted_total", "port_xmit_constraint_errors"),
    ("port_data_received_bytes_total", "port_rcv_data"),
    ("port_data_transmitted_bytes_total", "port_xmit_data"),
    ("port_discards_received_total", "port_rcv_discards"),
    ("port_discards_transmitted_total", "port_xmit_discards"),
    ("port_errors_received_total", "port_rcv_errors"),
    ("port_packets_received_total", "port_rcv_packets"),
    ("port_packets_transmitted_total", "port_xmit_packets"),
    ("port_transmit_wait_total", "port_xmit_wait"),
    ("unicast_packets_received_total", "unicast_rcv_packets"),
    ("unicast_packets_transmitted_total", "unicast_xmit_packets"),
    ("port_receive_remote_physical_errors_total", "port_rcv_remote_physical_errors"),
    ("port_receive_switch_relay_errors_total", "port_rcv_switch_relay_errors"),
    ("symbol_error_total", "symbol_error"),
    ("vl15_dropped_total", "vl15_dropped"),
)


@dataclass
class InfiniBandCounters:
    """Port counters; None marks a counter the port does not provide."""

    legacy_port_multicast_rcv_packets: Optional[int] = None
    legacy_port_multicast_xmit_packets: Optional[int] = None
    legacy_port_rcv_data64: Optional[int] = None
    legacy_port_rcv_packets64: Optional[int] = None
    legacy_port_unicast_rcv_packets: Optional[int] = None
    legacy_port_unicast_xmit_packets: Optional[int] = None
    legacy_port_xmit_data64: Optional[int] = None
    legacy_port_xmit_packets64: Optional[int] = None
    excessive_buffer_overrun_errors: Optional[int] = None
    link_downed: Optional[int] = None
    link_error_recovery: Optional[int] = None
    local_link_integrity_errors: Optional[int] = None
    multicast_rcv_packets: Optional[int] = None
    multicast_xmit_packets: Optional[int] = None
    port_rcv_constraint_errors: Optional[int] = None
    port_xmit_constraint_errors: Optional[int] = None
    port_rcv_data: Optional[int] = None
    port_xmit_data: Optional[int] = None
    port_rcv_discards: Optional[int] = None
    port_xmit_discards: Optional[int] = None
    port_rcv_errors: Optional[int] = None
    port_rcv_packets: Optional[int] = None
    port_xmit_packets: Optional[int] = None
    port_xmit_wait: Optional[int] = None
    unicast_rcv_packets: Optional[int] = None
    unicast_xmit_packets: Optional[int] = None
    port_rcv_remote_physical_errors: Optional[int] = None
    port_rcv_switch_relay_errors: Optional[int] = None
    symbol_error: Optional[int] = None
    vl15_dropped: Optional[int] = None


@dataclass
class InfiniBandPort:
    """State, rate and counters of one port; name is the owning device's name."""

    name: str
    port: int
    state_id: int = 0
    phys_state_id: int = 0
    rate: int = 0
    counters: InfiniBandCounters = field(default_factory=InfiniBandCounters)


@dataclass
class InfiniBandDevice:
    """An InfiniBand device and its ports."""

    name: str
    board_id: str = ""
    firmware_version: str = ""
    hca_type: str = ""
    ports: list[InfiniBandPort] = field(default_factory=list)


class InfiniBandCollector:
    """Exposes InfiniBand device information and port statistics."""

    def __init__(self) -> None:
        self.subsystem = SUBSYSTEM
        self.metric_descs = {
            name: Desc(build_fq_name(NAMESPACE, SUBSYSTEM, name), description, ("device", "port"))
            for name, description in DESCRIPTIONS.items()
        }
        self.info_desc = Desc(
            build_fq_name(NAMESPACE, SUBSYSTEM, "info"),
            "Non-numeric data from /sys/class/infiniband/<device>, value is always 1.",
            ("device", "board_id", "firmware_version", "hca_type"),
        )

    def _gauge(self, name: str, value: int, device: str, port: str) -> Metric:
        return self.metric_descs[name].metric(ValueType.GAUGE, value, device, port)

    def update(self, devices: Iterable[InfiniBandDevice]) -> list[Metric]:
        """Return the info metric of every device and the metrics of its ports."""
        metrics = []
        for device in devices:
            metrics.append(
                self.info_desc.metric(
                    ValueType.GAUGE, 1.0,
                    device.name, device.board_id, device.firmware_version, device.hca_type,
                )
            )
            for port in device.ports:
                port_str = str(port.port)
                metrics.append(self._gauge("state_id", port.state_id, port.name, port_str))
                metrics.append(self._gauge("physical_state_id", port.phys_state_id, port.name, port_str))
                metrics.append(self._gauge("rate_bytes_per_second", port.rate, port.name, port_str))
                for metric_name, attribute in _COUNTERS:
                    value = getattr(port.counters, attribute)
                    if value is None:
                        continue
                    metrics.append(
                        self.metric_descs[metric_name].metric(ValueType.COUNTER, value, port.name, port_str)
                    )
        return metrics