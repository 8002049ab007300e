"""IPVS connection and backend statistics."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from nodestats.helper import NAMESPACE, Desc, Metric, ValueType, build_fq_name

SUBSYSTEM = "ipvs"

LABEL_LOCAL_ADDRESS = "local_address"
LABEL_LOCAL_PORT = "local_port"
LABEL_REMOTE_ADDRESS = "remote_address"
LABEL_REMOTE_PORT = "remote_port"
LABEL_PROTO = "proto"
LABEL_LOCAL_MARK = "local_mark"

FULL_BACKEND_LABELS = (
    LABEL_LOCAL_ADDRESS,
    LABEL_LOCAL_PORT,
    LABEL_REMOTE_ADDRESS,
    LABEL_REMOTE_PORT,
    LABEL_PROTO,
    LABEL_LOCAL_MARK,
)

Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address, str, None]


@dataclass
class IPVSStats:
    """Totals from the IPVS statistics table."""

    connections: int = 0
    incoming_packets: int = 0
    outgoing_packets: int = 0
    incoming_bytes: int = 0
    outgoing_bytes: int = 0


@dataclass
class IPVSBackend:
    """One real server entry of a virtual service."""

    local_address: Address = None
    local_port: int = 0
    remote_address: Address = None
    remote_port: int = 0
    proto: str = ""
    local_mark: str = ""
    active_conn: int = 0
    inact_conn: int = 0
    weight: int = 0


def _address_text(address: Address) -> str:
    return "" if address is None else str(address)


def parse_ipvs_labels(label_string: str) -> tuple[str, ...]:
    """Validate a comma separated label list and return it in canonical order."""
    labels = {label for label in label_string.split(",") if label}
    unknown = sorted(labels.difference(FULL_BACKEND_LABELS))
    if unknown:
        raise ValueError(f'unknown IPVS backend labels: "{", ".join(unknown)}"')
    return tuple(label for label in FULL_BACKEND_LABELS if label in labels)


class IPVSCollector:
    """Exposes IPVS totals and per-backend connection figures."""

    def __init__(self, backend_labels: Optional[str] = None) -> None:
        if backend_labels is None:
            backend_labels = ",".join(FULL_BACKEND_LABELS)
        self.backend_labels = parse_ipvs_labels(backend_labels)

        def desc(name: str, help_text: str, labels: tuple[str, ...] = ()) -> Desc:
            return Desc(build_fq_name(NAMESPACE, SUBSYSTEM, name), help_text, labels)

        self.connections = desc("connections_total", "The total number of connections made.")
        self.incoming_packets = desc("incoming_packets_total", "The total number of incoming packets.")
        self.outgoing_packets = desc("outgoing_packets_total", "The total number of outgoing packets.")
        self.incoming_bytes = desc("incoming_bytes_total", "The total amount of incoming data.")
        self.outgoing_bytes = desc("outgoing_bytes_total", "The total amount of outgoing data.")
        self.backend_connections_active = desc(
            "backend_connections_active",
            "The current active connections by local and remote address.",
            self.backend_labels,
        )
        self.backend_connections_inactive = desc(
            "backend_connections_inactive",
            "The current inactive connections by local and remote address.",
            self.backend_labels,
        )
        self.backend_weight = desc(
            "backend_weight",
            "The current backend weight by local and remote address.",
            self.backend_labels,
        )

    def _label_value(self, label: str, backend: IPVSBackend) -> str:
        if label == LABEL_LOCAL_ADDRESS:
            return _address_text(backend.local_address)
        if label == LABEL_LOCAL_PORT:
            return str(backend.local_port)
        if label == LABEL_REMOTE_ADDRESS:
            return _address_text(backend.remote_address)
        if label == LABEL_REMOTE_PORT:
            return str(backend.remote_port)
        if label == LABEL_PROTO:
            return backend.proto
        return backend.local_mark

    def update(self, stats: IPVSStats, backends: Iterable[IPVSBackend]) -> list[Metric]:
        metrics = [
            self.connections.metric(ValueType.COUNTER, stats.connections),
            self.incoming_packets.metric(ValueType.COUNTER, stats.incoming_packets),
            self.outgoing_packets.metric(ValueType.COUNTER, stats.outgoing_packets),
            self.incoming_bytes.metric(ValueType.COUNTER, stats.incoming_bytes),
            self.outgoing_bytes.metric(ValueType.COUNTER, stats.outgoing_bytes),
        ]

        # Backends sharing the selected label values are summed together.
        sums: dict[tuple[str, ...], list[int]] = {}
        for backend in backends:
            key = tuple(self._label_value(label, backend) for label in self.backend_labels)
            total = sums.setdefault(key, [0, 0, 0])
            total[0] += backend.active_conn
            total[1] += backend.inact_conn
            total[2] += backend.weight

        for key, (active, inactive, weight) in sums.items():
            metrics.append(self.backend_connections_active.metric(ValueType.GAUGE, active, *key))
            metrics.append(self.backend_connections_inactive.metric(ValueType.GAUGE, inactive, *key))
            metrics.append(self.backend_weight.metric(ValueType.GAUGE, weight, *key))
        return metrics