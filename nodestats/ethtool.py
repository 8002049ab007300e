"""Network interface statistics and link settings reported through ethtool."""

from __future__ import annotations

import errno
import logging
import re
import threading
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Protocol

from nodestats.helper import NAMESPACE, Desc, Metric, ValueType, build_fq_name, sanitize_metric_name

_log = logging.getLogger(__name__)

_RECEIVED_RE = re.compile(r"(^|_)rx(_|$)")
_TRANSMIT_RE = re.compile(r"(^|_)tx(_|$)")

# Link modes are reported as a 32-bit mask; bits above 31 never show up.
_LINK_MODE_MASK = 0xFFFFFFFF

# Bit offsets of ethtool_link_mode_bit_indices in the kernel's ethtool interface.
_AUTONEG_BIT = 6
_PAUSE_BIT = 13
_ASYM_PAUSE_BIT = 14

_PORT_BITS = (
    ("TP", 7),
    ("AUI", 8),
    ("MII", 9),
    ("FIBRE", 10),
    ("BNC", 11),
    ("Backplane", 16),
)

_FULL = "full"
_HALF = "half"
# Bytes per second, to match the speeds reported for network classes.
_MBPS = 1000000.0 / 8.0

# (bit, speed in Mbit/s, duplex, phy)
_SPEED_BITS = (
    (0, 10, _HALF, "T"),
    (1, 10, _FULL, "T"),
    (2, 100, _HALF, "T"),
    (3, 100, _FULL, "T"),
    (4, 1000, _HALF, "T"),
    (5, 1000, _FULL, "T"),
    (12, 10000, _FULL, "T"),
    (17, 1000, _FULL, "KX"),
    (18, 10000, _FULL, "KX4"),
    (19, 10000, _FULL, "KR"),
    (20, 10000, _FULL, "R_FEC"),
    (21, 20000, _FULL, "MLD2"),
    (22, 20000, _FULL, "KR2"),
    (23, 40000, _FULL, "KR4"),
    (24, 40000, _FULL, "CR4"),
    (25, 40000, _FULL, "SR4"),
    (26, 40000, _FULL, "LR4"),
    (27, 56000, _FULL, "KR4"),
    (28, 56000, _FULL, "CR4"),
    (29, 56000, _FULL, "SR4"),
    (30, 56000, _FULL, "LR4"),
    (31, 25000, _FULL, "CR"),
    (47, 2500, _FULL, "T"),
)

INFO_LABEL_NAMES = (
    "bus_info", "device", "driver", "expansion_rom_version", "firmware_version", "version",
)


@dataclass(frozen=True)
class DriverInfo:
    """Driver details of a network device."""

    driver: str = ""
    version: str = ""
    fw_version: str = ""
    bus_info: str = ""
    erom_version: str = ""


@dataclass(frozen=True)
class LinkInfo:
    """Supported and advertised link modes of a network device."""

    supported: int = 0
    advertising: int = 0
    autoneg: int = 0


class EthtoolError(OSError):
    """An error reported by the ethtool interface, carrying an errno."""

    def __init__(self, code: int, message: Optional[str] = None) -> None:
        super().__init__(code, message if message is not None else f"ethtool error {code}")


class _EthtoolSource(Protocol):
    def driver_info(self, device: str) -> DriverInfo: ...

    def stats(self, device: str) -> Mapping[str, int]: ...

    def link_info(self, device: str) -> LinkInfo: ...


def build_ethtool_fq_name(metric: str) -> str:
    """Build the fully-qualified metric name for an ethtool statistic."""
    name = sanitize_metric_name(metric).lower().lstrip("_")
    name = _RECEIVED_RE.sub(r"\1received\2", name)
    name = _TRANSMIT_RE.sub(r"\1transmitted\2", name)
    return build_fq_name(NAMESPACE, "ethtool", name)


def _desc(subsystem: str, name: str, help_text: str, labels: tuple[str, ...] = ("device",)) -> Desc:
    return Desc(build_fq_name(NAMESPACE, subsystem, name), help_text, labels)


def _default_entries() -> dict[str, Desc]:
    speed_labels = ("device", "duplex", "mode")
    return {
        "rx_bytes": _desc("ethtool", "received_bytes_total", "Network interface bytes received"),
        "rx_dropped": _desc("ethtool", "received_dropped_total", "Number of received frames dropped"),
        "rx_errors": _desc("ethtool", "received_errors_total", "Number of received frames with errors"),
        "rx_packets": _desc("ethtool", "received_packets_total", "Network interface packets received"),
        "tx_bytes": _desc("ethtool", "transmitted_bytes_total", "Network interface bytes sent"),
        "tx_errors": _desc("ethtool", "transmitted_errors_total", "Number of sent frames with errors"),
        "tx_packets": _desc("ethtool", "transmitted_packets_total", "Network interface packets sent"),
        "supported_port": _desc(
            "network", "supported_port_info",
            "Type of ports or PHYs supported by network device", ("device", "type"),
        ),
        "supported_speed": _desc(
            "network", "supported_speed_bytes",
            "Combination of speeds and features supported by network device", speed_labels,
        ),
        "supported_autonegotiate": _desc(
            "network", "autonegotiate_supported", "If this port device supports autonegotiate"
        ),
        "supported_pause": _desc("network", "pause_supported", "If this port device supports pause frames"),
        "supported_asymmetricpause": _desc(
            "network", "asymmetricpause_supported", "If this port device supports asymmetric pause frames"
        ),
        "advertised_speed": _desc(
            "network", "advertised_speed_bytes",
            "Combination of speeds and features offered by network device", speed_labels,
        ),
        "advertised_autonegotiate": _desc(
            "network", "autonegotiate_advertised", "If this port device offers autonegotiate"
        ),
        "advertised_pause": _desc("network", "pause_advertised", "If this port device offers pause capability"),
        "advertised_asymmetricpause": _desc(
            "network", "asymmetricpause_advertised",
            "If this port device offers asymmetric pause capability",
        ),
        "autonegotiate": _desc("network", "autonegotiate", "If this port is using autonegotiate"),
    }


def _log_failure(what: str, device: str, err: OSError) -> None:
    code = err.errno
    if code is None:
        _log.error("ethtool %s error device=%s err=%s", what, device, err)
    elif code == errno.EOPNOTSUPP:
        _log.debug("ethtool %s error device=%s err=%s errno=%d", what, device, err, code)
    elif code != 0:
        _log.error("ethtool %s error device=%s err=%s errno=%d", what, device, err, code)


class EthtoolCollector:
    """Exposes ethtool statistics, driver details and link modes of network devices."""

    def __init__(
        self,
        ethtool: _EthtoolSource,
        device_include: str = "",
        device_exclude: str = "",
        metrics_include: str = ".*",
    ) -> None:
        if device_include and device_exclude:
            raise ValueError("device-include and device-exclude are mutually exclusive")
        self.ethtool = ethtool
        self._device_include = re.compile(device_include) if device_include else None
        self._device_exclude = re.compile(device_exclude) if device_exclude else None
        self.metrics_pattern = re.compile(metrics_include)
        self.entries = _default_entries()
        self._entries_lock = threading.Lock()
        self.info_desc = Desc(
            build_fq_name(NAMESPACE, "ethtool", "info"),
            "A metric with a constant '1' value labeled by bus_info, device, driver, "
            "expansion_rom_version, firmware_version, version.",
            INFO_LABEL_NAMES,
        )

    def _ignored(self, device: str) -> bool:
        if self._device_exclude is not None and self._device_exclude.search(device):
            return True
        return self._device_include is not None and not self._device_include.search(device)

    def _entry(self, key: str) -> Desc:
        with self._entries_lock:
            return self.entries[key]

    def _entry_with_create(self, key: str, fq_name: str) -> Desc:
        with self._entries_lock:
            if key not in self.entries:
                self.entries[key] = Desc(fq_name, f"Network interface {key}", ("device",))
            return self.entries[key]

    def _port_capabilities(self, prefix: str, device: str, link_modes: int) -> list[Metric]:
        link_modes &= _LINK_MODE_MASK
        result = []
        for suffix, bit in (("autonegotiate", _AUTONEG_BIT), ("pause", _PAUSE_BIT),
                            ("asymmetricpause", _ASYM_PAUSE_BIT)):
            value = 1.0 if link_modes & (1 << bit) else 0.0
            result.append(self._entry(f"{prefix}_{suffix}").metric(ValueType.GAUGE, value, device))
        return result

    def _port_info(self, device: str, link_modes: int) -> list[Metric]:
        link_modes &= _LINK_MODE_MASK
        desc = self._entry("supported_port")
        return [
            desc.metric(ValueType.GAUGE, 1.0, device, name)
            for name, bit in _PORT_BITS
            if link_modes & (1 << bit)
        ]

    def _speeds(self, prefix: str, device: str, link_modes: int) -> list[Metric]:
        link_modes &= _LINK_MODE_MASK
        desc = self._entry(f"{prefix}_speed")
        return [
            desc.metric(ValueType.GAUGE, speed * _MBPS, device, duplex, f"{speed}base{phy}")
            for bit, speed, duplex, phy in _SPEED_BITS
            if link_modes & (1 << bit)
        ]

    def _stat_metrics(self, device: str, stats: Mapping[str, int]) -> list[Metric]:
        # Sanitizing can make names clash; every clashing name is dropped.
        fq_names: dict[str, Optional[str]] = {}
        for metric in stats:
            if not self.metrics_pattern.search(metric):
                continue
            fq_name = build_ethtool_fq_name(metric)
            if fq_name in fq_names:
                _log.debug(
                    "dropping duplicate metric name device=%s metricFQName=%s metric1=%s metric2=%s",
                    device, fq_name, fq_names[fq_name], metric,
                )
                fq_names[fq_name] = None
            else:
                fq_names[fq_name] = metric

        result = []
        for fq_name in sorted(fq_names):
            metric = fq_names[fq_name]
            if metric is None:
                continue
            desc = self._entry_with_create(metric, fq_name)
            result.append(desc.metric(ValueType.UNTYPED, float(stats[metric]), device))
        return result

    def update(self, devices: Iterable[str]) -> list[Metric]:
        """Collect the metrics of the given network devices."""
        device_list = sorted(devices)
        if not device_list:
            raise ValueError("no network devices found")

        metrics: list[Metric] = []
        for device in device_list:
            if self._ignored(device):
                continue

            try:
                link = self.ethtool.link_info(device)
            except OSError as err:
                _log_failure("link info", device, err)
            else:
                metrics.extend(self._speeds("supported", device, link.supported))
                metrics.extend(self._port_info(device, link.supported))
                metrics.extend(self._port_capabilities("supported", device, link.supported))
                metrics.extend(self._speeds("advertised", device, link.advertising))
                metrics.extend(self._port_capabilities("advertised", device, link.advertising))
                metrics.append(
                    self._entry("autonegotiate").metric(ValueType.GAUGE, float(link.autoneg), device)
                )

            try:
                info = self.ethtool.driver_info(device)
            except OSError as err:
                _log_failure("driver info", device, err)
            else:
                metrics.append(
                    self.info_desc.metric(
                        ValueType.GAUGE, 1.0,
                        info.bus_info, device, info.driver, info.erom_version,
                        info.fw_version, info.version,
                    )
                )

            try:
                stats = self.ethtool.stats(device)
            except OSError as err:
                _log_failure("stats", device, err)
                continue
            if not stats:
                continue
            metrics.extend(self._stat_metrics(device, stats))
        return metrics