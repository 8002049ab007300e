"""Hardware monitoring sensors from /sys/class/hwmon."""

from __future__ import annotations

import logging
import os
import re
from typing import Optional

from nodestats.helper import DEFAULT_SYS_PATH, Desc, Metric, ValueType

SENSOR_TYPES = (
    "vrm", "beep_enable", "update_interval", "in", "cpu", "fan",
    "pwm", "temp", "curr", "power", "energy", "humidity",
    "intrusion",
)
LABEL_NAMES = ("chip", "sensor")
CHIP_NAME_LABEL_NAMES = ("chip", "chip_name")

_log = logging.getLogger(__name__)

_INVALID_METRIC_CHARS_RE = re.compile(r"[^a-z0-9:_]")
_FILENAME_RE = re.compile(r"(?P<type>[^0-9]+)(?P<id>[0-9]*)?(?:_(?P<property>.+))?")
_READ_LIMIT = 128


def clean_metric_name(name: str) -> str:
    """Lower-case a name, replace invalid characters and trim underscores."""
    return _INVALID_METRIC_CHARS_RE.sub("_", name.lower()).strip("_")


def explode_sensor_filename(filename: str) -> Optional[tuple[str, int, str]]:
    """Split a sensor file name into (type, number, property), or None."""
    match = _FILENAME_RE.fullmatch(filename)
    if match is None:
        return None
    sensor_id = match.group("id") or ""
    return match.group("type"), int(sensor_id) if sensor_id else 0, match.group("property") or ""


def _sys_read_file(path: str) -> bytes:
    # Some broken drivers return EAGAIN forever; read once and give up on errors.
    fd = os.open(path, os.O_RDONLY)
    try:
        return os.read(fd, _READ_LIMIT)
    finally:
        os.close(fd)


def _add_value_file(data: dict[str, dict[str, str]], sensor: str, prop: str, path: str) -> None:
    try:
        raw = _sys_read_file(path)
    except OSError:
        return
    data.setdefault(sensor, {})[prop] = raw.decode("utf-8", errors="replace").strip("\n")


def collect_sensor_data(directory: str, data: dict[str, dict[str, str]]) -> dict[str, dict[str, str]]:
    """Read every known sensor file in a directory into data, keyed by sensor."""
    for filename in sorted(os.listdir(directory)):
        parsed = explode_sensor_filename(filename)
        if parsed is None:
            continue
        sensor_type, sensor_num, sensor_property = parsed
        if sensor_type in SENSOR_TYPES:
            _add_value_file(
                data, f"{sensor_type}{sensor_num}", sensor_property, os.path.join(directory, filename)
            )
    return data


def _parse_float(text: Optional[str]) -> Optional[float]:
    if not text or text != text.strip() or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _read_name_file(directory: str) -> str:
    with open(os.path.join(directory, "name"), "rb") as handle:
        return handle.read().decode("utf-8", errors="replace")


def _gauge(name: str, help_text: str, value: float, labels: tuple[str, str]) -> Metric:
    return Desc(name, help_text, LABEL_NAMES).metric(ValueType.GAUGE, value, *labels)


class HwMonCollector:
    """Exposes hwmon sensor readings, similar to lm-sensors."""

    def __init__(self, sys_path: str = DEFAULT_SYS_PATH) -> None:
        self.sys_path = sys_path

    def hwmon_name(self, directory: str) -> str:
        """Derive a stable chip name for a hwmon directory."""
        device = os.path.join(directory, "device")
        if os.path.exists(device):
            device_path = os.path.realpath(device)
            prefix, dev_name = os.path.split(device_path)
            dev_type = os.path.basename(prefix.rstrip("/"))
            clean_name = clean_metric_name(dev_name)
            clean_type = clean_metric_name(dev_type)
            if clean_type and clean_name:
                return f"{clean_type}_{clean_name}"
            if clean_name:
                return clean_name

        try:
            sysname = _read_name_file(directory)
        except OSError:
            sysname = ""
        if sysname:
            clean_name = clean_metric_name(sysname)
            if clean_name:
                return clean_name

        if not os.path.exists(directory):
            raise FileNotFoundError(f"no such hwmon directory: {directory}")
        clean_name = clean_metric_name(os.path.basename(os.path.realpath(directory)))
        if clean_name:
            return clean_name
        raise ValueError("Could not derive a monitoring name for " + directory)

    def human_readable_chip_name(self, directory: str) -> str:
        """Return the cleaned content of the chip's name file."""
        sysname = _read_name_file(directory)
        if sysname:
            clean_name = clean_metric_name(sysname)
            if clean_name:
                return clean_name
        raise ValueError("Could not derive a human-readable chip type for " + directory)

    def update_hwmon(self, directory: str) -> list[Metric]:
        """Return the metrics of one hwmon directory."""
        chip = self.hwmon_name(directory)
        data: dict[str, dict[str, str]] = {}
        collect_sensor_data(directory, data)
        device_dir = os.path.join(directory, "device")
        if os.path.exists(device_dir):
            collect_sensor_data(device_dir, data)

        metrics = []
        try:
            chip_name = self.human_readable_chip_name(directory)
        except (OSError, ValueError):
            chip_name = None
        if chip_name is not None:
            desc = Desc(
                "node_hwmon_chip_names",
                "Annotation metric for human-readable chip names",
                CHIP_NAME_LABEL_NAMES,
            )
            metrics.append(desc.metric(ValueType.GAUGE, 1.0, chip, chip_name))

        for sensor, sensor_data in data.items():
            metrics.extend(self._sensor_metrics(chip, sensor, sensor_data))
        return metrics

    def _sensor_metrics(self, chip: str, sensor: str, sensor_data: dict[str, str]) -> list[Metric]:
        parsed = explode_sensor_filename(sensor)
        sensor_type = parsed[0] if parsed else ""
        labels = (chip, sensor)
        metrics = []

        label_text = sensor_data.get("label")
        if label_text is not None:
            label = clean_metric_name(label_text)
            if label:
                desc = Desc(
                    "node_hwmon_sensor_label",
                    "Label for given chip and sensor",
                    ("chip", "sensor", "label"),
                )
                metrics.append(desc.metric(ValueType.GAUGE, 1.0, chip, sensor, label))

        if sensor_type == "beep_enable":
            value = 1.0 if sensor_data.get("") == "1" else 0.0
            metrics.append(_gauge("node_hwmon_beep_enabled", "Hardware beep enabled", value, labels))
            return metrics
        if sensor_type == "vrm":
            value = _parse_float(sensor_data.get(""))
            if value is not None:
                metrics.append(
                    _gauge("node_hwmon_voltage_regulator_version", "Hardware voltage regulator", value, labels)
                )
            return metrics
        if sensor_type == "update_interval":
            value = _parse_float(sensor_data.get(""))
            if value is not None:
                metrics.append(
                    _gauge(
                        "node_hwmon_update_interval_seconds",
                        "Hardware monitor update interval",
                        value * 0.001,
                        labels,
                    )
                )
            return metrics

        prefix = "node_hwmon_" + sensor_type
        for element, raw in sensor_data.items():
            if element == "label":
                continue
            name = prefix
            if element == "input":
                if "" in sensor_data:
                    name += "_input"
            elif element:
                name += "_" + clean_metric_name(element)
            value = _parse_float(raw)
            if value is None:
                continue
            metric = self._element_metric(name, sensor_type, element, value, labels)
            metrics.append(metric)
        return metrics

    @staticmethod
    def _element_metric(
        name: str, sensor_type: str, element: str, value: float, labels: tuple[str, str]
    ) -> Metric:
        # Fault, alarm and beep states carry no unit.
        if element in ("fault", "alarm"):
            return _gauge(name, f"Hardware sensor {element} status ({sensor_type})", value, labels)
        if element == "beep":
            return _gauge(name + "_enabled", "Hardware monitor sensor has beeping enabled", value, labels)

        if sensor_type in ("in", "cpu"):
            return _gauge(name + "_volts", f"Hardware monitor for voltage ({element})", value * 0.001, labels)
        if sensor_type == "temp" and element != "type":
            element = element or "input"
            return _gauge(
                name + "_celsius", f"Hardware monitor for temperature ({element})", value * 0.001, labels
            )
        if sensor_type == "curr":
            return _gauge(name + "_amps", f"Hardware monitor for current ({element})", value * 0.001, labels)
        if sensor_type == "energy":
            desc = Desc(
                name + "_joule_total",
                f"Hardware monitor for joules used so far ({element})",
                LABEL_NAMES,
            )
            return desc.metric(ValueType.COUNTER, value / 1000000.0, *labels)
        if sensor_type == "power" and element == "accuracy":
            return _gauge(name, "Hardware monitor power meter accuracy, as a ratio", value / 1000000.0, labels)
        if sensor_type == "power" and element in (
            "average_interval", "average_interval_min", "average_interval_max"
        ):
            return _gauge(
                name + "_seconds",
                f"Hardware monitor power usage update interval ({element})",
                value * 0.001,
                labels,
            )
        if sensor_type == "power":
            return _gauge(
                name + "_watt", f"Hardware monitor for power usage in watts ({element})", value / 1000000.0, labels
            )
        if sensor_type == "humidity":
            return _gauge(
                name,
                "Hardware monitor for humidity, as a ratio (multiply with 100.0 to get the "
                f"humidity as a percentage) ({element})",
                value / 1000000.0,
                labels,
            )
        if sensor_type == "fan" and element in ("input", "min", "max", "target"):
            return _gauge(
                name + "_rpm", f"Hardware monitor for fan revolutions per minute ({element})", value, labels
            )
        return _gauge(name, f"Hardware monitor {sensor_type} element {element}", value, labels)

    def update(self) -> list[Metric]:
        """Collect the metrics of every hwmon directory.

        Every directory is processed; the last error met is raised afterwards.
        """
        hwmon_path = os.path.join(self.sys_path, "class", "hwmon")
        try:
            entries = sorted(os.listdir(hwmon_path))
        except FileNotFoundError:
            _log.debug("hwmon collector metrics are not available for this system")
            return []

        metrics: list[Metric] = []
        last_error: Optional[Exception] = None
        for entry in entries:
            path = os.path.join(hwmon_path, entry)
            if not os.path.isdir(path):
                continue
            try:
                metrics.extend(self.update_hwmon(path))
            except (OSError, ValueError) as err:
                last_error = err
        if last_error is not None:
            raise last_error
        return metrics