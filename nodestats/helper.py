"""Shared metric primitives and small parsing helpers used by the collectors."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from os import PathLike
from typing import Union

NAMESPACE = "node"
DEFAULT_PROC_PATH = "/proc"
DEFAULT_SYS_PATH = "/sys"

_MAX_UINT64 = 2**64 - 1
_METRIC_NAME_RE = re.compile(r"_*[^0-9A-Za-z_]+_*")
_UINT_RE = re.compile(r"[0-9]+")


class ValueType(enum.Enum):
    """Kind of a sampled value."""

    COUNTER = "counter"
    GAUGE = "gauge"
    UNTYPED = "untyped"


@dataclass(frozen=True)
class Desc:
    """Describes a metric: its name, help text and labels."""

    fq_name: str
    help: str
    variable_labels: tuple[str, ...] = ()
    const_labels: tuple[tuple[str, str], ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "variable_labels", tuple(self.variable_labels or ()))
        const = self.const_labels or ()
        if isinstance(const, dict):
            const = tuple(sorted(const.items()))
        object.__setattr__(self, "const_labels", tuple(const))

    def metric(self, value_type: ValueType, value: float, *args: str) -> "Metric":
        """Create a sample of this description with the given label values."""
        if len(args) != len(self.variable_labels):
            raise ValueError(
                f"inconsistent label cardinality for {self.fq_name}: "
                f"expected {len(self.variable_labels)} label values, got {len(args)}"
            )
        return Metric(self, value_type, float(value), tuple(args))


@dataclass(frozen=True)
class Metric:
    """A single sample produced by a collector."""

    desc: Desc
    value_type: ValueType
    value: float
    label_values: tuple[str, ...] = field(default=())

    @property
    def name(self) -> str:
        return self.desc.fq_name

    @property
    def labels(self) -> dict[str, str]:
        """All labels of the sample, constant ones included."""
        result = dict(self.desc.const_labels)
        result.update(zip(self.desc.variable_labels, self.label_values))
        return result


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    """Join the non-empty parts of a metric name with underscores."""
    if not name:
        return ""
    return "_".join(part for part in (namespace, subsystem, name) if part)


def read_uint_from_file(path: Union[str, PathLike]) -> int:
    """Read an unsigned 64-bit decimal integer from a file."""
    with open(path, encoding="utf-8") as handle:
        text = handle.read().strip()
    if not _UINT_RE.fullmatch(text):
        raise ValueError(f"invalid unsigned integer {text!r} in {path}")
    value = int(text)
    if value > _MAX_UINT64:
        raise ValueError(f"value {text!r} in {path} is out of range")
    return value


def bytes_to_string(data: bytes) -> str:
    """Decode bytes up to the first NUL byte, or all of them if there is none."""
    end = data.find(b"\x00")
    if end >= 0:
        data = data[:end]
    return data.decode("utf-8", errors="replace")


def sanitize_metric_name(name: str) -> str:
    """Replace runs of characters invalid in metric names with an underscore."""
    return _METRIC_NAME_RE.sub("_", name)