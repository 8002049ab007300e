"""Interrupt counts from /proc/interrupts."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Iterable

from nodestats.helper import DEFAULT_PROC_PATH, NAMESPACE, Desc, Metric, ValueType

INTERRUPT_LABEL_NAMES = ("cpu", "type", "info", "devices")

_NUMBER_RE = re.compile(r"[+-]?[0-9]+")


@dataclass
class Interrupt:
    """Per-CPU counts of one interrupt line."""

    info: str = ""
    devices: str = ""
    values: list[str] = field(default_factory=list)


def parse_interrupts(stream: Iterable[str]) -> dict[str, Interrupt]:
    """Parse the interrupts table, keyed by interrupt name."""
    lines = iter(stream)
    try:
        header = next(lines)
    except StopIteration:
        raise ValueError("interrupts empty") from None
    cpu_num = len(header.split())

    interrupts: dict[str, Interrupt] = {}
    for line in lines:
        parts = line.split()
        if len(parts) < cpu_num + 2:
            # Lines such as ERR and MIS carry no per-CPU details.
            continue
        name = parts[0][:-1]
        intr = Interrupt(values=parts[1:cpu_num + 1])
        if _NUMBER_RE.fullmatch(name):
            intr.info = parts[cpu_num + 1]
            intr.devices = " ".join(parts[cpu_num + 2:])
        else:
            intr.info = " ".join(parts[cpu_num + 1:])
        interrupts[name] = intr
    return interrupts


class InterruptsCollector:
    """Exposes per-CPU interrupt counts."""

    def __init__(self, proc_path: str = DEFAULT_PROC_PATH) -> None:
        self.proc_path = proc_path
        self.desc = Desc(f"{NAMESPACE}_interrupts_total", "Interrupt details.", INTERRUPT_LABEL_NAMES)

    def update(self) -> list[Metric]:
        try:
            with open(os.path.join(self.proc_path, "interrupts"), encoding="utf-8") as handle:
                interrupts = parse_interrupts(handle)
        except (OSError, ValueError) as err:
            raise RuntimeError(f"couldn't get interrupts: {err}") from err
        metrics = []
        for name, intr in interrupts.items():
            for cpu, raw in enumerate(intr.values):
                try:
                    value = float(raw)
                except ValueError as err:
                    raise ValueError(f"invalid value {raw} in interrupts: {err}") from err
                metrics.append(
                    self.desc.metric(ValueType.COUNTER, value, str(cpu), name, intr.info, intr.devices)
                )
        return metrics