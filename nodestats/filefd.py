"""File descriptor statistics from sys/fs/file-nr."""

from __future__ import annotations

import os
from os import PathLike
from typing import Union

from nodestats.helper import DEFAULT_PROC_PATH, NAMESPACE, Desc, Metric, ValueType, build_fq_name

SUBSYSTEM = "filefd"


def parse_file_fd_stats(filename: Union[str, PathLike]) -> dict[str, str]:
    """Return the allocated and maximum counts from a file-nr file."""
    with open(filename, encoding="utf-8") as handle:
        content = handle.read()
    parts = content.strip().split("\t")
    if len(parts) < 3:
        raise ValueError(f"unexpected number of file stats in {str(filename)!r}")
    # The middle value is always zero on modern kernels and is skipped.
    return {"allocated": parts[0], "maximum": parts[2]}


class FileFDStatCollector:
    """Exposes file-nr statistics."""

    def __init__(self, proc_path: str = DEFAULT_PROC_PATH) -> None:
        self.proc_path = proc_path

    def update(self) -> list[Metric]:
        path = os.path.join(self.proc_path, "sys/fs/file-nr")
        try:
            stats = parse_file_fd_stats(path)
        except (OSError, ValueError) as err:
            raise RuntimeError(f"couldn't get file-nr: {err}") from err
        metrics = []
        for name, raw in stats.items():
            try:
                value = float(raw)
            except ValueError as err:
                raise ValueError(f"invalid value {raw} in file-nr: {err}") from err
            desc = Desc(
                build_fq_name(NAMESPACE, SUBSYSTEM, name),
                f"File descriptor statistics: {name}.",
            )
            metrics.append(desc.metric(ValueType.GAUGE, value))
        return metrics