"""Filesystem usage statistics for mounted filesystems."""

from __future__ import annotations

import logging
import os
import posixpath
import re
import threading
from dataclasses import dataclass
from typing import Iterable, Optional

from nodestats.helper import DEFAULT_PROC_PATH, NAMESPACE, Desc, Metric, ValueType, build_fq_name

SUBSYSTEM = "filesystem"

DEF_MOUNT_POINTS_EXCLUDED = (
    r"^/(dev|proc|run/credentials/.+|sys|var/lib/docker/.+|var/lib/containers/storage/.+)($|/)"
)
DEF_FS_TYPES_EXCLUDED = (
    r"^(autofs|binfmt_misc|bpf|cgroup2?|configfs|debugfs|devpts|devtmpfs|fusectl|hugetlbfs|"
    r"iso9660|mqueue|nsfs|overlay|proc|procfs|pstore|rpc_pipefs|securityfs|selinuxfs|"
    r"squashfs|sysfs|tracefs)$"
)
DEFAULT_ROOTFS_PATH = "/"
DEFAULT_MOUNT_TIMEOUT = 5.0

LABEL_NAMES = ("device", "mountpoint", "fstype")

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilesystemLabels:
    """Identity of one mount as read from the mounts table."""

    device: str
    mount_point: str
    fs_type: str
    options: str = ""


@dataclass
class FilesystemStats:
    """Usage figures of one mount."""

    labels: FilesystemLabels
    size: float = 0.0
    free: float = 0.0
    avail: float = 0.0
    files: float = 0.0
    files_free: float = 0.0
    ro: float = 0.0
    device_error: float = 0.0


def _rootfs_strip_prefix(path: str, rootfs_path: str) -> str:
    if rootfs_path == "/":
        return path
    stripped = path[len(rootfs_path):] if path.startswith(rootfs_path) else path
    return stripped or "/"


def _rootfs_file_path(rootfs_path: str, name: str) -> str:
    return posixpath.normpath(posixpath.join(rootfs_path, name.lstrip("/")))


def parse_filesystem_labels(
    stream: Iterable[str], rootfs_path: str = DEFAULT_ROOTFS_PATH
) -> list[FilesystemLabels]:
    """Parse a mounts table into mount labels."""
    filesystems = []
    for raw in stream:
        line = raw.rstrip("\n")
        parts = line.split()
        if len(parts) < 4:
            raise ValueError(f"malformed mount point information: {line!r}")
        # Octal escapes for space and tab, as in fstab(5).
        mount_point = parts[1].replace("\\040", " ").replace("\\011", "\t")
        filesystems.append(
            FilesystemLabels(
                device=parts[0],
                mount_point=_rootfs_strip_prefix(mount_point, rootfs_path),
                fs_type=parts[2],
                options=parts[3],
            )
        )
    return filesystems


def mount_point_details(
    proc_path: str = DEFAULT_PROC_PATH, rootfs_path: str = DEFAULT_ROOTFS_PATH
) -> list[FilesystemLabels]:
    """Read the mounts of process 1, falling back to the system mounts."""
    try:
        handle = open(os.path.join(proc_path, "1/mounts"), encoding="utf-8")
    except FileNotFoundError as err:
        _log.debug("Reading root mounts failed, falling back to system mounts: %s", err)
        handle = open(os.path.join(proc_path, "mounts"), encoding="utf-8")
    with handle:
        return parse_filesystem_labels(handle, rootfs_path)


class FilesystemCollector:
    """Exposes size, free space and inode figures of mounted filesystems."""

    def __init__(
        self,
        proc_path: str = DEFAULT_PROC_PATH,
        rootfs_path: str = DEFAULT_ROOTFS_PATH,
        mount_points_exclude: Optional[str] = None,
        fs_types_exclude: Optional[str] = None,
        ignored_mount_points: str = "",
        ignored_fs_types: str = "",
        mount_timeout: float = DEFAULT_MOUNT_TIMEOUT,
    ) -> None:
        if ignored_mount_points:
            if mount_points_exclude is not None:
                raise ValueError(
                    "--collector.filesystem.ignored-mount-points and "
                    "--collector.filesystem.mount-points-exclude are mutually exclusive"
                )
            _log.warning(
                "--collector.filesystem.ignored-mount-points is DEPRECATED and will be removed "
                "in 2.0.0, use --collector.filesystem.mount-points-exclude"
            )
            mount_points_exclude = ignored_mount_points
        if ignored_fs_types:
            if fs_types_exclude is not None:
                raise ValueError(
                    "--collector.filesystem.ignored-fs-types and "
                    "--collector.filesystem.fs-types-exclude are mutually exclusive"
                )
            _log.warning(
                "--collector.filesystem.ignored-fs-types is DEPRECATED and will be removed "
                "in 2.0.0, use --collector.filesystem.fs-types-exclude"
            )
            fs_types_exclude = ignored_fs_types
        if mount_points_exclude is None:
            mount_points_exclude = DEF_MOUNT_POINTS_EXCLUDED
        if fs_types_exclude is None:
            fs_types_exclude = DEF_FS_TYPES_EXCLUDED

        _log.info("Parsed flag --collector.filesystem.mount-points-exclude flag=%s", mount_points_exclude)
        self.excluded_mount_points_pattern = re.compile(mount_points_exclude)
        _log.info("Parsed flag --collector.filesystem.fs-types-exclude flag=%s", fs_types_exclude)
        self.excluded_fs_types_pattern = re.compile(fs_types_exclude)

        self.proc_path = proc_path
        self.rootfs_path = rootfs_path
        self.mount_timeout = mount_timeout
        self._stuck_mounts: set[str] = set()
        self._stuck_lock = threading.Lock()

        def desc(name: str, help_text: str) -> Desc:
            return Desc(build_fq_name(NAMESPACE, SUBSYSTEM, name), help_text, LABEL_NAMES)

        self.size_desc = desc("size_bytes", "Filesystem size in bytes.")
        self.free_desc = desc("free_bytes", "Filesystem free space in bytes.")
        self.avail_desc = desc("avail_bytes", "Filesystem space available to non-root users in bytes.")
        self.files_desc = desc("files", "Filesystem total file nodes.")
        self.files_free_desc = desc("files_free", "Filesystem total free file nodes.")
        self.ro_desc = desc("readonly", "Filesystem read-only status.")
        self.device_error_desc = desc(
            "device_error",
            "Whether an error occurred while getting statistics for the given device.",
        )

    def _mark_stuck(self, mount_point: str, done: threading.Event) -> None:
        with self._stuck_lock:
            if done.is_set():
                return
            _log.debug(
                "Mount point timed out, it is being labeled as stuck and will not be monitored: %s",
                mount_point,
            )
            self._stuck_mounts.add(mount_point)

    def get_stats(self) -> list[FilesystemStats]:
        """Return usage figures of every mount that is not excluded."""
        stats = []
        for labels in mount_point_details(self.proc_path, self.rootfs_path):
            if self.excluded_mount_points_pattern.search(labels.mount_point):
                _log.debug("Ignoring mount point %s", labels.mount_point)
                continue
            if self.excluded_fs_types_pattern.search(labels.fs_type):
                _log.debug("Ignoring fs type %s", labels.fs_type)
                continue
            with self._stuck_lock:
                stuck = labels.mount_point in self._stuck_mounts
            if stuck:
                _log.debug("Mount point is in an unresponsive state: %s", labels.mount_point)
                stats.append(FilesystemStats(labels, device_error=1.0))
                continue

            path = _rootfs_file_path(self.rootfs_path, labels.mount_point)
            done = threading.Event()
            watcher = threading.Timer(self.mount_timeout, self._mark_stuck, args=(labels.mount_point, done))
            watcher.daemon = True
            watcher.start()
            error: Optional[OSError] = None
            try:
                result = os.statvfs(path)
            except OSError as err:
                error = err
            with self._stuck_lock:
                done.set()
                watcher.cancel()
                if labels.mount_point in self._stuck_mounts:
                    _log.debug(
                        "Mount point has recovered, monitoring will resume: %s", labels.mount_point
                    )
                    self._stuck_mounts.discard(labels.mount_point)

            if error is not None:
                _log.debug("Error on statfs() system call rootfs=%s err=%s", path, error)
                stats.append(FilesystemStats(labels, device_error=1.0))
                continue

            ro = 1.0 if "ro" in labels.options.split(",") else 0.0
            block_size = float(result.f_bsize)
            stats.append(
                FilesystemStats(
                    labels,
                    size=float(result.f_blocks) * block_size,
                    free=float(result.f_bfree) * block_size,
                    avail=float(result.f_bavail) * block_size,
                    files=float(result.f_files),
                    files_free=float(result.f_ffree),
                    ro=ro,
                )
            )
        return stats

    def update(self) -> list[Metric]:
        metrics = []
        seen: set[FilesystemLabels] = set()
        for stat in self.get_stats():
            if stat.labels in seen:
                continue
            seen.add(stat.labels)
            label_values = (stat.labels.device, stat.labels.mount_point, stat.labels.fs_type)
            metrics.append(self.device_error_desc.metric(ValueType.GAUGE, stat.device_error, *label_values))
            if stat.device_error > 0:
                continue
            for desc, value in (
                (self.size_desc, stat.size),
                (self.free_desc, stat.free),
                (self.avail_desc, stat.avail),
                (self.files_desc, stat.files),
                (self.files_free_desc, stat.files_free),
                (self.ro_desc, stat.ro),
            ):
                metrics.append(desc.metric(ValueType.GAUGE, value, *label_values))
        return metrics