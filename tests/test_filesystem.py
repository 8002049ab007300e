import io

import pytest

from nodestats.filesystem import (
    FilesystemCollector,
    FilesystemLabels,
    mount_point_details,
    parse_filesystem_labels,
)

PROC_MOUNTS = """\
rootfs / rootfs rw 0 0
sysfs /sys sysfs rw,nosuid,nodev,noexec,relatime 0 0
proc /proc proc rw,nosuid,nodev,noexec,relatime 0 0
udev /dev devtmpfs rw,relatime,size=10240k,nr_inodes=1008585,mode=755 0 0
devpts /dev/pts devpts rw,nosuid,noexec,relatime,gid=5,mode=620,ptmxmode=000 0 0
tmpfs /run tmpfs rw,nosuid,relatime,size=1617716k,mode=755 0 0
/dev/dm-2 / ext4 rw,relatime,errors=remount-ro,data=ordered 0 0
tmpfs /dev/shm tmpfs rw,nosuid,nodev 0 0
tmpfs /run/lock tmpfs rw,nosuid,nodev,noexec,relatime,size=5120k 0 0
/dev/sda3 /boot ext2 rw,relatime 0 0
tmpfs /run/user/1000 tmpfs rw,nosuid,nodev,relatime,size=808860k,mode=700,uid=1000,gid=1000 0 0
/dev/sda /var/lib/kubelet/plugins/kubernetes.io/vsphere-volume/mounts/[vsanDatastore]\\040volume.vmdk ext4 rw,relatime 0 0
/dev/sda /var/lib/kubelet/plugins/kubernetes.io/vsphere-volume/mounts/[vsanDatastore]\\011volume.vmdk ext4 rw,relatime 0 0
"""

EXPECTED_MOUNT_POINTS = {
    "/",
    "/sys",
    "/proc",
    "/dev",
    "/dev/pts",
    "/run",
    "/dev/shm",
    "/run/lock",
    "/boot",
    "/run/user/1000",
    "/var/lib/kubelet/plugins/kubernetes.io/vsphere-volume/mounts/[vsanDatastore] volume.vmdk",
    "/var/lib/kubelet/plugins/kubernetes.io/vsphere-volume/mounts/[vsanDatastore]\tvolume.vmdk",
}


def _write_proc(tmp_path, content, name="1/mounts"):
    proc = tmp_path / "proc"
    target = proc / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content)
    return str(proc)


def test_parse_filesystem_labels_too_few_fields():
    with pytest.raises(ValueError, match="malformed mount point information"):
        parse_filesystem_labels(io.StringIO("hello world"))


def test_parse_filesystem_labels_fields():
    labels = parse_filesystem_labels(io.StringIO("/dev/sda1 /data ext4 rw,relatime 0 0\n"))
    assert labels == [FilesystemLabels("/dev/sda1", "/data", "ext4", "rw,relatime")]


def test_mount_point_details(tmp_path):
    proc = _write_proc(tmp_path, PROC_MOUNTS)
    filesystems = mount_point_details(proc, "/")
    mount_points = {fs.mount_point for fs in filesystems}
    assert mount_points == EXPECTED_MOUNT_POINTS
    assert len(filesystems) == 13


def test_mounts_fallback(tmp_path):
    proc = _write_proc(tmp_path, "rootfs / rootfs rw 0 0\n", name="mounts")
    filesystems = mount_point_details(proc, "/")
    assert [fs.mount_point for fs in filesystems] == ["/"]


def test_path_rootfs(tmp_path):
    content = (
        "/dev/nvme1n0 /host ext4 rw,seclabel,relatime,data=ordered 0 0\n"
        "/dev/nvme1n1 /host/media/volume1 ext4 rw,seclabel,relatime,data=ordered 0 0\n"
        "/dev/nvme1n2 /host/media/volume2 ext4 rw,seclabel,relatime,data=ordered 0 0\n"
        "tmpfs /dev/shm tmpfs rw,nosuid,nodev 0 0\n"
        "tmpfs /run/lock tmpfs rw,nosuid,nodev,noexec,relatime,size=5120k 0 0\n"
        "tmpfs /sys/fs/cgroup tmpfs ro,nosuid,nodev,noexec,mode=755 0 0\n"
    )
    proc = _write_proc(tmp_path, content)
    mount_points = [fs.mount_point for fs in mount_point_details(proc, "/host")]
    assert mount_points == [
        "/",
        "/media/volume1",
        "/media/volume2",
        "/dev/shm",
        "/run/lock",
        "/sys/fs/cgroup",
    ]


def test_mutually_exclusive_mount_point_flags():
    with pytest.raises(ValueError, match="mutually exclusive"):
        FilesystemCollector(mount_points_exclude="^/x", ignored_mount_points="^/y")


def test_mutually_exclusive_fs_type_flags():
    with pytest.raises(ValueError, match="mutually exclusive"):
        FilesystemCollector(fs_types_exclude="^x$", ignored_fs_types="^y$")


def test_get_stats_reads_existing_mount(tmp_path):
    mounted = tmp_path / "data"
    mounted.mkdir()
    proc = _write_proc(tmp_path, f"/dev/sdz1 {mounted} ext4 ro,relatime 0 0\n")
    collector = FilesystemCollector(proc_path=proc)
    stats = collector.get_stats()
    assert len(stats) == 1
    stat = stats[0]
    assert stat.device_error == 0.0
    assert stat.ro == 1.0
    assert stat.size > 0
    assert stat.avail <= stat.size
    assert stat.free <= stat.size


def test_get_stats_missing_mount_is_device_error(tmp_path):
    missing = tmp_path / "missing"
    proc = _write_proc(tmp_path, f"/dev/sdz1 {missing} ext4 rw 0 0\n")
    stats = FilesystemCollector(proc_path=proc).get_stats()
    assert len(stats) == 1
    assert stats[0].device_error == 1.0
    assert stats[0].size == 0.0


def test_get_stats_excludes_patterns(tmp_path):
    mounted = tmp_path / "data"
    mounted.mkdir()
    content = (
        "proc /proc proc rw 0 0\n"
        f"tmpfs {mounted} sysfs rw 0 0\n"
        f"/dev/sdz1 {mounted} ext4 rw 0 0\n"
    )
    proc = _write_proc(tmp_path, content)
    stats = FilesystemCollector(proc_path=proc).get_stats()
    assert [s.labels.fs_type for s in stats] == ["ext4"]


def test_deprecated_fs_types_flag_is_used(tmp_path):
    mounted = tmp_path / "data"
    mounted.mkdir()
    proc = _write_proc(tmp_path, f"/dev/sdz1 {mounted} ext4 rw 0 0\n")
    collector = FilesystemCollector(proc_path=proc, ignored_fs_types="^ext4$")
    assert collector.get_stats() == []


def test_update_deduplicates_and_orders_metrics(tmp_path):
    mounted = tmp_path / "data"
    mounted.mkdir()
    line = f"/dev/sdz1 {mounted} ext4 rw 0 0\n"
    proc = _write_proc(tmp_path, line + line)
    metrics = FilesystemCollector(proc_path=proc).update()
    assert [m.name for m in metrics] == [
        "node_filesystem_device_error",
        "node_filesystem_size_bytes",
        "node_filesystem_free_bytes",
        "node_filesystem_avail_bytes",
        "node_filesystem_files",
        "node_filesystem_files_free",
        "node_filesystem_readonly",
    ]
    assert metrics[0].labels == {"device": "/dev/sdz1", "mountpoint": str(mounted), "fstype": "ext4"}
    assert metrics[0].value == 0.0
    assert metrics[-1].value == 0.0


def test_update_device_error_emits_only_error_metric(tmp_path):
    missing = tmp_path / "missing"
    proc = _write_proc(tmp_path, f"/dev/sdz1 {missing} ext4 rw 0 0\n")
    metrics = FilesystemCollector(proc_path=proc).update()
    assert len(metrics) == 1
    assert metrics[0].name == "node_filesystem_device_error"
    assert metrics[0].value == 1.0