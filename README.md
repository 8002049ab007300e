# nodestats

Collectors that read Linux kernel statistics and turn them into
Prometheus-style metric samples. There are no dependencies outside the
standard library.

## Installation

```
pip install .
```

Test dependencies are in the `test` extra:

```
pip install ".[test]"
```

## The metric model

`nodestats.helper` holds the shared pieces:

- `ValueType`: `COUNTER`, `GAUGE` or `UNTYPED`.
- `Desc`: a metric's fully-qualified name, help text, variable label names
  and constant labels. `Desc.metric(value_type, value, *label_values)`
  creates a sample and raises `ValueError` if the number of label values
  does not match the label names.
- `Metric`: one sample, with `desc`, `value_type`, `value` and
  `label_values`, plus the `name` and `labels` properties.
- `build_fq_name(namespace, subsystem, name)`, `sanitize_metric_name(name)`,
  `bytes_to_string(data)` and `read_uint_from_file(path)`.

Every collector's `update` returns a list of `Metric` objects.

## Collectors that read files

These take the root of the file tree as a constructor argument (defaults
`/proc`, `/sys` or `/`), so they can also be pointed at a copy of it.

| Class | Reads |
| --- | --- |
| `nodestats.filefd.FileFDStatCollector(proc_path)` | `sys/fs/file-nr` |
| `nodestats.loadavg.LoadavgCollector(proc_path)` | `loadavg` |
| `nodestats.meminfo.MeminfoCollector(proc_path)` | `meminfo` |
| `nodestats.meminfo_numa.MeminfoNumaCollector(sys_path)` | `devices/system/node/node*/meminfo` and `numastat` |
| `nodestats.interrupts.InterruptsCollector(proc_path)` | `interrupts` |
| `nodestats.ksmd.KsmdCollector(sys_path)` | `kernel/mm/ksm/*` |
| `nodestats.filesystem.FilesystemCollector(proc_path, rootfs_path, ...)` | `1/mounts` (or `mounts`), then `os.statvfs` per mount |
| `nodestats.hwmon.HwMonCollector(sys_path)` | `class/hwmon/*` |

The parsers behind them can be used on their own: `parse_file_fd_stats`,
`parse_load`, `get_load`, `parse_mem_info`, `parse_mem_info_numa`,
`parse_mem_info_numa_stat`, `get_mem_info_numa`, `parse_interrupts`,
`parse_filesystem_labels`, `mount_point_details`, `explode_sensor_filename`,
`collect_sensor_data` and `clean_metric_name`.

`FilesystemCollector` excludes mount points and filesystem types by regular
expression (`mount_points_exclude`, `fs_types_exclude`; the deprecated
`ignored_mount_points` and `ignored_fs_types` may be used instead, but not
together with the new ones). A mount whose `statvfs` call takes longer than
`mount_timeout` seconds (default 5) is marked as stuck and reported only
through `node_filesystem_device_error` until a later call completes.

## Collectors fed with data

These take their data as arguments, so any source can supply it:

- `nodestats.ipvs.IPVSCollector(backend_labels)` with
  `update(stats, backends)`, taking an `IPVSStats` and `IPVSBackend` items.
  Backends with the same selected label values are summed.
  `parse_ipvs_labels` rejects unknown label names with `ValueError`.
- `nodestats.ethtool.EthtoolCollector(ethtool, device_include, device_exclude, metrics_include)`
  with `update(devices)`. The `ethtool` object must provide
  `driver_info(device)` returning `DriverInfo`, `link_info(device)` returning
  `LinkInfo` and `stats(device)` returning a mapping of names to integers;
  failures are raised as `OSError` (for example `EthtoolError`) and are
  logged, not raised further. `build_ethtool_fq_name` builds the metric names.
- `nodestats.logind.collect_metrics(source)`, where `source` provides
  `list_seats()`, `list_sessions()` returning `LogindSessionEntry` items and
  `get_session(entry)` returning a `LogindSession` or `None`.
  `known_string_or_other` maps unknown values to `"other"`.
- `nodestats.fibrechannel.FibreChannelCollector` with `update(hosts)`,
  taking `FibreChannelHost` items; counters equal to 2**64 - 1 are skipped.
- `nodestats.infiniband.InfiniBandCollector` with `update(devices)`, taking
  `InfiniBandDevice` items; counters that are `None` are skipped.
- `nodestats.mdadm.MdadmCollector` with `update(md_stats)`, taking `MDStat`
  items.

## Examples

```python
from nodestats.loadavg import parse_load
from nodestats.meminfo import parse_mem_info
from nodestats.helper import build_fq_name, sanitize_metric_name
from nodestats.ethtool import build_ethtool_fq_name

parse_load("0.21 0.37 0.39 1/719 19737")        # [0.21, 0.37, 0.39]

with open("/proc/meminfo") as stream:
    info = parse_mem_info(stream)
info["MemTotal_bytes"]

build_fq_name("node", "filefd", "allocated")    # "node_filefd_allocated"
sanitize_metric_name("Queue[0] AllocFails")     # "Queue_0_AllocFails"
build_ethtool_fq_name("rx_errors")              # "node_ethtool_received_errors"
```

## Errors

Read and parse failures are raised as exceptions; most file-reading
collectors wrap them in `RuntimeError`. `HwMonCollector.update` returns an
empty list when there is no hwmon directory.

## What this package does not do

- It does not serve metrics over HTTP and does not render the Prometheus
  text exposition format; it only returns `Metric` objects.
- It has no command-line program and no collector registry.
- It does not query the kernel for ethtool data, IPVS tables, mdstat,
  Fibre Channel or InfiniBand classes, nor talk to logind over D-Bus; those
  collectors must be given the data.

## Running the tests

```
pytest
```