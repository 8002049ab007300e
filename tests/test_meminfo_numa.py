import io

import pytest

from nodestats.helper import ValueType
from nodestats.meminfo_numa import (
    MeminfoNumaCollector,
    get_mem_info_numa,
    parse_mem_info_numa,
    parse_mem_info_numa_stat,
)

_FIELDS = [
    "MemTotal", "MemFree", "MemUsed", "Active", "Inactive", "Active(anon)",
    "Inactive(anon)", "Active(file)", "Inactive(file)", "Unevictable", "Mlocked",
    "Dirty", "Writeback", "FilePages", "Mapped", "AnonPages", "Shmem",
    "KernelStack", "PageTables", "NFS_Unstable", "Bounce", "WritebackTmp",
    "Slab", "SReclaimable", "SUnreclaim", "AnonHugePages",
]


def _meminfo(node, overrides):
    lines = []
    for name in _FIELDS:
        lines.append(f"Node {node} {name + ':':<16} {overrides.get(name, 1000)} kB")
    lines.append(f"Node {node} HugePages_Total:     0")
    lines.append(f"Node {node} HugePages_Free:      0")
    lines.append("")
    return "\n".join(lines) + "\n"


NODE0_MEMINFO = _meminfo(0, {"Active(anon)": 691324, "AnonHugePages": 147456})
NODE1_MEMINFO = _meminfo(1, {"Inactive(anon)": 285088, "FilePages": 83579188})

NODE0_NUMASTAT = """numa_hit 193460335812
numa_miss 12624528
numa_foreign 59858623300
interleave_hit 57146
local_node 193454780853
other_node 18179487
"""

NODE1_NUMASTAT = """numa_hit 326720946761
numa_miss 59858626709
numa_foreign 12624528
interleave_hit 57286
local_node 326719046550
other_node 59860526920
"""


def test_parse_mem_info_numa_node0():
    mem_info = parse_mem_info_numa(io.StringIO(NODE0_MEMINFO))
    assert mem_info[5].value == 707915776.0
    assert mem_info[5].metric_name == "Active_anon"
    assert mem_info[25].value == 150994944.0


def test_parse_mem_info_numa_node1():
    mem_info = parse_mem_info_numa(io.StringIO(NODE1_MEMINFO))
    assert mem_info[6].value == 291930112.0
    assert mem_info[13].value == 85585088512.0
    assert mem_info[13].numa_node == "1"


def test_parse_mem_info_numa_invalid():
    with pytest.raises(ValueError):
        parse_mem_info_numa(io.StringIO("Node 0 MemTotal: 100 MB\n"))


def test_parse_mem_info_numa_stat_node0():
    stat = parse_mem_info_numa_stat(io.StringIO(NODE0_NUMASTAT), "0")
    assert stat[0].value == 193460335812.0
    assert stat[0].metric_name == "numa_hit_total"
    assert stat[4].value == 193454780853.0
    assert stat[0].metric_type is ValueType.COUNTER


def test_parse_mem_info_numa_stat_node1():
    stat = parse_mem_info_numa_stat(io.StringIO(NODE1_NUMASTAT), "1")
    assert stat[1].value == 59858626709.0
    assert stat[5].value == 59860526920.0


def test_parse_mem_info_numa_stat_wrong_fields():
    with pytest.raises(ValueError):
        parse_mem_info_numa_stat(io.StringIO("numa_hit 1 2\n"), "0")


@pytest.fixture
def sys_dir(tmp_path):
    base = tmp_path / "devices" / "system" / "node"
    for node, meminfo, numastat in (
        ("node0", NODE0_MEMINFO, NODE0_NUMASTAT),
        ("node1", NODE1_MEMINFO, NODE1_NUMASTAT),
    ):
        directory = base / node
        directory.mkdir(parents=True)
        (directory / "meminfo").write_text(meminfo)
        (directory / "numastat").write_text(numastat)
    return tmp_path


def test_get_mem_info_numa(sys_dir):
    metrics = get_mem_info_numa(str(sys_dir))
    stats = [m for m in metrics if m.metric_name == "numa_miss_total"]
    assert [(m.numa_node, m.value) for m in stats] == [("0", 12624528.0), ("1", 59858626709.0)]


def test_collector_update(sys_dir):
    metrics = MeminfoNumaCollector(str(sys_dir)).update()
    found = [
        m for m in metrics
        if m.name == "node_memory_numa_Active_anon" and m.labels == {"node": "0"}
    ]
    assert len(found) == 1
    assert found[0].value == 707915776.0