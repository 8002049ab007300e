import pytest

from nodestats.fibrechannel import (
    MAX_UINT64,
    FibreChannelCollector,
    FibreChannelCounters,
    FibreChannelHost,
)
from nodestats.helper import ValueType


@pytest.fixture
def host():
    return FibreChannelHost(
        name="host0",
        speed="16 Gbit",
        port_state="Online",
        port_type="Point-To-Point (direct nport connection)",
        symbolic_name="made up HBA",
        port_id="0x000002",
        port_name="0x1000000000000001",
        fabric_name="0x0",
        dev_loss_tmo="30",
        supported_classes="Class 3",
        supported_speeds="4 Gbit, 8 Gbit, 16 Gbit",
        counters=FibreChannelCounters(dumped_frames=7, rx_frames=42, nos_count=3),
    )


def by_name(metrics):
    return {m.name: m for m in metrics}


def test_info_metric_carries_host_attributes(host):
    metrics = by_name(FibreChannelCollector().update([host]))
    info = metrics["node_fibrechannel_info"]
    assert info.value == 1.0
    assert info.value_type is ValueType.GAUGE
    assert info.labels["fc_host"] == "host0"
    assert info.labels["port_state"] == "Online"
    assert info.labels["supported_speeds"] == host.supported_speeds
    assert info.labels["dev_loss_tmo"] == "30"


def test_counters_are_exposed_with_their_values(host):
    metrics = by_name(FibreChannelCollector().update([host]))
    assert metrics["node_fibrechannel_dumped_frames_total"].value == 7
    assert metrics["node_fibrechannel_rx_frames_total"].value == 42
    assert metrics["node_fibrechannel_nos_total"].value == 3
    counter = metrics["node_fibrechannel_rx_frames_total"]
    assert counter.value_type is ValueType.COUNTER
    assert counter.labels == {"fc_host": "host0"}
    assert counter.desc.help == "Number of frames received"


def test_unimplemented_counters_are_skipped(host):
    host.counters.dumped_frames = MAX_UINT64
    host.counters.link_failure_count = MAX_UINT64
    names = {m.name for m in FibreChannelCollector().update([host])}
    assert "node_fibrechannel_dumped_frames_total" not in names
    assert "node_fibrechannel_link_failure_total" not in names
    assert "node_fibrechannel_rx_frames_total" in names


def test_info_comes_before_counters_and_every_counter_is_known(host):
    collector = FibreChannelCollector()
    metrics = collector.update([host])
    assert metrics[0].name == "node_fibrechannel_info"
    known = {desc.fq_name for desc in collector.metric_descs.values()}
    assert all(m.name in known for m in metrics[1:])


def test_multiple_hosts_and_empty_input(host):
    other = FibreChannelHost(name="host1")
    metrics = FibreChannelCollector().update([host, other])
    hosts = {m.labels["fc_host"] for m in metrics}
    assert hosts == {"host0", "host1"}
    assert FibreChannelCollector().update([]) == []