import ipaddress

import pytest

from nodestats.helper import Desc, ValueType
from nodestats.ipvs import IPVSBackend, IPVSCollector, IPVSStats, parse_ipvs_labels

FULL = ("local_address", "local_port", "remote_address", "remote_port", "proto", "local_mark")

STATS = IPVSStats(
    connections=23765872,
    incoming_packets=3811989221,
    outgoing_packets=0,
    incoming_bytes=89991519156915,
    outgoing_bytes=0,
)


def _backends():
    return [
        IPVSBackend(
            local_address=ipaddress.ip_address("192.168.0.22"),
            local_port=3306,
            remote_address=ipaddress.ip_address("192.168.82.22"),
            remote_port=3306,
            proto="TCP",
            active_conn=248,
            inact_conn=2,
            weight=100,
        ),
        IPVSBackend(
            local_address=ipaddress.ip_address("192.168.0.22"),
            local_port=3306,
            remote_address=ipaddress.ip_address("192.168.83.24"),
            remote_port=3306,
            proto="TCP",
            active_conn=248,
            inact_conn=2,
            weight=100,
        ),
        IPVSBackend(
            local_address=ipaddress.ip_address("192.168.0.55"),
            local_port=3306,
            remote_address=ipaddress.ip_address("192.168.50.26"),
            remote_port=3306,
            proto="TCP",
            active_conn=0,
            inact_conn=0,
            weight=0,
        ),
        IPVSBackend(
            local_address=None,
            local_port=0,
            remote_address=ipaddress.ip_address("192.168.49.32"),
            remote_port=3306,
            proto="FWM",
            local_mark="10001000",
            active_conn=321,
            inact_conn=5,
            weight=100,
        ),
    ]


def _expected_descs(labels):
    return [
        Desc("node_ipvs_connections_total", "The total number of connections made."),
        Desc("node_ipvs_incoming_packets_total", "The total number of incoming packets."),
        Desc("node_ipvs_outgoing_packets_total", "The total number of outgoing packets."),
        Desc("node_ipvs_incoming_bytes_total", "The total amount of incoming data."),
        Desc("node_ipvs_outgoing_bytes_total", "The total amount of outgoing data."),
        Desc(
            "node_ipvs_backend_connections_active",
            "The current active connections by local and remote address.",
            labels,
        ),
        Desc(
            "node_ipvs_backend_connections_inactive",
            "The current inactive connections by local and remote address.",
            labels,
        ),
        Desc(
            "node_ipvs_backend_weight",
            "The current backend weight by local and remote address.",
            labels,
        ),
    ]


@pytest.mark.parametrize(
    "labels, expected_labels",
    [
        (None, FULL),
        ("", ()),
        ("local_port", ("local_port",)),
        ("local_address,local_port", ("local_address", "local_port")),
    ],
)
def test_descriptions_in_order(labels, expected_labels):
    collector = IPVSCollector(labels)
    metrics = collector.update(STATS, _backends())
    assert [m.desc for m in metrics[:8]] == _expected_descs(expected_labels)


@pytest.mark.parametrize(
    "labels, message",
    [
        ("invalid_label", 'unknown IPVS backend labels: "invalid_label"'),
        ("invalid_label,bad_label", 'unknown IPVS backend labels: "bad_label, invalid_label"'),
    ],
)
def test_invalid_labels(labels, message):
    with pytest.raises(ValueError) as info:
        IPVSCollector(labels)
    assert message in str(info.value)


def test_parse_labels_canonical_order_and_empty_entries():
    assert parse_ipvs_labels("local_port,,local_address,local_port") == ("local_address", "local_port")


def test_totals_values():
    metrics = IPVSCollector().update(STATS, [])
    assert [m.value for m in metrics] == [23765872.0, 3811989221.0, 0.0, 89991519156915.0, 0.0]
    assert all(m.value_type is ValueType.COUNTER for m in metrics)


def test_full_labels_per_backend():
    metrics = IPVSCollector().update(STATS, _backends())
    backend_metrics = metrics[5:]
    assert len(backend_metrics) == 12
    fwm_active = [
        m for m in backend_metrics
        if m.name == "node_ipvs_backend_connections_active" and m.labels["proto"] == "FWM"
    ]
    assert len(fwm_active) == 1
    assert fwm_active[0].value == 321.0
    assert fwm_active[0].labels == {
        "local_address": "",
        "local_port": "0",
        "remote_address": "192.168.49.32",
        "remote_port": "3306",
        "proto": "FWM",
        "local_mark": "10001000",
    }


def test_local_port_aggregation():
    metrics = IPVSCollector("local_port").update(STATS, _backends())
    by_port = {
        (m.name, m.labels["local_port"]): m.value for m in metrics[5:]
    }
    assert by_port == {
        ("node_ipvs_backend_connections_active", "3306"): 496.0,
        ("node_ipvs_backend_connections_inactive", "3306"): 4.0,
        ("node_ipvs_backend_weight", "3306"): 200.0,
        ("node_ipvs_backend_connections_active", "0"): 321.0,
        ("node_ipvs_backend_connections_inactive", "0"): 5.0,
        ("node_ipvs_backend_weight", "0"): 100.0,
    }


def test_no_labels_sums_everything():
    metrics = IPVSCollector("").update(STATS, _backends())
    backend_metrics = metrics[5:]
    assert [(m.name, m.value) for m in backend_metrics] == [
        ("node_ipvs_backend_connections_active", 817.0),
        ("node_ipvs_backend_connections_inactive", 9.0),
        ("node_ipvs_backend_weight", 300.0),
    ]
    assert all(m.value_type is ValueType.GAUGE for m in backend_metrics)


def test_local_address_and_port_grouping():
    metrics = IPVSCollector("local_address,local_port").update(STATS, _backends())
    active = {
        (m.labels["local_address"], m.labels["local_port"]): m.value
        for m in metrics[5:]
        if m.name == "node_ipvs_backend_connections_active"
    }
    assert active == {
        ("192.168.0.22", "3306"): 496.0,
        ("192.168.0.55", "3306"): 0.0,
        ("", "0"): 321.0,
    }