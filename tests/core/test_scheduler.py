"""Tests for pod placement."""

from __future__ import annotations

from dataclasses import replace

import pytest

from kubequest.core.cluster import edited
from kubequest.core.scheduler import (
    parse_cpu,
    parse_memory,
    pod_requests,
    schedule_pod,
)


def _spec(**extra) -> dict:
    spec = {"containers": [{"name": "app", "image": "nginx"}]}
    spec.update(extra)
    return spec


def _with_node(state, index: int, change):
    nodes = list(state.nodes)
    node = edited(nodes[index])
    change(node)
    nodes[index] = node
    return replace(state, nodes=tuple(nodes))


QUANTITIES = [
    (parse_cpu, "500m", 0.5),
    (parse_cpu, "2", 2.0),
    (parse_cpu, 1, 1.0),
    (parse_cpu, "", 0.0),
    (parse_cpu, "lots", 0.0),
    (parse_memory, "1Gi", 1024.0),
    (parse_memory, "128Mi", 128.0),
    (parse_memory, "bogus", 0.0),
    (parse_memory, None, 0.0),
]


@pytest.mark.parametrize("parse,text,expected", QUANTITIES)
def test_quantities(parse, text, expected):
    assert parse(text) == pytest.approx(expected)


def test_limits_stand_in_for_requests():
    spec = {"containers": [{"name": "a", "resources": {"limits": {"cpu": "250m", "memory": "64Mi"}}}]}
    assert pod_requests(spec) == (0.25, 64.0)


class TestSchedulePod:
    def test_skips_tainted_control_plane(self, cluster):
        result = schedule_pod(_spec(), cluster)
        assert result.success
        assert result.node_name == "node01"

    def test_toleration_allows_control_plane(self, cluster):
        spec = _spec(
            tolerations=[{"key": "node-role.kubernetes.io/control-plane", "operator": "Exists"}],
            nodeSelector={"kubernetes.io/hostname": "control-plane"},
        )
        assert schedule_pod(spec, cluster).node_name == "control-plane"

    def test_node_selector(self, cluster):
        spec = _spec(nodeSelector={"kubernetes.io/hostname": "node02"})
        assert schedule_pod(spec, cluster).node_name == "node02"

    def test_node_affinity(self, cluster):
        spec = _spec(
            affinity={
                "nodeAffinity": {
                    "requiredDuringSchedulingIgnoredDuringExecution": {
                        "nodeSelectorTerms": [
                            {"matchExpressions": [{"key": "kubernetes.io/hostname", "operator": "In", "values": ["node02"]}]}
                        ]
                    }
                }
            }
        )
        assert schedule_pod(spec, cluster).node_name == "node02"

    def test_pinned_node(self, cluster):
        assert schedule_pod(_spec(nodeName="control-plane"), cluster).node_name == "control-plane"

    def test_pinned_missing_node(self, cluster):
        result = schedule_pod(_spec(nodeName="node09"), cluster)
        assert not result.success
        assert result.message == 'node "node09" not found'

    def test_unschedulable_node_skipped(self, cluster):
        state = _with_node(cluster, 1, lambda n: n["spec"].update(unschedulable=True))
        assert schedule_pod(_spec(), state).node_name == "node02"

    def test_insufficient_cpu(self, cluster):
        spec = {"containers": [{"name": "a", "resources": {"requests": {"cpu": "16"}}}]}
        result = schedule_pod(spec, cluster)
        assert not result.success
        assert result.message.startswith("0/3 nodes are available:")
        assert "Insufficient cpu" in result.message
        assert "untolerable taint" in result.message

    def test_no_match(self, cluster):
        result = schedule_pod(_spec(nodeSelector={"disk": "ssd"}), cluster)
        assert result.message == "0/3 nodes are available: 3 node(s) didn't match Pod's node affinity/selector."

    def test_not_ready(self, cluster):
        def down(node):
            node["status"]["conditions"] = [{"type": "Ready", "status": "False"}]

        state = _with_node(_with_node(cluster, 1, down), 2, down)
        result = schedule_pod(_spec(), state)
        assert not result.success
        assert "2 node(s) were not ready" in result.message

    def test_no_nodes(self, cluster):
        result = schedule_pod(_spec(), replace(cluster, nodes=()))
        assert result.message == "no nodes available to schedule pods"

    def test_spreads_across_nodes(self, cluster):
        pod = {"metadata": {"name": "p"}, "spec": {"nodeName": "node01"}, "status": {"phase": "Running"}}
        state = cluster.with_pods([pod])
        assert schedule_pod(_spec(), state).node_name == "node02"
