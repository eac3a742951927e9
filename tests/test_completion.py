"""Tests for tab completion."""

from __future__ import annotations

import pytest

from kubequest.cli import KNOWN_COMMANDS
from kubequest.completion import complete, find_common_prefix, resource_names

PREFIXES = [
    ([], ""),
    (["node01"], "node01"),
    (["node01", "node02"], "node0"),
    (["restart", "resume"], "res"),
    (["alpha", "beta"], ""),
]


@pytest.mark.parametrize("candidates,expected", PREFIXES)
def test_common_prefix(candidates, expected):
    assert find_common_prefix(candidates) == expected


# (partial line, completions)
LINES = [
    ("etc", ["etcdctl "]),
    ("sys", ["sysctl", "systemctl"]),
    ("sudo sys", ["sudo sysctl", "sudo systemctl"]),
    ("kubectl ge", ["kubectl get "]),
    ("k ge", ["k get "]),
    ("kubectl get namesp", ["kubectl get namespace"]),
    ("kubectl get nodes n", ["kubectl get nodes node0"]),
    ("kubectl get nodes node0", ["kubectl get nodes node01", "kubectl get nodes node02"]),
    ("kubectl get sa -n kube-system ", ["kubectl get sa -n kube-system default "]),
    ("kubectl get pods -n kube-s", ["kubectl get pods -n kube-system "]),
    ("kubectl get pods -o y", ["kubectl get pods -o yaml "]),
    ("kubectl get pods --all", ["kubectl get pods --all-namespaces "]),
    ("kubectl create deployment web --im", ["kubectl create deployment web --image "]),
    ("kubectl create cluster", ["kubectl create clusterrole"]),
    ("kubectl create secret ", ["kubectl create secret docker-registry", "kubectl create secret generic", "kubectl create secret tls"]),
    ("kubectl rollout r", ["kubectl rollout res"]),
    ("kubectl set im", ["kubectl set image "]),
    ("kubectl taint ", ["kubectl taint node"]),
    ("kubectl config cu", ["kubectl config current-context "]),
    ("kubectl auth c", ["kubectl auth can-i "]),
    ("kubectl apply -f /etc/kubernetes/manifests/example-d", ["kubectl apply -f /etc/kubernetes/manifests/example-deployment.yaml "]),
    ("cat /etc/kube", ["cat /etc/kubernetes/"]),
    ("cat /etc/h", ["cat /etc/hosts "]),
    ("cd /etc/", ["cd /etc/kubernetes/"]),
    ("cd /nope/", []),
    ("echo hel", []),
]


@pytest.mark.parametrize("line,expected", LINES)
def test_complete(line, expected, cluster, fs):
    assert complete(line, cluster, fs) == expected


class TestTopLevel:
    def test_empty_line_lists_commands(self, cluster, fs):
        assert complete("", cluster, fs) == sorted(KNOWN_COMMANDS)

    def test_every_command_interpreted(self, cluster, fs):
        commands = complete("", cluster, fs)
        for name in ("kubectl", "k", "etcdctl", "helm", "systemctl", "grep", "vim"):
            assert name in commands


class TestLiveNames:
    def test_pods_after_create(self, kubectl, fs):
        _, state = kubectl("kubectl run solo --image=nginx")
        assert complete("kubectl logs s", state, fs) == ["kubectl logs solo "]
        assert complete("kubectl exec -it s", state, fs) == ["kubectl exec -it solo "]

    def test_deployments_for_set(self, kubectl, fs):
        _, state = kubectl("kubectl create deployment web --image=nginx")
        assert complete("kubectl set image ", state, fs) == ["kubectl set image deployment/web "]
        assert complete("kubectl scale deployment w", state, fs) == ["kubectl scale deployment web "]

    def test_rollout_target(self, kubectl, fs):
        _, state = kubectl("kubectl create deployment web --image=nginx")
        assert complete("kubectl rollout restart deployment ", state, fs) == ["kubectl rollout restart deployment web "]

    def test_namespace_filter(self, cluster):
        assert resource_names(cluster, "serviceaccounts", "default") == ["default"]
        assert sorted(resource_names(cluster, "serviceaccounts")) == ["default", "default"]

    def test_namespaces(self, cluster):
        assert "kube-system" in resource_names(cluster, "ns")

    def test_unknown_type(self, cluster):
        assert resource_names(cluster, "widgets") == []

    def test_cluster_scoped_ignores_namespace(self, cluster):
        assert sorted(resource_names(cluster, "nodes", "kube-system")) == ["control-plane", "node01", "node02"]


def test_no_completion_after_name(cluster, fs):
    assert complete("kubectl get nodes node01 ", cluster, fs) == []
