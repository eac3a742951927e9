"""Tests for the cluster state model."""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from kubequest.core.cluster import (
    BUILTIN_CRDS,
    ClusterState,
    kind_for,
    lookup_kind,
    name_of,
    namespace_of,
)


LOOKUPS = [
    ("pods", "Pod"),
    ("pod", "Pod"),
    ("po", "Pod"),
    ("Pod", "Pod"),
    ("deploy", "Deployment"),
    ("deployments.apps", "Deployment"),
    ("svc", "Service"),
    ("cm", "ConfigMap"),
    ("hpa", "HorizontalPodAutoscaler"),
    ("sc", "StorageClass"),
    ("pvc", "PersistentVolumeClaim"),
    ("gtw", "Gateway"),
    ("crd", "CustomResourceDefinition"),
    ("clusterrolebindings", "ClusterRoleBinding"),
    ("NS", "Namespace"),
]


@pytest.mark.parametrize("name,kind", LOOKUPS)
def test_lookup_kind(name: str, kind: str):
    assert lookup_kind(name).kind == kind


def test_lookup_unknown():
    assert lookup_kind("widgets") is None


class TestResourceKind:
    def test_core_group_names(self):
        pod = kind_for("Pod")
        assert pod.ref == "pod"
        assert pod.resource == "pods"
        assert pod.api_version == "v1"

    def test_grouped_names(self):
        deployment = kind_for("Deployment")
        assert deployment.ref == "deployment.apps"
        assert deployment.resource == "deployments.apps"
        assert deployment.api_version == "apps/v1"

    def test_cluster_scoped(self):
        assert not kind_for("Node").namespaced
        assert not kind_for("ClusterRole").namespaced
        assert kind_for("Role").namespaced


class TestInitialState:
    def test_nodes(self, cluster):
        names = [name_of(n) for n in cluster.nodes]
        assert names == ["control-plane", "node01", "node02"]
        taints = cluster.nodes[0]["spec"]["taints"]
        assert taints[0]["effect"] == "NoSchedule"
        assert cluster.nodes[1]["status"]["capacity"]["cpu"] == "2"

    def test_namespaces(self, cluster):
        assert cluster.namespaces == ("default", "kube-system", "kube-public", "kube-node-lease")

    def test_no_workloads(self, cluster):
        assert cluster.pods == ()
        assert cluster.deployments == ()

    def test_defaults(self, cluster):
        assert [name_of(s) for s in cluster.services] == ["kubernetes"]
        assert name_of(cluster.storage_classes[0]) == "standard"
        assert name_of(cluster.gateway_classes[0]) == "nginx"
        assert {name_of(r) for r in cluster.cluster_roles} == {"cluster-admin", "view", "edit"}
        assert len(cluster.crds) == len(BUILTIN_CRDS)

    def test_etcd(self, cluster):
        member = cluster.etcd.members[0]
        assert member.id == "a1b2c3d4e5f6"
        assert member.is_leader
        assert member.status == "healthy"
        assert not cluster.etcd.corrupted

    def test_identity(self, cluster):
        assert cluster.current_context.user == "kubernetes-admin"
        assert "system:masters" in cluster.current_context.groups


class TestImmutability:
    def test_frozen(self, cluster):
        with pytest.raises(FrozenInstanceError):
            cluster.pods = ()

    def test_with_added_leaves_original(self, cluster):
        cm = {"kind": "ConfigMap", "metadata": {"name": "x", "namespace": "default"}}
        updated = cluster.with_added(kind_for("ConfigMap"), cm)
        assert updated.config_maps == (cm,)
        assert cluster.config_maps == ()
        # Untouched collections are shared
        assert updated.nodes is cluster.nodes

    def test_without(self, cluster):
        updated = cluster.without(kind_for("Service"), lambda s: name_of(s) == "kubernetes")
        assert updated.services == ()
        assert len(cluster.services) == 1

    def test_with_namespace_idempotent(self, cluster):
        assert cluster.with_namespace("default") is cluster
        assert "dev" in cluster.with_namespace("dev").namespaces


class TestQueries:
    def test_find_by_namespace(self):
        state = ClusterState(
            config_maps=(
                {"metadata": {"name": "a", "namespace": "default"}},
                {"metadata": {"name": "a", "namespace": "dev"}},
            )
        )
        found = state.find(kind_for("ConfigMap"), "a", "dev")
        assert namespace_of(found) == "dev"
        assert state.find(kind_for("ConfigMap"), "a", "prod") is None

    def test_items_for_namespaces(self, cluster):
        items = cluster.items(kind_for("Namespace"))
        assert [name_of(n) for n in items] == list(cluster.namespaces)
        assert items[0]["status"]["phase"] == "Active"

    def test_namespace_defaults(self):
        assert namespace_of({"metadata": {"name": "x"}}) == "default"
