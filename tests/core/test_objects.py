"""Tests for resource synthesis, selectors and Deployment reconciliation."""

from __future__ import annotations

from dataclasses import replace

import pytest

from kubequest.core.cluster import kind_for, name_of
from kubequest.core.objects import (
    SAFE_ALPHABET,
    TEMPLATE_HASH_LABEL,
    deployment_revisions,
    format_labels,
    generate_uid,
    initial_phase,
    matches_labels,
    new_deployment,
    new_pod,
    new_service,
    parse_label_selector,
    random_suffix,
    reconcile_deployment,
    reseed,
    revision_of,
    selector_matches,
    service_endpoints,
    template_hash,
)

from conftest import pods_of


def _container(image: str = "nginx", **extra) -> dict:
    return {"name": "app", "image": image, **extra}


def _deploy(state, name="web", replicas=2, image="nginx"):
    deployment = new_deployment(name, "default", [_container(image)], replicas=replicas)
    state = state.with_added(kind_for("Deployment"), deployment)
    return reconcile_deployment(state, name)


class TestIdentifiers:
    def test_reseed_is_deterministic(self):
        reseed(5)
        first = (generate_uid(), random_suffix())
        reseed(5)
        assert (generate_uid(), random_suffix()) == first

    def test_suffix_alphabet(self):
        suffix = random_suffix(20)
        assert len(suffix) == 20
        assert set(suffix) <= set(SAFE_ALPHABET)

    def test_uid_shape(self):
        assert [len(p) for p in generate_uid().split("-")] == [8, 4, 4, 4, 12]

    def test_template_hash_stable(self):
        template = {"spec": {"containers": [_container()]}}
        assert template_hash(template) == template_hash({"spec": {"containers": [_container()]}})
        assert template_hash(template) != template_hash({"spec": {"containers": [_container("httpd")]}})
        assert len(template_hash(template)) == 10


class TestSelectors:
    def test_match_labels(self):
        assert matches_labels({"app": "web", "tier": "fe"}, {"app": "web"})
        assert not matches_labels({"app": "db"}, {"app": "web"})

    def test_empty_selector_matches_nothing(self):
        assert not matches_labels({"app": "web"}, {})
        assert not matches_labels({"app": "web"}, None)

    SELECTORS = [
        ("app=web", {"app": "web"}, True),
        ("app==web", {"app": "web"}, True),
        ("app!=web", {"app": "web"}, False),
        ("app!=web", {}, True),
        ("tier", {"tier": "fe"}, True),
        ("tier", {}, False),
        ("!tier", {}, True),
        ("app=web,tier=fe", {"app": "web"}, False),
    ]

    @pytest.mark.parametrize("text,labels,expected", SELECTORS)
    def test_label_selector(self, text, labels, expected):
        assert selector_matches(labels, parse_label_selector(text)) is expected

    def test_format_labels(self):
        assert format_labels({}) == "<none>"
        assert format_labels({"a": "1", "b": "2"}) == "a=1,b=2"


class TestPods:
    PHASES = [
        ([_container()], "Running"),
        ([_container("nonexistent-image")], "ImagePullBackOff"),
        ([_container("repo/INVALID:tag")], "ImagePullBackOff"),
        ([_container(env=[{"name": "DB_HOST", "value": ""}])], "CrashLoopBackOff"),
        ([_container(env=[{"name": "DATABASE_URL"}])], "CrashLoopBackOff"),
        ([_container(env=[{"name": "DB_HOST", "value": "db"}])], "Running"),
        ([_container(env=[{"name": "DB_HOST", "valueFrom": {"secretKeyRef": {"name": "s"}}}])], "Running"),
    ]

    @pytest.mark.parametrize("containers,phase", PHASES)
    def test_initial_phase(self, containers, phase):
        assert initial_phase({"containers": containers}) == phase

    def test_scheduled_pod(self, cluster):
        pod = new_pod("p", "default", {"run": "p"}, {"containers": [_container()]}, cluster)
        assert pod["spec"]["nodeName"] == "node01"
        assert pod["status"]["phase"] == "Running"
        assert pod["status"]["podIP"] == "10.244.1.10"
        assert pod["status"]["hostIP"] == "192.168.1.3"
        assert pod["status"]["containerStatuses"][0]["ready"]

    def test_unschedulable_pod_pending(self, cluster):
        spec = {"containers": [_container(resources={"requests": {"memory": "64Gi"}})]}
        pod = new_pod("big", "default", None, spec, cluster)
        assert pod["status"]["phase"] == "Pending"
        condition = pod["status"]["conditions"][0]
        assert condition["reason"] == "Unschedulable"
        assert "Insufficient memory" in condition["message"]

    def test_crash_loop_restarts(self, cluster):
        spec = {"containers": [_container(env=[{"name": "DB_HOST", "value": ""}])]}
        pod = new_pod("p", "default", None, spec, cluster)
        assert pod["status"]["containerStatuses"][0]["restartCount"] == 5


class TestReconcile:
    def test_creates_desired_pods(self, cluster):
        state = _deploy(cluster, replicas=3)
        pods = pods_of(state, "web")
        assert len(pods) == 3
        rs = state.replica_sets[0]
        assert all(name_of(p).startswith(name_of(rs) + "-") for p in pods)
        assert all(TEMPLATE_HASH_LABEL in p["metadata"]["labels"] for p in pods)
        deployment = state.deployments[0]
        assert deployment["status"]["readyReplicas"] == 3
        assert revision_of(deployment) == 1

    def test_scale_down_keeps_oldest(self, cluster):
        state = _deploy(cluster, replicas=3)
        first = name_of(pods_of(state, "web")[0])
        deployment = state.deployments[0]
        smaller = {**deployment, "spec": {**deployment["spec"], "replicas": 1}}
        state = reconcile_deployment(state.with_replaced(kind_for("Deployment"), deployment, smaller), "web")
        assert [name_of(p) for p in pods_of(state, "web")] == [first]

    def test_template_change_new_revision(self, cluster):
        state = _deploy(cluster)
        deployment = state.deployments[0]
        template = {**deployment["spec"]["template"], "spec": {"containers": [_container("nginx:2")]}}
        updated = {**deployment, "spec": {**deployment["spec"], "template": template}}
        state = reconcile_deployment(state.with_replaced(kind_for("Deployment"), deployment, updated), "web")
        revisions = deployment_revisions(state, state.deployments[0])
        assert [revision_of(rs) for rs in revisions] == [1, 2]
        assert revisions[0]["spec"]["replicas"] == 0
        assert {p["spec"]["containers"][0]["image"] for p in pods_of(state, "web")} == {"nginx:2"}

    def test_unavailable_when_crashing(self, cluster):
        deployment = new_deployment(
            "api", "default", [_container(env=[{"name": "DB_HOST", "value": ""}])], replicas=2
        )
        state = reconcile_deployment(cluster.with_added(kind_for("Deployment"), deployment), "api")
        status = state.deployments[0]["status"]
        assert status["readyReplicas"] == 0
        assert status["unavailableReplicas"] == 2

    def test_missing_deployment_noop(self, cluster):
        assert reconcile_deployment(cluster, "ghost") is cluster


class TestServices:
    def test_node_port_allocated(self, cluster):
        service = new_service("web", "default", {"app": "web"}, [{"port": 80}], cluster, service_type="NodePort")
        port = service["spec"]["ports"][0]
        assert port["targetPort"] == 80
        assert port["protocol"] == "TCP"
        assert 30000 <= port["nodePort"] <= 32767
        assert service["spec"]["clusterIP"].startswith("10.96.")

    def test_load_balancer_ingress(self, cluster):
        service = new_service("web", "default", {"app": "web"}, [{"port": 80}], cluster, service_type="LoadBalancer")
        assert service["status"]["loadBalancer"]["ingress"][0]["ip"].startswith("172.18.")

    def test_endpoints_only_running(self, cluster):
        state = _deploy(cluster, replicas=2)
        service = new_service("web", "default", {"app": "web"}, [{"port": 80}], state)
        assert len(service_endpoints(state, service)) == 2
        crashing = replace(state, pods=tuple(
            {**p, "status": {**p["status"], "phase": "CrashLoopBackOff"}} for p in state.pods
        ))
        assert service_endpoints(crashing, service) == []
