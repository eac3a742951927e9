"""Tests for the RBAC authorizer."""

from __future__ import annotations

from dataclasses import replace

import pytest

from kubequest.core.cluster import AuthContext
from kubequest.core.rbac import (
    AccessRequest,
    can_i,
    check_access,
    identity_permissions,
    make_cluster_role,
    make_cluster_role_binding,
    make_role,
    make_role_binding,
    make_rules,
    matches_rule,
    normalize_resource,
    parse_service_account,
)


def _user(name: str) -> list[dict]:
    return [{"kind": "User", "name": name}]


@pytest.fixture
def reader_state(cluster):
    """jane can get/list pods in default through a Role."""
    role = make_role("pod-reader", "default", make_rules(["get", "list"], ["pods"]))
    binding = make_role_binding("read-pods", "default", "Role", "pod-reader", _user("jane"))
    return replace(cluster, roles=(role,), role_bindings=(binding,))


RESOURCES = [
    ("pods", ("pods", "")),
    ("po", ("pods", "")),
    ("deploy", ("deployments", "apps")),
    ("deployments.apps", ("deployments", "apps")),
    ("pods/log", ("pods/log", "")),
    ("widgets.example.com", ("widgets", "example.com")),
]


@pytest.mark.parametrize("typed,expected", RESOURCES)
def test_normalize_resource(typed: str, expected: tuple[str, str]):
    assert normalize_resource(typed) == expected


def test_parse_service_account():
    assert parse_service_account("system:serviceaccount:dev:builder") == ("dev", "builder")
    assert parse_service_account("jane") is None
    assert parse_service_account("system:serviceaccount:dev") is None


class TestMatchesRule:
    def _request(self, **kw) -> AccessRequest:
        base = dict(user="u", groups=(), verb="get", resource="pods")
        base.update(kw)
        return AccessRequest(**base)

    def test_wildcards(self):
        rule = {"apiGroups": ["*"], "resources": ["*"], "verbs": ["*"]}
        assert matches_rule(self._request(resource="deployments", verb="delete"), rule)

    def test_group_must_match(self):
        rule = {"apiGroups": [""], "resources": ["deployments"], "verbs": ["get"]}
        assert not matches_rule(self._request(resource="deployments"), rule)

    def test_subresource_matches_base(self):
        rule = {"apiGroups": [""], "resources": ["pods"], "verbs": ["get"]}
        assert matches_rule(self._request(resource="pods/log"), rule)

    def test_resource_names(self):
        rule = {"apiGroups": [""], "resources": ["pods"], "verbs": ["get"], "resourceNames": ["web"]}
        assert matches_rule(self._request(resource_name="web"), rule)
        assert not matches_rule(self._request(resource_name="db"), rule)
        assert not matches_rule(self._request(), rule)


class TestCanI:
    def test_admin_allowed(self, cluster):
        decision = can_i("delete", "nodes", cluster)
        assert decision.allowed
        assert "system:masters" in decision.reason

    def test_role_grants_listed_verbs(self, reader_state):
        decision = can_i("list", "pods", reader_state, namespace="default", as_user="jane")
        assert decision.allowed
        assert decision.matched_rule.name == "pod-reader"
        assert decision.matched_rule.binding == "read-pods"

    def test_role_denies_other_verbs(self, reader_state):
        decision = can_i("delete", "pods", reader_state, namespace="default", as_user="jane")
        assert not decision.allowed
        assert decision.reason == 'User "jane" cannot delete resource "pods" in namespace "default"'

    def test_role_is_namespace_scoped(self, reader_state):
        assert not can_i("get", "pods", reader_state, namespace="kube-system", as_user="jane").allowed

    def test_impersonation_drops_masters(self, reader_state):
        assert not can_i("get", "nodes", reader_state, as_user="bob").allowed

    def test_impersonated_admin_user(self, cluster):
        # kubernetes-admin is also bound to cluster-admin directly
        decision = can_i("delete", "pods", cluster, namespace="default", as_user="kubernetes-admin")
        assert decision.allowed
        assert decision.matched_rule.binding == "cluster-admin-binding"

    def test_group_subject(self, cluster):
        binding = make_cluster_role_binding("devs-view", "view", [{"kind": "Group", "name": "devs"}])
        state = replace(cluster, cluster_role_bindings=cluster.cluster_role_bindings + (binding,))
        assert can_i("list", "deployments", state, namespace="prod", as_user="amy", as_groups=["devs"]).allowed
        assert not can_i("delete", "deployments", state, namespace="prod", as_user="amy", as_groups=["devs"]).allowed

    def test_cluster_role_via_role_binding_stays_in_namespace(self, cluster):
        binding = make_role_binding("edit-dev", "dev", "ClusterRole", "edit", _user("sam"))
        state = replace(cluster, role_bindings=(binding,))
        decision = can_i("create", "configmaps", state, namespace="dev", as_user="sam")
        assert decision.allowed
        assert "referencing ClusterRole" in decision.reason
        assert not can_i("create", "configmaps", state, namespace="default", as_user="sam").allowed

    def test_service_account_subject(self, cluster):
        role = make_role("deployer", "dev", make_rules(["create"], ["deployments"]))
        binding = make_role_binding(
            "deployer", "dev", "Role", "deployer", [{"kind": "ServiceAccount", "name": "ci", "namespace": "dev"}]
        )
        state = replace(cluster, roles=(role,), role_bindings=(binding,))
        assert can_i("create", "deployments", state, namespace="dev", as_user="system:serviceaccount:dev:ci").allowed
        assert not can_i("create", "deployments", state, namespace="dev", as_user="system:serviceaccount:prod:ci").allowed

    def test_current_context_without_masters(self, reader_state):
        state = replace(reader_state, current_context=AuthContext(user="jane", groups=("system:authenticated",)))
        assert can_i("get", "pods", state, namespace="default").allowed
        assert not can_i("create", "pods", state, namespace="default").allowed


class TestFactories:
    def test_make_rules_groups_by_api_group(self):
        rules = make_rules(["get"], ["pods", "deployments", "services"])
        assert rules == [
            {"apiGroups": [""], "resources": ["pods", "services"], "verbs": ["get"]},
            {"apiGroups": ["apps"], "resources": ["deployments"], "verbs": ["get"]},
        ]

    def test_make_rules_resource_names(self):
        rules = make_rules(["get"], ["secrets"], ["token"])
        assert rules[0]["resourceNames"] == ["token"]

    def test_cluster_role_shape(self):
        role = make_cluster_role("reader", [])
        assert role["kind"] == "ClusterRole"
        assert "namespace" not in role["metadata"]


def test_identity_permissions(reader_state):
    permissions = dict(identity_permissions(reader_state, "default", as_user="jane"))
    assert permissions == {"pods": ["get", "list"]}


def test_check_access_direct(reader_state):
    request = AccessRequest(user="jane", groups=(), verb="get", resource="pods", namespace="default")
    assert check_access(request, reader_state).allowed
