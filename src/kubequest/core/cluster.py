"""
Cluster state model.

ClusterState is a frozen value. Every resource collection is a tuple of
Kubernetes-shaped dicts; interpreters never mutate a dict reachable from a
state they were handed. They build a new state with the helpers below,
which copy at the collection level and leave untouched collections shared.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Iterable

# === Resource kinds ===


@dataclass(frozen=True)
class ResourceKind:
    """One API resource type and the ClusterState collection holding it."""

    kind: str
    field: str
    plural: str
    group: str = ""
    namespaced: bool = True
    aliases: frozenset[str] = frozenset()
    short: str | None = None

    @property
    def singular(self) -> str:
        return self.kind.lower()

    @property
    def ref(self) -> str:
        """Singular qualified name, as in `deployment.apps/web created`."""
        return f"{self.singular}.{self.group}" if self.group else self.singular

    @property
    def resource(self) -> str:
        """Plural qualified name, as in `deployments.apps "web" not found`."""
        return f"{self.plural}.{self.group}" if self.group else self.plural

    @property
    def api_version(self) -> str:
        return API_VERSIONS.get(self.kind, "v1")


API_VERSIONS = {
    "Deployment": "apps/v1",
    "ReplicaSet": "apps/v1",
    "DaemonSet": "apps/v1",
    "StatefulSet": "apps/v1",
    "Job": "batch/v1",
    "CronJob": "batch/v1",
    "HorizontalPodAutoscaler": "autoscaling/v2",
    "Role": "rbac.authorization.k8s.io/v1",
    "RoleBinding": "rbac.authorization.k8s.io/v1",
    "ClusterRole": "rbac.authorization.k8s.io/v1",
    "ClusterRoleBinding": "rbac.authorization.k8s.io/v1",
    "StorageClass": "storage.k8s.io/v1",
    "Ingress": "networking.k8s.io/v1",
    "NetworkPolicy": "networking.k8s.io/v1",
    "GatewayClass": "gateway.networking.k8s.io/v1",
    "Gateway": "gateway.networking.k8s.io/v1",
    "HTTPRoute": "gateway.networking.k8s.io/v1",
    "PriorityClass": "scheduling.k8s.io/v1",
    "CustomResourceDefinition": "apiextensions.k8s.io/v1",
}


def _k(kind, field_name, plural, group="", namespaced=True, aliases=(), short=None):
    names = {kind.lower(), plural, *aliases}
    if short:
        names.add(short)
    return ResourceKind(kind, field_name, plural, group, namespaced, frozenset(names), short)


KINDS: tuple[ResourceKind, ...] = (
    _k("Pod", "pods", "pods", short="po"),
    _k("Node", "nodes", "nodes", namespaced=False, short="no"),
    _k("Deployment", "deployments", "deployments", "apps", short="deploy"),
    _k("Service", "services", "services", short="svc"),
    _k("ConfigMap", "config_maps", "configmaps", short="cm"),
    _k("Secret", "secrets", "secrets"),
    _k("Namespace", "namespaces", "namespaces", namespaced=False, short="ns"),
    _k("HorizontalPodAutoscaler", "hpas", "horizontalpodautoscalers", "autoscaling", short="hpa"),
    _k("Job", "jobs", "jobs", "batch"),
    _k("CronJob", "cron_jobs", "cronjobs", "batch", short="cj"),
    _k("ReplicaSet", "replica_sets", "replicasets", "apps", short="rs"),
    _k("DaemonSet", "daemon_sets", "daemonsets", "apps", short="ds"),
    _k("StatefulSet", "stateful_sets", "statefulsets", "apps", short="sts"),
    _k("Role", "roles", "roles", "rbac.authorization.k8s.io"),
    _k("RoleBinding", "role_bindings", "rolebindings", "rbac.authorization.k8s.io"),
    _k("ClusterRole", "cluster_roles", "clusterroles", "rbac.authorization.k8s.io", namespaced=False),
    _k(
        "ClusterRoleBinding",
        "cluster_role_bindings",
        "clusterrolebindings",
        "rbac.authorization.k8s.io",
        namespaced=False,
    ),
    _k("ServiceAccount", "service_accounts", "serviceaccounts", short="sa"),
    _k("StorageClass", "storage_classes", "storageclasses", "storage.k8s.io", namespaced=False, short="sc"),
    _k("PersistentVolume", "persistent_volumes", "persistentvolumes", namespaced=False, short="pv"),
    _k("PersistentVolumeClaim", "persistent_volume_claims", "persistentvolumeclaims", short="pvc"),
    _k("Ingress", "ingresses", "ingresses", "networking.k8s.io", short="ing"),
    _k("NetworkPolicy", "network_policies", "networkpolicies", "networking.k8s.io", short="netpol"),
    _k(
        "GatewayClass",
        "gateway_classes",
        "gatewayclasses",
        "gateway.networking.k8s.io",
        namespaced=False,
        short="gc",
    ),
    _k("Gateway", "gateways", "gateways", "gateway.networking.k8s.io", aliases=("gtw",), short="gw"),
    _k("HTTPRoute", "http_routes", "httproutes", "gateway.networking.k8s.io"),
    _k("PriorityClass", "priority_classes", "priorityclasses", "scheduling.k8s.io", namespaced=False, short="pc"),
    _k("ResourceQuota", "resource_quotas", "resourcequotas", short="quota"),
    _k("LimitRange", "limit_ranges", "limitranges", short="limits"),
    _k(
        "CustomResourceDefinition",
        "crds",
        "customresourcedefinitions",
        "apiextensions.k8s.io",
        namespaced=False,
        aliases=("crds",),
        short="crd",
    ),
    _k("Event", "events", "events", short="ev"),
)

_BY_NAME = {name: kind for kind in KINDS for name in kind.aliases}
_BY_KIND = {kind.kind: kind for kind in KINDS}


def lookup_kind(name: str) -> ResourceKind | None:
    """Resolve a user-typed resource type (plural, singular, short name or Kind)."""
    lowered = name.lower()
    if "." in lowered and lowered not in _BY_NAME:
        lowered = lowered.split(".", 1)[0]
    return _BY_NAME.get(lowered) or _BY_KIND.get(name)


def kind_for(kind: str) -> ResourceKind:
    """Resolve an exact Kind string, e.g. 'Deployment'."""
    return _BY_KIND[kind]


# === etcd and control plane ===


@dataclass(frozen=True)
class ETCDMember:
    id: str
    name: str
    peer_urls: tuple[str, ...]
    client_urls: tuple[str, ...]
    status: str = "healthy"  # healthy | unhealthy | unknown
    is_leader: bool = False
    db_size: int = 4194304
    db_size_in_use: int = 2097152


@dataclass(frozen=True)
class ETCDBackup:
    name: str
    timestamp: str
    size: int
    path: str


@dataclass(frozen=True)
class ETCDCluster:
    members: tuple[ETCDMember, ...] = ()
    version: str = "3.5.9"
    cluster_id: str = "k8s-quest-etcd-cluster"
    backups: tuple[ETCDBackup, ...] = ()
    corrupted: bool = False


@dataclass(frozen=True)
class SystemComponent:
    name: str
    status: str  # Running | Stopped | Failed
    node: str
    last_heartbeat: str = ""


@dataclass(frozen=True)
class AuthContext:
    """Identity kubectl requests are made as."""

    user: str = "kubernetes-admin"
    groups: tuple[str, ...] = ("system:masters", "system:authenticated")
    service_account: str | None = None


# === Cluster state ===


@dataclass(frozen=True)
class ClusterState:
    """The simulator's single source of truth."""

    nodes: tuple[dict, ...] = ()
    pods: tuple[dict, ...] = ()
    deployments: tuple[dict, ...] = ()
    replica_sets: tuple[dict, ...] = ()
    services: tuple[dict, ...] = ()
    namespaces: tuple[str, ...] = ("default",)
    config_maps: tuple[dict, ...] = ()
    secrets: tuple[dict, ...] = ()
    persistent_volumes: tuple[dict, ...] = ()
    persistent_volume_claims: tuple[dict, ...] = ()
    storage_classes: tuple[dict, ...] = ()
    ingresses: tuple[dict, ...] = ()
    network_policies: tuple[dict, ...] = ()
    gateway_classes: tuple[dict, ...] = ()
    gateways: tuple[dict, ...] = ()
    http_routes: tuple[dict, ...] = ()
    hpas: tuple[dict, ...] = ()
    roles: tuple[dict, ...] = ()
    role_bindings: tuple[dict, ...] = ()
    cluster_roles: tuple[dict, ...] = ()
    cluster_role_bindings: tuple[dict, ...] = ()
    service_accounts: tuple[dict, ...] = ()
    jobs: tuple[dict, ...] = ()
    cron_jobs: tuple[dict, ...] = ()
    daemon_sets: tuple[dict, ...] = ()
    stateful_sets: tuple[dict, ...] = ()
    resource_quotas: tuple[dict, ...] = ()
    limit_ranges: tuple[dict, ...] = ()
    priority_classes: tuple[dict, ...] = ()
    crds: tuple[dict, ...] = ()
    events: tuple[dict, ...] = ()
    etcd: ETCDCluster = field(default_factory=ETCDCluster)
    system_components: tuple[SystemComponent, ...] = ()
    current_context: AuthContext = field(default_factory=AuthContext)

    def items(self, kind: ResourceKind, namespace: str | None = None) -> tuple[dict, ...]:
        """Resources of a kind, filtered to a namespace when the kind is namespaced."""
        if kind.field == "namespaces":
            return tuple(namespace_object(ns) for ns in self.namespaces)
        collection = getattr(self, kind.field)
        if namespace is None or not kind.namespaced:
            return collection
        return tuple(r for r in collection if namespace_of(r) == namespace)

    def find(self, kind: ResourceKind, name: str, namespace: str = "default") -> dict | None:
        for resource in self.items(kind, namespace):
            if resource["metadata"]["name"] == name:
                return resource
        return None

    def with_added(self, kind: ResourceKind, *resources: dict) -> ClusterState:
        collection = getattr(self, kind.field)
        return replace(self, **{kind.field: collection + tuple(resources)})

    def with_replaced(self, kind: ResourceKind, old: dict, new: dict) -> ClusterState:
        collection = getattr(self, kind.field)
        return replace(self, **{kind.field: tuple(new if r is old else r for r in collection)})

    def without(self, kind: ResourceKind, predicate: Callable[[dict], bool]) -> ClusterState:
        collection = getattr(self, kind.field)
        return replace(self, **{kind.field: tuple(r for r in collection if not predicate(r))})

    def with_pods(self, pods: Iterable[dict]) -> ClusterState:
        return replace(self, pods=tuple(pods))

    def with_namespace(self, namespace: str) -> ClusterState:
        if namespace in self.namespaces:
            return self
        return replace(self, namespaces=self.namespaces + (namespace,))


def namespace_of(resource: dict) -> str:
    return resource.get("metadata", {}).get("namespace") or "default"


def name_of(resource: dict) -> str:
    return resource["metadata"]["name"]


def namespace_object(name: str) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {"name": name},
        "status": {"phase": "Active"},
    }


def edited(resource: dict) -> dict:
    """A private deep copy to mutate before swapping it into a new state."""
    return copy.deepcopy(resource)


def now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# === Initial cluster ===

POD_CIDR = "10.244.0.0/16"


def _node(name: str, address: str, cpu: str, memory: str, control_plane: bool = False) -> dict:
    labels = {
        "kubernetes.io/hostname": name,
        "kubernetes.io/os": "linux",
        "kubernetes.io/arch": "amd64",
    }
    spec: dict = {}
    if control_plane:
        labels["node-role.kubernetes.io/control-plane"] = ""
        spec["taints"] = [
            {"key": "node-role.kubernetes.io/control-plane", "effect": "NoSchedule"}
        ]
    capacity = {"cpu": cpu, "memory": memory, "pods": "110"}
    return {
        "apiVersion": "v1",
        "kind": "Node",
        "metadata": {
            "name": name,
            "labels": labels,
            "creationTimestamp": "2024-01-01T00:00:00Z",
        },
        "spec": spec,
        "status": {
            "addresses": [
                {"type": "InternalIP", "address": address},
                {"type": "Hostname", "address": name},
            ],
            "conditions": [{"type": "Ready", "status": "True"}],
            "capacity": dict(capacity),
            "allocatable": dict(capacity),
            "nodeInfo": {
                "kubeletVersion": "v1.28.0",
                "osImage": "Ubuntu 22.04.3 LTS",
                "kernelVersion": "5.15.0-k8s",
                "containerRuntimeVersion": "containerd://1.7.2",
            },
        },
    }


def _cluster_role(name: str, rules: list[dict]) -> dict:
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRole",
        "metadata": {"name": name},
        "rules": rules,
    }


# CRDs installed by the cluster's add-ons (cert-manager and the Gateway API)
BUILTIN_CRDS = (
    "certificates.cert-manager.io",
    "certificaterequests.cert-manager.io",
    "challenges.acme.cert-manager.io",
    "clusterissuers.cert-manager.io",
    "issuers.cert-manager.io",
    "orders.acme.cert-manager.io",
    "gatewayclasses.gateway.networking.k8s.io",
    "gateways.gateway.networking.k8s.io",
    "httproutes.gateway.networking.k8s.io",
)


def _crd(name: str) -> dict:
    plural, _, group = name.partition(".")
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": name, "creationTimestamp": "2024-01-01T00:00:00Z"},
        "spec": {"group": group, "names": {"plural": plural}, "scope": "Namespaced"},
    }


_READ = ["get", "list", "watch"]
_WRITE = _READ + ["create", "update", "patch", "delete"]
_CORE_RESOURCES = ["pods", "services", "configmaps", "secrets", "persistentvolumeclaims"]
_APPS_RESOURCES = ["deployments", "daemonsets", "statefulsets"]


def initial_cluster_state() -> ClusterState:
    """The fixed starting cluster: three nodes, system namespaces, no workloads."""
    stamp = now()
    nodes = (
        _node("control-plane", "192.168.1.2", "4", "8Gi", control_plane=True),
        _node("node01", "192.168.1.3", "2", "4Gi"),
        _node("node02", "192.168.1.4", "2", "4Gi"),
    )
    components = tuple(
        SystemComponent(name, "Running", node, stamp)
        for name, node in (
            ("kube-apiserver", "control-plane"),
            ("kube-scheduler", "control-plane"),
            ("kube-controller-manager", "control-plane"),
            ("etcd", "control-plane"),
            ("kubelet", "control-plane"),
            ("kubelet", "node01"),
            ("kubelet", "node02"),
            ("kube-proxy", "control-plane"),
            ("coredns", "control-plane"),
        )
    )
    return ClusterState(
        nodes=nodes,
        services=(
            {
                "apiVersion": "v1",
                "kind": "Service",
                "metadata": {"name": "kubernetes", "namespace": "default"},
                "spec": {
                    "selector": {},
                    "ports": [{"port": 443, "targetPort": 6443, "protocol": "TCP"}],
                    "type": "ClusterIP",
                    "clusterIP": "10.96.0.1",
                },
            },
        ),
        namespaces=("default", "kube-system", "kube-public", "kube-node-lease"),
        storage_classes=(
            {
                "apiVersion": "storage.k8s.io/v1",
                "kind": "StorageClass",
                "metadata": {
                    "name": "standard",
                    "annotations": {"storageclass.kubernetes.io/is-default-class": "true"},
                },
                "provisioner": "kubernetes.io/no-provisioner",
                "reclaimPolicy": "Delete",
                "volumeBindingMode": "WaitForFirstConsumer",
            },
        ),
        gateway_classes=(
            {
                "apiVersion": "gateway.networking.k8s.io/v1",
                "kind": "GatewayClass",
                "metadata": {"name": "nginx"},
                "spec": {"controllerName": "k8s.io/ingress-nginx"},
                "status": {"conditions": [{"type": "Accepted", "status": "True"}]},
            },
        ),
        cluster_roles=(
            _cluster_role("cluster-admin", [{"apiGroups": ["*"], "resources": ["*"], "verbs": ["*"]}]),
            _cluster_role(
                "view",
                [
                    {"apiGroups": [""], "resources": _CORE_RESOURCES, "verbs": _READ},
                    {"apiGroups": ["apps"], "resources": _APPS_RESOURCES, "verbs": _READ},
                ],
            ),
            _cluster_role(
                "edit",
                [
                    {"apiGroups": [""], "resources": _CORE_RESOURCES, "verbs": _WRITE},
                    {"apiGroups": ["apps"], "resources": _APPS_RESOURCES, "verbs": _WRITE},
                ],
            ),
        ),
        cluster_role_bindings=(
            {
                "apiVersion": "rbac.authorization.k8s.io/v1",
                "kind": "ClusterRoleBinding",
                "metadata": {"name": "cluster-admin-binding"},
                "roleRef": {
                    "apiGroup": "rbac.authorization.k8s.io",
                    "kind": "ClusterRole",
                    "name": "cluster-admin",
                },
                "subjects": [{"kind": "User", "name": "kubernetes-admin"}],
            },
        ),
        service_accounts=tuple(
            {
                "apiVersion": "v1",
                "kind": "ServiceAccount",
                "metadata": {"name": "default", "namespace": ns},
            }
            for ns in ("default", "kube-system")
        ),
        daemon_sets=(
            {
                "apiVersion": "apps/v1",
                "kind": "DaemonSet",
                "metadata": {"name": "kube-proxy", "namespace": "kube-system"},
                "spec": {
                    "selector": {"matchLabels": {"k8s-app": "kube-proxy"}},
                    "template": {
                        "metadata": {"labels": {"k8s-app": "kube-proxy"}},
                        "spec": {
                            "containers": [
                                {"name": "kube-proxy", "image": "registry.k8s.io/kube-proxy:v1.28.0"}
                            ]
                        },
                    },
                },
                "status": {
                    "currentNumberScheduled": 3,
                    "desiredNumberScheduled": 3,
                    "numberAvailable": 3,
                    "numberReady": 3,
                    "numberMisscheduled": 0,
                    "updatedNumberScheduled": 3,
                },
            },
        ),
        priority_classes=(
            {
                "apiVersion": "scheduling.k8s.io/v1",
                "kind": "PriorityClass",
                "metadata": {"name": "system-cluster-critical"},
                "value": 2000000000,
                "globalDefault": False,
                "description": "Used for system critical pods that must run in the cluster.",
            },
            {
                "apiVersion": "scheduling.k8s.io/v1",
                "kind": "PriorityClass",
                "metadata": {"name": "system-node-critical"},
                "value": 2000001000,
                "globalDefault": False,
                "description": "Used for system critical pods that must not be moved from their current node.",
            },
        ),
        etcd=ETCDCluster(
            members=(
                ETCDMember(
                    id="a1b2c3d4e5f6",
                    name="control-plane",
                    peer_urls=("https://192.168.1.2:2380",),
                    client_urls=("https://192.168.1.2:2379",),
                    status="healthy",
                    is_leader=True,
                ),
            ),
        ),
        crds=tuple(_crd(name) for name in BUILTIN_CRDS),
        system_components=components,
        current_context=AuthContext(),
    )
