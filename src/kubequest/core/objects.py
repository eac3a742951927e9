"""
Resource helpers: identifiers, label selectors, pod synthesis and
Deployment reconciliation.

Reconciliation is eager. Every command that changes a Deployment's
replicas or pod template calls reconcile_deployment before returning, so
the owned pod set always matches the desired state between commands.
"""

from __future__ import annotations

import hashlib
import json
import random
import re
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from kubequest.core import config
from kubequest.core.cluster import (
    ClusterState,
    edited,
    kind_for,
    name_of,
    namespace_of,
    now,
)
from kubequest.core.scheduler import node_address, schedule_pod

# Alphabet Kubernetes uses for generated name suffixes (no vowels, no 0/1/3)
SAFE_ALPHABET = "bcdfghjklmnpqrstvwxz2456789"

TEMPLATE_HASH_LABEL = "pod-template-hash"
REVISION_ANNOTATION = "deployment.kubernetes.io/revision"
CHANGE_CAUSE_ANNOTATION = "kubernetes.io/change-cause"
RESTARTED_AT_ANNOTATION = "kubectl.kubernetes.io/restartedAt"

# Env vars whose empty value crashes the simulated application at startup
REQUIRED_ENV = frozenset({"DB_HOST", "DATABASE_URL"})

_BAD_IMAGE = re.compile(r"(nonexistent|does-not-exist|invalid)", re.IGNORECASE)

_default_rng = random.Random()
_session_rng: ContextVar[random.Random | None] = ContextVar("kubequest_rng", default=None)


def reseed(seed: int | None) -> None:
    """Seed the fallback generator behind names, UIDs and IPs. None = system entropy."""
    _default_rng.seed(seed)


def new_rng(seed: int | None = None) -> random.Random:
    """A generator of its own for one session.

    Without a seed it branches off the fallback generator, so reseed() still
    makes a fresh session reproducible.
    """
    return random.Random(_default_rng.getrandbits(64) if seed is None else seed)


@contextmanager
def using_rng(rng: random.Random) -> Iterator[None]:
    """Draw names, UIDs and IPs from rng inside the block."""
    token = _session_rng.set(rng)
    try:
        yield
    finally:
        _session_rng.reset(token)


def _rng() -> random.Random:
    return _session_rng.get() or _default_rng


def generate_uid() -> str:
    h = "".join(_rng().choice("0123456789abcdef") for _ in range(32))
    return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:]}"


def random_suffix(length: int = 5) -> str:
    return "".join(_rng().choice(SAFE_ALPHABET) for _ in range(length))


def template_hash(template: dict) -> str:
    """Stable 10-character hash of a pod template, like a ReplicaSet name suffix."""
    digest = hashlib.sha256(json.dumps(template, sort_keys=True).encode()).digest()
    return "".join(SAFE_ALPHABET[b % len(SAFE_ALPHABET)] for b in digest[:10])


def metadata(name: str, namespace: str | None = "default", labels: dict | None = None, **extra) -> dict:
    """Server-populated metadata for a new object."""
    meta: dict = {"name": name}
    if namespace is not None:
        meta["namespace"] = namespace
    if labels:
        meta["labels"] = dict(labels)
    meta.update(extra)
    meta["uid"] = generate_uid()
    meta["creationTimestamp"] = now()
    return meta


# === Label selectors ===


def matches_labels(labels: dict | None, selector: dict | None) -> bool:
    """True if labels carry every key/value of a matchLabels selector.

    An empty selector matches nothing, the way a Service with no
    selector has no endpoints.
    """
    if not selector:
        return False
    labels = labels or {}
    return all(labels.get(k) == v for k, v in selector.items())


def parse_label_selector(text: str) -> list[tuple[str, str, str | None]]:
    """Parse `-l` syntax into (key, op, value) requirements.

    Supports `k=v`, `k==v`, `k!=v`, bare `k` (exists) and `!k` (absent).
    """
    requirements: list[tuple[str, str, str | None]] = []
    for term in filter(None, (t.strip() for t in text.split(","))):
        if "!=" in term:
            key, value = term.split("!=", 1)
            requirements.append((key.strip(), "!=", value.strip()))
        elif "==" in term:
            key, value = term.split("==", 1)
            requirements.append((key.strip(), "=", value.strip()))
        elif "=" in term:
            key, value = term.split("=", 1)
            requirements.append((key.strip(), "=", value.strip()))
        elif term.startswith("!"):
            requirements.append((term[1:], "absent", None))
        else:
            requirements.append((term, "exists", None))
    return requirements


def selector_matches(labels: dict | None, requirements: list[tuple[str, str, str | None]]) -> bool:
    labels = labels or {}
    for key, op, value in requirements:
        if op == "=" and labels.get(key) != value:
            return False
        if op == "!=" and labels.get(key) == value:
            return False
        if op == "exists" and key not in labels:
            return False
        if op == "absent" and key in labels:
            return False
    return True


def format_labels(labels: dict | None) -> str:
    if not labels:
        return "<none>"
    return ",".join(f"{k}={v}" for k, v in labels.items())


# === Pods ===


def initial_phase(pod_spec: dict) -> str:
    """Phase a freshly scheduled pod settles into, from its spec alone."""
    for container in pod_spec.get("containers", []):
        if _BAD_IMAGE.search(container.get("image", "")):
            return "ImagePullBackOff"
        for env in container.get("env") or []:
            if env.get("name") in REQUIRED_ENV and "valueFrom" not in env and not env.get("value"):
                return "CrashLoopBackOff"
    return "Running"


def _allocate_ip(node_name: str, state: ClusterState) -> str:
    index = next(
        (i for i, n in enumerate(state.nodes) if n["metadata"]["name"] == node_name),
        1,
    )
    used = {p.get("status", {}).get("podIP") for p in state.pods}
    host = 10
    while f"10.244.{index}.{host}" in used:
        host += 1
    return f"10.244.{index}.{host}"


def container_statuses(pod_spec: dict, phase: str) -> list[dict]:
    statuses = []
    for container in pod_spec.get("containers", []):
        status = {
            "name": container.get("name"),
            "image": container.get("image"),
            "ready": phase == "Running",
            "restartCount": 5 if phase == "CrashLoopBackOff" else 0,
        }
        if phase == "Running":
            status["state"] = {"running": {"startedAt": now()}}
        elif phase == "CrashLoopBackOff":
            status["state"] = {
                "waiting": {
                    "reason": "CrashLoopBackOff",
                    "message": "back-off 5m0s restarting failed container",
                }
            }
            status["lastState"] = {"terminated": {"exitCode": 1, "reason": "Error"}}
        elif phase == "ImagePullBackOff":
            status["state"] = {
                "waiting": {"reason": "ImagePullBackOff", "message": "Back-off pulling image"}
            }
        statuses.append(status)
    return statuses


def new_pod(
    name: str,
    namespace: str,
    labels: dict | None,
    spec: dict,
    state: ClusterState,
    annotations: dict | None = None,
    owner: dict | None = None,
) -> dict:
    """Synthesize a pod and schedule it against the current state."""
    spec = edited(spec)
    extra = {}
    if annotations:
        extra["annotations"] = dict(annotations)
    if owner is not None:
        extra["ownerReferences"] = [
            {
                "apiVersion": owner["apiVersion"],
                "kind": owner["kind"],
                "name": name_of(owner),
                "uid": owner["metadata"].get("uid", ""),
                "controller": True,
            }
        ]
    meta = metadata(name, namespace, labels, **extra)

    result = schedule_pod(spec, state)
    if not result.success:
        return {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": meta,
            "spec": spec,
            "status": {
                "phase": "Pending",
                "conditions": [
                    {
                        "type": "PodScheduled",
                        "status": "False",
                        "reason": "Unschedulable",
                        "message": result.message,
                    }
                ],
            },
        }

    spec["nodeName"] = result.node_name
    phase = initial_phase(spec)
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": meta,
        "spec": spec,
        "status": {
            "phase": phase,
            "podIP": _allocate_ip(result.node_name, state),
            "hostIP": node_address(result.node_name, state),
            "startTime": now(),
            "conditions": [
                {"type": "PodScheduled", "status": "True"},
                {"type": "Ready", "status": "True" if phase == "Running" else "False"},
            ],
            "containerStatuses": container_statuses(spec, phase),
        },
    }


def restart_count(pod: dict) -> int:
    return sum(c.get("restartCount", 0) for c in pod.get("status", {}).get("containerStatuses", []))


def ready_count(pod: dict) -> tuple[int, int]:
    containers = pod.get("spec", {}).get("containers", [])
    statuses = pod.get("status", {}).get("containerStatuses", [])
    ready = sum(1 for s in statuses if s.get("ready"))
    return ready, len(containers)


# === Deployments ===


def owned_pods(state: ClusterState, deployment: dict) -> list[dict]:
    selector = deployment["spec"].get("selector", {}).get("matchLabels", {})
    ns = namespace_of(deployment)
    return [
        p for p in state.pods
        if namespace_of(p) == ns and matches_labels(p["metadata"].get("labels"), selector)
    ]


def owning_deployment(state: ClusterState, pod: dict) -> dict | None:
    ns = namespace_of(pod)
    labels = pod["metadata"].get("labels")
    for deployment in state.deployments:
        if namespace_of(deployment) != ns:
            continue
        if matches_labels(labels, deployment["spec"].get("selector", {}).get("matchLabels")):
            return deployment
    return None


def _revision(resource: dict) -> int:
    try:
        return int(resource["metadata"].get("annotations", {}).get(REVISION_ANNOTATION, "0"))
    except ValueError:
        return 0


def _sync_replica_sets(state: ClusterState, deployment: dict, pod_hash: str) -> tuple[ClusterState, dict]:
    """Ensure the ReplicaSet for the current template exists and is the only one scaled up."""
    rs_kind = kind_for("ReplicaSet")
    ns = namespace_of(deployment)
    dep_name = name_of(deployment)
    rs_name = f"{dep_name}-{pod_hash}"
    replicas = deployment["spec"].get("replicas", 1)
    siblings = [
        rs for rs in state.replica_sets
        if namespace_of(rs) == ns
        and any(o.get("name") == dep_name for o in rs["metadata"].get("ownerReferences", []))
    ]

    current = next((rs for rs in siblings if name_of(rs) == rs_name), None)
    revision = _revision(current) if current else 0
    if current is None or revision != max((_revision(rs) for rs in siblings), default=0):
        revision = max((_revision(rs) for rs in siblings), default=0) + 1

    for rs in siblings:
        if rs is current:
            continue
        if rs["spec"].get("replicas", 0) != 0:
            scaled = edited(rs)
            scaled["spec"]["replicas"] = 0
            scaled["status"] = {"replicas": 0, "readyReplicas": 0, "availableReplicas": 0}
            state = state.with_replaced(rs_kind, rs, scaled)

    annotations = {REVISION_ANNOTATION: str(revision)}
    cause = deployment["metadata"].get("annotations", {}).get(CHANGE_CAUSE_ANNOTATION)
    if cause:
        annotations[CHANGE_CAUSE_ANNOTATION] = cause

    template = edited(deployment["spec"]["template"])
    labels = dict(template.get("metadata", {}).get("labels", {}))
    labels[TEMPLATE_HASH_LABEL] = pod_hash
    template.setdefault("metadata", {})["labels"] = labels
    selector = dict(deployment["spec"].get("selector", {}).get("matchLabels", {}))
    selector[TEMPLATE_HASH_LABEL] = pod_hash

    if current is None:
        rs = {
            "apiVersion": "apps/v1",
            "kind": "ReplicaSet",
            "metadata": metadata(
                rs_name,
                ns,
                labels,
                annotations=annotations,
                ownerReferences=[
                    {
                        "apiVersion": "apps/v1",
                        "kind": "Deployment",
                        "name": dep_name,
                        "uid": deployment["metadata"].get("uid", ""),
                        "controller": True,
                    }
                ],
            ),
            "spec": {"replicas": replicas, "selector": {"matchLabels": selector}, "template": template},
            "status": {},
        }
        state = state.with_added(rs_kind, rs)
    else:
        rs = edited(current)
        rs["spec"]["replicas"] = replicas
        rs["metadata"].setdefault("annotations", {}).update(annotations)
        state = state.with_replaced(rs_kind, current, rs)
    return state, rs


def reconcile_deployment(state: ClusterState, name: str, namespace: str = "default") -> ClusterState:
    """Converge a Deployment's pods onto its spec: current template, desired count.

    Pods stamped with another template hash are replaced; pods carrying no
    hash (created outside the controller) are counted but left alone.
    """
    dep_kind = kind_for("Deployment")
    deployment = state.find(dep_kind, name, namespace)
    if deployment is None:
        return state

    spec = deployment["spec"]
    template = spec.get("template", {})
    pod_hash = template_hash(template)
    desired = spec.get("replicas", 1)

    state, rs = _sync_replica_sets(state, deployment, pod_hash)

    owned = owned_pods(state, deployment)
    stale = [
        p for p in owned
        if p["metadata"].get("labels", {}).get(TEMPLATE_HASH_LABEL, pod_hash) != pod_hash
    ]
    replaced = len(stale)
    if stale:
        stale_ids = {id(p) for p in stale}
        state = state.with_pods(p for p in state.pods if id(p) not in stale_ids)
        owned = [p for p in owned if id(p) not in stale_ids]

    created = 0
    removed = 0
    if len(owned) > desired:
        # Scale down: newest pods go first
        excess = {id(p) for p in owned[desired:]}
        removed = len(excess)
        state = state.with_pods(p for p in state.pods if id(p) not in excess)
    while len(owned) < desired:
        labels = dict(template.get("metadata", {}).get("labels", {}))
        labels[TEMPLATE_HASH_LABEL] = pod_hash
        pod = new_pod(
            f"{name}-{pod_hash}-{random_suffix()}",
            namespace,
            labels,
            template.get("spec", {}),
            state,
            annotations=template.get("metadata", {}).get("annotations"),
            owner=rs,
        )
        state = state.with_pods(state.pods + (pod,))
        owned.append(pod)
        created += 1

    state = _update_status(state, deployment, rs)
    if created or removed or replaced:
        config.log(
            "info",
            "reconcile",
            deployment=name,
            namespace=namespace,
            created=created,
            removed=removed,
            replaced=replaced,
        )
    return state


def _update_status(state: ClusterState, deployment: dict, rs: dict) -> ClusterState:
    pods = owned_pods(state, deployment)
    ready = sum(1 for p in pods if p.get("status", {}).get("phase") == "Running")
    status = {
        "observedGeneration": deployment["metadata"].get("generation", 1),
        "replicas": len(pods),
        "updatedReplicas": len(pods),
        "readyReplicas": ready,
        "availableReplicas": ready,
    }
    if ready < len(pods):
        status["unavailableReplicas"] = len(pods) - ready
    status["conditions"] = [
        {
            "type": "Available",
            "status": "True" if ready >= deployment["spec"].get("replicas", 1) else "False",
            "reason": "MinimumReplicasAvailable"
            if ready >= deployment["spec"].get("replicas", 1)
            else "MinimumReplicasUnavailable",
        },
        {"type": "Progressing", "status": "True", "reason": "NewReplicaSetAvailable"},
    ]

    current = state.find(kind_for("Deployment"), name_of(deployment), namespace_of(deployment))
    updated = edited(current)
    updated["status"] = status
    annotations = updated["metadata"].setdefault("annotations", {})
    annotations[REVISION_ANNOTATION] = rs["metadata"]["annotations"][REVISION_ANNOTATION]
    state = state.with_replaced(kind_for("Deployment"), current, updated)

    rs_kind = kind_for("ReplicaSet")
    live_rs = state.find(rs_kind, name_of(rs), namespace_of(rs))
    if live_rs is not None:
        rs_updated = edited(live_rs)
        rs_updated["status"] = {
            "replicas": len(pods),
            "readyReplicas": ready,
            "availableReplicas": ready,
        }
        state = state.with_replaced(rs_kind, live_rs, rs_updated)
    return state


def reconcile_all(state: ClusterState) -> ClusterState:
    """Reconcile every Deployment."""
    for deployment in state.deployments:
        state = reconcile_deployment(state, name_of(deployment), namespace_of(deployment))
    return state


def deployment_revisions(state: ClusterState, deployment: dict) -> list[dict]:
    """ReplicaSets owned by a Deployment, oldest revision first."""
    ns = namespace_of(deployment)
    dep_name = name_of(deployment)
    owned = [
        rs for rs in state.replica_sets
        if namespace_of(rs) == ns
        and any(o.get("name") == dep_name for o in rs["metadata"].get("ownerReferences", []))
    ]
    return sorted(owned, key=_revision)


def revision_of(resource: dict) -> int:
    return _revision(resource)


def new_deployment(
    name: str,
    namespace: str,
    containers: list[dict],
    replicas: int = 1,
    labels: dict | None = None,
    pod_spec_extra: dict | None = None,
) -> dict:
    """A Deployment object with selector and template labels set to labels (default app=name)."""
    labels = dict(labels or {"app": name})
    pod_spec = {"containers": containers}
    if pod_spec_extra:
        pod_spec.update(pod_spec_extra)
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {**metadata(name, namespace, labels), "generation": 1},
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": dict(labels)},
            "strategy": {
                "type": "RollingUpdate",
                "rollingUpdate": {"maxSurge": "25%", "maxUnavailable": "25%"},
            },
            "template": {"metadata": {"labels": dict(labels)}, "spec": pod_spec},
        },
        "status": {},
    }


def bump_generation(deployment: dict) -> None:
    """Record a spec change on a private copy."""
    meta = deployment["metadata"]
    meta["generation"] = meta.get("generation", 1) + 1


# === Services ===

NODE_PORT_RANGE = (30000, 32767)


def allocate_cluster_ip(state: ClusterState) -> str:
    used = {s.get("spec", {}).get("clusterIP") for s in state.services}
    while True:
        ip = f"10.96.{_rng().randint(1, 254)}.{_rng().randint(1, 254)}"
        if ip not in used:
            return ip


def allocate_node_port(state: ClusterState) -> int:
    used = {
        p.get("nodePort")
        for s in state.services
        for p in s.get("spec", {}).get("ports", [])
    }
    low, high = NODE_PORT_RANGE
    while True:
        port = _rng().randint(low, high)
        if port not in used:
            return port


def new_service(
    name: str,
    namespace: str,
    selector: dict,
    ports: list[dict],
    state: ClusterState,
    service_type: str = "ClusterIP",
    labels: dict | None = None,
) -> dict:
    """A Service with a fresh cluster IP, and node ports filled in for NodePort/LoadBalancer."""
    ports = [dict(p) for p in ports]
    for port in ports:
        port.setdefault("protocol", "TCP")
        port.setdefault("targetPort", port.get("port"))
        if service_type in ("NodePort", "LoadBalancer") and not port.get("nodePort"):
            port["nodePort"] = allocate_node_port(state)
    status: dict = {"loadBalancer": {}}
    if service_type == "LoadBalancer":
        status = {"loadBalancer": {"ingress": [{"ip": f"172.18.{_rng().randint(0, 255)}.{_rng().randint(1, 254)}"}]}}
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": metadata(name, namespace, labels),
        "spec": {
            "type": service_type,
            "selector": dict(selector),
            "ports": ports,
            "clusterIP": allocate_cluster_ip(state),
        },
        "status": status,
    }


def service_endpoints(state: ClusterState, service: dict) -> list[dict]:
    """Running pods a Service's selector picks up in its namespace."""
    selector = service.get("spec", {}).get("selector")
    ns = namespace_of(service)
    return [
        p for p in state.pods
        if namespace_of(p) == ns
        and p.get("status", {}).get("phase") == "Running"
        and matches_labels(p["metadata"].get("labels"), selector)
    ]
