"""
Pod scheduling: filter nodes, score the survivors, bind to the best.

Filtering follows the kube-scheduler predicates the simulator models:
readiness, cordoning, nodeSelector, required node affinity, NoSchedule and
NoExecute taints against tolerations, the allocatable pod count, and cpu
and memory requests against what is still free on the node.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from kubequest.core.cluster import ClusterState

_QUANTITY = re.compile(r"^([0-9.]+)\s*([A-Za-z]*)$")

_MEMORY_UNITS = {
    "": 1 / (1024 * 1024),
    "Ki": 1 / 1024,
    "Mi": 1,
    "Gi": 1024,
    "Ti": 1024 * 1024,
    "K": 1000 / (1024 * 1024),
    "k": 1000 / (1024 * 1024),
    "M": 1000 * 1000 / (1024 * 1024),
    "G": 1000 * 1000 * 1000 / (1024 * 1024),
}

# Failure reasons in the order they are reported.
_REASONS = (
    "node(s) were not ready",
    "node(s) were unschedulable",
    "node(s) didn't match Pod's node affinity/selector",
    "node(s) had untolerable taint",
    "Too many pods",
    "Insufficient cpu",
    "Insufficient memory",
)


@dataclass(frozen=True)
class ScheduleResult:
    node_name: str | None
    message: str | None = None

    @property
    def success(self) -> bool:
        return self.node_name is not None


# === Quantities ===


def parse_cpu(value: str | int | float | None) -> float:
    """Parse a cpu quantity into cores: '500m' -> 0.5, '2' -> 2.0."""
    if value is None or value == "":
        return 0.0
    text = str(value).strip()
    if text.endswith("m"):
        try:
            return float(text[:-1]) / 1000
        except ValueError:
            return 0.0
    try:
        return float(text)
    except ValueError:
        return 0.0


def parse_memory(value: str | int | None) -> float:
    """Parse a memory quantity into MiB: '1Gi' -> 1024, '128Mi' -> 128."""
    if value is None or value == "":
        return 0.0
    match = _QUANTITY.match(str(value).strip())
    if not match or match.group(2) not in _MEMORY_UNITS:
        return 0.0
    return float(match.group(1)) * _MEMORY_UNITS[match.group(2)]


def pod_requests(pod_spec: dict) -> tuple[float, float]:
    """Sum container requests as (cpu cores, memory MiB). Limits stand in for missing requests."""
    cpu = 0.0
    memory = 0.0
    for container in pod_spec.get("containers", []):
        resources = container.get("resources") or {}
        requests = resources.get("requests") or resources.get("limits") or {}
        cpu += parse_cpu(requests.get("cpu"))
        memory += parse_memory(requests.get("memory"))
    return cpu, memory


# === Predicates ===


def is_node_ready(node: dict) -> bool:
    for condition in node.get("status", {}).get("conditions", []):
        if condition.get("type") == "Ready":
            return condition.get("status") == "True"
    return False


def is_control_plane(node: dict) -> bool:
    return "node-role.kubernetes.io/control-plane" in node["metadata"].get("labels", {})


def _match_expression(expr: dict, labels: dict) -> bool:
    value = labels.get(expr.get("key"))
    values = expr.get("values") or []
    operator = expr.get("operator")
    if operator == "In":
        return value in values
    if operator == "NotIn":
        return value not in values
    if operator == "Exists":
        return value is not None
    if operator == "DoesNotExist":
        return value is None
    if operator in ("Gt", "Lt") and value is not None and values:
        try:
            left, right = float(value), float(values[0])
        except ValueError:
            return False
        return left > right if operator == "Gt" else left < right
    return False


def matches_node_selector(pod_spec: dict, node: dict) -> bool:
    labels = node["metadata"].get("labels", {})
    selector = pod_spec.get("nodeSelector") or {}
    if any(labels.get(k) != v for k, v in selector.items()):
        return False

    affinity = (pod_spec.get("affinity") or {}).get("nodeAffinity") or {}
    required = affinity.get("requiredDuringSchedulingIgnoredDuringExecution")
    if not required:
        return True
    terms = required.get("nodeSelectorTerms") or []
    if not terms:
        return True
    # Terms are ORed, expressions within a term ANDed
    return any(
        all(_match_expression(e, labels) for e in term.get("matchExpressions") or [])
        for term in terms
    )


def _tolerates(toleration: dict, taint: dict) -> bool:
    operator = toleration.get("operator", "Equal")
    if not toleration.get("key") and operator == "Exists":
        return True
    if toleration.get("key") != taint.get("key"):
        return False
    if toleration.get("effect") and toleration["effect"] != taint.get("effect"):
        return False
    if operator == "Exists":
        return True
    return toleration.get("value") == taint.get("value")


def tolerates_taints(pod_spec: dict, node: dict) -> bool:
    tolerations = pod_spec.get("tolerations") or []
    for taint in node.get("spec", {}).get("taints") or []:
        if taint.get("effect") not in ("NoSchedule", "NoExecute"):
            continue
        if not any(_tolerates(t, taint) for t in tolerations):
            return False
    return True


def _pods_on(node_name: str, state: ClusterState) -> list[dict]:
    return [
        p
        for p in state.pods
        if p.get("spec", {}).get("nodeName") == node_name
        and p.get("status", {}).get("phase") not in ("Succeeded", "Failed")
    ]


def _resource_failure(pod_spec: dict, node: dict, state: ClusterState) -> str | None:
    allocatable = node.get("status", {}).get("allocatable", {})
    on_node = _pods_on(node["metadata"]["name"], state)
    if len(on_node) >= int(allocatable.get("pods", 110)):
        return "Too many pods"

    want_cpu, want_memory = pod_requests(pod_spec)
    used_cpu = sum(pod_requests(p.get("spec", {}))[0] for p in on_node)
    used_memory = sum(pod_requests(p.get("spec", {}))[1] for p in on_node)
    if want_cpu and want_cpu > parse_cpu(allocatable.get("cpu")) - used_cpu:
        return "Insufficient cpu"
    if want_memory and want_memory > parse_memory(allocatable.get("memory")) - used_memory:
        return "Insufficient memory"
    return None


def node_failure(pod_spec: dict, node: dict, state: ClusterState) -> str | None:
    """The first reason this node cannot take the pod, or None if it fits."""
    if not is_node_ready(node):
        return "node(s) were not ready"
    if node.get("spec", {}).get("unschedulable"):
        return "node(s) were unschedulable"
    if not matches_node_selector(pod_spec, node):
        return "node(s) didn't match Pod's node affinity/selector"
    if not tolerates_taints(pod_spec, node):
        return "node(s) had untolerable taint"
    return _resource_failure(pod_spec, node, state)


# === Scheduling ===


def failure_message(counts: dict[str, int], total: int) -> str:
    parts = [f"{counts[r]} {r}" for r in _REASONS if counts.get(r)]
    return f"0/{total} nodes are available: {', '.join(parts)}."


def schedule_pod(pod_spec: dict, state: ClusterState) -> ScheduleResult:
    """Pick a node for a pod spec, or explain why none fits."""
    pinned = pod_spec.get("nodeName")
    if pinned:
        node = next((n for n in state.nodes if n["metadata"]["name"] == pinned), None)
        if node is None:
            return ScheduleResult(None, f'node "{pinned}" not found')
        if not is_node_ready(node):
            return ScheduleResult(None, f'node "{pinned}" is not ready')
        return ScheduleResult(pinned)

    if not state.nodes:
        return ScheduleResult(None, "no nodes available to schedule pods")

    feasible = []
    counts: dict[str, int] = {}
    for node in state.nodes:
        reason = node_failure(pod_spec, node, state)
        if reason is None:
            feasible.append(node)
        else:
            counts[reason] = counts.get(reason, 0) + 1

    if not feasible:
        return ScheduleResult(None, failure_message(counts, len(state.nodes)))

    # Fewest pods wins; ties keep node order
    best = min(feasible, key=lambda n: len(_pods_on(n["metadata"]["name"], state)))
    return ScheduleResult(best["metadata"]["name"])


def node_address(node_name: str | None, state: ClusterState) -> str:
    for node in state.nodes:
        if node["metadata"]["name"] == node_name:
            for address in node["status"].get("addresses", []):
                if address.get("type") == "InternalIP":
                    return address["address"]
    return ""
