"""
Table printers for `kubectl get`, one per resource Kind.

A printer's row function returns every column, wide ones included; the
caller cuts the row down to the plain header unless `-o wide` was given.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from kubequest.cli.kubectl._common import age
from kubequest.core.cluster import ClusterState, namespace_of
from kubequest.core.objects import format_labels, owned_pods, ready_count, restart_count
from kubequest.core.scheduler import is_control_plane, is_node_ready

DEFAULT_CLASS_ANNOTATION = "storageclass.kubernetes.io/is-default-class"

_ACCESS_MODE_SHORT = {
    "ReadWriteOnce": "RWO",
    "ReadOnlyMany": "ROX",
    "ReadWriteMany": "RWX",
    "ReadWriteOncePod": "RWOP",
}


@dataclass(frozen=True)
class Printer:
    header: tuple[str, ...]
    row: Callable[[dict, ClusterState], list[str]]
    wide: tuple[str, ...] = ()


PRINTERS: dict[str, Printer] = {}


def printer(kind: str, header: tuple[str, ...], wide: tuple[str, ...] = ()):
    def register(fn: Callable[[dict, ClusterState], list[str]]):
        PRINTERS[kind] = Printer(header, fn, wide)
        return fn

    return register


def _modes(modes) -> str:
    return ",".join(_ACCESS_MODE_SHORT.get(m, m) for m in modes or []) or "<none>"


def _images(pod_spec: dict) -> tuple[str, str]:
    containers = pod_spec.get("containers", [])
    return (
        ",".join(c.get("name", "") for c in containers),
        ",".join(c.get("image", "") for c in containers),
    )


# === Workloads ===


def pod_status(pod: dict) -> str:
    if pod["metadata"].get("deletionTimestamp"):
        return "Terminating"
    return pod.get("status", {}).get("phase", "Unknown")


@printer(
    "Pod",
    ("NAME", "READY", "STATUS", "RESTARTS", "AGE"),
    ("IP", "NODE", "NOMINATED NODE", "READINESS GATES"),
)
def _pod(pod: dict, state: ClusterState) -> list[str]:
    ready, total = ready_count(pod)
    return [
        pod["metadata"]["name"],
        f"{ready}/{total}",
        pod_status(pod),
        str(restart_count(pod)),
        age(pod),
        pod.get("status", {}).get("podIP") or "<none>",
        pod["spec"].get("nodeName") or "<none>",
        "<none>",
        "<none>",
    ]


@printer(
    "Deployment",
    ("NAME", "READY", "UP-TO-DATE", "AVAILABLE", "AGE"),
    ("CONTAINERS", "IMAGES", "SELECTOR"),
)
def _deployment(deployment: dict, state: ClusterState) -> list[str]:
    pods = owned_pods(state, deployment)
    running = sum(1 for p in pods if p.get("status", {}).get("phase") == "Running")
    names, images = _images(deployment["spec"]["template"].get("spec", {}))
    return [
        deployment["metadata"]["name"],
        f"{running}/{deployment['spec'].get('replicas', 1)}",
        str(len(pods)),
        str(running),
        age(deployment),
        names,
        images,
        format_labels(deployment["spec"].get("selector", {}).get("matchLabels")),
    ]


@printer(
    "ReplicaSet",
    ("NAME", "DESIRED", "CURRENT", "READY", "AGE"),
    ("CONTAINERS", "IMAGES", "SELECTOR"),
)
def _replica_set(rs: dict, state: ClusterState) -> list[str]:
    status = rs.get("status", {})
    names, images = _images(rs["spec"]["template"].get("spec", {}))
    return [
        rs["metadata"]["name"],
        str(rs["spec"].get("replicas", 0)),
        str(status.get("replicas", 0)),
        str(status.get("readyReplicas", 0)),
        age(rs),
        names,
        images,
        format_labels(rs["spec"].get("selector", {}).get("matchLabels")),
    ]


@printer(
    "DaemonSet",
    ("NAME", "DESIRED", "CURRENT", "READY", "UP-TO-DATE", "AVAILABLE", "NODE SELECTOR", "AGE"),
)
def _daemon_set(ds: dict, state: ClusterState) -> list[str]:
    status = ds.get("status", {})
    selector = ds["spec"].get("template", {}).get("spec", {}).get("nodeSelector")
    return [
        ds["metadata"]["name"],
        str(status.get("desiredNumberScheduled", 0)),
        str(status.get("currentNumberScheduled", 0)),
        str(status.get("numberReady", 0)),
        str(status.get("updatedNumberScheduled", 0)),
        str(status.get("numberAvailable", 0)),
        format_labels(selector),
        age(ds),
    ]


@printer("StatefulSet", ("NAME", "READY", "AGE"))
def _stateful_set(sts: dict, state: ClusterState) -> list[str]:
    ready = sts.get("status", {}).get("readyReplicas", 0)
    return [sts["metadata"]["name"], f"{ready}/{sts['spec'].get('replicas', 1)}", age(sts)]


@printer("Job", ("NAME", "COMPLETIONS", "DURATION", "AGE"))
def _job(job: dict, state: ClusterState) -> list[str]:
    succeeded = job.get("status", {}).get("succeeded", 0)
    completions = job["spec"].get("completions", 1)
    return [job["metadata"]["name"], f"{succeeded}/{completions}", "5s", age(job)]


@printer("CronJob", ("NAME", "SCHEDULE", "SUSPEND", "ACTIVE", "LAST SCHEDULE", "AGE"))
def _cron_job(cj: dict, state: ClusterState) -> list[str]:
    return [
        cj["metadata"]["name"],
        cj["spec"].get("schedule", ""),
        "True" if cj["spec"].get("suspend") else "False",
        str(len(cj.get("status", {}).get("active", []))),
        "<none>",
        age(cj),
    ]


@printer("HorizontalPodAutoscaler", ("NAME", "REFERENCE", "TARGETS", "MINPODS", "MAXPODS", "REPLICAS", "AGE"))
def _hpa(hpa: dict, state: ClusterState) -> list[str]:
    spec = hpa["spec"]
    ref = spec.get("scaleTargetRef", {})
    target = "<unknown>"
    for metric in spec.get("metrics", []):
        resource = metric.get("resource") or {}
        utilization = (resource.get("target") or {}).get("averageUtilization")
        if resource.get("name") == "cpu" and utilization is not None:
            target = f"cpu: <unknown>/{utilization}%"
    return [
        hpa["metadata"]["name"],
        f"{ref.get('kind', 'Deployment')}/{ref.get('name', '')}",
        target,
        str(spec.get("minReplicas", 1)),
        str(spec.get("maxReplicas", 10)),
        str(hpa.get("status", {}).get("currentReplicas", 0)),
        age(hpa),
    ]


# === Cluster ===


def node_roles(node: dict) -> str:
    return "control-plane" if is_control_plane(node) else "<none>"


def node_status(node: dict) -> str:
    status = "Ready" if is_node_ready(node) else "NotReady"
    if node.get("spec", {}).get("unschedulable"):
        status += ",SchedulingDisabled"
    return status


@printer(
    "Node",
    ("NAME", "STATUS", "ROLES", "AGE", "VERSION"),
    ("INTERNAL-IP", "EXTERNAL-IP", "OS-IMAGE", "KERNEL-VERSION", "CONTAINER-RUNTIME"),
)
def _node(node: dict, state: ClusterState) -> list[str]:
    status = node.get("status", {})
    info = status.get("nodeInfo", {})
    address = next(
        (a["address"] for a in status.get("addresses", []) if a.get("type") == "InternalIP"),
        "<none>",
    )
    return [
        node["metadata"]["name"],
        node_status(node),
        node_roles(node),
        age(node),
        info.get("kubeletVersion", "v1.28.0"),
        address,
        "<none>",
        info.get("osImage", ""),
        info.get("kernelVersion", ""),
        info.get("containerRuntimeVersion", ""),
    ]


@printer("Namespace", ("NAME", "STATUS", "AGE"))
def _namespace(ns: dict, state: ClusterState) -> list[str]:
    return [ns["metadata"]["name"], ns.get("status", {}).get("phase", "Active"), age(ns)]


@printer("Event", ("LAST SEEN", "TYPE", "REASON", "OBJECT", "MESSAGE"))
def _event(event: dict, state: ClusterState) -> list[str]:
    involved = event.get("involvedObject", {})
    return [
        age(event),
        event.get("type", "Normal"),
        event.get("reason", ""),
        f"{involved.get('kind', '').lower()}/{involved.get('name', '')}",
        event.get("message", ""),
    ]


@printer("PriorityClass", ("NAME", "VALUE", "GLOBAL-DEFAULT", "AGE"))
def _priority_class(pc: dict, state: ClusterState) -> list[str]:
    return [
        pc["metadata"]["name"],
        str(pc.get("value", 0)),
        "true" if pc.get("globalDefault") else "false",
        age(pc),
    ]


@printer("ResourceQuota", ("NAME", "AGE", "REQUEST", "LIMIT"))
def _resource_quota(quota: dict, state: ClusterState) -> list[str]:
    hard = quota.get("spec", {}).get("hard", {})
    requests = [f"{k}: 0/{v}" for k, v in hard.items() if not k.startswith("limits.")]
    limits = [f"{k}: 0/{v}" for k, v in hard.items() if k.startswith("limits.")]
    return [quota["metadata"]["name"], age(quota), ", ".join(requests), ", ".join(limits)]


def _created_at(resource: dict) -> str:
    return resource.get("metadata", {}).get("creationTimestamp") or "<unknown>"


for _kind in ("Role", "ClusterRole", "LimitRange", "CustomResourceDefinition"):
    PRINTERS[_kind] = Printer(("NAME", "CREATED AT"), lambda r, s: [r["metadata"]["name"], _created_at(r)])


# === Services and configuration ===


def service_ports(service: dict) -> str:
    ports = []
    for port in service.get("spec", {}).get("ports", []):
        text = str(port.get("port"))
        if port.get("nodePort"):
            text += f":{port['nodePort']}"
        ports.append(f"{text}/{port.get('protocol', 'TCP')}")
    return ",".join(ports) or "<none>"


def external_ip(service: dict) -> str:
    ingress = service.get("status", {}).get("loadBalancer", {}).get("ingress") or []
    if ingress:
        return ",".join(i.get("ip", "") for i in ingress)
    if service.get("spec", {}).get("type") == "LoadBalancer":
        return "<pending>"
    return "<none>"


@printer("Service", ("NAME", "TYPE", "CLUSTER-IP", "EXTERNAL-IP", "PORT(S)", "AGE"), ("SELECTOR",))
def _service(service: dict, state: ClusterState) -> list[str]:
    spec = service["spec"]
    return [
        service["metadata"]["name"],
        spec.get("type", "ClusterIP"),
        spec.get("clusterIP") or "<none>",
        external_ip(service),
        service_ports(service),
        age(service),
        format_labels(spec.get("selector")),
    ]


@printer("ConfigMap", ("NAME", "DATA", "AGE"))
def _config_map(cm: dict, state: ClusterState) -> list[str]:
    return [cm["metadata"]["name"], str(len(cm.get("data") or {})), age(cm)]


@printer("Secret", ("NAME", "TYPE", "DATA", "AGE"))
def _secret(secret: dict, state: ClusterState) -> list[str]:
    return [
        secret["metadata"]["name"],
        secret.get("type", "Opaque"),
        str(len(secret.get("data") or {})),
        age(secret),
    ]


@printer("ServiceAccount", ("NAME", "SECRETS", "AGE"))
def _service_account(sa: dict, state: ClusterState) -> list[str]:
    return [sa["metadata"]["name"], str(len(sa.get("secrets") or [])), age(sa)]


def _binding(binding: dict, state: ClusterState) -> list[str]:
    ref = binding.get("roleRef", {})
    return [binding["metadata"]["name"], f"{ref.get('kind')}/{ref.get('name')}", age(binding)]


PRINTERS["RoleBinding"] = Printer(("NAME", "ROLE", "AGE"), _binding)
PRINTERS["ClusterRoleBinding"] = Printer(("NAME", "ROLE", "AGE"), _binding)


# === Storage ===


@printer(
    "PersistentVolume",
    ("NAME", "CAPACITY", "ACCESS MODES", "RECLAIM POLICY", "STATUS", "CLAIM", "STORAGECLASS", "AGE"),
)
def _pv(pv: dict, state: ClusterState) -> list[str]:
    spec = pv["spec"]
    claim = spec.get("claimRef")
    return [
        pv["metadata"]["name"],
        spec.get("capacity", {}).get("storage", ""),
        _modes(spec.get("accessModes")),
        spec.get("persistentVolumeReclaimPolicy", "Retain"),
        pv.get("status", {}).get("phase", "Available"),
        f"{claim.get('namespace', 'default')}/{claim.get('name')}" if claim else "",
        spec.get("storageClassName", ""),
        age(pv),
    ]


@printer(
    "PersistentVolumeClaim",
    ("NAME", "STATUS", "VOLUME", "CAPACITY", "ACCESS MODES", "STORAGECLASS", "AGE"),
)
def _pvc(pvc: dict, state: ClusterState) -> list[str]:
    spec = pvc["spec"]
    status = pvc.get("status", {})
    return [
        pvc["metadata"]["name"],
        status.get("phase", "Pending"),
        spec.get("volumeName", ""),
        status.get("capacity", {}).get("storage", ""),
        _modes(spec.get("accessModes")),
        spec.get("storageClassName", ""),
        age(pvc),
    ]


@printer(
    "StorageClass",
    ("NAME", "PROVISIONER", "RECLAIMPOLICY", "VOLUMEBINDINGMODE", "ALLOWVOLUMEEXPANSION", "AGE"),
)
def _storage_class(sc: dict, state: ClusterState) -> list[str]:
    name = sc["metadata"]["name"]
    if sc["metadata"].get("annotations", {}).get(DEFAULT_CLASS_ANNOTATION) == "true":
        name += " (default)"
    return [
        name,
        sc.get("provisioner", ""),
        sc.get("reclaimPolicy", "Delete"),
        sc.get("volumeBindingMode", "Immediate"),
        "true" if sc.get("allowVolumeExpansion") else "false",
        age(sc),
    ]


# === Networking ===


@printer("Ingress", ("NAME", "CLASS", "HOSTS", "ADDRESS", "PORTS", "AGE"))
def _ingress(ing: dict, state: ClusterState) -> list[str]:
    spec = ing["spec"]
    hosts = ",".join(r.get("host") or "*" for r in spec.get("rules", [])) or "*"
    return [
        ing["metadata"]["name"],
        spec.get("ingressClassName") or "<none>",
        hosts,
        "",
        "80, 443" if spec.get("tls") else "80",
        age(ing),
    ]


@printer("NetworkPolicy", ("NAME", "POD-SELECTOR", "AGE"))
def _network_policy(np: dict, state: ClusterState) -> list[str]:
    selector = np["spec"].get("podSelector", {}).get("matchLabels")
    return [np["metadata"]["name"], format_labels(selector) if selector else "<none>", age(np)]


def _condition(resource: dict, kind: str) -> str:
    for condition in resource.get("status", {}).get("conditions", []):
        if condition.get("type") == kind:
            return condition.get("status", "Unknown")
    return "Unknown"


@printer("GatewayClass", ("NAME", "CONTROLLER", "ACCEPTED", "AGE"))
def _gateway_class(gc: dict, state: ClusterState) -> list[str]:
    return [
        gc["metadata"]["name"],
        gc["spec"].get("controllerName", ""),
        _condition(gc, "Accepted"),
        age(gc),
    ]


@printer("Gateway", ("NAME", "CLASS", "ADDRESS", "PROGRAMMED", "AGE"))
def _gateway(gw: dict, state: ClusterState) -> list[str]:
    addresses = gw.get("status", {}).get("addresses") or []
    return [
        gw["metadata"]["name"],
        gw["spec"].get("gatewayClassName", ""),
        addresses[0].get("value", "") if addresses else "",
        _condition(gw, "Programmed"),
        age(gw),
    ]


@printer("HTTPRoute", ("NAME", "HOSTNAMES", "AGE"))
def _http_route(route: dict, state: ClusterState) -> list[str]:
    hostnames = route["spec"].get("hostnames") or []
    return [route["metadata"]["name"], '["' + '","'.join(hostnames) + '"]' if hostnames else "", age(route)]


def namespaced_row(resource: dict, row: list[str]) -> list[str]:
    return [namespace_of(resource), *row]
