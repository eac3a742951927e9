"""
kubectl describe.

Each describer renders one Kind as `Key:  value` blocks. Pod events are
synthesized from the pod's phase so a user debugging a broken pod sees
the same trail a real kubelet and scheduler would leave.
"""

from __future__ import annotations

from typing import Callable

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import Invocation, find_or_raise, no_resources, require, resolve_kind, result
from kubequest.cli.kubectl._printers import DEFAULT_CLASS_ANNOTATION, node_roles, node_status
from kubequest.core.cluster import ClusterState, namespace_of
from kubequest.core.objects import format_labels, owned_pods, restart_count, service_endpoints

VERBS = ["describe"]

Describer = Callable[[dict, ClusterState], str]

DESCRIBERS: dict[str, Describer] = {}


def describer(kind: str):
    def register(fn: Describer) -> Describer:
        DESCRIBERS[kind] = fn
        return fn

    return register


def handle(ctx: Invocation) -> CommandResult:
    type_name = require(ctx.arg(0), "you must specify the type of resource to describe")
    if "/" in type_name:
        type_name, _, name = type_name.partition("/")
    else:
        name = ctx.arg(1)
    kind = resolve_kind(type_name)
    fn = DESCRIBERS.get(kind.kind, _generic)

    if name:
        resource = find_or_raise(ctx.state, kind, name, ctx.namespace)
        return result(fn(resource, ctx.state))

    resources = ctx.state.items(kind, None if ctx.all_namespaces else ctx.namespace)
    if not resources:
        if ctx.all_namespaces or not kind.namespaced:
            return result(no_resources(None))
        return result(no_resources(ctx.namespace))
    return result("\n\n\n".join(fn(r, ctx.state) for r in resources))


# === Layout helpers ===


def _fields(pairs: list[tuple[str, object]], width: int | None = None) -> str:
    width = width or max(len(key) for key, _ in pairs) + 3
    return "\n".join(f"{key + ':':<{width}}{value}".rstrip() for key, value in pairs)


def _labels(resource: dict, pad: int) -> str:
    labels = resource["metadata"].get("labels")
    if not labels:
        return "<none>"
    return ("\n" + " " * pad).join(f"{k}={v}" for k, v in labels.items())


def _annotations(resource: dict, pad: int) -> str:
    annotations = resource["metadata"].get("annotations")
    if not annotations:
        return "<none>"
    return ("\n" + " " * pad).join(f"{k}: {v}" for k, v in annotations.items())


def _events(rows: list[tuple[str, str, str, str, str]]) -> str:
    if not rows:
        return "Events:  <none>"
    header = ("Type", "Reason", "Age", "From", "Message")
    widths = [max(len(r[i]) for r in [header, *rows]) for i in range(4)]
    lines = ["Events:"]
    for row in [header, tuple("-" * len(h) for h in header), *rows]:
        cells = [row[i].ljust(widths[i]) for i in range(4)]
        lines.append("  " + "  ".join(cells) + "  " + row[4])
    return "\n".join(line.rstrip() for line in lines)


def _generic(resource: dict, state: ClusterState) -> str:
    pairs: list[tuple[str, object]] = [("Name", resource["metadata"]["name"])]
    if resource["metadata"].get("namespace"):
        pairs.append(("Namespace", namespace_of(resource)))
    pairs += [
        ("Labels", _labels(resource, 14)),
        ("Annotations", _annotations(resource, 14)),
    ]
    return _fields(pairs, 14) + "\n" + _events([])


# === Pods ===


def pod_events(pod: dict) -> list[tuple[str, str, str, str, str]]:
    """Events a pod in this phase would have accumulated."""
    phase = pod.get("status", {}).get("phase")
    containers = pod["spec"].get("containers", [])
    image = containers[0].get("image", "unknown") if containers else "unknown"
    container = containers[0].get("name", "app") if containers else "app"
    node = pod["spec"].get("nodeName")
    assigned = f"Successfully assigned {namespace_of(pod)}/{pod['metadata']['name']} to {node}"

    if phase == "Pending" and not node:
        condition = next(
            (c for c in pod.get("status", {}).get("conditions", []) if c.get("type") == "PodScheduled"),
            {},
        )
        message = condition.get("message", "0/3 nodes are available.")
        return [("Warning", "FailedScheduling", "30s", "default-scheduler", message)]

    scheduled = ("Normal", "Scheduled", "10m", "default-scheduler", assigned)
    pulling = ("Normal", "Pulling", "10m", "kubelet", f'Pulling image "{image}"')
    if phase == "CrashLoopBackOff":
        return [
            scheduled,
            pulling,
            ("Normal", "Pulled", "9m", "kubelet", f'Successfully pulled image "{image}"'),
            ("Normal", "Created", "9m (x5 over 10m)", "kubelet", f"Created container {container}"),
            ("Normal", "Started", "9m (x5 over 10m)", "kubelet", f"Started container {container}"),
            ("Warning", "BackOff", "1m (x20 over 8m)", "kubelet", "Back-off restarting failed container"),
        ]
    if phase == "ImagePullBackOff":
        return [
            scheduled,
            pulling,
            (
                "Warning",
                "Failed",
                "4m",
                "kubelet",
                f'Failed to pull image "{image}": rpc error: code = NotFound desc = failed to pull and unpack image',
            ),
            ("Warning", "Failed", "4m", "kubelet", "Error: ErrImagePull"),
            ("Normal", "BackOff", "2m (x6 over 4m)", "kubelet", f'Back-off pulling image "{image}"'),
            ("Warning", "Failed", "2m (x6 over 4m)", "kubelet", "Error: ImagePullBackOff"),
        ]
    if phase == "Pending":
        return [scheduled, pulling]
    if phase == "Running":
        return [
            scheduled,
            pulling,
            ("Normal", "Pulled", "9m", "kubelet", f'Successfully pulled image "{image}"'),
            ("Normal", "Created", "9m", "kubelet", f"Created container {container}"),
            ("Normal", "Started", "9m", "kubelet", f"Started container {container}"),
        ]
    return []


def _container_state(phase: str) -> tuple[str, str]:
    if phase == "CrashLoopBackOff":
        return "Waiting\n      Reason:       CrashLoopBackOff", "False"
    if phase == "ImagePullBackOff":
        return "Waiting\n      Reason:       ImagePullBackOff", "False"
    if phase == "Pending":
        return "Waiting\n      Reason:       ContainerCreating", "False"
    if phase in ("Failed", "Error"):
        return "Terminated\n      Reason:       Error\n      Exit Code:    1", "False"
    return "Running", "True"


def _quantities(values: dict | None) -> str:
    if not values:
        return "<none>"
    return "\n      ".join(f"{k}:  {v}" for k, v in values.items())


def _env_value(env: dict) -> str:
    if "value" in env:
        return env["value"] or "<set to the empty string>"
    ref = env.get("valueFrom", {})
    if "configMapKeyRef" in ref:
        key_ref = ref["configMapKeyRef"]
        return f"<set to the key '{key_ref.get('key')}' of config map '{key_ref.get('name')}'>"
    if "secretKeyRef" in ref:
        key_ref = ref["secretKeyRef"]
        return f"<set to the key '{key_ref.get('key')}' in secret '{key_ref.get('name')}'>"
    return "<set from configmap/secret>"


def _container_block(container: dict, phase: str, restarts: int) -> str:
    state, ready = _container_state(phase)
    ports = container.get("ports") or []
    port = f"{ports[0].get('containerPort')}/{ports[0].get('protocol', 'TCP')}" if ports else "<none>"
    env = container.get("env") or []
    env_lines = "\n".join(f"      {e.get('name')}:  {_env_value(e)}" for e in env) or "      <none>"
    mounts = container.get("volumeMounts") or []
    mount_lines = "\n".join(f"      {m.get('mountPath')} from {m.get('name')}" for m in mounts) or "      <none>"
    resources = container.get("resources") or {}
    lines = [
        f"  {container.get('name')}:",
        f"    Image:          {container.get('image')}",
        f"    Port:           {port}",
        f"    State:          {state}",
        f"    Ready:          {ready}",
        f"    Restart Count:  {restarts}",
    ]
    if resources.get("limits"):
        lines += ["    Limits:", f"      {_quantities(resources['limits'])}"]
    if resources.get("requests"):
        lines += ["    Requests:", f"      {_quantities(resources['requests'])}"]
    lines += ["    Environment:", env_lines, "    Mounts:", mount_lines]
    return "\n".join(lines)


def _volume_line(volume: dict) -> str:
    name = volume.get("name")
    if "configMap" in volume:
        return f'  {name}: ConfigMap (name="{volume["configMap"].get("name")}")'
    if "secret" in volume:
        return f'  {name}: Secret (name="{volume["secret"].get("secretName")}")'
    if "persistentVolumeClaim" in volume:
        return f'  {name}: PersistentVolumeClaim (claimName="{volume["persistentVolumeClaim"].get("claimName")}")'
    if "emptyDir" in volume:
        return f"  {name}: EmptyDir"
    if "hostPath" in volume:
        return f'  {name}: HostPath (path="{volume["hostPath"].get("path")}")'
    return f"  {name}: <unknown>"


@describer("Pod")
def describe_pod(pod: dict, state: ClusterState) -> str:
    spec = pod["spec"]
    status = pod.get("status", {})
    phase = status.get("phase", "Unknown")
    restarts = restart_count(pod) // max(1, len(spec.get("containers", [])))
    header = _fields(
        [
            ("Name", pod["metadata"]["name"]),
            ("Namespace", namespace_of(pod)),
            ("Priority", spec.get("priority", 0)),
            ("Priority Class Name", spec.get("priorityClassName", "<none>")),
            ("Service Account", spec.get("serviceAccountName", "default")),
            ("Node", f"{spec['nodeName']}/{status.get('hostIP', '')}" if spec.get("nodeName") else "<none>"),
            ("Start Time", status.get("startTime") or pod["metadata"].get("creationTimestamp", "<unknown>")),
            ("Labels", _labels(pod, 21)),
            ("Annotations", _annotations(pod, 21)),
            ("Status", phase),
            ("IP", status.get("podIP") or "<none>"),
        ],
        21,
    )
    containers = "\n".join(_container_block(c, phase, restarts) for c in spec.get("containers", []))
    volumes = "\n".join(_volume_line(v) for v in spec.get("volumes", [])) or "  <none>"
    parts = [header]
    if spec.get("initContainers"):
        parts.append("Init Containers:\n" + "\n".join(_container_block(c, "Completed", 0) for c in spec["initContainers"]))
    parts += [f"Containers:\n{containers}", f"Volumes:\n{volumes}"]
    selector = spec.get("nodeSelector")
    parts.append(_fields([("Node-Selectors", format_labels(selector)), ("Tolerations", _tolerations(spec))], 21))
    parts.append(_events(pod_events(pod)))
    return "\n".join(parts)


def _tolerations(spec: dict) -> str:
    tolerations = spec.get("tolerations") or []
    if not tolerations:
        return "<none>"
    lines = []
    for t in tolerations:
        text = t.get("key", "")
        if t.get("value"):
            text += f"={t['value']}"
        if t.get("effect"):
            text += f":{t['effect']}"
        lines.append(f"{text} op={t.get('operator', 'Equal')}")
    return ("\n" + " " * 21).join(lines)


# === Workloads ===


@describer("Deployment")
def describe_deployment(dep: dict, state: ClusterState) -> str:
    spec = dep["spec"]
    status = dep.get("status", {})
    pods = owned_pods(state, dep)
    available = sum(1 for p in pods if p.get("status", {}).get("phase") == "Running")
    replicas = spec.get("replicas", 1)
    template = spec.get("template", {})
    header = _fields(
        [
            ("Name", dep["metadata"]["name"]),
            ("Namespace", namespace_of(dep)),
            ("CreationTimestamp", dep["metadata"].get("creationTimestamp", "<unknown>")),
            ("Labels", _labels(dep, 24)),
            ("Annotations", _annotations(dep, 24)),
            ("Selector", format_labels(spec.get("selector", {}).get("matchLabels"))),
            (
                "Replicas",
                f"{replicas} desired | {status.get('updatedReplicas', len(pods))} updated | "
                f"{len(pods)} total | {available} available | {len(pods) - available} unavailable",
            ),
            ("StrategyType", spec.get("strategy", {}).get("type", "RollingUpdate")),
        ],
        24,
    )
    containers = []
    for c in template.get("spec", {}).get("containers", []):
        ports = c.get("ports") or []
        env = c.get("env") or []
        env_text = "\n".join(f"      {e.get('name')}:  {_env_value(e)}" for e in env)
        containers.append(
            "\n".join(
                [
                    f"   {c.get('name')}:",
                    f"    Image:        {c.get('image')}",
                    f"    Port:         {ports[0].get('containerPort') if ports else '<none>'}",
                    "    Host Port:    <none>",
                    "    Environment:" + (f"\n{env_text}" if env_text else "  <none>"),
                    "    Mounts:       <none>",
                ]
            )
        )
    conditions = [
        f"  {c.get('type'):<14} {c.get('status'):<7} {c.get('reason', '')}"
        for c in status.get("conditions", [])
    ]
    return "\n".join(
        [
            header,
            "Pod Template:",
            f"  Labels:  {format_labels(template.get('metadata', {}).get('labels'))}",
            "  Containers:",
            *containers,
            "Conditions:",
            "  Type           Status  Reason",
            "  ----           ------  ------",
            *conditions,
            _events([]),
        ]
    )


@describer("Node")
def describe_node(node: dict, state: ClusterState) -> str:
    status = node.get("status", {})
    spec = node.get("spec", {})
    taints = spec.get("taints") or []
    taint_text = ("\n" + " " * 20).join(
        f"{t.get('key')}{'=' + t['value'] if t.get('value') else ''}:{t.get('effect')}" for t in taints
    )
    name = node["metadata"]["name"]
    pods = [p for p in state.pods if p["spec"].get("nodeName") == name]
    pod_lines = "\n".join(f"  {namespace_of(p):<20}{p['metadata']['name']}" for p in pods) or "  <none>"
    conditions = "\n".join(
        f"  {c.get('type'):<18}{c.get('status')}" for c in status.get("conditions", [])
    )
    addresses = "\n".join(f"  {a.get('type')}:  {a.get('address')}" for a in status.get("addresses", []))
    return "\n".join(
        [
            _fields(
                [
                    ("Name", name),
                    ("Roles", node_roles(node)),
                    ("Labels", _labels(node, 20)),
                    ("CreationTimestamp", node["metadata"].get("creationTimestamp", "<unknown>")),
                    ("Taints", taint_text or "<none>"),
                    ("Unschedulable", "true" if spec.get("unschedulable") else "false"),
                    ("Status", node_status(node)),
                ],
                20,
            ),
            "Conditions:",
            "  Type              Status",
            "  ----              ------",
            conditions,
            "Addresses:",
            addresses,
            "Capacity:",
            _quantity_block(status.get("capacity")),
            "Allocatable:",
            _quantity_block(status.get("allocatable")),
            f"Non-terminated Pods:  ({len(pods)} in total)",
            pod_lines,
            _events([]),
        ]
    )


def _quantity_block(values: dict | None) -> str:
    return "\n".join(f"  {k + ':':<18}{v}" for k, v in (values or {}).items()) or "  <none>"


@describer("HorizontalPodAutoscaler")
def describe_hpa(hpa: dict, state: ClusterState) -> str:
    spec = hpa["spec"]
    ref = spec.get("scaleTargetRef", {})
    metrics = []
    for metric in spec.get("metrics", []):
        resource = metric.get("resource") or {}
        target = (resource.get("target") or {}).get("averageUtilization", 0)
        metrics.append(f"{resource.get('name', 'unknown')}: <unknown> / {target}%")
    status = hpa.get("status", {})
    return _fields(
        [
            ("Name", hpa["metadata"]["name"]),
            ("Namespace", namespace_of(hpa)),
            ("Labels", _labels(hpa, 39)),
            ("Annotations", _annotations(hpa, 39)),
            ("CreationTimestamp", hpa["metadata"].get("creationTimestamp", "<unknown>")),
            ("Reference", f"{ref.get('kind', 'Deployment')}/{ref.get('name', 'unknown')}"),
            ("Metrics", ", ".join(metrics) or "<none>"),
            ("Min replicas", spec.get("minReplicas", 1)),
            ("Max replicas", spec.get("maxReplicas", 10)),
            ("Behavior", "configured" if spec.get("behavior") else "default"),
            ("Current replicas", status.get("currentReplicas", 0)),
            ("Desired replicas", status.get("desiredReplicas", 0)),
        ],
        39,
    ) + "\n" + _events([])


# === Services and configuration ===


@describer("Service")
def describe_service(svc: dict, state: ClusterState) -> str:
    spec = svc["spec"]
    ports = spec.get("ports") or []
    endpoints = [
        f"{p['status']['podIP']}:{port.get('targetPort', port.get('port'))}"
        for p in service_endpoints(state, svc)
        for port in ports[:1]
    ]
    pairs: list[tuple[str, object]] = [
        ("Name", svc["metadata"]["name"]),
        ("Namespace", namespace_of(svc)),
        ("Labels", _labels(svc, 19)),
        ("Annotations", _annotations(svc, 19)),
        ("Selector", format_labels(spec.get("selector"))),
        ("Type", spec.get("type", "ClusterIP")),
        ("IP Family Policy", "SingleStack"),
        ("IP Families", "IPv4"),
        ("IP", spec.get("clusterIP") or "<none>"),
        ("IPs", spec.get("clusterIP") or "<none>"),
    ]
    for port in ports:
        protocol = port.get("protocol", "TCP")
        pairs.append(("Port", f"{port.get('name', '<unset>')}  {port.get('port')}/{protocol}"))
        pairs.append(("TargetPort", f"{port.get('targetPort', port.get('port'))}/{protocol}"))
        if port.get("nodePort"):
            pairs.append(("NodePort", f"{port.get('name', '<unset>')}  {port['nodePort']}/{protocol}"))
    pairs += [
        ("Endpoints", ",".join(endpoints) or "<none>"),
        ("Session Affinity", "None"),
    ]
    return _fields(pairs, 19) + "\n" + _events([])


@describer("ConfigMap")
def describe_config_map(cm: dict, state: ClusterState) -> str:
    data = "\n\n".join(f"{k}:\n----\n{v}" for k, v in (cm.get("data") or {}).items())
    return "\n".join(
        [
            _fields(
                [
                    ("Name", cm["metadata"]["name"]),
                    ("Namespace", namespace_of(cm)),
                    ("Labels", _labels(cm, 14)),
                    ("Annotations", _annotations(cm, 14)),
                ],
                14,
            ),
            "",
            "Data",
            "====",
            data or "<empty>",
            "",
            "BinaryData",
            "====",
            "",
            _events([]),
        ]
    )


@describer("Secret")
def describe_secret(secret: dict, state: ClusterState) -> str:
    data = "\n".join(f"{k}:  {len(v)} bytes" for k, v in (secret.get("data") or {}).items())
    return "\n".join(
        [
            _fields(
                [
                    ("Name", secret["metadata"]["name"]),
                    ("Namespace", namespace_of(secret)),
                    ("Labels", _labels(secret, 14)),
                    ("Annotations", _annotations(secret, 14)),
                ],
                14,
            ),
            "",
            f"Type:  {secret.get('type', 'Opaque')}",
            "",
            "Data",
            "====",
            data or "<empty>",
        ]
    )


@describer("ServiceAccount")
def describe_service_account(sa: dict, state: ClusterState) -> str:
    return _fields(
        [
            ("Name", sa["metadata"]["name"]),
            ("Namespace", namespace_of(sa)),
            ("Labels", _labels(sa, 21)),
            ("Annotations", _annotations(sa, 21)),
            ("Image pull secrets", "<none>"),
            ("Mountable secrets", "<none>"),
            ("Tokens", "<none>"),
        ],
        21,
    ) + "\n" + _events([])


def _rules(rules: list[dict]) -> str:
    lines = ["PolicyRule:", "  Resources  Non-Resource URLs  Resource Names  Verbs", "  ---------  -----------------  --------------  -----"]
    for rule in rules:
        groups = [g for g in rule.get("apiGroups", [""]) if g]
        for resource in rule.get("resources", []):
            name = f"{resource}.{groups[0]}" if groups else resource
            names = "[" + " ".join(rule.get("resourceNames", [])) + "]"
            verbs = "[" + " ".join(rule.get("verbs", [])) + "]"
            lines.append(f"  {name:<9}  {'[]':<17}  {names:<14}  {verbs}")
    return "\n".join(lines)


@describer("Role")
@describer("ClusterRole")
def describe_role(role: dict, state: ClusterState) -> str:
    return (
        _fields(
            [
                ("Name", role["metadata"]["name"]),
                ("Labels", _labels(role, 14)),
                ("Annotations", _annotations(role, 14)),
            ],
            14,
        )
        + "\n"
        + _rules(role.get("rules") or [])
    )


@describer("RoleBinding")
@describer("ClusterRoleBinding")
def describe_binding(binding: dict, state: ClusterState) -> str:
    ref = binding.get("roleRef", {})
    subjects = "\n".join(
        f"  {s.get('kind'):<14}  {s.get('name'):<20}  {s.get('namespace', '')}".rstrip()
        for s in binding.get("subjects") or []
    )
    return "\n".join(
        [
            _fields(
                [
                    ("Name", binding["metadata"]["name"]),
                    ("Labels", _labels(binding, 14)),
                    ("Annotations", _annotations(binding, 14)),
                ],
                14,
            ),
            "Role:",
            f"  Kind:  {ref.get('kind')}",
            f"  Name:  {ref.get('name')}",
            "Subjects:",
            "  Kind            Name                  Namespace",
            "  ----            ----                  ---------",
            subjects,
        ]
    )


# === Storage ===


@describer("PersistentVolume")
def describe_pv(pv: dict, state: ClusterState) -> str:
    spec = pv["spec"]
    claim = spec.get("claimRef")
    return _fields(
        [
            ("Name", pv["metadata"]["name"]),
            ("Labels", _labels(pv, 17)),
            ("Annotations", _annotations(pv, 17)),
            ("Finalizers", "[kubernetes.io/pv-protection]"),
            ("StorageClass", spec.get("storageClassName") or "<none>"),
            ("Status", pv.get("status", {}).get("phase", "Available")),
            ("Claim", f"{claim.get('namespace', 'default')}/{claim.get('name')}" if claim else ""),
            ("Reclaim Policy", spec.get("persistentVolumeReclaimPolicy", "Retain")),
            ("Access Modes", ",".join(spec.get("accessModes") or []) or "<none>"),
            ("VolumeMode", spec.get("volumeMode", "Filesystem")),
            ("Capacity", spec.get("capacity", {}).get("storage", "<none>")),
            ("Node Affinity", "<none>"),
            ("Source", ""),
            ("    Type", "HostPath (bare host directory volume)"),
            ("    Path", spec.get("hostPath", {}).get("path", "<none>")),
        ],
        17,
    ) + "\n" + _events([])


@describer("PersistentVolumeClaim")
def describe_pvc(pvc: dict, state: ClusterState) -> str:
    spec = pvc["spec"]
    status = pvc.get("status", {})
    name = pvc["metadata"]["name"]
    used_by = [
        p["metadata"]["name"]
        for p in state.pods
        if namespace_of(p) == namespace_of(pvc)
        and any(v.get("persistentVolumeClaim", {}).get("claimName") == name for v in p["spec"].get("volumes", []))
    ]
    return _fields(
        [
            ("Name", name),
            ("Namespace", namespace_of(pvc)),
            ("StorageClass", spec.get("storageClassName") or "<none>"),
            ("Status", status.get("phase", "Pending")),
            ("Volume", spec.get("volumeName") or ""),
            ("Labels", _labels(pvc, 15)),
            ("Annotations", _annotations(pvc, 15)),
            ("Finalizers", "[kubernetes.io/pvc-protection]"),
            ("Capacity", status.get("capacity", {}).get("storage", "")),
            ("Access Modes", ",".join(spec.get("accessModes") or [])),
            ("VolumeMode", spec.get("volumeMode", "Filesystem")),
            ("Used By", ("\n" + " " * 15).join(used_by) or "<none>"),
        ],
        15,
    ) + "\n" + _events([])


@describer("StorageClass")
def describe_storage_class(sc: dict, state: ClusterState) -> str:
    default = sc["metadata"].get("annotations", {}).get(DEFAULT_CLASS_ANNOTATION) == "true"
    return _fields(
        [
            ("Name", sc["metadata"]["name"]),
            ("IsDefaultClass", "Yes" if default else "No"),
            ("Annotations", _annotations(sc, 22)),
            ("Provisioner", sc.get("provisioner", "")),
            ("Parameters", format_labels(sc.get("parameters"))),
            ("AllowVolumeExpansion", "True" if sc.get("allowVolumeExpansion") else "False"),
            ("MountOptions", "<none>"),
            ("ReclaimPolicy", sc.get("reclaimPolicy", "Delete")),
            ("VolumeBindingMode", sc.get("volumeBindingMode", "Immediate")),
        ],
        22,
    ) + "\n" + _events([])


# === Networking ===


@describer("Ingress")
def describe_ingress(ing: dict, state: ClusterState) -> str:
    spec = ing["spec"]
    rules = []
    for rule in spec.get("rules", []):
        for path in rule.get("http", {}).get("paths", []):
            service = path.get("backend", {}).get("service", {})
            port = service.get("port", {})
            rules.append(
                f"  {rule.get('host') or '*':<10}  {path.get('path', '/'):<4}  "
                f"{service.get('name', 'unknown')}:{port.get('number', port.get('name', 80))}"
            )
    return "\n".join(
        [
            _fields(
                [
                    ("Name", ing["metadata"]["name"]),
                    ("Labels", _labels(ing, 18)),
                    ("Namespace", namespace_of(ing)),
                    ("Address", ""),
                    ("Ingress Class", spec.get("ingressClassName") or "<none>"),
                    ("Default backend", "<default>"),
                ],
                18,
            ),
            "Rules:",
            "  Host        Path  Backends",
            "  ----        ----  --------",
            "\n".join(rules) or "  <none>",
            f"Annotations:      {_annotations(ing, 18)}",
            _events([]),
        ]
    )


@describer("NetworkPolicy")
def describe_network_policy(np: dict, state: ClusterState) -> str:
    spec = np["spec"]
    selector = spec.get("podSelector", {}).get("matchLabels")
    return "\n".join(
        [
            _fields(
                [
                    ("Name", np["metadata"]["name"]),
                    ("Namespace", namespace_of(np)),
                    ("Created on", np["metadata"].get("creationTimestamp", "<unknown>")),
                    ("Labels", _labels(np, 14)),
                    ("Annotations", _annotations(np, 14)),
                ],
                14,
            ),
            "Spec:",
            f"  PodSelector:     {format_labels(selector) if selector else '<none> (Allowing the specific traffic to all pods in this namespace)'}",
            f"  Allowing ingress traffic:  {len(spec.get('ingress') or [])} rule(s)",
            f"  Allowing egress traffic:   {len(spec.get('egress') or [])} rule(s)",
            f"  Policy Types: {', '.join(spec.get('policyTypes') or ['Ingress'])}",
        ]
    )


@describer("Gateway")
def describe_gateway(gw: dict, state: ClusterState) -> str:
    spec = gw["spec"]
    listeners = "\n".join(
        f"  {listener.get('name', ''):<8}  {listener.get('protocol', ''):<8}  "
        f"{str(listener.get('port', '')):<4}  {listener.get('hostname') or '*'}"
        for listener in spec.get("listeners", [])
    )
    conditions = gw.get("status", {}).get("conditions") or []
    return "\n".join(
        [
            _fields(
                [
                    ("Name", gw["metadata"]["name"]),
                    ("Namespace", namespace_of(gw)),
                    ("Labels", _labels(gw, 18)),
                    ("Annotations", _annotations(gw, 18)),
                    ("Gateway Class", spec.get("gatewayClassName", "")),
                ],
                18,
            ),
            "Listeners:",
            "  Name      Protocol  Port  Hostname",
            "  ----      --------  ----  --------",
            listeners or "  <none>",
            f"Status:           {conditions[0].get('status', 'Unknown') if conditions else 'Unknown'}",
            _events([]),
        ]
    )


@describer("HTTPRoute")
def describe_http_route(route: dict, state: ClusterState) -> str:
    spec = route["spec"]
    backends = [
        f"{b.get('name')}:{b.get('port')}"
        for rule in spec.get("rules", [])
        for b in rule.get("backendRefs", [])
    ]
    return _fields(
        [
            ("Name", route["metadata"]["name"]),
            ("Namespace", namespace_of(route)),
            ("Labels", _labels(route, 18)),
            ("Annotations", _annotations(route, 18)),
            ("Parent Refs", ", ".join(p.get("name", "") for p in spec.get("parentRefs", [])) or "<none>"),
            ("Hostnames", ", ".join(spec.get("hostnames") or []) or "*"),
            ("Rules", f"{len(spec.get('rules', []))} rule(s)"),
            ("Backends", ", ".join(backends) or "<none>"),
        ],
        18,
    ) + "\n" + _events([])


# === Cluster ===


@describer("PriorityClass")
def describe_priority_class(pc: dict, state: ClusterState) -> str:
    return _fields(
        [
            ("Name", pc["metadata"]["name"]),
            ("Value", pc.get("value", 0)),
            ("GlobalDefault", "true" if pc.get("globalDefault") else "false"),
            ("PreemptionPolicy", pc.get("preemptionPolicy", "PreemptLowerPriority")),
            ("Description", pc.get("description") or "<none>"),
            ("Annotations", _annotations(pc, 19)),
        ],
        19,
    ) + "\n" + _events([])


@describer("Namespace")
def describe_namespace(ns: dict, state: ClusterState) -> str:
    quotas = [q for q in state.resource_quotas if namespace_of(q) == ns["metadata"]["name"]]
    quota_text = "No resource quota." if not quotas else "\n".join(
        f"Resource Quotas\n  Name:  {q['metadata']['name']}" for q in quotas
    )
    return "\n".join(
        [
            _fields(
                [
                    ("Name", ns["metadata"]["name"]),
                    ("Labels", _labels(ns, 14)),
                    ("Annotations", _annotations(ns, 14)),
                    ("Status", ns.get("status", {}).get("phase", "Active")),
                ],
                14,
            ),
            "",
            quota_text,
            "",
            "No LimitRange resource.",
        ]
    )

