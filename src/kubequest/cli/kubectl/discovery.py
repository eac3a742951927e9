"""
Discovery verbs: api-resources, explain, cluster-info, version.
"""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import Invocation, require, result, table
from kubequest.cli.kubectl._printers import node_status
from kubequest.cli.kubectl.kubeconfig import SERVER
from kubequest.core.cluster import KINDS, lookup_kind
from kubequest.core.errors import SimulatorError
from kubequest.core.render import to_json, to_yaml

VERBS = ["api-resources", "explain", "cluster-info", "version"]

KUBERNETES_VERSION = "v1.28.0"


def handle(ctx: Invocation) -> CommandResult:
    if ctx.verb == "api-resources":
        return result(_api_resources(ctx))
    if ctx.verb == "explain":
        return result(explain(require(ctx.arg(0), "You must specify the type of resource to explain.")))
    if ctx.verb == "cluster-info":
        if ctx.arg(0) == "dump":
            return result(_dump(ctx))
        return result(
            f"Kubernetes control plane is running at {SERVER}\n"
            f"CoreDNS is running at {SERVER}/api/v1/namespaces/kube-system/services/kube-dns:dns/proxy\n\n"
            "To further debug and diagnose cluster problems, use 'kubectl cluster-info dump'."
        )
    return result(_version(ctx))


# === api-resources ===


def _api_resources(ctx: Invocation) -> str:
    kinds = [k for k in KINDS if k.kind != "Event"] + [k for k in KINDS if k.kind == "Event"]
    namespaced = ctx.flag("namespaced")
    if namespaced is not None:
        kinds = [k for k in kinds if k.namespaced == (namespaced == "true")]
    group = ctx.flag("api-group")
    if group is not None:
        kinds = [k for k in kinds if k.group == group]
    kinds.sort(key=lambda k: (k.group, k.plural))
    if ctx.output == "name":
        return "\n".join(k.resource for k in kinds)
    rows = [
        [k.plural, k.short or "", k.api_version, str(k.namespaced).lower(), k.kind]
        for k in kinds
    ]
    return table(["NAME", "SHORTNAMES", "APIVERSION", "NAMESPACED", "KIND"], rows)


# === explain ===

_TOP_LEVEL = [
    ("apiVersion", "string", False),
    ("kind", "string", False),
    ("metadata", "Object", False),
    ("spec", "Object", False),
    ("status", "Object", False),
]

# type -> (Kind, version, description, {field path: (description, fields)})
EXPLAIN = {
    "pod": (
        "Pod",
        "v1",
        "Pod is a collection of containers that can run on a host.",
        {
            "spec": (
                "Specification of the desired behavior of the pod.",
                [
                    ("affinity", "Object", False),
                    ("containers", "[]Object", True),
                    ("initContainers", "[]Object", False),
                    ("nodeName", "string", False),
                    ("nodeSelector", "map[string]string", False),
                    ("priorityClassName", "string", False),
                    ("restartPolicy", "string", False),
                    ("serviceAccountName", "string", False),
                    ("tolerations", "[]Object", False),
                    ("volumes", "[]Object", False),
                ],
            ),
            "spec.containers": (
                "List of containers belonging to the pod.",
                [
                    ("args", "[]string", False),
                    ("command", "[]string", False),
                    ("env", "[]Object", False),
                    ("envFrom", "[]Object", False),
                    ("image", "string", False),
                    ("name", "string", True),
                    ("ports", "[]Object", False),
                    ("resources", "Object", False),
                    ("volumeMounts", "[]Object", False),
                ],
            ),
        },
    ),
    "deployment": (
        "Deployment",
        "apps/v1",
        "Deployment enables declarative updates for Pods and ReplicaSets.",
        {
            "spec": (
                "Specification of the desired behavior of the Deployment.",
                [
                    ("minReadySeconds", "integer", False),
                    ("paused", "boolean", False),
                    ("progressDeadlineSeconds", "integer", False),
                    ("replicas", "integer", False),
                    ("revisionHistoryLimit", "integer", False),
                    ("selector", "Object", True),
                    ("strategy", "Object", False),
                    ("template", "Object", True),
                ],
            ),
        },
    ),
    "service": (
        "Service",
        "v1",
        "Service is a named abstraction of software service (for example, mysql) consisting of local port "
        "(for example 3306) that the proxy listens on, and the selector that determines which pods will "
        "answer requests sent through the proxy.",
        {
            "spec": (
                "Spec defines the behavior of a service.",
                [
                    ("clusterIP", "string", False),
                    ("externalName", "string", False),
                    ("ports", "[]Object", False),
                    ("selector", "map[string]string", False),
                    ("sessionAffinity", "string", False),
                    ("type", "string", False),
                ],
            ),
        },
    ),
    "gateway": (
        "Gateway",
        "gateway.networking.k8s.io/v1",
        "Gateway represents an instance of a service-traffic handling infrastructure.",
        {
            "spec": (
                "Spec defines the desired state of Gateway.",
                [
                    ("addresses", "[]Object", False),
                    ("gatewayClassName", "string", True),
                    ("listeners", "[]Object", True),
                ],
            ),
        },
    ),
    "httproute": (
        "HTTPRoute",
        "gateway.networking.k8s.io/v1",
        "HTTPRoute provides a way to route HTTP requests.",
        {
            "spec": (
                "Spec defines the desired state of HTTPRoute.",
                [
                    ("hostnames", "[]string", False),
                    ("parentRefs", "[]Object", True),
                    ("rules", "[]Object", False),
                ],
            ),
        },
    ),
    "certificate": (
        "Certificate",
        "cert-manager.io/v1",
        "A Certificate resource should be created to ensure an up to date and signed x509 certificate is "
        "stored in the Kubernetes Secret resource named in `spec.secretName`.",
        {
            "spec": (
                "Desired state of the Certificate resource.",
                [
                    ("commonName", "string", False),
                    ("dnsNames", "[]string", False),
                    ("duration", "string", False),
                    ("isCA", "boolean", False),
                    ("issuerRef", "Object", True),
                    ("privateKey", "Object", False),
                    ("renewBefore", "string", False),
                    ("secretName", "string", True),
                    ("subject", "Object", False),
                    ("usages", "[]string", False),
                ],
            ),
            "spec.subject": (
                "Full X509 name specification (https://golang.org/pkg/crypto/x509/pkix/#Name).",
                [
                    ("countries", "[]string", False),
                    ("localities", "[]string", False),
                    ("organizationalUnits", "[]string", False),
                    ("organizations", "[]string", False),
                    ("postalCodes", "[]string", False),
                    ("provinces", "[]string", False),
                    ("serialNumber", "string", False),
                    ("streetAddresses", "[]string", False),
                ],
            ),
        },
    ),
}

_CERT_MANAGER_NAMES = {"certificate": "certificate", "certificates": "certificate", "cert": "certificate", "certs": "certificate"}


def explain(target: str) -> str:
    """Field documentation for `TYPE[.field.path]`."""
    type_name, _, path = target.partition(".")
    key = _CERT_MANAGER_NAMES.get(type_name.lower())
    if key is None:
        kind = lookup_kind(type_name)
        key = kind.singular if kind is not None else type_name.lower()
    if key not in EXPLAIN:
        raise SimulatorError(f'error: the server doesn\'t have a resource type "{type_name}"')
    kind_name, version, description, fields = EXPLAIN[key]

    lines = [f"KIND:     {kind_name}", f"VERSION:  {version}", ""]
    if path:
        if path not in fields:
            raise SimulatorError(f'error: field "{path.rsplit(".", 1)[-1]}" does not exist')
        description, field_list = fields[path]
        field_type = "[]Object" if path.endswith("containers") else "Object"
        lines += [f"RESOURCE: {path.rsplit('.', 1)[-1]} <{field_type}>", ""]
    else:
        field_list = _TOP_LEVEL
    lines += ["DESCRIPTION:", f"     {description}", "", "FIELDS:"]
    width = max(len(name) for name, _, _ in field_list) + 2
    for name, field_type, required in field_list:
        suffix = " -required-" if required else ""
        lines.append(f"   {name.ljust(width)}<{field_type}>{suffix}")
    return "\n".join(lines)


# === cluster-info dump, version ===


def _dump(ctx: Invocation) -> str:
    state = ctx.state
    kubeadm = {
        "kind": "ConfigMap",
        "apiVersion": "v1",
        "metadata": {"name": "kubeadm-config", "namespace": "kube-system"},
        "data": {
            "ClusterConfiguration": (
                "apiServer:\n  extraArgs:\n    authorization-mode: Node,RBAC\n"
                "apiVersion: kubeadm.k8s.io/v1beta3\n"
                "controllerManager:\n  extraArgs:\n    cluster-cidr: 192.168.0.0/16\n"
                "    service-cluster-ip-range: 10.96.0.0/12\n"
                f"kind: ClusterConfiguration\nkubernetesVersion: {KUBERNETES_VERSION}\n"
                "networking:\n  dnsDomain: cluster.local\n  podSubnet: 192.168.0.0/16\n"
                "  serviceSubnet: 10.96.0.0/12"
            )
        },
    }
    controller_manager = [
        "kube-controller-manager",
        "--allocate-node-cidrs=true",
        "--cluster-cidr=192.168.0.0/16",
        "--cluster-name=kubernetes",
        "--service-cluster-ip-range=10.96.0.0/12",
        "--cluster-signing-cert-file=/etc/kubernetes/pki/ca.crt",
        "--cluster-signing-key-file=/etc/kubernetes/pki/ca.key",
        "--kubeconfig=/etc/kubernetes/controller-manager.conf",
        "--leader-elect=true",
        "--root-ca-file=/etc/kubernetes/pki/ca.crt",
        "--service-account-private-key-file=/etc/kubernetes/pki/sa.key",
        "--use-service-account-credentials=true",
    ]
    sections = [
        "Cluster info dump written to stdout",
        "=== Cluster Configuration ===\n" + to_json(kubeadm),
        "=== kube-controller-manager Configuration ===\n"
        + to_yaml({"spec": {"containers": [{"command": controller_manager}]}}),
        "=== Namespaces ===\n" + "\n".join(state.namespaces),
        "=== Nodes ===\n" + "\n".join(f"{n['metadata']['name']} ({node_status(n)})" for n in state.nodes),
        "=== Components ===\n"
        + "\n".join(f"{c.name} ({c.node}): {c.status}" for c in state.system_components),
    ]
    return "\n\n".join(sections)


def _version(ctx: Invocation) -> str:
    client = {"major": "1", "minor": "28", "gitVersion": KUBERNETES_VERSION, "platform": "linux/amd64"}
    server = {"major": "1", "minor": "28", "gitVersion": KUBERNETES_VERSION, "platform": "linux/amd64"}
    if ctx.output in ("json", "yaml"):
        doc = {"clientVersion": client, "kustomizeVersion": "v5.0.4-0.20230601165947-6ce0bf390ce3"}
        if not ctx.has("client"):
            doc["serverVersion"] = server
        return to_json(doc) if ctx.output == "json" else to_yaml(doc)
    lines = [f"Client Version: {KUBERNETES_VERSION}", "Kustomize Version: v5.0.4-0.20230601165947-6ce0bf390ce3"]
    if not ctx.has("client"):
        lines.append(f"Server Version: {KUBERNETES_VERSION}")
    return "\n".join(lines)
