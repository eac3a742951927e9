"""
YAML apply/delete engine.

The reader is deliberately narrow: block mappings and sequences by
indentation, plain and quoted scalars, literal/folded block scalars,
empty and one-line flow collections, comments, and `---` document
separators. Anchors, tags, multi-line flow collections and complex keys
are not supported. Each document's `status` is dropped before any Kind
sees it.

Per-Kind appliers then pull out only the fields the simulator uses and
either create the object or update it in place. Whether an existing
object reports "configured" or "unchanged" is fixed per Kind and does not
depend on a diff.
"""

from __future__ import annotations

import base64
import json
import re
from dataclasses import replace
from typing import Callable

from kubequest.core import config
from kubequest.core.cluster import (
    KINDS,
    ClusterState,
    edited,
    kind_for,
    name_of,
    namespace_of,
)
from kubequest.core.errors import (
    AlreadyExists,
    Invalid,
    InvalidManifest,
    NotFound,
    SimulatorError,
    UnknownKind,
    UnknownResourceType,
)
from kubequest.core.objects import (
    bump_generation,
    metadata,
    new_deployment,
    new_pod,
    new_service,
    owned_pods,
    reconcile_deployment,
)

# === Reader ===

_INT = re.compile(r"^[-+]?\d+$")
_FLOAT = re.compile(r"^[-+]?(\d+\.\d*|\.\d+)([eE][-+]?\d+)?$")
_BLOCK_HEADERS = frozenset({"|", "|-", "|+", ">", ">-", ">+"})


def split_documents(text: str) -> list[str]:
    """Split on `---` separator lines, dropping empty documents."""
    docs: list[list[str]] = [[]]
    for line in text.split("\n"):
        if line.rstrip() == "---" or line.startswith("--- "):
            docs.append([])
        elif line.rstrip() == "...":
            continue
        else:
            docs[-1].append(line)
    return ["\n".join(d) for d in docs if any(_content(l) for l in d)]


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def _strip_comment(text: str) -> str:
    """Remove a trailing `# comment` that is outside quotes."""
    quote = None
    for i, ch in enumerate(text):
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "#" and (i == 0 or text[i - 1] in " \t"):
            return text[:i].rstrip()
    return text


def _content(line: str) -> str:
    return _strip_comment(line.strip())


def _split_key(text: str) -> tuple[str, str] | None:
    """Split `key: value` at the first mapping colon outside quotes."""
    quote = None
    for i, ch in enumerate(text):
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"') and (i == 0 or text[i - 1] == " "):
            quote = ch
        elif ch == ":" and (i + 1 == len(text) or text[i + 1] in " \t"):
            key = text[:i].strip()
            if len(key) >= 2 and key[0] == key[-1] and key[0] in ("'", '"'):
                key = key[1:-1]
            return key, text[i + 1:].strip()
    return None


def _split_flow(text: str) -> list[str]:
    parts = []
    current = ""
    quote = None
    for ch in text:
        if quote:
            current += ch
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
            current += ch
        elif ch == ",":
            parts.append(current.strip())
            current = ""
        else:
            current += ch
    if current.strip():
        parts.append(current.strip())
    return parts


def parse_scalar(text: str):
    """Turn scalar text into str/int/float/bool/None, or a one-line flow collection."""
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        try:
            return json.loads(text)
        except ValueError:
            return text[1:-1]
    if len(text) >= 2 and text[0] == "'" and text[-1] == "'":
        return text[1:-1].replace("''", "'")
    if text.startswith("[") and text.endswith("]"):
        return [parse_scalar(p) for p in _split_flow(text[1:-1])]
    if text.startswith("{") and text.endswith("}"):
        result = {}
        for part in _split_flow(text[1:-1]):
            pair = _split_key(part)
            if pair is not None:
                result[pair[0]] = parse_scalar(pair[1]) if pair[1] else None
        return result
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered in ("null", "~", ""):
        return None
    if _INT.match(text):
        return int(text)
    if _FLOAT.match(text):
        return float(text)
    return text


class _Reader:
    def __init__(self, text: str):
        self.lines = text.split("\n")
        self.pos = 0

    def _peek(self) -> int | None:
        i = self.pos
        while i < len(self.lines):
            if _content(self.lines[i]):
                return i
            i += 1
        return None

    def read(self):
        i = self._peek()
        if i is None:
            return None
        return self._node(_indent(self.lines[i]))

    def _node(self, indent: int):
        i = self._peek()
        if i is None:
            return None
        content = _content(self.lines[i])
        if content == "-" or content.startswith("- "):
            return self._sequence(_indent(self.lines[i]))
        if _split_key(content) is None:
            self.pos = i + 1
            return parse_scalar(content)
        return self._mapping(_indent(self.lines[i]))

    def _mapping(self, indent: int) -> dict:
        result: dict = {}
        while True:
            i = self._peek()
            if i is None or _indent(self.lines[i]) != indent:
                break
            content = _content(self.lines[i])
            if content == "-" or content.startswith("- "):
                break
            self.pos = i + 1
            pair = _split_key(content)
            if pair is None:
                continue  # stray line
            key, rest = pair
            result[key] = self._value(rest, indent)
        return result

    def _value(self, rest: str, indent: int):
        if rest in _BLOCK_HEADERS:
            return self._block_scalar(rest, indent)
        if rest:
            return parse_scalar(rest)
        i = self._peek()
        if i is None:
            return None
        child = _indent(self.lines[i])
        content = _content(self.lines[i])
        if child > indent:
            return self._node(child)
        if child == indent and (content == "-" or content.startswith("- ")):
            return self._sequence(indent)
        return None

    def _sequence(self, indent: int) -> list:
        items: list = []
        while True:
            i = self._peek()
            if i is None or _indent(self.lines[i]) != indent:
                break
            line = self.lines[i]
            content = _content(line)
            if not (content == "-" or content.startswith("- ")):
                break
            self.pos = i + 1
            rest = content[1:].strip()
            if not rest:
                items.append(self._node(indent + 1))
                continue
            pair = _split_key(rest)
            if pair is None or rest[0] in ("[", "{"):
                items.append(parse_scalar(rest))
                continue
            column = line.index(rest, indent + 1)
            key, value = pair
            item = {key: self._value(value, column)}
            item.update(self._mapping(column))
            items.append(item)
        return items

    def _block_scalar(self, header: str, indent: int) -> str:
        body: list[str] = []
        block_indent = None
        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            if not line.strip():
                body.append("")
                self.pos += 1
                continue
            if block_indent is None:
                block_indent = _indent(line)
                if block_indent <= indent:
                    break
            if _indent(line) < block_indent:
                break
            body.append(line[block_indent:])
            self.pos += 1

        # Trailing blank lines belong to the chomping rule, not the text
        trailing = 0
        while body and body[-1] == "":
            body.pop()
            trailing += 1
        if header.startswith(">"):
            text = ""
            for line in body:
                if not line:
                    text += "\n"
                elif text and not text.endswith("\n"):
                    text += " " + line
                else:
                    text += line
        else:
            text = "\n".join(body)
        if header.endswith("-") or not body:
            return text
        if header.endswith("+"):
            return text + "\n" * (trailing + 1)
        return text + "\n"


def read_document(text: str) -> dict:
    """Read one YAML document into plain dicts and lists."""
    doc = _Reader(text).read()
    if not isinstance(doc, dict):
        raise InvalidManifest()
    doc.pop("status", None)
    return doc


def _identity(doc: dict) -> tuple[str, str, str]:
    meta = doc.get("metadata") if isinstance(doc.get("metadata"), dict) else {}
    kind = doc.get("kind")
    name = meta.get("name")
    if not kind or not name:
        raise InvalidManifest()
    return str(kind), str(name), str(meta.get("namespace") or "default")


# === Field extraction ===


def _str_map(value) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): "" if v is None else str(v) for k, v in value.items()}


def _env(entries) -> list[dict]:
    env = []
    for entry in entries or []:
        if not isinstance(entry, dict) or not entry.get("name"):
            continue
        var = {"name": str(entry["name"])}
        if isinstance(entry.get("valueFrom"), dict):
            var["valueFrom"] = {
                ref: _str_map(body) for ref, body in entry["valueFrom"].items() if isinstance(body, dict)
            }
        else:
            value = entry.get("value")
            var["value"] = "" if value is None else str(value)
        env.append(var)
    return env


def _env_from(entries) -> list[dict]:
    """envFrom sources. The KeyRef spellings are read as whole-object refs."""
    sources = []
    for entry in entries or []:
        if not isinstance(entry, dict):
            continue
        for ref, target in (
            ("configMapRef", "configMapRef"),
            ("configMapKeyRef", "configMapRef"),
            ("secretRef", "secretRef"),
            ("secretKeyRef", "secretRef"),
        ):
            if isinstance(entry.get(ref), dict):
                source = {target: {"name": str(entry[ref].get("name", ""))}}
                if entry.get("prefix"):
                    source["prefix"] = str(entry["prefix"])
                sources.append(source)
                break
    return sources


def _resources(value) -> dict:
    if not isinstance(value, dict):
        return {}
    result = {}
    for section in ("requests", "limits"):
        values = _str_map(value.get(section))
        if values:
            result[section] = values
    return result


def _container(raw: dict, default_name: str) -> dict:
    container = {k: v for k, v in raw.items() if v is not None}
    container["name"] = str(raw.get("name") or default_name)
    container["image"] = str(raw.get("image") or "nginx")
    if "env" in raw:
        container["env"] = _env(raw["env"])
    if "envFrom" in raw:
        container["envFrom"] = _env_from(raw["envFrom"])
    if "resources" in raw:
        container["resources"] = _resources(raw["resources"])
    if isinstance(raw.get("ports"), list):
        container["ports"] = [p for p in raw["ports"] if isinstance(p, dict)]
    for key in ("command", "args"):
        if isinstance(raw.get(key), list):
            container[key] = [str(a) for a in raw[key]]
    return container


def pod_spec(raw, default_name: str) -> dict:
    """A pod spec with normalized containers. A spec without containers gets one nginx container."""
    spec = dict(raw) if isinstance(raw, dict) else {}
    containers = [c for c in spec.get("containers") or [] if isinstance(c, dict)]
    if not containers:
        containers = [{}]
    spec["containers"] = [_container(c, default_name) for c in containers]
    if spec.get("initContainers"):
        spec["initContainers"] = [
            _container(c, f"init-{i}")
            for i, c in enumerate(spec["initContainers"])
            if isinstance(c, dict)
        ]
    spec.pop("nodeName", None)
    return spec


# === Appliers ===

ApplyResult = tuple[str, ClusterState]


def _created(ref: str, name: str) -> str:
    return f"{ref}/{name} created"


def _simple(kind_name: str, doc: dict, name: str, namespace: str, body: dict) -> dict:
    kind = kind_for(kind_name)
    meta = doc.get("metadata") or {}
    extra = {}
    if meta.get("annotations"):
        extra["annotations"] = _str_map(meta["annotations"])
    resource = {
        "apiVersion": kind.api_version,
        "kind": kind_name,
        "metadata": metadata(
            name,
            namespace if kind.namespaced else None,
            _str_map(meta.get("labels")),
            **extra,
        ),
    }
    resource.update(body)
    return resource


def _apply_pod(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    kind = kind_for("Pod")
    if state.find(kind, name, namespace) is not None:
        return f"{kind.ref}/{name} unchanged", state
    meta = doc.get("metadata") or {}
    pod = new_pod(
        name,
        namespace,
        _str_map(meta.get("labels")),
        pod_spec(doc.get("spec"), name),
        state,
        annotations=_str_map(meta.get("annotations")),
    )
    return _created(kind.ref, name), state.with_added(kind, pod)


def _check_selector(name: str, selector: dict, template_labels: dict) -> None:
    """Every selector label must appear on the pod template."""
    if all(template_labels.get(k) == v for k, v in selector.items()):
        return
    pairs = ",".join(f'"{k}":"{v}"' for k, v in sorted(template_labels.items()))
    raise Invalid(
        "Deployment",
        name,
        "spec.template.metadata.labels",
        f"map[string]string{{{pairs}}}",
        "`selector` does not match template `labels`",
    )


def _apply_deployment(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    kind = kind_for("Deployment")
    spec = doc.get("spec") if isinstance(doc.get("spec"), dict) else {}
    template = spec.get("template") if isinstance(spec.get("template"), dict) else {}
    template_meta = template.get("metadata") or {}
    selector = _str_map((spec.get("selector") or {}).get("matchLabels"))
    template_labels = _str_map(template_meta.get("labels")) or selector or {"app": name}
    pod = pod_spec(template.get("spec"), name)
    replicas = spec.get("replicas")
    replicas = replicas if isinstance(replicas, int) and replicas >= 0 else 1

    existing = state.find(kind, name, namespace)
    if existing is not None:
        live_selector = (existing["spec"].get("selector") or {}).get("matchLabels") or {}
        _check_selector(name, selector or live_selector, template_labels)
        updated = edited(existing)
        updated["spec"]["replicas"] = replicas
        updated_template = updated["spec"]["template"]
        updated_template["metadata"]["labels"] = template_labels
        if template_meta.get("annotations"):
            updated_template["metadata"]["annotations"] = _str_map(template_meta["annotations"])
        updated_template["spec"] = pod
        if updated != existing:
            bump_generation(updated)
        state = state.with_replaced(kind, existing, updated)
        return f"{kind.ref}/{name} configured", reconcile_deployment(state, name, namespace)

    _check_selector(name, selector, template_labels)
    extra = {k: v for k, v in pod.items() if k != "containers"}
    deployment = new_deployment(
        name,
        namespace,
        pod["containers"],
        replicas=replicas,
        labels=template_labels,
        pod_spec_extra=extra,
    )
    meta = doc.get("metadata") or {}
    deployment["metadata"]["labels"] = _str_map(meta.get("labels")) or dict(template_labels)
    if selector:
        deployment["spec"]["selector"]["matchLabels"] = selector
    if isinstance(spec.get("strategy"), dict):
        deployment["spec"]["strategy"] = spec["strategy"]
    if template_meta.get("annotations"):
        deployment["spec"]["template"]["metadata"]["annotations"] = _str_map(
            template_meta["annotations"]
        )
    state = state.with_added(kind, deployment)
    return _created(kind.ref, name), reconcile_deployment(state, name, namespace)


def _service_ports(raw) -> list[dict]:
    ports = []
    for entry in raw or []:
        if not isinstance(entry, dict) or entry.get("port") is None:
            continue
        port = {k: v for k, v in entry.items() if v is not None}
        port.setdefault("protocol", "TCP")
        port.setdefault("targetPort", entry["port"])
        ports.append(port)
    return ports or [{"port": 80, "targetPort": 80, "protocol": "TCP"}]


def _apply_service(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    kind = kind_for("Service")
    if state.find(kind, name, namespace) is not None:
        return f"{kind.ref}/{name} unchanged", state
    spec = doc.get("spec") if isinstance(doc.get("spec"), dict) else {}
    labels = _str_map((doc.get("metadata") or {}).get("labels"))
    selector = _str_map(spec.get("selector")) if "selector" in spec else labels
    service = new_service(
        name,
        namespace,
        selector,
        _service_ports(spec.get("ports")),
        state,
        service_type=str(spec.get("type") or "ClusterIP"),
        labels=labels,
    )
    return _created(kind.ref, name), state.with_added(kind, service)


def _apply_config_map(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    kind = kind_for("ConfigMap")
    data = _str_map(doc.get("data"))
    immutable = doc.get("immutable") is True
    existing = state.find(kind, name, namespace)
    if existing is not None:
        updated = edited(existing)
        updated["data"] = {**(existing.get("data") or {}), **data}
        updated["immutable"] = immutable
        return f"{kind.ref}/{name} configured", state.with_replaced(kind, existing, updated)
    cm = _simple("ConfigMap", doc, name, namespace, {"data": data, "immutable": immutable})
    return _created(kind.ref, name), state.with_added(kind, cm)


def _secret_data(doc: dict) -> dict[str, str]:
    data = _str_map(doc.get("data"))
    for key, value in _str_map(doc.get("stringData")).items():
        data[key] = base64.b64encode(value.encode()).decode()
    return data


def _apply_secret(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    kind = kind_for("Secret")
    data = _secret_data(doc)
    existing = state.find(kind, name, namespace)
    if existing is not None:
        updated = edited(existing)
        updated["data"] = {**(existing.get("data") or {}), **data}
        return f"{kind.ref}/{name} configured", state.with_replaced(kind, existing, updated)
    secret = _simple(
        "Secret", doc, name, namespace, {"type": str(doc.get("type") or "Opaque"), "data": data}
    )
    return _created(kind.ref, name), state.with_added(kind, secret)


def _apply_hpa(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    kind = kind_for("HorizontalPodAutoscaler")
    spec = doc.get("spec") if isinstance(doc.get("spec"), dict) else {}
    min_replicas = spec.get("minReplicas") if isinstance(spec.get("minReplicas"), int) else 1
    max_replicas = spec.get("maxReplicas") if isinstance(spec.get("maxReplicas"), int) else 10
    behavior = spec.get("behavior") if isinstance(spec.get("behavior"), dict) else None

    existing = state.find(kind, name, namespace)
    if existing is not None:
        updated = edited(existing)
        updated["spec"]["minReplicas"] = min_replicas
        updated["spec"]["maxReplicas"] = max_replicas
        if behavior is not None:
            updated["spec"]["behavior"] = behavior
        return f"{kind.ref}/{name} configured", state.with_replaced(kind, existing, updated)

    target = {"apiVersion": "apps/v1", "kind": "Deployment", "name": ""}
    if isinstance(spec.get("scaleTargetRef"), dict):
        target.update(_str_map(spec["scaleTargetRef"]))
    utilization = 50
    for metric in spec.get("metrics") or []:
        value = ((metric or {}).get("resource") or {}).get("target", {}).get("averageUtilization")
        if isinstance(value, int):
            utilization = value
    body = {
        "scaleTargetRef": target,
        "minReplicas": min_replicas,
        "maxReplicas": max_replicas,
        "metrics": [
            {
                "type": "Resource",
                "resource": {
                    "name": "cpu",
                    "target": {"type": "Utilization", "averageUtilization": utilization},
                },
            }
        ],
    }
    if behavior is not None:
        body["behavior"] = behavior
    hpa = _simple(
        "HorizontalPodAutoscaler",
        doc,
        name,
        namespace,
        {"spec": body, "status": {"currentReplicas": min_replicas, "desiredReplicas": min_replicas}},
    )
    return _created(kind.ref, name), state.with_added(kind, hpa)


_ACCESS_MODES = ("ReadWriteOnce", "ReadOnlyMany", "ReadWriteMany", "ReadWriteOncePod")


def _access_modes(raw) -> list[str]:
    modes = [str(m) for m in raw or [] if str(m) in _ACCESS_MODES]
    return modes or ["ReadWriteOnce"]


def _apply_pvc(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    kind = kind_for("PersistentVolumeClaim")
    if state.find(kind, name, namespace) is not None:
        return f"{kind.ref}/{name} unchanged", state
    spec = doc.get("spec") if isinstance(doc.get("spec"), dict) else {}
    storage = str(((spec.get("resources") or {}).get("requests") or {}).get("storage") or "1Gi")
    body: dict = {
        "accessModes": _access_modes(spec.get("accessModes")),
        "resources": {"requests": {"storage": storage}},
    }
    if spec.get("storageClassName"):
        body["storageClassName"] = str(spec["storageClassName"])

    # Bind to an available volume of the same class when one exists
    pv_kind = kind_for("PersistentVolume")
    volume = next(
        (
            pv for pv in state.persistent_volumes
            if pv.get("status", {}).get("phase") == "Available"
            and pv["spec"].get("storageClassName") == body.get("storageClassName")
        ),
        None,
    )
    if volume is not None:
        body["volumeName"] = name_of(volume)
        bound = edited(volume)
        bound["spec"]["claimRef"] = {"kind": "PersistentVolumeClaim", "namespace": namespace, "name": name}
        bound["status"] = {"phase": "Bound"}
        state = state.with_replaced(pv_kind, volume, bound)

    pvc = _simple(
        "PersistentVolumeClaim", doc, name, namespace, {"spec": body, "status": {"phase": "Bound"}}
    )
    return _created(kind.ref, name), state.with_added(kind, pvc)


def _apply_pv(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    kind = kind_for("PersistentVolume")
    if state.find(kind, name) is not None:
        return f"{kind.ref}/{name} unchanged", state
    spec = doc.get("spec") if isinstance(doc.get("spec"), dict) else {}
    body: dict = {
        "capacity": {"storage": str((spec.get("capacity") or {}).get("storage") or "1Gi")},
        "accessModes": _access_modes(spec.get("accessModes")),
        "persistentVolumeReclaimPolicy": str(spec.get("persistentVolumeReclaimPolicy") or "Retain"),
        "hostPath": {"path": str((spec.get("hostPath") or {}).get("path") or "/data")},
    }
    if spec.get("storageClassName"):
        body["storageClassName"] = str(spec["storageClassName"])
    pv = _simple("PersistentVolume", doc, name, namespace, {"spec": body, "status": {"phase": "Available"}})
    return _created(kind.ref, name), state.with_added(kind, pv)


def _apply_storage_class(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    kind = kind_for("StorageClass")
    if state.find(kind, name) is not None:
        return f"{kind.ref}/{name} unchanged", state
    sc = _simple(
        "StorageClass",
        doc,
        name,
        namespace,
        {
            "provisioner": str(doc.get("provisioner") or "kubernetes.io/no-provisioner"),
            "reclaimPolicy": str(doc.get("reclaimPolicy") or "Retain"),
            "volumeBindingMode": str(doc.get("volumeBindingMode") or "WaitForFirstConsumer"),
            "allowVolumeExpansion": doc.get("allowVolumeExpansion") is True,
        },
    )
    return _created(kind.ref, name), state.with_added(kind, sc)


def _apply_priority_class(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    kind = kind_for("PriorityClass")
    if state.find(kind, name) is not None:
        return f"{kind.ref}/{name} unchanged", state
    body = {
        "value": doc.get("value") if isinstance(doc.get("value"), int) else 0,
        "globalDefault": doc.get("globalDefault") is True,
        "description": str(doc.get("description") or ""),
    }
    if doc.get("preemptionPolicy"):
        body["preemptionPolicy"] = str(doc["preemptionPolicy"])
    pc = _simple("PriorityClass", doc, name, namespace, body)
    return _created(kind.ref, name), state.with_added(kind, pc)


def _apply_service_account(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    kind = kind_for("ServiceAccount")
    if state.find(kind, name, namespace) is not None:
        return f"{kind.ref}/{name} unchanged", state
    sa = _simple("ServiceAccount", doc, name, namespace, {})
    return _created(kind.ref, name), state.with_added(kind, sa)


def _spec_replacing(kind_name: str, keys: tuple[str, ...]) -> Callable:
    """An applier that copies top-level `keys` over, reporting configured on update."""

    def apply(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
        kind = kind_for(kind_name)
        body = {k: doc[k] for k in keys if doc.get(k) is not None}
        existing = state.find(kind, name, namespace)
        if existing is not None:
            updated = edited(existing)
            updated.update(body)
            return f"{kind.ref}/{name} configured", state.with_replaced(kind, existing, updated)
        resource = _simple(kind_name, doc, name, namespace, body)
        return _created(kind.ref, name), state.with_added(kind, resource)

    return apply


def _apply_gateway(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    kind = kind_for("Gateway")
    if state.find(kind, name, namespace) is not None:
        return f"{kind.ref}/{name} unchanged", state
    spec = dict(doc.get("spec") or {})
    listeners = []
    for raw in spec.get("listeners") or []:
        if isinstance(raw, dict):
            listener = {"port": 80, "protocol": "HTTP", **{k: v for k, v in raw.items() if v is not None}}
            listeners.append(listener)
    spec["listeners"] = listeners
    class_name = str(spec.get("gatewayClassName") or "")
    accepted = state.find(kind_for("GatewayClass"), class_name) is not None
    status = {
        "conditions": [
            {"type": "Accepted", "status": "True" if accepted else "False"},
            {"type": "Programmed", "status": "True" if accepted else "False"},
        ]
    }
    if accepted:
        status["addresses"] = [{"type": "IPAddress", "value": "172.18.0.100"}]
    gateway = _simple("Gateway", doc, name, namespace, {"spec": spec, "status": status})
    return _created(kind.ref, name), state.with_added(kind, gateway)


def _apply_http_route(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    kind = kind_for("HTTPRoute")
    if state.find(kind, name, namespace) is not None:
        return f"{kind.ref}/{name} unchanged", state
    spec = dict(doc.get("spec") or {})
    parents = [p for p in spec.get("parentRefs") or [] if isinstance(p, dict)]
    status = {
        "parents": [
            {
                "parentRef": parent,
                "conditions": [{"type": "Accepted", "status": "True"}],
            }
            for parent in parents
        ]
    }
    route = _simple("HTTPRoute", doc, name, namespace, {"spec": spec, "status": status})
    return _created(kind.ref, name), state.with_added(kind, route)


def _apply_namespace(doc: dict, name: str, namespace: str, state: ClusterState) -> ApplyResult:
    if name in state.namespaces:
        return f"namespace/{name} unchanged", state
    return f"namespace/{name} created", state.with_namespace(name)


_APPLIERS: dict[str, Callable[[dict, str, str, ClusterState], ApplyResult]] = {
    "Pod": _apply_pod,
    "Deployment": _apply_deployment,
    "Service": _apply_service,
    "ConfigMap": _apply_config_map,
    "Secret": _apply_secret,
    "Ingress": _spec_replacing("Ingress", ("spec",)),
    "Gateway": _apply_gateway,
    "HTTPRoute": _apply_http_route,
    "NetworkPolicy": _spec_replacing("NetworkPolicy", ("spec",)),
    "HorizontalPodAutoscaler": _apply_hpa,
    "PersistentVolumeClaim": _apply_pvc,
    "PersistentVolume": _apply_pv,
    "StorageClass": _apply_storage_class,
    "PriorityClass": _apply_priority_class,
    "ServiceAccount": _apply_service_account,
    "Role": _spec_replacing("Role", ("rules",)),
    "ClusterRole": _spec_replacing("ClusterRole", ("rules",)),
    "RoleBinding": _spec_replacing("RoleBinding", ("roleRef", "subjects")),
    "ClusterRoleBinding": _spec_replacing("ClusterRoleBinding", ("roleRef", "subjects")),
    "Namespace": _apply_namespace,
}

# Case-insensitive Kind lookup; `pvc`/`pv` were accepted as kind values too
_KIND_NAMES = {k.lower(): k for k in _APPLIERS}
_KIND_NAMES.update({"pvc": "PersistentVolumeClaim", "pv": "PersistentVolume"})


def supported_kinds() -> list[str]:
    return list(_APPLIERS)


def _for_each(text: str, state: ClusterState, step) -> tuple[str, ClusterState]:
    """Run step over every document; a failing document leaves state as it was before it."""
    docs = split_documents(text)
    if not docs:
        return InvalidManifest().render(), state
    outputs = []
    for doc_text in docs:
        try:
            output, state = step(read_document(doc_text), state)
        except SimulatorError as e:
            output = e.render()
        outputs.append(output)
    return "\n".join(outputs), state


def apply_manifest(text: str, state: ClusterState) -> tuple[str, ClusterState]:
    """kubectl apply -f: create or update every object in the manifest."""

    def step(doc: dict, state: ClusterState) -> tuple[str, ClusterState]:
        kind, name, namespace = _identity(doc)
        canonical = _KIND_NAMES.get(kind.lower())
        if canonical is None:
            raise UnknownKind(kind)
        output, state = _APPLIERS[canonical](doc, name, namespace, state)
        if kind_for(canonical).namespaced:
            state = state.with_namespace(namespace)
        config.log("info", "apply", kind=canonical, name=name, namespace=namespace, result=output)
        return output, state

    return _for_each(text, state, step)


def create_manifest(text: str, state: ClusterState) -> tuple[str, ClusterState]:
    """kubectl create -f: like apply, but an existing object is an AlreadyExists error."""

    def step(doc: dict, state: ClusterState) -> tuple[str, ClusterState]:
        kind, name, namespace = _identity(doc)
        canonical = _KIND_NAMES.get(kind.lower())
        if canonical is None:
            raise UnknownKind(kind)
        resource_kind = kind_for(canonical)
        if canonical == "Namespace":
            exists = name in state.namespaces
        else:
            exists = state.find(resource_kind, name, namespace) is not None
        if exists:
            raise AlreadyExists(resource_kind.resource, name)
        output, state = _APPLIERS[canonical](doc, name, namespace, state)
        if resource_kind.namespaced:
            state = state.with_namespace(namespace)
        config.log("info", "create", kind=canonical, name=name, namespace=namespace)
        return output, state

    return _for_each(text, state, step)


def delete_object(kind_name: str, name: str, namespace: str, state: ClusterState) -> ClusterState:
    """Remove one object.

    A Deployment takes its ReplicaSets and pods with it; a Namespace takes
    everything inside it.
    """
    kind = kind_for(kind_name)
    if kind_name == "Namespace":
        for contained in KINDS:
            if contained.namespaced and contained.field != "namespaces":
                state = state.without(contained, lambda r: namespace_of(r) == name)
        return replace(state, namespaces=tuple(ns for ns in state.namespaces if ns != name))
    target = state.find(kind, name, namespace)
    if target is None:
        return state
    if kind_name == "Deployment":
        doomed = {id(p) for p in owned_pods(state, target)}
        state = state.with_pods(p for p in state.pods if id(p) not in doomed)
        state = state.without(
            kind_for("ReplicaSet"),
            lambda rs: namespace_of(rs) == namespace
            and any(o.get("name") == name for o in rs["metadata"].get("ownerReferences", [])),
        )
    return state.without(kind, lambda r: r is target)


def delete_manifest(text: str, state: ClusterState) -> tuple[str, ClusterState]:
    """kubectl delete -f: only kind, metadata.name and metadata.namespace are read."""

    def step(doc: dict, state: ClusterState) -> tuple[str, ClusterState]:
        kind, name, namespace = _identity(doc)
        canonical = _KIND_NAMES.get(kind.lower())
        if canonical is None:
            raise UnknownResourceType(kind)
        resource_kind = kind_for(canonical)
        if canonical == "Namespace":
            exists = name in state.namespaces
        else:
            exists = state.find(resource_kind, name, namespace) is not None
        if not exists:
            raise NotFound(resource_kind.resource, name)
        config.log("info", "delete", kind=canonical, name=name, namespace=namespace)
        return f'{resource_kind.ref} "{name}" deleted', delete_object(canonical, name, namespace, state)

    return _for_each(text, state, step)
