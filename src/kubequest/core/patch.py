"""
Patch parser for `kubectl edit` buffers.

An edit buffer is read with the manifest reader, but only the fields the
editor view exposes are taken back: everything else in the live object is
kept as it was. Deployment changes go through the same reconciliation as
scale and set, so a new image replaces pods and a new replica count only
scales.
"""

from __future__ import annotations

from kubequest.core import config
from kubequest.core.cluster import ClusterState, edited, kind_for
from kubequest.core.errors import InvalidManifest, NotFound
from kubequest.core.manifest import read_document
from kubequest.core.objects import (
    allocate_node_port,
    bump_generation,
    container_statuses,
    initial_phase,
    reconcile_deployment,
)

CANCELLED = "Edit cancelled, no changes made."

HPA_MIN_DEFAULT = 1
HPA_MAX_DEFAULT = 10


def _int(value, default: int | None = None) -> int | None:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return default


def _containers(raw) -> list[dict]:
    return [c for c in raw or [] if isinstance(c, dict)]


def _set_or_clear(target: dict, key: str, value) -> None:
    """Set a field, or drop it when the buffer left it out.

    An empty live value (`resources: {}`) is not shown in the editor, so it
    stays as it is rather than counting as a removal.
    """
    if value:
        target[key] = value
    elif target.get(key):
        del target[key]


def _patch_container(live: dict, edit: dict) -> None:
    """Copy image, pull policy, ports, resources and env from an edited container."""
    if edit.get("image"):
        live["image"] = str(edit["image"])
    if edit.get("imagePullPolicy"):
        live["imagePullPolicy"] = str(edit["imagePullPolicy"])

    ports = []
    for port in edit.get("ports") or []:
        number = _int((port or {}).get("containerPort"))
        if number is None:
            continue
        entry = {"containerPort": number}
        if port.get("protocol"):
            entry["protocol"] = str(port["protocol"])
        ports.append(entry)
    _set_or_clear(live, "ports", ports)

    resources = {}
    for section in ("requests", "limits"):
        values = (edit.get("resources") or {}).get(section) or {}
        picked = {k: str(values[k]) for k in ("cpu", "memory") if values.get(k) is not None}
        if picked:
            resources[section] = picked
    _set_or_clear(live, "resources", resources)

    # valueFrom entries are not shown in the editor; keep them
    kept = [e for e in live.get("env") or [] if "valueFrom" in e]
    literal = [
        {"name": str(e["name"]), "value": "" if e.get("value") is None else str(e["value"])}
        for e in edit.get("env") or []
        if isinstance(e, dict) and e.get("name")
    ]
    literal_names = {v["name"] for v in literal}
    env = literal + [e for e in kept if e["name"] not in literal_names]
    _set_or_clear(live, "env", env)


def _patch_pod_spec(spec: dict, edit_spec: dict) -> None:
    edited_containers = _containers(edit_spec.get("containers"))
    by_name = {c.get("name"): c for c in edited_containers}
    for index, container in enumerate(spec.get("containers", [])):
        match = by_name.get(container.get("name"))
        if match is None and index < len(edited_containers):
            match = edited_containers[index]
        if match is not None:
            _patch_container(container, match)
    _set_or_clear(spec, "priorityClassName", str(edit_spec.get("priorityClassName") or ""))


def _deployment(doc: dict, live: dict, state: ClusterState) -> dict:
    updated = edited(live)
    spec = doc.get("spec") or {}
    replicas = _int(spec.get("replicas"))
    if replicas is not None and replicas >= 0:
        updated["spec"]["replicas"] = replicas
    template_spec = (spec.get("template") or {}).get("spec") or {}
    _patch_pod_spec(updated["spec"]["template"]["spec"], template_spec)
    return updated


def _hpa(doc: dict, live: dict, state: ClusterState) -> dict:
    updated = edited(live)
    spec = doc.get("spec") or {}
    updated["spec"]["minReplicas"] = _int(spec.get("minReplicas"), HPA_MIN_DEFAULT)
    updated["spec"]["maxReplicas"] = _int(spec.get("maxReplicas"), HPA_MAX_DEFAULT)
    scale_down = ((spec.get("behavior") or {}).get("scaleDown")) or {}
    window = _int(scale_down.get("stabilizationWindowSeconds"))
    if window is not None:
        behavior = updated["spec"].setdefault("behavior", {})
        behavior.setdefault("scaleDown", {})["stabilizationWindowSeconds"] = window
    return updated


def _config_map(doc: dict, live: dict, state: ClusterState) -> dict:
    updated = edited(live)
    data = doc.get("data")
    updated["data"] = {
        str(k): "" if v is None else str(v) for k, v in (data if isinstance(data, dict) else {}).items()
    }
    return updated


def _service(doc: dict, live: dict, state: ClusterState) -> dict:
    updated = edited(live)
    spec = doc.get("spec") or {}
    service_type = str(spec.get("type") or updated["spec"].get("type", "ClusterIP"))
    updated["spec"]["type"] = service_type
    ports = []
    for raw in spec.get("ports") or []:
        number = _int((raw or {}).get("port"))
        if number is None:
            continue
        port = {
            "port": number,
            "targetPort": _int(raw.get("targetPort"), raw.get("targetPort") or number),
            "protocol": str(raw.get("protocol") or "TCP"),
        }
        node_port = _int(raw.get("nodePort"))
        if service_type in ("NodePort", "LoadBalancer"):
            port["nodePort"] = node_port or allocate_node_port(state)
        ports.append(port)
    if ports:
        updated["spec"]["ports"] = ports
    return updated


def _pod(doc: dict, live: dict, state: ClusterState) -> dict:
    """Only container images may change on a running pod."""
    updated = edited(live)
    edits = _containers((doc.get("spec") or {}).get("containers"))
    for index, container in enumerate(updated["spec"].get("containers", [])):
        match = next((c for c in edits if c.get("name") == container.get("name")), None)
        if match is None and index < len(edits):
            match = edits[index]
        if match is not None and match.get("image"):
            container["image"] = str(match["image"])
    if updated != live and updated["spec"].get("nodeName"):
        phase = initial_phase(updated["spec"])
        updated["status"]["phase"] = phase
        updated["status"]["containerStatuses"] = container_statuses(updated["spec"], phase)
    return updated


_PATCHERS = {
    "Deployment": _deployment,
    "HorizontalPodAutoscaler": _hpa,
    "ConfigMap": _config_map,
    "Service": _service,
    "Pod": _pod,
}


def editable_kinds() -> list[str]:
    return list(_PATCHERS)


def apply_edit(
    kind_name: str, name: str, namespace: str, text: str, state: ClusterState
) -> tuple[str, ClusterState]:
    """Apply a saved edit buffer to the live object named by (kind, namespace, name)."""
    kind = kind_for(kind_name)
    live = state.find(kind, name, namespace)
    if live is None:
        raise NotFound(kind.resource, name)
    patcher = _PATCHERS.get(kind_name)
    if patcher is None:
        return CANCELLED, state
    if not text.strip():
        return CANCELLED, state
    doc = read_document(text)
    if not isinstance(doc.get("metadata"), dict) and not doc.get("spec") and "data" not in doc:
        raise InvalidManifest("edit buffer is not a valid resource")

    updated = patcher(doc, live, state)
    if updated == live:
        return CANCELLED, state

    if kind_name == "Deployment" and updated["spec"] != live["spec"]:
        bump_generation(updated)
    state = state.with_replaced(kind, live, updated)
    if kind_name == "Deployment":
        state = reconcile_deployment(state, name, namespace)
    config.log("info", "edit", kind=kind_name, name=name, namespace=namespace)
    return f"{kind.ref}/{name} edited", state
