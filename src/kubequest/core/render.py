"""
Rendering resources as text: `-o yaml`, `-o json`, and the buffer
`kubectl edit` opens in the editor.
"""

from __future__ import annotations

import json
import re

_PLAIN_UNSAFE = re.compile(r"^[-?:,\[\]{}#&*!|>'\"%@`\s]|[:#]\s|\s$|:$")
_RESERVED = frozenset({"true", "false", "null", "yes", "no", "on", "off", "~", ""})
_NUMBER = re.compile(r"^[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$")


def _scalar(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value)
    if (
        text.lower() in _RESERVED
        or _NUMBER.match(text)
        or _PLAIN_UNSAFE.search(text)
        or "'" in text
    ):
        return json.dumps(text)
    return text


def _block(text: str, pad: str) -> list[str]:
    """A multi-line string as a literal block scalar body."""
    return [f"{pad}{line}" if line else "" for line in text.split("\n")]


def _write_value(lines: list[str], prefix: str, value, indent: int) -> None:
    """Write `prefix` (already holding 'key:' or '- key:') followed by value."""
    pad = "  " * indent
    if isinstance(value, dict):
        if not value:
            lines.append(f"{prefix} {{}}")
        else:
            lines.append(prefix)
            _write_mapping(lines, value, indent + 1)
    elif isinstance(value, (list, tuple)):
        if not value:
            lines.append(f"{prefix} []")
        else:
            lines.append(prefix)
            _write_sequence(lines, value, indent)
    elif isinstance(value, str) and "\n" in value:
        chomp = "" if value.endswith("\n") else "-"
        lines.append(f"{prefix} |{chomp}")
        lines.extend(_block(value.rstrip("\n"), pad + "  "))
    else:
        lines.append(f"{prefix} {_scalar(value)}")


def _write_mapping(lines: list[str], mapping: dict, indent: int) -> None:
    pad = "  " * indent
    for key, value in mapping.items():
        _write_value(lines, f"{pad}{_scalar(key)}:", value, indent)


def _write_sequence(lines: list[str], items, indent: int) -> None:
    pad = "  " * indent
    for item in items:
        if isinstance(item, dict) and item:
            for i, (key, value) in enumerate(item.items()):
                lead = f"{pad}- " if i == 0 else f"{pad}  "
                _write_value(lines, f"{lead}{_scalar(key)}:", value, indent + 1)
        elif isinstance(item, (list, tuple)) and item:
            lines.append(f"{pad}-")
            _write_sequence(lines, item, indent + 1)
        else:
            _write_value(lines, f"{pad}-", item, indent)


def to_yaml(obj: dict) -> str:
    """Block-style YAML for a resource dict, keys in insertion order."""
    lines: list[str] = []
    _write_mapping(lines, obj, 0)
    return "\n".join(lines)


def to_json(obj) -> str:
    return json.dumps(obj, indent=2)


# === Edit buffers ===


def _labels(lines: list[str], labels: dict | None, pad: str) -> None:
    for k, v in (labels or {}).items():
        lines.append(f"{pad}{k}: {v}")


def _container_lines(lines: list[str], container: dict, pad: str) -> None:
    lines.append(f"{pad}- name: {container.get('name')}")
    lines.append(f"{pad}  image: {container.get('image')}")
    if container.get("imagePullPolicy"):
        lines.append(f"{pad}  imagePullPolicy: {container['imagePullPolicy']}")
    ports = container.get("ports") or []
    if ports:
        lines.append(f"{pad}  ports:")
        for port in ports:
            lines.append(f"{pad}  - containerPort: {port.get('containerPort')}")
            if port.get("protocol"):
                lines.append(f"{pad}    protocol: {port['protocol']}")
    resources = container.get("resources") or {}
    if resources.get("requests") or resources.get("limits"):
        lines.append(f"{pad}  resources:")
        for section in ("requests", "limits"):
            values = resources.get(section) or {}
            if values:
                lines.append(f"{pad}    {section}:")
                for key in ("cpu", "memory"):
                    if values.get(key):
                        lines.append(f"{pad}      {key}: {values[key]}")
    env = [var for var in container.get("env") or [] if "valueFrom" not in var]
    if env:
        lines.append(f"{pad}  env:")
        for var in env:
            lines.append(f"{pad}  - name: {var.get('name')}")
            lines.append(f'{pad}    value: "{var.get("value", "")}"')


def edit_yaml(resource: dict) -> str:
    """The editable view of a resource.

    Only the fields the edit patch parser reads back are shown, in a fixed
    layout the parser can walk line by line.
    """
    meta = resource["metadata"]
    spec = resource.get("spec") or {}
    lines = [
        f"apiVersion: {resource.get('apiVersion', 'v1')}",
        f"kind: {resource.get('kind')}",
        "metadata:",
        f"  name: {meta['name']}",
    ]
    if meta.get("namespace"):
        lines.append(f"  namespace: {meta['namespace']}")
    if meta.get("labels"):
        lines.append("  labels:")
        _labels(lines, meta["labels"], "    ")

    if resource.get("kind") == "ConfigMap":
        data = resource.get("data") or {}
        lines.append("data:" if data else "data: {}")
        for key, value in data.items():
            if "\n" in str(value):
                lines.append(f"  {key}: |")
                lines.extend(_block(str(value).rstrip("\n"), "    "))
            else:
                lines.append(f"  {key}: {_scalar(value)}")
        return "\n".join(lines)

    if not spec:
        return "\n".join(lines)

    lines.append("spec:")
    if "replicas" in spec:
        lines.append(f"  replicas: {spec['replicas']}")
    match_labels = (spec.get("selector") or {}).get("matchLabels")
    if match_labels:
        lines.append("  selector:")
        lines.append("    matchLabels:")
        _labels(lines, match_labels, "      ")
    template = spec.get("template")
    if template:
        lines.append("  template:")
        lines.append("    metadata:")
        if (template.get("metadata") or {}).get("labels"):
            lines.append("      labels:")
            _labels(lines, template["metadata"]["labels"], "        ")
        pod_spec = template.get("spec") or {}
        lines.append("    spec:")
        lines.append("      dnsPolicy: ClusterFirst")
        if pod_spec.get("priorityClassName"):
            lines.append(f"      priorityClassName: {pod_spec['priorityClassName']}")
        lines.append("      containers:")
        for container in pod_spec.get("containers", []):
            _container_lines(lines, container, "      ")

    if resource.get("kind") == "Pod" and spec.get("containers"):
        lines.append("  containers:")
        for container in spec["containers"]:
            _container_lines(lines, container, "  ")

    if spec.get("type"):
        lines.append(f"  type: {spec['type']}")
    if resource.get("kind") == "Service" and spec.get("ports"):
        lines.append("  ports:")
        for port in spec["ports"]:
            lines.append(f"  - port: {port.get('port')}")
            if port.get("targetPort") is not None:
                lines.append(f"    targetPort: {port['targetPort']}")
            if port.get("protocol"):
                lines.append(f"    protocol: {port['protocol']}")
            if port.get("nodePort") is not None:
                lines.append(f"    nodePort: {port['nodePort']}")

    target = spec.get("scaleTargetRef")
    if target:
        lines.append("  scaleTargetRef:")
        lines.append(f"    apiVersion: {target.get('apiVersion', 'apps/v1')}")
        lines.append(f"    kind: {target.get('kind')}")
        lines.append(f"    name: {target.get('name')}")
    if "minReplicas" in spec:
        lines.append(f"  minReplicas: {spec['minReplicas']}")
    if "maxReplicas" in spec:
        lines.append(f"  maxReplicas: {spec['maxReplicas']}")
    if spec.get("metrics"):
        lines.append("  metrics:")
        for metric in spec["metrics"]:
            lines.append(f"  - type: {metric.get('type')}")
            res = metric.get("resource")
            if res:
                lines.append("    resource:")
                lines.append(f"      name: {res.get('name', 'cpu')}")
                if res.get("target"):
                    lines.append("      target:")
                    lines.append(f"        type: {res['target'].get('type', 'Utilization')}")
                    if "averageUtilization" in res["target"]:
                        lines.append(
                            f"        averageUtilization: {res['target']['averageUtilization']}"
                        )
    scale_down = (spec.get("behavior") or {}).get("scaleDown")
    if scale_down is not None:
        lines.append("  behavior:")
        lines.append("    scaleDown:")
        if "stabilizationWindowSeconds" in scale_down:
            lines.append(
                f"      stabilizationWindowSeconds: {scale_down['stabilizationWindowSeconds']}"
            )
    return "\n".join(lines)
