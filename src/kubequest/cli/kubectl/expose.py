"""kubectl expose: put a Service in front of a Deployment, ReplicaSet, Pod or Service."""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import (
    Invocation,
    find_or_raise,
    parse_int,
    parse_pairs,
    require,
    resolve_kind,
    result,
    split_target,
)
from kubequest.core import config
from kubequest.core.cluster import kind_for
from kubequest.core.errors import AlreadyExists, SimulatorError, UsageError
from kubequest.core.objects import new_service
from kubequest.core.render import to_json, to_yaml

VERBS = ["expose"]

USAGE = "kubectl expose (-f FILENAME | TYPE NAME) [--port=port] [--protocol=TCP|UDP|SCTP] [--target-port=number-or-name] [--name=name] [--type=type] [options]"

SERVICE_TYPES = ("ClusterIP", "NodePort", "LoadBalancer")


def _selector(kind_name: str, resource: dict) -> dict:
    if kind_name in ("Deployment", "ReplicaSet"):
        return dict(resource["spec"].get("selector", {}).get("matchLabels", {}))
    if kind_name == "Service":
        return dict(resource["spec"].get("selector") or {})
    return dict(resource["metadata"].get("labels") or {})


def _default_port(kind_name: str, resource: dict) -> int | None:
    if kind_name == "Service":
        ports = resource["spec"].get("ports") or []
        return ports[0].get("port") if ports else None
    spec = resource["spec"]
    if kind_name in ("Deployment", "ReplicaSet"):
        spec = spec.get("template", {}).get("spec", {})
    for container in spec.get("containers", []):
        for port in container.get("ports") or []:
            if port.get("containerPort"):
                return port["containerPort"]
    return None


def handle(ctx: Invocation) -> CommandResult:
    type_name, name = split_target(ctx)
    type_name = require(type_name, "you must specify the type of resource to expose", USAGE)
    name = require(name, "resource name is required", USAGE)

    kind = resolve_kind(type_name)
    if kind.kind not in ("Deployment", "ReplicaSet", "Pod", "Service"):
        raise SimulatorError(f'Error: cannot expose resource type "{type_name}"')
    namespace = ctx.namespace
    resource = find_or_raise(ctx.state, kind, name, namespace)

    selector = parse_pairs(ctx.flag("selector") or "") or _selector(kind.kind, resource)
    if not selector:
        raise SimulatorError(
            f"error: couldn't retrieve selectors via --selector flag or introspection: {kind.ref}/{name} has no labels"
        )

    port_flag = ctx.flag("port")
    port = parse_int(port_flag, "port") if port_flag else _default_port(kind.kind, resource)
    if port is None:
        raise UsageError("couldn't find port via --port flag or introspection", USAGE)
    target = ctx.flag("target-port")
    target_port: int | str = port
    if target is not None:
        target_port = int(target) if target.isdigit() else target

    service_type = ctx.flag("type", default="ClusterIP")
    matched = next((t for t in SERVICE_TYPES if t.lower() == service_type.lower()), None)
    if matched is None:
        raise UsageError(f"invalid service type {service_type!r}; must be one of {', '.join(SERVICE_TYPES)}")

    service_name = ctx.flag("name") or name
    service_kind = kind_for("Service")
    if ctx.state.find(service_kind, service_name, namespace) is not None:
        raise AlreadyExists(service_kind.resource, service_name)

    service = new_service(
        service_name,
        namespace,
        selector,
        [{"port": port, "targetPort": target_port, "protocol": ctx.flag("protocol", default="TCP")}],
        ctx.state,
        service_type=matched,
        labels=dict(resource["metadata"].get("labels") or {}) or None,
    )
    if ctx.dry_run:
        if ctx.output == "yaml":
            return result(to_yaml(service))
        if ctx.output == "json":
            return result(to_json(service))
        return result(f"service/{service_name} exposed (dry run)")

    config.log("info", "expose", kind=kind.kind, name=name, service=service_name, type=matched)
    return result(f"service/{service_name} exposed", ctx.state.with_added(service_kind, service))
