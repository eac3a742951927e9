"""
kubectl set: image, env, resources.

Each subcommand edits the Deployment's pod template and reconciles, so the
old pods are replaced by pods carrying the new template hash.
"""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import (
    Invocation,
    find_or_raise,
    parse_pairs,
    require,
    resolve_kind,
    result,
    split_target,
)
from kubequest.core import config
from kubequest.core.cluster import ClusterState, edited
from kubequest.core.errors import NotFound, SimulatorError, UsageError
from kubequest.core.objects import CHANGE_CAUSE_ANNOTATION, bump_generation, reconcile_deployment

VERBS = ["set"]

USAGES = {
    "image": "kubectl set image (-f FILENAME | TYPE NAME) CONTAINER_NAME_1=CONTAINER_IMAGE_1 ... CONTAINER_NAME_N=CONTAINER_IMAGE_N",
    "env": "kubectl set env RESOURCE/NAME KEY_1=VAL_1 ... KEY_N=VAL_N",
    "resources": "kubectl set resources (-f FILENAME | TYPE NAME) ([--limits=LIMITS & --requests=REQUESTS]",
}


def handle(ctx: Invocation) -> CommandResult:
    sub = require(ctx.arg(0), "required subcommand not provided", "kubectl set SUBCOMMAND")
    if sub not in USAGES:
        raise SimulatorError(f'Error: unknown set subcommand "{sub}"')
    type_name, name = split_target(ctx, 1)
    type_name = require(type_name, "one or more resources must be specified", USAGES[sub])
    name = require(name, "resource name is required", USAGES[sub])
    kind = resolve_kind(type_name)
    if kind.kind != "Deployment":
        raise SimulatorError(f'Error: cannot set {sub} on resource type "{type_name}"')
    rest = list(ctx.args[2:] if "/" in ctx.args[1] else ctx.args[3:])
    deployment = find_or_raise(ctx.state, kind, name, ctx.namespace)

    updated = edited(deployment)
    containers = updated["spec"]["template"]["spec"].setdefault("containers", [])
    if sub == "image":
        message = _set_image(containers, rest)
    elif sub == "env":
        if ctx.has("list"):
            return result(_list_env(deployment))
        message = _set_env(ctx, containers, rest)
    else:
        message = _set_resources(ctx, containers)

    if ctx.has("record"):
        updated["metadata"].setdefault("annotations", {})[CHANGE_CAUSE_ANNOTATION] = ctx.line
    bump_generation(updated)
    state = ctx.state.with_replaced(kind, deployment, updated)
    state = reconcile_deployment(state, name, ctx.namespace)
    config.log("info", f"set_{sub}", deployment=name, namespace=ctx.namespace)
    return result(f"{kind.ref}/{name} {message}", state)


def _set_image(containers: list[dict], terms: list[str]) -> str:
    images = parse_pairs(",".join(terms))
    if not images:
        raise UsageError("at least one image update is required", USAGES["image"])
    for container_name, image in images.items():
        matched = [c for c in containers if container_name in ("*", c.get("name"))]
        if not matched:
            raise SimulatorError(f'error: unable to find container named "{container_name}"')
        for container in matched:
            container["image"] = image
    return "image updated"


def _set_env(ctx: Invocation, containers: list[dict], terms: list[str]) -> str:
    updates: list[dict] = []
    removals: list[str] = []
    for term in terms:
        if "=" in term:
            key, _, value = term.partition("=")
            updates.append({"name": key, "value": value})
        elif term.endswith("-"):
            removals.append(term[:-1])
    source = ctx.flag("from")
    if source:
        updates += _env_from_source(ctx.state, source, ctx.namespace)
    if not updates and not removals:
        raise SimulatorError("error: at least one environment variable must be provided")

    only = ctx.flag("c", "containers")
    targets = [c for c in containers if only in (None, "*", c.get("name"))]
    if not targets:
        raise SimulatorError(f'error: unable to find container named "{only}"')
    for container in targets:
        env = [e for e in container.get("env") or [] if e.get("name") not in removals]
        for update in updates:
            existing = next((e for e in env if e.get("name") == update["name"]), None)
            if existing is None:
                env.append(dict(update))
            else:
                existing.pop("valueFrom", None)
                existing.pop("value", None)
                existing.update(update)
        if env:
            container["env"] = env
        else:
            container.pop("env", None)
    return "env updated"


def _env_from_source(state: ClusterState, source: str, namespace: str) -> list[dict]:
    """Env entries referencing every key of `configmap/NAME` or `secret/NAME`."""
    type_name, _, name = source.partition("/")
    kind = resolve_kind(type_name)
    if kind.kind not in ("ConfigMap", "Secret"):
        raise SimulatorError(f'error: unsupported resource specified in --from: "{source}"')
    obj = state.find(kind, name, namespace)
    if obj is None:
        raise NotFound(kind.resource, name)
    ref = "configMapKeyRef" if kind.kind == "ConfigMap" else "secretKeyRef"
    return [
        {"name": _env_name(key), "valueFrom": {ref: {"name": name, "key": key}}}
        for key in obj.get("data") or {}
    ]


def _env_name(key: str) -> str:
    return key.upper().replace("-", "_").replace(".", "_")


def _list_env(deployment: dict) -> str:
    name = deployment["metadata"]["name"]
    lines = []
    for container in deployment["spec"]["template"]["spec"].get("containers", []):
        lines.append(f"# Deployment {name}, container {container.get('name')}")
        for entry in container.get("env") or []:
            if "value" in entry:
                lines.append(f"{entry['name']}={entry['value']}")
            else:
                ref = entry.get("valueFrom", {})
                source = ref.get("configMapKeyRef") or ref.get("secretKeyRef") or {}
                kind = "configmap" if "configMapKeyRef" in ref else "secret"
                lines.append(f"# {entry['name']} from {kind} {source.get('name')}, key {source.get('key')}")
    return "\n".join(lines)


def _set_resources(ctx: Invocation, containers: list[dict]) -> str:
    limits = parse_pairs(ctx.flag("limits") or "")
    requests = parse_pairs(ctx.flag("requests") or "")
    if not limits and not requests:
        raise SimulatorError("error: you must specify an update to requests or limits (in the form of --requests/--limits)")
    only = ctx.flag("c", "containers")
    targets = [c for c in containers if only in (None, "*", c.get("name"))]
    if not targets:
        raise SimulatorError(f'error: unable to find container named "{only}"')
    for container in targets:
        resources = container.setdefault("resources", {})
        if limits:
            resources.setdefault("limits", {}).update(limits)
        if requests:
            resources.setdefault("requests", {}).update(requests)
    return "resource requirements updated"
