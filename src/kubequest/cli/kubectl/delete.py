"""kubectl delete."""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import Invocation, find_or_raise, require, resolve_kind, result
from kubequest.core import config
from kubequest.core.cluster import ClusterState, ResourceKind, name_of, namespace_of
from kubequest.core.errors import NotFound, UsageError
from kubequest.core.manifest import delete_object
from kubequest.core.objects import (
    owned_pods,
    owning_deployment,
    parse_label_selector,
    reconcile_deployment,
    selector_matches,
)
from kubequest.core.outcome import FileRequest

VERBS = ["delete"]

# Namespaces the API server refuses to delete
PROTECTED_NAMESPACES = frozenset({"default", "kube-system", "kube-public", "kube-node-lease"})


def handle(ctx: Invocation) -> CommandResult:
    path = ctx.flag("f", "filename")
    if path:
        return result(FileRequest("delete", path))

    type_name = require(ctx.arg(0), "you must specify the type of resource to delete")
    targets: list[tuple[str, str | None]]
    if "/" in type_name:
        targets = [tuple(arg.partition("/")[::2]) for arg in ctx.args]
    else:
        names = ctx.args[1:]
        targets = [(type_name, n) for n in names] or [(type_name, None)]

    if targets[0][1] is None:
        kind = resolve_kind(type_name)
        if ctx.has("all") or ctx.flag("l", "selector"):
            return _delete_matching(ctx, kind)
        raise UsageError("resource(s) were provided, but no name was specified")

    state = ctx.state
    outputs = []
    for target_type, name in targets:
        kind = resolve_kind(target_type)
        output, state = _delete_one(ctx, state, kind, name)
        outputs.append(output)
    return result("\n".join(outputs), state)


def _delete_one(ctx: Invocation, state: ClusterState, kind: ResourceKind, name: str) -> tuple[str, ClusterState]:
    namespace = ctx.namespace
    if kind.kind == "Namespace":
        if name not in state.namespaces:
            raise NotFound("namespaces", name)
        if name in PROTECTED_NAMESPACES:
            return f'Error from server (Forbidden): namespaces "{name}" is forbidden: this namespace may not be deleted', state
        config.log("info", "delete", kind="Namespace", name=name)
        return f'namespace "{name}" deleted', delete_object("Namespace", name, namespace, state)

    resource = find_or_raise(state, kind, name, namespace)
    config.log("info", "delete", kind=kind.kind, name=name, namespace=namespace)
    message = f'{kind.ref} "{name}" deleted'

    if kind.kind == "Pod":
        owner = owning_deployment(state, resource)
        state = state.without(kind, lambda r: r is resource)
        if owner is not None:
            before = {id(p) for p in state.pods}
            state = reconcile_deployment(state, name_of(owner), namespace_of(owner))
            replacement = next((p for p in state.pods if id(p) not in before), None)
            if replacement is not None:
                message += (
                    f"\n(Deployment {name_of(owner)} recreated pod {name_of(replacement)})"
                )
        return message, state

    if kind.kind == "ReplicaSet":
        state = state.without(kind, lambda r: r is resource)
        owner = next(
            (
                d for d in state.deployments
                if namespace_of(d) == namespace
                and any(o.get("name") == name_of(d) for o in resource["metadata"].get("ownerReferences", []))
            ),
            None,
        )
        if owner is not None:
            state = reconcile_deployment(state, name_of(owner), namespace)
        return message, state

    return message, delete_object(kind.kind, name, namespace, state)


def _delete_matching(ctx: Invocation, kind: ResourceKind) -> CommandResult:
    state = ctx.state
    namespace = ctx.namespace
    candidates = list(state.items(kind, namespace))
    selector = ctx.flag("l", "selector")
    if selector:
        requirements = parse_label_selector(selector)
        candidates = [r for r in candidates if selector_matches(r["metadata"].get("labels"), requirements)]
    if not candidates:
        return result("No resources found")

    if kind.kind == "Pod":
        doomed = {id(p) for p in candidates}
        state = state.with_pods(p for p in state.pods if id(p) not in doomed)
        owners = {
            (name_of(d), namespace_of(d))
            for d in ctx.state.deployments
            if any(id(p) in doomed for p in owned_pods(ctx.state, d))
        }
        for dep_name, dep_ns in sorted(owners):
            state = reconcile_deployment(state, dep_name, dep_ns)
        config.log("info", "delete", kind="Pod", count=len(candidates), namespace=namespace)
        if selector:
            return result("\n".join(f'pod "{name_of(p)}" deleted' for p in candidates), state)
        return result(f"deleted {len(candidates)} pods", state)

    outputs = []
    for resource in candidates:
        name = name_of(resource)
        if kind.kind == "Namespace" and name in PROTECTED_NAMESPACES:
            continue
        state = delete_object(kind.kind, name, namespace, state)
        outputs.append(f'{kind.ref} "{name}" deleted')
    config.log("info", "delete", kind=kind.kind, count=len(outputs), namespace=namespace)
    return result("\n".join(outputs) or "No resources found", state)
