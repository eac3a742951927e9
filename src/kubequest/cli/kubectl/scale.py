"""kubectl scale."""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import (
    Invocation,
    find_or_raise,
    parse_int,
    require,
    resolve_kind,
    result,
    split_target,
)
from kubequest.core import config
from kubequest.core.cluster import edited
from kubequest.core.errors import SimulatorError, UsageError
from kubequest.core.objects import bump_generation, reconcile_deployment

VERBS = ["scale"]

USAGE = "kubectl scale [--current-replicas=count] --replicas=COUNT (-f FILENAME | TYPE NAME)"

SCALABLE = frozenset({"Deployment", "StatefulSet", "ReplicaSet"})


def handle(ctx: Invocation) -> CommandResult:
    type_name, name = split_target(ctx)
    type_name = require(type_name, "you must specify the type of resource to scale", USAGE)
    name = require(name, "resource name is required", USAGE)
    if ctx.flag("replicas") is None:
        raise UsageError("--replicas is required", USAGE)
    replicas = parse_int(ctx.flag("replicas"), "replicas")
    if replicas < 0:
        raise UsageError("The --replicas=COUNT flag is required, and COUNT must be greater than or equal to 0")

    kind = resolve_kind(type_name)
    if kind.kind not in SCALABLE:
        raise SimulatorError(f'Error: cannot scale resource type "{type_name}"')

    state = ctx.state
    namespace = ctx.namespace
    live = find_or_raise(state, kind, name, namespace)
    current = ctx.flag("current-replicas")
    if current is not None and parse_int(current, "current-replicas") != live["spec"].get("replicas", 1):
        raise SimulatorError(
            f"error: Expected replicas to be {current}, was {live['spec'].get('replicas', 1)}"
        )

    updated = edited(live)
    updated["spec"]["replicas"] = replicas
    if kind.kind == "Deployment":
        bump_generation(updated)
        state = reconcile_deployment(state.with_replaced(kind, live, updated), name, namespace)
    else:
        updated.setdefault("status", {}).update(
            {"replicas": replicas, "readyReplicas": replicas, "availableReplicas": replicas}
        )
        state = state.with_replaced(kind, live, updated)

    config.log("info", "scale", kind=kind.kind, name=name, namespace=namespace, replicas=replicas)
    return result(f"{kind.ref}/{name} scaled", state)
