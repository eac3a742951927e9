"""
Node maintenance verbs: taint, cordon, uncordon, drain.

Draining evicts every pod on the node and then reconciles Deployments, so
their replacement pods land on whichever nodes the scheduler still allows.
"""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import Invocation, find_or_raise, require, result, split_target
from kubequest.core import config
from kubequest.core.cluster import ClusterState, edited, kind_for, namespace_of
from kubequest.core.errors import SimulatorError, UsageError
from kubequest.core.objects import owning_deployment, reconcile_all

VERBS = ["taint", "cordon", "uncordon", "drain"]

TAINT_EFFECTS = ("NoSchedule", "PreferNoSchedule", "NoExecute")


def handle(ctx: Invocation) -> CommandResult:
    if ctx.verb == "taint":
        return _taint(ctx)
    name = require(ctx.arg(0), "node name is required", f"kubectl {ctx.verb} NODE [options]")
    if "/" in name:
        name = name.partition("/")[2]
    if ctx.verb == "drain":
        return _drain(ctx, name)
    state, changed = set_unschedulable(ctx.state, name, ctx.verb == "cordon")
    past = f"{ctx.verb}ed"
    if not changed:
        return result(f"node/{name} already {past}")
    config.log("info", ctx.verb, node=name)
    return result(f"node/{name} {past}", state)


def set_unschedulable(state: ClusterState, name: str, value: bool) -> tuple[ClusterState, bool]:
    kind = kind_for("Node")
    node = find_or_raise(state, kind, name, "default")
    if bool(node.get("spec", {}).get("unschedulable")) == value:
        return state, False
    updated = edited(node)
    spec = updated.setdefault("spec", {})
    if value:
        spec["unschedulable"] = True
    else:
        spec.pop("unschedulable", None)
    return state.with_replaced(kind, node, updated), True


# === taint ===


def parse_taint(spec: str) -> tuple[dict, bool]:
    """`key=value:Effect` -> (taint, remove). `key-` and `key:Effect-` remove."""
    remove = spec.endswith("-")
    spec = spec.rstrip("-") if remove else spec
    key_value, _, effect = spec.partition(":")
    key, _, value = key_value.partition("=")
    if not key:
        raise UsageError(f"invalid taint spec: {spec}")
    if effect and effect not in TAINT_EFFECTS:
        raise UsageError(f'invalid taint effect: {effect}, unsupported taint effect')
    if not remove and not effect:
        raise UsageError(f"invalid taint spec: {spec}, effect is required")
    taint = {"key": key, "effect": effect}
    if value:
        taint["value"] = value
    return taint, remove


def _taint(ctx: Invocation) -> CommandResult:
    type_name, name = split_target(ctx)
    if type_name not in ("node", "nodes", "no"):
        raise SimulatorError("Error: taint can only be applied to nodes")
    name = require(name, "at least one node name is required")
    terms = list(ctx.args[1:] if "/" in (ctx.arg(0) or "") else ctx.args[2:])
    if not terms:
        raise UsageError("at least one taint update is required")

    kind = kind_for("Node")
    state = ctx.state
    node = find_or_raise(state, kind, name, "default")
    taints = list(node.get("spec", {}).get("taints") or [])
    added = removed = False
    for term in terms:
        taint, remove = parse_taint(term)
        if remove:
            kept = [
                t for t in taints
                if not (t.get("key") == taint["key"] and (not taint["effect"] or t.get("effect") == taint["effect"]))
            ]
            if len(kept) == len(taints):
                raise SimulatorError(f'error: taint "{term[:-1]}" not found')
            taints, removed = kept, True
            continue
        existing = [t for t in taints if t.get("key") == taint["key"] and t.get("effect") == taint["effect"]]
        if existing and not ctx.has("overwrite"):
            raise SimulatorError(
                f"error: node {name} already has {taint['key']} taint(s) with same effect(s) and --overwrite is false"
            )
        taints = [t for t in taints if t not in existing] + [taint]
        added = True

    updated = edited(node)
    spec = updated.setdefault("spec", {})
    if taints:
        spec["taints"] = taints
    else:
        spec.pop("taints", None)
    config.log("info", "taint", node=name, taints=len(taints))
    word = "tainted" if added or not removed else "untainted"
    return result(f"node/{name} {word}", state.with_replaced(kind, node, updated))


# === drain ===


def _drain(ctx: Invocation, name: str) -> CommandResult:
    state, _ = set_unschedulable(ctx.state, name, True)
    on_node = [p for p in state.pods if p["spec"].get("nodeName") == name]
    daemon = [p for p in on_node if _owned_by_daemon_set(p)]
    if daemon and not ctx.has("ignore-daemonsets"):
        listing = ", ".join(f"{namespace_of(p)}/{p['metadata']['name']}" for p in daemon)
        raise SimulatorError(
            f'error: unable to drain node "{name}" due to error: cannot delete DaemonSet-managed Pods '
            f"(use --ignore-daemonsets to ignore): {listing}"
        )
    bare = [p for p in on_node if p not in daemon and owning_deployment(state, p) is None]
    if bare and not ctx.has("force"):
        listing = ", ".join(f"{namespace_of(p)}/{p['metadata']['name']}" for p in bare)
        raise SimulatorError(
            f'error: unable to drain node "{name}" due to error: cannot delete Pods that declare no controller '
            f"(use --force to override): {listing}"
        )

    evicted = [p for p in on_node if p not in daemon]
    doomed = {id(p) for p in evicted}
    state = state.with_pods(p for p in state.pods if id(p) not in doomed)
    state = reconcile_all(state)
    config.log("info", "drain", node=name, evicted=len(evicted))
    lines = [f"node/{name} cordoned", f"Evicting {len(evicted)} pods"]
    lines += [f'pod/{p["metadata"]["name"]} evicted' for p in evicted]
    lines.append(f"node/{name} drained")
    return result("\n".join(lines), state)


def _owned_by_daemon_set(pod: dict) -> bool:
    return any(o.get("kind") == "DaemonSet" for o in pod["metadata"].get("ownerReferences", []))
